from pathlib import Path

import life2app_deployment

#
# Filesystem
#

DEPLOYMENT_DIR = Path(life2app_deployment.__file__).parent
CONSTRUCTOR_PARAMS_DIR = DEPLOYMENT_DIR / "constructor_params"
ARTIFACTS_DIR = DEPLOYMENT_DIR / "artifacts"

PLAN_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "life2app.yml"
NETWORKS_FILEPATH = CONSTRUCTOR_PARAMS_DIR / "networks.yml"
LEDGER_FILEPATH = ARTIFACTS_DIR / "ledger.json"

LOCK_SUFFIX = ".lock"
PENDING_SUFFIX = ".pending.json"

#
# Proxies
#

TRANSPARENT = "transparent"
UUPS = "uups"
NO_PROXY = "none"

SUPPORTED_PROXY_KINDS = [TRANSPARENT, UUPS, NO_PROXY]
UPGRADEABLE_PROXY_KINDS = [TRANSPARENT, UUPS]

OZ_DEPENDENCY_NAME = "openzeppelin"
OZ_DEPENDENCY_VERSION = "5.0.0"

INITIALIZER_METHOD = "initialize"

# EIP1967 Admin slot - https://eips.ethereum.org/EIPS/eip-1967#admin-address
EIP1967_ADMIN_SLOT = 0xB53127684A568B3173AE13B9F8A6016E243E63B6E8EE1178D6A717850B5D6103
# EIP1967 Implementation slot - https://eips.ethereum.org/EIPS/eip-1967#logic-contract-address
EIP1967_IMPLEMENTATION_SLOT = 0x360894A13BA1A3210667C828492DB98DCA3E2076CC3735A920A3CA505D382BBC

#
# Networks
#

STATIC_KEY = "static_key"
DERIVATION_SEED = "derivation_seed"
EXTERNAL_SIGNER = "external_signer"

SUPPORTED_SIGNER_SOURCES = [STATIC_KEY, DERIVATION_SEED, EXTERNAL_SIGNER]

LOCAL_CHAIN_IDS = [1337, 31337]

DEFAULT_HD_PATH = "m/44'/60'/0'/0/{index}"
SIGNER_PASSPHRASE_ENV = "LIFE2APP_SIGNER_PASSPHRASE"


#
# Plan variables
#

VARIABLE_PREFIX = "$"
DEPLOYER_INDICATOR = "deployer"
