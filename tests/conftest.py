from collections import OrderedDict

import pytest
from eth_utils import keccak, to_hex

from life2app_deployment.chain import Chain, DeploymentReceipt, UpgradeReceipt
from life2app_deployment.exceptions import (
    ConfirmationTimeout,
    DeploymentReverted,
    UpgradeReverted,
    UpgradeTimeout,
    WiringReverted,
)
from life2app_deployment.ledger import Ledger
from life2app_deployment.plan import DeployerAccount, LogicalContract, build_plan, ref
from life2app_deployment.utils import contract_address

DEPLOYER = "0x7E5F4552091A69125d5DfCb7b8C2659029395Bdf"
LOCAL_CHAIN_ID = 1337


def artifact_id(contract_type, build=0):
    return to_hex(keccak(text=f"{contract_type}:{build}"))


class FakeChain(Chain):
    """
    In-memory chain that assigns CREATE addresses from the deployer nonce,
    so addresses are deterministic and journal recovery can be exercised.
    """

    def __init__(self, chain_id=LOCAL_CHAIN_ID, network="local", deployer=DEPLOYER):
        self.chain_id = chain_id
        self.network = network
        self._deployer = deployer
        self.nonce = 0
        self.code = dict()
        self.implementations = dict()
        self.roles = set()
        self.builds = dict()
        self.deployed = list()
        self.transactions = list()
        self.revert_on = set()
        self.timeout_on = set()
        self.finalized = None

    @property
    def deployer(self):
        return self._deployer

    def get_nonce(self):
        return self.nonce

    def has_code(self, address):
        return address in self.code

    def implementation_id(self, contract_type):
        return artifact_id(contract_type, self.builds.get(contract_type, 0))

    def _create(self, contract_type):
        address = contract_address(self._deployer, self.nonce)
        self.nonce += 1
        self.code[address] = contract_type
        tx_hash = to_hex(keccak(text=f"tx:{address}"))
        self.transactions.append(tx_hash)
        return address, tx_hash

    def deploy(self, contract, args):
        if contract.name in self.revert_on:
            self.nonce += 1
            raise DeploymentReverted("execution reverted: initializer failed")
        implementation_address, tx_hash = self._create(contract.contract_type)
        address = implementation_address
        if contract.is_proxied:
            address, tx_hash = self._create(f"{contract.proxy_kind}-proxy")
            self.implementations[address] = implementation_address
        self.deployed.append((contract.name, list(args)))
        if contract.name in self.timeout_on:
            raise ConfirmationTimeout("transaction not confirmed after 120 seconds")
        return DeploymentReceipt(
            address=address,
            implementation_address=implementation_address,
            implementation=self.implementation_id(contract.contract_type),
            tx_hash=tx_hash,
            block_number=len(self.transactions),
        )

    def set_capability(self, target, grantee, capability, enabled):
        key = (target.address, grantee, capability)
        if (key in self.roles) == enabled:
            return None
        if capability in self.revert_on:
            raise WiringReverted("execution reverted: AccessControlUnauthorizedAccount")
        if enabled:
            self.roles.add(key)
        else:
            self.roles.remove(key)
        tx_hash = to_hex(keccak(text=f"tx:{key}:{enabled}"))
        self.transactions.append(tx_hash)
        return tx_hash

    def get_implementation(self, proxy_address):
        return self.implementations[proxy_address]

    def upgrade(self, entry, contract_type, data=b""):
        if contract_type in self.revert_on:
            raise UpgradeReverted("execution reverted", contract_name=entry.name)
        implementation_address, _ = self._create(contract_type)
        self.implementations[entry.address] = implementation_address
        tx_hash = to_hex(keccak(text=f"tx:upgrade:{implementation_address}"))
        self.transactions.append(tx_hash)
        if contract_type in self.timeout_on:
            raise UpgradeTimeout("transaction not confirmed after 120 seconds")
        return UpgradeReceipt(
            implementation_address=implementation_address,
            implementation=self.implementation_id(contract_type),
            tx_hash=tx_hash,
        )

    def finalize(self, entries):
        self.finalized = [entry.name for entry in entries]


@pytest.fixture()
def chain():
    return FakeChain()


@pytest.fixture()
def ledger_filepath(tmp_path):
    return tmp_path / "artifacts" / "ledger.json"


@pytest.fixture()
def ledger(ledger_filepath):
    return Ledger(ledger_filepath)


@pytest.fixture()
def token():
    return LogicalContract(name="TestERC20")


@pytest.fixture()
def items():
    return LogicalContract(
        name="LifeHackatonItems",
        proxy_kind="transparent",
        parameters=OrderedDict(
            uri="https://test.uri",
            paymentToken=ref("TestERC20"),
            rewardToken=ref("TestERC20"),
            price=180,
            resalePrice=180,
            owner=DeployerAccount(),
        ),
    )


@pytest.fixture()
def plan(token, items):
    return build_plan([token, items], name="life2app", version=1)
