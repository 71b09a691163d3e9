import os
from typing import Mapping, Optional

from ape import accounts
from ape.api import AccountAPI
from ape.cli.choices import select_account
from ape_accounts import import_account_from_mnemonic, import_account_from_private_key

from life2app_deployment.constants import (
    DEFAULT_HD_PATH,
    EXTERNAL_SIGNER,
    SIGNER_PASSPHRASE_ENV,
    STATIC_KEY,
)
from life2app_deployment.exceptions import NetworkConfigError
from life2app_deployment.networks import NetworkProfile


def _signer_alias(profile: NetworkProfile) -> str:
    source = profile.signer_source
    if source.type == STATIC_KEY:
        return f"life2app-{profile.name}"
    return f"life2app-{profile.name}-{source.index}"


def get_signer(
    profile: NetworkProfile,
    autosign: bool = False,
    environ: Optional[Mapping[str, str]] = None,
) -> AccountAPI:
    """
    Derives the deployer account for a resolved network profile.

    Key material from the environment is imported once into an encrypted
    ape keyfile (passphrase from $LIFE2APP_SIGNER_PASSPHRASE) and loaded by
    alias afterwards. Local profiles without a signer use the first test account.
    """
    environ = os.environ if environ is None else environ
    source = profile.signer_source
    if source is None:
        return accounts.test_accounts[0]

    if source.type == EXTERNAL_SIGNER:
        if source.alias:
            return accounts.load(source.alias)
        return select_account()

    passphrase = environ.get(SIGNER_PASSPHRASE_ENV)
    if not passphrase:
        raise NetworkConfigError(
            f"{SIGNER_PASSPHRASE_ENV} must be set to import the {source.type} signer "
            f"for network '{profile.name}'."
        )

    alias = _signer_alias(profile)
    if alias in accounts.aliases:
        account = accounts.load(alias)
    elif source.type == STATIC_KEY:
        account = import_account_from_private_key(alias, passphrase, source.secret(environ))
    else:
        account = import_account_from_mnemonic(
            alias,
            passphrase,
            source.secret(environ),
            hdpath=DEFAULT_HD_PATH.format(index=source.index),
        )
    print(f"Signer: {account.address} ({alias})")

    if autosign:
        account.set_autosign(True, passphrase=passphrase)
    return account
