from typing import NamedTuple, Optional

from eth_typing import ChecksumAddress
from eth_utils import to_checksum_address

from life2app_deployment.chain import Chain
from life2app_deployment.constants import UPGRADEABLE_PROXY_KINDS
from life2app_deployment.exceptions import (
    AddressMismatch,
    ImplementationMismatch,
    NotDeployed,
    NotUpgradeable,
    UpgradeError,
)
from life2app_deployment.ledger import Ledger, LedgerEntry


class UpgradeResult(NamedTuple):
    name: str
    address: ChecksumAddress
    previous_implementation: str
    implementation: str
    implementation_address: ChecksumAddress
    revision: int
    tx_hash: Optional[str]

    @property
    def unchanged(self) -> bool:
        return self.tx_hash is None


def upgrade(
    name: str,
    new_implementation: Optional[str],
    ledger: Ledger,
    chain: Chain,
    expected_address: Optional[str] = None,
    data: bytes = b"",
) -> UpgradeResult:
    """
    Points one recorded proxy at a new implementation and updates its ledger entry.

    `new_implementation` names the build artifact to deploy; it defaults to
    the contract type recorded at deployment. Only the named contract is
    touched, and only its implementation fields and revision change.
    """
    chain_id = chain.chain_id
    entry = ledger.get(name, chain_id)
    if entry is None:
        raise NotDeployed(f"no ledger entry on chain {chain_id}", contract_name=name)

    if entry.proxy_kind not in UPGRADEABLE_PROXY_KINDS:
        raise NotUpgradeable(
            f"deployed with proxy kind '{entry.proxy_kind}'", contract_name=name
        )

    if expected_address is not None:
        if to_checksum_address(expected_address) != entry.address:
            raise AddressMismatch(
                f"--address {expected_address} does not match recorded proxy {entry.address}",
                contract_name=name,
            )

    try:
        current_implementation = chain.get_implementation(entry.address)
    except UpgradeError as e:
        raise e.at_step(name)
    if current_implementation != entry.implementation_address:
        # e.g. an upgrade that timed out and was mined afterwards
        raise ImplementationMismatch(
            f"proxy {entry.address} delegates to {current_implementation} but the ledger "
            f"records {entry.implementation_address}; reconcile the ledger before upgrading",
            contract_name=name,
        )

    contract_type = new_implementation or entry.contract_type
    implementation = chain.implementation_id(contract_type)
    if implementation == entry.implementation and contract_type == entry.contract_type:
        print(f"(i) {name} already runs implementation {implementation}; nothing to upgrade")
        return _result(entry, entry, tx_hash=None)

    print(f"\nUpgrading {name} at {entry.address} to {contract_type} ({entry.proxy_kind} proxy)...")
    receipt = chain.upgrade(entry, contract_type, data)

    upgraded = entry._replace(
        contract_type=contract_type,
        implementation=receipt.implementation,
        implementation_address=receipt.implementation_address,
        revision=entry.revision + 1,
    )
    ledger.record(upgraded)
    print(f"(i) {name} upgraded to revision {upgraded.revision}")
    return _result(entry, upgraded, tx_hash=receipt.tx_hash)


def _result(previous: LedgerEntry, current: LedgerEntry, tx_hash: Optional[str]) -> UpgradeResult:
    return UpgradeResult(
        name=current.name,
        address=current.address,
        previous_implementation=previous.implementation,
        implementation=current.implementation,
        implementation_address=current.implementation_address,
        revision=current.revision,
        tx_hash=tx_hash,
    )
