from abc import ABC, abstractmethod
from typing import Any, List, NamedTuple, Optional

from eth_typing import ChecksumAddress

from life2app_deployment.ledger import LedgerEntry
from life2app_deployment.plan import LogicalContract


class DeploymentReceipt(NamedTuple):
    address: ChecksumAddress
    implementation_address: ChecksumAddress
    implementation: str
    tx_hash: Optional[str]
    block_number: Optional[int]


class UpgradeReceipt(NamedTuple):
    implementation_address: ChecksumAddress
    implementation: str
    tx_hash: Optional[str]


class Chain(ABC):
    """
    A connected network plus the signer that deploys to it.

    Implementations block until each submitted transaction is confirmed and
    translate chain failures into DeploymentReverted / ConfirmationTimeout
    (or the matching UpgradeError) so executors never see transport errors.
    """

    network: str
    chain_id: int

    @property
    @abstractmethod
    def deployer(self) -> ChecksumAddress:
        raise NotImplementedError

    @abstractmethod
    def get_nonce(self) -> int:
        """Next nonce of the deployer account."""
        raise NotImplementedError

    @abstractmethod
    def has_code(self, address: ChecksumAddress) -> bool:
        raise NotImplementedError

    @abstractmethod
    def implementation_id(self, contract_type: str) -> str:
        """Content hash of the current build artifact for contract_type."""
        raise NotImplementedError

    def check_arguments(self, contract: LogicalContract, args: List[Any]) -> None:
        """Raises InvalidArguments if args cannot be passed to the contract."""

    @abstractmethod
    def deploy(self, contract: LogicalContract, args: List[Any]) -> DeploymentReceipt:
        """Deploys the implementation and, for proxied kinds, its initialized proxy."""
        raise NotImplementedError

    @abstractmethod
    def set_capability(
        self,
        target: LedgerEntry,
        grantee: ChecksumAddress,
        capability: str,
        enabled: bool,
    ) -> Optional[str]:
        """
        Brings `grantee`'s `capability` on `target` to the `enabled` state.
        Returns the transaction hash, or None if the state already matched.
        """
        raise NotImplementedError

    @abstractmethod
    def get_implementation(self, proxy_address: ChecksumAddress) -> ChecksumAddress:
        """Implementation address the proxy currently delegates to."""
        raise NotImplementedError

    @abstractmethod
    def upgrade(self, entry: LedgerEntry, contract_type: str, data: bytes = b"") -> UpgradeReceipt:
        """Deploys a new implementation and points the recorded proxy at it."""
        raise NotImplementedError

    def finalize(self, entries: List[LedgerEntry]) -> None:
        """Hook run once all steps and wiring succeeded."""
