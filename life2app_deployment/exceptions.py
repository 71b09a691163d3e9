"""Error taxonomy for planning, executing, wiring and upgrading deployments."""

from typing import Optional


class DeploymentError(Exception):
    """Base exception for deployment-related errors."""

    def __init__(
        self,
        message: str = "",
        contract_name: Optional[str] = None,
        step_index: Optional[int] = None,
    ):
        super().__init__(message)
        self.message = message
        self.contract_name = contract_name
        self.step_index = step_index

    @property
    def kind(self) -> str:
        return type(self).__name__

    def at_step(self, contract_name: str, step_index: Optional[int] = None) -> "DeploymentError":
        """Fills in the step context if the raiser did not know it."""
        if self.contract_name is None:
            self.contract_name = contract_name
        if self.step_index is None:
            self.step_index = step_index
        return self

    def __str__(self) -> str:
        location = ""
        if self.step_index is not None:
            location += f"[step {self.step_index}] "
        if self.contract_name is not None:
            location += f"{self.contract_name}: "
        details = f": {self.message}" if self.message else ""
        return f"{location}{self.kind}{details}"


#
# Configuration
#


class ConfigurationError(DeploymentError, ValueError):
    """Raised when a plan or network configuration file is malformed."""


class NetworkConfigError(ConfigurationError):
    """Raised when a network profile cannot be resolved into an RPC endpoint and signer."""


#
# Plan (static, raised before any chain interaction)
#


class PlanError(DeploymentError, ValueError):
    """Raised when a deployment plan is invalid."""


class ForwardReference(PlanError):
    """Raised when an argument references a contract not defined earlier in the plan."""


class DuplicateName(PlanError):
    """Raised when two logical contracts share a name."""


class UnsupportedProxyKind(PlanError):
    """Raised when a logical contract uses a proxy kind outside the supported set."""


class UnknownConstant(PlanError):
    """Raised when an argument references an undefined plan constant."""


class UnknownWiringEndpoint(PlanError):
    """Raised when a wiring edge names a contract that is not part of the plan."""


#
# Executor (runtime, chain dependent)
#


class ExecutorError(DeploymentError):
    """Raised when executing a deployment plan fails."""


class ArgumentDrift(ExecutorError):
    """Raised when a ledger entry was deployed with different initializer arguments."""


class UnresolvedReference(ExecutorError):
    """Raised when a referenced contract has no ledger entry at execution time."""


class InvalidArguments(ExecutorError):
    """Raised when resolved arguments do not fit the contract ABI."""


class DeploymentReverted(ExecutorError):
    """Raised when a deployment transaction fails on chain."""

    def __init__(self, reason: str = "", *args, **kwargs):
        super().__init__(reason, *args, **kwargs)
        self.reason = reason


class ConfirmationTimeout(ExecutorError):
    """Raised when a submitted transaction is not confirmed in time."""


class MissingContractCode(ExecutorError):
    """Raised when the ledger records an address that holds no code on chain."""


#
# Wiring
#


class WiringError(DeploymentError):
    """Raised when post-deployment wiring cannot be applied."""


class MissingEndpoint(WiringError):
    """Raised when a wiring edge endpoint has no ledger entry."""


class WiringReverted(WiringError):
    """Raised when a grant or revoke transaction fails on chain."""


#
# Upgrade
#


class UpgradeError(DeploymentError):
    """Raised when a single-contract upgrade cannot be performed."""


class NotDeployed(UpgradeError):
    """Raised when upgrading a contract with no ledger entry."""


class NotUpgradeable(UpgradeError):
    """Raised when upgrading a contract deployed without an upgradeable proxy."""


class AddressMismatch(UpgradeError):
    """Raised when the operator-supplied address differs from the recorded proxy address."""


class ProxyKindMismatch(UpgradeError):
    """Raised when the on-chain proxy layout contradicts the recorded proxy kind."""


class UpgradeReverted(UpgradeError):
    """Raised when the upgrade transaction fails on chain."""


class UpgradeTimeout(UpgradeError):
    """Raised when an upgrade transaction is not confirmed in time; its outcome is unknown."""


class ImplementationMismatch(UpgradeError):
    """Raised when the proxy points at an implementation other than the recorded one."""


#
# Ledger
#


class LedgerError(DeploymentError):
    """Raised when the deployment ledger cannot be used."""


class LedgerLocked(LedgerError):
    """Raised when another run holds the ledger lock."""


class CorruptLedger(LedgerError, ValueError):
    """Raised when the ledger file cannot be parsed."""
