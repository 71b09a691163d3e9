import os
import typing
from collections import OrderedDict
from contextlib import contextmanager
from typing import Any, Iterator, List, Optional

from ape import chain, networks
from ape.api import AccountAPI, ReceiptAPI
from ape.contracts.base import ContractContainer, ContractInstance, ContractTransactionHandler
from ape.exceptions import (
    ContractLogicError,
    TransactionError,
    TransactionNotFoundError,
    VirtualMachineError,
)
from ape.utils import EMPTY_BYTES32
from ape_etherscan.utils import API_KEY_ENV_KEY_MAP
from eth_typing import ChecksumAddress
from eth_utils import keccak, to_checksum_address
from ethpm_types import MethodABI
from web3.auto import w3

from life2app_deployment.accounts import get_signer
from life2app_deployment.chain import Chain, DeploymentReceipt, UpgradeReceipt
from life2app_deployment.confirm import _confirm_resolution, _continue
from life2app_deployment.constants import (
    EIP1967_ADMIN_SLOT,
    EIP1967_IMPLEMENTATION_SLOT,
    INITIALIZER_METHOD,
    TRANSPARENT,
)
from life2app_deployment.exceptions import (
    ConfirmationTimeout,
    DeploymentError,
    DeploymentReverted,
    InvalidArguments,
    NetworkConfigError,
    ProxyKindMismatch,
    UpgradeReverted,
    UpgradeTimeout,
    WiringReverted,
)
from life2app_deployment.factories import (
    get_contract_container,
    get_oz_dependency,
    implementation_id,
)
from life2app_deployment.ledger import LedgerEntry
from life2app_deployment.networks import NetworkProfile
from life2app_deployment.plan import LogicalContract

_CHAIN_FAILURES = (ContractLogicError, VirtualMachineError, TransactionError)


def _validate_method_args(
    method_abis: List[MethodABI], args: typing.Sequence[Any]
) -> typing.Dict[str, Any]:
    """Validates the transaction arguments against the function ABI."""
    if len(method_abis) == 0:
        raise InvalidArguments("No method abis provided for validation of args")

    abis_matching_args_length = [abi for abi in method_abis if len(abi.inputs) == len(args)]
    for abi in abis_matching_args_length:
        named_args = {}
        for arg, abi_input in zip(args, abi.inputs):
            if not w3.is_encodable(abi_input.type, arg):
                break
            named_args[abi_input.name] = arg
        else:
            return named_args
    method_name = getattr(method_abis[0], "name", "constructor")
    raise InvalidArguments(
        f"Could not find ABI for '{method_name}' with {len(args)} arg(s) and given type(s)"
    )


def _read_slot(address: ChecksumAddress, slot: int) -> bytes:
    return bytes(chain.provider.get_storage(address, slot))


def check_etherscan_plugin() -> None:
    """Checks that the appropriate block explorer API key environment variable is set."""
    ecosystem_name = networks.provider.network.ecosystem.name
    explorer_envvar = API_KEY_ENV_KEY_MAP.get(ecosystem_name)
    api_key = os.environ.get(explorer_envvar) if explorer_envvar else None
    if not api_key:
        raise NetworkConfigError(f"{explorer_envvar or 'Explorer API key'} is not set.")


def verify_contracts(addresses: List[ChecksumAddress]) -> None:
    explorer = networks.provider.network.explorer
    for address in addresses:
        print(f"(i) Verifying contract at {address}...")
        explorer.publish_contract(address)


class ApeChain(Chain):
    """
    Represents an ape account on a connected provider, plus validated and
    annotated deployment, wiring and upgrade execution.
    """

    def __init__(
        self,
        profile: NetworkProfile,
        account: AccountAPI,
        autosign: bool = False,
        verify: bool = False,
    ):
        self.network = profile.name
        self.chain_id = networks.provider.chain_id
        self._account = account
        self._autosign = autosign
        self.verify = verify
        if autosign:
            print("WARNING: Autosign is enabled. Transactions will be signed automatically.")
        self._print_deployment_info()

    @property
    def deployer(self) -> ChecksumAddress:
        return self._account.address

    def get_nonce(self) -> int:
        return self._account.nonce

    def has_code(self, address: ChecksumAddress) -> bool:
        return len(networks.provider.get_code(address)) > 0

    def implementation_id(self, contract_type: str) -> str:
        return implementation_id(get_contract_container(contract_type))

    #
    # Deployment
    #

    def check_arguments(self, contract: LogicalContract, args: List[Any]) -> None:
        container = get_contract_container(contract.contract_type)
        if not contract.is_proxied:
            method_abis = [container.contract_type.constructor]
        else:
            method_abis = [
                abi for abi in container.contract_type.methods if abi.name == INITIALIZER_METHOD
            ]
            if not method_abis:
                if args:
                    raise InvalidArguments(
                        f"{contract.contract_type} has no '{INITIALIZER_METHOD}' method "
                        f"but {len(args)} initializer argument(s) were given"
                    )
                return
        _validate_method_args(method_abis=method_abis, args=args)

    def deploy(self, contract: LogicalContract, args: List[Any]) -> DeploymentReceipt:
        container = get_contract_container(contract.contract_type)
        if not self._autosign:
            _confirm_resolution(OrderedDict(zip(contract.parameters, args)), contract.name)

        if not contract.is_proxied:
            instance = self._deploy_contract(container, *args)
            return DeploymentReceipt(
                address=instance.address,
                implementation_address=instance.address,
                implementation=implementation_id(container),
                tx_hash=instance.receipt.txn_hash,
                block_number=instance.receipt.block_number,
            )

        implementation = self._deploy_contract(container)
        data = self._encode_initializer(implementation, args)
        proxy = self._deploy_proxy(contract, implementation, data)
        return DeploymentReceipt(
            address=proxy.address,
            implementation_address=implementation.address,
            implementation=implementation_id(container),
            tx_hash=proxy.receipt.txn_hash,
            block_number=proxy.receipt.block_number,
        )

    def _deploy_contract(
        self,
        container: ContractContainer,
        *args,
        error_class=DeploymentReverted,
        timeout_class=ConfirmationTimeout,
    ) -> ContractInstance:
        try:
            return self._account.deploy(container, *args)
        except TransactionNotFoundError as e:
            raise timeout_class(str(e))
        except _CHAIN_FAILURES as e:
            raise error_class(str(e))

    @staticmethod
    def _encode_initializer(implementation: ContractInstance, args: List[Any]) -> bytes:
        if not args and not hasattr(implementation, INITIALIZER_METHOD):
            return b""
        initializer = getattr(implementation, INITIALIZER_METHOD)
        return bytes(initializer.encode_input(*args))

    def _deploy_proxy(
        self,
        contract: LogicalContract,
        implementation: ContractInstance,
        data: bytes,
    ) -> ContractInstance:
        oz = get_oz_dependency()
        if contract.proxy_kind == TRANSPARENT:
            proxy_container = oz.TransparentUpgradeableProxy
            # the proxy creates its own ProxyAdmin, owned by the deployer
            proxy_args = [implementation.address, self.deployer, data]
        else:
            proxy_container = oz.ERC1967Proxy
            proxy_args = [implementation.address, data]

        print(
            f"\nDeploying {proxy_container.contract_type.name} "
            f"contract to proxy {contract.name}."
        )
        proxy_contract = self._deploy_contract(proxy_container, *proxy_args)
        print(
            f"\nWrapping {contract.name} into {proxy_contract.contract_type.name} "
            f"(as type {contract.contract_type}) at {proxy_contract.address}."
        )
        return proxy_contract

    #
    # Transactions
    #

    def transact(
        self,
        method: ContractTransactionHandler,
        *args,
        error_class=DeploymentError,
        timeout_class=None,
    ) -> ReceiptAPI:
        named_args = _validate_method_args(method_abis=method.abis, args=args)
        base_message = (
            f"\nTransacting {method.contract.contract_type.name}"
            f"[{method.contract.address[:10]}].{method}"
        )
        if named_args:
            pretty_args = "\n\t".join(f"{k}={v}" for k, v in named_args.items())
            message = f"{base_message} with arguments:\n\t{pretty_args}"
        else:
            message = f"{base_message} with no arguments"
        print(message)
        if not self._autosign:
            _continue()

        try:
            return method(*args, sender=self._account)
        except TransactionNotFoundError as e:
            if timeout_class is not None:
                raise timeout_class(str(e))
            raise error_class(f"confirmation timed out: {e}")
        except _CHAIN_FAILURES as e:
            raise error_class(str(e))

    #
    # Wiring
    #

    @staticmethod
    def _capability_role(instance: ContractInstance, capability: str) -> bytes:
        # prefer the contract's own role constant (e.g. OPERATOR_ROLE()) when it exposes one
        try:
            role_getter = getattr(instance, capability)
        except AttributeError:
            return keccak(text=capability)
        return role_getter()

    def set_capability(
        self,
        target: LedgerEntry,
        grantee: ChecksumAddress,
        capability: str,
        enabled: bool,
    ) -> Optional[str]:
        instance = get_contract_container(target.contract_type).at(target.address)
        role = self._capability_role(instance, capability)
        if instance.hasRole(role, grantee) == enabled:
            return None

        method = instance.grantRole if enabled else instance.revokeRole
        receipt = self.transact(method, role, grantee, error_class=WiringReverted)
        return receipt.txn_hash

    #
    # Upgrades
    #

    def _check_proxy_layout(self, entry: LedgerEntry) -> None:
        admin_slot = _read_slot(entry.address, EIP1967_ADMIN_SLOT)
        implementation_slot = _read_slot(entry.address, EIP1967_IMPLEMENTATION_SLOT)
        if implementation_slot == EMPTY_BYTES32:
            raise ProxyKindMismatch(
                f"Implementation slot for contract at {entry.address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?",
                contract_name=entry.name,
            )
        has_admin = admin_slot != EMPTY_BYTES32
        if has_admin != (entry.proxy_kind == TRANSPARENT):
            raise ProxyKindMismatch(
                f"Recorded as a {entry.proxy_kind} proxy but the admin slot is "
                f"{'set' if has_admin else 'empty'} at {entry.address}.",
                contract_name=entry.name,
            )

    def get_implementation(self, proxy_address: ChecksumAddress) -> ChecksumAddress:
        implementation_slot = _read_slot(proxy_address, EIP1967_IMPLEMENTATION_SLOT)
        if implementation_slot == EMPTY_BYTES32:
            raise ProxyKindMismatch(
                f"Implementation slot for contract at {proxy_address} is empty. "
                "Are you sure this is an EIP1967-compatible proxy?"
            )
        return to_checksum_address(implementation_slot[-20:])

    def _proxy_admin(self, proxy_address: ChecksumAddress) -> ContractInstance:
        admin_slot = _read_slot(proxy_address, EIP1967_ADMIN_SLOT)
        admin_address = to_checksum_address(admin_slot[-20:])
        return get_oz_dependency().ProxyAdmin.at(admin_address)

    def upgrade(self, entry: LedgerEntry, contract_type: str, data: bytes = b"") -> UpgradeReceipt:
        self._check_proxy_layout(entry)

        container = get_contract_container(contract_type)
        if not self._autosign:
            _confirm_resolution(OrderedDict(), f"{contract_type} implementation")
        implementation = self._deploy_contract(
            container, error_class=UpgradeReverted, timeout_class=UpgradeTimeout
        )

        if entry.proxy_kind == TRANSPARENT:
            proxy_admin = self._proxy_admin(entry.address)
            receipt = self.transact(
                proxy_admin.upgradeAndCall,
                entry.address,
                implementation.address,
                data,
                error_class=UpgradeReverted,
                timeout_class=UpgradeTimeout,
            )
        else:
            proxy = container.at(entry.address)
            receipt = self.transact(
                proxy.upgradeToAndCall,
                implementation.address,
                data,
                error_class=UpgradeReverted,
                timeout_class=UpgradeTimeout,
            )

        return UpgradeReceipt(
            implementation_address=implementation.address,
            implementation=implementation_id(container),
            tx_hash=receipt.txn_hash,
        )

    #
    # Finalization
    #

    def finalize(self, entries: List[LedgerEntry]) -> None:
        if self.verify:
            check_etherscan_plugin()
            verify_contracts([entry.implementation_address for entry in entries])

    def _print_deployment_info(self):
        print(
            f"Account: {self.deployer}",
            f"Network profile: {self.network}",
            f"Verify: {self.verify}",
            f"Ecosystem: {networks.provider.network.ecosystem.name}",
            f"Network: {networks.provider.network.name}",
            f"Chain ID: {self.chain_id}",
            f"Gas Price: {networks.provider.gas_price}",
            sep="\n",
        )


@contextmanager
def connect(
    profile: NetworkProfile, autosign: bool = False, verify: bool = False
) -> Iterator[ApeChain]:
    """Connects to a resolved network profile and yields a signer-bound ApeChain."""
    with networks.parse_network_choice(profile.rpc_endpoint_url) as provider:
        chain_mismatch = provider.chain_id != profile.chain_id
        if chain_mismatch and profile.is_live:
            raise NetworkConfigError(
                f"chain_id in network profile '{profile.name}' ({profile.chain_id}) does not "
                f"match chain_id of current network ({provider.chain_id})."
            )
        account = get_signer(profile, autosign=autosign)
        yield ApeChain(profile=profile, account=account, autosign=autosign, verify=verify)
