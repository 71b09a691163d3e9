import typing
from abc import ABC, abstractmethod
from collections import OrderedDict
from pathlib import Path
from typing import Any, Callable, Iterator, List, NamedTuple, Optional, Sequence

from eth_typing import ChecksumAddress

from life2app_deployment.constants import (
    DEPLOYER_INDICATOR,
    NO_PROXY,
    SUPPORTED_PROXY_KINDS,
    VARIABLE_PREFIX,
)
from life2app_deployment.exceptions import (
    ConfigurationError,
    DuplicateName,
    ForwardReference,
    UnknownConstant,
    UnknownWiringEndpoint,
    UnsupportedProxyKind,
)
from life2app_deployment.utils import _load_yaml

CONTRACT_PROXY_PARAMETER_KEY = "proxy"
CONTRACT_TYPE_PARAMETER_KEY = "contract_type"
CONTRACT_INITIALIZER_PARAMETER_KEY = "initializer"

AddressLookup = Callable[[str], ChecksumAddress]


# Variables


class Variable(ABC):
    VARIABLE_PREFIX = VARIABLE_PREFIX

    @abstractmethod
    def resolve(self, lookup: AddressLookup, deployer: ChecksumAddress) -> Any:
        raise NotImplementedError

    @classmethod
    def is_variable(cls, param: Any) -> bool:
        """Returns True if the param is a variable."""
        result = isinstance(param, str) and param.startswith(cls.VARIABLE_PREFIX)
        return result


class DeployerAccount(Variable):
    """The address of the account signing the deployment."""

    @classmethod
    def is_deployer(cls, value: str) -> bool:
        return value == DEPLOYER_INDICATOR

    def resolve(self, lookup: AddressLookup, deployer: ChecksumAddress) -> Any:
        return deployer

    def __eq__(self, other):
        return isinstance(other, DeployerAccount)

    def __repr__(self):
        return f"{VARIABLE_PREFIX}{DEPLOYER_INDICATOR}"


class ContractReference(Variable):
    """The future address of another logical contract in the same plan."""

    def __init__(self, contract_name: str):
        self.contract_name = contract_name

    def resolve(self, lookup: AddressLookup, deployer: ChecksumAddress) -> Any:
        return lookup(self.contract_name)

    def __eq__(self, other):
        return isinstance(other, ContractReference) and other.contract_name == self.contract_name

    def __hash__(self):
        return hash(self.contract_name)

    def __repr__(self):
        return f"{VARIABLE_PREFIX}{self.contract_name}"


def ref(contract_name: str) -> ContractReference:
    return ContractReference(contract_name)


def _resolve_param(value: Any, lookup: AddressLookup, deployer: ChecksumAddress) -> Any:
    """Resolves a single parameter value or a list of parameter values."""
    if isinstance(value, (list, tuple)):
        return [_resolve_param(v, lookup, deployer) for v in value]

    if isinstance(value, Variable):
        return value.resolve(lookup, deployer)

    return value  # literally a value


def _references(value: Any) -> Iterator[ContractReference]:
    if isinstance(value, (list, tuple)):
        for v in value:
            yield from _references(v)
    elif isinstance(value, ContractReference):
        yield value


# Plan model


class LogicalContract:
    """A named deployable unit and the template of its initializer arguments."""

    def __init__(
        self,
        name: str,
        proxy_kind: str = NO_PROXY,
        parameters: typing.Union[OrderedDict, Sequence[Any], None] = None,
        contract_type: Optional[str] = None,
    ):
        if parameters is None:
            parameters = OrderedDict()
        elif not isinstance(parameters, dict):
            parameters = OrderedDict((f"arg{i}", v) for i, v in enumerate(parameters))
        self.name = name
        self.proxy_kind = proxy_kind
        self.parameters = OrderedDict(parameters)
        self.contract_type = contract_type or name

    @property
    def is_proxied(self) -> bool:
        return self.proxy_kind != NO_PROXY

    @property
    def references(self) -> List[str]:
        """Names of the logical contracts this one's arguments point at."""
        names = list()
        for value in self.parameters.values():
            for reference in _references(value):
                if reference.contract_name not in names:
                    names.append(reference.contract_name)
        return names

    def resolve(self, lookup: AddressLookup, deployer: ChecksumAddress) -> List[Any]:
        """Resolves the initializer arguments in order."""
        return [_resolve_param(v, lookup, deployer) for v in self.parameters.values()]

    def __repr__(self):
        return f"LogicalContract({self.name!r}, proxy_kind={self.proxy_kind!r})"


class DeploymentStep(NamedTuple):
    index: int
    contract: LogicalContract

    @property
    def name(self) -> str:
        return self.contract.name


class WiringEdge(NamedTuple):
    """Grants (or revokes) `capability` on `target` to the `source` contract."""

    source: str
    target: str
    capability: str
    enabled: bool = True

    def describe(self) -> str:
        action = "grant" if self.enabled else "revoke"
        return f"{action} {self.capability} on {self.target} to {self.source}"


class Plan:
    """An ordered, validated list of deployment steps plus their wiring edges."""

    def __init__(
        self,
        steps: Sequence[DeploymentStep],
        wiring: Sequence[WiringEdge] = (),
        name: str = "",
        version: Optional[typing.Union[int, str]] = None,
    ):
        self.steps = tuple(steps)
        self.wiring = tuple(wiring)
        self.name = name
        self.version = version

    def __iter__(self) -> Iterator[DeploymentStep]:
        return iter(self.steps)

    def __len__(self) -> int:
        return len(self.steps)

    @property
    def contract_names(self) -> List[str]:
        return [step.name for step in self.steps]

    def get(self, contract_name: str) -> LogicalContract:
        for step in self.steps:
            if step.name == contract_name:
                return step.contract
        raise KeyError(contract_name)

    @classmethod
    def from_config(cls, config: typing.Dict) -> "Plan":
        print("Processing deployment plan...")
        contracts_config = config.get("contracts")
        if not contracts_config:
            raise ConfigurationError("Plan file missing 'contracts' field.")

        contract_names = _get_contract_names(config)
        constants = config.get("constants") or dict()
        logical_contracts = [
            _logical_contract_from_config(contract_info, constants, contract_names)
            for contract_info in contracts_config
        ]
        wiring = [_wiring_edge_from_config(edge) for edge in config.get("wiring") or list()]

        deployment = config.get("deployment") or dict()
        return build_plan(
            logical_contracts,
            wiring=wiring,
            name=deployment.get("name", ""),
            version=deployment.get("version"),
        )

    @classmethod
    def from_yaml(cls, filepath: Path) -> "Plan":
        config = _load_yaml(filepath)
        return cls.from_config(config)


def build_plan(
    logical_contracts: Sequence[LogicalContract],
    wiring: Sequence[WiringEdge] = (),
    name: str = "",
    version: Optional[typing.Union[int, str]] = None,
) -> Plan:
    """
    Validates an ordered sequence of logical contracts and returns a Plan.

    Every reference must point at a contract defined at an earlier position,
    names must be unique and proxy kinds must be supported. Nothing touches
    the chain here.
    """
    defined = list()
    steps = list()
    for index, contract in enumerate(logical_contracts):
        if contract.name in defined:
            raise DuplicateName(
                f"'{contract.name}' is already defined at step {defined.index(contract.name)}",
                contract_name=contract.name,
                step_index=index,
            )
        if contract.proxy_kind not in SUPPORTED_PROXY_KINDS:
            raise UnsupportedProxyKind(
                f"'{contract.proxy_kind}' is not one of {SUPPORTED_PROXY_KINDS}",
                contract_name=contract.name,
                step_index=index,
            )
        for reference in contract.references:
            if reference not in defined:
                raise ForwardReference(
                    f"argument references '{reference}' which is not deployed by an earlier step",
                    contract_name=contract.name,
                    step_index=index,
                )
        defined.append(contract.name)
        steps.append(DeploymentStep(index=index, contract=contract))

    for edge in wiring:
        for endpoint in (edge.source, edge.target):
            if endpoint not in defined:
                raise UnknownWiringEndpoint(
                    f"wiring edge '{edge.describe()}' names unknown contract '{endpoint}'",
                    contract_name=endpoint,
                )

    return Plan(steps=steps, wiring=wiring, name=name, version=version)


# Config processing


def _get_contract_names(config: typing.Dict) -> List[str]:
    contract_names = list()
    for contract_info in config["contracts"]:
        if isinstance(contract_info, str):
            contract_names.append(contract_info)
        elif isinstance(contract_info, dict):
            contract_names.extend(list(contract_info.keys()))
        else:
            raise ConfigurationError("Malformed contracts entry in plan file.")
    return contract_names


def _variable_from_value(
    variable: str, constants: typing.Dict[str, Any], contract_names: Sequence[str] = ()
) -> Any:
    variable = variable[len(VARIABLE_PREFIX) :]
    if DeployerAccount.is_deployer(variable):
        return DeployerAccount()
    elif variable.isupper():
        if variable in constants:
            return constants[variable]
        elif variable in contract_names:
            # all-caps contract names, e.g. USDT
            return ContractReference(variable)
        else:
            raise UnknownConstant(f"Constant '{variable}' not found in plan file.")
    else:
        return ContractReference(variable)


def _process_raw_value(
    value: Any, constants: typing.Dict[str, Any], contract_names: Sequence[str] = ()
) -> Any:
    if isinstance(value, list):
        return [_process_raw_value(v, constants, contract_names) for v in value]

    if Variable.is_variable(value):
        value = _variable_from_value(value, constants, contract_names)

    return value


def _logical_contract_from_config(
    contract_info: Any, constants: typing.Dict, contract_names: Sequence[str] = ()
) -> LogicalContract:
    if isinstance(contract_info, str):
        return LogicalContract(name=contract_info)

    if not isinstance(contract_info, dict) or len(contract_info) != 1:
        raise ConfigurationError("Malformed contracts entry in plan file.")

    contract_name = list(contract_info.keys())[0]  # only one entry
    contract_data = contract_info[contract_name] or dict()
    if not isinstance(contract_data, dict):
        raise ConfigurationError(f"Malformed plan entry for {contract_name}.")

    raw_parameters = contract_data.get(CONTRACT_INITIALIZER_PARAMETER_KEY) or OrderedDict()
    try:
        if isinstance(raw_parameters, dict):
            parameters = OrderedDict(
                (name, _process_raw_value(value, constants, contract_names))
                for name, value in raw_parameters.items()
            )
        else:
            parameters = [
                _process_raw_value(value, constants, contract_names) for value in raw_parameters
            ]
    except UnknownConstant as e:
        raise e.at_step(contract_name)

    return LogicalContract(
        name=contract_name,
        proxy_kind=str(contract_data.get(CONTRACT_PROXY_PARAMETER_KEY) or NO_PROXY),
        parameters=parameters,
        contract_type=contract_data.get(CONTRACT_TYPE_PARAMETER_KEY),
    )


def _wiring_edge_from_config(edge: Any) -> WiringEdge:
    if not isinstance(edge, dict):
        raise ConfigurationError("Malformed wiring entry in plan file.")
    try:
        return WiringEdge(
            source=edge["source"],
            target=edge["target"],
            capability=edge["capability"],
            enabled=bool(edge.get("enabled", True)),
        )
    except KeyError as e:
        raise ConfigurationError(f"Wiring entry missing '{e.args[0]}' field.")
