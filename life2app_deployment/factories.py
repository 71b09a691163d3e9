from ape import project
from ape.contracts import ContractContainer

from life2app_deployment.constants import OZ_DEPENDENCY_NAME, OZ_DEPENDENCY_VERSION
from life2app_deployment.utils import bytecode_identifier


def get_oz_dependency():
    return project.dependencies[OZ_DEPENDENCY_NAME][OZ_DEPENDENCY_VERSION]


def _get_dependency_contract_container(contract: str) -> ContractContainer:
    for dependency_name, dependency_versions in project.dependencies.items():
        if len(dependency_versions) > 1:
            raise ValueError(f"Ambiguous {dependency_name} dependency for {contract}")
        try:
            dependency_api = list(dependency_versions.values())[0]
            contract_container = getattr(dependency_api, contract)
            return contract_container
        except AttributeError:
            continue
    raise ValueError(f"No contract found with name '{contract}'.")


def get_contract_container(contract: str) -> ContractContainer:
    """
    Returns the compiled artifact handle for a contract type; it can deploy
    new instances or attach to existing addresses with `.at(address)`.
    """
    try:
        contract_container = getattr(project, contract)
    except AttributeError:
        # not in root project; check dependencies
        contract_container = _get_dependency_contract_container(contract)

    return contract_container


def implementation_id(contract_container: ContractContainer) -> str:
    """Identifies a build by the hash of its runtime bytecode."""
    runtime_bytecode = contract_container.contract_type.runtime_bytecode
    if runtime_bytecode is None or not runtime_bytecode.bytecode:
        raise ValueError(f"No runtime bytecode for {contract_container.contract_type.name}")
    return bytecode_identifier(runtime_bytecode.bytecode)
