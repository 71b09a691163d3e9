import typing
from collections import OrderedDict

import click
from ape.utils import ZERO_ADDRESS


def _confirm_deployment(contract_name: str) -> None:
    """Asks the user to confirm the deployment of a single contract."""
    click.confirm(f"Deploy {contract_name}?", default=True, abort=True)


def _continue() -> None:
    """Asks the user to continue."""
    click.confirm("Continue?", default=True, abort=True)


def _confirm_zero_address() -> None:
    click.confirm(
        "Zero Address detected for deployment parameter; Continue?", default=False, abort=True
    )


def _contains_zero_address(value: typing.Any) -> bool:
    if isinstance(value, (list, tuple)):
        return any(_contains_zero_address(v) for v in value)
    return value == ZERO_ADDRESS


def _confirm_resolution(resolved_params: OrderedDict, contract_name: str) -> None:
    """Asks the user to confirm the resolved initializer parameters for a single contract."""
    if len(resolved_params) == 0:
        print(f"\n(i) No initializer parameters for {contract_name}")
        _confirm_deployment(contract_name)
        return

    print(f"\nInitializer parameters for {contract_name}")
    for name, resolved_value in resolved_params.items():
        print(f"\t{name}={resolved_value}")
    _confirm_deployment(contract_name)
    if _contains_zero_address(list(resolved_params.values())):
        _confirm_zero_address()
