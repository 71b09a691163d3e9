from pathlib import Path

import click

from life2app_deployment.constants import LEDGER_FILEPATH, NETWORKS_FILEPATH, PLAN_FILEPATH
from life2app_deployment.types import ChecksumAddress, HexData

plan_option = click.option(
    "--plan",
    "-p",
    "plan_filepath",
    help="Deployment plan YAML.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=PLAN_FILEPATH,
    show_default=True,
)

ledger_option = click.option(
    "--ledger",
    "-l",
    "ledger_filepath",
    help="Deployment ledger JSON; created on first deployment.",
    type=click.Path(dir_okay=False, path_type=Path),
    default=LEDGER_FILEPATH,
    show_default=True,
)

networks_option = click.option(
    "--networks",
    "networks_filepath",
    help="Network profiles YAML.",
    type=click.Path(dir_okay=False, exists=True, path_type=Path),
    default=NETWORKS_FILEPATH,
    show_default=True,
)

network_profile_option = click.option(
    "--network",
    "-n",
    "network_profile",
    help="Name of the network profile to use.",
    type=click.STRING,
    required=True,
)

autosign_option = click.option(
    "--autosign",
    help="Sign transactions without prompting.",
    is_flag=True,
)

verify_option = click.option(
    "--verify",
    help="Publish implementation sources to the network's block explorer.",
    is_flag=True,
)

contract_name_option = click.option(
    "--name",
    "contract_name",
    help="Logical contract name as recorded in the ledger.",
    type=click.STRING,
    required=True,
)

proxy_address_option = click.option(
    "--address",
    "proxy_address",
    help="Expected proxy address; must match the ledger.",
    type=ChecksumAddress(),
    required=True,
)

contract_type_option = click.option(
    "--contract-type",
    "-c",
    help="Build artifact for the new implementation; defaults to the recorded contract type.",
    type=click.STRING,
    required=False,
)

call_data_option = click.option(
    "--call-data",
    help="Hex encoded call (e.g. a reinitializer) to run with the upgrade.",
    type=HexData(),
    default="0x",
)
