#!/usr/bin/python3
from contextlib import contextmanager

import click
from dotenv import load_dotenv

from life2app_deployment.ape_chain import connect
from life2app_deployment.exceptions import DeploymentError, NetworkConfigError
from life2app_deployment.executor import deploy_plan
from life2app_deployment.ledger import Ledger
from life2app_deployment.networks import load_network_profiles, resolve_network_profile
from life2app_deployment.options import (
    autosign_option,
    call_data_option,
    contract_name_option,
    contract_type_option,
    ledger_option,
    network_profile_option,
    networks_option,
    plan_option,
    proxy_address_option,
    verify_option,
)
from life2app_deployment.plan import Plan
from life2app_deployment.upgrade import upgrade as upgrade_contract


@contextmanager
def _abort_on_deployment_error():
    """Reports the failing contract, step and error kind, and exits non-zero."""
    try:
        yield
    except DeploymentError as e:
        raise click.ClickException(str(e))


@click.group()
def cli():
    """Deploy and upgrade the Life2App contract set."""
    load_dotenv()


@cli.command()
@click.argument("network_profile")
@plan_option
@ledger_option
@networks_option
@autosign_option
@verify_option
def deploy(network_profile, plan_filepath, ledger_filepath, networks_filepath, autosign, verify):
    """Deploy every contract in the plan to NETWORK_PROFILE and apply its wiring."""
    with _abort_on_deployment_error():
        profile = resolve_network_profile(network_profile, filepath=networks_filepath)
        plan = Plan.from_yaml(plan_filepath)
        ledger = Ledger(ledger_filepath)
        print(f"Plan: {plan.name or plan_filepath} (version {plan.version}), {len(plan)} step(s)")
        print(f"Ledger: {ledger.filepath}")

        with connect(profile, autosign=autosign, verify=verify) as chain:
            report = deploy_plan(plan, ledger, chain)

    click.echo("\nDeployment summary:")
    for step in report.steps:
        if step.recovered:
            status = "recovered"
        elif step.was_skipped:
            status = "skipped"
        else:
            status = "deployed"
        click.echo(f"\t[{step.index}] {step.name}: {step.address} ({status})")
    changed = sum(1 for result in report.wiring if result.changed)
    click.echo(f"\tWiring: {len(report.wiring)} edge(s), {changed} transaction(s)")


@cli.command()
@network_profile_option
@contract_name_option
@proxy_address_option
@contract_type_option
@call_data_option
@ledger_option
@networks_option
@autosign_option
def upgrade(
    network_profile,
    contract_name,
    proxy_address,
    contract_type,
    call_data,
    ledger_filepath,
    networks_filepath,
    autosign,
):
    """Upgrade a single deployed contract to a new implementation."""
    with _abort_on_deployment_error():
        profile = resolve_network_profile(network_profile, filepath=networks_filepath)
        ledger = Ledger(ledger_filepath)
        with connect(profile, autosign=autosign) as chain, ledger.lock():
            result = upgrade_contract(
                name=contract_name,
                new_implementation=contract_type,
                ledger=ledger,
                chain=chain,
                expected_address=proxy_address,
                data=call_data,
            )

    if result.unchanged:
        click.echo(f"{result.name} at {result.address} is already up to date.")
    else:
        click.echo(
            f"{result.name} at {result.address} now runs {result.implementation_address} "
            f"(revision {result.revision}, tx {result.tx_hash})."
        )


@cli.command()
@click.argument("network_profile")
@ledger_option
@networks_option
def status(network_profile, ledger_filepath, networks_filepath):
    """Show the ledger entries recorded for NETWORK_PROFILE."""
    with _abort_on_deployment_error():
        profiles = load_network_profiles(filepath=networks_filepath)
        if network_profile not in profiles:
            raise NetworkConfigError(f"Unknown network profile '{network_profile}'.")
        chain_id = profiles[network_profile].chain_id
        ledger = Ledger(ledger_filepath)
        entries = ledger.entries(chain_id)
        pending = ledger.pending_records(chain_id)

    if not entries:
        click.echo(f"No contracts recorded for '{network_profile}' (chain {chain_id}).")
    else:
        click.echo(f"Contracts recorded for '{network_profile}' (chain {chain_id}):")
    for entry in entries:
        click.echo(
            f"\t{entry.name}: {entry.address} [{entry.proxy_kind}] "
            f"implementation {entry.implementation_address} (revision {entry.revision})"
        )
    for record in pending:
        click.echo(
            f"\t(!) {record.name}: interrupted deployment at nonce {record.nonce}, "
            f"expected at {record.predicted_address}; the next deploy run reconciles it"
        )


if __name__ == "__main__":
    cli()
