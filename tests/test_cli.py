from contextlib import contextmanager

import pytest
from click.testing import CliRunner

from life2app_deployment import cli as cli_module
from life2app_deployment.cli import cli
from life2app_deployment.ledger import Ledger
from tests.conftest import FakeChain

PLAN = """
deployment:
  name: life2app
  version: 1
constants:
  ITEM_PRICE: 180
contracts:
  - TestERC20
  - LifeHackatonItems:
      proxy: transparent
      initializer:
        uri: "https://test.uri"
        paymentToken: $TestERC20
        rewardToken: $TestERC20
        price: $ITEM_PRICE
        resalePrice: $ITEM_PRICE
        owner: $deployer
wiring:
  - source: LifeHackatonItems
    target: TestERC20
    capability: MINTER_ROLE
"""

NETWORKS = """
networks:
  local:
    rpc_endpoint_url: ethereum:local:test
    chain_id: 1337
"""


@pytest.fixture()
def files(tmp_path):
    plan_filepath = tmp_path / "life2app.yml"
    plan_filepath.write_text(PLAN)
    networks_filepath = tmp_path / "networks.yml"
    networks_filepath.write_text(NETWORKS)
    ledger_filepath = tmp_path / "artifacts" / "ledger.json"
    return plan_filepath, networks_filepath, ledger_filepath


@pytest.fixture()
def fake_chain(monkeypatch):
    chain = FakeChain()
    connections = list()

    @contextmanager
    def connect(profile, autosign=False, verify=False):
        connections.append((profile.name, autosign, verify))
        yield chain

    monkeypatch.setattr(cli_module, "connect", connect)
    chain.connections = connections
    return chain


def invoke_deploy(files, *extra):
    plan_filepath, networks_filepath, ledger_filepath = files
    return CliRunner().invoke(
        cli,
        [
            "deploy",
            "local",
            "--plan",
            str(plan_filepath),
            "--networks",
            str(networks_filepath),
            "--ledger",
            str(ledger_filepath),
            *extra,
        ],
    )


def test_deploy(files, fake_chain):
    result = invoke_deploy(files, "--verify")
    assert result.exit_code == 0, result.output
    assert "[0] TestERC20" in result.output
    assert "(deployed)" in result.output
    assert "Wiring: 1 edge(s), 1 transaction(s)" in result.output
    assert fake_chain.connections == [("local", False, True)]

    ledger = Ledger(files[2])
    assert len(ledger.entries(fake_chain.chain_id)) == 2


def test_redeploy_skips(files, fake_chain):
    invoke_deploy(files)
    result = invoke_deploy(files)
    assert result.exit_code == 0, result.output
    assert "(deployed)" not in result.output
    assert "(skipped)" in result.output
    assert "Wiring: 1 edge(s), 0 transaction(s)" in result.output


def test_deploy_failure_exits_non_zero(files, fake_chain):
    fake_chain.revert_on.add("LifeHackatonItems")
    result = invoke_deploy(files)
    assert result.exit_code != 0
    assert "[step 1] LifeHackatonItems: DeploymentReverted" in result.output


def test_deploy_unknown_network(files, fake_chain):
    plan_filepath, networks_filepath, ledger_filepath = files
    result = CliRunner().invoke(
        cli,
        ["deploy", "mainnet", "--plan", str(plan_filepath), "--networks", str(networks_filepath)],
    )
    assert result.exit_code != 0
    assert "NetworkConfigError" in result.output
    assert fake_chain.connections == []


def test_upgrade(files, fake_chain):
    invoke_deploy(files)
    _, networks_filepath, ledger_filepath = files
    proxy = Ledger(ledger_filepath).get("LifeHackatonItems", fake_chain.chain_id).address

    fake_chain.builds["LifeHackatonItems"] = 1
    result = CliRunner().invoke(
        cli,
        [
            "upgrade",
            "--network",
            "local",
            "--name",
            "LifeHackatonItems",
            "--address",
            proxy,
            "--networks",
            str(networks_filepath),
            "--ledger",
            str(ledger_filepath),
        ],
    )
    assert result.exit_code == 0, result.output
    assert "revision 1" in result.output
    assert Ledger(ledger_filepath).get("LifeHackatonItems", fake_chain.chain_id).revision == 1


def test_upgrade_rejects_wrong_address(files, fake_chain):
    invoke_deploy(files)
    _, networks_filepath, ledger_filepath = files
    result = CliRunner().invoke(
        cli,
        [
            "upgrade",
            "-n",
            "local",
            "--name",
            "LifeHackatonItems",
            "--address",
            "0x00000000000000000000000000000000000000A1",
            "--networks",
            str(networks_filepath),
            "--ledger",
            str(ledger_filepath),
        ],
    )
    assert result.exit_code != 0
    assert "AddressMismatch" in result.output


def test_status(files, fake_chain):
    invoke_deploy(files)
    _, networks_filepath, ledger_filepath = files
    result = CliRunner().invoke(
        cli, ["status", "local", "--networks", str(networks_filepath), "--ledger", str(ledger_filepath)]
    )
    assert result.exit_code == 0, result.output
    assert "TestERC20" in result.output
    assert "[transparent]" in result.output


def test_status_empty(files):
    _, networks_filepath, ledger_filepath = files
    result = CliRunner().invoke(
        cli, ["status", "local", "--networks", str(networks_filepath), "--ledger", str(ledger_filepath)]
    )
    assert result.exit_code == 0, result.output
    assert "No contracts recorded" in result.output
