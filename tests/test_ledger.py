import json

import pytest

from life2app_deployment.exceptions import CorruptLedger, LedgerLocked
from life2app_deployment.ledger import Ledger, LedgerEntry, PendingDeployment
from life2app_deployment.utils import contract_address
from tests.conftest import DEPLOYER, LOCAL_CHAIN_ID, artifact_id

TOKEN_ADDRESS = "0x00000000000000000000000000000000000000A1"
ITEMS_ADDRESS = "0x00000000000000000000000000000000000000B2"


def make_entry(name="TestERC20", address=TOKEN_ADDRESS, chain_id=LOCAL_CHAIN_ID, **overrides):
    fields = dict(
        name=name,
        chain_id=chain_id,
        network="local",
        address=address,
        proxy_kind="none",
        contract_type=name,
        implementation=artifact_id(name),
        implementation_address=address,
        initializer_args=[],
        deployer=DEPLOYER,
    )
    fields.update(overrides)
    return LedgerEntry(**fields)


def test_empty_ledger(ledger, ledger_filepath):
    assert not ledger_filepath.exists()
    assert ledger.get("TestERC20", LOCAL_CHAIN_ID) is None
    assert ledger.entries(LOCAL_CHAIN_ID) == []


def test_record_and_reload(ledger, ledger_filepath):
    entry = make_entry(initializer_args=["https://test.uri", 180])
    ledger.record(entry)

    reopened = Ledger(ledger_filepath)
    assert reopened.get("TestERC20", LOCAL_CHAIN_ID) == entry
    assert reopened.entries(LOCAL_CHAIN_ID) == [entry]


def test_entries_are_scoped_by_chain(ledger):
    local = make_entry()
    testnet = make_entry(address=ITEMS_ADDRESS, chain_id=5611, network="op_bnb_test")
    ledger.record(local)
    ledger.record(testnet)

    assert ledger.get("TestERC20", LOCAL_CHAIN_ID).address == TOKEN_ADDRESS
    assert ledger.get("TestERC20", 5611).address == ITEMS_ADDRESS
    assert ledger.get("TestERC20", 1) is None


def test_ledger_document_layout(ledger, ledger_filepath):
    ledger.record(make_entry(name="LifeHackatonItems", address=ITEMS_ADDRESS))
    ledger.record(make_entry())

    data = json.loads(ledger_filepath.read_text())
    assert list(data) == [str(LOCAL_CHAIN_ID)]
    assert list(data[str(LOCAL_CHAIN_ID)]) == ["LifeHackatonItems", "TestERC20"]
    token = data[str(LOCAL_CHAIN_ID)]["TestERC20"]
    assert token["address"] == TOKEN_ADDRESS
    assert token["revision"] == 0
    assert "name" not in token


def test_record_replaces_whole_entry(ledger):
    ledger.record(make_entry(tx_hash="0x01"))
    ledger.record(make_entry(revision=1))
    entry = ledger.get("TestERC20", LOCAL_CHAIN_ID)
    assert entry.revision == 1
    assert entry.tx_hash is None


def test_no_temp_file_left_behind(ledger, ledger_filepath):
    ledger.record(make_entry())
    assert sorted(p.name for p in ledger_filepath.parent.iterdir()) == ["ledger.json"]


def test_corrupt_ledger(ledger_filepath):
    ledger_filepath.parent.mkdir(parents=True)
    ledger_filepath.write_text("{not json")
    with pytest.raises(CorruptLedger):
        Ledger(ledger_filepath)


def test_malformed_entry(ledger_filepath):
    ledger_filepath.parent.mkdir(parents=True)
    ledger_filepath.write_text(json.dumps({"1337": {"TestERC20": {"address": TOKEN_ADDRESS}}}))
    with pytest.raises(CorruptLedger) as exc_info:
        Ledger(ledger_filepath)
    assert exc_info.value.contract_name == "TestERC20"


@pytest.mark.parametrize(
    "document",
    [
        {"local": {}},
        {"1337": []},
        {"1337": {"TestERC20": "0x00000000000000000000000000000000000000A1"}},
    ],
)
def test_malformed_network_section(ledger_filepath, document):
    ledger_filepath.parent.mkdir(parents=True)
    ledger_filepath.write_text(json.dumps(document))
    with pytest.raises(CorruptLedger):
        Ledger(ledger_filepath)


def test_malformed_journal(ledger, ledger_filepath):
    ledger.pending_filepath.parent.mkdir(parents=True)
    ledger.pending_filepath.write_text(json.dumps({"1337": {"TestERC20": {"nonce": 0}}}))
    with pytest.raises(CorruptLedger) as exc_info:
        Ledger(ledger_filepath)
    assert exc_info.value.contract_name == "TestERC20"


def test_pending_records(ledger, ledger_filepath):
    record = PendingDeployment(
        name="LifeHackatonItems",
        chain_id=LOCAL_CHAIN_ID,
        deployer=DEPLOYER,
        nonce=3,
        proxy_kind="transparent",
        contract_type="LifeHackatonItems",
        initializer_args=[],
    )
    ledger.mark_pending(record)
    assert ledger.pending_filepath.exists()

    reopened = Ledger(ledger_filepath)
    assert reopened.pending("LifeHackatonItems", LOCAL_CHAIN_ID) == record
    assert reopened.pending_records(LOCAL_CHAIN_ID) == [record]

    reopened.record(
        make_entry(name="LifeHackatonItems", address=record.predicted_address)
    )
    assert reopened.pending("LifeHackatonItems", LOCAL_CHAIN_ID) is None
    assert not reopened.pending_filepath.exists()


def test_predicted_addresses():
    plain = PendingDeployment("TestERC20", LOCAL_CHAIN_ID, DEPLOYER, 5, "none", "TestERC20", [])
    assert plain.predicted_address == contract_address(DEPLOYER, 5)
    assert plain.predicted_implementation_address == plain.predicted_address

    assert plain.last_nonce == 5

    proxied = plain._replace(proxy_kind="uups")
    assert proxied.last_nonce == 6
    assert proxied.predicted_implementation_address == contract_address(DEPLOYER, 5)
    assert proxied.predicted_address == contract_address(DEPLOYER, 6)


def test_lock_is_exclusive(ledger, ledger_filepath):
    with ledger.lock():
        assert ledger.lock_filepath.exists()
        with pytest.raises(LedgerLocked):
            with Ledger(ledger_filepath).lock():
                pass
    assert not ledger.lock_filepath.exists()


def test_lock_released_on_error(ledger):
    with pytest.raises(RuntimeError):
        with ledger.lock():
            raise RuntimeError("boom")
    assert not ledger.lock_filepath.exists()


def test_lock_reloads_entries(ledger, ledger_filepath):
    other = Ledger(ledger_filepath)
    other.record(make_entry())
    assert ledger.get("TestERC20", LOCAL_CHAIN_ID) is None
    with ledger.lock():
        assert ledger.get("TestERC20", LOCAL_CHAIN_ID) is not None
