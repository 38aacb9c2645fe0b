import json
import os
import shutil
import tempfile
import pytest
from nodedump.blockchain.core.accounts import Account
from nodedump.blockchain.core.state import AccountStore
from nodedump.blockchain.snapshot import StateSnapshot
from nodedump.blockchain.storage.db import StorageDB
from nodedump.cli.dump_cli import DEFAULT_HOME, main

@pytest.fixture
def home():
    temp_dir = tempfile.mkdtemp()
    os.makedirs(os.path.join(temp_dir, "data"))
    os.makedirs(os.path.join(temp_dir, "config"))
    yield temp_dir
    shutil.rmtree(temp_dir)

def seed_store(home, count=5):
    db = StorageDB(os.path.join(home, "data", "chain.db"))
    store = AccountStore(db)
    for i in range(count):
        store.set_account(Account(address=bytes([i + 1]) * 20, account_number=i, coins={"BNB": 1000 * (i + 1)}))
    store.save_commit(1234, "C0FFEE")
    store.set_chain_id("Binance-Chain-Tigris")
    db.close()

def run(*argv):
    with pytest.raises(SystemExit) as exc_info:
        main(list(argv))
    return exc_info.value.code

def test_export_and_verify(home):
    seed_store(home)
    out = os.path.join(home, "state.json")

    assert run("--home", home, "export", out) == 0
    snapshot = StateSnapshot.load(out)
    assert snapshot.block_height == 1234
    assert snapshot.commit_id == "C0FFEE"
    assert snapshot.chain_id == "Binance-Chain-Tigris"
    assert snapshot.assets == {"BNB": 15000}
    assert len(snapshot.proofs) == 5

    assert run("verify", out) == 0

def test_export_requires_path(home, capsys):
    seed_store(home)
    assert run("--home", home, "export") == 1
    assert "should be set" in capsys.readouterr().out

def test_export_overwrites_existing_file(home):
    seed_store(home)
    out = os.path.join(home, "state.json")
    with open(out, "w") as f:
        f.write("previous run\n" * 500)

    assert run("--home", home, "export", out) == 0
    assert run("--home", home, "export", out) == 0
    with open(out) as f:
        doc = json.load(f)
    assert len(doc["accounts"]) == 5

def test_empty_state_prints_genesis(home, capsys):
    genesis = {"chain_id": "Binance-Chain-Tigris", "app_state": {"accounts": []}}
    with open(os.path.join(home, "config", "genesis.json"), "w") as f:
        json.dump(genesis, f)
    out = os.path.join(home, "state.json")

    assert run("--home", home, "export", out) == 0
    assert json.loads(capsys.readouterr().out) == genesis
    assert not os.path.exists(out)

def test_empty_state_without_genesis(home, capsys):
    assert run("--home", home, "export", os.path.join(home, "state.json")) == 1
    assert "genesis" in capsys.readouterr().out

def test_bech32_export(home):
    seed_store(home, count=3)
    out = os.path.join(home, "state.json")

    assert run("--home", home, "--network", "testnet", "export", out, "--address-format", "bech32") == 0
    snapshot = StateSnapshot.load(out)
    assert all(a.address.startswith("tbnb1") for a in snapshot.accounts)
    assert run("verify", out) == 0

def test_unsorted_pairs_round_trip(home):
    seed_store(home)
    out = os.path.join(home, "state.json")

    assert run("--home", home, "export", out, "--no-sort-pairs", "--num-routines", "1") == 0
    assert run("verify", out, "--no-sort-pairs") == 0

def test_trace_and_metrics_files(home):
    seed_store(home, count=2)
    out = os.path.join(home, "state.json")
    trace = os.path.join(home, "trace.log")
    metrics = os.path.join(home, "metrics.prom")

    assert run("--home", home, "export", out, "--trace-store", trace, "--metrics-file", metrics) == 0

    with open(trace) as f:
        reads = [json.loads(line) for line in f]
    assert [r["key"] for r in reads] == ["acc:" + "01" * 20, "acc:" + "02" * 20]
    with open(metrics) as f:
        assert 'nodedump_exports_total{status="success"}' in f.read()

def test_invalid_arguments(home, capsys):
    seed_store(home)
    out = os.path.join(home, "state.json")
    assert run("--home", home, "export", out, "--num-routines", "0") == 1
    assert run("--home", home, "--network", "nowhere", "export", out) == 1
    assert "Unknown network" in capsys.readouterr().out

def test_verify_rejects_tampered_file(home, capsys):
    seed_store(home)
    out = os.path.join(home, "state.json")
    assert run("--home", home, "export", out) == 0

    with open(out) as f:
        doc = json.load(f)
    doc["accounts"][0]["coins"][0]["amount"] += 1
    doc["assets"]["BNB"] += 1
    with open(out, "w") as f:
        json.dump(doc, f)

    assert run("verify", out) == 1
    assert "INVALID" in capsys.readouterr().out

def test_verify_missing_file(home):
    assert run("verify", os.path.join(home, "missing.json")) == 1

def test_store_failure_reports_stage(home, capsys):
    db = StorageDB(os.path.join(home, "data", "chain.db"))
    db.set_state("acc:" + "01" * 20, "not json")
    db.close()

    assert run("--home", home, "export", os.path.join(home, "state.json")) == 1
    assert "Error: store:" in capsys.readouterr().out
    assert not os.path.exists(os.path.join(home, "state.json"))

def test_missing_output_directory_reports_write_error(home, capsys):
    seed_store(home)
    out = os.path.join(home, "nope", "state.json")

    assert run("--home", home, "export", out) == 1
    assert "Error: write:" in capsys.readouterr().out
    assert not os.path.exists(os.path.dirname(out))

def test_unopenable_trace_file_reports_error(home, capsys):
    seed_store(home)
    out = os.path.join(home, "state.json")
    trace = os.path.join(home, "missing-dir", "trace.log")

    assert run("--home", home, "export", out, "--trace-store", trace) == 1
    assert "Error: write: Cannot open trace file" in capsys.readouterr().out
    assert not os.path.exists(out)

def test_home_with_uri_characters(capsys):
    parent = tempfile.mkdtemp()
    try:
        home = os.path.join(parent, "node#1?x=%20")
        os.makedirs(os.path.join(home, "data"))
        seed_store(home, count=3)
        out = os.path.join(home, "state.json")

        assert run("--home", home, "export", out) == 0
        assert len(StateSnapshot.load(out).accounts) == 3
    finally:
        shutil.rmtree(parent)

def test_missing_data_directory_is_an_error(home, capsys):
    shutil.rmtree(os.path.join(home, "data"))
    with open(os.path.join(home, "config", "genesis.json"), "w") as f:
        f.write("{}")

    assert run("--home", home, "export", os.path.join(home, "state.json")) == 1
    assert "Error: store: Data directory" in capsys.readouterr().out

@pytest.mark.skipif("NODEDUMP_HOME" in os.environ, reason="home overridden by environment")
def test_default_home_is_under_user_home():
    assert DEFAULT_HOME == os.path.expanduser("~/.bnbchaind")
    assert os.path.isabs(DEFAULT_HOME)
