from pathlib import Path

import pytest

from tradeload.config import load_settings
from tradeload.wallets import load_wallets, parse_wallets

from conftest import KEY

OTHER_KEY = "0x" + "11" * 32


def test_packaged_defaults():
    s = load_settings(env={})
    assert s.chain_id == 688688
    assert s.max_threads == 10
    assert s.task_timeout == 1200
    assert s.bump_ratio == (6, 5)
    assert s.max_bumps == 3
    assert [(p.name, p.index) for p in s.pairs] == [("AAPL_USDT", 6004)]
    assert s.wallet_file == Path("wallet.txt")


def test_environment_overrides():
    env = {
        "RPC_URL": "http://node:8545",
        "CHAIN_ID": "1337",
        "PROOF_API": "http://proofs:9000",
        "MAX_THREADS": "4",
        "THREAD_TIMEOUT": "90",
        "ROUNDS": "2",
        "WALLET_FILE": "/keys/w.txt",
    }
    s = load_settings(env=env)
    assert s.rpc_url == "http://node:8545"
    assert s.chain_id == 1337
    assert s.proof_url == "http://proofs:9000"
    assert s.max_threads == 4
    assert s.task_timeout == 90.0
    assert s.rounds == 2
    assert s.wallet_file == Path("/keys/w.txt")


def test_config_without_pairs_is_rejected(tmp_path):
    cfg = tmp_path / "config.toml"
    cfg.write_text(
        '[network]\nrpc_url = "http://x"\nchain_id = 1\n'
        '[contracts]\ntoken = "0x1"\nclaim = "0x2"\nrouter = "0x3"\nspender = "0x4"\n'
        '[proof]\nbase_url = "http://p"\n'
    )
    with pytest.raises(ValueError, match="pairs"):
        load_settings(cfg, env={})


def test_zero_threads_is_rejected():
    with pytest.raises(ValueError, match="max_threads"):
        load_settings(env={"MAX_THREADS": "0"})


def test_parse_wallets_skips_blank_lines():
    text = f"\n{KEY}\r\n   \n{OTHER_KEY[2:]}  \n"
    accounts = parse_wallets(text)
    assert [a.index for a in accounts] == [0, 1]
    assert accounts[0].private_key == KEY
    assert accounts[1].private_key == OTHER_KEY
    assert accounts[0].address != accounts[1].address


def test_load_wallets_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_wallets(tmp_path / "nope.txt")


def test_load_wallets_empty_file(tmp_path):
    path = tmp_path / "wallet.txt"
    path.write_text("\n\n")
    with pytest.raises(ValueError):
        load_wallets(path)


def test_load_wallets(tmp_path):
    path = tmp_path / "wallet.txt"
    path.write_text(f"{KEY}\n{OTHER_KEY}\n")
    assert len(load_wallets(path)) == 2


def test_dotenv_file_sits_between_config_and_environment(tmp_path, monkeypatch):
    dotenv = tmp_path / ".env"
    dotenv.write_text("MAX_THREADS=3\nROUNDS=4\n")
    monkeypatch.setenv("ROUNDS", "7")
    monkeypatch.delenv("MAX_THREADS", raising=False)
    s = load_settings(dotenv=dotenv)
    assert s.max_threads == 3
    assert s.rounds == 7


def test_missing_dotenv_file_is_ignored(tmp_path, monkeypatch):
    monkeypatch.delenv("MAX_THREADS", raising=False)
    assert load_settings(dotenv=tmp_path / ".env").max_threads == 10
