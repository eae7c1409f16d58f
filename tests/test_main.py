"""End-to-end tests for the command-line entrypoint."""

from __future__ import annotations

import json

import pytest

from stealthvault import __version__
from stealthvault.main import main

PIN = "482913"


@pytest.fixture
def data_dir(tmp_path):
    path = tmp_path / "data"
    path.mkdir()
    # one attempt per invocation keeps the backoff out of the tests
    (path / "config.ini").write_text("[vault]\nmax_pin_attempts = 1\n", encoding="utf-8")
    return path


@pytest.fixture
def keyfile(tmp_path, meta_keys):
    path = tmp_path / "keys.json"
    path.write_text(json.dumps(meta_keys.to_dict()), encoding="utf-8")
    return path


@pytest.fixture
def pins(monkeypatch):
    """Queue answers for the PIN prompt."""
    queue = []
    monkeypatch.setattr("stealthvault.main._read_pin", lambda prompt="PIN: ": queue.pop(0))
    return queue


def run(data_dir, *args):
    return main(["--data-dir", str(data_dir), *args])


class TestCli:
    def test_version(self, capsys):
        with pytest.raises(SystemExit) as exc:
            main(["--version"])
        assert exc.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_status_empty(self, data_dir, capsys):
        assert run(data_dir, "status") == 0
        out = capsys.readouterr().out
        assert "vault:   empty" in out
        assert "session: none" in out

    def test_first_run_writes_config_and_log(self, tmp_path):
        fresh = tmp_path / "fresh"
        assert run(fresh, "status") == 0
        assert (fresh / "config.ini").exists()
        assert (fresh / "stealthvault.log").exists()

    def test_store_then_session(self, data_dir, keyfile, pins, meta_keys, capsys):
        pins.extend([PIN, PIN])
        assert run(data_dir, "store", str(keyfile)) == 0
        assert "Meta keys stored." in capsys.readouterr().out

        assert run(data_dir, "session") == 0
        out = capsys.readouterr().out
        assert meta_keys.APTOS.address in out
        assert meta_keys.APTOS.metaSpendPriv not in out

        assert run(data_dir, "status") == 0
        assert "session: valid" in capsys.readouterr().out

    def test_store_mismatched_pins(self, data_dir, keyfile, pins, capsys):
        pins.extend([PIN, "000000"])
        assert run(data_dir, "store", str(keyfile)) == 1
        assert "do not match" in capsys.readouterr().err

    def test_store_missing_keyfile(self, data_dir, tmp_path, capsys):
        assert run(data_dir, "store", str(tmp_path / "nope.json")) == 1
        assert "cannot read" in capsys.readouterr().err

    def test_lock_then_unlock(self, data_dir, keyfile, pins, meta_keys, capsys):
        pins.extend([PIN, PIN])
        run(data_dir, "store", str(keyfile))
        assert run(data_dir, "lock") == 0
        assert run(data_dir, "session") == 1

        pins.append("000000")
        assert run(data_dir, "unlock") == 1
        assert "Incorrect PIN or vault unavailable." in capsys.readouterr().err

        pins.append(PIN)
        assert run(data_dir, "unlock") == 0
        assert meta_keys.APTOS.address in capsys.readouterr().out
        assert run(data_dir, "session") == 0

    def test_unlock_without_vault(self, data_dir, capsys):
        assert run(data_dir, "unlock") == 1
        assert "No vault stored." in capsys.readouterr().err

    def test_clear(self, data_dir, keyfile, pins, capsys):
        pins.extend([PIN, PIN])
        run(data_dir, "store", str(keyfile))
        assert run(data_dir, "clear") == 0
        capsys.readouterr()
        run(data_dir, "status")
        assert "vault:   empty" in capsys.readouterr().out

    def test_storage_never_holds_plaintext(self, data_dir, keyfile, pins, meta_keys):
        pins.extend([PIN, PIN])
        run(data_dir, "store", str(keyfile))
        stored = (data_dir / "storage.json").read_text()
        assert meta_keys.APTOS.metaViewPriv not in stored
        assert "stealthvault-encrypted-meta-keys" in stored

    def test_unlock_budget_is_per_invocation(self, data_dir, keyfile, pins, monkeypatch):
        monkeypatch.setattr("stealthvault.util.rate_limit.time.sleep", lambda s: None)
        (data_dir / "config.ini").write_text("[vault]\nmax_pin_attempts = 2\n", encoding="utf-8")
        pins.extend([PIN, PIN])
        run(data_dir, "store", str(keyfile))
        run(data_dir, "lock")

        pins.extend(["000000", "111111", "222222"])
        assert run(data_dir, "unlock") == 1
        # two prompts spent, the third answer is left for the next run
        assert pins == ["222222"]

        pins[:] = ["333333", PIN]
        assert run(data_dir, "unlock") == 0
        assert pins == []
