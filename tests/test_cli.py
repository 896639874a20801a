"""Tests for the indigo CLI via Click's test runner.

Every test runs against the local filesystem backend inside tmp_path.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest
from click.testing import CliRunner

from indigo.cli import main
from indigo.sync.engine import load_config
from indigo.sync.local import LocalState
from indigo.sync.models import BackendType, DataCategory

USER_ID = "user-123"
PASSPHRASE = "correct horse battery staple"

pytestmark = pytest.mark.usefixtures("fast_kdf")


@pytest.fixture(autouse=True)
def clean_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("INDIGO_USER_ID", "INDIGO_SYNC_PASSPHRASE", "INDIGO_SUPABASE_KEY"):
        monkeypatch.delenv(name, raising=False)


def _invoke(*args: str, input: str | None = None) -> Any:
    """Invoke the main CLI with given args."""
    runner = CliRunner()
    return runner.invoke(main, list(args), input=input)


@pytest.fixture
def configured_home(tmp_home: Path) -> Path:
    """Home with the local backend configured and sync enabled."""
    result = _invoke("sync", "configure", "--home", str(tmp_home), "--backend", "local")
    assert result.exit_code == 0, result.output
    result = _invoke(
        "sync", "enable", "--home", str(tmp_home), "--passphrase", PASSPHRASE,
    )
    assert result.exit_code == 0, result.output
    return tmp_home


class TestSyncConfigure:

    def test_writes_config(self, tmp_home: Path) -> None:
        result = _invoke(
            "sync", "configure", "--home", str(tmp_home),
            "--backend", "local", "--timeout", "12", "--strict", "--interval", "15",
        )
        assert result.exit_code == 0
        config = load_config(tmp_home)
        assert config.backend == BackendType.LOCAL
        assert config.timeout_seconds == 12
        assert config.strict_remote_lookup is True
        assert config.auto_sync_interval_minutes == 15

    def test_rejects_invalid_interval(self, tmp_home: Path) -> None:
        result = _invoke("sync", "configure", "--home", str(tmp_home), "--interval", "0")
        assert result.exit_code == 1
        assert "Invalid setting" in result.output

    def test_unconfigured_supabase_exits(self, tmp_home: Path) -> None:
        result = _invoke("sync", "now", "--home", str(tmp_home), "--user", USER_ID)
        assert result.exit_code == 1
        assert "not configured" in result.output


class TestSyncEnable:

    def test_prompts_for_passphrase(self, tmp_home: Path) -> None:
        result = _invoke(
            "sync", "enable", "--home", str(tmp_home), "--auto",
            input=f"{PASSPHRASE}\n{PASSPHRASE}\n",
        )
        assert result.exit_code == 0
        state = LocalState(tmp_home).load_sync_state()
        assert state.enabled is True
        assert state.auto_sync is True
        assert state.encryption_passphrase == PASSPHRASE

    def test_empty_passphrase_rejected(self, tmp_home: Path) -> None:
        result = _invoke("sync", "enable", "--home", str(tmp_home), "--passphrase", "")
        assert result.exit_code == 1
        assert "passphrase is required" in result.output
        assert LocalState(tmp_home).load_sync_state().enabled is False

    def test_disable(self, configured_home: Path) -> None:
        result = _invoke("sync", "disable", "--home", str(configured_home))
        assert result.exit_code == 0
        assert LocalState(configured_home).load_sync_state().enabled is False


class TestSyncRun:

    def test_now(self, configured_home: Path) -> None:
        result = _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        assert result.exit_code == 0, result.output
        assert "All data synced successfully" in result.output
        assert (configured_home / "cloud").is_dir()

    def test_now_requires_user(self, configured_home: Path) -> None:
        result = _invoke("sync", "now", "--home", str(configured_home))
        assert result.exit_code == 1
        assert "Sign in" in result.output

    def test_now_when_disabled(self, configured_home: Path) -> None:
        _invoke("sync", "disable", "--home", str(configured_home))
        result = _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        assert result.exit_code == 1
        assert "disabled" in result.output

    def test_push_then_pull(self, configured_home: Path) -> None:
        LocalState(configured_home).save_category(DataCategory.JOURNAL, [{"id": "j1"}])
        result = _invoke("sync", "push", "--home", str(configured_home), "--user", USER_ID)
        assert result.exit_code == 0, result.output

        LocalState(configured_home).save_category(DataCategory.JOURNAL, [])
        result = _invoke("sync", "pull", "--home", str(configured_home), "--user", USER_ID)
        assert result.exit_code == 0, result.output
        assert LocalState(configured_home).load_category(DataCategory.JOURNAL) == [{"id": "j1"}]

    def test_pull_wrong_passphrase_fails(self, configured_home: Path) -> None:
        _invoke("sync", "push", "--home", str(configured_home), "--user", USER_ID)
        result = _invoke(
            "sync", "pull", "--home", str(configured_home), "--user", USER_ID,
            "--passphrase", "wrong",
        )
        assert result.exit_code == 1
        assert "messages" in result.output

    def test_status(self, configured_home: Path) -> None:
        _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        result = _invoke("sync", "status", "--home", str(configured_home))
        assert result.exit_code == 0
        assert "Cloud Sync" in result.output
        assert "local" in result.output
        assert "user_profile" in result.output
        assert "Recent activity" in result.output
        assert "All categories synced" in result.output

    def test_verify(self, configured_home: Path) -> None:
        _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        ok = _invoke("sync", "verify", "--home", str(configured_home), "--user", USER_ID)
        bad = _invoke(
            "sync", "verify", "--home", str(configured_home), "--user", USER_ID,
            "--passphrase", "wrong",
        )
        assert ok.exit_code == 0
        assert "Passphrase OK" in ok.output
        assert bad.exit_code == 1

    def test_delete(self, configured_home: Path) -> None:
        _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        result = _invoke(
            "sync", "delete", "--home", str(configured_home), "--user", USER_ID, "--yes",
        )
        assert result.exit_code == 0
        assert "Cloud data deleted" in result.output
        assert not list((configured_home / "cloud").rglob("*.json"))

    def test_delete_aborts_without_confirmation(self, configured_home: Path) -> None:
        _invoke("sync", "now", "--home", str(configured_home), "--user", USER_ID)
        result = _invoke(
            "sync", "delete", "--home", str(configured_home), "--user", USER_ID,
            input="n\n",
        )
        assert result.exit_code == 1
        assert list((configured_home / "cloud").rglob("*.json"))


class TestDataCommands:

    def test_export_import(self, tmp_home: Path, tmp_path: Path) -> None:
        LocalState(tmp_home).save_category(DataCategory.MEMORIES, [{"id": "m1"}])
        out_dir = tmp_path / "exports"

        result = _invoke("data", "export", "--home", str(tmp_home), "--out", str(out_dir))
        assert result.exit_code == 0
        backup = next(out_dir.glob("indigoAI_backup_*.json"))

        other_home = tmp_path / "other"
        result = _invoke("data", "import", "--home", str(other_home), str(backup))
        assert result.exit_code == 0
        assert "memories" in result.output
        assert LocalState(other_home).load_category(DataCategory.MEMORIES) == [{"id": "m1"}]

    def test_import_invalid(self, tmp_home: Path, tmp_path: Path) -> None:
        bad = tmp_path / "bad.json"
        bad.write_text(json.dumps([1, 2, 3]))
        result = _invoke("data", "import", "--home", str(tmp_home), str(bad))
        assert result.exit_code == 1
        assert "Not a valid backup" in result.output

    def test_clear_chat(self, tmp_home: Path) -> None:
        LocalState(tmp_home).save_category(DataCategory.MESSAGES, [{"id": "1"}])
        result = _invoke("data", "clear-chat", "--home", str(tmp_home))
        assert result.exit_code == 0
        assert LocalState(tmp_home).load_category(DataCategory.MESSAGES) == []

    def test_reset(self, tmp_home: Path) -> None:
        LocalState(tmp_home).save_category(DataCategory.JOURNAL, [{"id": "j"}])
        result = _invoke("data", "reset", "--home", str(tmp_home), "--yes")
        assert result.exit_code == 0
        assert LocalState(tmp_home).load_category(DataCategory.JOURNAL) == []


def test_version() -> None:
    result = _invoke("--version")
    assert result.exit_code == 0
    assert "0.1.0" in result.output
