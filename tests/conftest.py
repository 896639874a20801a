"""Shared test fixtures for indigo."""

from __future__ import annotations

from pathlib import Path

import pytest

from indigo.sync import crypto
from indigo.sync.backends import LocalTable
from indigo.sync.engine import SyncEngine
from indigo.sync.local import LocalState
from indigo.sync.remote import RemoteStore



@pytest.fixture
def fast_kdf(monkeypatch: pytest.MonkeyPatch) -> None:
    """Cut PBKDF2 iterations so multi-category sync tests stay quick."""
    monkeypatch.setattr(crypto, "PBKDF2_ITERATIONS", 1_000)


@pytest.fixture
def tmp_home(tmp_path: Path) -> Path:
    """Provide a temporary Indigo home directory."""
    home = tmp_path / ".indigo"
    home.mkdir()
    return home


@pytest.fixture
def cloud_dir(tmp_path: Path) -> Path:
    """Directory standing in for the shared cloud table."""
    return tmp_path / "cloud"


@pytest.fixture
def local(tmp_home: Path) -> LocalState:
    return LocalState(tmp_home)


@pytest.fixture
def remote(cloud_dir: Path) -> RemoteStore:
    return RemoteStore(LocalTable(cloud_dir))


@pytest.fixture
def engine(local: LocalState, remote: RemoteStore) -> SyncEngine:
    return SyncEngine(local, remote)


@pytest.fixture
def other_device(tmp_path: Path, cloud_dir: Path) -> SyncEngine:
    """A second device sharing the same cloud table."""
    home = tmp_path / "device-b"
    home.mkdir()
    return SyncEngine(LocalState(home), RemoteStore(LocalTable(cloud_dir)))
