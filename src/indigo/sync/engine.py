"""
Sync Engine -- last-write-wins synchronization of every data category.

For each category, in a fixed order, the engine compares the local
sync timestamp with the remote record's ``last_modified`` and decides:

    no remote record        ->  push local (bootstrap)
    local ts >= remote ts   ->  push only if the content hashes differ
    remote ts > local ts    ->  pull remote, adopt its timestamp

``perform_sync`` isolates failures per category and keeps going.
``force_push`` and ``force_pull`` overwrite everything and stop at the
first failure. Categories are processed one at a time, never in parallel.
"""

from __future__ import annotations

import logging
import threading
from pathlib import Path
from typing import Callable, Optional

import yaml
from pydantic import ValidationError

from ..audit import audit_event
from .backends import create_backend
from .crypto import hash_data
from .local import LocalState
from .models import (
    SYNC_CATEGORIES,
    DataCategory,
    SyncConfig,
    SyncResult,
    SyncStatus,
    epoch_millis,
)
from .remote import RemoteStore

logger = logging.getLogger("indigo.sync.engine")

ProgressCallback = Callable[[str], None]

CONFIG_FILE = Path("config") / "sync.yaml"


def load_config(home: Path) -> SyncConfig:
    """Load the sync configuration from ``<home>/config/sync.yaml``.

    Missing or malformed files yield the defaults.
    """
    config_file = home.expanduser() / CONFIG_FILE
    if config_file.exists():
        try:
            data = yaml.safe_load(config_file.read_text(encoding="utf-8")) or {}
            return SyncConfig(**data)
        except (yaml.YAMLError, ValidationError, TypeError) as exc:
            logger.warning("Failed to load sync config: %s", exc)
    return SyncConfig()


def save_config(home: Path, config: SyncConfig) -> Path:
    """Persist the sync configuration. Returns the file written."""
    config_file = home.expanduser() / CONFIG_FILE
    config_file.parent.mkdir(parents=True, exist_ok=True)
    data = config.model_dump(mode="json", exclude_none=True)
    config_file.write_text(
        yaml.dump(data, default_flow_style=False), encoding="utf-8"
    )
    return config_file


class SyncEngine:
    """Drives the sync protocol between local state and the remote store.

    Args:
        local: Local state accessor.
        remote: Remote store client.
        home: Indigo home directory, for the audit trail. Defaults to
            the local state's home.
    """

    def __init__(
        self,
        local: LocalState,
        remote: RemoteStore,
        home: Optional[Path] = None,
    ) -> None:
        self.local = local
        self.remote = remote
        self.home = (home or local.home).expanduser()

    @classmethod
    def from_home(cls, home: Path, config: Optional[SyncConfig] = None) -> "SyncEngine":
        """Build an engine from the configuration stored under ``home``.

        Raises:
            RemoteStoreError: If the configured backend is incomplete.
        """
        home = home.expanduser()
        config = config or load_config(home)
        table = create_backend(config, home)
        remote = RemoteStore(table, strict_lookup=config.strict_remote_lookup)
        return cls(LocalState(home), remote, home)

    # -- helpers -------------------------------------------------------------

    @staticmethod
    def _report(on_progress: Optional[ProgressCallback], message: str) -> None:
        logger.debug("%s", message)
        if on_progress is not None:
            on_progress(message)

    @staticmethod
    def _cancelled(cancel: Optional[threading.Event], category: DataCategory) -> bool:
        if cancel is not None and cancel.is_set():
            logger.info("Cancelled before %s", category.value)
            return True
        return False

    def _touch_last_sync(self) -> None:
        state = self.local.load_sync_state()
        state.last_sync_at = epoch_millis()
        self.local.save_sync_state(state)

    def _push(self, user_id: str, category: DataCategory, plaintext: str, passphrase: str) -> None:
        ts = self.remote.upload(user_id, category, plaintext, passphrase)
        self.local.set_sync_timestamp(category, ts)

    def _pull(self, user_id: str, category: DataCategory, passphrase: str) -> bool:
        snapshot = self.remote.download(user_id, category, passphrase)
        if snapshot is None:
            return False
        self.local.apply_remote(category, snapshot.plaintext)
        self.local.set_sync_timestamp(category, snapshot.last_modified)
        return True

    def _sync_category(
        self,
        user_id: str,
        category: DataCategory,
        passphrase: str,
        on_progress: Optional[ProgressCallback],
    ) -> None:
        """Resolve one category: push, pull or leave it alone."""
        local_ts = self.local.get_sync_timestamp(category)
        remote_ts = self.remote.get_remote_timestamp(user_id, category)
        local_data = self.local.serialize_for_sync(category)

        if remote_ts == 0:
            self._report(on_progress, f"Uploading {category.value}...")
            self._push(user_id, category, local_data, passphrase)
        elif local_ts >= remote_ts:
            remote = self.remote.download(user_id, category, passphrase)
            if remote is not None and hash_data(remote.plaintext) != hash_data(local_data):
                self._report(on_progress, f"Uploading {category.value}...")
                self._push(user_id, category, local_data, passphrase)
            else:
                logger.debug("%s already in sync", category.value)
        else:
            self._report(on_progress, f"Downloading {category.value}...")
            self._pull(user_id, category, passphrase)

    # -- public API ----------------------------------------------------------

    def perform_sync(
        self,
        user_id: str,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Full bidirectional sync, last-write-wins per category.

        A failing category is logged and listed in ``conflicts``; the
        remaining categories still sync and stay committed.

        Args:
            user_id: Authenticated user identity.
            passphrase: Sync passphrase.
            on_progress: Called with a short message at every step.
            cancel: Checked before each category; when set, the sync
                stops and ``last_sync_at`` is left untouched.

        Returns:
            SyncResult with status SUCCESS, or ERROR plus the failed
            categories.
        """
        conflicts: list[DataCategory] = []

        for category in SYNC_CATEGORIES:
            if self._cancelled(cancel, category):
                return SyncResult(
                    status=SyncStatus.ERROR,
                    message=f"Sync cancelled before {category.value}",
                    conflicts=conflicts or None,
                )
            try:
                self._report(on_progress, f"Syncing {category.value}...")
                self._sync_category(user_id, category, passphrase, on_progress)
            except Exception as exc:
                logger.error("Sync error for %s: %s", category.value, exc)
                conflicts.append(category)

        self._touch_last_sync()

        if conflicts:
            names = ", ".join(c.value for c in conflicts)
            audit_event(
                self.home, "SYNC", f"Sync completed with errors in: {names}",
                metadata={"failed": [c.value for c in conflicts]},
            )
            return SyncResult(
                status=SyncStatus.ERROR,
                message=f"Sync completed with errors in: {names}",
                conflicts=conflicts,
            )

        audit_event(self.home, "SYNC", "All categories synced")
        return SyncResult(status=SyncStatus.SUCCESS, message="All data synced successfully")

    def force_push(
        self,
        user_id: str,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Overwrite every remote record with local content.

        Remote state is never read. Stops at the first failing category.
        """
        for category in SYNC_CATEGORIES:
            if self._cancelled(cancel, category):
                return SyncResult(
                    status=SyncStatus.ERROR,
                    message=f"Force push cancelled before {category.value}",
                )
            try:
                self._report(on_progress, f"Force uploading {category.value}...")
                local_data = self.local.serialize_for_sync(category)
                self._push(user_id, category, local_data, passphrase)
            except Exception as exc:
                logger.error("Force push failed at %s: %s", category.value, exc)
                return SyncResult(
                    status=SyncStatus.ERROR,
                    message=f"Force push failed at {category.value}: {exc}",
                    conflicts=[category],
                )

        self._touch_last_sync()
        audit_event(self.home, "SYNC_PUSH", "All local data pushed to cloud")
        return SyncResult(status=SyncStatus.SUCCESS, message="All local data pushed to cloud")

    def force_pull(
        self,
        user_id: str,
        passphrase: str,
        on_progress: Optional[ProgressCallback] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Overwrite local content with every existing remote record.

        Categories without a remote record are left alone. Stops at the
        first failing category.
        """
        pulled = 0
        for category in SYNC_CATEGORIES:
            if self._cancelled(cancel, category):
                return SyncResult(
                    status=SyncStatus.ERROR,
                    message=f"Force pull cancelled before {category.value}",
                )
            try:
                self._report(on_progress, f"Force downloading {category.value}...")
                if self._pull(user_id, category, passphrase):
                    pulled += 1
            except Exception as exc:
                logger.error("Force pull failed at %s: %s", category.value, exc)
                return SyncResult(
                    status=SyncStatus.ERROR,
                    message=f"Force pull failed at {category.value}: {exc}",
                    conflicts=[category],
                )

        self._touch_last_sync()
        audit_event(
            self.home, "SYNC_PULL", f"Pulled {pulled} categories from cloud",
            metadata={"pulled": pulled},
        )
        return SyncResult(status=SyncStatus.SUCCESS, message="All cloud data pulled to device")

    def delete_cloud_data(self, user_id: str) -> None:
        """Delete every remote record for the user and reset local timestamps.

        The next ``perform_sync`` re-uploads every category.

        Raises:
            RemoteStoreError: If the remote delete fails. Local
                timestamps are untouched in that case.
        """
        self.remote.delete_all(user_id)
        self.local.clear_sync_timestamps()
        audit_event(self.home, "SYNC_DELETE", "All cloud data deleted")
