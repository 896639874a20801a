"""
Sync session -- the caller-side guard around the sync engine.

The engine does not stop two syncs from interleaving. The session does:
it owns the status shown to the user (idle, syncing, success, error),
refuses to start a sync while another is running, and only runs when
sync is enabled with a user and a passphrase.

AutoSyncer runs the session's sync on a timer in a background thread.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional

from .crypto import validate_passphrase
from .engine import ProgressCallback, SyncEngine
from .local import LocalState
from .models import SYNC_CATEGORIES, SyncResult, SyncState, SyncStatus

logger = logging.getLogger("indigo.sync.session")


class SyncInProgressError(Exception):
    """Raised when a sync is requested while another is running."""


class SyncNotConfiguredError(Exception):
    """Raised when sync is disabled or lacks a user or passphrase."""


def update_sync_state(local: LocalState, **changes) -> SyncState:
    """Apply field changes to the stored sync state and persist it."""
    state = local.load_sync_state().model_copy(update=changes)
    state = SyncState.model_validate(state.model_dump())
    local.save_sync_state(state)
    return state


def enable_sync(local: LocalState, passphrase: str, auto_sync: bool = False) -> SyncState:
    """Turn sync on and store the passphrase on this device.

    Needs no remote backend, so it works before one is configured.

    Raises:
        ValueError: If the passphrase is empty.
    """
    if not passphrase:
        raise ValueError("An encryption passphrase is required to enable sync")
    return update_sync_state(
        local, enabled=True, encryption_passphrase=passphrase, auto_sync=auto_sync,
    )


class SyncSession:
    """Status tracking and mutual exclusion for one user's syncs.

    Args:
        engine: The sync engine to drive.
        user_id: Authenticated user identity, or None when signed out.
        on_progress: Optional listener for progress messages.
    """

    def __init__(
        self,
        engine: SyncEngine,
        user_id: Optional[str] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> None:
        self.engine = engine
        self.user_id = user_id
        self.status = SyncStatus.IDLE
        self.progress = ""
        self.last_result: Optional[SyncResult] = None
        self._on_progress = on_progress
        self._lock = threading.Lock()
        self._cancel = threading.Event()
        self._active_cancel: Optional[threading.Event] = None

    # -- sync configuration state ------------------------------------------

    @property
    def state(self) -> SyncState:
        """The persisted sync configuration state."""
        return self.engine.local.load_sync_state()

    def update_state(self, **changes) -> SyncState:
        """Apply field changes to the sync state and persist it."""
        return update_sync_state(self.engine.local, **changes)

    def enable(self, passphrase: str, auto_sync: bool = False) -> SyncState:
        """Turn sync on. See :func:`enable_sync`."""
        return enable_sync(self.engine.local, passphrase, auto_sync)

    def disable(self) -> SyncState:
        """Turn sync off. The passphrase stays stored on this device."""
        return update_sync_state(self.engine.local, enabled=False)

    def sign_out(self) -> SyncState:
        """Forget the user and disable sync."""
        self.user_id = None
        return self.disable()

    @property
    def is_ready(self) -> bool:
        """True when a sync could start right now."""
        state = self.state
        return bool(state.enabled and self.user_id and state.encryption_passphrase)

    @property
    def is_running(self) -> bool:
        return self._lock.locked()

    # -- running -----------------------------------------------------------

    def _progress(self, message: str) -> None:
        self.progress = message
        if self._on_progress is not None:
            self._on_progress(message)

    def _run(
        self,
        operation: Callable[..., SyncResult],
        passphrase: Optional[str],
        label: str,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        state = self.state
        passphrase = passphrase or state.encryption_passphrase
        if not state.enabled:
            raise SyncNotConfiguredError("Cloud sync is disabled")
        if not self.user_id:
            raise SyncNotConfiguredError("Sign in to sync")
        if not passphrase:
            raise SyncNotConfiguredError("Set an encryption passphrase to sync")

        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError("A sync is already running")

        if cancel is None:
            cancel = self._cancel
            cancel.clear()
        self._active_cancel = cancel

        try:
            self.status = SyncStatus.SYNCING
            self._progress(f"Starting {label}...")
            try:
                result = operation(
                    self.user_id,
                    passphrase,
                    on_progress=self._progress,
                    cancel=cancel,
                )
            except Exception as exc:
                logger.error("%s failed: %s", label.capitalize(), exc)
                result = SyncResult(
                    status=SyncStatus.ERROR,
                    message=str(exc) or f"{label.capitalize()} failed",
                )
            self.status = result.status
            self.progress = result.message
            self.last_result = result
            return result
        finally:
            self._active_cancel = None
            self._lock.release()

    def sync(
        self,
        passphrase: Optional[str] = None,
        cancel: Optional[threading.Event] = None,
    ) -> SyncResult:
        """Run a bidirectional sync.

        Args:
            passphrase: Overrides the stored passphrase.
            cancel: Event the caller owns for stopping this run. Defaults
                to the session's own, which :meth:`cancel` sets.

        Raises:
            SyncNotConfiguredError: Sync disabled, signed out, or no passphrase.
            SyncInProgressError: Another sync is running on this session.
        """
        return self._run(self.engine.perform_sync, passphrase, "sync", cancel)

    def push(self, passphrase: Optional[str] = None) -> SyncResult:
        """Force-push every category. Same preconditions as :meth:`sync`."""
        return self._run(self.engine.force_push, passphrase, "force push")

    def pull(self, passphrase: Optional[str] = None) -> SyncResult:
        """Force-pull every category. Same preconditions as :meth:`sync`."""
        return self._run(self.engine.force_pull, passphrase, "force pull")

    def cancel(self) -> None:
        """Ask the running sync to stop before its next category."""
        (self._active_cancel or self._cancel).set()

    def delete_cloud_data(self) -> None:
        """Delete everything this user stored remotely.

        Raises:
            SyncNotConfiguredError: When signed out.
            SyncInProgressError: While a sync is running.
            RemoteStoreError: If the remote delete fails.
        """
        if not self.user_id:
            raise SyncNotConfiguredError("Sign in to delete cloud data")
        if not self._lock.acquire(blocking=False):
            raise SyncInProgressError("A sync is already running")
        try:
            self.engine.delete_cloud_data(self.user_id)
        finally:
            self._lock.release()

    def verify_passphrase(self, passphrase: Optional[str] = None) -> bool:
        """Check a passphrase against the first remote record found.

        Returns True when nothing has been uploaded yet, since any
        passphrase is then acceptable.

        Raises:
            SyncNotConfiguredError: When signed out.
            RemoteStoreError: If the remote lookup fails.
        """
        if not self.user_id:
            raise SyncNotConfiguredError("Sign in to verify a passphrase")
        passphrase = passphrase or self.state.encryption_passphrase

        for category in SYNC_CATEGORIES:
            record = self.engine.remote.fetch_record(self.user_id, category)
            if record is not None:
                return validate_passphrase(record.payload(), passphrase)
        return True


class AutoSyncer:
    """Runs ``session.sync()`` every ``interval`` seconds in a thread.

    Ticks where the session is not ready, or already syncing, are skipped.
    Each run uses the syncer's own cancel event, so :meth:`stop` only
    cancels syncs the syncer started.

    Args:
        session: Session to drive.
        interval: Seconds between sync attempts.
    """

    def __init__(self, session: SyncSession, interval: float = 300.0) -> None:
        self.session = session
        self.interval = interval
        self._stop_event = threading.Event()
        self._cancel = threading.Event()
        self._thread: Optional[threading.Thread] = None

    def start(self) -> None:
        """Start the background loop. No-op if already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._loop, name="indigo-autosync", daemon=True,
        )
        self._thread.start()
        logger.info("Auto-sync started (every %ss)", self.interval)

    def stop(self) -> None:
        """Stop the loop and cancel any sync it is running."""
        self._stop_event.set()
        self._cancel.set()
        if self._thread is not None:
            self._thread.join(timeout=5)
        logger.info("Auto-sync stopped")

    def tick(self) -> Optional[SyncResult]:
        """Attempt one sync now. Returns None when it was skipped."""
        state = self.session.state
        if not (state.auto_sync and self.session.is_ready):
            return None
        # cleared before the stop check: a concurrent stop() always leaves it set
        self._cancel.clear()
        if self._stop_event.is_set():
            return None
        try:
            return self.session.sync(cancel=self._cancel)
        except SyncInProgressError:
            logger.debug("Auto-sync skipped: sync already running")
        except SyncNotConfiguredError as exc:
            logger.warning("Auto-sync skipped: %s", exc)
        return None

    def _loop(self) -> None:
        while not self._stop_event.is_set():
            self._stop_event.wait(timeout=self.interval)
            if self._stop_event.is_set():
                break
            self.tick()
