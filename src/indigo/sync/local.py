"""
Local state -- the device-side key/value store and typed category access.

Every piece of app state is one string value under one key, stored as a
file in ``~/.indigo/local/``. Categories are JSON documents; sync
timestamps are integer epoch milliseconds; the sync configuration state
is a JSON blob of its own.

Storage layout:
    ~/.indigo/local/
    ├── indigo_messages.json
    ├── indigo_memories.json
    ├── indigo_journal.json
    ├── indigo_ai_profile.json
    ├── indigo_user_profile.json
    ├── indigo_settings.json
    ├── indigo_sync_ts_<category>.json
    └── indigo_sync_state.json
"""

from __future__ import annotations

import copy
import json
import logging
import re
from pathlib import Path
from typing import Any, Optional

from pydantic import ValidationError

from ..models import (
    DEFAULT_AI_PROFILE,
    DEFAULT_SETTINGS,
    DEFAULT_USER_PROFILE,
    SECRET_SETTINGS_FIELDS,
)
from .models import SYNC_CATEGORIES, DataCategory, SyncState

logger = logging.getLogger("indigo.sync.local")

KEY_PREFIX = "indigo_"
SYNC_STATE_KEY = "indigo_sync_state"
IMAGE_PLACEHOLDER = "[synced-image-placeholder]"

_KEY_RE = re.compile(r"^[A-Za-z0-9_.-]+$")

_DEFAULTS: dict[DataCategory, Any] = {
    DataCategory.MESSAGES: [],
    DataCategory.MEMORIES: [],
    DataCategory.JOURNAL: [],
    DataCategory.AI_PROFILE: DEFAULT_AI_PROFILE,
    DataCategory.USER_PROFILE: DEFAULT_USER_PROFILE,
    DataCategory.SETTINGS: DEFAULT_SETTINGS,
}


def category_key(category: DataCategory) -> str:
    """Storage key holding a category's content."""
    return f"{KEY_PREFIX}{category.value}"


def timestamp_key(category: DataCategory) -> str:
    """Storage key holding a category's last-sync timestamp."""
    return f"{KEY_PREFIX}sync_ts_{category.value}"


def default_for(category: DataCategory) -> Any:
    """A fresh copy of a category's default content."""
    return copy.deepcopy(_DEFAULTS[category])


class KeyValueStore:
    """String key/value storage backed by one file per key.

    Args:
        root: Directory holding the value files.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()

    def _path(self, key: str) -> Path:
        if not _KEY_RE.match(key):
            raise ValueError(f"Invalid storage key: {key!r}")
        return self.root / f"{key}.json"

    def get_item(self, key: str) -> Optional[str]:
        """Return the stored string, or None when absent."""
        path = self._path(key)
        if not path.exists():
            return None
        return path.read_text(encoding="utf-8")

    def set_item(self, key: str, value: str) -> None:
        """Store a string, replacing any previous value.

        Raises:
            OSError: When the value cannot be written.
        """
        self.root.mkdir(parents=True, exist_ok=True)
        self._path(key).write_text(value, encoding="utf-8")

    def remove_item(self, key: str) -> None:
        """Delete a key. Missing keys are ignored."""
        self._path(key).unlink(missing_ok=True)


class LocalState:
    """Typed access to the locally stored categories and sync bookkeeping.

    Args:
        home: Indigo home directory (~/.indigo).
        store: Optional explicit key/value store (defaults to ``home/local``).
    """

    def __init__(self, home: Path, store: Optional[KeyValueStore] = None) -> None:
        self.home = home.expanduser()
        self.store = store or KeyValueStore(self.home / "local")

    # -- JSON helpers -------------------------------------------------------

    def _load_json(self, key: str, fallback: Any) -> Any:
        try:
            raw = self.store.get_item(key)
            if raw:
                return json.loads(raw)
        except (OSError, json.JSONDecodeError) as exc:
            logger.warning("Failed to load %s: %s", key, exc)
        return fallback

    def _save_json(self, key: str, data: Any) -> bool:
        try:
            self.store.set_item(key, json.dumps(data))
            return True
        except (OSError, TypeError, ValueError) as exc:
            logger.warning("Failed to save %s: %s", key, exc)
            return False

    # -- categories ---------------------------------------------------------

    def load_category(self, category: DataCategory) -> Any:
        """Load a category's content, falling back to its default.

        Args:
            category: Which category to read.

        Returns:
            The parsed JSON value (list or dict).
        """
        value = self._load_json(category_key(category), None)
        if value is None or not isinstance(value, type(_DEFAULTS[category])):
            return default_for(category)
        return value

    def save_category(self, category: DataCategory, value: Any) -> bool:
        """Overwrite a category's content, best-effort.

        Failures are logged and reported through the return value; they
        never raise.

        Returns:
            True if the value was persisted.
        """
        return self._save_json(category_key(category), value)

    def remove_category(self, category: DataCategory) -> None:
        """Delete a category so the next load yields its default."""
        try:
            self.store.remove_item(category_key(category))
        except OSError as exc:
            logger.warning("Failed to remove %s: %s", category.value, exc)

    def serialize_for_sync(self, category: DataCategory) -> str:
        """Produce the plaintext that represents a category remotely.

        Messages lose attached file contents and inline image data.
        Settings lose every API key.
        """
        value = self.load_category(category)

        if category == DataCategory.MESSAGES:
            value = [_strip_message(m) for m in value]
        elif category == DataCategory.SETTINGS:
            value = dict(value)
            for field in SECRET_SETTINGS_FIELDS:
                value[field] = ""

        return json.dumps(value)

    def apply_remote(self, category: DataCategory, plaintext: str) -> None:
        """Apply a pulled plaintext to local storage.

        Settings keep the API keys already present on this device.

        Raises:
            ValueError: If the plaintext is not valid JSON.
        """
        parsed = json.loads(plaintext)

        if category == DataCategory.SETTINGS:
            local = self.load_category(DataCategory.SETTINGS)
            parsed = dict(parsed)
            for field in SECRET_SETTINGS_FIELDS:
                parsed[field] = local.get(field, "")

        if not self.save_category(category, parsed):
            logger.error("Pulled %s could not be written locally", category.value)

    # -- sync timestamps ----------------------------------------------------

    def get_sync_timestamp(self, category: DataCategory) -> int:
        """Epoch millis of the last confirmed sync, 0 if never synced."""
        try:
            raw = self.store.get_item(timestamp_key(category))
            return int(raw) if raw else 0
        except (OSError, ValueError):
            return 0

    def set_sync_timestamp(self, category: DataCategory, ts: int) -> None:
        """Record when a category was last pushed or pulled."""
        try:
            self.store.set_item(timestamp_key(category), str(int(ts)))
        except OSError as exc:
            logger.warning("Failed to save sync timestamp for %s: %s", category.value, exc)

    def clear_sync_timestamps(self) -> None:
        """Forget every category's sync timestamp."""
        for category in SYNC_CATEGORIES:
            try:
                self.store.remove_item(timestamp_key(category))
            except OSError as exc:
                logger.warning("Failed to clear sync timestamp for %s: %s", category.value, exc)

    # -- sync configuration state --------------------------------------------

    def load_sync_state(self) -> SyncState:
        """Load the sync configuration state, merged over defaults."""
        data = self._load_json(SYNC_STATE_KEY, {})
        if not isinstance(data, dict):
            return SyncState()
        try:
            return SyncState(**{**SyncState().model_dump(), **data})
        except ValidationError as exc:
            logger.warning("Failed to load sync state: %s", exc)
            return SyncState()

    def save_sync_state(self, state: SyncState) -> None:
        """Persist the sync configuration state on this device."""
        self._save_json(SYNC_STATE_KEY, state.model_dump(mode="json"))


def _strip_message(message: Any) -> Any:
    """Drop heavy per-message fields before a message leaves the device."""
    if not isinstance(message, dict):
        return message
    stripped = {
        k: v for k, v in message.items() if k not in ("imageUrl", "fileContent")
    }
    if message.get("imageUrl"):
        stripped["imageUrl"] = IMAGE_PLACEHOLDER
    return stripped
