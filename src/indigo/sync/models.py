"""
Sync data models -- categories, payloads, records, configuration and state.
"""

from __future__ import annotations

import time
from enum import Enum
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field


def epoch_millis() -> int:
    """Current wall-clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


class DataCategory(str, Enum):
    """One independently synchronized slice of application state."""

    MESSAGES = "messages"
    MEMORIES = "memories"
    JOURNAL = "journal"
    AI_PROFILE = "ai_profile"
    USER_PROFILE = "user_profile"
    SETTINGS = "settings"


# Visit order for every orchestrator operation.
SYNC_CATEGORIES: list[DataCategory] = [
    DataCategory.MESSAGES,
    DataCategory.MEMORIES,
    DataCategory.JOURNAL,
    DataCategory.AI_PROFILE,
    DataCategory.USER_PROFILE,
    DataCategory.SETTINGS,
]


class SyncStatus(str, Enum):
    """Session-level sync status surfaced to the UI.

    CONFLICT is reserved; no operation produces it yet.
    """

    IDLE = "idle"
    SYNCING = "syncing"
    SUCCESS = "success"
    ERROR = "error"
    CONFLICT = "conflict"


class EncryptedPayload(BaseModel):
    """AES-256-GCM output, every field base64-encoded."""

    ciphertext: str
    iv: str
    salt: str


class SyncRecord(BaseModel):
    """One remote row, unique per (user_id, data_type)."""

    user_id: str
    data_type: DataCategory
    encrypted_data: str
    iv: str
    salt: str
    data_hash: str
    last_modified: int
    updated_at: str

    def payload(self) -> EncryptedPayload:
        """The encrypted payload embedded in this record."""
        return EncryptedPayload(
            ciphertext=self.encrypted_data,
            iv=self.iv,
            salt=self.salt,
        )


class RemoteSnapshot(BaseModel):
    """A downloaded and decrypted category."""

    plaintext: str
    last_modified: int


class SyncResult(BaseModel):
    """Aggregate outcome of a sync, force-push or force-pull."""

    status: SyncStatus
    message: str
    conflicts: Optional[list[DataCategory]] = None


class SyncState(BaseModel):
    """Sync configuration state persisted on this device only.

    ``encryption_passphrase`` is never part of anything sent remotely.
    """

    enabled: bool = False
    last_sync_at: int = 0
    encryption_passphrase: str = ""
    auto_sync: bool = False
    sync_images: bool = False


class BackendType(str, Enum):
    """Supported remote table implementations."""

    SUPABASE = "supabase"
    LOCAL = "local"


class SyncConfig(BaseModel):
    """Remote store configuration, loaded from ``config/sync.yaml``."""

    backend: BackendType = BackendType.SUPABASE
    supabase_url: Optional[str] = None
    supabase_key_env: str = "INDIGO_SUPABASE_KEY"
    access_token_env: str = "INDIGO_ACCESS_TOKEN"
    table: str = "sync_data"
    local_path: Optional[Path] = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    strict_remote_lookup: bool = False
    auto_sync_interval_minutes: int = Field(default=5, ge=1)
