"""Local data export, import and reset.

A backup is one JSON document holding every category, so it can be
moved between devices by hand without any cloud account:

    {
      "version": 1,
      "exportedAt": "2026-01-01T12:00:00+00:00",
      "messages": [...],
      "memories": [...],
      "journal": [...],
      "aiProfile": {...},
      "userProfile": {...},
      "settings": {...}
    }

Unlike cloud sync, an export is plaintext and includes API keys.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .sync.local import LocalState
from .sync.models import SYNC_CATEGORIES, DataCategory

logger = logging.getLogger("indigo.backup")

BACKUP_VERSION = 1

EXPORT_KEYS: dict[DataCategory, str] = {
    DataCategory.MESSAGES: "messages",
    DataCategory.MEMORIES: "memories",
    DataCategory.JOURNAL: "journal",
    DataCategory.AI_PROFILE: "aiProfile",
    DataCategory.USER_PROFILE: "userProfile",
    DataCategory.SETTINGS: "settings",
}


def export_all_data(local: LocalState) -> str:
    """Serialize every category into one backup document.

    Args:
        local: Local state to read.

    Returns:
        Pretty-printed JSON text.
    """
    data: dict = {
        "version": BACKUP_VERSION,
        "exportedAt": datetime.now(timezone.utc).isoformat(),
    }
    for category in SYNC_CATEGORIES:
        data[EXPORT_KEYS[category]] = local.load_category(category)
    return json.dumps(data, indent=2)


def import_all_data(local: LocalState, json_str: str) -> list[DataCategory]:
    """Write back every category present in a backup document.

    Categories missing from the document, or set to null, are left
    untouched. Empty lists and objects are written back as they are.

    Args:
        local: Local state to write.
        json_str: Backup document text.

    Returns:
        The categories that were imported.

    Raises:
        ValueError: If the text is not a JSON object.
    """
    data = json.loads(json_str)
    if not isinstance(data, dict):
        raise ValueError("Backup must be a JSON object")

    imported: list[DataCategory] = []
    for category in SYNC_CATEGORIES:
        value = data.get(EXPORT_KEYS[category])
        if value is not None:
            local.save_category(category, value)
            imported.append(category)

    logger.info("Imported %d categories from backup", len(imported))
    return imported


def clear_chat_history(local: LocalState) -> None:
    """Empty the message history only."""
    local.save_category(DataCategory.MESSAGES, [])


def reset_all_data(local: LocalState) -> None:
    """Remove every category so each falls back to its default."""
    for category in SYNC_CATEGORIES:
        local.remove_category(category)
    logger.info("All local data reset")


def generate_backup_filename(now: Optional[datetime] = None) -> str:
    """Backup file name like ``indigoAI_backup_2026-01-31_08-15-00.json``."""
    now = now or datetime.now(timezone.utc)
    return f"indigoAI_backup_{now.strftime('%Y-%m-%d_%H-%M-%S')}.json"


def write_backup(local: LocalState, out_dir: Path) -> Path:
    """Export to a timestamped file in ``out_dir``. Returns its path."""
    out_dir = out_dir.expanduser()
    out_dir.mkdir(parents=True, exist_ok=True)
    path = out_dir / generate_backup_filename()
    path.write_text(export_all_data(local), encoding="utf-8")
    return path
