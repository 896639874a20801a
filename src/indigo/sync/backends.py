"""
Remote tables -- where the encrypted records live.

Each backend stores exactly one SyncRecord per (user_id, data_type) and
knows how to upsert, fetch and delete them. Backends only ever see
ciphertext; encryption happens in the remote store client above them.

Supabase: PostgREST over HTTPS, row-level security keyed by the user.
Local: one JSON file per record. For USB drives, NAS shares and tests.
"""

from __future__ import annotations

import hashlib
import json
import logging
import os
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Optional

import requests
from pydantic import ValidationError

from .models import BackendType, DataCategory, SyncConfig, SyncRecord

logger = logging.getLogger("indigo.sync.backends")

RECORD_COLUMNS = (
    "user_id,data_type,encrypted_data,iv,salt,data_hash,last_modified,updated_at"
)


class RemoteStoreError(Exception):
    """Raised when the remote store rejects or fails a request."""


class RemoteTable(ABC):
    """Abstract remote row store keyed by (user_id, data_type)."""

    @abstractmethod
    def upsert(self, record: SyncRecord) -> None:
        """Insert or replace the record for its (user_id, data_type) key.

        Raises:
            RemoteStoreError: On any backend failure.
        """

    @abstractmethod
    def fetch(self, user_id: str, data_type: DataCategory) -> Optional[SyncRecord]:
        """Return the record for the key, or None if there is none.

        Raises:
            RemoteStoreError: On any backend failure.
        """

    @abstractmethod
    def fetch_last_modified(
        self, user_id: str, data_type: DataCategory,
    ) -> Optional[int]:
        """Return only the record's ``last_modified``, or None if absent.

        Raises:
            RemoteStoreError: On any backend failure.
        """

    @abstractmethod
    def delete_user(self, user_id: str) -> None:
        """Delete every record belonging to a user.

        Raises:
            RemoteStoreError: On any backend failure.
        """

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name."""


class SupabaseTable(RemoteTable):
    """Supabase (PostgREST) table with a unique (user_id, data_type) key.

    Args:
        url: Project URL, e.g. ``https://xyz.supabase.co``.
        api_key: Project anon key.
        access_token: The signed-in user's JWT. Row-level security
            scopes every request to that user.
        table: Table name.
        timeout: Per-request timeout in seconds.
        session: Optional pre-configured requests session.
    """

    def __init__(
        self,
        url: str,
        api_key: str,
        access_token: Optional[str] = None,
        table: str = "sync_data",
        timeout: float = 30.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        self._endpoint = f"{url.rstrip('/')}/rest/v1/{table}"
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update({
            "apikey": api_key,
            "Authorization": f"Bearer {access_token or api_key}",
            "Content-Type": "application/json",
        })

    @property
    def name(self) -> str:
        return "supabase"

    def _request(
        self,
        method: str,
        params: dict[str, str],
        data: Optional[Any] = None,
        headers: Optional[dict[str, str]] = None,
    ) -> Any:
        """Make one authenticated PostgREST call.

        Returns:
            Parsed JSON body, or None for empty responses.

        Raises:
            RemoteStoreError: On network failure or HTTP status >= 400.
        """
        logger.debug("Supabase %s %s", method, self._endpoint)
        try:
            resp = self._session.request(
                method,
                self._endpoint,
                params=params,
                json=data,
                headers=headers,
                timeout=self._timeout,
            )
        except requests.RequestException as exc:
            raise RemoteStoreError(f"{method} {self._endpoint}: {exc}") from exc

        if resp.status_code >= 400:
            raise RemoteStoreError(
                f"{method} {self._endpoint}: {resp.status_code} {resp.text}"
            )

        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            raise RemoteStoreError(f"Invalid JSON from {self._endpoint}: {exc}") from exc

    def _select(self, user_id: str, data_type: DataCategory, columns: str) -> Optional[dict]:
        rows = self._request("GET", {
            "select": columns,
            "user_id": f"eq.{user_id}",
            "data_type": f"eq.{data_type.value}",
            "limit": "1",
        })
        if not rows:
            return None
        return rows[0]

    def upsert(self, record: SyncRecord) -> None:
        self._request(
            "POST",
            {"on_conflict": "user_id,data_type"},
            data=record.model_dump(mode="json"),
            headers={"Prefer": "resolution=merge-duplicates,return=minimal"},
        )

    def fetch(self, user_id: str, data_type: DataCategory) -> Optional[SyncRecord]:
        row = self._select(user_id, data_type, RECORD_COLUMNS)
        if row is None:
            return None
        try:
            return SyncRecord(**row)
        except ValidationError as exc:
            raise RemoteStoreError(f"Malformed {data_type.value} record: {exc}") from exc

    def fetch_last_modified(
        self, user_id: str, data_type: DataCategory,
    ) -> Optional[int]:
        row = self._select(user_id, data_type, "last_modified")
        if row is None:
            return None
        return int(row.get("last_modified") or 0)

    def delete_user(self, user_id: str) -> None:
        self._request(
            "DELETE",
            {"user_id": f"eq.{user_id}"},
            headers={"Prefer": "return=minimal"},
        )


class LocalTable(RemoteTable):
    """Filesystem table: ``<root>/<user digest>/<data_type>.json``.

    User ids are hashed into directory names so arbitrary identity
    strings cannot escape the root.

    Args:
        root: Directory holding the records.
    """

    def __init__(self, root: Path) -> None:
        self.root = root.expanduser()

    @property
    def name(self) -> str:
        return "local"

    def _user_dir(self, user_id: str) -> Path:
        digest = hashlib.sha256(user_id.encode("utf-8")).hexdigest()[:32]
        return self.root / digest

    def _record_path(self, user_id: str, data_type: DataCategory) -> Path:
        return self._user_dir(user_id) / f"{data_type.value}.json"

    def upsert(self, record: SyncRecord) -> None:
        path = self._record_path(record.user_id, record.data_type)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(record.model_dump_json(indent=2), encoding="utf-8")
        except OSError as exc:
            raise RemoteStoreError(f"Cannot write {path}: {exc}") from exc

    def fetch(self, user_id: str, data_type: DataCategory) -> Optional[SyncRecord]:
        path = self._record_path(user_id, data_type)
        if not path.exists():
            return None
        try:
            return SyncRecord(**json.loads(path.read_text(encoding="utf-8")))
        except (OSError, json.JSONDecodeError, ValidationError) as exc:
            raise RemoteStoreError(f"Cannot read {path}: {exc}") from exc

    def fetch_last_modified(
        self, user_id: str, data_type: DataCategory,
    ) -> Optional[int]:
        record = self.fetch(user_id, data_type)
        return record.last_modified if record else None

    def delete_user(self, user_id: str) -> None:
        user_dir = self._user_dir(user_id)
        if not user_dir.exists():
            return
        try:
            for path in user_dir.glob("*.json"):
                path.unlink()
            user_dir.rmdir()
        except OSError as exc:
            raise RemoteStoreError(f"Cannot delete {user_dir}: {exc}") from exc


def create_backend(config: SyncConfig, home: Path) -> RemoteTable:
    """Factory: build the remote table described by a sync config.

    Args:
        config: Sync configuration.
        home: Indigo home directory (for the default local path).

    Returns:
        A ready RemoteTable.

    Raises:
        RemoteStoreError: If the chosen backend is not fully configured.
    """
    if config.backend == BackendType.LOCAL:
        return LocalTable(config.local_path or home / "cloud")

    if config.backend == BackendType.SUPABASE:
        api_key = os.environ.get(config.supabase_key_env, "")
        if not config.supabase_url or not api_key:
            raise RemoteStoreError(
                "Supabase not configured. Set supabase_url in config/sync.yaml "
                f"and {config.supabase_key_env} in the environment."
            )
        return SupabaseTable(
            url=config.supabase_url,
            api_key=api_key,
            access_token=os.environ.get(config.access_token_env) or None,
            table=config.table,
            timeout=config.timeout_seconds,
        )

    raise RemoteStoreError(f"Unknown sync backend: {config.backend}")
