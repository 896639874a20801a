"""
Remote store client -- encrypted upsert, fetch and delete of sync records.

Sits between the sync engine and a RemoteTable. Plaintext comes in,
ciphertext goes out; nothing the table sees can be read without the
user's passphrase.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from .backends import RemoteStoreError, RemoteTable
from .crypto import decrypt, encrypt, hash_data
from .models import DataCategory, RemoteSnapshot, SyncRecord, epoch_millis

logger = logging.getLogger("indigo.sync.remote")


class RemoteStore:
    """One configured connection to the remote table, reused across calls.

    Args:
        table: Backend holding the records.
        strict_lookup: When True, :meth:`get_remote_timestamp` raises on
            lookup failure instead of reporting 0.
    """

    def __init__(self, table: RemoteTable, strict_lookup: bool = False) -> None:
        self.table = table
        self.strict_lookup = strict_lookup

    def upload(
        self,
        user_id: str,
        category: DataCategory,
        plaintext: str,
        passphrase: str,
    ) -> int:
        """Encrypt and upsert one category.

        Args:
            user_id: Authenticated user identity.
            category: Which category this plaintext belongs to.
            plaintext: Serialized category content.
            passphrase: Sync passphrase.

        Returns:
            The ``last_modified`` written, in epoch millis. Callers store
            it as the category's local sync timestamp.

        Raises:
            RemoteStoreError: If the backend rejects the write.
        """
        payload = encrypt(plaintext, passphrase)
        now = epoch_millis()

        record = SyncRecord(
            user_id=user_id,
            data_type=category,
            encrypted_data=payload.ciphertext,
            iv=payload.iv,
            salt=payload.salt,
            data_hash=hash_data(plaintext),
            last_modified=now,
            updated_at=datetime.now(timezone.utc).isoformat(),
        )

        try:
            self.table.upsert(record)
        except RemoteStoreError as exc:
            raise RemoteStoreError(f"Upload {category.value} failed: {exc}") from exc

        logger.info("Uploaded %s (%d bytes plaintext)", category.value, len(plaintext))
        return now

    def download(
        self,
        user_id: str,
        category: DataCategory,
        passphrase: str,
    ) -> Optional[RemoteSnapshot]:
        """Fetch and decrypt one category.

        Returns:
            RemoteSnapshot, or None when no record exists yet.

        Raises:
            RemoteStoreError: If the backend lookup fails.
            DecryptionError: Wrong passphrase or tampered record.
        """
        try:
            record = self.table.fetch(user_id, category)
        except RemoteStoreError as exc:
            raise RemoteStoreError(f"Download {category.value} failed: {exc}") from exc

        if record is None:
            return None

        plaintext = decrypt(record.payload(), passphrase)
        return RemoteSnapshot(plaintext=plaintext, last_modified=record.last_modified)

    def get_remote_timestamp(self, user_id: str, category: DataCategory) -> int:
        """Return a record's ``last_modified`` without decrypting it.

        0 means "no remote data". A failed lookup also yields 0 unless
        ``strict_lookup`` is set.

        Raises:
            RemoteStoreError: Only in strict mode, when the lookup fails.
        """
        try:
            ts = self.table.fetch_last_modified(user_id, category)
        except RemoteStoreError as exc:
            if self.strict_lookup:
                raise
            logger.warning(
                "Timestamp lookup for %s failed, treating as absent: %s",
                category.value, exc,
            )
            return 0
        return ts or 0

    def fetch_record(self, user_id: str, category: DataCategory) -> Optional[SyncRecord]:
        """Raw encrypted record, for passphrase checks."""
        return self.table.fetch(user_id, category)

    def delete_all(self, user_id: str) -> None:
        """Remove every record the user owns, across all categories.

        Raises:
            RemoteStoreError: If the backend delete fails.
        """
        try:
            self.table.delete_user(user_id)
        except RemoteStoreError as exc:
            raise RemoteStoreError(f"Delete cloud data failed: {exc}") from exc
        logger.info("Deleted all cloud records via %s", self.table.name)
