"""
Encrypted cloud sync -- every category sealed on-device before upload.

AES-256-GCM with a passphrase-derived key. The passphrase never leaves
the device; the remote table only ever holds ciphertext, a content hash
and a timestamp. Conflicts resolve last-write-wins per category.
"""

from .engine import SyncEngine
from .local import LocalState
from .remote import RemoteStore
from .session import AutoSyncer, SyncSession

__all__ = ["AutoSyncer", "LocalState", "RemoteStore", "SyncEngine", "SyncSession"]
