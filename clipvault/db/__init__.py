"""
Database module - Record stores and their persistence media.

Security Considerations:
- Backends only ever see ciphertext in the ``content`` field
- The seed row is itself encrypted
- No plaintext secrets are written to disk
"""

from clipvault.db.base import ClipletStore, NotInitializedError, StorageError
from clipvault.db.database import ClipletDatabase
from clipvault.db.document import HostDocument
from clipvault.db.json_store import JsonClipletStore
from clipvault.db.meta_store import MetaStore
from clipvault.db.models import Cliplet
from clipvault.db.sqlite_store import SqliteClipletStore

__all__ = [
    "Cliplet",
    "ClipletDatabase",
    "ClipletStore",
    "HostDocument",
    "JsonClipletStore",
    "MetaStore",
    "NotInitializedError",
    "SqliteClipletStore",
    "StorageError",
]
