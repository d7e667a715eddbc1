"""
clipvault - Encrypted Cliplet Storage
=====================================

Stores short text snippets ("cliplets") encrypted at rest, de-duplicated by
content, with count and age based eviction, behind two interchangeable
backends (indexed SQLite, flat JSON document).

Security Notice:
- Content is encrypted with AES-256-GCM before it reaches a backend
- No secrets or plaintext are logged
- Keys are derived from the host's installation identifier and held in memory only
"""

from clipvault.core.config import ClipvaultConfig
from clipvault.core.crypto.aes_gcm import DecryptionError
from clipvault.core.logging import configure_logging, get_secure_logger
from clipvault.db.base import NotInitializedError, StorageError
from clipvault.db.models import Cliplet
from clipvault.service import ClipletService, MigrationError, init

__version__ = "0.1.0"

__all__ = [
    "Cliplet",
    "ClipletService",
    "ClipvaultConfig",
    "DecryptionError",
    "MigrationError",
    "NotInitializedError",
    "StorageError",
    "configure_logging",
    "get_secure_logger",
    "init",
    "__version__",
]
