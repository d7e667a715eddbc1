"""
Seed Store
==========

Persists the namespace seed used by the legacy key scheme. The seed is a
random UUID string, stored encrypted under a key derived from the
installation identifier alone (``SEED_SALT``, distinct from the data salts).
"""

from __future__ import annotations

import asyncio
import logging
import uuid

from clipvault.core.crypto.aes_gcm import AesGcmCipher
from clipvault.core.crypto.kdf import derive_seed_key
from clipvault.db.database import ClipletDatabase
from clipvault.security.constants import PBKDF2_ITERATIONS, SEED_META_KEY

_log = logging.getLogger(__name__)


class MetaStore:
    """Key/value secrets of one namespace database."""

    __slots__ = ("_db", "_cipher", "_iterations")

    def __init__(self, db: ClipletDatabase, iterations: int = PBKDF2_ITERATIONS) -> None:
        self._db = db
        self._cipher = AesGcmCipher()
        self._iterations = iterations

    async def get(self, key: str) -> str | None:
        row = await self._db.fetchone("SELECT value FROM meta WHERE key = ?", (key,))
        return row["value"] if row else None

    async def get_or_create_seed(self, identifier: str) -> str:
        """
        Return the namespace seed, creating it on first use.

        The write is ``INSERT OR IGNORE`` followed by a re-read, so concurrent
        or repeated calls all return the value that was persisted first.

        Raises:
            DecryptionError: If the stored seed was written under another identifier
        """
        seed_key = await asyncio.to_thread(derive_seed_key, identifier, self._iterations)

        stored = await self.get(SEED_META_KEY)
        if not stored:
            encrypted = self._cipher.encrypt_text(str(uuid.uuid4()), seed_key)
            async with self._db.transaction() as conn:
                await conn.execute(
                    "INSERT OR IGNORE INTO meta (key, value) VALUES (?, ?)",
                    (SEED_META_KEY, encrypted),
                )
            stored = await self.get(SEED_META_KEY)
            _log.info("Created namespace seed")

        return self._cipher.decrypt_text(stored, seed_key)
