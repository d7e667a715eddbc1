"""
Cliplet Storage Engine
======================

Composes a key ring with exactly one active record store and exposes a
backend-agnostic API. Records handed to and returned by the engine carry
plaintext ``content``; the stores only ever see ciphertext.

Lifecycle:
    service = await init("vault-1234")          # guarded, one handle per namespace
    cliplet_id = await service.add_cliplet(Cliplet.new("hello"))
    await service.switch_storage("json")         # move records, same key
    await service.migrate_all_to_new_key()       # re-encrypt legacy records
    await service.close_db()

Backend switch protocol:
    1. copy every source record (ciphertext, unchanged) into a fresh target
    2. verify the target holds at least as many records as were read
    3. persist the new storage kind in the host document
    4. swap the active store, then clear and release the source (a failed
       clear is logged, the switch still succeeds)
Any failure before step 4 clears the target and leaves the source active.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from clipvault.core.config import ClipvaultConfig, RetentionConfig, SecurityConfig
from clipvault.core.crypto.kdf import derive_current_key, derive_legacy_key
from clipvault.core.crypto.keyring import KeyCandidate, KeyRing
from clipvault.db.base import ClipletStore, NotInitializedError, StorageError
from clipvault.db.database import ClipletDatabase
from clipvault.db.document import HostDocument
from clipvault.db.json_store import JsonClipletStore
from clipvault.db.meta_store import MetaStore
from clipvault.db.models import Cliplet, now_ts, sort_key
from clipvault.db.sqlite_store import SqliteClipletStore
from clipvault.security.constants import (
    CURRENT_KEY_LABEL,
    LEGACY_KEY_LABEL,
    STORAGE_KIND_DOCUMENT,
    STORAGE_KIND_INDEXED,
    STORAGE_KINDS,
)
from clipvault.utils.paths import namespace_database_path

_log = logging.getLogger(__name__)


class MigrationError(StorageError):
    """Raised when a backend switch is aborted. The source backend stays active."""
    pass


async def build_keyring(identifier: str, db: ClipletDatabase, security: SecurityConfig) -> KeyRing:
    """
    Derive the current and legacy data keys of a namespace.

    The seed is read (or created) first; both data keys are then derived in
    worker threads.
    """
    seed = await MetaStore(db, security.pbkdf2_iterations).get_or_create_seed(identifier)
    current, legacy = await asyncio.gather(
        asyncio.to_thread(
            derive_current_key,
            identifier,
            security.argon2_time_cost,
            security.argon2_memory_cost,
            security.argon2_parallelism,
        ),
        asyncio.to_thread(derive_legacy_key, identifier, seed, security.pbkdf2_iterations),
    )
    return KeyRing([
        KeyCandidate(CURRENT_KEY_LABEL, current),
        KeyCandidate(LEGACY_KEY_LABEL, legacy),
    ])


class ClipletService:
    """
    Owned handle on one storage namespace.

    Build with :meth:`create` (independent handle) or :func:`init`
    (shared, de-duplicated per namespace). Every operation on a closed
    handle raises NotInitializedError.
    """

    __slots__ = (
        "_namespace_id", "_config", "_document", "_db",
        "_keyring", "_store", "_lock", "_closed",
    )

    def __init__(
        self,
        namespace_id: str,
        config: ClipvaultConfig,
        document: HostDocument,
        db: ClipletDatabase,
        keyring: KeyRing,
        store: ClipletStore,
    ) -> None:
        self._namespace_id = namespace_id
        self._config = config
        self._document = document
        self._db = db
        self._keyring = keyring
        self._store = store
        self._lock = asyncio.Lock()
        self._closed = False

    @classmethod
    async def create(
        cls,
        namespace_id: str,
        config: Optional[ClipvaultConfig] = None,
        document: Optional[HostDocument] = None,
    ) -> "ClipletService":
        """
        Create the configured directories (owner-only), open the namespace
        database, derive keys and attach the backend named by the host
        document (or the configured default).

        Args:
            namespace_id: Installation identifier supplied by the host
            config: Configuration (defaults to the process instance)
            document: Host document (defaults to ``config_dir/document_name``)

        Raises:
            ValueError: If the namespace id is empty or not a safe file name
            StorageError: If the database or document cannot be opened
        """
        if not namespace_id or not namespace_id.strip():
            raise ValueError("namespace_id cannot be empty")

        config = config or ClipvaultConfig.get_instance()
        if document is None:
            document = await HostDocument.load(config.paths.config_dir / config.storage.document_name)

        db_path = namespace_database_path(config.paths.data_dir, namespace_id)
        await asyncio.to_thread(config.ensure_directories)
        db = await ClipletDatabase(db_path).open()
        try:
            keyring = await build_keyring(namespace_id, db, config.security)
        except BaseException:
            await db.close()
            raise

        kind = document.storage_type or config.storage.default_kind
        if kind not in STORAGE_KINDS:
            _log.warning("Unknown storage type %r in host document, using %s", kind, config.storage.default_kind)
            kind = config.storage.default_kind

        service = cls(namespace_id, config, document, db, keyring, _open_store(kind, db, document))
        _log.info("Cliplet storage ready (backend=%s, config=%s)", kind, config.config_hash)
        return service

    # ------------------------------------------------------------------
    # Handle state
    # ------------------------------------------------------------------

    @property
    def namespace_id(self) -> str:
        return self._namespace_id

    @property
    def storage_kind(self) -> str:
        return self._store.kind

    @property
    def store(self) -> ClipletStore:
        self._require_open()
        return self._store

    @property
    def keyring(self) -> KeyRing:
        return self._keyring

    @property
    def document(self) -> HostDocument:
        return self._document

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _require_open(self) -> None:
        if self._closed:
            raise NotInitializedError(
                "Cliplet storage for this namespace is closed. Call init() again."
            )

    def has_db(self) -> bool:
        return not self._closed and self._db.is_open

    async def close_db(self) -> None:
        """Close the connection and release the active store."""
        if self._closed:
            return
        self._closed = True
        self._store.release()
        await self._db.close()
        _log.info("Cliplet storage closed")

    async def delete_db(self) -> None:
        """
        Erase the namespace: document records, latest id and the database file.
        The handle is closed afterwards.
        """
        self._require_open()
        async with self._lock:
            if self._store.kind == STORAGE_KIND_DOCUMENT:
                await self._store.delete_all()
            self._document.latest_cliplet_id = ""
            await self._document.save()

            self._closed = True
            self._store.release()
            await self._db.destroy()
        _log.info("Cliplet storage deleted")

    # ------------------------------------------------------------------
    # Crypto
    # ------------------------------------------------------------------

    async def encrypt(self, text: str) -> str:
        self._require_open()
        return self._keyring.encrypt(text)

    async def decrypt(self, blob: str) -> str:
        """Decrypt with the current key, falling back to the legacy key."""
        self._require_open()
        return self._keyring.decrypt(blob)

    def _decrypted(self, cliplet: Cliplet) -> Cliplet:
        return replace(cliplet, content=self._keyring.decrypt(cliplet.content))

    def _encrypted(self, cliplet: Cliplet) -> Cliplet:
        return replace(cliplet, content=self._keyring.encrypt(cliplet.content))

    # ------------------------------------------------------------------
    # Records
    # ------------------------------------------------------------------

    async def get_cliplet(self, cliplet_id: str) -> Optional[Cliplet]:
        self._require_open()
        cliplet = await self._store.get(cliplet_id)
        return self._decrypted(cliplet) if cliplet is not None else None

    async def get_all_cliplets(self) -> List[Cliplet]:
        """All records, decrypted, pinned first and then most recent first."""
        self._require_open()
        cliplets = [self._decrypted(c) for c in await self._store.list()]
        cliplets.sort(key=sort_key)
        return cliplets

    async def get_latest_cliplet(self) -> Optional[Cliplet]:
        """The record returned by the most recent add, if it still exists."""
        self._require_open()
        latest_id = self._document.latest_cliplet_id
        return await self.get_cliplet(latest_id) if latest_id else None

    async def add_cliplet(self, cliplet: Cliplet) -> str:
        """
        Encrypt and insert ``cliplet`` unless a record with the same
        plaintext already exists.

        Returns:
            The id of the stored record, which is the existing one for a duplicate
        """
        self._require_open()
        plaintext = cliplet.content

        def same_content(stored: str) -> bool:
            return self._keyring.decrypt(stored) == plaintext

        async with self._lock:
            cliplet_id = await self._store.add(self._encrypted(cliplet), same_content)
            self._document.latest_cliplet_id = cliplet_id
            await self._document.save()
        return cliplet_id

    async def put_cliplet(self, cliplet: Cliplet) -> None:
        """Encrypt and upsert the full record."""
        self._require_open()
        async with self._lock:
            await self._store.put(self._encrypted(cliplet))

    async def mark_used(self, cliplet_id: str) -> Optional[Cliplet]:
        """Bump the usage counter and ``last_used`` after an insertion."""
        self._require_open()
        async with self._lock:
            stored = await self._store.get(cliplet_id)
            if stored is None:
                return None
            updated = replace(stored, count=stored.count + 1, last_used=now_ts())
            await self._store.put(updated)
        return self._decrypted(updated)

    async def set_pinned(self, cliplet_id: str, pinned: bool) -> Optional[Cliplet]:
        """Pin (``pinned = now``) or unpin (``pinned = 0``) a record."""
        self._require_open()
        async with self._lock:
            stored = await self._store.get(cliplet_id)
            if stored is None:
                return None
            now = now_ts()
            updated = replace(stored, pinned=now if pinned else 0, last_modified=now)
            await self._store.put(updated)
        return self._decrypted(updated)

    async def delete_cliplet(self, cliplet_id: str) -> None:
        self._require_open()
        async with self._lock:
            await self._store.delete(cliplet_id)

    async def delete_all_cliplets(self) -> None:
        self._require_open()
        async with self._lock:
            await self._store.delete_all()

    # ------------------------------------------------------------------
    # Retention
    # ------------------------------------------------------------------

    async def delete_exceeded_records(self, max_count: int) -> int:
        self._require_open()
        async with self._lock:
            return await self._store.delete_exceeded_records(max_count)

    async def delete_overdue_records(self, days: int, now: Optional[int] = None) -> int:
        self._require_open()
        async with self._lock:
            return await self._store.delete_overdue_records(days, now)

    async def enforce_retention(self, retention: Optional[RetentionConfig] = None) -> Tuple[int, int]:
        """
        Run the count sweep, then the age sweep.

        Returns:
            (records evicted over the cap, records removed for age)
        """
        retention = retention or self._config.retention
        exceeded = await self.delete_exceeded_records(retention.max_records)
        overdue = await self.delete_overdue_records(retention.retention_days)
        return exceeded, overdue

    # ------------------------------------------------------------------
    # Migrations
    # ------------------------------------------------------------------

    async def switch_storage(self, kind: str) -> bool:
        """
        Move every record to a backend of another kind without re-encrypting.

        Returns:
            False if ``kind`` is already active, True after a completed switch

        Raises:
            ValueError: If ``kind`` is unknown
            MigrationError: If the copy fails; the source backend stays active
        """
        if kind not in STORAGE_KINDS:
            raise ValueError(f"Unknown storage kind: {kind!r}")
        self._require_open()

        async with self._lock:
            source = self._store
            if source.kind == kind:
                return False

            records = await source.list()
            target = _open_store(kind, self._db, self._document)
            try:
                await target.delete_all()
                await target.put_many(records)

                copied = await target.count()
                if copied < len(records):
                    raise MigrationError(f"Target backend holds {copied} of {len(records)} records")

                self._document.storage_type = kind
                await self._document.save()
            except Exception as e:
                _log.error("Switch from %s to %s aborted: %s", source.kind, kind, e)
                self._document.storage_type = source.kind
                await _discard_target(target)
                if kind == STORAGE_KIND_DOCUMENT:
                    # Drop the copies even if the cleanup save failed
                    self._document.cliplets = []
                if isinstance(e, MigrationError):
                    raise
                raise MigrationError(f"Switch from {source.kind} to {kind} aborted: {e}") from e

            self._store = target
            try:
                await source.delete_all()
            except StorageError as e:
                # Already switched; leftover source rows are unreachable
                _log.error("Could not clear %s backend after switch: %s", source.kind, e)
            finally:
                source.release()

        _log.info("Moved %d cliplets from %s to %s", len(records), source.kind, kind)
        return True

    async def migrate_all_to_new_key(self) -> int:
        """
        Re-encrypt every record under the current key.

        Each record is decrypted with whichever key verifies it (current
        first, then legacy) and the whole set is written back in one batch.
        A record no key can read aborts the run before anything is written.

        Returns:
            Number of records that were still under the legacy key
        """
        self._require_open()
        upgraded = 0
        async with self._lock:
            records = await self._store.list()
            rewritten = []
            for record in records:
                plaintext, label = self._keyring.decrypt_with_label(record.content)
                if label != CURRENT_KEY_LABEL:
                    upgraded += 1
                rewritten.append(replace(record, content=self._keyring.encrypt(plaintext)))
            await self._store.put_many(rewritten)

        _log.info("Re-encrypted %d cliplets (%d from legacy key)", len(records), upgraded)
        return upgraded

    def __repr__(self) -> str:
        return f"ClipletService(backend={self._store.kind!r}, closed={self._closed})"


def _open_store(kind: str, db: ClipletDatabase, document: HostDocument) -> ClipletStore:
    if kind == STORAGE_KIND_INDEXED:
        return SqliteClipletStore(db)
    if kind == STORAGE_KIND_DOCUMENT:
        return JsonClipletStore(document)
    raise ValueError(f"Unknown storage kind: {kind!r}")


async def _discard_target(target: ClipletStore) -> None:
    try:
        await target.delete_all()
    except StorageError as e:
        _log.error("Could not clear %s backend after aborted switch: %s", target.kind, e)
    finally:
        target.release()


# ----------------------------------------------------------------------
# Guarded initialisation
# ----------------------------------------------------------------------

_pending: Dict[Tuple[str, Path], "asyncio.Task[ClipletService]"] = {}


def _reusable(task: "asyncio.Task[ClipletService]") -> bool:
    if task.get_loop() is not asyncio.get_running_loop():
        return False
    if not task.done():
        return True
    if task.cancelled() or task.exception() is not None:
        return False
    return not task.result().is_closed


async def init(
    namespace_id: str,
    config: Optional[ClipvaultConfig] = None,
    document: Optional[HostDocument] = None,
) -> ClipletService:
    """
    Return the shared handle of a namespace, creating it on first use.

    Concurrent callers await the same in-flight initialisation, so the
    database is opened and the keys are derived once. A closed or failed
    handle is replaced on the next call.
    """
    config = config or ClipvaultConfig.get_instance()
    key = (namespace_id, config.paths.data_dir)

    task = _pending.get(key)
    if task is None or not _reusable(task):
        task = asyncio.get_running_loop().create_task(
            ClipletService.create(namespace_id, config=config, document=document)
        )
        _pending[key] = task

    try:
        return await asyncio.shield(task)
    except Exception:
        if _pending.get(key) is task:
            del _pending[key]
        raise
