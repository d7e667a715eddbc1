"""
Document Record Store
=====================

Cliplet records kept as one array inside the host document. An in-memory
``id -> record`` index gives O(1) lookups; it is rebuilt whenever the array
is replaced wholesale (delete-all, sweeps, deletes).

Every mutation awaits one full document save before returning; a batch
upsert is staged and saved once. If the save fails, the in-memory array is
restored and the StorageError propagates.

This store does no locking of its own; the engine serialises mutations.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Iterable, List, Optional

from clipvault.db.base import (
    ClipletStore,
    ContentMatcher,
    NotInitializedError,
    exceeded_ids,
    is_overdue,
    overdue_threshold,
)
from clipvault.db.document import HostDocument
from clipvault.db.models import Cliplet
from clipvault.security.constants import STORAGE_KIND_DOCUMENT

_log = logging.getLogger(__name__)


class JsonClipletStore(ClipletStore):
    """
    Flat-document backend.

    Usage:
        document = await HostDocument.load(config_dir / "data.json")
        store = JsonClipletStore(document)
        cliplet_id = await store.add(cliplet)
    """

    kind = STORAGE_KIND_DOCUMENT

    def __init__(self, document: HostDocument) -> None:
        self._document: Optional[HostDocument] = document
        self._index: Dict[str, Dict[str, Any]] = {}
        self._rebuild_index()

    @property
    def document(self) -> HostDocument:
        if self._document is None:
            raise NotInitializedError("Document store has been released")
        return self._document

    @property
    def _records(self) -> List[Dict[str, Any]]:
        return self.document.cliplets

    def _rebuild_index(self) -> None:
        self._index = {record["id"]: record for record in self._records}

    async def _replace_records(self, records: List[Dict[str, Any]]) -> None:
        previous = self.document.cliplets
        self.document.cliplets = records
        try:
            await self.document.save()
        except Exception:
            self.document.cliplets = previous
            raise
        finally:
            self._rebuild_index()

    async def get(self, cliplet_id: str) -> Optional[Cliplet]:
        record = self._index.get(cliplet_id)
        return Cliplet.from_dict(record) if record is not None else None

    async def list(self) -> List[Cliplet]:
        return [Cliplet.from_dict(record) for record in self._records]

    async def add(self, cliplet: Cliplet, same_content: Optional[ContentMatcher] = None) -> str:
        matches = same_content or (lambda stored: stored == cliplet.content)
        for record in self._records:
            if matches(record.get("content", "")):
                _log.debug("Duplicate content, keeping cliplet %s", record["id"])
                return record["id"]

        record = cliplet.to_dict()
        self._records.append(record)
        try:
            await self.document.save()
        except Exception:
            self._records.remove(record)
            raise
        self._index[cliplet.id] = record
        return cliplet.id

    async def put(self, cliplet: Cliplet) -> None:
        existing = self._index.get(cliplet.id)
        if existing is None:
            await self.put_many([cliplet])
            return

        previous = dict(existing)
        existing.update(cliplet.to_dict())
        try:
            await self.document.save()
        except Exception:
            existing.clear()
            existing.update(previous)
            raise

    async def put_many(self, cliplets: Iterable[Cliplet]) -> None:
        """Stage every upsert on a copy of the array, then save once."""
        staged = [dict(record) for record in self._records]
        positions = {record["id"]: i for i, record in enumerate(staged)}
        for cliplet in cliplets:
            record = cliplet.to_dict()
            if cliplet.id in positions:
                staged[positions[cliplet.id]] = record
            else:
                positions[cliplet.id] = len(staged)
                staged.append(record)
        await self._replace_records(staged)

    async def delete(self, cliplet_id: str) -> None:
        if cliplet_id not in self._index:
            return
        await self._replace_records([r for r in self._records if r["id"] != cliplet_id])

    async def delete_all(self) -> None:
        await self._replace_records([])

    async def delete_exceeded_records(self, max_count: int) -> int:
        doomed = set(exceeded_ids(await self.list(), max_count))
        if not doomed:
            return 0

        await self._replace_records([r for r in self._records if r["id"] not in doomed])
        _log.info("Evicted %d cliplets over the cap of %d", len(doomed), max_count)
        return len(doomed)

    async def delete_overdue_records(self, days: int, now: Optional[int] = None) -> int:
        threshold = overdue_threshold(days, now)
        doomed = {c.id for c in await self.list() if is_overdue(c, threshold)}
        if not doomed:
            return 0

        await self._replace_records([r for r in self._records if r["id"] not in doomed])
        _log.info("Removed %d cliplets older than %d days", len(doomed), days)
        return len(doomed)

    def release(self) -> None:
        self._index = {}
        self._document = None
