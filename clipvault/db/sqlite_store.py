"""
Indexed Record Store
====================

Cliplet records in the ``cliplet`` table of the namespace database.
De-duplicating inserts and both eviction sweeps each run inside one
transaction, so a reader never observes a partially evicted set.
"""

from __future__ import annotations

import logging
from typing import Any, Final, Iterable, List, Optional, Tuple

import aiosqlite

from clipvault.db.base import (
    ClipletStore,
    ContentMatcher,
    NotInitializedError,
    exceeded_ids,
    is_overdue,
    overdue_threshold,
)
from clipvault.db.database import ClipletDatabase
from clipvault.db.models import Cliplet
from clipvault.security.constants import STORAGE_KIND_INDEXED

_log = logging.getLogger(__name__)

_COLUMNS: Final[str] = (
    "id, name, content, type, keyword, pinned, count, created, last_used, last_modified"
)


def _row_to_cliplet(row: aiosqlite.Row) -> Cliplet:
    return Cliplet(
        id=row["id"],
        name=row["name"],
        content=row["content"],
        type=row["type"],
        keyword=row["keyword"],
        pinned=row["pinned"],
        count=row["count"],
        created=row["created"],
        last_used=row["last_used"],
        last_modified=row["last_modified"],
    )


def _cliplet_params(cliplet: Cliplet) -> Tuple[Any, ...]:
    return (
        cliplet.id,
        cliplet.name,
        cliplet.content,
        cliplet.type,
        cliplet.keyword,
        cliplet.pinned,
        cliplet.count,
        cliplet.created,
        cliplet.last_used,
        cliplet.last_modified,
    )


class SqliteClipletStore(ClipletStore):
    """
    Transactional, indexed backend.

    Usage:
        db = await ClipletDatabase(path).open()
        store = SqliteClipletStore(db)
        cliplet_id = await store.add(cliplet)
    """

    kind = STORAGE_KIND_INDEXED

    def __init__(self, db: ClipletDatabase) -> None:
        self._db: Optional[ClipletDatabase] = db

    @property
    def db(self) -> ClipletDatabase:
        if self._db is None:
            raise NotInitializedError("Indexed store has been released")
        return self._db

    async def get(self, cliplet_id: str) -> Optional[Cliplet]:
        row = await self.db.fetchone(f"SELECT {_COLUMNS} FROM cliplet WHERE id = ?", (cliplet_id,))
        return _row_to_cliplet(row) if row else None

    async def list(self) -> List[Cliplet]:
        rows = await self.db.fetchall(f"SELECT {_COLUMNS} FROM cliplet ORDER BY rowid")
        return [_row_to_cliplet(row) for row in rows]

    async def add(self, cliplet: Cliplet, same_content: Optional[ContentMatcher] = None) -> str:
        matches = same_content or (lambda stored: stored == cliplet.content)

        async with self.db.transaction() as conn:
            async with conn.execute("SELECT id, content FROM cliplet ORDER BY rowid") as cursor:
                async for row in cursor:
                    if matches(row["content"]):
                        _log.debug("Duplicate content, keeping cliplet %s", row["id"])
                        return row["id"]

            await conn.execute(
                f"INSERT INTO cliplet ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                _cliplet_params(cliplet),
            )
        return cliplet.id

    async def put(self, cliplet: Cliplet) -> None:
        await self.put_many([cliplet])

    async def put_many(self, cliplets: Iterable[Cliplet]) -> None:
        async with self.db.transaction() as conn:
            await conn.executemany(
                f"""
                INSERT INTO cliplet ({_COLUMNS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(id) DO UPDATE SET
                  name = excluded.name,
                  content = excluded.content,
                  type = excluded.type,
                  keyword = excluded.keyword,
                  pinned = excluded.pinned,
                  count = excluded.count,
                  created = excluded.created,
                  last_used = excluded.last_used,
                  last_modified = excluded.last_modified
                """,
                [_cliplet_params(c) for c in cliplets],
            )

    async def delete(self, cliplet_id: str) -> None:
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM cliplet WHERE id = ?", (cliplet_id,))

    async def delete_all(self) -> None:
        async with self.db.transaction() as conn:
            await conn.execute("DELETE FROM cliplet")

    async def delete_exceeded_records(self, max_count: int) -> int:
        async with self.db.transaction() as conn:
            async with conn.execute(f"SELECT {_COLUMNS} FROM cliplet") as cursor:
                cliplets = [_row_to_cliplet(row) async for row in cursor]

            doomed = exceeded_ids(cliplets, max_count)
            if doomed:
                await conn.executemany("DELETE FROM cliplet WHERE id = ?", [(i,) for i in doomed])

        if doomed:
            _log.info("Evicted %d cliplets over the cap of %d", len(doomed), max_count)
        return len(doomed)

    async def delete_overdue_records(self, days: int, now: Optional[int] = None) -> int:
        threshold = overdue_threshold(days, now)

        async with self.db.transaction() as conn:
            async with conn.execute(f"SELECT {_COLUMNS} FROM cliplet") as cursor:
                cliplets = [_row_to_cliplet(row) async for row in cursor]

            doomed = [c.id for c in cliplets if is_overdue(c, threshold)]

            if doomed:
                await conn.executemany("DELETE FROM cliplet WHERE id = ?", [(i,) for i in doomed])

        if doomed:
            _log.info("Removed %d cliplets older than %d days", len(doomed), days)
        return len(doomed)

    async def count(self) -> int:
        row = await self.db.fetchone("SELECT COUNT(*) AS n FROM cliplet")
        return int(row["n"]) if row else 0

    def release(self) -> None:
        self._db = None
