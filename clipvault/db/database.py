"""
Namespace Database
==================

One SQLite file per storage namespace, opened through aiosqlite.

Layout:
    cliplet  - records keyed by id, secondary index on keyword
    meta     - single-row-keyed secrets (the encrypted seed)

The connection runs in autocommit mode; multi-statement work goes through
:meth:`ClipletDatabase.transaction`, which issues ``BEGIN IMMEDIATE`` and
serialises writers on this connection.
"""

from __future__ import annotations

import asyncio
import logging
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Final, Iterable, List, Optional

import aiosqlite

from clipvault.db.base import NotInitializedError, StorageError

DB_VERSION: Final[int] = 1

_log = logging.getLogger(__name__)


class ClipletDatabase:
    """
    Owns the aiosqlite connection of one namespace.

    Usage:
        db = await ClipletDatabase(path).open()
        async with db.transaction() as conn:
            await conn.execute(...)
        await db.close()
    """

    __slots__ = ("_path", "_conn", "_write_lock")

    _SCHEMA: Final[str] = """
    CREATE TABLE IF NOT EXISTS cliplet (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL DEFAULT '',
        content TEXT NOT NULL,
        type TEXT NOT NULL DEFAULT 'text',
        keyword TEXT NOT NULL DEFAULT '',
        pinned INTEGER NOT NULL DEFAULT 0,
        count INTEGER NOT NULL DEFAULT 0,
        created INTEGER NOT NULL DEFAULT 0,
        last_used INTEGER NOT NULL DEFAULT 0,
        last_modified INTEGER NOT NULL DEFAULT 0
    );

    CREATE INDEX IF NOT EXISTS idx_cliplet_keyword ON cliplet(keyword);

    CREATE TABLE IF NOT EXISTS meta (
        key TEXT PRIMARY KEY,
        value TEXT NOT NULL
    );
    """

    def __init__(self, path: Path | str) -> None:
        self._path = Path(path)
        self._conn: Optional[aiosqlite.Connection] = None
        self._write_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self._path

    @property
    def is_open(self) -> bool:
        return self._conn is not None

    @property
    def connection(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise NotInitializedError(f"Database {self._path.name} is not open")
        return self._conn

    async def open(self) -> "ClipletDatabase":
        """Connect and create the schema if needed. Idempotent."""
        if self._conn is not None:
            return self

        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            conn = await aiosqlite.connect(self._path, isolation_level=None)
            conn.row_factory = aiosqlite.Row
            await conn.executescript(self._SCHEMA)
            await conn.execute(f"PRAGMA user_version = {DB_VERSION}")
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot open database {self._path.name}: {e}") from e

        self._conn = conn
        _log.debug("Opened database %s", self._path.name)
        return self

    async def close(self) -> None:
        if self._conn is None:
            return
        conn, self._conn = self._conn, None
        try:
            await conn.close()
        except aiosqlite.Error as e:
            raise StorageError(f"Cannot close database {self._path.name}: {e}") from e
        _log.debug("Closed database %s", self._path.name)

    async def destroy(self) -> None:
        """Close the connection and remove the database files."""
        await self.close()
        for suffix in ("", "-wal", "-shm", "-journal"):
            Path(f"{self._path}{suffix}").unlink(missing_ok=True)
        _log.info("Deleted database %s", self._path.name)

    async def fetchall(self, sql: str, params: Iterable[Any] = ()) -> List[aiosqlite.Row]:
        conn = self.connection
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return list(await cursor.fetchall())
        except aiosqlite.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    async def fetchone(self, sql: str, params: Iterable[Any] = ()) -> Optional[aiosqlite.Row]:
        conn = self.connection
        try:
            async with conn.execute(sql, tuple(params)) as cursor:
                return await cursor.fetchone()
        except aiosqlite.Error as e:
            raise StorageError(f"Query failed: {e}") from e

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """
        Run the block inside ``BEGIN IMMEDIATE`` / ``COMMIT``.

        Any exception rolls back. SQLite failures surface as StorageError.
        """
        conn = self.connection
        async with self._write_lock:
            try:
                await conn.execute("BEGIN IMMEDIATE")
            except aiosqlite.Error as e:
                raise StorageError(f"Cannot begin transaction: {e}") from e

            try:
                yield conn
            except BaseException as e:
                await self._rollback(conn)
                if isinstance(e, aiosqlite.Error):
                    raise StorageError(f"Transaction aborted: {e}") from e
                raise

            try:
                await conn.execute("COMMIT")
            except aiosqlite.Error as e:
                await self._rollback(conn)
                raise StorageError(f"Commit failed: {e}") from e

    async def _rollback(self, conn: aiosqlite.Connection) -> None:
        try:
            await conn.execute("ROLLBACK")
        except aiosqlite.Error:
            # No transaction left to roll back; the original error is what matters.
            _log.debug("Rollback skipped on %s", self._path.name)

    def __repr__(self) -> str:
        return f"ClipletDatabase(path={self._path.name!r}, open={self.is_open})"
