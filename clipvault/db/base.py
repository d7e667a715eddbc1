"""
Record Store Interface
======================

Both backends (indexed SQLite, flat JSON document) implement
:class:`ClipletStore`. Backends store and return ``content`` exactly as
given (ciphertext); encryption and content comparison belong to the engine,
which passes a ``same_content`` predicate to :meth:`ClipletStore.add`.

Eviction rules shared by both backends:
    - A protected record (name, keyword or pin) is never evicted.
    - Each protected record lowers the unprotected budget by one; the budget
      is clamped at zero.
    - Unprotected records are ranked by max(created, last_used, last_modified),
      most recent first; those beyond the budget are deleted.
    - Age sweep deletes unprotected records whose latest activity is older
      than ``now - days * 86400``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Iterable, List, Optional

from clipvault.db.models import Cliplet, now_ts
from clipvault.security.constants import SECONDS_PER_DAY

ContentMatcher = Callable[[str], bool]


class StorageError(Exception):
    """Raised when the underlying storage medium fails."""
    pass


class NotInitializedError(Exception):
    """Raised when a store or engine is used before it is opened or after it is closed."""
    pass


def exceeded_ids(cliplets: Iterable[Cliplet], max_count: int) -> List[str]:
    """
    Ids of the unprotected records beyond the eviction budget.

    Returns an empty list when the candidates fit in the budget.
    """
    if max_count < 0:
        raise ValueError("max_count cannot be negative")

    budget = max_count
    candidates: List[Cliplet] = []
    for cliplet in cliplets:
        if cliplet.is_protected():
            budget -= 1
            continue
        candidates.append(cliplet)

    budget = max(budget, 0)
    if len(candidates) <= budget:
        return []

    candidates.sort(key=lambda c: c.latest_activity(), reverse=True)
    return [c.id for c in candidates[budget:]]


def overdue_threshold(days: int, now: Optional[int] = None) -> int:
    if days < 0:
        raise ValueError("days cannot be negative")
    return (now_ts() if now is None else now) - days * SECONDS_PER_DAY


def is_overdue(cliplet: Cliplet, threshold: int) -> bool:
    return not cliplet.is_protected() and cliplet.latest_activity() < threshold


class ClipletStore(ABC):
    """Record store capability set shared by every backend."""

    kind: str = ""

    @abstractmethod
    async def get(self, cliplet_id: str) -> Optional[Cliplet]:
        """Point lookup. ``None`` when absent."""

    @abstractmethod
    async def list(self) -> List[Cliplet]:
        """All records in storage order."""

    @abstractmethod
    async def add(self, cliplet: Cliplet, same_content: Optional[ContentMatcher] = None) -> str:
        """
        Insert ``cliplet`` unless a stored record has the same content.

        Args:
            cliplet: Record to insert
            same_content: Predicate on a stored ``content`` value; defaults
                to exact equality with ``cliplet.content``

        Returns:
            The id of the existing duplicate, or of the inserted record
        """

    @abstractmethod
    async def put(self, cliplet: Cliplet) -> None:
        """Full upsert by id."""

    async def put_many(self, cliplets: Iterable[Cliplet]) -> None:
        """Upsert a batch. Backends override this to write once."""
        for cliplet in cliplets:
            await self.put(cliplet)

    @abstractmethod
    async def delete(self, cliplet_id: str) -> None:
        ...

    @abstractmethod
    async def delete_all(self) -> None:
        ...

    @abstractmethod
    async def delete_exceeded_records(self, max_count: int) -> int:
        """Apply the count cap. Returns the number of deleted records."""

    @abstractmethod
    async def delete_overdue_records(self, days: int, now: Optional[int] = None) -> int:
        """Apply the age limit. Returns the number of deleted records."""

    async def count(self) -> int:
        return len(await self.list())

    def release(self) -> None:
        """Drop references to the storage medium. The store is unusable afterwards."""
