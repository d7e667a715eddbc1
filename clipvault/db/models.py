"""
Cliplet record model.

Times are unix seconds; ``0`` means "never". ``content`` holds ciphertext
inside the backends and plaintext in records returned by the engine.
"""

from __future__ import annotations

import time
import uuid
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional, Tuple

from clipvault.security.constants import DEFAULT_CLIPLET_TYPE


def now_ts() -> int:
    return int(time.time())


@dataclass
class Cliplet:
    """
    One stored text snippet.

    Note: content is never exposed in repr or str.
    """
    id: str
    content: str
    name: str = ""
    type: str = DEFAULT_CLIPLET_TYPE
    keyword: str = ""
    pinned: int = 0
    count: int = 0
    created: int = 0
    last_used: int = 0
    last_modified: int = 0

    @classmethod
    def new(
        cls,
        content: str,
        name: str = "",
        keyword: str = "",
        type: str = DEFAULT_CLIPLET_TYPE,
        now: Optional[int] = None,
    ) -> "Cliplet":
        """Build a fresh record with a new id, created now and never used."""
        return cls(
            id=str(uuid.uuid4()),
            content=content,
            name=name,
            type=type,
            keyword=keyword,
            created=now_ts() if now is None else now,
        )

    def __repr__(self) -> str:
        """Safe representation without content."""
        return (
            f"Cliplet(id={self.id!r}, name={self.name!r}, pinned={self.pinned}, "
            f"count={self.count}, created={self.created})"
        )

    def is_protected(self) -> bool:
        """Named, keyworded and pinned records are exempt from eviction."""
        return bool(
            (isinstance(self.name, str) and self.name.strip())
            or (isinstance(self.keyword, str) and self.keyword.strip())
            or self.pinned
        )

    def latest_activity(self) -> int:
        return max(self.created, self.last_used, self.last_modified)

    def to_dict(self) -> Dict[str, Any]:
        """Document layout. Keeps the host's camelCase keys."""
        return {
            "id": self.id,
            "name": self.name,
            "content": self.content,
            "type": self.type,
            "keyword": self.keyword,
            "pinned": self.pinned,
            "count": self.count,
            "created": self.created,
            "lastUsed": self.last_used,
            "lastModified": self.last_modified,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Cliplet":
        return cls(
            id=str(data["id"]),
            content=data.get("content", ""),
            name=data.get("name") or "",
            type=data.get("type") or DEFAULT_CLIPLET_TYPE,
            keyword=data.get("keyword") or "",
            pinned=int(data.get("pinned") or 0),
            count=int(data.get("count") or 0),
            created=int(data.get("created") or 0),
            last_used=int(data.get("lastUsed") or 0),
            last_modified=int(data.get("lastModified") or 0),
        )


def sort_key(cliplet: Cliplet) -> Tuple[int, int]:
    """Pinned records first, then most recently touched first."""
    return (-cliplet.pinned, -cliplet.latest_activity())
