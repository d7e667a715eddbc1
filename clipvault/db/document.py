"""
Host Document
=============

The host application's JSON configuration document (``data.json``). Besides
the host's own settings it carries:

    storageType      - active backend kind ("idb" or "json")
    latestClipletId  - id returned by the most recent add
    cliplets         - record array of the document backend

Saves replace the file atomically (temp file + ``os.replace``) in a worker
thread.
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Final, List, Optional

from clipvault.db.base import StorageError

_log = logging.getLogger(__name__)

DEFAULT_SETTINGS: Final[Dict[str, Any]] = {
    "latestClipletId": "",
    "cliplets": [],
}


def _write_atomic(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(dir=path.parent, prefix=f".{path.name}.", suffix=".tmp")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_name, path)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise


class HostDocument:
    """
    In-memory view of the host document plus explicit load/save.

    A document without a path lives in memory only; ``save`` then only
    counts the save.
    """

    __slots__ = ("_path", "_data", "_saves")

    def __init__(self, path: Optional[Path | str] = None, data: Optional[Dict[str, Any]] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._data: Dict[str, Any] = {**copy.deepcopy(DEFAULT_SETTINGS), **(data or {})}
        self._saves = 0

    @classmethod
    async def load(cls, path: Path | str) -> "HostDocument":
        """
        Read the document, merging missing keys from the defaults.

        Raises:
            StorageError: If the file exists but cannot be read or parsed
        """
        path = Path(path)
        try:
            text = await asyncio.to_thread(path.read_text, encoding="utf-8")
        except FileNotFoundError:
            return cls(path)
        except OSError as e:
            raise StorageError(f"Cannot read {path.name}: {e}") from e

        try:
            data = json.loads(text) if text.strip() else {}
        except json.JSONDecodeError as e:
            raise StorageError(f"{path.name} is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise StorageError(f"{path.name} must hold a JSON object")

        return cls(path, data)

    @property
    def path(self) -> Optional[Path]:
        return self._path

    @property
    def save_count(self) -> int:
        return self._saves

    @property
    def storage_type(self) -> str:
        return self._data.get("storageType") or ""

    @storage_type.setter
    def storage_type(self, value: str) -> None:
        self._data["storageType"] = value

    @property
    def latest_cliplet_id(self) -> str:
        return self._data.get("latestClipletId") or ""

    @latest_cliplet_id.setter
    def latest_cliplet_id(self, value: str) -> None:
        self._data["latestClipletId"] = value

    @property
    def cliplets(self) -> List[Dict[str, Any]]:
        records = self._data.get("cliplets")
        if not isinstance(records, list):
            records = []
            self._data["cliplets"] = records
        return records

    @cliplets.setter
    def cliplets(self, records: List[Dict[str, Any]]) -> None:
        self._data["cliplets"] = records

    def to_json(self) -> str:
        return json.dumps(self._data, ensure_ascii=False, indent=2)

    async def save(self) -> None:
        """
        Persist the whole document.

        Raises:
            StorageError: If the file cannot be written
        """
        if self._path is not None:
            try:
                await asyncio.to_thread(_write_atomic, self._path, self.to_json())
            except OSError as e:
                raise StorageError(f"Cannot write {self._path.name}: {e}") from e
        self._saves += 1
        _log.debug("Saved host document (%d records)", len(self.cliplets))

    def __repr__(self) -> str:
        name = self._path.name if self._path else None
        return f"HostDocument(path={name!r}, records={len(self.cliplets)})"
