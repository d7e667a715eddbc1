"""
Path Utilities
==============

Maps storage namespaces onto files inside the data directory.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final

# Characters not allowed in filenames across all platforms
_UNSAFE_CHARS: Final[re.Pattern[str]] = re.compile(r'[<>:"/\\|?*\x00-\x1f]')

DATABASE_SUFFIX: Final[str] = "-Cliplet.db"


def sanitize_filename(filename: str, replacement: str = "_") -> str:
    """
    Sanitize a filename by removing potentially dangerous characters.

    Args:
        filename: The filename to sanitize
        replacement: Character to replace unsafe chars with

    Returns:
        Sanitized filename safe for all platforms

    Raises:
        ValueError: If the name is empty before or after sanitization
    """
    if not filename:
        raise ValueError("Filename cannot be empty")

    sanitized = _UNSAFE_CHARS.sub(replacement, filename)
    sanitized = sanitized.strip(". ")

    if not sanitized:
        raise ValueError("Filename becomes empty after sanitization")

    # Leave room for the database suffix
    max_length = 200
    if len(sanitized) > max_length:
        sanitized = sanitized[:max_length]

    return sanitized


def is_path_within_directory(path: Path, directory: Path) -> bool:
    """Check if a path is safely within a directory (prevents path traversal)."""
    try:
        return path.resolve().is_relative_to(directory.resolve())
    except (ValueError, RuntimeError):
        return False


def namespace_database_path(data_dir: Path, namespace_id: str) -> Path:
    """
    Database file of a storage namespace: ``<data_dir>/<namespace>-Cliplet.db``.

    The namespace id is used verbatim, so two ids never share a file.

    Raises:
        ValueError: If the id is not already a safe file name, or maps
            outside ``data_dir``
    """
    safe_name = sanitize_filename(namespace_id)
    if safe_name != namespace_id:
        raise ValueError(f"Namespace {namespace_id!r} is not a valid file name")

    path = data_dir / f"{safe_name}{DATABASE_SUFFIX}"
    if not is_path_within_directory(path, data_dir):
        raise ValueError(f"Namespace {namespace_id!r} resolves outside the data directory")
    return path
