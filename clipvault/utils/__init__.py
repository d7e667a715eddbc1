"""
Utils module - Utility functions and helpers.
"""

from clipvault.utils.paths import namespace_database_path, sanitize_filename

__all__ = [
    "namespace_database_path",
    "sanitize_filename",
]
