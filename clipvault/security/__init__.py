"""
Security module - Cryptographic and retention constants.

Security Considerations:
- Use only approved cryptographic algorithms (AES-256-GCM, Argon2id/PBKDF2)
- Salts and key labels are part of the persisted format
- No custom cryptography implementations
"""

from clipvault.security.constants import (
    ENCRYPTION_ALGORITHM,
    MAXIMUM_RECORDS,
    RETENTION_PERIOD_DAYS,
    STORAGE_KIND_DOCUMENT,
    STORAGE_KIND_INDEXED,
)

__all__ = [
    "ENCRYPTION_ALGORITHM",
    "MAXIMUM_RECORDS",
    "RETENTION_PERIOD_DAYS",
    "STORAGE_KIND_DOCUMENT",
    "STORAGE_KIND_INDEXED",
]
