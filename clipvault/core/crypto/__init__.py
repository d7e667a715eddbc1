"""
clipvault Cryptographic Core
============================

Provides authenticated encryption of cliplet text and key derivation from
the host's installation identifier.

Architecture:
    1. AES-256-GCM: authenticated encryption of every stored content value
    2. PBKDF2 / Argon2id / HKDF: deterministic key derivation
    3. KeyRing: ordered key candidates for reading data written by older schemes

Security Properties:
    - All encryption is authenticated (AEAD)
    - Fresh random nonce for every encryption
    - Derived keys are held in memory only
"""

from clipvault.core.crypto.aes_gcm import AesGcmCipher, DecryptionError
from clipvault.core.crypto.keyring import KeyCandidate, KeyRing
from clipvault.core.crypto.kdf import (
    derive_current_key,
    derive_legacy_key,
    derive_seed_key,
)

__all__ = [
    "AesGcmCipher",
    "DecryptionError",
    "KeyCandidate",
    "KeyRing",
    "derive_current_key",
    "derive_legacy_key",
    "derive_seed_key",
]
