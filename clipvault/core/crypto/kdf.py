"""
Key Derivation Functions
========================

Deterministic derivation of cliplet data keys from the host's installation
identifier.

Schemes:
    - Seed key:    PBKDF2-SHA256(identifier, SEED_SALT)
    - Current key: Argon2id(identifier, DATA_SALT_V2) expanded with HKDF
    - Legacy key:  PBKDF2-SHA256(identifier + seed, DATA_SALT)

The legacy scheme is kept only so older stores can be read and re-encrypted
under the current key. New writes always use the current key.

All functions here are CPU/memory hard and synchronous; async callers run
them through ``asyncio.to_thread``.
"""

from __future__ import annotations

from typing import Final

from argon2.low_level import Type, hash_secret_raw
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from clipvault.security.constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    DATA_KEY_INFO_V2,
    DATA_SALT,
    DATA_SALT_V2,
    KEY_LENGTH_BYTES,
    MIN_PBKDF2_ITERATIONS,
    PBKDF2_ITERATIONS,
    SEED_SALT,
)

KEY_LENGTH: Final[int] = KEY_LENGTH_BYTES


def derive_key_argon2(
    secret: str,
    salt: bytes,
    length: int = KEY_LENGTH,
    time_cost: int = ARGON2_TIME_COST,
    memory_cost: int = ARGON2_MEMORY_COST,
    parallelism: int = ARGON2_PARALLELISM,
) -> bytes:
    """
    Derive a key from a secret string using Argon2id.

    Args:
        secret: Input secret (UTF-8 encoded before hashing)
        salt: Salt, at least 8 bytes
        length: Output key length
        time_cost: Argon2 iterations
        memory_cost: Memory in KiB
        parallelism: Lanes

    Returns:
        Derived key bytes
    """
    return hash_secret_raw(
        secret=secret.encode("utf-8"),
        salt=salt,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
        hash_len=length,
        type=Type.ID,
    )


def derive_key_pbkdf2(
    secret: str,
    salt: bytes,
    length: int = KEY_LENGTH,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive a key from a secret string using PBKDF2-HMAC-SHA256.

    Raises:
        ValueError: If fewer than 100,000 iterations are requested
    """
    if iterations < MIN_PBKDF2_ITERATIONS:
        raise ValueError(f"PBKDF2 requires at least {MIN_PBKDF2_ITERATIONS} iterations")
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(secret.encode("utf-8"))


def expand_key_hkdf(
    key_material: bytes,
    length: int,
    info: bytes = b"",
    salt: bytes | None = None,
) -> bytes:
    """
    Expand key material using HKDF-SHA256.

    Args:
        key_material: Input key material
        length: Output length
        info: Context/application info
        salt: Optional salt
    """
    hkdf = HKDF(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        info=info,
    )
    return hkdf.derive(key_material)


def derive_seed_key(identifier: str, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Key protecting the persisted seed. Depends on the identifier alone."""
    return derive_key_pbkdf2(identifier, SEED_SALT, iterations=iterations)


def derive_current_key(
    identifier: str,
    time_cost: int = ARGON2_TIME_COST,
    memory_cost: int = ARGON2_MEMORY_COST,
    parallelism: int = ARGON2_PARALLELISM,
) -> bytes:
    """Data key of the current scheme."""
    stretched = derive_key_argon2(
        identifier,
        DATA_SALT_V2,
        time_cost=time_cost,
        memory_cost=memory_cost,
        parallelism=parallelism,
    )
    return expand_key_hkdf(stretched, KEY_LENGTH, info=DATA_KEY_INFO_V2)


def derive_legacy_key(identifier: str, seed: str, iterations: int = PBKDF2_ITERATIONS) -> bytes:
    """Data key of the legacy scheme, bound to the namespace seed."""
    return derive_key_pbkdf2(identifier + seed, DATA_SALT, iterations=iterations)
