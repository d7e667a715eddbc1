"""
Security Constants
==================

Defines the cryptographic and retention constants used throughout clipvault.
Changing the salts or the key-derivation labels makes every existing store
unreadable, so these values are part of the persisted format.
"""

from typing import Final

# Encryption Settings
ENCRYPTION_ALGORITHM: Final[str] = "AES-256-GCM"
KEY_LENGTH_BYTES: Final[int] = 32  # 256 bits
NONCE_LENGTH_BYTES: Final[int] = 12  # 96 bits for GCM
TAG_LENGTH_BYTES: Final[int] = 16  # 128 bits

# Key Derivation
PBKDF2_ITERATIONS: Final[int] = 100_000
MIN_PBKDF2_ITERATIONS: Final[int] = 100_000
ARGON2_TIME_COST: Final[int] = 3
ARGON2_MEMORY_COST: Final[int] = 65536  # 64 MB
ARGON2_PARALLELISM: Final[int] = 4

# Domain-separation salts. The seed salt must differ from the data salts.
SEED_SALT: Final[bytes] = b"cliplet-salt1"
DATA_SALT: Final[bytes] = b"cliplet-salt2"
DATA_SALT_V2: Final[bytes] = b"cliplet-data-salt-v2"
DATA_KEY_INFO_V2: Final[bytes] = b"cliplet-data-key-v2"

# Key ring labels
CURRENT_KEY_LABEL: Final[str] = "current"
LEGACY_KEY_LABEL: Final[str] = "legacy"

# Meta store
SEED_META_KEY: Final[str] = "seed"

# Retention defaults (callers pass the effective values to the engine)
MAXIMUM_RECORDS: Final[int] = 200
RETENTION_PERIOD_DAYS: Final[int] = 60
SECONDS_PER_DAY: Final[int] = 86_400

# Storage kinds
STORAGE_KIND_INDEXED: Final[str] = "idb"
STORAGE_KIND_DOCUMENT: Final[str] = "json"
STORAGE_KINDS: Final[frozenset[str]] = frozenset({STORAGE_KIND_INDEXED, STORAGE_KIND_DOCUMENT})

DEFAULT_CLIPLET_TYPE: Final[str] = "text"
