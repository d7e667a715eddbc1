"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values
- Type-safe configuration access
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from clipvault.security.constants import (
    ARGON2_MEMORY_COST,
    ARGON2_PARALLELISM,
    ARGON2_TIME_COST,
    MAXIMUM_RECORDS,
    MIN_PBKDF2_ITERATIONS,
    PBKDF2_ITERATIONS,
    RETENTION_PERIOD_DAYS,
    STORAGE_KIND_INDEXED,
    STORAGE_KINDS,
)


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt", "seed", "identifier",
})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "Clipvault"


def _get_default_config_dir() -> Path:
    """Get OS-appropriate default config directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Preferences"
    else:  # Linux and others
        base = Path(os.environ.get("XDG_CONFIG_HOME", Path.home() / ".config"))

    return base / "Clipvault"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "Clipvault" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "Clipvault"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "Clipvault" / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Immutable path configuration with OS-aware defaults."""

    data_dir: Path = field(default_factory=_get_default_data_dir)
    config_dir: Path = field(default_factory=_get_default_config_dir)
    log_dir: Path = field(default_factory=_get_default_log_dir)

    def __post_init__(self) -> None:
        """Validate paths after initialization."""
        for field_name in ["data_dir", "config_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Key-derivation cost parameters."""

    pbkdf2_iterations: int = PBKDF2_ITERATIONS
    argon2_time_cost: int = ARGON2_TIME_COST
    argon2_memory_cost: int = ARGON2_MEMORY_COST  # KiB
    argon2_parallelism: int = ARGON2_PARALLELISM

    def __post_init__(self) -> None:
        """Validate security settings."""
        if self.pbkdf2_iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(f"PBKDF2 iterations must be at least {MIN_PBKDF2_ITERATIONS:,}")
        if self.argon2_time_cost < 1:
            raise ValueError("Argon2 time cost must be at least 1")
        if self.argon2_parallelism < 1:
            raise ValueError("Argon2 parallelism must be at least 1")
        if self.argon2_memory_cost < 8 * self.argon2_parallelism:
            raise ValueError("Argon2 memory cost must be at least 8 KiB per lane")


@dataclass(frozen=True, slots=True)
class RetentionConfig:
    """Eviction policy defaults handed to the engine by the host."""

    max_records: int = MAXIMUM_RECORDS
    retention_days: int = RETENTION_PERIOD_DAYS

    def __post_init__(self) -> None:
        if self.max_records < 0:
            raise ValueError("max_records cannot be negative")
        if self.retention_days < 0:
            raise ValueError("retention_days cannot be negative")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Backend selection and host document naming."""

    default_kind: str = STORAGE_KIND_INDEXED
    document_name: str = "data.json"

    def __post_init__(self) -> None:
        if self.default_kind not in STORAGE_KINDS:
            raise ValueError(f"Unknown storage kind: {self.default_kind}")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    format: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    date_format: str = "%Y-%m-%d %H:%M:%S"
    enable_console: bool = True
    enable_file: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


class ClipvaultConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = ClipvaultConfig.load()
        db_dir = config.paths.data_dir
        cap = config.retention.max_records
    """

    __slots__ = ("_paths", "_security", "_retention", "_storage", "_logging", "_frozen", "_config_hash")

    _instance: Optional[ClipvaultConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        security: Optional[SecurityConfig] = None,
        retention: Optional[RetentionConfig] = None,
        storage: Optional[StorageConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use ClipvaultConfig.load() for standard initialization."""
        # Use object.__setattr__ to bypass our immutability check during init
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_security", security or SecurityConfig())
        object.__setattr__(self, "_retention", retention or RetentionConfig())
        object.__setattr__(self, "_storage", storage or StorageConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._paths}|{self._security}|{self._retention}|{self._storage}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def security(self) -> SecurityConfig:
        return self._security

    @property
    def retention(self) -> RetentionConfig:
        return self._retention

    @property
    def storage(self) -> StorageConfig:
        return self._storage

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "CLIPVAULT") -> ClipvaultConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables are prefixed with CLIPVAULT_ and use double
        underscores for nested values.

        Examples:
            CLIPVAULT_LOGGING__LEVEL=DEBUG
            CLIPVAULT_RETENTION__MAX_RECORDS=500
            CLIPVAULT_PATHS__DATA_DIR=/custom/path
            CLIPVAULT_STORAGE__DEFAULT_KIND=json

        Args:
            env_prefix: Prefix for environment variables (default: CLIPVAULT)
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        for name in ("data_dir", "config_dir", "log_dir"):
            if f"paths.{name}" in env_overrides:
                paths_kwargs[name] = Path(env_overrides[f"paths.{name}"])

        security_kwargs: dict[str, Any] = {}
        for name in ("pbkdf2_iterations", "argon2_time_cost", "argon2_memory_cost", "argon2_parallelism"):
            if f"security.{name}" in env_overrides:
                security_kwargs[name] = int(env_overrides[f"security.{name}"])

        retention_kwargs: dict[str, Any] = {}
        for name in ("max_records", "retention_days"):
            if f"retention.{name}" in env_overrides:
                retention_kwargs[name] = int(env_overrides[f"retention.{name}"])

        storage_kwargs: dict[str, Any] = {}
        if "storage.default_kind" in env_overrides:
            storage_kwargs["default_kind"] = env_overrides["storage.default_kind"].lower()
        if "storage.document_name" in env_overrides:
            storage_kwargs["document_name"] = env_overrides["storage.document_name"]

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.enable_console" in env_overrides:
            logging_kwargs["enable_console"] = env_overrides["logging.enable_console"].lower() == "true"
        if "logging.enable_file" in env_overrides:
            logging_kwargs["enable_file"] = env_overrides["logging.enable_file"].lower() == "true"

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            security=SecurityConfig(**security_kwargs) if security_kwargs else None,
            retention=RetentionConfig(**retention_kwargs) if retention_kwargs else None,
            storage=StorageConfig(**storage_kwargs) if storage_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert CLIPVAULT_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> ClipvaultConfig:
        """Get or create the singleton configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Use only for testing."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """Create all required directories with secure permissions."""
        import stat

        directories = [
            self._paths.data_dir,
            self._paths.config_dir,
            self._paths.log_dir,
        ]

        for directory in directories:
            directory.mkdir(parents=True, exist_ok=True)

            # Set restrictive permissions on Unix-like systems
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"ClipvaultConfig(hash={self._config_hash}, storage={self._storage.default_kind})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("ClipvaultConfig is immutable after initialization")
        super().__setattr__(name, value)
