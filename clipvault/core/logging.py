"""
Secure Logging Module
=====================

Filtered handlers for the ``clipvault`` logger tree.

Library modules log through ``logging.getLogger(__name__)`` and never attach
handlers themselves. The host calls :func:`configure_logging` once; every
handler it installs carries a :class:`SecureLogFilter`, so seeds, cliplet
content, ciphertext blobs and key material never reach the output.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional, Pattern

from clipvault.core.config import LoggingConfig

# (label, pattern) pairs; a match is replaced by "<label>=[REDACTED]"
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("secret", re.compile(r'(?i)(secret|seed|private[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("content", re.compile(r'(?i)(content|plaintext)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Shortest blob is nonce + tag, 28 bytes = 40 base64 chars
    ("blob", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    ("hex", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"


def redact(text: str) -> str:
    """Replace every sensitive fragment of ``text``."""
    for label, pattern in _SENSITIVE_PATTERNS:
        text = pattern.sub(f"{label}={_REDACTED_TEXT}", text)
    return text


class SecureLogFilter(logging.Filter):
    """Redacts the message and string arguments of every record it sees."""

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg)

        if isinstance(record.args, dict):
            record.args = {k: redact(v) if isinstance(v, str) else v for k, v in record.args.items()}
        elif isinstance(record.args, tuple):
            record.args = tuple(redact(a) if isinstance(a, str) else a for a in record.args)

        return True


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


def _file_handler(log_file: Path, max_bytes: int, backup_count: int) -> RotatingFileHandler:
    if ".." in log_file.parts:
        raise ValueError("Log path cannot contain path traversal sequences")
    log_file = log_file.resolve()
    log_file.parent.mkdir(parents=True, exist_ok=True)
    return RotatingFileHandler(log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8")


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%Y-%m-%d %H:%M:%S",
) -> logging.Logger:
    """
    Attach filtered handlers to the logger ``name``.

    A logger that already has handlers is returned unchanged.

    Args:
        name: Logger name (typically "clipvault")
        log_dir: Directory for ``<name>.log``; no file output without it
        level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        enable_json: Write the file as JSON lines instead of ``fmt``
        fmt: Format string for console and plain file output
        datefmt: Date format for ``fmt``
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()
    handlers: list[logging.Handler] = []

    if enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(fmt, datefmt=datefmt))
        handlers.append(console)

    if enable_file and log_dir:
        file_handler = _file_handler(log_dir / f"{name.replace('.', '_')}.log", max_file_size, backup_count)
        file_handler.setFormatter(
            StructuredLogFormatter() if enable_json else logging.Formatter(fmt, datefmt=datefmt)
        )
        handlers.append(file_handler)

    for handler in handlers:
        handler.addFilter(secure_filter)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def configure_logging(config: LoggingConfig, log_dir: Optional[Path] = None) -> logging.Logger:
    """
    Attach filtered handlers to the ``clipvault`` package logger.

    Should be called once by the host at startup; every module logger
    below ``clipvault`` inherits the handlers.
    """
    return get_secure_logger(
        "clipvault",
        log_dir=log_dir,
        level=config.level,
        enable_console=config.enable_console,
        enable_file=config.enable_file,
        max_file_size=config.max_file_size_bytes,
        backup_count=config.backup_count,
        fmt=config.format,
        datefmt=config.date_format,
    )
