"""Secret redaction in log output."""

from __future__ import annotations

import base64
import json
import logging
import os

from clipvault.core.config import LoggingConfig
from clipvault.core.logging import SecureLogFilter, configure_logging, get_secure_logger


def _record(msg, *args):
    return logging.LogRecord("clipvault.test", logging.INFO, __file__, 1, msg, args, None)


def test_ciphertext_blob_is_redacted():
    blob = base64.b64encode(os.urandom(48)).decode()
    record = _record("stored %s", blob)
    SecureLogFilter().filter(record)
    assert blob not in record.getMessage()
    assert "[REDACTED]" in record.getMessage()


def test_seed_and_content_are_redacted():
    record = _record("seed=abc123 content='top secret'")
    SecureLogFilter().filter(record)
    message = record.getMessage()
    assert "abc123" not in message
    assert "top" not in message


def test_hex_key_is_redacted():
    key = os.urandom(32).hex()
    record = _record("key %s", key)
    SecureLogFilter().filter(record)
    assert key not in record.getMessage()


def test_ordinary_messages_pass_through():
    record = _record("Evicted %d cliplets over the cap of %d", 3, 200)
    assert SecureLogFilter().filter(record)
    assert record.getMessage() == "Evicted 3 cliplets over the cap of 200"


def test_configure_logging_writes_filtered_file(tmp_path):
    logger = logging.getLogger("clipvault")
    saved = logger.handlers[:]
    logger.handlers.clear()
    try:
        configure_logging(LoggingConfig(enable_console=False, enable_file=True), tmp_path)
        blob = base64.b64encode(os.urandom(48)).decode()
        logging.getLogger("clipvault.db.test").info("blob %s", blob)
        for handler in logger.handlers:
            handler.flush()

        text = (tmp_path / "clipvault.log").read_text(encoding="utf-8")
        assert "blob" in text
        assert blob not in text
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = saved
        logger.propagate = True


def test_json_log_file(tmp_path):
    logger = get_secure_logger(
        "clipvault_json_test", log_dir=tmp_path, enable_console=False, enable_json=True,
    )
    try:
        logger.warning("Switch aborted: seed=abc123")
        for handler in logger.handlers:
            handler.flush()

        entry = json.loads((tmp_path / "clipvault_json_test.log").read_text(encoding="utf-8").splitlines()[0])
        assert entry["level"] == "WARNING"
        assert entry["logger"] == "clipvault_json_test"
        assert "abc123" not in entry["message"]
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers.clear()


def test_configured_format_is_used(tmp_path):
    logger = logging.getLogger("clipvault")
    saved = logger.handlers[:]
    logger.handlers.clear()
    try:
        configure_logging(
            LoggingConfig(enable_console=False, enable_file=True, format="%(levelname)s::%(message)s"),
            tmp_path,
        )
        logging.getLogger("clipvault.service").warning("Switch aborted")
        for handler in logger.handlers:
            handler.flush()

        text = (tmp_path / "clipvault.log").read_text(encoding="utf-8")
        assert text.splitlines()[0] == "WARNING::Switch aborted"
    finally:
        for handler in logger.handlers:
            handler.close()
        logger.handlers[:] = saved
        logger.propagate = True
