"""Shared fixtures: temporary data dirs, cheap key derivation, open stores."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from clipvault.core.config import ClipvaultConfig, PathConfig, SecurityConfig
from clipvault.db.database import ClipletDatabase
from clipvault.db.document import HostDocument
from clipvault.db.json_store import JsonClipletStore
from clipvault.db.sqlite_store import SqliteClipletStore
from clipvault.service import ClipletService

NAMESPACE = "0f3c9a7e1b2d4c58"

# Lowest costs the validators accept; production defaults are far higher.
FAST_SECURITY = SecurityConfig(
    pbkdf2_iterations=100_000,
    argon2_time_cost=1,
    argon2_memory_cost=1024,
    argon2_parallelism=1,
)


@pytest.fixture
def config(tmp_path: Path) -> ClipvaultConfig:
    return ClipvaultConfig(
        paths=PathConfig(
            data_dir=tmp_path / "data",
            config_dir=tmp_path / "config",
            log_dir=tmp_path / "logs",
        ),
        security=FAST_SECURITY,
    )


@pytest.fixture
def key() -> bytes:
    return os.urandom(32)


@pytest.fixture
async def database(tmp_path: Path):
    db = await ClipletDatabase(tmp_path / "test-Cliplet.db").open()
    yield db
    await db.close()


@pytest.fixture
def document(config: ClipvaultConfig) -> HostDocument:
    return HostDocument(config.paths.config_dir / config.storage.document_name)


@pytest.fixture(params=["idb", "json"])
async def store(request, tmp_path: Path):
    """Each backend in turn; the contract tests must pass on both."""
    if request.param == "idb":
        db = await ClipletDatabase(tmp_path / "store-Cliplet.db").open()
        yield SqliteClipletStore(db)
        await db.close()
    else:
        yield JsonClipletStore(HostDocument(tmp_path / "data.json"))


@pytest.fixture
async def service(config: ClipvaultConfig, document: HostDocument):
    svc = await ClipletService.create(NAMESPACE, config=config, document=document)
    yield svc
    await svc.close_db()


@pytest.fixture(params=["idb", "json"])
async def service_on(request, config: ClipvaultConfig, document: HostDocument):
    """A service starting on each backend in turn."""
    document.storage_type = request.param
    svc = await ClipletService.create(NAMESPACE, config=config, document=document)
    assert svc.storage_kind == request.param
    yield svc
    await svc.close_db()
