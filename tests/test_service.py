"""
Engine behaviour: encryption at rest, ordering, backend switches, key
migration and the guarded initialiser.
"""

from __future__ import annotations

import asyncio
import os
import stat
import sys

import pytest

from clipvault import init
from clipvault.core.config import RetentionConfig
from clipvault.core.crypto.aes_gcm import AesGcmCipher, DecryptionError
from clipvault.db.base import NotInitializedError, StorageError
from clipvault.db.database import ClipletDatabase
from clipvault.db.document import HostDocument
from clipvault.db.json_store import JsonClipletStore
from clipvault.db.models import Cliplet, now_ts
from clipvault.db.sqlite_store import SqliteClipletStore
from clipvault.service import ClipletService, MigrationError
from clipvault.utils.paths import namespace_database_path

NAMESPACE = "0f3c9a7e1b2d4c58"

OTHER_KIND = {"idb": "json", "json": "idb"}
STORE_CLASS = {"idb": SqliteClipletStore, "json": JsonClipletStore}


async def _indexed_row_count(config) -> int:
    db = await ClipletDatabase(namespace_database_path(config.paths.data_dir, NAMESPACE)).open()
    try:
        return await SqliteClipletStore(db).count()
    finally:
        await db.close()


class TestRecords:

    async def test_add_and_get_roundtrip(self, service):
        cliplet_id = await service.add_cliplet(Cliplet.new("hello world", name="greeting"))
        cliplet = await service.get_cliplet(cliplet_id)
        assert cliplet.content == "hello world"
        assert cliplet.name == "greeting"

    async def test_backend_only_sees_ciphertext(self, service):
        cliplet_id = await service.add_cliplet(Cliplet.new("hello world"))
        stored = await service.store.get(cliplet_id)
        assert stored.content != "hello world"
        assert "hello" not in stored.content
        assert await service.decrypt(stored.content) == "hello world"

    async def test_duplicate_plaintext_is_not_stored_twice(self, service):
        first = await service.add_cliplet(Cliplet.new("same text"))
        second = await service.add_cliplet(Cliplet.new("same text"))
        assert first == second
        assert len(await service.get_all_cliplets()) == 1

    async def test_get_missing_returns_none(self, service):
        assert await service.get_cliplet("missing") is None

    async def test_pinned_sorts_before_recent(self, service):
        await service.put_cliplet(Cliplet(id="recent", content="r", last_used=100))
        await service.put_cliplet(Cliplet(id="pinned", content="p", pinned=5))
        await service.put_cliplet(Cliplet(id="old", content="o", created=50))
        assert [c.id for c in await service.get_all_cliplets()] == ["pinned", "recent", "old"]

    async def test_put_replaces_whole_record(self, service):
        await service.put_cliplet(Cliplet(id="a", content="v1", keyword="k1"))
        await service.put_cliplet(Cliplet(id="a", content="v2", type="markdown"))
        cliplet = await service.get_cliplet("a")
        assert (cliplet.content, cliplet.keyword, cliplet.type) == ("v2", "", "markdown")

    async def test_mark_used(self, service):
        cliplet_id = await service.add_cliplet(Cliplet.new("paste me"))
        used = await service.mark_used(cliplet_id)
        assert used.count == 1
        assert used.last_used > 0
        assert used.content == "paste me"
        assert (await service.mark_used(cliplet_id)).count == 2
        assert await service.mark_used("missing") is None

    async def test_set_pinned(self, service):
        cliplet_id = await service.add_cliplet(Cliplet.new("pin me"))
        assert (await service.set_pinned(cliplet_id, True)).pinned > 0
        assert (await service.get_cliplet(cliplet_id)).is_protected()
        assert (await service.set_pinned(cliplet_id, False)).pinned == 0

    async def test_latest_cliplet_tracks_last_add(self, service, document):
        await service.add_cliplet(Cliplet.new("first"))
        second = await service.add_cliplet(Cliplet.new("second"))
        assert document.latest_cliplet_id == second
        assert (await service.get_latest_cliplet()).content == "second"

        reloaded = await HostDocument.load(document.path)
        assert reloaded.latest_cliplet_id == second

    async def test_delete_and_delete_all(self, service):
        a = await service.add_cliplet(Cliplet.new("a"))
        await service.add_cliplet(Cliplet.new("b"))
        await service.delete_cliplet(a)
        assert [c.content for c in await service.get_all_cliplets()] == ["b"]
        await service.delete_all_cliplets()
        assert await service.get_all_cliplets() == []

    async def test_unknown_key_raises_decryption_error(self, service):
        foreign = AesGcmCipher().encrypt_text("foreign", os.urandom(32))
        await service.store.put(Cliplet(id="x", content=foreign))
        with pytest.raises(DecryptionError):
            await service.get_cliplet("x")

    async def test_empty_namespace_rejected(self, config, document):
        with pytest.raises(ValueError):
            await ClipletService.create("  ", config=config, document=document)

    async def test_namespace_must_map_verbatim_to_a_file(self, config, document):
        with pytest.raises(ValueError):
            await ClipletService.create("team/a", config=config, document=document)

        svc = await ClipletService.create("team_a", config=config, document=document)
        try:
            await svc.add_cliplet(Cliplet.new("kept apart"))
        finally:
            await svc.close_db()
        assert (config.paths.data_dir / "team_a-Cliplet.db").exists()
        assert not (config.paths.data_dir / "team/a-Cliplet.db").exists()

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX permissions")
    async def test_data_dir_is_owner_only(self, service, config):
        assert stat.S_IMODE(config.paths.data_dir.stat().st_mode) == 0o700


class TestRetention:

    async def test_enforce_retention_runs_both_sweeps(self, service):
        now = now_ts()
        await service.put_cliplet(Cliplet(id="stale", content="s", created=1))
        await service.put_cliplet(Cliplet(id="a", content="a", created=now))
        await service.put_cliplet(Cliplet(id="b", content="b", created=now - 1))

        assert await service.enforce_retention(RetentionConfig(max_records=3, retention_days=60)) == (0, 1)
        assert await service.enforce_retention(RetentionConfig(max_records=1, retention_days=60)) == (1, 0)
        assert [c.id for c in await service.get_all_cliplets()] == ["a"]

    async def test_protected_records_survive_retention(self, service):
        await service.put_cliplet(Cliplet(id="named", content="n", name="keep", created=1))
        await service.enforce_retention(RetentionConfig(max_records=0, retention_days=1))
        assert [c.id for c in await service.get_all_cliplets()] == ["named"]


class TestStorageSwitch:

    async def test_switch_moves_every_record(self, service, document):
        for text in ("one", "two", "three"):
            await service.add_cliplet(Cliplet.new(text))
        sqlite_store = service.store

        assert await service.switch_storage("json") is True
        assert service.storage_kind == "json"
        assert document.storage_type == "json"
        assert sorted(c.content for c in await service.get_all_cliplets()) == ["one", "three", "two"]
        assert len(document.cliplets) == 3

        with pytest.raises(NotInitializedError):
            await sqlite_store.list()

        assert await service.switch_storage("idb") is True
        assert service.storage_kind == "idb"
        assert document.cliplets == []
        assert sorted(c.content for c in await service.get_all_cliplets()) == ["one", "three", "two"]

    async def test_switch_copies_ciphertext_unchanged(self, service):
        cliplet_id = await service.add_cliplet(Cliplet.new("secret"))
        before = (await service.store.get(cliplet_id)).content
        await service.switch_storage("json")
        assert (await service.store.get(cliplet_id)).content == before

    async def test_storage_kind_survives_reopen(self, service, config, document):
        await service.add_cliplet(Cliplet.new("persisted"))
        await service.switch_storage("json")
        await service.close_db()

        reopened = await ClipletService.create(
            NAMESPACE, config=config, document=await HostDocument.load(document.path)
        )
        try:
            assert reopened.storage_kind == "json"
            assert [c.content for c in await reopened.get_all_cliplets()] == ["persisted"]
        finally:
            await reopened.close_db()

    async def test_switch_to_active_kind_is_noop(self, service):
        await service.add_cliplet(Cliplet.new("stay"))
        assert await service.switch_storage("idb") is False
        assert len(await service.get_all_cliplets()) == 1

    async def test_unknown_kind_rejected(self, service):
        with pytest.raises(ValueError):
            await service.switch_storage("localStorage")

    async def test_switch_saves_document_a_bounded_number_of_times(self, service, document):
        for i in range(20):
            await service.add_cliplet(Cliplet.new(f"text {i}"))
        before = document.save_count

        await service.switch_storage("json")

        # clear target, one batched copy, persist storageType
        assert document.save_count - before == 3
        assert len(document.cliplets) == 20

    async def test_failed_copy_keeps_source(self, service_on, config, document, monkeypatch):
        source_kind = service_on.storage_kind
        target_kind = OTHER_KIND[source_kind]
        target_cls = STORE_CLASS[target_kind]
        for text in ("one", "two"):
            await service_on.add_cliplet(Cliplet.new(text))

        original_put_many = target_cls.put_many

        async def put_one_then_fail(self, cliplets):
            await original_put_many(self, list(cliplets)[:1])
            raise StorageError("disk full")

        monkeypatch.setattr(target_cls, "put_many", put_one_then_fail)

        with pytest.raises(MigrationError):
            await service_on.switch_storage(target_kind)

        assert service_on.storage_kind == source_kind
        assert document.storage_type == source_kind
        assert sorted(c.content for c in await service_on.get_all_cliplets()) == ["one", "two"]
        if target_kind == "json":
            assert document.cliplets == []
        else:
            assert await _indexed_row_count(config) == 0

    async def test_failed_document_save_keeps_source(self, service_on, config, document, monkeypatch):
        source_kind = service_on.storage_kind
        target_kind = OTHER_KIND[source_kind]
        for text in ("one", "two"):
            await service_on.add_cliplet(Cliplet.new(text))

        original_save = HostDocument.save

        async def refuse_target_kind(self):
            if self.storage_type == target_kind:
                raise StorageError("read-only file system")
            await original_save(self)

        monkeypatch.setattr(HostDocument, "save", refuse_target_kind)

        with pytest.raises(MigrationError):
            await service_on.switch_storage(target_kind)

        assert service_on.storage_kind == source_kind
        assert document.storage_type == source_kind
        assert sorted(c.content for c in await service_on.get_all_cliplets()) == ["one", "two"]
        if target_kind == "json":
            assert document.cliplets == []
        else:
            assert await _indexed_row_count(config) == 0
            assert len(document.cliplets) == 2

    async def test_aborted_switch_leaves_no_copies_in_document(self, service, document, monkeypatch):
        for text in ("one", "two"):
            await service.add_cliplet(Cliplet.new(text))

        original_save = HostDocument.save
        broken = False

        async def fail_once_switched(self):
            nonlocal broken
            broken = broken or self.storage_type == "json"
            if broken:
                raise StorageError("disk full")
            await original_save(self)

        monkeypatch.setattr(HostDocument, "save", fail_once_switched)

        with pytest.raises(MigrationError):
            await service.switch_storage("json")

        assert service.storage_kind == "idb"
        assert document.cliplets == []

        monkeypatch.undo()
        await service.add_cliplet(Cliplet.new("three"))
        reloaded = await HostDocument.load(document.path)
        assert reloaded.cliplets == []
        assert len(await service.get_all_cliplets()) == 3

    async def test_source_cleanup_failure_does_not_undo_switch(self, service, document, monkeypatch):
        for text in ("one", "two"):
            await service.add_cliplet(Cliplet.new(text))

        async def broken_delete_all(self):
            raise StorageError("database is locked")

        monkeypatch.setattr(SqliteClipletStore, "delete_all", broken_delete_all)

        assert await service.switch_storage("json") is True
        assert service.storage_kind == "json"
        assert document.storage_type == "json"
        assert sorted(c.content for c in await service.get_all_cliplets()) == ["one", "two"]


class TestKeyMigration:

    async def test_legacy_records_are_readable_and_upgraded(self, service_on):
        legacy_key = service_on.keyring.candidate("legacy").key
        legacy_blob = AesGcmCipher().encrypt_text("from before", legacy_key)
        await service_on.store.put(Cliplet(id="old", content=legacy_blob, created=1))
        await service_on.add_cliplet(Cliplet.new("from now"))

        contents = sorted(c.content for c in await service_on.get_all_cliplets())
        assert contents == ["from before", "from now"]

        assert await service_on.migrate_all_to_new_key() == 1

        current_only = service_on.keyring.current_only()
        assert sorted(current_only.decrypt(c.content) for c in await service_on.store.list()) == [
            "from before", "from now",
        ]
        assert await service_on.migrate_all_to_new_key() == 0

    async def test_unreadable_record_aborts_migration(self, service_on):
        await service_on.add_cliplet(Cliplet.new("fine"))
        before = {c.id: c.content for c in await service_on.store.list()}
        foreign = AesGcmCipher().encrypt_text("foreign", os.urandom(32))
        await service_on.store.put(Cliplet(id="x", content=foreign))

        with pytest.raises(DecryptionError):
            await service_on.migrate_all_to_new_key()

        after = {c.id: c.content for c in await service_on.store.list()}
        assert after == {**before, "x": foreign}

    async def test_keys_are_stable_across_reopen(self, service_on, config, document):
        cliplet_id = await service_on.add_cliplet(Cliplet.new("durable"))
        await service_on.close_db()

        reopened = await ClipletService.create(NAMESPACE, config=config, document=document)
        try:
            assert reopened.storage_kind == service_on.storage_kind
            assert (await reopened.get_cliplet(cliplet_id)).content == "durable"
        finally:
            await reopened.close_db()


class TestLifecycle:

    async def test_closed_handle_rejects_operations(self, service):
        await service.close_db()
        assert service.is_closed
        assert not service.has_db()
        with pytest.raises(NotInitializedError):
            await service.get_all_cliplets()
        with pytest.raises(NotInitializedError):
            await service.add_cliplet(Cliplet.new("late"))

    async def test_delete_db_removes_database(self, service, config, document):
        path = namespace_database_path(config.paths.data_dir, NAMESPACE)
        await service.add_cliplet(Cliplet.new("gone"))
        assert path.exists()

        await service.delete_db()

        assert not path.exists()
        assert service.is_closed
        assert document.latest_cliplet_id == ""
        with pytest.raises(NotInitializedError):
            await service.get_cliplet("any")

    async def test_init_shares_one_handle(self, config, document):
        first, second = await asyncio.gather(
            init(NAMESPACE, config=config, document=document),
            init(NAMESPACE, config=config, document=document),
        )
        try:
            assert first is second
            assert await init(NAMESPACE, config=config, document=document) is first
        finally:
            await first.close_db()

    async def test_init_replaces_closed_handle(self, config, document):
        first = await init(NAMESPACE, config=config, document=document)
        await first.close_db()
        second = await init(NAMESPACE, config=config, document=document)
        try:
            assert second is not first
            assert not second.is_closed
        finally:
            await second.close_db()
