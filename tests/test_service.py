"""Tests for the pack service facade."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

from packbuilder.config import Config
from packbuilder.database import SQLiteRecordStore
from packbuilder.service import PackService, create_store
from packbuilder.store import StoreRecord
from packbuilder.utils import PointerSyncError, PublishError, StoreWriteError


def _config(base: Path, **overrides) -> Config:
    values = dict(
        store_backend="sqlite",
        db_path=base / "test.db",
        blob_dir=base / "blobs",
        store_url="http://127.0.0.1:8765",
        container_id="iCloud.com.example.packs",
        bootstrap_record_name="bootstrap-latest",
        deep_link_scheme="packs",
        history_limit=50,
        query_page_size=2,
        concurrent_hashes=2,
        pointer_max_retries=3,
        pointer_retry_delay=0.0,
    )
    values.update(overrides)
    return Config(**values)


class PointerlessStore(SQLiteRecordStore):
    async def save(self, record: StoreRecord) -> StoreRecord:
        if record.record_type == "Bootstrap":
            raise StoreWriteError("bootstrap write rejected")
        return await super().save(record)


class TestPackService(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.base = Path(self.temp_dir.name)
        self.config = _config(self.base)
        self.service = PackService.from_config(self.config)
        self.source = self.base / "source"
        self.source.mkdir()
        (self.source / "index.html").write_text("<html></html>", encoding="utf-8")

    async def asyncTearDown(self) -> None:
        await self.service.close()
        self.temp_dir.cleanup()

    async def test_publish_moves_pointer(self) -> None:
        first = await self.service.publish(self.source, 1)
        self.assertEqual(await self.service.resolve_latest(), first.pack_id)

        second = await self.service.publish(self.source, 2)
        self.assertEqual(await self.service.resolve_latest(), second.pack_id)
        state = await self.service.pointer_state()
        self.assertEqual(state.version, 2)

    async def test_list_get_and_delete(self) -> None:
        results = [await self.service.publish(self.source, version) for version in [1, 2, 3]]

        packs = await self.service.list_packs()
        self.assertEqual([pack.version for pack in packs], [3, 2, 1])
        self.assertEqual(len(await self.service.list_packs(2)), 2)

        pack = await self.service.get_pack(results[0].pack_id)
        self.assertEqual([entry.filename for entry in pack.assets], ["index.html"])

        outcome = await self.service.delete_pack(results[2].pack_id)
        self.assertEqual(outcome.head_id, results[1].pack_id)
        self.assertEqual(await self.service.resolve_latest(), results[1].pack_id)

    async def test_pointer_failure_after_publish(self) -> None:
        store = PointerlessStore(self.config.db_path, self.config.blob_dir)
        service = PackService.from_config(self.config, store=store)

        with self.assertRaises(PointerSyncError) as ctx:
            await service.publish(self.source, 1)

        pack_id = ctx.exception.pack_id
        self.assertIsNotNone(pack_id)
        fetched = await self.service.get_pack(pack_id)
        self.assertEqual(fetched.version, 1)
        self.assertIsNone(await self.service.resolve_latest())

        state = await self.service.repair_pointer()
        self.assertEqual(state.pack_id, pack_id)

    async def test_publish_failure_leaves_pointer(self) -> None:
        first = await self.service.publish(self.source, 1)
        with self.assertRaises(PublishError):
            await self.service.publish(self.base / "missing", 2)
        self.assertEqual(await self.service.resolve_latest(), first.pack_id)

    async def test_concurrent_publishes_serialized(self) -> None:
        results = await asyncio.gather(
            self.service.publish(self.source, 1),
            self.service.publish(self.source, 2),
        )
        latest = await self.service.resolve_latest()
        self.assertEqual(latest, results[-1].pack_id)
        self.assertEqual(len(await self.service.list_packs()), 2)

    async def test_bootstrap_link(self) -> None:
        self.assertEqual(
            self.service.bootstrap_link(),
            "packs://bootstrap?container=iCloud.com.example.packs&record=bootstrap-latest",
        )

    async def test_create_store_backends(self) -> None:
        from packbuilder.http_store import HttpRecordStore

        sqlite_store = create_store(self.config)
        self.assertIsInstance(sqlite_store, SQLiteRecordStore)
        http_store = create_store(_config(self.base, store_backend="http"))
        self.assertIsInstance(http_store, HttpRecordStore)
        await http_store.close()


if __name__ == "__main__":
    unittest.main()
