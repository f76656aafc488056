"""Tests for the FastAPI publisher service."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

from fastapi.testclient import TestClient

from packbuilder.api import app, get_service
from packbuilder.database import SQLiteRecordStore
from packbuilder.service import PackService


class TestPackApi(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        base = Path(self.temp_dir.name)
        store = SQLiteRecordStore(base / "test.db", base / "blobs")
        self.service = PackService(
            store,
            "bootstrap-latest",
            container_id="iCloud.com.example.packs",
            pointer_retry_delay=0,
        )
        app.dependency_overrides[get_service] = lambda: self.service
        self.client = TestClient(app)

    def tearDown(self) -> None:
        app.dependency_overrides.clear()
        asyncio.run(self.service.close())
        self.temp_dir.cleanup()

    def _publish(self, version: int, urls=None):
        files = [
            ("files", ("a.txt", b"alpha", "text/plain")),
            ("files", ("b.txt", b"beta", "text/plain")),
        ]
        data = {"version": str(version), "custom_urls": urls or []}
        return self.client.post("/api/packs", data=data, files=files)

    def test_health(self) -> None:
        response = self.client.get("/api/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})

    def test_publish_and_resolve(self) -> None:
        response = self._publish(3, ["https://example.com/a", " ", "https://example.com/b"])
        self.assertEqual(response.status_code, 200)
        body = response.json()
        self.assertEqual(body["version"], 3)
        self.assertEqual(body["asset_count"], 2)

        bootstrap = self.client.get("/api/bootstrap").json()
        self.assertEqual(bootstrap["pack_id"], body["pack_id"])
        self.assertEqual(bootstrap["version"], 3)
        self.assertIn("record=bootstrap-latest", bootstrap["link"])

        detail = self.client.get(f"/api/packs/{body['pack_id']}").json()
        self.assertEqual([asset["key"] for asset in detail["assets"]], ["asset_a_txt", "asset_b_txt"])
        self.assertEqual(detail["assets"][0]["size"], 5)
        self.assertEqual(detail["custom_urls"], ["https://example.com/a", "https://example.com/b"])

    def test_list_packs(self) -> None:
        for version in [1, 4, 2]:
            self.assertEqual(self._publish(version).status_code, 200)
        packs = self.client.get("/api/packs").json()
        self.assertEqual([pack["version"] for pack in packs], [4, 2, 1])
        limited = self.client.get("/api/packs", params={"limit": 1}).json()
        self.assertEqual(len(limited), 1)

    def test_delete_moves_pointer(self) -> None:
        older = self._publish(1).json()["pack_id"]
        head = self._publish(2).json()["pack_id"]

        response = self.client.delete(f"/api/packs/{head}")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["head_id"], older)

        response = self.client.delete(f"/api/packs/{older}")
        self.assertIsNone(response.json()["head_id"])
        bootstrap = self.client.get("/api/bootstrap").json()
        self.assertIsNone(bootstrap["pack_id"])
        self.assertEqual(bootstrap["version"], 0)

    def test_not_found(self) -> None:
        self.assertEqual(self.client.get("/api/packs/missing").status_code, 404)
        response = self.client.delete("/api/packs/missing")
        self.assertEqual(response.status_code, 404)
        self.assertIn("detail", response.json())

    def test_bootstrap_record_not_deletable(self) -> None:
        pack_id = self._publish(1).json()["pack_id"]
        response = self.client.delete("/api/packs/bootstrap-latest")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(self.client.get("/api/bootstrap").json()["pack_id"], pack_id)

    def test_negative_version_rejected(self) -> None:
        self.assertEqual(self._publish(-1).status_code, 400)

    def test_repair(self) -> None:
        pack_id = self._publish(5).json()["pack_id"]
        response = self.client.post("/api/bootstrap/repair")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["pack_id"], pack_id)


if __name__ == "__main__":
    unittest.main()
