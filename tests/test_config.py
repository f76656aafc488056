"""Tests for configuration loading."""

from __future__ import annotations

import os
import tempfile
import unittest
from pathlib import Path
from unittest import mock

from packbuilder.config import Config, load_config, save_config
from packbuilder.utils import ConfigError


class TestLoadConfig(unittest.TestCase):
    def setUp(self) -> None:
        self.temp_dir = tempfile.TemporaryDirectory()
        self.env_file = Path(self.temp_dir.name) / ".env"

    def tearDown(self) -> None:
        Config.reset_instance()
        self.temp_dir.cleanup()

    def test_defaults(self) -> None:
        with mock.patch.dict(os.environ, {}, clear=True):
            config = load_config(self.env_file)
        self.assertEqual(config.store_backend, "sqlite")
        self.assertEqual(config.bootstrap_record_name, "bootstrap-latest")
        self.assertEqual(config.history_limit, 200)
        self.assertEqual(config.query_page_size, 100)
        self.assertEqual(config.concurrent_hashes, 5)
        self.assertEqual(config.pointer_max_retries, 3)
        self.assertEqual(config.db_path.name, "packstore.db")

    def test_environment_overrides(self) -> None:
        env = {
            "STORE_BACKEND": "HTTP",
            "STORE_URL": "http://store.local:9000/",
            "HISTORY_LIMIT": "20",
            "POINTER_RETRY_DELAY": "0",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            config = load_config(self.env_file)
        self.assertEqual(config.store_backend, "http")
        self.assertEqual(config.store_url, "http://store.local:9000")
        self.assertEqual(config.history_limit, 20)
        self.assertEqual(config.pointer_retry_delay, 0.0)

    def test_invalid_values(self) -> None:
        cases = [
            {"STORE_BACKEND": "s3"},
            {"HISTORY_LIMIT": "0"},
            {"QUERY_PAGE_SIZE": "ten"},
            {"POINTER_RETRY_DELAY": "-1"},
            {"BOOTSTRAP_RECORD_NAME": " "},
        ]
        for env in cases:
            with self.subTest(env=env), mock.patch.dict(os.environ, env, clear=True):
                with self.assertRaises(ConfigError):
                    load_config(self.env_file)

    def test_saved_file_is_loaded(self) -> None:
        with mock.patch.dict(os.environ, {"CONTAINER_ID": "iCloud.com.example"}, clear=True):
            config = load_config(self.env_file)
        save_config(config, self.env_file)
        self.assertIn("CONTAINER_ID=iCloud.com.example", self.env_file.read_text(encoding="utf-8"))

        with mock.patch.dict(os.environ, {}, clear=True):
            reloaded = load_config(self.env_file)
        self.assertEqual(reloaded, config)

    def test_singleton(self) -> None:
        with mock.patch.dict(os.environ, {"HISTORY_LIMIT": "7"}, clear=True):
            Config.reset_instance()
            first = Config.get_instance()
            second = Config.get_instance()
        self.assertIs(first, second)
        self.assertEqual(first.history_limit, 7)


if __name__ == "__main__":
    unittest.main()
