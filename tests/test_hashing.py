"""Tests for content hashing."""

from __future__ import annotations

import asyncio
import tempfile
import unittest
from pathlib import Path

from packbuilder.core.hashing import digest, hash_file
from packbuilder.utils import HashError


class TestDigest(unittest.TestCase):
    def test_known_value(self) -> None:
        self.assertEqual(
            digest(b"abc"),
            "ba7816bf8f01cfea414140de5dae2223b00361a396177a9cb410ff61f20015ad",
        )

    def test_deterministic_and_distinct(self) -> None:
        self.assertEqual(digest(b"pack"), digest(b"pack"))
        self.assertNotEqual(digest(b"pack"), digest(b"pack!"))


class TestHashFile(unittest.TestCase):
    def test_matches_digest_with_small_buffer(self) -> None:
        data = b"0123456789" * 1000
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "data.bin"
            path.write_bytes(data)
            result = asyncio.run(hash_file(path, buffer_size=7))
        self.assertEqual(result, digest(data))

    def test_empty_file(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            path = Path(temp_dir) / "empty"
            path.write_bytes(b"")
            self.assertEqual(asyncio.run(hash_file(path)), digest(b""))

    def test_missing_file_raises(self) -> None:
        with tempfile.TemporaryDirectory() as temp_dir:
            with self.assertRaises(HashError):
                asyncio.run(hash_file(Path(temp_dir) / "missing.bin"))


if __name__ == "__main__":
    unittest.main()
