"""Tests for asset key allocation."""

from __future__ import annotations

import re
import unittest

from packbuilder.core.keys import AssetKeyAllocator, allocate_key, sanitize_key

KEY_PATTERN = re.compile(r"^asset_[A-Za-z0-9_]*$")


class TestSanitizeKey(unittest.TestCase):
    def test_runs_of_unsafe_characters_collapse(self) -> None:
        self.assertEqual(sanitize_key("my file (1).png"), "asset_my_file_1_png")

    def test_outer_underscores_trimmed(self) -> None:
        self.assertEqual(sanitize_key("__draft__.txt"), "asset_draft_txt")

    def test_empty_core_falls_back(self) -> None:
        self.assertEqual(sanitize_key("!!!"), "asset_file")
        self.assertEqual(sanitize_key(""), "asset_file")

    def test_non_ascii_replaced(self) -> None:
        key = sanitize_key("café menü.json")
        self.assertRegex(key, KEY_PATTERN)
        self.assertEqual(key, "asset_caf_men_json")

    def test_long_names_truncated(self) -> None:
        key = sanitize_key("a" * 400 + ".bin")
        self.assertEqual(len(key), 255)
        self.assertTrue(key.startswith("asset_aaa"))


class TestAssetKeyAllocator(unittest.TestCase):
    def test_keys_are_store_safe(self) -> None:
        allocator = AssetKeyAllocator()
        for name in ["a b.txt", "ü/../x.png", "#", "x" * 300, "data.tar.gz"]:
            key = allocator.allocate(name)
            self.assertRegex(key, KEY_PATTERN)
            self.assertLessEqual(len(key), 255)

    def test_collision_gets_numeric_suffix(self) -> None:
        allocator = AssetKeyAllocator()
        first = allocator.allocate("a b.txt")
        second = allocator.allocate("a-b.txt")
        third = allocator.allocate("a_b.txt")
        self.assertEqual(first, "asset_a_b_txt")
        self.assertEqual(second, "asset_a_b_txt_2")
        self.assertEqual(third, "asset_a_b_txt_3")
        self.assertEqual(allocator.used_keys, {first, second, third})

    def test_collision_on_long_key_stays_within_limit(self) -> None:
        allocator = AssetKeyAllocator()
        first = allocator.allocate("a" * 300)
        second = allocator.allocate("a" * 301)
        self.assertEqual(len(first), 255)
        self.assertNotEqual(first, second)
        self.assertTrue(second.endswith("_2"))
        self.assertLessEqual(len(second), 255)

    def test_deterministic_for_fixed_order(self) -> None:
        names = ["x.txt", "x-txt", "x txt", "y.txt"]
        first = [AssetKeyAllocator().allocate(name) for name in names]
        allocator_a = AssetKeyAllocator()
        allocator_b = AssetKeyAllocator()
        self.assertEqual(
            [allocator_a.allocate(name) for name in names],
            [allocator_b.allocate(name) for name in names],
        )
        self.assertEqual(first[0], "asset_x_txt")

    def test_allocate_key_updates_shared_set(self) -> None:
        used = {"asset_report_pdf"}
        key = allocate_key("report.pdf", used)
        self.assertEqual(key, "asset_report_pdf_2")
        self.assertIn(key, used)


if __name__ == "__main__":
    unittest.main()
