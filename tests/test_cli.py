"""Tests for the command-line interface."""

from __future__ import annotations

import io
import unittest
from contextlib import redirect_stdout

from packbuilder.cli import main, parse_arguments


class TestCli(unittest.TestCase):
    def test_publish_arguments(self) -> None:
        args = parse_arguments(
            ["publish", "./pack", "--version", "3", "--url", "https://a", "--url", "https://b",
             "--file", "extra.png"]
        )
        self.assertEqual(args.command, "publish")
        self.assertEqual(args.folder, "./pack")
        self.assertEqual(args.version, 3)
        self.assertEqual(args.urls, ["https://a", "https://b"])
        self.assertEqual(args.files, ["extra.png"])

    def test_publish_folder_optional(self) -> None:
        args = parse_arguments(["publish", "--version", "1", "--file", "a.txt"])
        self.assertIsNone(args.folder)

    def test_delete_arguments(self) -> None:
        args = parse_arguments(["delete", "abc123", "--yes"])
        self.assertEqual(args.pack_id, "abc123")
        self.assertTrue(args.yes)

    def test_publish_without_inputs_fails(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer), self.assertRaises(SystemExit) as ctx:
            main(["publish", "--version", "1"])
        self.assertEqual(ctx.exception.code, 1)
        self.assertIn("Error:", buffer.getvalue())

    def test_help(self) -> None:
        buffer = io.StringIO()
        with redirect_stdout(buffer):
            main(["help"])
        self.assertIn("publish", buffer.getvalue())


if __name__ == "__main__":
    unittest.main()
