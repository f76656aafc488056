"""Tests for the record model and field codec."""

from __future__ import annotations

import unittest
from datetime import datetime, timezone

from packbuilder.store import (
    Asset,
    RecordQuery,
    Reference,
    StoreRecord,
    decode_cursor,
    decode_field,
    encode_cursor,
    encode_field,
    record_from_dict,
    record_to_dict,
    validate_record_name,
)
from packbuilder.utils import SerializationError, StoreReadError


class TestFieldCodec(unittest.TestCase):
    def test_scalars_pass_through(self) -> None:
        for value in [None, 3, "text", 1.5, True]:
            self.assertEqual(decode_field(encode_field(value)), value)

    def test_reference_tagged(self) -> None:
        encoded = encode_field(Reference("pack-1"))
        self.assertEqual(encoded, {"$type": "reference", "recordName": "pack-1"})
        self.assertEqual(decode_field(encoded), Reference("pack-1"))

    def test_asset_keeps_metadata_only(self) -> None:
        encoded = encode_field(Asset.from_bytes(b"abc", "a.txt"))
        self.assertNotIn("data", encoded)
        decoded = decode_field(encoded)
        self.assertIsInstance(decoded, Asset)
        self.assertEqual(decoded.filename, "a.txt")
        self.assertEqual(decoded.size, 3)
        self.assertIsNone(decoded.data)

    def test_unsupported_values_rejected(self) -> None:
        with self.assertRaises(SerializationError):
            encode_field(["a"])
        with self.assertRaises(SerializationError):
            decode_field(["a"])
        with self.assertRaises(SerializationError):
            decode_field({"$type": "mystery"})

    def test_record_dict_form(self) -> None:
        created = datetime(2026, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
        record = StoreRecord(
            record_type="Bootstrap",
            record_name="bootstrap-latest",
            fields={"version": 4, "latestPack": Reference("abc")},
            change_tag="t1",
            created_at=created,
            modified_at=created,
        )
        data = record_to_dict(record)
        self.assertEqual(data["recordType"], "Bootstrap")
        self.assertEqual(data["createdAt"], created.isoformat())
        restored = record_from_dict(data)
        self.assertEqual(restored.fields["latestPack"], Reference("abc"))
        self.assertEqual(restored.created_at, created)
        self.assertEqual(restored.change_tag, "t1")

    def test_record_from_dict_rejects_bad_field_names(self) -> None:
        with self.assertRaises(SerializationError):
            record_from_dict({"recordType": "X", "fields": {"bad key": 1}})
        with self.assertRaises(SerializationError):
            record_from_dict({"fields": {}})


class TestQueryAndNames(unittest.TestCase):
    def test_query_dict_form(self) -> None:
        data = {
            "recordType": "ContentPack",
            "filters": [{"field": "version", "op": ">=", "value": 0}],
            "sortBy": "version",
            "descending": True,
        }
        query = RecordQuery.from_dict(data)
        self.assertEqual(query.to_dict(), data)

    def test_query_rejects_unknown_operator(self) -> None:
        data = {
            "recordType": "ContentPack",
            "filters": [{"field": "version", "op": "LIKE", "value": 0}],
        }
        with self.assertRaises(SerializationError):
            RecordQuery.from_dict(data)

    def test_query_rejects_injected_field(self) -> None:
        data = {"recordType": "ContentPack", "sortBy": "version') --"}
        with self.assertRaises(SerializationError):
            RecordQuery.from_dict(data)

    def test_record_names(self) -> None:
        self.assertEqual(validate_record_name("bootstrap-latest"), "bootstrap-latest")
        for name in ["../etc", "a/b", "", ".hidden", "a..b", None]:
            with self.assertRaises(SerializationError):
                validate_record_name(name)


class TestCursor(unittest.TestCase):
    def test_cursor_offsets(self) -> None:
        self.assertEqual(decode_cursor(None), 0)
        self.assertEqual(decode_cursor(encode_cursor(40)), 40)

    def test_foreign_cursor_rejected(self) -> None:
        for cursor in ["%%%", "bm90IGpzb24=", encode_cursor(-1)]:
            with self.assertRaises(StoreReadError):
                decode_cursor(cursor)


if __name__ == "__main__":
    unittest.main()
