"""Record store model, field codec and the backend interface."""

from __future__ import annotations

import abc
import base64
import binascii
import json
import re
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

from .utils import SerializationError, StoreReadError

FILTER_OPERATORS = ("=", "!=", ">", ">=", "<", "<=")
FIELD_NAME_RE = re.compile(r"^[A-Za-z][A-Za-z0-9_]{0,254}$")
RECORD_NAME_RE = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,254}$")
TYPE_TAG = "$type"


@dataclass(frozen=True)
class Reference:
    """Pointer from one record to another. Deleting the target does not cascade."""

    record_name: str


@dataclass
class Asset:
    """File payload attached to a record field."""

    path: Optional[Path] = None
    url: Optional[str] = None
    data: Optional[bytes] = None
    filename: Optional[str] = None
    size: Optional[int] = None

    @classmethod
    def from_file(cls, path: Path) -> "Asset":
        return cls(path=path, filename=path.name)

    @classmethod
    def from_bytes(cls, data: bytes, filename: str) -> "Asset":
        return cls(data=data, filename=filename, size=len(data))


@dataclass
class StoreRecord:
    """One record as held by the store."""

    record_type: str
    record_name: Optional[str] = None
    fields: Dict[str, Any] = field(default_factory=dict)
    change_tag: Optional[str] = None
    created_at: Optional[datetime] = None
    modified_at: Optional[datetime] = None

    def keys_with_prefix(self, prefix: str) -> List[str]:
        return [key for key in self.fields if key.startswith(prefix)]

    def asset_fields(self) -> Dict[str, Asset]:
        return {key: value for key, value in self.fields.items() if isinstance(value, Asset)}


@dataclass(frozen=True)
class FieldFilter:
    field: str
    op: str
    value: Any


@dataclass(frozen=True)
class RecordQuery:
    """Filtered, sorted query over one record type."""

    record_type: str
    filters: Tuple[FieldFilter, ...] = ()
    sort_by: Optional[str] = None
    descending: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "recordType": self.record_type,
            "filters": [
                {"field": item.field, "op": item.op, "value": item.value}
                for item in self.filters
            ],
            "sortBy": self.sort_by,
            "descending": self.descending,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RecordQuery":
        try:
            filters = tuple(
                FieldFilter(item["field"], item["op"], item["value"])
                for item in data.get("filters", [])
            )
            query = cls(
                record_type=str(data["recordType"]),
                filters=filters,
                sort_by=data.get("sortBy"),
                descending=bool(data.get("descending", False)),
            )
        except (KeyError, TypeError) as exc:
            raise SerializationError(f"Malformed query: {exc}") from exc
        validate_query(query)
        return query


@dataclass
class QueryPage:
    records: List[StoreRecord]
    cursor: Optional[str] = None


def validate_field_name(name: str) -> str:
    """
    Check that a field name is safe to store and to query on.

    Args:
        name: Field key.

    Returns:
        The same name.

    Raises:
        SerializationError: If the name is not store-safe.
    """
    if not isinstance(name, str) or not FIELD_NAME_RE.match(name):
        raise SerializationError(f"Invalid field name: {name!r}")
    return name


def validate_record_name(name: Any) -> str:
    """
    Check that a record name is safe to use as an identity and a path segment.

    Raises:
        SerializationError: If the name is not store-safe.
    """
    if not isinstance(name, str) or not RECORD_NAME_RE.match(name) or ".." in name:
        raise SerializationError(f"Invalid record name: {name!r}")
    return name


def validate_query(query: RecordQuery) -> None:
    for item in query.filters:
        validate_field_name(item.field)
        if item.op not in FILTER_OPERATORS:
            raise SerializationError(f"Unsupported filter operator: {item.op!r}")
        if isinstance(item.value, bool) or not isinstance(item.value, (int, float, str)):
            raise SerializationError(f"Unsupported filter value for {item.field}.")
    if query.sort_by is not None:
        validate_field_name(query.sort_by)


def encode_field(value: Any) -> Any:
    """
    Encode a field value into its tagged JSON form.

    Args:
        value: Field value.

    Returns:
        JSON-compatible value.
    """
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    if isinstance(value, Reference):
        return {TYPE_TAG: "reference", "recordName": value.record_name}
    if isinstance(value, Asset):
        return {
            TYPE_TAG: "asset",
            "filename": value.filename,
            "size": value.size,
            "url": value.url,
        }
    raise SerializationError(f"Unsupported field value type: {type(value).__name__}")


def decode_field(value: Any) -> Any:
    """
    Decode a tagged JSON field value.

    Args:
        value: JSON value as stored.

    Returns:
        Field value.
    """
    if not isinstance(value, dict):
        if isinstance(value, list):
            raise SerializationError("List field values are not supported.")
        return value
    kind = value.get(TYPE_TAG)
    if kind == "reference" and isinstance(value.get("recordName"), str):
        return Reference(value["recordName"])
    if kind == "asset":
        return Asset(
            url=value.get("url"),
            filename=value.get("filename"),
            size=value.get("size"),
        )
    raise SerializationError(f"Unknown field value: {value!r}")


def _format_time(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError as exc:
        raise SerializationError(f"Invalid timestamp: {value!r}") from exc


def record_to_dict(record: StoreRecord) -> Dict[str, Any]:
    return {
        "recordType": record.record_type,
        "recordName": record.record_name,
        "fields": {key: encode_field(value) for key, value in record.fields.items()},
        "changeTag": record.change_tag,
        "createdAt": _format_time(record.created_at),
        "modifiedAt": _format_time(record.modified_at),
    }


def record_from_dict(data: Dict[str, Any]) -> StoreRecord:
    try:
        fields = {
            validate_field_name(key): decode_field(value)
            for key, value in (data.get("fields") or {}).items()
        }
        return StoreRecord(
            record_type=str(data["recordType"]),
            record_name=data.get("recordName"),
            fields=fields,
            change_tag=data.get("changeTag"),
            created_at=_parse_time(data.get("createdAt")),
            modified_at=_parse_time(data.get("modifiedAt")),
        )
    except (KeyError, AttributeError, TypeError) as exc:
        raise SerializationError(f"Malformed record: {exc}") from exc


def encode_cursor(offset: int) -> str:
    raw = json.dumps({"offset": offset}).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii")


def decode_cursor(cursor: Optional[str]) -> int:
    """
    Decode an opaque continuation cursor.

    Raises:
        StoreReadError: If the cursor was not produced by this store.
    """
    if not cursor:
        return 0
    try:
        payload = json.loads(base64.urlsafe_b64decode(cursor.encode("ascii")))
        offset = int(payload["offset"])
    except (binascii.Error, UnicodeError, ValueError, KeyError, TypeError) as exc:
        raise StoreReadError("Invalid query cursor.") from exc
    if offset < 0:
        raise StoreReadError("Invalid query cursor.")
    return offset


class RecordStore(abc.ABC):
    """
    Remote record store: CRUD by record name plus filtered, paginated query.

    ``save`` creates the record when ``change_tag`` is None (a named record
    that already exists is a conflict) and otherwise updates it only if the
    stored change tag still matches.
    """

    @abc.abstractmethod
    async def fetch(self, record_name: str) -> StoreRecord:
        """Return the record or raise RecordNotFound."""

    @abc.abstractmethod
    async def save(self, record: StoreRecord) -> StoreRecord:
        """Create or compare-and-swap update a record; return the stored copy."""

    @abc.abstractmethod
    async def delete(self, record_name: str) -> None:
        """Delete a record and its attached payloads."""

    @abc.abstractmethod
    async def query(
        self, query: RecordQuery, cursor: Optional[str] = None, limit: int = 100
    ) -> QueryPage:
        """Return one page of matching records and the cursor of the next page."""

    @abc.abstractmethod
    async def read_asset(self, asset: Asset) -> bytes:
        """Return the bytes of an attached payload."""

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "RecordStore":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
