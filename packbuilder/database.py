"""SQLite-backed record store."""

from __future__ import annotations

import asyncio
import json
import logging
import os
import shutil
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from queue import Empty, Full, Queue
from threading import Lock
from typing import Any, Dict, Iterator, List, Optional, Sequence, Type
from uuid import uuid4

import aiofiles

from .store import (
    Asset,
    FieldFilter,
    QueryPage,
    RecordQuery,
    RecordStore,
    StoreRecord,
    decode_cursor,
    decode_field,
    encode_cursor,
    encode_field,
    validate_field_name,
    validate_query,
    validate_record_name,
)
from .utils import (
    ConflictError,
    RecordNotFound,
    SerializationError,
    StoreDeleteError,
    StoreError,
    StoreReadError,
    StoreWriteError,
)

logger = logging.getLogger(__name__)


BASE_DIR = Path(__file__).resolve().parents[1]
DEFAULT_DB_PATH = BASE_DIR / "packstore.db"
STAGING_DIR_NAME = ".staging"
_POOL_LOCK = Lock()
_POOLS: Dict[Path, "ConnectionPool"] = {}


class ConnectionPool:
    """Simple SQLite connection pool with hard limit."""

    def __init__(self, db_path: Path, maxsize: int = 5) -> None:
        self.db_path = db_path
        self.maxsize = maxsize
        self._queue: Queue[sqlite3.Connection] = Queue(maxsize=maxsize)
        self._active_count: int = 0
        self._count_lock = Lock()

    def acquire(self) -> sqlite3.Connection:
        try:
            return self._queue.get_nowait()
        except Empty:
            with self._count_lock:
                if self._active_count >= self.maxsize:
                    # Block until a connection is available
                    return self._queue.get(block=True, timeout=30)
                self._active_count += 1
            return self._create_connection()

    def release(self, conn: sqlite3.Connection) -> None:
        try:
            self._queue.put_nowait(conn)
        except Full:
            with self._count_lock:
                self._active_count -= 1
            conn.close()

    def close_all(self) -> None:
        while True:
            try:
                conn = self._queue.get_nowait()
            except Empty:
                break
            with self._count_lock:
                self._active_count -= 1
            conn.close()

    def _create_connection(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self.db_path, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn


def _get_pool(db_path: Path) -> ConnectionPool:
    with _POOL_LOCK:
        if db_path not in _POOLS:
            _POOLS[db_path] = ConnectionPool(db_path)
        return _POOLS[db_path]


def close_pool(db_path: Path) -> None:
    """
    Close every idle pooled connection for a database file.

    Args:
        db_path: Database file whose pool is dropped.
    """
    with _POOL_LOCK:
        pool = _POOLS.pop(db_path, None)
    if pool is not None:
        pool.close_all()


@contextmanager
def get_connection(
    db_path: Optional[Path] = None, error: Type[StoreError] = StoreError
) -> Iterator[sqlite3.Connection]:
    """
    Get a pooled database connection with transaction management.

    Args:
        db_path: Optional path override for database file.
        error: Store error raised when SQLite fails.
    """
    path = db_path or DEFAULT_DB_PATH
    pool = _get_pool(path)
    conn = pool.acquire()
    try:
        conn.execute("BEGIN")
        yield conn
        conn.commit()
    except sqlite3.Error as exc:
        conn.rollback()
        raise error(str(exc)) from exc
    except BaseException:
        conn.rollback()
        raise
    finally:
        pool.release(conn)


def init_database(db_path: Optional[Path] = None) -> None:
    """
    Initialize the SQLite database schema.

    Args:
        db_path: Optional path override for database file.
    """
    path = db_path or DEFAULT_DB_PATH
    path.parent.mkdir(parents=True, exist_ok=True)

    if path.exists() and not os.access(path, os.R_OK | os.W_OK):
        raise StoreError(f"Database file exists but is not readable/writable: {path}")
    schema = """
    CREATE TABLE IF NOT EXISTS records (
        record_name TEXT PRIMARY KEY,
        record_type TEXT NOT NULL,
        fields TEXT NOT NULL,
        change_tag TEXT NOT NULL,
        created_at TEXT NOT NULL,
        modified_at TEXT NOT NULL
    );

    CREATE INDEX IF NOT EXISTS idx_record_type ON records(record_type);
    """

    with get_connection(path) as conn:
        conn.executescript(schema)


def get_record(record_name: str, db_path: Optional[Path] = None) -> Optional[Dict[str, Any]]:
    """
    Retrieve one record row.

    Args:
        record_name: Record identifier.
        db_path: Optional path override for database file.

    Returns:
        Row dict or None.
    """
    query = "SELECT * FROM records WHERE record_name = ?"
    with get_connection(db_path, StoreReadError) as conn:
        row = conn.execute(query, (record_name,)).fetchone()
    return dict(row) if row else None


def insert_record(row: Dict[str, Any], db_path: Optional[Path] = None) -> bool:
    """
    Insert a new record row.

    Args:
        row: Column values.
        db_path: Optional path override for database file.

    Returns:
        False if a record with the same name already exists.
    """
    query = """
    INSERT INTO records (
        record_name, record_type, fields, change_tag, created_at, modified_at
    ) VALUES (?, ?, ?, ?, ?, ?)
    """
    values = (
        row["record_name"],
        row["record_type"],
        row["fields"],
        row["change_tag"],
        row["created_at"],
        row["modified_at"],
    )
    with get_connection(db_path, StoreWriteError) as conn:
        exists = conn.execute(
            "SELECT 1 FROM records WHERE record_name = ?", (row["record_name"],)
        ).fetchone()
        if exists:
            return False
        conn.execute(query, values)
    return True


def update_record(
    row: Dict[str, Any], expected_tag: str, db_path: Optional[Path] = None
) -> bool:
    """
    Replace a record row if its change tag still matches.

    Args:
        row: New column values.
        expected_tag: Change tag the caller read.
        db_path: Optional path override for database file.

    Returns:
        False if the record is gone or was changed in the meantime.
    """
    query = """
    UPDATE records
    SET record_type = ?, fields = ?, change_tag = ?, modified_at = ?
    WHERE record_name = ? AND change_tag = ?
    """
    values = (
        row["record_type"],
        row["fields"],
        row["change_tag"],
        row["modified_at"],
        row["record_name"],
        expected_tag,
    )
    with get_connection(db_path, StoreWriteError) as conn:
        cursor = conn.execute(query, values)
        return cursor.rowcount == 1


def delete_record(record_name: str, db_path: Optional[Path] = None) -> bool:
    """
    Delete a record row.

    Args:
        record_name: Record identifier.
        db_path: Optional path override for database file.

    Returns:
        False if no such record existed.
    """
    query = "DELETE FROM records WHERE record_name = ?"
    with get_connection(db_path, StoreDeleteError) as conn:
        cursor = conn.execute(query, (record_name,))
        return cursor.rowcount == 1


def query_records(
    record_type: str,
    filters: Sequence[FieldFilter] = (),
    sort_by: Optional[str] = None,
    descending: bool = False,
    offset: int = 0,
    limit: int = 100,
    db_path: Optional[Path] = None,
) -> List[Dict[str, Any]]:
    """
    Select record rows of one type.

    Field names must already be validated; they are interpolated into the
    json_extract paths.

    Args:
        record_type: Record type to match.
        filters: Field comparisons, all of which must hold.
        sort_by: Optional field to order by.
        descending: Sort direction.
        offset: Rows to skip.
        limit: Maximum rows to return.
        db_path: Optional path override for database file.

    Returns:
        List of row dicts.
    """
    clauses = ["record_type = ?"]
    params: List[Any] = [record_type]
    for item in filters:
        clauses.append(f"json_extract(fields, '$.{item.field}') {item.op} ?")
        params.append(item.value)
    direction = "DESC" if descending else "ASC"
    order = f"created_at {direction}, record_name {direction}"
    if sort_by:
        order = f"json_extract(fields, '$.{sort_by}') {direction}, {order}"
    query = (
        f"SELECT * FROM records WHERE {' AND '.join(clauses)} "
        f"ORDER BY {order} LIMIT ? OFFSET ?"
    )
    params.extend([limit, offset])
    with get_connection(db_path, StoreReadError) as conn:
        rows = conn.execute(query, params).fetchall()
    return [dict(row) for row in rows]


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


class SQLiteRecordStore(RecordStore):
    """
    Record store kept in one SQLite file, with payloads under a blob directory.

    Payloads of a record live in ``blob_dir/<record_name>/<field_key>``. They
    are staged before the row is written and moved into place afterwards, so
    a failed write leaves no payload behind.
    """

    def __init__(self, db_path: Optional[Path] = None, blob_dir: Optional[Path] = None) -> None:
        self.db_path = Path(db_path or DEFAULT_DB_PATH)
        self.blob_dir = Path(blob_dir or self.db_path.parent / "blobs")
        self.blob_dir.mkdir(parents=True, exist_ok=True)
        init_database(self.db_path)

    async def fetch(self, record_name: str) -> StoreRecord:
        self._check_name(record_name, StoreReadError)
        row = await asyncio.to_thread(get_record, record_name, self.db_path)
        if row is None:
            raise RecordNotFound(f"Record not found: {record_name}")
        return self._row_to_record(row, StoreReadError)

    async def save(self, record: StoreRecord) -> StoreRecord:
        return await asyncio.to_thread(self._save_sync, record)

    async def delete(self, record_name: str) -> None:
        self._check_name(record_name, StoreDeleteError)
        deleted = await asyncio.to_thread(delete_record, record_name, self.db_path)
        if not deleted:
            raise RecordNotFound(f"Record not found: {record_name}")
        shutil.rmtree(self._blob_path(record_name), ignore_errors=True)
        logger.debug("Deleted record %s", record_name)

    async def query(
        self, query: RecordQuery, cursor: Optional[str] = None, limit: int = 100
    ) -> QueryPage:
        try:
            validate_query(query)
        except SerializationError as exc:
            raise StoreReadError(str(exc)) from exc
        if limit <= 0:
            raise StoreReadError("Query limit must be greater than 0.")
        offset = decode_cursor(cursor)
        rows = await asyncio.to_thread(
            query_records,
            query.record_type,
            query.filters,
            query.sort_by,
            query.descending,
            offset,
            limit + 1,
            self.db_path,
        )
        next_cursor = encode_cursor(offset + limit) if len(rows) > limit else None
        records = [self._row_to_record(row, StoreReadError) for row in rows[:limit]]
        return QueryPage(records=records, cursor=next_cursor)

    async def read_asset(self, asset: Asset) -> bytes:
        if asset.data is not None:
            return asset.data
        if asset.path is None:
            raise StoreReadError("Asset has no local payload.")
        try:
            async with aiofiles.open(asset.path, "rb") as infile:
                return await infile.read()
        except OSError as exc:
            raise StoreReadError(f"Cannot read asset {asset.path.name}: {exc}") from exc

    async def close(self) -> None:
        close_pool(self.db_path)

    @staticmethod
    def _check_name(record_name: str, error: Type[StoreError]) -> None:
        try:
            validate_record_name(record_name)
        except SerializationError as exc:
            raise error(str(exc)) from exc

    def _blob_path(self, record_name: str) -> Path:
        return self.blob_dir / record_name

    def _row_to_record(self, row: Dict[str, Any], error: Type[StoreError]) -> StoreRecord:
        try:
            raw_fields = json.loads(row["fields"])
            fields = {key: decode_field(value) for key, value in raw_fields.items()}
            record = StoreRecord(
                record_type=row["record_type"],
                record_name=row["record_name"],
                fields=fields,
                change_tag=row["change_tag"],
                created_at=datetime.fromisoformat(row["created_at"]),
                modified_at=datetime.fromisoformat(row["modified_at"]),
            )
        except (ValueError, AttributeError, SerializationError) as exc:
            raise error(f"Corrupt record {row.get('record_name')}: {exc}") from exc
        for key, asset in record.asset_fields().items():
            asset.path = self._blob_path(record.record_name) / key
        return record

    def _stage_assets(self, record: StoreRecord, staging: Path) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for key, value in record.fields.items():
            validate_field_name(key)
            if not isinstance(value, Asset):
                fields[key] = encode_field(value)
                continue
            target = staging / key
            if value.data is not None:
                target.write_bytes(value.data)
            elif value.path is not None:
                shutil.copyfile(value.path, target)
            else:
                raise StoreWriteError(f"Asset field {key} has no local payload.")
            stored = Asset(
                filename=value.filename or key,
                size=target.stat().st_size,
            )
            fields[key] = encode_field(stored)
        return fields

    def _publish_blobs(self, staging: Path, record_name: str) -> None:
        target = self._blob_path(record_name)
        shutil.rmtree(target, ignore_errors=True)
        if any(staging.iterdir()):
            staging.replace(target)

    def _drop_row(self, record_name: str) -> None:
        try:
            delete_record(record_name, self.db_path)
        except StoreError as exc:
            logger.error("Could not roll back record %s: %s", record_name, exc)

    def _save_sync(self, record: StoreRecord) -> StoreRecord:
        record_name = record.record_name or uuid4().hex
        self._check_name(record_name, StoreWriteError)
        staging = self.blob_dir / STAGING_DIR_NAME / uuid4().hex
        staging.mkdir(parents=True, exist_ok=True)
        try:
            try:
                fields = self._stage_assets(record, staging)
                encoded = json.dumps(fields)
            except SerializationError as exc:
                raise StoreWriteError(str(exc)) from exc
            except OSError as exc:
                raise StoreWriteError(f"Cannot stage payload: {exc}") from exc

            now = _now()
            row = {
                "record_name": record_name,
                "record_type": record.record_type,
                "fields": encoded,
                "change_tag": uuid4().hex,
                "created_at": now,
                "modified_at": now,
            }
            if record.change_tag is None:
                if not insert_record(row, self.db_path):
                    raise ConflictError(f"Record already exists: {record_name}")
            elif not update_record(row, record.change_tag, self.db_path):
                raise ConflictError(f"Record changed or removed: {record_name}")

            try:
                self._publish_blobs(staging, record_name)
            except OSError as exc:
                if record.change_tag is None:
                    self._drop_row(record_name)
                raise StoreWriteError(
                    f"Cannot move payloads into place for {record_name}: {exc}"
                ) from exc
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        saved = get_record(record_name, self.db_path)
        if saved is None:
            raise StoreWriteError(f"Record vanished after save: {record_name}")
        return self._row_to_record(saved, StoreWriteError)
