"""HTTP record store server backed by the SQLite store."""

from __future__ import annotations

import argparse
import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional
from urllib.parse import quote

import aiofiles
from aiohttp import BodyPartReader, web

from .config import Config
from .database import SQLiteRecordStore
from .store import Asset, RecordQuery, StoreRecord, record_from_dict, record_to_dict
from .utils import (
    ConflictError,
    RecordNotFound,
    SerializationError,
    StoreError,
    StoreReadError,
    setup_logging,
)

logger = logging.getLogger(__name__)

STORE_KEY = web.AppKey("store", SQLiteRecordStore)
RECORD_PART = "record"
MAX_QUERY_LIMIT = 1000


def _error(message: str, status: int) -> web.Response:
    return web.json_response({"error": message}, status=status)


def _record_payload(record: StoreRecord) -> Dict[str, Any]:
    payload = record_to_dict(record)
    name = quote(record.record_name or "", safe="")
    for key in record.asset_fields():
        payload["fields"][key]["url"] = f"assets/{name}/{quote(key, safe='')}"
    return payload


async def health(request: web.Request) -> web.Response:
    return web.json_response({"status": "ok"})


async def get_record(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    try:
        record = await store.fetch(request.match_info["name"])
    except RecordNotFound as exc:
        return _error(str(exc), 404)
    except StoreError as exc:
        return _error(str(exc), 500)
    return web.json_response(_record_payload(record))


async def _receive_parts(
    reader: Any, staging: Path
) -> tuple[Optional[Dict[str, Any]], Dict[str, Path]]:
    record_data: Optional[Dict[str, Any]] = None
    files: Dict[str, Path] = {}
    while True:
        part = await reader.next()
        if part is None:
            break
        if not isinstance(part, BodyPartReader):
            continue
        if part.name == RECORD_PART:
            record_data = await part.json()
            continue
        if not part.name:
            continue
        target = staging / f"{len(files)}.bin"
        async with aiofiles.open(target, "wb") as outfile:
            while True:
                chunk = await part.read_chunk()
                if not chunk:
                    break
                await outfile.write(chunk)
        files[part.name] = target
    return record_data, files


async def save_record(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    staging = Path(tempfile.mkdtemp(prefix="store_upload_"))
    try:
        try:
            reader = await request.multipart()
            record_data, files = await _receive_parts(reader, staging)
        except (ValueError, KeyError, AssertionError) as exc:
            return _error(f"Malformed upload: {exc}", 400)
        if not isinstance(record_data, dict):
            return _error("Missing record part.", 400)
        try:
            record = record_from_dict(record_data)
        except SerializationError as exc:
            return _error(str(exc), 400)
        for key, asset in record.asset_fields().items():
            payload = files.get(key)
            if payload is None:
                return _error(f"Missing payload for asset field {key}.", 400)
            asset.path = payload
            asset.url = None
        try:
            saved = await store.save(record)
        except ConflictError as exc:
            return _error(str(exc), 409)
        except StoreError as exc:
            return _error(str(exc), 500)
    finally:
        shutil.rmtree(staging, ignore_errors=True)
    logger.info("Saved %s record %s", saved.record_type, saved.record_name)
    return web.json_response(_record_payload(saved))


async def delete_record(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    try:
        await store.delete(request.match_info["name"])
    except RecordNotFound as exc:
        return _error(str(exc), 404)
    except StoreError as exc:
        return _error(str(exc), 500)
    return web.Response(status=204)


async def query_records(request: web.Request) -> web.Response:
    store = request.app[STORE_KEY]
    try:
        body = await request.json()
        query = RecordQuery.from_dict(body["query"])
        limit = min(int(body.get("limit", 100)), MAX_QUERY_LIMIT)
        page = await store.query(query, cursor=body.get("cursor"), limit=limit)
    except (ValueError, KeyError, TypeError, AttributeError, SerializationError, StoreReadError) as exc:
        return _error(f"Bad query: {exc}", 400)
    except StoreError as exc:
        return _error(str(exc), 500)
    return web.json_response(
        {
            "records": [_record_payload(record) for record in page.records],
            "cursor": page.cursor,
        }
    )


async def get_asset(request: web.Request) -> web.StreamResponse:
    store = request.app[STORE_KEY]
    try:
        record = await store.fetch(request.match_info["name"])
    except RecordNotFound as exc:
        return _error(str(exc), 404)
    except StoreError as exc:
        return _error(str(exc), 500)
    asset = record.fields.get(request.match_info["field"])
    if not isinstance(asset, Asset) or asset.path is None or not asset.path.exists():
        return _error("Asset not found.", 404)
    return web.FileResponse(asset.path)


async def _close_store(app: web.Application) -> None:
    await app[STORE_KEY].close()


def create_app(store: Optional[SQLiteRecordStore] = None) -> web.Application:
    if store is None:
        config = Config.get_instance()
        store = SQLiteRecordStore(config.db_path, config.blob_dir)
    app = web.Application()
    app[STORE_KEY] = store
    app.router.add_get("/health", health)
    app.router.add_get("/records/{name}", get_record)
    app.router.add_post("/records", save_record)
    app.router.add_delete("/records/{name}", delete_record)
    app.router.add_post("/records/query", query_records)
    app.router.add_get("/assets/{name}/{field}", get_asset)
    app.on_cleanup.append(_close_store)
    return app


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Pack record store server")
    parser.add_argument("--host", default="127.0.0.1", help="Host to bind")
    parser.add_argument("--port", type=int, default=8765, help="Port to bind")
    return parser.parse_args()


def run(host: str = "127.0.0.1", port: int = 8765) -> None:
    setup_logging()
    web.run_app(create_app(), host=host, port=port)


def main() -> None:
    args = parse_args()
    run(args.host, args.port)


if __name__ == "__main__":
    main()
