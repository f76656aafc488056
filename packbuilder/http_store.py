"""Record store client for the HTTP store server."""

from __future__ import annotations

import json
import logging
from contextlib import ExitStack
from typing import Any, Dict, Optional, Type
from urllib.parse import quote, urljoin

import aiofiles
import aiohttp

from .store import (
    Asset,
    QueryPage,
    RecordQuery,
    RecordStore,
    StoreRecord,
    record_from_dict,
    record_to_dict,
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

DEFAULT_TIMEOUT = 60


async def _error_message(resp: aiohttp.ClientResponse) -> str:
    try:
        body = await resp.json(content_type=None)
    except (ValueError, aiohttp.ClientError):
        return f"HTTP {resp.status}"
    if isinstance(body, dict) and body.get("error"):
        return str(body["error"])
    return f"HTTP {resp.status}"


class HttpRecordStore(RecordStore):
    """Talks to the store server over aiohttp."""

    def __init__(
        self,
        base_url: str,
        session: Optional[aiohttp.ClientSession] = None,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        self.base_url = base_url.rstrip("/") + "/"
        self._session = session
        self._owns_session = session is None
        self._timeout = aiohttp.ClientTimeout(total=timeout)

    def _url(self, path: str) -> str:
        return urljoin(self.base_url, path)

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=self._timeout)
            self._owns_session = True
        return self._session

    def _decode(self, payload: Any, error: Type[StoreError]) -> StoreRecord:
        try:
            record = record_from_dict(payload)
        except SerializationError as exc:
            raise error(f"Malformed record from store: {exc}") from exc
        for asset in record.asset_fields().values():
            if asset.url:
                asset.url = self._url(asset.url)
        return record

    async def fetch(self, record_name: str) -> StoreRecord:
        url = self._url(f"records/{quote(record_name, safe='')}")
        try:
            async with self._get_session().get(url) as resp:
                if resp.status == 404:
                    raise RecordNotFound(await _error_message(resp))
                if resp.status != 200:
                    raise StoreReadError(await _error_message(resp))
                payload = await resp.json()
        except aiohttp.ClientError as exc:
            raise StoreReadError(f"Store request failed: {exc}") from exc
        return self._decode(payload, StoreReadError)

    async def save(self, record: StoreRecord) -> StoreRecord:
        try:
            body = json.dumps(record_to_dict(record))
        except SerializationError as exc:
            raise StoreWriteError(str(exc)) from exc

        with ExitStack() as stack:
            form = aiohttp.FormData()
            form.add_field("record", body, content_type="application/json")
            for key, asset in record.asset_fields().items():
                filename = asset.filename or key
                if asset.data is not None:
                    payload: Any = asset.data
                elif asset.path is not None:
                    try:
                        payload = stack.enter_context(open(asset.path, "rb"))
                    except OSError as exc:
                        raise StoreWriteError(f"Cannot read {asset.path}: {exc}") from exc
                else:
                    raise StoreWriteError(f"Asset field {key} has no local payload.")
                form.add_field(
                    key, payload, filename=filename, content_type="application/octet-stream"
                )
            try:
                async with self._get_session().post(self._url("records"), data=form) as resp:
                    if resp.status == 409:
                        raise ConflictError(await _error_message(resp))
                    if resp.status != 200:
                        raise StoreWriteError(await _error_message(resp))
                    result = await resp.json()
            except aiohttp.ClientError as exc:
                raise StoreWriteError(f"Store request failed: {exc}") from exc
        return self._decode(result, StoreWriteError)

    async def delete(self, record_name: str) -> None:
        url = self._url(f"records/{quote(record_name, safe='')}")
        try:
            async with self._get_session().delete(url) as resp:
                if resp.status == 404:
                    raise RecordNotFound(await _error_message(resp))
                if resp.status not in (200, 204):
                    raise StoreDeleteError(await _error_message(resp))
        except aiohttp.ClientError as exc:
            raise StoreDeleteError(f"Store request failed: {exc}") from exc

    async def query(
        self, query: RecordQuery, cursor: Optional[str] = None, limit: int = 100
    ) -> QueryPage:
        body: Dict[str, Any] = {"query": query.to_dict(), "cursor": cursor, "limit": limit}
        try:
            async with self._get_session().post(self._url("records/query"), json=body) as resp:
                if resp.status != 200:
                    raise StoreReadError(await _error_message(resp))
                payload = await resp.json()
        except aiohttp.ClientError as exc:
            raise StoreReadError(f"Store request failed: {exc}") from exc
        try:
            items = payload["records"]
            next_cursor = payload.get("cursor")
        except (KeyError, TypeError, AttributeError) as exc:
            raise StoreReadError(f"Malformed query page: {exc}") from exc
        return QueryPage(
            records=[self._decode(item, StoreReadError) for item in items],
            cursor=next_cursor,
        )

    async def read_asset(self, asset: Asset) -> bytes:
        if asset.data is not None:
            return asset.data
        if asset.url:
            try:
                async with self._get_session().get(asset.url) as resp:
                    if resp.status != 200:
                        raise StoreReadError(await _error_message(resp))
                    return await resp.read()
            except aiohttp.ClientError as exc:
                raise StoreReadError(f"Asset download failed: {exc}") from exc
        if asset.path is not None:
            try:
                async with aiofiles.open(asset.path, "rb") as infile:
                    return await infile.read()
            except OSError as exc:
                raise StoreReadError(f"Cannot read asset {asset.path.name}: {exc}") from exc
        raise StoreReadError("Asset has no payload location.")

    async def close(self) -> None:
        if self._session is not None and self._owns_session and not self._session.closed:
            await self._session.close()
        self._session = None
