"""Pack history: paginated listing and per-pack detail."""

from __future__ import annotations

import logging
from typing import List, Optional

from .common.constants import (
    ASSET_PREFIX,
    CUSTOM_URLS_FIELD,
    MANIFEST_FIELD,
    PACK_RECORD_TYPE,
    VERSION_FIELD,
)
from .common.types import AssetEntry, ContentPack, PackSummary
from .core.manifest import decode_custom_urls, parse_manifest
from .store import Asset, FieldFilter, RecordQuery, RecordStore, StoreRecord
from .utils import RecordNotFound, SerializationError, StoreReadError

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 100


def _version_of(record: StoreRecord) -> int:
    version = record.fields.get(VERSION_FIELD)
    if isinstance(version, bool) or not isinstance(version, int):
        return 0
    return version


class HistoryLister:
    """Reads pack records back from the store, newest version first."""

    def __init__(self, store: RecordStore, page_size: int = DEFAULT_PAGE_SIZE) -> None:
        self.store = store
        self.page_size = page_size

    async def list(self, limit: int) -> List[PackSummary]:
        """
        List up to ``limit`` packs sorted by version, highest first.

        Args:
            limit: Maximum number of packs returned.

        Returns:
            Pack summaries.

        Raises:
            StoreReadError: If a page cannot be read.
        """
        if limit <= 0:
            return []
        query = RecordQuery(
            record_type=PACK_RECORD_TYPE,
            filters=(FieldFilter(VERSION_FIELD, ">=", 0),),
            sort_by=VERSION_FIELD,
            descending=True,
        )
        summaries: List[PackSummary] = []
        cursor: Optional[str] = None
        while True:
            page = await self.store.query(query, cursor=cursor, limit=self.page_size)
            for record in page.records:
                summaries.append(await self._summarize(record))
            cursor = page.cursor
            if cursor is None or len(summaries) >= limit:
                break

        summaries.sort(key=lambda item: item.version, reverse=True)
        return summaries[:limit]

    async def get_pack(self, pack_id: str) -> ContentPack:
        """
        Read one pack with its ordered asset list.

        The manifest gives the order. Without one, asset fields are listed
        by key.

        Raises:
            RecordNotFound: If no such pack exists.
            StoreReadError: If the record cannot be read.
        """
        record = await self.store.fetch(pack_id)
        if record.record_type != PACK_RECORD_TYPE:
            raise RecordNotFound(f"Record {pack_id} is not a content pack.")

        manifest = record.fields.get(MANIFEST_FIELD)
        if not isinstance(manifest, Asset):
            manifest = None
        entries = await self._manifest_entries(record) if manifest else []
        for entry in entries:
            value = record.fields.get(entry.key)
            if isinstance(value, Asset):
                entry.asset = value
        if not entries:
            entries = [
                AssetEntry(
                    key=key,
                    filename=record.fields[key].filename or key[len(ASSET_PREFIX):],
                    asset=record.fields[key],
                )
                for key in sorted(record.keys_with_prefix(ASSET_PREFIX))
                if isinstance(record.fields[key], Asset)
            ]

        return ContentPack(
            pack_id=record.record_name,
            version=_version_of(record),
            assets=entries,
            custom_urls=decode_custom_urls(record.fields.get(CUSTOM_URLS_FIELD)),
            created_at=record.created_at,
            manifest=manifest,
        )

    async def read_asset(self, asset: Asset) -> bytes:
        return await self.store.read_asset(asset)

    async def _manifest_entries(self, record: StoreRecord) -> List[AssetEntry]:
        try:
            blob = await self.store.read_asset(record.fields[MANIFEST_FIELD])
            _, entries = parse_manifest(blob)
        except (StoreReadError, SerializationError) as exc:
            logger.warning("Unreadable manifest on pack %s: %s", record.record_name, exc)
            return []
        return entries

    async def _summarize(self, record: StoreRecord) -> PackSummary:
        count = len(record.keys_with_prefix(ASSET_PREFIX))
        if count == 0 and isinstance(record.fields.get(MANIFEST_FIELD), Asset):
            count = len(await self._manifest_entries(record))
        return PackSummary(
            pack_id=record.record_name,
            version=_version_of(record),
            asset_count=count,
            created_at=record.created_at,
        )
