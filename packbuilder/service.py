"""Pack service: the consumer interface over one store and one pointer."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Sequence

from .common.types import ContentPack, DeleteOutcome, PackSummary, PointerState, PublishResult
from .config import Config
from .deleter import PackDeleter
from .history import HistoryLister
from .pointer import BootstrapPointer
from .publisher import PackPublisher, ProgressCallback
from .store import RecordStore
from .utils import PointerSyncError, StoreError, build_bootstrap_link

logger = logging.getLogger(__name__)


def create_store(config: Config) -> RecordStore:
    """
    Build the record store selected by the configuration.

    Args:
        config: Loaded configuration.

    Returns:
        SQLite or HTTP record store.
    """
    if config.store_backend == "http":
        from .http_store import HttpRecordStore

        return HttpRecordStore(config.store_url)
    from .database import SQLiteRecordStore

    return SQLiteRecordStore(config.db_path, config.blob_dir)


class PackService:
    """
    Publishes, lists and deletes packs and keeps the bootstrap pointer in step.

    Publish and delete calls on one service run one at a time.
    """

    def __init__(
        self,
        store: RecordStore,
        bootstrap_record_name: str,
        container_id: str = "packbuilder.default",
        deep_link_scheme: str = "packbuilder",
        history_limit: int = 200,
        page_size: int = 100,
        concurrent_hashes: int = 5,
        pointer_max_retries: int = 3,
        pointer_retry_delay: float = 0.05,
    ) -> None:
        self.store = store
        self.container_id = container_id
        self.deep_link_scheme = deep_link_scheme
        self.history_limit = history_limit
        self.publisher = PackPublisher(store, max_concurrency=concurrent_hashes)
        self.pointer = BootstrapPointer(
            store,
            bootstrap_record_name,
            max_retries=pointer_max_retries,
            retry_delay=pointer_retry_delay,
        )
        self.lister = HistoryLister(store, page_size=page_size)
        self.deleter = PackDeleter(store, self.lister, self.pointer, history_limit=history_limit)
        self._lock = asyncio.Lock()

    @classmethod
    def from_config(
        cls, config: Optional[Config] = None, store: Optional[RecordStore] = None
    ) -> "PackService":
        config = config or Config.get_instance()
        return cls(
            store or create_store(config),
            config.bootstrap_record_name,
            container_id=config.container_id,
            deep_link_scheme=config.deep_link_scheme,
            history_limit=config.history_limit,
            page_size=config.query_page_size,
            concurrent_hashes=config.concurrent_hashes,
            pointer_max_retries=config.pointer_max_retries,
            pointer_retry_delay=config.pointer_retry_delay,
        )

    async def publish(
        self,
        folder: Optional[Path],
        version: int,
        custom_urls: Sequence[str] = (),
        extra_files: Iterable[Path] = (),
        progress_callback: Optional[ProgressCallback] = None,
    ) -> PublishResult:
        """
        Publish a pack and point the bootstrap record at it.

        Raises:
            PublishError: If the pack was not created.
            PointerSyncError: If the pack exists but the pointer was not moved.
        """
        async with self._lock:
            result = await self.publisher.publish(
                folder,
                version,
                custom_urls=custom_urls,
                extra_files=extra_files,
                progress_callback=progress_callback,
            )
            try:
                await self.pointer.move_to(result.pack_id, result.version)
            except StoreError as exc:
                logger.error("Pack %s published but pointer move failed: %s", result.pack_id, exc)
                raise PointerSyncError(
                    f"Pack {result.pack_id} was published but the bootstrap pointer "
                    f"could not be updated: {exc}",
                    pack_id=result.pack_id,
                ) from exc
            return result

    async def list_packs(self, limit: Optional[int] = None) -> List[PackSummary]:
        return await self.lister.list(self.history_limit if limit is None else limit)

    async def get_pack(self, pack_id: str) -> ContentPack:
        return await self.lister.get_pack(pack_id)

    async def delete_pack(self, pack_id: str) -> DeleteOutcome:
        async with self._lock:
            return await self.deleter.delete(pack_id)

    async def resolve_latest(self) -> Optional[str]:
        return await self.pointer.resolve()

    async def pointer_state(self) -> PointerState:
        return await self.pointer.fetch_state()

    async def repair_pointer(self) -> PointerState:
        """Re-run the pointer recompute, e.g. after a failed delete."""
        async with self._lock:
            return await self.deleter.recompute_pointer()

    def bootstrap_link(self) -> str:
        return build_bootstrap_link(
            self.container_id, self.pointer.record_name, self.deep_link_scheme
        )

    async def close(self) -> None:
        await self.store.close()

    async def __aenter__(self) -> "PackService":
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.close()
