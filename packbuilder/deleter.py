"""Pack deletion and the pointer recompute that follows it."""

from __future__ import annotations

import logging

from .common.constants import PACK_RECORD_TYPE
from .common.types import DeleteOutcome, PointerState
from .history import HistoryLister
from .pointer import BootstrapPointer
from .store import RecordStore
from .utils import PointerSyncError, RecordNotFound, StoreError

logger = logging.getLogger(__name__)

DEFAULT_HISTORY_LIMIT = 200


class PackDeleter:
    """
    Deletes a pack, then re-points the bootstrap record at the new head.

    The two phases are not atomic. If the second one fails the pointer may
    still name the deleted pack until recompute_pointer() runs again.
    """

    def __init__(
        self,
        store: RecordStore,
        lister: HistoryLister,
        pointer: BootstrapPointer,
        history_limit: int = DEFAULT_HISTORY_LIMIT,
    ) -> None:
        self.store = store
        self.lister = lister
        self.pointer = pointer
        self.history_limit = history_limit

    async def delete(self, pack_id: str) -> DeleteOutcome:
        """
        Delete a pack and recompute the pointer.

        Args:
            pack_id: Record name of the pack.

        Returns:
            DeleteOutcome naming the new head, if any.

        Raises:
            RecordNotFound: If no content pack has that id. The pointer was not touched.
            StoreError: If the delete failed. The pointer was not touched.
            PointerSyncError: If the pack is gone but the pointer could not follow.
        """
        record = await self.store.fetch(pack_id)
        if record.record_type != PACK_RECORD_TYPE:
            raise RecordNotFound(f"Record {pack_id} is not a content pack.")
        await self.store.delete(pack_id)
        logger.info("Deleted pack %s", pack_id)
        try:
            state = await self.recompute_pointer()
        except StoreError as exc:
            logger.error("Pack %s deleted but pointer recompute failed: %s", pack_id, exc)
            raise PointerSyncError(
                f"Pack {pack_id} was deleted but the bootstrap pointer could not be updated: {exc}",
                pack_id=pack_id,
            ) from exc
        return DeleteOutcome(
            pack_id=pack_id,
            head_id=state.pack_id,
            head_version=None if state.cleared else state.version,
        )

    async def recompute_pointer(self) -> PointerState:
        """Move the pointer to the highest remaining version, or clear it."""
        packs = await self.lister.list(self.history_limit)
        if packs:
            head = packs[0]
            return await self.pointer.move_to(head.pack_id, head.version)
        return await self.pointer.clear()
