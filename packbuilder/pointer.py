"""Bootstrap pointer: the single mutable record naming the latest pack."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Tuple

from .common.constants import (
    BOOTSTRAP_RECORD_TYPE,
    CLEARED_VERSION,
    LATEST_PACK_FIELD,
    VERSION_FIELD,
)
from .common.types import PointerState
from .store import RecordStore, Reference, StoreRecord
from .utils import ConflictError, RecordNotFound, StoreReadError

logger = logging.getLogger(__name__)

DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY = 0.05


def _state_of(record: StoreRecord) -> PointerState:
    version = record.fields.get(VERSION_FIELD)
    if isinstance(version, bool) or not isinstance(version, int):
        version = CLEARED_VERSION
    latest = record.fields.get(LATEST_PACK_FIELD)
    pack_id = latest.record_name if isinstance(latest, Reference) else None
    return PointerState(version=version, pack_id=pack_id)


class BootstrapPointer:
    """
    Reads and moves the bootstrap record.

    Writes are compare-and-swap on the record's change tag. A lost race is
    retried from a fresh read, with doubling backoff.
    """

    def __init__(
        self,
        store: RecordStore,
        record_name: str,
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay: float = DEFAULT_RETRY_DELAY,
    ) -> None:
        self.store = store
        self.record_name = record_name
        self.max_retries = max(1, max_retries)
        self.retry_delay = retry_delay

    async def move_to(self, pack_id: str, version: int) -> PointerState:
        """
        Point the bootstrap record at a pack.

        Args:
            pack_id: Record name of the pack.
            version: Version of that pack.

        Returns:
            The state that was written.

        Raises:
            ConflictError: If every attempt lost a concurrent update.
            StoreReadError: If the record exists but the last read of it failed.
            StoreWriteError: If the record cannot be saved.
        """

        def _apply(record: StoreRecord) -> None:
            record.fields[VERSION_FIELD] = version
            record.fields[LATEST_PACK_FIELD] = Reference(pack_id)

        state = await self._update(_apply)
        logger.info("Bootstrap pointer %s -> %s (version %s)", self.record_name, pack_id, version)
        return state

    async def clear(self) -> PointerState:
        """Reset the bootstrap record to no pack, version 0."""

        def _apply(record: StoreRecord) -> None:
            record.fields[VERSION_FIELD] = CLEARED_VERSION
            record.fields[LATEST_PACK_FIELD] = None

        state = await self._update(_apply)
        logger.info("Bootstrap pointer %s cleared", self.record_name)
        return state

    async def resolve(self) -> Optional[str]:
        """
        Return the pack id the pointer names, or None.

        Raises:
            StoreReadError: If the record exists but cannot be read.
        """
        state = await self.fetch_state()
        return state.pack_id

    async def fetch_state(self) -> PointerState:
        try:
            record = await self.store.fetch(self.record_name)
        except RecordNotFound:
            return PointerState(version=CLEARED_VERSION)
        return _state_of(record)

    async def _load_or_create(self) -> Tuple[StoreRecord, Optional[StoreReadError]]:
        try:
            return await self.store.fetch(self.record_name), None
        except RecordNotFound:
            logger.info("Bootstrap record %s does not exist yet", self.record_name)
            read_error = None
        except StoreReadError as exc:
            logger.warning(
                "Could not read bootstrap record %s, treating it as absent: %s",
                self.record_name,
                exc,
            )
            read_error = exc
        record = StoreRecord(record_type=BOOTSTRAP_RECORD_TYPE, record_name=self.record_name)
        return record, read_error

    async def _update(self, apply: Callable[[StoreRecord], None]) -> PointerState:
        delay = self.retry_delay
        for attempt in range(1, self.max_retries + 1):
            record, read_error = await self._load_or_create()
            apply(record)
            try:
                saved = await self.store.save(record)
            except ConflictError:
                if attempt == self.max_retries:
                    if read_error is not None:
                        raise StoreReadError(
                            f"Bootstrap record {self.record_name} exists but cannot be read: "
                            f"{read_error}"
                        ) from read_error
                    raise
                logger.warning(
                    "Bootstrap record %s changed concurrently, retrying (%s/%s)",
                    self.record_name,
                    attempt,
                    self.max_retries,
                )
                await asyncio.sleep(delay)
                delay *= 2
                continue
            return _state_of(saved)
        raise ConflictError(f"Bootstrap record {self.record_name} kept changing.")
