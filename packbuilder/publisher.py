"""Publish workflow: collect, hash, key and persist one content pack."""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional, Sequence

from .common.constants import (
    CUSTOM_URLS_FIELD,
    MANIFEST_FIELD,
    MANIFEST_FILENAME,
    PACK_RECORD_TYPE,
    VERSION_FIELD,
)
from .common.types import AssetEntry, PublishResult
from .core.hashing import hash_file
from .core.keys import AssetKeyAllocator
from .core.manifest import build_manifest, encode_custom_urls, limit_custom_urls
from .store import Asset, RecordStore, StoreRecord
from .utils import (
    EnumerationError,
    HashError,
    PublishError,
    SerializationError,
    StoreError,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, int], None]
DEFAULT_CONCURRENT_HASHES = 5


def _is_candidate(entry: os.DirEntry) -> bool:
    if entry.name.startswith("."):
        return False
    try:
        return entry.is_file()
    except OSError:
        return False


def collect_files(
    folder: Optional[Path], extra_files: Iterable[Path] = ()
) -> List[Path]:
    """
    List the files that make up a pack.

    Regular, non-hidden files directly inside ``folder`` plus every extra
    file, de-duplicated by resolved path and sorted by (filename, path).

    Args:
        folder: Source directory, or None when only extra files are given.
        extra_files: Files picked individually.

    Returns:
        Absolute file paths in publish order.

    Raises:
        EnumerationError: If the folder or an extra file cannot be read.
    """
    found: Dict[Path, Path] = {}
    if folder is not None:
        folder = Path(folder).expanduser()
        if not folder.is_dir():
            raise EnumerationError(f"Folder not found: {folder}")
        try:
            with os.scandir(folder) as entries:
                for entry in entries:
                    if _is_candidate(entry):
                        path = Path(entry.path).resolve()
                        found[path] = path
        except OSError as exc:
            raise EnumerationError(f"Cannot list {folder}: {exc}") from exc

    for item in extra_files:
        path = Path(item).expanduser()
        if not path.is_file():
            raise EnumerationError(f"File not found: {path}")
        resolved = path.resolve()
        found[resolved] = resolved

    return sorted(found.values(), key=lambda path: (path.name, str(path)))


async def hash_files(
    paths: Sequence[Path],
    max_concurrency: int = DEFAULT_CONCURRENT_HASHES,
    progress_callback: Optional[ProgressCallback] = None,
) -> List[str]:
    """
    Hash files concurrently with a semaphore.

    Args:
        paths: Files to hash.
        max_concurrency: Max files hashed at once.
        progress_callback: Optional (done, total) callback.

    Returns:
        Hex digests, in the order of ``paths``.
    """
    semaphore = asyncio.Semaphore(max_concurrency)
    results: Dict[int, str] = {}
    total = len(paths)

    async def _hash(index: int, path: Path) -> None:
        async with semaphore:
            results[index] = await hash_file(path)
            if progress_callback:
                progress_callback(len(results), total)

    tasks = [asyncio.create_task(_hash(idx, path)) for idx, path in enumerate(paths)]
    try:
        await asyncio.gather(*tasks)
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise
    return [results[index] for index in range(total)]


async def snapshot_files(
    paths: Sequence[Path],
    staging_dir: Path,
    max_concurrency: int = DEFAULT_CONCURRENT_HASHES,
) -> List[Path]:
    """
    Copy files into a staging directory so later reads see fixed content.

    Each copy keeps its source filename under a per-index subdirectory.

    Raises:
        EnumerationError: If a file cannot be copied.
    """
    semaphore = asyncio.Semaphore(max_concurrency)

    async def _copy(index: int, path: Path) -> Path:
        target = staging_dir / str(index) / path.name
        async with semaphore:
            try:
                target.parent.mkdir(parents=True)
                await asyncio.to_thread(shutil.copyfile, path, target)
            except OSError as exc:
                raise EnumerationError(f"Cannot read {path}: {exc}") from exc
        return target

    tasks = [asyncio.create_task(_copy(idx, path)) for idx, path in enumerate(paths)]
    try:
        return list(await asyncio.gather(*tasks))
    except BaseException:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        raise


class PackPublisher:
    """Builds a content pack from local files and creates it in one save."""

    def __init__(
        self, store: RecordStore, max_concurrency: int = DEFAULT_CONCURRENT_HASHES
    ) -> None:
        self.store = store
        self.max_concurrency = max_concurrency

    async def publish(
        self,
        folder: Optional[Path],
        version: int,
        custom_urls: Sequence[str] = (),
        extra_files: Iterable[Path] = (),
        progress_callback: Optional[ProgressCallback] = None,
    ) -> PublishResult:
        """
        Publish a new content pack.

        Does not touch the bootstrap pointer.

        Args:
            folder: Source directory (may be None).
            version: Caller-chosen version number.
            custom_urls: Extra links; only the first five are kept.
            extra_files: Files to include in addition to the folder.
            progress_callback: Optional (hashed, total) callback.

        Returns:
            PublishResult of the created pack.

        Raises:
            PublishError: If any step fails. Nothing is cleaned up.
        """
        if isinstance(version, bool) or not isinstance(version, int) or version < 0:
            raise PublishError(f"Publish failed: invalid version {version!r}")
        try:
            with tempfile.TemporaryDirectory(
                prefix="pack_publish_", ignore_cleanup_errors=True
            ) as staging:
                record, entries = await self._assemble(
                    folder, version, custom_urls, extra_files, progress_callback, Path(staging)
                )
                saved = await self.store.save(record)
        except (EnumerationError, HashError, SerializationError, StoreError) as exc:
            logger.error("Publish of version %s failed: %s", version, exc)
            raise PublishError(f"Publish failed: {exc}") from exc

        logger.info(
            "Published pack %s (version %s, %s assets)",
            saved.record_name,
            version,
            len(entries),
        )
        return PublishResult(
            pack_id=saved.record_name, version=version, asset_count=len(entries)
        )

    async def _assemble(
        self,
        folder: Optional[Path],
        version: int,
        custom_urls: Sequence[str],
        extra_files: Iterable[Path],
        progress_callback: Optional[ProgressCallback],
        staging: Path,
    ) -> tuple[StoreRecord, List[AssetEntry]]:
        paths = await snapshot_files(
            collect_files(folder, extra_files), staging, self.max_concurrency
        )
        digests = await hash_files(paths, self.max_concurrency, progress_callback)

        record = StoreRecord(record_type=PACK_RECORD_TYPE)
        allocator = AssetKeyAllocator()
        entries: List[AssetEntry] = []
        for path, sha256 in zip(paths, digests):
            key = allocator.allocate(path.name)
            asset = Asset.from_file(path)
            entries.append(AssetEntry(key=key, filename=path.name, sha256=sha256, asset=asset))
            record.fields[key] = asset

        record.fields[VERSION_FIELD] = version
        urls = limit_custom_urls(custom_urls)
        if urls:
            record.fields[CUSTOM_URLS_FIELD] = encode_custom_urls(urls)
        record.fields[MANIFEST_FIELD] = Asset.from_bytes(
            build_manifest(version, entries), MANIFEST_FILENAME
        )
        return record, entries
