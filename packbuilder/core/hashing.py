"""Content digests for pack assets."""

import hashlib
from pathlib import Path
from typing import Optional

import aiofiles

from ..utils import HashError, get_io_buffer_size


def digest(data: bytes) -> str:
    """
    Compute the SHA-256 fingerprint of raw bytes.

    Args:
        data: Bytes to hash

    Returns:
        64-character hex digest
    """
    return hashlib.sha256(data).hexdigest()


async def hash_file(file_path: Path, buffer_size: Optional[int] = None) -> str:
    """
    Stream a file through SHA-256.

    Args:
        file_path: File to hash
        buffer_size: Read size; defaults to IO_BUFFER_SIZE

    Returns:
        64-character hex digest, equal to digest() of the file bytes

    Raises:
        HashError: If the file cannot be read
    """
    hasher = hashlib.sha256()
    size = buffer_size or get_io_buffer_size()
    try:
        async with aiofiles.open(file_path, "rb") as infile:
            while True:
                chunk = await infile.read(size)
                if not chunk:
                    break
                hasher.update(chunk)
    except OSError as exc:
        raise HashError(f"Cannot read {file_path}: {exc}") from exc
    return hasher.hexdigest()
