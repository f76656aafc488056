"""Shared utilities for the pack builder."""

from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Optional
from urllib.parse import urlencode


class PackBuilderError(Exception):
    """Base exception for pack builder errors."""


class ConfigError(PackBuilderError):
    """Raised when configuration is invalid or missing."""


class EnumerationError(PackBuilderError):
    """Raised when local input files cannot be listed or read."""


class HashError(PackBuilderError):
    """Raised when a file cannot be read for digesting."""


class SerializationError(PackBuilderError):
    """Raised when a manifest or field value cannot be encoded or decoded."""


class StoreError(PackBuilderError):
    """Base exception for record store failures."""


class StoreReadError(StoreError):
    """Raised when a record or asset cannot be read from the store."""


class RecordNotFound(StoreReadError):
    """Raised when a record does not exist."""


class StoreWriteError(StoreError):
    """Raised when a record cannot be saved."""


class ConflictError(StoreWriteError):
    """Raised when a save loses a compare-and-swap on the change tag."""


class StoreDeleteError(StoreError):
    """Raised when a record cannot be deleted."""


class PublishError(PackBuilderError):
    """Raised when a pack could not be published. Nothing was persisted."""


class PointerSyncError(PackBuilderError):
    """Raised when the bootstrap pointer could not follow a pack change."""

    def __init__(self, message: str, pack_id: Optional[str] = None) -> None:
        super().__init__(message)
        self.pack_id = pack_id


DEFAULT_IO_BUFFER_SIZE = 8 * 1024 * 1024


def setup_logging(log_level: int = logging.INFO) -> None:
    """
    Configure global logging.

    Args:
        log_level: Logging verbosity level.
    """
    logging.basicConfig(
        level=log_level,
        format="%(asctime)s - %(levelname)s - %(name)s - %(message)s",
    )


def format_bytes(size: int) -> str:
    """
    Convert bytes to a human-readable string.

    Args:
        size: Size in bytes.

    Returns:
        Human-readable size string.
    """
    if size < 0:
        raise ValueError("Size must be non-negative.")

    units = ["B", "KB", "MB", "GB", "TB", "PB"]
    value = float(size)
    for unit in units:
        if value < 1024 or unit == units[-1]:
            return f"{value:.2f} {unit}"
        value /= 1024
    return f"{value:.2f} PB"


def get_io_buffer_size() -> int:
    """
    Read the IO buffer size from the environment.

    Returns:
        Buffer size in bytes.
    """
    value = os.getenv("IO_BUFFER_SIZE", "").strip()
    if not value:
        return DEFAULT_IO_BUFFER_SIZE
    try:
        parsed = int(value)
    except ValueError:
        return DEFAULT_IO_BUFFER_SIZE
    if parsed <= 0:
        return DEFAULT_IO_BUFFER_SIZE
    return parsed


def build_bootstrap_link(container_id: str, record_name: str, scheme: str = "packbuilder") -> str:
    """
    Build the deep link a remote device scans to resolve the latest pack.

    Args:
        container_id: Store container identifier.
        record_name: Fixed bootstrap record name.
        scheme: URI scheme registered by the consuming app.

    Returns:
        Deep link URI.
    """
    query = urlencode({"container": container_id, "record": record_name})
    return f"{scheme}://bootstrap?{query}"


def atomic_write(path: Path, data: str, mode: str = "w") -> None:
    """
    Write data atomically to a file.

    Args:
        path: Destination path.
        data: Data to write.
        mode: File mode.
    """
    path.parent.mkdir(parents=True, exist_ok=True)
    temp_path = path.with_suffix(path.suffix + ".tmp")
    with open(temp_path, mode, encoding="utf-8") as file_handle:
        file_handle.write(data)
        file_handle.flush()
        os.fsync(file_handle.fileno())
    temp_path.replace(path)
