"""JSON manifest creation and parsing logic."""

import json
from typing import Any, List, Optional, Sequence, Tuple

from ..common.constants import MAX_CUSTOM_URLS
from ..common.types import AssetEntry
from ..utils import SerializationError


def build_manifest(version: int, assets: Sequence[AssetEntry]) -> bytes:
    """
    Serialize the asset table of a pack.

    Args:
        version: Pack version
        assets: Asset entries in pack order

    Returns:
        UTF-8 JSON bytes of {"version", "assets": [{"key", "filename", "sha256"}]}

    Raises:
        SerializationError: If the manifest cannot be encoded
    """
    manifest = {
        "version": version,
        "assets": [entry.to_dict() for entry in assets],
    }
    try:
        return json.dumps(manifest, ensure_ascii=False).encode("utf-8")
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to encode manifest: {exc}") from exc


def parse_manifest(blob: bytes) -> Tuple[int, List[AssetEntry]]:
    """
    Decode a manifest blob.

    Args:
        blob: Bytes produced by build_manifest

    Returns:
        Tuple of (version, asset entries)

    Raises:
        SerializationError: If the manifest cannot be parsed
    """
    try:
        manifest = json.loads(blob.decode("utf-8"))
        version = int(manifest.get("version", 0))
        items = manifest["assets"]
        if not isinstance(items, list):
            raise TypeError("assets is not a list")
        entries = [AssetEntry.from_dict(item) for item in items]
    except (UnicodeDecodeError, ValueError, KeyError, TypeError, AttributeError) as exc:
        raise SerializationError(f"Failed to parse manifest: {exc}") from exc
    return version, entries


def limit_custom_urls(urls: Sequence[Any]) -> List[str]:
    """Keep the first MAX_CUSTOM_URLS urls, in order."""
    return [str(url) for url in list(urls)[:MAX_CUSTOM_URLS]]


def encode_custom_urls(urls: Sequence[str]) -> str:
    """
    Encode custom urls as the JSON array string stored on the pack.

    Raises:
        SerializationError: If the urls cannot be encoded
    """
    try:
        return json.dumps(list(urls))
    except (TypeError, ValueError) as exc:
        raise SerializationError(f"Failed to encode custom URLs: {exc}") from exc


def decode_custom_urls(value: Optional[str]) -> List[str]:
    """Decode the stored JSON array; anything unreadable counts as no urls."""
    if not isinstance(value, str) or not value:
        return []
    try:
        decoded = json.loads(value)
    except ValueError:
        return []
    if not isinstance(decoded, list):
        return []
    return [item for item in decoded if isinstance(item, str)]
