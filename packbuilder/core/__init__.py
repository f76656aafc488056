"""Core pack logic (Pure Python, no store code)."""

from .hashing import digest, hash_file
from .keys import AssetKeyAllocator, allocate_key, sanitize_key
from .manifest import (
    build_manifest,
    decode_custom_urls,
    encode_custom_urls,
    limit_custom_urls,
    parse_manifest,
)

__all__ = [
    "digest",
    "hash_file",
    "AssetKeyAllocator",
    "allocate_key",
    "sanitize_key",
    "build_manifest",
    "parse_manifest",
    "limit_custom_urls",
    "encode_custom_urls",
    "decode_custom_urls",
]
