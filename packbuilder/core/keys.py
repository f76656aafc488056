"""Store-safe field keys for pack assets."""

import re
from typing import Iterable, Optional, Set

from ..common.constants import (
    ASSET_PREFIX,
    EMPTY_KEY_FALLBACK,
    KEY_SUFFIX_RESERVE,
    MAX_KEY_LENGTH,
)

_UNSAFE_RUN = re.compile(r"[^A-Za-z0-9]+")


def sanitize_key(filename: str) -> str:
    """
    Turn a filename into an asset field key.

    Every run of characters outside [A-Za-z0-9] becomes one underscore,
    outer underscores are trimmed and the result is prefixed with ``asset_``.

    Args:
        filename: Original display name

    Returns:
        Key of at most 255 characters
    """
    core = _UNSAFE_RUN.sub("_", filename).strip("_")
    if not core:
        core = EMPTY_KEY_FALLBACK
    return (ASSET_PREFIX + core)[:MAX_KEY_LENGTH]


def with_suffix(proposed: str, index: int) -> str:
    suffix = f"_{index}"
    base = proposed
    if len(base) > MAX_KEY_LENGTH - KEY_SUFFIX_RESERVE:
        base = base[: MAX_KEY_LENGTH - KEY_SUFFIX_RESERVE]
    return base[: MAX_KEY_LENGTH - len(suffix)] + suffix


class AssetKeyAllocator:
    """
    Hands out unique keys within one pack.

    Suffixes depend on the order of allocate() calls, so callers must feed
    filenames in a reproducible order.
    """

    def __init__(self, used_keys: Optional[Iterable[str]] = None) -> None:
        self.used_keys: Set[str] = set(used_keys or ())

    def allocate(self, filename: str) -> str:
        proposed = sanitize_key(filename)
        key = proposed
        index = 2
        while key in self.used_keys:
            key = with_suffix(proposed, index)
            index += 1
        self.used_keys.add(key)
        return key


def allocate_key(filename: str, used_keys: Set[str]) -> str:
    """
    Allocate a key for filename that is not in used_keys, and record it there.

    Args:
        filename: Original display name
        used_keys: Keys already taken in the same pack (updated in place)

    Returns:
        Unique key
    """
    allocator = AssetKeyAllocator()
    allocator.used_keys = used_keys
    return allocator.allocate(filename)
