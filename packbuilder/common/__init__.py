"""Common types and constants."""

from .constants import ASSET_PREFIX, MAX_CUSTOM_URLS, MAX_KEY_LENGTH
from .types import AssetEntry, ContentPack, DeleteOutcome, PackSummary, PointerState, PublishResult

__all__ = [
    "ASSET_PREFIX",
    "MAX_CUSTOM_URLS",
    "MAX_KEY_LENGTH",
    "AssetEntry",
    "ContentPack",
    "DeleteOutcome",
    "PackSummary",
    "PointerState",
    "PublishResult",
]
