"""Type definitions and data models."""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

from ..store import Asset


@dataclass
class AssetEntry:
    """One file of a content pack."""
    key: str
    filename: str
    sha256: Optional[str] = None
    asset: Optional[Asset] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the manifest item form."""
        return {
            "key": self.key,
            "filename": self.filename,
            "sha256": self.sha256,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "AssetEntry":
        """Create from a manifest item."""
        return cls(
            key=data["key"],
            filename=data["filename"],
            sha256=data.get("sha256"),
        )


@dataclass
class ContentPack:
    """A published pack as read back from the store."""
    pack_id: str
    version: int
    assets: List[AssetEntry] = field(default_factory=list)
    custom_urls: List[str] = field(default_factory=list)
    created_at: Optional[datetime] = None
    manifest: Optional[Asset] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pack_id": self.pack_id,
            "version": self.version,
            "assets": [entry.to_dict() for entry in self.assets],
            "custom_urls": self.custom_urls,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass
class PackSummary:
    """History row for one pack."""
    pack_id: str
    version: int
    asset_count: int
    created_at: Optional[datetime] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "pack_id": self.pack_id,
            "version": self.version,
            "asset_count": self.asset_count,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@dataclass(frozen=True)
class PublishResult:
    pack_id: str
    version: int
    asset_count: int


@dataclass(frozen=True)
class PointerState:
    """Current content of the bootstrap record."""
    version: int
    pack_id: Optional[str] = None

    @property
    def cleared(self) -> bool:
        return self.pack_id is None


@dataclass(frozen=True)
class DeleteOutcome:
    """Result of a delete and the pointer recompute that followed it."""
    pack_id: str
    head_id: Optional[str] = None
    head_version: Optional[int] = None
