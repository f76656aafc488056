"""Publish versioned content packs and resolve the latest one."""

from .service import PackService, create_store

__all__ = ["PackService", "create_store"]
__version__ = "0.1.0"
