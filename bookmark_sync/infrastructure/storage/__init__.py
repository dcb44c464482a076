from __future__ import annotations

from typing import TYPE_CHECKING

from bookmark_sync.infrastructure.storage.base import ObjectStore, StorageError
from bookmark_sync.infrastructure.storage.filesystem_store import FileSystemObjectStore
from bookmark_sync.infrastructure.storage.redis_store import RedisObjectStore

if TYPE_CHECKING:
    from bookmark_sync.config import AppConfig


def build_object_store(cfg: AppConfig) -> ObjectStore:
    """Create the object store selected by ``BOOKMARKS_STORAGE_BACKEND``."""
    if cfg.storage.backend == "redis":
        return RedisObjectStore(cfg.redis)
    return FileSystemObjectStore(cfg.storage.directory)


__all__ = [
    "FileSystemObjectStore",
    "ObjectStore",
    "RedisObjectStore",
    "StorageError",
    "build_object_store",
]
