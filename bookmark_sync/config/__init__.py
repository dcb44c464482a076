from __future__ import annotations

from .bookmarks import BookmarksConfig, CacheConfig, SchedulerConfig
from .infrastructure import AdminConfig, StorageConfig
from .integrations import KarakeepConfig
from .redis import RedisConfig
from .settings import AppConfig, RuntimeConfig, Settings, load_config

__all__ = [
    "AdminConfig",
    "AppConfig",
    "BookmarksConfig",
    "CacheConfig",
    "KarakeepConfig",
    "RedisConfig",
    "RuntimeConfig",
    "SchedulerConfig",
    "Settings",
    "StorageConfig",
    "load_config",
]
