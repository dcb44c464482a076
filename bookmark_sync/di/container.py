"""Explicit wiring of the bookmark engine.

Every collaborator is built once here and passed down; nothing in the engine
initializes itself on import. The host (FastAPI lifespan, CLI script) owns the
container and calls :meth:`BookmarkEngine.close` on shutdown.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any

from bookmark_sync.adapters.karakeep import KarakeepBookmarkFetcher
from bookmark_sync.bookmarks.cache import BookmarkCache, MemoryCache, WebhookRenderInvalidator
from bookmark_sync.bookmarks.keys import BookmarkKeys
from bookmark_sync.bookmarks.lock import DistributedLock
from bookmark_sync.bookmarks.reader import BookmarkReader
from bookmark_sync.bookmarks.refresh import RefreshOrchestrator
from bookmark_sync.bookmarks.store import BookmarkStore
from bookmark_sync.core.time_utils import epoch_ms
from bookmark_sync.infrastructure.redis import close_redis
from bookmark_sync.infrastructure.storage import RedisObjectStore, build_object_store

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookmark_sync.bookmarks.refresh import FetchBookmarks
    from bookmark_sync.config import AppConfig
    from bookmark_sync.infrastructure.storage import ObjectStore

logger = logging.getLogger(__name__)


class BookmarkEngine:
    """Container holding one fully wired engine.

    Example:
        engine = BookmarkEngine(load_config())
        try:
            index = await engine.orchestrator.refresh_and_persist()
        finally:
            await engine.close()

    Args:
        cfg: Application configuration.
        object_store: Overrides the store selected by ``BOOKMARKS_STORAGE_BACKEND``.
        fetch_bookmarks: Overrides the Karakeep fetch callback.
        instance_id: Lock owner identity (defaults to pid + random suffix).
        clock: Epoch-millisecond clock shared by the lock and the orchestrator.
    """

    def __init__(
        self,
        cfg: AppConfig,
        *,
        object_store: ObjectStore | None = None,
        fetch_bookmarks: FetchBookmarks | None = None,
        instance_id: str | None = None,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.cfg = cfg
        self.objects = object_store or build_object_store(cfg)
        self.keys = BookmarkKeys(
            env_suffix=cfg.runtime.env_suffix,
            root=cfg.bookmarks.key_root,
        )
        self.store = BookmarkStore(
            self.objects,
            self.keys,
            page_size=cfg.bookmarks.page_size,
            enable_tag_persistence=cfg.bookmarks.enable_tag_persistence,
            max_tags_to_persist=cfg.bookmarks.max_tags_to_persist,
        )
        self.lock = DistributedLock(
            self.objects,
            self.keys,
            instance_id=instance_id,
            ttl_ms=cfg.bookmarks.lock_ttl_ms,
            max_retries=cfg.bookmarks.lock_max_retries,
            clock=clock,
        )

        self.memory_cache = MemoryCache.from_config(cfg.cache)
        self.cache = BookmarkCache(self.memory_cache)
        if cfg.cache.render_invalidation_url:
            self.cache.add_invalidator(
                WebhookRenderInvalidator(
                    cfg.cache.render_invalidation_url,
                    token=cfg.cache.render_invalidation_token,
                )
            )

        self.fetch_bookmarks = fetch_bookmarks or KarakeepBookmarkFetcher(cfg.karakeep)
        self.reader = BookmarkReader(self.store, self.memory_cache)
        self.orchestrator = RefreshOrchestrator(
            self.store,
            self.lock,
            self.fetch_bookmarks,
            cache=self.cache,
            min_bookmarks_threshold=cfg.bookmarks.min_bookmarks_threshold,
            clock=clock,
        )

        logger.info(
            "bookmark_engine_initialized",
            extra={
                "environment": cfg.runtime.environment,
                "storage_backend": type(self.objects).__name__,
                "key_root": self.keys.root,
                "instance_id": self.lock.instance_id,
            },
        )

    async def status(self) -> dict[str, Any]:
        """Snapshot used by the admin status endpoint."""
        index = await self.store.read_index()
        heartbeat = await self.store.read_heartbeat()
        holder = await self.lock.read_holder()
        report = self.orchestrator.last_report
        return {
            "environment": self.cfg.runtime.environment,
            "state": self.orchestrator.state.value,
            "in_progress": self.orchestrator.in_progress,
            "index": index.to_json() if index else None,
            "heartbeat": heartbeat.to_json() if heartbeat else None,
            "lock": holder.to_json() if holder else None,
            "last_refresh": report.to_dict() if report else None,
            "cache": self.memory_cache.get_stats(),
        }

    async def close(self) -> None:
        if isinstance(self.objects, RedisObjectStore):
            await close_redis()
        logger.info("bookmark_engine_closed")
