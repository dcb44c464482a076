"""In-process TTL cache in front of the bookmark store.

Nothing here is a module singleton: the engine container builds one
:class:`MemoryCache` and passes it to whoever needs it.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Protocol

import httpx

if TYPE_CHECKING:
    from collections.abc import Callable

    from bookmark_sync.config import CacheConfig

logger = logging.getLogger(__name__)

BOOKMARKS_CACHE_PREFIX = "bookmarks:"
INDEX_CACHE_KEY = "bookmarks:index"
ALL_BOOKMARKS_CACHE_KEY = "bookmarks:all"


def page_cache_key(page: int) -> str:
    return f"bookmarks:page:{page}"


def tag_page_cache_key(tag_slug: str, page: int) -> str:
    return f"bookmarks:tag:{tag_slug}:page:{page}"


def slug_cache_key(slug: str) -> str:
    return f"bookmarks:slug:{slug}"


@dataclass(slots=True)
class _CacheEntry:
    value: Any
    expires_at: float


class MemoryCache:
    """Dictionary cache with per-entry TTL and hit/miss counters.

    Expired entries are dropped lazily on access. ``set_lookup`` picks the
    success or failure TTL so failed upstream lookups are retried sooner than
    stable results are refetched.
    """

    def __init__(
        self,
        *,
        default_ttl_seconds: float = 300,
        success_ttl_seconds: float = 86_400,
        failure_ttl_seconds: float = 3_600,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.default_ttl_seconds = default_ttl_seconds
        self.success_ttl_seconds = success_ttl_seconds
        self.failure_ttl_seconds = failure_ttl_seconds
        self._clock = clock
        self._entries: dict[str, _CacheEntry] = {}
        self._hits = 0
        self._misses = 0

    @classmethod
    def from_config(cls, cfg: CacheConfig) -> MemoryCache:
        return cls(
            default_ttl_seconds=cfg.ttl_seconds,
            success_ttl_seconds=cfg.success_ttl_seconds,
            failure_ttl_seconds=cfg.failure_ttl_seconds,
        )

    def _live_entry(self, key: str) -> _CacheEntry | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        if entry.expires_at <= self._clock():
            del self._entries[key]
            return None
        return entry

    def get(self, key: str) -> Any | None:
        entry = self._live_entry(key)
        if entry is None:
            self._misses += 1
            return None
        self._hits += 1
        return entry.value

    def contains(self, key: str) -> bool:
        """Whether *key* holds a live entry (a cached ``None`` counts); no stats."""
        return self._live_entry(key) is not None

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self.default_ttl_seconds if ttl_seconds is None else ttl_seconds
        if ttl <= 0:
            self._entries.pop(key, None)
            return
        self._entries[key] = _CacheEntry(value=value, expires_at=self._clock() + ttl)

    def set_lookup(self, key: str, value: Any, *, success: bool) -> None:
        self.set(key, value, self.success_ttl_seconds if success else self.failure_ttl_seconds)

    def delete(self, key: str) -> bool:
        return self._entries.pop(key, None) is not None

    def delete_prefix(self, prefix: str) -> int:
        doomed = [key for key in self._entries if key.startswith(prefix)]
        for key in doomed:
            del self._entries[key]
        return len(doomed)

    def flush_all(self) -> None:
        self._entries.clear()

    def get_stats(self) -> dict[str, int]:
        now = self._clock()
        live = sum(1 for entry in self._entries.values() if entry.expires_at > now)
        return {"hits": self._hits, "misses": self._misses, "keys": live}


class RenderInvalidator(Protocol):
    async def invalidate(self, reason: str) -> bool:
        """Ask a downstream render cache to drop bookmark pages."""
        ...


class WebhookRenderInvalidator:
    """POST an invalidation request to the site's render cache endpoint."""

    def __init__(
        self,
        url: str,
        *,
        token: str | None = None,
        timeout: float = 10.0,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.url = url
        self._token = token
        self._timeout = timeout
        self._client = client

    async def invalidate(self, reason: str) -> bool:
        headers = {"Content-Type": "application/json"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        payload = {"scope": "bookmarks", "reason": reason}

        try:
            if self._client is not None:
                response = await self._client.post(self.url, json=payload, headers=headers)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self.url, json=payload, headers=headers)
            response.raise_for_status()
        except httpx.HTTPError as exc:
            logger.warning(
                "render_invalidation_failed",
                extra={"url": self.url, "reason": reason, "error": str(exc)},
            )
            return False

        logger.info("render_invalidation_sent", extra={"url": self.url, "reason": reason})
        return True


class BookmarkCache:
    """Bookmark-specific view over :class:`MemoryCache`.

    ``clear`` drops every bookmark entry and then signals each registered
    render invalidator, since the rendering layer keeps its own cache.
    """

    def __init__(
        self,
        memory: MemoryCache,
        invalidators: list[RenderInvalidator] | None = None,
    ) -> None:
        self.memory = memory
        self._invalidators: list[RenderInvalidator] = list(invalidators or [])

    def add_invalidator(self, invalidator: RenderInvalidator) -> None:
        self._invalidators.append(invalidator)

    def invalidate_index(self) -> None:
        self.memory.delete(INDEX_CACHE_KEY)

    async def clear(self, reason: str = "manual") -> dict[str, int]:
        removed = self.memory.delete_prefix(BOOKMARKS_CACHE_PREFIX)
        notified = 0
        for invalidator in self._invalidators:
            if await invalidator.invalidate(reason):
                notified += 1
        logger.info(
            "bookmark_cache_cleared",
            extra={
                "reason": reason,
                "entries_removed": removed,
                "invalidators_notified": notified,
                "invalidators_total": len(self._invalidators),
            },
        )
        return {"entries_removed": removed, "invalidators_notified": notified}
