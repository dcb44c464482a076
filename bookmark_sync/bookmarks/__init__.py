"""Bookmark synchronization and paginated persistence engine."""

from bookmark_sync.bookmarks.cache import BookmarkCache, MemoryCache, WebhookRenderInvalidator
from bookmark_sync.bookmarks.checksum import compute_checksum, has_changed
from bookmark_sync.bookmarks.keys import BookmarkKeys
from bookmark_sync.bookmarks.lock import DistributedLock, is_expired
from bookmark_sync.bookmarks.reader import BookmarkReader
from bookmark_sync.bookmarks.refresh import (
    RefreshOrchestrator,
    RefreshOutcome,
    RefreshReport,
    RefreshState,
)
from bookmark_sync.bookmarks.slugs import (
    generate_bookmark_routes,
    generate_slug_mapping,
    get_bookmark_id_from_slug,
    get_slug_for_bookmark,
)
from bookmark_sync.bookmarks.store import BookmarkPage, BookmarkStore
from bookmark_sync.bookmarks.tags import normalize_tag, slug_to_tag_display, tag_to_slug

__all__ = [
    "BookmarkCache",
    "BookmarkKeys",
    "BookmarkPage",
    "BookmarkReader",
    "BookmarkStore",
    "DistributedLock",
    "MemoryCache",
    "RefreshOrchestrator",
    "RefreshOutcome",
    "RefreshReport",
    "RefreshState",
    "WebhookRenderInvalidator",
    "compute_checksum",
    "generate_bookmark_routes",
    "generate_slug_mapping",
    "get_bookmark_id_from_slug",
    "get_slug_for_bookmark",
    "has_changed",
    "is_expired",
    "normalize_tag",
    "slug_to_tag_display",
    "tag_to_slug",
]
