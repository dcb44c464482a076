"""Read path used outside a refresh: memory cache, then store, then full dataset."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_sync.bookmarks.cache import (
    ALL_BOOKMARKS_CACHE_KEY,
    INDEX_CACHE_KEY,
    page_cache_key,
    slug_cache_key,
    tag_page_cache_key,
)
from bookmark_sync.bookmarks.slugs import generate_slug_mapping, get_bookmark_id_from_slug
from bookmark_sync.bookmarks.store import canonical_order
from bookmark_sync.bookmarks.tags import tag_to_slug

if TYPE_CHECKING:
    from bookmark_sync.bookmarks.cache import MemoryCache
    from bookmark_sync.bookmarks.store import BookmarkPage, BookmarkStore
    from bookmark_sync.domain.models import Bookmark, BookmarksIndex

logger = logging.getLogger(__name__)


class BookmarkReader:
    def __init__(self, store: BookmarkStore, cache: MemoryCache) -> None:
        self.store = store
        self.cache = cache

    async def get_index(self) -> BookmarksIndex | None:
        cached = self.cache.get(INDEX_CACHE_KEY)
        if cached is not None:
            return cached
        index = await self.store.read_index()
        if index is not None:
            self.cache.set(INDEX_CACHE_KEY, index)
        return index

    async def get_page(self, page: int) -> BookmarkPage:
        key = page_cache_key(page)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = await self.store.get_page(page)
        # Fallback results are not cached so the next read retries the precomputed object.
        if result.source == "precomputed":
            self.cache.set(key, result)
        return result

    async def get_tag_page(self, tag: str, page: int) -> BookmarkPage:
        tag_slug = tag_to_slug(tag)
        key = tag_page_cache_key(tag_slug, page)
        cached = self.cache.get(key)
        if cached is not None:
            return cached
        result = await self.store.get_tag_page(tag_slug, page)
        if result.source == "precomputed":
            self.cache.set(key, result)
        return result

    async def get_all_bookmarks(self) -> list[Bookmark]:
        cached = self.cache.get(ALL_BOOKMARKS_CACHE_KEY)
        if cached is not None:
            return cached
        bookmarks = canonical_order(await self.store.read_full_dataset() or [])
        self.cache.set(ALL_BOOKMARKS_CACHE_KEY, bookmarks)
        return bookmarks

    async def get_bookmark_by_slug(self, slug: str) -> Bookmark | None:
        """Resolve a slug to its bookmark.

        Hits are cached with the success TTL, misses with the shorter failure
        TTL. When the persisted slug mapping is missing, it is regenerated from
        the full dataset in memory.
        """
        key = slug_cache_key(slug)
        if self.cache.contains(key):
            return self.cache.get(key)

        mapping = await self.store.read_slug_mapping()
        dataset: list[Bookmark] | None = None
        if mapping is None:
            logger.info("bookmark_slug_mapping_fallback", extra={"slug": slug})
            dataset = await self.get_all_bookmarks()
            mapping = generate_slug_mapping(dataset)

        bookmark_id = get_bookmark_id_from_slug(mapping, slug)
        bookmark: Bookmark | None = None
        if bookmark_id is not None:
            bookmark = await self.store.read_bookmark_file(bookmark_id)
            if bookmark is None:
                if dataset is None:
                    dataset = await self.get_all_bookmarks()
                bookmark = next((b for b in dataset if b.id == bookmark_id), None)
            if bookmark is not None and bookmark.slug != slug:
                bookmark = bookmark.model_copy(update={"slug": slug})

        self.cache.set_lookup(key, bookmark, success=bookmark is not None)
        return bookmark
