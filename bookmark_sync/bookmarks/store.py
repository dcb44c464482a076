"""Paginated and tag-indexed bookmark layout on top of an :class:`ObjectStore`.

Derived objects (pages, tag collections, slug mapping, per-id files) are
disposable: a missing or unreadable one is a cache miss and callers fall back
to the full dataset. The index and the full dataset are authoritative, so a
failure reading them is raised as :class:`StoreReadError`.
"""

from __future__ import annotations

import asyncio
import logging
import math
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any, Literal

from pydantic import ValidationError

from bookmark_sync.bookmarks.checksum import compute_checksum
from bookmark_sync.bookmarks.tags import bookmark_has_tag, normalize_tags, tag_to_slug
from bookmark_sync.core.time_utils import iso_now
from bookmark_sync.domain.exceptions import StoreReadError, StoreWriteError
from bookmark_sync.domain.models import (
    Bookmark,
    BookmarksIndex,
    BookmarkSlugMapping,
    RefreshHeartbeat,
)
from bookmark_sync.infrastructure.storage.base import StorageError

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from bookmark_sync.bookmarks.keys import BookmarkKeys
    from bookmark_sync.infrastructure.storage.base import ObjectStore

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 24
BY_ID_WRITE_BATCH_SIZE = 25


def canonical_order(bookmarks: Iterable[Bookmark]) -> list[Bookmark]:
    """Most recently bookmarked first; equal timestamps ordered by id."""
    by_id = sorted(bookmarks, key=lambda b: b.id)
    # sorted() is stable with reverse=True, so the id order survives for ties.
    return sorted(by_id, key=lambda b: b.date_bookmarked, reverse=True)


def total_pages(count: int, page_size: int) -> int:
    return math.ceil(count / page_size) if count > 0 else 0


def paginate(bookmarks: Sequence[Bookmark], page: int, page_size: int) -> list[Bookmark]:
    """Page ``n`` is ``[(n-1)*page_size, n*page_size)``; out of range pages are empty."""
    if page < 1:
        return []
    start = (page - 1) * page_size
    return list(bookmarks[start : start + page_size])


def build_index(
    bookmarks: Sequence[Bookmark],
    *,
    page_size: int,
    now_ms: int,
    checksum: str | None = None,
    change_detected: bool = True,
) -> BookmarksIndex:
    return BookmarksIndex(
        count=len(bookmarks),
        total_pages=total_pages(len(bookmarks), page_size),
        page_size=page_size,
        last_modified=iso_now(),
        last_fetched_at=now_ms,
        last_attempted_at=now_ms,
        checksum=checksum if checksum is not None else compute_checksum(bookmarks),
        change_detected=change_detected,
    )


def group_by_tag(bookmarks: Iterable[Bookmark]) -> dict[str, list[Bookmark]]:
    """Bookmarks per normalized tag slug, keeping the input order inside each group."""
    groups: dict[str, list[Bookmark]] = {}
    for bookmark in bookmarks:
        for tag in normalize_tags(bookmark.tags):
            groups.setdefault(tag.slug, []).append(bookmark)
    return groups


def select_tags(groups: dict[str, list[Bookmark]], limit: int) -> list[str]:
    """Tags to precompute: all of them, or the ``limit`` largest (ties by slug)."""
    if limit <= 0 or limit >= len(groups):
        return sorted(groups)
    ranked = sorted(groups.items(), key=lambda item: (-len(item[1]), item[0]))
    return [slug for slug, _ in ranked[:limit]]


@dataclass(slots=True)
class BookmarkPage:
    """One page of a listing plus where it was served from."""

    page: int
    page_size: int
    count: int
    total_pages: int
    items: list[Bookmark] = field(default_factory=list)
    tag_slug: str | None = None
    source: Literal["precomputed", "fallback"] = "precomputed"


class BookmarkStore:
    """Read/write access to every persisted bookmark object of one environment."""

    def __init__(
        self,
        store: ObjectStore,
        keys: BookmarkKeys,
        *,
        page_size: int = DEFAULT_PAGE_SIZE,
        enable_tag_persistence: bool = True,
        max_tags_to_persist: int = 0,
    ) -> None:
        self.objects = store
        self.keys = keys
        self.page_size = page_size
        self.enable_tag_persistence = enable_tag_persistence
        self.max_tags_to_persist = max_tags_to_persist

    # ------------------------------------------------------------------
    # Low-level helpers
    # ------------------------------------------------------------------

    async def _write(self, key: str, value: Any) -> None:
        try:
            await self.objects.write_json(key, value)
        except StorageError as exc:
            msg = f"Failed to write {key}"
            raise StoreWriteError(msg, {"key": key, "error": str(exc)}) from exc

    async def _read_required(self, key: str) -> Any | None:
        try:
            return await self.objects.read_json(key)
        except StorageError as exc:
            msg = f"Failed to read {key}"
            raise StoreReadError(msg, {"key": key, "error": str(exc)}) from exc

    async def _read_derived(self, key: str) -> Any | None:
        try:
            return await self.objects.read_json(key)
        except StorageError as exc:
            logger.warning("bookmark_derived_read_failed", extra={"key": key, "error": str(exc)})
            return None

    @staticmethod
    def _decode_bookmarks(raw: Any, key: str) -> list[Bookmark] | None:
        if not isinstance(raw, list):
            logger.warning("bookmark_payload_not_list", extra={"key": key})
            return None
        try:
            return [Bookmark.model_validate(item) for item in raw]
        except ValidationError as exc:
            logger.warning(
                "bookmark_payload_invalid",
                extra={"key": key, "errors": exc.error_count()},
            )
            return None

    @staticmethod
    def _encode_bookmarks(bookmarks: Iterable[Bookmark]) -> list[dict[str, Any]]:
        return [bookmark.to_json() for bookmark in bookmarks]

    # ------------------------------------------------------------------
    # Index and full dataset (authoritative)
    # ------------------------------------------------------------------

    async def read_index(self) -> BookmarksIndex | None:
        raw = await self._read_required(self.keys.index)
        if raw is None:
            return None
        try:
            return BookmarksIndex.model_validate(raw)
        except ValidationError as exc:
            msg = f"Index object {self.keys.index} is invalid"
            raise StoreReadError(msg, {"key": self.keys.index, "errors": exc.error_count()}) from exc

    async def write_index(self, index: BookmarksIndex) -> None:
        await self._write(self.keys.index, index.to_json())

    async def delete_index(self) -> None:
        try:
            await self.objects.delete_object(self.keys.index)
        except StorageError as exc:
            msg = f"Failed to delete {self.keys.index}"
            raise StoreWriteError(msg, {"key": self.keys.index, "error": str(exc)}) from exc

    async def read_full_dataset(self) -> list[Bookmark] | None:
        key = self.keys.full_dataset
        raw = await self._read_required(key)
        if raw is None:
            return None
        bookmarks = self._decode_bookmarks(raw, key)
        if bookmarks is None:
            msg = f"Full dataset {key} is invalid"
            raise StoreReadError(msg, {"key": key})
        return bookmarks

    async def write_full_dataset(self, bookmarks: Sequence[Bookmark]) -> None:
        await self._write(self.keys.full_dataset, self._encode_bookmarks(bookmarks))
        logger.info("bookmarks_full_dataset_written", extra={"count": len(bookmarks)})

    # ------------------------------------------------------------------
    # Pages
    # ------------------------------------------------------------------

    async def read_page(self, page: int) -> list[Bookmark] | None:
        key = self.keys.page(page)
        raw = await self._read_derived(key)
        if raw is None:
            return None
        return self._decode_bookmarks(raw, key)

    async def write_page(self, page: int, bookmarks: Sequence[Bookmark]) -> None:
        await self._write(self.keys.page(page), self._encode_bookmarks(bookmarks))

    async def write_pages(self, bookmarks: Sequence[Bookmark]) -> int:
        """Write every page of an already canonically ordered dataset."""
        pages = total_pages(len(bookmarks), self.page_size)
        for page in range(1, pages + 1):
            await self.write_page(page, paginate(bookmarks, page, self.page_size))
        logger.info(
            "bookmarks_pages_written",
            extra={"pages": pages, "page_size": self.page_size, "count": len(bookmarks)},
        )
        return pages

    async def get_page(self, page: int) -> BookmarkPage:
        """Serve a page from its precomputed object, else slice the full dataset."""
        index = await self.read_index()
        if index is not None:
            if page < 1 or page > index.total_pages:
                return BookmarkPage(
                    page=page,
                    page_size=index.page_size,
                    count=index.count,
                    total_pages=index.total_pages,
                )
            items = await self.read_page(page)
            if items is not None:
                return BookmarkPage(
                    page=page,
                    page_size=index.page_size,
                    count=index.count,
                    total_pages=index.total_pages,
                    items=items,
                )

        logger.info("bookmark_page_fallback", extra={"page": page})
        dataset = canonical_order(await self.read_full_dataset() or [])
        return BookmarkPage(
            page=page,
            page_size=self.page_size,
            count=len(dataset),
            total_pages=total_pages(len(dataset), self.page_size),
            items=paginate(dataset, page, self.page_size),
            source="fallback",
        )

    async def cleanup_stale_pages(self, pages: int) -> int:
        """Delete page objects numbered above *pages*; failures are logged."""
        deleted = 0
        try:
            keys = await self.objects.list_objects(self.keys.page_prefix)
        except StorageError as exc:
            logger.warning("bookmark_page_cleanup_list_failed", extra={"error": str(exc)})
            return 0
        for key in keys:
            number = key[len(self.keys.page_prefix) :].removesuffix(".json")
            if not number.isdigit() or int(number) <= pages:
                continue
            try:
                await self.objects.delete_object(key)
                deleted += 1
            except StorageError as exc:
                logger.warning("bookmark_page_cleanup_failed", extra={"key": key, "error": str(exc)})
        if deleted:
            logger.info("bookmark_stale_pages_deleted", extra={"deleted": deleted})
        return deleted

    # ------------------------------------------------------------------
    # Tag collections
    # ------------------------------------------------------------------

    async def read_tag_index(self, tag_slug: str) -> BookmarksIndex | None:
        key = self.keys.tag_index(tag_slug)
        raw = await self._read_derived(key)
        if raw is None:
            return None
        try:
            return BookmarksIndex.model_validate(raw)
        except ValidationError:
            logger.warning("bookmark_tag_index_invalid", extra={"key": key})
            return None

    async def write_tag_index(self, tag_slug: str, index: BookmarksIndex) -> None:
        await self._write(self.keys.tag_index(tag_slug), index.to_json())

    async def read_tag_page(self, tag_slug: str, page: int) -> list[Bookmark] | None:
        key = self.keys.tag_page(tag_slug, page)
        raw = await self._read_derived(key)
        if raw is None:
            return None
        return self._decode_bookmarks(raw, key)

    async def write_tag_page(self, tag_slug: str, page: int, bookmarks: Sequence[Bookmark]) -> None:
        await self._write(self.keys.tag_page(tag_slug, page), self._encode_bookmarks(bookmarks))

    async def write_tag_collection(
        self, tag_slug: str, bookmarks: Sequence[Bookmark], *, now_ms: int
    ) -> None:
        """Pages first, then the tag index that points at them."""
        pages = total_pages(len(bookmarks), self.page_size)
        for page in range(1, pages + 1):
            await self.write_tag_page(tag_slug, page, paginate(bookmarks, page, self.page_size))
        await self.write_tag_index(
            tag_slug, build_index(bookmarks, page_size=self.page_size, now_ms=now_ms)
        )

    async def write_tag_collections(self, bookmarks: Sequence[Bookmark], *, now_ms: int) -> list[str]:
        """Precompute every (or the most used) tag collection concurrently.

        Returns the tag slugs that were written.
        """
        if not self.enable_tag_persistence:
            logger.info("bookmark_tag_persistence_disabled")
            return []

        groups = group_by_tag(bookmarks)
        selected = select_tags(groups, self.max_tags_to_persist)
        await asyncio.gather(
            *(
                self.write_tag_collection(slug, groups[slug], now_ms=now_ms)
                for slug in selected
            )
        )
        logger.info(
            "bookmark_tag_collections_written",
            extra={
                "tags_written": len(selected),
                "tags_total": len(groups),
                "limit": self.max_tags_to_persist,
            },
        )
        return selected

    async def cleanup_stale_tag_collections(self, active_slugs: Iterable[str]) -> int:
        """Delete tag objects whose slug was not written this run; failures are logged."""
        prefix = self.keys.tag_prefix
        active = set(active_slugs)
        try:
            keys = await self.objects.list_objects(prefix)
        except StorageError as exc:
            logger.warning("bookmark_tag_cleanup_list_failed", extra={"error": str(exc)})
            return 0

        deleted = 0
        stale_tags: set[str] = set()
        for key in keys:
            tag_slug = key[len(prefix) :].split("/", 1)[0]
            if not tag_slug or tag_slug in active:
                continue
            try:
                await self.objects.delete_object(key)
                deleted += 1
                stale_tags.add(tag_slug)
            except StorageError as exc:
                logger.warning("bookmark_tag_cleanup_failed", extra={"key": key, "error": str(exc)})
        if deleted:
            logger.info(
                "bookmark_stale_tag_collections_deleted",
                extra={"deleted": deleted, "tags": sorted(stale_tags)},
            )
        return deleted

    async def get_tag_page(self, tag: str, page: int) -> BookmarkPage:
        """Serve a tag page from its precomputed objects, else filter the full dataset.

        *tag* may be a slug or a display name; both resolve to the same slug.
        """
        tag_slug = tag_to_slug(tag)
        tag_index = await self.read_tag_index(tag_slug) if tag_slug else None
        if tag_index is not None:
            if page < 1 or page > tag_index.total_pages:
                return BookmarkPage(
                    page=page,
                    page_size=tag_index.page_size,
                    count=tag_index.count,
                    total_pages=tag_index.total_pages,
                    tag_slug=tag_slug,
                )
            items = await self.read_tag_page(tag_slug, page)
            if items is not None:
                return BookmarkPage(
                    page=page,
                    page_size=tag_index.page_size,
                    count=tag_index.count,
                    total_pages=tag_index.total_pages,
                    items=items,
                    tag_slug=tag_slug,
                )

        logger.info("bookmark_tag_page_fallback", extra={"tag": tag_slug, "page": page})
        dataset = await self.read_full_dataset() or []
        matching = canonical_order(b for b in dataset if tag_slug and bookmark_has_tag(b, tag_slug))
        return BookmarkPage(
            page=page,
            page_size=self.page_size,
            count=len(matching),
            total_pages=total_pages(len(matching), self.page_size),
            items=paginate(matching, page, self.page_size),
            tag_slug=tag_slug,
            source="fallback",
        )

    # ------------------------------------------------------------------
    # Slug mapping, per-id objects, heartbeat
    # ------------------------------------------------------------------

    async def read_slug_mapping(self) -> BookmarkSlugMapping | None:
        key = self.keys.slug_mapping
        raw = await self._read_derived(key)
        if raw is None:
            return None
        try:
            return BookmarkSlugMapping.model_validate(raw)
        except ValidationError:
            logger.warning("bookmark_slug_mapping_invalid", extra={"key": key})
            return None

    async def write_slug_mapping(self, mapping: BookmarkSlugMapping) -> None:
        await self._write(self.keys.slug_mapping, mapping.to_json())
        logger.info(
            "bookmark_slug_mapping_written",
            extra={"count": mapping.count, "checksum": mapping.checksum},
        )

    async def read_bookmark_file(self, bookmark_id: str) -> Bookmark | None:
        key = self.keys.bookmark(bookmark_id)
        raw = await self._read_derived(key)
        if raw is None:
            return None
        try:
            return Bookmark.model_validate(raw)
        except ValidationError:
            logger.warning("bookmark_file_invalid", extra={"key": key})
            return None

    async def write_bookmark_files(self, bookmarks: Sequence[Bookmark]) -> None:
        for start in range(0, len(bookmarks), BY_ID_WRITE_BATCH_SIZE):
            batch = bookmarks[start : start + BY_ID_WRITE_BATCH_SIZE]
            await asyncio.gather(
                *(self._write(self.keys.bookmark(b.id), b.to_json()) for b in batch)
            )

    async def cleanup_orphaned_bookmark_files(self, active_ids: Iterable[str]) -> int:
        """Delete per-id objects whose bookmark is gone; failures are logged."""
        prefix = self.keys.by_id_prefix
        active = set(active_ids)
        try:
            keys = await self.objects.list_objects(prefix)
        except StorageError as exc:
            logger.warning("bookmark_orphan_cleanup_list_failed", extra={"error": str(exc)})
            return 0

        deleted = 0
        for key in keys:
            bookmark_id = key[len(prefix) :].removesuffix(".json")
            if bookmark_id in active:
                continue
            try:
                await self.objects.delete_object(key)
                deleted += 1
            except StorageError as exc:
                logger.warning("bookmark_orphan_delete_failed", extra={"key": key, "error": str(exc)})
        if deleted:
            logger.info("bookmark_orphans_deleted", extra={"deleted": deleted})
        return deleted

    async def read_heartbeat(self) -> RefreshHeartbeat | None:
        raw = await self._read_derived(self.keys.heartbeat)
        if raw is None:
            return None
        try:
            return RefreshHeartbeat.model_validate(raw)
        except ValidationError:
            logger.warning("bookmark_heartbeat_invalid", extra={"key": self.keys.heartbeat})
            return None

    async def write_heartbeat(self, heartbeat: RefreshHeartbeat) -> None:
        await self._write(self.keys.heartbeat, heartbeat.to_json())
