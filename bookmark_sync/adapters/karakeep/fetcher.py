"""Default fetch callback: read every published bookmark from Karakeep."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from bookmark_sync.adapters.karakeep.client import KarakeepClient
from bookmark_sync.bookmarks.tags import tag_to_slug
from bookmark_sync.domain.models import Bookmark, BookmarkTag

if TYPE_CHECKING:
    import httpx

    from bookmark_sync.adapters.karakeep.models import KarakeepBookmark
    from bookmark_sync.config import KarakeepConfig

logger = logging.getLogger(__name__)


def to_bookmark(item: KarakeepBookmark) -> Bookmark | None:
    """Map a Karakeep bookmark; ``None`` for items without a URL or creation date."""
    url = item.url
    if not url or item.created_at is None:
        return None
    modified = item.modified_at or item.created_at
    return Bookmark(
        id=item.id,
        url=url,
        title=item.title or item.content_title or url,
        description=item.note or item.summary or item.content_description,
        tags=[BookmarkTag(name=tag.name) for tag in item.tags if tag.name.strip()],
        date_bookmarked=item.created_at,
        source_updated_at=modified,
        modified_at=modified,
    )


class KarakeepBookmarkFetcher:
    """Callable ``async () -> list[Bookmark]`` handed to the refresh orchestrator.

    Archived bookmarks are excluded unless configured otherwise; when a sync
    tag is set only bookmarks carrying it are published.
    """

    def __init__(
        self,
        cfg: KarakeepConfig,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        retry_base_delay: float = 1.0,
    ) -> None:
        self.cfg = cfg
        self._transport = transport
        self._retry_base_delay = retry_base_delay
        self._sync_tag_slug = tag_to_slug(cfg.sync_tag) if cfg.sync_tag else None

    def _client(self) -> KarakeepClient:
        return KarakeepClient(
            self.cfg.api_url,
            self.cfg.api_key,
            timeout=self.cfg.request_timeout_sec,
            max_retries=self.cfg.max_retries,
            retry_base_delay=self._retry_base_delay,
            transport=self._transport,
        )

    def _wanted(self, item: KarakeepBookmark) -> bool:
        if item.archived and not self.cfg.include_archived:
            return False
        if self._sync_tag_slug is None:
            return True
        return any(tag_to_slug(tag.name) == self._sync_tag_slug for tag in item.tags)

    async def __call__(self) -> list[Bookmark]:
        async with self._client() as client:
            items = await client.get_all_bookmarks(
                archived=None if self.cfg.include_archived else False
            )

        bookmarks: list[Bookmark] = []
        skipped = 0
        for item in items:
            if not self._wanted(item):
                continue
            bookmark = to_bookmark(item)
            if bookmark is None:
                skipped += 1
                continue
            bookmarks.append(bookmark)

        logger.info(
            "karakeep_bookmarks_mapped",
            extra={
                "fetched": len(items),
                "published": len(bookmarks),
                "skipped_incomplete": skipped,
                "sync_tag": self.cfg.sync_tag,
            },
        )
        return bookmarks
