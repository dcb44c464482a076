"""Content fingerprint used to decide whether a refresh changed anything."""

from __future__ import annotations

import hashlib
from datetime import UTC
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.domain.models import Bookmark, BookmarksIndex


def compute_checksum(bookmarks: Iterable[Bookmark]) -> str:
    """SHA-256 over ``id:last_modified`` pairs in id order.

    Only identity and modification time participate; input order, volatile
    fields and enrichment data do not.
    """
    parts = [
        f"{bookmark.id}:{bookmark.last_modified.astimezone(UTC).isoformat()}"
        for bookmark in sorted(bookmarks, key=lambda b: b.id)
    ]
    return hashlib.sha256("|".join(parts).encode("utf-8")).hexdigest()


def has_changed(
    index: BookmarksIndex | None,
    bookmarks: list[Bookmark],
    checksum: str | None = None,
) -> bool:
    """True when there is no index or the count or checksum differs from it."""
    if index is None:
        return True
    if index.count != len(bookmarks):
        return True
    return (checksum or compute_checksum(bookmarks)) != index.checksum
