"""Stable, collision-free bookmark slugs.

The whole mapping is rebuilt from the current bookmark set on every call.
Bookmarks are processed in id order, so the same set always yields the same
slugs whatever order the fetch callback returned it in.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
from typing import TYPE_CHECKING
from urllib.parse import urlsplit

from bookmark_sync.bookmarks.tags import sanitize_unicode, strip_diacritics
from bookmark_sync.core.time_utils import iso_now
from bookmark_sync.domain.exceptions import SlugMappingError
from bookmark_sync.domain.models import SLUG_MAPPING_VERSION, BookmarkSlugMapping, SlugEntry

if TYPE_CHECKING:
    from collections.abc import Iterable

    from bookmark_sync.domain.models import Bookmark

logger = logging.getLogger(__name__)

UNKNOWN_URL_SLUG = "unknown-url"
TITLE_SLUG_MAX_LENGTH = 60

# Hosts whose path says nothing about the content; the title is used instead.
CONTENT_SHARING_DOMAINS = frozenset(
    {
        "youtube.com",
        "youtu.be",
        "reddit.com",
        "old.reddit.com",
        "twitter.com",
        "x.com",
        "news.ycombinator.com",
        "vimeo.com",
        "tiktok.com",
        "instagram.com",
        "linkedin.com",
    }
)

_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_QUOTES = re.compile(r"['\"‘’“”]")


def _slugify(text: str) -> str:
    text = sanitize_unicode(strip_diacritics(text)).lower()
    return _NON_ALNUM.sub("-", text).strip("-")


def title_to_slug(title: str | None, max_length: int = TITLE_SLUG_MAX_LENGTH) -> str:
    """Slug for a title, cut on a hyphen in the second half when too long."""
    if not title:
        return ""
    text = _QUOTES.sub("", title.strip()).replace("&", " and ")
    slug = _slugify(text)
    if len(slug) > max_length:
        cut = slug.rfind("-", 0, max_length + 1)
        slug = slug[:cut] if cut > max_length / 2 else slug[:max_length]
        slug = slug.rstrip("-")
    return slug


def _hostname(url: str) -> str | None:
    candidate = url.strip()
    if not candidate:
        return None
    if "://" not in candidate:
        candidate = f"https://{candidate}"
    try:
        host = urlsplit(candidate).hostname
    except ValueError:
        return None
    if not host or "." not in host:
        return None
    return host.removeprefix("www.")


def base_slug(url: str, title: str | None = None) -> str:
    """Derive the un-suffixed slug for one bookmark.

    ``https://www.example.com/some/path`` -> ``example-com-some-path``.
    Content-sharing hosts use ``{host}-{title}``; without a parsable host the
    title alone is used, then ``unknown-url``.
    """
    host = _hostname(url)
    if host is None:
        return title_to_slug(title) or UNKNOWN_URL_SLUG

    host_slug = _slugify(host)
    if host in CONTENT_SHARING_DOMAINS:
        title_slug = title_to_slug(title)
        if title_slug:
            return f"{host_slug}-{title_slug}"

    candidate = url.strip() if "://" in url else f"https://{url.strip()}"
    path_slug = _slugify(urlsplit(candidate).path)
    if path_slug:
        return f"{host_slug}-{path_slug}"
    return host_slug or UNKNOWN_URL_SLUG


def _mapping_checksum(slugs: dict[str, SlugEntry]) -> str:
    payload = [[bookmark_id, slugs[bookmark_id].slug] for bookmark_id in sorted(slugs)]
    return hashlib.md5(
        json.dumps(payload, separators=(",", ":")).encode("utf-8"), usedforsecurity=False
    ).hexdigest()


def _disambiguate(slug: str, bookmark_id: str, taken: dict[str, str]) -> str:
    stem = f"{slug}-{bookmark_id[:8]}"
    candidate = stem
    counter = 2
    while candidate in taken:
        candidate = f"{stem}-{counter}"
        counter += 1
    return candidate


def generate_slug_mapping(bookmarks: Iterable[Bookmark]) -> BookmarkSlugMapping:
    """Build the bidirectional id <-> slug mapping for a bookmark set.

    The first bookmark (by id) with a given base slug keeps it; the following
    ones get ``-2``, ``-3``... A suffixed slug that is itself somebody's base
    slug falls back to ``{slug}-{id[:8]}``, then ``{slug}-{id[:8]}-2`` and so
    on until the slug is free.
    """
    unique: dict[str, Bookmark] = {}
    for bookmark in bookmarks:
        unique[bookmark.id] = bookmark
    ordered = [unique[bookmark_id] for bookmark_id in sorted(unique)]

    slugs: dict[str, SlugEntry] = {}
    reverse_map: dict[str, str] = {}
    seen_bases: dict[str, int] = {}

    for bookmark in ordered:
        base = base_slug(bookmark.url, bookmark.title)
        occurrence = seen_bases.get(base, 0) + 1
        seen_bases[base] = occurrence
        slug = base if occurrence == 1 else f"{base}-{occurrence}"

        if slug in reverse_map:
            slug = _disambiguate(slug, bookmark.id, reverse_map)

        slugs[bookmark.id] = SlugEntry(
            id=bookmark.id,
            slug=slug,
            url=bookmark.url,
            title=bookmark.title or bookmark.url,
        )
        reverse_map[slug] = bookmark.id

    return BookmarkSlugMapping(
        version=SLUG_MAPPING_VERSION,
        generated=iso_now(),
        count=len(slugs),
        checksum=_mapping_checksum(slugs),
        slugs=slugs,
        reverse_map=reverse_map,
    )


def get_slug_for_bookmark(mapping: BookmarkSlugMapping, bookmark_id: str) -> str | None:
    entry = mapping.slugs.get(bookmark_id)
    return entry.slug if entry else None


def get_bookmark_id_from_slug(mapping: BookmarkSlugMapping, slug: str) -> str | None:
    return mapping.reverse_map.get(slug)


def generate_bookmark_routes(mapping: BookmarkSlugMapping) -> list[str]:
    """Every ``/bookmarks/{slug}`` path, sorted, for static generation."""
    return sorted(f"/bookmarks/{entry.slug}" for entry in mapping.slugs.values())


def attach_slugs(bookmarks: Iterable[Bookmark], mapping: BookmarkSlugMapping) -> list[Bookmark]:
    """Return copies of *bookmarks* carrying their mapped ``slug``."""
    result = []
    for bookmark in bookmarks:
        slug = get_slug_for_bookmark(mapping, bookmark.id)
        if slug is None:
            msg = f"Missing slug mapping for bookmark {bookmark.id}"
            raise SlugMappingError(msg, {"bookmark_id": bookmark.id})
        result.append(bookmark.model_copy(update={"slug": slug}))
    return result
