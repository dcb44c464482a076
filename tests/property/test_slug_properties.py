"""Property-based tests for slug mapping and pagination.

Uses Hypothesis to verify:
- Slug mapping ignores input order
- Every id maps to exactly one slug and back, even when URLs mimic suffixes
- Tag slugs are URL safe
- Pages partition the canonical order
"""

from __future__ import annotations

import re
from datetime import UTC, datetime, timedelta

import pytest

hypothesis = pytest.importorskip("hypothesis")
from hypothesis import given, settings, strategies as st

from bookmark_sync.bookmarks.slugs import generate_slug_mapping
from bookmark_sync.bookmarks.store import canonical_order, paginate, total_pages
from bookmark_sync.bookmarks.tags import tag_to_slug
from bookmark_sync.domain.models import Bookmark

_BASE = datetime(2024, 1, 1, tzinfo=UTC)

bookmark_ids = st.text(alphabet="abcdef0123456789", min_size=4, max_size=12)
paths = st.sampled_from(["", "/", "/a", "/a/b", "/post", "/post-2", "/post/2", "/x?y=1"])
hosts = st.sampled_from(["example.com", "www.example.com", "youtube.com", "blog.dev", "nohost"])
titles = st.sampled_from(["", "Hello", "Hello World", "C++ & Rust", "post 2"])


@st.composite
def bookmark_sets(draw, max_size: int = 30) -> list[Bookmark]:
    ids = draw(st.lists(bookmark_ids, min_size=0, max_size=max_size, unique=True))
    return [
        Bookmark(
            id=bookmark_id,
            url=f"https://{draw(hosts)}{draw(paths)}",
            title=draw(titles),
            date_bookmarked=_BASE - timedelta(hours=draw(st.integers(0, 48))),
        )
        for bookmark_id in ids
    ]


class TestSlugMappingProperties:
    @given(bookmarks=bookmark_sets(), seed=st.randoms(use_true_random=False))
    @settings(max_examples=150, deadline=None)
    def test_order_independent(self, bookmarks: list[Bookmark], seed) -> None:
        shuffled = list(bookmarks)
        seed.shuffle(shuffled)

        first = generate_slug_mapping(bookmarks)
        second = generate_slug_mapping(shuffled)

        assert first.reverse_map == second.reverse_map
        assert first.checksum == second.checksum

    @given(bookmarks=bookmark_sets())
    @settings(max_examples=150, deadline=None)
    def test_bidirectional_and_unique(self, bookmarks: list[Bookmark]) -> None:
        mapping = generate_slug_mapping(bookmarks)

        assert mapping.count == len(bookmarks)
        assert len(set(mapping.reverse_map)) == len(mapping.slugs)
        for bookmark_id, entry in mapping.slugs.items():
            assert mapping.reverse_map[entry.slug] == bookmark_id

    @given(
        ids=st.lists(
            st.text(alphabet="abc", min_size=1, max_size=3), min_size=1, max_size=12, unique=True
        ),
        data=st.data(),
    )
    @settings(max_examples=200, deadline=None)
    def test_unique_when_paths_mimic_suffixes(self, ids: list[str], data) -> None:
        # Paths shaped like the numeric and id-prefix suffixes the mapping itself appends.
        suffixes = ["", "/2", "/3"] + [f"/2-{other}" for other in ids] + [
            f"/2-{other}-2" for other in ids
        ]
        bookmarks = [
            Bookmark(
                id=bookmark_id,
                url=f"https://example.com{data.draw(st.sampled_from(suffixes))}",
                date_bookmarked=_BASE,
            )
            for bookmark_id in ids
        ]
        mapping = generate_slug_mapping(bookmarks)

        assert len(mapping.reverse_map) == len(ids)
        for bookmark_id, entry in mapping.slugs.items():
            assert mapping.reverse_map[entry.slug] == bookmark_id


class TestTagSlugProperties:
    @given(tag=st.text(max_size=40))
    @settings(max_examples=300, deadline=None)
    def test_slug_is_url_safe(self, tag: str) -> None:
        slug = tag_to_slug(tag)
        assert re.fullmatch(r"([a-z0-9]+(-[a-z0-9]+)*)?", slug)

    @given(tag=st.text(max_size=40))
    @settings(max_examples=200, deadline=None)
    def test_slug_is_idempotent(self, tag: str) -> None:
        slug = tag_to_slug(tag)
        assert tag_to_slug(slug) == slug


class TestPaginationProperties:
    @given(bookmarks=bookmark_sets(max_size=60), page_size=st.integers(1, 25))
    @settings(max_examples=100, deadline=None)
    def test_pages_partition_canonical_order(
        self, bookmarks: list[Bookmark], page_size: int
    ) -> None:
        ordered = canonical_order(bookmarks)
        pages = total_pages(len(ordered), page_size)

        rebuilt = [b for page in range(1, pages + 1) for b in paginate(ordered, page, page_size)]

        assert [b.id for b in rebuilt] == [b.id for b in ordered]
        assert paginate(ordered, pages + 1, page_size) == []
