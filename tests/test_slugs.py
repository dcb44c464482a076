"""Bookmark slug derivation and the id <-> slug mapping."""

from __future__ import annotations

import pytest

from bookmark_sync.bookmarks.slugs import (
    UNKNOWN_URL_SLUG,
    attach_slugs,
    base_slug,
    generate_bookmark_routes,
    generate_slug_mapping,
    get_bookmark_id_from_slug,
    get_slug_for_bookmark,
    title_to_slug,
)
from bookmark_sync.domain.exceptions import SlugMappingError
from tests.conftest import make_bookmark, make_bookmarks


class TestBaseSlug:
    def test_host_and_path(self):
        assert base_slug("https://www.example.com/some/path") == "example-com-some-path"

    def test_host_only(self):
        assert base_slug("https://example.com/") == "example-com"

    def test_scheme_less_url(self):
        assert base_slug("blog.example.org/post/1") == "blog-example-org-post-1"

    def test_content_sharing_host_uses_title(self):
        slug = base_slug("https://www.youtube.com/watch?v=abc123", "My Great Video")
        assert slug == "youtube-com-my-great-video"

    def test_content_sharing_host_without_title_uses_path(self):
        assert base_slug("https://youtube.com/watch?v=abc123") == "youtube-com-watch"

    def test_unparsable_url_falls_back_to_title(self):
        assert base_slug("not a url", "Some Title") == "some-title"

    def test_nothing_usable(self):
        assert base_slug("", None) == UNKNOWN_URL_SLUG


class TestTitleToSlug:
    def test_quotes_and_ampersand(self):
        assert title_to_slug('It\'s a "Test" & More') == "its-a-test-and-more"

    def test_long_title_cut_on_word_boundary(self):
        title = "A very long article title that keeps going well past the sixty character limit"
        slug = title_to_slug(title)
        assert len(slug) <= 60
        assert not slug.endswith("-")
        assert title_to_slug(title).startswith("a-very-long-article-title")
        # Cut lands on a hyphen, so the last word is whole.
        assert slug.split("-")[-1] in title.lower().split()

    def test_empty(self):
        assert title_to_slug("") == ""
        assert title_to_slug(None) == ""


class TestGenerateSlugMapping:
    def test_duplicate_urls_get_numeric_suffixes(self):
        bookmarks = [
            make_bookmark(bookmark_id, url="https://example.com/a")
            for bookmark_id in ("c3", "a1", "b2")
        ]
        mapping = generate_slug_mapping(bookmarks)

        assert get_slug_for_bookmark(mapping, "a1") == "example-com-a"
        assert get_slug_for_bookmark(mapping, "b2") == "example-com-a-2"
        assert get_slug_for_bookmark(mapping, "c3") == "example-com-a-3"

    def test_suffix_collision_falls_back_to_id_prefix(self):
        bookmarks = [
            make_bookmark("a-first", url="https://example.com/post"),
            make_bookmark("b-second", url="https://example.com/post"),
            make_bookmark("c-bookmark-xyz", url="https://example.com/post-2"),
        ]
        mapping = generate_slug_mapping(bookmarks)

        assert get_slug_for_bookmark(mapping, "b-second") == "example-com-post-2"
        assert get_slug_for_bookmark(mapping, "c-bookmark-xyz") == "example-com-post-2-c-bookma"

    def test_taken_id_prefix_fallback_gets_a_counter(self):
        bookmarks = [
            make_bookmark("a", url="https://example.com"),
            make_bookmark("b", url="https://example.com/2"),
            make_bookmark("bb", url="https://example.com/2-c"),
            make_bookmark("bc", url="https://example.com/2-c-2"),
            make_bookmark("c", url="https://example.com"),
        ]
        mapping = generate_slug_mapping(bookmarks)

        assert get_slug_for_bookmark(mapping, "b") == "example-com-2"
        assert get_slug_for_bookmark(mapping, "bb") == "example-com-2-c"
        assert get_slug_for_bookmark(mapping, "bc") == "example-com-2-c-2"
        assert get_slug_for_bookmark(mapping, "c") == "example-com-2-c-3"
        assert len(mapping.reverse_map) == len(bookmarks)
        for bookmark_id, entry in mapping.slugs.items():
            assert mapping.reverse_map[entry.slug] == bookmark_id

    def test_mapping_is_bidirectional(self):
        mapping = generate_slug_mapping(make_bookmarks(20))

        assert mapping.count == 20
        assert len(mapping.reverse_map) == 20
        for bookmark_id, entry in mapping.slugs.items():
            assert get_bookmark_id_from_slug(mapping, entry.slug) == bookmark_id

    def test_input_order_does_not_matter(self):
        bookmarks = make_bookmarks(10)
        forward = generate_slug_mapping(bookmarks)
        backward = generate_slug_mapping(list(reversed(bookmarks)))

        assert forward.reverse_map == backward.reverse_map
        assert forward.checksum == backward.checksum

    def test_duplicate_ids_are_collapsed(self):
        bookmarks = [make_bookmark("same"), make_bookmark("same")]
        mapping = generate_slug_mapping(bookmarks)
        assert mapping.count == 1

    def test_entry_title_defaults_to_url(self):
        mapping = generate_slug_mapping([make_bookmark("1", title="", url="https://e.com/x")])
        assert mapping.slugs["1"].title == "https://e.com/x"

    def test_persisted_shape_uses_camel_case(self):
        payload = generate_slug_mapping(make_bookmarks(1)).to_json()
        assert set(payload) == {"version", "generated", "count", "checksum", "slugs", "reverseMap"}

    def test_unknown_lookups_return_none(self):
        mapping = generate_slug_mapping(make_bookmarks(1))
        assert get_slug_for_bookmark(mapping, "missing") is None
        assert get_bookmark_id_from_slug(mapping, "missing") is None


class TestRoutesAndAttach:
    def test_routes_are_sorted(self):
        mapping = generate_slug_mapping(
            [
                make_bookmark("1", url="https://example.com/zeta"),
                make_bookmark("2", url="https://example.com/alpha"),
            ]
        )
        assert generate_bookmark_routes(mapping) == [
            "/bookmarks/example-com-alpha",
            "/bookmarks/example-com-zeta",
        ]

    def test_attach_slugs(self):
        bookmarks = make_bookmarks(3)
        mapping = generate_slug_mapping(bookmarks)
        slugged = attach_slugs(bookmarks, mapping)

        assert [b.slug for b in slugged] == [mapping.slugs[b.id].slug for b in bookmarks]
        assert all(b.slug is None for b in bookmarks)

    def test_attach_slugs_requires_mapping_entry(self):
        mapping = generate_slug_mapping(make_bookmarks(1))
        with pytest.raises(SlugMappingError):
            attach_slugs([make_bookmark("unmapped")], mapping)
