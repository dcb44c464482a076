"""Object keys of the persisted bookmark layout."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class BookmarkKeys:
    """Key builder namespaced by deployment environment.

    ``env_suffix`` is ``""`` in production, ``"-test"`` under tests and
    ``"-dev"`` elsewhere, so environments never overwrite each other.
    """

    env_suffix: str = ""
    root: str = "json/bookmarks"

    @property
    def full_dataset(self) -> str:
        return f"{self.root}/bookmarks{self.env_suffix}.json"

    @property
    def lock(self) -> str:
        return f"{self.root}/refresh-lock{self.env_suffix}.json"

    @property
    def index(self) -> str:
        return f"{self.root}/index{self.env_suffix}.json"

    @property
    def slug_mapping(self) -> str:
        return f"{self.root}/slug-mapping{self.env_suffix}.json"

    @property
    def heartbeat(self) -> str:
        return f"{self.root}/heartbeat{self.env_suffix}.json"

    @property
    def page_prefix(self) -> str:
        return f"{self.root}/pages{self.env_suffix}/page-"

    @property
    def tag_prefix(self) -> str:
        return f"{self.root}/tags{self.env_suffix}/"

    @property
    def by_id_prefix(self) -> str:
        return f"{self.root}/by-id{self.env_suffix}/"

    def page(self, page_number: int) -> str:
        return f"{self.page_prefix}{page_number}.json"

    def tag_index(self, tag_slug: str) -> str:
        return f"{self.tag_prefix}{tag_slug}/index.json"

    def tag_page(self, tag_slug: str, page_number: int) -> str:
        return f"{self.tag_prefix}{tag_slug}/page-{page_number}.json"

    def bookmark(self, bookmark_id: str) -> str:
        return f"{self.by_id_prefix}{bookmark_id}.json"
