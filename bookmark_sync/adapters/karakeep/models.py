"""Pydantic models for the Karakeep API."""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, Field


class KarakeepTag(BaseModel):
    """Karakeep tag model."""

    id: str
    name: str
    attached_by: str | None = Field(default=None, alias="attachedBy")

    model_config = {"populate_by_name": True, "extra": "ignore"}


class KarakeepBookmark(BaseModel):
    """Karakeep bookmark model.

    Link bookmarks keep their URL and page metadata inside ``content``; the
    top-level ``title`` is only set when the user edited it.
    """

    id: str
    title: str | None = None
    note: str | None = None
    summary: str | None = None
    content: dict[str, Any] | str | None = None
    tags: list[KarakeepTag] = Field(default_factory=list)
    archived: bool = False
    favourited: bool = False
    created_at: datetime | None = Field(default=None, alias="createdAt")
    modified_at: datetime | None = Field(default=None, alias="modifiedAt")

    model_config = {"populate_by_name": True, "extra": "ignore"}

    def _content_field(self, name: str) -> str | None:
        if isinstance(self.content, dict):
            value = self.content.get(name)
            return str(value) if value else None
        return None

    @property
    def url(self) -> str | None:
        return self._content_field("url")

    @property
    def content_title(self) -> str | None:
        return self._content_field("title")

    @property
    def content_description(self) -> str | None:
        return self._content_field("description")


class KarakeepBookmarkList(BaseModel):
    """Paginated list of bookmarks."""

    bookmarks: list[KarakeepBookmark] = Field(default_factory=list)
    next_cursor: str | None = Field(default=None, alias="nextCursor")

    model_config = {"populate_by_name": True, "extra": "ignore"}
