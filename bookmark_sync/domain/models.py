"""Pydantic models for the persisted bookmark layout.

Persisted JSON uses camelCase keys; attributes are snake_case with aliases.
"""

from __future__ import annotations

from datetime import datetime  # noqa: TC003 - Pydantic needs this at runtime
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from bookmark_sync.core.time_utils import ensure_datetime

SLUG_MAPPING_VERSION = "1.0.0"


class _JsonModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    def to_json(self) -> dict[str, Any]:
        """Serialize with persisted (camelCase) field names."""
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class BookmarkTag(_JsonModel):
    """Rich tag record; bare string tags are kept as plain ``str``."""

    name: str
    slug: str | None = None
    color: str | None = None


class Bookmark(_JsonModel):
    """A bookmark as delivered by the fetch callback.

    Unknown fields (enrichment data) are kept so they survive a round trip
    through storage, but only ``id`` and the timestamps feed the checksum.
    """

    model_config = ConfigDict(populate_by_name=True, extra="allow")

    id: str
    url: str = ""
    title: str = ""
    description: str | None = None
    tags: list[str | BookmarkTag] = Field(default_factory=list)
    date_bookmarked: datetime = Field(alias="dateBookmarked")
    source_updated_at: datetime | None = Field(default=None, alias="sourceUpdatedAt")
    modified_at: datetime | None = Field(default=None, alias="modifiedAt")
    slug: str | None = None

    @field_validator("id", mode="before")
    @classmethod
    def _validate_id(cls, value: Any) -> str:
        bookmark_id = str(value or "").strip()
        if not bookmark_id:
            msg = "Bookmark id cannot be empty"
            raise ValueError(msg)
        return bookmark_id

    @field_validator("url", "title", mode="before")
    @classmethod
    def _none_to_empty(cls, value: Any) -> str:
        return "" if value is None else str(value)

    @field_validator("tags", mode="before")
    @classmethod
    def _tags_list(cls, value: Any) -> list[Any]:
        if value is None:
            return []
        if isinstance(value, list | tuple):
            return list(value)
        msg = "Bookmark tags must be a list"
        raise ValueError(msg)

    @field_validator("date_bookmarked", "source_updated_at", "modified_at", mode="before")
    @classmethod
    def _coerce_timestamp(cls, value: Any) -> datetime | None:
        return ensure_datetime(value)

    @property
    def last_modified(self) -> datetime:
        """Most recent modification time known for this bookmark."""
        return self.modified_at or self.source_updated_at or self.date_bookmarked


class BookmarksIndex(_JsonModel):
    count: int
    total_pages: int = Field(alias="totalPages")
    page_size: int = Field(alias="pageSize")
    last_modified: str = Field(alias="lastModified")
    last_fetched_at: int = Field(alias="lastFetchedAt")
    last_attempted_at: int = Field(alias="lastAttemptedAt")
    checksum: str
    change_detected: bool = Field(alias="changeDetected")


class DistributedLockEntry(_JsonModel):
    instance_id: str = Field(alias="instanceId")
    acquired_at: int = Field(alias="acquiredAt")
    ttl_ms: int = Field(alias="ttlMs")


class SlugEntry(_JsonModel):
    id: str
    slug: str
    url: str
    title: str


class BookmarkSlugMapping(_JsonModel):
    version: str = SLUG_MAPPING_VERSION
    generated: str
    count: int
    checksum: str
    slugs: dict[str, SlugEntry] = Field(default_factory=dict)
    reverse_map: dict[str, str] = Field(default_factory=dict, alias="reverseMap")


class RefreshHeartbeat(_JsonModel):
    """Outcome of the last refresh attempt that held the lock."""

    run_at: int = Field(alias="runAt")
    instance_id: str = Field(alias="instanceId")
    outcome: str
    success: bool
    change_detected: bool | None = Field(default=None, alias="changeDetected")
    count: int | None = None
    error: str | None = None
