from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

DEFAULT_LOCK_TTL_MS = 30 * 60 * 1000


class BookmarksConfig(BaseModel):
    """Refresh pipeline and persisted layout settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    page_size: int = Field(default=24, validation_alias="BOOKMARKS_PAGE_SIZE")
    lock_ttl_ms: int = Field(
        default=DEFAULT_LOCK_TTL_MS,
        validation_alias="BOOKMARKS_LOCK_TTL_MS",
        description="Lease length of the refresh lock (default: 30 minutes)",
    )
    lock_max_retries: int = Field(default=3, validation_alias="BOOKMARKS_LOCK_MAX_RETRIES")
    min_bookmarks_threshold: int = Field(
        default=1,
        validation_alias="BOOKMARKS_MIN_THRESHOLD",
        description="Refreshes returning fewer bookmarks keep the previous dataset.",
    )
    enable_tag_persistence: bool = Field(
        default=True, validation_alias="BOOKMARKS_ENABLE_TAG_PERSISTENCE"
    )
    max_tags_to_persist: int = Field(
        default=0,
        validation_alias="BOOKMARKS_MAX_TAGS_TO_PERSIST",
        description="Upper bound on precomputed tag collections (0 = every tag).",
    )
    key_root: str = Field(default="json/bookmarks", validation_alias="BOOKMARKS_KEY_ROOT")

    @field_validator("page_size", mode="before")
    @classmethod
    def _validate_page_size(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 24))
        except ValueError as exc:
            msg = "Bookmarks page size must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 1 or parsed > 500:
            msg = "Bookmarks page size must be between 1 and 500"
            raise ValueError(msg)
        return parsed

    @field_validator("lock_ttl_ms", mode="before")
    @classmethod
    def _validate_lock_ttl(cls, value: Any) -> int:
        try:
            parsed = int(float(str(value if value not in (None, "") else DEFAULT_LOCK_TTL_MS)))
        except ValueError as exc:
            msg = "Bookmarks lock TTL must be a valid number of milliseconds"
            raise ValueError(msg) from exc
        if parsed <= 0:
            msg = "Bookmarks lock TTL must be positive"
            raise ValueError(msg)
        if parsed > 24 * 60 * 60 * 1000:
            msg = "Bookmarks lock TTL must be at most 24 hours"
            raise ValueError(msg)
        return parsed

    @field_validator(
        "lock_max_retries", "min_bookmarks_threshold", "max_tags_to_persist", mode="before"
    )
    @classmethod
    def _validate_non_negative(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc
        limits: dict[str, tuple[int, int]] = {
            "lock_max_retries": (0, 10),
            "min_bookmarks_threshold": (0, 100_000),
            "max_tags_to_persist": (0, 100_000),
        }
        min_val, max_val = limits[info.field_name]
        if parsed < min_val or parsed > max_val:
            msg = (
                f"{info.field_name.replace('_', ' ').capitalize()} must be between "
                f"{min_val} and {max_val}"
            )
            raise ValueError(msg)
        return parsed

    @field_validator("key_root", mode="before")
    @classmethod
    def _validate_key_root(cls, value: Any) -> str:
        root = str(value or "json/bookmarks").strip().strip("/")
        if not root:
            msg = "Bookmarks key root cannot be empty"
            raise ValueError(msg)
        if any(ch.isspace() for ch in root):
            msg = "Bookmarks key root cannot contain whitespace"
            raise ValueError(msg)
        return root


class CacheConfig(BaseModel):
    """In-process cache TTLs and downstream render-cache invalidation."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    ttl_seconds: int = Field(
        default=300,
        validation_alias="BOOKMARKS_CACHE_TTL_SECONDS",
        description="TTL for cached index/page reads (default: 5 minutes)",
    )
    success_ttl_seconds: int = Field(
        default=86_400,
        validation_alias="BOOKMARKS_CACHE_SUCCESS_TTL_SECONDS",
        description="TTL for confirmed lookup results (default: 24 hours)",
    )
    failure_ttl_seconds: int = Field(
        default=3_600,
        validation_alias="BOOKMARKS_CACHE_FAILURE_TTL_SECONDS",
        description="TTL for failed lookups so they are retried sooner (default: 1 hour)",
    )
    render_invalidation_url: str | None = Field(
        default=None, validation_alias="RENDER_INVALIDATION_WEBHOOK_URL"
    )
    render_invalidation_token: str | None = Field(
        default=None, validation_alias="RENDER_INVALIDATION_TOKEN"
    )

    @field_validator("ttl_seconds", "success_ttl_seconds", "failure_ttl_seconds", mode="before")
    @classmethod
    def _validate_ttl_seconds(cls, value: Any, info: ValidationInfo) -> int:
        default = cls.model_fields[info.field_name].default
        try:
            parsed = int(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"{info.field_name.replace('_', ' ')} must be a valid integer"
            raise ValueError(msg) from exc

        ttl_limits: dict[str, tuple[int, int]] = {
            "ttl_seconds": (1, 86_400),  # 1 sec to 1 day
            "success_ttl_seconds": (60, 86_400 * 30),  # 1 min to 30 days
            "failure_ttl_seconds": (10, 86_400),  # 10 sec to 1 day
        }
        min_val, max_val = ttl_limits[info.field_name]
        if parsed < min_val or parsed > max_val:
            msg = (
                f"{info.field_name.replace('_', ' ').capitalize()} must be between "
                f"{min_val} and {max_val} seconds"
            )
            raise ValueError(msg)
        return parsed

    @field_validator("render_invalidation_url", "render_invalidation_token", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        cleaned = str(value).strip()
        return cleaned or None


class SchedulerConfig(BaseModel):
    """Background refresh schedule."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    enabled: bool = Field(default=True, validation_alias="BOOKMARKS_SCHEDULER_ENABLED")
    cron_hours: str = Field(default="*/2", validation_alias="BOOKMARKS_REFRESH_CRON_HOURS")
    jitter_seconds: int = Field(
        default=900,
        validation_alias="BOOKMARKS_REFRESH_JITTER_SECONDS",
        description="Random delay added to each scheduled run (default: 15 minutes)",
    )

    @field_validator("cron_hours", mode="before")
    @classmethod
    def _validate_cron_hours(cls, value: Any) -> str:
        expr = str(value or "*/2").strip()
        if not expr or any(ch.isspace() for ch in expr):
            msg = "Refresh cron hours must be a single cron field expression"
            raise ValueError(msg)
        return expr

    @field_validator("jitter_seconds", mode="before")
    @classmethod
    def _validate_jitter(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 900))
        except ValueError as exc:
            msg = "Refresh jitter must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 3_600:
            msg = "Refresh jitter must be between 0 and 3600 seconds"
            raise ValueError(msg)
        return parsed
