from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator


class KarakeepConfig(BaseModel):
    """Karakeep API settings used by the default bookmark fetch callback."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    api_url: str = Field(
        default="http://localhost:3000/api/v1",
        validation_alias="KARAKEEP_API_URL",
    )
    api_key: str = Field(default="", validation_alias="KARAKEEP_API_KEY")
    sync_tag: str | None = Field(
        default=None,
        validation_alias="KARAKEEP_SYNC_TAG",
        description="Only bookmarks carrying this tag are published (empty = all).",
    )
    include_archived: bool = Field(default=False, validation_alias="KARAKEEP_INCLUDE_ARCHIVED")
    request_timeout_sec: float = Field(default=30.0, validation_alias="KARAKEEP_TIMEOUT_SEC")
    max_retries: int = Field(default=3, validation_alias="KARAKEEP_MAX_RETRIES")

    @field_validator("api_url", mode="before")
    @classmethod
    def _validate_api_url(cls, value: Any) -> str:
        url = str(value or "http://localhost:3000/api/v1").strip()
        if not url:
            return "http://localhost:3000/api/v1"
        return url.rstrip("/")

    @field_validator("api_key", mode="before")
    @classmethod
    def _validate_api_key(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        key = str(value).strip()
        if len(key) > 500:
            msg = "Karakeep API key appears to be too long"
            raise ValueError(msg)
        return key

    @field_validator("sync_tag", mode="before")
    @classmethod
    def _validate_sync_tag(cls, value: Any) -> str | None:
        if value in (None, ""):
            return None
        tag = str(value).strip()
        if len(tag) > 50:
            msg = "Karakeep sync tag is too long"
            raise ValueError(msg)
        return tag or None

    @field_validator("request_timeout_sec", mode="before")
    @classmethod
    def _validate_timeout(cls, value: Any) -> float:
        try:
            parsed = float(str(value if value not in (None, "") else 30.0))
        except ValueError as exc:
            msg = "Karakeep timeout must be a valid number"
            raise ValueError(msg) from exc
        if parsed <= 0 or parsed > 600:
            msg = "Karakeep timeout must be between 0 and 600 seconds"
            raise ValueError(msg)
        return parsed

    @field_validator("max_retries", mode="before")
    @classmethod
    def _validate_max_retries(cls, value: Any) -> int:
        try:
            parsed = int(str(value if value not in (None, "") else 3))
        except ValueError as exc:
            msg = "Karakeep max retries must be a valid integer"
            raise ValueError(msg) from exc
        if parsed < 0 or parsed > 10:
            msg = "Karakeep max retries must be between 0 and 10"
            raise ValueError(msg)
        return parsed

    @property
    def configured(self) -> bool:
        return bool(self.api_key)
