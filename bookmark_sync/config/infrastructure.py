from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .redis import RedisConfig

STORAGE_BACKENDS = frozenset({"redis", "filesystem"})


class StorageConfig(BaseModel):
    """Object store backend selection."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    backend: str = Field(default="filesystem", validation_alias="BOOKMARKS_STORAGE_BACKEND")
    directory: str = Field(default="data/objects", validation_alias="BOOKMARKS_STORAGE_DIR")

    @field_validator("backend", mode="before")
    @classmethod
    def _validate_backend(cls, value: Any) -> str:
        backend = str(value or "filesystem").strip().lower()
        if backend not in STORAGE_BACKENDS:
            msg = f"Invalid storage backend: {backend}. Must be one of {sorted(STORAGE_BACKENDS)}"
            raise ValueError(msg)
        return backend

    @field_validator("directory", mode="before")
    @classmethod
    def _validate_directory(cls, value: Any) -> str:
        directory = str(value or "data/objects").strip()
        if not directory:
            msg = "Storage directory cannot be empty"
            raise ValueError(msg)
        if "\x00" in directory:
            msg = "Storage directory contains invalid characters"
            raise ValueError(msg)
        return directory


class AdminConfig(BaseModel):
    """Credential guarding the admin control surface."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    secret: str = Field(default="", validation_alias="BOOKMARKS_ADMIN_SECRET")

    @field_validator("secret", mode="before")
    @classmethod
    def _validate_secret(cls, value: Any) -> str:
        if value in (None, ""):
            return ""
        secret = str(value).strip()
        if len(secret) > 500:
            msg = "Admin secret appears to be too long"
            raise ValueError(msg)
        return secret


__all__ = ["AdminConfig", "RedisConfig", "StorageConfig"]
