from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationInfo, field_validator

# Inclusive bounds for numeric settings; blank values fall back to the default.
_BOUNDS: dict[str, tuple[float, float]] = {
    "port": (1, 65535),
    "db": (0, 15),
    "socket_timeout": (0.1, 60),
    "operation_timeout_sec": (0.1, 60),
}


class RedisConfig(BaseModel):
    """Connection settings for the Redis-backed object store.

    ``REDIS_URL`` wins over host/port/db when both are set. Every key the store
    writes is namespaced under ``prefix``.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    url: str | None = Field(default=None, validation_alias="REDIS_URL")
    host: str = Field(default="127.0.0.1", validation_alias="REDIS_HOST")
    port: int = Field(default=6379, validation_alias="REDIS_PORT")
    db: int = Field(default=0, validation_alias="REDIS_DB")
    password: str | None = Field(default=None, validation_alias="REDIS_PASSWORD")
    prefix: str = Field(default="bookmarks", validation_alias="REDIS_PREFIX")
    socket_timeout: float = Field(default=5.0, validation_alias="REDIS_SOCKET_TIMEOUT")
    operation_timeout_sec: float = Field(
        default=5.0,
        validation_alias="REDIS_OPERATION_TIMEOUT_SEC",
        description="Upper bound for a single object read/write against Redis.",
    )

    @field_validator("url", "password", mode="before")
    @classmethod
    def _blank_to_none(cls, value: Any) -> str | None:
        if value is None:
            return None
        cleaned = str(value).strip()
        return cleaned or None

    @field_validator("host", "prefix", mode="before")
    @classmethod
    def _token(cls, value: Any, info: ValidationInfo) -> str:
        default = cls.model_fields[info.field_name].default
        token = str(value if value not in (None, "") else default).strip()
        if not token or any(ch.isspace() for ch in token):
            msg = f"Redis {info.field_name} must be a non-empty value without whitespace"
            raise ValueError(msg)
        return token

    @field_validator("port", "db", "socket_timeout", "operation_timeout_sec", mode="before")
    @classmethod
    def _bounded_number(cls, value: Any, info: ValidationInfo) -> float:
        name = info.field_name
        default = cls.model_fields[name].default
        try:
            parsed = float(str(value if value not in (None, "") else default))
        except ValueError as exc:
            msg = f"Redis {name} must be a number"
            raise ValueError(msg) from exc
        low, high = _BOUNDS[name]
        if not low <= parsed <= high:
            msg = f"Redis {name} must be between {low:g} and {high:g}"
            raise ValueError(msg)
        return int(parsed) if name in ("port", "db") else parsed
