from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from dotenv import dotenv_values
from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    field_validator,
    model_validator,
)
from pydantic_settings import BaseSettings, SettingsConfigDict

from .bookmarks import BookmarksConfig, CacheConfig, SchedulerConfig
from .infrastructure import AdminConfig, StorageConfig
from .integrations import KarakeepConfig
from .redis import RedisConfig

logger = logging.getLogger(__name__)

ENV_FILE = ".env"

ENVIRONMENTS = frozenset({"production", "development", "test"})
_ENV_ALIASES = {"prod": "production", "dev": "development", "testing": "test"}
_ENV_SUFFIXES = {"production": "", "development": "-dev", "test": "-test"}
_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class RuntimeConfig(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    log_file: str | None = Field(default=None, validation_alias="LOG_FILE")
    environment: str = Field(
        default="production", validation_alias=AliasChoices("APP_ENV", "DEPLOYMENT_ENV")
    )

    @field_validator("log_level", mode="before")
    @classmethod
    def _validate_log_level(cls, value: Any) -> str:
        level = str(value or "INFO").strip().upper()
        if level not in _LOG_LEVELS:
            msg = f"Invalid log level: {value}. Must be one of {', '.join(_LOG_LEVELS)}"
            raise ValueError(msg)
        return level

    @field_validator("log_file", mode="before")
    @classmethod
    def _validate_log_file(cls, value: Any) -> str | None:
        path = str(value).strip() if value is not None else ""
        if "\x00" in path:
            msg = "Log file path contains invalid characters"
            raise ValueError(msg)
        return path or None

    @field_validator("environment", mode="before")
    @classmethod
    def _validate_environment(cls, value: Any) -> str:
        env = str(value or "production").strip().lower()
        env = _ENV_ALIASES.get(env, env)
        if env not in ENVIRONMENTS:
            msg = f"Invalid environment: {env}. Must be one of {sorted(ENVIRONMENTS)}"
            raise ValueError(msg)
        return env

    @property
    def env_suffix(self) -> str:
        """Appended to persisted keys so environments never share objects."""
        return _ENV_SUFFIXES[self.environment]


@dataclass(frozen=True)
class AppConfig:
    runtime: RuntimeConfig
    bookmarks: BookmarksConfig
    cache: CacheConfig
    storage: StorageConfig
    redis: RedisConfig
    karakeep: KarakeepConfig
    scheduler: SchedulerConfig
    admin: AdminConfig


def _field_env_names(field: Any) -> list[str]:
    alias = field.validation_alias
    if isinstance(alias, AliasChoices):
        names = [choice for choice in alias.choices if isinstance(choice, str)]
    elif isinstance(alias, str):
        names = [alias]
    else:
        names = []
    if field.alias:
        names.append(field.alias)
    return names


def _environment(env_file: str = ENV_FILE) -> dict[str, Any]:
    """``.env`` values overlaid by the process environment."""
    values: dict[str, Any] = {}
    if Path(env_file).is_file():
        values.update({k: v for k, v in dotenv_values(env_file).items() if v is not None})
    values.update(os.environ)
    return values


def _section_from_env(model: type[BaseModel], source: dict[str, Any]) -> dict[str, Any]:
    section: dict[str, Any] = {}
    for name, field in model.model_fields.items():
        for env_name in _field_env_names(field):
            if env_name in source:
                section[name] = source[env_name]
                break
    return section


class Settings(BaseSettings):
    """All configuration sections.

    Each section is a plain model whose fields carry their environment
    variable names as validation aliases; the ``before`` validator gathers
    them from ``.env`` and ``os.environ``. Keyword arguments passed per
    section win over both.
    """

    model_config = SettingsConfigDict(extra="ignore", populate_by_name=True, case_sensitive=True)

    runtime: RuntimeConfig = Field(default_factory=RuntimeConfig)
    bookmarks: BookmarksConfig = Field(default_factory=BookmarksConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    redis: RedisConfig = Field(default_factory=RedisConfig)
    karakeep: KarakeepConfig = Field(default_factory=KarakeepConfig)
    scheduler: SchedulerConfig = Field(default_factory=SchedulerConfig)
    admin: AdminConfig = Field(default_factory=AdminConfig)

    @model_validator(mode="before")
    @classmethod
    def _sections_from_environment(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data

        source = _environment()
        merged = dict(data)
        for name, field in cls.model_fields.items():
            model = field.annotation
            if not (isinstance(model, type) and issubclass(model, BaseModel)):
                continue
            from_env = _section_from_env(model, source)
            explicit = data.get(name)
            if isinstance(explicit, dict):
                merged[name] = {**from_env, **explicit}
            elif explicit is None and from_env:
                merged[name] = from_env
        return merged

    def as_app_config(self) -> AppConfig:
        return AppConfig(
            runtime=self.runtime,
            bookmarks=self.bookmarks,
            cache=self.cache,
            storage=self.storage,
            redis=self.redis,
            karakeep=self.karakeep,
            scheduler=self.scheduler,
            admin=self.admin,
        )


def load_config(**overrides: Any) -> AppConfig:
    """Load configuration from ``.env`` and the environment.

    Args:
        overrides: Per-section dictionaries taking precedence over the
            environment, e.g. ``load_config(bookmarks={"page_size": 10})``.

    Raises:
        RuntimeError: If any section fails validation.
    """
    try:
        settings = Settings(**overrides)
    except ValidationError as exc:
        msg = f"Configuration validation failed: {exc}"
        raise RuntimeError(msg) from exc

    if not settings.admin.secret:
        logger.warning("admin_secret_not_configured")

    return settings.as_app_config()
