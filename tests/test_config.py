"""Configuration loading from the environment and explicit overrides."""

from __future__ import annotations

import pytest

from bookmark_sync.bookmarks.keys import BookmarkKeys
from bookmark_sync.config import (
    BookmarksConfig,
    CacheConfig,
    KarakeepConfig,
    RuntimeConfig,
    SchedulerConfig,
    StorageConfig,
    load_config,
)

_ENV_VARS = (
    "APP_ENV",
    "DEPLOYMENT_ENV",
    "BOOKMARKS_PAGE_SIZE",
    "BOOKMARKS_STORAGE_BACKEND",
    "BOOKMARKS_ADMIN_SECRET",
    "KARAKEEP_API_URL",
    "KARAKEEP_API_KEY",
    "KARAKEEP_SYNC_TAG",
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    for name in _ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    # Keep a developer's .env out of the assertions.
    monkeypatch.chdir(tmp_path)


class TestLoadConfig:
    def test_defaults(self):
        cfg = load_config()

        assert cfg.runtime.environment == "production"
        assert cfg.runtime.env_suffix == ""
        assert cfg.bookmarks.page_size == 24
        assert cfg.bookmarks.lock_ttl_ms == 30 * 60 * 1000
        assert cfg.bookmarks.min_bookmarks_threshold == 1
        assert cfg.storage.backend == "filesystem"
        assert cfg.scheduler.enabled is True
        assert cfg.admin.secret == ""

    def test_environment_variables(self, monkeypatch):
        monkeypatch.setenv("APP_ENV", "dev")
        monkeypatch.setenv("BOOKMARKS_PAGE_SIZE", "12")
        monkeypatch.setenv("BOOKMARKS_ADMIN_SECRET", "  hunter2  ")
        monkeypatch.setenv("KARAKEEP_API_URL", "https://karakeep.test/api/v1/")

        cfg = load_config()

        assert cfg.runtime.environment == "development"
        assert cfg.runtime.env_suffix == "-dev"
        assert cfg.bookmarks.page_size == 12
        assert cfg.admin.secret == "hunter2"
        assert cfg.karakeep.api_url == "https://karakeep.test/api/v1"

    def test_overrides_beat_environment(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_PAGE_SIZE", "12")

        cfg = load_config(bookmarks={"page_size": 6}, runtime={"environment": "test"})

        assert cfg.bookmarks.page_size == 6
        assert cfg.runtime.env_suffix == "-test"

    def test_invalid_values_raise_runtime_error(self, monkeypatch):
        monkeypatch.setenv("BOOKMARKS_PAGE_SIZE", "0")
        with pytest.raises(RuntimeError, match="Configuration validation failed"):
            load_config()

    def test_config_sections_are_frozen(self):
        cfg = load_config()
        with pytest.raises(Exception):
            cfg.bookmarks.page_size = 3  # type: ignore[misc]

    def test_dotenv_file_is_read_and_environment_wins(self, monkeypatch, tmp_path):
        (tmp_path / ".env").write_text(
            "BOOKMARKS_PAGE_SIZE=7\nBOOKMARKS_ADMIN_SECRET=from-file\n", encoding="utf-8"
        )
        monkeypatch.setenv("BOOKMARKS_ADMIN_SECRET", "from-env")

        cfg = load_config()

        assert cfg.bookmarks.page_size == 7
        assert cfg.admin.secret == "from-env"


class TestSectionValidation:
    def test_environment_aliases(self):
        assert RuntimeConfig(environment="prod").environment == "production"
        with pytest.raises(ValueError):
            RuntimeConfig(environment="staging")

    def test_storage_backend(self):
        assert StorageConfig(backend="REDIS").backend == "redis"
        with pytest.raises(ValueError):
            StorageConfig(backend="s3")

    def test_bookmarks_bounds(self):
        with pytest.raises(ValueError):
            BookmarksConfig(lock_ttl_ms=0)
        with pytest.raises(ValueError):
            BookmarksConfig(max_tags_to_persist=-1)
        assert BookmarksConfig(key_root="/custom/root/").key_root == "custom/root"

    def test_cache_ttls(self):
        cfg = CacheConfig(render_invalidation_url="  ")
        assert cfg.render_invalidation_url is None
        with pytest.raises(ValueError):
            CacheConfig(failure_ttl_seconds=1)

    def test_scheduler(self):
        assert SchedulerConfig(jitter_seconds="").jitter_seconds == 900
        with pytest.raises(ValueError):
            SchedulerConfig(cron_hours="*/2 *")

    def test_karakeep_configured(self):
        assert KarakeepConfig().configured is False
        assert KarakeepConfig(api_key="k").configured is True


def test_keys_are_namespaced_by_environment():
    production = BookmarkKeys()
    test = BookmarkKeys(env_suffix="-test")

    assert production.index == "json/bookmarks/index.json"
    assert test.index == "json/bookmarks/index-test.json"
    assert test.page(2) == "json/bookmarks/pages-test/page-2.json"
    assert test.tag_page("c-plus-plus", 1) == "json/bookmarks/tags-test/c-plus-plus/page-1.json"
    assert test.tag_index("rust") == "json/bookmarks/tags-test/rust/index.json"
    assert test.bookmark("abc") == "json/bookmarks/by-id-test/abc.json"
    assert test.lock == "json/bookmarks/refresh-lock-test.json"
    assert test.full_dataset == "json/bookmarks/bookmarks-test.json"
