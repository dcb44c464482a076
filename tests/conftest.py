"""Pytest configuration and shared fixtures.

Provides an in-memory object store with failure injection, a controllable
clock and a bookmark factory used across the suite.
"""

from __future__ import annotations

import copy
import fnmatch
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Any

import pytest

from bookmark_sync.bookmarks.keys import BookmarkKeys
from bookmark_sync.domain.models import Bookmark, BookmarkTag
from bookmark_sync.infrastructure.storage.base import StorageError

BASE_TIME = datetime(2025, 1, 1, tzinfo=UTC)
BASE_EPOCH_MS = 1_735_689_600_000


class FakeObjectStore:
    """Dictionary-backed :class:`ObjectStore` recording every operation.

    ``fail_reads``/``fail_writes``/``fail_deletes`` hold glob patterns; a
    matching operation raises :class:`StorageError`. ``write_failures`` maps a
    key to how many times its next writes fail before succeeding.
    ``after_write`` runs after each successful write, which lets a test
    simulate another instance overwriting the same key.
    """

    def __init__(self) -> None:
        self.objects: dict[str, Any] = {}
        self.writes: list[str] = []
        self.reads: list[str] = []
        self.deletes: list[str] = []
        self.fail_reads: set[str] = set()
        self.fail_writes: set[str] = set()
        self.fail_deletes: set[str] = set()
        self.fail_lists = False
        self.write_failures: dict[str, int] = {}
        self.after_write: Callable[[str, Any], None] | None = None

    @staticmethod
    def _matches(key: str, patterns: set[str]) -> bool:
        return any(fnmatch.fnmatchcase(key, pattern) for pattern in patterns)

    async def read_json(self, key: str) -> Any | None:
        self.reads.append(key)
        if self._matches(key, self.fail_reads):
            msg = f"read failed: {key}"
            raise StorageError(msg, key=key)
        value = self.objects.get(key)
        return copy.deepcopy(value)

    async def write_json(self, key: str, value: Any) -> None:
        remaining = self.write_failures.get(key, 0)
        if remaining > 0:
            self.write_failures[key] = remaining - 1
            msg = f"transient write failure: {key}"
            raise StorageError(msg, key=key)
        if self._matches(key, self.fail_writes):
            msg = f"write failed: {key}"
            raise StorageError(msg, key=key)
        self.objects[key] = copy.deepcopy(value)
        self.writes.append(key)
        if self.after_write is not None:
            self.after_write(key, value)

    async def delete_object(self, key: str) -> None:
        if self._matches(key, self.fail_deletes):
            msg = f"delete failed: {key}"
            raise StorageError(msg, key=key)
        self.deletes.append(key)
        self.objects.pop(key, None)

    async def list_objects(self, prefix: str) -> list[str]:
        if self.fail_lists:
            msg = f"list failed: {prefix}"
            raise StorageError(msg, key=prefix)
        return sorted(key for key in self.objects if key.startswith(prefix))

    def keys_with_prefix(self, prefix: str) -> list[str]:
        return sorted(key for key in self.objects if key.startswith(prefix))


class FakeClock:
    """Epoch-millisecond clock that only moves when told to."""

    def __init__(self, now: int = BASE_EPOCH_MS) -> None:
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, ms: int) -> int:
        self.now += ms
        return self.now


def make_bookmark(
    bookmark_id: str,
    *,
    url: str | None = None,
    title: str | None = None,
    tags: list[Any] | None = None,
    days_ago: int = 0,
    modified_days_ago: int | None = None,
    **extra: Any,
) -> Bookmark:
    """Build a bookmark with deterministic timestamps relative to BASE_TIME."""
    bookmarked = BASE_TIME - timedelta(days=days_ago)
    modified = (
        BASE_TIME - timedelta(days=modified_days_ago) if modified_days_ago is not None else None
    )
    return Bookmark(
        id=bookmark_id,
        url=url if url is not None else f"https://example.com/articles/{bookmark_id}",
        title=title if title is not None else f"Article {bookmark_id}",
        tags=[BookmarkTag(**tag) if isinstance(tag, dict) else tag for tag in tags or []],
        date_bookmarked=bookmarked,
        modified_at=modified,
        **extra,
    )


def make_bookmarks(count: int, *, tags: list[Any] | None = None) -> list[Bookmark]:
    """``count`` bookmarks, ``bm-000`` being the most recently bookmarked."""
    return [make_bookmark(f"bm-{i:03d}", days_ago=i, tags=tags) for i in range(count)]


@pytest.fixture
def object_store() -> FakeObjectStore:
    return FakeObjectStore()


@pytest.fixture
def keys() -> BookmarkKeys:
    return BookmarkKeys(env_suffix="-test")


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def no_backoff_sleep(monkeypatch: pytest.MonkeyPatch) -> list[float]:
    """Replace the lock's backoff sleep with a recorder so retry tests run instantly."""
    attempts: list[float] = []

    async def _fake_sleep_backoff(attempt: int, backoff_base: float = 0.1, *args: Any) -> float:
        attempts.append(attempt)
        return 0.0

    monkeypatch.setattr("bookmark_sync.bookmarks.lock.sleep_backoff", _fake_sleep_backoff)
    return attempts
