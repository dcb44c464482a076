"""Lock-guarded "fetch, compare, persist" pipeline.

One refresh runs at a time per process (concurrent callers share the in-flight
task) and, best effort, one at a time across processes (the distributed lock).
On a changed dataset every derived object is written before the index, so a
reader never sees an index pointing at pages that do not exist yet.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError

from bookmark_sync.bookmarks.checksum import compute_checksum, has_changed
from bookmark_sync.bookmarks.slugs import attach_slugs, generate_slug_mapping
from bookmark_sync.bookmarks.store import build_index, canonical_order
from bookmark_sync.core.logging_utils import generate_correlation_id
from bookmark_sync.core.time_utils import epoch_ms
from bookmark_sync.domain.exceptions import (
    BookmarkEngineError,
    StoreFailureError,
    StoreReadError,
    StoreWriteError,
    UpstreamFetchError,
)
from bookmark_sync.domain.models import Bookmark, RefreshHeartbeat
from bookmark_sync.infrastructure.storage.base import StorageError

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Sequence

    from bookmark_sync.bookmarks.cache import BookmarkCache
    from bookmark_sync.bookmarks.lock import DistributedLock
    from bookmark_sync.bookmarks.store import BookmarkStore
    from bookmark_sync.domain.models import BookmarksIndex

    FetchBookmarks = Callable[[], Awaitable[Sequence[Bookmark | dict[str, Any]]]]

logger = logging.getLogger(__name__)


class RefreshState(StrEnum):
    IDLE = "idle"
    ACQUIRING_LOCK = "acquiring_lock"
    LOCK_DENIED = "lock_denied"
    FETCHING = "fetching"
    COMPUTING_CHECKSUM = "computing_checksum"
    WRITE_HEARTBEAT = "write_heartbeat"
    WRITE_FULL = "write_full"
    RELEASING_LOCK = "releasing_lock"


class RefreshOutcome(StrEnum):
    CHANGED = "changed"
    UNCHANGED = "unchanged"
    FORCED = "forced"
    LOCK_DENIED = "lock_denied"
    FETCH_FAILED = "fetch_failed"
    INSUFFICIENT_DATASET = "insufficient_dataset"
    STORE_FAILED = "store_failed"
    WRITE_FAILED = "write_failed"


_WRITE_STATES = frozenset({RefreshState.WRITE_FULL, RefreshState.WRITE_HEARTBEAT})


@dataclass(slots=True)
class RefreshReport:
    """Summary of the last refresh call, exposed by the status endpoint."""

    outcome: RefreshOutcome
    correlation_id: str
    started_at: int
    finished_at: int
    duration_ms: int
    count: int | None = None
    change_detected: bool | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "correlation_id": self.correlation_id,
            "started_at": self.started_at,
            "finished_at": self.finished_at,
            "duration_ms": self.duration_ms,
            "count": self.count,
            "change_detected": self.change_detected,
            "error": self.error,
        }


class RefreshOrchestrator:
    """Run one refresh cycle: lock, fetch, checksum, persist, release.

    Returns the resulting index, or ``None`` when the lock was held elsewhere
    (or the dataset was too small and no previous index existed). Errors are
    :class:`UpstreamFetchError`, a :class:`StoreFailureError` subclass, or
    another :class:`BookmarkEngineError` raised while persisting; each is
    recorded in the heartbeat before it propagates. Raw storage exceptions
    never escape.
    """

    def __init__(
        self,
        store: BookmarkStore,
        lock: DistributedLock,
        fetch_bookmarks: FetchBookmarks,
        *,
        cache: BookmarkCache | None = None,
        min_bookmarks_threshold: int = 1,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self.store = store
        self.lock = lock
        self._fetch_bookmarks = fetch_bookmarks
        self.cache = cache
        self.min_bookmarks_threshold = max(0, min_bookmarks_threshold)
        self._clock = clock
        self._state = RefreshState.IDLE
        self._inflight: asyncio.Task[BookmarksIndex | None] | None = None
        self.last_report: RefreshReport | None = None

    @property
    def state(self) -> RefreshState:
        return self._state

    @property
    def in_progress(self) -> bool:
        return self._inflight is not None and not self._inflight.done()

    async def refresh_and_persist(self, force: bool = False) -> BookmarksIndex | None:
        """Refresh, or join the refresh already running in this process.

        A caller joining an in-flight refresh gets its result even if it asked
        for ``force``. Cancelling the caller does not cancel the refresh.
        """
        if self._inflight is None or self._inflight.done():
            self._inflight = asyncio.create_task(self._run(force))
            self._inflight.add_done_callback(self._clear_inflight)
        else:
            logger.info("bookmark_refresh_joined_inflight", extra={"force": force})
        return await asyncio.shield(self._inflight)

    def _clear_inflight(self, task: asyncio.Task[BookmarksIndex | None]) -> None:
        if self._inflight is task:
            self._inflight = None

    async def _run(self, force: bool) -> BookmarksIndex | None:
        correlation_id = generate_correlation_id()
        started_at = self._clock()
        started = time.perf_counter()
        log_extra = {"correlation_id": correlation_id, "force": force}

        try:
            self._state = RefreshState.ACQUIRING_LOCK
            async with self.lock.hold() as acquired:
                if not acquired:
                    self._state = RefreshState.LOCK_DENIED
                    logger.info("bookmark_refresh_lock_denied", extra=log_extra)
                    self._report(RefreshOutcome.LOCK_DENIED, correlation_id, started_at, started)
                    return None
                try:
                    return await self._refresh_locked(
                        force=force,
                        correlation_id=correlation_id,
                        started_at=started_at,
                        started=started,
                    )
                finally:
                    self._state = RefreshState.RELEASING_LOCK
        finally:
            self._state = RefreshState.IDLE

    async def _refresh_locked(
        self,
        *,
        force: bool,
        correlation_id: str,
        started_at: int,
        started: float,
    ) -> BookmarksIndex | None:
        log_extra = {"correlation_id": correlation_id, "force": force}
        previous: BookmarksIndex | None = None
        try:
            previous = await self.store.read_index()

            self._state = RefreshState.FETCHING
            bookmarks = await self._fetch(previous, correlation_id, started_at, started)
            now = self._clock()

            if len(bookmarks) < self.min_bookmarks_threshold:
                logger.warning(
                    "bookmark_refresh_insufficient_dataset",
                    extra={
                        **log_extra,
                        "count": len(bookmarks),
                        "threshold": self.min_bookmarks_threshold,
                        "previous_count": previous.count if previous else None,
                    },
                )
                kept = await self._record_attempt(previous, now, correlation_id)
                await self._write_heartbeat(
                    RefreshOutcome.INSUFFICIENT_DATASET,
                    success=False,
                    count=len(bookmarks),
                    error=f"fetched {len(bookmarks)} bookmarks, threshold {self.min_bookmarks_threshold}",
                )
                self._report(
                    RefreshOutcome.INSUFFICIENT_DATASET,
                    correlation_id,
                    started_at,
                    started,
                    count=len(bookmarks),
                )
                return kept

            self._state = RefreshState.COMPUTING_CHECKSUM
            checksum = compute_checksum(bookmarks)
            changed = has_changed(previous, bookmarks, checksum)

            if previous is not None and not changed and not force:
                self._state = RefreshState.WRITE_HEARTBEAT
                index = previous.model_copy(
                    update={
                        "last_fetched_at": max(now, previous.last_fetched_at + 1),
                        "last_attempted_at": now,
                        "change_detected": False,
                    }
                )
                await self.store.write_index(index)
                if self.cache is not None:
                    self.cache.invalidate_index()
                outcome = RefreshOutcome.UNCHANGED
            else:
                self._state = RefreshState.WRITE_FULL
                index = await self._write_full(bookmarks, checksum, now, changed=changed)
                if self.cache is not None:
                    await self.cache.clear(reason="bookmarks_refreshed")
                outcome = RefreshOutcome.CHANGED if changed else RefreshOutcome.FORCED

        except StorageError as exc:
            # Adapters are expected to be wrapped by the store; classify anything that slipped through.
            error_cls = StoreWriteError if self._state in _WRITE_STATES else StoreReadError
            failure = error_cls(str(exc), {"key": exc.key, "state": self._state.value})
            await self._store_failed(failure, correlation_id, started_at, started)
            raise failure from exc
        except StoreFailureError as exc:
            await self._store_failed(exc, correlation_id, started_at, started)
            raise
        except UpstreamFetchError:
            # Already recorded by _fetch.
            raise
        except BookmarkEngineError as exc:
            await self._write_failed(exc, correlation_id, started_at, started)
            raise

        await self._write_heartbeat(
            outcome, success=True, count=index.count, change_detected=index.change_detected
        )
        self._report(
            outcome,
            correlation_id,
            started_at,
            started,
            count=index.count,
            change_detected=index.change_detected,
        )
        logger.info(
            "bookmark_refresh_completed",
            extra={
                **log_extra,
                "outcome": outcome.value,
                "count": index.count,
                "total_pages": index.total_pages,
                "checksum": index.checksum,
                "duration_ms": int((time.perf_counter() - started) * 1000),
            },
        )
        return index

    async def _fetch(
        self,
        previous: BookmarksIndex | None,
        correlation_id: str,
        started_at: int,
        started: float,
    ) -> list[Bookmark]:
        try:
            raw = await self._fetch_bookmarks()
            bookmarks = [
                item if isinstance(item, Bookmark) else Bookmark.model_validate(item)
                for item in raw
            ]
        except Exception as exc:
            # The callback is arbitrary caller code; anything it raises is an upstream failure.
            error = UpstreamFetchError(
                f"Bookmark fetch failed: {exc}",
                {"error_type": type(exc).__name__, "correlation_id": correlation_id},
            )
            if isinstance(exc, ValidationError):
                error.details["errors"] = exc.error_count()
            logger.warning(
                "bookmark_refresh_fetch_failed",
                exc_info=True,
                extra={"correlation_id": correlation_id, "error": str(exc)},
            )
            await self._record_attempt(previous, self._clock(), correlation_id)
            await self._write_heartbeat(RefreshOutcome.FETCH_FAILED, success=False, error=str(exc))
            self._report(
                RefreshOutcome.FETCH_FAILED, correlation_id, started_at, started, error=str(exc)
            )
            raise error from exc

        unique: dict[str, Bookmark] = {}
        for bookmark in bookmarks:
            unique.setdefault(bookmark.id, bookmark)
        if len(unique) != len(bookmarks):
            logger.warning(
                "bookmark_refresh_duplicate_ids",
                extra={"correlation_id": correlation_id, "dropped": len(bookmarks) - len(unique)},
            )
        return list(unique.values())

    async def _write_full(
        self,
        bookmarks: list[Bookmark],
        checksum: str,
        now: int,
        *,
        changed: bool,
    ) -> BookmarksIndex:
        ordered = canonical_order(bookmarks)
        mapping = generate_slug_mapping(ordered)
        slugged = attach_slugs(ordered, mapping)

        await self.store.write_full_dataset(slugged)
        await self.store.write_bookmark_files(slugged)
        pages = await self.store.write_pages(slugged)
        tag_slugs = await self.store.write_tag_collections(slugged, now_ms=now)
        await self.store.write_slug_mapping(mapping)

        index = build_index(
            slugged,
            page_size=self.store.page_size,
            now_ms=now,
            checksum=checksum,
            change_detected=changed,
        )
        await self.store.write_index(index)

        await self.store.cleanup_orphaned_bookmark_files(mapping.slugs)
        await self.store.cleanup_stale_pages(pages)
        await self.store.cleanup_stale_tag_collections(tag_slugs)
        return index

    async def _record_attempt(
        self, previous: BookmarksIndex | None, now: int, correlation_id: str
    ) -> BookmarksIndex | None:
        """Advance only ``last_attempted_at`` on the existing index."""
        if previous is None:
            return None
        attempted = previous.model_copy(update={"last_attempted_at": now})
        try:
            await self.store.write_index(attempted)
        except StoreWriteError as exc:
            logger.warning(
                "bookmark_refresh_attempt_not_recorded",
                extra={"correlation_id": correlation_id, "error": exc.message},
            )
            return previous
        if self.cache is not None:
            self.cache.invalidate_index()
        return attempted

    async def _write_heartbeat(
        self,
        outcome: RefreshOutcome,
        *,
        success: bool,
        count: int | None = None,
        change_detected: bool | None = None,
        error: str | None = None,
    ) -> None:
        heartbeat = RefreshHeartbeat(
            run_at=self._clock(),
            instance_id=self.lock.instance_id,
            outcome=outcome.value,
            success=success,
            change_detected=change_detected,
            count=count,
            error=error,
        )
        try:
            await self.store.write_heartbeat(heartbeat)
        except StoreWriteError as exc:
            logger.warning("bookmark_heartbeat_write_failed", extra={"error": exc.message})

    async def _store_failed(
        self,
        exc: StoreFailureError,
        correlation_id: str,
        started_at: int,
        started: float,
    ) -> None:
        logger.error(
            "bookmark_refresh_store_failed",
            extra={
                "correlation_id": correlation_id,
                "state": self._state.value,
                "error": exc.message,
                "details": exc.details,
            },
        )
        await self._write_heartbeat(RefreshOutcome.STORE_FAILED, success=False, error=exc.message)
        self._report(
            RefreshOutcome.STORE_FAILED, correlation_id, started_at, started, error=exc.message
        )

    async def _write_failed(
        self,
        exc: BookmarkEngineError,
        correlation_id: str,
        started_at: int,
        started: float,
    ) -> None:
        logger.error(
            "bookmark_refresh_write_failed",
            extra={
                "correlation_id": correlation_id,
                "state": self._state.value,
                "error_type": type(exc).__name__,
                "error": exc.message,
                "details": exc.details,
            },
        )
        await self._write_heartbeat(RefreshOutcome.WRITE_FAILED, success=False, error=exc.message)
        self._report(
            RefreshOutcome.WRITE_FAILED, correlation_id, started_at, started, error=exc.message
        )

    def _report(
        self,
        outcome: RefreshOutcome,
        correlation_id: str,
        started_at: int,
        started: float,
        *,
        count: int | None = None,
        change_detected: bool | None = None,
        error: str | None = None,
    ) -> None:
        self.last_report = RefreshReport(
            outcome=outcome,
            correlation_id=correlation_id,
            started_at=started_at,
            finished_at=self._clock(),
            duration_ms=int((time.perf_counter() - started) * 1000),
            count=count,
            change_detected=change_detected,
            error=error,
        )
