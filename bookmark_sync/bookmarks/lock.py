"""Refresh lease stored as a single object in the object store.

The store has no compare-and-swap, so ownership is established by writing the
entry and reading it back. Two writers racing on the same key are resolved by
whichever write the store kept last; the loser sees a foreign entry on
read-back and gives up. This is best effort, not linearizable.
"""

from __future__ import annotations

import logging
import os
import uuid
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from pydantic import ValidationError

from bookmark_sync.config.bookmarks import DEFAULT_LOCK_TTL_MS
from bookmark_sync.core.backoff import sleep_backoff
from bookmark_sync.core.time_utils import epoch_ms
from bookmark_sync.domain.exceptions import StoreReadError
from bookmark_sync.domain.models import DistributedLockEntry
from bookmark_sync.infrastructure.storage.base import StorageError

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from bookmark_sync.bookmarks.keys import BookmarkKeys
    from bookmark_sync.infrastructure.storage.base import ObjectStore

logger = logging.getLogger(__name__)


def default_instance_id() -> str:
    return f"instance-{os.getpid()}-{uuid.uuid4().hex[:8]}"


def is_expired(entry: DistributedLockEntry, now: int) -> bool:
    """A lease is expired once strictly more than ``ttl_ms`` has elapsed."""
    return now - entry.acquired_at > entry.ttl_ms


class DistributedLock:
    """Lease-based mutual exclusion for the refresh pipeline.

    Acquisition never raises: contention and storage failures both come back
    as ``False`` so the caller simply skips the cycle.

    Example:
        async with lock.hold() as acquired:
            if acquired:
                await refresh()
    """

    def __init__(
        self,
        store: ObjectStore,
        keys: BookmarkKeys,
        *,
        instance_id: str | None = None,
        ttl_ms: int = DEFAULT_LOCK_TTL_MS,
        max_retries: int = 3,
        retry_backoff_base: float = 0.1,
        clock: Callable[[], int] = epoch_ms,
    ) -> None:
        self._store = store
        self._key = keys.lock
        self.instance_id = instance_id or default_instance_id()
        self.ttl_ms = ttl_ms
        self._max_retries = max(0, max_retries)
        self._retry_backoff_base = retry_backoff_base
        self._clock = clock
        self._held: DistributedLockEntry | None = None

    @property
    def held(self) -> bool:
        return self._held is not None

    async def _read_entry(self) -> DistributedLockEntry | None:
        raw = await self._store.read_json(self._key)
        if raw is None:
            return None
        try:
            return DistributedLockEntry.model_validate(raw)
        except ValidationError:
            # An unreadable lease cannot be owned by anyone; it is reclaimed.
            logger.warning("refresh_lock_corrupt", extra={"key": self._key})
            return None

    async def read_holder(self) -> DistributedLockEntry | None:
        """Current lease, or ``None`` when free."""
        try:
            return await self._read_entry()
        except StorageError as exc:
            msg = f"Failed to read {self._key}"
            raise StoreReadError(msg, {"key": self._key, "error": str(exc)}) from exc

    async def _write_with_retries(self, entry: DistributedLockEntry) -> bool:
        for attempt in range(self._max_retries + 1):
            try:
                await self._store.write_json(self._key, entry.to_json())
                return True
            except StorageError as exc:
                if attempt >= self._max_retries:
                    logger.warning(
                        "refresh_lock_write_failed",
                        extra={
                            "instance_id": self.instance_id,
                            "attempts": attempt + 1,
                            "error": str(exc),
                        },
                    )
                    return False
                delay = await sleep_backoff(attempt, self._retry_backoff_base)
                logger.debug(
                    "refresh_lock_write_retry",
                    extra={"attempt": attempt + 1, "delay_sec": round(delay, 3)},
                )
        return False

    async def _delete_quietly(self, reason: str) -> None:
        try:
            await self._store.delete_object(self._key)
        except StorageError:
            logger.warning(
                "refresh_lock_delete_failed",
                exc_info=True,
                extra={"instance_id": self.instance_id, "reason": reason},
            )

    async def try_acquire(self, ttl_ms: int | None = None) -> bool:
        ttl = ttl_ms if ttl_ms is not None else self.ttl_ms
        now = self._clock()

        try:
            existing = await self._read_entry()
        except StorageError as exc:
            logger.warning(
                "refresh_lock_read_failed",
                extra={"instance_id": self.instance_id, "error": str(exc)},
            )
            return False

        if existing is not None:
            if not is_expired(existing, now):
                logger.info(
                    "refresh_lock_held_skip",
                    extra={
                        "instance_id": self.instance_id,
                        "holder": existing.instance_id,
                        "age_ms": now - existing.acquired_at,
                        "ttl_ms": existing.ttl_ms,
                    },
                )
                return False
            logger.info(
                "refresh_lock_expired_reclaim",
                extra={
                    "instance_id": self.instance_id,
                    "previous_holder": existing.instance_id,
                    "age_ms": now - existing.acquired_at,
                },
            )
            try:
                await self._store.delete_object(self._key)
            except StorageError as exc:
                logger.warning(
                    "refresh_lock_reclaim_failed",
                    extra={"instance_id": self.instance_id, "error": str(exc)},
                )
                return False

        entry = DistributedLockEntry(instance_id=self.instance_id, acquired_at=now, ttl_ms=ttl)
        if not await self._write_with_retries(entry):
            return False

        try:
            current = await self._read_entry()
        except StorageError as exc:
            logger.warning(
                "refresh_lock_verify_failed",
                extra={"instance_id": self.instance_id, "error": str(exc)},
            )
            await self._delete_quietly("verify_failed")
            return False

        if (
            current is None
            or current.instance_id != entry.instance_id
            or current.acquired_at != entry.acquired_at
        ):
            logger.info(
                "refresh_lock_lost_race",
                extra={
                    "instance_id": self.instance_id,
                    "winner": current.instance_id if current else None,
                },
            )
            return False

        self._held = entry
        logger.info(
            "refresh_lock_acquired",
            extra={"instance_id": self.instance_id, "ttl_ms": ttl},
        )
        return True

    async def release(self, *, force: bool = False) -> bool:
        """Delete the lease if this instance owns it (or unconditionally with ``force``).

        Returns whether the lease object was deleted. Failures are logged; an
        orphaned lease expires on its own after ``ttl_ms``.
        """
        held = self._held
        self._held = None

        if not force:
            if held is None:
                return False
            try:
                current = await self._read_entry()
            except StorageError:
                logger.warning(
                    "refresh_lock_release_failed",
                    exc_info=True,
                    extra={"instance_id": self.instance_id},
                )
                return False
            if current is None:
                return False
            if current.instance_id != held.instance_id or current.acquired_at != held.acquired_at:
                logger.warning(
                    "refresh_lock_release_not_owner",
                    extra={"instance_id": self.instance_id, "holder": current.instance_id},
                )
                return False

        try:
            await self._store.delete_object(self._key)
        except StorageError:
            logger.warning(
                "refresh_lock_release_failed",
                exc_info=True,
                extra={"instance_id": self.instance_id, "force": force},
            )
            return False

        logger.info("refresh_lock_released", extra={"instance_id": self.instance_id, "force": force})
        return True

    @asynccontextmanager
    async def hold(self, ttl_ms: int | None = None) -> AsyncIterator[bool]:
        """Try to take the lease and release it on every exit path.

        Yields:
            Whether the lease was acquired.
        """
        acquired = await self.try_acquire(ttl_ms)
        try:
            yield acquired
        finally:
            if acquired:
                await self.release()
