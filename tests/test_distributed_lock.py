"""Tests for the object-store refresh lease."""

from __future__ import annotations

import pytest

from bookmark_sync.bookmarks.lock import DistributedLock, is_expired
from bookmark_sync.domain.exceptions import StoreReadError
from bookmark_sync.domain.models import DistributedLockEntry
from tests.conftest import FakeClock, FakeObjectStore

TTL = 60_000


def _lock(store, keys, clock, instance_id="instance-a", **kwargs) -> DistributedLock:
    return DistributedLock(store, keys, instance_id=instance_id, ttl_ms=TTL, clock=clock, **kwargs)


def _entry(instance_id: str, acquired_at: int, ttl_ms: int = TTL) -> dict:
    return DistributedLockEntry(
        instance_id=instance_id, acquired_at=acquired_at, ttl_ms=ttl_ms
    ).to_json()


class TestIsExpired:
    def test_not_expired_at_exact_ttl(self):
        entry = DistributedLockEntry(instance_id="x", acquired_at=1_000, ttl_ms=500)
        assert is_expired(entry, 1_500) is False

    def test_expired_after_ttl(self):
        entry = DistributedLockEntry(instance_id="x", acquired_at=1_000, ttl_ms=500)
        assert is_expired(entry, 1_501) is True


class TestTryAcquire:
    @pytest.mark.asyncio
    async def test_acquires_free_lock(self, object_store: FakeObjectStore, keys, clock: FakeClock):
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is True
        assert lock.held is True
        stored = object_store.objects[keys.lock]
        assert stored == {"instanceId": "instance-a", "acquiredAt": clock.now, "ttlMs": TTL}

    @pytest.mark.asyncio
    async def test_active_lock_denies_other_instance(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("instance-b", clock.now - 1_000)
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is False
        assert lock.held is False
        assert object_store.objects[keys.lock]["instanceId"] == "instance-b"
        assert keys.lock not in object_store.writes

    @pytest.mark.asyncio
    async def test_expired_lock_is_reclaimed(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("crashed", clock.now - TTL - 1)
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is True
        assert keys.lock in object_store.deletes
        assert object_store.objects[keys.lock]["instanceId"] == "instance-a"

    @pytest.mark.asyncio
    async def test_corrupt_lock_entry_is_reclaimed(self, object_store, keys, clock):
        object_store.objects[keys.lock] = {"holder": "garbage"}
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is True

    @pytest.mark.asyncio
    async def test_read_failure_is_treated_as_unavailable(self, object_store, keys, clock):
        object_store.fail_reads.add(keys.lock)
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is False
        assert object_store.writes == []

    @pytest.mark.asyncio
    async def test_lost_race_on_read_back(self, object_store, keys, clock):
        def _other_instance_wins(key, value):
            if key == keys.lock and value["instanceId"] == "instance-a":
                object_store.objects[key] = _entry("instance-b", clock.now)

        object_store.after_write = _other_instance_wins
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire() is False
        assert lock.held is False
        assert object_store.objects[keys.lock]["instanceId"] == "instance-b"

    @pytest.mark.asyncio
    async def test_write_is_retried_with_backoff(
        self, object_store, keys, clock, no_backoff_sleep
    ):
        object_store.write_failures[keys.lock] = 2
        lock = _lock(object_store, keys, clock, max_retries=3)

        assert await lock.try_acquire() is True
        assert no_backoff_sleep == [0, 1]

    @pytest.mark.asyncio
    async def test_gives_up_after_max_retries(self, object_store, keys, clock, no_backoff_sleep):
        object_store.write_failures[keys.lock] = 10
        lock = _lock(object_store, keys, clock, max_retries=2)

        assert await lock.try_acquire() is False
        assert len(no_backoff_sleep) == 2

    @pytest.mark.asyncio
    async def test_custom_ttl_is_persisted(self, object_store, keys, clock):
        lock = _lock(object_store, keys, clock)

        assert await lock.try_acquire(ttl_ms=5_000) is True
        assert object_store.objects[keys.lock]["ttlMs"] == 5_000


class TestRelease:
    @pytest.mark.asyncio
    async def test_owner_releases(self, object_store, keys, clock):
        lock = _lock(object_store, keys, clock)
        await lock.try_acquire()

        assert await lock.release() is True
        assert keys.lock not in object_store.objects
        assert lock.held is False

    @pytest.mark.asyncio
    async def test_does_not_delete_foreign_lock(self, object_store, keys, clock):
        lock = _lock(object_store, keys, clock)
        await lock.try_acquire()
        # Our lease expired and someone else took over.
        clock.advance(TTL + 10)
        object_store.objects[keys.lock] = _entry("instance-b", clock.now)

        assert await lock.release() is False
        assert object_store.objects[keys.lock]["instanceId"] == "instance-b"

    @pytest.mark.asyncio
    async def test_release_without_holding_is_noop(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("instance-b", clock.now)
        lock = _lock(object_store, keys, clock)

        assert await lock.release() is False
        assert keys.lock in object_store.objects

    @pytest.mark.asyncio
    async def test_force_release_deletes_any_lock(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("instance-b", clock.now)
        lock = _lock(object_store, keys, clock)

        assert await lock.release(force=True) is True
        assert keys.lock not in object_store.objects

    @pytest.mark.asyncio
    async def test_delete_failure_is_logged_not_raised(self, object_store, keys, clock):
        lock = _lock(object_store, keys, clock)
        await lock.try_acquire()
        object_store.fail_deletes.add(keys.lock)

        assert await lock.release() is False


class TestHold:
    @pytest.mark.asyncio
    async def test_releases_on_exception(self, object_store, keys, clock):
        lock = _lock(object_store, keys, clock)

        with pytest.raises(RuntimeError):
            async with lock.hold() as acquired:
                assert acquired is True
                raise RuntimeError("boom")

        assert keys.lock not in object_store.objects

    @pytest.mark.asyncio
    async def test_denied_hold_leaves_foreign_lock(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("instance-b", clock.now)
        lock = _lock(object_store, keys, clock)

        async with lock.hold() as acquired:
            assert acquired is False

        assert object_store.objects[keys.lock]["instanceId"] == "instance-b"


class TestReadHolder:
    @pytest.mark.asyncio
    async def test_returns_current_holder(self, object_store, keys, clock):
        object_store.objects[keys.lock] = _entry("instance-b", clock.now)
        lock = _lock(object_store, keys, clock)

        holder = await lock.read_holder()
        assert holder is not None
        assert holder.instance_id == "instance-b"

    @pytest.mark.asyncio
    async def test_storage_failure_is_classified(self, object_store, keys, clock):
        object_store.fail_reads.add(keys.lock)
        lock = _lock(object_store, keys, clock)

        with pytest.raises(StoreReadError):
            await lock.read_holder()
