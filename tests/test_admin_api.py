"""Admin API: credential check, refresh trigger, cache clear and status."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from bookmark_sync.api.main import create_app
from bookmark_sync.config import load_config
from bookmark_sync.di.container import BookmarkEngine
from bookmark_sync.domain.exceptions import SlugMappingError
from bookmark_sync.domain.models import DistributedLockEntry
from tests.conftest import FakeClock, FakeObjectStore, make_bookmarks

SECRET = "s3cret-admin"


@pytest.fixture(autouse=True)
def _isolated_env(monkeypatch: pytest.MonkeyPatch, tmp_path) -> None:
    monkeypatch.chdir(tmp_path)
    monkeypatch.delenv("BOOKMARKS_ADMIN_SECRET", raising=False)
    monkeypatch.delenv("RENDER_INVALIDATION_WEBHOOK_URL", raising=False)


def _engine(object_store: FakeObjectStore, fetch, *, secret: str = SECRET) -> BookmarkEngine:
    cfg = load_config(
        runtime={"environment": "test"},
        admin={"secret": secret},
        scheduler={"enabled": False},
        bookmarks={"page_size": 10},
    )
    return BookmarkEngine(
        cfg,
        object_store=object_store,
        fetch_bookmarks=fetch,
        instance_id="api-test",
        clock=FakeClock(),
    )


def _client(engine: BookmarkEngine) -> TestClient:
    return TestClient(create_app(engine=engine))


class TestAuthentication:
    def test_missing_credential_is_rejected_before_engine(self, object_store):
        fetch = AsyncMock(return_value=make_bookmarks(3))
        client = _client(_engine(object_store, fetch))

        response = client.post("/admin/bookmarks/refresh")

        assert response.status_code == 401
        body = response.json()
        assert body["success"] is False
        assert body["error"]["code"] == "UNAUTHORIZED"
        assert body["error"]["errorType"] == "authentication"
        fetch.assert_not_awaited()
        assert object_store.reads == []
        assert object_store.writes == []

    def test_wrong_secret_is_rejected(self, object_store):
        fetch = AsyncMock(return_value=[])
        client = _client(_engine(object_store, fetch))

        response = client.get("/admin/bookmarks/status", headers={"X-Admin-Secret": "nope"})

        assert response.status_code == 401
        assert object_store.reads == []

    def test_unconfigured_secret_disables_admin(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=[]), secret=""))

        response = client.post(
            "/admin/bookmarks/cache/clear", headers={"X-Admin-Secret": "anything"}
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "CONFIGURATION_ERROR"

    def test_bearer_token_is_accepted(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=make_bookmarks(2))))

        response = client.get(
            "/admin/bookmarks/status", headers={"Authorization": f"Bearer {SECRET}"}
        )

        assert response.status_code == 200


class TestRefreshEndpoint:
    def test_refresh_persists_and_reports(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=make_bookmarks(15))))

        response = client.post(
            "/admin/bookmarks/refresh",
            headers={"X-Admin-Secret": SECRET, "X-Correlation-ID": "corr-123"},
        )

        assert response.status_code == 200
        assert response.headers["X-Correlation-ID"] == "corr-123"
        body = response.json()
        assert body["success"] is True
        assert body["meta"]["correlation_id"] == "corr-123"
        data = body["data"]
        assert data["outcome"] == "changed"
        assert data["skipped"] is False
        assert data["index"]["count"] == 15
        assert data["index"]["totalPages"] == 2

    def test_force_flag(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=make_bookmarks(3))))
        headers = {"X-Admin-Secret": SECRET}
        client.post("/admin/bookmarks/refresh", headers=headers)

        unchanged = client.post("/admin/bookmarks/refresh", headers=headers)
        forced = client.post("/admin/bookmarks/refresh?force=true", headers=headers)

        assert unchanged.json()["data"]["outcome"] == "unchanged"
        assert forced.json()["data"]["outcome"] == "forced"

    def test_lock_held_elsewhere_is_skipped(self, object_store):
        engine = _engine(object_store, AsyncMock(return_value=make_bookmarks(3)))
        object_store.objects[engine.keys.lock] = DistributedLockEntry(
            instance_id="other", acquired_at=FakeClock().now, ttl_ms=60_000
        ).to_json()

        response = _client(engine).post(
            "/admin/bookmarks/refresh", headers={"X-Admin-Secret": SECRET}
        )

        assert response.status_code == 200
        assert response.json()["data"]["skipped"] is True
        assert response.json()["data"]["outcome"] == "lock_denied"

    def test_fetch_failure_maps_to_bad_gateway(self, object_store):
        client = _client(_engine(object_store, AsyncMock(side_effect=RuntimeError("down"))))

        response = client.post("/admin/bookmarks/refresh", headers={"X-Admin-Secret": SECRET})

        assert response.status_code == 502
        error = response.json()["error"]
        assert error["code"] == "EXTERNAL_API_ERROR"
        assert error["retryable"] is True

    def test_store_failure_maps_to_service_unavailable(self, object_store):
        engine = _engine(object_store, AsyncMock(return_value=make_bookmarks(3)))
        object_store.fail_reads.add(engine.keys.index)

        response = _client(engine).post(
            "/admin/bookmarks/refresh", headers={"X-Admin-Secret": SECRET}
        )

        assert response.status_code == 503
        assert response.json()["error"]["code"] == "STORAGE_ERROR"

    def test_slug_failure_maps_to_structured_error(self, object_store, monkeypatch):
        def _fail(bookmarks):
            raise SlugMappingError("no slug", {"bookmark_id": "bm-000"})

        monkeypatch.setattr("bookmark_sync.bookmarks.refresh.generate_slug_mapping", _fail)
        engine = _engine(object_store, AsyncMock(return_value=make_bookmarks(3)))

        response = _client(engine).post(
            "/admin/bookmarks/refresh", headers={"X-Admin-Secret": SECRET}
        )

        assert response.status_code == 500
        error = response.json()["error"]
        assert error["code"] == "REFRESH_FAILED"
        assert error["errorType"] == "processing"
        assert error["retryable"] is False
        assert error["details"] == {"error_type": "SlugMappingError", "bookmark_id": "bm-000"}
        assert engine.orchestrator.last_report.outcome.value == "write_failed"

    def test_invalid_query_parameter(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=[])))

        response = client.post(
            "/admin/bookmarks/refresh?force=maybe", headers={"X-Admin-Secret": SECRET}
        )

        assert response.status_code == 422
        assert response.json()["error"]["code"] == "VALIDATION_ERROR"


class TestCacheAndStatus:
    def test_cache_clear_with_index_purge(self, object_store):
        engine = _engine(object_store, AsyncMock(return_value=make_bookmarks(3)))
        client = _client(engine)
        headers = {"X-Admin-Secret": SECRET}
        client.post("/admin/bookmarks/refresh", headers=headers)
        engine.memory_cache.set("bookmarks:page:1", "cached")

        response = client.post("/admin/bookmarks/cache/clear?purge_index=true", headers=headers)

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["entries_removed"] == 1
        assert data["index_purged"] is True
        assert engine.keys.index not in object_store.objects

    def test_status_snapshot(self, object_store):
        client = _client(_engine(object_store, AsyncMock(return_value=make_bookmarks(4))))
        headers = {"X-Admin-Secret": SECRET}
        client.post("/admin/bookmarks/refresh", headers=headers)

        data = client.get("/admin/bookmarks/status", headers=headers).json()["data"]

        assert data["environment"] == "test"
        assert data["state"] == "idle"
        assert data["index"]["count"] == 4
        assert data["heartbeat"]["outcome"] == "changed"
        assert data["lock"] is None
        assert data["last_refresh"]["outcome"] == "changed"
        assert data["scheduler"] == {"running": False, "next_run_time": None}


def test_health_needs_no_credential(object_store):
    client = _client(_engine(object_store, AsyncMock(return_value=[])))

    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["data"]["engine_ready"] is True
