"""Admin control surface: trigger a refresh, clear caches, inspect state.

Every endpoint depends on :func:`require_admin`, which rejects the caller
before the engine is touched.
"""

from __future__ import annotations

from typing import Any

from fastapi import APIRouter, Depends, Query, Request

from bookmark_sync.api.dependencies import require_admin
from bookmark_sync.api.exceptions import (
    ExternalAPIError,
    RefreshFailedError,
    StorageUnavailableError,
)
from bookmark_sync.api.responses import success_response
from bookmark_sync.core.logging_utils import get_logger
from bookmark_sync.di.container import BookmarkEngine
from bookmark_sync.domain.exceptions import (
    BookmarkEngineError,
    StoreFailureError,
    UpstreamFetchError,
)

logger = get_logger(__name__)

router = APIRouter()


def _storage_unavailable(exc: StoreFailureError) -> StorageUnavailableError:
    return StorageUnavailableError(
        exc.message,
        details={"error_type": type(exc).__name__, **exc.details},
    )


@router.post("/refresh")
async def trigger_refresh(
    request: Request,
    force: bool = Query(default=False, description="Rewrite everything even when unchanged"),
    engine: BookmarkEngine = Depends(require_admin),
) -> dict[str, Any]:
    """Run (or join) a refresh and report what happened."""
    correlation_id = getattr(request.state, "correlation_id", None)
    logger.info(
        "admin_refresh_requested", extra={"correlation_id": correlation_id, "force": force}
    )

    try:
        index = await engine.orchestrator.refresh_and_persist(force=force)
    except UpstreamFetchError as exc:
        raise ExternalAPIError("Bookmark source", exc.message) from exc
    except StoreFailureError as exc:
        raise _storage_unavailable(exc) from exc
    except BookmarkEngineError as exc:
        raise RefreshFailedError(
            exc.message, details={"error_type": type(exc).__name__, **exc.details}
        ) from exc

    report = engine.orchestrator.last_report
    data: dict[str, Any] = {
        "outcome": report.outcome.value if report else None,
        "skipped": index is None,
        "index": index.to_json() if index else None,
        "report": report.to_dict() if report else None,
    }
    return success_response(data, correlation_id=correlation_id)


@router.post("/cache/clear")
async def clear_cache(
    request: Request,
    purge_index: bool = Query(
        default=False, description="Also delete the persisted index so the next refresh rebuilds"
    ),
    engine: BookmarkEngine = Depends(require_admin),
) -> dict[str, Any]:
    """Drop memory-cached entries and notify render invalidators."""
    correlation_id = getattr(request.state, "correlation_id", None)

    result = await engine.cache.clear(reason="admin")
    if purge_index:
        try:
            await engine.store.delete_index()
        except StoreFailureError as exc:
            raise _storage_unavailable(exc) from exc

    logger.info(
        "admin_cache_cleared",
        extra={"correlation_id": correlation_id, "purge_index": purge_index, **result},
    )
    return success_response(
        {**result, "index_purged": purge_index}, correlation_id=correlation_id
    )


@router.get("/status")
async def get_status(
    request: Request,
    engine: BookmarkEngine = Depends(require_admin),
) -> dict[str, Any]:
    """Index, heartbeat, lock holder and scheduler state."""
    try:
        status = await engine.status()
    except StoreFailureError as exc:
        raise _storage_unavailable(exc) from exc

    scheduler = getattr(request.app.state, "scheduler", None)
    next_run = scheduler.get_next_run_time() if scheduler is not None else None
    status["scheduler"] = {
        "running": scheduler.is_running if scheduler is not None else False,
        "next_run_time": next_run.isoformat() if next_run else None,
    }
    return success_response(status, correlation_id=getattr(request.state, "correlation_id", None))
