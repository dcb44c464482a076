"""
FastAPI application exposing the bookmark engine's admin surface.

Usage:
    uvicorn bookmark_sync.api.main:app --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import TYPE_CHECKING

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from bookmark_sync import __version__
from bookmark_sync.api.error_handlers import (
    api_exception_handler,
    global_exception_handler,
    validation_exception_handler,
)
from bookmark_sync.api.exceptions import APIException
from bookmark_sync.api.middleware import correlation_id_middleware
from bookmark_sync.api.responses import success_response
from bookmark_sync.api.routers import admin
from bookmark_sync.config import load_config
from bookmark_sync.core.logging_utils import get_logger, setup_json_logging
from bookmark_sync.di.container import BookmarkEngine
from bookmark_sync.services.scheduler import SchedulerService

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from bookmark_sync.config import AppConfig

logger = get_logger(__name__)


def create_app(cfg: AppConfig | None = None, engine: BookmarkEngine | None = None) -> FastAPI:
    """Build the admin application.

    A passed ``engine`` is used as-is and is not closed on shutdown; otherwise
    the lifespan builds one from ``cfg`` (or the environment) and owns it.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        owned = app.state.engine is None
        if owned:
            app_cfg = cfg or load_config()
            setup_json_logging(app_cfg.runtime.log_level, log_file=app_cfg.runtime.log_file)
            app.state.engine = BookmarkEngine(app_cfg)
        current: BookmarkEngine = app.state.engine

        scheduler = SchedulerService(current.cfg.scheduler, current)
        app.state.scheduler = scheduler
        await scheduler.start()
        logger.info(
            "admin_api_started",
            extra={"environment": current.cfg.runtime.environment, "owned_engine": owned},
        )
        try:
            yield
        finally:
            await scheduler.stop()
            app.state.scheduler = None
            if owned:
                await current.close()
                app.state.engine = None
            logger.info("admin_api_stopped")

    app = FastAPI(
        title="Bookmark Sync Admin API",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.scheduler = None

    app.middleware("http")(correlation_id_middleware)

    app.add_exception_handler(APIException, api_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(Exception, global_exception_handler)

    app.include_router(admin.router, prefix="/admin/bookmarks", tags=["Admin"])

    @app.get("/")
    async def root():
        return success_response(
            {"service": "bookmark-sync", "version": __version__, "docs": "/docs"}
        )

    @app.get("/health")
    async def health_check():
        current = app.state.engine
        return success_response(
            {
                "status": "healthy",
                "engine_ready": current is not None,
                "refresh_in_progress": current.orchestrator.in_progress if current else False,
            }
        )

    return app


app = create_app()
