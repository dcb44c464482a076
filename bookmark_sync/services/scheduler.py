"""Background scheduler for periodic bookmark refreshes."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from bookmark_sync.domain.exceptions import BookmarkEngineError

if TYPE_CHECKING:
    from datetime import datetime

    from bookmark_sync.config import SchedulerConfig
    from bookmark_sync.di.container import BookmarkEngine

logger = logging.getLogger(__name__)

REFRESH_JOB_ID = "bookmarks_refresh"


class SchedulerService:
    """Runs the refresh orchestrator on a cron schedule.

    The trigger's jitter spreads periodic callers across processes so they do
    not all contend for the refresh lock at the same second. A failed run is
    logged and the next scheduled run proceeds normally.
    """

    def __init__(self, cfg: SchedulerConfig, engine: BookmarkEngine) -> None:
        """Initialize scheduler service.

        Args:
            cfg: Scheduler configuration
            engine: Wired bookmark engine
        """
        self.cfg = cfg
        self.engine = engine
        self._scheduler: AsyncIOScheduler | None = None
        self._started = False

    def build_trigger(self) -> CronTrigger:
        return CronTrigger(
            hour=self.cfg.cron_hours,
            minute=0,
            jitter=self.cfg.jitter_seconds or None,
        )

    async def start(self) -> None:
        """Start the scheduler with the refresh job."""
        if self._started:
            logger.warning("scheduler_already_started")
            return

        if not self.cfg.enabled:
            logger.info("scheduler_refresh_job_skipped", extra={"enabled": False})
            return

        self._scheduler = AsyncIOScheduler()
        self._scheduler.add_job(
            self.run_refresh,
            trigger=self.build_trigger(),
            id=REFRESH_JOB_ID,
            name="Bookmark refresh",
            replace_existing=True,
            max_instances=1,  # Prevent overlapping runs
            coalesce=True,
        )
        logger.info(
            "scheduler_refresh_job_added",
            extra={
                "job_id": REFRESH_JOB_ID,
                "cron_hours": self.cfg.cron_hours,
                "jitter_seconds": self.cfg.jitter_seconds,
            },
        )

        self._scheduler.start()
        self._started = True
        logger.info("scheduler_started")

    async def stop(self) -> None:
        """Stop the scheduler gracefully."""
        if self._scheduler and self._started:
            self._scheduler.shutdown(wait=True)
            self._scheduler = None
            self._started = False
            logger.info("scheduler_stopped")

    async def run_refresh(self) -> None:
        """Execute one scheduled refresh; never raises."""
        logger.info("scheduled_bookmark_refresh_starting")
        try:
            index = await self.engine.orchestrator.refresh_and_persist()
        except BookmarkEngineError as e:
            logger.error(
                "scheduled_bookmark_refresh_failed",
                extra={"error": e.message, "error_type": type(e).__name__, "details": e.details},
            )
            return
        except Exception as e:
            logger.exception("scheduled_bookmark_refresh_crashed", extra={"error": str(e)})
            return

        report = self.engine.orchestrator.last_report
        logger.info(
            "scheduled_bookmark_refresh_complete",
            extra={
                "outcome": report.outcome.value if report else None,
                "count": index.count if index else None,
                "change_detected": index.change_detected if index else None,
            },
        )

    def get_next_run_time(self, job_id: str = REFRESH_JOB_ID) -> datetime | None:
        """Next scheduled run time, or ``None`` when the job or scheduler is absent."""
        if not self._scheduler or not self._started:
            return None
        job = self._scheduler.get_job(job_id)
        return job.next_run_time if job else None

    @property
    def is_running(self) -> bool:
        return self._started and self._scheduler is not None
