"""Periodic sync cycles driven by APScheduler."""

import logging
from typing import Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_MAX_INSTANCES
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.schedulers.asyncio import AsyncIOScheduler

from ..errors import SyncInProgressError
from ..pipelines.sync import SyncOrchestrator

logger = logging.getLogger(__name__)

SYNC_JOB_ID = "forum_sync"


class SyncScheduler:
    """Runs ``run_sync_cycle`` on a fixed interval.

    ``max_instances=1`` with ``coalesce`` keeps at most one scheduled cycle
    in flight; missed runs collapse into one.
    """

    def __init__(self, orchestrator: SyncOrchestrator, interval_minutes: int, max_batch_size: int):
        self.orchestrator = orchestrator
        self.interval_minutes = interval_minutes
        self.max_batch_size = max_batch_size
        self.scheduler: Optional[AsyncIOScheduler] = None

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self) -> None:
        if self.interval_minutes <= 0:
            logger.info("Scheduled sync disabled")
            return
        self.scheduler = AsyncIOScheduler(
            executors={"default": AsyncIOExecutor()},
            job_defaults={"coalesce": True, "max_instances": 1},
        )
        self.scheduler.add_listener(self._job_error, EVENT_JOB_ERROR)
        self.scheduler.add_listener(self._job_skipped, EVENT_JOB_MAX_INSTANCES)
        self.scheduler.add_job(
            self.run_once,
            "interval",
            minutes=self.interval_minutes,
            id=SYNC_JOB_ID,
            replace_existing=True,
        )
        self.scheduler.start()
        logger.info(f"Scheduled sync every {self.interval_minutes} minute(s)")

    def shutdown(self) -> None:
        if self.scheduler is not None and self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("Sync scheduler stopped")
        self.scheduler = None

    async def run_once(self) -> None:
        try:
            report = await self.orchestrator.run_sync_cycle(self.max_batch_size)
        except SyncInProgressError:
            logger.info("Scheduled sync skipped: a cycle is already running")
            return
        logger.info(f"Scheduled sync: {report.message}")

    def _job_error(self, event) -> None:
        logger.error(f"Scheduled sync failed: {event.exception}")

    def _job_skipped(self, event) -> None:
        logger.warning("Scheduled sync skipped: previous run still active")
