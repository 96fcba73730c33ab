"""
SCHEDULER

Thin wrapper around APScheduler's AsyncIOScheduler for the engine's
recurring jobs (market refresh, chat polling, trade polling fallback,
periodic tick). Orchestration only; no business logic here.
"""

import logging
from typing import Callable, List

import pytz
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)


class EngineScheduler:
    def __init__(self, timezone: str = "UTC"):
        self._timezone = pytz.timezone(timezone)
        self.scheduler = AsyncIOScheduler(timezone=self._timezone)

    @property
    def running(self) -> bool:
        return self.scheduler.running

    def add_interval(self, job_id: str, func: Callable, seconds: float) -> None:
        """Register (or replace) an interval job. Overlapping runs are skipped."""
        self.scheduler.add_job(
            func,
            trigger=IntervalTrigger(seconds=seconds, timezone=self._timezone),
            id=job_id,
            name=job_id,
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("⏱️  Job %s every %ss", job_id, seconds)

    def remove(self, job_id: str) -> bool:
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.remove_job(job_id)
        return True

    def job_ids(self) -> List[str]:
        return [job.id for job in self.scheduler.get_jobs()]

    def start(self) -> None:
        if not self.scheduler.running:
            self.scheduler.start()
            logger.info("✅ Scheduler started")

    def shutdown(self) -> None:
        if self.scheduler.running:
            self.scheduler.shutdown(wait=False)
            logger.info("🛑 Scheduler shut down")
