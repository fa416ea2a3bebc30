"""
BETSYNC - Sync Scheduling Service
Periodic odds sync triggers with APScheduler
"""

import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from apscheduler.events import (
    EVENT_JOB_ERROR,
    EVENT_JOB_EXECUTED,
    EVENT_JOB_MISSED,
    JobExecutionEvent,
)
from apscheduler.executors.asyncio import AsyncIOExecutor
from apscheduler.jobstores.memory import MemoryJobStore
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import settings
from app.core.exceptions import BetSyncError

logger = logging.getLogger(__name__)


class JobStatus(str, Enum):
    """Job execution status"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    MISSED = "missed"


class JobCategory(str, Enum):
    """Job categories"""
    ODDS_SYNC = "odds_sync"
    LIVE_SYNC = "live_sync"


class ScheduledJob:
    """Scheduled job definition"""

    def __init__(
        self,
        job_id: str,
        name: str,
        category: JobCategory,
        func: Callable,
        interval_seconds: int,
        enabled: bool = True,
        max_instances: int = 1,
        coalesce: bool = True,
        misfire_grace_time: int = 30,
    ):
        self.job_id = job_id
        self.name = name
        self.category = category
        self.func = func
        self.interval_seconds = interval_seconds
        self.enabled = enabled
        self.max_instances = max_instances
        self.coalesce = coalesce
        self.misfire_grace_time = misfire_grace_time

        # Execution tracking
        self.last_run: Optional[datetime] = None
        self.last_status: JobStatus = JobStatus.PENDING
        self.last_result: Optional[Dict[str, Any]] = None
        self.run_count: int = 0
        self.error_count: int = 0
        self.last_error: Optional[str] = None

    def to_dict(self, next_run: Optional[datetime] = None) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "name": self.name,
            "category": self.category.value,
            "enabled": self.enabled,
            "interval_seconds": self.interval_seconds,
            "last_run": self.last_run.isoformat() if self.last_run else None,
            "last_status": self.last_status.value,
            "next_run": next_run.isoformat() if next_run else None,
            "run_count": self.run_count,
            "error_count": self.error_count,
            "last_error": self.last_error,
        }


class SchedulerService:
    """
    Drives the orchestrator on fixed intervals.

    Sync is idempotent under compare-and-write, so an overlapping manual
    trigger and a scheduled run are safe.
    """

    def __init__(self, orchestrator=None):
        self.enabled = settings.SCHEDULER_ENABLED
        self.orchestrator = orchestrator
        self._scheduler: Optional[AsyncIOScheduler] = None
        self._jobs: Dict[str, ScheduledJob] = {}
        self._running = False

    async def initialize(self, orchestrator=None):
        """Initialize the scheduler"""
        if orchestrator is not None:
            self.orchestrator = orchestrator

        if not self.enabled:
            logger.info("Scheduler is disabled")
            return

        self._scheduler = AsyncIOScheduler(
            jobstores={'default': MemoryJobStore()},
            executors={'default': AsyncIOExecutor()},
            job_defaults={'coalesce': True, 'max_instances': 1, 'misfire_grace_time': 30},
            timezone='UTC'
        )

        self._scheduler.add_listener(self._on_job_executed, EVENT_JOB_EXECUTED)
        self._scheduler.add_listener(self._on_job_error, EVENT_JOB_ERROR)
        self._scheduler.add_listener(self._on_job_missed, EVENT_JOB_MISSED)

        self._register_default_jobs()

        logger.info("Scheduler initialized")

    async def start(self):
        """Start the scheduler"""
        if not self.enabled or not self._scheduler or self._running:
            return

        self._scheduler.start()
        self._running = True
        logger.info("Scheduler started")

    async def stop(self):
        """Stop the scheduler"""
        if self._scheduler and self._running:
            self._scheduler.shutdown(wait=False)
            self._running = False
            logger.info("Scheduler stopped")

    def _register_default_jobs(self):
        """Register default scheduled jobs"""
        for job in (
            ScheduledJob(
                job_id="sync_all_sports",
                name="Sync Odds For All Sports",
                category=JobCategory.ODDS_SYNC,
                func=self.sync_all_sports_job,
                interval_seconds=settings.ODDS_REFRESH_INTERVAL,
            ),
            ScheduledJob(
                job_id="sync_live_games",
                name="Sync Live Game Odds",
                category=JobCategory.LIVE_SYNC,
                func=self.sync_live_games_job,
                interval_seconds=settings.LIVE_ODDS_REFRESH_INTERVAL,
            ),
        ):
            self.register_job(job)

    # =========================================================================
    # JOBS
    # =========================================================================

    async def sync_all_sports_job(self) -> Dict[str, Any]:
        """Sync every supported sport plus the featured listing."""
        logger.info("[Scheduler] Starting odds sync for all sports...")
        summary = await self.orchestrator.sync_all()
        failed = [sport for sport, result in summary.items() if "error" in result]
        if failed:
            logger.warning(f"[Scheduler] Odds sync finished with failures for: {', '.join(failed)}")
        else:
            logger.info(f"[Scheduler] Odds sync completed for {len(summary)} listings")
        self._record_result("sync_all_sports", summary)
        return summary

    async def sync_live_games_job(self) -> Dict[str, Any]:
        """Re-sync the sports of all games in the live set."""
        try:
            summary = await self.orchestrator.sync_live_games()
        except BetSyncError as e:
            logger.error(f"[Scheduler] Live sync failed: {e.message}")
            raise
        if summary.get("live_games"):
            logger.info(f"[Scheduler] Live sync completed for {summary['live_games']} games")
        self._record_result("sync_live_games", summary)
        return summary

    def _record_result(self, job_id: str, result: Dict[str, Any]) -> None:
        if job_id in self._jobs:
            self._jobs[job_id].last_result = result

    # =========================================================================
    # REGISTRY
    # =========================================================================

    def register_job(self, job: ScheduledJob):
        """Register a scheduled job"""
        if not self._scheduler:
            logger.warning("Scheduler not initialized, cannot register job")
            return

        self._jobs[job.job_id] = job

        if not job.enabled:
            return

        self._scheduler.add_job(
            job.func,
            trigger=IntervalTrigger(seconds=job.interval_seconds),
            id=job.job_id,
            name=job.name,
            max_instances=job.max_instances,
            coalesce=job.coalesce,
            misfire_grace_time=job.misfire_grace_time,
            replace_existing=True
        )

        logger.info(f"Registered job: {job.job_id} ({job.name}) every {job.interval_seconds}s")

    def _on_job_executed(self, event: JobExecutionEvent):
        """Handler for successful job execution"""
        job = self._jobs.get(event.job_id)
        if job:
            job.last_run = datetime.now(timezone.utc)
            job.last_status = JobStatus.COMPLETED
            job.run_count += 1

        logger.debug(f"Job executed: {event.job_id}")

    def _on_job_error(self, event: JobExecutionEvent):
        """Handler for job execution error"""
        job = self._jobs.get(event.job_id)
        if job:
            job.last_run = datetime.now(timezone.utc)
            job.last_status = JobStatus.FAILED
            job.error_count += 1
            job.last_error = str(event.exception) if event.exception else "Unknown error"

        logger.error(f"Job failed: {event.job_id} - {event.exception}")

    def _on_job_missed(self, event: JobExecutionEvent):
        """Handler for missed job execution"""
        job = self._jobs.get(event.job_id)
        if job:
            job.last_status = JobStatus.MISSED

        logger.warning(f"Job missed: {event.job_id}")

    def get_jobs(self) -> List[Dict[str, Any]]:
        """Get list of registered jobs"""
        jobs = []
        for job_id, job in self._jobs.items():
            next_run = None
            if self._scheduler:
                scheduler_job = self._scheduler.get_job(job_id)
                if scheduler_job:
                    # Pending jobs (scheduler not started) have no next_run_time yet
                    next_run = getattr(scheduler_job, "next_run_time", None)
            jobs.append(job.to_dict(next_run))
        return jobs

    def get_status(self) -> Dict[str, Any]:
        """Get scheduler status"""
        return {
            "enabled": self.enabled,
            "running": self._running,
            "total_jobs": len(self._jobs),
            "jobs": self.get_jobs(),
        }


# Global scheduler service instance
scheduler_service = SchedulerService()


def get_scheduler_service() -> SchedulerService:
    return scheduler_service
