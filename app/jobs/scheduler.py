"""Job scheduler using APScheduler with async support."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger
from apscheduler.triggers.interval import IntervalTrigger

from app.core.config import Settings, settings as default_settings
from app.core.logging import get_logger

from .locks import JobLockRegistry, get_lock_registry
from .registry import get_job

logger = get_logger("jobs.scheduler")

# Global scheduler instance
_scheduler: Optional["JobScheduler"] = None


class JobScheduler:
    """Runs each pipeline job on its own interval with single-flight locks."""

    def __init__(self, settings: Settings | None = None, locks: JobLockRegistry | None = None):
        self.settings = settings or default_settings
        self.locks = locks or get_lock_registry()
        self._scheduler = AsyncIOScheduler(
            timezone=self.settings.scheduler_timezone,
            job_defaults={
                "coalesce": True,  # Combine missed runs into one
                "max_instances": 1,  # Only one instance per job at a time
                "misfire_grace_time": 60 * 5,  # 5 minutes grace period
            },
        )
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def schedule_plan(self, now: datetime | None = None) -> list[tuple[str, int, datetime]]:
        """(job name, interval seconds, first kick-off) for every pipeline job."""
        s = self.settings
        now = now or datetime.now(timezone.utc)
        ingest_at = now + timedelta(seconds=s.initial_delay_seconds)
        process_at = ingest_at + timedelta(seconds=s.process_kickoff_offset_seconds)
        rank_at = process_at + timedelta(seconds=s.rank_kickoff_offset_seconds)
        return [
            ("ingest", s.ingest_interval_minutes * 60, ingest_at),
            ("process", s.process_interval_minutes * 60, process_at),
            ("rank", s.rank_interval_minutes * 60, rank_at),
            ("explanation_cache_sweep", s.explanation_cache_sweep_seconds, None),
        ]

    def _load_jobs(self, now: datetime | None = None) -> None:
        for name, interval, kickoff in self.schedule_plan(now):
            job_func = get_job(name)
            if job_func is None:
                logger.warning(f"Unknown job: {name}")
                continue

            self._scheduler.add_job(
                self._wrap_job(name, job_func),
                trigger=IntervalTrigger(seconds=interval),
                id=name,
                name=name,
                replace_existing=True,
            )
            if kickoff is not None:
                self._scheduler.add_job(
                    self._wrap_job(name, job_func),
                    trigger=DateTrigger(run_date=kickoff),
                    id=f"{name}_kickoff",
                    name=f"{name} (kick-off)",
                    replace_existing=True,
                )
            logger.info(f"Scheduled job: {name} (every {interval}s)")

    def _wrap_job(self, name: str, func: Callable) -> Callable:
        async def wrapper():
            count = await func()
            logger.debug(f"Job {name} returned {count}")

        return wrapper

    async def start(self) -> None:
        """Register the pipeline jobs and start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        if not self.settings.scheduler_enabled:
            logger.info("Scheduler disabled via SCHEDULER_ENABLED=false")
            return

        self._load_jobs()
        self._scheduler.start()
        self._running = True
        logger.info("Job scheduler started")

    async def stop(self) -> None:
        """Stop the scheduler."""
        if not self._running:
            return

        self._scheduler.shutdown(wait=False)
        self._running = False
        logger.info("Job scheduler stopped")

    async def run_job_now(self, name: str) -> int:
        """Manually trigger a job through its single-flight boundary."""
        job_func = get_job(name)
        if job_func is None:
            raise ValueError(f"Unknown job: {name}")
        return await job_func()

    def get_next_run_time(self, name: str) -> Optional[datetime]:
        job = self._scheduler.get_job(name)
        if job:
            return job.next_run_time
        return None

    def get_jobs_status(self) -> list:
        """Get status of all scheduled jobs."""
        jobs = []
        lock_status = self.locks.status()
        for job in self._scheduler.get_jobs():
            jobs.append(
                {
                    "id": job.id,
                    "name": job.name,
                    "next_run_time": job.next_run_time.isoformat()
                    if job.next_run_time
                    else None,
                    "running": lock_status.get(job.id, False),
                }
            )
        return jobs


def get_scheduler() -> Optional[JobScheduler]:
    """Get the global scheduler instance."""
    return _scheduler


async def start_scheduler() -> JobScheduler:
    """Start the global scheduler."""
    global _scheduler
    if _scheduler is None:
        _scheduler = JobScheduler()
    await _scheduler.start()
    return _scheduler


async def stop_scheduler() -> None:
    """Stop the global scheduler."""
    global _scheduler
    if _scheduler is not None:
        await _scheduler.stop()
        _scheduler = None
