"""
APScheduler driver for periodic pipeline runs.

One pipeline job on a fixed interval plus a five-minute health check.
Runs are coalesced and capped at one instance, so a slow run pushes the
next tick back instead of overlapping it.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED, JobExecutionEvent
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .jobs import health_check, run_pipeline

logger = logging.getLogger(__name__)

PIPELINE_JOB_ID = "run_pipeline"
HEALTH_JOB_ID = "health_check"
HEALTH_INTERVAL_MINUTES = 5


@dataclass
class JobState:
    """Outcome bookkeeping for one registered job."""

    last_run: Optional[datetime] = None
    last_status: str = "pending"
    last_error: Optional[str] = None
    run_count: int = 0

    def record(self, error: Optional[BaseException] = None) -> None:
        self.last_run = datetime.now(timezone.utc)
        self.run_count += 1
        if error is None:
            self.last_status = "success"
        else:
            self.last_status = "error"
            self.last_error = str(error)


class SchedulerOrchestrator:
    """
    Owns the AsyncIOScheduler and the state of its jobs.

    Example:
        >>> scheduler = SchedulerOrchestrator(settings, pipeline)
        >>> scheduler.start()
        >>> # ... application runs ...
        >>> scheduler.stop()
    """

    def __init__(self, settings: Any, pipeline: Any):
        self.settings = settings
        self.pipeline = pipeline

        self.scheduler = AsyncIOScheduler(
            timezone="UTC",
            job_defaults={
                "coalesce": True,
                "max_instances": 1,
                "misfire_grace_time": 60,
            },
        )
        self.scheduler.add_listener(self._on_job_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)

        self._jobs: dict[str, JobState] = {}
        self._last_result: Optional[Any] = None
        self._is_running = False

    def start(self, run_immediately: bool = True) -> None:
        """Register jobs and start; the first pipeline run fires now unless told otherwise."""
        if self._is_running:
            logger.warning("Scheduler already running")
            return

        self._register_jobs(run_immediately)
        self.scheduler.start()
        self._is_running = True

        for job in self.scheduler.get_jobs():
            logger.info(f"Scheduled {job.id}: next run {job.next_run_time or 'paused'}")

    def stop(self) -> None:
        """Shut down without waiting for a job in flight."""
        if not self._is_running:
            return
        self.scheduler.shutdown(wait=False)
        self._is_running = False
        logger.info("Scheduler stopped")

    def _register_jobs(self, run_immediately: bool) -> None:
        interval = self.settings.scheduler.refresh_interval_seconds
        first_run = {"next_run_time": datetime.now(timezone.utc)} if run_immediately else {}

        self.scheduler.add_job(
            self._run_pipeline_job,
            trigger=IntervalTrigger(seconds=interval),
            id=PIPELINE_JOB_ID,
            name="Run EV Pipeline",
            replace_existing=True,
            **first_run,
        )
        self.scheduler.add_job(
            self._health_check_job,
            trigger=IntervalTrigger(minutes=HEALTH_INTERVAL_MINUTES),
            id=HEALTH_JOB_ID,
            name="Health Check",
            replace_existing=True,
        )
        self._jobs = {job.id: JobState() for job in self.scheduler.get_jobs()}

    async def _run_pipeline_job(self) -> None:
        self._last_result = await run_pipeline(
            self.pipeline, self.settings.scheduler.run_timeout_seconds
        )

    async def _health_check_job(self) -> None:
        await health_check(self.pipeline)

    def _on_job_event(self, event: JobExecutionEvent) -> None:
        state = self._jobs.get(event.job_id)
        if state is not None:
            state.record(event.exception)
        if event.exception is not None:
            logger.error(f"Job {event.job_id} failed: {event.exception}")

    # -------------------------------------------------------------------------
    # Status
    # -------------------------------------------------------------------------

    def get_job_status(self) -> dict[str, dict]:
        """Per-job name, next run and outcome of the last run."""
        status = {}
        for job in self.scheduler.get_jobs():
            state = self._jobs.get(job.id, JobState())
            status[job.id] = {
                "name": job.name,
                "next_run": job.next_run_time,
                "last_run": state.last_run,
                "last_status": state.last_status,
                "last_error": state.last_error,
                "run_count": state.run_count,
            }
        return status

    def get_status(self) -> dict[str, Any]:
        """Snapshot of the last pipeline run."""
        state = self._jobs.get(PIPELINE_JOB_ID, JobState())
        result = self._last_result
        last_error = state.last_error
        if result is not None and result.errors:
            last_error = result.errors[-1]

        return {
            "is_running": self._is_running,
            "last_run": state.last_run,
            "last_status": state.last_status,
            "fixtures_processed": result.fixtures_processed if result else 0,
            "opportunities_found": result.opportunities_found if result else 0,
            "last_error": last_error,
        }

    def get_last_result(self) -> Optional[Any]:
        return self._last_result

    # -------------------------------------------------------------------------
    # Manual control
    # -------------------------------------------------------------------------

    def trigger_job(self, job_id: str = PIPELINE_JOB_ID) -> bool:
        """Run a job now, resuming it first if paused. False if unknown."""
        job = self.scheduler.get_job(job_id)
        if job is None:
            return False
        if job.next_run_time is None:
            self.scheduler.resume_job(job_id)
        self.scheduler.modify_job(job_id, next_run_time=datetime.now(timezone.utc))
        logger.info(f"Triggered {job_id}")
        return True

    def pause_job(self, job_id: str = PIPELINE_JOB_ID) -> bool:
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.pause_job(job_id)
        logger.info(f"Paused {job_id}")
        return True

    def resume_job(self, job_id: str = PIPELINE_JOB_ID) -> bool:
        if self.scheduler.get_job(job_id) is None:
            return False
        self.scheduler.resume_job(job_id)
        logger.info(f"Resumed {job_id}")
        return True

    @property
    def is_running(self) -> bool:
        return self._is_running
