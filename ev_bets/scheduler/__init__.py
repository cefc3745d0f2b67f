"""
Job scheduling module.

Provides APScheduler-based periodic driving of the EV pipeline.

Example:
    >>> from ev_bets.scheduler import SchedulerOrchestrator
    >>>
    >>> scheduler = SchedulerOrchestrator(settings, pipeline)
    >>> scheduler.start()
    >>>
    >>> # Last run snapshot
    >>> print(scheduler.get_status())
    >>>
    >>> # Manual trigger
    >>> scheduler.trigger_job("run_pipeline")
    >>>
    >>> scheduler.stop()
"""

from .orchestrator import HEALTH_JOB_ID, PIPELINE_JOB_ID, SchedulerOrchestrator
from .jobs import health_check, run_pipeline

__all__ = [
    "SchedulerOrchestrator",
    "PIPELINE_JOB_ID",
    "HEALTH_JOB_ID",
    "run_pipeline",
    "health_check",
]
