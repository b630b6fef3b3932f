"""
Companion Engine — Timer scheduling.

One APScheduler ``AsyncIOScheduler`` hosts every periodic timer. Each
logical timer owns exactly one job id; replacing a timer removes the old
job and adds the new one under the same lock, so two jobs for the same
timer never coexist. Callbacks are coroutines, which the asyncio executor
runs on the event loop itself: timer callbacks never run concurrently.
"""

from __future__ import annotations

import logging
import threading
from typing import Any, Awaitable, Callable

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = logging.getLogger(__name__)

TickFn = Callable[[], Awaitable[Any]]


class EngineScheduler:
    """Thin owner of the shared AsyncIOScheduler."""

    def __init__(self, scheduler: AsyncIOScheduler | None = None) -> None:
        self._scheduler = scheduler or AsyncIOScheduler(
            job_defaults={"coalesce": True, "max_instances": 1, "misfire_grace_time": None},
        )
        self._lock = threading.RLock()

    def start(self) -> None:
        """Start firing jobs. Must be called on the running event loop."""
        with self._lock:
            if not self._scheduler.running:
                self._scheduler.start()
                logger.info("Scheduler started with %d jobs", len(self._scheduler.get_jobs()))

    def shutdown(self) -> None:
        with self._lock:
            if self._scheduler.running:
                self._scheduler.shutdown(wait=False)
                logger.info("Scheduler stopped")

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def set_interval_job(self, job_id: str, func: TickFn, seconds: float) -> None:
        """Install ``func`` to run every ``seconds``, replacing any job with ``job_id``."""
        if seconds <= 0:
            raise ValueError(f"Interval must be positive, got {seconds!r}")
        with self._lock:
            self._remove(job_id)
            self._scheduler.add_job(
                func,
                trigger=IntervalTrigger(seconds=seconds),
                id=job_id,
                name=job_id,
            )
        logger.debug("Job %s scheduled every %.1fs", job_id, seconds)

    def remove_job(self, job_id: str) -> bool:
        """Stop the timer ``job_id``. Returns False if there was none."""
        with self._lock:
            removed = self._remove(job_id)
        if removed:
            logger.debug("Job %s removed", job_id)
        return removed

    def _remove(self, job_id: str) -> bool:
        try:
            self._scheduler.remove_job(job_id)
        except JobLookupError:
            return False
        return True

    def has_job(self, job_id: str) -> bool:
        return self._scheduler.get_job(job_id) is not None

    def interval_of(self, job_id: str) -> float | None:
        """Seconds between fires of ``job_id``, or None when it isn't scheduled."""
        job = self._scheduler.get_job(job_id)
        if job is None:
            return None
        return job.trigger.interval.total_seconds()

    def job_ids(self) -> list[str]:
        return [job.id for job in self._scheduler.get_jobs()]
