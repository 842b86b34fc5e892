"""Periodic background jobs: reminder dispatch and slot lock expiry.

Both jobs run on one APScheduler ``AsyncIOScheduler`` inside the service's
event loop and can be paused, resumed or stopped independently. A run that
raises is retried with exponential backoff; after ``max_failures``
consecutive failures the job is paused until resumed explicitly.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Any, Awaitable, Callable, Dict, Optional

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from booking_engine.config import Settings
from booking_engine.services.engine import BookingEngine

logger = logging.getLogger(__name__)

REMINDER_JOB_ID = "process_reminders"
LOCK_SWEEP_JOB_ID = "cleanup_expired_locks"
MAX_BACKOFF = timedelta(hours=24)


@dataclass
class JobState:
    job_id: str
    interval: timedelta
    func: Callable[[], Awaitable[Any]]
    failures: int = 0
    paused: bool = False
    last_run_at: Optional[datetime] = None
    last_status: Optional[str] = None
    last_error: Optional[str] = None

    def snapshot(self) -> Dict[str, Any]:
        return {
            "interval_seconds": int(self.interval.total_seconds()),
            "failures": self.failures,
            "paused": self.paused,
            "last_run_at": self.last_run_at.isoformat() if self.last_run_at else None,
            "last_status": self.last_status,
            "last_error": self.last_error,
        }


class BackgroundJobs:
    def __init__(
        self,
        engine: BookingEngine,
        *,
        reminder_interval: timedelta = timedelta(minutes=5),
        lock_sweep_interval: timedelta = timedelta(minutes=15),
        max_failures: int = 3,
        scheduler: AsyncIOScheduler | None = None,
    ) -> None:
        self._engine = engine
        self._max_failures = max_failures
        self._scheduler = scheduler or AsyncIOScheduler(timezone=timezone.utc)
        self._jobs: Dict[str, JobState] = {
            REMINDER_JOB_ID: JobState(
                REMINDER_JOB_ID, reminder_interval, engine.reminders.process_due_reminders
            ),
            LOCK_SWEEP_JOB_ID: JobState(
                LOCK_SWEEP_JOB_ID, lock_sweep_interval, engine.sweeper.cleanup_expired_locks
            ),
        }

    @classmethod
    def from_settings(cls, engine: BookingEngine, settings: Settings) -> "BackgroundJobs":
        return cls(
            engine,
            reminder_interval=timedelta(seconds=settings.reminder_sweep_seconds),
            lock_sweep_interval=timedelta(seconds=settings.lock_sweep_seconds),
            max_failures=settings.background_max_failures,
        )

    @property
    def running(self) -> bool:
        return self._scheduler.running

    def start(self) -> None:
        if self._scheduler.running:
            return
        for state in self._jobs.values():
            self._scheduler.add_job(
                self.run_job,
                IntervalTrigger(seconds=state.interval.total_seconds()),
                args=[state.job_id],
                id=state.job_id,
                name=state.job_id,
                max_instances=1,
                coalesce=True,
                replace_existing=True,
            )
            if state.paused:
                self._scheduler.pause_job(state.job_id)
        self._scheduler.start()
        logger.info("Background jobs started: %s", ", ".join(self._jobs))

    def shutdown(self) -> None:
        if not self._scheduler.running:
            return
        self._scheduler.shutdown(wait=False)
        logger.info("Background jobs stopped")

    def pause(self, job_id: str) -> None:
        state = self._state(job_id)
        state.paused = True
        if self._scheduler.get_job(job_id) is not None:
            self._scheduler.pause_job(job_id)
        logger.info("Paused background job %s", job_id)

    def resume(self, job_id: str) -> None:
        state = self._state(job_id)
        state.paused = False
        state.failures = 0
        if self._scheduler.get_job(job_id) is not None:
            self._scheduler.resume_job(job_id)
        logger.info("Resumed background job %s", job_id)

    async def run_job(self, job_id: str) -> bool:
        state = self._state(job_id)
        state.last_run_at = self._engine.clock.now()
        try:
            await state.func()
        except Exception as exc:
            state.failures += 1
            state.last_status = "failed"
            state.last_error = str(exc) or exc.__class__.__name__
            logger.exception("Background job %s failed (%s in a row)", job_id, state.failures)
            if state.failures >= self._max_failures:
                self.pause(job_id)
                logger.error(
                    "Background job %s failed %s times and has been paused", job_id, self._max_failures
                )
            else:
                self._delay(state)
            return False
        state.failures = 0
        state.last_status = "success"
        state.last_error = None
        return True

    def status(self) -> Dict[str, Dict[str, Any]]:
        snapshot: Dict[str, Dict[str, Any]] = {}
        for job_id, state in self._jobs.items():
            data = state.snapshot()
            job = self._scheduler.get_job(job_id) if self._scheduler.running else None
            next_run = getattr(job, "next_run_time", None) if job is not None else None
            data["next_run_at"] = next_run.isoformat() if next_run else None
            snapshot[job_id] = data
        return snapshot

    def _delay(self, state: JobState) -> None:
        backoff = min(state.interval * (2 ** state.failures), MAX_BACKOFF)
        if self._scheduler.get_job(state.job_id) is None:
            return
        next_run = datetime.now(timezone.utc) + backoff
        self._scheduler.modify_job(state.job_id, next_run_time=next_run)
        logger.warning("Background job %s delayed until %s", state.job_id, next_run.isoformat())

    def _state(self, job_id: str) -> JobState:
        try:
            return self._jobs[job_id]
        except KeyError:
            raise KeyError(f"Unknown background job '{job_id}'") from None
