"""Scheduler: cron-style cadences plus manual triggers around one session.

State per trigger: idle -> running -> completed | failed | timeout, or
skipped when a biweekly trigger fires before 14 days have passed since
the last successful biweekly run. Only one session runs at a time; a
trigger while one is running returns that session.

Timeouts cancel the in-flight session task (``asyncio.wait_for``), so
fetches and delays stop at their next await.
"""

import asyncio
import logging
import sqlite3
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta
from typing import Any
from zoneinfo import ZoneInfo

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
from pydantic import BaseModel

from jobcurator.core.config import SchedulerConfig
from jobcurator.core.db import last_completed_at, save_session
from jobcurator.core.errors import SessionHalted, SessionTimeout
from jobcurator.core.schemas import ScrapeSession, SessionStatus
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.session_manager import SessionManager

logger = logging.getLogger(__name__)

JOB_ID = "job-scraping"
INTERVAL_NOT_MET = "interval not met"

# Cron fields per cadence. Day names avoid APScheduler's Monday=0 numbering.
CADENCE_TRIGGERS: dict[str, dict[str, str]] = {
    "daily": {"minute": "0", "hour": "2"},
    "weekly": {"minute": "0", "hour": "2", "day_of_week": "sun"},
    "biweekly": {"minute": "0", "hour": "2", "day_of_week": "sun"},
    "monthly": {"minute": "0", "hour": "2", "day": "1"},
}

CRON_EXPRESSIONS: dict[str, str] = {
    "daily": "0 2 * * *",
    "weekly": "0 2 * * 0",
    "biweekly": "0 2 * * 0",
    "monthly": "0 2 1 * *",
}

RunSession = Callable[[ScrapeSession], Awaitable[Any]]


class SchedulerStats(BaseModel):
    total_sessions: int = 0
    successful: int = 0
    failed: int = 0
    timeouts: int = 0
    skipped: int = 0
    total_jobs_saved: int = 0

    @property
    def success_rate(self) -> float:
        if not self.total_sessions:
            return 0.0
        return round(self.successful / self.total_sessions * 100, 1)

    @property
    def average_jobs_per_session(self) -> float:
        if not self.successful:
            return 0.0
        return round(self.total_jobs_saved / self.successful, 1)


class JobScheduler:
    """Owns the cadence, the timeout and session bookkeeping.

    Usage::

        scheduler = JobScheduler(settings.scheduler, sessions, governor, orchestrator.run_session)
        scheduler.start()                      # cron-driven, inside a running loop
        await scheduler.trigger(manual=True)   # one-off
    """

    def __init__(
        self,
        config: SchedulerConfig,
        sessions: SessionManager,
        governor: Governor,
        run_session: RunSession,
        conn: sqlite3.Connection | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config
        self._sessions = sessions
        self._governor = governor
        self._run_session = run_session
        self._conn = conn
        self._clock = clock
        self._stats = SchedulerStats()
        self._anchors: dict[str, datetime] = {}
        self._scheduler: AsyncIOScheduler | None = None

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    async def trigger(self, manual: bool = False) -> ScrapeSession:
        """Start a session (or return the running one) and drive it to a terminal state."""
        trigger = "manual" if manual else self._config.frequency
        session, started = self._sessions.begin(trigger)
        if not started:
            return session

        if not manual and self._interval_not_met(trigger):
            self._finish(session, SessionStatus.SKIPPED, INTERVAL_NOT_MET)
            return session

        self._governor.start_session(session.id)
        auth = self._governor.authorize()
        if not auth.allowed:
            logger.warning("Session %s refused: %s", session.id, auth.reason)
            self._finish(session, SessionStatus.FAILED, auth.reason)
            return session

        self._persist(session)
        timeout = self._config.session_timeout_minutes * 60
        try:
            await asyncio.wait_for(self._run_session(session), timeout=timeout)
        except asyncio.TimeoutError:
            reason = f"Session exceeded {self._config.session_timeout_minutes:g} minute timeout"
            logger.error("Session %s timed out: %s", session.id, reason)
            self._governor.record_error(SessionTimeout(reason))
            session.error_count += 1
            self._finish(session, SessionStatus.TIMEOUT, reason)
        except asyncio.CancelledError:
            self._finish(session, SessionStatus.FAILED, "cancelled")
            raise
        except SessionHalted as exc:
            logger.error("Session %s halted: %s", session.id, exc.reason)
            self._finish(session, SessionStatus.FAILED, exc.reason)
        except Exception as exc:
            logger.exception("Session %s failed", session.id)
            self._governor.record_error(exc)
            session.error_count += 1
            self._finish(session, SessionStatus.FAILED, str(exc) or type(exc).__name__)
        else:
            self._finish(session, SessionStatus.COMPLETED)
        return session

    def _interval_not_met(self, trigger: str) -> bool:
        if trigger != "biweekly":
            return False
        last = self.last_success(trigger)
        if last is None:
            return False
        elapsed = self._clock() - last
        required = timedelta(days=self._config.biweekly_interval_days)
        if elapsed < required:
            logger.info(
                "Biweekly interval not met: %.1f of %d days since last run",
                elapsed.total_seconds() / 86400, self._config.biweekly_interval_days,
            )
            return True
        return False

    def last_success(self, trigger: str) -> datetime | None:
        """When ``trigger`` last completed successfully (memory first, then SQLite)."""
        if trigger in self._anchors:
            return self._anchors[trigger]
        if self._conn is not None:
            return last_completed_at(self._conn, trigger=trigger)
        return None

    def mark_success(self, trigger: str, when: datetime) -> None:
        self._anchors[trigger] = when

    # ------------------------------------------------------------------
    # Cron loop
    # ------------------------------------------------------------------

    def start(self) -> bool:
        """Register the cron job. Must be called with an event loop running."""
        if not self._config.enabled:
            logger.info("Scheduler disabled; set scheduler.enabled or JOB_SCHEDULER_ENABLED")
            return False
        if self._scheduler is not None:
            return True
        self._scheduler = AsyncIOScheduler(timezone=self._config.timezone)
        self._scheduler.add_job(
            self.trigger,
            self._cron_trigger(),
            id=JOB_ID,
            max_instances=1,
            coalesce=True,
            misfire_grace_time=3600,
        )
        self._scheduler.start()
        logger.info(
            "Scheduler started: %s (%s, %s), next run %s",
            self._config.frequency, CRON_EXPRESSIONS[self._config.frequency],
            self._config.timezone, self.next_run_time(),
        )
        return True

    def stop(self) -> None:
        if self._scheduler is not None:
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
            logger.info("Scheduler stopped")

    def next_run_time(self) -> datetime | None:
        if self._scheduler is not None:
            job = self._scheduler.get_job(JOB_ID)
            if job is not None:
                return job.next_run_time
        if not self._config.enabled:
            return None
        now = datetime.now(ZoneInfo(self._config.timezone))
        return self._cron_trigger().get_next_fire_time(None, now)

    def _cron_trigger(self) -> CronTrigger:
        return CronTrigger(
            timezone=self._config.timezone,
            **CADENCE_TRIGGERS[self._config.frequency],
        )

    # ------------------------------------------------------------------
    # Statistics
    # ------------------------------------------------------------------

    @property
    def stats(self) -> SchedulerStats:
        return self._stats.model_copy()

    def reset_statistics(self) -> None:
        self._stats = SchedulerStats()
        logger.info("Scheduler statistics reset")

    def status(self) -> dict[str, Any]:
        stats = self._stats
        last = self._sessions.last
        current = self._sessions.current
        next_run = self.next_run_time()
        return {
            "enabled": self._config.enabled,
            "frequency": self._config.frequency,
            "cron": CRON_EXPRESSIONS[self._config.frequency],
            "timezone": self._config.timezone,
            "running": current is not None,
            "current_session": current.id if current else None,
            "next_run": next_run.isoformat() if next_run else None,
            "total_sessions": stats.total_sessions,
            "successful": stats.successful,
            "failed": stats.failed,
            "timeouts": stats.timeouts,
            "skipped": stats.skipped,
            "success_rate": stats.success_rate,
            "average_jobs_per_session": stats.average_jobs_per_session,
            "last_session": last.model_dump(mode="json") if last else None,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _finish(self, session: ScrapeSession, status: SessionStatus, reason: str = "") -> None:
        try:
            self._sessions.finish(session, status, reason)
        finally:
            self._governor.end_session()
        if status is SessionStatus.COMPLETED:
            self.mark_success(session.trigger, self._clock())
        self._record_stats(session)
        self._persist(session)

    def _record_stats(self, session: ScrapeSession) -> None:
        if session.status is SessionStatus.SKIPPED:
            self._stats.skipped += 1
            return
        self._stats.total_sessions += 1
        if session.status is SessionStatus.COMPLETED:
            self._stats.successful += 1
            self._stats.total_jobs_saved += session.jobs_saved
        elif session.status is SessionStatus.TIMEOUT:
            self._stats.timeouts += 1
            self._stats.failed += 1
        else:
            self._stats.failed += 1

    def _persist(self, session: ScrapeSession) -> None:
        if self._conn is not None:
            save_session(self._conn, session)
