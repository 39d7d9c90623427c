"""Tests for the scheduler: singleton triggers, biweekly cadence, timeouts, cron."""

import asyncio
from datetime import datetime, timedelta
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from jobcurator.core.config import GovernorConfig, SchedulerConfig
from jobcurator.core.db import init_db, list_sessions, save_session
from jobcurator.core.errors import KillSwitchActive
from jobcurator.core.schemas import ScrapeSession, SessionStatus
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.scheduler import INTERVAL_NOT_MET, JobScheduler
from jobcurator.pipeline.session_manager import SessionManager

NOW = datetime(2026, 3, 15, 2, 0)


def _scheduler(
    run_session=None,  # type: ignore[no-untyped-def]
    *,
    config: SchedulerConfig | None = None,
    governor: Governor | None = None,
    conn=None,  # type: ignore[no-untyped-def]
    clock=lambda: NOW,  # type: ignore[no-untyped-def]
) -> JobScheduler:
    return JobScheduler(
        config or SchedulerConfig(),
        SessionManager(),
        governor or Governor(GovernorConfig()),
        run_session or AsyncMock(),
        conn=conn,
        clock=clock,
    )


# ---------------------------------------------------------------------------
# TestTrigger
# ---------------------------------------------------------------------------


class TestTrigger:
    async def test_completed(self) -> None:
        run = AsyncMock()
        scheduler = _scheduler(run)
        session = await scheduler.trigger(manual=True)
        assert session.status is SessionStatus.COMPLETED
        assert session.trigger == "manual"
        run.assert_awaited_once_with(session)
        assert scheduler.stats.successful == 1

    async def test_scheduled_trigger_named_after_frequency(self) -> None:
        scheduler = _scheduler(config=SchedulerConfig(frequency="daily"))
        session = await scheduler.trigger()
        assert session.trigger == "daily"

    async def test_second_trigger_returns_in_flight_session(self) -> None:
        started = asyncio.Event()
        release = asyncio.Event()
        calls = 0

        async def run(session: ScrapeSession) -> None:
            nonlocal calls
            calls += 1
            started.set()
            await release.wait()

        scheduler = _scheduler(run)
        first = asyncio.create_task(scheduler.trigger(manual=True))
        await started.wait()
        second = await scheduler.trigger(manual=True)
        assert second.status is SessionStatus.RUNNING
        release.set()
        finished = await first
        assert second is finished
        assert calls == 1
        assert finished.status is SessionStatus.COMPLETED

    async def test_refused_by_governor(self) -> None:
        run = AsyncMock()
        governor = Governor(GovernorConfig(kill_switch=True))
        session = await _scheduler(run, governor=governor).trigger(manual=True)
        assert session.status is SessionStatus.FAILED
        assert "kill switch" in session.reason
        run.assert_not_awaited()

    async def test_halt_fails_session(self) -> None:
        run = AsyncMock(side_effect=KillSwitchActive("Global kill switch is enabled"))
        scheduler = _scheduler(run)
        session = await scheduler.trigger(manual=True)
        assert session.status is SessionStatus.FAILED
        assert session.reason == "Global kill switch is enabled"
        assert scheduler.stats.failed == 1

    async def test_unexpected_error_fails_session(self) -> None:
        governor = Governor(GovernorConfig())
        run = AsyncMock(side_effect=RuntimeError("database is locked"))
        session = await _scheduler(run, governor=governor).trigger(manual=True)
        assert session.status is SessionStatus.FAILED
        assert session.reason == "database is locked"
        assert session.error_count == 1

    async def test_timeout_cancels_work(self) -> None:
        cancelled = False

        async def run(session: ScrapeSession) -> None:
            nonlocal cancelled
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled = True
                raise

        scheduler = _scheduler(run, config=SchedulerConfig(session_timeout_minutes=0.001))
        session = await scheduler.trigger(manual=True)
        assert session.status is SessionStatus.TIMEOUT
        assert "timeout" in session.reason
        assert cancelled is True
        assert scheduler.stats.timeouts == 1

    async def test_sessions_persisted(self, tmp_path) -> None:  # type: ignore[no-untyped-def]
        conn = init_db(tmp_path / "test.db")
        session = await _scheduler(conn=conn).trigger(manual=True)
        [stored] = list_sessions(conn)
        assert stored.id == session.id
        assert stored.status is SessionStatus.COMPLETED


# ---------------------------------------------------------------------------
# TestBiweekly
# ---------------------------------------------------------------------------


class TestBiweekly:
    async def test_skipped_at_ten_days(self) -> None:
        run = AsyncMock()
        scheduler = _scheduler(run, config=SchedulerConfig(frequency="biweekly"))
        scheduler.mark_success("biweekly", NOW - timedelta(days=10))
        session = await scheduler.trigger()
        assert session.status is SessionStatus.SKIPPED
        assert session.reason == INTERVAL_NOT_MET
        run.assert_not_awaited()
        assert scheduler.stats.skipped == 1
        assert scheduler.stats.total_sessions == 0

    async def test_runs_at_fourteen_days(self) -> None:
        run = AsyncMock()
        scheduler = _scheduler(run, config=SchedulerConfig(frequency="biweekly"))
        scheduler.mark_success("biweekly", NOW - timedelta(days=14))
        session = await scheduler.trigger()
        assert session.status is SessionStatus.COMPLETED
        assert scheduler.last_success("biweekly") == NOW

    async def test_first_run_is_not_skipped(self) -> None:
        scheduler = _scheduler(config=SchedulerConfig(frequency="biweekly"))
        assert (await scheduler.trigger()).status is SessionStatus.COMPLETED

    async def test_manual_ignores_interval(self) -> None:
        scheduler = _scheduler(config=SchedulerConfig(frequency="biweekly"))
        scheduler.mark_success("biweekly", NOW - timedelta(days=1))
        assert (await scheduler.trigger(manual=True)).status is SessionStatus.COMPLETED

    async def test_anchor_read_from_database(self, tmp_path: Path) -> None:
        conn = init_db(tmp_path / "test.db")
        previous = ScrapeSession(trigger="biweekly")
        previous.finish(SessionStatus.COMPLETED)
        save_session(conn, previous)
        assert previous.finished_at is not None

        config = SchedulerConfig(frequency="biweekly")
        early = _scheduler(
            config=config, conn=conn, clock=lambda: previous.finished_at + timedelta(days=10),
        )
        assert (await early.trigger()).status is SessionStatus.SKIPPED
        late = _scheduler(
            config=config, conn=conn, clock=lambda: previous.finished_at + timedelta(days=15),
        )
        assert (await late.trigger()).status is SessionStatus.COMPLETED


# ---------------------------------------------------------------------------
# TestCron
# ---------------------------------------------------------------------------


class TestCron:
    def test_disabled_does_not_start(self) -> None:
        scheduler = _scheduler()
        assert scheduler.start() is False
        assert scheduler.next_run_time() is None

    @pytest.mark.parametrize(
        ("frequency", "check"),
        [
            ("daily", lambda t: t.hour == 2 and t.minute == 0),
            ("weekly", lambda t: t.weekday() == 6 and t.hour == 2),
            ("biweekly", lambda t: t.weekday() == 6 and t.hour == 2),
            ("monthly", lambda t: t.day == 1 and t.hour == 2),
        ],
    )
    def test_next_run_time(self, frequency: str, check) -> None:  # type: ignore[no-untyped-def]
        scheduler = _scheduler(config=SchedulerConfig(enabled=True, frequency=frequency))
        next_run = scheduler.next_run_time()
        assert next_run is not None
        assert check(next_run)

    async def test_start_and_stop(self) -> None:
        scheduler = _scheduler(config=SchedulerConfig(enabled=True, frequency="weekly"))
        assert scheduler.start() is True
        try:
            assert scheduler.next_run_time() is not None
            assert scheduler.status()["enabled"] is True
        finally:
            scheduler.stop()


# ---------------------------------------------------------------------------
# TestStatus
# ---------------------------------------------------------------------------


class TestStatus:
    async def test_status_and_reset(self) -> None:
        scheduler = _scheduler()
        await scheduler.trigger(manual=True)
        status = scheduler.status()
        assert status["running"] is False
        assert status["cron"] == "0 2 * * 0"
        assert status["total_sessions"] == 1
        assert status["success_rate"] == 100.0
        assert status["last_session"]["status"] == "completed"
        scheduler.reset_statistics()
        assert scheduler.stats.total_sessions == 0
