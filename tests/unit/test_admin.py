"""Tests for the operator functions in pipeline.admin."""

import sqlite3
from unittest.mock import AsyncMock

import pytest

from jobcurator.core.config import GovernorConfig, SchedulerConfig
from jobcurator.core.db import init_db, list_flags
from jobcurator.core.schemas import SessionStatus
from jobcurator.pipeline import admin
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.quality_metrics import QualityMetrics
from jobcurator.pipeline.scheduler import JobScheduler
from jobcurator.pipeline.session_manager import SessionManager


@pytest.fixture
def conn(tmp_path):  # type: ignore[no-untyped-def]
    connection = init_db(tmp_path / "test.db")
    yield connection
    connection.close()


@pytest.fixture
def governor(conn):  # type: ignore[no-untyped-def]
    return Governor(GovernorConfig(), conn=conn)


def _scheduler(governor: Governor, conn: sqlite3.Connection) -> JobScheduler:
    return JobScheduler(
        SchedulerConfig(), SessionManager(), governor, AsyncMock(), conn=conn,
    )


# ---------------------------------------------------------------------------
# TestOperatorControls
# ---------------------------------------------------------------------------


class TestOperatorControls:
    def test_emergency_stop_and_resume(self, governor: Governor, conn: sqlite3.Connection) -> None:
        result = admin.emergency_stop(governor, "site complaint")
        assert result == {"kill_switch": True, "reason": "site complaint"}
        assert not governor.authorize().allowed
        assert list_flags(conn)["kill_switch"] == "1"

        admin.resume(governor, "resolved")
        assert governor.authorize().allowed
        assert list_flags(conn)["kill_switch"] == "0"

    def test_stop_survives_restart(self, governor: Governor, conn: sqlite3.Connection) -> None:
        admin.emergency_stop(governor, "maintenance")
        assert not Governor(GovernorConfig(), conn=conn).authorize().allowed

    def test_set_site(self, governor: Governor) -> None:
        result = admin.set_site(governor, " AARP ", False, "layout changed")
        assert result["site"] == "aarp"
        assert governor.config.sites_enabled["aarp"] is False
        assert not governor.authorize_site("aarp").allowed

    def test_set_unknown_site(self, governor: Governor) -> None:
        with pytest.raises(ValueError, match="Unknown site 'monster'"):
            admin.set_site(governor, "monster", True)

    def test_show_and_update_config(self, governor: Governor) -> None:
        assert admin.show_config(governor)["max_jobs_per_site"] == 50
        updated = admin.update_config(governor, max_jobs_per_site=20)
        assert updated["max_jobs_per_site"] == 20
        assert governor.config.max_jobs_per_site == 20

    def test_update_unknown_setting(self, governor: Governor) -> None:
        with pytest.raises(ValueError, match="Unknown governor settings"):
            admin.update_config(governor, max_jobs=1)


# ---------------------------------------------------------------------------
# TestReporting
# ---------------------------------------------------------------------------


class TestReporting:
    async def test_status_after_manual_trigger(
        self, governor: Governor, conn: sqlite3.Connection,
    ) -> None:
        scheduler = _scheduler(governor, conn)
        session = await admin.trigger_manual(scheduler)
        assert session.status is SessionStatus.COMPLETED

        status = admin.show_status(governor, scheduler, conn)
        assert set(status) == {"health", "scheduler", "flags", "records", "recent_sessions"}
        assert status["records"] == 0
        assert status["scheduler"]["total_sessions"] == 1
        assert status["recent_sessions"][0]["id"] == session.id
        assert status["health"]["status"] == "healthy"

    def test_quality_report_empty(self, conn: sqlite3.Connection) -> None:
        report = admin.quality_report(QualityMetrics(conn), hours=12)
        assert report.startswith("Quality report (last 12h)")
        assert "Samples: 0" in report
