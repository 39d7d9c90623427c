"""Tests for the operational governor: kill switch, quotas, quality gate, error budget."""

from datetime import datetime, timedelta

import pytest
from pydantic import ValidationError

from jobcurator.core.config import GovernorConfig
from jobcurator.core.db import get_flag, init_db
from jobcurator.core.errors import (
    ErrorBudgetExhausted,
    KillSwitchActive,
    QualityGateFailure,
)
from jobcurator.core.schemas import QualityMetricSample
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.quality_metrics import QualityMetrics

NOW = datetime(2026, 3, 10, 12, 0)


@pytest.fixture()
def db(tmp_path):  # type: ignore[no-untyped-def]
    return init_db(tmp_path / "test.db")


@pytest.fixture()
def metrics(db) -> QualityMetrics:  # type: ignore[no-untyped-def]
    return QualityMetrics(db, clock=lambda: NOW)


def _add_quality(metrics: QualityMetrics, score: float) -> None:
    metrics.record_sample(QualityMetricSample(
        session_id="old",
        site="indeed",
        timestamp=NOW - timedelta(hours=1),
        total_parsed=10,
        valid_jobs=int(score / 10),
        invalid_jobs=10 - int(score / 10),
        quality_score=score,
    ))


# ---------------------------------------------------------------------------
# TestKillSwitch
# ---------------------------------------------------------------------------


class TestKillSwitch:
    def test_blocks_regardless_of_other_state(self, metrics: QualityMetrics) -> None:
        _add_quality(metrics, 95)
        governor = Governor(GovernorConfig(kill_switch=True), metrics)
        auth = governor.authorize()
        assert auth.allowed is False
        assert auth.code == KillSwitchActive.code
        assert isinstance(auth.to_error(), KillSwitchActive)

    def test_takes_precedence_over_quality_gate(self, metrics: QualityMetrics) -> None:
        _add_quality(metrics, 10)
        governor = Governor(GovernorConfig(kill_switch=True), metrics)
        assert governor.authorize().code == KillSwitchActive.code

    def test_emergency_stop_and_resume(self) -> None:
        governor = Governor(GovernorConfig())
        governor.start_session("s1")
        assert governor.authorize().allowed is True
        governor.emergency_stop("incident")
        assert governor.authorize().allowed is False
        governor.resume("resolved")
        assert governor.authorize().allowed is True

    def test_flag_persisted_across_instances(self, db) -> None:  # type: ignore[no-untyped-def]
        first = Governor(GovernorConfig(), conn=db)
        second = Governor(GovernorConfig(), conn=db)
        first.emergency_stop("incident")
        assert get_flag(db, "kill_switch") == "1"
        assert second.authorize().allowed is False
        first.resume("resolved")
        assert second.authorize().allowed is True

    def test_persisted_flag_wins(self, db) -> None:  # type: ignore[no-untyped-def]
        Governor(GovernorConfig(), conn=db).emergency_stop("incident")
        governor = Governor(GovernorConfig(kill_switch=False), conn=db)
        assert governor.config.kill_switch is True


# ---------------------------------------------------------------------------
# TestSiteQuota
# ---------------------------------------------------------------------------


class TestSiteQuota:
    def test_exhausted_at_fifty(self) -> None:
        governor = Governor(GovernorConfig(max_jobs_per_site=50))
        governor.record_scraped("indeed", 50)
        check = governor.authorize_site("indeed")
        assert check.allowed is False
        assert check.remaining == 0

    def test_one_left_at_forty_nine(self) -> None:
        governor = Governor(GovernorConfig(max_jobs_per_site=50))
        governor.record_scraped("indeed", 49)
        check = governor.authorize_site("indeed")
        assert check.allowed is True
        assert check.remaining == 1

    def test_disabled_and_unknown_sites(self) -> None:
        governor = Governor(GovernorConfig(sites_enabled={"aarp": False}))
        assert governor.authorize_site("aarp").allowed is False
        assert governor.authorize_site("monster").allowed is False
        assert governor.authorize_site("indeed").allowed is True

    def test_claim_grants_what_is_left(self) -> None:
        governor = Governor(GovernorConfig(max_jobs_per_site=5, max_jobs_per_user_per_site=5))
        assert governor.claim_quota("indeed", 3, user_id="u1") == 3
        assert governor.claim_quota("indeed", 10, user_id="u2") == 2
        assert governor.claim_quota("indeed", 1, user_id="u3") == 0
        assert governor.site_count("indeed") == 5

    def test_per_user_per_site_cap(self) -> None:
        governor = Governor(GovernorConfig(max_jobs_per_user_per_site=2))
        assert governor.claim_quota("indeed", 5, user_id="u1") == 2
        assert governor.remaining_for_user("u1", "indeed") == 0
        assert governor.remaining_for_user("u1", "aarp") == 2
        assert governor.claim_quota("indeed", 5, user_id="u2") == 2

    def test_release_returns_claimed_slots(self) -> None:
        governor = Governor(GovernorConfig(max_jobs_per_user_per_site=2))
        assert governor.claim_quota("indeed", 2, user_id="u1") == 2
        governor.release_quota("indeed", 1, user_id="u1")
        assert governor.site_count("indeed") == 1
        assert governor.remaining_for_user("u1", "indeed") == 1
        assert governor.claim_quota("indeed", 5, user_id="u1") == 1

    def test_release_never_goes_negative(self) -> None:
        governor = Governor(GovernorConfig())
        governor.release_quota("indeed", 3, user_id="u1")
        assert governor.site_count("indeed") == 0
        assert governor.remaining_for_user("u1", "indeed") == 5

    def test_claim_nothing(self) -> None:
        assert Governor(GovernorConfig()).claim_quota("indeed", 0) == 0

    def test_negative_count_rejected(self) -> None:
        with pytest.raises(ValueError, match="count"):
            Governor(GovernorConfig()).record_scraped("indeed", -1)

    def test_start_session_resets_counts(self) -> None:
        governor = Governor(GovernorConfig())
        governor.record_scraped("indeed", 50)
        governor.record_error("boom")
        governor.start_session("s2")
        assert governor.site_count("indeed") == 0
        assert governor.error_count == 0

    def test_site_flag_persisted(self, db) -> None:  # type: ignore[no-untyped-def]
        Governor(GovernorConfig(), conn=db).set_site_enabled("aarp", False, "layout change")
        assert Governor(GovernorConfig(), conn=db).authorize_site("aarp").allowed is False


# ---------------------------------------------------------------------------
# TestQualityGate
# ---------------------------------------------------------------------------


class TestQualityGate:
    def test_no_data_allows(self, metrics: QualityMetrics) -> None:
        assert Governor(GovernorConfig(), metrics).authorize().allowed is True

    def test_below_minimum_refuses(self, metrics: QualityMetrics) -> None:
        _add_quality(metrics, 30)
        auth = Governor(GovernorConfig(), metrics).authorize()
        assert auth.allowed is False
        assert auth.code == QualityGateFailure.code
        assert "30.0%" in auth.reason
        assert auth.recommendations

    def test_warning_band_allows(self, metrics: QualityMetrics) -> None:
        _add_quality(metrics, 50)
        assert Governor(GovernorConfig(), metrics).authorize().allowed is True

    def test_quality_read_once_per_session(self, metrics: QualityMetrics) -> None:
        governor = Governor(GovernorConfig(), metrics)
        governor.start_session("s1")
        assert governor.authorize().allowed is True
        _add_quality(metrics, 0)
        assert governor.authorize().allowed is True
        governor.start_session("s2")
        assert governor.authorize().allowed is False


# ---------------------------------------------------------------------------
# TestErrorBudget
# ---------------------------------------------------------------------------


class TestErrorBudget:
    def test_refuses_once_budget_reached(self) -> None:
        governor = Governor(GovernorConfig(max_errors_before_stop=3))
        governor.record_error("one")
        governor.record_error(RuntimeError("two"), site="indeed")
        assert governor.authorize().allowed is True
        governor.record_error("three")
        auth = governor.authorize()
        assert auth.allowed is False
        assert isinstance(auth.to_error(), ErrorBudgetExhausted)

    def test_reset_session_clears_errors(self) -> None:
        governor = Governor(GovernorConfig(max_errors_before_stop=1))
        governor.start_session("s1")
        governor.record_error("one")
        governor.reset_session()
        assert governor.authorize().allowed is True


# ---------------------------------------------------------------------------
# TestConfigUpdates
# ---------------------------------------------------------------------------


class TestConfigUpdates:
    def test_update_applies(self) -> None:
        governor = Governor(GovernorConfig())
        updated = governor.update_config(max_jobs_per_site=10)
        assert updated.max_jobs_per_site == 10
        governor.record_scraped("indeed", 10)
        assert governor.authorize_site("indeed").allowed is False

    def test_unknown_key(self) -> None:
        with pytest.raises(ValueError, match="Unknown governor settings"):
            Governor(GovernorConfig()).update_config(max_pages=3)

    def test_invalid_value(self) -> None:
        with pytest.raises(ValidationError):
            Governor(GovernorConfig()).update_config(min_quality=90)

    def test_config_is_a_copy(self) -> None:
        governor = Governor(GovernorConfig())
        governor.config.sites_enabled["indeed"] = False
        assert governor.authorize_site("indeed").allowed is True

    def test_delays(self) -> None:
        assert Governor(GovernorConfig()).delays == (2.0, 1.0, 5.0)


# ---------------------------------------------------------------------------
# TestHealthSummary
# ---------------------------------------------------------------------------


class TestHealthSummary:
    def test_healthy(self) -> None:
        summary = Governor(GovernorConfig()).health_summary()
        assert summary.status == "healthy"
        assert summary.issues == []

    def test_kill_switch_is_critical(self) -> None:
        summary = Governor(GovernorConfig(kill_switch=True)).health_summary()
        assert summary.status == "critical"

    def test_one_disabled_site_is_warning(self) -> None:
        summary = Governor(GovernorConfig(sites_enabled={"aarp": False})).health_summary()
        assert summary.status == "warning"
        assert "Disabled sites: aarp" in summary.issues

    def test_all_sites_disabled_is_critical(self) -> None:
        flags = {"indeed": False, "aarp": False, "usajobs": False}
        summary = Governor(GovernorConfig(sites_enabled=flags)).health_summary()
        assert summary.status == "critical"

    def test_high_error_count_warns(self) -> None:
        governor = Governor(GovernorConfig(max_errors_before_stop=10))
        governor.start_session("s1")
        for i in range(8):
            governor.record_error(f"error {i}")
        summary = governor.health_summary()
        assert summary.status == "warning"
        assert summary.session is not None
        assert summary.session["errors"] == 8
