"""Operational governor: kill switch, site quotas, error budget, quality gate.

Consulted before a session starts and before every user batch and site
fetch. Session counters reset in ``start_session``. Operator flags (kill
switch, per-site enable) are persisted in SQLite when a connection is
given, so a stop issued from another process is seen at the next check.
"""

import logging
import sqlite3
from collections.abc import Callable
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from jobcurator.core.config import GovernorConfig
from jobcurator.core.db import list_flags, set_flag
from jobcurator.core.errors import (
    ErrorBudgetExhausted,
    KillSwitchActive,
    QualityGateFailure,
    SessionHalted,
)
from jobcurator.pipeline.quality_metrics import QualityMetrics

logger = logging.getLogger(__name__)

KILL_SWITCH_FLAG = "kill_switch"
SITE_FLAG_PREFIX = "site:"
ERROR_WARNING_RATIO = 0.8

_HALT_TYPES: dict[str, type[SessionHalted]] = {
    KillSwitchActive.code: KillSwitchActive,
    QualityGateFailure.code: QualityGateFailure,
    ErrorBudgetExhausted.code: ErrorBudgetExhausted,
}


class Authorization(BaseModel):
    """Outcome of a session-level check."""

    allowed: bool
    reason: str = ""
    code: str = ""
    recommendations: list[str] = Field(default_factory=list)

    def to_error(self) -> SessionHalted:
        cls = _HALT_TYPES.get(self.code, SessionHalted)
        return cls(self.reason, self.recommendations)


class SiteAuthorization(BaseModel):
    """Outcome of a per-site check."""

    allowed: bool
    remaining: int = 0
    reason: str = ""


class HealthSummary(BaseModel):
    status: str  # healthy | warning | critical
    issues: list[str] = Field(default_factory=list)
    recommendations: list[str] = Field(default_factory=list)
    session: dict[str, Any] | None = None


class Governor:
    """Process-wide gate for scraping.

    Usage::

        governor = Governor(settings.governor, metrics, conn)
        governor.start_session(session.id)
        if governor.authorize().allowed and governor.authorize_site("indeed").allowed:
            granted = governor.claim_quota("indeed", 12, user_id="u1")
    """

    def __init__(
        self,
        config: GovernorConfig,
        metrics: QualityMetrics | None = None,
        conn: sqlite3.Connection | None = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._config = config.model_copy(deep=True)
        self._metrics = metrics
        self._conn = conn
        self._clock = clock
        self._session_id: str | None = None
        self._session_started: datetime | None = None
        self._site_counts: dict[str, int] = {}
        self._user_site_counts: dict[tuple[str, str], int] = {}
        self._error_count = 0
        self._quality_checked = False
        self._cached_quality: float | None = None
        self._refresh_flags()

    # ------------------------------------------------------------------
    # Session lifecycle
    # ------------------------------------------------------------------

    @property
    def config(self) -> GovernorConfig:
        return self._config.model_copy(deep=True)

    @property
    def error_count(self) -> int:
        return self._error_count

    def site_count(self, site: str) -> int:
        return self._site_counts.get(site, 0)

    def start_session(self, session_id: str) -> None:
        """Reset per-session counters and the cached quality reading."""
        self._session_id = session_id
        self._session_started = self._clock()
        self._site_counts = {}
        self._user_site_counts = {}
        self._error_count = 0
        self._quality_checked = False
        self._cached_quality = None
        logger.info("Governor session %s started", session_id)

    def reset_session(self) -> None:
        """Zero counters mid-session; the quality reading is taken again on next check."""
        self._site_counts = {}
        self._user_site_counts = {}
        self._error_count = 0
        self._quality_checked = False
        self._cached_quality = None
        logger.warning("Governor counters reset for session %s", self._session_id)

    def end_session(self) -> None:
        if self._session_id is not None:
            logger.info(
                "Governor session %s ended: %s, %d errors",
                self._session_id, self._site_counts, self._error_count,
            )
        self._session_id = None
        self._session_started = None

    # ------------------------------------------------------------------
    # Checks
    # ------------------------------------------------------------------

    def authorize(self) -> Authorization:
        """Session-level go/no-go."""
        self._refresh_flags()

        if self._config.kill_switch:
            logger.warning("Scraping blocked: kill switch is active")
            return Authorization(
                allowed=False,
                code=KillSwitchActive.code,
                reason="Global kill switch is enabled",
                recommendations=["Resume operations explicitly to clear the kill switch"],
            )

        quality = self._rolling_quality()
        if quality is not None:
            if quality < self._config.min_quality:
                logger.error(
                    "Quality %.1f%% below minimum %.1f%%, refusing to scrape",
                    quality, self._config.min_quality,
                )
                return Authorization(
                    allowed=False,
                    code=QualityGateFailure.code,
                    reason=(
                        f"Quality too low: {quality:.1f}% "
                        f"(minimum: {self._config.min_quality:g}%)"
                    ),
                    recommendations=[
                        "Check DOM selectors for job sites",
                        "Review parsing logic for common failures",
                        "Consider disabling low-quality sites temporarily",
                    ],
                )
            if quality < self._config.warning_quality:
                logger.warning(
                    "Quality %.1f%% below warning threshold %.1f%%",
                    quality, self._config.warning_quality,
                )

        if self._error_count >= self._config.max_errors_before_stop:
            return Authorization(
                allowed=False,
                code=ErrorBudgetExhausted.code,
                reason=f"Too many errors in session: {self._error_count}",
                recommendations=[
                    "Check logs for error patterns",
                    "Consider reducing batch size",
                    "Check external site availability",
                ],
            )

        return Authorization(allowed=True)

    def authorize_site(self, site: str) -> SiteAuthorization:
        """Per-site check. Unknown sites count as disabled."""
        if not self._config.sites_enabled.get(site, False):
            return SiteAuthorization(
                allowed=False,
                reason=f"Site {site} is disabled",
            )
        count = self._site_counts.get(site, 0)
        remaining = max(0, self._config.max_jobs_per_site - count)
        if remaining == 0:
            return SiteAuthorization(
                allowed=False,
                remaining=0,
                reason=f"Site quota exceeded for {site}: {count}/{self._config.max_jobs_per_site}",
            )
        return SiteAuthorization(allowed=True, remaining=remaining)

    def remaining_for_user(self, user_id: str, site: str) -> int:
        used = self._user_site_counts.get((user_id, site), 0)
        return max(0, self._config.max_jobs_per_user_per_site - used)

    # ------------------------------------------------------------------
    # Counters
    # ------------------------------------------------------------------

    def claim_quota(self, site: str, wanted: int, user_id: str | None = None) -> int:
        """Reserve up to ``wanted`` slots for ``site`` and return how many were granted.

        Granted slots are recorded immediately; there is no await between
        check and increment.
        """
        if wanted <= 0:
            return 0
        allowed = self.authorize_site(site)
        if not allowed.allowed:
            return 0
        granted = min(wanted, allowed.remaining)
        if user_id is not None:
            granted = min(granted, self.remaining_for_user(user_id, site))
        if granted:
            self.record_scraped(site, granted, user_id=user_id)
        return granted

    def record_scraped(self, site: str, count: int, user_id: str | None = None) -> None:
        if count < 0:
            msg = f"count must be >= 0, got {count}"
            raise ValueError(msg)
        self._site_counts[site] = self._site_counts.get(site, 0) + count
        if user_id is not None:
            key = (user_id, site)
            self._user_site_counts[key] = self._user_site_counts.get(key, 0) + count
        logger.debug(
            "Recorded %d for %s (%d/%d this session)",
            count, site, self._site_counts[site], self._config.max_jobs_per_site,
        )

    def release_quota(self, site: str, count: int, user_id: str | None = None) -> None:
        """Return slots claimed for records that were never stored."""
        if count <= 0:
            return
        self._site_counts[site] = max(0, self._site_counts.get(site, 0) - count)
        if user_id is not None:
            key = (user_id, site)
            self._user_site_counts[key] = max(0, self._user_site_counts.get(key, 0) - count)
        logger.debug("Released %d for %s (%d used)", count, site, self._site_counts[site])

    def record_error(self, error: BaseException | str, site: str | None = None) -> None:
        """Count an error. Crossing the budget is logged; the next check refuses."""
        self._error_count += 1
        logger.warning(
            "Error %d/%d recorded%s: %s",
            self._error_count, self._config.max_errors_before_stop,
            f" for {site}" if site else "", error,
        )
        if self._error_count == self._config.max_errors_before_stop:
            logger.critical(
                "Error budget exhausted in session %s (%d errors), scraping will stop",
                self._session_id, self._error_count,
            )

    # ------------------------------------------------------------------
    # Operator controls
    # ------------------------------------------------------------------

    def emergency_stop(self, reason: str) -> None:
        self._config.kill_switch = True
        self._persist_flag(KILL_SWITCH_FLAG, True, reason)
        logger.critical("EMERGENCY STOP: %s", reason)

    def resume(self, reason: str) -> None:
        self._config.kill_switch = False
        self._persist_flag(KILL_SWITCH_FLAG, False, reason)
        logger.warning("Operations resumed: %s", reason)

    def set_site_enabled(self, site: str, enabled: bool, reason: str = "") -> None:
        self._config.sites_enabled[site] = enabled
        self._persist_flag(f"{SITE_FLAG_PREFIX}{site}", enabled, reason)
        logger.warning("Site %s %s%s", site, "enabled" if enabled else "disabled",
                       f": {reason}" if reason else "")

    def update_config(self, **changes: Any) -> GovernorConfig:
        """Apply validated changes. Unknown keys raise ValueError."""
        unknown = set(changes) - set(GovernorConfig.model_fields)
        if unknown:
            msg = f"Unknown governor settings: {', '.join(sorted(unknown))}"
            raise ValueError(msg)
        merged = {**self._config.model_dump(), **changes}
        self._config = GovernorConfig.model_validate(merged)
        logger.info("Governor configuration updated: %s", changes)
        return self.config

    @property
    def delays(self) -> tuple[float, float, float]:
        """(between sites, between queries, between batches) in seconds."""
        return (
            self._config.delay_between_sites,
            self._config.delay_between_queries,
            self._config.delay_between_batches,
        )

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def health_summary(self) -> HealthSummary:
        self._refresh_flags()
        issues: list[str] = []
        recommendations: list[str] = []
        severity = 0  # 0 healthy, 1 warning, 2 critical

        if self._config.kill_switch:
            issues.append("Global kill switch is enabled")
            recommendations.append("Resume operations to clear the kill switch")
            severity = 2

        disabled = [s for s, on in self._config.sites_enabled.items() if not on]
        if disabled:
            issues.append(f"Disabled sites: {', '.join(sorted(disabled))}")
            if len(disabled) == len(self._config.sites_enabled):
                recommendations.append("Enable at least one site")
                severity = 2
            else:
                severity = max(severity, 1)

        quality = self._metrics.rolling_average(self._config.quality_check_hours) if (
            self._metrics is not None
        ) else None
        if quality is not None:
            if quality < self._config.min_quality:
                issues.append(f"Quality too low: {quality:.1f}%")
                recommendations.append("Check DOM selectors for job sites")
                severity = 2
            elif quality < self._config.warning_quality:
                issues.append(f"Quality concerning: {quality:.1f}%")
                severity = max(severity, 1)

        if self._error_count >= self._config.max_errors_before_stop * ERROR_WARNING_RATIO:
            issues.append(f"High error count: {self._error_count}")
            recommendations.append("Check logs for error patterns")
            severity = max(severity, 1)

        session = None
        if self._session_id is not None and self._session_started is not None:
            session = {
                "id": self._session_id,
                "duration_seconds": (self._clock() - self._session_started).total_seconds(),
                "site_counts": dict(self._site_counts),
                "errors": self._error_count,
            }
        return HealthSummary(
            status=("healthy", "warning", "critical")[severity],
            issues=issues,
            recommendations=recommendations,
            session=session,
        )

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _rolling_quality(self) -> float | None:
        """Rolling average quality; read once per session, then cached."""
        if self._metrics is None:
            return None
        if self._session_id is not None and self._quality_checked:
            return self._cached_quality
        quality = self._metrics.rolling_average(self._config.quality_check_hours)
        if quality is None:
            logger.info(
                "No quality data in the last %dh, proceeding",
                self._config.quality_check_hours,
            )
        if self._session_id is not None:
            self._cached_quality = quality
            self._quality_checked = True
        return quality

    def _refresh_flags(self) -> None:
        if self._conn is None:
            return
        for name, value in list_flags(self._conn).items():
            flag = value == "1"
            if name == KILL_SWITCH_FLAG:
                self._config.kill_switch = flag
            elif name.startswith(SITE_FLAG_PREFIX):
                self._config.sites_enabled[name[len(SITE_FLAG_PREFIX):]] = flag

    def _persist_flag(self, name: str, value: bool, reason: str) -> None:
        if self._conn is None:
            return
        set_flag(self._conn, name, "1" if value else "0", reason)

