"""Quality metrics: append-only per (session, site) samples and reports.

Samples live in SQLite so the governor's rolling quality gate survives
restarts. Each sample's quality score is valid / parsed * 100.
"""

import json
import logging
import sqlite3
from collections import Counter, defaultdict
from collections.abc import Callable, Iterable
from datetime import datetime, timedelta

from pydantic import BaseModel, Field

from jobcurator.core.db import delete_quality_samples, insert_quality_sample, list_quality_samples
from jobcurator.core.schemas import QualityMetricSample, SanitizedRecord

logger = logging.getLogger(__name__)

LOW_QUALITY_ALERT = 50.0
TARGET_QUALITY = 80.0
TOP_ERRORS = 5


class SiteQuality(BaseModel):
    site: str
    quality: float
    jobs: int


class QualityTrend(BaseModel):
    hour: str
    average_quality: float
    total_jobs: int
    valid_jobs: int
    top_sites: list[SiteQuality] = Field(default_factory=list)


class QualityStats(BaseModel):
    average_quality: float = 0.0
    total_samples: int = 0
    total_parsed: int = 0
    total_valid: int = 0
    site_breakdown: list[SiteQuality] = Field(default_factory=list)
    trend: list[QualityTrend] = Field(default_factory=list)


class ValidationStats(BaseModel):
    title_failures: int = 0
    company_failures: int = 0
    location_failures: int = 0
    suspicious_content: int = 0


class Recommendation(BaseModel):
    priority: str  # high | medium | low
    recommendation: str
    impact: str
    details: str


class QualityMetrics:
    """Records and summarises extraction quality.

    Usage::

        metrics = QualityMetrics(conn)
        metrics.record("s1", "indeed", records, parsing_method="html")
        metrics.rolling_average(hours=24)
    """

    def __init__(
        self,
        conn: sqlite3.Connection,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self._conn = conn
        self._clock = clock

    def record(
        self,
        session_id: str,
        site: str,
        records: list[SanitizedRecord],
        parsing_method: str = "html",
        processing_time_ms: float = 0.0,
    ) -> QualityMetricSample | None:
        """Store one sample for a parsed batch. Empty batches are not recorded."""
        if not records:
            return None
        valid = sum(1 for r in records if r.is_valid)
        errors: Counter[str] = Counter()
        for r in records:
            errors.update(r.validation_errors)
        sample = QualityMetricSample(
            session_id=session_id,
            site=site,
            timestamp=self._clock(),
            total_parsed=len(records),
            valid_jobs=valid,
            invalid_jobs=len(records) - valid,
            quality_score=round(valid / len(records) * 100, 2),
            common_errors=errors.most_common(TOP_ERRORS),
            parsing_method=parsing_method,
            processing_time_ms=processing_time_ms,
        )
        self.record_sample(sample)
        return sample

    def record_sample(self, sample: QualityMetricSample) -> None:
        insert_quality_sample(self._conn, sample)
        logger.info(
            "Quality %s/%s: %d/%d valid (%.1f%%, %s)",
            sample.session_id, sample.site, sample.valid_jobs, sample.total_parsed,
            sample.quality_score, sample.parsing_method,
        )
        if sample.quality_score < LOW_QUALITY_ALERT:
            logger.warning(
                "Low quality alert for %s: %.1f%% valid (%d/%d). "
                "Review parsing logic and site selectors",
                sample.site, sample.quality_score, sample.valid_jobs, sample.total_parsed,
            )

    def samples(self, hours: float | None = None) -> list[QualityMetricSample]:
        since = None if hours is None else self._clock() - timedelta(hours=hours)
        return list_quality_samples(self._conn, since=since)

    def rolling_average(self, hours: float = 24) -> float | None:
        """Mean sample quality over the window, or None when there are no samples."""
        recent = self.samples(hours)
        if not recent:
            return None
        return sum(s.quality_score for s in recent) / len(recent)

    def stats(self, hours: float = 24) -> QualityStats:
        recent = self.samples(hours)
        if not recent:
            return QualityStats()

        per_hour: dict[str, list[QualityMetricSample]] = defaultdict(list)
        for s in recent:
            per_hour[s.timestamp.strftime("%Y-%m-%dT%H:00")].append(s)

        trend = []
        for hour in sorted(per_hour):
            group = per_hour[hour]
            trend.append(QualityTrend(
                hour=hour,
                average_quality=_mean(s.quality_score for s in group),
                total_jobs=sum(s.total_parsed for s in group),
                valid_jobs=sum(s.valid_jobs for s in group),
                top_sites=_site_breakdown(group)[:3],
            ))

        return QualityStats(
            average_quality=_mean(s.quality_score for s in recent),
            total_samples=len(recent),
            total_parsed=sum(s.total_parsed for s in recent),
            total_valid=sum(s.valid_jobs for s in recent),
            site_breakdown=_site_breakdown(recent),
            trend=trend,
        )

    def validation_stats(self, hours: float = 24) -> ValidationStats:
        """Classify recorded error reasons by the field they concern."""
        stats = ValidationStats()
        for sample in self.samples(hours):
            for error, count in sample.common_errors:
                text = error.lower()
                if "suspicious" in text:
                    stats.suspicious_content += count
                elif "title" in text:
                    stats.title_failures += count
                elif "company" in text:
                    stats.company_failures += count
                elif "location" in text:
                    stats.location_failures += count
        return stats

    def recommendations(self, hours: float = 24) -> list[Recommendation]:
        stats = self.stats(hours)
        validation = self.validation_stats(hours)
        result: list[Recommendation] = []

        if stats.total_samples and stats.average_quality < 60:
            worst = ", ".join(f"{s.site} ({s.quality:.0f}%)" for s in stats.site_breakdown[-2:])
            result.append(Recommendation(
                priority="high",
                recommendation="Improve DOM selectors for low-performing sites",
                impact="Could improve quality score by 20-30%",
                details=f"Average quality is {stats.average_quality:.1f}%. Lowest: {worst}",
            ))
        if validation.title_failures > 10:
            result.append(Recommendation(
                priority="medium",
                recommendation="Strengthen title validation rules",
                impact="Could reduce invalid entries by 15-25%",
                details=f"{validation.title_failures} title failures in the past {hours:g}h",
            ))
        if validation.suspicious_content > 5:
            result.append(Recommendation(
                priority="high",
                recommendation="Enhance UI element filtering",
                impact="Could improve quality score by 10-15%",
                details=f"{validation.suspicious_content} suspicious/UI content detections",
            ))
        if stats.total_samples and stats.average_quality >= TARGET_QUALITY:
            result.append(Recommendation(
                priority="low",
                recommendation="Quality target achieved, keep monitoring",
                impact="Maintain current parsing quality",
                details=f"Average quality is {stats.average_quality:.1f}%",
            ))
        return result

    def report(self, hours: float = 24) -> str:
        """Plain-text report; also written to the log at INFO."""
        stats = self.stats(hours)
        validation = self.validation_stats(hours)
        lines = [
            f"Quality report (last {hours:g}h)",
            f"  Samples: {stats.total_samples}  Parsed: {stats.total_parsed}  "
            f"Valid: {stats.total_valid}  Average quality: {stats.average_quality:.1f}%",
        ]
        for site in stats.site_breakdown:
            lines.append(f"  {site.site}: {site.quality:.1f}% over {site.jobs} parsed")
        lines.append(
            f"  Failures: title={validation.title_failures} company={validation.company_failures} "
            f"location={validation.location_failures} suspicious={validation.suspicious_content}"
        )
        for rec in self.recommendations(hours):
            lines.append(f"  [{rec.priority}] {rec.recommendation}: {rec.details}")
        text = "\n".join(lines)
        logger.info("%s", text)
        return text

    def clear_old(self, hours: float = 72) -> int:
        removed = delete_quality_samples(self._conn, self._clock() - timedelta(hours=hours))
        if removed:
            logger.info("Cleared %d quality samples older than %gh", removed, hours)
        return removed

    def export(self, hours: float | None = None) -> str:
        """All samples in the window as a JSON array."""
        return json.dumps([s.model_dump(mode="json") for s in self.samples(hours)], indent=2)


def _mean(values: Iterable[float]) -> float:
    items = list(values)
    return round(sum(items) / len(items), 2) if items else 0.0


def _site_breakdown(samples: list[QualityMetricSample]) -> list[SiteQuality]:
    per_site: dict[str, list[QualityMetricSample]] = defaultdict(list)
    for s in samples:
        per_site[s.site].append(s)
    breakdown = [
        SiteQuality(
            site=site,
            quality=_mean(s.quality_score for s in group),
            jobs=sum(s.total_parsed for s in group),
        )
        for site, group in per_site.items()
    ]
    breakdown.sort(key=lambda s: s.quality, reverse=True)
    return breakdown
