"""Operator surface: plain request/response functions used by the CLI.

Each function takes the collaborators it needs and returns plain data
(dicts or model dumps) so callers can print or serialize it.
"""

import logging
import sqlite3
from typing import Any

from jobcurator.core.db import count_records, list_flags, list_sessions
from jobcurator.core.schemas import ScrapeSession
from jobcurator.pipeline.governor import Governor
from jobcurator.pipeline.quality_metrics import QualityMetrics
from jobcurator.pipeline.scheduler import JobScheduler

logger = logging.getLogger(__name__)


def emergency_stop(governor: Governor, reason: str) -> dict[str, Any]:
    governor.emergency_stop(reason)
    return {"kill_switch": True, "reason": reason}


def resume(governor: Governor, reason: str) -> dict[str, Any]:
    governor.resume(reason)
    return {"kill_switch": False, "reason": reason}


def set_site(governor: Governor, site: str, enabled: bool, reason: str = "") -> dict[str, Any]:
    """Enable or disable a known site.

    Raises:
        ValueError: If ``site`` is not configured.
    """
    site = site.strip().lower()
    known = governor.config.sites_enabled
    if site not in known:
        msg = f"Unknown site '{site}'. Known sites: {', '.join(sorted(known))}"
        raise ValueError(msg)
    governor.set_site_enabled(site, enabled, reason)
    return {"site": site, "enabled": enabled, "reason": reason}


def show_config(governor: Governor) -> dict[str, Any]:
    return governor.config.model_dump()


def update_config(governor: Governor, **changes: Any) -> dict[str, Any]:
    return governor.update_config(**changes).model_dump()


def show_status(
    governor: Governor,
    scheduler: JobScheduler,
    conn: sqlite3.Connection,
    recent: int = 5,
) -> dict[str, Any]:
    """Health, scheduler state, operator flags and the latest sessions."""
    return {
        "health": governor.health_summary().model_dump(),
        "scheduler": scheduler.status(),
        "flags": list_flags(conn),
        "records": count_records(conn),
        "recent_sessions": [
            s.model_dump(mode="json") for s in list_sessions(conn, limit=recent)
        ],
    }


def quality_report(metrics: QualityMetrics, hours: float = 24) -> str:
    return metrics.report(hours)


async def trigger_manual(scheduler: JobScheduler) -> ScrapeSession:
    """Run one manual session now, or return the one already running."""
    logger.info("Manual scrape requested")
    return await scheduler.trigger(manual=True)
