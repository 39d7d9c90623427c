"""SQLite persistence: job records, users, quality metrics, sessions, flags."""

import json
import sqlite3
from datetime import datetime
from pathlib import Path
from typing import Protocol

from jobcurator.core.schemas import (
    EligibleUser,
    MatchTier,
    PersistableJobRecord,
    QualityMetricSample,
    ScrapeSession,
    SessionStatus,
    UserPreferences,
)

_JOB_RECORDS_TABLE = """
CREATE TABLE IF NOT EXISTS job_records (
    id              INTEGER PRIMARY KEY AUTOINCREMENT,
    title           TEXT    NOT NULL,
    company         TEXT    NOT NULL,
    location        TEXT    NOT NULL DEFAULT '',
    pay             TEXT    NOT NULL DEFAULT '',
    schedule        TEXT    NOT NULL DEFAULT '',
    description     TEXT    NOT NULL DEFAULT '',
    url             TEXT    NOT NULL DEFAULT '',
    site            TEXT    NOT NULL DEFAULT '',
    quality_score   INTEGER NOT NULL DEFAULT 0,
    tags_json       TEXT    NOT NULL DEFAULT '[]',
    match_tier      TEXT    NOT NULL DEFAULT 'potential',
    is_active       INTEGER NOT NULL DEFAULT 1,
    user_id         TEXT,
    session_id      TEXT,
    created_at      TEXT    NOT NULL
);
"""

_JOB_RECORDS_INDEX = (
    "CREATE INDEX IF NOT EXISTS idx_job_records_created ON job_records (created_at)"
)

_USERS_TABLE = """
CREATE TABLE IF NOT EXISTS users (
    user_id                 TEXT PRIMARY KEY,
    email                   TEXT NOT NULL DEFAULT '',
    notifications_enabled   INTEGER NOT NULL DEFAULT 1,
    created_at              TEXT NOT NULL
);
"""

_USER_PREFERENCES_TABLE = """
CREATE TABLE IF NOT EXISTS user_preferences (
    user_id           TEXT PRIMARY KEY REFERENCES users (user_id),
    preferences_json  TEXT NOT NULL,
    updated_at        TEXT NOT NULL
);
"""

_QUALITY_METRICS_TABLE = """
CREATE TABLE IF NOT EXISTS quality_metrics (
    id                  INTEGER PRIMARY KEY AUTOINCREMENT,
    session_id          TEXT    NOT NULL,
    site                TEXT    NOT NULL,
    timestamp           TEXT    NOT NULL,
    total_parsed        INTEGER NOT NULL,
    valid_jobs          INTEGER NOT NULL,
    invalid_jobs        INTEGER NOT NULL,
    quality_score       REAL    NOT NULL,
    common_errors_json  TEXT    NOT NULL DEFAULT '[]',
    parsing_method      TEXT    NOT NULL DEFAULT 'html',
    processing_time_ms  REAL    NOT NULL DEFAULT 0
);
"""

_SCRAPE_SESSIONS_TABLE = """
CREATE TABLE IF NOT EXISTS scrape_sessions (
    id                TEXT PRIMARY KEY,
    trigger           TEXT NOT NULL,
    status            TEXT NOT NULL,
    started_at        TEXT NOT NULL,
    finished_at       TEXT,
    site_counts_json  TEXT NOT NULL DEFAULT '{}',
    error_count       INTEGER NOT NULL DEFAULT 0,
    users_processed   INTEGER NOT NULL DEFAULT 0,
    jobs_found        INTEGER NOT NULL DEFAULT 0,
    jobs_saved        INTEGER NOT NULL DEFAULT 0,
    jobs_skipped      INTEGER NOT NULL DEFAULT 0,
    reason            TEXT NOT NULL DEFAULT ''
);
"""

_OPERATOR_FLAGS_TABLE = """
CREATE TABLE IF NOT EXISTS operator_flags (
    name        TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    reason      TEXT NOT NULL DEFAULT '',
    updated_at  TEXT NOT NULL
);
"""


def init_db(path: str | Path) -> sqlite3.Connection:
    """Create the database and tables, returning a connection."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path))
    conn.row_factory = sqlite3.Row
    conn.execute("PRAGMA journal_mode=WAL")
    for ddl in (
        _JOB_RECORDS_TABLE,
        _JOB_RECORDS_INDEX,
        _USERS_TABLE,
        _USER_PREFERENCES_TABLE,
        _QUALITY_METRICS_TABLE,
        _SCRAPE_SESSIONS_TABLE,
        _OPERATOR_FLAGS_TABLE,
    ):
        conn.execute(ddl)
    conn.commit()
    return conn


# ---------------------------------------------------------------------------
# Job records
# ---------------------------------------------------------------------------


def create_record(conn: sqlite3.Connection, record: PersistableJobRecord) -> int:
    """Insert a job record and return its row id."""
    cur = conn.execute(
        """
        INSERT INTO job_records
            (title, company, location, pay, schedule, description, url, site,
             quality_score, tags_json, match_tier, is_active, user_id,
             session_id, created_at)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            record.title,
            record.company,
            record.location,
            record.pay,
            record.schedule,
            record.description,
            record.url,
            record.site,
            record.quality_score,
            json.dumps(sorted(record.tags)),
            record.match_tier.value,
            int(record.is_active),
            record.user_id,
            record.session_id,
            record.created_at.isoformat(),
        ),
    )
    conn.commit()
    return int(cur.lastrowid)


def list_records(
    conn: sqlite3.Connection,
    since: datetime | None = None,
    site: str | None = None,
    user_id: str | None = None,
    active_only: bool = True,
) -> list[PersistableJobRecord]:
    """Return stored records, newest first, optionally filtered."""
    clauses: list[str] = []
    params: list[object] = []
    if since is not None:
        clauses.append("created_at >= ?")
        params.append(since.isoformat())
    if site is not None:
        clauses.append("site = ?")
        params.append(site)
    if user_id is not None:
        clauses.append("user_id = ?")
        params.append(user_id)
    if active_only:
        clauses.append("is_active = 1")
    where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
    rows = conn.execute(
        f"SELECT * FROM job_records {where} ORDER BY created_at DESC, id DESC",
        params,
    ).fetchall()
    return [_row_to_record(row) for row in rows]


def count_records(conn: sqlite3.Connection) -> int:
    row = conn.execute("SELECT COUNT(*) AS n FROM job_records").fetchone()
    return int(row["n"])


def _row_to_record(row: sqlite3.Row) -> PersistableJobRecord:
    return PersistableJobRecord(
        title=row["title"],
        company=row["company"],
        location=row["location"],
        pay=row["pay"],
        schedule=row["schedule"],
        description=row["description"],
        url=row["url"],
        site=row["site"],
        quality_score=row["quality_score"],
        tags=frozenset(json.loads(row["tags_json"])),
        match_tier=MatchTier(row["match_tier"]),
        is_active=bool(row["is_active"]),
        user_id=row["user_id"],
        session_id=row["session_id"],
        created_at=datetime.fromisoformat(row["created_at"]),
    )


# ---------------------------------------------------------------------------
# Users and preferences
# ---------------------------------------------------------------------------


def upsert_user(
    conn: sqlite3.Connection,
    user_id: str,
    email: str = "",
    notifications_enabled: bool = True,
    preferences: UserPreferences | None = None,
) -> None:
    """Create or update a user and (optionally) their preferences."""
    now = datetime.now().isoformat()
    conn.execute(
        """
        INSERT INTO users (user_id, email, notifications_enabled, created_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (user_id) DO UPDATE SET
            email = excluded.email,
            notifications_enabled = excluded.notifications_enabled
        """,
        (user_id, email, int(notifications_enabled), now),
    )
    if preferences is not None:
        conn.execute(
            """
            INSERT INTO user_preferences (user_id, preferences_json, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT (user_id) DO UPDATE SET
                preferences_json = excluded.preferences_json,
                updated_at = excluded.updated_at
            """,
            (user_id, preferences.model_dump_json(), now),
        )
    conn.commit()


def get_user_preferences(conn: sqlite3.Connection, user_id: str) -> UserPreferences | None:
    row = conn.execute(
        "SELECT preferences_json FROM user_preferences WHERE user_id = ?",
        (user_id,),
    ).fetchone()
    if row is None:
        return None
    return UserPreferences.model_validate_json(row["preferences_json"])


def list_eligible_users(conn: sqlite3.Connection) -> list[EligibleUser]:
    """Users with notifications enabled and stored preferences."""
    rows = conn.execute(
        """
        SELECT u.user_id, u.email, p.preferences_json
        FROM users u
        JOIN user_preferences p ON p.user_id = u.user_id
        WHERE u.notifications_enabled = 1
        ORDER BY u.created_at, u.user_id
        """
    ).fetchall()
    return [
        EligibleUser(
            user_id=row["user_id"],
            email=row["email"],
            preferences=UserPreferences.model_validate_json(row["preferences_json"]),
        )
        for row in rows
    ]


# ---------------------------------------------------------------------------
# Quality metrics
# ---------------------------------------------------------------------------


def insert_quality_sample(conn: sqlite3.Connection, sample: QualityMetricSample) -> None:
    conn.execute(
        """
        INSERT INTO quality_metrics
            (session_id, site, timestamp, total_parsed, valid_jobs, invalid_jobs,
             quality_score, common_errors_json, parsing_method, processing_time_ms)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
            sample.session_id,
            sample.site,
            sample.timestamp.isoformat(),
            sample.total_parsed,
            sample.valid_jobs,
            sample.invalid_jobs,
            sample.quality_score,
            json.dumps(sample.common_errors),
            sample.parsing_method,
            sample.processing_time_ms,
        ),
    )
    conn.commit()


def list_quality_samples(
    conn: sqlite3.Connection,
    since: datetime | None = None,
) -> list[QualityMetricSample]:
    """Return samples (oldest first) no older than ``since``."""
    if since is None:
        rows = conn.execute("SELECT * FROM quality_metrics ORDER BY timestamp, id").fetchall()
    else:
        rows = conn.execute(
            "SELECT * FROM quality_metrics WHERE timestamp >= ? ORDER BY timestamp, id",
            (since.isoformat(),),
        ).fetchall()
    return [
        QualityMetricSample(
            session_id=row["session_id"],
            site=row["site"],
            timestamp=datetime.fromisoformat(row["timestamp"]),
            total_parsed=row["total_parsed"],
            valid_jobs=row["valid_jobs"],
            invalid_jobs=row["invalid_jobs"],
            quality_score=row["quality_score"],
            common_errors=json.loads(row["common_errors_json"]),
            parsing_method=row["parsing_method"],
            processing_time_ms=row["processing_time_ms"],
        )
        for row in rows
    ]


def delete_quality_samples(conn: sqlite3.Connection, before: datetime) -> int:
    """Delete samples older than ``before``. Returns the number removed."""
    cur = conn.execute(
        "DELETE FROM quality_metrics WHERE timestamp < ?",
        (before.isoformat(),),
    )
    conn.commit()
    return cur.rowcount


# ---------------------------------------------------------------------------
# Scrape sessions
# ---------------------------------------------------------------------------


def save_session(conn: sqlite3.Connection, session: ScrapeSession) -> None:
    """Insert or update a session row keyed by its id."""
    conn.execute(
        """
        INSERT INTO scrape_sessions
            (id, trigger, status, started_at, finished_at, site_counts_json,
             error_count, users_processed, jobs_found, jobs_saved, jobs_skipped,
             reason)
        VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        ON CONFLICT (id) DO UPDATE SET
            status = excluded.status,
            finished_at = excluded.finished_at,
            site_counts_json = excluded.site_counts_json,
            error_count = excluded.error_count,
            users_processed = excluded.users_processed,
            jobs_found = excluded.jobs_found,
            jobs_saved = excluded.jobs_saved,
            jobs_skipped = excluded.jobs_skipped,
            reason = excluded.reason
        """,
        (
            session.id,
            session.trigger,
            session.status.value,
            session.started_at.isoformat(),
            session.finished_at.isoformat() if session.finished_at else None,
            json.dumps(session.site_counts),
            session.error_count,
            session.users_processed,
            session.jobs_found,
            session.jobs_saved,
            session.jobs_skipped,
            session.reason,
        ),
    )
    conn.commit()


def list_sessions(conn: sqlite3.Connection, limit: int = 20) -> list[ScrapeSession]:
    """Most recent sessions first."""
    rows = conn.execute(
        "SELECT * FROM scrape_sessions ORDER BY started_at DESC LIMIT ?",
        (limit,),
    ).fetchall()
    return [
        ScrapeSession(
            id=row["id"],
            trigger=row["trigger"],
            status=SessionStatus(row["status"]),
            started_at=datetime.fromisoformat(row["started_at"]),
            finished_at=(
                datetime.fromisoformat(row["finished_at"]) if row["finished_at"] else None
            ),
            site_counts=json.loads(row["site_counts_json"]),
            error_count=row["error_count"],
            users_processed=row["users_processed"],
            jobs_found=row["jobs_found"],
            jobs_saved=row["jobs_saved"],
            jobs_skipped=row["jobs_skipped"],
            reason=row["reason"],
        )
        for row in rows
    ]


def last_completed_at(
    conn: sqlite3.Connection,
    trigger: str | None = None,
) -> datetime | None:
    """Finish time of the most recent completed session (optionally per trigger)."""
    sql = "SELECT MAX(finished_at) AS t FROM scrape_sessions WHERE status = ?"
    params: list[object] = [SessionStatus.COMPLETED.value]
    if trigger is not None:
        sql += " AND trigger = ?"
        params.append(trigger)
    row = conn.execute(sql, params).fetchone()
    if row is None or row["t"] is None:
        return None
    return datetime.fromisoformat(row["t"])


# ---------------------------------------------------------------------------
# Operator flags
# ---------------------------------------------------------------------------


def get_flag(conn: sqlite3.Connection, name: str) -> str | None:
    row = conn.execute("SELECT value FROM operator_flags WHERE name = ?", (name,)).fetchone()
    return None if row is None else row["value"]


def set_flag(conn: sqlite3.Connection, name: str, value: str, reason: str = "") -> None:
    conn.execute(
        """
        INSERT INTO operator_flags (name, value, reason, updated_at)
        VALUES (?, ?, ?, ?)
        ON CONFLICT (name) DO UPDATE SET
            value = excluded.value,
            reason = excluded.reason,
            updated_at = excluded.updated_at
        """,
        (name, value, reason, datetime.now().isoformat()),
    )
    conn.commit()


def list_flags(conn: sqlite3.Connection) -> dict[str, str]:
    rows = conn.execute("SELECT name, value FROM operator_flags ORDER BY name").fetchall()
    return {row["name"]: row["value"] for row in rows}


# ---------------------------------------------------------------------------
# Persistence collaborator
# ---------------------------------------------------------------------------


class RecordStore(Protocol):
    """What the orchestrator needs from storage."""

    def create_record(self, record: PersistableJobRecord) -> int: ...
    def list_records(self, since: datetime | None = None) -> list[PersistableJobRecord]: ...
    def get_user_preferences(self, user_id: str) -> UserPreferences | None: ...
    def list_eligible_users(self) -> list[EligibleUser]: ...


class SqliteStore:
    """RecordStore backed by the module-level sqlite functions."""

    def __init__(self, conn: sqlite3.Connection) -> None:
        self._conn = conn

    @property
    def conn(self) -> sqlite3.Connection:
        return self._conn

    def create_record(self, record: PersistableJobRecord) -> int:
        return create_record(self._conn, record)

    def list_records(self, since: datetime | None = None) -> list[PersistableJobRecord]:
        return list_records(self._conn, since=since)

    def get_user_preferences(self, user_id: str) -> UserPreferences | None:
        return get_user_preferences(self._conn, user_id)

    def list_eligible_users(self) -> list[EligibleUser]:
        return list_eligible_users(self._conn)
