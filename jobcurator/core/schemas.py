"""Core data models for the curation pipeline."""

import uuid
from datetime import datetime
from enum import Enum

from pydantic import BaseModel, ConfigDict, Field, model_validator

from jobcurator.core.errors import SessionStateError


class MatchTier(str, Enum):
    GREAT = "great"
    GOOD = "good"
    POTENTIAL = "potential"


class SessionStatus(str, Enum):
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"
    TIMEOUT = "timeout"
    SKIPPED = "skipped"

    @property
    def is_terminal(self) -> bool:
        return self is not SessionStatus.RUNNING


class CandidateFragment(BaseModel):
    """Partial, unvalidated record straight out of extraction.

    Every field is optional; the sanitizer decides what is usable.
    """

    title: str | None = None
    company: str | None = None
    location: str | None = None
    pay: str | None = None
    schedule: str | None = None
    description: str | None = None
    url: str | None = None
    date_posted: str | None = None

    def is_empty(self) -> bool:
        return not any(
            (self.title, self.company, self.location, self.pay, self.schedule, self.description)
        )


class SanitizedRecord(BaseModel):
    """A cleaned fragment with its validation outcome and quality score.

    Frozen. ``is_valid`` implies no validation errors, a score of at
    least 70 and non-empty required fields.
    """

    model_config = ConfigDict(frozen=True)

    title: str = ""
    company: str = ""
    location: str = ""
    pay: str = ""
    schedule: str = ""
    description: str = ""
    url: str = ""
    date_posted: str = ""
    site: str = ""
    quality_score: int = Field(default=0, ge=0, le=100)
    is_valid: bool = False
    validation_errors: tuple[str, ...] = ()
    warnings: tuple[str, ...] = ()
    suspicious: tuple[str, ...] = ()

    @model_validator(mode="after")
    def valid_records_are_complete(self) -> "SanitizedRecord":
        if self.is_valid and (
            self.validation_errors
            or self.quality_score < 70
            or not (self.title and self.company and self.location)
        ):
            msg = "a valid record needs no errors, score >= 70 and title/company/location"
            raise ValueError(msg)
        return self


class PersistableJobRecord(BaseModel):
    """The subset of a SanitizedRecord handed to storage, plus derived fields."""

    model_config = ConfigDict(frozen=True)

    title: str
    company: str
    location: str
    pay: str = ""
    schedule: str = ""
    description: str = ""
    url: str = ""
    site: str = ""
    quality_score: int = Field(default=0, ge=0, le=100)
    tags: frozenset[str] = Field(default_factory=frozenset)
    match_tier: MatchTier = MatchTier.POTENTIAL
    is_active: bool = True
    user_id: str | None = None
    session_id: str | None = None
    time_ago: str = "Today"
    created_at: datetime = Field(default_factory=datetime.now)


class UserPreferences(BaseModel):
    """Stored search preferences for one user."""

    job_types: list[str] = Field(default_factory=list)
    locations: list[str] = Field(default_factory=list)  # remote | closetohome | anywhere
    schedule_preference: str = ""  # daily means full-time; anything else part-time
    city: str = ""
    state: str = ""
    keywords: list[str] = Field(default_factory=list)


class EligibleUser(BaseModel):
    """A user with notifications enabled and stored preferences."""

    user_id: str
    email: str = ""
    preferences: UserPreferences


class SearchQuery(BaseModel):
    """One site-independent search derived from a user's preferences."""

    model_config = ConfigDict(frozen=True)

    keywords: str
    location: str = ""
    remote: bool = False
    part_time: bool = False


class FetchResult(BaseModel):
    """Output of the content-fetch collaborator. Both fields may be absent."""

    html: str | None = None
    markdown: str | None = None

    @property
    def is_empty(self) -> bool:
        return not (self.html and self.html.strip()) and not (
            self.markdown and self.markdown.strip()
        )


class QualityMetricSample(BaseModel):
    """One append-only quality measurement for a (session, site) pair."""

    session_id: str
    site: str
    timestamp: datetime = Field(default_factory=datetime.now)
    total_parsed: int = Field(ge=0)
    valid_jobs: int = Field(ge=0)
    invalid_jobs: int = Field(ge=0)
    quality_score: float = Field(ge=0.0, le=100.0)
    common_errors: list[tuple[str, int]] = Field(default_factory=list)
    parsing_method: str = "html"
    processing_time_ms: float = 0.0


class ScrapeSession(BaseModel):
    """One end-to-end run from trigger to terminal state.

    Mutable while running; ``finish`` may be called exactly once.
    """

    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    trigger: str = "scheduled"
    started_at: datetime = Field(default_factory=datetime.now)
    finished_at: datetime | None = None
    status: SessionStatus = SessionStatus.RUNNING
    site_counts: dict[str, int] = Field(default_factory=dict)
    error_count: int = 0
    users_processed: int = 0
    jobs_found: int = 0
    jobs_saved: int = 0
    jobs_skipped: int = 0
    jobs_invalid: int = 0
    jobs_duplicate: int = 0
    reason: str = ""

    def record_site(self, site: str, count: int) -> None:
        self._require_running()
        self.site_counts[site] = self.site_counts.get(site, 0) + count

    def finish(self, status: SessionStatus, reason: str = "") -> None:
        """Move to a terminal state. Raises if already terminal."""
        self._require_running()
        if not status.is_terminal:
            msg = "cannot finish a session into the running state"
            raise SessionStateError(msg)
        self.status = status
        self.reason = reason
        self.finished_at = datetime.now()

    @property
    def duration_seconds(self) -> float | None:
        if self.finished_at is None:
            return None
        return (self.finished_at - self.started_at).total_seconds()

    def _require_running(self) -> None:
        if self.status.is_terminal:
            msg = f"session {self.id} is already {self.status.value}"
            raise SessionStateError(msg)
