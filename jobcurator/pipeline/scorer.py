"""Tagging and match-tier scoring for sanitized records.

Tags come from keyword hits over title + description + schedule. The
match tier weighs a record against one user's stored preferences:
job types 40, location 30, schedule 30, then buckets the percentage
(>= 75 great, >= 50 good, else potential).
"""

import logging
import re
from datetime import datetime

from jobcurator.core.schemas import (
    MatchTier,
    PersistableJobRecord,
    SanitizedRecord,
    UserPreferences,
)

logger = logging.getLogger(__name__)

FALLBACK_TAG = "general"

TAG_KEYWORDS: dict[str, tuple[str, ...]] = {
    "outdoor": ("outdoor", "outside", "garden", "landscaping", "nature", "park", "environmental"),
    "hands-on": ("hands-on", "manual", "craft", "build", "repair", "maintenance", "construction"),
    "creative": ("creative", "art", "arts", "design", "writing", "artistic", "craft"),
    "helping": (
        "help", "helping", "assist", "support", "care", "caregiver", "service", "volunteer",
        "tutor",
    ),
    "social": ("social", "community", "team", "people", "group", "events"),
    "quiet": ("quiet", "independent", "solo", "data entry", "library", "research", "bookkeeping"),
    "tech": (
        "computer", "technology", "software", "digital", "technical", "information technology",
    ),
    "professional": ("professional", "office", "business", "corporate", "admin", "administrative"),
}

# Keywords this short match as whole words only ("art" must not match "part-time").
_EXACT_MAX_LEN = 4

_REMOTE_RE = re.compile(r"\b(remote|work from home|wfh|telecommut\w*)\b", re.IGNORECASE)
_PART_TIME_RE = re.compile(r"\bpart[- ]?time\b", re.IGNORECASE)
_FULL_TIME_RE = re.compile(r"\bfull[- ]?time\b", re.IGNORECASE)
_FLEXIBLE_RE = re.compile(r"\bflexib\w*", re.IGNORECASE)


def _keyword_pattern(keywords: tuple[str, ...]) -> re.Pattern[str]:
    parts = []
    for kw in keywords:
        escaped = re.escape(kw)
        parts.append(rf"\b{escaped}s?\b" if len(kw) <= _EXACT_MAX_LEN else rf"\b{escaped}\w*")
    return re.compile("|".join(parts), re.IGNORECASE)


_TAG_PATTERNS: dict[str, re.Pattern[str]] = {
    tag: _keyword_pattern(keywords) for tag, keywords in TAG_KEYWORDS.items()
}


def generate_tags(record: SanitizedRecord | PersistableJobRecord) -> frozenset[str]:
    """Map keyword hits to the tag vocabulary. Always returns at least one tag."""
    text = f"{record.title} {record.description} {record.schedule}"
    tags = {tag for tag, pattern in _TAG_PATTERNS.items() if pattern.search(text)}
    if record.location == "Remote" or _REMOTE_RE.search(text):
        tags.add("remote")
    if _PART_TIME_RE.search(f"{record.title} {record.schedule}"):
        tags.add("part-time")
    if not tags:
        tags.add(FALLBACK_TAG)
    return frozenset(tags)


def job_type_hits(record: SanitizedRecord, job_types: list[str]) -> int:
    """How many of the preferred job types the record's text matches."""
    text = f"{record.title} {record.description}"
    hits = 0
    for job_type in job_types:
        pattern = _TAG_PATTERNS.get(job_type) or _keyword_pattern((job_type,))
        if pattern.search(text):
            hits += 1
    return hits


def match_percentage(record: SanitizedRecord, prefs: UserPreferences) -> float | None:
    """Weighted preference alignment in [0, 100], or None with no preferences."""
    score = 0.0
    max_score = 0.0

    if prefs.job_types:
        max_score += 40
        score += 40 * job_type_hits(record, prefs.job_types) / len(prefs.job_types)

    if prefs.locations:
        max_score += 30
        location = record.location.lower()
        city = prefs.city.strip().lower()
        if "remote" in prefs.locations and "remote" in location:
            score += 30
        elif "closetohome" in prefs.locations and (
            (city and city in location) or "local" in location or "nearby" in location
        ):
            score += 30
        elif "anywhere" in prefs.locations:
            score += 15

    if prefs.schedule_preference:
        max_score += 30
        schedule = f"{record.schedule} {record.title}"
        if prefs.schedule_preference == "daily":
            if _FULL_TIME_RE.search(schedule):
                score += 30
        elif _PART_TIME_RE.search(schedule) or _FLEXIBLE_RE.search(schedule):
            score += 30

    if max_score == 0:
        return None
    return score / max_score * 100


def match_tier(record: SanitizedRecord, prefs: UserPreferences) -> MatchTier:
    percentage = match_percentage(record, prefs)
    if percentage is None:
        return MatchTier.POTENTIAL
    if percentage >= 75:
        return MatchTier.GREAT
    if percentage >= 50:
        return MatchTier.GOOD
    return MatchTier.POTENTIAL


def time_ago(posted: str | datetime | None, now: datetime | None = None) -> str:
    """Human-readable age of a listing. Unparseable dates read as "Recently posted"."""
    if not posted:
        return "Recently posted"
    now = now or datetime.now()
    if isinstance(posted, str):
        try:
            posted = datetime.fromisoformat(posted.strip())
        except ValueError:
            return "Recently posted"
    if posted.tzinfo is not None and now.tzinfo is None:
        posted = posted.replace(tzinfo=None)

    days = (now - posted).days
    if days <= 0:
        return "Today"
    if days == 1:
        return "1 day ago"
    if days < 7:
        return f"{days} days ago"
    if days < 30:
        weeks = days // 7
        return "1 week ago" if weeks == 1 else f"{weeks} weeks ago"
    months = days // 30
    return "1 month ago" if months == 1 else f"{months} months ago"


def to_persistable(
    record: SanitizedRecord,
    prefs: UserPreferences,
    *,
    user_id: str | None = None,
    session_id: str | None = None,
    now: datetime | None = None,
) -> PersistableJobRecord:
    """Enrich a valid record with tags, tier and age for storage."""
    now = now or datetime.now()
    return PersistableJobRecord(
        title=record.title,
        company=record.company,
        location=record.location,
        pay=record.pay,
        schedule=record.schedule,
        description=record.description,
        url=record.url,
        site=record.site,
        quality_score=record.quality_score,
        tags=generate_tags(record),
        match_tier=match_tier(record, prefs),
        user_id=user_id,
        session_id=session_id,
        time_ago=time_ago(record.date_posted or now, now),
        created_at=now,
    )
