"""Build site-independent search queries from a user's stored preferences."""

import logging

from jobcurator.core.schemas import SearchQuery, UserPreferences

logger = logging.getLogger(__name__)

FALLBACK_KEYWORDS = "part time"

JOB_TYPE_SEARCH_TERMS: dict[str, tuple[str, ...]] = {
    "hands-on": ("maintenance", "repair", "construction", "crafts"),
    "outdoor": ("gardening", "landscaping", "outdoor", "nature"),
    "creative": ("arts", "crafts", "design", "creative"),
    "helping": ("customer service", "support", "assistance", "tutor"),
    "social": ("community", "events", "social work", "volunteer"),
    "quiet": ("data entry", "reading", "library", "bookkeeping"),
    "tech": ("computer", "technology", "IT", "software"),
    "professional": ("office", "administrative", "professional", "management"),
}


def location_query(prefs: UserPreferences) -> str:
    """Return "City, ST" for close-to-home users, "remote" for remote, else an empty string."""
    if "closetohome" in prefs.locations and prefs.city and prefs.state:
        return f"{prefs.city.strip()}, {prefs.state.strip()}"
    if "remote" in prefs.locations:
        return "remote"
    return ""


def build_queries(prefs: UserPreferences, limit: int | None = None) -> list[SearchQuery]:
    """One query per search term, in preference order, deduplicated.

    Explicit keywords come first, then the search terms of each preferred
    job type. With nothing to search for, a single "part time" query is used.
    """
    location = location_query(prefs)
    remote = "remote" in prefs.locations
    part_time = prefs.schedule_preference != "daily"

    terms: list[str] = [k.strip() for k in prefs.keywords if k.strip()]
    for job_type in prefs.job_types:
        terms.extend(JOB_TYPE_SEARCH_TERMS.get(job_type, (job_type,)))

    seen: set[str] = set()
    queries: list[SearchQuery] = []
    for term in terms:
        key = term.lower()
        if key in seen:
            continue
        seen.add(key)
        queries.append(
            SearchQuery(keywords=term, location=location, remote=remote, part_time=part_time),
        )

    if not queries:
        queries.append(
            SearchQuery(
                keywords=FALLBACK_KEYWORDS, location=location, remote=False, part_time=True,
            ),
        )

    if limit is not None and len(queries) > limit:
        logger.debug("Capping %d queries at %d", len(queries), limit)
        queries = queries[:limit]
    return queries
