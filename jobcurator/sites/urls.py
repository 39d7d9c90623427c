"""Search URL builders, one per known site.

Pure functions. Empty keywords or locations are omitted from the query.
"""

from urllib.parse import quote_plus, urlencode

from jobcurator.core.schemas import SearchQuery

INDEED_BASE = "https://www.indeed.com/jobs"
AARP_BASE = "https://jobs.aarp.org/jobs/search"
USAJOBS_BASE = "https://www.usajobs.gov/Search/Results"

# Indeed's attribute id for "remote" listings.
INDEED_REMOTE_ID = "032b3046-06a3-4876-8dfd-474eb5e7ed11"


def build_indeed_url(query: SearchQuery) -> str:
    params: dict[str, str] = {}
    if query.keywords:
        params["q"] = query.keywords
    if query.location and not query.remote:
        params["l"] = query.location
    if query.remote:
        params["remotejob"] = INDEED_REMOTE_ID
    if query.part_time:
        params["jt"] = "parttime"
    return _join(INDEED_BASE, params)


def build_aarp_url(query: SearchQuery) -> str:
    params: dict[str, str] = {}
    if query.keywords:
        params["keywords"] = query.keywords
    if query.location:
        params["location"] = query.location
    params["age-friendly"] = "true"
    return _join(AARP_BASE, params)


def build_usajobs_url(query: SearchQuery) -> str:
    params: dict[str, str] = {}
    if query.keywords:
        params["k"] = query.keywords
    if query.location:
        params["l"] = query.location
    params["p"] = "1"
    return _join(USAJOBS_BASE, params)


def build_template_url(template: str, query: SearchQuery) -> str:
    """Fill a ``{keywords}``/``{location}`` template with URL-encoded values."""
    return template.format(
        keywords=quote_plus(query.keywords),
        location=quote_plus(query.location),
    )


def _join(base: str, params: dict[str, str]) -> str:
    if not params:
        return base
    return f"{base}?{urlencode(params, quote_via=quote_plus)}"
