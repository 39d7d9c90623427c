"""Sanitizer/validator: clean a CandidateFragment and score its quality.

Cleaning is per field: DOM-aware tag stripping (BeautifulSoup), markdown
removal, entity and typography normalisation, whitespace collapse and
length caps. Validation is a set of independent field rules plus a
suspicious-content scan. The quality score starts at 100 and loses
points per error and per weak field.
"""

import html
import logging
import re
from collections import Counter

from bs4 import BeautifulSoup
from pydantic import BaseModel

from jobcurator.core.schemas import CandidateFragment, SanitizedRecord

logger = logging.getLogger(__name__)

MAX_RAW_CHARS = 20_000
MAX_LINE_CHARS = 1_000
MAX_DESCRIPTION_CHARS = 2_000
VALID_SCORE = 70

TITLE_LENGTH = (3, 200)
COMPANY_LENGTH = (2, 150)
LOCATION_LENGTH = (2, 100)

# Search UI, consent banners, session and error pages.
SUSPICIOUS_KEYWORDS: tuple[str, ...] = (
    "saved search",
    "search for",
    "refine your search",
    "please refine",
    "resumes limited",
    "search features",
    "sign in",
    "create alert",
    "no results",
    "try different",
    "search suggestions",
    "sponsored",
    "advertisement",
    "accept cookies",
    "enable cookies",
    "privacy policy",
    "terms of use",
    "terms of service",
    "loading results",
    "please wait",
    "error occurred",
    "page not found",
    "404",
    "javascript required",
    "session expired",
    "maintenance mode",
    "temporarily unavailable",
)

# Listing-page chrome.
UI_KEYWORDS: tuple[str, ...] = (
    "sort by",
    "view all",
    "show more",
    "load more",
    "pagination",
    "breadcrumb",
    "sponsored content",
)

_SUSPICIOUS_RE = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in SUSPICIOUS_KEYWORDS) + r")\b",
    re.IGNORECASE,
)
_UI_RE = re.compile(
    r"\b(" + "|".join(re.escape(k) for k in UI_KEYWORDS) + r")\b",
    re.IGNORECASE,
)

_TITLE_INVALID: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[\s\-_.]*$"),
    re.compile(r"^(page|error|loading|please)\b", re.IGNORECASE),
    re.compile(r"^https?://", re.IGNORECASE),
    re.compile(r"^www\.", re.IGNORECASE),
    re.compile(r"^[0-9]+$"),
)
_COMPANY_INVALID: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[\s\-_.]*$"),
    re.compile(r"^(unknown|n/a|na|null|undefined|error)\b", re.IGNORECASE),
    re.compile(r"^https?://", re.IGNORECASE),
    re.compile(r"^www\.", re.IGNORECASE),
)
_LOCATION_VALID: tuple[re.Pattern[str], ...] = (
    re.compile(r"^[a-z\s,.\-']+,\s*[a-z]{2,}$", re.IGNORECASE),
    re.compile(r"^remote$", re.IGNORECASE),
    re.compile(r"^[a-z\s\-']+$", re.IGNORECASE),
)

_MARKDOWN_RULES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"!\[[^\]]*\]\([^)]*\)"), ""),
    (re.compile(r"\[([^\]]+)\]\([^)]*\)"), r"\1"),
    (re.compile(r"^\s{0,3}#{1,6}\s+", re.MULTILINE), ""),
    (re.compile(r"\*\*([^*]+)\*\*"), r"\1"),
    (re.compile(r"__([^_]+)__"), r"\1"),
    (re.compile(r"\*([^*\n]+)\*"), r"\1"),
    (re.compile(r"~~([^~]+)~~"), r"\1"),
    (re.compile(r"`([^`]+)`"), r"\1"),
    (re.compile(r"^\s*[-*+]\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*\d+\.\s+", re.MULTILINE), ""),
    (re.compile(r"^\s*>\s?", re.MULTILINE), ""),
)

_TYPOGRAPHY = str.maketrans({
    "\u00a0": " ",
    "\u2013": "-",
    "\u2014": "-",
    "\u2018": "'",
    "\u2019": "'",
    "\u201c": '"',
    "\u201d": '"',
    "\u2026": "...",
    "\u200b": "",
})

_URL_RE = re.compile(r"(https?://|www\.)\S+", re.IGNORECASE)
_BARE_URL_RE = re.compile(r"^(https?://|www\.)\S+$", re.IGNORECASE)
_EDGE_PUNCT_RE = re.compile(r"^[^\w\s(]+|[^\w\s).]+$")
_COMPANY_PREFIX_RE = re.compile(r"^(company|employer|hiring|posted by)\s*:\s*", re.IGNORECASE)
_COMPANY_SUFFIX_RE = re.compile(r"\s*(-\s*job posting|careers|jobs)$", re.IGNORECASE)
_REMOTE_RE = re.compile(r"\b(remote|work from home|wfh|telecommut\w*)\b", re.IGNORECASE)


class BatchStats(BaseModel):
    """Summary of one sanitized batch."""

    total: int
    valid: int
    invalid: int
    average_quality: float
    common_issues: list[tuple[str, int]]


# ---------------------------------------------------------------------------
# Cleaning
# ---------------------------------------------------------------------------


def strip_html(text: str, keep_structure: bool = False) -> str:
    """Drop tags (and script/style content) while keeping visible text."""
    if "<" not in text or ">" not in text:
        return text
    soup = BeautifulSoup(text, "html.parser")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    if keep_structure:
        for br in soup.find_all("br"):
            br.replace_with("\n")
        return soup.get_text("\n")
    return soup.get_text(" ")


def strip_markdown(text: str) -> str:
    for pattern, repl in _MARKDOWN_RULES:
        text = pattern.sub(repl, text)
    return text


def fix_encoding(text: str) -> str:
    """Decode HTML entities and map typographic punctuation to ASCII."""
    return html.unescape(text).translate(_TYPOGRAPHY)


def collapse_whitespace(text: str, keep_paragraphs: bool = False) -> str:
    if not keep_paragraphs:
        return " ".join(text.split())
    lines = [" ".join(line.split())[:MAX_LINE_CHARS] for line in text.splitlines()]
    joined = "\n".join(lines)
    return re.sub(r"\n{3,}", "\n\n", joined).strip()


def clean_text(value: str | None, keep_paragraphs: bool = False) -> str:
    """Shared cleaning steps for every field."""
    if not value:
        return ""
    text = value[:MAX_RAW_CHARS]
    text = fix_encoding(strip_html(text, keep_structure=keep_paragraphs))
    text = strip_markdown(text)
    return collapse_whitespace(text, keep_paragraphs=keep_paragraphs)[:MAX_RAW_CHARS]


def clean_title(value: str | None) -> str:
    text = clean_text(value)
    if not _BARE_URL_RE.match(text):
        text = _URL_RE.sub("", text)
    text = _EDGE_PUNCT_RE.sub("", text.strip())
    return collapse_whitespace(text)[:MAX_LINE_CHARS]


def clean_company(value: str | None) -> str:
    text = clean_text(value)
    text = _COMPANY_PREFIX_RE.sub("", text)
    text = _COMPANY_SUFFIX_RE.sub("", text)
    return text.strip(" -|,")[:MAX_LINE_CHARS]


def clean_location(value: str | None) -> str:
    text = clean_text(value)
    if _REMOTE_RE.search(text):
        return "Remote"
    return text.strip(" -|")[:MAX_LINE_CHARS]


def clean_description(value: str | None) -> str:
    text = clean_text(value, keep_paragraphs=True)
    text = _URL_RE.sub("", text).strip()
    if len(text) > MAX_DESCRIPTION_CHARS:
        text = text[:MAX_DESCRIPTION_CHARS].rstrip() + "..."
    return text


def clean_short(value: str | None) -> str:
    """Pay and schedule: one line, no markup."""
    return clean_text(value)[:MAX_LINE_CHARS]


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def validate_title(title: str) -> list[str]:
    errors = _check_length("Title", title, TITLE_LENGTH)
    if title and any(p.search(title) for p in _TITLE_INVALID):
        errors.append("Title contains invalid pattern")
    return errors


def validate_company(company: str) -> list[str]:
    errors = _check_length("Company name", company, COMPANY_LENGTH)
    if company and any(p.search(company) for p in _COMPANY_INVALID):
        errors.append("Company name contains invalid pattern")
    return errors


def validate_location(location: str) -> tuple[list[str], list[str]]:
    """Return (errors, warnings). An unrecognised shape is only a warning."""
    errors = _check_length("Location", location, LOCATION_LENGTH)
    warnings: list[str] = []
    if location and not any(p.match(location) for p in _LOCATION_VALID):
        warnings.append("Location format not recognized")
    return errors, warnings


def find_suspicious(*parts: str) -> list[str]:
    """Return one reason per distinct suspicious or UI keyword found."""
    content = " ".join(p for p in parts if p)
    reasons: list[str] = []
    seen: set[str] = set()
    for regex, label in ((_SUSPICIOUS_RE, "suspicious keyword"), (_UI_RE, "UI element")):
        for match in regex.finditer(content):
            keyword = match.group(1).lower()
            if keyword not in seen:
                seen.add(keyword)
                reasons.append(f'Contains {label}: "{keyword}"')
    return reasons


def is_suspicious_line(line: str) -> bool:
    return bool(_SUSPICIOUS_RE.search(line) or _UI_RE.search(line))


def _check_length(label: str, value: str, bounds: tuple[int, int]) -> list[str]:
    low, high = bounds
    if not value:
        return [f"{label} is missing"]
    if len(value) < low:
        return [f"{label} too short"]
    if len(value) > high:
        return [f"{label} too long"]
    return []


# ---------------------------------------------------------------------------
# Scoring
# ---------------------------------------------------------------------------


def compute_quality_score(
    error_count: int,
    *,
    title: str,
    company: str,
    location: str,
    description: str,
    pay: str = "",
    schedule: str = "",
) -> int:
    """Quality score in [0, 100].

    -20 per validation error; -20 for a title under 5 chars, -20 for a
    missing company, -10 each for a missing location or a description
    under 20 chars; +5 each for pay and schedule.
    """
    score = 100 - 20 * error_count
    if len(title) < 5:
        score -= 20
    if len(company) < COMPANY_LENGTH[0]:
        score -= 20
    if len(location) < LOCATION_LENGTH[0]:
        score -= 10
    if len(description) < 20:
        score -= 10
    if len(pay) > 2:
        score += 5
    if len(schedule) > 2:
        score += 5
    return max(0, min(100, score))


# ---------------------------------------------------------------------------
# Entry points
# ---------------------------------------------------------------------------


def sanitize(fragment: CandidateFragment, site: str = "") -> SanitizedRecord:
    """Clean, validate and score one fragment. Never raises."""
    try:
        return _sanitize(fragment, site)
    except Exception:
        logger.warning("Sanitization failed for fragment from %s", site or "?", exc_info=True)
        return SanitizedRecord(
            site=site,
            validation_errors=("Sanitization failed due to error",),
        )


def sanitize_batch(fragments: list[CandidateFragment], site: str = "") -> list[SanitizedRecord]:
    return [sanitize(f, site) for f in fragments]


def batch_stats(records: list[SanitizedRecord]) -> BatchStats:
    """Totals, average quality and the ten most frequent issues."""
    total = len(records)
    valid = sum(1 for r in records if r.is_valid)
    average = sum(r.quality_score for r in records) / total if total else 0.0
    issues: Counter[str] = Counter()
    for r in records:
        issues.update(r.validation_errors)
        issues.update(r.warnings)
    return BatchStats(
        total=total,
        valid=valid,
        invalid=total - valid,
        average_quality=round(average, 1),
        common_issues=issues.most_common(10),
    )


def _sanitize(fragment: CandidateFragment, site: str) -> SanitizedRecord:
    title = clean_title(fragment.title)
    company = clean_company(fragment.company)
    location = clean_location(fragment.location)
    description = clean_description(fragment.description)
    pay = clean_short(fragment.pay)
    schedule = clean_short(fragment.schedule)

    errors = validate_title(title) + validate_company(company)
    location_errors, warnings = validate_location(location)
    errors += location_errors

    suspicious = find_suspicious(title, company, description)
    if suspicious:
        errors.append(f"Contains suspicious content: {', '.join(suspicious)}")
        warnings.extend(suspicious)
        logger.debug("Suspicious content in '%s': %s", title[:60], suspicious)

    score = compute_quality_score(
        len(errors),
        title=title,
        company=company,
        location=location,
        description=description,
        pay=pay,
        schedule=schedule,
    )

    return SanitizedRecord(
        title=title,
        company=company,
        location=location,
        pay=pay,
        schedule=schedule,
        description=description,
        url=(fragment.url or "").strip(),
        date_posted=clean_short(fragment.date_posted),
        site=site,
        quality_score=score,
        is_valid=not errors and score >= VALID_SCORE,
        validation_errors=tuple(errors),
        warnings=tuple(warnings),
        suspicious=tuple(suspicious),
    )
