"""Extractor: raw HTML (preferred) or markdown (fallback) -> CandidateFragments.

Never raises on malformed input. The worst case is an empty list.
"""

import logging
import re
from urllib.parse import urljoin

from bs4 import BeautifulSoup, Tag
from pydantic import BaseModel, Field

from jobcurator.core.schemas import CandidateFragment, FetchResult
from jobcurator.pipeline.sanitizer import is_suspicious_line, strip_markdown
from jobcurator.sites.base import SiteSelectors

logger = logging.getLogger(__name__)

MAX_HTML_CHARS = 2_000_000
MAX_MARKDOWN_LINES = 5_000
MAX_LINE_CHARS = 1_000
MAX_DESCRIPTION_CHARS = 2_000

TITLE_MIN, TITLE_MAX = 5, 100

ROLE_NOUNS = (
    "manager", "coordinator", "specialist", "analyst", "developer", "engineer",
    "assistant", "representative", "technician", "associate", "clerk", "cashier",
    "driver", "tutor", "teacher", "aide", "nurse", "caregiver", "receptionist",
    "administrator", "advisor", "consultant", "instructor", "attendant",
    "supervisor", "worker", "helper", "greeter", "bookkeeper", "librarian",
)

_ROLE_RE = re.compile(r"\b(" + "|".join(ROLE_NOUNS) + r")s?\b", re.IGNORECASE)
_SENIORITY_RE = re.compile(
    r"\b(senior|junior|lead|principal|associate|executive|entry[- ]level)\s+\w+",
    re.IGNORECASE,
)
_SCHEDULE_WORD_RE = re.compile(
    r"\b(part[- ]?time|full[- ]?time|remote|work from home)\b",
    re.IGNORECASE,
)

_HEADING_RE = re.compile(r"^#{1,6}\s+(.+?)\s*#*$")
_BOLD_RE = re.compile(r"^(\*\*|__)(.+?)\1$")
_LINK_RE = re.compile(r"\[([^\]]+)\]\(([^)\s]+)[^)]*\)")

_PAY_RE = re.compile(
    r"\$\s?\d|\b\d[\d,.]*\s*(k|/\s?(hr|hour|yr|year))\b|\b(per|an|a)\s+(hour|year)\b"
    r"|\bhourly\b|\bsalary\b|\bannual(ly)?\b|\bwage\b",
    re.IGNORECASE,
)
_LOCATION_RE = re.compile(
    r"^([A-Za-z][A-Za-z .'\-]*,\s*[A-Za-z]{2,}(\s+\d{5})?|remote|hybrid)$",
    re.IGNORECASE,
)
_SCHEDULE_RE = re.compile(
    r"\b(part[- ]?time|full[- ]?time|contract|temporary|seasonal|per diem|"
    r"weekends?|evenings?|flexible (hours|schedule)|\d+\s*(hours|hrs)\s*(/|per)\s*week)\b",
    re.IGNORECASE,
)
_BADGE_PREFIX_RE = re.compile(r"^(new|posted|updated|urgent|featured)\s*:\s*", re.IGNORECASE)
_LIST_MARKER_RE = re.compile(r"^\s*([-*+]|\d+\.)\s+")


class Extraction(BaseModel):
    """Fragments from one fetch plus which path produced them."""

    fragments: list[CandidateFragment] = Field(default_factory=list)
    method: str = "none"  # html | markdown | none


def extract(result: FetchResult, selectors: SiteSelectors, base_url: str = "") -> Extraction:
    """Run the DOM path, falling back to the markdown scanner when it finds nothing."""
    if result.html and result.html.strip():
        fragments = extract_from_html(result.html, selectors, base_url)
        if fragments:
            return Extraction(fragments=fragments, method="html")
        logger.debug("DOM path found no listings, trying markdown fallback")
    if result.markdown and result.markdown.strip():
        fragments = extract_from_markdown(result.markdown)
        if fragments:
            return Extraction(fragments=fragments, method="markdown")
    return Extraction()


# ---------------------------------------------------------------------------
# HTML path
# ---------------------------------------------------------------------------


def extract_from_html(
    html: str,
    selectors: SiteSelectors,
    base_url: str = "",
) -> list[CandidateFragment]:
    """Parse job containers using the site's selector table."""
    try:
        soup = BeautifulSoup(html[:MAX_HTML_CHARS], "html.parser")
    except Exception:
        logger.warning("Could not parse HTML document", exc_info=True)
        return []

    for selector in selectors.exclude:
        for element in _select(soup, selector):
            element.decompose()

    containers = _find_containers(soup, selectors.containers)
    fragments: list[CandidateFragment] = []
    for container in containers:
        try:
            fragment = _parse_container(container, selectors, base_url)
        except Exception:
            logger.debug("Failed to parse container, skipping", exc_info=True)
            continue
        if fragment is not None:
            fragments.append(fragment)

    logger.debug("DOM path: %d containers, %d fragments", len(containers), len(fragments))
    return fragments


def _find_containers(soup: BeautifulSoup, selectors: tuple[str, ...]) -> list[Tag]:
    """Containers from the first selector that matches anything."""
    for selector in selectors:
        found = _select(soup, selector)
        if found:
            return found
    return []


def _parse_container(
    container: Tag,
    selectors: SiteSelectors,
    base_url: str,
) -> CandidateFragment | None:
    title_el = _find_first(container, selectors.title)
    title = _element_text(title_el)
    if not title:
        return None

    link_el = title_el if title_el is not None and title_el.name == "a" else None
    if link_el is None and title_el is not None:
        link_el = title_el.find_parent("a")
    if link_el is None:
        link_el = _find_first(container, selectors.link)

    return CandidateFragment(
        title=title,
        company=_element_text(_find_first(container, selectors.company)),
        location=_element_text(_find_first(container, selectors.location)),
        pay=_element_text(_find_first(container, selectors.pay)),
        schedule=_element_text(_find_first(container, selectors.schedule)),
        description=_element_text(_find_first(container, selectors.description), multiline=True),
        url=_resolve_url(link_el, base_url),
        date_posted=_posted_date(container),
    )


def _find_first(root: Tag, selectors: tuple[str, ...]) -> Tag | None:
    """Return the first element matched by any selector, in fallback order."""
    for selector in selectors:
        found = _select(root, selector, limit=1)
        if found:
            return found[0]
    return None


def _select(root: Tag, selector: str, limit: int = 0) -> list[Tag]:
    try:
        return list(root.select(selector, limit=limit))
    except Exception:
        logger.debug("Invalid selector '%s'", selector, exc_info=True)
        return []


def _element_text(element: Tag | None, multiline: bool = False) -> str | None:
    """Visible text with badge prefixes and suspicious lines removed."""
    if element is None:
        return None
    title_attr = element.get("title")
    if isinstance(title_attr, str) and title_attr.strip():
        raw = title_attr
    else:
        raw = element.get_text("\n")
    lines = []
    for line in raw.splitlines():
        line = _BADGE_PREFIX_RE.sub("", " ".join(line.split()))[:MAX_LINE_CHARS]
        if line and not is_suspicious_line(line):
            lines.append(line)
    if not lines:
        return None
    text = "\n".join(lines) if multiline else " ".join(lines)
    return text[:MAX_DESCRIPTION_CHARS] if multiline else text[:MAX_LINE_CHARS]


def _resolve_url(link: Tag | None, base_url: str) -> str | None:
    if link is None:
        return None
    href = link.get("href")
    if not isinstance(href, str) or not href.strip() or href.startswith(("javascript:", "#")):
        return None
    return urljoin(base_url, href.strip()) if base_url else href.strip()


def _posted_date(container: Tag) -> str | None:
    time_el = container.find("time")
    if not isinstance(time_el, Tag):
        return None
    value = time_el.get("datetime") or time_el.get_text(" ", strip=True)
    return value if isinstance(value, str) and value else None


# ---------------------------------------------------------------------------
# Markdown path
# ---------------------------------------------------------------------------


def extract_from_markdown(markdown: str) -> list[CandidateFragment]:
    """Line scanner: titles open fragments, following lines fill their fields."""
    try:
        return _scan_markdown(markdown)
    except Exception:
        logger.warning("Markdown extraction failed", exc_info=True)
        return []


def looks_like_title(line: str) -> bool:
    if not TITLE_MIN <= len(line) <= TITLE_MAX:
        return False
    if _ROLE_RE.search(line) or _SENIORITY_RE.search(line):
        return True
    # A bare schedule word ("Part-time") is a field, not a title.
    return bool(_SCHEDULE_WORD_RE.search(line)) and len(line.split()) >= 3


def looks_like_company(line: str) -> bool:
    return (
        2 <= len(line) <= 80
        and line[0].isupper()
        and not any(ch.isdigit() for ch in line)
        and len(line.split()) <= 6
        and not line.endswith((".", ":", "!", "?"))
        and "$" not in line
    )


def _scan_markdown(markdown: str) -> list[CandidateFragment]:
    fragments: list[CandidateFragment] = []
    current: dict[str, str] | None = None

    def flush() -> None:
        if current and current.get("title"):
            fragments.append(CandidateFragment(**current))

    for raw_line in markdown.splitlines()[:MAX_MARKDOWN_LINES]:
        raw = raw_line.strip()[:MAX_LINE_CHARS]
        if not raw or is_suspicious_line(raw):
            continue

        emphasised = False
        heading = _HEADING_RE.match(raw)
        bold = _BOLD_RE.match(raw)
        if heading:
            raw, emphasised = heading.group(1), True
        elif bold:
            raw, emphasised = bold.group(2), True

        link = _LINK_RE.search(raw)
        url = link.group(2) if link else None
        text = " ".join(strip_markdown(_LIST_MARKER_RE.sub("", raw)).split())
        text = _BADGE_PREFIX_RE.sub("", text)
        if not text:
            continue

        if current is not None and not emphasised and not _ROLE_RE.search(text):
            field = _field_for(text)
            if field is not None and field not in current:
                current[field] = text
                continue

        if (emphasised and TITLE_MIN <= len(text) <= TITLE_MAX) or looks_like_title(text):
            flush()
            current = {"title": text}
            if url:
                current["url"] = url
            continue

        if current is None:
            continue
        if "company" not in current and looks_like_company(text):
            current["company"] = text
        elif len(text) > 30:
            description = f"{current.get('description', '')}\n{text}".strip()
            current["description"] = description[:MAX_DESCRIPTION_CHARS]

    flush()
    logger.debug("Markdown path: %d fragments", len(fragments))
    return fragments


def _field_for(text: str) -> str | None:
    if _PAY_RE.search(text):
        return "pay"
    if _LOCATION_RE.match(text):
        return "location"
    if _SCHEDULE_RE.search(text) and len(text) <= 60:
        return "schedule"
    return None
