"""Per-site DOM selector tables.

Each constant is a tuple so callers iterate until a match is found.
Comma-joined entries are CSS selector groups, tried as one selector.
"""

# --- Indeed ---
INDEED_CONTAINERS: tuple[str, ...] = (
    'td[id*="job_"]',
    ".job_seen_beacon",
    ".jobsearch-SerpJobCard",
    "div[data-jk]",
    ".slider_container .slider_item",
)
INDEED_TITLE: tuple[str, ...] = (
    "h2 a span[title]",
    ".jobTitle a span",
    "h2.jobTitle a",
    '[data-testid="job-title"] a',
    ".jobTitle-color-purple",
)
INDEED_COMPANY: tuple[str, ...] = (
    ".companyName",
    '[data-testid="company-name"]',
    ".company",
    "span.companyName a",
)
INDEED_LOCATION: tuple[str, ...] = (
    '[data-testid="job-location"]',
    ".companyLocation",
    ".locationsContainer",
)
INDEED_PAY: tuple[str, ...] = (
    ".salary-snippet",
    ".estimated-salary",
    '[data-testid="job-salary"]',
    ".salaryText",
)
INDEED_SCHEDULE: tuple[str, ...] = (
    ".jobMetadata .metadata",
    ".jobMetadata",
    ".attribute_snippet",
)
INDEED_DESCRIPTION: tuple[str, ...] = (
    ".job-snippet",
    ".summary",
    '[data-testid="job-snippet"]',
)
INDEED_LINK: tuple[str, ...] = ("h2 a", ".jobTitle a", "a[data-jk]")
INDEED_EXCLUDE: tuple[str, ...] = (
    ".pn",
    "#searchCountPages",
    ".np",
    ".slider_container .slider_nav",
    "#resultsCol .jobsearch-NoResult",
)

# --- AARP job board ---
AARP_CONTAINERS: tuple[str, ...] = (".job-listing", ".job-result", ".listing-item", ".job-item")
AARP_TITLE: tuple[str, ...] = (".job-title a", ".listing-title a", "h3 a", "h2 a")
AARP_COMPANY: tuple[str, ...] = (".company-name", ".employer", ".company")
AARP_LOCATION: tuple[str, ...] = (".location", ".job-location", ".listing-location")
AARP_PAY: tuple[str, ...] = (".salary", ".pay", ".wage")
AARP_SCHEDULE: tuple[str, ...] = (".job-type", ".schedule", ".employment-type")
AARP_DESCRIPTION: tuple[str, ...] = (".job-summary", ".job-description", ".snippet")
AARP_LINK: tuple[str, ...] = (".job-title a", ".listing-title a", "h3 a", "h2 a")
AARP_EXCLUDE: tuple[str, ...] = (".pagination", ".filter", ".search-filters", ".sidebar")

# --- USAJOBS ---
USAJOBS_CONTAINERS: tuple[str, ...] = (
    ".usajobs-search-result--core",
    ".job-listing",
    ".search-result",
)
USAJOBS_TITLE: tuple[str, ...] = (".usajobs-search-result--title a", ".job-title a", "h3 a")
USAJOBS_COMPANY: tuple[str, ...] = (".usajobs-search-result--agency", ".agency", ".department")
USAJOBS_LOCATION: tuple[str, ...] = (".usajobs-search-result--location", ".location")
USAJOBS_PAY: tuple[str, ...] = (".usajobs-search-result--pay", ".pay", ".salary-range")
USAJOBS_SCHEDULE: tuple[str, ...] = (".usajobs-search-result--schedule", ".schedule")
USAJOBS_DESCRIPTION: tuple[str, ...] = (".usajobs-search-result--summary", ".job-summary")
USAJOBS_LINK: tuple[str, ...] = (".usajobs-search-result--title a", ".job-title a", "h3 a")
USAJOBS_EXCLUDE: tuple[str, ...] = (
    ".usajobs-search-filters",
    ".pagination",
    ".header",
    ".footer",
)

# --- Generic fallback ---
GENERIC_CONTAINERS: tuple[str, ...] = (
    ".job",
    ".listing",
    ".position",
    ".vacancy",
    "article",
    ".job-card",
    ".job-item",
)
GENERIC_TITLE: tuple[str, ...] = ("h1", "h2", "h3", ".title", ".job-title", ".position-title")
GENERIC_COMPANY: tuple[str, ...] = (".company", ".employer", ".organization")
GENERIC_LOCATION: tuple[str, ...] = (".location", ".address", ".city")
GENERIC_PAY: tuple[str, ...] = (".salary", ".pay", ".wage", ".compensation")
GENERIC_SCHEDULE: tuple[str, ...] = (".type", ".schedule", ".hours")
GENERIC_DESCRIPTION: tuple[str, ...] = (".description", ".summary", ".details", "p")
GENERIC_LINK: tuple[str, ...] = ("h2 a", "h3 a", ".title a", ".job-title a", "a[href]")
GENERIC_EXCLUDE: tuple[str, ...] = (
    ".nav",
    ".header",
    ".footer",
    ".sidebar",
    ".pagination",
    ".ad",
    ".advertisement",
)
