"""Site registry: built-in adapters, custom sites from config, generic fallback."""

import logging
from functools import partial
from urllib.parse import urlsplit

from jobcurator.core.config import CustomSiteConfig
from jobcurator.sites import selectors as sel
from jobcurator.sites.base import SiteAdapter, SiteSelectors
from jobcurator.sites.urls import (
    AARP_BASE,
    INDEED_BASE,
    USAJOBS_BASE,
    build_aarp_url,
    build_indeed_url,
    build_template_url,
    build_usajobs_url,
)

logger = logging.getLogger(__name__)

GENERIC_SELECTORS = SiteSelectors(
    containers=sel.GENERIC_CONTAINERS,
    title=sel.GENERIC_TITLE,
    company=sel.GENERIC_COMPANY,
    location=sel.GENERIC_LOCATION,
    pay=sel.GENERIC_PAY,
    schedule=sel.GENERIC_SCHEDULE,
    description=sel.GENERIC_DESCRIPTION,
    link=sel.GENERIC_LINK,
    exclude=sel.GENERIC_EXCLUDE,
)

INDEED = SiteAdapter(
    name="indeed",
    base_url=INDEED_BASE,
    url_builder=build_indeed_url,
    selectors=SiteSelectors(
        containers=sel.INDEED_CONTAINERS,
        title=sel.INDEED_TITLE,
        company=sel.INDEED_COMPANY,
        location=sel.INDEED_LOCATION,
        pay=sel.INDEED_PAY,
        schedule=sel.INDEED_SCHEDULE,
        description=sel.INDEED_DESCRIPTION,
        link=sel.INDEED_LINK,
        exclude=sel.INDEED_EXCLUDE,
    ),
)

AARP = SiteAdapter(
    name="aarp",
    base_url=AARP_BASE,
    url_builder=build_aarp_url,
    selectors=SiteSelectors(
        containers=sel.AARP_CONTAINERS,
        title=sel.AARP_TITLE,
        company=sel.AARP_COMPANY,
        location=sel.AARP_LOCATION,
        pay=sel.AARP_PAY,
        schedule=sel.AARP_SCHEDULE,
        description=sel.AARP_DESCRIPTION,
        link=sel.AARP_LINK,
        exclude=sel.AARP_EXCLUDE,
    ),
)

USAJOBS = SiteAdapter(
    name="usajobs",
    base_url=USAJOBS_BASE,
    url_builder=build_usajobs_url,
    selectors=SiteSelectors(
        containers=sel.USAJOBS_CONTAINERS,
        title=sel.USAJOBS_TITLE,
        company=sel.USAJOBS_COMPANY,
        location=sel.USAJOBS_LOCATION,
        pay=sel.USAJOBS_PAY,
        schedule=sel.USAJOBS_SCHEDULE,
        description=sel.USAJOBS_DESCRIPTION,
        link=sel.USAJOBS_LINK,
        exclude=sel.USAJOBS_EXCLUDE,
    ),
)

BUILTIN_ADAPTERS: dict[str, SiteAdapter] = {a.name: a for a in (INDEED, AARP, USAJOBS)}


class SiteRegistry:
    """Resolves site names to adapters. Unknown names get generic selectors."""

    def __init__(self, custom_sites: list[CustomSiteConfig] | None = None) -> None:
        self._adapters = dict(BUILTIN_ADAPTERS)
        for site in custom_sites or []:
            self._adapters[site.name] = custom_adapter(site)
            logger.debug("Registered custom site '%s'", site.name)

    @property
    def names(self) -> list[str]:
        return list(self._adapters)

    def get(self, name: str) -> SiteAdapter | None:
        return self._adapters.get(name.lower())

    def selectors_for(self, name: str) -> SiteSelectors:
        adapter = self.get(name)
        return adapter.selectors if adapter is not None else GENERIC_SELECTORS


def custom_adapter(site: CustomSiteConfig) -> SiteAdapter:
    """Build an adapter from config. Missing selector fields fall back to generic."""
    fields = {
        field: tuple(site.selectors[field]) if site.selectors.get(field) else default
        for field, default in GENERIC_SELECTORS.model_dump().items()
    }
    parts = urlsplit(site.search_url)
    return SiteAdapter(
        name=site.name,
        base_url=f"{parts.scheme}://{parts.netloc}" if parts.netloc else site.search_url,
        url_builder=partial(build_template_url, site.search_url),
        selectors=SiteSelectors(**fields),
    )
