"""Content fetcher backed by patchright pages.

Each fetch opens its own page, navigates, settles, scrolls the result list
and reads the rendered HTML plus the page's visible text, then closes the
page. The text stands in for markdown: the markdown scanner reads it line
by line when the DOM path finds nothing.
"""

import logging
from typing import Any, Protocol
from urllib.parse import urlsplit

from jobcurator.browser.actions import random_sleep, scroll_until_stable
from jobcurator.core.errors import FetchError
from jobcurator.core.schemas import FetchResult
from jobcurator.sites.registry import GENERIC_SELECTORS, SiteRegistry

logger = logging.getLogger(__name__)


class PageSource(Protocol):
    """Anything that opens a fresh page: a BrowserSession or a BrowserContext."""

    async def new_page(self) -> Any: ...


class BrowserContentFetcher:
    """Implements the orchestrator's ContentFetcher protocol.

    Safe to call concurrently: no page is shared between fetches.
    """

    def __init__(
        self,
        pages: PageSource,
        registry: SiteRegistry | None = None,
        settle_min: float = 1.5,
        settle_max: float = 3.0,
        scroll: bool = True,
    ) -> None:
        self._pages = pages
        self._registry = registry or SiteRegistry()
        self._settle = (settle_min, settle_max)
        self._scroll = scroll

    async def fetch(self, url: str) -> FetchResult:
        page = await self._pages.new_page()
        try:
            return await self._read(page, url)
        finally:
            try:
                await page.close()
            except Exception:
                logger.debug("Could not close page for %s", url, exc_info=True)

    async def _read(self, page: Any, url: str) -> FetchResult:
        host = urlsplit(url).netloc
        response = await page.goto(url, wait_until="domcontentloaded")
        if response is not None and response.status >= 400:
            raise FetchError(host, url, RuntimeError(f"HTTP {response.status}"))

        await random_sleep(*self._settle)
        if self._scroll:
            await scroll_until_stable(page, container_selectors=self._containers_for(host))

        html = await page.content()
        try:
            text = await page.inner_text("body")
        except Exception:
            logger.debug("Could not read body text for %s", url, exc_info=True)
            text = None
        logger.debug("Fetched %s: %d chars html", url, len(html or ""))
        return FetchResult(html=html, markdown=text)

    def _containers_for(self, host: str) -> tuple[str, ...]:
        for name in self._registry.names:
            adapter = self._registry.get(name)
            if adapter is not None and urlsplit(adapter.base_url).netloc == host:
                return adapter.selectors.containers
        return GENERIC_SELECTORS.containers
