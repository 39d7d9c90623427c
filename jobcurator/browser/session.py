"""Shared patchright browser for search-page fetches.

One browser and one context per process run; every fetch opens its own
page from the shared context so concurrent users never navigate each
other's tab. Cookies are optional and loaded from a JSON array export.
"""

import json
import logging
from pathlib import Path
from types import TracebackType
from typing import Any

from patchright.async_api import Browser, BrowserContext, Page, Playwright, async_playwright

from jobcurator.core.config import BrowserConfig

logger = logging.getLogger(__name__)


class BrowserSession:
    """Async context manager that owns one patchright browser + context.

    Usage::

        async with BrowserSession(config) as session:
            fetcher = BrowserContentFetcher(session)
            page = await session.new_page()   # caller closes it
    """

    def __init__(self, config: BrowserConfig) -> None:
        self._config = config
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._context: BrowserContext | None = None
        self._opened = 0

    @property
    def context(self) -> BrowserContext:
        """The shared context for this session. Raises if not entered."""
        if self._context is None:
            msg = "BrowserSession not entered, use 'async with'"
            raise RuntimeError(msg)
        return self._context

    @property
    def pages_opened(self) -> int:
        return self._opened

    async def new_page(self) -> Page:
        """Open a fresh page in the shared context (cookies and timeout applied)."""
        page = await self.context.new_page()
        self._opened += 1
        return page

    async def __aenter__(self) -> "BrowserSession":
        pw = await async_playwright().start()
        self._playwright = pw
        self._browser = await pw.chromium.launch(headless=self._config.headless)

        context = await self._browser.new_context()
        cookies = load_cookies(self._config.cookies_path)
        if cookies:
            await context.add_cookies(cookies)
            logger.info("Loaded %d cookies from %s", len(cookies), self._config.cookies_path)
        context.set_default_timeout(self._config.timeout_ms)
        self._context = context
        logger.debug("Browser session ready (headless=%s)", self._config.headless)
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: TracebackType | None,
    ) -> None:
        if self._context is not None:
            await self._context.close()
        if self._browser is not None:
            await self._browser.close()
        if self._playwright is not None:
            await self._playwright.stop()
        logger.debug("Browser session closed after %d pages", self._opened)
        self._context = None


def load_cookies(path: str) -> list[Any]:
    """Load cookies from a JSON file. Returns empty list on any failure."""
    cookie_path = Path(path)
    if not cookie_path.exists():
        logger.debug("Cookie file not found: %s", path)
        return []
    try:
        data = json.loads(cookie_path.read_text())
    except (json.JSONDecodeError, OSError) as e:
        logger.warning("Failed to load cookies from %s: %s", path, e)
        return []
    if not isinstance(data, list):
        logger.warning("Cookie file is not a JSON array: %s", path)
        return []
    return [c for c in data if isinstance(c, dict) and c.get("name") and "value" in c]
