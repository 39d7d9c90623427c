"""Page actions used by the content fetcher: randomized waits and lazy-load scrolling."""

import asyncio
import logging
import random
from typing import Any

logger = logging.getLogger(__name__)

MAX_SCROLL_ATTEMPTS = 4
SCROLL_DELAY_FLOOR = 1.0


async def random_sleep(min_s: float, max_s: float) -> float:
    """Sleep a random duration in [min_s, max_s] and return it.

    Negative bounds clamp to 0; a ceiling below the floor is raised to it.
    """
    floor = max(min_s, 0.0)
    ceiling = max(max_s, floor)
    duration = random.uniform(floor, ceiling)
    await asyncio.sleep(duration)
    return duration


async def scroll_until_stable(
    page: Any,
    *,
    container_selectors: tuple[str, ...],
    max_attempts: int = MAX_SCROLL_ATTEMPTS,
    delay_min: float = SCROLL_DELAY_FLOOR,
    delay_max: float = 2.0,
) -> int:
    """Scroll to the bottom until the listing count stops growing.

    Args:
        page: patchright Page (or a mock with the same coroutine methods).
        container_selectors: Listing selectors, tried in fallback order.
        max_attempts: Upper bound on scroll iterations.
        delay_min: Minimum wait after each scroll (floored at 1s).
        delay_max: Maximum wait after each scroll.

    Returns:
        The last listing count observed.
    """
    delay_min = max(delay_min, SCROLL_DELAY_FLOOR)
    previous = -1
    count = 0
    for attempt in range(max_attempts):
        count = await count_listings(page, container_selectors)
        if count == previous:
            logger.debug("Listing count stable at %d after %d scrolls", count, attempt)
            break
        previous = count
        await page.evaluate("window.scrollTo(0, document.body.scrollHeight)")
        await random_sleep(delay_min, delay_max)
    return count


async def count_listings(page: Any, selectors: tuple[str, ...]) -> int:
    """Count elements for the first selector that matches anything."""
    for selector in selectors:
        found = await page.query_selector_all(selector)
        if found:
            return len(found)
    return 0
