"""Tests for browser actions: random_sleep, scroll_until_stable, count_listings."""

import asyncio
from unittest.mock import AsyncMock, patch

from jobcurator.browser.actions import (
    SCROLL_DELAY_FLOOR,
    count_listings,
    random_sleep,
    scroll_until_stable,
)

_TEST_SELECTORS: tuple[str, ...] = ("div.test-card",)

# ---------------------------------------------------------------------------
# TestRandomSleep
# ---------------------------------------------------------------------------


class TestRandomSleep:
    async def test_returns_duration_in_range(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock) as mock_sleep:
            duration = await random_sleep(0.1, 0.2)
        assert 0.1 <= duration <= 0.2
        mock_sleep.assert_awaited_once_with(duration)

    async def test_max_below_min_is_clamped(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            duration = await random_sleep(5.0, 2.0)
        assert duration == 5.0

    async def test_negative_bounds_clamped_to_zero(self) -> None:
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            duration = await random_sleep(-3.0, -1.0)
        assert duration == 0.0


# ---------------------------------------------------------------------------
# TestScrollUntilStable
# ---------------------------------------------------------------------------


def _make_page_mock(card_counts: list[int]) -> AsyncMock:
    """Page whose query_selector_all returns the next count per call (last one repeats)."""
    page = AsyncMock()
    counts = iter(card_counts)
    last = 0

    async def _query_selector_all(selector: str) -> list[object]:
        nonlocal last
        last = next(counts, last)
        return [object() for _ in range(last)]

    page.query_selector_all = AsyncMock(side_effect=_query_selector_all)
    return page


class TestScrollUntilStable:
    async def test_stops_when_count_stable(self) -> None:
        page = _make_page_mock([5, 10, 10])
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            count = await scroll_until_stable(page, container_selectors=_TEST_SELECTORS)
        assert count == 10
        assert page.evaluate.await_count == 2

    async def test_respects_max_attempts(self) -> None:
        page = _make_page_mock([1, 2, 3, 4, 5, 6])
        with patch.object(asyncio, "sleep", new_callable=AsyncMock):
            count = await scroll_until_stable(
                page, container_selectors=_TEST_SELECTORS, max_attempts=3,
            )
        assert count == 3
        assert page.evaluate.await_count == 3

    async def test_delay_floor_enforced(self) -> None:
        page = _make_page_mock([2, 2])
        with patch.object(asyncio, "sleep", new_callable=AsyncMock) as mock_sleep:
            await scroll_until_stable(
                page, container_selectors=_TEST_SELECTORS, delay_min=0.0, delay_max=0.5,
            )
        assert mock_sleep.await_args is not None
        assert mock_sleep.await_args.args[0] == SCROLL_DELAY_FLOOR


# ---------------------------------------------------------------------------
# TestCountListings
# ---------------------------------------------------------------------------


class TestCountListings:
    async def test_falls_back_to_next_selector(self) -> None:
        page = AsyncMock()
        page.query_selector_all = AsyncMock(side_effect=[[], [object(), object()]])
        assert await count_listings(page, ("div.a", "div.b")) == 2

    async def test_nothing_matches(self) -> None:
        page = AsyncMock()
        page.query_selector_all = AsyncMock(return_value=[])
        assert await count_listings(page, ("div.a", "div.b")) == 0
