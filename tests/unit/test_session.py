"""Tests for browser session: cookie loading and per-fetch pages."""

import json
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

from jobcurator.browser.session import BrowserSession, load_cookies
from jobcurator.core.config import BrowserConfig

# ---------------------------------------------------------------------------
# TestLoadCookies
# ---------------------------------------------------------------------------


class TestLoadCookies:
    def test_valid_cookie_file(self, tmp_path: Path) -> None:
        cookie_file = tmp_path / "cookies.json"
        cookies = [
            {"name": "CTK", "value": "abc123", "domain": ".indeed.com", "path": "/"},
        ]
        cookie_file.write_text(json.dumps(cookies))
        result = load_cookies(str(cookie_file))
        assert len(result) == 1
        assert result[0]["name"] == "CTK"

    def test_missing_file_returns_empty(self) -> None:
        assert load_cookies("/nonexistent/path/cookies.json") == []

    def test_not_array_returns_empty(self, tmp_path: Path) -> None:
        cookie_file = tmp_path / "cookies.json"
        cookie_file.write_text('{"key": "value"}')
        assert load_cookies(str(cookie_file)) == []

    def test_invalid_json_returns_empty(self, tmp_path: Path) -> None:
        cookie_file = tmp_path / "cookies.json"
        cookie_file.write_text("not-json{{{")
        assert load_cookies(str(cookie_file)) == []

    def test_malformed_entries_dropped(self, tmp_path: Path) -> None:
        cookie_file = tmp_path / "cookies.json"
        cookies = [
            {"name": "CTK", "value": "v1"},
            {"name": "", "value": "v2"},
            {"name": "no_value"},
            "not-a-dict",
        ]
        cookie_file.write_text(json.dumps(cookies))
        assert [c["name"] for c in load_cookies(str(cookie_file))] == ["CTK"]


# ---------------------------------------------------------------------------
# TestBrowserSession
# ---------------------------------------------------------------------------


class TestBrowserSession:
    def test_context_before_enter_raises(self) -> None:
        session = BrowserSession(BrowserConfig())
        with pytest.raises(RuntimeError, match="async with"):
            _ = session.context

    async def test_new_page_before_enter_raises(self) -> None:
        session = BrowserSession(BrowserConfig())
        with pytest.raises(RuntimeError, match="async with"):
            await session.new_page()

    async def test_new_page_opens_in_shared_context(self) -> None:
        session = BrowserSession(BrowserConfig())
        context = AsyncMock()
        context.new_page = AsyncMock(side_effect=[object(), object()])
        session._context = context

        first = await session.new_page()
        second = await session.new_page()

        assert first is not second
        assert context.new_page.await_count == 2
        assert session.pages_opened == 2
