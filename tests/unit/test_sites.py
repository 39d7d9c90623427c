"""Tests for site adapters: search URLs and the registry."""

import pytest
from pydantic import ValidationError

from jobcurator.core.config import CustomSiteConfig
from jobcurator.core.schemas import SearchQuery
from jobcurator.sites.registry import (
    GENERIC_SELECTORS,
    INDEED,
    SiteRegistry,
    custom_adapter,
)
from jobcurator.sites.urls import (
    INDEED_REMOTE_ID,
    build_aarp_url,
    build_indeed_url,
    build_template_url,
    build_usajobs_url,
)

LOCAL = SearchQuery(keywords="reading tutor", location="Austin, TX", part_time=True)
REMOTE = SearchQuery(keywords="data entry", location="remote", remote=True)


# ---------------------------------------------------------------------------
# TestSearchUrls
# ---------------------------------------------------------------------------


class TestSearchUrls:
    def test_indeed_local_part_time(self) -> None:
        assert build_indeed_url(LOCAL) == (
            "https://www.indeed.com/jobs?q=reading+tutor&l=Austin%2C+TX&jt=parttime"
        )

    def test_indeed_remote_drops_location(self) -> None:
        url = build_indeed_url(REMOTE)
        assert "l=" not in url
        assert f"remotejob={INDEED_REMOTE_ID}" in url
        assert "jt=" not in url

    def test_aarp(self) -> None:
        assert build_aarp_url(LOCAL) == (
            "https://jobs.aarp.org/jobs/search"
            "?keywords=reading+tutor&location=Austin%2C+TX&age-friendly=true"
        )

    def test_usajobs_without_location(self) -> None:
        query = SearchQuery(keywords="clerk")
        assert build_usajobs_url(query) == "https://www.usajobs.gov/Search/Results?k=clerk&p=1"

    def test_template(self) -> None:
        url = build_template_url("https://jobs.example.org/s?q={keywords}&where={location}", LOCAL)
        assert url == "https://jobs.example.org/s?q=reading+tutor&where=Austin%2C+TX"

    def test_adapter_delegates(self) -> None:
        assert INDEED.build_search_url(LOCAL) == build_indeed_url(LOCAL)


# ---------------------------------------------------------------------------
# TestRegistry
# ---------------------------------------------------------------------------


def _custom(**kw: object) -> CustomSiteConfig:
    defaults: dict[str, object] = {
        "name": "localboard",
        "search_url": "https://jobs.example.org/search?q={keywords}",
        "selectors": {"containers": ["div.listing"], "title": ["h2"]},
    }
    defaults.update(kw)
    return CustomSiteConfig(**defaults)  # type: ignore[arg-type]


class TestRegistry:
    def test_builtins_in_order(self) -> None:
        assert SiteRegistry().names == ["indeed", "aarp", "usajobs"]

    def test_lookup_is_case_insensitive(self) -> None:
        assert SiteRegistry().get("Indeed") is INDEED

    def test_unknown_site_gets_generic_selectors(self) -> None:
        registry = SiteRegistry()
        assert registry.get("monster") is None
        assert registry.selectors_for("monster") == GENERIC_SELECTORS

    def test_custom_site_registered(self) -> None:
        registry = SiteRegistry([_custom()])
        assert registry.names[-1] == "localboard"
        adapter = registry.get("localboard")
        assert adapter is not None
        assert adapter.base_url == "https://jobs.example.org"
        assert adapter.build_search_url(LOCAL) == (
            "https://jobs.example.org/search?q=reading+tutor"
        )

    def test_custom_selectors_fall_back_to_generic(self) -> None:
        adapter = custom_adapter(_custom())
        assert adapter.selectors.containers == ("div.listing",)
        assert adapter.selectors.title == ("h2",)
        assert adapter.selectors.company == GENERIC_SELECTORS.company

    def test_adapters_are_frozen(self) -> None:
        with pytest.raises(ValidationError):
            INDEED.name = "other"  # type: ignore[misc]
