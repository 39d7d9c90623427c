"""Site adapters: a selector table plus a search-URL builder.

Adapters are plain data. One instance per known site, plus a generic
fallback used for anything unrecognised.
"""

from collections.abc import Callable

from pydantic import BaseModel, ConfigDict

from jobcurator.core.schemas import SearchQuery


class SiteSelectors(BaseModel):
    """CSS selector fallbacks for each field of a listing."""

    model_config = ConfigDict(frozen=True)

    containers: tuple[str, ...]
    title: tuple[str, ...]
    company: tuple[str, ...] = ()
    location: tuple[str, ...] = ()
    pay: tuple[str, ...] = ()
    schedule: tuple[str, ...] = ()
    description: tuple[str, ...] = ()
    link: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


class SiteAdapter(BaseModel):
    """Everything the pipeline needs to know about one job site."""

    model_config = ConfigDict(frozen=True)

    name: str
    base_url: str
    selectors: SiteSelectors
    url_builder: Callable[[SearchQuery], str]

    def build_search_url(self, query: SearchQuery) -> str:
        return self.url_builder(query)
