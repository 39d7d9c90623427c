"""Fuzzy deduplication against the recent corpus and within a batch.

Similarity of two listings:
  - identical normalised title and company          -> 1.0
  - same company, title similarity s                -> 0.9 if s > 0.8 else 0.7 * s
  - different company, title similarity s > 0.9     -> 0.6 * s
  - otherwise                                       -> 0.0
Title similarity is normalised Levenshtein: (max_len - distance) / max_len.
"""

import logging
from collections.abc import Iterable
from typing import Protocol

from rapidfuzz.distance import Levenshtein

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 0.85


class Listing(Protocol):
    @property
    def title(self) -> str: ...
    @property
    def company(self) -> str: ...


def normalize(text: str) -> str:
    """Lowercase, trim and collapse internal whitespace."""
    return " ".join(text.lower().split())


def string_similarity(a: str, b: str) -> float:
    """Normalised Levenshtein similarity in [0, 1]. Two empty strings are identical."""
    if not a and not b:
        return 1.0
    return Levenshtein.normalized_similarity(a, b)


def job_similarity(a: Listing, b: Listing) -> float:
    title_a, title_b = normalize(a.title), normalize(b.title)
    company_a, company_b = normalize(a.company), normalize(b.company)

    if title_a == title_b and company_a == company_b:
        return 1.0

    s = string_similarity(title_a, title_b)
    if company_a == company_b:
        return 0.9 if s > 0.8 else 0.7 * s
    if s > 0.9:
        return 0.6 * s
    return 0.0


class Deduplicator:
    """Drops listings too similar to the corpus snapshot or to earlier accepts.

    Stateful: each accepted listing joins the comparison set, so later
    candidates in the same run are checked against it too.
    """

    def __init__(
        self,
        existing: Iterable[Listing] = (),
        threshold: float = DEFAULT_THRESHOLD,
    ) -> None:
        self._threshold = threshold
        self._known: list[Listing] = list(existing)
        self._exact: set[tuple[str, str]] = {
            (normalize(x.title), normalize(x.company)) for x in self._known
        }

    def __len__(self) -> int:
        return len(self._known)

    def is_duplicate(self, candidate: Listing) -> bool:
        key = (normalize(candidate.title), normalize(candidate.company))
        if key in self._exact:
            return True
        return any(job_similarity(candidate, x) > self._threshold for x in self._known)

    def accept(self, listing: Listing) -> None:
        self._known.append(listing)
        self._exact.add((normalize(listing.title), normalize(listing.company)))

    def __call__(self, candidates: list[Listing]) -> list[Listing]:
        """Filter a batch, accepting survivors as it goes."""
        result: list[Listing] = []
        for c in candidates:
            if self.is_duplicate(c):
                continue
            self.accept(c)
            result.append(c)
        removed = len(candidates) - len(result)
        if removed:
            logger.debug("Deduplicator: removed %d near-duplicates", removed)
        return result
