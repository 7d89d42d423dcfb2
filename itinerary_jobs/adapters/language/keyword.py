"""Deterministic offline text providers.

Used when no chat model is configured, and as the fallback inside the LLM
providers.
"""

from __future__ import annotations

import re

from itinerary_jobs.domain.constants import CATEGORY_KEYWORDS
from itinerary_jobs.domain.models import CandidatePoi, LocationPoint
from itinerary_jobs.tools.interfaces import DwellEstimate


def _normalize(text: str) -> str:
    return " ".join(re.sub(r"[^\w\s-]", " ", text.lower()).split())


class KeywordInterestMapper:
    """Maps free text to category ids by keyword lookup.

    Categories are returned in the order their first keyword appears in the
    text, so earlier interests keep a higher match weight.
    """

    name = "keyword"

    def __init__(self, keywords: dict[str, tuple[str, ...]] | None = None, max_categories: int = 6):
        self._keywords = keywords or CATEGORY_KEYWORDS
        self._max_categories = max_categories

    def map_interests(self, text: str, language: str, area: LocationPoint) -> list[str]:
        normalized = f" {_normalize(text or '')} "
        if not normalized.strip():
            return []
        hits: list[tuple[int, int, str]] = []
        for order, (category, words) in enumerate(self._keywords.items()):
            positions = [normalized.find(f" {word} ") for word in words]
            positions = [pos for pos in positions if pos >= 0]
            if positions:
                hits.append((min(positions), order, category))
        hits.sort()
        return [category for _, _, category in hits[: self._max_categories]]


class CategoryDwellEstimator:
    """Category table lookup; always low confidence."""

    name = "category_defaults"

    def estimate_dwell(
        self,
        poi: CandidatePoi,
        language: str,
        defaults: dict[str, int],
        floor: int,
        ceiling: int,
    ) -> DwellEstimate:
        minutes = defaults.get(poi.category.lower(), floor)
        return DwellEstimate(minutes=max(floor, min(ceiling, minutes)), low_confidence=True)


class PlainDescriptionWriter:
    name = "plain"

    def describe(self, poi: CandidatePoi, language: str) -> str:
        return poi.description or poi.name
