"""Offline mapping provider backed by a local POI fixture and straight-line routing."""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any, Optional

from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.models import CandidatePoi, LocationPoint
from itinerary_jobs.planner.distance import estimate_distance_meters, estimate_travel_minutes, haversine_km
from itinerary_jobs.shared.exceptions import ToolError
from itinerary_jobs.tools.interfaces import PoiSearchInput, PoiTextSearchInput, RouteInput, RouteResult

DATA_FILE = Path(__file__).resolve().parents[2] / "data" / "poi_fixture.json"


def load_fixture(path: Path = DATA_FILE) -> dict[str, Any]:
    if not path.exists():
        raise ToolError("offline_maps", f"Data file not found: {path}", kind="unavailable")
    with open(path, encoding="utf-8") as f:
        return json.load(f)


def _stem(word: str) -> str:
    return word[:-1] if len(word) > 3 and word.endswith("s") else word


class OfflineMapsProvider:
    """Deterministic stand-in for the mapping service.

    Search filters fixture POIs by category (or by words of a free-text query
    found in the name, category or tags) and radius; legs use the haversine
    distance times a detour factor at the configured average speed per mode.
    """

    name = "offline"

    def __init__(self, settings: PlannerSettings, fixture: Optional[dict[str, Any]] = None):
        self._settings = settings
        data = fixture if fixture is not None else load_fixture()
        self._timezone = str(data.get("timezone") or "UTC")
        self._pois = [CandidatePoi.model_validate(raw) for raw in data.get("pois", [])]

    def _nearest(self, center: LocationPoint, radius_km: float, limit: int, keep) -> list[CandidatePoi]:
        matches: list[tuple[float, CandidatePoi]] = []
        for poi in self._pois:
            if not keep(poi):
                continue
            distance_km = haversine_km(center, poi.location)
            if distance_km > radius_km:
                continue
            matches.append((distance_km, poi))
        matches.sort(key=lambda item: (item[0], item[1].id))
        return [poi.model_copy(deep=True) for _, poi in matches[:limit]]

    def search_pois(self, params: PoiSearchInput) -> list[CandidatePoi]:
        wanted = {category.lower() for category in params.category_ids}
        return self._nearest(
            params.center,
            params.radius_km,
            params.limit,
            lambda poi: not wanted or poi.category.lower() in wanted,
        )

    def search_text(self, params: PoiTextSearchInput) -> list[CandidatePoi]:
        words = {_stem(word) for word in re.findall(r"\w+", params.query.lower()) if len(word) >= 3}
        if not words:
            return []

        def matches(poi: CandidatePoi) -> bool:
            text = " ".join([poi.name, poi.category, *poi.tags]).lower()
            return any(_stem(token) in words for token in re.findall(r"\w+", text))

        return self._nearest(params.center, params.radius_km, params.limit, matches)

    def compute_leg(self, params: RouteInput) -> RouteResult:
        distance = estimate_distance_meters(params.origin, params.destination, self._settings.detour_factor)
        speed = self._settings.avg_speed_kmh[params.mode]
        return RouteResult(distance_meters=distance, travel_minutes=estimate_travel_minutes(distance, speed))

    def timezone_for(self, point: LocationPoint) -> str:
        return self._timezone
