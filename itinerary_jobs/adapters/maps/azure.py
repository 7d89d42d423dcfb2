"""Azure Maps adapter: POI search, route directions, reachable range and time zones.

Environment: AZURE_MAPS_KEY
Docs:
  POI category search: https://learn.microsoft.com/rest/api/maps/search/get-search-poi-category
  Fuzzy search:        https://learn.microsoft.com/rest/api/maps/search/get-search-fuzzy
  Route range:         https://learn.microsoft.com/rest/api/maps/route/get-route-range
  Route directions:    https://learn.microsoft.com/rest/api/maps/route/get-route-directions
  Time zone:           https://learn.microsoft.com/rest/api/maps/timezone/get-timezone-by-coordinates
"""

from __future__ import annotations

import datetime as dt
from typing import Any, Optional

from itinerary_jobs.domain.enums import TravelMode
from itinerary_jobs.domain.models import CandidatePoi, DaySchedule, LocationPoint
from itinerary_jobs.security.http_client import HttpToolError, SecureHttpClient
from itinerary_jobs.security.key_manager import get_key_manager
from itinerary_jobs.shared.exceptions import RouteNotFoundError, ToolError
from itinerary_jobs.tools.interfaces import (
    IsochroneInput,
    PoiSearchInput,
    PoiTextSearchInput,
    RouteInput,
    RouteResult,
)

_SEARCH_URL = "https://atlas.microsoft.com/search/poi/category/json"
_FUZZY_URL = "https://atlas.microsoft.com/search/fuzzy/json"
_ROUTE_URL = "https://atlas.microsoft.com/route/directions/json"
_RANGE_URL = "https://atlas.microsoft.com/route/range/json"
_TIMEZONE_URL = "https://atlas.microsoft.com/timezone/byCoordinates/json"
_API_VERSION = "1.0"

_TRAVEL_MODES = {
    TravelMode.WALKING: "pedestrian",
    TravelMode.PUBLIC_TRANSPORT: "bus",
    TravelMode.CAR: "car",
}

# Category ids mapped to Azure Maps POI category names.
_CATEGORY_QUERIES = {
    "museum": "museum",
    "gallery": "art gallery",
    "landmark": "important tourist attraction",
    "historic": "historic site",
    "park": "park",
    "viewpoint": "scenic panoramic view",
    "church": "place of worship",
    "restaurant": "restaurant",
    "cafe": "cafe",
    "bar": "bar",
    "market": "market",
    "shopping": "shopping center",
    "theater": "theater",
    "zoo": "zoo",
    "beach": "beach",
}


def _format_point(point: LocationPoint) -> str:
    return f"{point.lat},{point.lon}"


def _clock(raw: dict[str, Any]) -> str:
    return f"{int(raw.get('hour', 0)):02d}:{int(raw.get('minute', 0)):02d}"


def parse_opening_hours(raw: Optional[dict[str, Any]]) -> Optional[list[DaySchedule]]:
    """Convert ``openingHours.timeRanges`` into day schedules (0=Sunday)."""
    if not raw:
        return None
    ranges = raw.get("timeRanges") or []
    if not ranges:
        return None
    schedules: list[DaySchedule] = []
    for item in ranges:
        start = item.get("startTime") or {}
        end = item.get("endTime") or {}
        try:
            day = dt.date.fromisoformat(str(start.get("date")))
        except ValueError:
            continue
        schedules.append(
            DaySchedule(
                day_of_week=(day.weekday() + 1) % 7,
                is_open=True,
                open_time=_clock(start),
                close_time=_clock(end),
            )
        )
    return schedules or None


def _category_from_tags(tags: list[str]) -> str:
    for tag in tags:
        key = tag.strip().lower()
        for category, query in _CATEGORY_QUERIES.items():
            if key in (category, query):
                return category
    return tags[0].strip().lower() if tags else "attraction"


def _parse_poi(raw: dict[str, Any], category: str) -> Optional[CandidatePoi]:
    poi = raw.get("poi") or {}
    position = raw.get("position") or {}
    name = str(poi.get("name") or "").strip()
    if not name or "lat" not in position or "lon" not in position:
        return None
    address = raw.get("address") or {}
    tags = [str(tag) for tag in poi.get("categories", [])]
    return CandidatePoi(
        id=str(raw.get("id") or f"{name}:{position['lat']}:{position['lon']}"),
        name=name,
        address=str(address.get("freeformAddress") or ""),
        lat=float(position["lat"]),
        lon=float(position["lon"]),
        category=category or _category_from_tags(tags),
        tags=tags,
        opening_hours=parse_opening_hours(poi.get("openingHours")),
    )


class AzureMapsProvider:
    name = "azure_maps"

    def __init__(self, http: Optional[SecureHttpClient] = None, *, timeout: float = 10.0, rate_limiter=None):
        self._http = http or SecureHttpClient(
            tool_name="azure_maps",
            timeout=timeout,
            max_retries=1,
            rate_limiter=rate_limiter,
        )

    def _params(self, **extra: Any) -> dict[str, Any]:
        key = get_key_manager().get_maps_key(required=False)
        if not key:
            raise ToolError("azure_maps", "AZURE_MAPS_KEY is not set", kind="unavailable")
        return {"api-version": _API_VERSION, "subscription-key": key, **extra}

    def search_pois(self, params: PoiSearchInput) -> list[CandidatePoi]:
        results: list[CandidatePoi] = []
        seen: set[str] = set()
        for category in params.category_ids:
            query = _CATEGORY_QUERIES.get(category, category)
            data = self._http.get(
                _SEARCH_URL,
                params=self._params(
                    query=query,
                    lat=params.center.lat,
                    lon=params.center.lon,
                    radius=int(params.radius_km * 1000),
                    limit=params.limit,
                    language=params.language,
                    openingHours="nextSevenDays",
                ),
            )
            for raw in data.get("results", []):
                parsed = _parse_poi(raw, category)
                if parsed is None or parsed.id in seen:
                    continue
                seen.add(parsed.id)
                results.append(parsed)
        return results

    def search_text(self, params: PoiTextSearchInput) -> list[CandidatePoi]:
        data = self._http.get(
            _FUZZY_URL,
            params=self._params(
                query=params.query,
                idxSet="POI",
                lat=params.center.lat,
                lon=params.center.lon,
                radius=int(params.radius_km * 1000),
                limit=params.limit,
                language=params.language,
                openingHours="nextSevenDays",
            ),
        )
        results: list[CandidatePoi] = []
        seen: set[str] = set()
        for raw in data.get("results", []):
            parsed = _parse_poi(raw, params.category)
            if parsed is None or parsed.id in seen:
                continue
            seen.add(parsed.id)
            results.append(parsed)
        return results

    def reachable_area(self, params: IsochroneInput) -> list[LocationPoint]:
        data = self._http.get(
            _RANGE_URL,
            params=self._params(
                query=_format_point(params.center),
                timeBudgetInSec=params.minutes * 60,
                travelMode=_TRAVEL_MODES[params.mode],
            ),
        )
        boundary = (data.get("reachableRange") or {}).get("boundary") or []
        try:
            return [LocationPoint(lat=float(p["latitude"]), lon=float(p["longitude"])) for p in boundary]
        except (KeyError, TypeError, ValueError):
            raise ToolError("azure_maps", "reachable range boundary is malformed", kind="bad_response") from None

    def compute_leg(self, params: RouteInput) -> RouteResult:
        try:
            data = self._http.get(
                _ROUTE_URL,
                params=self._params(
                    query=f"{_format_point(params.origin)}:{_format_point(params.destination)}",
                    travelMode=_TRAVEL_MODES[params.mode],
                    routeType="fastest",
                ),
            )
        except HttpToolError as exc:
            if exc.status_code in {400, 404} and "NO_ROUTE_FOUND" in exc.body.upper():
                raise RouteNotFoundError("azure_maps", "no route between the requested points") from None
            raise

        routes = data.get("routes") or []
        if not routes:
            raise RouteNotFoundError("azure_maps", "route directions returned no routes")
        summary = routes[0].get("summary") or {}
        try:
            meters = float(summary["lengthInMeters"])
            seconds = float(summary["travelTimeInSeconds"])
        except (KeyError, TypeError, ValueError):
            raise ToolError("azure_maps", "route summary is missing length or time", kind="bad_response") from None
        return RouteResult(distance_meters=int(round(meters)), travel_minutes=int(round(seconds / 60)))

    def timezone_for(self, point: LocationPoint) -> str:
        data = self._http.get(_TIMEZONE_URL, params=self._params(query=_format_point(point)))
        zones = data.get("TimeZones") or []
        if not zones or not zones[0].get("Id"):
            raise ToolError("azure_maps", "time zone lookup returned no zone", kind="bad_response")
        return str(zones[0]["Id"])
