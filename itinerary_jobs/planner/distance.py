"""Deterministic distance and travel-time estimation."""

from __future__ import annotations

import math
from typing import Sequence

from itinerary_jobs.domain.models import LocationPoint
from itinerary_jobs.shared.exceptions import ToolError

EARTH_RADIUS_KM = 6371.0


def haversine_km(a: LocationPoint, b: LocationPoint) -> float:
    dlat = math.radians(b.lat - a.lat)
    dlon = math.radians(b.lon - a.lon)
    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(math.radians(a.lat))
        * math.cos(math.radians(b.lat))
        * math.sin(dlon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def midpoint(a: LocationPoint, b: LocationPoint) -> LocationPoint:
    return LocationPoint(lat=(a.lat + b.lat) / 2, lon=(a.lon + b.lon) / 2)


def estimate_distance_meters(a: LocationPoint, b: LocationPoint, detour_factor: float = 1.4) -> int:
    return int(round(haversine_km(a, b) * detour_factor * 1000))


def estimate_travel_minutes(distance_meters: int, speed_kmh: float) -> int:
    if speed_kmh <= 0:
        raise ToolError("distance_estimator", f"Invalid average speed: {speed_kmh}", kind="bad_response")
    return int(math.ceil((distance_meters / 1000.0) / speed_kmh * 60))


def distance_to_segment_km(point: LocationPoint, a: LocationPoint, b: LocationPoint) -> float:
    """Distance from ``point`` to the segment a-b on a local equirectangular plane."""
    ref_lat = math.radians((a.lat + b.lat + point.lat) / 3)

    def project(p: LocationPoint) -> tuple[float, float]:
        return (
            math.radians(p.lon) * math.cos(ref_lat) * EARTH_RADIUS_KM,
            math.radians(p.lat) * EARTH_RADIUS_KM,
        )

    px, py = project(point)
    ax, ay = project(a)
    bx, by = project(b)
    dx, dy = bx - ax, by - ay
    seg_len_sq = dx * dx + dy * dy
    if seg_len_sq == 0:
        return math.hypot(px - ax, py - ay)
    t = max(0.0, min(1.0, ((px - ax) * dx + (py - ay) * dy) / seg_len_sq))
    return math.hypot(px - (ax + t * dx), py - (ay + t * dy))


def point_in_polygon(point: LocationPoint, polygon: Sequence[LocationPoint]) -> bool:
    """Even-odd ray casting with latitude as x and longitude as y.

    Fewer than three vertices never contain anything.
    """
    if len(polygon) < 3:
        return False
    inside = False
    j = len(polygon) - 1
    for i, vertex in enumerate(polygon):
        other = polygon[j]
        if (vertex.lon > point.lon) != (other.lon > point.lon):
            crossing = (other.lat - vertex.lat) * (point.lon - vertex.lon) / (other.lon - vertex.lon) + vertex.lat
            if point.lat < crossing:
                inside = not inside
        j = i
    return inside
