"""Leg estimation, authoritative routing and itinerary materialization."""

from __future__ import annotations

import datetime as dt
import logging
from dataclasses import dataclass
from typing import Optional, Sequence

from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.constants import END_MARKER, START_MARKER
from itinerary_jobs.domain.enums import FailureReason, TravelMode
from itinerary_jobs.domain.exceptions import PlanningInfeasible
from itinerary_jobs.domain.models import (
    ItineraryLeg,
    ItineraryRequest,
    ItineraryResult,
    ItineraryStop,
    ItinerarySummary,
    LocationPoint,
)
from itinerary_jobs.infrastructure.cache import RouteCache
from itinerary_jobs.planner.distance import estimate_distance_meters, estimate_travel_minutes
from itinerary_jobs.planner.opening_hours import is_open_for_visit
from itinerary_jobs.planner.provider_calls import ProviderCaller
from itinerary_jobs.planner.scoring import ScoredCandidate
from itinerary_jobs.shared.exceptions import RouteNotFoundError, ToolError
from itinerary_jobs.tools.interfaces import RouteInput, RouteResult, RouteTool

_logger = logging.getLogger("itinerary-jobs.planner")


@dataclass(frozen=True)
class Waypoint:
    id: str
    name: str
    point: LocationPoint

    @classmethod
    def start(cls, point: LocationPoint) -> "Waypoint":
        return cls(START_MARKER, "Start", point)

    @classmethod
    def end(cls, point: LocationPoint) -> "Waypoint":
        return cls(END_MARKER, "End", point)

    @classmethod
    def for_candidate(cls, cand: ScoredCandidate) -> "Waypoint":
        return cls(cand.poi.id, cand.poi.name, cand.poi.location)


class LegCalculator:
    """Travel times for one planning run.

    ``estimate`` is the average-speed approximation used while choosing stops.
    ``route`` asks the routing provider and caches per run. A provider that
    finds no route fails the job; any other provider error falls back to the
    estimate for that leg.
    """

    def __init__(self, caller: ProviderCaller, route_tool: RouteTool, settings: PlannerSettings, mode: TravelMode):
        self._caller = caller
        self._route_tool = route_tool
        self._settings = settings
        self._mode = mode
        self._cache = RouteCache()
        self._estimates: dict[tuple[str, str], RouteResult] = {}
        self.fallback_legs = 0

    def _approximate(self, a: LocationPoint, b: LocationPoint) -> RouteResult:
        distance = estimate_distance_meters(a, b, self._settings.detour_factor)
        minutes = estimate_travel_minutes(distance, self._settings.avg_speed_kmh[self._mode])
        return RouteResult(distance_meters=distance, travel_minutes=minutes)

    def estimate(self, a: Waypoint, b: Waypoint) -> int:
        key = (a.id, b.id)
        cached = self._estimates.get(key)
        if cached is None:
            cached = self._approximate(a.point, b.point)
            self._estimates[key] = cached
        return cached.travel_minutes

    def _cache_key(self, a: LocationPoint, b: LocationPoint) -> tuple:
        return RouteCache.key(a, b, self._mode)

    def route(self, a: Waypoint, b: Waypoint) -> RouteResult:
        return self.route_many([(a, b)])[0]

    def route_many(self, pairs: Sequence[tuple[Waypoint, Waypoint]]) -> list[RouteResult]:
        results: dict[tuple, RouteResult] = {}
        missing: dict[tuple, tuple[Waypoint, Waypoint]] = {}
        for a, b in pairs:
            key = self._cache_key(a.point, b.point)
            if a.point == b.point:
                results[key] = RouteResult(distance_meters=0, travel_minutes=0)
                continue
            cached = self._cache.get(key)
            if cached is not None:
                results[key] = cached
            else:
                missing.setdefault(key, (a, b))

        def compute(pair: tuple[Waypoint, Waypoint]) -> RouteResult:
            origin, destination = pair
            return self._route_tool.compute_leg(
                RouteInput(origin=origin.point, destination=destination.point, mode=self._mode)
            )

        for (a, b), outcome in self._caller.map("route", compute, list(missing.values())):
            key = self._cache_key(a.point, b.point)
            if isinstance(outcome, RouteNotFoundError):
                raise PlanningInfeasible(
                    FailureReason.ROUTING_FAILED,
                    f"No route found from {a.name} to {b.name} by {self._mode.value}",
                )
            if isinstance(outcome, ToolError):
                self.fallback_legs += 1
                _logger.warning("Routing %s->%s fell back to the speed estimate: %s", a.id, b.id, outcome)
                outcome = self._approximate(a.point, b.point)
            self._cache.set(key, outcome)
            results[key] = outcome
        return [results[self._cache_key(a.point, b.point)] for a, b in pairs]


@dataclass
class _Timeline:
    arrivals: list[int]
    departures: list[int]
    leg_departures: list[int]
    leg_arrivals: list[int]
    total: int


def _timeline(stops: Sequence[ScoredCandidate], routes: Sequence[RouteResult]) -> _Timeline:
    clock = 0
    arrivals: list[int] = []
    departures: list[int] = []
    leg_departures: list[int] = []
    leg_arrivals: list[int] = []
    for idx, route in enumerate(routes):
        leg_departures.append(clock)
        clock += route.travel_minutes
        leg_arrivals.append(clock)
        if idx < len(stops):
            arrivals.append(clock)
            clock += stops[idx].visit_minutes
            departures.append(clock)
    return _Timeline(arrivals, departures, leg_departures, leg_arrivals, clock)


def _violations(
    stops: Sequence[ScoredCandidate],
    timeline: _Timeline,
    *,
    journey_start: dt.datetime,
    check_hours: bool,
) -> list[ScoredCandidate]:
    if not check_hours:
        return []
    closed = []
    for idx, cand in enumerate(stops):
        arrive = journey_start + dt.timedelta(minutes=timeline.arrivals[idx])
        depart = journey_start + dt.timedelta(minutes=timeline.departures[idx])
        if not is_open_for_visit(cand.poi, arrive, depart):
            closed.append(cand)
    return closed


def materialize(
    stops: Sequence[ScoredCandidate],
    *,
    start: Waypoint,
    end: Waypoint,
    legs: LegCalculator,
    budget_minutes: int,
    journey_start: dt.datetime,
    check_hours: bool,
) -> tuple[list[ScoredCandidate], list[RouteResult], int]:
    """Route the chosen sequence and drop stops until it is feasible.

    Over budget drops the lowest-scoring stop; an opening-hours miss drops the
    lowest-scoring stop among those that miss. Legs are recomputed after every
    drop. Returns the surviving stops, their legs and how many were dropped.
    """
    current = list(stops)
    dropped = 0
    while True:
        waypoints = [start] + [Waypoint.for_candidate(c) for c in current] + [end]
        routes = legs.route_many(list(zip(waypoints, waypoints[1:])))
        timeline = _timeline(current, routes)
        if not current:
            return current, routes, dropped

        victim: Optional[ScoredCandidate] = None
        if timeline.total > budget_minutes:
            victim = min(current, key=lambda c: (c.score, c.rating, c.id))
        else:
            closed = _violations(current, timeline, journey_start=journey_start, check_hours=check_hours)
            if closed:
                victim = min(closed, key=lambda c: (c.score, c.rating, c.id))
        if victim is None:
            return current, routes, dropped
        _logger.info("Dropping stop %s after routing (%d stops left)", victim.id, len(current) - 1)
        current = [c for c in current if c.id != victim.id]
        dropped += 1


def build_result(
    request: ItineraryRequest,
    stops: Sequence[ScoredCandidate],
    routes: Sequence[RouteResult],
    *,
    start: Waypoint,
    end: Waypoint,
    journey_start: dt.datetime,
    descriptions: Optional[dict[str, str]] = None,
) -> ItineraryResult:
    descriptions = descriptions or {}
    timeline = _timeline(stops, routes)
    waypoints = [start] + [Waypoint.for_candidate(c) for c in stops] + [end]

    legs = [
        ItineraryLeg(
            from_id=origin.id,
            to_id=destination.id,
            from_name=origin.name,
            to_name=destination.name,
            mode=request.mode,
            distance_meters=route.distance_meters,
            travel_minutes=route.travel_minutes,
            depart_from_journey_start=timeline.leg_departures[idx],
            arrive_from_journey_start=timeline.leg_arrivals[idx],
        )
        for idx, (origin, destination, route) in enumerate(zip(waypoints, waypoints[1:], routes))
    ]
    itinerary_stops = []
    for idx, cand in enumerate(stops):
        poi = cand.poi
        arrive = timeline.arrivals[idx]
        depart = timeline.departures[idx]
        itinerary_stops.append(
            ItineraryStop(
                id=poi.id,
                name=poi.name,
                address=poi.address,
                lat=poi.lat,
                lon=poi.lon,
                category=poi.category,
                rating=poi.rating,
                description=descriptions.get(poi.id) or poi.description,
                visit_minutes=cand.visit_minutes,
                arrive_from_journey_start=arrive,
                depart_from_journey_start=depart,
                visit_start=(journey_start + dt.timedelta(minutes=arrive)).strftime("%H:%M"),
                visit_end=(journey_start + dt.timedelta(minutes=depart)).strftime("%H:%M"),
            )
        )

    total_travel = sum(route.travel_minutes for route in routes)
    total_visit = sum(cand.visit_minutes for cand in stops)
    summary = ItinerarySummary(
        mode=request.mode,
        language=request.language,
        time_budget_minutes=request.max_duration_minutes,
        total_distance_meters=sum(route.distance_meters for route in routes),
        total_travel_minutes=total_travel,
        total_visit_minutes=total_visit,
        total_duration_minutes=timeline.total,
        stops_count=len(itinerary_stops),
    )
    return ItineraryResult(summary=summary, legs=legs, stops=itinerary_stops)
