"""Greedy stop selection by cheapest insertion."""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass, field
from itertools import takewhile
from typing import Callable, Optional, Sequence

from itinerary_jobs.domain.constants import category_group
from itinerary_jobs.domain.enums import CategoryGroup
from itinerary_jobs.planner.legs import Waypoint
from itinerary_jobs.planner.opening_hours import is_open_for_visit
from itinerary_jobs.planner.scoring import ScoredCandidate

TravelFn = Callable[[Waypoint, Waypoint], int]


@dataclass
class Insertion:
    position: int
    added_travel: int
    total_minutes: int


@dataclass
class SelectionOutcome:
    stops: list[ScoredCandidate] = field(default_factory=list)
    hours_rejected: set[str] = field(default_factory=set)
    budget_rejected: set[str] = field(default_factory=set)
    balance_rejected: set[str] = field(default_factory=set)
    hours_deferred: set[str] = field(default_factory=set)
    backtrack_limit_hit: bool = False

    @property
    def only_hours_rejections(self) -> bool:
        """Every candidate that was turned down failed the opening-hours check."""
        if not (self.hours_rejected or self.hours_deferred):
            return False
        return not (self.budget_rejected or self.balance_rejected)


def _travel_total(sequence: Sequence[ScoredCandidate], start: Waypoint, end: Waypoint, travel: TravelFn) -> int:
    points = [start] + [Waypoint.for_candidate(c) for c in sequence] + [end]
    return sum(travel(a, b) for a, b in zip(points, points[1:]))


def _simulate(
    sequence: Sequence[ScoredCandidate],
    *,
    start: Waypoint,
    end: Waypoint,
    travel: TravelFn,
    journey_start: Optional[dt.datetime],
) -> tuple[int, int, bool]:
    """Returns (travel minutes, total minutes, every stop open)."""
    clock = 0
    travel_minutes = 0
    all_open = True
    previous = start
    for cand in sequence:
        here = Waypoint.for_candidate(cand)
        leg = travel(previous, here)
        travel_minutes += leg
        clock += leg
        arrive = clock
        clock += cand.visit_minutes
        if journey_start is not None and all_open:
            all_open = is_open_for_visit(
                cand.poi,
                journey_start + dt.timedelta(minutes=arrive),
                journey_start + dt.timedelta(minutes=clock),
            )
        previous = here
    leg = travel(previous, end)
    return travel_minutes + leg, clock + leg, all_open


def best_insertion(
    sequence: Sequence[ScoredCandidate],
    cand: ScoredCandidate,
    *,
    start: Waypoint,
    end: Waypoint,
    travel: TravelFn,
    budget_minutes: int,
    journey_start: Optional[dt.datetime],
) -> tuple[Optional[Insertion], str]:
    """Cheapest feasible position for ``cand``.

    Returns the insertion, or None with ``"hours"`` when some position fits
    the budget but breaks opening hours, else ``"budget"``.
    """
    base_travel = _travel_total(sequence, start, end, travel)
    best: Optional[Insertion] = None
    hours_blocked = False
    for position in range(len(sequence) + 1):
        trial = list(sequence[:position]) + [cand] + list(sequence[position:])
        travel_minutes, total, all_open = _simulate(
            trial, start=start, end=end, travel=travel, journey_start=journey_start
        )
        if total > budget_minutes:
            continue
        if not all_open:
            hours_blocked = True
            continue
        added = travel_minutes - base_travel
        if best is None or added < best.added_travel:
            best = Insertion(position=position, added_travel=added, total_minutes=total)
    if best is not None:
        return best, ""
    return None, "hours" if hours_blocked else "budget"


def _group_exhausted(cand: ScoredCandidate, counts: dict[CategoryGroup, int], limits: dict[CategoryGroup, int]) -> bool:
    group = category_group(cand.poi.category)
    limit = limits.get(group)
    return limit is not None and counts.get(group, 0) >= limit


def select_stops(
    candidates: Sequence[ScoredCandidate],
    *,
    start: Waypoint,
    end: Waypoint,
    travel: TravelFn,
    budget_minutes: int,
    max_stops: int,
    journey_start: Optional[dt.datetime] = None,
    max_hours_backtracks: int = 10,
    max_food_stops: Optional[int] = None,
    max_cultural_stops: Optional[int] = None,
) -> SelectionOutcome:
    """Add stops one at a time in priority order.

    ``candidates`` must already be in priority order. Candidates with equal
    score and rating form a tie group; every member is tried and the one with
    the smallest added travel wins (then the smaller id). Each step scans down
    the list until something fits. Candidates over budget or over a balance
    cap are dropped for good. The first ``max_hours_backtracks`` candidates a
    step turns down for opening hours are dropped as well; past that bound
    they are only passed over, and the next step tries them again against
    the longer schedule. Already placed stops are never moved.
    ``journey_start=None`` skips the opening-hours check.
    """
    limits: dict[CategoryGroup, int] = {}
    if max_food_stops is not None:
        limits[CategoryGroup.FOOD] = max_food_stops
    if max_cultural_stops is not None:
        limits[CategoryGroup.CULTURAL] = max_cultural_stops

    outcome = SelectionOutcome()
    remaining = list(candidates)
    counts: dict[CategoryGroup, int] = {}

    while len(outcome.stops) < max_stops and remaining:
        backtracks = 0
        unseen = list(remaining)
        dropped: set[str] = set()
        chosen: Optional[tuple[int, str, ScoredCandidate, Insertion]] = None
        while unseen and chosen is None:
            head = unseen[0]
            group = list(takewhile(lambda c: (c.score, c.rating) == (head.score, head.rating), unseen))
            unseen = unseen[len(group):]
            feasible: list[tuple[int, str, ScoredCandidate, Insertion]] = []
            for cand in group:
                if _group_exhausted(cand, counts, limits):
                    outcome.balance_rejected.add(cand.id)
                    dropped.add(cand.id)
                    continue
                insertion, why = best_insertion(
                    outcome.stops,
                    cand,
                    start=start,
                    end=end,
                    travel=travel,
                    budget_minutes=budget_minutes,
                    journey_start=journey_start,
                )
                if insertion is not None:
                    feasible.append((insertion.added_travel, cand.id, cand, insertion))
                elif why == "hours" and backtracks < max_hours_backtracks:
                    backtracks += 1
                    outcome.hours_rejected.add(cand.id)
                    outcome.hours_deferred.discard(cand.id)
                    dropped.add(cand.id)
                elif why == "hours":
                    outcome.backtrack_limit_hit = True
                    outcome.hours_deferred.add(cand.id)
                else:
                    outcome.budget_rejected.add(cand.id)
                    outcome.hours_deferred.discard(cand.id)
                    dropped.add(cand.id)
            if feasible:
                chosen = min(feasible, key=lambda row: (row[0], row[1]))

        remaining = [c for c in remaining if c.id not in dropped]
        if chosen is None:
            break
        _, _, cand, insertion = chosen
        outcome.stops.insert(insertion.position, cand)
        outcome.hours_deferred.discard(cand.id)
        remaining = [c for c in remaining if c.id != cand.id]
        group_key = category_group(cand.poi.category)
        counts[group_key] = counts.get(group_key, 0) + 1

    return outcome
