import datetime as dt

from itinerary_jobs.domain.models import CandidatePoi, DaySchedule, LocationPoint
from itinerary_jobs.planner.legs import Waypoint
from itinerary_jobs.planner.scoring import ScoredCandidate
from itinerary_jobs.planner.selection import best_insertion, select_stops

ORIGIN = LocationPoint(lat=0.0, lon=0.0)
START = Waypoint.start(ORIGIN)
END = Waypoint.end(ORIGIN)
# Wednesday morning.
JOURNEY_START = dt.datetime(2024, 6, 5, 10, 0)


def _line_travel(a: Waypoint, b: Waypoint) -> int:
    """One minute per 0.01 degree of longitude."""
    return int(round(abs(a.point.lon - b.point.lon) * 100))


def _cand(poi_id, lon, score, *, visit=30, rating=4.0, category="museum", hours=None) -> ScoredCandidate:
    poi = CandidatePoi(
        id=poi_id,
        name=poi_id,
        lat=0.0,
        lon=lon,
        rating=rating,
        category=category,
        opening_hours=hours,
    )
    return ScoredCandidate(poi=poi, score=score, visit_minutes=visit)


def _select(candidates, **kwargs):
    params = {"start": START, "end": END, "travel": _line_travel, "budget_minutes": 100, "max_stops": 5}
    params.update(kwargs)
    return select_stops(candidates, **params)


def test_candidates_over_budget_are_skipped():
    outcome = _select([_cand("far", 0.5, 0.9), _cand("near", 0.1, 0.8)])
    assert [c.id for c in outcome.stops] == ["near"]
    assert outcome.budget_rejected == {"far"}
    assert not outcome.only_hours_rejections


def test_max_stops_caps_the_selection():
    outcome = _select([_cand("a", 0.05, 0.9), _cand("b", 0.06, 0.8), _cand("c", 0.07, 0.7)], max_stops=2)
    assert {c.id for c in outcome.stops} == {"a", "b"}


def test_stops_are_inserted_where_travel_grows_least():
    outcome = _select(
        [_cand("mid", 0.2, 0.9, visit=10), _cand("far", 0.3, 0.8, visit=10), _cand("near", 0.1, 0.7, visit=10)],
        end=Waypoint.end(LocationPoint(lat=0.0, lon=0.4)),
    )
    assert [c.id for c in outcome.stops] == ["near", "mid", "far"]


def test_tie_group_prefers_smallest_added_travel():
    outcome = _select([_cand("a-far", 0.3, 0.5), _cand("z-near", 0.05, 0.5)], max_stops=1)
    assert [c.id for c in outcome.stops] == ["z-near"]


def test_closed_candidates_are_rejected_for_hours():
    tuesday_only = [DaySchedule(day_of_week=2, open_time="09:00", close_time="18:00")]
    outcome = _select([_cand("closed", 0.1, 0.9, hours=tuesday_only)], journey_start=JOURNEY_START)
    assert outcome.stops == []
    assert outcome.hours_rejected == {"closed"}
    assert outcome.only_hours_rejections


def test_hours_are_ignored_without_journey_start():
    tuesday_only = [DaySchedule(day_of_week=2, open_time="09:00", close_time="18:00")]
    outcome = _select([_cand("closed", 0.1, 0.9, hours=tuesday_only)])
    assert [c.id for c in outcome.stops] == ["closed"]


def test_food_cap_limits_restaurants():
    food = [_cand(f"r{i}", 0.01 * (i + 1), 0.9 - i * 0.1, category="restaurant") for i in range(3)]
    outcome = _select(food, budget_minutes=300, max_food_stops=1)
    assert [c.id for c in outcome.stops] == ["r0"]
    assert outcome.balance_rejected == {"r1", "r2"}


def test_closed_candidate_gives_way_to_next_best():
    tuesday_only = [DaySchedule(day_of_week=2, open_time="09:00", close_time="18:00")]
    outcome = _select(
        [_cand("closed", 0.1, 0.9, hours=tuesday_only), _cand("open", 0.2, 0.5)],
        journey_start=JOURNEY_START,
    )
    assert [c.id for c in outcome.stops] == ["open"]
    assert outcome.hours_rejected == {"closed"}
    assert not outcome.backtrack_limit_hit


def test_backtrack_limit_keeps_scanning_lower_priorities():
    sunday_only = [DaySchedule(day_of_week=0, open_time="09:00", close_time="10:00")]
    candidates = [_cand(f"c{i}", 0.05, 0.9 - i * 0.1, hours=sunday_only) for i in range(3)]
    candidates.append(_cand("open", 0.05, 0.1))
    outcome = _select(candidates, journey_start=JOURNEY_START, max_hours_backtracks=1)

    assert [c.id for c in outcome.stops] == ["open"]
    assert outcome.backtrack_limit_hit
    # One drop per step; the rest are passed over and tried again next step.
    assert outcome.hours_rejected == {"c0", "c1"}
    assert outcome.hours_deferred == {"c2"}


def test_all_closed_past_the_limit_still_counts_as_hours_only():
    sunday_only = [DaySchedule(day_of_week=0, open_time="09:00", close_time="10:00")]
    candidates = [_cand(f"c{i}", 0.05, 0.9 - i * 0.1, hours=sunday_only) for i in range(3)]
    outcome = _select(candidates, journey_start=JOURNEY_START, max_hours_backtracks=1)

    assert outcome.stops == []
    assert outcome.hours_rejected == {"c0"}
    assert outcome.hours_deferred == {"c1", "c2"}
    assert outcome.only_hours_rejections


def test_mixed_rejections_are_not_hours_only():
    sunday_only = [DaySchedule(day_of_week=0, open_time="09:00", close_time="10:00")]
    outcome = _select(
        [_cand("closed", 0.05, 0.9, hours=sunday_only), _cand("far", 0.9, 0.8)],
        journey_start=JOURNEY_START,
        max_hours_backtracks=0,
    )
    assert outcome.stops == []
    assert outcome.hours_deferred == {"closed"}
    assert outcome.budget_rejected == {"far"}
    assert not outcome.only_hours_rejections


def test_best_insertion_reports_budget_reason():
    insertion, why = best_insertion(
        [],
        _cand("far", 1.0, 0.9),
        start=START,
        end=END,
        travel=_line_travel,
        budget_minutes=60,
        journey_start=None,
    )
    assert insertion is None
    assert why == "budget"
