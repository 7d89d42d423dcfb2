import datetime as dt

import pytest

from itinerary_jobs.adapters.language.keyword import CategoryDwellEstimator, KeywordInterestMapper
from itinerary_jobs.adapters.maps.offline import OfflineMapsProvider, load_fixture
from itinerary_jobs.adapters.tool_factory import ProviderSet
from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.constants import category_group
from itinerary_jobs.domain.enums import CategoryGroup, FailureReason
from itinerary_jobs.domain.exceptions import PlanningInfeasible
from itinerary_jobs.domain.models import CandidatePoi, ItineraryRequest, LocationPoint
from itinerary_jobs.planner.core import ItineraryPlanner, resolve_zone
from itinerary_jobs.planner.opening_hours import is_open_for_visit
from itinerary_jobs.shared.deadline import Deadline
from itinerary_jobs.shared.exceptions import DeadlineExceeded, ExternalServiceError, ToolError
from itinerary_jobs.tools.interfaces import RerankResult

PARIS = {"lat": 48.8566, "lon": 2.3522}
# Wednesday.
WEDNESDAY_10AM = dt.datetime(2024, 6, 5, 10, 0)


class _FailingSearch:
    def search_pois(self, params):
        raise ToolError("poi", "HTTP 503", kind="upstream_error")

    def search_text(self, params):
        raise ToolError("poi", "HTTP 503", kind="upstream_error")


class _FixedTimezone:
    def __init__(self, name="Europe/Paris"):
        self.name = name
        self.calls = 0

    def timezone_for(self, point):
        self.calls += 1
        return self.name


class _SquareArea:
    """Reachable area: a square of +-0.01 degrees around the requested center."""

    def __init__(self, error=None):
        self.error = error
        self.calls = 0

    def reachable_area(self, params):
        self.calls += 1
        if self.error is not None:
            raise self.error
        c = params.center
        return [
            LocationPoint(lat=c.lat - 0.01, lon=c.lon - 0.01),
            LocationPoint(lat=c.lat - 0.01, lon=c.lon + 0.01),
            LocationPoint(lat=c.lat + 0.01, lon=c.lon + 0.01),
            LocationPoint(lat=c.lat + 0.01, lon=c.lon - 0.01),
        ]


class _ReverseReranker:
    def __init__(self):
        self.seen = []

    def rerank(self, params):
        self.seen = [poi.id for poi in params.candidates]
        return RerankResult(ordered_ids=list(reversed(self.seen)), rationale="variety first")


class _BrokenReranker:
    def rerank(self, params):
        raise ToolError("rerank", "model call failed")


def _providers(settings, fixture=None, **overrides) -> ProviderSet:
    maps = OfflineMapsProvider(settings, fixture)
    params = dict(
        interest_mapper=KeywordInterestMapper(),
        poi_search=maps,
        dwell_estimator=CategoryDwellEstimator(),
        route=maps,
        timezone=maps,
    )
    params.update(overrides)
    return ProviderSet(**params)


def _request(**overrides) -> ItineraryRequest:
    payload = {"start": PARIS, "end": PARIS, "max_duration_minutes": 240, "mode": "walking"}
    payload.update(overrides)
    return ItineraryRequest.model_validate(payload)


def _planner(settings=None, fixture=None, **overrides) -> ItineraryPlanner:
    settings = settings or PlannerSettings()
    return ItineraryPlanner(_providers(settings, fixture, **overrides), settings)


def _fixture_pois() -> dict[str, CandidatePoi]:
    return {raw["id"]: CandidatePoi.model_validate(raw) for raw in load_fixture()["pois"]}


def test_paris_round_trip_is_feasible():
    settings = PlannerSettings()
    result = _planner(settings).build(_request(), journey_start=WEDNESDAY_10AM)

    ids = [stop.id for stop in result.stops]
    assert 1 <= len(ids) <= settings.max_pois
    assert len(set(ids)) == len(ids)
    assert result.fits_budget(240)
    assert result.legs[0].from_id == "start"
    assert result.legs[-1].to_id == "end"

    pois = _fixture_pois()
    for stop in result.stops:
        arrive = WEDNESDAY_10AM + dt.timedelta(minutes=stop.arrive_from_journey_start)
        depart = WEDNESDAY_10AM + dt.timedelta(minutes=stop.depart_from_journey_start)
        assert is_open_for_visit(pois[stop.id], arrive, depart)
    groups = [category_group(stop.category) for stop in result.stops]
    assert groups.count(CategoryGroup.FOOD) <= settings.max_food_stops
    assert groups.count(CategoryGroup.CULTURAL) <= settings.max_cultural_stops


def test_same_request_gives_same_itinerary():
    planner = _planner()
    first = planner.build(_request(interests="museums and parks"), journey_start=WEDNESDAY_10AM)
    second = planner.build(_request(interests="museums and parks"), journey_start=WEDNESDAY_10AM)
    assert first.model_dump() == second.model_dump()


def test_commute_longer_than_budget_is_infeasible():
    lyon = {"lat": 45.764, "lon": 4.8357}
    with pytest.raises(PlanningInfeasible) as exc_info:
        _planner().build(_request(end=lyon, max_duration_minutes=720), journey_start=WEDNESDAY_10AM)
    assert exc_info.value.reason is FailureReason.COMMUTE_EXCEEDS_BUDGET


def test_open_ocean_has_no_pois():
    ocean = {"lat": 0.0, "lon": -30.0}
    with pytest.raises(PlanningInfeasible) as exc_info:
        _planner().build(_request(start=ocean, end=ocean), journey_start=WEDNESDAY_10AM)
    assert exc_info.value.reason is FailureReason.NO_POIS_IN_ISOCHRONE


def _museum(poi_id, lat, hours, visit=None):
    return {
        "id": poi_id,
        "name": poi_id.title(),
        "lat": lat,
        "lon": PARIS["lon"],
        "category": "museum",
        "rating": 4.5,
        "opening_hours": hours,
        "visit_minutes": visit,
    }


def test_everything_closed_is_no_open_pois():
    monday_only = [{"day_of_week": 1, "open_time": "09:00", "close_time": "18:00"}]
    fixture = {
        "timezone": "Europe/Paris",
        "pois": [_museum("m1", 48.858, monday_only), _museum("m2", 48.859, monday_only)],
    }
    with pytest.raises(PlanningInfeasible) as exc_info:
        _planner(fixture=fixture).build(_request(), journey_start=WEDNESDAY_10AM)
    assert exc_info.value.reason is FailureReason.NO_OPEN_POIS


def test_closing_before_arrival_is_no_open_pois():
    # Open 40 minutes, but the walk there already takes 17.
    short_window = [{"day_of_week": 3, "open_time": "10:00", "close_time": "10:40"}]
    fixture = {"timezone": "Europe/Paris", "pois": [_museum("m1", PARIS["lat"] + 0.009, short_window, visit=30)]}
    with pytest.raises(PlanningInfeasible) as exc_info:
        _planner(fixture=fixture).build(_request(max_duration_minutes=120), journey_start=WEDNESDAY_10AM)
    assert exc_info.value.reason is FailureReason.NO_OPEN_POIS


def test_closed_favourites_do_not_hide_an_open_museum():
    afternoon = [{"day_of_week": 3, "open_time": "14:00", "close_time": "18:00"}]
    favourites = [dict(_museum(f"m{i}", 48.857 + i * 0.001, afternoon), rating=5.0) for i in (1, 2, 3)]
    always_open = dict(_museum("m4", 48.861, None), rating=3.0)
    fixture = {"timezone": "Europe/Paris", "pois": favourites + [always_open]}
    settings = PlannerSettings(max_hours_backtracks=2)

    result = _planner(settings, fixture=fixture).build(
        _request(interests="museum", max_duration_minutes=480), journey_start=WEDNESDAY_10AM
    )
    assert "m4" in [stop.id for stop in result.stops]


def test_relaxed_hours_ignore_schedules():
    monday_only = [{"day_of_week": 1, "open_time": "09:00", "close_time": "18:00"}]
    fixture = {"timezone": "Europe/Paris", "pois": [_museum("m1", 48.858, monday_only)]}
    settings = PlannerSettings(strict_opening_hours=False)
    result = _planner(settings, fixture=fixture).build(_request(), journey_start=WEDNESDAY_10AM)
    assert [stop.id for stop in result.stops] == ["m1"]


def _inside_and_outside_fixture():
    return {
        "timezone": "Europe/Paris",
        "pois": [
            _museum("m-in", PARIS["lat"] + 0.005, None, visit=30),
            _museum("m-out", PARIS["lat"] + 0.015, None, visit=30),
        ],
    }


def test_isochrone_mode_keeps_only_reachable_pois():
    area = _SquareArea()
    settings = PlannerSettings(search_radius_mode="isochrone")
    planner = _planner(settings, fixture=_inside_and_outside_fixture(), isochrone=area)
    result = planner.build(_request(), journey_start=WEDNESDAY_10AM)

    assert area.calls == 1
    assert [stop.id for stop in result.stops] == ["m-in"]


def test_isochrone_failure_falls_back_to_reachable_radius():
    area = _SquareArea(error=ToolError("isochrone", "HTTP 503", kind="upstream_error"))
    settings = PlannerSettings(search_radius_mode="isochrone")
    planner = _planner(settings, fixture=_inside_and_outside_fixture(), isochrone=area)
    result = planner.build(_request(), journey_start=WEDNESDAY_10AM)

    assert area.calls == 1
    assert {stop.id for stop in result.stops} == {"m-in", "m-out"}


def test_all_searches_failing_is_retryable_error():
    with pytest.raises(ExternalServiceError):
        _planner(poi_search=_FailingSearch()).build(_request(), journey_start=WEDNESDAY_10AM)


def test_reranker_order_is_applied():
    reranker = _ReverseReranker()
    result = _planner(reranker=reranker).build(_request(), journey_start=WEDNESDAY_10AM)
    assert len(reranker.seen) >= 2
    assert result.summary.stops_count >= 1


def test_reranker_failure_keeps_deterministic_order():
    plain = _planner().build(_request(), journey_start=WEDNESDAY_10AM)
    tolerant = _planner(reranker=_BrokenReranker()).build(_request(), journey_start=WEDNESDAY_10AM)
    assert [s.id for s in tolerant.stops] == [s.id for s in plain.stops]


def test_naive_departure_is_local_time():
    tz = _FixedTimezone()
    request = _request(departure_time=dt.datetime(2024, 6, 5, 10, 0))
    result = _planner(timezone=tz).build(request)
    assert tz.calls == 0
    first = result.stops[0]
    expected = WEDNESDAY_10AM + dt.timedelta(minutes=first.arrive_from_journey_start)
    assert first.visit_start == expected.strftime("%H:%M")


def test_aware_departure_converts_to_start_zone():
    tz = _FixedTimezone("UTC")
    departure = dt.datetime(2024, 6, 5, 10, 0, tzinfo=dt.timezone(dt.timedelta(hours=2)))
    result = _planner(timezone=tz).build(_request(departure_time=departure))
    assert tz.calls == 1
    first = result.stops[0]
    expected = dt.datetime(2024, 6, 5, 8, 0) + dt.timedelta(minutes=first.arrive_from_journey_start)
    assert first.visit_start == expected.strftime("%H:%M")


def test_expired_deadline_aborts_the_run():
    expired = Deadline(expires_at=0.0, clock=lambda: 1.0)
    with pytest.raises(DeadlineExceeded):
        _planner().build(_request(), expired, journey_start=WEDNESDAY_10AM)


def test_resolve_zone_falls_back_to_utc():
    assert resolve_zone("UTC") is dt.timezone.utc
    assert resolve_zone("") is dt.timezone.utc
    assert resolve_zone("Not/AZone") is dt.timezone.utc
