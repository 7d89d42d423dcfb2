"""Itinerary planner: turns one request into a feasible ordered itinerary."""

from __future__ import annotations

import datetime as dt
from concurrent.futures import ThreadPoolExecutor
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from itinerary_jobs.adapters.tool_factory import ProviderSet
from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.enums import FailureReason
from itinerary_jobs.domain.exceptions import PlanningInfeasible
from itinerary_jobs.domain.models import ItineraryRequest, ItineraryResult
from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.observability.job_metrics import JobMetrics
from itinerary_jobs.planner.candidates import (
    enrich_dwell,
    gather_candidates,
    localized_descriptions,
    prefilter_open,
    reachable_area,
    rerank_candidates,
    resolve_categories,
    search_radius_km,
)
from itinerary_jobs.planner.legs import LegCalculator, Waypoint, build_result, materialize
from itinerary_jobs.planner.provider_calls import ProviderCaller
from itinerary_jobs.planner.selection import select_stops
from itinerary_jobs.shared.deadline import Deadline
from itinerary_jobs.shared.exceptions import ToolError


def _utc_now() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


def resolve_zone(name: str) -> dt.tzinfo:
    if not name or name.strip().upper() in {"UTC", "Z", "ETC/UTC"}:
        return dt.timezone.utc
    try:
        return ZoneInfo(name.strip())
    except (ZoneInfoNotFoundError, ValueError):
        return dt.timezone.utc


class ItineraryPlanner:
    """Builds itineraries with the providers in ``providers``.

    ``build`` either returns a validated ``ItineraryResult`` (possibly with no
    stops), raises ``PlanningInfeasible`` for expected outcomes, or lets any
    other error through so the caller can retry.
    """

    def __init__(
        self,
        providers: ProviderSet,
        settings: PlannerSettings,
        *,
        metrics: Optional[JobMetrics] = None,
        clock: Callable[[], dt.datetime] = _utc_now,
    ):
        self._providers = providers
        self._settings = settings
        self._metrics = metrics
        self._clock = clock

    def build(
        self,
        request: ItineraryRequest,
        deadline: Optional[Deadline] = None,
        *,
        logger: Optional[StructuredLogger] = None,
        journey_start: Optional[dt.datetime] = None,
    ) -> ItineraryResult:
        deadline = deadline or Deadline.unbounded()
        logger = logger or StructuredLogger()
        executor = ThreadPoolExecutor(
            max_workers=self._settings.provider_max_parallelism,
            thread_name_prefix="planner-io",
        )
        caller = ProviderCaller(
            executor,
            deadline,
            call_timeout=self._settings.provider_call_timeout_seconds,
            logger=logger,
            metrics=self._metrics,
        )
        try:
            return self._plan(request, caller, logger, journey_start)
        finally:
            # Calls stuck past the deadline are left to finish in the background.
            executor.shutdown(wait=False, cancel_futures=True)

    def _journey_start(
        self,
        request: ItineraryRequest,
        caller: ProviderCaller,
        logger: StructuredLogger,
    ) -> dt.datetime:
        """Local wall-clock start of the journey, without tzinfo."""
        departure = request.departure_time
        if departure is not None and departure.tzinfo is None:
            return departure.replace(second=0, microsecond=0)
        try:
            zone = resolve_zone(caller.call("timezone", self._providers.timezone.timezone_for, request.start))
        except ToolError as exc:
            logger.warning("timezone", f"time zone lookup failed, using UTC: {exc}")
            zone = dt.timezone.utc
        moment = departure if departure is not None else self._clock()
        return moment.astimezone(zone).replace(tzinfo=None, second=0, microsecond=0)

    def _plan(
        self,
        request: ItineraryRequest,
        caller: ProviderCaller,
        logger: StructuredLogger,
        journey_start: Optional[dt.datetime],
    ) -> ItineraryResult:
        settings = self._settings
        providers = self._providers
        budget = request.max_duration_minutes
        start = Waypoint.start(request.start)
        end = Waypoint.end(request.end)
        legs = LegCalculator(caller, providers.route, settings, request.mode)

        logger.step_start("commute")
        direct = legs.route(start, end)
        logger.step_end("commute", travel_minutes=direct.travel_minutes)
        if direct.travel_minutes > budget:
            raise PlanningInfeasible(
                FailureReason.COMMUTE_EXCEEDS_BUDGET,
                f"Direct travel takes {direct.travel_minutes} min, over the {budget} min budget",
            )

        if journey_start is None:
            journey_start = self._journey_start(request, caller, logger)

        logger.step_start("candidates")
        categories = resolve_categories(request, caller, providers.interest_mapper, settings)
        area = reachable_area(
            request,
            settings,
            direct.travel_minutes,
            caller=caller,
            tool=providers.isochrone,
            logger=logger,
        )
        radius_km = search_radius_km(request, settings, direct.travel_minutes, bounded_by_area=area is not None)
        candidates = gather_candidates(
            request,
            categories,
            radius_km=radius_km,
            caller=caller,
            search=providers.poi_search,
            settings=settings,
            logger=logger,
            area=area,
        )
        logger.step_end(
            "candidates",
            categories=categories,
            radius_km=round(radius_km, 2),
            reachable_area=area is not None,
            count=len(candidates),
        )
        if not candidates:
            where = "the reachable area" if area is not None else f"{radius_km:.1f} km"
            raise PlanningInfeasible(
                FailureReason.NO_POIS_IN_ISOCHRONE,
                f"No points of interest within {where} by {request.mode.value}",
            )

        candidates = enrich_dwell(
            candidates,
            request=request,
            caller=caller,
            estimator=providers.dwell_estimator,
            settings=settings,
        )

        check_hours = settings.strict_opening_hours
        if check_hours:
            candidates = prefilter_open(candidates, journey_start=journey_start, budget_minutes=budget)
            if not candidates:
                raise PlanningInfeasible(
                    FailureReason.NO_OPEN_POIS,
                    "Every nearby point of interest is closed during the journey",
                )

        candidates = rerank_candidates(
            candidates,
            request=request,
            caller=caller,
            reranker=providers.reranker,
            settings=settings,
            logger=logger,
        )

        caller.deadline.check("selection")
        logger.step_start("selection")
        outcome = select_stops(
            candidates,
            start=start,
            end=end,
            travel=legs.estimate,
            budget_minutes=budget,
            max_stops=settings.max_pois,
            journey_start=journey_start if check_hours else None,
            max_hours_backtracks=settings.max_hours_backtracks,
            max_food_stops=settings.max_food_stops,
            max_cultural_stops=settings.max_cultural_stops,
        )
        logger.step_end(
            "selection",
            selected=[c.id for c in outcome.stops],
            hours_rejected=len(outcome.hours_rejected),
            hours_deferred=len(outcome.hours_deferred),
            budget_rejected=len(outcome.budget_rejected),
        )
        if not outcome.stops and check_hours and outcome.only_hours_rejections:
            raise PlanningInfeasible(
                FailureReason.NO_OPEN_POIS,
                "No point of interest is open when the journey could reach it",
            )

        logger.step_start("routing")
        stops, routes, dropped = materialize(
            outcome.stops,
            start=start,
            end=end,
            legs=legs,
            budget_minutes=budget,
            journey_start=journey_start,
            check_hours=check_hours,
        )
        logger.step_end("routing", stops=len(stops), dropped=dropped, fallback_legs=legs.fallback_legs)

        descriptions = localized_descriptions(
            stops,
            request=request,
            caller=caller,
            describer=providers.describer,
            settings=settings,
        )
        result = build_result(
            request,
            stops,
            routes,
            start=start,
            end=end,
            journey_start=journey_start,
            descriptions=descriptions,
        )
        logger.summary(
            stops=result.summary.stops_count,
            total_duration_minutes=result.summary.total_duration_minutes,
            budget_minutes=budget,
        )
        return result


__all__ = ["ItineraryPlanner", "resolve_zone"]
