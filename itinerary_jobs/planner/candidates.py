"""Candidate gathering: interest mapping, POI search, scoring and dwell times."""

from __future__ import annotations

import datetime as dt
from typing import Optional, Sequence

from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.models import CandidatePoi, ItineraryRequest, LocationPoint
from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.planner.distance import haversine_km, midpoint, point_in_polygon
from itinerary_jobs.planner.opening_hours import could_fit_window
from itinerary_jobs.planner.provider_calls import ProviderCaller
from itinerary_jobs.planner.scoring import ScoredCandidate, apply_rerank, dedupe_best, score_candidate
from itinerary_jobs.shared.exceptions import ExternalServiceError, ToolError
from itinerary_jobs.tools.interfaces import (
    CandidateReranker,
    DescriptionWriter,
    DwellEstimator,
    InterestMapper,
    IsochroneInput,
    IsochroneTool,
    PoiSearchInput,
    PoiSearchTool,
    PoiTextSearchInput,
    RerankInput,
)

MAX_CATEGORIES = 6
MIN_RADIUS_KM = 1.0
MIN_EXPLORE_MINUTES = 30
CATEGORY_TEXT_LIMIT = 10
INTEREST_TEXT_TERMS = 3
INTEREST_TEXT_LIMIT = 25


def explore_minutes(request: ItineraryRequest, direct_minutes: int) -> int:
    return max(MIN_EXPLORE_MINUTES, request.max_duration_minutes - direct_minutes)


def search_radius_km(
    request: ItineraryRequest,
    settings: PlannerSettings,
    direct_minutes: int,
    *,
    bounded_by_area: bool = False,
) -> float:
    """Fixed per-mode radius, or what the mode covers in the time left after the direct commute.

    A known reachable area does the bounding itself, so the search uses the
    full per-mode radius and the area filters the hits afterwards.
    """
    cap = settings.search_radius_km[request.mode]
    if settings.search_radius_mode == "fixed" or bounded_by_area:
        return cap
    reachable = settings.avg_speed_kmh[request.mode] * explore_minutes(request, direct_minutes) / 60.0
    return min(cap, max(MIN_RADIUS_KM, reachable))


def reachable_area(
    request: ItineraryRequest,
    settings: PlannerSettings,
    direct_minutes: int,
    *,
    caller: ProviderCaller,
    tool: Optional[IsochroneTool],
    logger: StructuredLogger,
) -> Optional[list[LocationPoint]]:
    """Boundary of what the mode reaches from the midpoint, or None to fall back to a radius."""
    if settings.search_radius_mode != "isochrone":
        return None
    if tool is None:
        logger.warning("isochrone", "no reachable-area provider, using the reachable radius")
        return None
    params = IsochroneInput(
        center=midpoint(request.start, request.end),
        mode=request.mode,
        minutes=explore_minutes(request, direct_minutes),
    )
    try:
        boundary = caller.call("isochrone", tool.reachable_area, params)
    except ToolError as exc:
        logger.warning("isochrone", f"reachable area lookup failed, using the reachable radius: {exc}")
        return None
    if not boundary or len(boundary) < 3:
        logger.warning("isochrone", "reachable area has no usable boundary, using the reachable radius")
        return None
    return list(boundary)


def resolve_categories(
    request: ItineraryRequest,
    caller: ProviderCaller,
    mapper: InterestMapper,
    settings: PlannerSettings,
) -> list[str]:
    if not request.interests:
        return list(settings.default_categories)
    area = midpoint(request.start, request.end)
    mapped = caller.call("interests", mapper.map_interests, request.interests, request.language, area)
    categories: list[str] = []
    for category in mapped or []:
        key = str(category).strip().lower()
        if key and key not in categories:
            categories.append(key)
    return categories[:MAX_CATEGORIES] or list(settings.default_categories)


def _search(
    categories: Sequence[str],
    *,
    center: LocationPoint,
    radius_km: float,
    request: ItineraryRequest,
    caller: ProviderCaller,
    search: PoiSearchTool,
    settings: PlannerSettings,
    logger: StructuredLogger,
) -> tuple[list[CandidatePoi], int]:
    def run(category: str) -> list[CandidatePoi]:
        found = search.search_pois(
            PoiSearchInput(
                center=center,
                category_ids=[category],
                radius_km=radius_km,
                limit=settings.pois_per_category,
                language=request.language,
            )
        )
        if found:
            return found
        try:
            return search.search_text(
                PoiTextSearchInput(
                    center=center,
                    query=category.replace("_", " "),
                    radius_km=radius_km,
                    limit=CATEGORY_TEXT_LIMIT,
                    language=request.language,
                    category=category,
                )
            )
        except ToolError as exc:
            logger.warning("poi_search", f"text search for {category} failed: {exc}")
            return []

    found: list[CandidatePoi] = []
    failures = 0
    for category, outcome in caller.map("poi", run, categories):
        if isinstance(outcome, ToolError):
            failures += 1
            logger.warning("poi_search", f"search for {category} failed: {outcome}")
            continue
        found.extend(outcome)
    return found, failures


def interest_terms(interests: str) -> list[str]:
    """The first few comma-separated interests, for the last-resort text search."""
    terms = [term.strip() for term in interests.split(",") if term.strip()]
    return terms[:INTEREST_TEXT_TERMS]


def _search_terms(
    terms: Sequence[str],
    *,
    center: LocationPoint,
    radius_km: float,
    request: ItineraryRequest,
    caller: ProviderCaller,
    search: PoiSearchTool,
    logger: StructuredLogger,
) -> list[CandidatePoi]:
    def run(term: str) -> list[CandidatePoi]:
        return search.search_text(
            PoiTextSearchInput(
                center=center,
                query=term,
                radius_km=radius_km,
                limit=INTEREST_TEXT_LIMIT,
                language=request.language,
            )
        )

    found: list[CandidatePoi] = []
    seen: set[str] = set()
    for term, outcome in caller.map("poi", run, terms):
        if isinstance(outcome, ToolError):
            logger.warning("poi_search", f"text search for {term!r} failed: {outcome}")
            continue
        for poi in outcome:
            if poi.id not in seen:
                seen.add(poi.id)
                found.append(poi)
    return found[:INTEREST_TEXT_LIMIT]


def gather_candidates(
    request: ItineraryRequest,
    categories: Sequence[str],
    *,
    radius_km: float,
    caller: ProviderCaller,
    search: PoiSearchTool,
    settings: PlannerSettings,
    logger: StructuredLogger,
    area: Optional[Sequence[LocationPoint]] = None,
) -> list[ScoredCandidate]:
    """Search every category concurrently, score each hit and keep the best per id.

    A category with no hits is retried as a text search on its name. Raises
    ``ExternalServiceError`` when every search failed. When every search
    succeeded but found nothing, the default categories are tried once, then
    a text search on the first few interests. With ``area`` only hits inside
    that boundary are kept.
    """
    center = midpoint(request.start, request.end)
    kwargs = dict(
        center=center,
        radius_km=radius_km,
        request=request,
        caller=caller,
        search=search,
        logger=logger,
    )
    found, failures = _search(categories, settings=settings, **kwargs)
    if failures and failures == len(categories):
        raise ExternalServiceError(f"all {failures} POI searches failed")

    if not found and not failures:
        extra = [c for c in settings.default_categories if c not in categories]
        if extra:
            logger.warning("poi_search", f"no POIs for {list(categories)}, trying defaults {extra}")
            found, _ = _search(extra, settings=settings, **kwargs)

    terms = interest_terms(request.interests)
    if not found and terms:
        logger.warning("poi_search", f"no POIs by category, trying text search for {terms}")
        found = _search_terms(terms, **kwargs)

    if area is not None:
        found = [poi for poi in found if point_in_polygon(poi.location, area)]

    scored = [
        ScoredCandidate(
            poi=poi.model_copy(
                update={"distance_from_start_meters": int(round(haversine_km(request.start, poi.location) * 1000))}
            ),
            score=score_candidate(
                poi,
                requested=list(categories),
                start=request.start,
                end=request.end,
                radius_km=radius_km,
                settings=settings,
            ),
        )
        for poi in found
    ]
    return dedupe_best(scored)


def enrich_dwell(
    candidates: Sequence[ScoredCandidate],
    *,
    request: ItineraryRequest,
    caller: ProviderCaller,
    estimator: DwellEstimator,
    settings: PlannerSettings,
) -> list[ScoredCandidate]:
    """Fill ``visit_minutes`` for every candidate, clamped to the dwell bounds."""
    unknown = [c for c in candidates if c.poi.visit_minutes is None]
    estimates: dict[str, int] = {}

    def run(cand: ScoredCandidate) -> int:
        return estimator.estimate_dwell(
            cand.poi,
            request.language,
            settings.dwell_defaults,
            settings.dwell_floor_minutes,
            settings.dwell_ceiling_minutes,
        ).minutes

    for cand, outcome in caller.map("dwell", run, unknown):
        if isinstance(outcome, ToolError):
            estimates[cand.id] = settings.dwell_default_for(cand.poi.category)
        else:
            estimates[cand.id] = outcome

    enriched = []
    for cand in candidates:
        minutes = cand.poi.visit_minutes if cand.poi.visit_minutes is not None else estimates[cand.id]
        enriched.append(
            ScoredCandidate(poi=cand.poi, score=cand.score, visit_minutes=settings.clamp_dwell(minutes))
        )
    return enriched


def prefilter_open(
    candidates: Sequence[ScoredCandidate],
    *,
    journey_start: dt.datetime,
    budget_minutes: int,
) -> list[ScoredCandidate]:
    """Drop candidates that cannot fit a visit anywhere in the journey window."""
    window_end = journey_start + dt.timedelta(minutes=budget_minutes)
    return [
        cand
        for cand in candidates
        if could_fit_window(cand.poi, journey_start, window_end, cand.visit_minutes)
    ]


def rerank_candidates(
    candidates: list[ScoredCandidate],
    *,
    request: ItineraryRequest,
    caller: ProviderCaller,
    reranker: Optional[CandidateReranker],
    settings: PlannerSettings,
    logger: StructuredLogger,
) -> list[ScoredCandidate]:
    if reranker is None or not settings.rerank_enabled or len(candidates) < 2:
        return candidates
    head = candidates[: settings.rerank_top_n]
    params = RerankInput(
        candidates=[c.poi.model_copy(update={"visit_minutes": c.visit_minutes}) for c in head],
        interests=request.interests,
        language=request.language,
        mode=request.mode,
        max_count=settings.max_pois,
        time_budget_minutes=request.max_duration_minutes,
    )
    try:
        result = caller.call("rerank", reranker.rerank, params)
    except ToolError as exc:
        logger.warning("rerank", f"rerank skipped: {exc}")
        return candidates
    if result.rationale:
        logger.summary(rerank_rationale=result.rationale)
    return apply_rerank(candidates, result.ordered_ids, settings.rerank_top_n)


def localized_descriptions(
    stops: Sequence[ScoredCandidate],
    *,
    request: ItineraryRequest,
    caller: ProviderCaller,
    describer: Optional[DescriptionWriter],
    settings: PlannerSettings,
) -> dict[str, str]:
    if describer is None or not settings.localize_descriptions or not stops:
        return {}
    if request.language.lower().split("-")[0] == "en":
        return {}

    def run(cand: ScoredCandidate) -> str:
        return describer.describe(cand.poi, request.language)

    return {
        cand.id: outcome
        for cand, outcome in caller.map("describe", run, stops)
        if isinstance(outcome, str) and outcome.strip()
    }


__all__ = [
    "enrich_dwell",
    "gather_candidates",
    "localized_descriptions",
    "prefilter_open",
    "rerank_candidates",
    "resolve_categories",
    "search_radius_km",
]
