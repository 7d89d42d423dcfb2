"""Candidate scoring, de-duplication and reranking."""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Iterable, Sequence

from itinerary_jobs.config.settings import PlannerSettings
from itinerary_jobs.domain.models import CandidatePoi, LocationPoint
from itinerary_jobs.planner.distance import distance_to_segment_km

_REVIEW_SATURATION = 5000
_UNRATED = 0.5
_UNREQUESTED_MATCH = 0.25


@dataclass(frozen=True)
class ScoredCandidate:
    poi: CandidatePoi
    score: float
    visit_minutes: int = 0

    @property
    def id(self) -> str:
        return self.poi.id

    @property
    def rating(self) -> float:
        return self.poi.rating if self.poi.rating is not None else 0.0


def match_weight(category: str, requested: Sequence[str]) -> float:
    """Earlier requested categories weigh more; unrequested ones get a small constant."""
    key = (category or "").lower()
    if key in requested:
        return 1.0 - requested.index(key) / max(1, len(requested))
    return _UNREQUESTED_MATCH


def score_candidate(
    poi: CandidatePoi,
    *,
    requested: Sequence[str],
    start: LocationPoint,
    end: LocationPoint,
    radius_km: float,
    settings: PlannerSettings,
) -> float:
    rating = poi.rating / 5.0 if poi.rating is not None else _UNRATED
    reviews = 0.0
    if poi.review_count:
        reviews = min(1.0, math.log1p(poi.review_count) / math.log1p(_REVIEW_SATURATION))
    offset_km = distance_to_segment_km(poi.location, start, end)
    proximity = max(0.0, 1.0 - offset_km / radius_km) if radius_km > 0 else 0.0
    score = (
        settings.weight_rating * rating
        + settings.weight_reviews * reviews
        + settings.weight_match * match_weight(poi.category, requested)
        + settings.weight_proximity * proximity
    )
    return round(score, 6)


def dedupe_best(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    """Keep the best-scoring occurrence of each POI id."""
    best: dict[str, ScoredCandidate] = {}
    for cand in candidates:
        current = best.get(cand.id)
        if current is None or cand.score > current.score:
            best[cand.id] = cand
    return priority_order(best.values())


def priority_key(cand: ScoredCandidate) -> tuple[float, float, str]:
    return (-cand.score, -cand.rating, cand.id)


def priority_order(candidates: Iterable[ScoredCandidate]) -> list[ScoredCandidate]:
    return sorted(candidates, key=priority_key)


def apply_rerank(
    ranked: Sequence[ScoredCandidate],
    ordered_ids: Sequence[str],
    top_n: int,
) -> list[ScoredCandidate]:
    """Reorder the top ``top_n`` candidates by ``ordered_ids`` without inventing new ones.

    Unknown and repeated ids are ignored, top candidates the reranker left out
    keep their relative order after the ones it named. The original top scores
    are reassigned in the new order so the greedy pass sees the reranked
    preference. Candidates below the cut are untouched.
    """
    head = list(ranked[:top_n])
    tail = list(ranked[top_n:])
    by_id = {cand.id: cand for cand in head}
    reordered: list[ScoredCandidate] = []
    for poi_id in ordered_ids:
        cand = by_id.pop(str(poi_id), None)
        if cand is not None:
            reordered.append(cand)
    reordered.extend(cand for cand in head if cand.id in by_id)

    scores = sorted((cand.score for cand in head), reverse=True)
    rescored = [replace(cand, score=score) for cand, score in zip(reordered, scores)]
    return rescored + tail
