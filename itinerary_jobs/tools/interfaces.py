"""Provider protocols and I/O schemas consumed by the planner."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

from itinerary_jobs.domain.enums import TravelMode
from itinerary_jobs.domain.models import CandidatePoi, LocationPoint
from itinerary_jobs.shared.exceptions import RouteNotFoundError, ToolError


class PoiSearchInput(BaseModel):
    center: LocationPoint
    category_ids: list[str] = Field(default_factory=list)
    radius_km: float = Field(gt=0)
    limit: int = Field(default=10, ge=1)
    language: str = "en"


class PoiTextSearchInput(BaseModel):
    """Free-text search; ``category`` labels the hits when the caller already knows it."""

    center: LocationPoint
    query: str = Field(min_length=1)
    radius_km: float = Field(gt=0)
    limit: int = Field(default=10, ge=1)
    language: str = "en"
    category: str = ""


class IsochroneInput(BaseModel):
    center: LocationPoint
    mode: TravelMode
    minutes: int = Field(ge=1)


class RouteInput(BaseModel):
    origin: LocationPoint
    destination: LocationPoint
    mode: TravelMode


class RouteResult(BaseModel):
    """Provider numbers, already rounded to whole meters and minutes."""

    distance_meters: int = Field(ge=0)
    travel_minutes: int = Field(ge=0)


class DwellEstimate(BaseModel):
    minutes: int = Field(ge=1)
    low_confidence: bool = False


class RerankInput(BaseModel):
    candidates: list[CandidatePoi]
    interests: str = ""
    language: str = "en"
    mode: TravelMode
    max_count: int = Field(ge=1)
    time_budget_minutes: int


class RerankResult(BaseModel):
    ordered_ids: list[str] = Field(default_factory=list)
    rationale: str = ""


@runtime_checkable
class InterestMapper(Protocol):
    def map_interests(self, text: str, language: str, area: LocationPoint) -> list[str]: ...


@runtime_checkable
class PoiSearchTool(Protocol):
    def search_pois(self, params: PoiSearchInput) -> list[CandidatePoi]: ...

    def search_text(self, params: PoiTextSearchInput) -> list[CandidatePoi]: ...


@runtime_checkable
class DwellEstimator(Protocol):
    def estimate_dwell(
        self,
        poi: CandidatePoi,
        language: str,
        defaults: dict[str, int],
        floor: int,
        ceiling: int,
    ) -> DwellEstimate: ...


@runtime_checkable
class CandidateReranker(Protocol):
    def rerank(self, params: RerankInput) -> RerankResult: ...


@runtime_checkable
class RouteTool(Protocol):
    def compute_leg(self, params: RouteInput) -> RouteResult: ...


@runtime_checkable
class IsochroneTool(Protocol):
    def reachable_area(self, params: IsochroneInput) -> list[LocationPoint]: ...


@runtime_checkable
class TimezoneTool(Protocol):
    def timezone_for(self, point: LocationPoint) -> str: ...


@runtime_checkable
class DescriptionWriter(Protocol):
    def describe(self, poi: CandidatePoi, language: str) -> str: ...


__all__ = [
    "CandidateReranker",
    "DescriptionWriter",
    "DwellEstimate",
    "DwellEstimator",
    "InterestMapper",
    "IsochroneInput",
    "IsochroneTool",
    "PoiSearchInput",
    "PoiSearchTool",
    "PoiTextSearchInput",
    "RerankInput",
    "RerankResult",
    "RouteInput",
    "RouteNotFoundError",
    "RouteResult",
    "RouteTool",
    "TimezoneTool",
    "ToolError",
]
