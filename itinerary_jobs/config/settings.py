"""Environment-driven settings and runtime provider snapshot helpers."""

from __future__ import annotations

import os
from typing import Literal

from pydantic import BaseModel, Field, model_validator

from itinerary_jobs.domain.constants import DEFAULT_CATEGORIES, DEFAULT_DWELL_MINUTES, FALLBACK_DWELL_MINUTES
from itinerary_jobs.domain.enums import TravelMode

_TRUTHY = {"1", "true", "yes", "on"}


def _is_enabled(value: str | None, default: bool = False) -> bool:
    if value is None or not value.strip():
        return default
    return value.strip().lower() in _TRUTHY


def _is_configured(value: str | None) -> bool:
    return bool(value and value.strip())


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_list(name: str, default: tuple[str, ...]) -> list[str]:
    raw = os.getenv(name, "")
    values = [item.strip().lower() for item in raw.split(",") if item.strip()]
    return values or list(default)


def _per_mode(prefix: str, defaults: dict[TravelMode, float]) -> dict[TravelMode, float]:
    return {
        mode: _env_float(f"{prefix}_{mode.value.upper()}", value)
        for mode, value in defaults.items()
    }


_DEFAULT_RADIUS_KM = {
    TravelMode.WALKING: 2.0,
    TravelMode.PUBLIC_TRANSPORT: 8.0,
    TravelMode.CAR: 15.0,
}
_DEFAULT_SPEED_KMH = {
    TravelMode.WALKING: 5.0,
    TravelMode.PUBLIC_TRANSPORT: 25.0,
    TravelMode.CAR: 40.0,
}


class PlannerSettings(BaseModel):
    max_pois: int = Field(default=5, ge=1, le=10)
    pois_per_category: int = Field(default=10, ge=1, le=50)
    strict_opening_hours: bool = True
    search_radius_mode: Literal["fixed", "reachable", "isochrone"] = "reachable"
    search_radius_km: dict[TravelMode, float] = Field(default_factory=lambda: dict(_DEFAULT_RADIUS_KM))
    avg_speed_kmh: dict[TravelMode, float] = Field(default_factory=lambda: dict(_DEFAULT_SPEED_KMH))
    detour_factor: float = Field(default=1.4, ge=1.0)
    default_categories: list[str] = Field(default_factory=lambda: list(DEFAULT_CATEGORIES))
    dwell_defaults: dict[str, int] = Field(default_factory=lambda: dict(DEFAULT_DWELL_MINUTES))
    fallback_dwell_minutes: int = FALLBACK_DWELL_MINUTES
    dwell_floor_minutes: int = Field(default=20, ge=1)
    dwell_ceiling_minutes: int = Field(default=180, ge=1)
    rerank_enabled: bool = True
    rerank_top_n: int = Field(default=15, ge=1)
    localize_descriptions: bool = True
    provider_call_timeout_seconds: float = Field(default=20.0, gt=0)
    provider_max_parallelism: int = Field(default=4, ge=1)
    max_hours_backtracks: int = Field(default=10, ge=0)
    max_food_stops: int = Field(default=2, ge=0)
    max_cultural_stops: int = Field(default=3, ge=0)
    weight_rating: float = 0.35
    weight_reviews: float = 0.15
    weight_match: float = 0.30
    weight_proximity: float = 0.20

    @model_validator(mode="after")
    def _check_dwell_bounds(self) -> "PlannerSettings":
        if self.dwell_floor_minutes > self.dwell_ceiling_minutes:
            raise ValueError("dwell floor must not exceed the dwell ceiling")
        for mode in TravelMode:
            if self.avg_speed_kmh.get(mode, 0.0) <= 0:
                raise ValueError(f"average speed for {mode.value} must be positive")
            if self.search_radius_km.get(mode, 0.0) <= 0:
                raise ValueError(f"search radius for {mode.value} must be positive")
        return self

    def dwell_default_for(self, category: str) -> int:
        return self.dwell_defaults.get((category or "").lower(), self.fallback_dwell_minutes)

    def clamp_dwell(self, minutes: int) -> int:
        return max(self.dwell_floor_minutes, min(self.dwell_ceiling_minutes, int(minutes)))


class JobSettings(BaseModel):
    ttl_hours: float = Field(default=24.0, gt=0)
    max_attempts: int = Field(default=3, ge=1)
    visibility_timeout_seconds: float = Field(default=600.0, gt=0)
    receive_wait_seconds: float = Field(default=5.0, ge=0)
    deadline_margin_seconds: float = Field(default=30.0, ge=0)
    sweep_interval_seconds: float = Field(default=300.0, gt=0)
    sweep_batch_size: int = Field(default=200, ge=1)
    processing_retry_after_seconds: int = Field(default=3, ge=1)
    store_backend: Literal["memory", "sqlite"] = "memory"
    store_db_path: str = "data/itinerary_jobs.sqlite3"
    redis_url: str = ""
    queue_name: str = "itinerary-jobs"

    @property
    def planning_budget_seconds(self) -> float:
        return max(1.0, self.visibility_timeout_seconds - self.deadline_margin_seconds)


def load_planner_settings() -> PlannerSettings:
    radius_mode = os.getenv("SEARCH_RADIUS_MODE", "reachable").strip().lower()
    return PlannerSettings(
        max_pois=_env_int("ITINERARY_MAX_POIS", 5),
        pois_per_category=_env_int("POIS_PER_CATEGORY", 10),
        strict_opening_hours=_is_enabled(os.getenv("STRICT_OPENING_HOURS"), default=True),
        search_radius_mode=radius_mode if radius_mode in {"fixed", "isochrone"} else "reachable",
        search_radius_km=_per_mode("SEARCH_RADIUS_KM", _DEFAULT_RADIUS_KM),
        avg_speed_kmh=_per_mode("AVG_SPEED_KMH", _DEFAULT_SPEED_KMH),
        default_categories=_env_list("DEFAULT_CATEGORIES", DEFAULT_CATEGORIES),
        dwell_floor_minutes=_env_int("DWELL_FLOOR_MINUTES", 20),
        dwell_ceiling_minutes=_env_int("DWELL_CEILING_MINUTES", 180),
        rerank_enabled=_is_enabled(os.getenv("RERANK_ENABLED"), default=True),
        rerank_top_n=_env_int("RERANK_TOP_N", 15),
        localize_descriptions=_is_enabled(os.getenv("LOCALIZE_DESCRIPTIONS"), default=True),
        provider_call_timeout_seconds=_env_float("PROVIDER_CALL_TIMEOUT_SECONDS", 20.0),
        provider_max_parallelism=_env_int("PROVIDER_MAX_PARALLELISM", 4),
        max_hours_backtracks=_env_int("MAX_HOURS_BACKTRACKS", 10),
    )


def load_job_settings() -> JobSettings:
    backend = os.getenv("JOB_STORE_BACKEND", "memory").strip().lower()
    return JobSettings(
        ttl_hours=_env_float("JOB_TTL_HOURS", 24.0),
        max_attempts=_env_int("JOB_MAX_ATTEMPTS", 3),
        visibility_timeout_seconds=_env_float("QUEUE_VISIBILITY_TIMEOUT_SECONDS", 600.0),
        receive_wait_seconds=_env_float("QUEUE_RECEIVE_WAIT_SECONDS", 5.0),
        deadline_margin_seconds=_env_float("DEADLINE_MARGIN_SECONDS", 30.0),
        sweep_interval_seconds=_env_float("SWEEP_INTERVAL_SECONDS", 300.0),
        processing_retry_after_seconds=_env_int("PROCESSING_RETRY_AFTER_SECONDS", 3),
        store_backend="sqlite" if backend == "sqlite" else "memory",
        store_db_path=os.getenv("JOB_STORE_DB", "").strip() or "data/itinerary_jobs.sqlite3",
        redis_url=(os.getenv("REDIS_URL") or "").strip(),
        queue_name=os.getenv("QUEUE_NAME", "itinerary-jobs").strip() or "itinerary-jobs",
    )


def resolve_maps_provider() -> str:
    return "azure_maps" if _is_configured(os.getenv("AZURE_MAPS_KEY")) else "offline"


def resolve_llm_provider() -> str:
    if _is_configured(os.getenv("OPENAI_API_KEY")):
        return "openai"
    if _is_configured(os.getenv("LLM_API_KEY")):
        return "llm_compatible"
    return "keyword"


def strict_external_data_enabled() -> bool:
    return _is_enabled(os.getenv("STRICT_EXTERNAL_DATA"))


class ProviderSnapshot(BaseModel):
    maps_provider: str = Field(default="offline")
    llm_provider: str = Field(default="keyword")
    job_store: str = Field(default="memory")
    work_queue: str = Field(default="memory")
    strict_external_data: bool = Field(default=False)


def resolve_provider_snapshot() -> ProviderSnapshot:
    jobs = load_job_settings()
    return ProviderSnapshot(
        maps_provider=resolve_maps_provider(),
        llm_provider=resolve_llm_provider(),
        job_store=jobs.store_backend,
        work_queue="redis" if jobs.redis_url else "memory",
        strict_external_data=strict_external_data_enabled(),
    )


__all__ = [
    "JobSettings",
    "PlannerSettings",
    "ProviderSnapshot",
    "load_job_settings",
    "load_planner_settings",
    "resolve_provider_snapshot",
]
