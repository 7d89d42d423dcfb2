"""Concrete provider selection and wiring."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from itinerary_jobs.adapters.fault_injection import wrap_tool_with_fault_injection
from itinerary_jobs.adapters.language.keyword import (
    CategoryDwellEstimator,
    KeywordInterestMapper,
)
from itinerary_jobs.adapters.language.llm import (
    LlmDescriptionWriter,
    LlmDwellEstimator,
    LlmInterestMapper,
    LlmReranker,
)
from itinerary_jobs.adapters.maps.azure import AzureMapsProvider
from itinerary_jobs.adapters.maps.offline import OfflineMapsProvider
from itinerary_jobs.config.settings import (
    PlannerSettings,
    load_planner_settings,
    resolve_llm_provider,
    resolve_maps_provider,
    strict_external_data_enabled,
)
from itinerary_jobs.domain.constants import CATEGORY_KEYWORDS
from itinerary_jobs.infrastructure.rate_limiter import get_provider_rate_limiter
from itinerary_jobs.security.key_manager import MAPS_KEY_NAME, get_key_manager
from itinerary_jobs.shared.exceptions import ToolError
from itinerary_jobs.tools.interfaces import (
    CandidateReranker,
    DescriptionWriter,
    DwellEstimator,
    InterestMapper,
    IsochroneTool,
    PoiSearchTool,
    RouteTool,
    TimezoneTool,
)

_logger = logging.getLogger("itinerary-jobs.tools")
_ESSENTIAL_TOOLS = ("interests", "poi", "dwell", "route", "timezone")
_OPTIONAL_TOOLS = ("rerank", "describe", "isochrone")


@dataclass
class ProviderSet:
    interest_mapper: InterestMapper
    poi_search: PoiSearchTool
    dwell_estimator: DwellEstimator
    route: RouteTool
    timezone: TimezoneTool
    reranker: Optional[CandidateReranker] = None
    describer: Optional[DescriptionWriter] = None
    isochrone: Optional[IsochroneTool] = None


def _tool_allowlist() -> set[str]:
    default = set(_ESSENTIAL_TOOLS) | set(_OPTIONAL_TOOLS)
    raw = os.getenv("TOOL_ALLOWLIST", "")
    values = {item.strip().lower() for item in raw.split(",") if item.strip()}
    return values or default


def _has_maps_key() -> bool:
    return get_key_manager().has_key(MAPS_KEY_NAME)


def build_providers(settings: PlannerSettings, llm: Any = None) -> ProviderSet:
    """Pick real or offline providers from the environment and wrap them for drills."""
    allowlist = _tool_allowlist()
    blocked = [name for name in _ESSENTIAL_TOOLS if name not in allowlist]
    if blocked:
        raise ToolError(blocked[0], f"Essential tool blocked by TOOL_ALLOWLIST: {', '.join(blocked)}")

    if strict_external_data_enabled() and not _has_maps_key():
        raise ToolError("maps", f"STRICT_EXTERNAL_DATA=true requires {MAPS_KEY_NAME}")

    if _has_maps_key():
        maps: Any = AzureMapsProvider(
            timeout=settings.provider_call_timeout_seconds,
            rate_limiter=get_provider_rate_limiter(),
        )
        isochrone: Any = maps if "isochrone" in allowlist else None
    else:
        maps = OfflineMapsProvider(settings)
        isochrone = None

    keyword_mapper = KeywordInterestMapper()
    if llm is not None:
        interest_mapper: Any = LlmInterestMapper(llm, CATEGORY_KEYWORDS.keys(), fallback=keyword_mapper)
        dwell: Any = LlmDwellEstimator(llm)
        reranker: Any = LlmReranker(llm) if "rerank" in allowlist else None
        describer: Any = LlmDescriptionWriter(llm) if "describe" in allowlist else None
    else:
        interest_mapper = keyword_mapper
        dwell = CategoryDwellEstimator()
        reranker = None
        describer = None

    _logger.info(
        "Providers resolved: maps=%s llm=%s rerank=%s describe=%s isochrone=%s",
        getattr(maps, "name", "custom"),
        "on" if llm is not None else "off",
        reranker is not None,
        describer is not None,
        isochrone is not None,
    )
    return ProviderSet(
        interest_mapper=wrap_tool_with_fault_injection("interests", interest_mapper),
        poi_search=wrap_tool_with_fault_injection("poi", maps),
        dwell_estimator=wrap_tool_with_fault_injection("dwell", dwell),
        route=wrap_tool_with_fault_injection("route", maps),
        timezone=wrap_tool_with_fault_injection("timezone", maps),
        reranker=wrap_tool_with_fault_injection("rerank", reranker),
        describer=wrap_tool_with_fault_injection("describe", describer),
        isochrone=wrap_tool_with_fault_injection("isochrone", isochrone),
    )


def describe_active_tools() -> dict[str, str]:
    llm_provider = resolve_llm_provider()
    maps_provider = resolve_maps_provider()
    if load_planner_settings().search_radius_mode != "isochrone":
        isochrone = "disabled"
    else:
        isochrone = maps_provider if maps_provider != "offline" else "reachable_radius"
    return {
        "maps": maps_provider,
        "interests": llm_provider,
        "dwell": llm_provider if llm_provider != "keyword" else "category_defaults",
        "rerank": llm_provider if llm_provider != "keyword" else "disabled",
        "isochrone": isochrone,
        "strict_external_data": "true" if strict_external_data_enabled() else "false",
    }


__all__ = ["ProviderSet", "build_providers", "describe_active_tools"]
