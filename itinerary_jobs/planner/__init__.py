"""Deterministic planning algorithms."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from itinerary_jobs.planner.core import ItineraryPlanner


def build_planner(providers: Any, settings: Any, **kwargs: Any) -> "ItineraryPlanner":
    from itinerary_jobs.planner.core import ItineraryPlanner as _ItineraryPlanner

    return _ItineraryPlanner(providers, settings, **kwargs)


__all__ = ["build_planner"]
