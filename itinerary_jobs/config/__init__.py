"""Runtime configuration helpers."""

from itinerary_jobs.config.settings import (
    JobSettings,
    PlannerSettings,
    ProviderSnapshot,
    load_job_settings,
    load_planner_settings,
    resolve_provider_snapshot,
)

__all__ = [
    "JobSettings",
    "PlannerSettings",
    "ProviderSnapshot",
    "load_job_settings",
    "load_planner_settings",
    "resolve_provider_snapshot",
]
