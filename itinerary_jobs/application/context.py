"""Application context for dependency injection."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from itinerary_jobs.adapters.tool_factory import ProviderSet, build_providers
from itinerary_jobs.config.settings import JobSettings, PlannerSettings, load_job_settings, load_planner_settings
from itinerary_jobs.infrastructure.llm_factory import build_llm
from itinerary_jobs.infrastructure.work_queue import WorkQueue, get_work_queue
from itinerary_jobs.observability.job_metrics import JobMetrics
from itinerary_jobs.persistence.repository import JobRecordStore, get_job_store


@dataclass
class AppContext:
    planner_settings: PlannerSettings
    job_settings: JobSettings
    store: JobRecordStore
    queue: WorkQueue
    providers: ProviderSet
    metrics: JobMetrics = field(default_factory=JobMetrics)
    llm: Any = None


def make_app_context(
    *,
    planner_settings: Optional[PlannerSettings] = None,
    job_settings: Optional[JobSettings] = None,
    store: Optional[JobRecordStore] = None,
    queue: Optional[WorkQueue] = None,
    providers: Optional[ProviderSet] = None,
) -> AppContext:
    planner_settings = planner_settings or load_planner_settings()
    job_settings = job_settings or load_job_settings()
    llm = build_llm() if providers is None else None
    return AppContext(
        planner_settings=planner_settings,
        job_settings=job_settings,
        store=store or get_job_store(job_settings),
        queue=queue or get_work_queue(job_settings),
        providers=providers or build_providers(planner_settings, llm=llm),
        llm=llm,
    )
