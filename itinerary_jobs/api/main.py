"""FastAPI application: job submission and polling."""

from __future__ import annotations

import logging
import os
import threading
import uuid
from contextlib import asynccontextmanager
from typing import Optional

from dotenv import load_dotenv
from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from itinerary_jobs import __version__
from itinerary_jobs.adapters.tool_factory import describe_active_tools
from itinerary_jobs.api.schemas import (
    HealthResponse,
    ItineraryJobRequest,
    JobAccepted,
    JobStatusResponse,
    NoItineraryResponse,
)
from itinerary_jobs.application.context import AppContext, make_app_context
from itinerary_jobs.config.settings import resolve_provider_snapshot
from itinerary_jobs.domain.enums import JobStatus
from itinerary_jobs.infrastructure.rate_limiter import get_rate_limiter
from itinerary_jobs.security.key_manager import get_key_manager
from itinerary_jobs.services.job_service import ItineraryJobService
from itinerary_jobs.services.worker import run_workers

_api_logger = logging.getLogger("itinerary-jobs.api")

load_dotenv()

JOBS_PATH = "/api/itinerary-jobs"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        response.headers["Cache-Control"] = "no-store"
        return response


class RateLimitMiddleware(BaseHTTPMiddleware):
    """Per-client limit on job submissions."""

    def __init__(self, app, max_requests: int = 60, window_seconds: int = 60):
        super().__init__(app)
        self._limiter = get_rate_limiter(max_requests, window_seconds)

    async def dispatch(self, request: Request, call_next):
        if request.method != "POST":
            return await call_next(request)
        client_ip = request.client.host if request.client else "unknown"
        if not self._limiter.allow(f"api:{client_ip}"):
            return JSONResponse(status_code=429, content={"error": "Too many requests, retry later"})
        return await call_next(request)


def _safe_log_exception(context: str, exc: Exception) -> None:
    _api_logger.error("%s: %s", context, get_key_manager().scrub_text(str(exc)))


def _embedded_worker_count() -> int:
    raw = os.getenv("RUN_EMBEDDED_WORKERS", "").strip().lower()
    if raw in {"", "0", "false", "no", "off"}:
        return 0
    if raw in {"true", "yes", "on"}:
        return 1
    try:
        return max(0, int(raw))
    except ValueError:
        return 0


def _is_job_id(value: str) -> bool:
    try:
        uuid.UUID(value)
    except ValueError:
        return False
    return True


def create_app(ctx: Optional[AppContext] = None, *, embedded_workers: Optional[int] = None) -> FastAPI:
    ctx = ctx or make_app_context()
    service = ItineraryJobService(ctx)
    worker_count = _embedded_worker_count() if embedded_workers is None else embedded_workers
    retry_after = str(ctx.job_settings.processing_retry_after_seconds)

    @asynccontextmanager
    async def lifespan(_app: FastAPI):
        stop_event = threading.Event()
        threads = run_workers(ctx, worker_count, stop_event) if worker_count else []
        if threads:
            _api_logger.info("Started %d embedded workers", len(threads))
        try:
            yield
        finally:
            stop_event.set()
            for thread in threads:
                thread.join(timeout=ctx.job_settings.receive_wait_seconds + 5)

    app = FastAPI(
        title="itinerary-jobs",
        version=__version__,
        docs_url="/docs" if os.getenv("ENABLE_DOCS", "false").lower() == "true" else None,
        redoc_url=None,
        lifespan=lifespan,
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=int(os.getenv("RATE_LIMIT_MAX", "60")),
        window_seconds=int(os.getenv("RATE_LIMIT_WINDOW", "60")),
    )
    app.state.ctx = ctx
    app.state.service = service

    @app.get("/health", response_model=HealthResponse)
    def health():
        return HealthResponse(status="ok")

    @app.get("/diagnostics")
    def diagnostics():
        """Provider and backend status plus in-process metrics. Protect it in production."""
        return {
            "tools": describe_active_tools(),
            "providers": resolve_provider_snapshot().model_dump(),
            "store": getattr(ctx.store, "backend", "unknown"),
            "queue_depth": ctx.queue.approximate_count(),
            "metrics": ctx.metrics.snapshot(),
        }

    @app.post(JOBS_PATH, status_code=202)
    def create_job(body: ItineraryJobRequest):
        try:
            job_id = service.submit(body.to_domain())
        except Exception as exc:
            _safe_log_exception("create job failed", exc)
            return JSONResponse(status_code=500, content={"error": "Failed to create itinerary job"})
        _api_logger.info(
            "Created itinerary job %s for (%.4f,%.4f) -> (%.4f,%.4f)",
            job_id, body.start.lat, body.start.lon, body.end.lat, body.end.lon,
        )
        return JSONResponse(
            status_code=202,
            content=JobAccepted(job_id=job_id).model_dump(by_alias=True),
            headers={"Location": f"{JOBS_PATH}/{job_id}", "Retry-After": retry_after},
        )

    @app.get(f"{JOBS_PATH}/{{job_id}}")
    def get_job(job_id: str):
        if not _is_job_id(job_id):
            return JSONResponse(status_code=400, content={"error": "Invalid job ID format"})
        try:
            view = service.poll(job_id)
        except Exception as exc:
            _safe_log_exception("poll job failed", exc)
            return JSONResponse(status_code=500, content={"error": "Failed to retrieve job status"})

        if view is None:
            body = NoItineraryResponse(reason="Job not found or expired")
            return JSONResponse(status_code=404, content=body.model_dump(exclude={"message"}))

        if view.status is JobStatus.PROCESSING:
            body = JobStatusResponse(job_id=view.job_id, status=view.status.value)
            return JSONResponse(
                status_code=202,
                content=body.model_dump(by_alias=True, exclude_none=True),
                headers={"Retry-After": str(view.retry_after_seconds)},
            )
        if view.status is JobStatus.COMPLETED and view.result is not None:
            body = JobStatusResponse(
                job_id=view.job_id,
                status=view.status.value,
                result=view.result.model_dump(mode="json"),
            )
            return JSONResponse(status_code=200, content=body.model_dump(by_alias=True))

        error = view.error
        body = NoItineraryResponse(
            reason=error.reason.value if error else "internal_error",
            message=error.message if error else "",
        )
        return JSONResponse(status_code=404, content=body.model_dump())

    return app


app = create_app()
