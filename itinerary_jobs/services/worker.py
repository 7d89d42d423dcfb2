"""Queue consumer that runs the planner and finalizes jobs."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, TextIO

from itinerary_jobs.application.context import AppContext
from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.domain.enums import FailureReason
from itinerary_jobs.domain.exceptions import PlanningInfeasible
from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.infrastructure.work_queue import LeasedMessage, WorkQueue
from itinerary_jobs.observability.job_metrics import JobMetrics
from itinerary_jobs.planner.core import ItineraryPlanner
from itinerary_jobs.security.redact import redact_sensitive
from itinerary_jobs.services.lifecycle import JobLifecycleManager
from itinerary_jobs.shared.deadline import Deadline

_logger = logging.getLogger("itinerary-jobs.worker")

OUTCOME_IDLE = "idle"
OUTCOME_SKIPPED = "skipped"
OUTCOME_COMPLETED = "completed"
OUTCOME_FAILED = "failed"


class ItineraryWorker:
    """One consumer of the work queue.

    A message is acknowledged only once its job is terminal. Errors other than
    planning infeasibility leave the message leased so it is redelivered after
    the visibility timeout; the attempt counter caps how often that happens.
    """

    def __init__(
        self,
        *,
        lifecycle: JobLifecycleManager,
        queue: WorkQueue,
        planner: ItineraryPlanner,
        settings: JobSettings,
        metrics: Optional[JobMetrics] = None,
        name: str = "worker-1",
        monotonic: Callable[[], float] = time.monotonic,
        log_output: Optional[TextIO] = None,
    ):
        self._lifecycle = lifecycle
        self._queue = queue
        self._planner = planner
        self._settings = settings
        self._metrics = metrics or JobMetrics()
        self.name = name
        self._monotonic = monotonic
        self._log_output = log_output

    @classmethod
    def from_context(cls, ctx: AppContext, name: str = "worker-1", **kwargs) -> "ItineraryWorker":
        return cls(
            lifecycle=JobLifecycleManager(ctx.store, ctx.job_settings),
            queue=ctx.queue,
            planner=ItineraryPlanner(ctx.providers, ctx.planner_settings, metrics=ctx.metrics),
            settings=ctx.job_settings,
            metrics=ctx.metrics,
            name=name,
            **kwargs,
        )

    def process_next(self) -> str:
        message = self._queue.receive(
            self._settings.visibility_timeout_seconds,
            wait_seconds=self._settings.receive_wait_seconds,
        )
        if message is None:
            return OUTCOME_IDLE
        return self.process(message)

    def _ack(self, message: LeasedMessage) -> None:
        if not self._queue.delete(message):
            _logger.warning("Lease on message %s for job %s was lost before ack", message.message_id, message.job_id)

    def process(self, message: LeasedMessage) -> str:
        started = self._monotonic()
        job = self._lifecycle.get(message.job_id)
        if job is None or job.status.is_terminal:
            _logger.info("Skipping message for job %s (missing or already terminal)", message.job_id)
            self._ack(message)
            return OUTCOME_SKIPPED

        job = self._lifecycle.increment_attempt(job)
        if job is None or job.status.is_terminal:
            self._ack(message)
            return OUTCOME_SKIPPED

        log = StructuredLogger(trace_id=job.job_id, output=self._log_output)
        log.job_start(job.job_id, attempt=job.attempts, worker=self.name, delivery=message.dequeue_count)

        if job.attempts > self._settings.max_attempts:
            reason = FailureReason.INTERNAL_ERROR
            self._lifecycle.fail(job, reason, f"Planning did not finish after {self._settings.max_attempts} attempts")
            self._ack(message)
            self._finish(log, job.job_id, started, OUTCOME_FAILED, job.attempts, reason.value)
            return OUTCOME_FAILED

        deadline = Deadline.after(self._settings.planning_budget_seconds, clock=self._monotonic)
        try:
            result = self._planner.build(job.request, deadline, logger=log)
        except PlanningInfeasible as exc:
            self._lifecycle.fail(job, exc.reason, exc.message)
            self._ack(message)
            self._finish(log, job.job_id, started, OUTCOME_FAILED, job.attempts, exc.reason.value)
            return OUTCOME_FAILED
        except Exception as exc:
            log.error("planning", redact_sensitive(f"{type(exc).__name__}: {exc}"))
            log.job_end(job.job_id, outcome="retry", attempt=job.attempts)
            raise

        self._lifecycle.complete(job, result)
        self._ack(message)
        self._finish(log, job.job_id, started, OUTCOME_COMPLETED, job.attempts, "")
        return OUTCOME_COMPLETED

    def _finish(self, log: StructuredLogger, job_id: str, started: float, outcome: str, attempts: int, reason: str) -> None:
        latency_ms = round((self._monotonic() - started) * 1000, 1)
        self._metrics.record_job(outcome=outcome, latency_ms=latency_ms, attempts=attempts, reason=reason)
        log.job_end(job_id, outcome=outcome, attempt=attempts, reason=reason or None)

    def sweep(self) -> int:
        removed = self._lifecycle.sweep_expired()
        self._metrics.record_swept(removed)
        return removed

    def run(self, stop_event: threading.Event) -> None:
        _logger.info("Worker %s started", self.name)
        next_sweep = self._monotonic() + self._settings.sweep_interval_seconds
        while not stop_event.is_set():
            try:
                self.process_next()
            except Exception as exc:
                self._metrics.record_iteration_error()
                _logger.error("Worker %s iteration failed: %s", self.name, redact_sensitive(str(exc)))
                stop_event.wait(1.0)
            if self._monotonic() >= next_sweep:
                next_sweep = self._monotonic() + self._settings.sweep_interval_seconds
                try:
                    self.sweep()
                except Exception as exc:
                    _logger.error("Worker %s sweep failed: %s", self.name, redact_sensitive(str(exc)))
        _logger.info("Worker %s stopped", self.name)


def run_workers(ctx: AppContext, count: int, stop_event: threading.Event) -> list[threading.Thread]:
    """Start ``count`` daemon worker threads sharing the context's store and queue."""
    threads = []
    for idx in range(max(1, count)):
        worker = ItineraryWorker.from_context(ctx, name=f"worker-{idx + 1}")
        thread = threading.Thread(target=worker.run, args=(stop_event,), name=worker.name, daemon=True)
        thread.start()
        threads.append(thread)
    return threads


__all__ = ["ItineraryWorker", "run_workers"]
