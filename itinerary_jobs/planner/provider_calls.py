"""Deadline-bounded provider calls on a per-run thread pool."""

from __future__ import annotations

import concurrent.futures
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Any, Callable, Iterable, Optional, TypeVar

from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.observability.job_metrics import JobMetrics
from itinerary_jobs.shared.deadline import Deadline
from itinerary_jobs.shared.exceptions import DeadlineExceeded, ToolError

T = TypeVar("T")
R = TypeVar("R")


def _returned_count(value: Any) -> int:
    if isinstance(value, (list, tuple)):
        return len(value)
    return 0 if value is None else 1


class ProviderCaller:
    """Runs provider calls on ``executor`` and waits no longer than the deadline allows.

    A call that raises anything other than ``DeadlineExceeded`` comes back as
    ``ToolError`` so callers handle one failure type. Once the deadline has
    passed every wait raises ``DeadlineExceeded`` and the run is abandoned.
    """

    def __init__(
        self,
        executor: ThreadPoolExecutor,
        deadline: Deadline,
        *,
        call_timeout: float,
        logger: Optional[StructuredLogger] = None,
        metrics: Optional[JobMetrics] = None,
    ):
        self._executor = executor
        self._deadline = deadline
        self._call_timeout = call_timeout
        self._logger = logger
        self._metrics = metrics

    @property
    def deadline(self) -> Deadline:
        return self._deadline

    def call(self, tool_name: str, fn: Callable[..., R], *args: Any) -> R:
        self._deadline.check(tool_name)
        started = time.monotonic()
        future = self._executor.submit(fn, *args)
        return self._await(tool_name, future, started)

    def map(
        self,
        tool_name: str,
        fn: Callable[[T], R],
        items: Iterable[T],
    ) -> list[tuple[T, R | ToolError]]:
        """Fan ``fn`` out over ``items``; failures are returned in place of results."""
        self._deadline.check(tool_name)
        started = time.monotonic()
        pending = [(item, self._executor.submit(fn, item)) for item in items]
        outcomes: list[tuple[T, R | ToolError]] = []
        try:
            for item, future in pending:
                try:
                    outcomes.append((item, self._await(tool_name, future, started)))
                except ToolError as exc:
                    outcomes.append((item, exc))
        except DeadlineExceeded:
            for _, future in pending:
                future.cancel()
            raise
        return outcomes

    def _await(self, tool_name: str, future: Future, started: float) -> Any:
        timeout = self._deadline.timeout_for(self._call_timeout)
        try:
            value = future.result(timeout=timeout)
        except DeadlineExceeded:
            self._record(tool_name, started, ok=False, error_code="deadline")
            raise
        except concurrent.futures.TimeoutError:
            future.cancel()
            self._record(tool_name, started, ok=False, error_code="timeout")
            if self._deadline.expired:
                raise DeadlineExceeded(f"deadline exceeded waiting for {tool_name}") from None
            raise ToolError(tool_name, f"call timed out after {timeout:.1f}s", kind="timeout") from None
        except ToolError as exc:
            self._record(tool_name, started, ok=False, error_code=exc.kind)
            raise
        except Exception as exc:
            self._record(tool_name, started, ok=False, error_code="bad_response")
            raise ToolError(tool_name, f"{type(exc).__name__}: {exc}", kind="bad_response") from exc
        self._record(tool_name, started, ok=True, returned_count=_returned_count(value))
        return value

    def _record(
        self,
        tool_name: str,
        started: float,
        *,
        ok: bool,
        error_code: str = "",
        returned_count: int = 0,
    ) -> None:
        latency_ms = round((time.monotonic() - started) * 1000, 1)
        if self._metrics is not None:
            self._metrics.record_tool_call(
                tool_name=tool_name,
                latency_ms=latency_ms,
                ok=ok,
                error_code=error_code,
                returned_count=returned_count,
            )
        if self._logger is not None:
            self._logger.tool_call(tool_name, ok=ok, latency_ms=latency_ms, error_code=error_code or None)
