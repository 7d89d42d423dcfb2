import io
import json
import threading
from concurrent.futures import ThreadPoolExecutor

import pytest

from itinerary_jobs.infrastructure.logging import StructuredLogger
from itinerary_jobs.observability.job_metrics import JobMetrics
from itinerary_jobs.planner.provider_calls import ProviderCaller
from itinerary_jobs.shared.deadline import Deadline
from itinerary_jobs.shared.exceptions import DeadlineExceeded, ToolError


@pytest.fixture
def executor():
    pool = ThreadPoolExecutor(max_workers=4)
    yield pool
    pool.shutdown(wait=False, cancel_futures=True)


def test_call_returns_value_and_records_metrics(executor):
    metrics = JobMetrics()
    buf = io.StringIO()
    caller = ProviderCaller(
        executor,
        Deadline.unbounded(),
        call_timeout=5,
        logger=StructuredLogger(trace_id="t1", output=buf),
        metrics=metrics,
    )
    assert caller.call("poi", lambda x: [x, x], 1) == [1, 1]

    stats = metrics.snapshot()["tool_calls"]["poi"]
    assert stats["ok"] == 1
    assert stats["avg_returned_count"] == 2.0
    line = json.loads(buf.getvalue().splitlines()[0])
    assert line["event"] == "tool_call"
    assert line["tool"] == "poi"
    assert line["ok"] is True


def test_slow_call_times_out_as_tool_error(executor):
    release = threading.Event()
    metrics = JobMetrics()
    caller = ProviderCaller(executor, Deadline.unbounded(), call_timeout=0.05, metrics=metrics)
    try:
        with pytest.raises(ToolError) as exc_info:
            caller.call("route", release.wait, 5)
    finally:
        release.set()
    assert exc_info.value.kind == "timeout"
    assert metrics.snapshot()["tool_calls"]["route"]["error_codes"] == {"timeout": 1}


def test_wait_past_deadline_raises_deadline_exceeded(executor):
    release = threading.Event()
    caller = ProviderCaller(executor, Deadline.after(0.05), call_timeout=5)
    try:
        with pytest.raises(DeadlineExceeded):
            caller.call("route", release.wait, 5)
    finally:
        release.set()


def test_expired_deadline_skips_the_call(executor):
    calls = []
    caller = ProviderCaller(executor, Deadline(expires_at=0.0, clock=lambda: 10.0), call_timeout=5)
    with pytest.raises(DeadlineExceeded):
        caller.call("poi", calls.append, 1)
    assert calls == []


def test_unexpected_exception_is_wrapped(executor):
    def broken():
        raise ValueError("bad payload")

    caller = ProviderCaller(executor, Deadline.unbounded(), call_timeout=5)
    with pytest.raises(ToolError) as exc_info:
        caller.call("dwell", broken)
    assert exc_info.value.kind == "bad_response"
    assert "bad payload" in str(exc_info.value)


def test_tool_error_passes_through_unchanged(executor):
    def unavailable():
        raise ToolError("poi", "HTTP 503", kind="upstream_error")

    caller = ProviderCaller(executor, Deadline.unbounded(), call_timeout=5)
    with pytest.raises(ToolError) as exc_info:
        caller.call("poi", unavailable)
    assert exc_info.value.kind == "upstream_error"


def test_map_returns_failures_in_place(executor):
    def half(value):
        if value % 2:
            raise ToolError("poi", "odd")
        return value // 2

    caller = ProviderCaller(executor, Deadline.unbounded(), call_timeout=5)
    outcomes = caller.map("poi", half, [2, 3, 4])
    assert outcomes[0] == (2, 1)
    assert isinstance(outcomes[1][1], ToolError)
    assert outcomes[2] == (4, 2)
