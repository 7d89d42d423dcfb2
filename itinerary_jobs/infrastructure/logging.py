"""Structured logging: one JSON object per line, secrets scrubbed."""

from __future__ import annotations

import json
import sys
import time
import uuid
from typing import Any, Optional, TextIO

from itinerary_jobs.security.key_manager import get_key_manager


class StructuredLogger:
    """Per-job logger; ``trace_id`` ties every line to one job."""

    def __init__(self, trace_id: Optional[str] = None, output: Optional[TextIO] = None):
        self.trace_id = trace_id or str(uuid.uuid4())[:8]
        self._output = output or sys.stderr
        self._timers: dict[str, float] = {}

    def _emit(self, data: dict[str, Any]) -> None:
        data["trace_id"] = self.trace_id
        data["timestamp"] = time.time()
        try:
            line = json.dumps(data, ensure_ascii=False, default=str)
            line = get_key_manager().scrub_text(line)
            self._output.write(line + "\n")
            self._output.flush()
        except (OSError, ValueError, TypeError) as exc:
            fallback = {
                "event": "logger_internal_error",
                "trace_id": self.trace_id,
                "timestamp": time.time(),
                "error": str(exc),
            }
            sys.stderr.write(json.dumps(fallback, ensure_ascii=False, default=str) + "\n")

    def _elapsed_ms(self, name: str) -> float:
        start = self._timers.pop(name, time.monotonic())
        return round((time.monotonic() - start) * 1000, 1)

    def job_start(self, job_id: str, **extra: Any) -> None:
        self._timers["__job__"] = time.monotonic()
        self._emit({"event": "job_start", "job_id": job_id, **extra})

    def job_end(self, job_id: str, *, outcome: str, **extra: Any) -> None:
        self._emit({
            "event": "job_end",
            "job_id": job_id,
            "outcome": outcome,
            "duration_ms": self._elapsed_ms("__job__"),
            **extra,
        })

    def step_start(self, step: str, **extra: Any) -> None:
        self._timers[step] = time.monotonic()
        self._emit({"event": "step_start", "step": step, **extra})

    def step_end(self, step: str, **extra: Any) -> None:
        self._emit({"event": "step_end", "step": step, "duration_ms": self._elapsed_ms(step), **extra})

    def tool_call(self, tool_name: str, **extra: Any) -> None:
        self._emit({"event": "tool_call", "tool": tool_name, **extra})

    def error(self, step: str, error: str, **extra: Any) -> None:
        self._emit({"event": "error", "step": step, "error": error, **extra})

    def warning(self, step: str, message: str, **extra: Any) -> None:
        self._emit({"event": "warning", "step": step, "message": message, **extra})

    def summary(self, **extra: Any) -> None:
        self._emit({"event": "summary", **extra})
