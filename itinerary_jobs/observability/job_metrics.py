"""In-process metrics for job processing and provider calls."""

from __future__ import annotations

import math
import threading
from dataclasses import dataclass, field


@dataclass
class _LatencyAgg:
    total_ms: float = 0.0
    count: int = 0
    max_ms: float = 0.0
    values: list[float] = field(default_factory=list)

    def add(self, value_ms: float) -> None:
        val = max(0.0, float(value_ms))
        self.total_ms += val
        self.count += 1
        if val > self.max_ms:
            self.max_ms = val
        self.values.append(val)
        if len(self.values) > 5000:
            self.values = self.values[-5000:]

    def p95(self) -> float:
        if not self.values:
            return 0.0
        rows = sorted(self.values)
        idx = max(0, min(len(rows) - 1, math.ceil(len(rows) * 0.95) - 1))
        return rows[idx]

    def snapshot(self) -> dict[str, float]:
        avg_ms = (self.total_ms / self.count) if self.count else 0.0
        return {
            "count": self.count,
            "avg_ms": round(avg_ms, 2),
            "max_ms": round(self.max_ms, 2),
            "p95_ms": round(self.p95(), 2),
        }


@dataclass
class _ToolStats:
    count: int = 0
    ok: int = 0
    error: int = 0
    returned_total: int = 0
    latency: _LatencyAgg = field(default_factory=_LatencyAgg)
    error_codes: dict[str, int] = field(default_factory=dict)


class JobMetrics:
    """Counters for one process. Workers share an instance through the app context."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._outcome_counts: dict[str, int] = {}
        self._reason_counts: dict[str, int] = {}
        self._attempt_counts: dict[int, int] = {}
        self._latency = _LatencyAgg()
        self._tool_stats: dict[str, _ToolStats] = {}
        self._submitted = 0
        self._iteration_errors = 0
        self._swept = 0

    def record_submitted(self) -> None:
        with self._lock:
            self._submitted += 1

    def record_job(self, *, outcome: str, latency_ms: float, attempts: int = 0, reason: str = "") -> None:
        key = outcome or "unknown"
        with self._lock:
            self._outcome_counts[key] = self._outcome_counts.get(key, 0) + 1
            if reason:
                self._reason_counts[reason] = self._reason_counts.get(reason, 0) + 1
            if attempts > 0:
                self._attempt_counts[attempts] = self._attempt_counts.get(attempts, 0) + 1
            self._latency.add(latency_ms)

    def record_iteration_error(self) -> None:
        with self._lock:
            self._iteration_errors += 1

    def record_swept(self, count: int) -> None:
        with self._lock:
            self._swept += max(0, int(count))

    def record_tool_call(
        self,
        *,
        tool_name: str,
        latency_ms: float,
        ok: bool,
        error_code: str = "",
        returned_count: int = 0,
    ) -> None:
        key = (tool_name or "unknown").strip().lower() or "unknown"
        err = (error_code or "").strip()
        with self._lock:
            row = self._tool_stats.setdefault(key, _ToolStats())
            row.count += 1
            row.returned_total += max(0, int(returned_count))
            row.latency.add(latency_ms)
            if ok:
                row.ok += 1
            else:
                row.error += 1
                if err:
                    row.error_codes[err] = row.error_codes.get(err, 0) + 1

    def _tool_snapshot(self) -> dict[str, object]:
        output: dict[str, object] = {}
        for tool_name, row in self._tool_stats.items():
            output[tool_name] = {
                "count": row.count,
                "ok": row.ok,
                "error": row.error,
                "success_rate": round(row.ok / row.count, 4) if row.count else 0.0,
                "avg_returned_count": round(row.returned_total / row.count, 2) if row.count else 0.0,
                "latency": row.latency.snapshot(),
                "error_codes": dict(row.error_codes),
            }
        return output

    def snapshot(self) -> dict[str, object]:
        with self._lock:
            return {
                "submitted": self._submitted,
                "outcomes": dict(self._outcome_counts),
                "failure_reasons": dict(self._reason_counts),
                "attempts": {str(k): v for k, v in sorted(self._attempt_counts.items())},
                "latency": self._latency.snapshot(),
                "iteration_errors": self._iteration_errors,
                "swept": self._swept,
                "tool_calls": self._tool_snapshot(),
            }


__all__ = ["JobMetrics"]
