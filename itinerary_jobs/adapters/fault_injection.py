"""Optional provider fault injection for dependency drills.

Disabled by default. Enable by setting:
  ENABLE_TOOL_FAULT_INJECTION=true
  TOOL_FAULT_INJECTION=poi:timeout,route:rate_limit
  TOOL_FAULT_RATE=1.0
"""

from __future__ import annotations

import os
import random
from typing import Any

from itinerary_jobs.shared.exceptions import ToolError

_TRUTHY = {"1", "true", "yes", "on"}
_FAULT_MESSAGES = {
    "timeout": "injected timeout",
    "rate_limit": "injected upstream rate limit 429",
    "unavailable": "injected upstream unavailable 503",
}


def _enabled() -> bool:
    return os.getenv("ENABLE_TOOL_FAULT_INJECTION", "false").strip().lower() in _TRUTHY


def _fault_rate() -> float:
    try:
        value = float(os.getenv("TOOL_FAULT_RATE", "1.0").strip())
    except ValueError:
        return 1.0
    return max(0.0, min(1.0, value))


def _fault_map() -> dict[str, str]:
    mapping: dict[str, str] = {}
    for part in os.getenv("TOOL_FAULT_INJECTION", "").split(","):
        tool, sep, fault = part.strip().partition(":")
        tool_key = tool.strip().lower()
        fault_key = fault.strip().lower()
        if sep and tool_key and fault_key in _FAULT_MESSAGES:
            mapping[tool_key] = fault_key
    return mapping


def _fault_for(tool_name: str) -> str:
    if not _enabled():
        return ""
    fault = _fault_map().get(tool_name.lower(), "")
    if not fault or random.random() > _fault_rate():
        return ""
    return fault


class FaultInjectedToolProxy:
    def __init__(self, tool_name: str, target: Any) -> None:
        self._tool_name = tool_name
        self._target = target

    def __getattr__(self, name: str) -> Any:
        attr = getattr(self._target, name)
        if not callable(attr):
            return attr

        def _wrapped(*args: Any, **kwargs: Any):
            fault = _fault_for(self._tool_name)
            if fault:
                raise ToolError(self._tool_name, f"{_FAULT_MESSAGES[fault]} op={name}", kind=fault)
            return attr(*args, **kwargs)

        return _wrapped


def wrap_tool_with_fault_injection(tool_name: str, tool_impl: Any) -> Any:
    if tool_impl is None or not _enabled():
        return tool_impl
    return FaultInjectedToolProxy(tool_name, tool_impl)


__all__ = ["wrap_tool_with_fault_injection"]
