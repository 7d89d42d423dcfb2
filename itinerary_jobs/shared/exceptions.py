"""Shared (non-domain) exceptions."""

from __future__ import annotations


class ToolError(Exception):
    """Tool invocation failed."""

    def __init__(self, tool: str, message: str, *, kind: str = "unavailable"):
        self.tool = tool
        self.kind = kind
        super().__init__(f"[{tool}] {message}")


class RouteNotFoundError(ToolError):
    """The routing provider answered, but there is no route between the points."""

    def __init__(self, tool: str, message: str):
        super().__init__(tool, message, kind="not_found")


class ExternalServiceError(Exception):
    """External service call failed."""


class KeyMissingError(Exception):
    """Required key is missing."""

    def __init__(self, name: str):
        self.key_name = name
        super().__init__(f"Missing required API key: {name} (configure it in .env)")


class ConcurrencyConflict(Exception):
    """A job record changed since it was read."""

    def __init__(self, job_id: str, expected_etag: str):
        self.job_id = job_id
        self.expected_etag = expected_etag
        super().__init__(f"job {job_id} was modified concurrently (expected etag {expected_etag})")


class DeadlineExceeded(TimeoutError):
    """The processing deadline elapsed before the operation finished."""
