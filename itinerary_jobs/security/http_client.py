"""Secure HTTP client: single exit for every external provider call.

Responsibilities:
  1. scrub keys from errors
  2. timeouts clipped to the caller's deadline, retry with backoff
  3. classify failures into ``ToolError.kind``
  4. outbound rate limiting per provider
"""

from __future__ import annotations

import time
from typing import Any, Optional

import httpx

from itinerary_jobs.infrastructure.rate_limiter import acquire_slot
from itinerary_jobs.security.key_manager import get_key_manager
from itinerary_jobs.shared.deadline import Deadline
from itinerary_jobs.shared.exceptions import DeadlineExceeded, ToolError

_RETRYABLE_KINDS = {"timeout", "unavailable", "rate_limit"}


class HttpToolError(ToolError):
    def __init__(self, tool: str, message: str, *, kind: str, status_code: int = 0, body: str = ""):
        super().__init__(tool, message, kind=kind)
        self.status_code = status_code
        self.body = body


def _kind_for_status(status_code: int) -> str:
    if status_code == 429:
        return "rate_limit"
    if status_code >= 500:
        return "unavailable"
    if status_code == 404:
        return "not_found"
    return "bad_response"


class SecureHttpClient:
    """Wraps httpx; errors never carry raw keys."""

    def __init__(
        self,
        *,
        timeout: float = 10.0,
        max_retries: int = 1,
        tool_name: str = "http",
        rate_limiter: Any = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._timeout = timeout
        self._max_retries = max_retries
        self._tool_name = tool_name
        self._rate_limiter = rate_limiter
        self._km = get_key_manager()
        self._client = httpx.Client(transport=transport) if transport is not None else httpx.Client()

    def close(self) -> None:
        self._client.close()

    def _call_timeout(self, deadline: Optional[Deadline]) -> float:
        if deadline is None:
            return self._timeout
        timeout = deadline.timeout_for(self._timeout)
        if not timeout:
            raise DeadlineExceeded(f"{self._tool_name}: no time left for the request")
        return timeout

    def get(
        self,
        url: str,
        *,
        params: Optional[dict[str, Any]] = None,
        headers: Optional[dict[str, str]] = None,
        deadline: Optional[Deadline] = None,
    ) -> dict[str, Any]:
        """GET ``url`` and return the decoded JSON body."""
        last_error: Optional[ToolError] = None

        for attempt in range(1, self._max_retries + 2):
            timeout = self._call_timeout(deadline)
            acquire_slot(self._rate_limiter, self._tool_name, timeout=timeout)
            try:
                resp = self._client.get(url, params=params, headers=headers, timeout=timeout)
                resp.raise_for_status()
                return resp.json()
            except httpx.HTTPStatusError as e:
                status = e.response.status_code
                last_error = HttpToolError(
                    self._tool_name,
                    f"HTTP {status}: {self._km.scrub_text(str(e))}",
                    kind=_kind_for_status(status),
                    status_code=status,
                    body=self._km.scrub_text(e.response.text[:2000]),
                )
            except httpx.TimeoutException:
                last_error = HttpToolError(
                    self._tool_name,
                    f"request timed out after {timeout:.1f}s (attempt {attempt})",
                    kind="timeout",
                )
            except httpx.HTTPError as e:
                last_error = HttpToolError(
                    self._tool_name,
                    f"network error: {self._km.scrub_text(str(e))}",
                    kind="unavailable",
                )
            except ValueError as e:
                last_error = HttpToolError(
                    self._tool_name,
                    f"invalid JSON body: {self._km.scrub_text(str(e))}",
                    kind="bad_response",
                )

            if last_error.kind not in _RETRYABLE_KINDS or attempt > self._max_retries:
                break
            backoff = 0.5 * attempt
            if deadline is not None and deadline.remaining() <= backoff:
                break
            time.sleep(backoff)

        raise last_error  # type: ignore[misc]
