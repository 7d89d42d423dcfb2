"""Outbound rate limiter with in-memory default and optional Redis backend."""

from __future__ import annotations

import logging
import os
import threading
import time

import redis

from itinerary_jobs.security.redact import redact_sensitive
from itinerary_jobs.shared.exceptions import ToolError

_logger = logging.getLogger("itinerary-jobs.rate-limit")
_DEFAULT_PREFIX = "itinerary-jobs:ratelimit:"
_POLL_INTERVAL_SECONDS = 0.05


class InMemoryRateLimiter:
    """Thread-safe sliding-window limiter."""

    backend = "memory"

    def __init__(self, max_requests: int, window_seconds: float):
        self._max = max(1, int(max_requests))
        self._window = max(0.001, float(window_seconds))
        self._counters: dict[str, list[float]] = {}
        self._lock = threading.Lock()

    def allow(self, key: str) -> bool:
        now = time.monotonic()
        with self._lock:
            hits = [t for t in self._counters.get(key, []) if now - t < self._window]
            if len(hits) >= self._max:
                self._counters[key] = hits
                return False
            hits.append(now)
            self._counters[key] = hits
            return True


class RedisRateLimiter:
    """Redis-backed fixed-window limiter shared by worker processes."""

    backend = "redis"

    def __init__(
        self,
        redis_url: str,
        max_requests: int,
        window_seconds: float,
        prefix: str = _DEFAULT_PREFIX,
    ):
        self._max = max(1, int(max_requests))
        self._window = max(1, int(window_seconds))
        self._prefix = prefix
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client.ping()

    def allow(self, key: str) -> bool:
        bucket = int(time.time()) // self._window
        redis_key = f"{self._prefix}{key}:{bucket}"
        count = self._client.incr(redis_key)
        if count == 1:
            self._client.expire(redis_key, self._window + 5)
        return int(count) <= self._max


def acquire_slot(limiter, key: str, *, timeout: float | None) -> None:
    """Block until ``limiter`` admits ``key`` or ``timeout`` elapses."""
    if limiter is None:
        return
    waited_until = None if timeout is None else time.monotonic() + max(0.0, timeout)
    while not limiter.allow(key):
        if waited_until is not None and time.monotonic() >= waited_until:
            raise ToolError(key, "local rate limit wait exceeded", kind="rate_limit")
        time.sleep(_POLL_INTERVAL_SECONDS)


def get_rate_limiter(max_requests: int, window_seconds: float):
    redis_url = os.getenv("RATE_LIMIT_REDIS_URL") or os.getenv("REDIS_URL")
    if redis_url:
        try:
            limiter = RedisRateLimiter(redis_url, max_requests, window_seconds)
            _logger.info("Rate limiter initialized with Redis backend")
            return limiter
        except redis.RedisError as exc:
            _logger.warning(
                "Failed to initialize Redis rate limiter, fallback to memory: %s",
                redact_sensitive(str(exc)),
            )
    return InMemoryRateLimiter(max_requests=max_requests, window_seconds=window_seconds)


def get_provider_rate_limiter():
    return get_rate_limiter(
        max_requests=int(os.getenv("PROVIDER_RATE_LIMIT_MAX", "50")),
        window_seconds=float(os.getenv("PROVIDER_RATE_LIMIT_WINDOW", "1")),
    )


__all__ = [
    "InMemoryRateLimiter",
    "RedisRateLimiter",
    "acquire_slot",
    "get_provider_rate_limiter",
    "get_rate_limiter",
]
