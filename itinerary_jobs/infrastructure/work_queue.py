"""Work queue with in-memory default and optional Redis backend.

Both backends give at-least-once delivery: a received message stays hidden for
its visibility timeout and reappears unless it is deleted with the receipt of
the lease that received it.
"""

from __future__ import annotations

import logging
import threading
import time
import uuid
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

import redis

from itinerary_jobs.config.settings import JobSettings
from itinerary_jobs.security.redact import redact_sensitive

_logger = logging.getLogger("itinerary-jobs.queue")

_DEFAULT_PREFIX = "itinerary-jobs:queue:"
_REDIS_POLL_SECONDS = 0.2


@dataclass(frozen=True)
class LeasedMessage:
    message_id: str
    job_id: str
    receipt: str
    dequeue_count: int


class WorkQueue(Protocol):
    backend: str

    def enqueue(self, job_id: str) -> str: ...

    def receive(self, visibility_timeout: float, wait_seconds: float = 0.0) -> Optional[LeasedMessage]: ...

    def delete(self, message: LeasedMessage) -> bool: ...

    def approximate_count(self) -> int: ...


@dataclass
class _Entry:
    message_id: str
    job_id: str
    visible_at: float
    receipt: str = ""
    dequeue_count: int = 0


class InMemoryWorkQueue:
    """Thread-safe queue for single-process deployments and tests."""

    backend = "memory"

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self._entries: dict[str, _Entry] = {}
        self._cond = threading.Condition()

    def enqueue(self, job_id: str) -> str:
        message_id = uuid.uuid4().hex
        with self._cond:
            self._entries[message_id] = _Entry(message_id=message_id, job_id=job_id, visible_at=self._clock())
            self._cond.notify()
        return message_id

    def _lease_next(self, visibility_timeout: float) -> Optional[LeasedMessage]:
        now = self._clock()
        for entry in self._entries.values():
            if entry.visible_at <= now:
                entry.receipt = uuid.uuid4().hex
                entry.visible_at = now + visibility_timeout
                entry.dequeue_count += 1
                return LeasedMessage(
                    message_id=entry.message_id,
                    job_id=entry.job_id,
                    receipt=entry.receipt,
                    dequeue_count=entry.dequeue_count,
                )
        return None

    def _next_visible_in(self) -> Optional[float]:
        if not self._entries:
            return None
        earliest = min(entry.visible_at for entry in self._entries.values())
        return max(0.0, earliest - self._clock())

    def receive(self, visibility_timeout: float, wait_seconds: float = 0.0) -> Optional[LeasedMessage]:
        wait_until = time.monotonic() + max(0.0, wait_seconds)
        with self._cond:
            while True:
                leased = self._lease_next(visibility_timeout)
                if leased is not None:
                    return leased
                remaining = wait_until - time.monotonic()
                if remaining <= 0:
                    return None
                next_visible = self._next_visible_in()
                self._cond.wait(remaining if next_visible is None else min(remaining, next_visible))

    def delete(self, message: LeasedMessage) -> bool:
        with self._cond:
            entry = self._entries.get(message.message_id)
            if entry is None or entry.receipt != message.receipt:
                return False
            del self._entries[message.message_id]
            return True

    def approximate_count(self) -> int:
        with self._cond:
            return len(self._entries)


_RECEIVE_LUA = """
local id = redis.call('RPOP', KEYS[1])
if not id then
  return nil
end
local msg_key = KEYS[3] .. id
redis.call('ZADD', KEYS[2], ARGV[1], id)
redis.call('HSET', msg_key, 'receipt', ARGV[2])
local count = redis.call('HINCRBY', msg_key, 'dequeue_count', 1)
local job_id = redis.call('HGET', msg_key, 'job_id')
return {id, job_id, count}
"""

_DELETE_LUA = """
local msg_key = KEYS[2] .. ARGV[1]
if redis.call('HGET', msg_key, 'receipt') ~= ARGV[2] then
  return 0
end
redis.call('ZREM', KEYS[1], ARGV[1])
redis.call('DEL', msg_key)
return 1
"""

_REQUEUE_LUA = """
local ids = redis.call('ZRANGEBYSCORE', KEYS[1], '-inf', ARGV[1], 'LIMIT', 0, 100)
for _, id in ipairs(ids) do
  if redis.call('ZREM', KEYS[1], id) == 1 then
    redis.call('RPUSH', KEYS[2], id)
  end
end
return #ids
"""


class RedisWorkQueue:
    """Redis-backed queue shared by worker processes.

    Pending ids live in a list, leased ids in a sorted set scored by the time
    they become visible again. Lease bookkeeping runs in Lua scripts so a
    receive or delete is atomic.
    """

    backend = "redis"

    def __init__(self, redis_url: str, name: str, prefix: str = _DEFAULT_PREFIX):
        self._client = redis.Redis.from_url(redis_url, decode_responses=True)
        self._client.ping()
        base = f"{prefix}{name}"
        self._pending_key = f"{base}:pending"
        self._inflight_key = f"{base}:inflight"
        self._message_prefix = f"{base}:msg:"
        self._receive = self._client.register_script(_RECEIVE_LUA)
        self._delete = self._client.register_script(_DELETE_LUA)
        self._requeue = self._client.register_script(_REQUEUE_LUA)

    def enqueue(self, job_id: str) -> str:
        message_id = uuid.uuid4().hex
        pipe = self._client.pipeline()
        pipe.hset(f"{self._message_prefix}{message_id}", mapping={"job_id": job_id, "dequeue_count": 0})
        pipe.lpush(self._pending_key, message_id)
        pipe.execute()
        return message_id

    def _try_receive(self, visibility_timeout: float) -> Optional[LeasedMessage]:
        now = time.time()
        self._requeue(keys=[self._inflight_key, self._pending_key], args=[now])
        receipt = uuid.uuid4().hex
        row = self._receive(
            keys=[self._pending_key, self._inflight_key, self._message_prefix],
            args=[now + visibility_timeout, receipt],
        )
        if not row:
            return None
        message_id, job_id, count = row
        return LeasedMessage(message_id=message_id, job_id=job_id, receipt=receipt, dequeue_count=int(count))

    def receive(self, visibility_timeout: float, wait_seconds: float = 0.0) -> Optional[LeasedMessage]:
        wait_until = time.monotonic() + max(0.0, wait_seconds)
        while True:
            leased = self._try_receive(visibility_timeout)
            if leased is not None:
                return leased
            remaining = wait_until - time.monotonic()
            if remaining <= 0:
                return None
            time.sleep(min(_REDIS_POLL_SECONDS, remaining))

    def delete(self, message: LeasedMessage) -> bool:
        removed = self._delete(
            keys=[self._inflight_key, self._message_prefix],
            args=[message.message_id, message.receipt],
        )
        return int(removed) == 1

    def approximate_count(self) -> int:
        return int(self._client.llen(self._pending_key)) + int(self._client.zcard(self._inflight_key))


def get_work_queue(settings: JobSettings) -> WorkQueue:
    if settings.redis_url:
        try:
            queue = RedisWorkQueue(settings.redis_url, settings.queue_name)
            _logger.info("Work queue initialized with Redis backend")
            return queue
        except redis.RedisError as exc:
            _logger.warning(
                "Failed to initialize Redis work queue, fallback to memory: %s",
                redact_sensitive(str(exc)),
            )
    return InMemoryWorkQueue()


__all__ = ["InMemoryWorkQueue", "LeasedMessage", "RedisWorkQueue", "WorkQueue", "get_work_queue"]
