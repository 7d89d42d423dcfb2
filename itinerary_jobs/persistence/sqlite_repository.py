"""SQLite implementation of the job record store."""

from __future__ import annotations

import datetime as dt
import json
import sqlite3
import threading
import uuid
from pathlib import Path
from typing import Any, Optional

from itinerary_jobs.domain.enums import JobStatus
from itinerary_jobs.domain.models import ItineraryError, ItineraryJob, ItineraryRequest, ItineraryResult
from itinerary_jobs.shared.exceptions import ConcurrencyConflict

_TS_FORMAT = "%Y-%m-%dT%H:%M:%S.%fZ"

_COLUMNS = (
    "job_id, status, request_json, result_json, error_json, attempts, "
    "created_at, completed_at, expires_at, etag"
)


def _to_json(payload: Any) -> str:
    return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)


def _from_json(raw: str | None) -> Any:
    if not raw:
        return None
    return json.loads(raw)


def _ts(value: Optional[dt.datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is not None:
        value = value.astimezone(dt.timezone.utc)
    return value.strftime(_TS_FORMAT)


def _parse_ts(raw: Optional[str]) -> Optional[dt.datetime]:
    if not raw:
        return None
    return dt.datetime.strptime(raw, _TS_FORMAT).replace(tzinfo=dt.timezone.utc)


def _partition_key(job_id: str) -> str:
    return job_id[:1].upper() or "_"


def new_etag() -> str:
    return uuid.uuid4().hex


class SQLiteJobStore:
    backend = "sqlite"

    def __init__(self, db_path: str | Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(self._db_path, timeout=5.0)
        conn.execute("PRAGMA journal_mode=WAL;")
        return conn

    def _init_schema(self) -> None:
        with self._lock, self._connect() as conn:
            conn.executescript(
                """
                CREATE TABLE IF NOT EXISTS itinerary_jobs (
                    job_id TEXT PRIMARY KEY,
                    partition_key TEXT NOT NULL,
                    status TEXT NOT NULL,
                    request_json TEXT NOT NULL,
                    result_json TEXT,
                    error_json TEXT,
                    attempts INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    completed_at TEXT,
                    expires_at TEXT NOT NULL,
                    etag TEXT NOT NULL
                );

                CREATE INDEX IF NOT EXISTS idx_itinerary_jobs_expires_at ON itinerary_jobs(expires_at);
                CREATE INDEX IF NOT EXISTS idx_itinerary_jobs_partition ON itinerary_jobs(partition_key);
                """
            )

    @staticmethod
    def _row_to_job(row: tuple) -> ItineraryJob:
        result = _from_json(row[3])
        error = _from_json(row[4])
        return ItineraryJob(
            job_id=row[0],
            status=JobStatus(row[1]),
            request=ItineraryRequest.model_validate(_from_json(row[2])),
            result=ItineraryResult.model_validate(result) if result else None,
            error=ItineraryError.model_validate(error) if error else None,
            attempts=int(row[5]),
            created_at=_parse_ts(row[6]),
            completed_at=_parse_ts(row[7]),
            expires_at=_parse_ts(row[8]),
            etag=row[9],
        )

    @staticmethod
    def _payloads(job: ItineraryJob) -> tuple[Optional[str], Optional[str]]:
        result_json = _to_json(job.result.model_dump(mode="json")) if job.result else None
        error_json = _to_json(job.error.model_dump(mode="json")) if job.error else None
        return result_json, error_json

    def create(self, job: ItineraryJob) -> ItineraryJob:
        stored = job.model_copy(update={"etag": new_etag()})
        result_json, error_json = self._payloads(stored)
        try:
            with self._lock, self._connect() as conn:
                conn.execute(
                    f"""
                    INSERT INTO itinerary_jobs (partition_key, {_COLUMNS})
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                    """,
                    (
                        _partition_key(stored.job_id),
                        stored.job_id,
                        stored.status.value,
                        _to_json(stored.request.model_dump(mode="json")),
                        result_json,
                        error_json,
                        stored.attempts,
                        _ts(stored.created_at),
                        _ts(stored.completed_at),
                        _ts(stored.expires_at),
                        stored.etag,
                    ),
                )
        except sqlite3.IntegrityError:
            raise ValueError(f"job {job.job_id} already exists") from None
        return stored

    def get(self, job_id: str) -> ItineraryJob | None:
        with self._lock, self._connect() as conn:
            row = conn.execute(
                f"SELECT {_COLUMNS} FROM itinerary_jobs WHERE partition_key = ? AND job_id = ?",
                (_partition_key(job_id), job_id),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_job(row)

    def update(self, job: ItineraryJob, expected_etag: str) -> ItineraryJob:
        stored = job.model_copy(update={"etag": new_etag()})
        result_json, error_json = self._payloads(stored)
        with self._lock, self._connect() as conn:
            cursor = conn.execute(
                """
                UPDATE itinerary_jobs SET
                    status = ?,
                    result_json = ?,
                    error_json = ?,
                    attempts = ?,
                    completed_at = ?,
                    etag = ?
                WHERE job_id = ? AND etag = ?
                """,
                (
                    stored.status.value,
                    result_json,
                    error_json,
                    stored.attempts,
                    _ts(stored.completed_at),
                    stored.etag,
                    stored.job_id,
                    expected_etag,
                ),
            )
            updated = cursor.rowcount
        if updated == 0:
            raise ConcurrencyConflict(job.job_id, expected_etag)
        return stored

    def query_expired(self, now: dt.datetime, limit: int = 200) -> list[str]:
        safe_limit = max(1, min(int(limit), 1000))
        with self._lock, self._connect() as conn:
            rows = conn.execute(
                """
                SELECT job_id FROM itinerary_jobs
                WHERE expires_at < ?
                ORDER BY expires_at
                LIMIT ?
                """,
                (_ts(now), safe_limit),
            ).fetchall()
        return [row[0] for row in rows]

    def delete(self, job_id: str) -> bool:
        with self._lock, self._connect() as conn:
            cursor = conn.execute("DELETE FROM itinerary_jobs WHERE job_id = ?", (job_id,))
            return cursor.rowcount > 0

    def count(self) -> int:
        with self._lock, self._connect() as conn:
            row = conn.execute("SELECT COUNT(*) FROM itinerary_jobs").fetchone()
        return int(row[0])
