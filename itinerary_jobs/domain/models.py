"""Pydantic domain models."""

from __future__ import annotations

import datetime as dt
import re
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from itinerary_jobs.domain.enums import FailureReason, JobStatus, TravelMode

_CLOCK_RE = re.compile(r"^([01]\d|2[0-3]):([0-5]\d)$")


class LocationPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class ItineraryRequest(BaseModel):
    """Validated once at submission, then only read."""

    model_config = ConfigDict(frozen=True)

    start: LocationPoint
    end: LocationPoint
    max_duration_minutes: int = Field(ge=60, le=720)
    mode: TravelMode = TravelMode.WALKING
    interests: str = Field(default="", max_length=500)
    language: str = Field(default="en", min_length=1, max_length=10)
    departure_time: Optional[dt.datetime] = None

    @field_validator("interests", mode="before")
    @classmethod
    def _strip_interests(cls, value: object) -> object:
        if value is None:
            return ""
        if isinstance(value, str):
            return value.strip()
        return value

    @field_validator("language", mode="before")
    @classmethod
    def _normalize_language(cls, value: object) -> object:
        if value is None:
            return "en"
        if isinstance(value, str):
            return value.strip() or "en"
        return value


class DaySchedule(BaseModel):
    day_of_week: int = Field(ge=0, le=6, description="0=Sunday ... 6=Saturday")
    is_open: bool = True
    open_time: Optional[str] = "00:00"
    close_time: Optional[str] = "23:59"

    @field_validator("open_time", "close_time")
    @classmethod
    def _check_clock(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        if not _CLOCK_RE.match(value):
            raise ValueError(f"expected HH:MM, got {value!r}")
        return value

    @model_validator(mode="after")
    def _open_days_need_times(self) -> "DaySchedule":
        if self.is_open and (self.open_time is None or self.close_time is None):
            raise ValueError("open days need open_time and close_time")
        return self


class CandidatePoi(BaseModel):
    id: str
    name: str
    address: str = ""
    lat: float
    lon: float
    category: str = "attraction"
    rating: Optional[float] = Field(default=None, ge=0.0, le=5.0)
    review_count: Optional[int] = Field(default=None, ge=0)
    tags: list[str] = Field(default_factory=list)
    opening_hours: Optional[list[DaySchedule]] = None
    visit_minutes: Optional[int] = Field(default=None, ge=1)
    distance_from_start_meters: int = 0
    description: str = ""

    @property
    def location(self) -> LocationPoint:
        return LocationPoint(lat=self.lat, lon=self.lon)


class ItineraryLeg(BaseModel):
    from_id: str
    to_id: str
    from_name: str = ""
    to_name: str = ""
    mode: TravelMode
    distance_meters: int = Field(ge=0)
    travel_minutes: int = Field(ge=0)
    depart_from_journey_start: int = Field(ge=0)
    arrive_from_journey_start: int = Field(ge=0)


class ItineraryStop(BaseModel):
    id: str
    name: str
    address: str = ""
    lat: float
    lon: float
    category: str
    rating: Optional[float] = None
    description: str = ""
    visit_minutes: int = Field(ge=1)
    arrive_from_journey_start: int = Field(ge=0)
    depart_from_journey_start: int = Field(ge=0)
    visit_start: str = ""
    visit_end: str = ""


class ItinerarySummary(BaseModel):
    mode: TravelMode
    language: str
    time_budget_minutes: int
    total_distance_meters: int
    total_travel_minutes: int
    total_visit_minutes: int
    total_duration_minutes: int
    stops_count: int


class ItineraryResult(BaseModel):
    summary: ItinerarySummary
    legs: list[ItineraryLeg]
    stops: list[ItineraryStop] = Field(default_factory=list)

    @model_validator(mode="after")
    def _check_sequence(self) -> "ItineraryResult":
        if len(self.legs) != len(self.stops) + 1:
            raise ValueError(
                f"expected {len(self.stops) + 1} legs for {len(self.stops)} stops, got {len(self.legs)}"
            )
        if self.summary.stops_count != len(self.stops):
            raise ValueError("summary.stops_count does not match stops")

        for leg in self.legs:
            if leg.arrive_from_journey_start != leg.depart_from_journey_start + leg.travel_minutes:
                raise ValueError(f"leg {leg.from_id}->{leg.to_id} offsets are inconsistent")

        previous_arrive = -1
        for idx, stop in enumerate(self.stops):
            if stop.arrive_from_journey_start <= previous_arrive:
                raise ValueError("stop arrivals must be strictly increasing")
            if stop.depart_from_journey_start != stop.arrive_from_journey_start + stop.visit_minutes:
                raise ValueError(f"stop {stop.id} departure must equal arrival + visit")
            if self.legs[idx].arrive_from_journey_start != stop.arrive_from_journey_start:
                raise ValueError(f"leg into {stop.id} does not arrive at the stop arrival")
            if self.legs[idx + 1].depart_from_journey_start != stop.depart_from_journey_start:
                raise ValueError(f"leg out of {stop.id} does not leave at the stop departure")
            previous_arrive = stop.arrive_from_journey_start

        if self.summary.total_duration_minutes != self.legs[-1].arrive_from_journey_start:
            raise ValueError("summary.total_duration_minutes must equal the final arrival")
        return self

    def fits_budget(self, budget_minutes: int) -> bool:
        travel_and_visit = self.summary.total_travel_minutes + self.summary.total_visit_minutes
        return travel_and_visit <= budget_minutes and self.legs[-1].arrive_from_journey_start <= budget_minutes


class ItineraryError(BaseModel):
    reason: FailureReason
    message: str = ""


class ItineraryJob(BaseModel):
    job_id: str
    status: JobStatus = JobStatus.PROCESSING
    request: ItineraryRequest
    created_at: dt.datetime
    completed_at: Optional[dt.datetime] = None
    result: Optional[ItineraryResult] = None
    error: Optional[ItineraryError] = None
    attempts: int = Field(default=0, ge=0)
    expires_at: dt.datetime
    etag: str = ""

    def is_expired(self, now: dt.datetime) -> bool:
        return now > self.expires_at


class JobView(BaseModel):
    job_id: str
    status: JobStatus
    result: Optional[ItineraryResult] = None
    error: Optional[ItineraryError] = None
    retry_after_seconds: Optional[int] = None

    @classmethod
    def from_job(cls, job: ItineraryJob, *, retry_after_seconds: int) -> "JobView":
        return cls(
            job_id=job.job_id,
            status=job.status,
            result=job.result,
            error=job.error,
            retry_after_seconds=retry_after_seconds if job.status is JobStatus.PROCESSING else None,
        )
