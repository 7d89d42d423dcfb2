"""API request/response models."""

from __future__ import annotations

import datetime as dt
import re
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from itinerary_jobs.domain.enums import TravelMode
from itinerary_jobs.domain.models import ItineraryRequest, LocationPoint

_MODE_ALIASES = {
    "walking": TravelMode.WALKING,
    "walk": TravelMode.WALKING,
    "publictransport": TravelMode.PUBLIC_TRANSPORT,
    "transit": TravelMode.PUBLIC_TRANSPORT,
    "car": TravelMode.CAR,
    "driving": TravelMode.CAR,
}


class PointBody(BaseModel):
    lat: float = Field(ge=-90.0, le=90.0)
    lon: float = Field(ge=-180.0, le=180.0)


class ItineraryJobRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    start: PointBody
    end: PointBody
    max_duration_minutes: int = Field(alias="maxDurationMinutes", ge=60, le=720)
    mode: TravelMode = TravelMode.WALKING
    interests: str = Field(default="", max_length=500)
    language: str = Field(default="en", min_length=1, max_length=10)
    departure_time: Optional[dt.datetime] = Field(default=None, alias="departureTime")

    @field_validator("mode", mode="before")
    @classmethod
    def _normalize_mode(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = re.sub(r"[^a-z]", "", value.lower())
            return _MODE_ALIASES.get(key, value)
        return value

    def to_domain(self) -> ItineraryRequest:
        return ItineraryRequest(
            start=LocationPoint(lat=self.start.lat, lon=self.start.lon),
            end=LocationPoint(lat=self.end.lat, lon=self.end.lon),
            max_duration_minutes=self.max_duration_minutes,
            mode=self.mode,
            interests=self.interests,
            language=self.language,
            departure_time=self.departure_time,
        )


class JobAccepted(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")


class JobStatusResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    job_id: str = Field(alias="jobId")
    status: str
    result: Optional[dict[str, Any]] = None


class NoItineraryResponse(BaseModel):
    code: str = "NO_ITINERARY"
    reason: str
    message: str = ""


class HealthResponse(BaseModel):
    status: str = "ok"
