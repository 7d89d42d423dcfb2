"""Domain package exports."""

from itinerary_jobs.domain.constants import (
    CATEGORY_KEYWORDS,
    DEFAULT_CATEGORIES,
    DEFAULT_DWELL_MINUTES,
    END_MARKER,
    START_MARKER,
)
from itinerary_jobs.domain.enums import CategoryGroup, FailureReason, JobStatus, TravelMode
from itinerary_jobs.domain.exceptions import DomainError, PlanningInfeasible
from itinerary_jobs.domain.models import (
    CandidatePoi,
    DaySchedule,
    ItineraryError,
    ItineraryJob,
    ItineraryLeg,
    ItineraryRequest,
    ItineraryResult,
    ItineraryStop,
    ItinerarySummary,
    JobView,
    LocationPoint,
)

__all__ = [
    "CATEGORY_KEYWORDS",
    "CandidatePoi",
    "CategoryGroup",
    "DEFAULT_CATEGORIES",
    "DEFAULT_DWELL_MINUTES",
    "DaySchedule",
    "DomainError",
    "END_MARKER",
    "FailureReason",
    "ItineraryError",
    "ItineraryJob",
    "ItineraryLeg",
    "ItineraryRequest",
    "ItineraryResult",
    "ItineraryStop",
    "ItinerarySummary",
    "JobStatus",
    "JobView",
    "LocationPoint",
    "PlanningInfeasible",
    "START_MARKER",
    "TravelMode",
]
