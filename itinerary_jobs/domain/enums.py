"""Domain enums."""

from enum import Enum


class TravelMode(str, Enum):
    WALKING = "walking"
    PUBLIC_TRANSPORT = "public_transport"
    CAR = "car"


class JobStatus(str, Enum):
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.PROCESSING


class FailureReason(str, Enum):
    COMMUTE_EXCEEDS_BUDGET = "commute_exceeds_budget"
    NO_OPEN_POIS = "no_open_pois"
    NO_POIS_IN_ISOCHRONE = "no_pois_in_isochrone"
    ROUTING_FAILED = "routing_failed"
    INTERNAL_ERROR = "internal_error"


class CategoryGroup(str, Enum):
    FOOD = "food"
    CULTURAL = "cultural"
    OTHER = "other"
