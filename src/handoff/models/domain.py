"""Domain models for deliveries, stops, fixes and planned routes."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class DeliveryStatus(str, Enum):
    ASSIGNED = "assigned"
    IN_TRANSIT = "in_transit"
    ARRIVED = "arrived"
    COMPLETED = "completed"
    CANCELLED = "cancelled"

    @property
    def is_terminal(self) -> bool:
        return self in (DeliveryStatus.COMPLETED, DeliveryStatus.CANCELLED)

    @property
    def rank(self) -> int:
        """Position along the forward path; cancelled sits outside it."""
        return _STATUS_RANK[self]


_STATUS_RANK = {
    DeliveryStatus.ASSIGNED: 0,
    DeliveryStatus.IN_TRANSIT: 1,
    DeliveryStatus.ARRIVED: 2,
    DeliveryStatus.COMPLETED: 3,
    DeliveryStatus.CANCELLED: -1,
}


class Priority(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    URGENT = "urgent"

    @property
    def weight(self) -> int:
        return ("low", "medium", "high", "urgent").index(self.value)


class StopKind(str, Enum):
    PICKUP = "pickup"
    DROPOFF = "dropoff"


class TravelMode(str, Enum):
    DRIVING = "driving"
    WALKING = "walking"
    BICYCLING = "bicycling"
    TRANSIT = "transit"


class RouteSource(str, Enum):
    PROVIDER = "provider"
    FALLBACK = "fallback"


@dataclass(frozen=True, slots=True)
class Coordinate:
    lat: float
    lng: float

    def as_tuple(self) -> tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True, slots=True)
class Fix:
    """A single geolocation reading."""

    coordinate: Coordinate
    accuracy_m: float
    timestamp: datetime

    def is_accurate(self, threshold_m: float) -> bool:
        return self.accuracy_m <= threshold_m

    def age_seconds(self, now: datetime | None = None) -> float:
        return ((now or utcnow()) - self.timestamp).total_seconds()


@dataclass(frozen=True, slots=True)
class Stop:
    delivery_id: str
    kind: StopKind
    coordinate: Coordinate
    address: str = ""


@dataclass(frozen=True, slots=True)
class Delivery:
    """Represents one hand-off assigned to a volunteer operator."""

    id: str
    status: DeliveryStatus
    pickup: Stop
    dropoff: Stop
    assigned_operator_id: str
    priority: Priority = Priority.MEDIUM
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    last_known_operator_location: Optional[Fix] = None
    notes: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    cancellation_reason: Optional[str] = None
    donor_id: Optional[str] = None
    recipient_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Leg:
    from_coordinate: Coordinate
    to_coordinate: Coordinate
    distance_meters: float
    duration_seconds: float
    start_address: str = ""
    end_address: str = ""


@dataclass(frozen=True, slots=True)
class Route:
    origin: Coordinate
    ordered_stops: tuple[Stop, ...]
    legs: tuple[Leg, ...]
    total_distance_meters: float
    total_duration_seconds: float
    mode: TravelMode = TravelMode.DRIVING
    source: RouteSource = RouteSource.FALLBACK
    computed_at: datetime = field(default_factory=utcnow)


@dataclass(frozen=True, slots=True)
class ConfirmationRequest:
    id: str
    delivery_id: str
    initiated_by_operator_id: str
    created_at: datetime
    resolved: bool = False
