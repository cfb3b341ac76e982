"""Delivery lifecycle request/response schemas."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, Field

from ..models.domain import ConfirmationRequest, Coordinate, Delivery, DeliveryStatus, Fix, Priority, utcnow
from .routing import StopModel


class FixModel(BaseModel):
    lat: float
    lng: float
    accuracy_m: float = Field(..., ge=0)
    timestamp: Optional[datetime] = Field(
        default=None,
        description="Time the device took the reading. Defaults to the time the server received it.",
    )

    def to_domain(self) -> Fix:
        timestamp = self.timestamp or utcnow()
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return Fix(
            coordinate=Coordinate(lat=self.lat, lng=self.lng),
            accuracy_m=self.accuracy_m,
            timestamp=timestamp,
        )

    @classmethod
    def from_domain(cls, fix: Fix) -> "FixModel":
        return cls(
            lat=fix.coordinate.lat,
            lng=fix.coordinate.lng,
            accuracy_m=fix.accuracy_m,
            timestamp=fix.timestamp,
        )


class DeliveryResponse(BaseModel):
    id: str
    status: DeliveryStatus
    priority: Priority
    assigned_operator_id: str
    pickup: StopModel
    dropoff: StopModel
    assigned_at: Optional[datetime] = None
    started_at: Optional[datetime] = None
    arrived_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    last_known_location: Optional[FixModel] = None
    notes: Optional[str] = None
    rating: Optional[int] = None
    feedback: Optional[str] = None
    cancellation_reason: Optional[str] = None

    @classmethod
    def from_domain(cls, delivery: Delivery) -> "DeliveryResponse":
        location = delivery.last_known_operator_location
        return cls(
            id=delivery.id,
            status=delivery.status,
            priority=delivery.priority,
            assigned_operator_id=delivery.assigned_operator_id,
            pickup=StopModel.from_domain(delivery.pickup),
            dropoff=StopModel.from_domain(delivery.dropoff),
            assigned_at=delivery.assigned_at,
            started_at=delivery.started_at,
            arrived_at=delivery.arrived_at,
            completed_at=delivery.completed_at,
            cancelled_at=delivery.cancelled_at,
            last_known_location=FixModel.from_domain(location) if location else None,
            notes=delivery.notes,
            rating=delivery.rating,
            feedback=delivery.feedback,
            cancellation_reason=delivery.cancellation_reason,
        )


class CompleteRequest(BaseModel):
    notes: Optional[str] = None
    rating: Optional[int] = Field(default=None, description="Operator rating of the hand-off, 1-5.")
    feedback: Optional[str] = None


class CancelRequest(BaseModel):
    reason: Optional[str] = None


class ConfirmationResponse(BaseModel):
    id: str
    delivery_id: str
    initiated_by_operator_id: str
    created_at: datetime
    resolved: bool

    @classmethod
    def from_domain(cls, request: ConfirmationRequest) -> "ConfirmationResponse":
        return cls(
            id=request.id,
            delivery_id=request.delivery_id,
            initiated_by_operator_id=request.initiated_by_operator_id,
            created_at=request.created_at,
            resolved=request.resolved,
        )
