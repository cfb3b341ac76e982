"""Conversion between domain objects and database rows."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import Any, Mapping

from ..models.domain import (
    ConfirmationRequest,
    Coordinate,
    Delivery,
    DeliveryStatus,
    Fix,
    Priority,
    Stop,
    StopKind,
)

# Domain field -> deliveries column
DELIVERY_COLUMNS = {
    "status": "status",
    "assigned_operator_id": "volunteer_id",
    "priority": "priority",
    "assigned_at": "assigned_at",
    "started_at": "started_at",
    "arrived_at": "arrived_at",
    "completed_at": "completed_at",
    "cancelled_at": "cancelled_at",
    "last_known_operator_location": "volunteer_location",
    "notes": "delivery_notes",
    "rating": "volunteer_rating",
    "feedback": "volunteer_feedback",
    "cancellation_reason": "cancellation_reason",
}


def to_iso(value: datetime) -> str:
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%S.%fZ")


def parse_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        parsed = value
    else:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def fix_to_json(fix: Fix) -> dict:
    return {
        "lat": fix.coordinate.lat,
        "lng": fix.coordinate.lng,
        "accuracy": fix.accuracy_m,
        "timestamp": to_iso(fix.timestamp),
    }


def fix_from_json(payload: Mapping[str, Any] | None) -> Fix | None:
    if not payload:
        return None
    timestamp = parse_datetime(payload.get("timestamp"))
    if timestamp is None:
        return None
    return Fix(
        coordinate=Coordinate(lat=float(payload["lat"]), lng=float(payload["lng"])),
        accuracy_m=float(payload.get("accuracy") or 0.0),
        timestamp=timestamp,
    )


def _stop_from_json(delivery_id: str, kind: StopKind, payload: Mapping[str, Any] | None) -> Stop:
    payload = payload or {}
    return Stop(
        delivery_id=delivery_id,
        kind=kind,
        coordinate=Coordinate(lat=float(payload.get("lat", "nan")), lng=float(payload.get("lng", "nan"))),
        address=str(payload.get("address") or ""),
    )


def _stop_to_json(stop: Stop) -> dict:
    return {"lat": stop.coordinate.lat, "lng": stop.coordinate.lng, "address": stop.address}


def delivery_from_row(row: Mapping[str, Any]) -> Delivery:
    delivery_id = str(row["id"])
    rating = row.get("volunteer_rating")
    return Delivery(
        id=delivery_id,
        status=DeliveryStatus(row["status"]),
        pickup=_stop_from_json(delivery_id, StopKind.PICKUP, row.get("pickup_location")),
        dropoff=_stop_from_json(delivery_id, StopKind.DROPOFF, row.get("delivery_location")),
        assigned_operator_id=str(row.get("volunteer_id") or ""),
        priority=Priority(row.get("priority") or Priority.MEDIUM.value),
        assigned_at=parse_datetime(row.get("assigned_at")),
        started_at=parse_datetime(row.get("started_at")),
        arrived_at=parse_datetime(row.get("arrived_at")),
        completed_at=parse_datetime(row.get("completed_at")),
        cancelled_at=parse_datetime(row.get("cancelled_at")),
        last_known_operator_location=fix_from_json(row.get("volunteer_location")),
        notes=row.get("delivery_notes"),
        rating=int(rating) if rating is not None else None,
        feedback=row.get("volunteer_feedback"),
        cancellation_reason=row.get("cancellation_reason"),
        donor_id=row.get("donor_id"),
        recipient_id=row.get("recipient_id"),
    )


def delivery_to_row(delivery: Delivery) -> dict:
    row = fields_to_row(
        {name: getattr(delivery, name) for name in DELIVERY_COLUMNS}
    )
    row.update(
        {
            "id": delivery.id,
            "pickup_location": _stop_to_json(delivery.pickup),
            "delivery_location": _stop_to_json(delivery.dropoff),
            "donor_id": delivery.donor_id,
            "recipient_id": delivery.recipient_id,
        }
    )
    return row


def fields_to_row(fields: Mapping[str, Any]) -> dict:
    """Translate a partial domain update into column values."""
    row: dict[str, Any] = {}
    for name, value in fields.items():
        column = DELIVERY_COLUMNS.get(name)
        if column is None:
            raise ValueError(f"Field '{name}' cannot be updated.")
        if isinstance(value, datetime):
            value = to_iso(value)
        elif isinstance(value, Fix):
            value = fix_to_json(value)
        elif isinstance(value, (DeliveryStatus, Priority)):
            value = value.value
        row[column] = value
    if "volunteer_location" in row:
        location = fields["last_known_operator_location"]
        row["volunteer_location_at"] = to_iso(location.timestamp) if location else None
    return row


def confirmation_from_row(row: Mapping[str, Any]) -> ConfirmationRequest:
    return ConfirmationRequest(
        id=str(row["id"]),
        delivery_id=str(row["delivery_id"]),
        initiated_by_operator_id=str(row["initiated_by"]),
        created_at=parse_datetime(row.get("created_at")) or datetime.now(timezone.utc),
        resolved=bool(row.get("resolved", False)),
    )
