"""Supabase persistence for deliveries, confirmation requests and notifications.

Expected tables::

    deliveries(id, status, volunteer_id, priority, pickup_location jsonb,
               delivery_location jsonb, assigned_at, started_at, arrived_at,
               completed_at, cancelled_at, volunteer_location jsonb,
               volunteer_location_at timestamptz, delivery_notes,
               volunteer_rating, volunteer_feedback, cancellation_reason,
               donor_id, recipient_id, updated_at)
    delivery_confirmations(id, delivery_id, initiated_by, created_at, resolved)
        -- unique index on (delivery_id) where not resolved
    notifications(id, user_id, type, title, message, data jsonb, read_at)
"""

from __future__ import annotations

import logging
from typing import Any, Iterable, Mapping

from ..db.supabase import get_supabase_client
from ..errors import DeliveryNotFound
from ..models.domain import ConfirmationRequest, Delivery, DeliveryStatus, Fix, utcnow
from .rows import confirmation_from_row, delivery_from_row, fields_to_row, to_iso

logger = logging.getLogger(__name__)

UNIQUE_VIOLATION = "23505"


class SupabaseDeliveryRepository:
    def __init__(self, client: Any | None = None) -> None:
        self.client = client if client is not None else get_supabase_client()
        if self.client is None:
            raise ValueError(
                "Supabase not configured. Set HANDOFF_SUPABASE_URL and HANDOFF_SUPABASE_KEY environment variables."
            )

    def get_delivery(self, delivery_id: str) -> Delivery:
        response = self.client.table("deliveries").select("*").eq("id", delivery_id).limit(1).execute()
        rows = response.data or []
        if not rows:
            raise DeliveryNotFound(delivery_id)
        return delivery_from_row(rows[0])

    def update_delivery(
        self,
        delivery_id: str,
        fields: Mapping[str, Any],
        *,
        expected_status: DeliveryStatus | None = None,
    ) -> Delivery | None:
        row = fields_to_row(fields)
        row["updated_at"] = to_iso(utcnow())
        query = self.client.table("deliveries").update(row).eq("id", delivery_id)
        if expected_status is not None:
            query = query.eq("status", expected_status.value)
        response = query.execute()
        rows = response.data or []
        if rows:
            return delivery_from_row(rows[0])
        if expected_status is not None:
            # Either the row is gone or someone else moved it first; tell them apart.
            self.get_delivery(delivery_id)
            return None
        raise DeliveryNotFound(delivery_id)

    def record_operator_location(self, delivery_id: str, fix: Fix) -> bool:
        row = fields_to_row({"last_known_operator_location": fix})
        stamp = row["volunteer_location_at"]
        response = (
            self.client.table("deliveries")
            .update(row)
            .eq("id", delivery_id)
            .or_(f"volunteer_location_at.is.null,volunteer_location_at.lt.{stamp}")
            .execute()
        )
        return bool(response.data)

    def list_operator_deliveries(
        self, operator_id: str, statuses: Iterable[DeliveryStatus] | None = None
    ) -> list[Delivery]:
        query = self.client.table("deliveries").select("*").eq("volunteer_id", operator_id)
        if statuses is not None:
            query = query.in_("status", [status.value for status in statuses])
        response = query.execute()
        deliveries: list[Delivery] = []
        for row in response.data or []:
            try:
                deliveries.append(delivery_from_row(row))
            except (KeyError, ValueError, TypeError) as e:
                # Skip malformed rows but keep the rest of the operator's work visible
                logger.warning(f"Skipping invalid delivery row {row.get('id')}: {e}")
        return sorted(deliveries, key=lambda delivery: (-delivery.priority.weight, delivery.id))

    def get_open_confirmation(self, delivery_id: str) -> ConfirmationRequest | None:
        response = (
            self.client.table("delivery_confirmations")
            .select("*")
            .eq("delivery_id", delivery_id)
            .eq("resolved", False)
            .limit(1)
            .execute()
        )
        rows = response.data or []
        return confirmation_from_row(rows[0]) if rows else None

    def create_confirmation_request(self, delivery_id: str, operator_id: str) -> ConfirmationRequest:
        payload = {
            "delivery_id": delivery_id,
            "initiated_by": operator_id,
            "created_at": to_iso(utcnow()),
            "resolved": False,
        }
        try:
            response = self.client.table("delivery_confirmations").insert(payload).execute()
        except Exception as exc:
            if getattr(exc, "code", None) != UNIQUE_VIOLATION:
                raise
            existing = self.get_open_confirmation(delivery_id)
            if existing is None:
                raise
            logger.info(f"Confirmation request for delivery {delivery_id} already open; reusing it.")
            return existing
        return confirmation_from_row(response.data[0])

    def create_notification(
        self, user_id: str, kind: str, title: str, message: str, data: Mapping[str, Any] | None = None
    ) -> None:
        self.client.table("notifications").insert(
            {
                "user_id": user_id,
                "type": kind,
                "title": title,
                "message": message,
                "data": dict(data or {}),
            }
        ).execute()
