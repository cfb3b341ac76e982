"""Persistence contract for deliveries and confirmation requests, plus an in-memory store."""

from __future__ import annotations

import itertools
import threading
from dataclasses import replace
from typing import Any, Iterable, Mapping, Protocol

from ..errors import DeliveryNotFound
from ..models.domain import ConfirmationRequest, Delivery, DeliveryStatus, Fix, utcnow
from .rows import DELIVERY_COLUMNS


class DeliveryRepository(Protocol):
    def get_delivery(self, delivery_id: str) -> Delivery:
        ...

    def update_delivery(
        self,
        delivery_id: str,
        fields: Mapping[str, Any],
        *,
        expected_status: DeliveryStatus | None = None,
    ) -> Delivery | None:
        """Write partial fields and return the stored record.

        With ``expected_status`` the write only applies while the stored status
        still matches; ``None`` is returned otherwise.
        """
        ...

    def record_operator_location(self, delivery_id: str, fix: Fix) -> bool:
        """Store ``fix`` unless a fix with the same or newer timestamp is already stored."""
        ...

    def list_operator_deliveries(
        self, operator_id: str, statuses: Iterable[DeliveryStatus] | None = None
    ) -> list[Delivery]:
        ...

    def get_open_confirmation(self, delivery_id: str) -> ConfirmationRequest | None:
        ...

    def create_confirmation_request(self, delivery_id: str, operator_id: str) -> ConfirmationRequest:
        ...

    def create_notification(
        self, user_id: str, kind: str, title: str, message: str, data: Mapping[str, Any] | None = None
    ) -> None:
        ...


class InMemoryDeliveryRepository:
    """Thread-safe repository used in tests and when no database is configured."""

    def __init__(self, deliveries: Iterable[Delivery] = ()) -> None:
        self._lock = threading.Lock()
        self._deliveries: dict[str, Delivery] = {delivery.id: delivery for delivery in deliveries}
        self._confirmations: dict[str, ConfirmationRequest] = {}
        self._ids = itertools.count(1)
        self.notifications: list[dict] = []

    def add(self, delivery: Delivery) -> Delivery:
        with self._lock:
            self._deliveries[delivery.id] = delivery
        return delivery

    def get_delivery(self, delivery_id: str) -> Delivery:
        with self._lock:
            try:
                return self._deliveries[delivery_id]
            except KeyError:
                raise DeliveryNotFound(delivery_id) from None

    def update_delivery(
        self,
        delivery_id: str,
        fields: Mapping[str, Any],
        *,
        expected_status: DeliveryStatus | None = None,
    ) -> Delivery | None:
        unknown = set(fields) - set(DELIVERY_COLUMNS)
        if unknown:
            raise ValueError(f"Fields cannot be updated: {', '.join(sorted(unknown))}")
        with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None:
                raise DeliveryNotFound(delivery_id)
            if expected_status is not None and current.status is not expected_status:
                return None
            updated = replace(current, **dict(fields))
            self._deliveries[delivery_id] = updated
            return updated

    def record_operator_location(self, delivery_id: str, fix: Fix) -> bool:
        with self._lock:
            current = self._deliveries.get(delivery_id)
            if current is None:
                raise DeliveryNotFound(delivery_id)
            stored = current.last_known_operator_location
            if stored is not None and stored.timestamp >= fix.timestamp:
                return False
            self._deliveries[delivery_id] = replace(current, last_known_operator_location=fix)
            return True

    def list_operator_deliveries(
        self, operator_id: str, statuses: Iterable[DeliveryStatus] | None = None
    ) -> list[Delivery]:
        wanted = set(statuses) if statuses is not None else None
        with self._lock:
            matches = [
                delivery
                for delivery in self._deliveries.values()
                if delivery.assigned_operator_id == operator_id
                and (wanted is None or delivery.status in wanted)
            ]
        return sorted(matches, key=lambda delivery: (-delivery.priority.weight, delivery.id))

    def get_open_confirmation(self, delivery_id: str) -> ConfirmationRequest | None:
        with self._lock:
            request = self._confirmations.get(delivery_id)
            return request if request is not None and not request.resolved else None

    def create_confirmation_request(self, delivery_id: str, operator_id: str) -> ConfirmationRequest:
        with self._lock:
            existing = self._confirmations.get(delivery_id)
            if existing is not None and not existing.resolved:
                return existing
            request = ConfirmationRequest(
                id=f"conf-{next(self._ids)}",
                delivery_id=delivery_id,
                initiated_by_operator_id=operator_id,
                created_at=utcnow(),
            )
            self._confirmations[delivery_id] = request
            return request

    def confirmations(self) -> list[ConfirmationRequest]:
        with self._lock:
            return list(self._confirmations.values())

    def create_notification(
        self, user_id: str, kind: str, title: str, message: str, data: Mapping[str, Any] | None = None
    ) -> None:
        with self._lock:
            self.notifications.append(
                {"user_id": user_id, "type": kind, "title": title, "message": message, "data": dict(data or {})}
            )
