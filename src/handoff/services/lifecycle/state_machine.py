"""Delivery lifecycle: assigned -> in_transit -> arrived -> completed, or cancelled."""

from __future__ import annotations

import logging
from typing import Any, Callable, Mapping, Union

from ...errors import (
    ConfirmationFailed,
    DeliveryNotFound,
    InvalidTransition,
    PersistenceFailed,
)
from ...models.domain import ConfirmationRequest, Delivery, DeliveryStatus, utcnow
from ...persistence.repository import DeliveryRepository
from ..confirmation.coordinator import ConfirmationCoordinator
from .hooks import TransitionEvent, TransitionHooks
from .locks import DeliveryLocks

logger = logging.getLogger(__name__)

DeliveryRef = Union[Delivery, str]

ALLOWED_SOURCES: dict[DeliveryStatus, frozenset[DeliveryStatus]] = {
    DeliveryStatus.IN_TRANSIT: frozenset({DeliveryStatus.ASSIGNED}),
    DeliveryStatus.ARRIVED: frozenset({DeliveryStatus.IN_TRANSIT}),
    DeliveryStatus.COMPLETED: frozenset({DeliveryStatus.ARRIVED}),
    DeliveryStatus.CANCELLED: frozenset(
        {DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT, DeliveryStatus.ARRIVED}
    ),
}

TIMESTAMP_FIELDS: dict[DeliveryStatus, str] = {
    DeliveryStatus.IN_TRANSIT: "started_at",
    DeliveryStatus.ARRIVED: "arrived_at",
    DeliveryStatus.COMPLETED: "completed_at",
    DeliveryStatus.CANCELLED: "cancelled_at",
}


def can_transition(current: DeliveryStatus, target: DeliveryStatus) -> bool:
    return current in ALLOWED_SOURCES.get(target, frozenset())


def _validate_rating(rating: int | None) -> None:
    if rating is None:
        return
    if isinstance(rating, bool) or not isinstance(rating, int) or not 1 <= rating <= 5:
        raise ValueError(f"Rating must be an integer between 1 and 5, got {rating!r}.")


class DeliveryStateMachine:
    """The only legal mutator of a delivery's status.

    Every transition runs under the delivery's lock, re-reads the stored record,
    and is reported successful only once the conditional write has landed.
    Callers' ``Delivery`` objects are immutable, so a failed write leaves them
    exactly as they were.
    """

    def __init__(
        self,
        repository: DeliveryRepository,
        confirmations: ConfirmationCoordinator | None = None,
        hooks: TransitionHooks | None = None,
        *,
        locks: DeliveryLocks | None = None,
        clock: Callable[[], Any] = utcnow,
    ) -> None:
        self.repository = repository
        self._locks = locks or DeliveryLocks()
        self.confirmations = confirmations or ConfirmationCoordinator(repository, self._locks)
        self.hooks = hooks or TransitionHooks()
        self._clock = clock

    def start(self, delivery: DeliveryRef) -> Delivery:
        return self._transition(delivery, DeliveryStatus.IN_TRANSIT)

    def arrive(self, delivery: DeliveryRef) -> Delivery:
        return self._transition(delivery, DeliveryStatus.ARRIVED)

    def complete(
        self,
        delivery: DeliveryRef,
        notes: str | None = None,
        rating: int | None = None,
        feedback: str | None = None,
    ) -> Delivery:
        _validate_rating(rating)
        return self._transition(
            delivery,
            DeliveryStatus.COMPLETED,
            {"notes": notes, "rating": rating, "feedback": feedback},
        )

    def cancel(self, delivery: DeliveryRef, reason: str | None = None) -> Delivery:
        return self._transition(delivery, DeliveryStatus.CANCELLED, {"cancellation_reason": reason})

    def resume_confirmation(self, delivery: DeliveryRef) -> ConfirmationRequest:
        """Open (or return) the confirmation request of an already completed delivery."""
        delivery_id = _delivery_id(delivery)
        with self._locks.hold(delivery_id):
            current = self._load(delivery_id)
            if current.status is not DeliveryStatus.COMPLETED:
                raise InvalidTransition(current.status, DeliveryStatus.COMPLETED)
            return self.confirmations.create(delivery_id, current.assigned_operator_id)

    def _load(self, delivery_id: str) -> Delivery:
        try:
            return self.repository.get_delivery(delivery_id)
        except DeliveryNotFound:
            raise
        except Exception as exc:
            logger.error(f"Failed to read delivery {delivery_id}: {exc}")
            raise PersistenceFailed(f"Could not read delivery {delivery_id}: {exc}") from exc

    def _transition(
        self,
        delivery: DeliveryRef,
        target: DeliveryStatus,
        extra_fields: Mapping[str, Any] | None = None,
    ) -> Delivery:
        delivery_id = _delivery_id(delivery)
        confirmation_error: Exception | None = None

        with self._locks.hold(delivery_id):
            current = self._load(delivery_id)
            if not can_transition(current.status, target):
                raise InvalidTransition(current.status, target)

            occurred_at = self._clock()
            fields: dict[str, Any] = {"status": target, TIMESTAMP_FIELDS[target]: occurred_at}
            fields.update(extra_fields or {})
            try:
                updated = self.repository.update_delivery(delivery_id, fields, expected_status=current.status)
            except DeliveryNotFound:
                raise
            except Exception as exc:
                logger.error(
                    f"Failed to persist delivery {delivery_id} transition "
                    f"{current.status.value} -> {target.value}: {exc}"
                )
                raise PersistenceFailed(
                    f"Could not save delivery {delivery_id} as '{target.value}'; nothing was changed."
                ) from exc

            if updated is None:
                # Another writer advanced the record between our read and write.
                latest = self._load(delivery_id)
                raise InvalidTransition(latest.status, target)

            logger.info(f"Delivery {delivery_id}: {current.status.value} -> {target.value}")

            if target is DeliveryStatus.COMPLETED:
                try:
                    self.confirmations.create(delivery_id, updated.assigned_operator_id)
                except Exception as exc:
                    logger.error(f"Delivery {delivery_id} completed but confirmation request failed: {exc}")
                    confirmation_error = exc

        self.hooks.run(TransitionEvent(delivery=updated, previous_status=current.status, occurred_at=occurred_at))

        if confirmation_error is not None:
            raise ConfirmationFailed(
                updated,
                f"Delivery {delivery_id} is completed but its confirmation request could not be opened; retry it.",
            ) from confirmation_error
        return updated


def _delivery_id(delivery: DeliveryRef) -> str:
    return delivery.id if isinstance(delivery, Delivery) else str(delivery)
