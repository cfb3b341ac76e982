"""Post-transition hooks run after a delivery transition has been persisted."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, List

from ...models.domain import Delivery, DeliveryStatus
from ...persistence.repository import DeliveryRepository

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransitionEvent:
    delivery: Delivery
    previous_status: DeliveryStatus
    occurred_at: datetime

    @property
    def status(self) -> DeliveryStatus:
        return self.delivery.status


TransitionHook = Callable[[TransitionEvent], None]


class TransitionHooks:
    """Ordered hook list. A failing hook is logged and skipped; it never undoes the transition."""

    def __init__(self, hooks: Iterable[TransitionHook] = ()) -> None:
        self._hooks: List[TransitionHook] = list(hooks)

    def register(self, hook: TransitionHook) -> TransitionHook:
        self._hooks.append(hook)
        return hook

    def __len__(self) -> int:
        return len(self._hooks)

    def run(self, event: TransitionEvent) -> int:
        """Invoke every hook; return how many failed."""
        failures = 0
        for hook in list(self._hooks):
            try:
                hook(event)
            except Exception:
                failures += 1
                name = getattr(hook, "__name__", type(hook).__name__)
                logger.exception(
                    f"Hook {name} failed for delivery {event.delivery.id} "
                    f"({event.previous_status.value} -> {event.status.value})"
                )
        return failures


class NotificationHook:
    """Notifies donor and recipient when a hand-off completes or is cancelled."""

    def __init__(self, repository: DeliveryRepository) -> None:
        self.repository = repository

    def __call__(self, event: TransitionEvent) -> None:
        delivery = event.delivery
        if event.status is DeliveryStatus.COMPLETED:
            message = (
                "Your volunteer has reported the hand-off as delivered. "
                "Please confirm receipt to complete the transaction."
            )
            for role, user_id in (("donor", delivery.donor_id), ("recipient", delivery.recipient_id)):
                if not user_id:
                    continue
                self.repository.create_notification(
                    user_id,
                    "delivery_completed",
                    "Delivery Reported - Please Confirm",
                    message,
                    {
                        "delivery_id": delivery.id,
                        "volunteer_id": delivery.assigned_operator_id,
                        "role": role,
                        "action_required": "confirm_delivery",
                    },
                )
        elif event.status is DeliveryStatus.CANCELLED:
            reason = delivery.cancellation_reason or "no reason given"
            for user_id in (delivery.donor_id, delivery.recipient_id):
                if not user_id:
                    continue
                self.repository.create_notification(
                    user_id,
                    "delivery_cancelled",
                    "Delivery Cancelled",
                    f"The delivery was cancelled ({reason}).",
                    {"delivery_id": delivery.id, "previous_status": event.previous_status.value},
                )
