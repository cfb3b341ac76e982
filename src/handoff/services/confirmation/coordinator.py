"""Confirmation requests opened when an operator reports a delivery as completed."""

from __future__ import annotations

import logging

from ...models.domain import ConfirmationRequest
from ...persistence.repository import DeliveryRepository
from ..lifecycle.locks import DeliveryLocks

logger = logging.getLogger(__name__)


class ConfirmationCoordinator:
    """Keeps at most one open confirmation request per delivery.

    ``create`` is idempotent: a repeated call (for example a retry after a
    timeout) returns the request that is already open instead of failing.
    """

    def __init__(self, repository: DeliveryRepository, locks: DeliveryLocks | None = None) -> None:
        self.repository = repository
        self._locks = locks or DeliveryLocks()

    def create(self, delivery_id: str, initiated_by: str) -> ConfirmationRequest:
        with self._locks.hold(f"confirmation:{delivery_id}"):
            existing = self.repository.get_open_confirmation(delivery_id)
            if existing is not None:
                logger.info(f"Confirmation request {existing.id} already open for delivery {delivery_id}.")
                return existing
            request = self.repository.create_confirmation_request(delivery_id, initiated_by)
            logger.info(f"Opened confirmation request {request.id} for delivery {delivery_id}.")
            return request

    def get_open(self, delivery_id: str) -> ConfirmationRequest | None:
        return self.repository.get_open_confirmation(delivery_id)
