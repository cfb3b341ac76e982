"""Persists operator fixes onto their in-transit deliveries."""

from __future__ import annotations

import logging
from concurrent.futures import Future, ThreadPoolExecutor
from functools import partial
from typing import Callable

from ...models.domain import DeliveryStatus, Fix
from ...persistence.repository import DeliveryRepository
from ..geospatial import validate_coordinate

logger = logging.getLogger(__name__)


class LocationRecorder:
    """Writes fixes in arrival order on a single background worker.

    The repository refuses a fix older than (or as old as) the stored one, so a
    late-arriving stale fix never replaces a newer position.
    """

    def __init__(self, repository: DeliveryRepository, *, executor: ThreadPoolExecutor | None = None) -> None:
        self.repository = repository
        self._executor = executor or ThreadPoolExecutor(max_workers=1, thread_name_prefix="location-recorder")

    def record(self, operator_id: str, fix: Fix) -> Future:
        """Queue ``fix`` for storage; the future resolves to the number of deliveries updated."""
        return self._executor.submit(self._write, operator_id, fix)

    def listener(self, operator_id: str) -> Callable[[Fix], Future]:
        return partial(self.record, operator_id)

    def _write(self, operator_id: str, fix: Fix) -> int:
        if not validate_coordinate(fix.coordinate):
            logger.warning(f"Ignoring invalid fix for operator {operator_id}: {fix.coordinate}")
            return 0
        try:
            deliveries = self.repository.list_operator_deliveries(operator_id, [DeliveryStatus.IN_TRANSIT])
        except Exception as exc:
            logger.error(f"Could not load in-transit deliveries for operator {operator_id}: {exc}")
            return 0

        written = 0
        for delivery in deliveries:
            try:
                if self.repository.record_operator_location(delivery.id, fix):
                    written += 1
                else:
                    logger.debug(
                        f"Dropped stale fix for delivery {delivery.id} ({fix.timestamp.isoformat()})"
                    )
            except Exception as exc:
                logger.error(f"Failed to store location for delivery {delivery.id}: {exc}")
        return written

    def flush(self, timeout: float | None = None) -> None:
        """Block until every fix queued so far has been handled."""
        self._executor.submit(lambda: None).result(timeout=timeout)

    def close(self) -> None:
        self._executor.shutdown(wait=True)
