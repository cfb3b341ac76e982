"""Device geolocation platforms consumed by the location tracker."""

from __future__ import annotations

import itertools
import logging
import threading
from typing import Callable, Protocol

from ...config import settings
from ...errors import LocationError, LocationPermissionDenied, LocationTimeout
from ...models.domain import Fix, utcnow
from ..geospatial import ensure_valid

logger = logging.getLogger(__name__)

FixCallback = Callable[[Fix], None]
ErrorCallback = Callable[[LocationError], None]


class GeolocationPlatform(Protocol):
    def supports_geolocation(self) -> bool:
        ...

    def get_current_position(self, *, timeout: float, high_accuracy: bool = True) -> Fix:
        ...

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback, *, high_accuracy: bool = True) -> int:
        ...

    def clear_watch(self, watch_id: int) -> None:
        ...


class ReportedPositionPlatform:
    """Platform fed by fixes the operator's device pushes to the service.

    ``get_current_position`` answers from the most recent fix when it is no
    older than ``max_age_seconds``; otherwise it waits for the next report.
    """

    def __init__(self, *, max_age_seconds: float | None = None) -> None:
        self.max_age_seconds = settings.location_max_age_seconds if max_age_seconds is None else max_age_seconds
        self._cond = threading.Condition()
        self._latest: Fix | None = None
        self._sequence = 0
        self._permission_denied = False
        self._watchers: dict[int, tuple[FixCallback, ErrorCallback]] = {}
        self._ids = itertools.count(1)

    def supports_geolocation(self) -> bool:
        return True

    @property
    def latest_fix(self) -> Fix | None:
        with self._cond:
            return self._latest

    @property
    def active_watches(self) -> int:
        with self._cond:
            return len(self._watchers)

    def report(self, fix: Fix) -> bool:
        """Publish a fix. Returns False when it is older than the latest one and was dropped."""
        ensure_valid(fix.coordinate)
        with self._cond:
            if self._latest is not None and fix.timestamp < self._latest.timestamp:
                logger.debug(
                    f"Dropping out-of-order fix from {fix.timestamp.isoformat()}; "
                    f"latest is {self._latest.timestamp.isoformat()}"
                )
                return False
            self._latest = fix
            self._sequence += 1
            self._permission_denied = False
            self._cond.notify_all()
            watchers = list(self._watchers.values())
        for on_fix, _ in watchers:
            on_fix(fix)
        return True

    def report_error(self, error: LocationError) -> None:
        with self._cond:
            if isinstance(error, LocationPermissionDenied):
                self._permission_denied = True
            self._cond.notify_all()
            watchers = list(self._watchers.values())
        for _, on_error in watchers:
            on_error(error)

    def revoke_permission(self) -> None:
        self.report_error(LocationPermissionDenied("Location permission was revoked on the device."))

    def get_current_position(self, *, timeout: float, high_accuracy: bool = True) -> Fix:
        with self._cond:
            if self._permission_denied:
                raise LocationPermissionDenied("Location permission denied.")
            if self._latest is not None and self._latest.age_seconds(utcnow()) <= self.max_age_seconds:
                return self._latest
            start = self._sequence
            arrived = self._cond.wait_for(
                lambda: self._sequence != start or self._permission_denied, timeout=timeout
            )
            if self._permission_denied:
                raise LocationPermissionDenied("Location permission denied.")
            if not arrived:
                raise LocationTimeout(f"No position fix received within {timeout:.1f}s.")
            return self._latest

    def watch_position(self, on_fix: FixCallback, on_error: ErrorCallback, *, high_accuracy: bool = True) -> int:
        with self._cond:
            watch_id = next(self._ids)
            self._watchers[watch_id] = (on_fix, on_error)
        return watch_id

    def clear_watch(self, watch_id: int) -> None:
        with self._cond:
            self._watchers.pop(watch_id, None)
