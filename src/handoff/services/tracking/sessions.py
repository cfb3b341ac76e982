"""Per-operator tracking sessions driven by device-reported fixes."""

from __future__ import annotations

import logging
import threading
from typing import Callable

from ...errors import LocationError
from ...models.domain import Fix
from .platform import ReportedPositionPlatform
from .recorder import LocationRecorder
from .tracker import LocationTracker, WatchHandle

logger = logging.getLogger(__name__)


class TrackingSessions:
    """Keeps one platform per operator and at most one recording watch each."""

    def __init__(
        self,
        recorder: LocationRecorder | None = None,
        *,
        max_age_seconds: float | None = None,
        timeout: float | None = None,
    ) -> None:
        self.recorder = recorder
        self._max_age_seconds = max_age_seconds
        self._timeout = timeout
        self._lock = threading.Lock()
        self._platforms: dict[str, ReportedPositionPlatform] = {}
        self._watches: dict[str, WatchHandle] = {}

    def platform_for(self, operator_id: str) -> ReportedPositionPlatform:
        with self._lock:
            platform = self._platforms.get(operator_id)
            if platform is None:
                platform = ReportedPositionPlatform(max_age_seconds=self._max_age_seconds)
                self._platforms[operator_id] = platform
            return platform

    def tracker_for(self, operator_id: str) -> LocationTracker:
        return LocationTracker(self.platform_for(operator_id), name=operator_id, timeout=self._timeout)

    def is_open(self, operator_id: str) -> bool:
        with self._lock:
            return operator_id in self._watches

    def open(self, operator_id: str, on_update: Callable[[Fix], None] | None = None) -> bool:
        """Start recording the operator's fixes. Returns False when a session was already open."""
        tracker = self.tracker_for(operator_id)
        with self._lock:
            if operator_id in self._watches:
                return False

            def handle_fix(fix: Fix) -> None:
                if self.recorder is not None:
                    self.recorder.record(operator_id, fix)
                if on_update is not None:
                    on_update(fix)

            def handle_error(error: LocationError) -> None:
                logger.warning(f"Tracking error for operator {operator_id}: {error}")

            self._watches[operator_id] = tracker.watch(handle_fix, handle_error)
        logger.info(f"Opened tracking session for operator {operator_id}")
        return True

    def close(self, operator_id: str) -> bool:
        with self._lock:
            handle = self._watches.pop(operator_id, None)
        if handle is None:
            return False
        handle.cancel()
        logger.info(f"Closed tracking session for operator {operator_id}")
        return True

    def report(self, operator_id: str, fix: Fix) -> bool:
        return self.platform_for(operator_id).report(fix)

    def report_error(self, operator_id: str, error: LocationError) -> None:
        self.platform_for(operator_id).report_error(error)

    def current_location(self, operator_id: str, timeout: float | None = None) -> Fix:
        return self.tracker_for(operator_id).get_current_location(timeout)

    def close_all(self) -> None:
        with self._lock:
            operator_ids = list(self._watches)
        for operator_id in operator_ids:
            self.close(operator_id)
