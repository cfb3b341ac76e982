"""Operator location tracking: one-shot reads and continuous watches."""

from __future__ import annotations

import logging
import threading
from collections import deque
from datetime import datetime
from typing import Callable

from ...config import settings
from ...errors import LocationError, LocationUnavailable
from ...models.domain import Fix
from .platform import GeolocationPlatform

logger = logging.getLogger(__name__)

UpdateCallback = Callable[[Fix], None]
ErrorCallback = Callable[[LocationError], None]


class WatchHandle:
    """Cancels a watch. Safe to call more than once."""

    def __init__(self, stop: Callable[[], None]) -> None:
        self._stop = stop
        self._lock = threading.Lock()
        self._cancelled = False

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        with self._lock:
            if self._cancelled:
                return
            self._cancelled = True
        self._stop()

    __call__ = cancel


class _Watch:
    """Delivers platform fixes to a consumer on a dedicated thread.

    Fixes arriving while the consumer is busy replace each other; the consumer
    only ever sees the one with the newest timestamp. Errors are queued and all
    delivered.
    """

    def __init__(
        self,
        platform: GeolocationPlatform,
        on_update: UpdateCallback,
        on_error: ErrorCallback | None,
        name: str,
    ) -> None:
        self._platform = platform
        self._on_update = on_update
        self._on_error = on_error
        self._cond = threading.Condition()
        self._pending_fix: Fix | None = None
        self._newest: datetime | None = None
        self._pending_errors: deque[LocationError] = deque()
        self._stopped = False
        self.superseded = 0
        self._thread = threading.Thread(target=self._run, name=f"location-watch-{name}", daemon=True)
        self._thread.start()
        self._watch_id = platform.watch_position(self._offer, self._fail, high_accuracy=True)

    def _offer(self, fix: Fix) -> None:
        with self._cond:
            if self._stopped:
                return
            if self._newest is not None and fix.timestamp < self._newest:
                return
            if self._pending_fix is not None:
                self.superseded += 1
            self._newest = fix.timestamp
            self._pending_fix = fix
            self._cond.notify()

    def _fail(self, error: LocationError) -> None:
        with self._cond:
            if self._stopped:
                return
            self._pending_errors.append(error)
            self._cond.notify()

    def _run(self) -> None:
        while True:
            with self._cond:
                self._cond.wait_for(
                    lambda: self._stopped or self._pending_fix is not None or bool(self._pending_errors)
                )
                if self._stopped:
                    return
                fix, self._pending_fix = self._pending_fix, None
                errors = list(self._pending_errors)
                self._pending_errors.clear()

            for error in errors:
                logger.warning(f"Location watch error: {error}")
                if self._on_error is not None:
                    try:
                        self._on_error(error)
                    except Exception:
                        logger.exception("Location error callback failed")
            if fix is not None:
                try:
                    self._on_update(fix)
                except Exception:
                    logger.exception("Location update callback failed")

    def stop(self) -> None:
        with self._cond:
            if self._stopped:
                return
            self._stopped = True
            self._pending_fix = None
            self._pending_errors.clear()
            self._cond.notify_all()
        self._platform.clear_watch(self._watch_id)
        if threading.current_thread() is not self._thread:
            self._thread.join()


class LocationTracker:
    """Reads an operator's position from a geolocation platform.

    Example:
        >>> tracker = LocationTracker(platform, name="op-1")
        >>> handle = tracker.watch(print)
        >>> handle.cancel()
    """

    def __init__(
        self,
        platform: GeolocationPlatform,
        *,
        name: str = "operator",
        timeout: float | None = None,
        accuracy_threshold_m: float | None = None,
    ) -> None:
        self.platform = platform
        self.name = name
        self.timeout = timeout if timeout is not None else settings.location_timeout_seconds
        self.accuracy_threshold_m = (
            accuracy_threshold_m
            if accuracy_threshold_m is not None
            else settings.location_accuracy_threshold_meters
        )

    def _ensure_supported(self) -> None:
        if not self.platform.supports_geolocation():
            raise LocationUnavailable("Geolocation is not supported on this device.")

    def get_current_location(self, timeout: float | None = None) -> Fix:
        """Return one high-accuracy fix or raise a ``LocationError`` subtype."""
        self._ensure_supported()
        fix = self.platform.get_current_position(
            timeout=timeout if timeout is not None else self.timeout,
            high_accuracy=True,
        )
        if not fix.is_accurate(self.accuracy_threshold_m):
            logger.debug(
                f"Low-accuracy fix for {self.name}: {fix.accuracy_m:.0f}m "
                f"(threshold {self.accuracy_threshold_m:.0f}m)"
            )
        return fix

    def watch(self, on_update: UpdateCallback, on_error: ErrorCallback | None = None) -> WatchHandle:
        """Stream fixes to ``on_update`` until the returned handle is cancelled.

        Once ``cancel`` returns, neither callback is invoked again.
        """
        self._ensure_supported()
        watch = _Watch(self.platform, on_update, on_error, self.name)
        logger.info(f"Started location watch for {self.name}")
        return WatchHandle(watch.stop)
