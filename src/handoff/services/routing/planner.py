"""Route planning for operators carrying several active deliveries."""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeout
from dataclasses import dataclass
from typing import Iterable, Sequence

from ...config import settings
from ...errors import (
    NoStops,
    PlanningCancelled,
    ProviderNoResult,
    ProviderUnavailable,
    RouteError,
)
from ...models.domain import (
    Coordinate,
    Delivery,
    DeliveryStatus,
    Leg,
    Route,
    RouteSource,
    Stop,
    TravelMode,
)
from ..geospatial import distance_meters, ensure_valid
from .fallback import plan_locally, stop_sort_key
from .models import DirectionsRequest, DirectionsResult
from .provider import DirectionsProvider

logger = logging.getLogger(__name__)

_POLL_INTERVAL_SECONDS = 0.05


@dataclass(frozen=True, slots=True)
class _CachedRoute:
    key: tuple
    route: Route


def collect_stops(deliveries: Iterable[Delivery]) -> list[Stop]:
    """Return the next actionable stop of each delivery.

    Assigned deliveries still need their pickup; deliveries in transit need
    their dropoff. Arrived and terminal deliveries have nothing left to route.
    """
    stops: list[Stop] = []
    for delivery in deliveries:
        if delivery.status is DeliveryStatus.ASSIGNED:
            stops.append(delivery.pickup)
        elif delivery.status is DeliveryStatus.IN_TRANSIT:
            stops.append(delivery.dropoff)
    return stops


class RoutePlanner:
    """Orders stops through a directions provider, falling back to nearest-neighbour.

    Provider optimisation is always preferred. Only ``ProviderUnavailable`` and
    ``ProviderNoResult`` are absorbed (logged as degraded mode); denial and quota
    errors reach the caller.
    """

    def __init__(
        self,
        provider: DirectionsProvider | None = None,
        *,
        max_waypoints: int | None = None,
        default_timeout: float | None = None,
        max_workers: int = 4,
    ) -> None:
        self.provider = provider
        self.max_waypoints = max_waypoints if max_waypoints is not None else settings.provider_max_waypoints
        self.default_timeout = default_timeout if default_timeout is not None else settings.plan_timeout_seconds
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="route-planner")
        self._lock = threading.Lock()
        self._cache: dict[str, _CachedRoute] = {}
        self._generations: dict[str, int] = {}

    def plan(
        self,
        origin: Coordinate,
        stops: Sequence[Stop],
        mode: TravelMode = TravelMode.DRIVING,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Route:
        if not stops:
            raise NoStops()
        ensure_valid(origin)
        for stop in stops:
            ensure_valid(stop.coordinate)

        if self.provider is None:
            logger.info(f"No directions provider configured; planning {len(stops)} stop(s) locally.")
            return plan_locally(origin, stops, mode)

        if len(stops) - 1 > self.max_waypoints:
            logger.warning(
                f"Degraded routing: {len(stops)} stops exceed the provider waypoint limit "
                f"({self.max_waypoints}); using nearest-neighbour fallback."
            )
            return plan_locally(origin, stops, mode)

        try:
            return self._plan_with_provider(origin, stops, mode, timeout, cancel_event)
        except (ProviderUnavailable, ProviderNoResult) as exc:
            logger.warning(
                f"Degraded routing: directions provider failed ({type(exc).__name__}: {exc}); "
                f"using nearest-neighbour fallback for {len(stops)} stop(s)."
            )
            if cancel_event is not None and cancel_event.is_set():
                raise PlanningCancelled() from exc
            return plan_locally(origin, stops, mode)

    def _plan_with_provider(
        self,
        origin: Coordinate,
        stops: Sequence[Stop],
        mode: TravelMode,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> Route:
        candidates = sorted(stops, key=stop_sort_key)
        # Farthest stop becomes the fixed destination; max() keeps the lowest id on ties.
        destination = max(candidates, key=lambda stop: distance_meters(origin, stop.coordinate))
        waypoint_stops = [stop for stop in candidates if stop is not destination]
        request = DirectionsRequest(
            origin=origin,
            destination=destination.coordinate,
            waypoints=[stop.coordinate for stop in waypoint_stops],
            mode=mode,
        )

        result = self._await_provider(request, timeout, cancel_event)
        if cancel_event is not None and cancel_event.is_set():
            raise PlanningCancelled()

        order = list(result.ordered_waypoint_indices)
        if sorted(order) != list(range(len(waypoint_stops))):
            raise ProviderNoResult(f"Provider returned an invalid waypoint order {order}.")
        if len(result.legs) != len(stops):
            raise ProviderNoResult(
                f"Provider returned {len(result.legs)} legs for {len(stops)} stops."
            )

        ordered = [waypoint_stops[index] for index in order] + [destination]
        legs: list[Leg] = []
        current = origin
        for stop, provider_leg in zip(ordered, result.legs):
            legs.append(
                Leg(
                    from_coordinate=current,
                    to_coordinate=stop.coordinate,
                    distance_meters=provider_leg.distance_meters,
                    duration_seconds=provider_leg.duration_seconds,
                    start_address=provider_leg.start_address,
                    end_address=provider_leg.end_address or stop.address,
                )
            )
            current = stop.coordinate

        return Route(
            origin=origin,
            ordered_stops=tuple(ordered),
            legs=tuple(legs),
            total_distance_meters=sum(leg.distance_meters for leg in legs),
            total_duration_seconds=sum(leg.duration_seconds for leg in legs),
            mode=mode,
            source=RouteSource.PROVIDER,
        )

    def _await_provider(
        self,
        request: DirectionsRequest,
        timeout: float | None,
        cancel_event: threading.Event | None,
    ) -> DirectionsResult:
        """Run the provider call on a worker and wait for it, honouring timeout and cancellation.

        An abandoned call keeps running on its worker but its result is dropped;
        it never touches planner state.
        """
        limit = self.default_timeout if timeout is None else timeout
        deadline = time.monotonic() + limit
        future = self._executor.submit(self.provider.directions, request)
        while True:
            if cancel_event is not None and cancel_event.is_set():
                future.cancel()
                raise PlanningCancelled()
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                future.cancel()
                raise ProviderUnavailable(f"Directions provider did not answer within {limit:.1f}s.")
            try:
                return future.result(timeout=min(remaining, _POLL_INTERVAL_SECONDS))
            except FutureTimeout:
                continue
            except RouteError:
                raise
            except Exception as exc:
                raise ProviderUnavailable(f"Directions provider failed unexpectedly: {exc}") from exc

    def route_for(
        self,
        operator_id: str,
        origin: Coordinate,
        stops: Sequence[Stop],
        mode: TravelMode = TravelMode.DRIVING,
        *,
        timeout: float | None = None,
        cancel_event: threading.Event | None = None,
    ) -> Route:
        """Return the operator's route, recomputing it whenever origin, stops or mode change."""
        key = (origin, frozenset(stops), mode)
        with self._lock:
            cached = self._cache.get(operator_id)
            if cached is not None and cached.key == key:
                return cached.route
            generation = self._generations.get(operator_id, 0) + 1
            self._generations[operator_id] = generation
            self._cache.pop(operator_id, None)

        route = self.plan(origin, stops, mode, timeout=timeout, cancel_event=cancel_event)

        with self._lock:
            if self._generations.get(operator_id) == generation:
                self._cache[operator_id] = _CachedRoute(key=key, route=route)
            else:
                logger.debug(f"Discarding superseded route for operator {operator_id}.")
        return route

    def cached_route(self, operator_id: str) -> Route | None:
        with self._lock:
            cached = self._cache.get(operator_id)
            return cached.route if cached else None

    def invalidate(self, operator_id: str) -> None:
        with self._lock:
            self._cache.pop(operator_id, None)
            self._generations[operator_id] = self._generations.get(operator_id, 0) + 1

    def close(self) -> None:
        self._executor.shutdown(wait=False, cancel_futures=True)
