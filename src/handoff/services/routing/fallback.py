"""Local nearest-neighbour sequencing used when no provider answer is available.

The heuristic is an open-path TSP approximation: start at the origin, always
visit the closest unvisited stop, never return. Operators carry only a
handful of stops, so the result is close enough and, more importantly,
deterministic: ties are broken by delivery id, then pickup before dropoff.
"""

from __future__ import annotations

from typing import Sequence

from ...config import settings
from ...models.domain import Coordinate, Leg, Route, RouteSource, Stop, StopKind, TravelMode
from ..geospatial import distance_meters

WALKING_SPEED_KMH = 5.0
BICYCLING_SPEED_KMH = 15.0

_KIND_ORDER = {StopKind.PICKUP: 0, StopKind.DROPOFF: 1}


def average_speed_mps(mode: TravelMode) -> float:
    if mode is TravelMode.WALKING:
        speed_kmh = WALKING_SPEED_KMH
    elif mode is TravelMode.BICYCLING:
        speed_kmh = BICYCLING_SPEED_KMH
    else:
        speed_kmh = settings.fallback_average_speed_kmh
    return speed_kmh * 1000.0 / 3600.0


def stop_sort_key(stop: Stop) -> tuple[str, int]:
    return (stop.delivery_id, _KIND_ORDER[stop.kind])


def nearest_neighbor_order(origin: Coordinate, stops: Sequence[Stop]) -> list[Stop]:
    unvisited = sorted(stops, key=stop_sort_key)
    ordered: list[Stop] = []
    current = origin
    while unvisited:
        # min() keeps the first of equal keys, and unvisited is pre-sorted by id
        nearest = min(unvisited, key=lambda stop: distance_meters(current, stop.coordinate))
        ordered.append(nearest)
        unvisited.remove(nearest)
        current = nearest.coordinate
    return ordered


def build_legs(origin: Coordinate, ordered_stops: Sequence[Stop], mode: TravelMode) -> list[Leg]:
    speed = average_speed_mps(mode)
    legs: list[Leg] = []
    current = origin
    current_address = ""
    for stop in ordered_stops:
        meters = distance_meters(current, stop.coordinate)
        legs.append(
            Leg(
                from_coordinate=current,
                to_coordinate=stop.coordinate,
                distance_meters=meters,
                duration_seconds=meters / speed,
                start_address=current_address,
                end_address=stop.address,
            )
        )
        current = stop.coordinate
        current_address = stop.address
    return legs


def plan_locally(origin: Coordinate, stops: Sequence[Stop], mode: TravelMode = TravelMode.DRIVING) -> Route:
    ordered = nearest_neighbor_order(origin, stops)
    legs = build_legs(origin, ordered, mode)
    return Route(
        origin=origin,
        ordered_stops=tuple(ordered),
        legs=tuple(legs),
        total_distance_meters=sum(leg.distance_meters for leg in legs),
        total_duration_seconds=sum(leg.duration_seconds for leg in legs),
        mode=mode,
        source=RouteSource.FALLBACK,
    )
