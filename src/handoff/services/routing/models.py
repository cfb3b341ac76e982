"""Routing domain models exchanged with directions providers."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List

from ...models.domain import Coordinate, TravelMode


@dataclass(slots=True)
class DirectionsRequest:
    origin: Coordinate
    destination: Coordinate
    waypoints: List[Coordinate] = field(default_factory=list)
    mode: TravelMode = TravelMode.DRIVING


@dataclass(slots=True)
class ProviderLeg:
    distance_meters: float
    duration_seconds: float
    start_address: str = ""
    end_address: str = ""


@dataclass(slots=True)
class DirectionsResult:
    """Provider answer: visit order of the request's waypoints plus one leg per hop."""

    ordered_waypoint_indices: List[int]
    legs: List[ProviderLeg]


@dataclass(slots=True)
class GeocodeResult:
    coordinate: Coordinate
    formatted_address: str
    place_id: str | None = None
