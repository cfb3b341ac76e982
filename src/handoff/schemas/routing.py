"""Routing request/response schemas."""

from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from ..models.domain import Coordinate, RouteSource, Stop, StopKind, TravelMode


class CoordinateModel(BaseModel):
    lat: float
    lng: float

    def to_domain(self) -> Coordinate:
        return Coordinate(lat=self.lat, lng=self.lng)

    @classmethod
    def from_domain(cls, coordinate: Coordinate) -> "CoordinateModel":
        return cls(lat=coordinate.lat, lng=coordinate.lng)


class StopModel(BaseModel):
    delivery_id: str
    kind: StopKind = StopKind.DROPOFF
    lat: float
    lng: float
    address: str = ""

    def to_domain(self) -> Stop:
        return Stop(
            delivery_id=self.delivery_id,
            kind=self.kind,
            coordinate=Coordinate(lat=self.lat, lng=self.lng),
            address=self.address,
        )

    @classmethod
    def from_domain(cls, stop: Stop) -> "StopModel":
        return cls(
            delivery_id=stop.delivery_id,
            kind=stop.kind,
            lat=stop.coordinate.lat,
            lng=stop.coordinate.lng,
            address=stop.address,
        )


class PlanRequest(BaseModel):
    origin: CoordinateModel
    stops: List[StopModel] = Field(default_factory=list)
    mode: TravelMode = TravelMode.DRIVING
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class OperatorRouteRequest(BaseModel):
    origin: Optional[CoordinateModel] = Field(
        default=None,
        description="Start of the route. Defaults to the operator's last reported fix.",
    )
    mode: TravelMode = TravelMode.DRIVING
    timeout_seconds: Optional[float] = Field(default=None, gt=0)


class RouteStopModel(StopModel):
    sequence: int


class LegModel(BaseModel):
    start: CoordinateModel
    end: CoordinateModel
    distance_meters: float
    duration_seconds: float
    distance_text: str
    duration_text: str
    start_address: str = ""
    end_address: str = ""


class RouteResponse(BaseModel):
    origin: CoordinateModel
    stops: List[RouteStopModel]
    legs: List[LegModel]
    total_distance_meters: float
    total_duration_seconds: float
    distance_text: str
    duration_text: str
    mode: TravelMode
    source: RouteSource
    computed_at: datetime


class GeocodeResponse(BaseModel):
    lat: float
    lng: float
    formatted_address: str
    place_id: Optional[str] = None


class ReverseGeocodeResponse(BaseModel):
    lat: float
    lng: float
    address: str
