"""Serializers for planned routes."""

from __future__ import annotations

import csv
import io

from ...models.domain import Route
from ..geospatial import format_distance, format_duration


def route_to_json(route: Route) -> dict:
    return {
        "origin": {"lat": route.origin.lat, "lng": route.origin.lng},
        "stops": [
            {
                "sequence": index,
                "delivery_id": stop.delivery_id,
                "kind": stop.kind.value,
                "lat": stop.coordinate.lat,
                "lng": stop.coordinate.lng,
                "address": stop.address,
            }
            for index, stop in enumerate(route.ordered_stops, start=1)
        ],
        "legs": [
            {
                "start": {"lat": leg.from_coordinate.lat, "lng": leg.from_coordinate.lng},
                "end": {"lat": leg.to_coordinate.lat, "lng": leg.to_coordinate.lng},
                "distance_meters": leg.distance_meters,
                "duration_seconds": leg.duration_seconds,
                "distance_text": format_distance(leg.distance_meters),
                "duration_text": format_duration(leg.duration_seconds),
                "start_address": leg.start_address,
                "end_address": leg.end_address,
            }
            for leg in route.legs
        ],
        "total_distance_meters": route.total_distance_meters,
        "total_duration_seconds": route.total_duration_seconds,
        "distance_text": format_distance(route.total_distance_meters),
        "duration_text": format_duration(route.total_duration_seconds),
        "mode": route.mode.value,
        "source": route.source.value,
        "computed_at": route.computed_at.isoformat(),
    }


def route_to_csv(route: Route) -> str:
    buffer = io.StringIO()
    fieldnames = [
        "sequence",
        "delivery_id",
        "kind",
        "lat",
        "lng",
        "address",
        "leg_distance_meters",
        "leg_duration_seconds",
        "source",
    ]
    writer = csv.DictWriter(buffer, fieldnames=fieldnames)
    writer.writeheader()
    for index, (stop, leg) in enumerate(zip(route.ordered_stops, route.legs), start=1):
        writer.writerow(
            {
                "sequence": index,
                "delivery_id": stop.delivery_id,
                "kind": stop.kind.value,
                "lat": stop.coordinate.lat,
                "lng": stop.coordinate.lng,
                "address": stop.address,
                "leg_distance_meters": round(leg.distance_meters, 1),
                "leg_duration_seconds": round(leg.duration_seconds, 1),
                "source": route.source.value,
            }
        )
    return buffer.getvalue()
