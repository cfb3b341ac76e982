import math

import pytest

from src.handoff.errors import InvalidCoordinate
from src.handoff.models.domain import Coordinate
from src.handoff.services.geospatial import (
    distance_meters,
    ensure_valid,
    format_distance,
    format_duration,
    haversine_km,
    is_nearby,
    validate_coordinate,
)


def test_distance_is_zero_for_same_point():
    point = Coordinate(14.5995, 120.9842)
    assert distance_meters(point, point) == 0


def test_distance_is_symmetric():
    a = Coordinate(14.5995, 120.9842)
    b = Coordinate(14.6760, 121.0437)
    assert distance_meters(a, b) == pytest.approx(distance_meters(b, a))


def test_one_degree_of_latitude_is_about_111_km():
    assert haversine_km(0.0, 0.0, 1.0, 0.0) == pytest.approx(111.19, abs=0.01)


@pytest.mark.parametrize(
    "coordinate",
    [
        Coordinate(91.0, 0.0),
        Coordinate(-90.5, 0.0),
        Coordinate(0.0, 180.5),
        Coordinate(math.nan, 0.0),
        Coordinate(0.0, math.inf),
        None,
    ],
)
def test_invalid_coordinates_are_rejected(coordinate):
    assert validate_coordinate(coordinate) is False


def test_bounds_are_inclusive():
    assert validate_coordinate(Coordinate(90.0, -180.0))
    assert validate_coordinate(Coordinate(-90.0, 180.0))


def test_ensure_valid_raises_instead_of_clamping():
    with pytest.raises(InvalidCoordinate):
        ensure_valid(Coordinate(120.0, 10.0))


def test_distance_rejects_out_of_range_points():
    with pytest.raises(InvalidCoordinate):
        distance_meters(Coordinate(0.0, 0.0), Coordinate(0.0, 200.0))


def test_is_nearby_uses_threshold():
    origin = Coordinate(14.5995, 120.9842)
    fifty_meters_north = Coordinate(14.5995 + 50 / 111_195, 120.9842)
    assert is_nearby(origin, fifty_meters_north)
    assert not is_nearby(origin, fifty_meters_north, threshold_meters=10)


@pytest.mark.parametrize(
    "meters, expected",
    [(0, "0m"), (850.4, "850m"), (999.4, "999m"), (1000, "1.0km"), (1234, "1.2km"), (15_000, "15.0km")],
)
def test_format_distance(meters, expected):
    assert format_distance(meters) == expected


@pytest.mark.parametrize(
    "seconds, expected",
    [(0, "0m"), (59, "0m"), (720, "12m"), (3600, "1h 0m"), (3900, "1h 5m"), (7325, "2h 2m")],
)
def test_format_duration(seconds, expected):
    assert format_duration(seconds) == expected
