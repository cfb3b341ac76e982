import httpx
import pytest

from src.handoff.errors import (
    ProviderDenied,
    ProviderNoResult,
    ProviderQuotaExceeded,
    ProviderUnavailable,
)
from src.handoff.models.domain import Coordinate, TravelMode
from src.handoff.services.routing.google_client import GoogleMapsClient
from src.handoff.services.routing.models import DirectionsRequest
from src.handoff.services.routing.osrm_client import OSRMClient
from src.handoff.services.routing.provider import error_for_http_status, error_for_status


def _request(waypoints: int = 2) -> DirectionsRequest:
    return DirectionsRequest(
        origin=Coordinate(14.60, 120.98),
        destination=Coordinate(14.70, 121.05),
        waypoints=[Coordinate(14.61 + 0.01 * i, 120.99) for i in range(waypoints)],
        mode=TravelMode.DRIVING,
    )


def _google(handler) -> GoogleMapsClient:
    return GoogleMapsClient(
        api_key="test-key",
        base_url="https://maps.example.test/maps/api",
        max_retries=1,
        backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


def _osrm(handler) -> OSRMClient:
    return OSRMClient(
        base_url="http://osrm.example.test",
        profile="driving",
        max_retries=1,
        backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


@pytest.mark.parametrize(
    "status, error_cls",
    [
        ("ZERO_RESULTS", ProviderNoResult),
        ("OVER_QUERY_LIMIT", ProviderQuotaExceeded),
        ("REQUEST_DENIED", ProviderDenied),
        ("INVALID_REQUEST", ProviderNoResult),
        ("UNKNOWN_ERROR", ProviderUnavailable),
        ("SOMETHING_NEW", ProviderUnavailable),
    ],
)
def test_provider_status_codes_map_to_internal_errors(status, error_cls):
    assert isinstance(error_for_status(status), error_cls)


def test_http_status_mapping():
    assert isinstance(error_for_http_status(403), ProviderDenied)
    assert isinstance(error_for_http_status(429), ProviderQuotaExceeded)
    assert isinstance(error_for_http_status(503), ProviderUnavailable)


def test_google_directions_parses_waypoint_order_and_legs():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "status": "OK",
                "routes": [
                    {
                        "waypoint_order": [1, 0],
                        "legs": [
                            {"distance": {"value": 1200}, "duration": {"value": 180}, "start_address": "Start", "end_address": "B"},
                            {"distance": {"value": 800}, "duration": {"value": 120}, "start_address": "B", "end_address": "A"},
                            {"distance": {"value": 5000}, "duration": {"value": 600}, "start_address": "A", "end_address": "End"},
                        ],
                    }
                ],
            },
        )

    result = _google(handler).directions(_request())

    assert seen["params"]["waypoints"].startswith("optimize:true|")
    assert seen["params"]["key"] == "test-key"
    assert seen["params"]["mode"] == "driving"
    assert result.ordered_waypoint_indices == [1, 0]
    assert [leg.distance_meters for leg in result.legs] == [1200.0, 800.0, 5000.0]
    assert result.legs[0].end_address == "B"


def test_google_request_denied_is_not_retried():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(200, json={"status": "REQUEST_DENIED", "error_message": "API key invalid"})

    with pytest.raises(ProviderDenied):
        _google(handler).directions(_request())
    assert len(calls) == 1


def test_google_transport_errors_are_retried_then_unavailable():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ConnectError("connection refused", request=request)

    with pytest.raises(ProviderUnavailable):
        _google(handler).directions(_request())
    assert len(calls) == 2


def test_google_geocode_and_reverse_geocode():
    def handler(request: httpx.Request) -> httpx.Response:
        params = request.url.params
        if "address" in params:
            return httpx.Response(
                200,
                json={
                    "status": "OK",
                    "results": [
                        {
                            "formatted_address": "Quezon City, Metro Manila",
                            "place_id": "place-1",
                            "geometry": {"location": {"lat": 14.676, "lng": 121.0437}},
                        }
                    ],
                },
            )
        return httpx.Response(200, json={"status": "OK", "results": [{"formatted_address": "Ermita, Manila"}]})

    client = _google(handler)
    result = client.geocode("Quezon City")
    address = client.reverse_geocode(Coordinate(14.5826, 120.9787))

    assert result.coordinate == Coordinate(14.676, 121.0437)
    assert result.place_id == "place-1"
    assert address == "Ermita, Manila"


def test_google_geocode_zero_results():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json={"status": "ZERO_RESULTS", "results": []})

    with pytest.raises(ProviderNoResult):
        _google(handler).geocode("nowhere at all")


def test_google_client_requires_key(monkeypatch):
    from src.handoff.services.routing import google_client

    monkeypatch.setattr(google_client.settings, "google_maps_api_key", None)
    with pytest.raises(ValueError):
        GoogleMapsClient()


def test_osrm_trip_orders_waypoints_by_trip_position():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        seen["params"] = dict(request.url.params)
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "waypoints": [
                    {"waypoint_index": 0, "trips_index": 0, "name": "Origin St"},
                    {"waypoint_index": 2, "trips_index": 0, "name": "A St"},
                    {"waypoint_index": 1, "trips_index": 0, "name": "B St"},
                    {"waypoint_index": 3, "trips_index": 0, "name": "End St"},
                ],
                "trips": [
                    {
                        "legs": [
                            {"distance": 900.0, "duration": 100.0},
                            {"distance": 400.0, "duration": 50.0},
                            {"distance": 2500.0, "duration": 300.0},
                        ]
                    }
                ],
            },
        )

    result = _osrm(handler).directions(_request())

    assert seen["path"].startswith("/trip/v1/driving/120.98,14.6;")
    assert seen["params"]["source"] == "first"
    assert seen["params"]["destination"] == "last"
    assert seen["params"]["roundtrip"] == "false"
    assert result.ordered_waypoint_indices == [1, 0]
    assert [leg.distance_meters for leg in result.legs] == [900.0, 400.0, 2500.0]
    assert result.legs[0].end_address == "B St"


def test_osrm_no_trips_maps_to_no_result():
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(400, json={"code": "NoTrips", "message": "No trip visiting all destinations possible."})

    with pytest.raises(ProviderNoResult):
        _osrm(handler).directions(_request())


def test_osrm_server_errors_are_retried_then_unavailable():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        return httpx.Response(502, text="bad gateway")

    with pytest.raises(ProviderUnavailable):
        _osrm(handler).directions(_request())
    assert len(calls) == 2


def test_osrm_walking_uses_foot_profile():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["path"] = request.url.path
        return httpx.Response(
            200,
            json={
                "code": "Ok",
                "waypoints": [{"waypoint_index": 0}, {"waypoint_index": 1}],
                "trips": [{"legs": [{"distance": 100.0, "duration": 70.0}]}],
            },
        )

    request = DirectionsRequest(
        origin=Coordinate(14.60, 120.98),
        destination=Coordinate(14.601, 120.98),
        mode=TravelMode.WALKING,
    )
    result = _osrm(handler).directions(request)

    assert seen["path"].startswith("/trip/v1/foot/")
    assert result.ordered_waypoint_indices == []
