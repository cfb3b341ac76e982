import pytest
from fastapi.testclient import TestClient

from src.handoff.api import dependencies
from src.handoff.config import settings
from src.handoff.errors import ProviderQuotaExceeded
from src.handoff.main import create_app
from src.handoff.models.domain import Coordinate, Delivery, DeliveryStatus, Stop, StopKind
from src.handoff.persistence.repository import InMemoryDeliveryRepository
from src.handoff.services.lifecycle.hooks import NotificationHook, TransitionHooks
from src.handoff.services.lifecycle.state_machine import DeliveryStateMachine
from src.handoff.services.routing.models import GeocodeResult
from src.handoff.services.routing.planner import RoutePlanner
from src.handoff.services.tracking.recorder import LocationRecorder
from src.handoff.services.tracking.sessions import TrackingSessions

PREFIX = settings.api_prefix


def _delivery(delivery_id: str, status: DeliveryStatus = DeliveryStatus.ASSIGNED) -> Delivery:
    return Delivery(
        id=delivery_id,
        status=status,
        pickup=Stop(delivery_id, StopKind.PICKUP, Coordinate(14.61, 120.99), "Donor St"),
        dropoff=Stop(delivery_id, StopKind.DROPOFF, Coordinate(14.65, 121.02), "Recipient Ave"),
        assigned_operator_id="op-1",
        donor_id="donor-1",
        recipient_id="recipient-1",
    )


class DummyGeocoder:
    def geocode(self, address):
        if address == "over quota":
            raise ProviderQuotaExceeded("quota")
        return GeocodeResult(Coordinate(14.676, 121.0437), "Quezon City, Metro Manila", "place-1")

    def reverse_geocode(self, coordinate):
        return "Ermita, Manila"


@pytest.fixture
def repository() -> InMemoryDeliveryRepository:
    return InMemoryDeliveryRepository([_delivery("d1"), _delivery("d2", DeliveryStatus.IN_TRANSIT)])


@pytest.fixture
def api_client(repository):
    app = create_app()
    recorder = LocationRecorder(repository)
    sessions = TrackingSessions(recorder, max_age_seconds=60)
    planner = RoutePlanner(None)
    machine = DeliveryStateMachine(repository, hooks=TransitionHooks([NotificationHook(repository)]))

    app.dependency_overrides[dependencies.get_repository] = lambda: repository
    app.dependency_overrides[dependencies.get_sessions] = lambda: sessions
    app.dependency_overrides[dependencies.get_planner] = lambda: planner
    app.dependency_overrides[dependencies.get_state_machine] = lambda: machine
    app.dependency_overrides[dependencies.get_geocoder] = lambda: DummyGeocoder()

    yield TestClient(app)

    sessions.close_all()
    recorder.close()
    planner.close()


def test_health(api_client):
    response = api_client.get(f"{PREFIX}/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


def test_get_delivery(api_client):
    response = api_client.get(f"{PREFIX}/deliveries/d1")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "assigned"
    assert body["pickup"]["address"] == "Donor St"


def test_missing_delivery_is_404(api_client):
    response = api_client.get(f"{PREFIX}/deliveries/nope")
    assert response.status_code == 404


def test_invalid_transition_is_409(api_client, repository):
    response = api_client.post(f"{PREFIX}/deliveries/d1/arrive")

    assert response.status_code == 409
    detail = response.json()["detail"]
    assert detail["current_status"] == "assigned"
    assert detail["attempted_status"] == "arrived"
    assert repository.get_delivery("d1").status is DeliveryStatus.ASSIGNED


def test_full_lifecycle_opens_confirmation(api_client, repository):
    assert api_client.post(f"{PREFIX}/deliveries/d1/start").json()["status"] == "in_transit"
    assert api_client.post(f"{PREFIX}/deliveries/d1/arrive").json()["status"] == "arrived"

    response = api_client.post(
        f"{PREFIX}/deliveries/d1/complete",
        json={"notes": "Handed to recipient", "rating": 4},
    )

    assert response.status_code == 200
    assert response.json()["status"] == "completed"
    assert response.json()["rating"] == 4
    assert len(repository.confirmations()) == 1
    assert {note["user_id"] for note in repository.notifications} == {"donor-1", "recipient-1"}

    confirmation = api_client.post(f"{PREFIX}/deliveries/d1/confirmation")
    assert confirmation.status_code == 200
    assert confirmation.json()["id"] == repository.confirmations()[0].id


def test_bad_rating_is_400(api_client):
    api_client.post(f"{PREFIX}/deliveries/d2/arrive")

    response = api_client.post(f"{PREFIX}/deliveries/d2/complete", json={"rating": 9})

    assert response.status_code == 400


def test_cancel_with_reason(api_client):
    response = api_client.post(f"{PREFIX}/deliveries/d2/cancel", json={"reason": "Road closed"})

    assert response.status_code == 200
    assert response.json()["cancellation_reason"] == "Road closed"


def test_plan_route_without_stops_is_400(api_client):
    response = api_client.post(f"{PREFIX}/routes/plan", json={"origin": {"lat": 14.6, "lng": 120.98}, "stops": []})
    assert response.status_code == 400


def test_plan_route_with_invalid_coordinate_is_400(api_client):
    response = api_client.post(
        f"{PREFIX}/routes/plan",
        json={"origin": {"lat": 14.6, "lng": 120.98}, "stops": [{"delivery_id": "x", "lat": 99.0, "lng": 0.0}]},
    )
    assert response.status_code == 400


def test_plan_route_returns_formatted_totals(api_client):
    response = api_client.post(
        f"{PREFIX}/routes/plan",
        json={
            "origin": {"lat": 14.60, "lng": 120.98},
            "stops": [
                {"delivery_id": "A", "lat": 14.61, "lng": 120.99},
                {"delivery_id": "B", "kind": "pickup", "lat": 14.59, "lng": 120.97},
            ],
            "mode": "driving",
        },
    )

    assert response.status_code == 200
    body = response.json()
    assert body["source"] == "fallback"
    assert [stop["sequence"] for stop in body["stops"]] == [1, 2]
    assert {stop["delivery_id"] for stop in body["stops"]} == {"A", "B"}
    assert len(body["legs"]) == 2
    assert body["distance_text"].endswith("km")
    assert body["legs"][0]["distance_text"]


def test_tracking_session_records_pushed_fixes(api_client, repository):
    assert api_client.post(f"{PREFIX}/operators/op-1/tracking").json()["changed"] is True

    response = api_client.post(
        f"{PREFIX}/operators/op-1/fixes",
        json={"lat": 14.62, "lng": 121.0, "accuracy_m": 15},
    )
    assert response.status_code == 202
    assert response.json()["tracking"] is True

    location = api_client.get(f"{PREFIX}/operators/op-1/location")
    assert location.status_code == 200
    assert location.json()["fix"]["lat"] == 14.62
    assert location.json()["accurate"] is True

    closed = api_client.delete(f"{PREFIX}/operators/op-1/tracking")
    assert closed.json() == {"operator_id": "op-1", "tracking": False, "changed": True}


def test_older_fix_is_dropped(api_client):
    newer = {"lat": 14.62, "lng": 121.0, "accuracy_m": 10, "timestamp": "2024-05-01T09:05:00Z"}
    older = {"lat": 14.61, "lng": 120.99, "accuracy_m": 10, "timestamp": "2024-05-01T09:03:20Z"}

    assert api_client.post(f"{PREFIX}/operators/op-1/fixes", json=newer).json()["accepted"] is True
    response = api_client.post(f"{PREFIX}/operators/op-1/fixes", json=older)

    assert response.status_code == 202
    assert response.json()["accepted"] is False
    sessions = api_client.app.dependency_overrides[dependencies.get_sessions]()
    assert sessions.platform_for("op-1").latest_fix.coordinate == Coordinate(14.62, 121.0)


def test_fix_with_invalid_coordinate_is_400(api_client):
    response = api_client.post(f"{PREFIX}/operators/op-1/fixes", json={"lat": 14.6, "lng": 181.0, "accuracy_m": 5})
    assert response.status_code == 400


def test_location_without_fix_times_out(api_client):
    response = api_client.get(f"{PREFIX}/operators/op-9/location", params={"timeout": 0.1})
    assert response.status_code == 504


def test_operator_route_lifecycle(api_client):
    planned = api_client.post(
        f"{PREFIX}/operators/op-1/route",
        json={"origin": {"lat": 14.60, "lng": 120.98}},
    )
    assert planned.status_code == 200
    kinds = {(stop["delivery_id"], stop["kind"]) for stop in planned.json()["stops"]}
    assert kinds == {("d1", "pickup"), ("d2", "dropoff")}

    assert api_client.get(f"{PREFIX}/operators/op-1/route").status_code == 200
    export = api_client.get(f"{PREFIX}/operators/op-1/route/export")
    assert export.status_code == 200
    assert export.text.splitlines()[0].startswith("sequence,delivery_id,kind")

    assert api_client.delete(f"{PREFIX}/operators/op-1/route").json()["invalidated"] is True
    assert api_client.get(f"{PREFIX}/operators/op-1/route").status_code == 404


def test_operator_route_without_origin_is_400(api_client):
    response = api_client.post(f"{PREFIX}/operators/op-1/route", json={})
    assert response.status_code == 400


def test_geocode_endpoints(api_client):
    forward = api_client.get(f"{PREFIX}/geocode", params={"address": "Quezon City"})
    reverse = api_client.get(f"{PREFIX}/geocode/reverse", params={"lat": 14.58, "lng": 120.98})
    quota = api_client.get(f"{PREFIX}/geocode", params={"address": "over quota"})

    assert forward.status_code == 200
    assert forward.json()["place_id"] == "place-1"
    assert reverse.json()["address"] == "Ermita, Manila"
    assert quota.status_code == 429


def test_geocode_unconfigured_is_503(api_client):
    api_client.app.dependency_overrides[dependencies.get_geocoder] = lambda: None

    response = api_client.get(f"{PREFIX}/geocode", params={"address": "Quezon City"})

    assert response.status_code == 503
