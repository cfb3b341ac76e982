"""Operator tracking and per-operator route endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Response, status

from ...errors import HandoffError
from ...models.domain import Coordinate, DeliveryStatus
from ...persistence.repository import DeliveryRepository
from ...schemas.deliveries import FixModel
from ...schemas.routing import OperatorRouteRequest, RouteResponse
from ...schemas.tracking import FixAccepted, LocationResponse, TrackingSessionResponse
from ...services.outputs.routing_formatter import route_to_csv, route_to_json
from ...services.routing.planner import RoutePlanner, collect_stops
from ...services.tracking.sessions import TrackingSessions
from ..dependencies import get_planner, get_repository, get_sessions
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/operators", tags=["operators"])

ROUTABLE_STATUSES = (DeliveryStatus.ASSIGNED, DeliveryStatus.IN_TRANSIT)


@router.post("/{operator_id}/fixes", response_model=FixAccepted, status_code=status.HTTP_202_ACCEPTED)
def report_fix(
    operator_id: str,
    payload: FixModel,
    sessions: TrackingSessions = Depends(get_sessions),
) -> FixAccepted:
    """Accept a fix pushed by the operator's device."""
    try:
        accepted = sessions.report(operator_id, payload.to_domain())
    except HandoffError as exc:
        raise http_error(exc) from exc
    tracking = sessions.is_open(operator_id)
    message = None
    if not accepted:
        message = "A newer fix was already reported; this one was dropped."
    elif not tracking:
        message = "No tracking session open; the fix was not recorded on deliveries."
    return FixAccepted(operator_id=operator_id, accepted=accepted, tracking=tracking, message=message)


@router.post("/{operator_id}/tracking", response_model=TrackingSessionResponse, status_code=status.HTTP_200_OK)
def open_tracking(operator_id: str, sessions: TrackingSessions = Depends(get_sessions)) -> TrackingSessionResponse:
    try:
        opened = sessions.open(operator_id)
    except HandoffError as exc:
        raise http_error(exc) from exc
    return TrackingSessionResponse(operator_id=operator_id, tracking=True, changed=opened)


@router.delete("/{operator_id}/tracking", response_model=TrackingSessionResponse, status_code=status.HTTP_200_OK)
def close_tracking(operator_id: str, sessions: TrackingSessions = Depends(get_sessions)) -> TrackingSessionResponse:
    closed = sessions.close(operator_id)
    return TrackingSessionResponse(operator_id=operator_id, tracking=False, changed=closed)


@router.get("/{operator_id}/location", response_model=LocationResponse, status_code=status.HTTP_200_OK)
def get_location(
    operator_id: str,
    timeout: float | None = Query(default=None, gt=0, le=60, description="Seconds to wait for a fresh fix."),
    sessions: TrackingSessions = Depends(get_sessions),
) -> LocationResponse:
    try:
        tracker = sessions.tracker_for(operator_id)
        fix = tracker.get_current_location(timeout)
    except HandoffError as exc:
        raise http_error(exc) from exc
    return LocationResponse(
        operator_id=operator_id,
        fix=FixModel.from_domain(fix),
        accurate=fix.is_accurate(tracker.accuracy_threshold_m),
        age_seconds=round(fix.age_seconds(), 3),
    )


def _resolve_origin(
    operator_id: str,
    payload: OperatorRouteRequest,
    sessions: TrackingSessions,
    deliveries: list,
) -> Coordinate:
    if payload.origin is not None:
        return payload.origin.to_domain()
    latest = sessions.platform_for(operator_id).latest_fix
    if latest is not None:
        return latest.coordinate
    stored = [d.last_known_operator_location for d in deliveries if d.last_known_operator_location]
    if stored:
        return max(stored, key=lambda fix: fix.timestamp).coordinate
    raise HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail=f"No origin given and no known location for operator {operator_id}.",
    )


@router.post("/{operator_id}/route", response_model=RouteResponse, status_code=status.HTTP_200_OK)
def plan_operator_route(
    operator_id: str,
    payload: OperatorRouteRequest | None = None,
    repository: DeliveryRepository = Depends(get_repository),
    planner: RoutePlanner = Depends(get_planner),
    sessions: TrackingSessions = Depends(get_sessions),
) -> RouteResponse:
    """Plan a route over the operator's assigned and in-transit deliveries."""
    payload = payload or OperatorRouteRequest()
    try:
        deliveries = repository.list_operator_deliveries(operator_id, ROUTABLE_STATUSES)
        origin = _resolve_origin(operator_id, payload, sessions, deliveries)
        route = planner.route_for(
            operator_id,
            origin,
            collect_stops(deliveries),
            payload.mode,
            timeout=payload.timeout_seconds,
        )
    except HandoffError as exc:
        raise http_error(exc) from exc
    return RouteResponse(**route_to_json(route))


@router.get("/{operator_id}/route", response_model=RouteResponse, status_code=status.HTTP_200_OK)
def get_operator_route(operator_id: str, planner: RoutePlanner = Depends(get_planner)) -> RouteResponse:
    route = planner.cached_route(operator_id)
    if route is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No route planned for operator {operator_id}.")
    return RouteResponse(**route_to_json(route))


@router.get("/{operator_id}/route/export", status_code=status.HTTP_200_OK)
def export_operator_route(operator_id: str, planner: RoutePlanner = Depends(get_planner)) -> Response:
    route = planner.cached_route(operator_id)
    if route is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"No route planned for operator {operator_id}.")
    return Response(
        content=route_to_csv(route),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="route_{operator_id}.csv"'},
    )


@router.delete("/{operator_id}/route", status_code=status.HTTP_200_OK)
def invalidate_operator_route(operator_id: str, planner: RoutePlanner = Depends(get_planner)) -> dict:
    planner.invalidate(operator_id)
    return {"operator_id": operator_id, "invalidated": True}
