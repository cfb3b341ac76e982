"""Routing endpoints."""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException, status

from ...errors import HandoffError
from ...schemas.routing import PlanRequest, RouteResponse
from ...services.outputs.routing_formatter import route_to_json
from ...services.routing.planner import RoutePlanner
from ..dependencies import get_planner
from ..errors import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("/plan", response_model=RouteResponse, status_code=status.HTTP_200_OK)
def plan_route(payload: PlanRequest, planner: RoutePlanner = Depends(get_planner)) -> RouteResponse:
    """Order an explicit set of stops from ``origin``."""
    try:
        route = planner.plan(
            payload.origin.to_domain(),
            [stop.to_domain() for stop in payload.stops],
            payload.mode,
            timeout=payload.timeout_seconds,
        )
    except HandoffError as exc:
        raise http_error(exc) from exc
    except Exception as exc:
        logger.exception(f"Error planning route: {exc}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to plan route: {exc}",
        ) from exc
    return RouteResponse(**route_to_json(route))
