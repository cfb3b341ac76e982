"""Geocoding endpoints."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, status

from ...errors import HandoffError
from ...models.domain import Coordinate
from ...schemas.routing import GeocodeResponse, ReverseGeocodeResponse
from ...services.routing.provider import Geocoder
from ..dependencies import get_geocoder
from ..errors import http_error

router = APIRouter(prefix="/geocode", tags=["geocode"])


def _require(geocoder: Geocoder | None) -> Geocoder:
    if geocoder is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Geocoding is not configured. Set HANDOFF_GOOGLE_MAPS_API_KEY.",
        )
    return geocoder


@router.get("", response_model=GeocodeResponse, status_code=status.HTTP_200_OK)
def geocode(
    address: str = Query(..., min_length=1),
    geocoder: Geocoder | None = Depends(get_geocoder),
) -> GeocodeResponse:
    try:
        result = _require(geocoder).geocode(address)
    except HandoffError as exc:
        raise http_error(exc) from exc
    except ValueError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    return GeocodeResponse(
        lat=result.coordinate.lat,
        lng=result.coordinate.lng,
        formatted_address=result.formatted_address,
        place_id=result.place_id,
    )


@router.get("/reverse", response_model=ReverseGeocodeResponse, status_code=status.HTTP_200_OK)
def reverse_geocode(
    lat: float = Query(...),
    lng: float = Query(...),
    geocoder: Geocoder | None = Depends(get_geocoder),
) -> ReverseGeocodeResponse:
    try:
        address = _require(geocoder).reverse_geocode(Coordinate(lat=lat, lng=lng))
    except HandoffError as exc:
        raise http_error(exc) from exc
    return ReverseGeocodeResponse(lat=lat, lng=lng, address=address)
