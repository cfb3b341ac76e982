"""HTTP client for the Google Directions and Geocoding web services."""

from __future__ import annotations

import logging
import time

import httpx

from ...config import settings
from ...errors import ProviderNoResult, ProviderUnavailable, RouteError
from ...models.domain import Coordinate
from ..geospatial import ensure_valid
from .models import DirectionsRequest, DirectionsResult, GeocodeResult, ProviderLeg
from .provider import error_for_http_status, error_for_status

logger = logging.getLogger(__name__)


def _latlng(coordinate: Coordinate) -> str:
    return f"{coordinate.lat},{coordinate.lng}"


class GoogleMapsClient:
    """Directions and geocoding adapter.

    Every provider status is mapped onto the internal error taxonomy; callers
    never see Google status strings.
    """

    def __init__(
        self,
        api_key: str | None = None,
        base_url: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_key = api_key or settings.google_maps_api_key
        if not self.api_key:
            raise ValueError("Google Maps API key is not configured.")
        self.base_url = (base_url or settings.google_maps_base_url).rstrip("/")
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.provider_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    def _get_json(self, path: str, params: dict) -> dict:
        url = f"{self.base_url}/{path}"
        params = {**params, "key": self.api_key}
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                except httpx.TransportError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ProviderUnavailable(f"Google Maps request to {path} failed: {e}") from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))
                    logger.debug(f"Google Maps network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                    continue
                if response.status_code >= 500:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise error_for_http_status(response.status_code)
                    time.sleep(self.backoff_seconds * attempt)
                    continue
                if response.is_error:
                    raise error_for_http_status(response.status_code, response.text[:200])
                try:
                    data = response.json()
                except ValueError as e:
                    raise ProviderUnavailable("Google Maps returned a non-JSON response.") from e
                status = data.get("status", "UNKNOWN_ERROR")
                if status != "OK":
                    raise error_for_status(status, data.get("error_message"))
                return data
        finally:
            client.close()

    def directions(self, request: DirectionsRequest) -> DirectionsResult:
        params = {
            "origin": _latlng(request.origin),
            "destination": _latlng(request.destination),
            "mode": request.mode.value,
        }
        if request.waypoints:
            points = "|".join(_latlng(waypoint) for waypoint in request.waypoints)
            params["waypoints"] = f"optimize:true|{points}"

        data = self._get_json("directions/json", params)
        routes = data.get("routes") or []
        if not routes:
            raise ProviderNoResult("Directions response contained no routes.")

        route = routes[0]
        order = list(route.get("waypoint_order") or range(len(request.waypoints)))
        legs = [
            ProviderLeg(
                distance_meters=float(leg["distance"]["value"]),
                duration_seconds=float(leg["duration"]["value"]),
                start_address=leg.get("start_address", ""),
                end_address=leg.get("end_address", ""),
            )
            for leg in route["legs"]
        ]
        return DirectionsResult(ordered_waypoint_indices=order, legs=legs)

    def geocode(self, address: str) -> GeocodeResult:
        if not address or not address.strip():
            raise ValueError("Address must not be empty.")
        data = self._get_json("geocode/json", {"address": address.strip()})
        first = data["results"][0]
        location = first["geometry"]["location"]
        coordinate = ensure_valid(Coordinate(lat=float(location["lat"]), lng=float(location["lng"])))
        return GeocodeResult(
            coordinate=coordinate,
            formatted_address=first.get("formatted_address", address),
            place_id=first.get("place_id"),
        )

    def reverse_geocode(self, coordinate: Coordinate) -> str:
        ensure_valid(coordinate)
        data = self._get_json("geocode/json", {"latlng": _latlng(coordinate)})
        return data["results"][0].get("formatted_address", "")


def check_health(api_key: str | None = None) -> bool:
    """Return True when the configured key can reach the Geocoding service."""
    key = api_key or settings.google_maps_api_key
    if not key:
        return False
    try:
        GoogleMapsClient(api_key=key, max_retries=0, timeout=5.0).reverse_geocode(
            Coordinate(lat=14.5995, lng=120.9842)
        )
        return True
    except ProviderNoResult:
        # The service answered; an empty result still proves connectivity.
        return True
    except RouteError:
        return False
