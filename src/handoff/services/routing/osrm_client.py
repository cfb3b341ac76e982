"""HTTP client for the OSRM trip service."""

from __future__ import annotations

import logging
import time

import httpx

from ...config import settings
from ...errors import ProviderNoResult, ProviderUnavailable
from ...models.domain import TravelMode
from .models import DirectionsRequest, DirectionsResult, ProviderLeg
from .provider import error_for_http_status

logger = logging.getLogger(__name__)

# OSRM answers 4xx with a JSON body whose "code" names the problem; all of them
# mean "no usable trip for this input".
_NO_RESULT_CODES = {"NoTrips", "NoRoute", "NoSegment", "TooBig", "InvalidQuery", "InvalidValue", "InvalidOptions", "NotImplemented"}

_MODE_PROFILES = {
    TravelMode.WALKING: "foot",
    TravelMode.BICYCLING: "bike",
}


class OSRMClient:
    def __init__(
        self,
        base_url: str | None = None,
        profile: str | None = None,
        timeout: float | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.base_url = base_url or settings.osrm_base_url
        if not self.base_url:
            raise ValueError("OSRM base URL is not configured.")
        self.base_url = self.base_url.rstrip("/")
        self.profile = profile or settings.osrm_profile
        self.timeout = timeout if timeout is not None else settings.provider_timeout_seconds
        self.max_retries = max_retries if max_retries is not None else settings.provider_max_retries
        self.backoff_seconds = backoff_seconds if backoff_seconds is not None else settings.provider_backoff_seconds
        self._transport = transport

    def _get_client(self) -> httpx.Client:
        """Create a short-lived client; planning calls may run on worker threads."""
        return httpx.Client(
            timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 5.0)),
            transport=self._transport,
        )

    def _profile_for(self, mode: TravelMode) -> str:
        return _MODE_PROFILES.get(mode, self.profile)

    def _get(self, url: str, params: dict) -> httpx.Response:
        client = self._get_client()
        try:
            attempt = 0
            while True:
                try:
                    response = client.get(url, params=params)
                except httpx.TransportError as e:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise ProviderUnavailable(
                            f"Failed to connect to OSRM service at {self.base_url}: {e}"
                        ) from e
                    wait_time = self.backoff_seconds * (2 ** (attempt - 1))  # Exponential backoff
                    logger.debug(f"OSRM network error, retrying in {wait_time:.1f}s (attempt {attempt}/{self.max_retries}): {e}")
                    time.sleep(wait_time)
                    continue
                if response.status_code >= 500:
                    attempt += 1
                    if attempt > self.max_retries:
                        raise error_for_http_status(response.status_code)
                    time.sleep(self.backoff_seconds * attempt)
                    continue
                return response
        finally:
            client.close()

    def directions(self, request: DirectionsRequest) -> DirectionsResult:
        """Order the request's waypoints with the OSRM trip service.

        The trip is pinned to start at the origin and end at the destination
        (``roundtrip=false``); OSRM reorders everything in between.
        """
        coordinates = [request.origin, *request.waypoints, request.destination]
        coordinate_str = ";".join(f"{c.lng},{c.lat}" for c in coordinates)
        params = {
            "source": "first",
            "destination": "last",
            "roundtrip": "false",
            "steps": "false",
            "overview": "false",
        }
        url = f"{self.base_url}/trip/v1/{self._profile_for(request.mode)}/{coordinate_str}"
        data = self._parse(self._get(url, params))

        trips = data.get("trips") or []
        waypoints = data.get("waypoints") or []
        if not trips or len(waypoints) != len(coordinates):
            raise ProviderNoResult("OSRM trip response did not cover every coordinate.")

        positions = [int(waypoint["waypoint_index"]) for waypoint in waypoints]
        ordered = sorted(range(len(request.waypoints)), key=lambda i: positions[i + 1])
        names_by_position = {pos: waypoints[i].get("name", "") for i, pos in enumerate(positions)}
        legs = [
            ProviderLeg(
                distance_meters=float(leg["distance"]),
                duration_seconds=float(leg["duration"]),
                start_address=names_by_position.get(index, ""),
                end_address=names_by_position.get(index + 1, ""),
            )
            for index, leg in enumerate(trips[0]["legs"])
        ]
        return DirectionsResult(ordered_waypoint_indices=ordered, legs=legs)

    @staticmethod
    def _parse(response: httpx.Response) -> dict:
        try:
            data = response.json()
        except ValueError as e:
            if response.is_error:
                raise error_for_http_status(response.status_code) from e
            raise ProviderUnavailable("OSRM returned a non-JSON response.") from e
        code = data.get("code")
        if code == "Ok":
            return data
        if code in _NO_RESULT_CODES:
            raise ProviderNoResult(f"OSRM error {code}: {data.get('message', '')}".strip())
        if response.is_error:
            raise error_for_http_status(response.status_code, data.get("message", ""))
        raise ProviderUnavailable(f"OSRM error {code}: {data.get('message', 'Unknown error')}")


def check_health(base_url: str | None = None) -> bool:
    """Check OSRM service health with a minimal two-point route request.

    Public OSRM endpoints may not have a /health endpoint, so connectivity is
    tested with a real (tiny) query.
    """
    base = base_url or settings.osrm_base_url
    if not base:
        return False
    try:
        test_coords = "13.388860,52.517037;13.385983,52.496891"
        url = f"{base.rstrip('/')}/route/v1/{settings.osrm_profile}/{test_coords}"
        response = httpx.get(url, params={"overview": "false"}, timeout=5.0)
        response.raise_for_status()
        return response.json().get("code") == "Ok"
    except (httpx.HTTPError, ValueError):
        return False
