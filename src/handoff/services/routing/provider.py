"""Provider-facing interfaces and status mapping for directions and geocoding."""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from ...errors import (
    ProviderDenied,
    ProviderNoResult,
    ProviderQuotaExceeded,
    ProviderUnavailable,
    RouteError,
)
from ...models.domain import Coordinate
from .models import DirectionsRequest, DirectionsResult, GeocodeResult


@runtime_checkable
class DirectionsProvider(Protocol):
    def directions(self, request: DirectionsRequest) -> DirectionsResult:
        """Return an optimized waypoint order and per-leg metrics, or raise a RouteError."""
        ...


@runtime_checkable
class Geocoder(Protocol):
    def geocode(self, address: str) -> GeocodeResult:
        ...

    def reverse_geocode(self, coordinate: Coordinate) -> str:
        ...


# Google-style status codes shared by the Directions and Geocoding services.
_STATUS_ERRORS: dict[str, type[RouteError]] = {
    "ZERO_RESULTS": ProviderNoResult,
    "NOT_FOUND": ProviderNoResult,
    "INVALID_REQUEST": ProviderNoResult,
    "MAX_WAYPOINTS_EXCEEDED": ProviderNoResult,
    "MAX_ROUTE_LENGTH_EXCEEDED": ProviderNoResult,
    "OVER_QUERY_LIMIT": ProviderQuotaExceeded,
    "OVER_DAILY_LIMIT": ProviderQuotaExceeded,
    "REQUEST_DENIED": ProviderDenied,
    "UNKNOWN_ERROR": ProviderUnavailable,
}


def error_for_status(status: str, message: str | None = None) -> RouteError:
    """Translate a provider status code into the internal error taxonomy."""

    error_cls = _STATUS_ERRORS.get(status, ProviderUnavailable)
    detail = f"Provider returned {status}"
    if message:
        detail = f"{detail}: {message}"
    return error_cls(detail)


def error_for_http_status(status_code: int, body: str = "") -> RouteError:
    if status_code in (401, 403):
        return ProviderDenied(f"Provider rejected the request (HTTP {status_code}). {body}".strip())
    if status_code == 429:
        return ProviderQuotaExceeded(f"Provider rate limit hit (HTTP {status_code}).")
    if 400 <= status_code < 500:
        return ProviderNoResult(f"Provider could not handle the request (HTTP {status_code}). {body}".strip())
    return ProviderUnavailable(f"Provider failed with HTTP {status_code}.")
