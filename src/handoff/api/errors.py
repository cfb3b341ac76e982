"""Translation of domain errors into HTTP responses."""

from __future__ import annotations

from fastapi import HTTPException, status

from ..errors import (
    ConfirmationFailed,
    DeliveryNotFound,
    HandoffError,
    InvalidCoordinate,
    InvalidTransition,
    LocationPermissionDenied,
    LocationTimeout,
    LocationUnavailable,
    NoStops,
    PersistenceFailed,
    ProviderDenied,
    ProviderNoResult,
    ProviderQuotaExceeded,
)

_STATUS_CODES: list[tuple[type[HandoffError], int]] = [
    (DeliveryNotFound, status.HTTP_404_NOT_FOUND),
    (InvalidTransition, status.HTTP_409_CONFLICT),
    (ConfirmationFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (PersistenceFailed, status.HTTP_503_SERVICE_UNAVAILABLE),
    (LocationTimeout, status.HTTP_504_GATEWAY_TIMEOUT),
    (LocationPermissionDenied, status.HTTP_403_FORBIDDEN),
    (LocationUnavailable, status.HTTP_503_SERVICE_UNAVAILABLE),
    (NoStops, status.HTTP_400_BAD_REQUEST),
    (InvalidCoordinate, status.HTTP_400_BAD_REQUEST),
    (ProviderDenied, status.HTTP_502_BAD_GATEWAY),
    (ProviderQuotaExceeded, status.HTTP_429_TOO_MANY_REQUESTS),
    (ProviderNoResult, status.HTTP_404_NOT_FOUND),
]


def http_error(exc: HandoffError) -> HTTPException:
    """Return the HTTPException for ``exc``; unknown engine errors become 503."""
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    for error_cls, code in _STATUS_CODES:
        if isinstance(exc, error_cls):
            status_code = code
            break

    detail: dict = {"error": type(exc).__name__, "message": str(exc)}
    if isinstance(exc, InvalidTransition):
        detail["current_status"] = exc.from_status.value
        detail["attempted_status"] = exc.attempted.value
    elif isinstance(exc, ConfirmationFailed):
        detail["delivery_id"] = exc.delivery.id
        detail["delivery_status"] = exc.delivery.status.value
    return HTTPException(status_code=status_code, detail=detail)
