"""Error taxonomy for location, routing and delivery lifecycle failures."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models.domain import Delivery, DeliveryStatus


class HandoffError(Exception):
    """Base class for every error raised by the coordination engine."""


# Location ---------------------------------------------------------------


class LocationError(HandoffError):
    """Raised when the operator's position cannot be obtained."""


class LocationUnavailable(LocationError):
    """The platform has no geolocation capability."""


class LocationTimeout(LocationError):
    """No fix was obtained within the requested timeout."""


class LocationPermissionDenied(LocationError):
    """The operator refused or revoked location access."""


# Routing ----------------------------------------------------------------


class RouteError(HandoffError):
    """Raised when a route cannot be planned."""


class NoStops(RouteError):
    def __init__(self) -> None:
        super().__init__("At least one stop is required to plan a route.")


class InvalidCoordinate(RouteError, ValueError):
    def __init__(self, lat: object, lng: object) -> None:
        super().__init__(f"Invalid coordinate ({lat}, {lng}).")
        self.lat = lat
        self.lng = lng


class ProviderDenied(RouteError):
    """The provider rejected the request (bad key, disabled API, domain restriction)."""


class ProviderQuotaExceeded(RouteError):
    """The provider's query quota is exhausted."""


class ProviderNoResult(RouteError):
    """The provider could not find a feasible route for the request."""


class ProviderUnavailable(RouteError):
    """Transport-level failure talking to the provider."""


class PlanningCancelled(RouteError):
    def __init__(self) -> None:
        super().__init__("Route planning was cancelled by the caller.")


# Lifecycle --------------------------------------------------------------


class DeliveryNotFound(HandoffError, LookupError):
    def __init__(self, delivery_id: str) -> None:
        super().__init__(f"Delivery '{delivery_id}' not found.")
        self.delivery_id = delivery_id


class TransitionError(HandoffError):
    """Raised when a delivery transition cannot be applied."""


class InvalidTransition(TransitionError):
    def __init__(self, from_status: "DeliveryStatus", attempted: "DeliveryStatus") -> None:
        super().__init__(f"Cannot move delivery from '{from_status.value}' to '{attempted.value}'.")
        self.from_status = from_status
        self.attempted = attempted


class PersistenceFailed(TransitionError):
    """The transition could not be written; nothing changed."""


class ConfirmationFailed(TransitionError):
    """The delivery completed but its confirmation request could not be opened."""

    def __init__(self, delivery: "Delivery", message: str) -> None:
        super().__init__(message)
        self.delivery = delivery
