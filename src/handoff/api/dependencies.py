"""Service wiring shared by the API routes.

Each getter is cached so the whole app shares one repository, planner, state
machine and tracking registry. Tests override them through
``app.dependency_overrides``.
"""

from __future__ import annotations

import logging
from functools import lru_cache

from ..config import settings
from ..db.supabase import get_supabase_client
from ..persistence.database import SupabaseDeliveryRepository
from ..persistence.repository import DeliveryRepository, InMemoryDeliveryRepository
from ..services.confirmation.coordinator import ConfirmationCoordinator
from ..services.lifecycle.hooks import NotificationHook, TransitionHooks
from ..services.lifecycle.locks import DeliveryLocks
from ..services.lifecycle.state_machine import DeliveryStateMachine
from ..services.routing.google_client import GoogleMapsClient
from ..services.routing.osrm_client import OSRMClient
from ..services.routing.planner import RoutePlanner
from ..services.routing.provider import DirectionsProvider, Geocoder
from ..services.tracking.recorder import LocationRecorder
from ..services.tracking.sessions import TrackingSessions

logger = logging.getLogger(__name__)


@lru_cache()
def get_repository() -> DeliveryRepository:
    client = get_supabase_client()
    if client is None:
        logger.warning("Supabase not configured; deliveries are kept in memory only.")
        return InMemoryDeliveryRepository()
    return SupabaseDeliveryRepository(client)


@lru_cache()
def get_directions_provider() -> DirectionsProvider | None:
    if settings.directions_provider == "google":
        if not settings.google_maps_api_key:
            logger.warning("Google directions selected but HANDOFF_GOOGLE_MAPS_API_KEY is not set.")
            return None
        return GoogleMapsClient()
    if settings.directions_provider == "osrm":
        if not settings.osrm_base_url:
            logger.warning("OSRM directions selected but HANDOFF_OSRM_BASE_URL is not set.")
            return None
        return OSRMClient()
    return None


@lru_cache()
def get_geocoder() -> Geocoder | None:
    if not settings.google_maps_api_key:
        return None
    return GoogleMapsClient()


@lru_cache()
def get_planner() -> RoutePlanner:
    return RoutePlanner(get_directions_provider())


@lru_cache()
def get_state_machine() -> DeliveryStateMachine:
    repository = get_repository()
    locks = DeliveryLocks()
    hooks = TransitionHooks([NotificationHook(repository)])
    return DeliveryStateMachine(
        repository,
        ConfirmationCoordinator(repository, locks),
        hooks,
        locks=locks,
    )


@lru_cache()
def get_sessions() -> TrackingSessions:
    return TrackingSessions(LocationRecorder(get_repository()))
