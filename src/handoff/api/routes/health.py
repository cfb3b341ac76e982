"""Health endpoints."""

from __future__ import annotations

from fastapi import APIRouter, status

from ...config import settings

router = APIRouter(tags=["health"])


@router.get("/health", status_code=status.HTTP_200_OK)
def health_root() -> dict:
    """Simple health check endpoint that doesn't require any dependencies."""
    return {"status": "ok"}


def _get_provider_health_check():
    """Lazy import to avoid startup failures."""
    if settings.directions_provider == "google":
        from ...services.routing.google_client import check_health
        return check_health
    if settings.directions_provider == "osrm":
        from ...services.routing.osrm_client import check_health
        return check_health
    return None


@router.get("/health/directions", status_code=status.HTTP_200_OK)
def health_directions() -> dict:
    """Check the configured directions provider. Planning still works locally when it is down."""
    provider = settings.directions_provider
    check = _get_provider_health_check()
    if check is None:
        return {"service": provider, "healthy": False, "fallback": "nearest_neighbor"}
    try:
        return {"service": provider, "healthy": check(), "fallback": "nearest_neighbor"}
    except Exception as e:
        return {"service": provider, "healthy": False, "fallback": "nearest_neighbor", "error": str(e)}


@router.get("/health/database", status_code=status.HTTP_200_OK)
def check_database() -> dict:
    """Check database connection and the deliveries table."""
    from ...db.supabase import get_supabase_client

    supabase = get_supabase_client()
    if not supabase:
        return {
            "configured": False,
            "message": "Supabase not configured. Set HANDOFF_SUPABASE_URL and HANDOFF_SUPABASE_KEY environment variables.",
        }

    try:
        result = supabase.table("deliveries").select("id", count="exact").limit(1).execute()
        return {
            "configured": True,
            "connected": True,
            "deliveries_count": result.count or 0,
            "message": "Database connected.",
        }
    except Exception as exc:
        return {
            "configured": True,
            "connected": False,
            "error": str(exc),
            "message": f"Database connection error: {exc}",
        }
