"""Application configuration and settings management."""

from typing import Any, Literal, Optional

import json
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Runtime configuration loaded from environment variables or defaults."""

    model_config = SettingsConfigDict(
        env_prefix="HANDOFF_",
        case_sensitive=False,
        env_file=".env",
        env_file_encoding="utf-8",
    )

    app_name: str = "Delivery Hand-off Coordination API"
    api_prefix: str = "/api"

    directions_provider: Literal["google", "osrm", "none"] = Field(
        default="none",
        description="Directions/optimization backend used by the route planner.",
    )
    google_maps_api_key: Optional[str] = Field(
        default=None,
        description="Server key for the Google Directions and Geocoding web services.",
    )
    google_maps_base_url: str = Field(
        default="https://maps.googleapis.com/maps/api",
        description="Base URL for the Google Maps web services.",
    )
    osrm_base_url: Optional[str] = Field(
        default=None,
        description="Base URL for the OSRM routing service (e.g., http://localhost:5000).",
    )
    osrm_profile: Literal["driving", "driving-hgv"] = Field(
        default="driving",
        description="OSRM profile to use for driving trips.",
    )
    provider_timeout_seconds: float = Field(default=10.0, gt=0.0)
    provider_max_retries: int = Field(default=2, ge=0)
    provider_backoff_seconds: float = Field(default=0.5, ge=0.0)
    provider_max_waypoints: int = Field(
        default=25,
        ge=1,
        description="Largest waypoint count sent to the provider; bigger stop sets are planned locally.",
    )
    plan_timeout_seconds: float = Field(default=15.0, gt=0.0)

    fallback_average_speed_kmh: float = Field(
        default=33.0,
        gt=0.0,
        description="Urban driving speed used to estimate leg durations when planning locally.",
    )
    location_timeout_seconds: float = Field(default=10.0, gt=0.0)
    location_max_age_seconds: float = Field(
        default=30.0,
        ge=0.0,
        description="Age under which the last reported fix answers a one-shot location request.",
    )
    location_accuracy_threshold_meters: float = Field(default=100.0, gt=0.0)
    nearby_threshold_meters: float = Field(default=100.0, ge=0.0)

    frontend_allowed_origins: tuple[str, ...] = Field(
        default=(
            "http://localhost:5173",
            "http://127.0.0.1:5173",
        ),
        description="Permitted web origins for browser clients (CORS).",
    )

    # Supabase configuration
    supabase_url: Optional[str] = Field(
        default=None,
        description="Supabase project URL (e.g., https://xxx.supabase.co).",
    )
    supabase_key: Optional[str] = Field(
        default=None,
        description="Supabase service role key for backend operations.",
    )

    @field_validator("frontend_allowed_origins", mode="before")
    @classmethod
    def _parse_str_tuple_from_env(cls, value: Any) -> tuple[str, ...]:
        """Parse string tuple from environment variable (comma-separated or JSON array)."""
        if isinstance(value, tuple):
            return value
        if isinstance(value, list):
            return tuple(str(item) for item in value)
        if isinstance(value, str):
            # Try JSON first
            try:
                parsed = json.loads(value)
                if isinstance(parsed, list):
                    return tuple(str(item) for item in parsed)
            except (json.JSONDecodeError, TypeError):
                pass
            if "," in value:
                return tuple(item.strip() for item in value.split(",") if item.strip())
            if value.strip():
                return (value.strip(),)
        return tuple()


settings = Settings()
