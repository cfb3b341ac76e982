"""Route group exports."""

from . import deliveries, geocode, health, operators, routes

__all__ = ["deliveries", "geocode", "health", "operators", "routes"]
