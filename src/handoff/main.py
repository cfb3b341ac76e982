"""FastAPI application entry point."""

from __future__ import annotations

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api.routes import deliveries, geocode, health, operators, routes
from .config import settings

logger = logging.getLogger(__name__)


def create_app() -> FastAPI:
    app = FastAPI(title=settings.app_name)
    if settings.frontend_allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=list(settings.frontend_allowed_origins),
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

    # Root endpoint for diagnostics
    @app.get("/")
    def root():
        return {
            "service": settings.app_name,
            "status": "running",
            "api_prefix": settings.api_prefix,
            "health": f"{settings.api_prefix}/health",
            "directions_provider": settings.directions_provider,
            "docs": "/docs",
        }

    @app.on_event("shutdown")
    def shutdown() -> None:
        from .api.dependencies import get_planner, get_sessions

        if get_sessions.cache_info().currsize:
            sessions = get_sessions()
            sessions.close_all()
            if sessions.recorder is not None:
                sessions.recorder.close()
        if get_planner.cache_info().currsize:
            get_planner().close()
        logger.info("Shut down tracking sessions and route planner.")

    app.include_router(health.router, prefix=settings.api_prefix)
    app.include_router(deliveries.router, prefix=settings.api_prefix)
    app.include_router(operators.router, prefix=settings.api_prefix)
    app.include_router(routes.router, prefix=settings.api_prefix)
    app.include_router(geocode.router, prefix=settings.api_prefix)
    return app


app = create_app()
