"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and services, registers routers, and runs startup
initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from backend.controllers.availability_controller import router as availability_router
from backend.controllers.booking_controller import router as booking_router
from backend.repository.data_repository import DataRepository
from backend.services.availability_service import AvailabilityService
from backend.services.booking_service import BookingService
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services receive the repository explicitly and are stored on app.state;
    nothing is held in module-level singletons.
    """
    settings = settings or get_settings()

    # --- Repository (SQLite connection factory, authoritative admission) ---
    repository = DataRepository(settings)

    # --- Services (business logic, no direct DB access) ---
    availability_service = AvailabilityService(
        repository=repository,
        settings=settings,
    )
    booking_service = BookingService(
        repository=repository,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(availability_router)
    app.include_router(booking_router)

    @app.get("/health", tags=["health"])
    async def health() -> dict[str, str]:
        return {"status": "ok"}

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.availability_service = availability_service
    app.state.booking_service = booking_service

    return app


def _startup(app: FastAPI) -> None:
    """Idempotent startup sequence. Safe to re-run on server restarts."""
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema and house settings")
    repository.initialize_database()

    policy = repository.get_capacity_policy()
    logger.info(
        "Startup complete: max_bedrooms=%s buffer_days=%s min_nights=%s",
        policy.max_bedrooms,
        policy.buffer_days,
        policy.min_nights,
    )


# Module-level app object for uvicorn
app = create_app()
