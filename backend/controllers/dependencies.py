"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

from fastapi import HTTPException, Request, status

from backend.services.availability_service import AvailabilityService
from backend.services.booking_service import BookingService
from backend.utils.config import Settings, get_settings


def _settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_availability_service(request: Request) -> AvailabilityService:
    service = getattr(request.app.state, "availability_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = AvailabilityService(repository=repository, settings=_settings(request))
            request.app.state.availability_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Availability service is not initialized",
        )
    return service


def get_booking_service(request: Request) -> BookingService:
    service = getattr(request.app.state, "booking_service", None)
    if service is None:
        repository = getattr(request.app.state, "repository", None)
        if repository is not None:
            service = BookingService(repository=repository, settings=_settings(request))
            request.app.state.booking_service = service
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Booking service is not initialized",
        )
    return service
