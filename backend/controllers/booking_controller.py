"""Controller layer for booking requests and admin decisions."""

from __future__ import annotations

from datetime import date, datetime
from typing import Callable

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field, model_validator

from backend.controllers.dependencies import get_availability_service, get_booking_service
from backend.domain.errors import AvailabilityError
from backend.domain.models import BookingRecord, BookingStatus
from backend.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
)
from backend.services.booking_service import (
    BookingNotFoundError,
    BookingService,
    BookingValidationError,
    CapacityExceededError,
    InvalidTransitionError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["bookings"])


class BookingRequestPayload(BaseModel):
    requester_id: str = Field(min_length=1)
    start_ts: str = Field(min_length=1)
    end_ts: str = Field(min_length=1)
    bedroom_count: int = Field(ge=1)
    title: str | None = None
    notes: str | None = None


class BookingEditPayload(BaseModel):
    start_ts: str | None = Field(default=None, min_length=1)
    end_ts: str | None = Field(default=None, min_length=1)
    bedroom_count: int | None = Field(default=None, ge=1)
    title: str | None = Field(default=None, min_length=1)
    notes: str | None = None


class BlockDatesPayload(BaseModel):
    start_date: date
    end_date: date
    title: str = Field(min_length=1)

    @model_validator(mode="after")
    def validate_order(self) -> "BlockDatesPayload":
        if self.start_date >= self.end_date:
            raise ValueError("End date must be after start date")
        return self


class BookingResponse(BaseModel):
    id: int = Field(gt=0)
    requester_id: str
    title: str
    notes: str | None
    status: BookingStatus
    start_ts: datetime
    end_ts: datetime
    bedroom_count: int = Field(ge=1)


class BookingListResponse(BaseModel):
    bookings: list[BookingResponse]


class PolicyPayload(BaseModel):
    max_bedrooms: int | None = Field(default=None, ge=1)
    buffer_days: int | None = Field(default=None, ge=0)
    min_nights: int | None = Field(default=None, ge=1)


class PolicyResponse(BaseModel):
    max_bedrooms: int = Field(ge=1)
    buffer_days: int = Field(ge=0)
    min_nights: int = Field(ge=1)


def _to_response(booking: BookingRecord) -> BookingResponse:
    return BookingResponse(
        id=booking.booking_id,
        requester_id=booking.requester_id,
        title=booking.title,
        notes=booking.notes,
        status=booking.status,
        start_ts=booking.start,
        end_ts=booking.end,
        bedroom_count=booking.bedroom_count,
    )


def _capacity_conflict(exc: CapacityExceededError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_409_CONFLICT,
        detail={
            "message": str(exc),
            "bedrooms_in_use_at_peak": exc.decision.bedrooms_in_use_at_peak,
            "bedrooms_available": exc.decision.bedrooms_available,
        },
    )


def _run_transition(
    action: Callable[[int], BookingRecord],
    booking_id: int,
    label: str,
) -> BookingResponse:
    try:
        return _to_response(action(booking_id))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except InvalidTransitionError as exc:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise _capacity_conflict(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure during %s of booking %s", label, booking_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to {label} booking",
        ) from exc


@router.post(
    "/bookings/request",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def request_booking(
    payload: BookingRequestPayload,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Create a PENDING booking request."""
    try:
        booking = service.request_booking(
            requester_id=payload.requester_id,
            start=payload.start_ts,
            end=payload.end_ts,
            bedroom_count=payload.bedroom_count,
            title=payload.title,
            notes=payload.notes,
        )
        return _to_response(booking)
    except (AvailabilityError, BookingValidationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected booking request failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create booking request",
        ) from exc


@router.get(
    "/bookings",
    response_model=BookingListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_bookings(
    status_filter: BookingStatus | None = Query(default=None, alias="status"),
    service: BookingService = Depends(get_booking_service),
) -> BookingListResponse:
    bookings = service.list_bookings(status=status_filter)
    return BookingListResponse(bookings=[_to_response(item) for item in bookings])


@router.get(
    "/bookings/{booking_id}",
    response_model=BookingResponse,
    status_code=status.HTTP_200_OK,
)
async def get_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    try:
        return _to_response(service.get_booking(booking_id))
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc


@router.post("/admin/bookings/{booking_id}/approve", response_model=BookingResponse)
async def approve_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return _run_transition(service.approve, booking_id, "approve")


@router.post("/admin/bookings/{booking_id}/hold", response_model=BookingResponse)
async def hold_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return _run_transition(service.hold, booking_id, "hold")


@router.post("/admin/bookings/{booking_id}/reject", response_model=BookingResponse)
async def reject_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return _run_transition(service.reject, booking_id, "reject")


@router.post("/admin/bookings/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(
    booking_id: int,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    return _run_transition(service.cancel, booking_id, "cancel")


@router.put("/admin/bookings/{booking_id}", response_model=BookingResponse)
async def edit_booking(
    booking_id: int,
    payload: BookingEditPayload,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Change dates, bedroom count or text of an existing booking."""
    try:
        booking = service.edit(
            booking_id,
            start=payload.start_ts,
            end=payload.end_ts,
            bedroom_count=payload.bedroom_count,
            title=payload.title,
            notes=payload.notes,
        )
        return _to_response(booking)
    except BookingNotFoundError as exc:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=str(exc),
        ) from exc
    except (AvailabilityError, BookingValidationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise _capacity_conflict(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected failure editing booking %s", booking_id)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to edit booking",
        ) from exc


@router.post(
    "/admin/block",
    response_model=BookingResponse,
    status_code=status.HTTP_201_CREATED,
)
async def block_dates(
    payload: BlockDatesPayload,
    service: BookingService = Depends(get_booking_service),
) -> BookingResponse:
    """Block the whole house for the given calendar dates."""
    try:
        booking = service.block_dates(
            start_date=payload.start_date,
            end_date=payload.end_date,
            title=payload.title,
        )
        return _to_response(booking)
    except AvailabilityError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except CapacityExceededError as exc:
        raise _capacity_conflict(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected block period failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create blocked period",
        ) from exc


@router.get("/admin/settings", response_model=PolicyResponse)
async def get_policy(
    service: AvailabilityService = Depends(get_availability_service),
) -> PolicyResponse:
    policy = service.get_policy()
    return PolicyResponse(
        max_bedrooms=policy.max_bedrooms,
        buffer_days=policy.buffer_days,
        min_nights=policy.min_nights,
    )


@router.put("/admin/settings", response_model=PolicyResponse)
async def update_policy(
    payload: PolicyPayload,
    service: AvailabilityService = Depends(get_availability_service),
) -> PolicyResponse:
    try:
        policy = service.update_policy(
            max_bedrooms=payload.max_bedrooms,
            buffer_days=payload.buffer_days,
            min_nights=payload.min_nights,
        )
    except AvailabilityValidationError as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    return PolicyResponse(
        max_bedrooms=policy.max_bedrooms,
        buffer_days=policy.buffer_days,
        min_nights=policy.min_nights,
    )
