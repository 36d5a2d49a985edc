"""HTTP controller layer for gap and capacity queries."""

from __future__ import annotations

from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from backend.controllers.dependencies import get_availability_service
from backend.domain.errors import AvailabilityError
from backend.domain.intervals import format_range
from backend.services.availability_service import (
    AvailabilityService,
    AvailabilityValidationError,
)
from backend.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["availability"])


class GapResponse(BaseModel):
    start: datetime
    end: datetime
    nights: int = Field(ge=1)
    label: str


class GapListResponse(BaseModel):
    gaps: list[GapResponse]


class CheckAvailabilityRequest(BaseModel):
    start_ts: str = Field(min_length=1)
    end_ts: str = Field(min_length=1)
    bedroom_count: int = Field(ge=1)


class CheckAvailabilityResponse(BaseModel):
    available: bool
    requested_bedrooms: int = Field(ge=1)
    bedrooms_in_use_at_peak: int = Field(ge=0)
    bedrooms_available: int = Field(ge=0)
    max_bedrooms: int = Field(ge=1)
    reason: str | None = None


class CapacityResponse(BaseModel):
    date: date
    bedrooms_in_use: int = Field(ge=0)
    max_bedrooms: int = Field(ge=1)
    bedrooms_available: int = Field(ge=0)


@router.get(
    "/gaps",
    response_model=GapListResponse,
    status_code=status.HTTP_200_OK,
)
async def list_gaps(
    from_date: date = Query(alias="from"),
    to_date: date = Query(alias="to"),
    min_nights: int | None = Query(default=None, alias="minNights", ge=1),
    service: AvailabilityService = Depends(get_availability_service),
) -> GapListResponse:
    """Return bookable windows between two calendar dates."""
    try:
        gaps = service.find_gaps(from_date, to_date, min_nights=min_nights)
        return GapListResponse(
            gaps=[
                GapResponse(
                    start=gap.start,
                    end=gap.end,
                    nights=gap.nights,
                    label=format_range(gap.start, gap.end, service.house_timezone),
                )
                for gap in gaps
            ]
        )
    except (AvailabilityError, AvailabilityValidationError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected gap calculation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to calculate gaps",
        ) from exc


@router.post(
    "/bookings/check-availability",
    response_model=CheckAvailabilityResponse,
    status_code=status.HTTP_200_OK,
)
async def check_availability(
    payload: CheckAvailabilityRequest,
    service: AvailabilityService = Depends(get_availability_service),
) -> CheckAvailabilityResponse:
    """Advisory pre-check; the approval commit is authoritative."""
    try:
        decision = service.check_availability(
            payload.start_ts,
            payload.end_ts,
            payload.bedroom_count,
        )
        return CheckAvailabilityResponse(
            available=decision.admitted,
            requested_bedrooms=decision.requested_bedrooms,
            bedrooms_in_use_at_peak=decision.bedrooms_in_use_at_peak,
            bedrooms_available=decision.bedrooms_available,
            max_bedrooms=decision.max_bedrooms,
            reason=decision.reason,
        )
    except (AvailabilityError, ValueError) as exc:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=str(exc),
        ) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected availability check failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to check availability",
        ) from exc


@router.get(
    "/capacity",
    response_model=CapacityResponse,
    status_code=status.HTTP_200_OK,
)
async def get_capacity(
    on_date: date | None = Query(default=None, alias="date"),
    service: AvailabilityService = Depends(get_availability_service),
) -> CapacityResponse:
    snapshot = service.capacity_snapshot(on_date)
    return CapacityResponse(
        date=snapshot.day,
        bedrooms_in_use=snapshot.bedrooms_in_use,
        max_bedrooms=snapshot.max_bedrooms,
        bedrooms_available=snapshot.bedrooms_available,
    )
