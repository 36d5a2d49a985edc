"""Domain models for booking availability and bedroom capacity."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional


class BookingStatus(str, Enum):
    APPROVED = "APPROVED"
    HOLD = "HOLD"
    BLOCKED = "BLOCKED"
    PENDING = "PENDING"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"

    @property
    def is_occupying(self) -> bool:
        return self in OCCUPYING_STATUSES


OCCUPYING_STATUSES = frozenset(
    {BookingStatus.APPROVED, BookingStatus.HOLD, BookingStatus.BLOCKED}
)


@dataclass(frozen=True)
class TimeRange:
    """Half-open range `[start, end)` of UTC instants."""

    start: datetime
    end: datetime


@dataclass(frozen=True)
class OccupiedInterval(TimeRange):
    bedroom_count: int = 1
    status: BookingStatus = BookingStatus.APPROVED


@dataclass(frozen=True)
class Gap:
    start: datetime
    end: datetime
    nights: int


@dataclass(frozen=True)
class CapacityPolicy:
    max_bedrooms: int
    buffer_days: int
    min_nights: int


@dataclass(frozen=True)
class CandidateRequest:
    range: TimeRange
    bedroom_count: int


@dataclass(frozen=True)
class CapacityDecision:
    admitted: bool
    bedrooms_in_use_at_peak: int
    requested_bedrooms: int
    max_bedrooms: int
    reason: Optional[str] = None

    @property
    def bedrooms_available(self) -> int:
        """Bedrooms free at the busiest point before the candidate is added."""
        existing = self.bedrooms_in_use_at_peak - self.requested_bedrooms
        return max(0, self.max_bedrooms - existing)


@dataclass(frozen=True)
class BookingRecord:
    booking_id: int
    requester_id: str
    title: str
    notes: Optional[str]
    status: BookingStatus
    start: datetime
    end: datetime
    bedroom_count: int
    created_at: str
    updated_at: str
