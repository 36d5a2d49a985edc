"""Booking lifecycle: requests, admin decisions and blocked periods."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from backend.domain.availability import check_capacity
from backend.domain.constraints import validate_range
from backend.domain.intervals import parse_instant, to_instant
from backend.domain.models import (
    BookingRecord,
    BookingStatus,
    CandidateRequest,
    CapacityDecision,
    CapacityPolicy,
    OccupiedInterval,
    TimeRange,
)
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class BookingValidationError(Exception):
    """Raised when booking input is invalid."""


class BookingNotFoundError(Exception):
    """Raised when a booking id does not exist."""


class InvalidTransitionError(Exception):
    """Raised when a status change is not allowed from the current status."""


class CapacityExceededError(Exception):
    """Raised when committing a booking would oversell bedrooms."""

    def __init__(self, decision: CapacityDecision) -> None:
        super().__init__(decision.reason or "Capacity exceeded")
        self.decision = decision


# target status -> statuses it may be reached from
_ALLOWED_TRANSITIONS: dict[BookingStatus, frozenset[BookingStatus]] = {
    BookingStatus.APPROVED: frozenset({BookingStatus.PENDING, BookingStatus.HOLD}),
    BookingStatus.HOLD: frozenset({BookingStatus.PENDING}),
    BookingStatus.REJECTED: frozenset({BookingStatus.PENDING, BookingStatus.HOLD}),
    BookingStatus.CANCELLED: frozenset(
        {
            BookingStatus.PENDING,
            BookingStatus.HOLD,
            BookingStatus.APPROVED,
            BookingStatus.BLOCKED,
        }
    ),
}


class BookingService:
    """Applies status transitions through the repository's serialized commit.

    Moving a booking into an occupying status re-runs `check_capacity` on the
    snapshot read under the write lock, so the persisted calendar can never
    exceed `max_bedrooms` even when two admins approve at the same moment.
    """

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    def _instant(self, value: str | date | datetime) -> datetime:
        return parse_instant(value, self._settings.house_timezone)

    def _admit(
        self,
        bedroom_count: int,
        time_range: TimeRange,
        snapshot: list[OccupiedInterval],
        policy: CapacityPolicy,
    ) -> None:
        decision = check_capacity(
            snapshot,
            CandidateRequest(range=time_range, bedroom_count=bedroom_count),
            policy.max_bedrooms,
        )
        if not decision.admitted:
            logger.warning(
                "Admission refused for %s bedroom(s) %s -> %s: %s",
                bedroom_count,
                time_range.start.isoformat(),
                time_range.end.isoformat(),
                decision.reason,
            )
            raise CapacityExceededError(decision)

    def get_booking(self, booking_id: int) -> BookingRecord:
        booking = self._repository.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return booking

    def list_bookings(self, status: Optional[BookingStatus] = None) -> list[BookingRecord]:
        return self._repository.list_bookings(status=status)

    def request_booking(
        self,
        *,
        requester_id: str,
        start: str | date | datetime,
        end: str | date | datetime,
        bedroom_count: int,
        title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingRecord:
        """Store a PENDING request; pending requests never occupy capacity."""
        time_range = TimeRange(start=self._instant(start), end=self._instant(end))
        validate_range(time_range)
        max_bedrooms = self._repository.get_capacity_policy().max_bedrooms
        if not 1 <= bedroom_count <= max_bedrooms:
            raise BookingValidationError(
                f"Bedroom count must be between 1 and {max_bedrooms}"
            )
        if not requester_id.strip():
            raise BookingValidationError("requester_id must be non-empty")

        return self._repository.create_booking(
            requester_id=requester_id,
            title=title or "New Booking Request",
            notes=notes,
            status=BookingStatus.PENDING,
            start=time_range.start,
            end=time_range.end,
            bedroom_count=bedroom_count,
        )

    def block_dates(
        self,
        *,
        start_date: str | date,
        end_date: str | date,
        title: str,
        requester_id: str = "admin",
    ) -> BookingRecord:
        """Block the whole house for a date range; fails if anything overlaps."""
        timezone_name = self._settings.house_timezone
        time_range = TimeRange(
            start=to_instant(start_date, timezone_name),
            end=to_instant(end_date, timezone_name),
        )
        validate_range(time_range)

        def check(snapshot: list[OccupiedInterval], policy: CapacityPolicy) -> None:
            self._admit(policy.max_bedrooms, time_range, snapshot, policy)

        return self._repository.create_booking(
            requester_id=requester_id,
            title=title,
            notes="Admin-blocked period",
            status=BookingStatus.BLOCKED,
            start=time_range.start,
            end=time_range.end,
            bedroom_count=None,
            admission_check=check,
        )

    def edit(
        self,
        booking_id: int,
        *,
        start: str | date | datetime | None = None,
        end: str | date | datetime | None = None,
        bedroom_count: Optional[int] = None,
        title: Optional[str] = None,
        notes: Optional[str] = None,
    ) -> BookingRecord:
        """Change dates, size or text of a booking.

        An occupying booking is re-admitted against everything else on its
        new dates, so an edit can fail with `CapacityExceededError`.
        """
        if bedroom_count is not None and bedroom_count < 1:
            raise BookingValidationError("Bedroom count must be at least 1")
        if title is not None and not title.strip():
            raise BookingValidationError("title must be non-empty")
        new_start = self._instant(start) if start is not None else None
        new_end = self._instant(end) if end is not None else None

        def check(
            proposed: BookingRecord,
            snapshot: list[OccupiedInterval],
            policy: CapacityPolicy,
        ) -> None:
            time_range = TimeRange(start=proposed.start, end=proposed.end)
            validate_range(time_range)
            if proposed.bedroom_count > policy.max_bedrooms:
                raise BookingValidationError(
                    f"Bedroom count must be between 1 and {policy.max_bedrooms}"
                )
            if proposed.status.is_occupying:
                self._admit(proposed.bedroom_count, time_range, snapshot, policy)

        updated = self._repository.update_booking(
            booking_id,
            start=new_start,
            end=new_end,
            bedroom_count=bedroom_count,
            title=title,
            notes=notes,
            edit_check=check,
        )
        if updated is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return updated

    def _transition(self, booking_id: int, new_status: BookingStatus) -> BookingRecord:
        allowed_sources = _ALLOWED_TRANSITIONS[new_status]

        def check(
            current: BookingRecord,
            snapshot: list[OccupiedInterval],
            policy: CapacityPolicy,
        ) -> None:
            if current.status not in allowed_sources:
                raise InvalidTransitionError(
                    f"Booking {current.booking_id} is {current.status.value}; "
                    f"cannot move to {new_status.value}"
                )
            if new_status.is_occupying and not current.status.is_occupying:
                self._admit(
                    current.bedroom_count,
                    TimeRange(start=current.start, end=current.end),
                    snapshot,
                    policy,
                )

        updated = self._repository.transition_status(booking_id, new_status, check)
        if updated is None:
            raise BookingNotFoundError(f"Booking {booking_id} not found")
        return updated

    def approve(self, booking_id: int) -> BookingRecord:
        return self._transition(booking_id, BookingStatus.APPROVED)

    def hold(self, booking_id: int) -> BookingRecord:
        return self._transition(booking_id, BookingStatus.HOLD)

    def reject(self, booking_id: int) -> BookingRecord:
        return self._transition(booking_id, BookingStatus.REJECTED)

    def cancel(self, booking_id: int) -> BookingRecord:
        return self._transition(booking_id, BookingStatus.CANCELLED)
