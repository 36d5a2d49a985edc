"""Availability queries over the stored booking calendar."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from backend.domain.availability import calculate_gaps, check_capacity, peak_concurrent_bedrooms
from backend.domain.constraints import validate_capacity_policy, validate_range
from backend.domain.intervals import day_window, local_date, parse_instant
from backend.domain.models import CandidateRequest, CapacityDecision, CapacityPolicy, Gap, TimeRange
from backend.repository.data_repository import DataRepository
from backend.utils.config import Settings, get_settings
from backend.utils.logger import get_logger


logger = get_logger(__name__)


class AvailabilityValidationError(Exception):
    """Raised when an availability query is outside supported bounds."""


@dataclass(frozen=True)
class CapacitySnapshot:
    day: date
    bedrooms_in_use: int
    max_bedrooms: int

    @property
    def bedrooms_available(self) -> int:
        return max(0, self.max_bedrooms - self.bedrooms_in_use)


class AvailabilityService:
    """Loads the occupied snapshot and policy, then defers to the pure engine."""

    def __init__(
        self,
        repository: Optional[DataRepository] = None,
        settings: Optional[Settings] = None,
    ) -> None:
        self._settings = settings or get_settings()
        self._repository = repository or DataRepository(self._settings)

    @property
    def house_timezone(self) -> str:
        return self._settings.house_timezone

    def _instant(self, value: str | date | datetime) -> datetime:
        return parse_instant(value, self._settings.house_timezone)

    def find_gaps(
        self,
        from_date: str | date | datetime,
        to_date: str | date | datetime,
        min_nights: Optional[int] = None,
    ) -> list[Gap]:
        window = TimeRange(start=self._instant(from_date), end=self._instant(to_date))
        validate_range(window)
        if window.end - window.start > timedelta(days=self._settings.max_gap_window_days):
            raise AvailabilityValidationError(
                f"Gap window may span at most {self._settings.max_gap_window_days} days"
            )

        policy = self._repository.get_capacity_policy()
        effective_min_nights = min_nights if min_nights is not None else policy.min_nights
        buffer = timedelta(days=policy.buffer_days)
        # Bookings just outside the window still cast their buffer into it.
        occupied = self._repository.list_occupied_intervals(
            window.start - buffer,
            window.end + buffer,
        )
        gaps = calculate_gaps(
            occupied,
            window.start,
            window.end,
            min_nights=effective_min_nights,
            buffer_days=policy.buffer_days,
            timezone_name=self._settings.house_timezone,
        )
        logger.debug(
            "Found %s gap(s) between %s and %s from %s occupied interval(s)",
            len(gaps),
            window.start.isoformat(),
            window.end.isoformat(),
            len(occupied),
        )
        return gaps

    def check_availability(
        self,
        start: str | date | datetime,
        end: str | date | datetime,
        bedroom_count: int,
    ) -> CapacityDecision:
        """Advisory capacity check; admission itself is re-checked on commit."""
        candidate = CandidateRequest(
            range=TimeRange(start=self._instant(start), end=self._instant(end)),
            bedroom_count=bedroom_count,
        )
        validate_range(candidate.range)
        policy = self._repository.get_capacity_policy()
        occupied = self._repository.list_occupied_intervals(
            candidate.range.start,
            candidate.range.end,
        )
        decision = check_capacity(occupied, candidate, policy.max_bedrooms)
        if not decision.admitted:
            logger.info(
                "Availability check rejected %s bedroom(s): peak would be %s of %s",
                bedroom_count,
                decision.bedrooms_in_use_at_peak,
                policy.max_bedrooms,
            )
        return decision

    def capacity_snapshot(self, on_date: Optional[date] = None) -> CapacitySnapshot:
        """Bedrooms in use during the night starting on `on_date` (house-local)."""
        timezone_name = self._settings.house_timezone
        target_day = on_date or local_date(datetime.now(timezone.utc), timezone_name)
        start, end = day_window(target_day, timezone_name)
        window = TimeRange(start=start, end=end)
        occupied = self._repository.list_occupied_intervals(window.start, window.end)
        policy = self._repository.get_capacity_policy()
        return CapacitySnapshot(
            day=target_day,
            bedrooms_in_use=peak_concurrent_bedrooms(occupied, window),
            max_bedrooms=policy.max_bedrooms,
        )

    def get_policy(self) -> CapacityPolicy:
        return self._repository.get_capacity_policy()

    def update_policy(
        self,
        *,
        max_bedrooms: Optional[int] = None,
        buffer_days: Optional[int] = None,
        min_nights: Optional[int] = None,
    ) -> CapacityPolicy:
        current = self._repository.get_capacity_policy()
        policy = replace(
            current,
            max_bedrooms=max_bedrooms if max_bedrooms is not None else current.max_bedrooms,
            buffer_days=buffer_days if buffer_days is not None else current.buffer_days,
            min_nights=min_nights if min_nights is not None else current.min_nights,
        )
        try:
            validate_capacity_policy(policy)
        except ValueError as exc:
            raise AvailabilityValidationError(str(exc)) from exc
        return self._repository.update_capacity_policy(policy)
