"""Domain-level validation rules for ranges and capacity policy."""

from __future__ import annotations

from backend.domain.errors import InvalidRangeError
from backend.domain.models import CandidateRequest, CapacityPolicy, TimeRange


def validate_range(time_range: TimeRange) -> None:
    if time_range.start.tzinfo is None or time_range.end.tzinfo is None:
        raise InvalidRangeError("range boundaries must be timezone-aware instants")
    if time_range.start >= time_range.end:
        raise InvalidRangeError(
            f"range start {time_range.start.isoformat()} must be before "
            f"end {time_range.end.isoformat()}"
        )


def validate_gap_policy(min_nights: int, buffer_days: int) -> None:
    if min_nights < 1:
        raise ValueError("min_nights must be >= 1")
    if buffer_days < 0:
        raise ValueError("buffer_days must be >= 0")


def validate_capacity_policy(policy: CapacityPolicy) -> None:
    if policy.max_bedrooms < 1:
        raise ValueError("max_bedrooms must be >= 1")
    validate_gap_policy(policy.min_nights, policy.buffer_days)


def validate_candidate(candidate: CandidateRequest, max_bedrooms: int) -> None:
    validate_range(candidate.range)
    if max_bedrooms < 1:
        raise ValueError("max_bedrooms must be >= 1")
    if candidate.bedroom_count < 1:
        raise ValueError("bedroom_count must be >= 1")
