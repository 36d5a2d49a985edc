"""Bedroom-capacity admission and the half-open overlap contract."""

from __future__ import annotations

import random
from datetime import datetime, timedelta, timezone

import pytest

from backend.domain.availability import (
    check_capacity,
    peak_concurrent_bedrooms,
    ranges_overlap,
)
from backend.domain.errors import InvalidRangeError
from backend.domain.models import BookingStatus, CandidateRequest, OccupiedInterval, TimeRange


BASE = datetime(2025, 1, 1, tzinfo=timezone.utc)


def jan(day: int) -> datetime:
    return datetime(2025, 1, day, tzinfo=timezone.utc)


def booked(start_day: int, end_day: int, bedrooms: int) -> OccupiedInterval:
    return OccupiedInterval(start=jan(start_day), end=jan(end_day), bedroom_count=bedrooms)


def candidate(start_day: int, end_day: int, bedrooms: int) -> CandidateRequest:
    return CandidateRequest(
        range=TimeRange(start=jan(start_day), end=jan(end_day)),
        bedroom_count=bedrooms,
    )


# --- rangesOverlap ---

def test_overlapping_ranges_are_detected():
    assert ranges_overlap(
        TimeRange(start=jan(10), end=jan(20)),
        TimeRange(start=jan(15), end=jan(25)),
    )


def test_disjoint_ranges_do_not_overlap():
    assert not ranges_overlap(
        TimeRange(start=jan(10), end=jan(15)),
        TimeRange(start=jan(20), end=jan(25)),
    )


def test_touching_ranges_do_not_overlap():
    first = TimeRange(start=jan(10), end=jan(15))
    second = TimeRange(start=jan(15), end=jan(20))

    assert not ranges_overlap(first, second)
    assert not ranges_overlap(second, first)


def test_contained_range_overlaps():
    assert ranges_overlap(
        TimeRange(start=jan(1), end=jan(31)),
        TimeRange(start=jan(10), end=jan(11)),
    )


# --- checkCapacity ---

def test_candidate_exceeding_capacity_is_rejected_with_peak():
    decision = check_capacity([booked(1, 10, 3)], candidate(5, 8, 2), max_bedrooms=4)

    assert decision.admitted is False
    assert decision.bedrooms_in_use_at_peak == 5
    assert decision.bedrooms_available == 1
    assert decision.reason is not None
    assert "Capacity exceeded" in decision.reason


def test_candidate_filling_house_exactly_is_admitted():
    decision = check_capacity([booked(1, 10, 3)], candidate(5, 8, 1), max_bedrooms=4)

    assert decision.admitted is True
    assert decision.bedrooms_in_use_at_peak == 4
    assert decision.reason is None


def test_touching_booking_does_not_consume_capacity():
    decision = check_capacity([booked(1, 10, 4)], candidate(10, 12, 2), max_bedrooms=4)

    assert decision.admitted is True
    assert decision.bedrooms_in_use_at_peak == 2


def test_sequential_bookings_inside_candidate_are_not_summed():
    occupied = [booked(1, 5, 3), booked(5, 10, 3)]

    decision = check_capacity(occupied, candidate(1, 10, 1), max_bedrooms=4)

    assert decision.admitted is True
    assert decision.bedrooms_in_use_at_peak == 4


def test_concurrent_bookings_are_summed_at_their_overlap():
    occupied = [booked(1, 10, 2), booked(5, 15, 2)]

    decision = check_capacity(occupied, candidate(6, 8, 1), max_bedrooms=4)

    assert decision.admitted is False
    assert decision.bedrooms_in_use_at_peak == 5
    assert decision.bedrooms_available == 0


def test_peak_inside_candidate_found_after_candidate_start():
    occupied = [booked(1, 3, 1), booked(8, 9, 3)]

    decision = check_capacity(occupied, candidate(2, 12, 2), max_bedrooms=4)

    assert decision.admitted is False
    assert decision.bedrooms_in_use_at_peak == 5


def test_empty_calendar_admits_up_to_capacity():
    assert check_capacity([], candidate(1, 3, 4), max_bedrooms=4).admitted
    assert not check_capacity([], candidate(1, 3, 5), max_bedrooms=4).admitted


def test_check_capacity_does_not_mutate_input():
    occupied = [booked(1, 10, 3)]
    snapshot = list(occupied)

    check_capacity(occupied, candidate(5, 8, 2), max_bedrooms=4)

    assert occupied == snapshot


def test_invalid_candidate_range_raises():
    with pytest.raises(InvalidRangeError):
        check_capacity([], candidate(8, 5, 1), max_bedrooms=4)


def test_invalid_occupied_range_raises():
    with pytest.raises(InvalidRangeError):
        check_capacity([booked(10, 10, 1)], candidate(1, 20, 1), max_bedrooms=4)


def test_zero_bedroom_candidate_raises():
    with pytest.raises(ValueError):
        check_capacity([], candidate(1, 3, 0), max_bedrooms=4)


def test_peak_concurrent_bedrooms_clips_to_window():
    occupied = [booked(1, 5, 2), booked(4, 8, 1), booked(20, 25, 4)]

    assert peak_concurrent_bedrooms(occupied, TimeRange(start=jan(1), end=jan(10))) == 3
    assert peak_concurrent_bedrooms(occupied, TimeRange(start=jan(5), end=jan(10))) == 1
    assert peak_concurrent_bedrooms(occupied, TimeRange(start=jan(10), end=jan(20))) == 0


@pytest.mark.parametrize("status", list(BookingStatus))
def test_only_occupying_statuses_consume_capacity(status):
    occupied = [OccupiedInterval(start=jan(1), end=jan(10), bedroom_count=3, status=status)]

    decision = check_capacity(occupied, candidate(5, 8, 2), max_bedrooms=4)

    if status.is_occupying:
        assert (decision.admitted, decision.bedrooms_in_use_at_peak) == (False, 5)
    else:
        assert (decision.admitted, decision.bedrooms_in_use_at_peak) == (True, 2)


def test_mixed_calendar_counts_only_occupying_bookings():
    occupied = [
        OccupiedInterval(start=jan(1), end=jan(10), bedroom_count=2, status=BookingStatus.HOLD),
        OccupiedInterval(start=jan(3), end=jan(9), bedroom_count=4, status=BookingStatus.PENDING),
        OccupiedInterval(start=jan(4), end=jan(6), bedroom_count=4, status=BookingStatus.CANCELLED),
    ]

    assert peak_concurrent_bedrooms(occupied, TimeRange(start=jan(1), end=jan(31))) == 2
    assert check_capacity(occupied, candidate(2, 8, 2), max_bedrooms=4).admitted


def test_replayed_admissions_never_oversell():
    rng = random.Random(23)
    max_bedrooms = 4
    for _ in range(50):
        admitted: list[OccupiedInterval] = []
        for _ in range(40):
            start = BASE + timedelta(days=rng.randint(0, 60), hours=rng.choice([0, 12]))
            request = CandidateRequest(
                range=TimeRange(start=start, end=start + timedelta(days=rng.randint(1, 10))),
                bedroom_count=rng.randint(1, 4),
            )
            decision = check_capacity(admitted, request, max_bedrooms)
            if decision.admitted:
                admitted.append(
                    OccupiedInterval(
                        start=request.range.start,
                        end=request.range.end,
                        bedroom_count=request.bedroom_count,
                    )
                )

        for offset in range(0, 75 * 2):
            instant = BASE + timedelta(hours=12 * offset)
            in_use = sum(
                interval.bedroom_count
                for interval in admitted
                if interval.start <= instant < interval.end
            )
            assert in_use <= max_bedrooms
