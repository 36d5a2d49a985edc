"""Gap finding and bedroom-capacity admission over an occupied snapshot.

Every function here is pure: the occupied intervals, window and policy are
passed in on each call and nothing is cached between calls. `check_capacity`
answers "would this be safe" only; the persisted admission must be serialized
by the storage layer, otherwise two callers holding the same stale snapshot
can both be admitted.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Optional, Sequence

from backend.domain.constraints import validate_candidate, validate_gap_policy, validate_range
from backend.domain.intervals import resolve_zone
from backend.domain.models import CandidateRequest, CapacityDecision, Gap, OccupiedInterval, TimeRange


ONE_DAY = timedelta(days=1)


def ranges_overlap(first: TimeRange, second: TimeRange) -> bool:
    """Half-open overlap test; ranges that only touch do not overlap."""
    return first.start < second.end and second.start < first.end


def count_nights(start: datetime, end: datetime, timezone_name: Optional[str] = None) -> int:
    """Ceiling of the whole-day span between two instants.

    With `timezone_name` the span is measured on the local wall clock, so two
    15:00 anchors either side of a DST change are still a whole number of days.
    """
    if end <= start:
        return 0
    span = end - start
    if timezone_name is not None:
        zone = resolve_zone(timezone_name)
        wall_start = start.astimezone(zone).replace(tzinfo=None)
        wall_end = end.astimezone(zone).replace(tzinfo=None)
        wall_span = wall_end - wall_start
        if wall_span > timedelta(0):
            span = wall_span
    whole_days, remainder = divmod(span, ONE_DAY)
    return whole_days + (1 if remainder else 0)


def _build_gap(
    start: datetime,
    end: datetime,
    min_nights: int,
    timezone_name: Optional[str],
) -> Optional[Gap]:
    if end <= start:
        return None
    nights = count_nights(start, end, timezone_name)
    if nights < min_nights:
        return None
    return Gap(start=start, end=end, nights=nights)


def calculate_gaps(
    occupied: Iterable[OccupiedInterval],
    from_: datetime,
    to: datetime,
    min_nights: int = 1,
    buffer_days: int = 0,
    timezone_name: Optional[str] = None,
) -> list[Gap]:
    """Return the bookable windows inside `[from_, to]`.

    Each occupied interval excludes `buffer_days` before its start and after
    its end. The cursor only moves forward, so overlapping or nested intervals
    collapse into one excluded span. Gaps shorter than `min_nights` are
    dropped individually; they are never merged across an occupied interval.
    Intervals whose status does not occupy the house are ignored.
    """
    validate_range(TimeRange(start=from_, end=to))
    validate_gap_policy(min_nights, buffer_days)
    intervals = [interval for interval in occupied if interval.status.is_occupying]
    for interval in intervals:
        validate_range(interval)

    buffer = timedelta(days=buffer_days)
    gaps: list[Gap] = []
    cursor = from_

    for interval in sorted(intervals, key=lambda item: item.start):
        if cursor < interval.start:
            gap = _build_gap(cursor, min(interval.start - buffer, to), min_nights, timezone_name)
            if gap is not None:
                gaps.append(gap)
        cursor = max(cursor, interval.end + buffer)
        if cursor >= to:
            break

    if cursor < to:
        trailing = _build_gap(cursor, to, min_nights, timezone_name)
        if trailing is not None:
            gaps.append(trailing)

    return gaps


def total_nights(gaps: Iterable[Gap]) -> int:
    return sum(gap.nights for gap in gaps)


def peak_concurrent_bedrooms(
    occupied: Iterable[OccupiedInterval],
    window: TimeRange,
) -> int:
    """Highest simultaneous bedroom usage by occupying intervals inside `window`.

    Counts are constant over each booking, so usage can only rise where an
    interval starts. A sweep over clipped start/end events finds the peak
    without walking individual days.
    """
    validate_range(window)
    events: list[tuple[datetime, int, int]] = []
    for interval in occupied:
        if not interval.status.is_occupying:
            continue
        validate_range(interval)
        if not ranges_overlap(interval, window):
            continue
        events.append((max(interval.start, window.start), 1, interval.bedroom_count))
        events.append((min(interval.end, window.end), 0, -interval.bedroom_count))

    # Ends sort before starts at the same instant: touching is not overlapping.
    events.sort(key=lambda event: (event[0], event[1]))
    in_use = 0
    peak = 0
    for _, _, delta in events:
        in_use += delta
        peak = max(peak, in_use)
    return peak


def check_capacity(
    occupied: Sequence[OccupiedInterval],
    candidate: CandidateRequest,
    max_bedrooms: int,
) -> CapacityDecision:
    """Decide whether `candidate` fits alongside `occupied` without overselling."""
    validate_candidate(candidate, max_bedrooms)
    existing_peak = peak_concurrent_bedrooms(occupied, candidate.range)
    in_use_at_peak = existing_peak + candidate.bedroom_count

    if in_use_at_peak > max_bedrooms:
        free_bedrooms = max(0, max_bedrooms - existing_peak)
        return CapacityDecision(
            admitted=False,
            bedrooms_in_use_at_peak=in_use_at_peak,
            requested_bedrooms=candidate.bedroom_count,
            max_bedrooms=max_bedrooms,
            reason=(
                f"Capacity exceeded: requested {candidate.bedroom_count} bedroom(s) "
                f"but only {free_bedrooms} of {max_bedrooms} are free for the selected dates"
            ),
        )
    return CapacityDecision(
        admitted=True,
        bedrooms_in_use_at_peak=in_use_at_peak,
        requested_bedrooms=candidate.bedroom_count,
        max_bedrooms=max_bedrooms,
    )
