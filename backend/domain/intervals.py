"""Normalization of calendar dates and timestamps into UTC instants.

Date-only inputs are anchored at 15:00 house-local time before conversion.
Midnight is the wall-clock hour most likely to be skipped or repeated by a
DST transition; an afternoon anchor is unambiguous in every real zone, so a
calendar day always maps to exactly one instant.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from backend.domain.errors import ParseError


ANCHOR_HOUR = 15
DEFAULT_TIMEZONE = "Europe/London"

_DATE_ONLY_PATTERN = re.compile(r"\d{4}-\d{2}-\d{2}")


def resolve_zone(timezone_name: str) -> ZoneInfo:
    try:
        return ZoneInfo(timezone_name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ParseError(f"Unknown timezone '{timezone_name}'") from exc


def parse_date_only(value: str) -> date:
    if not isinstance(value, str) or not _DATE_ONLY_PATTERN.fullmatch(value.strip()):
        raise ParseError(f"Expected a YYYY-MM-DD date, got {value!r}")
    try:
        return date.fromisoformat(value.strip())
    except ValueError as exc:
        raise ParseError(f"Invalid calendar date {value!r}") from exc


def to_instant(date_only: str | date, timezone_name: str = DEFAULT_TIMEZONE) -> datetime:
    """Return the UTC instant for 15:00 local time on the given calendar day."""
    calendar_day = date_only if isinstance(date_only, date) else parse_date_only(date_only)
    zone = resolve_zone(timezone_name)
    local_moment = datetime.combine(calendar_day, time(hour=ANCHOR_HOUR), tzinfo=zone)
    return local_moment.astimezone(timezone.utc)


def parse_instant(
    value: str | date | datetime,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> datetime:
    """Normalize a date, datetime or ISO8601 string to an aware UTC datetime.

    Date-only values go through `to_instant`. Naive timestamps are read as UTC,
    matching how the booking store serializes them.
    """
    if isinstance(value, datetime):
        moment = value
    elif isinstance(value, date):
        return to_instant(value, timezone_name)
    elif isinstance(value, str):
        text = value.strip()
        if _DATE_ONLY_PATTERN.fullmatch(text):
            return to_instant(text, timezone_name)
        try:
            moment = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError as exc:
            raise ParseError(f"Invalid ISO8601 timestamp {value!r}") from exc
    else:
        raise ParseError(f"Unsupported instant value of type {type(value).__name__}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)


def to_storage(instant: datetime) -> str:
    """Serialize with a fixed layout so stored values sort lexicographically."""
    return instant.astimezone(timezone.utc).isoformat(timespec="microseconds")


def local_date(instant: datetime, timezone_name: str = DEFAULT_TIMEZONE) -> date:
    return instant.astimezone(resolve_zone(timezone_name)).date()


def day_window(calendar_day: date, timezone_name: str = DEFAULT_TIMEZONE) -> tuple[datetime, datetime]:
    """Anchor-to-anchor span covering one night starting on `calendar_day`."""
    return (
        to_instant(calendar_day, timezone_name),
        to_instant(calendar_day + timedelta(days=1), timezone_name),
    )


def format_for_display(instant: datetime, timezone_name: str = DEFAULT_TIMEZONE) -> str:
    local_moment = instant.astimezone(resolve_zone(timezone_name))
    return f"{local_moment.day} {local_moment:%b %Y}"


def format_range(
    start: datetime,
    end: datetime,
    timezone_name: str = DEFAULT_TIMEZONE,
) -> str:
    start_label = format_for_display(start, timezone_name)
    end_label = format_for_display(end, timezone_name)
    if start_label == end_label:
        return start_label
    return f"{start_label} - {end_label}"
