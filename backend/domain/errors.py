"""Domain errors for malformed availability input.

Only malformed input raises. "No gaps" and "capacity exceeded" are ordinary
return values so callers can tell an empty calendar from a caller bug.
"""

from __future__ import annotations


class AvailabilityError(Exception):
    """Base class for availability domain failures."""


class ParseError(AvailabilityError, ValueError):
    """Raised when a date or timestamp string cannot be normalized."""


class InvalidRangeError(AvailabilityError, ValueError):
    """Raised when a time range has start >= end."""
