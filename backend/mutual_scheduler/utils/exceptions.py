"""
Scheduling engine exceptions

Malformed input is always surfaced to the caller. Empty inputs ("no busy
blocks", "no history") are valid and never raise.
"""

from typing import Any, Dict, Optional


class SchedulingError(Exception):
    """Base exception for scheduling engine operations."""

    code = "SCHEDULING_ERROR"

    def __init__(self, message: str, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class InvalidTimezoneError(SchedulingError):
    """Raised when an IANA timezone identifier is not recognized."""

    code = "INVALID_TIMEZONE"

    def __init__(self, timezone_id: str):
        super().__init__(f"Unknown timezone: {timezone_id!r}", {"timezone": timezone_id})
        self.timezone_id = timezone_id


class InvalidTimeError(SchedulingError):
    """Raised when a date or time value cannot be parsed or is not absolute."""

    code = "INVALID_TIME"


class NonExistentLocalTimeError(SchedulingError):
    """Raised for wall-clock times skipped by a spring-forward transition."""

    code = "NON_EXISTENT_LOCAL_TIME"


class InvalidIntervalError(SchedulingError):
    """Raised for zero-length, inverted or naive time intervals."""

    code = "INVALID_INTERVAL"


__all__ = [
    'SchedulingError',
    'InvalidTimezoneError',
    'InvalidTimeError',
    'NonExistentLocalTimeError',
    'InvalidIntervalError',
]
