"""
Time Normalizer - Local Wall Clock <-> Absolute Instants

Converts a local date and time in an IANA timezone into a UTC instant and
back. Everything downstream works on instants only.

DST handling:
- fall back: a repeated wall-clock time resolves to the earlier instant
- spring forward: a skipped wall-clock time raises NonExistentLocalTimeError,
  or is shifted forward past the gap when strict=False
"""

import logging
from typing import Tuple, Union
from datetime import datetime, date, time, timedelta
from functools import lru_cache

import pytz
from dateutil.parser import isoparser

from ..utils.exceptions import InvalidTimezoneError, InvalidTimeError, NonExistentLocalTimeError

logger = logging.getLogger(__name__)

DateLike = Union[date, str]
TimeLike = Union[time, str]

_iso = isoparser()


@lru_cache(maxsize=256)
def get_timezone(timezone_id: str) -> pytz.BaseTzInfo:
    """Resolve an IANA identifier, raising InvalidTimezoneError if unknown"""
    if not isinstance(timezone_id, str) or not timezone_id:
        raise InvalidTimezoneError(str(timezone_id))
    try:
        return pytz.timezone(timezone_id)
    except pytz.UnknownTimeZoneError as exc:
        raise InvalidTimezoneError(timezone_id) from exc


def parse_date(value: DateLike) -> date:
    """Accept a date or an ISO YYYY-MM-DD string"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        try:
            return _iso.parse_isodate(value.strip())
        except ValueError as exc:
            raise InvalidTimeError(f"Invalid date: {value!r}", {"value": value}) from exc
    raise InvalidTimeError(f"Invalid date: {value!r}", {"value": repr(value)})


def parse_time(value: TimeLike) -> time:
    """Accept a time or an ISO HH:MM[:SS] string"""
    if isinstance(value, time):
        if value.tzinfo is not None:
            raise InvalidTimeError(f"Local time must not carry a timezone: {value!r}")
        return value
    if isinstance(value, str):
        try:
            parsed = _iso.parse_isotime(value.strip())
        except ValueError as exc:
            raise InvalidTimeError(f"Invalid time: {value!r}", {"value": value}) from exc
        if parsed.tzinfo is not None:
            raise InvalidTimeError(f"Local time must not carry an offset: {value!r}", {"value": value})
        return parsed
    raise InvalidTimeError(f"Invalid time: {value!r}", {"value": repr(value)})


def ensure_instant(instant: datetime) -> datetime:
    """Validate an absolute instant and return it in UTC"""
    if not isinstance(instant, datetime):
        raise InvalidTimeError(f"Instant must be a datetime, got {type(instant).__name__}")
    if instant.tzinfo is None or instant.utcoffset() is None:
        raise InvalidTimeError(f"Instant must be timezone-aware: {instant.isoformat()}")
    return instant.astimezone(pytz.utc)


class TimeNormalizer:
    """Boundary between local wall-clock time and absolute instants"""

    def to_instant(
        self,
        local_date: DateLike,
        local_time: TimeLike,
        timezone_id: str,
        strict: bool = True
    ) -> datetime:
        """
        Convert a local date/time in timezone_id to a UTC instant

        Args:
            local_date: date or YYYY-MM-DD
            local_time: time or HH:MM[:SS]
            timezone_id: IANA identifier, e.g. "America/New_York"
            strict: raise on spring-forward gaps instead of shifting forward

        Returns:
            Timezone-aware datetime in UTC
        """
        tz = get_timezone(timezone_id)
        naive = datetime.combine(parse_date(local_date), parse_time(local_time))

        try:
            localized = tz.localize(naive, is_dst=None)
        except pytz.exceptions.AmbiguousTimeError:
            first = tz.localize(naive, is_dst=True)
            second = tz.localize(naive, is_dst=False)
            localized = min(first, second)
            logger.debug(f"Ambiguous local time {naive} in {timezone_id}, using {localized.isoformat()}")
        except pytz.exceptions.NonExistentTimeError as exc:
            if strict:
                raise NonExistentLocalTimeError(
                    f"{naive.isoformat()} does not exist in {timezone_id}",
                    {"local": naive.isoformat(), "timezone": timezone_id}
                ) from exc
            # Shift forward by the size of the gap: 02:30 on a skipped hour becomes 03:30
            localized = tz.normalize(tz.localize(naive, is_dst=False))
            logger.debug(f"Shifted non-existent local time {naive} in {timezone_id} to {localized.isoformat()}")

        return localized.astimezone(pytz.utc)

    def from_instant(self, instant: datetime, timezone_id: str) -> Tuple[date, time]:
        """Inverse of to_instant: UTC instant -> (local date, local time)"""
        local = self.localize(instant, timezone_id)
        return local.date(), local.time().replace(tzinfo=None)

    def localize(self, instant: datetime, timezone_id: str) -> datetime:
        """Instant expressed in timezone_id"""
        tz = get_timezone(timezone_id)
        return ensure_instant(instant).astimezone(tz)

    def local_hour(self, instant: datetime, timezone_id: str) -> float:
        """Fractional local hour, e.g. 14.5 for 14:30"""
        local = self.localize(instant, timezone_id)
        return local.hour + local.minute / 60 + local.second / 3600

    def local_weekday(self, instant: datetime, timezone_id: str) -> int:
        return self.localize(instant, timezone_id).weekday()

    def day_bounds(self, local_date: DateLike, timezone_id: str) -> Tuple[datetime, datetime]:
        """UTC instants of local midnight for local_date and the following day"""
        day = parse_date(local_date)
        start = self.to_instant(day, time(0, 0), timezone_id, strict=False)
        end = self.to_instant(day + timedelta(days=1), time(0, 0), timezone_id, strict=False)
        return start, end


__all__ = [
    'TimeNormalizer',
    'get_timezone',
    'parse_date',
    'parse_time',
    'ensure_instant',
]
