"""
Availability Calculator - Mutual Free Windows for Two Users

Expands each user's declared availability template across a date range,
removes their padded busy blocks and intersects the two free sets into
windows long enough to meet in.
"""

import logging
from typing import Iterable, List, Optional, Sequence, Tuple
from datetime import date, datetime, time, timedelta

from dateutil.rrule import rrule, DAILY

from . import interval_algebra as algebra
from .models import (
    AvailabilityWindow, BusyBlock, LocalRange, SchedulingPreference, TimeInterval
)
from .time_normalizer import TimeNormalizer, DateLike, parse_date
from ..utils.config import AvailabilityConfig
from ..utils.exceptions import InvalidIntervalError
from ..utils.helpers import measure_execution_time

logger = logging.getLogger(__name__)


class AvailabilityCalculator:
    """Combines declared templates and busy blocks into mutual free windows"""

    def __init__(
        self,
        settings: Optional[AvailabilityConfig] = None,
        normalizer: Optional[TimeNormalizer] = None
    ):
        self.settings = settings or AvailabilityConfig()
        self.normalizer = normalizer or TimeNormalizer()

    @measure_execution_time
    def compute_mutual_availability(
        self,
        user_a_id: str,
        user_b_id: str,
        busy_a: Sequence[BusyBlock],
        busy_b: Sequence[BusyBlock],
        prefs_a: Optional[SchedulingPreference],
        prefs_b: Optional[SchedulingPreference],
        start_date: DateLike,
        end_date: DateLike,
        duration_minutes: int,
        buffer_minutes: int = 0,
        *,
        timezone_a: str = "UTC",
        timezone_b: str = "UTC",
        range_timezone: Optional[str] = None
    ) -> List[AvailabilityWindow]:
        """
        Find windows in which both users are free

        Args:
            user_a_id / user_b_id: user identifiers
            busy_a / busy_b: each user's busy blocks
            prefs_a / prefs_b: declared templates; None falls back to the default working hours
            start_date / end_date: inclusive date range
            duration_minutes: minimum window length
            buffer_minutes: padding applied around every busy block
            timezone_a / timezone_b: zones used for the default template when prefs are missing
            range_timezone: zone in which the date range is interpreted (UTC unless configured)

        Returns:
            Windows sorted ascending by start; empty when nothing fits
        """
        if duration_minutes <= 0:
            raise ValueError(f"duration_minutes must be positive: {duration_minutes}")
        if buffer_minutes < 0:
            raise ValueError(f"buffer_minutes must not be negative: {buffer_minutes}")

        bounds = self.range_bounds(start_date, end_date, range_timezone)

        free_a = self.compute_user_free(user_a_id, busy_a, prefs_a, bounds, buffer_minutes, timezone_a)
        free_b = self.compute_user_free(user_b_id, busy_b, prefs_b, bounds, buffer_minutes, timezone_b)

        mutual = algebra.intersect(free_a, free_b)
        viable = algebra.filter_min_duration(mutual, duration_minutes)

        windows = [AvailabilityWindow(interval=interval) for interval in viable]
        windows.sort(key=lambda window: window.start)

        logger.info(
            f"Found {len(windows)} mutual windows for {user_a_id} and {user_b_id} "
            f"({len(free_a)} / {len(free_b)} free intervals)"
        )
        return windows

    def compute_user_free(
        self,
        user_id: str,
        busy: Sequence[BusyBlock],
        prefs: Optional[SchedulingPreference],
        bounds: TimeInterval,
        buffer_minutes: int = 0,
        timezone: str = "UTC"
    ) -> List[TimeInterval]:
        """One user's declared-free time minus padded busy blocks, within bounds"""
        if prefs is None:
            logger.debug(f"No preferences for {user_id}, using default working hours in {timezone}")
            prefs = SchedulingPreference.default(
                user_id,
                timezone,
                self.settings.default_day_start,
                self.settings.default_day_end
            )

        declared = self.expand_template(prefs, bounds)
        busy_intervals = [self._busy_interval(block, user_id) for block in busy]
        padded = algebra.pad(busy_intervals, buffer_minutes)

        return algebra.subtract(declared, padded)

    def expand_template(self, prefs: SchedulingPreference, bounds: TimeInterval) -> List[TimeInterval]:
        """Declared-free intervals for every local date touching bounds"""
        # Local dates seen from prefs.timezone may start a day before or end a day after the UTC range
        first_day = self.normalizer.localize(bounds.start, prefs.timezone).date()
        last_day = self.normalizer.localize(bounds.end, prefs.timezone).date()

        declared: List[TimeInterval] = []
        for day in rrule(DAILY, dtstart=first_day, until=last_day):
            local_day = day.date()
            available = self._local_ranges_to_intervals(local_day, prefs.ranges_for(local_day), prefs.timezone)
            blocked = self._local_ranges_to_intervals(
                local_day, prefs.exceptions.get(local_day, []), prefs.timezone
            )
            declared.extend(algebra.subtract(available, blocked))

        return algebra.clip(declared, bounds)

    def restrict_windows(
        self,
        windows: Sequence[AvailabilityWindow],
        timezone: str,
        start_date: DateLike,
        end_date: DateLike,
        duration_minutes: int,
        weekdays: Optional[Iterable[int]] = None,
        local_range: Optional[LocalRange] = None,
        range_timezone: Optional[str] = None
    ) -> List[AvailabilityWindow]:
        """
        Keep the parts of windows that fall on the given local weekdays and
        inside the local wall-clock range, as seen from timezone

        Fragments shorter than duration_minutes are dropped.
        """
        if weekdays is None and local_range is None:
            return list(windows)

        days = sorted(set(weekdays)) if weekdays is not None else list(range(7))
        allowed_range = local_range or (time(0, 0), time(0, 0))
        mask = SchedulingPreference(
            user_id="filter",
            timezone=timezone,
            weekly_ranges={weekday: [allowed_range] for weekday in days}
        )
        allowed = self.expand_template(mask, self.range_bounds(start_date, end_date, range_timezone))

        kept = algebra.filter_min_duration(
            algebra.intersect([window.interval for window in windows], allowed), duration_minutes
        )
        logger.debug(f"Restricted {len(windows)} windows to {len(kept)} (weekdays {days}, range {allowed_range})")
        return [AvailabilityWindow(interval=interval) for interval in kept]

    def range_bounds(
        self,
        start_date: DateLike,
        end_date: DateLike,
        range_timezone: Optional[str] = None
    ) -> TimeInterval:
        """Absolute bounds [start_date 00:00, end_date + 1 day 00:00)"""
        first = parse_date(start_date)
        last = parse_date(end_date)
        if last < first:
            raise InvalidIntervalError(
                f"end_date {last.isoformat()} is before start_date {first.isoformat()}",
                {"start_date": first.isoformat(), "end_date": last.isoformat()}
            )

        zone = range_timezone or self.settings.range_timezone
        start, _ = self.normalizer.day_bounds(first, zone)
        _, end = self.normalizer.day_bounds(last, zone)
        return TimeInterval(start=start, end=end)

    def _local_ranges_to_intervals(
        self,
        local_day: date,
        local_ranges: Sequence[LocalRange],
        timezone: str
    ) -> List[TimeInterval]:
        intervals = []
        for local_range in local_ranges:
            interval = self._local_range_to_interval(local_day, local_range, timezone)
            if interval is not None:
                intervals.append(interval)
        return intervals

    def _local_range_to_interval(
        self,
        local_day: date,
        local_range: LocalRange,
        timezone: str
    ) -> Optional[TimeInterval]:
        """Absolute interval for a local range, or None when a DST gap swallows it"""
        range_start, range_end = local_range

        # An end of 00:00 closes the range at the following midnight
        ends_at_midnight = range_end == time(0, 0)
        if not ends_at_midnight and range_start >= range_end:
            raise InvalidIntervalError(
                f"Preferred range {range_start.isoformat()}-{range_end.isoformat()} on "
                f"{local_day.isoformat()} is empty or inverted",
                {"date": local_day.isoformat(), "timezone": timezone}
            )

        start = self.normalizer.to_instant(local_day, range_start, timezone, strict=False)
        end_day = local_day + timedelta(days=1) if ends_at_midnight else local_day
        end = self.normalizer.to_instant(end_day, range_end, timezone, strict=False)

        if start >= end:
            logger.debug(
                f"Skipping range {range_start.isoformat()}-{range_end.isoformat()} on "
                f"{local_day.isoformat()}: it falls inside a DST gap in {timezone}"
            )
            return None
        return TimeInterval(start=start, end=end)

    @staticmethod
    def _busy_interval(block: BusyBlock, user_id: str) -> TimeInterval:
        if not isinstance(block, BusyBlock):
            raise InvalidIntervalError(
                f"Busy entry for {user_id} is not a BusyBlock: {type(block).__name__}"
            )
        return block.interval


def windows_from_ranges(ranges: Sequence[Tuple[datetime, datetime]]) -> List[AvailabilityWindow]:
    """Build canonical windows from raw (start, end) pairs"""
    intervals = [algebra.validate_interval(start, end) for start, end in ranges]
    return [AvailabilityWindow(interval=interval) for interval in algebra.normalize(intervals)]


__all__ = [
    'AvailabilityCalculator',
    'windows_from_ranges',
]
