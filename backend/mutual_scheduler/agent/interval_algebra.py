"""
Interval Algebra - Set Operations on Time Intervals

Pure functions over sequences of TimeInterval. Every result is canonical:
sorted by start, non-overlapping, with touching intervals merged.
Intersections and subtractions are linear sweeps over canonical inputs.
"""

import logging
from typing import Iterable, List
from datetime import datetime, timedelta

from .models import TimeInterval
from ..utils.exceptions import InvalidIntervalError

logger = logging.getLogger(__name__)


def validate_interval(start: datetime, end: datetime) -> TimeInterval:
    """Build an interval, rejecting zero-length, inverted or naive input"""
    return TimeInterval(start=start, end=end)


def normalize(intervals: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Sort and merge overlapping or adjacent intervals"""
    items = list(intervals)
    for interval in items:
        if not isinstance(interval, TimeInterval):
            raise InvalidIntervalError(f"Expected TimeInterval, got {type(interval).__name__}")

    merged: List[TimeInterval] = []
    for interval in sorted(items, key=lambda interval: (interval.start, interval.end)):
        if merged and interval.start <= merged[-1].end:
            if interval.end > merged[-1].end:
                merged[-1] = TimeInterval(start=merged[-1].start, end=interval.end)
        else:
            merged.append(interval)

    return merged


def union(first: Iterable[TimeInterval], second: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Coverage of either sequence"""
    return normalize(list(first) + list(second))


def intersect(first: Iterable[TimeInterval], second: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Coverage shared by both sequences"""
    left = normalize(first)
    right = normalize(second)
    result: List[TimeInterval] = []
    i = j = 0

    while i < len(left) and j < len(right):
        start = max(left[i].start, right[j].start)
        end = min(left[i].end, right[j].end)
        if start < end:
            result.append(TimeInterval(start=start, end=end))

        # Advance whichever interval finishes first
        if left[i].end <= right[j].end:
            i += 1
        else:
            j += 1

    return result


def subtract(base: Iterable[TimeInterval], removed: Iterable[TimeInterval]) -> List[TimeInterval]:
    """Coverage of base with every removed interval cut out"""
    source = normalize(base)
    cuts = normalize(removed)
    result: List[TimeInterval] = []
    j = 0

    for interval in source:
        cursor = interval.start

        # Skip cuts that end before this interval begins
        while j < len(cuts) and cuts[j].end <= cursor:
            j += 1

        k = j
        while k < len(cuts) and cuts[k].start < interval.end:
            if cuts[k].start > cursor:
                result.append(TimeInterval(start=cursor, end=cuts[k].start))
            cursor = max(cursor, cuts[k].end)
            if cursor >= interval.end:
                break
            k += 1

        if cursor < interval.end:
            result.append(TimeInterval(start=cursor, end=interval.end))

    return result


def pad(intervals: Iterable[TimeInterval], buffer_minutes: float) -> List[TimeInterval]:
    """Expand every interval by buffer_minutes on both ends"""
    if buffer_minutes < 0:
        raise ValueError(f"buffer_minutes must not be negative: {buffer_minutes}")

    buffer = timedelta(minutes=buffer_minutes)
    if not buffer:
        return normalize(intervals)

    return normalize(
        TimeInterval(start=interval.start - buffer, end=interval.end + buffer)
        for interval in intervals
    )


def filter_min_duration(intervals: Iterable[TimeInterval], min_minutes: float) -> List[TimeInterval]:
    """Drop intervals shorter than min_minutes"""
    if min_minutes < 0:
        raise ValueError(f"min_minutes must not be negative: {min_minutes}")

    threshold = timedelta(minutes=min_minutes)
    return [interval for interval in normalize(intervals) if interval.duration() >= threshold]


def clip(intervals: Iterable[TimeInterval], bounds: TimeInterval) -> List[TimeInterval]:
    """Restrict intervals to bounds"""
    return intersect(intervals, [bounds])


__all__ = [
    'validate_interval',
    'normalize',
    'union',
    'intersect',
    'subtract',
    'pad',
    'filter_min_duration',
    'clip',
]
