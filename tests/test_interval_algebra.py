"""
Tests for interval algebra

Tests cover:
- Interval construction and validation
- Normalization (sorting and merging)
- Union, intersection, subtraction
- Padding, minimum-duration filtering, clipping
"""

import pytest
from datetime import datetime, timedelta

from mutual_scheduler.agent import interval_algebra as algebra
from mutual_scheduler.agent.models import TimeInterval
from mutual_scheduler.utils.exceptions import InvalidIntervalError


class TestTimeInterval:
    """Tests for TimeInterval validation."""

    def test_zero_length_rejected(self, at):
        with pytest.raises(InvalidIntervalError):
            TimeInterval(start=at(10), end=at(10))

    def test_inverted_rejected(self, at):
        """Test that start after end raises with both bounds in details."""
        with pytest.raises(InvalidIntervalError) as exc_info:
            algebra.validate_interval(at(11), at(10))
        assert set(exc_info.value.details) == {"start", "end"}

    def test_naive_rejected(self):
        with pytest.raises(InvalidIntervalError):
            TimeInterval(start=datetime(2024, 6, 4, 10), end=datetime(2024, 6, 4, 11))

    def test_offsets_do_not_affect_equality(self, at):
        """Test that the same instants with different offsets compare equal."""
        from datetime import timezone
        plus_two = timezone(timedelta(hours=2))
        shifted = TimeInterval(start=at(10).astimezone(plus_two), end=at(11).astimezone(plus_two))
        assert shifted == TimeInterval(start=at(10), end=at(11))

    def test_duration_and_overlap(self, interval):
        first = interval(9, 0, 10, 30)
        assert first.duration_minutes() == 90
        assert first.overlaps(interval(10, 0, 11, 0))
        assert not first.overlaps(interval(10, 30, 11, 0))


class TestNormalize:
    """Tests for normalize."""

    def test_sorts_and_merges_overlapping(self, interval):
        result = algebra.normalize([interval(13, 0, 14, 0), interval(9, 0, 11, 0), interval(10, 0, 12, 0)])
        assert result == [interval(9, 0, 12, 0), interval(13, 0, 14, 0)]

    def test_merges_adjacent(self, interval):
        """Test that touching intervals become one."""
        result = algebra.normalize([interval(9, 0, 10, 0), interval(10, 0, 11, 0)])
        assert result == [interval(9, 0, 11, 0)]

    def test_contained_interval_absorbed(self, interval):
        result = algebra.normalize([interval(9, 0, 17, 0), interval(10, 0, 11, 0)])
        assert result == [interval(9, 0, 17, 0)]

    def test_empty(self):
        assert algebra.normalize([]) == []

    def test_rejects_non_intervals(self, interval):
        with pytest.raises(InvalidIntervalError):
            algebra.normalize([interval(9, 0, 10, 0), ("09:00", "10:00")])


class TestSetOperations:
    """Tests for union, intersect and subtract."""

    def test_union(self, interval):
        result = algebra.union([interval(9, 0, 10, 0)], [interval(9, 30, 11, 0), interval(12, 0, 13, 0)])
        assert result == [interval(9, 0, 11, 0), interval(12, 0, 13, 0)]

    def test_intersect(self, interval):
        result = algebra.intersect(
            [interval(9, 0, 17, 0)],
            [interval(8, 0, 10, 0), interval(14, 0, 22, 0)]
        )
        assert result == [interval(9, 0, 10, 0), interval(14, 0, 17, 0)]

    def test_intersect_touching_is_empty(self, interval):
        """Test that half-open intervals sharing an endpoint do not intersect."""
        assert algebra.intersect([interval(9, 0, 10, 0)], [interval(10, 0, 11, 0)]) == []

    def test_intersect_of_union_contains_original(self, interval):
        """Test that intersect(union(A, B), A) == A."""
        first = [interval(8, 0, 9, 0), interval(11, 0, 12, 30), interval(15, 0, 16, 0)]
        second = [interval(8, 30, 11, 30), interval(20, 0, 21, 0)]
        assert algebra.intersect(algebra.union(first, second), first) == first

    def test_subtract_splits(self, interval):
        result = algebra.subtract([interval(9, 0, 17, 0)], [interval(12, 0, 13, 0)])
        assert result == [interval(9, 0, 12, 0), interval(13, 0, 17, 0)]

    def test_subtract_multiple_cuts_across_intervals(self, interval):
        result = algebra.subtract(
            [interval(9, 0, 12, 0), interval(14, 0, 18, 0)],
            [interval(8, 0, 9, 30), interval(11, 0, 15, 0), interval(16, 0, 16, 30)]
        )
        assert result == [interval(9, 30, 11, 0), interval(15, 0, 16, 0), interval(16, 30, 18, 0)]

    def test_subtract_everything(self, interval):
        assert algebra.subtract([interval(9, 0, 10, 0)], [interval(8, 0, 11, 0)]) == []

    def test_subtract_nothing(self, interval):
        assert algebra.subtract([interval(9, 0, 10, 0)], []) == [interval(9, 0, 10, 0)]


class TestPadAndFilter:
    """Tests for pad, filter_min_duration and clip."""

    def test_pad_expands_and_merges(self, interval):
        """Test that padding can merge blocks whose gap is within the buffer."""
        result = algebra.pad([interval(10, 0, 11, 0), interval(11, 20, 12, 0)], 15)
        assert result == [interval(9, 45, 12, 15)]

    def test_pad_zero_is_normalize(self, interval):
        assert algebra.pad([interval(10, 0, 11, 0)], 0) == [interval(10, 0, 11, 0)]

    def test_pad_negative_rejected(self, interval):
        with pytest.raises(ValueError):
            algebra.pad([interval(10, 0, 11, 0)], -5)

    def test_filter_min_duration_keeps_exact_length(self, interval):
        result = algebra.filter_min_duration([interval(9, 0, 10, 0), interval(11, 0, 11, 45)], 60)
        assert result == [interval(9, 0, 10, 0)]

    def test_clip(self, interval):
        result = algebra.clip([interval(7, 0, 9, 0), interval(20, 0, 23, 0)], interval(8, 0, 21, 0))
        assert result == [interval(8, 0, 9, 0), interval(20, 0, 21, 0)]
