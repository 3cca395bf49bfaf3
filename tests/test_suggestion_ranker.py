"""
Tests for SuggestionRanker

Tests cover:
- Confidence bounds and ordering
- Pattern-driven start selection inside a window
- Suggestion types and reasoning
- Truncation, thresholds and duration fit
- Weekday-aware convenience, shared history and suggestion timezones
"""

import math
import pytest
from dataclasses import replace
from datetime import date, time

from mutual_scheduler.agent.models import (
    HistoricalMeeting, SchedulingPreference, SuggestionType, UserSchedulePattern
)
from mutual_scheduler.agent.suggestion_ranker import SCORE_COMPONENTS, SuggestionRanker
from mutual_scheduler.utils.config import RankingConfig


@pytest.fixture
def patterns(analyzer, tuesday_evening_history):
    """Both users habitually meet on Tuesday evenings (UTC)."""
    return (
        analyzer.analyze("alice", tuesday_evening_history),
        analyzer.analyze("bob", tuesday_evening_history),
    )


@pytest.fixture
def empty_patterns():
    return UserSchedulePattern.empty("alice"), UserSchedulePattern.empty("bob")


class TestOrdering:
    """Tests for confidence bounds and ordering."""

    def test_pattern_window_ranks_first(self, ranker, patterns, window):
        """Test that the window matching both users' habits outranks a morning window."""
        morning, evening = window(9, 0, 10, 0), window(19, 0, 20, 0)
        suggestions = ranker.rank([morning, evening], *patterns, duration_minutes=60)

        assert [s.window for s in suggestions] == [evening, morning]
        assert suggestions[0].confidence == pytest.approx(0.35 + 0.15 + 0.2 * (1 - 0.5 / 12) + 0.15 + 0.15)
        assert suggestions[1].confidence == pytest.approx(0.45)

    def test_confidence_bounds_and_sorted(self, ranker, patterns, window):
        """Test that every confidence is in [0, 1] and the output is non-ascending."""
        windows = [window(hour, 0, hour + 2, 0) for hour in range(6, 22, 2)]
        suggestions = ranker.rank(windows, *patterns, max_suggestions=20, duration_minutes=60)

        confidences = [s.confidence for s in suggestions]
        assert all(0.0 <= c <= 1.0 for c in confidences)
        assert confidences == sorted(confidences, reverse=True)

    def test_ties_broken_by_earlier_start(self, ranker, empty_patterns, window):
        """Test that identical scores on different days keep chronological order."""
        tuesday, monday = window(14, 0, 15, 0), window(14, 0, 15, 0, day_offset=-1)
        suggestions = ranker.rank([tuesday, monday], *empty_patterns, duration_minutes=60)

        assert suggestions[0].confidence == suggestions[1].confidence
        assert [s.window for s in suggestions] == [monday, tuesday]

    def test_truncates_to_max_suggestions(self, ranker, patterns, window):
        windows = [window(9, 0, 10, 0), window(19, 0, 20, 0), window(12, 0, 13, 0)]
        suggestions = ranker.rank(windows, *patterns, max_suggestions=1, duration_minutes=60)
        assert len(suggestions) == 1
        assert suggestions[0].start.hour == 19

    def test_default_limit_from_config(self, ranker, empty_patterns, window):
        windows = [window(8, 0, 9, 0, day_offset=day) for day in range(8)]
        assert len(ranker.rank(windows, *empty_patterns, duration_minutes=60)) == 5

    def test_short_windows_skipped(self, ranker, empty_patterns, window):
        assert ranker.rank([window(14, 0, 14, 30)], *empty_patterns, duration_minutes=60) == []

    def test_min_confidence_filters(self, patterns, window):
        ranker = SuggestionRanker(RankingConfig(min_confidence=0.9))
        suggestions = ranker.rank([window(9, 0, 10, 0), window(19, 0, 20, 0)], *patterns, duration_minutes=60)
        assert [s.start.hour for s in suggestions] == [19]

    def test_empty_input(self, ranker, patterns):
        assert ranker.rank([], *patterns, duration_minutes=60) == []

    def test_non_positive_duration(self, ranker, patterns, window):
        with pytest.raises(ValueError):
            ranker.rank([window(9, 0, 10, 0)], *patterns, duration_minutes=0)


class TestSlotSelection:
    """Tests for choosing a start inside a long window."""

    def test_best_start_matches_habit(self, ranker, patterns, window, at):
        """Test that a 17:00-21:00 window proposes 19:00-20:00."""
        evening = window(17, 0, 21, 0)
        suggestion = ranker.rank([evening], *patterns, duration_minutes=60)[0]

        assert suggestion.window == evening
        assert suggestion.start == at(19)
        assert suggestion.end == at(20)

    def test_window_start_without_patterns(self, ranker, empty_patterns, window, at):
        suggestion = ranker.rank([window(10, 0, 16, 0)], *empty_patterns, duration_minutes=60)[0]
        assert suggestion.start == at(10)


class TestExplanations:
    """Tests for suggestion types and reasoning."""

    def test_pattern_type_and_reason(self, ranker, patterns, window):
        suggestion = ranker.rank([window(19, 0, 20, 0)], *patterns, duration_minutes=60)[0]

        assert suggestion.suggestion_type == SuggestionType.PATTERN
        assert suggestion.pattern_based
        assert "Matches alice's Tuesday evening pattern" in suggestion.reasoning
        assert "Matches bob's Tuesday evening pattern" in suggestion.reasoning
        assert "Within both users' preferred times" in suggestion.reasoning

    def test_optimal_without_history(self, ranker, empty_patterns, window):
        """Test that a central, snug slot with no history is classified optimal."""
        suggestion = ranker.rank([window(14, 0, 15, 0)], *empty_patterns, duration_minutes=60)[0]

        assert suggestion.suggestion_type == SuggestionType.OPTIMAL
        assert not suggestion.pattern_based
        assert suggestion.confidence == pytest.approx(0.2 * (1 - 1 / 12) + 0.15 + 0.15)
        assert "Equally convenient for both timezones" in suggestion.reasoning
        assert "Fits the requested 1 hour closely" in suggestion.reasoning

    def test_preference_type(self, ranker, empty_patterns, window, daily_prefs):
        prefs_a = daily_prefs("alice", time(6, 0), time(10, 0))
        prefs_b = daily_prefs("bob", time(6, 0), time(10, 0))
        suggestion = ranker.rank(
            [window(6, 0, 9, 0)], *empty_patterns, duration_minutes=60, prefs_a=prefs_a, prefs_b=prefs_b
        )[0]
        assert suggestion.suggestion_type == SuggestionType.PREFERENCE
        assert suggestion.score_breakdown()['preference_match'] == 1.0

    def test_unreasonable_hours_flagged(self, ranker, window):
        """Test that 14:00 UTC (23:00 in Tokyo) is called out for the Tokyo user."""
        alice = UserSchedulePattern.empty("alice", "Europe/London")
        bob = UserSchedulePattern.empty("bob", "Asia/Tokyo")
        suggestion = ranker.rank([window(14, 0, 15, 0)], alice, bob, duration_minutes=60)[0]

        assert "Outside reasonable local hours for bob" in suggestion.reasoning
        assert suggestion.score_breakdown()['timezone_fairness'] == 0.5

    def test_preference_reason_for_one_user(self, ranker, empty_patterns, window, daily_prefs):
        prefs_a = daily_prefs("alice", time(9, 0), time(17, 0))
        prefs_b = SchedulingPreference(user_id="bob", timezone="UTC")
        suggestion = ranker.rank(
            [window(10, 0, 11, 0)], *empty_patterns, duration_minutes=60, prefs_a=prefs_a, prefs_b=prefs_b
        )[0]
        assert "Within alice's preferred times" in suggestion.reasoning

    def test_every_suggestion_explained(self, ranker, patterns, window):
        suggestions = ranker.rank(
            [window(3, 0, 4, 0), window(19, 0, 23, 0)], *patterns, max_suggestions=5, duration_minutes=60
        )
        assert all(s.reasoning for s in suggestions)
        assert all(set(s.score_breakdown()) == set(SCORE_COMPONENTS) for s in suggestions)


class TestWeekdayAwareConvenience:
    """Tests for the convenience centre following the slot's weekday."""

    @pytest.fixture
    def two_habits(self, analyzer):
        """Tuesday 19:00 is the global favourite; Monday 10:00 is the Monday habit."""
        history = [
            HistoricalMeeting(date=date(2024, 5, day), start_time=time(19, 0), duration_minutes=60, was_successful=True)
            for day in (7, 14, 21)
        ] + [
            HistoricalMeeting(date=date(2024, 5, day), start_time=time(10, 0), duration_minutes=60, was_successful=True)
            for day in (13, 20)
        ]
        return analyzer.analyze("alice", history), analyzer.analyze("bob", history)

    def test_monday_slot_centred_on_monday_habit(self, ranker, two_habits, window):
        monday_morning = window(10, 0, 11, 0, day_offset=-1)
        suggestion = ranker.rank([monday_morning], *two_habits, duration_minutes=60)[0]

        # Centre of the Monday 10:00-10:30 bucket is 10.25
        assert suggestion.mutual_convenience == pytest.approx(1 - 0.5 / 12)

    def test_tuesday_slot_keeps_tuesday_habit(self, ranker, two_habits, window):
        suggestion = ranker.rank([window(19, 0, 20, 0)], *two_habits, duration_minutes=60)[0]
        assert suggestion.mutual_convenience == pytest.approx(1 - 0.5 / 12)

    def test_other_weekday_falls_back_to_top_range(self, ranker, two_habits, window):
        """Test that Wednesday has no habit of its own and uses Tuesday 19:00."""
        suggestion = ranker.rank([window(19, 0, 20, 0, day_offset=1)], *two_habits, duration_minutes=60)[0]
        assert suggestion.mutual_convenience == pytest.approx(1 - 0.5 / 12)


class TestSharedHistory:
    """Tests for ranking with the pair's shared meeting history."""

    @pytest.fixture
    def shared_tuesdays(self, analyzer, tuesday_evening_history):
        history = [replace(meeting, with_user="bob") for meeting in tuesday_evening_history]
        return analyzer.analyze_mutual("alice", "bob", history)

    def test_shared_habit_drives_start(self, ranker, empty_patterns, shared_tuesdays, window, at):
        """Test that shared Tuesday evenings pick 19:00 even without individual patterns."""
        suggestion = ranker.rank(
            [window(17, 0, 21, 0)], *empty_patterns, duration_minutes=60, mutual=shared_tuesdays
        )[0]

        assert suggestion.start == at(19)
        assert suggestion.score_breakdown()['historical_pattern'] == 1.0
        assert suggestion.suggestion_type == SuggestionType.PATTERN
        assert suggestion.pattern_based
        assert "Matches alice and bob's shared Tuesday evening meetings" in suggestion.reasoning

    def test_shared_history_outside_habit(self, ranker, empty_patterns, shared_tuesdays, window):
        suggestion = ranker.rank(
            [window(9, 0, 10, 0)], *empty_patterns, duration_minutes=60, mutual=shared_tuesdays
        )[0]

        assert suggestion.score_breakdown()['historical_pattern'] == 0.0
        assert not any("shared" in reason for reason in suggestion.reasoning)


class TestSuggestionTimezones:
    """Tests for the timezones carried on each suggestion."""

    def test_timezones_from_patterns(self, ranker, window):
        alice = UserSchedulePattern.empty("alice", "Europe/London")
        bob = UserSchedulePattern.empty("bob", "Asia/Tokyo")
        suggestion = ranker.rank([window(9, 0, 10, 0)], alice, bob, duration_minutes=60)[0]

        assert suggestion.user_timezone == "Europe/London"
        assert suggestion.friend_timezone == "Asia/Tokyo"

    def test_declared_preferences_win(self, ranker, empty_patterns, window, daily_prefs):
        prefs_a = daily_prefs("alice", time(9, 0), time(17, 0), "America/New_York")
        suggestion = ranker.rank(
            [window(14, 0, 15, 0)], *empty_patterns, duration_minutes=60, prefs_a=prefs_a
        )[0]

        assert suggestion.user_timezone == "America/New_York"
        assert suggestion.friend_timezone == "UTC"


class TestDurationFit:
    """Tests for the duration fit curve."""

    def test_within_tolerance(self, ranker):
        assert ranker.duration_fit(60, 60) == 1.0
        assert ranker.duration_fit(90, 60) == 1.0

    def test_decays_beyond_tolerance(self, ranker):
        assert ranker.duration_fit(210, 60) == pytest.approx(math.exp(-1))

    def test_too_short(self, ranker):
        assert ranker.duration_fit(30, 60) == 0.0
