"""
Pytest fixtures for mutual scheduler testing.

Provides:
- UTC instant and interval factories
- Engine components built from default configuration
- Availability templates and meeting histories
- A FastAPI test client with the engine initialized
"""

import pytest
from datetime import datetime, date, time, timedelta, timezone

from mutual_scheduler.agent.models import (
    AvailabilityWindow, BusyBlock, HistoricalMeeting, SchedulingPreference, TimeInterval
)
from mutual_scheduler.agent.time_normalizer import TimeNormalizer
from mutual_scheduler.agent.availability_calculator import AvailabilityCalculator
from mutual_scheduler.agent.conflict_detector import ConflictDetector
from mutual_scheduler.agent.pattern_analyzer import PatternAnalyzer
from mutual_scheduler.agent.suggestion_ranker import SuggestionRanker
from mutual_scheduler.agent.scheduling_engine import SchedulingEngine
from mutual_scheduler.utils.config import SchedulingConfig


# 2024-06-04 is a Tuesday
TUESDAY = date(2024, 6, 4)


# =============================================================================
# TIME FIXTURES
# =============================================================================

@pytest.fixture
def at():
    """Factory for UTC instants on TUESDAY (or another day via day_offset)."""
    def _at(hour: int, minute: int = 0, day_offset: int = 0) -> datetime:
        base = datetime(TUESDAY.year, TUESDAY.month, TUESDAY.day, tzinfo=timezone.utc)
        return base + timedelta(days=day_offset, hours=hour, minutes=minute)
    return _at


@pytest.fixture
def interval(at):
    """Factory for TimeInterval between two UTC wall-clock positions."""
    def _interval(start_hour, start_minute, end_hour, end_minute, day_offset: int = 0) -> TimeInterval:
        return TimeInterval(
            start=at(start_hour, start_minute, day_offset),
            end=at(end_hour, end_minute, day_offset)
        )
    return _interval


@pytest.fixture
def busy(interval):
    """Factory for BusyBlock from UTC wall-clock positions."""
    def _busy(start_hour, start_minute, end_hour, end_minute, title=None) -> BusyBlock:
        return BusyBlock(interval=interval(start_hour, start_minute, end_hour, end_minute), title=title)
    return _busy


@pytest.fixture
def window(interval):
    """Factory for AvailabilityWindow from UTC wall-clock positions."""
    def _window(start_hour, start_minute, end_hour, end_minute, day_offset: int = 0) -> AvailabilityWindow:
        return AvailabilityWindow(interval=interval(start_hour, start_minute, end_hour, end_minute, day_offset))
    return _window


# =============================================================================
# PREFERENCE AND HISTORY FIXTURES
# =============================================================================

@pytest.fixture
def daily_prefs():
    """Factory for a template with the same local hours every weekday."""
    def _prefs(user_id: str, start: time, end: time, tz: str = "UTC") -> SchedulingPreference:
        return SchedulingPreference(
            user_id=user_id,
            timezone=tz,
            weekly_ranges={weekday: [(start, end)] for weekday in range(7)}
        )
    return _prefs


@pytest.fixture
def tuesday_evening_history():
    """Three successful Tuesday 19:00 meetings and one failed Monday meeting."""
    return [
        HistoricalMeeting(date=date(2024, 5, 7), start_time=time(19, 0), duration_minutes=60, was_successful=True),
        HistoricalMeeting(date=date(2024, 5, 14), start_time=time(19, 0), duration_minutes=60, was_successful=True),
        HistoricalMeeting(date=date(2024, 5, 21), start_time=time(19, 0), duration_minutes=60, was_successful=True),
        HistoricalMeeting(date=date(2024, 5, 20), start_time=time(10, 0), duration_minutes=30, was_successful=False),
    ]


# =============================================================================
# COMPONENT FIXTURES
# =============================================================================

@pytest.fixture
def settings():
    """Default engine configuration."""
    return SchedulingConfig()


@pytest.fixture
def normalizer():
    return TimeNormalizer()


@pytest.fixture
def calculator(settings, normalizer):
    return AvailabilityCalculator(settings.availability, normalizer)


@pytest.fixture
def detector():
    return ConflictDetector()


@pytest.fixture
def analyzer(settings, normalizer):
    return PatternAnalyzer(settings.pattern, normalizer)


@pytest.fixture
def ranker(settings, normalizer):
    return SuggestionRanker(settings.ranking, settings.availability, normalizer)


@pytest.fixture
def engine(settings):
    return SchedulingEngine(settings)


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
def client():
    """FastAPI test client; entering the context runs the lifespan."""
    from fastapi.testclient import TestClient
    from mutual_scheduler.api.main import app

    with TestClient(app) as test_client:
        yield test_client
