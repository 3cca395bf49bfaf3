"""
Scheduling Engine - Mutual Availability and Smart Suggestions

Wires the time normalizer, interval algebra, availability calculator,
conflict detector, pattern analyzer and suggestion ranker behind one
facade. The engine keeps no state between calls: data comes from a
ScheduleDataProvider per request, and batch helpers run independent
units of work concurrently under a caller-chosen limit.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar
from dataclasses import dataclass, field

from .availability_calculator import AvailabilityCalculator
from .conflict_detector import ConflictDetector
from .models import (
    AvailabilityWindow, BusyBlock, ConflictRecord, HistoricalMeeting, MutualHistory,
    SchedulingPreference, SmartSuggestion, SmartSuggestionResponse, TimeInterval, UserSchedulePattern
)
from .pattern_analyzer import PatternAnalyzer
from .suggestion_ranker import SuggestionRanker
from .time_normalizer import TimeNormalizer, DateLike, parse_date
from ..services.data_provider import ScheduleDataProvider
from ..utils.config import SchedulingConfig, validate_scheduling_config
from ..utils.helpers import measure_execution_time, time_of_day_range

logger = logging.getLogger(__name__)

T = TypeVar('T')

# Monday to Friday
WEEKDAYS = range(5)


@dataclass
class AvailabilityRequest:
    """One unit of work for compute_availability_batch"""
    user_a_id: str
    user_b_id: str
    busy_a: Sequence[BusyBlock]
    busy_b: Sequence[BusyBlock]
    start_date: DateLike
    end_date: DateLike
    duration_minutes: int
    buffer_minutes: Optional[int] = None
    prefs_a: Optional[SchedulingPreference] = None
    prefs_b: Optional[SchedulingPreference] = None
    options: Dict[str, Any] = field(default_factory=dict)


@dataclass
class UserScheduleData:
    """Everything the provider knows about one user for a request"""
    user_id: str
    timezone: str
    busy_blocks: List[BusyBlock]
    preferences: Optional[SchedulingPreference]
    history: List[HistoricalMeeting]


class SchedulingEngine:
    """
    Mutual Availability & Smart Scheduling Engine

    Exposes the four public operations (compute_mutual_availability,
    detect_conflicts, analyze, rank) plus an end-to-end suggest() that
    pulls data from a provider.
    """

    def __init__(self, settings: Optional[SchedulingConfig] = None):
        """Initialize the engine and its components"""
        self.settings = settings or SchedulingConfig()
        validate_scheduling_config(self.settings)

        self.normalizer = TimeNormalizer()
        self.availability = AvailabilityCalculator(self.settings.availability, self.normalizer)
        self.conflicts = ConflictDetector()
        self.patterns = PatternAnalyzer(self.settings.pattern, self.normalizer)
        self.ranker = SuggestionRanker(self.settings.ranking, self.settings.availability, self.normalizer)

        logger.info("Scheduling engine initialized")

    # Public operations

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
        buffer_minutes: Optional[int] = None,
        **options
    ) -> List[AvailabilityWindow]:
        if buffer_minutes is None:
            buffer_minutes = self.settings.availability.default_buffer_minutes
        return self.availability.compute_mutual_availability(
            user_a_id, user_b_id, busy_a, busy_b, prefs_a, prefs_b,
            start_date, end_date, duration_minutes, buffer_minutes, **options
        )

    def detect_conflicts(
        self,
        proposed_slot: TimeInterval,
        busy_a: Sequence[BusyBlock],
        busy_b: Sequence[BusyBlock],
        buffer_minutes: Optional[int] = None,
        windows: Optional[Sequence[AvailabilityWindow]] = None
    ) -> ConflictRecord:
        if buffer_minutes is None:
            buffer_minutes = self.settings.availability.default_buffer_minutes
        return self.conflicts.detect_conflicts(proposed_slot, busy_a, busy_b, buffer_minutes, windows)

    def analyze(
        self,
        user_id: str,
        history: Sequence[HistoricalMeeting],
        timezone: str = "UTC"
    ) -> UserSchedulePattern:
        return self.patterns.analyze(user_id, history, timezone)

    def analyze_mutual(
        self,
        user_id: str,
        friend_id: str,
        history: Sequence[HistoricalMeeting],
        timezone: str = "UTC"
    ) -> Optional[MutualHistory]:
        return self.patterns.analyze_mutual(user_id, friend_id, history, timezone)

    def rank(
        self,
        windows: Sequence[AvailabilityWindow],
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        max_suggestions: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        **options
    ) -> List[SmartSuggestion]:
        return self.ranker.rank(windows, pattern_a, pattern_b, max_suggestions, duration_minutes, **options)

    # Provider-backed orchestration

    async def fetch_user_data(
        self,
        provider: ScheduleDataProvider,
        user_id: str,
        start_date: DateLike,
        end_date: DateLike
    ) -> UserScheduleData:
        """Fetch one user's data, issuing the provider calls concurrently"""
        first, last = parse_date(start_date), parse_date(end_date)
        timezone, busy, preferences, history = await asyncio.gather(
            provider.get_timezone(user_id),
            provider.get_busy_blocks(user_id, first, last),
            provider.get_preferences(user_id),
            provider.get_history(user_id)
        )
        return UserScheduleData(
            user_id=user_id,
            timezone=timezone,
            busy_blocks=list(busy),
            preferences=preferences,
            history=list(history)
        )

    @measure_execution_time
    async def suggest(
        self,
        provider: ScheduleDataProvider,
        user_a_id: str,
        user_b_id: str,
        start_date: DateLike,
        end_date: DateLike,
        duration_minutes: Optional[int] = None,
        buffer_minutes: Optional[int] = None,
        max_suggestions: Optional[int] = None,
        include_weekends: bool = True,
        time_of_day: Optional[str] = None
    ) -> SmartSuggestionResponse:
        """
        Generate ranked suggestions for two users over a date range

        Args:
            provider: source of busy blocks, timezones, preferences and history
            user_a_id / user_b_id: the two users; user_a is the one asking
            start_date / end_date: inclusive date range
            duration_minutes: meeting length (configured default when None)
            buffer_minutes: padding around busy blocks (configured default when None)
            max_suggestions: maximum suggestions to return
            include_weekends: False drops Saturdays and Sundays in user_a's timezone
            time_of_day: "morning", "afternoon", "evening" or "any", in user_a's timezone

        Returns:
            SmartSuggestionResponse with suggestions, both users' patterns and
            their shared history when they have met before
        """
        duration = duration_minutes or self.settings.availability.default_duration_minutes
        local_range = time_of_day_range(time_of_day)
        logger.info(f"Generating suggestions for {user_a_id} and {user_b_id} ({start_date} to {end_date})")

        user_a, user_b = await asyncio.gather(
            self.fetch_user_data(provider, user_a_id, start_date, end_date),
            self.fetch_user_data(provider, user_b_id, start_date, end_date)
        )

        windows = await asyncio.to_thread(
            self.compute_mutual_availability,
            user_a.user_id, user_b.user_id,
            user_a.busy_blocks, user_b.busy_blocks,
            user_a.preferences, user_b.preferences,
            start_date, end_date, duration, buffer_minutes,
            timezone_a=user_a.timezone, timezone_b=user_b.timezone
        )
        if not include_weekends or local_range is not None:
            windows = await asyncio.to_thread(
                self.availability.restrict_windows,
                windows, user_a.timezone, start_date, end_date, duration,
                weekdays=None if include_weekends else WEEKDAYS,
                local_range=local_range
            )

        pattern_a = self.analyze(user_a.user_id, user_a.history, user_a.timezone)
        pattern_b = self.analyze(user_b.user_id, user_b.history, user_b.timezone)
        mutual = self.analyze_mutual(user_a.user_id, user_b.user_id, user_a.history, user_a.timezone)

        suggestions = self.rank(
            windows, pattern_a, pattern_b, max_suggestions, duration,
            prefs_a=user_a.preferences, prefs_b=user_b.preferences, mutual=mutual
        )

        return SmartSuggestionResponse(
            suggestions=suggestions,
            total_analyzed=len(windows),
            pattern_confidence=self.pattern_confidence(pattern_a, pattern_b, mutual),
            user_pattern=pattern_a,
            friend_pattern=pattern_b,
            windows=windows,
            mutual_history=mutual
        )

    @staticmethod
    def pattern_confidence(
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        mutual: Optional[MutualHistory] = None
    ) -> float:
        """Mean of both users' confidence, raised to the pair's own confidence when higher"""
        confidence = (pattern_a.confidence + pattern_b.confidence) / 2
        if mutual is not None:
            confidence = max(confidence, mutual.confidence)
        return confidence

    # Batch helpers

    async def detect_conflicts_batch(
        self,
        slots: Sequence[TimeInterval],
        busy_a: Sequence[BusyBlock],
        busy_b: Sequence[BusyBlock],
        buffer_minutes: Optional[int] = None,
        max_concurrency: int = 8
    ) -> List[ConflictRecord]:
        """Evaluate many proposed slots against the same busy blocks, preserving order"""
        return await self._run_bounded(
            [
                (lambda slot=slot: self.detect_conflicts(slot, busy_a, busy_b, buffer_minutes))
                for slot in slots
            ],
            max_concurrency
        )

    async def compute_availability_batch(
        self,
        requests: Sequence[AvailabilityRequest],
        max_concurrency: int = 8
    ) -> List[List[AvailabilityWindow]]:
        """Compute availability for several independent requests, preserving order"""
        return await self._run_bounded(
            [
                (lambda request=request: self.compute_mutual_availability(
                    request.user_a_id, request.user_b_id,
                    request.busy_a, request.busy_b,
                    request.prefs_a, request.prefs_b,
                    request.start_date, request.end_date,
                    request.duration_minutes, request.buffer_minutes,
                    **request.options
                ))
                for request in requests
            ],
            max_concurrency
        )

    async def _run_bounded(self, jobs: Sequence[Callable[[], T]], max_concurrency: int) -> List[T]:
        """Run synchronous jobs on worker threads, at most max_concurrency at a time"""
        if max_concurrency <= 0:
            raise ValueError(f"max_concurrency must be positive: {max_concurrency}")

        semaphore = asyncio.Semaphore(max_concurrency)

        async def run(job: Callable[[], T]) -> T:
            async with semaphore:
                return await asyncio.to_thread(job)

        tasks: List[Awaitable[T]] = [run(job) for job in jobs]
        results = await asyncio.gather(*tasks)
        logger.debug(f"Completed {len(results)} batch jobs with concurrency {max_concurrency}")
        return list(results)


__all__ = [
    'SchedulingEngine',
    'AvailabilityRequest',
    'UserScheduleData',
]
