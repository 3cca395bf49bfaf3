"""
Suggestion Ranker - Explainable Ordering of Mutual Windows

Scores each candidate window with a weighted sum of historical pattern fit,
declared preference fit, mutual convenience, duration fit and timezone
fairness. Within a window the best bucket-aligned start is chosen, and
every suggestion carries the reasons behind its score.
"""

import logging
import math
from typing import Dict, List, Optional, Sequence, Tuple, Union
from datetime import datetime, time, timedelta

from .models import (
    AvailabilityWindow, MutualHistory, SchedulingPreference, SmartSuggestion, SuggestionType,
    TimeInterval, UserSchedulePattern
)
from .pattern_analyzer import bucket_frequency
from .time_normalizer import TimeNormalizer
from ..utils.config import AvailabilityConfig, RankingConfig
from ..utils.helpers import (
    circular_hour_distance, format_duration, time_of_day_label, time_to_minutes, weekday_name
)

logger = logging.getLogger(__name__)

SCORE_COMPONENTS = (
    'historical_pattern',
    'preference_match',
    'mutual_convenience',
    'duration_fit',
    'timezone_fairness',
)


def _clamp(value: float) -> float:
    return max(0.0, min(1.0, value))


def _range_hours(start: time, end: time) -> Tuple[float, float]:
    """Range bounds as fractional hours; an end of 00:00 means midnight"""
    start_hours = time_to_minutes(start) / 60
    end_hours = time_to_minutes(end) / 60
    if end_hours <= start_hours:
        end_hours += 24
    return start_hours, end_hours


class SuggestionRanker:
    """Scores and orders availability windows"""

    def __init__(
        self,
        settings: Optional[RankingConfig] = None,
        availability: Optional[AvailabilityConfig] = None,
        normalizer: Optional[TimeNormalizer] = None
    ):
        self.settings = settings or RankingConfig()
        self.availability = availability or AvailabilityConfig()
        self.normalizer = normalizer or TimeNormalizer()

    def rank(
        self,
        windows: Sequence[AvailabilityWindow],
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        max_suggestions: Optional[int] = None,
        duration_minutes: Optional[int] = None,
        *,
        prefs_a: Optional[SchedulingPreference] = None,
        prefs_b: Optional[SchedulingPreference] = None,
        mutual: Optional[MutualHistory] = None
    ) -> List[SmartSuggestion]:
        """
        Rank windows for a meeting of duration_minutes

        Args:
            windows: mutual free windows from the availability calculator
            pattern_a / pattern_b: learned patterns for both users
            max_suggestions: truncate to this many (configured default when None)
            duration_minutes: requested meeting length (configured default when None)
            prefs_a / prefs_b: optional declared templates for preference matching
            mutual: the pair's shared meeting history, when they have met before

        Returns:
            Suggestions ordered by confidence descending, earlier start on ties
        """
        limit = max_suggestions if max_suggestions is not None else self.settings.max_suggestions
        duration = duration_minutes if duration_minutes is not None else self.availability.default_duration_minutes
        if duration <= 0:
            raise ValueError(f"duration_minutes must be positive: {duration}")
        if limit <= 0:
            return []

        suggestions = []
        for window in windows:
            if window.duration_minutes < duration:
                logger.debug(f"Skipping window at {window.start.isoformat()} shorter than {duration} minutes")
                continue
            suggestion = self.score_window(window, pattern_a, pattern_b, duration, prefs_a, prefs_b, mutual)
            if suggestion.confidence >= self.settings.min_confidence:
                suggestions.append(suggestion)

        suggestions.sort(key=lambda s: (-s.confidence, s.slot.start))
        logger.info(f"Ranked {len(suggestions)} of {len(windows)} windows, returning top {limit}")
        return suggestions[:limit]

    def score_window(
        self,
        window: AvailabilityWindow,
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        duration_minutes: int,
        prefs_a: Optional[SchedulingPreference] = None,
        prefs_b: Optional[SchedulingPreference] = None,
        mutual: Optional[MutualHistory] = None
    ) -> SmartSuggestion:
        """Best-scoring suggestion among the candidate starts of one window"""
        best = None
        for start in self.candidate_starts(window, duration_minutes, pattern_a, pattern_b, mutual):
            suggestion = self._score_slot(
                window, start, pattern_a, pattern_b, duration_minutes, prefs_a, prefs_b, mutual
            )
            if best is None or suggestion.confidence > best.confidence:
                best = suggestion
        return best

    def candidate_starts(
        self,
        window: AvailabilityWindow,
        duration_minutes: int,
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        mutual: Optional[MutualHistory] = None
    ) -> List[datetime]:
        """Window start plus every pattern-bucket boundary that leaves room for the meeting"""
        starts = [window.start]
        sources = [source for source in (pattern_a, pattern_b, mutual) if source is not None and source.has_data]
        if not sources:
            return starts

        step_minutes = min(source.bucket_minutes for source in sources)
        latest = window.end - timedelta(minutes=duration_minutes)
        step = timedelta(minutes=step_minutes)

        # First boundary after the window start, aligned on the UTC clock
        offset = (window.start.hour * 60 + window.start.minute) % step_minutes
        candidate = window.start.replace(second=0, microsecond=0) + timedelta(minutes=step_minutes - offset)
        while candidate <= latest:
            starts.append(candidate)
            candidate += step
        return starts

    def _score_slot(
        self,
        window: AvailabilityWindow,
        start: datetime,
        pattern_a: UserSchedulePattern,
        pattern_b: UserSchedulePattern,
        duration_minutes: int,
        prefs_a: Optional[SchedulingPreference],
        prefs_b: Optional[SchedulingPreference],
        mutual: Optional[MutualHistory] = None
    ) -> SmartSuggestion:
        users = [
            (pattern_a, prefs_a, self._timezone(pattern_a, prefs_a)),
            (pattern_b, prefs_b, self._timezone(pattern_b, prefs_b)),
        ]
        slot = TimeInterval(start=start, end=start + timedelta(minutes=duration_minutes))
        local_hours = [self.normalizer.local_hour(start, tz) for _, _, tz in users]

        history = [self._historical_score(start, pattern, tz) for pattern, _, tz in users]
        shared = self._historical_score(start, mutual, mutual.timezone) if mutual is not None else 0.0
        preference = [self._preference_score(slot, pattern, prefs, tz) for pattern, prefs, tz in users]
        offsets = [
            circular_hour_distance(hour, self._preferred_center(slot, pattern, prefs, tz))
            for hour, (pattern, prefs, tz) in zip(local_hours, users)
        ]
        fair = [self._is_reasonable(hour, duration_minutes) for hour in local_hours]

        scores = {
            'historical_pattern': max(sum(history) / 2, shared),
            'preference_match': sum(preference) / 2,
            'mutual_convenience': _clamp(1 - sum(offsets) / self.settings.convenience_span_hours),
            'duration_fit': self.duration_fit(window.duration_minutes, duration_minutes),
            'timezone_fairness': sum(fair) / 2,
        }

        weights = self.settings.weights.as_dict()
        terms = {name: weights[name] * scores[name] for name in SCORE_COMPONENTS}
        confidence = _clamp(sum(terms.values()))

        reasoning = self._reasoning(
            scores, history, preference, offsets, fair, users, start, window, duration_minutes,
            mutual if shared > 0 else None
        )

        return SmartSuggestion(
            window=window,
            confidence=confidence,
            reasoning=tuple(reasoning),
            pattern_based=scores['historical_pattern'] > 0,
            mutual_convenience=scores['mutual_convenience'],
            suggestion_type=self._suggestion_type(scores, terms),
            scores=tuple((name, scores[name]) for name in SCORE_COMPONENTS),
            slot=slot,
            user_timezone=users[0][2],
            friend_timezone=users[1][2]
        )

    # Component scores

    def _historical_score(
        self,
        start: datetime,
        pattern: Union[UserSchedulePattern, MutualHistory],
        tz: str
    ) -> float:
        if not pattern.has_data:
            return 0.0
        local = self.normalizer.localize(start, tz)
        return bucket_frequency(pattern, local.weekday(), local.hour * 60 + local.minute)

    def _preference_score(
        self,
        slot: TimeInterval,
        pattern: UserSchedulePattern,
        prefs: Optional[SchedulingPreference],
        tz: str
    ) -> float:
        local_start = self.normalizer.localize(slot.start, tz)
        if prefs is not None:
            start_hours = local_start.hour + local_start.minute / 60
            end_hours = start_hours + slot.duration_minutes() / 60
            for range_start, range_end in prefs.ranges_for(local_start.date()):
                low, high = _range_hours(range_start, range_end)
                if low <= start_hours and end_hours <= high:
                    return 1.0
            return 0.0
        if pattern.has_data:
            return 1.0 if local_start.weekday() in pattern.preferred_days else 0.0
        return 0.0

    def _preferred_center(
        self,
        slot: TimeInterval,
        pattern: UserSchedulePattern,
        prefs: Optional[SchedulingPreference],
        tz: str
    ) -> float:
        """Local hour a user most likes to meet at on the slot's local weekday"""
        local_start = self.normalizer.localize(slot.start, tz)
        if pattern.preferred_time_ranges:
            # Ranges are sorted by frequency; a same-weekday range beats the global favourite
            top = next(
                (r for r in pattern.preferred_time_ranges if r.day_of_week == local_start.weekday()),
                pattern.preferred_time_ranges[0]
            )
            low, high = _range_hours(top.start, top.end)
            return ((low + high) / 2) % 24
        if prefs is not None:
            ranges = prefs.ranges_for(local_start.date())
            if ranges:
                bounds = [_range_hours(start, end) for start, end in ranges]
                return ((min(low for low, _ in bounds) + max(high for _, high in bounds)) / 2) % 24
        low, high = _range_hours(self.availability.default_day_start, self.availability.default_day_end)
        return (low + high) / 2

    def _is_reasonable(self, local_hour: float, duration_minutes: int) -> bool:
        end_hour = local_hour + duration_minutes / 60
        return (
            local_hour >= self.settings.reasonable_hours_start
            and end_hour <= self.settings.reasonable_hours_end
        )

    def duration_fit(self, window_minutes: float, duration_minutes: int) -> float:
        """1.0 up to the tolerance, then decays with the unused part of the window"""
        if window_minutes < duration_minutes:
            return 0.0
        excess = window_minutes - duration_minutes - self.settings.duration_tolerance_minutes
        if excess <= 0:
            return 1.0
        return math.exp(-excess / self.settings.duration_decay_minutes)

    # Classification and explanation

    def _suggestion_type(self, scores: Dict[str, float], terms: Dict[str, float]) -> SuggestionType:
        dominant = max(SCORE_COMPONENTS, key=lambda name: terms[name])
        if dominant == 'historical_pattern' and terms[dominant] > 0:
            return SuggestionType.PATTERN
        if dominant == 'preference_match' and terms[dominant] > 0:
            return SuggestionType.PREFERENCE

        threshold = self.settings.optimal_threshold
        if scores['mutual_convenience'] >= threshold and scores['duration_fit'] >= threshold:
            return SuggestionType.OPTIMAL
        return SuggestionType.AVAILABILITY

    def _reasoning(
        self,
        scores: Dict[str, float],
        history: List[float],
        preference: List[float],
        offsets: List[float],
        fair: List[bool],
        users: list,
        start: datetime,
        window: AvailabilityWindow,
        duration_minutes: int,
        mutual: Optional[MutualHistory] = None
    ) -> List[str]:
        reasons = []

        if mutual is not None:
            local = self.normalizer.localize(start, mutual.timezone)
            period = time_of_day_label(local.hour + local.minute / 60)
            reasons.append(
                f"Matches {mutual.user_id} and {mutual.friend_id}'s shared "
                f"{weekday_name(local.weekday())} {period} meetings"
            )

        for frequency, (pattern, _, tz) in zip(history, users):
            if frequency > 0:
                local = self.normalizer.localize(start, tz)
                period = time_of_day_label(local.hour + local.minute / 60)
                reasons.append(
                    f"Matches {pattern.user_id}'s {weekday_name(local.weekday())} {period} pattern"
                )

        if all(preference):
            reasons.append("Within both users' preferred times")
        else:
            for matched, (pattern, _, _) in zip(preference, users):
                if matched:
                    reasons.append(f"Within {pattern.user_id}'s preferred times")

        threshold = self.settings.optimal_threshold
        if scores['mutual_convenience'] >= threshold and abs(offsets[0] - offsets[1]) <= 1:
            reasons.append("Equally convenient for both timezones")
        elif scores['mutual_convenience'] >= 0.5:
            reasons.append("Reasonably convenient for both users")

        for reasonable, (pattern, _, _) in zip(fair, users):
            if not reasonable:
                reasons.append(f"Outside reasonable local hours for {pattern.user_id}")

        if scores['duration_fit'] >= 1.0:
            reasons.append(f"Fits the requested {format_duration(duration_minutes)} closely")
        elif window.duration_minutes >= duration_minutes * 2:
            reasons.append(f"Ample time available ({format_duration(window.duration_minutes)} free)")

        if not reasons:
            reasons.append("Available for both users")
        return reasons

    @staticmethod
    def _timezone(pattern: UserSchedulePattern, prefs: Optional[SchedulingPreference]) -> str:
        if prefs is not None:
            return prefs.timezone
        return pattern.timezone


__all__ = [
    'SuggestionRanker',
    'SCORE_COMPONENTS',
]
