"""
Pattern Analyzer - Scheduling Habits from Meeting History

Buckets successful meetings by weekday and time of day, and derives the
preferred days, preferred time ranges, typical duration and advance-notice
habits of one user. An empty history yields a zero-confidence pattern.
The meetings two users had with each other are summarised the same way
as a MutualHistory.
"""

import logging
from typing import List, Optional, Sequence, Union
from datetime import date, datetime, time
from collections import Counter

import numpy as np

from .models import HistoricalMeeting, MutualHistory, PreferredTimeRange, UserSchedulePattern
from .time_normalizer import TimeNormalizer, get_timezone
from ..utils.config import PatternConfig
from ..utils.exceptions import InvalidIntervalError, InvalidTimeError
from ..utils.helpers import minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)


class PatternAnalyzer:
    """Derives a UserSchedulePattern from historical meetings"""

    def __init__(
        self,
        settings: Optional[PatternConfig] = None,
        normalizer: Optional[TimeNormalizer] = None
    ):
        self.settings = settings or PatternConfig()
        self.normalizer = normalizer or TimeNormalizer()

    @property
    def buckets_per_day(self) -> int:
        return 1440 // self.settings.bucket_minutes

    def analyze(
        self,
        user_id: str,
        history: Sequence[HistoricalMeeting],
        timezone: str = "UTC"
    ) -> UserSchedulePattern:
        """
        Learn scheduling habits from past meetings

        Args:
            user_id: whose history this is
            history: meetings with local start times; unsuccessful ones are ignored
            timezone: the user's IANA zone, recorded on the pattern

        Returns:
            UserSchedulePattern; zero confidence when there is nothing to learn from
        """
        get_timezone(timezone)
        for meeting in history:
            self._validate(meeting)

        successful = [meeting for meeting in history if meeting.was_successful]
        bucket_minutes = self.settings.bucket_minutes

        if not successful:
            logger.info(f"No successful meetings for {user_id}, returning empty pattern")
            return UserSchedulePattern.empty(user_id, timezone, bucket_minutes)

        total = len(successful)
        counts = np.zeros((7, self.buckets_per_day), dtype=int)
        for meeting in successful:
            counts[meeting.weekday, time_to_minutes(meeting.start_time) // bucket_minutes] += 1

        frequencies = counts / total
        day_shares = counts.sum(axis=1) / total

        bucket_frequencies = {
            (int(weekday), int(bucket)): float(frequencies[weekday, bucket])
            for weekday, bucket in zip(*np.nonzero(counts))
        }

        preferred_ranges = self._preferred_ranges(frequencies)
        preferred_days = {
            int(weekday) for weekday in np.nonzero(day_shares >= self.settings.min_frequency)[0]
        }

        day_counter = Counter(meeting.weekday for meeting in successful)
        common_days = [
            weekday for weekday, _ in sorted(day_counter.items(), key=lambda item: (-item[1], item[0]))
        ][:self.settings.common_days_limit]

        average_duration = float(np.mean([meeting.duration_minutes for meeting in successful]))
        confidence = min(1.0, total / self.settings.full_confidence_sample)

        pattern = UserSchedulePattern(
            user_id=user_id,
            preferred_days=preferred_days,
            preferred_time_ranges=preferred_ranges,
            average_meeting_duration=average_duration,
            timezone=timezone,
            confidence=confidence,
            common_meeting_days=common_days,
            average_notice_hours=self._average_notice_hours(successful, timezone),
            sample_size=total,
            bucket_minutes=bucket_minutes,
            bucket_frequencies=bucket_frequencies
        )

        logger.info(
            f"Learned pattern for {user_id} from {total} meetings "
            f"({len(preferred_ranges)} preferred ranges, confidence {confidence:.2f})"
        )
        return pattern

    def analyze_mutual(
        self,
        user_id: str,
        friend_id: str,
        history: Sequence[HistoricalMeeting],
        timezone: str = "UTC"
    ) -> Optional[MutualHistory]:
        """
        Learn from the meetings user_id has already had with friend_id

        Args:
            user_id: whose history this is
            friend_id: the counterpart; meetings whose with_user matches are shared
            history: user_id's meetings with local start times
            timezone: user_id's IANA zone

        Returns:
            MutualHistory, or None when the two have never met
        """
        shared = [meeting for meeting in history if meeting.with_user == friend_id]
        if not shared:
            logger.debug(f"No shared meetings between {user_id} and {friend_id}")
            return None

        pattern = self.analyze(f"{user_id}+{friend_id}", shared, timezone)
        successful = sorted(
            (meeting for meeting in shared if meeting.was_successful),
            key=lambda meeting: (meeting.date, meeting.start_time)
        )

        return MutualHistory(
            user_id=user_id,
            friend_id=friend_id,
            successful_meetings=successful,
            preferred_duration=pattern.average_meeting_duration,
            common_days=pattern.common_meeting_days,
            timezone=timezone,
            average_notice_hours=pattern.average_notice_hours,
            confidence=pattern.confidence,
            total_meetings=len(shared),
            bucket_minutes=pattern.bucket_minutes,
            bucket_frequencies=pattern.bucket_frequencies
        )

    def _preferred_ranges(self, frequencies: np.ndarray) -> List[PreferredTimeRange]:
        """Buckets above the frequency threshold, most frequent first"""
        bucket_minutes = self.settings.bucket_minutes
        ranges = []
        for weekday, bucket in zip(*np.nonzero(frequencies)):
            frequency = float(frequencies[weekday, bucket])
            if frequency < self.settings.min_frequency:
                continue
            start_minutes = int(bucket) * bucket_minutes
            ranges.append(PreferredTimeRange(
                start=minutes_to_time(start_minutes),
                end=minutes_to_time(start_minutes + bucket_minutes),
                frequency=frequency,
                day_of_week=int(weekday)
            ))

        ranges.sort(key=lambda r: (-r.frequency, r.day_of_week, r.start))
        return ranges

    def _average_notice_hours(self, meetings: Sequence[HistoricalMeeting], timezone: str) -> Optional[float]:
        """Mean hours between booking and meeting start, when booking times are known"""
        notice = []
        for meeting in meetings:
            if meeting.booked_at is None:
                continue
            start = self.normalizer.to_instant(meeting.date, meeting.start_time, timezone, strict=False)
            notice.append((start - meeting.booked_at).total_seconds() / 3600)

        if not notice:
            return None
        return float(np.mean(notice))

    @staticmethod
    def _validate(meeting: HistoricalMeeting) -> None:
        if not isinstance(meeting, HistoricalMeeting):
            raise InvalidTimeError(f"Expected HistoricalMeeting, got {type(meeting).__name__}")
        if not isinstance(meeting.date, date) or isinstance(meeting.date, datetime):
            raise InvalidTimeError(f"Meeting date must be a date: {meeting.date!r}")
        if not isinstance(meeting.start_time, time):
            raise InvalidTimeError(f"Meeting start_time must be a time: {meeting.start_time!r}")
        if meeting.duration_minutes <= 0:
            raise InvalidIntervalError(
                f"Meeting on {meeting.date} has non-positive duration {meeting.duration_minutes}"
            )
        if meeting.day_of_week is not None and not 0 <= meeting.day_of_week <= 6:
            raise InvalidTimeError(f"day_of_week must be within 0-6, got {meeting.day_of_week}")
        if meeting.booked_at is not None and (
            not isinstance(meeting.booked_at, datetime) or meeting.booked_at.tzinfo is None
        ):
            raise InvalidTimeError(f"booked_at must be a timezone-aware datetime: {meeting.booked_at!r}")


def bucket_frequency(
    pattern: Union[UserSchedulePattern, MutualHistory],
    weekday: int,
    minute_of_day: int
) -> float:
    """Share of successful meetings falling in the bucket at weekday/minute_of_day"""
    if not pattern.has_data:
        return 0.0
    bucket = (minute_of_day % 1440) // pattern.bucket_minutes
    return pattern.bucket_frequencies.get((weekday, bucket), 0.0)


__all__ = [
    'PatternAnalyzer',
    'bucket_frequency',
]
