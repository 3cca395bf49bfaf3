"""
Scheduling Value Objects

Immutable data structures shared by the availability, conflict, pattern and
ranking components. Instants are timezone-aware UTC datetimes; local wall
clock only appears at the TimeNormalizer boundary.
"""

from typing import Dict, List, Optional, Set, Tuple
from datetime import datetime, date, time, timedelta, timezone
from dataclasses import dataclass, field
from enum import Enum

from ..utils.exceptions import InvalidIntervalError

# A wall-clock range inside one local day, e.g. (time(9, 0), time(17, 0))
LocalRange = Tuple[time, time]


def _require_aware(value: datetime, name: str) -> None:
    if not isinstance(value, datetime):
        raise InvalidIntervalError(f"{name} must be a datetime, got {type(value).__name__}")
    if value.tzinfo is None or value.utcoffset() is None:
        raise InvalidIntervalError(f"{name} must be timezone-aware: {value.isoformat()}")


@dataclass(frozen=True, order=True)
class TimeInterval:
    """Half-open absolute interval [start, end)"""
    start: datetime
    end: datetime

    def __post_init__(self):
        _require_aware(self.start, "start")
        _require_aware(self.end, "end")
        if self.start >= self.end:
            raise InvalidIntervalError(
                f"Interval start must precede end: {self.start.isoformat()} >= {self.end.isoformat()}",
                {"start": self.start.isoformat(), "end": self.end.isoformat()}
            )
        # Store instants in UTC so equality does not depend on the input offset
        object.__setattr__(self, 'start', self.start.astimezone(timezone.utc))
        object.__setattr__(self, 'end', self.end.astimezone(timezone.utc))

    def duration(self) -> timedelta:
        return self.end - self.start

    def duration_minutes(self) -> float:
        return self.duration().total_seconds() / 60

    def overlaps(self, other: 'TimeInterval') -> bool:
        return self.start < other.end and other.start < self.end

    def contains(self, instant: datetime) -> bool:
        return self.start <= instant < self.end

    def to_dict(self) -> Dict[str, str]:
        return {"start": self.start.isoformat(), "end": self.end.isoformat()}


@dataclass(frozen=True)
class BusyBlock:
    """Interval during which a user is already committed"""
    interval: TimeInterval
    source: str = "calendar"
    title: Optional[str] = None

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


@dataclass(frozen=True)
class AvailabilityWindow:
    """Interval known to be free for both users"""
    interval: TimeInterval
    duration_minutes: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'duration_minutes', int(self.interval.duration_minutes()))

    @property
    def start(self) -> datetime:
        return self.interval.start

    @property
    def end(self) -> datetime:
        return self.interval.end


@dataclass(frozen=True)
class PreferredTimeRange:
    """Time-of-day bucket with its share of successful meetings"""
    start: time
    end: time
    frequency: float
    day_of_week: Optional[int] = None


@dataclass
class UserSchedulePattern:
    """Scheduling habits derived from a user's meeting history"""
    user_id: str
    preferred_days: Set[int]
    preferred_time_ranges: List[PreferredTimeRange]
    average_meeting_duration: float
    timezone: str
    confidence: float = 0.0
    common_meeting_days: List[int] = field(default_factory=list)
    average_notice_hours: Optional[float] = None
    sample_size: int = 0
    bucket_minutes: int = 30
    bucket_frequencies: Dict[Tuple[int, int], float] = field(default_factory=dict)

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0

    @classmethod
    def empty(cls, user_id: str, timezone: str = "UTC", bucket_minutes: int = 30) -> 'UserSchedulePattern':
        """Zero-confidence pattern meaning "no pattern data" """
        return cls(
            user_id=user_id,
            preferred_days=set(),
            preferred_time_ranges=[],
            average_meeting_duration=0.0,
            timezone=timezone,
            confidence=0.0,
            bucket_minutes=bucket_minutes
        )


@dataclass(frozen=True)
class HistoricalMeeting:
    """A past meeting, read-only input to pattern analysis"""
    date: date
    start_time: time
    duration_minutes: int
    was_successful: bool
    day_of_week: Optional[int] = None
    booked_at: Optional[datetime] = None
    with_user: Optional[str] = None

    @property
    def weekday(self) -> int:
        if self.day_of_week is not None:
            return self.day_of_week
        return self.date.weekday()


@dataclass
class MutualHistory:
    """
    Meetings two users have already had with each other

    Start times are read in the requesting user's timezone. The bucket
    frequencies use the same keys as UserSchedulePattern so the ranker can
    look both up the same way.
    """
    user_id: str
    friend_id: str
    successful_meetings: List[HistoricalMeeting]
    preferred_duration: float
    common_days: List[int]
    timezone: str = "UTC"
    average_notice_hours: Optional[float] = None
    confidence: float = 0.0
    total_meetings: int = 0
    bucket_minutes: int = 30
    bucket_frequencies: Dict[Tuple[int, int], float] = field(default_factory=dict)

    @property
    def sample_size(self) -> int:
        return len(self.successful_meetings)

    @property
    def has_data(self) -> bool:
        return self.sample_size > 0


class ConflictSeverity(Enum):
    """Conflict classification, ordered from least to most severe"""
    NONE = "none"
    BUFFER_VIOLATION = "buffer_violation"
    HARD_OVERLAP = "hard_overlap"

    @property
    def rank(self) -> int:
        return list(ConflictSeverity).index(self)


class AffectedUser(Enum):
    """Whose busy blocks triggered a conflict"""
    NONE = "none"
    A = "a"
    B = "b"
    BOTH = "both"


@dataclass(frozen=True)
class ConflictRecord:
    """Outcome of evaluating one proposed slot"""
    slot: TimeInterval
    severity: ConflictSeverity
    conflicting_blocks: Tuple[BusyBlock, ...] = ()
    affected_user: AffectedUser = AffectedUser.NONE
    alternatives: Tuple[TimeInterval, ...] = ()

    @property
    def has_conflicts(self) -> bool:
        return self.severity != ConflictSeverity.NONE


class SuggestionType(Enum):
    """Which signal drove a suggestion"""
    PATTERN = "pattern"
    PREFERENCE = "preference"
    AVAILABILITY = "availability"
    OPTIMAL = "optimal"


@dataclass(frozen=True)
class SmartSuggestion:
    """Ranked, explainable meeting suggestion"""
    window: AvailabilityWindow
    confidence: float
    reasoning: Tuple[str, ...]
    pattern_based: bool
    mutual_convenience: float
    suggestion_type: SuggestionType
    scores: Tuple[Tuple[str, float], ...] = ()
    slot: Optional[TimeInterval] = None
    user_timezone: str = "UTC"
    friend_timezone: str = "UTC"

    def __post_init__(self):
        # Without an explicit proposal the meeting is placed at the window start
        if self.slot is None:
            object.__setattr__(self, 'slot', self.window.interval)

    @property
    def start(self) -> datetime:
        return self.slot.start

    @property
    def end(self) -> datetime:
        return self.slot.end

    def score_breakdown(self) -> Dict[str, float]:
        return dict(self.scores)


@dataclass
class SchedulingPreference:
    """
    Declared availability template for one user

    weekly_ranges maps weekday (0=Monday) to local wall-clock ranges.
    specific_dates replace the weekly template for that date and
    exceptions are unavailable ranges removed from that date.
    """
    user_id: str
    timezone: str
    weekly_ranges: Dict[int, List[LocalRange]] = field(default_factory=dict)
    specific_dates: Dict[date, List[LocalRange]] = field(default_factory=dict)
    exceptions: Dict[date, List[LocalRange]] = field(default_factory=dict)

    @classmethod
    def default(
        cls,
        user_id: str,
        timezone: str = "UTC",
        day_start: time = time(8, 0),
        day_end: time = time(21, 0)
    ) -> 'SchedulingPreference':
        """System-wide default template, same hours every day"""
        return cls(
            user_id=user_id,
            timezone=timezone,
            weekly_ranges={weekday: [(day_start, day_end)] for weekday in range(7)}
        )

    def ranges_for(self, target_date: date) -> List[LocalRange]:
        if target_date in self.specific_dates:
            return list(self.specific_dates[target_date])
        return list(self.weekly_ranges.get(target_date.weekday(), []))

    @property
    def preferred_days(self) -> Set[int]:
        return {weekday for weekday, ranges in self.weekly_ranges.items() if ranges}


@dataclass
class SmartSuggestionResponse:
    """Engine response for a full suggestion request"""
    suggestions: List[SmartSuggestion]
    total_analyzed: int
    pattern_confidence: float
    user_pattern: UserSchedulePattern
    friend_pattern: UserSchedulePattern
    windows: List[AvailabilityWindow] = field(default_factory=list)
    mutual_history: Optional[MutualHistory] = None


__all__ = [
    'LocalRange',
    'TimeInterval',
    'BusyBlock',
    'AvailabilityWindow',
    'PreferredTimeRange',
    'UserSchedulePattern',
    'HistoricalMeeting',
    'MutualHistory',
    'ConflictSeverity',
    'AffectedUser',
    'ConflictRecord',
    'SuggestionType',
    'SmartSuggestion',
    'SchedulingPreference',
    'SmartSuggestionResponse',
]
