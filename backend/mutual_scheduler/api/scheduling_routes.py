"""
Scheduling Routes - REST access to the scheduling engine

Stateless endpoints: every request carries the busy blocks, preferences and
history it needs. Engine errors are turned into 422 responses by the
application's exception handler.
"""

import asyncio
import logging
from datetime import date, datetime
from typing import Dict, List, Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Request
from pydantic import BaseModel, Field

from ..agent.availability_calculator import windows_from_ranges
from ..agent.models import (
    AvailabilityWindow, BusyBlock, ConflictRecord, HistoricalMeeting, MutualHistory, PreferredTimeRange,
    SchedulingPreference, SmartSuggestion, TimeInterval, UserSchedulePattern
)
from ..agent.scheduling_engine import SchedulingEngine
from ..agent.time_normalizer import parse_time
from ..services.data_provider import InMemoryScheduleDataProvider
from ..utils.config import config

logger = logging.getLogger(__name__)

scheduling_router = APIRouter(prefix="/api/scheduling", tags=["Scheduling API"])


def _get_engine(request: Request) -> SchedulingEngine:
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(status_code=503, detail="Scheduling engine not initialized")
    return engine


# Request payloads

class IntervalPayload(BaseModel):
    start: datetime
    end: datetime

    def to_interval(self) -> TimeInterval:
        return TimeInterval(start=self.start, end=self.end)


class BusyBlockPayload(IntervalPayload):
    source: str = "calendar"
    title: Optional[str] = None

    def to_block(self) -> BusyBlock:
        return BusyBlock(interval=self.to_interval(), source=self.source, title=self.title)


class LocalRangePayload(BaseModel):
    start: str = Field(..., description="Local start time, HH:MM")
    end: str = Field(..., description="Local end time, HH:MM (00:00 means midnight)")

    def to_range(self):
        return parse_time(self.start), parse_time(self.end)


class PreferencePayload(BaseModel):
    weekly_ranges: Dict[int, List[LocalRangePayload]] = Field(
        default_factory=dict, description="Weekday (0=Monday) to local ranges"
    )
    specific_dates: Dict[date, List[LocalRangePayload]] = Field(default_factory=dict)
    exceptions: Dict[date, List[LocalRangePayload]] = Field(default_factory=dict)

    def to_preference(self, user_id: str, timezone: str) -> SchedulingPreference:
        return SchedulingPreference(
            user_id=user_id,
            timezone=timezone,
            weekly_ranges={day: [r.to_range() for r in ranges] for day, ranges in self.weekly_ranges.items()},
            specific_dates={day: [r.to_range() for r in ranges] for day, ranges in self.specific_dates.items()},
            exceptions={day: [r.to_range() for r in ranges] for day, ranges in self.exceptions.items()}
        )


class HistoricalMeetingPayload(BaseModel):
    date: date
    start_time: str
    duration_minutes: int
    was_successful: bool = True
    day_of_week: Optional[int] = Field(None, description="0=Monday; derived from date when omitted")
    booked_at: Optional[datetime] = None
    with_user: Optional[str] = Field(None, description="The other participant, for shared history")

    def to_meeting(self) -> HistoricalMeeting:
        return HistoricalMeeting(
            date=self.date,
            start_time=parse_time(self.start_time),
            duration_minutes=self.duration_minutes,
            was_successful=self.was_successful,
            day_of_week=self.day_of_week,
            booked_at=self.booked_at,
            with_user=self.with_user
        )


class UserSchedulePayload(BaseModel):
    user_id: str
    timezone: str = "UTC"
    busy_blocks: List[BusyBlockPayload] = Field(default_factory=list)
    preferences: Optional[PreferencePayload] = None
    history: List[HistoricalMeetingPayload] = Field(default_factory=list)

    def busy(self) -> List[BusyBlock]:
        return [block.to_block() for block in self.busy_blocks]

    def preference(self) -> Optional[SchedulingPreference]:
        if self.preferences is None:
            return None
        return self.preferences.to_preference(self.user_id, self.timezone)


class AvailabilityRequestPayload(BaseModel):
    user_a: UserSchedulePayload
    user_b: UserSchedulePayload
    start_date: date
    end_date: date
    duration_minutes: int = Field(60, gt=0)
    buffer_minutes: Optional[int] = Field(None, ge=0)


class ConflictRequestPayload(BaseModel):
    slot: IntervalPayload
    busy_a: List[BusyBlockPayload] = Field(default_factory=list)
    busy_b: List[BusyBlockPayload] = Field(default_factory=list)
    buffer_minutes: Optional[int] = Field(None, ge=0)
    free_windows: List[IntervalPayload] = Field(
        default_factory=list, description="Mutual free windows used to propose alternatives"
    )


class ConflictBatchRequestPayload(BaseModel):
    slots: List[IntervalPayload] = Field(..., min_length=1)
    busy_a: List[BusyBlockPayload] = Field(default_factory=list)
    busy_b: List[BusyBlockPayload] = Field(default_factory=list)
    buffer_minutes: Optional[int] = Field(None, ge=0)


class PatternRequestPayload(BaseModel):
    user_id: str
    timezone: str = "UTC"
    history: List[HistoricalMeetingPayload] = Field(default_factory=list)


class SuggestionRequestPayload(AvailabilityRequestPayload):
    max_suggestions: Optional[int] = Field(None, gt=0)
    include_weekends: bool = True
    time_of_day_preference: Literal["morning", "afternoon", "evening", "any"] = Field(
        "any", description="Local period in user_a's timezone"
    )


# Response payloads

class WindowResponse(BaseModel):
    start: datetime
    end: datetime
    duration_minutes: int


class BusyBlockResponse(BaseModel):
    start: datetime
    end: datetime
    source: str
    title: Optional[str] = None


class ConflictResponse(BaseModel):
    slot: WindowResponse
    severity: str
    affected_user: str
    has_conflicts: bool
    conflicting_blocks: List[BusyBlockResponse]
    alternatives: List[WindowResponse]


class PreferredRangeResponse(BaseModel):
    start: str
    end: str
    frequency: float
    day_of_week: Optional[int] = None


class PatternResponse(BaseModel):
    user_id: str
    timezone: str
    preferred_days: List[int]
    preferred_time_ranges: List[PreferredRangeResponse]
    average_meeting_duration: float
    confidence: float
    common_meeting_days: List[int]
    average_notice_hours: Optional[float] = None
    sample_size: int


class SuggestionResponse(BaseModel):
    start: datetime
    end: datetime
    window: WindowResponse
    confidence: float
    reasoning: List[str]
    pattern_based: bool
    mutual_convenience: float
    suggestion_type: str
    scores: Dict[str, float]
    user_timezone: str
    friend_timezone: str


class SharedMeetingResponse(BaseModel):
    date: date
    start_time: str
    duration_minutes: int
    day_of_week: int


class MutualHistoryResponse(BaseModel):
    user_id: str
    friend_id: str
    successful_meetings: List[SharedMeetingResponse]
    preferred_duration: float
    common_days: List[int]
    average_notice_hours: Optional[float] = None
    confidence: float
    total_meetings: int


class ConflictBatchResponse(BaseModel):
    success: bool
    conflicted: int
    results: List[ConflictResponse]


class AvailabilityResponse(BaseModel):
    success: bool
    count: int
    windows: List[WindowResponse]


class SuggestionsResponse(BaseModel):
    success: bool
    suggestions: List[SuggestionResponse]
    total_analyzed: int
    pattern_confidence: float
    user_pattern: PatternResponse
    friend_pattern: PatternResponse
    mutual_history: Optional[MutualHistoryResponse] = None


# Converters

def _window(interval: TimeInterval) -> WindowResponse:
    return WindowResponse(start=interval.start, end=interval.end, duration_minutes=int(interval.duration_minutes()))


def _availability_window(window: AvailabilityWindow) -> WindowResponse:
    return WindowResponse(start=window.start, end=window.end, duration_minutes=window.duration_minutes)


def _conflict(record: ConflictRecord) -> ConflictResponse:
    return ConflictResponse(
        slot=_window(record.slot),
        severity=record.severity.value,
        affected_user=record.affected_user.value,
        has_conflicts=record.has_conflicts,
        conflicting_blocks=[
            BusyBlockResponse(start=block.start, end=block.end, source=block.source, title=block.title)
            for block in record.conflicting_blocks
        ],
        alternatives=[_window(interval) for interval in record.alternatives]
    )


def _preferred_range(preferred: PreferredTimeRange) -> PreferredRangeResponse:
    return PreferredRangeResponse(
        start=preferred.start.strftime("%H:%M"),
        end=preferred.end.strftime("%H:%M"),
        frequency=preferred.frequency,
        day_of_week=preferred.day_of_week
    )


def _pattern(pattern: UserSchedulePattern) -> PatternResponse:
    return PatternResponse(
        user_id=pattern.user_id,
        timezone=pattern.timezone,
        preferred_days=sorted(pattern.preferred_days),
        preferred_time_ranges=[_preferred_range(r) for r in pattern.preferred_time_ranges],
        average_meeting_duration=pattern.average_meeting_duration,
        confidence=pattern.confidence,
        common_meeting_days=pattern.common_meeting_days,
        average_notice_hours=pattern.average_notice_hours,
        sample_size=pattern.sample_size
    )


def _suggestion(suggestion: SmartSuggestion) -> SuggestionResponse:
    return SuggestionResponse(
        start=suggestion.start,
        end=suggestion.end,
        window=_availability_window(suggestion.window),
        confidence=suggestion.confidence,
        reasoning=list(suggestion.reasoning),
        pattern_based=suggestion.pattern_based,
        mutual_convenience=suggestion.mutual_convenience,
        suggestion_type=suggestion.suggestion_type.value,
        scores=suggestion.score_breakdown(),
        user_timezone=suggestion.user_timezone,
        friend_timezone=suggestion.friend_timezone
    )


def _mutual_history(mutual: MutualHistory) -> MutualHistoryResponse:
    return MutualHistoryResponse(
        user_id=mutual.user_id,
        friend_id=mutual.friend_id,
        successful_meetings=[
            SharedMeetingResponse(
                date=meeting.date,
                start_time=meeting.start_time.strftime("%H:%M"),
                duration_minutes=meeting.duration_minutes,
                day_of_week=meeting.weekday
            )
            for meeting in mutual.successful_meetings
        ],
        preferred_duration=mutual.preferred_duration,
        common_days=mutual.common_days,
        average_notice_hours=mutual.average_notice_hours,
        confidence=mutual.confidence,
        total_meetings=mutual.total_meetings
    )


# Endpoints

@scheduling_router.post("/availability", response_model=AvailabilityResponse)
async def compute_availability(
    payload: AvailabilityRequestPayload,
    engine: SchedulingEngine = Depends(_get_engine),
) -> AvailabilityResponse:
    # Long date ranges are CPU-bound; keep them off the event loop
    windows = await asyncio.to_thread(
        engine.compute_mutual_availability,
        payload.user_a.user_id,
        payload.user_b.user_id,
        payload.user_a.busy(),
        payload.user_b.busy(),
        payload.user_a.preference(),
        payload.user_b.preference(),
        payload.start_date,
        payload.end_date,
        payload.duration_minutes,
        payload.buffer_minutes,
        timezone_a=payload.user_a.timezone,
        timezone_b=payload.user_b.timezone
    )

    return AvailabilityResponse(
        success=True,
        count=len(windows),
        windows=[_availability_window(window) for window in windows]
    )


@scheduling_router.post("/conflicts", response_model=ConflictResponse)
async def detect_conflicts(
    payload: ConflictRequestPayload,
    engine: SchedulingEngine = Depends(_get_engine),
) -> ConflictResponse:
    windows = windows_from_ranges([(window.start, window.end) for window in payload.free_windows])
    record = engine.detect_conflicts(
        payload.slot.to_interval(),
        [block.to_block() for block in payload.busy_a],
        [block.to_block() for block in payload.busy_b],
        payload.buffer_minutes,
        windows=windows or None
    )
    return _conflict(record)


@scheduling_router.post("/conflicts/batch", response_model=ConflictBatchResponse)
async def detect_conflicts_batch(
    payload: ConflictBatchRequestPayload,
    engine: SchedulingEngine = Depends(_get_engine),
) -> ConflictBatchResponse:
    records = await engine.detect_conflicts_batch(
        [slot.to_interval() for slot in payload.slots],
        [block.to_block() for block in payload.busy_a],
        [block.to_block() for block in payload.busy_b],
        payload.buffer_minutes,
        max_concurrency=config.api.batch_concurrency
    )

    conflicted = sum(1 for record in records if record.has_conflicts)
    logger.info(f"Evaluated {len(records)} slots, {conflicted} with conflicts")

    return ConflictBatchResponse(
        success=True,
        conflicted=conflicted,
        results=[_conflict(record) for record in records]
    )


@scheduling_router.post("/patterns", response_model=PatternResponse)
async def analyze_pattern(
    payload: PatternRequestPayload,
    engine: SchedulingEngine = Depends(_get_engine),
) -> PatternResponse:
    pattern = engine.analyze(
        payload.user_id,
        [meeting.to_meeting() for meeting in payload.history],
        payload.timezone
    )
    return _pattern(pattern)


@scheduling_router.post("/suggestions", response_model=SuggestionsResponse)
async def suggest_times(
    payload: SuggestionRequestPayload,
    engine: SchedulingEngine = Depends(_get_engine),
) -> SuggestionsResponse:
    users = (payload.user_a, payload.user_b)
    preferences = {user.user_id: user.preference() for user in users if user.preferences is not None}
    provider = InMemoryScheduleDataProvider(
        busy_blocks={user.user_id: user.busy() for user in users},
        timezones={user.user_id: user.timezone for user in users},
        preferences=preferences,
        histories={user.user_id: [meeting.to_meeting() for meeting in user.history] for user in users}
    )

    response = await engine.suggest(
        provider,
        payload.user_a.user_id,
        payload.user_b.user_id,
        payload.start_date,
        payload.end_date,
        payload.duration_minutes,
        payload.buffer_minutes,
        payload.max_suggestions,
        include_weekends=payload.include_weekends,
        time_of_day=payload.time_of_day_preference
    )

    return SuggestionsResponse(
        success=True,
        suggestions=[_suggestion(suggestion) for suggestion in response.suggestions],
        total_analyzed=response.total_analyzed,
        pattern_confidence=response.pattern_confidence,
        user_pattern=_pattern(response.user_pattern),
        friend_pattern=_pattern(response.friend_pattern),
        mutual_history=_mutual_history(response.mutual_history) if response.mutual_history is not None else None
    )
