"""
Schedule Data Provider - Boundary to the External Data Store

The engine never fetches data itself. A provider supplies, per user, busy
blocks for a date range, a timezone, an optional declared availability
template and the meeting history. Retry policy belongs to the provider.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence
from datetime import date, timedelta

from ..agent.models import BusyBlock, HistoricalMeeting, SchedulingPreference
from ..agent.time_normalizer import TimeNormalizer

logger = logging.getLogger(__name__)


class ScheduleDataProvider(ABC):
    """Async source of per-user scheduling data"""

    @abstractmethod
    async def get_busy_blocks(self, user_id: str, start_date: date, end_date: date) -> List[BusyBlock]:
        """Busy blocks overlapping [start_date, end_date]"""

    @abstractmethod
    async def get_timezone(self, user_id: str) -> str:
        """IANA timezone identifier for the user"""

    async def get_preferences(self, user_id: str) -> Optional[SchedulingPreference]:
        """Declared availability template, None when the user has not set one"""
        return None

    async def get_history(self, user_id: str) -> List[HistoricalMeeting]:
        """Past meetings used for pattern analysis"""
        return []


class InMemoryScheduleDataProvider(ScheduleDataProvider):
    """Provider backed by plain dictionaries, for tests and local tooling"""

    def __init__(
        self,
        busy_blocks: Optional[Dict[str, Sequence[BusyBlock]]] = None,
        timezones: Optional[Dict[str, str]] = None,
        preferences: Optional[Dict[str, SchedulingPreference]] = None,
        histories: Optional[Dict[str, Sequence[HistoricalMeeting]]] = None,
        default_timezone: str = "UTC"
    ):
        self.busy_blocks = dict(busy_blocks or {})
        self.timezones = dict(timezones or {})
        self.preferences = dict(preferences or {})
        self.histories = dict(histories or {})
        self.default_timezone = default_timezone
        self.normalizer = TimeNormalizer()

    async def get_busy_blocks(self, user_id: str, start_date: date, end_date: date) -> List[BusyBlock]:
        # Pad by a day so callers interpreting the range in another zone lose nothing
        timezone = await self.get_timezone(user_id)
        range_start, _ = self.normalizer.day_bounds(start_date - timedelta(days=1), timezone)
        _, range_end = self.normalizer.day_bounds(end_date + timedelta(days=1), timezone)

        blocks = [
            block for block in self.busy_blocks.get(user_id, [])
            if block.start < range_end and range_start < block.end
        ]
        logger.debug(f"Returning {len(blocks)} busy blocks for {user_id}")
        return blocks

    async def get_timezone(self, user_id: str) -> str:
        if user_id in self.preferences:
            return self.preferences[user_id].timezone
        return self.timezones.get(user_id, self.default_timezone)

    async def get_preferences(self, user_id: str) -> Optional[SchedulingPreference]:
        return self.preferences.get(user_id)

    async def get_history(self, user_id: str) -> List[HistoricalMeeting]:
        return list(self.histories.get(user_id, []))


__all__ = [
    'ScheduleDataProvider',
    'InMemoryScheduleDataProvider',
]
