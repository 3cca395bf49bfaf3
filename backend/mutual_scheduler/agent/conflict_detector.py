"""
Conflict Detector - Classify a Proposed Meeting Slot

Checks one proposed slot against both users' busy blocks. The most severe
finding wins: a direct overlap beats a buffer violation. Evaluations share
no state, so many slots can be checked concurrently.
"""

import logging
from typing import List, Optional, Sequence, Tuple
from datetime import timedelta

from .models import (
    AffectedUser, AvailabilityWindow, BusyBlock, ConflictRecord, ConflictSeverity, TimeInterval
)
from ..utils.exceptions import InvalidIntervalError

logger = logging.getLogger(__name__)


class ConflictDetector:
    """Stateless conflict classification for proposed slots"""

    def detect_conflicts(
        self,
        proposed_slot: TimeInterval,
        busy_a: Sequence[BusyBlock],
        busy_b: Sequence[BusyBlock],
        buffer_minutes: int = 0,
        windows: Optional[Sequence[AvailabilityWindow]] = None,
        max_alternatives: int = 3
    ) -> ConflictRecord:
        """
        Classify proposed_slot against both users' busy blocks

        Args:
            proposed_slot: the meeting being considered
            busy_a / busy_b: each user's busy blocks
            buffer_minutes: padding around busy blocks for BUFFER_VIOLATION
            windows: optional mutual free windows used to propose alternatives
            max_alternatives: maximum number of alternatives to attach

        Returns:
            ConflictRecord with severity, triggering blocks and affected user
        """
        if not isinstance(proposed_slot, TimeInterval):
            raise InvalidIntervalError(
                f"proposed_slot must be a TimeInterval, got {type(proposed_slot).__name__}"
            )
        if buffer_minutes < 0:
            raise ValueError(f"buffer_minutes must not be negative: {buffer_minutes}")

        hard_a = self.find_overlaps(proposed_slot, busy_a, 0)
        hard_b = self.find_overlaps(proposed_slot, busy_b, 0)

        if hard_a or hard_b:
            severity = ConflictSeverity.HARD_OVERLAP
            blocks_a, blocks_b = hard_a, hard_b
        else:
            blocks_a = self.find_overlaps(proposed_slot, busy_a, buffer_minutes)
            blocks_b = self.find_overlaps(proposed_slot, busy_b, buffer_minutes)
            if blocks_a or blocks_b:
                severity = ConflictSeverity.BUFFER_VIOLATION
            else:
                severity = ConflictSeverity.NONE

        affected = self._affected_user(bool(blocks_a), bool(blocks_b))
        conflicting = tuple(sorted(blocks_a + blocks_b, key=lambda block: (block.start, block.end)))

        alternatives: Tuple[TimeInterval, ...] = ()
        if severity != ConflictSeverity.NONE and windows:
            alternatives = tuple(self.find_alternatives(proposed_slot, windows, limit=max_alternatives))

        if severity != ConflictSeverity.NONE:
            logger.debug(
                f"Slot {proposed_slot.start.isoformat()} classified {severity.value} "
                f"({len(conflicting)} blocks, affected={affected.value})"
            )

        return ConflictRecord(
            slot=proposed_slot,
            severity=severity,
            conflicting_blocks=conflicting,
            affected_user=affected,
            alternatives=alternatives
        )

    def find_overlaps(
        self,
        slot: TimeInterval,
        busy: Sequence[BusyBlock],
        buffer_minutes: int = 0
    ) -> List[BusyBlock]:
        """Busy blocks whose (padded) interval intersects slot"""
        buffer = timedelta(minutes=buffer_minutes)
        overlapping = []
        for block in busy:
            if not isinstance(block, BusyBlock):
                raise InvalidIntervalError(f"Expected BusyBlock, got {type(block).__name__}")
            if self.times_overlap(slot.start, slot.end, block.start - buffer, block.end + buffer):
                overlapping.append(block)
        return overlapping

    def find_alternatives(
        self,
        slot: TimeInterval,
        windows: Sequence[AvailabilityWindow],
        limit: int = 3,
        max_distance_hours: float = 24
    ) -> List[TimeInterval]:
        """
        Same-length slots inside free windows, nearest to the proposed start

        For each window the candidate start is the proposed start clamped into
        the window, so a window containing room at the original time yields it.
        """
        length = slot.duration()
        max_distance = timedelta(hours=max_distance_hours)
        candidates = []

        for window in windows:
            if window.interval.duration() < length:
                continue
            latest_start = window.end - length
            start = min(max(slot.start, window.start), latest_start)
            distance = abs(start - slot.start)
            if distance <= max_distance and start != slot.start:
                candidates.append((distance, start))

        # Sort by proximity to the proposed time, earlier first on ties
        candidates.sort()
        return [TimeInterval(start=start, end=start + length) for _, start in candidates[:limit]]

    def times_overlap(self, start1, end1, start2, end2) -> bool:
        """Check if two half-open time ranges overlap"""
        return start1 < end2 and start2 < end1

    @staticmethod
    def _affected_user(has_a: bool, has_b: bool) -> AffectedUser:
        if has_a and has_b:
            return AffectedUser.BOTH
        if has_a:
            return AffectedUser.A
        if has_b:
            return AffectedUser.B
        return AffectedUser.NONE


__all__ = ['ConflictDetector']
