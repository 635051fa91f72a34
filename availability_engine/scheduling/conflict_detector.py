"""
Booking overlap detection.

Intervals are half-open: ``[start, end)``. Two intervals conflict when
``s1 < e2 and s2 < e1``, so a slot ending at 11:00 and one starting at 11:00
touch without conflicting.

A hit is a ``full_overlap`` when the candidate equals the booked slot or lies
inside it, and a ``partial_overlap`` otherwise. Results list full overlaps
first, then partial ones, each ordered by start time.
"""

import logging
from typing import Iterable, Optional

from availability_engine.schemas.booking_schema import (
    BookingCandidate,
    ConflictReport,
    DetectedConflict,
    OverlapKind,
)
from availability_engine.schemas.calendar_schema import TimeSlot
from availability_engine.store.base import CalendarStore
from availability_engine.utils import intervals_overlap, minutes_to_time, time_to_minutes

logger = logging.getLogger(__name__)


def classify_overlap(
    start: int, end: int, booked_start: int, booked_end: int
) -> Optional[OverlapKind]:
    if not intervals_overlap(start, end, booked_start, booked_end):
        return None
    if booked_start <= start and end <= booked_end:
        return OverlapKind.FULL_OVERLAP
    return OverlapKind.PARTIAL_OVERLAP


def detect_in_slots(
    candidate: BookingCandidate,
    slots: Iterable[TimeSlot],
    exclude_booking_id: Optional[str] = None,
) -> list[DetectedConflict]:
    """Compare a candidate interval with the booking-holding slots of its day."""
    start = time_to_minutes(candidate.start)
    end = time_to_minutes(candidate.end)
    hits: list[DetectedConflict] = []

    for slot in slots:
        if not slot.holds_booking:
            continue
        if exclude_booking_id is not None and slot.booking_id == exclude_booking_id:
            continue
        kind = classify_overlap(start, end, slot.start_minutes, slot.end_minutes)
        if kind is None:
            continue
        hits.append(
            DetectedConflict(
                overlap=kind,
                date=candidate.date,
                slot_id=slot.id,
                booking_id=slot.booking_id,
                existing_start=slot.start,
                existing_end=slot.end,
                overlap_start=minutes_to_time(max(start, slot.start_minutes)),
                overlap_end=minutes_to_time(min(end, slot.end_minutes)),
            )
        )

    hits.sort(
        key=lambda c: (
            0 if c.overlap == OverlapKind.FULL_OVERLAP else 1,
            time_to_minutes(c.existing_start),
        )
    )
    return hits


class ConflictDetector:
    """Looks up a user's day in the store and runs ``detect_in_slots`` on it."""

    def __init__(self, store: CalendarStore) -> None:
        self._store = store

    def detect(
        self,
        user_id: str,
        candidate: BookingCandidate,
        exclude_booking_id: Optional[str] = None,
    ) -> list[DetectedConflict]:
        entry = self._store.get_entry(user_id, candidate.date)
        if entry is None:
            return []
        hits = detect_in_slots(candidate, entry.time_slots, exclude_booking_id)
        if hits:
            logger.info(
                "%d conflict(s) for %s %s-%s",
                len(hits), candidate.date.isoformat(), candidate.start, candidate.end,
            )
        return hits

    def report(
        self,
        user_id: str,
        candidate: BookingCandidate,
        exclude_booking_id: Optional[str] = None,
    ) -> ConflictReport:
        hits = self.detect(user_id, candidate, exclude_booking_id)
        return ConflictReport(has_conflicts=bool(hits), conflicts=hits)
