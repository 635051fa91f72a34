"""
In-memory calendar store.

Thread-safe reference implementation of ``CalendarStore`` used by tests,
the CLI, and local development. Every read and write goes through deep
copies so callers can never mutate stored state by accident.
"""

import logging
import threading
from datetime import date
from typing import Optional

from availability_engine.errors import VersionConflictError
from availability_engine.schemas.booking_schema import BookingConflict, BookingReference
from availability_engine.schemas.calendar_schema import CalendarEntry, DateRange
from availability_engine.schemas.pattern_schema import RecurringPattern
from availability_engine.schemas.privacy_schema import PrivacySettings
from availability_engine.store.base import CalendarStore

logger = logging.getLogger(__name__)


class InMemoryCalendarStore(CalendarStore):
    """Dict-backed store guarded by a single lock."""

    def __init__(self) -> None:
        self._lock = threading.RLock()
        self._entries: dict[tuple[str, date], CalendarEntry] = {}
        self._patterns: dict[str, RecurringPattern] = {}
        self._bookings: dict[str, BookingReference] = {}
        self._conflicts: dict[str, BookingConflict] = {}
        self._privacy: dict[str, PrivacySettings] = {}

    def get_entries(self, user_id: str, date_range: DateRange) -> list[CalendarEntry]:
        with self._lock:
            found = [
                entry.model_copy(deep=True)
                for (owner, day), entry in self._entries.items()
                if owner == user_id and day in date_range
            ]
        return sorted(found, key=lambda e: e.date)

    def get_entry(self, user_id: str, day: date) -> Optional[CalendarEntry]:
        with self._lock:
            entry = self._entries.get((user_id, day))
            return entry.model_copy(deep=True) if entry else None

    def upsert_entry(
        self, entry: CalendarEntry, expected_version: Optional[int] = None
    ) -> CalendarEntry:
        key = (entry.user_id, entry.date)
        with self._lock:
            current = self._entries.get(key)
            current_version = current.version if current else 0
            if expected_version is not None and expected_version != current_version:
                raise VersionConflictError(
                    entry.user_id, entry.date, expected_version, current_version
                )
            stored = entry.model_copy(deep=True, update={"version": current_version + 1})
            self._entries[key] = stored
            logger.debug(
                "Entry %s/%s stored at version %d", entry.user_id, entry.date, stored.version
            )
            return stored.model_copy(deep=True)

    def entries_for_pattern(self, user_id: str, pattern_id: str) -> list[CalendarEntry]:
        with self._lock:
            found = [
                entry.model_copy(deep=True)
                for (owner, _), entry in self._entries.items()
                if owner == user_id and entry.recurring_pattern_id == pattern_id
            ]
        return sorted(found, key=lambda e: e.date)

    def get_pattern(self, pattern_id: str) -> Optional[RecurringPattern]:
        with self._lock:
            pattern = self._patterns.get(pattern_id)
            return pattern.model_copy(deep=True) if pattern else None

    def save_pattern(self, pattern: RecurringPattern) -> RecurringPattern:
        with self._lock:
            self._patterns[pattern.id] = pattern.model_copy(deep=True)
        return pattern.model_copy(deep=True)

    def delete_pattern(self, pattern_id: str) -> bool:
        with self._lock:
            return self._patterns.pop(pattern_id, None) is not None

    def list_patterns(self, user_id: str) -> list[RecurringPattern]:
        with self._lock:
            found = [
                p.model_copy(deep=True) for p in self._patterns.values() if p.user_id == user_id
            ]
        return sorted(
            found,
            key=lambda p: p.created_at.timestamp() if p.created_at else 0.0,
            reverse=True,
        )

    def get_bookings(self, user_id: str) -> list[BookingReference]:
        with self._lock:
            return [
                b.model_copy(deep=True) for b in self._bookings.values() if b.user_id == user_id
            ]

    def get_booking(self, booking_id: str) -> Optional[BookingReference]:
        with self._lock:
            booking = self._bookings.get(booking_id)
            return booking.model_copy(deep=True) if booking else None

    def save_booking(self, booking: BookingReference) -> BookingReference:
        with self._lock:
            self._bookings[booking.id] = booking.model_copy(deep=True)
        return booking.model_copy(deep=True)

    def get_conflicts(self, user_id: str) -> list[BookingConflict]:
        with self._lock:
            return [
                c.model_copy(deep=True) for c in self._conflicts.values() if c.user_id == user_id
            ]

    def get_conflict(self, conflict_id: str) -> Optional[BookingConflict]:
        with self._lock:
            conflict = self._conflicts.get(conflict_id)
            return conflict.model_copy(deep=True) if conflict else None

    def save_conflict(self, conflict: BookingConflict) -> BookingConflict:
        with self._lock:
            self._conflicts[conflict.id] = conflict.model_copy(deep=True)
        return conflict.model_copy(deep=True)

    def get_privacy_settings(self, user_id: str) -> Optional[PrivacySettings]:
        with self._lock:
            privacy = self._privacy.get(user_id)
            return privacy.model_copy(deep=True) if privacy else None

    def save_privacy_settings(self, privacy: PrivacySettings) -> PrivacySettings:
        with self._lock:
            self._privacy[privacy.user_id] = privacy.model_copy(deep=True)
        return privacy.model_copy(deep=True)
