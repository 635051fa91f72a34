"""
Persistence collaborator contract.

The engine is storage-agnostic. Any backend (SQL, document store, HTTP API)
implements ``CalendarStore``; the in-memory implementation in
``availability_engine.store.memory`` is the reference.

Entries carry a ``version``. ``upsert_entry`` is a compare-and-set: when
``expected_version`` is given and does not match the stored version, the
store raises ``VersionConflictError`` and writes nothing. Missing entries
have version 0. Backends report outages as ``StoreError``.
"""

from abc import ABC, abstractmethod
from datetime import date
from typing import Iterable, Optional

from availability_engine.schemas.booking_schema import BookingConflict, BookingReference
from availability_engine.schemas.calendar_schema import CalendarEntry, DateRange
from availability_engine.schemas.pattern_schema import RecurringPattern
from availability_engine.schemas.privacy_schema import PrivacySettings


class CalendarStore(ABC):
    """Abstract store for entries, patterns, bookings, conflicts and settings."""

    # --- Calendar entries ---

    @abstractmethod
    def get_entries(self, user_id: str, date_range: DateRange) -> list[CalendarEntry]:
        """Entries for ``user_id`` within the range, sorted by date."""

    @abstractmethod
    def get_entry(self, user_id: str, day: date) -> Optional[CalendarEntry]:
        ...

    @abstractmethod
    def upsert_entry(
        self, entry: CalendarEntry, expected_version: Optional[int] = None
    ) -> CalendarEntry:
        """Write one entry and return the stored copy with its new version."""

    def upsert_entries(self, entries: Iterable[CalendarEntry]) -> list[CalendarEntry]:
        """Write entries one by one; each is its own unit."""
        return [self.upsert_entry(entry) for entry in entries]

    @abstractmethod
    def entries_for_pattern(self, user_id: str, pattern_id: str) -> list[CalendarEntry]:
        ...

    # --- Recurring patterns ---

    @abstractmethod
    def get_pattern(self, pattern_id: str) -> Optional[RecurringPattern]:
        ...

    @abstractmethod
    def save_pattern(self, pattern: RecurringPattern) -> RecurringPattern:
        ...

    @abstractmethod
    def delete_pattern(self, pattern_id: str) -> bool:
        ...

    @abstractmethod
    def list_patterns(self, user_id: str) -> list[RecurringPattern]:
        ...

    # --- Bookings and conflicts ---

    @abstractmethod
    def get_bookings(self, user_id: str) -> list[BookingReference]:
        ...

    @abstractmethod
    def get_booking(self, booking_id: str) -> Optional[BookingReference]:
        ...

    @abstractmethod
    def save_booking(self, booking: BookingReference) -> BookingReference:
        ...

    @abstractmethod
    def get_conflicts(self, user_id: str) -> list[BookingConflict]:
        ...

    @abstractmethod
    def get_conflict(self, conflict_id: str) -> Optional[BookingConflict]:
        ...

    @abstractmethod
    def save_conflict(self, conflict: BookingConflict) -> BookingConflict:
        ...

    # --- Privacy settings ---

    @abstractmethod
    def get_privacy_settings(self, user_id: str) -> Optional[PrivacySettings]:
        ...

    @abstractmethod
    def save_privacy_settings(self, privacy: PrivacySettings) -> PrivacySettings:
        ...

    def ping(self) -> bool:
        """Health check. Backends override to check connectivity."""
        return True
