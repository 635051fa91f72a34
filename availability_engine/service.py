"""
Public operation surface of the scheduling engine.

``AvailabilityService`` wires the store, broadcaster, and every component
together and exposes the operations callers use. The broadcaster is owned
here: ``start()`` connects it and ``close()`` drops its subscriptions.

Usage:
    with AvailabilityService() as service:
        service.set_time_slots("owner-1", date(2024, 6, 10), [TimeSlot(start="09:00", end="17:00")])
        booking = service.create_booking("owner-1", date(2024, 6, 10), "10:00", "11:00",
                                         job_id="JOB-1", client=ClientInfo(client_id="c1", name="Ana"))
"""

import logging
import threading
from datetime import date
from typing import Any, Callable, Iterable, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from availability_engine.codecs.import_export import ImportExportCodec, ImportResult
from availability_engine.config import settings
from availability_engine.errors import StoreError, ValidationError
from availability_engine.realtime.broadcaster import RealtimeChangeBroadcaster
from availability_engine.schemas.booking_schema import (
    BookingCandidate,
    BookingConflict,
    BookingReference,
    BookingStatus,
    ClientInfo,
    ConflictReport,
    ConflictResolution,
)
from availability_engine.schemas.calendar_schema import (
    AvailabilityUpdate,
    BulkUpdateResult,
    CalendarEntry,
    DateRange,
    TimeSlot,
)
from availability_engine.schemas.pattern_schema import (
    PatternApplyResult,
    PatternDraft,
    PatternPreview,
    PatternStats,
    PatternTemplate,
    PatternUpdate,
    RecurringPattern,
)
from availability_engine.schemas.privacy_schema import PrivacySettings, VisibleEntry
from availability_engine.scheduling.analytics import AvailabilityStats, compute_availability_stats
from availability_engine.scheduling.booking_lifecycle import BookingLifecycleManager
from availability_engine.scheduling.conflict_detector import ConflictDetector
from availability_engine.scheduling.entry_model import CalendarModel
from availability_engine.scheduling.privacy_filter import PrivacyFilter
from availability_engine.scheduling.recurring_patterns import RecurringPatternEngine
from availability_engine.scheduling.slot_validation import SlotValidator, default_validator
from availability_engine.store.base import CalendarStore
from availability_engine.store.memory import InMemoryCalendarStore
from availability_engine.utils import utc_now

logger = logging.getLogger(__name__)


class AvailabilityService:
    """Facade over the calendar, pattern, booking, privacy and transfer components."""

    def __init__(
        self,
        store: Optional[CalendarStore] = None,
        broadcaster: Optional[RealtimeChangeBroadcaster] = None,
        validator: Optional[SlotValidator] = None,
        clock: Callable = utc_now,
        auto_decline_policy: str = settings.booking.auto_decline_policy,
    ) -> None:
        self.store = store if store is not None else InMemoryCalendarStore()
        self.broadcaster = broadcaster if broadcaster is not None else RealtimeChangeBroadcaster()
        self._clock = clock

        validator = validator or default_validator
        self.calendar = CalendarModel(self.store, self.broadcaster, validator, clock)
        self.detector = ConflictDetector(self.store)
        self.patterns = RecurringPatternEngine(
            self.store, self.calendar, self.broadcaster, validator, clock
        )
        self.bookings = BookingLifecycleManager(
            self.store, self.calendar, self.detector, self.broadcaster, clock, auto_decline_policy
        )
        self.privacy = PrivacyFilter(self.store)
        self.codec = ImportExportCodec(self.store, self.calendar)

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def start(self) -> "AvailabilityService":
        self.broadcaster.connect()
        logger.info("%s started", settings.app_name)
        return self

    def close(self) -> None:
        self.broadcaster.disconnect()
        logger.info("%s closed", settings.app_name)

    def __enter__(self) -> "AvailabilityService":
        return self.start()

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def health_check(self) -> dict[str, Any]:
        try:
            store_ok = bool(self.store.ping())
        except StoreError:
            logger.warning("Store health check failed", exc_info=True)
            store_ok = False
        return {
            "status": "ok" if store_ok else "degraded",
            "store": store_ok,
            "broadcaster_connected": self.broadcaster.is_connected,
        }

    # ------------------------------------------------------------------ #
    # Calendar
    # ------------------------------------------------------------------ #

    def get_availability(self, user_id: str, date_range: DateRange) -> list[CalendarEntry]:
        return self.calendar.get_entries_in_range(user_id, date_range)

    def get_visible_availability(
        self, owner_id: str, viewer_id: Optional[str], date_range: DateRange
    ) -> list[VisibleEntry]:
        return self.privacy.visible_view(owner_id, viewer_id, date_range)

    def update_availability(self, user_id: str, update: AvailabilityUpdate) -> CalendarEntry:
        return self.calendar.update_availability(user_id, update)

    def set_time_slots(
        self, user_id: str, day: date, slots: Iterable[TimeSlot], notes: Optional[str] = None
    ) -> CalendarEntry:
        return self.calendar.set_time_slots(user_id, day, slots, notes)

    def bulk_update_availability(
        self,
        user_id: str,
        updates: Iterable[AvailabilityUpdate],
        cancel_event: Optional[threading.Event] = None,
    ) -> BulkUpdateResult:
        return self.calendar.bulk_update(user_id, updates, cancel_event)

    # ------------------------------------------------------------------ #
    # Recurring patterns
    # ------------------------------------------------------------------ #

    def create_pattern(self, user_id: str, draft: PatternDraft) -> RecurringPattern:
        return self.patterns.create_pattern(user_id, draft)

    def update_pattern(self, pattern_id: str, update: PatternUpdate) -> RecurringPattern:
        return self.patterns.update_pattern(pattern_id, update)

    def delete_pattern(self, pattern_id: str) -> int:
        return self.patterns.delete_pattern(pattern_id)

    def list_patterns(self, user_id: str) -> list[RecurringPattern]:
        return self.patterns.list_patterns(user_id)

    def apply_pattern(
        self,
        pattern_id: str,
        date_range: DateRange,
        overwrite_existing: bool = False,
        skip_conflicts: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> PatternApplyResult:
        return self.patterns.apply_pattern(
            pattern_id, date_range, overwrite_existing, skip_conflicts, cancel_event
        )

    def preview_pattern(
        self, pattern: Union[str, RecurringPattern], date_range: DateRange
    ) -> PatternPreview:
        if isinstance(pattern, str):
            pattern = self.patterns.get_pattern(pattern)
        return self.patterns.preview_pattern(pattern, date_range)

    def add_pattern_exceptions(self, pattern_id: str, dates: Iterable[date]) -> RecurringPattern:
        return self.patterns.add_exceptions(pattern_id, dates)

    def remove_pattern_exceptions(self, pattern_id: str, dates: Iterable[date]) -> RecurringPattern:
        return self.patterns.remove_exceptions(pattern_id, dates)

    def toggle_pattern_status(self, pattern_id: str) -> RecurringPattern:
        return self.patterns.toggle_pattern_status(pattern_id)

    def get_pattern_stats(self, pattern_id: str) -> PatternStats:
        return self.patterns.get_pattern_stats(pattern_id)

    def get_pattern_templates(self) -> list[PatternTemplate]:
        return self.patterns.get_pattern_templates()

    # ------------------------------------------------------------------ #
    # Bookings
    # ------------------------------------------------------------------ #

    def create_booking(
        self,
        user_id: str,
        day: date,
        start: str,
        end: str,
        job_id: str,
        client: ClientInfo,
        job_title: Optional[str] = None,
        rate_per_hour: Optional[float] = None,
    ) -> BookingReference:
        return self.bookings.create_booking(
            user_id, day, start, end, job_id, client, job_title, rate_per_hour
        )

    def detect_booking_conflicts(
        self,
        user_id: str,
        candidate: BookingCandidate,
        exclude_booking_id: Optional[str] = None,
    ) -> ConflictReport:
        return self.detector.report(user_id, candidate, exclude_booking_id)

    def get_booking(self, booking_id: str) -> BookingReference:
        return self.bookings.get_booking(booking_id)

    def get_bookings(self, user_id: str) -> list[BookingReference]:
        return self.bookings.get_bookings(user_id)

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> BookingReference:
        return self.bookings.update_booking_status(booking_id, status)

    def get_booking_conflicts(self, user_id: str, pending_only: bool = False) -> list[BookingConflict]:
        return self.bookings.get_conflicts(user_id, pending_only)

    def resolve_conflict(self, conflict_id: str, action: ConflictResolution) -> BookingConflict:
        return self.bookings.resolve_conflict(conflict_id, action)

    # ------------------------------------------------------------------ #
    # Privacy
    # ------------------------------------------------------------------ #

    def get_privacy_settings(self, user_id: str) -> PrivacySettings:
        return self.privacy.settings_for(user_id)

    def update_privacy_settings(self, user_id: str, changes: dict[str, Any]) -> PrivacySettings:
        """Merge ``changes`` into the stored settings and validate the result."""
        current = self.privacy.settings_for(user_id)
        merged = {**current.model_dump(), **changes, "user_id": user_id, "updated_at": self._clock()}
        try:
            updated = PrivacySettings.model_validate(merged)
        except PydanticValidationError as exc:
            raise ValidationError(
                [f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in exc.errors()]
            ) from exc
        saved = self.store.save_privacy_settings(updated)
        logger.info("Privacy settings updated for %s (%s)", user_id, ", ".join(sorted(changes)))
        return saved

    # ------------------------------------------------------------------ #
    # Import / export and statistics
    # ------------------------------------------------------------------ #

    def export_calendar(self, user_id: str, date_range: DateRange, fmt: str) -> str:
        return self.codec.export_calendar(user_id, date_range, fmt)

    def import_calendar(
        self,
        user_id: str,
        content: str,
        fmt: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportResult:
        return self.codec.import_calendar(user_id, content, fmt, cancel_event)

    def get_availability_stats(self, user_id: str, date_range: DateRange) -> AvailabilityStats:
        return compute_availability_stats(self.store.get_entries(user_id, date_range))


def create_service(store: Optional[CalendarStore] = None, **kwargs: Any) -> AvailabilityService:
    """Build a service and connect its broadcaster."""
    return AvailabilityService(store=store, **kwargs).start()
