"""
Booking lifecycle: request, confirm, complete, cancel.

Every status change goes through the ``TRANSITIONS`` table; anything not
listed is rejected with the allowed targets in the error message.

    requested -> confirmed -> completed
    requested -> cancelled
    confirmed -> cancelled

A new request is checked against the owner's booked slots. When the owner
has auto-decline on, the configured policy decides which overlaps reject
the request outright. Otherwise each overlap is recorded as a pending
``BookingConflict`` and the request waits off-calendar for the owner to
resolve it. A request with no overlap is placed at once as a ``tentative``
slot carved out of the owner's available time.

Usage:
    manager = BookingLifecycleManager(store, calendar_model, detector)
    booking = manager.create_booking("owner-1", date(2024, 6, 10), "10:00", "11:00",
                                     job_id="JOB-1", client=ClientInfo(client_id="c1", name="Ana"))
    manager.confirm_booking(booking.id)
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import Callable, Optional

from availability_engine.config import settings
from availability_engine.errors import (
    BookingConflictError,
    BookingNotFoundError,
    ConflictNotFoundError,
    InvalidTransitionError,
    ValidationError,
    VersionConflictError,
)
from availability_engine.schemas.booking_schema import (
    BookingCandidate,
    BookingConflict,
    BookingReference,
    BookingStatus,
    ClientInfo,
    ConflictResolution,
    ConflictType,
    DetectedConflict,
    OverlapKind,
    ResolutionStatus,
)
from availability_engine.schemas.calendar_schema import CalendarEntry, SlotStatus, TimeSlot
from availability_engine.schemas.event_schema import (
    BookingUpdatedPayload,
    ConflictDetectedPayload,
    EventType,
)
from availability_engine.schemas.privacy_schema import PrivacySettings
from availability_engine.realtime.broadcaster import RealtimeChangeBroadcaster
from availability_engine.scheduling.conflict_detector import ConflictDetector, detect_in_slots
from availability_engine.scheduling.entry_model import (
    CalendarModel,
    merge_adjacent_available,
    subtract_interval,
)
from availability_engine.store.base import CalendarStore
from availability_engine.utils import (
    intervals_overlap,
    new_id,
    normalize_time,
    time_to_minutes,
    utc_now,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StatusTransition:
    """A single valid booking status change."""
    from_status: BookingStatus
    to_status: BookingStatus


TRANSITIONS: list[StatusTransition] = [
    StatusTransition(BookingStatus.REQUESTED, BookingStatus.CONFIRMED),
    StatusTransition(BookingStatus.REQUESTED, BookingStatus.CANCELLED),
    StatusTransition(BookingStatus.CONFIRMED, BookingStatus.COMPLETED),
    StatusTransition(BookingStatus.CONFIRMED, BookingStatus.CANCELLED),
]


def allowed_targets(status: BookingStatus) -> list[BookingStatus]:
    return [t.to_status for t in TRANSITIONS if t.from_status == status]


def check_transition(current: BookingStatus, target: BookingStatus) -> None:
    """Raise ``InvalidTransitionError`` unless ``current -> target`` is in the table."""
    allowed = allowed_targets(current)
    if target not in allowed:
        names = [s.value for s in allowed] or ["none"]
        raise InvalidTransitionError(
            f"Cannot move booking from {current.value} to {target.value}. "
            f"Allowed: {names}"
        )


_CONFLICT_TYPES = {
    OverlapKind.FULL_OVERLAP: ConflictType.DOUBLE_BOOKING,
    OverlapKind.PARTIAL_OVERLAP: ConflictType.SCHEDULE_OVERLAP,
}


class BookingLifecycleManager:
    """Creates bookings, drives their status, and keeps the calendar in step."""

    def __init__(
        self,
        store: CalendarStore,
        calendar_model: CalendarModel,
        detector: Optional[ConflictDetector] = None,
        broadcaster: Optional[RealtimeChangeBroadcaster] = None,
        clock: Callable = utc_now,
        auto_decline_policy: str = settings.booking.auto_decline_policy,
    ) -> None:
        self._store = store
        self._calendar = calendar_model
        self._detector = detector or ConflictDetector(store)
        self._broadcaster = broadcaster
        self._clock = clock
        self._auto_decline_policy = auto_decline_policy

    # ------------------------------------------------------------------ #
    # Lookups
    # ------------------------------------------------------------------ #

    def get_booking(self, booking_id: str) -> BookingReference:
        booking = self._store.get_booking(booking_id)
        if booking is None:
            raise BookingNotFoundError(f"Booking {booking_id!r} not found")
        return booking

    def get_bookings(self, user_id: str) -> list[BookingReference]:
        """All of an owner's bookings, any status, in calendar order."""
        return sorted(self._store.get_bookings(user_id), key=lambda b: (b.date, b.start))

    def get_conflicts(self, user_id: str, pending_only: bool = False) -> list[BookingConflict]:
        conflicts = self._store.get_conflicts(user_id)
        if pending_only:
            conflicts = [c for c in conflicts if c.resolution_status == ResolutionStatus.PENDING]
        return sorted(conflicts, key=lambda c: (c.affected_date, c.affected_start))

    def _privacy(self, user_id: str) -> PrivacySettings:
        return self._store.get_privacy_settings(user_id) or PrivacySettings(user_id=user_id)

    # ------------------------------------------------------------------ #
    # Create
    # ------------------------------------------------------------------ #

    def _declines(self, hits: list[DetectedConflict]) -> bool:
        if self._auto_decline_policy == "any_overlap":
            return bool(hits)
        if self._auto_decline_policy == "full_overlap":
            return any(h.overlap == OverlapKind.FULL_OVERLAP for h in hits)
        return False

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
        """
        Request a booking on an owner's calendar.

        Raises:
            ValidationError: Bad interval, outside lead time or advance window,
                or the owner does not accept requests.
            BookingConflictError: Auto-declined, the time is blocked, or a
                concurrent write won (``retryable=True``).
        """
        privacy = self._privacy(user_id)
        validator = self._calendar.validator
        result = validator.validate_times(start, end)
        result.extend(
            validator.validate_booking_window(
                day, start, self._clock(), privacy.lead_time_hours, privacy.advance_booking_days
            )
        )
        if not privacy.allow_booking_requests:
            result.errors.append(f"{user_id} is not accepting booking requests")
        result.raise_for_errors()

        start, end = normalize_time(start), normalize_time(end)
        hits = self._detector.detect(user_id, BookingCandidate(date=day, start=start, end=end))
        if hits and privacy.auto_decline_conflicts and self._declines(hits):
            logger.info("Booking request on %s %s-%s auto-declined", day.isoformat(), start, end)
            raise BookingConflictError(
                f"Booking auto-declined: {hits[0].describe()}", conflicts=hits
            )

        now = self._clock()
        booking = BookingReference(
            id=new_id("BK"),
            user_id=user_id,
            job_id=job_id,
            job_title=job_title,
            client_id=client.client_id,
            client_name=client.name,
            date=day,
            start=start,
            end=end,
            rate_per_hour=rate_per_hour,
            created_at=now,
        )
        if not hits:
            booking.slot_id = self._place(booking, SlotStatus.TENTATIVE)

        saved = self._store.save_booking(booking)
        logger.info(
            "Booking %s requested for %s on %s %s-%s (%s)",
            saved.id, user_id, day.isoformat(), start, end,
            "placed" if saved.is_placed else f"{len(hits)} conflict(s)",
        )
        self._emit_booking(saved, action="created")

        for hit in hits:
            self._record_conflict(saved, hit)
        return saved

    def _record_conflict(self, booking: BookingReference, hit: DetectedConflict) -> BookingConflict:
        conflict = BookingConflict(
            id=new_id("CF"),
            user_id=booking.user_id,
            conflict_type=_CONFLICT_TYPES[hit.overlap],
            overlap=hit.overlap,
            primary_booking_id=hit.booking_id,
            conflicting_booking_id=booking.id,
            affected_date=hit.date,
            affected_start=hit.overlap_start,
            affected_end=hit.overlap_end,
            created_at=self._clock(),
        )
        saved = self._store.save_conflict(conflict)
        logger.warning(
            "Conflict %s: booking %s %s with %s",
            saved.id, booking.id, hit.overlap.value, hit.booking_id or hit.slot_id,
        )
        if self._broadcaster is not None:
            self._broadcaster.emit(
                EventType.CONFLICT_DETECTED, ConflictDetectedPayload(conflict=saved), saved.user_id
            )
        return saved

    # ------------------------------------------------------------------ #
    # Calendar placement
    # ------------------------------------------------------------------ #

    def _write_slots(self, booking: BookingReference, entry: Optional[CalendarEntry], slots) -> None:
        try:
            self._calendar.upsert_entry(
                booking.user_id, booking.date, slots,
                expected_version=entry.version if entry else 0,
            )
        except VersionConflictError as exc:
            raise BookingConflictError(
                f"Calendar for {booking.date.isoformat()} changed while updating booking "
                f"{booking.id}; retry",
                retryable=True,
            ) from exc

    def _place(self, booking: BookingReference, status: SlotStatus) -> str:
        """Put the booking's slot on the calendar, or promote it if already there."""
        entry = self._store.get_entry(booking.user_id, booking.date)
        slots = list(entry.time_slots) if entry else []

        if booking.slot_id is not None:
            for index, slot in enumerate(slots):
                if slot.id == booking.slot_id:
                    slots[index] = slot.model_copy(update={"status": status, "is_booked": True})
                    self._write_slots(booking, entry, slots)
                    return slot.id

        candidate = BookingCandidate(date=booking.date, start=booking.start, end=booking.end)
        held = detect_in_slots(candidate, slots, exclude_booking_id=booking.id)
        if held:
            raise BookingConflictError(
                f"{booking.start}-{booking.end} is held by another booking: {held[0].describe()}",
                conflicts=held,
            )

        start_min = time_to_minutes(booking.start)
        end_min = time_to_minutes(booking.end)
        blocked = [
            s for s in slots
            if s.status == SlotStatus.BLOCKED
            and intervals_overlap(start_min, end_min, s.start_minutes, s.end_minutes)
        ]
        if blocked:
            raise BookingConflictError(
                f"{booking.start}-{booking.end} overlaps blocked time {blocked[0].label}"
            )

        remaining = subtract_interval(
            slots, start_min, end_min, self._calendar.validator.min_slot_minutes
        )
        placed = TimeSlot(
            id=f"{booking.id}-SL",
            start=booking.start,
            end=booking.end,
            status=status,
            is_booked=True,
            booking_id=booking.id,
            job_id=booking.job_id,
            job_title=booking.job_title,
            client_name=booking.client_name,
            rate_per_hour=booking.rate_per_hour,
        )
        self._write_slots(booking, entry, remaining + [placed])
        return placed.id

    def _release(self, booking: BookingReference) -> None:
        """Turn the booking's slot back into available time."""
        entry = self._store.get_entry(booking.user_id, booking.date)
        if entry is None:
            return
        kept: list[TimeSlot] = []
        freed: Optional[TimeSlot] = None
        for slot in entry.time_slots:
            if slot.booking_id == booking.id or slot.id == booking.slot_id:
                freed = TimeSlot(id=slot.id, start=slot.start, end=slot.end)
            else:
                kept.append(slot)
        if freed is None:
            return

        # Keep only the part of the freed interval no other booking holds.
        pieces = [freed]
        for other in kept:
            if other.holds_booking:
                pieces = subtract_interval(
                    pieces, other.start_minutes, other.end_minutes,
                    self._calendar.validator.min_slot_minutes,
                )
        slots = merge_adjacent_available(
            kept + pieces, self._calendar.validator.max_slot_minutes
        )
        self._write_slots(booking, entry, slots)

    # ------------------------------------------------------------------ #
    # Status changes
    # ------------------------------------------------------------------ #

    def confirm_booking(self, booking_id: str) -> BookingReference:
        booking = self.get_booking(booking_id)
        check_transition(booking.status, BookingStatus.CONFIRMED)
        previous = booking.status
        booking.slot_id = self._place(booking, SlotStatus.BOOKED)
        booking.status = BookingStatus.CONFIRMED
        booking.confirmed_at = self._clock()
        return self._save_transition(booking, previous)

    def complete_booking(self, booking_id: str) -> BookingReference:
        booking = self.get_booking(booking_id)
        check_transition(booking.status, BookingStatus.COMPLETED)
        previous = booking.status
        booking.status = BookingStatus.COMPLETED
        booking.completed_at = self._clock()
        return self._save_transition(booking, previous)

    def cancel_booking(self, booking_id: str) -> BookingReference:
        booking = self.get_booking(booking_id)
        check_transition(booking.status, BookingStatus.CANCELLED)
        previous = booking.status
        if booking.is_placed:
            self._release(booking)
            booking.slot_id = None
        booking.status = BookingStatus.CANCELLED
        booking.cancelled_at = self._clock()
        return self._save_transition(booking, previous)

    def update_booking_status(self, booking_id: str, status: BookingStatus) -> BookingReference:
        handlers = {
            BookingStatus.CONFIRMED: self.confirm_booking,
            BookingStatus.COMPLETED: self.complete_booking,
            BookingStatus.CANCELLED: self.cancel_booking,
        }
        handler = handlers.get(status)
        if handler is None:
            booking = self.get_booking(booking_id)
            check_transition(booking.status, status)
            raise InvalidTransitionError(f"No handler for status {status.value}")
        return handler(booking_id)

    def _save_transition(self, booking: BookingReference, previous: BookingStatus) -> BookingReference:
        saved = self._store.save_booking(booking)
        logger.info("Booking %s: %s -> %s", saved.id, previous.value, saved.status.value)
        self._emit_booking(saved, action="status_changed", previous_status=previous)
        return saved

    def _emit_booking(
        self,
        booking: BookingReference,
        action: str,
        previous_status: Optional[BookingStatus] = None,
    ) -> None:
        if self._broadcaster is not None:
            self._broadcaster.emit(
                EventType.BOOKING_UPDATED,
                BookingUpdatedPayload(action=action, booking=booking, previous_status=previous_status),
                booking.user_id,
            )

    # ------------------------------------------------------------------ #
    # Conflict resolution
    # ------------------------------------------------------------------ #

    def resolve_conflict(self, conflict_id: str, action: ConflictResolution) -> BookingConflict:
        """Mark a conflict resolved; ``auto_decline`` also cancels the conflicting booking."""
        conflict = self._store.get_conflict(conflict_id)
        if conflict is None:
            raise ConflictNotFoundError(f"Conflict {conflict_id!r} not found")
        if conflict.resolution_status == ResolutionStatus.RESOLVED:
            raise ValidationError([f"Conflict {conflict_id} is already resolved"])

        if action == ConflictResolution.AUTO_DECLINE:
            losing = self._store.get_booking(conflict.conflicting_booking_id)
            if losing is not None and BookingStatus.CANCELLED in allowed_targets(losing.status):
                self.cancel_booking(losing.id)

        conflict.resolution_status = ResolutionStatus.RESOLVED
        conflict.resolution_action = action
        conflict.resolved_at = self._clock()
        saved = self._store.save_conflict(conflict)
        logger.info("Conflict %s resolved with %s", saved.id, action.value)
        if self._broadcaster is not None:
            self._broadcaster.emit(
                EventType.CONFLICT_DETECTED,
                ConflictDetectedPayload(conflict=saved, requires_attention=False, resolved=True),
                saved.user_id,
            )
        return saved
