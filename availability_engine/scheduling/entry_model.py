"""
Slot/Entry model: validated reads and writes of calendar days.

Every write goes through ``CalendarModel.upsert_entry``, which validates all
slots, rejects overlaps, derives the day status, and commits with a
compare-and-set on the entry version. Writing content identical to what is
stored is a no-op, which is what makes pattern application idempotent.

Usage:
    model = CalendarModel(store, broadcaster)
    entry = model.upsert_entry("user-1", date(2024, 6, 10), [TimeSlot(start="09:00", end="17:00")])
    assert entry.status == AvailabilityStatus.AVAILABLE
"""

import logging
import threading
from datetime import date
from typing import Callable, Iterable, Optional, Sequence

from availability_engine.config import settings
from availability_engine.errors import OverlapError, ValidationError, VersionConflictError
from availability_engine.schemas.calendar_schema import (
    AvailabilityStatus,
    AvailabilityUpdate,
    BulkUpdateResult,
    CalendarEntry,
    DateRange,
    SlotStatus,
    TimeSlot,
    entry_id_for,
)
from availability_engine.schemas.event_schema import AvailabilityUpdatedPayload, EventType
from availability_engine.realtime.broadcaster import RealtimeChangeBroadcaster
from availability_engine.scheduling.slot_validation import SlotValidator, default_validator
from availability_engine.store.base import CalendarStore
from availability_engine.utils import minutes_to_time, normalize_time, utc_now

logger = logging.getLogger(__name__)


def derive_status(slots: Sequence[TimeSlot]) -> AvailabilityStatus:
    """Aggregate a day's status from its slots.

    available iff all available, booked iff all booked,
    unavailable iff empty, partial otherwise.
    """
    if not slots:
        return AvailabilityStatus.UNAVAILABLE
    if all(s.status == SlotStatus.AVAILABLE and not s.is_booked for s in slots):
        return AvailabilityStatus.AVAILABLE
    if all(s.status == SlotStatus.BOOKED for s in slots):
        return AvailabilityStatus.BOOKED
    return AvailabilityStatus.PARTIAL


def subtract_interval(
    slots: Sequence[TimeSlot],
    start_minutes: int,
    end_minutes: int,
    min_minutes: int = settings.business.min_slot_minutes,
) -> list[TimeSlot]:
    """Cut ``[start, end)`` out of every slot that intersects it.

    Remnants shorter than ``min_minutes`` are dropped. The left remnant keeps
    the slot id; the right remnant gets an id derived from it so repeated
    cuts stay deterministic.
    """
    result: list[TimeSlot] = []
    for slot in slots:
        s, e = slot.start_minutes, slot.end_minutes
        if e <= start_minutes or s >= end_minutes:
            result.append(slot)
            continue
        if start_minutes - s >= min_minutes:
            result.append(slot.model_copy(update={"end": minutes_to_time(start_minutes)}))
        elif start_minutes > s:
            logger.debug("Dropping %d-minute remnant of %s", start_minutes - s, slot.label)
        if e - end_minutes >= min_minutes:
            right_id = f"{slot.id}-{minutes_to_time(end_minutes).replace(':', '')}"
            result.append(
                slot.model_copy(update={"id": right_id, "start": minutes_to_time(end_minutes)})
            )
        elif e > end_minutes:
            logger.debug("Dropping %d-minute remnant of %s", e - end_minutes, slot.label)
    return sorted(result, key=lambda s: s.start_minutes)


def merge_adjacent_available(
    slots: Sequence[TimeSlot],
    max_minutes: int = settings.business.max_slot_minutes,
) -> list[TimeSlot]:
    """Join touching plain available slots while the result stays within ``max_minutes``."""
    ordered = sorted(slots, key=lambda s: s.start_minutes)
    merged: list[TimeSlot] = []
    for slot in ordered:
        prev = merged[-1] if merged else None
        if (
            prev is not None
            and prev.status == SlotStatus.AVAILABLE
            and slot.status == SlotStatus.AVAILABLE
            and not prev.is_booked
            and not slot.is_booked
            and prev.end_minutes == slot.start_minutes
            and slot.end_minutes - prev.start_minutes <= max_minutes
            and prev.notes == slot.notes
        ):
            merged[-1] = prev.model_copy(update={"end": slot.end})
        else:
            merged.append(slot)
    return merged


class CalendarModel:
    """Validated access to a store's calendar entries."""

    def __init__(
        self,
        store: CalendarStore,
        broadcaster: Optional[RealtimeChangeBroadcaster] = None,
        validator: Optional[SlotValidator] = None,
        clock: Callable = utc_now,
    ) -> None:
        self._store = store
        self._broadcaster = broadcaster
        self._validator = validator or default_validator
        self._clock = clock

    @property
    def validator(self) -> SlotValidator:
        return self._validator

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_entry(self, user_id: str, day: date) -> Optional[CalendarEntry]:
        return self._store.get_entry(user_id, day)

    def get_entries_in_range(self, user_id: str, date_range: DateRange) -> list[CalendarEntry]:
        """Entries for the range, sorted by date. Never writes."""
        return self._store.get_entries(user_id, date_range)

    # ------------------------------------------------------------------ #
    # Writes
    # ------------------------------------------------------------------ #

    def normalize_slots(self, day: Optional[date], slots: Iterable[TimeSlot]) -> list[TimeSlot]:
        """Validate, zero-pad, and sort slots; raise on any violation or overlap."""
        slots = list(slots)
        self._validator.validate_slots(slots).raise_for_errors()
        normalized = [
            slot.model_copy(
                update={"start": normalize_time(slot.start), "end": normalize_time(slot.end)}
            )
            for slot in slots
        ]
        overlaps = self._validator.find_overlaps(normalized)
        if overlaps:
            raise OverlapError(day, overlaps)
        return sorted(normalized, key=lambda s: s.start_minutes)

    def upsert_entry(
        self,
        user_id: str,
        day: date,
        slots: Iterable[TimeSlot],
        *,
        notes: Optional[str] = None,
        recurring_pattern_id: Optional[str] = None,
        expected_version: Optional[int] = None,
        unlink_pattern: bool = False,
    ) -> CalendarEntry:
        """
        Replace the slots of one day.

        Args:
            notes: New day notes; ``None`` keeps the stored notes.
            recurring_pattern_id: Link the day to a pattern; ``None`` keeps
                the stored linkage.
            unlink_pattern: Drop the stored pattern link. Owner edits pass
                this so a later pattern run leaves the day alone.
            expected_version: Version the caller read. Defaults to the
                version read at the start of this call.

        Raises:
            ValidationError: Any slot breaks a rule (all violations listed).
            OverlapError: Two slots intersect.
            VersionConflictError: The entry changed since it was read.
        """
        ordered = self.normalize_slots(day, slots)
        existing = self._store.get_entry(user_id, day)

        linked_pattern = recurring_pattern_id
        if linked_pattern is None and existing is not None and not unlink_pattern:
            linked_pattern = existing.recurring_pattern_id

        candidate = CalendarEntry(
            id=entry_id_for(user_id, day),
            user_id=user_id,
            date=day,
            status=derive_status(ordered),
            time_slots=ordered,
            is_recurring=linked_pattern is not None,
            recurring_pattern_id=linked_pattern,
            notes=notes if notes is not None else (existing.notes if existing else None),
        )
        return self._commit(existing, candidate, expected_version)

    def _commit(
        self,
        existing: Optional[CalendarEntry],
        candidate: CalendarEntry,
        expected_version: Optional[int],
    ) -> CalendarEntry:
        if existing is not None and existing.content_key() == candidate.content_key():
            if expected_version is not None and expected_version != existing.version:
                raise VersionConflictError(
                    candidate.user_id, candidate.date, expected_version, existing.version
                )
            logger.debug("Entry %s unchanged; skipping write", candidate.id)
            return existing

        now = self._clock()
        candidate.created_at = existing.created_at if existing else now
        candidate.updated_at = now
        if expected_version is None:
            expected_version = existing.version if existing else 0

        stored = self._store.upsert_entry(candidate, expected_version=expected_version)
        logger.info(
            "Entry %s written (%s, %d slots, v%d)",
            stored.id, stored.status.value, len(stored.time_slots), stored.version,
        )
        self._emit(
            stored.user_id,
            AvailabilityUpdatedPayload(
                action="update" if existing else "insert",
                date=stored.date,
                entry=stored,
                previous_version=existing.version if existing else None,
            ),
        )
        return stored

    def set_time_slots(
        self,
        user_id: str,
        day: date,
        slots: Iterable[TimeSlot],
        notes: Optional[str] = None,
    ) -> CalendarEntry:
        """Owner edit of a day's slots. Slots holding bookings must be kept as they are."""
        slots = list(slots)
        existing = self._store.get_entry(user_id, day)
        if existing is not None:
            incoming = {s.id: s for s in slots}
            errors = []
            for held in existing.booked_slots():
                if held.booking_id is None:
                    continue
                replacement = incoming.get(held.id)
                if replacement is None or (
                    normalize_time(replacement.start), normalize_time(replacement.end),
                    replacement.status, replacement.booking_id,
                ) != (held.start, held.end, held.status, held.booking_id):
                    errors.append(
                        f"Cannot remove or change {held.label}: booking {held.booking_id} holds it"
                    )
            if errors:
                raise ValidationError(errors)
        return self.upsert_entry(
            user_id, day, slots, notes=notes,
            expected_version=existing.version if existing else 0,
            unlink_pattern=True,
        )

    def mark_unavailable(self, user_id: str, day: date, notes: Optional[str] = None) -> CalendarEntry:
        """Clear a day. Refused while any slot holds a booking."""
        existing = self._store.get_entry(user_id, day)
        if existing is not None:
            held = existing.booked_slots()
            if held:
                raise ValidationError([
                    f"Cannot mark time as unavailable - booking exists: {slot.label}"
                    for slot in held
                ])
        return self.upsert_entry(
            user_id, day, [], notes=notes,
            expected_version=existing.version if existing else 0,
            unlink_pattern=True,
        )

    def update_availability(self, user_id: str, update: AvailabilityUpdate) -> CalendarEntry:
        """Apply one owner update: new slots, new notes, or a day marked unavailable."""
        if update.status == AvailabilityStatus.UNAVAILABLE:
            return self.mark_unavailable(user_id, update.date, update.notes)
        if update.status is not None and update.time_slots is None:
            raise ValidationError(
                [f"Day status is derived from time slots; cannot set it to {update.status.value}"]
            )
        if update.time_slots is not None:
            return self.set_time_slots(user_id, update.date, update.time_slots, update.notes)

        existing = self._store.get_entry(user_id, update.date)
        current_slots = existing.time_slots if existing else []
        return self.upsert_entry(
            user_id, update.date, current_slots, notes=update.notes,
            expected_version=existing.version if existing else 0,
        )

    def bulk_update(
        self,
        user_id: str,
        updates: Iterable[AvailabilityUpdate],
        cancel_event: Optional[threading.Event] = None,
    ) -> BulkUpdateResult:
        """Write many days; each date commits on its own and failures are collected."""
        result = BulkUpdateResult()
        for update in updates:
            if cancel_event is not None and cancel_event.is_set():
                logger.info("Bulk update cancelled after %d entries", result.entries_written)
                result.cancelled = True
                break
            try:
                entry = self.update_availability(user_id, update)
            except (ValidationError, OverlapError, VersionConflictError) as exc:
                result.errors.append(f"{update.date.isoformat()}: {exc}")
                continue
            result.entries_written += 1
            result.slots_written += len(entry.time_slots)
        return result

    def detach_pattern(self, user_id: str, pattern_id: str) -> int:
        """Drop the pattern linkage from every entry it produced; slots are kept."""
        detached = 0
        for entry in self._store.entries_for_pattern(user_id, pattern_id):
            candidate = entry.model_copy(
                update={"is_recurring": False, "recurring_pattern_id": None}
            )
            self._commit(entry, candidate, entry.version)
            detached += 1
        logger.info("Detached %d entries from pattern %s", detached, pattern_id)
        return detached

    def _emit(self, user_id: str, payload: AvailabilityUpdatedPayload) -> None:
        if self._broadcaster is not None:
            self._broadcaster.emit(EventType.AVAILABILITY_UPDATED, payload, user_id)
