"""Tests for validated calendar entry writes."""

import threading
from datetime import date

import pytest

from availability_engine.errors import OverlapError, ValidationError, VersionConflictError
from availability_engine.schemas.calendar_schema import (
    AvailabilityStatus,
    AvailabilityUpdate,
    DateRange,
    SlotStatus,
)
from availability_engine.schemas.event_schema import EventType
from availability_engine.scheduling.entry_model import (
    derive_status,
    merge_adjacent_available,
    subtract_interval,
)
from tests.conftest import MONDAY, OWNER, TUESDAY, make_slot, slot_tuples


class TestDeriveStatus:
    def test_empty_is_unavailable(self):
        assert derive_status([]) == AvailabilityStatus.UNAVAILABLE

    def test_all_available(self):
        slots = [make_slot("09:00", "12:00"), make_slot("13:00", "17:00")]
        assert derive_status(slots) == AvailabilityStatus.AVAILABLE

    def test_all_booked(self):
        assert derive_status([make_slot("09:00", "12:00", SlotStatus.BOOKED)]) == AvailabilityStatus.BOOKED

    def test_mixed_is_partial(self):
        slots = [make_slot("09:00", "12:00"), make_slot("13:00", "17:00", SlotStatus.BOOKED)]
        assert derive_status(slots) == AvailabilityStatus.PARTIAL

    def test_tentative_is_partial(self):
        slots = [make_slot("09:00", "12:00", SlotStatus.TENTATIVE, is_booked=True)]
        assert derive_status(slots) == AvailabilityStatus.PARTIAL

    def test_all_blocked_is_partial(self):
        assert derive_status([make_slot("09:00", "12:00", SlotStatus.BLOCKED)]) == AvailabilityStatus.PARTIAL


class TestUpsertEntry:
    def test_creates_sorted_normalized_entry(self, calendar_model):
        entry = calendar_model.upsert_entry(
            OWNER, MONDAY, [make_slot("13:00", "17:00"), make_slot("9:00", "12:00")]
        )
        assert entry.status == AvailabilityStatus.AVAILABLE
        assert [(s.start, s.end) for s in entry.time_slots] == [("09:00", "12:00"), ("13:00", "17:00")]
        assert entry.version == 1
        assert entry.id == f"{OWNER}:{MONDAY.isoformat()}"

    def test_overlap_rejects_whole_entry(self, calendar_model, store):
        with pytest.raises(OverlapError) as exc_info:
            calendar_model.upsert_entry(
                OWNER, MONDAY, [make_slot("09:00", "12:00"), make_slot("11:00", "13:00")]
            )
        assert exc_info.value.overlaps == [("09:00-12:00", "11:00-13:00")]
        assert store.get_entry(OWNER, MONDAY) is None

    def test_touching_slots_accepted(self, calendar_model):
        entry = calendar_model.upsert_entry(
            OWNER, MONDAY, [make_slot("09:00", "11:00"), make_slot("11:00", "13:00")]
        )
        assert len(entry.time_slots) == 2

    def test_validation_lists_every_violation(self, calendar_model):
        with pytest.raises(ValidationError) as exc_info:
            calendar_model.upsert_entry(
                OWNER, MONDAY, [make_slot("10:00", "09:00"), make_slot("05:00", "07:00")]
            )
        assert len(exc_info.value.errors) == 2

    def test_identical_write_is_noop(self, calendar_model, events):
        slots = [make_slot("09:00", "12:00", slot_id="s1")]
        first = calendar_model.upsert_entry(OWNER, MONDAY, slots)
        second = calendar_model.upsert_entry(OWNER, MONDAY, slots)
        assert second.version == first.version == 1
        assert len(events) == 1

    def test_update_bumps_version(self, calendar_model):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        entry = calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("13:00", "17:00")])
        assert entry.version == 2
        assert slot_tuples(entry) == [("13:00", "17:00", "available")]

    def test_stale_expected_version_rejected(self, calendar_model):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        with pytest.raises(VersionConflictError) as exc_info:
            calendar_model.upsert_entry(
                OWNER, MONDAY, [make_slot("13:00", "17:00")], expected_version=0
            )
        assert exc_info.value.actual == 1

    def test_notes_kept_when_not_given(self, calendar_model):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")], notes="studio")
        entry = calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("13:00", "17:00")])
        assert entry.notes == "studio"

    def test_pattern_link_kept_by_plain_write(self, calendar_model):
        calendar_model.upsert_entry(
            OWNER, MONDAY, [make_slot("09:00", "17:00")], recurring_pattern_id="PT-1"
        )
        entry = calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        assert entry.recurring_pattern_id == "PT-1"

    def test_owner_edits_drop_pattern_link(self, calendar_model):
        calendar_model.upsert_entry(
            OWNER, MONDAY, [make_slot("09:00", "17:00")], recurring_pattern_id="PT-1"
        )
        calendar_model.upsert_entry(
            OWNER, TUESDAY, [make_slot("09:00", "17:00")], recurring_pattern_id="PT-1"
        )
        edited = calendar_model.set_time_slots(OWNER, MONDAY, [make_slot("09:00", "17:00")])
        cleared = calendar_model.mark_unavailable(OWNER, TUESDAY)
        assert (edited.recurring_pattern_id, edited.is_recurring) == (None, False)
        assert (cleared.recurring_pattern_id, cleared.is_recurring) == (None, False)
        assert edited.version == 2

    def test_emits_insert_then_update(self, calendar_model, events):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("13:00", "17:00")])
        assert [e.type for e in events] == [EventType.AVAILABILITY_UPDATED] * 2
        assert events[0].payload.action == "insert"
        assert events[1].payload.action == "update"
        assert events[1].payload.previous_version == 1
        assert events[1].user_id == OWNER


class TestReads:
    def test_range_sorted_and_bounded(self, calendar_model):
        calendar_model.upsert_entry(OWNER, TUESDAY, [make_slot("09:00", "12:00")])
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        calendar_model.upsert_entry(OWNER, date(2024, 7, 1), [make_slot("09:00", "12:00")])
        entries = calendar_model.get_entries_in_range(OWNER, DateRange(MONDAY, TUESDAY))
        assert [e.date for e in entries] == [MONDAY, TUESDAY]

    def test_missing_entry(self, calendar_model):
        assert calendar_model.get_entry(OWNER, MONDAY) is None


class TestBookingProtection:
    @pytest.fixture
    def booked_day(self, calendar_model):
        return calendar_model.upsert_entry(
            OWNER,
            MONDAY,
            [
                make_slot("09:00", "10:00"),
                make_slot("10:00", "11:00", SlotStatus.BOOKED, slot_id="held", booking_id="BK-1"),
            ],
        )

    def test_set_time_slots_cannot_drop_booking(self, calendar_model, booked_day):
        with pytest.raises(ValidationError, match="BK-1"):
            calendar_model.set_time_slots(OWNER, MONDAY, [make_slot("09:00", "10:00")])

    def test_set_time_slots_cannot_move_booking(self, calendar_model, booked_day):
        moved = booked_day.time_slots[1].model_copy(update={"start": "11:00", "end": "12:00"})
        with pytest.raises(ValidationError):
            calendar_model.set_time_slots(OWNER, MONDAY, [moved])

    def test_set_time_slots_keeping_booking(self, calendar_model, booked_day):
        held = booked_day.time_slots[1]
        entry = calendar_model.set_time_slots(OWNER, MONDAY, [held, make_slot("14:00", "16:00")])
        assert slot_tuples(entry) == [("10:00", "11:00", "booked"), ("14:00", "16:00", "available")]

    def test_mark_unavailable_refused(self, calendar_model, booked_day):
        with pytest.raises(ValidationError, match="booking exists"):
            calendar_model.mark_unavailable(OWNER, MONDAY)


class TestUpdateAvailability:
    def test_mark_unavailable(self, calendar_model):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        entry = calendar_model.update_availability(
            OWNER, AvailabilityUpdate(date=MONDAY, status=AvailabilityStatus.UNAVAILABLE)
        )
        assert entry.status == AvailabilityStatus.UNAVAILABLE
        assert entry.time_slots == []

    def test_status_without_slots_rejected(self, calendar_model):
        with pytest.raises(ValidationError, match="derived"):
            calendar_model.update_availability(
                OWNER, AvailabilityUpdate(date=MONDAY, status=AvailabilityStatus.AVAILABLE)
            )

    def test_notes_only(self, calendar_model):
        calendar_model.upsert_entry(OWNER, MONDAY, [make_slot("09:00", "12:00")])
        entry = calendar_model.update_availability(
            OWNER, AvailabilityUpdate(date=MONDAY, notes="bring lights")
        )
        assert entry.notes == "bring lights"
        assert len(entry.time_slots) == 1


class TestBulkUpdate:
    def test_collects_per_date_errors(self, calendar_model):
        result = calendar_model.bulk_update(
            OWNER,
            [
                AvailabilityUpdate(date=MONDAY, time_slots=[make_slot("09:00", "12:00")]),
                AvailabilityUpdate(date=TUESDAY, time_slots=[make_slot("12:00", "09:00")]),
            ],
        )
        assert result.entries_written == 1
        assert result.slots_written == 1
        assert len(result.errors) == 1
        assert result.errors[0].startswith(TUESDAY.isoformat())
        assert not result.success

    def test_cancelled_before_first_date(self, calendar_model, store):
        cancel = threading.Event()
        cancel.set()
        result = calendar_model.bulk_update(
            OWNER,
            [AvailabilityUpdate(date=MONDAY, time_slots=[make_slot("09:00", "12:00")])],
            cancel_event=cancel,
        )
        assert result.cancelled
        assert result.entries_written == 0
        assert store.get_entry(OWNER, MONDAY) is None


class TestIntervalHelpers:
    def test_subtract_splits_slot(self):
        slots = subtract_interval([make_slot("09:00", "17:00", slot_id="a")], 600, 660)
        assert [(s.id, s.start, s.end) for s in slots] == [
            ("a", "09:00", "10:00"),
            ("a-1100", "11:00", "17:00"),
        ]

    def test_subtract_drops_short_remnant(self):
        slots = subtract_interval([make_slot("09:00", "17:00")], 555, 660, min_minutes=30)
        assert [(s.start, s.end) for s in slots] == [("11:00", "17:00")]

    def test_merge_adjacent_available(self):
        merged = merge_adjacent_available([
            make_slot("09:00", "10:00"),
            make_slot("10:00", "11:00"),
            make_slot("11:00", "12:00", SlotStatus.BOOKED),
        ])
        assert [(s.start, s.end, s.status) for s in merged] == [
            ("09:00", "11:00", SlotStatus.AVAILABLE),
            ("11:00", "12:00", SlotStatus.BOOKED),
        ]

    def test_merge_respects_maximum(self):
        merged = merge_adjacent_available(
            [make_slot("06:00", "12:00"), make_slot("12:00", "19:00")], max_minutes=720
        )
        assert len(merged) == 2
