"""Tests for slot rules shared by every write path."""

from datetime import date, datetime, timezone

import pytest

from availability_engine.errors import OverlapError, ValidationError
from availability_engine.schemas.calendar_schema import DateRange, SlotStatus, TimeSlot
from availability_engine.scheduling.slot_validation import SlotValidator, ensure_valid_slots
from tests.conftest import make_slot


@pytest.fixture
def validator():
    return SlotValidator(
        open_time="06:00",
        close_time="23:00",
        min_slot_minutes=30,
        max_slot_minutes=720,
        long_session_minutes=360,
    )


class TestValidateTimes:
    def test_valid_slot(self, validator):
        result = validator.validate_times("09:00", "12:00")
        assert result.is_valid
        assert result.warnings == []

    def test_start_after_end(self, validator):
        result = validator.validate_times("10:00", "09:00")
        assert result.errors == ["10:00-09:00: start time must be before end time"]

    def test_equal_start_and_end(self, validator):
        result = validator.validate_times("10:00", "10:00")
        assert any("start time must be before end time" in e for e in result.errors)

    def test_below_minimum_duration(self, validator):
        result = validator.validate_times("10:00", "10:15")
        assert any("minimum slot duration is 30 minutes" in e for e in result.errors)

    def test_above_maximum_duration(self, validator):
        result = validator.validate_times("06:00", "19:00")
        assert any("maximum slot duration is 12 hours" in e for e in result.errors)
        assert result.warnings == []

    def test_outside_business_hours(self, validator):
        result = validator.validate_times("05:00", "07:00")
        assert result.errors == ["05:00-07:00: time slots must be between 06:00 and 23:00"]

    def test_bad_format(self, validator):
        result = validator.validate_times("9am", "17:00")
        assert not result.is_valid
        assert "invalid start time format" in result.errors[0]

    def test_long_session_is_only_a_warning(self, validator):
        result = validator.validate_times("08:00", "15:00")
        assert result.is_valid
        assert result.warnings == ["08:00-15:00: consider adding breaks for long session"]

    def test_reports_every_violation(self, validator):
        result = validator.validate_times("05:00", "05:10")
        assert len(result.errors) == 2


class TestValidateSlot:
    def test_booked_must_be_flagged(self, validator):
        slot = TimeSlot(start="10:00", end="11:00", status=SlotStatus.BOOKED, is_booked=False)
        assert any("must be flagged is_booked" in e for e in validator.validate_slot(slot).errors)

    def test_available_cannot_be_flagged(self, validator):
        slot = TimeSlot(start="10:00", end="11:00", status=SlotStatus.AVAILABLE, is_booked=True)
        assert not validator.validate_slot(slot).is_valid

    def test_tentative_may_be_flagged(self, validator):
        slot = TimeSlot(start="10:00", end="11:00", status=SlotStatus.TENTATIVE, is_booked=True)
        assert validator.validate_slot(slot).is_valid


class TestFindOverlaps:
    def test_lists_every_pair(self, validator):
        slots = [
            make_slot("09:00", "11:00"),
            make_slot("10:00", "12:00"),
            make_slot("11:00", "13:00"),
        ]
        assert validator.find_overlaps(slots) == [
            ("09:00-11:00", "10:00-12:00"),
            ("10:00-12:00", "11:00-13:00"),
        ]

    def test_touching_slots_do_not_overlap(self, validator):
        slots = [make_slot("09:00", "11:00"), make_slot("11:00", "13:00")]
        assert validator.find_overlaps(slots) == []

    def test_unsorted_input(self, validator):
        slots = [make_slot("14:00", "16:00"), make_slot("09:00", "15:00")]
        assert validator.find_overlaps(slots) == [("09:00-15:00", "14:00-16:00")]


class TestEnsureValidSlots:
    def test_raises_validation_error_first(self, validator):
        with pytest.raises(ValidationError) as exc_info:
            ensure_valid_slots(
                [make_slot("10:00", "09:00"), make_slot("05:00", "07:00")], validator=validator
            )
        assert len(exc_info.value.errors) == 2

    def test_raises_overlap_error(self, validator):
        with pytest.raises(OverlapError) as exc_info:
            ensure_valid_slots(
                [make_slot("09:00", "12:00"), make_slot("11:00", "13:00")],
                day=date(2024, 6, 10),
                validator=validator,
            )
        assert exc_info.value.overlaps == [("09:00-12:00", "11:00-13:00")]
        assert exc_info.value.date == date(2024, 6, 10)


class TestRangesAndWindows:
    def test_date_range_limit(self, validator):
        span = DateRange(date(2024, 1, 1), date(2024, 7, 2))
        assert len(span) == 184
        assert not validator.validate_date_range(span, 183).is_valid
        assert validator.validate_date_range(DateRange(date(2024, 1, 1), date(2024, 7, 1)), 183).is_valid

    def test_reversed_range_rejected(self):
        with pytest.raises(ValidationError):
            DateRange(date(2024, 6, 2), date(2024, 6, 1))

    def test_inside_lead_time(self, validator):
        now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        result = validator.validate_booking_window(date(2024, 6, 2), "08:00", now, 24, 90)
        assert result.errors == ["Bookings must be requested at least 24 hours in advance"]

    def test_after_lead_time(self, validator):
        now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        assert validator.validate_booking_window(date(2024, 6, 2), "10:00", now, 24, 90).is_valid

    def test_beyond_advance_window(self, validator):
        now = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
        result = validator.validate_booking_window(date(2024, 8, 31), "10:00", now, 24, 90)
        assert result.errors == ["Bookings cannot be made more than 90 days ahead"]
