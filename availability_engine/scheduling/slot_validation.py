"""
Slot rule checks shared by every write path.

Entry upserts, pattern templates, booking requests and imported rows all
pass through ``SlotValidator`` so the same rules apply everywhere:

1. Format:      ``HH:MM`` 24h times
2. Ordering:    start strictly before end
3. Duration:    within the configured minimum and maximum
4. Hours:       inside the business window (default 06:00-23:00)
5. Consistency: ``booked`` slots are flagged ``is_booked``; ``available``
                 and ``blocked`` slots are not

Every check runs and every violation is reported, so a caller sees the
whole list rather than fixing one problem at a time.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from typing import Iterable, Optional, Sequence

from availability_engine.config import settings
from availability_engine.errors import OverlapError, ValidationError
from availability_engine.schemas.calendar_schema import DateRange, SlotStatus, TimeSlot
from availability_engine.utils import intervals_overlap, is_time_of_day, time_to_minutes

logger = logging.getLogger(__name__)


@dataclass
class ValidationResult:
    """Outcome of one or more checks."""
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def is_valid(self) -> bool:
        return not self.errors

    def extend(self, other: "ValidationResult") -> "ValidationResult":
        self.errors.extend(other.errors)
        self.warnings.extend(other.warnings)
        return self

    def raise_for_errors(self) -> None:
        for warning in self.warnings:
            logger.info("Validation warning: %s", warning)
        if self.errors:
            raise ValidationError(self.errors)


def _format_hours(minutes: int) -> str:
    hours, rem = divmod(minutes, 60)
    if rem == 0:
        return f"{hours} hour" if hours == 1 else f"{hours} hours"
    return f"{minutes} minutes"


class SlotValidator:
    """Applies the slot rules with configurable bounds."""

    def __init__(
        self,
        open_time: str = settings.business.open_time,
        close_time: str = settings.business.close_time,
        min_slot_minutes: int = settings.business.min_slot_minutes,
        max_slot_minutes: int = settings.business.max_slot_minutes,
        long_session_minutes: int = settings.business.long_session_warning_minutes,
    ) -> None:
        self.open_time = open_time
        self.close_time = close_time
        self.open_minutes = time_to_minutes(open_time)
        self.close_minutes = time_to_minutes(close_time)
        self.min_slot_minutes = min_slot_minutes
        self.max_slot_minutes = max_slot_minutes
        self.long_session_minutes = long_session_minutes

    def validate_times(self, start: str, end: str) -> ValidationResult:
        """Check a start/end pair against format, ordering, duration and hours."""
        result = ValidationResult()
        label = f"{start}-{end}"

        if not is_time_of_day(start):
            result.errors.append(f"{label}: invalid start time format {start!r}")
        if not is_time_of_day(end):
            result.errors.append(f"{label}: invalid end time format {end!r}")
        if result.errors:
            return result

        start_min = time_to_minutes(start)
        end_min = time_to_minutes(end)

        if start_min >= end_min:
            result.errors.append(f"{label}: start time must be before end time")
        else:
            duration = end_min - start_min
            if duration < self.min_slot_minutes:
                result.errors.append(
                    f"{label}: minimum slot duration is {_format_hours(self.min_slot_minutes)}"
                )
            if duration > self.max_slot_minutes:
                result.errors.append(
                    f"{label}: maximum slot duration is {_format_hours(self.max_slot_minutes)}"
                )
            elif duration > self.long_session_minutes:
                result.warnings.append(f"{label}: consider adding breaks for long session")

        if start_min < self.open_minutes or end_min > self.close_minutes:
            result.errors.append(
                f"{label}: time slots must be between {self.open_time} and {self.close_time}"
            )
        return result

    def validate_slot(self, slot: TimeSlot) -> ValidationResult:
        result = self.validate_times(slot.start, slot.end)
        if slot.status == SlotStatus.BOOKED and not slot.is_booked:
            result.errors.append(f"{slot.label}: booked slot must be flagged is_booked")
        if slot.status in (SlotStatus.AVAILABLE, SlotStatus.BLOCKED) and slot.is_booked:
            result.errors.append(
                f"{slot.label}: {slot.status.value} slot cannot be flagged is_booked"
            )
        return result

    def validate_slots(self, slots: Iterable[TimeSlot]) -> ValidationResult:
        result = ValidationResult()
        for slot in slots:
            result.extend(self.validate_slot(slot))
        return result

    @staticmethod
    def find_overlaps(slots: Sequence[TimeSlot]) -> list[tuple[str, str]]:
        """Return every intersecting pair as ``(label, label)``, ordered by start.

        Slots must already have valid times.
        """
        ordered = sorted(slots, key=lambda s: (s.start_minutes, s.end_minutes))
        pairs: list[tuple[str, str]] = []
        for i, current in enumerate(ordered):
            for other in ordered[i + 1:]:
                if other.start_minutes >= current.end_minutes:
                    break
                if intervals_overlap(
                    current.start_minutes, current.end_minutes,
                    other.start_minutes, other.end_minutes,
                ):
                    pairs.append((current.label, other.label))
        return pairs

    @staticmethod
    def validate_date_range(date_range: DateRange, max_days: int) -> ValidationResult:
        result = ValidationResult()
        if len(date_range) > max_days:
            result.errors.append(
                f"Date range {date_range.start.isoformat()}..{date_range.end.isoformat()} "
                f"spans {len(date_range)} days; the limit is {max_days}"
            )
        return result

    @staticmethod
    def validate_booking_window(
        day: date,
        start: str,
        now: datetime,
        lead_time_hours: int,
        advance_booking_days: int,
    ) -> ValidationResult:
        """Check a booking starts after the lead time and within the advance window."""
        result = ValidationResult()
        if not is_time_of_day(start):
            return result
        minutes = time_to_minutes(start)
        starts_at = datetime(day.year, day.month, day.day, minutes // 60, minutes % 60)
        reference = now.replace(tzinfo=None) if now.tzinfo else now

        if starts_at < reference + timedelta(hours=lead_time_hours):
            result.errors.append(
                f"Bookings must be requested at least {lead_time_hours} hours in advance"
            )
        if day > reference.date() + timedelta(days=advance_booking_days):
            result.errors.append(
                f"Bookings cannot be made more than {advance_booking_days} days ahead"
            )
        return result


def ensure_valid_slots(
    slots: Sequence[TimeSlot],
    day: Optional[date] = None,
    validator: Optional[SlotValidator] = None,
) -> None:
    """Raise ``ValidationError`` for rule violations, then ``OverlapError`` for intersections."""
    checker = validator or default_validator
    checker.validate_slots(slots).raise_for_errors()
    overlaps = checker.find_overlaps(slots)
    if overlaps:
        raise OverlapError(day, overlaps)


default_validator = SlotValidator()
