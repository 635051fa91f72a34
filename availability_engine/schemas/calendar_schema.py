"""Time slot and calendar entry data models."""

import datetime as dt
from dataclasses import dataclass
from enum import Enum
from typing import Iterator, Optional, Union

from pydantic import BaseModel, Field

from availability_engine.errors import ValidationError
from availability_engine.utils import iter_dates, new_id, parse_date, time_to_minutes


class SlotStatus(str, Enum):
    """Status of a single time slot."""
    AVAILABLE = "available"
    BOOKED = "booked"
    BLOCKED = "blocked"
    TENTATIVE = "tentative"


class AvailabilityStatus(str, Enum):
    """Aggregate status of a calendar day, derived from its slots."""
    AVAILABLE = "available"
    PARTIAL = "partial"
    BOOKED = "booked"
    UNAVAILABLE = "unavailable"


class TimeSlot(BaseModel):
    """A contiguous interval of a day, optionally linked to a booking."""

    id: str = Field(default_factory=lambda: new_id("SL"))
    start: str
    end: str
    status: SlotStatus = SlotStatus.AVAILABLE
    is_booked: bool = False
    booking_id: Optional[str] = None
    job_id: Optional[str] = None
    job_title: Optional[str] = None
    client_name: Optional[str] = None
    rate_per_hour: Optional[float] = None
    notes: Optional[str] = None

    @property
    def start_minutes(self) -> int:
        return time_to_minutes(self.start)

    @property
    def end_minutes(self) -> int:
        return time_to_minutes(self.end)

    @property
    def duration_minutes(self) -> int:
        return self.end_minutes - self.start_minutes

    @property
    def label(self) -> str:
        return f"{self.start}-{self.end}"

    @property
    def holds_booking(self) -> bool:
        return self.is_booked or self.status == SlotStatus.BOOKED


class CalendarEntry(BaseModel):
    """One user's day: an ordered, non-overlapping set of time slots."""

    id: str
    user_id: str
    date: dt.date
    status: AvailabilityStatus = AvailabilityStatus.UNAVAILABLE
    time_slots: list[TimeSlot] = Field(default_factory=list)
    is_recurring: bool = False
    recurring_pattern_id: Optional[str] = None
    notes: Optional[str] = None
    version: int = 0
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None

    def content_key(self) -> tuple:
        """Everything that defines the entry's state, minus bookkeeping fields."""
        return (
            self.status,
            tuple(slot.model_dump_json() for slot in self.time_slots),
            self.is_recurring,
            self.recurring_pattern_id,
            self.notes,
        )

    def booked_slots(self) -> list[TimeSlot]:
        return [slot for slot in self.time_slots if slot.holds_booking]


def entry_id_for(user_id: str, day: dt.date) -> str:
    """Entries are keyed by owner and date, so the id is derived from both."""
    return f"{user_id}:{day.isoformat()}"


@dataclass(frozen=True)
class DateRange:
    """Inclusive range of calendar dates."""

    start: dt.date
    end: dt.date

    def __post_init__(self) -> None:
        if self.start > self.end:
            raise ValidationError(
                [f"Start date {self.start.isoformat()} must not be after end date {self.end.isoformat()}"]
            )

    @classmethod
    def of(cls, start: Union[str, dt.date], end: Union[str, dt.date]) -> "DateRange":
        return cls(parse_date(start), parse_date(end))

    def days(self) -> Iterator[dt.date]:
        return iter_dates(self.start, self.end)

    def __contains__(self, day: object) -> bool:
        return isinstance(day, dt.date) and self.start <= day <= self.end

    def __len__(self) -> int:
        return (self.end - self.start).days + 1

    def intersect(self, other: "DateRange") -> Optional["DateRange"]:
        start = max(self.start, other.start)
        end = min(self.end, other.end)
        if start > end:
            return None
        return DateRange(start, end)


class AvailabilityUpdate(BaseModel):
    """Owner-supplied change to a single day, used by bulk and single updates."""

    date: dt.date
    time_slots: Optional[list[TimeSlot]] = None
    notes: Optional[str] = None
    status: Optional[AvailabilityStatus] = None


class BulkUpdateResult(BaseModel):
    """Outcome of a multi-date write."""

    entries_written: int = 0
    slots_written: int = 0
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.cancelled
