"""Change events published to realtime subscribers.

Every event kind carries its own typed payload. ``ChangeEvent`` is the
discriminated union over all kinds, keyed on ``type``, so a serialized
event can be parsed back into the right model with ``ChangeEventAdapter``.
"""

import datetime as dt
from enum import Enum
from typing import Annotated, Literal, Optional, Union

from pydantic import BaseModel, Field, TypeAdapter

from availability_engine.schemas.booking_schema import (
    BookingConflict,
    BookingReference,
    BookingStatus,
)
from availability_engine.schemas.calendar_schema import CalendarEntry
from availability_engine.schemas.pattern_schema import PatternApplyResult, RecurringPattern


class EventType(str, Enum):
    AVAILABILITY_UPDATED = "availability_updated"
    BOOKING_UPDATED = "booking_updated"
    CONFLICT_DETECTED = "conflict_detected"
    PATTERN_APPLIED = "pattern_applied"


class AvailabilityUpdatedPayload(BaseModel):
    action: Literal["insert", "update"]
    date: dt.date
    entry: Optional[CalendarEntry] = None
    previous_version: Optional[int] = None


class BookingUpdatedPayload(BaseModel):
    action: Literal["created", "status_changed"]
    booking: BookingReference
    previous_status: Optional[BookingStatus] = None

    @property
    def status_changed(self) -> bool:
        return self.previous_status is not None and self.previous_status != self.booking.status


class ConflictDetectedPayload(BaseModel):
    conflict: BookingConflict
    requires_attention: bool = True
    resolved: bool = False


class PatternAppliedPayload(BaseModel):
    action: Literal["created", "updated", "deleted", "toggled", "applied"]
    pattern_id: str
    pattern: Optional[RecurringPattern] = None
    result: Optional[PatternApplyResult] = None


class _EventBase(BaseModel):
    user_id: str
    timestamp: dt.datetime


class AvailabilityUpdatedEvent(_EventBase):
    type: Literal[EventType.AVAILABILITY_UPDATED] = EventType.AVAILABILITY_UPDATED
    payload: AvailabilityUpdatedPayload


class BookingUpdatedEvent(_EventBase):
    type: Literal[EventType.BOOKING_UPDATED] = EventType.BOOKING_UPDATED
    payload: BookingUpdatedPayload


class ConflictDetectedEvent(_EventBase):
    type: Literal[EventType.CONFLICT_DETECTED] = EventType.CONFLICT_DETECTED
    payload: ConflictDetectedPayload


class PatternAppliedEvent(_EventBase):
    type: Literal[EventType.PATTERN_APPLIED] = EventType.PATTERN_APPLIED
    payload: PatternAppliedPayload


ChangeEvent = Annotated[
    Union[
        AvailabilityUpdatedEvent,
        BookingUpdatedEvent,
        ConflictDetectedEvent,
        PatternAppliedEvent,
    ],
    Field(discriminator="type"),
]

ChangeEventAdapter: TypeAdapter[ChangeEvent] = TypeAdapter(ChangeEvent)

EVENT_MODELS: dict[EventType, type[_EventBase]] = {
    EventType.AVAILABILITY_UPDATED: AvailabilityUpdatedEvent,
    EventType.BOOKING_UPDATED: BookingUpdatedEvent,
    EventType.CONFLICT_DETECTED: ConflictDetectedEvent,
    EventType.PATTERN_APPLIED: PatternAppliedEvent,
}

PAYLOAD_MODELS: dict[EventType, type[BaseModel]] = {
    EventType.AVAILABILITY_UPDATED: AvailabilityUpdatedPayload,
    EventType.BOOKING_UPDATED: BookingUpdatedPayload,
    EventType.CONFLICT_DETECTED: ConflictDetectedPayload,
    EventType.PATTERN_APPLIED: PatternAppliedPayload,
}
