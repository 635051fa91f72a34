"""Calendar privacy settings and viewer-facing projections."""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from availability_engine.config import settings
from availability_engine.schemas.calendar_schema import AvailabilityStatus, SlotStatus


class VisibilityLevel(str, Enum):
    PUBLIC = "public"
    CONTACTS_ONLY = "contacts_only"
    PRIVATE = "private"


class NotificationPreferences(BaseModel):
    booking_requests: bool = True
    reminders: bool = True
    conflicts: bool = True


class PrivacySettings(BaseModel):
    """Who may see an owner's calendar, and the owner's booking rules."""

    user_id: str
    is_visible: bool = True
    visibility_level: VisibilityLevel = VisibilityLevel.PUBLIC
    allowed_users: set[str] = Field(default_factory=set)
    hidden_dates: set[dt.date] = Field(default_factory=set)
    show_partial_availability: bool = True
    allow_booking_requests: bool = True
    auto_decline_conflicts: bool = False
    lead_time_hours: int = Field(default=settings.booking.default_lead_time_hours, ge=0)
    advance_booking_days: int = Field(default=settings.booking.default_advance_booking_days, ge=1)
    notification_preferences: NotificationPreferences = Field(
        default_factory=NotificationPreferences
    )
    updated_at: Optional[dt.datetime] = None


class VisibleSlot(BaseModel):
    """Time slot as shown to a viewer.

    Booking linkage and notes are only populated for the owner.
    """
    start: str
    end: str
    status: SlotStatus
    booking_id: Optional[str] = None
    job_title: Optional[str] = None
    client_name: Optional[str] = None
    notes: Optional[str] = None


class VisibleEntry(BaseModel):
    """What a viewer is entitled to see of one calendar day."""
    date: dt.date
    status: AvailabilityStatus
    time_slots: list[VisibleSlot] = Field(default_factory=list)
