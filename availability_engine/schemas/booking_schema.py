"""Booking and conflict data models."""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class BookingStatus(str, Enum):
    REQUESTED = "requested"
    CONFIRMED = "confirmed"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class OverlapKind(str, Enum):
    """How a candidate interval intersects an existing booked slot."""
    FULL_OVERLAP = "full_overlap"
    PARTIAL_OVERLAP = "partial_overlap"


class ConflictType(str, Enum):
    DOUBLE_BOOKING = "double_booking"
    SCHEDULE_OVERLAP = "schedule_overlap"
    AVAILABILITY_CHANGE = "availability_change"


class ConflictResolution(str, Enum):
    AUTO_DECLINE = "auto_decline"
    MANUAL_REVIEW = "manual_review"
    FLEXIBLE_BOOKING = "flexible_booking"


class ResolutionStatus(str, Enum):
    PENDING = "pending"
    RESOLVED = "resolved"


class ClientInfo(BaseModel):
    """Identity of the client requesting a booking."""
    client_id: str
    name: str


class BookingCandidate(BaseModel):
    """A date and time range to check against existing bookings."""
    date: dt.date
    start: str
    end: str


class DetectedConflict(BaseModel):
    """Single overlap found by the conflict detector."""

    overlap: OverlapKind
    date: dt.date
    slot_id: str
    booking_id: Optional[str] = None
    existing_start: str
    existing_end: str
    overlap_start: str
    overlap_end: str

    def describe(self) -> str:
        return (
            f"{self.date.isoformat()}: {self.overlap.value} with existing booking "
            f"{self.existing_start}-{self.existing_end}"
        )


class ConflictReport(BaseModel):
    """Result of ``detect_booking_conflicts``."""
    has_conflicts: bool
    conflicts: list[DetectedConflict] = Field(default_factory=list)


class BookingReference(BaseModel):
    """A client's booking against an owner's calendar."""

    id: str
    user_id: str
    job_id: str
    job_title: Optional[str] = None
    client_id: str
    client_name: str
    status: BookingStatus = BookingStatus.REQUESTED
    date: dt.date
    start: str
    end: str
    rate_per_hour: Optional[float] = None
    slot_id: Optional[str] = None
    created_at: Optional[dt.datetime] = None
    confirmed_at: Optional[dt.datetime] = None
    completed_at: Optional[dt.datetime] = None
    cancelled_at: Optional[dt.datetime] = None

    @property
    def is_placed(self) -> bool:
        """True when the booking holds a slot on the owner's calendar."""
        return self.slot_id is not None


class BookingConflict(BaseModel):
    """A recorded overlap awaiting or having received a resolution."""

    id: str
    user_id: str
    conflict_type: ConflictType
    overlap: OverlapKind
    primary_booking_id: Optional[str] = None
    conflicting_booking_id: str
    affected_date: dt.date
    affected_start: str
    affected_end: str
    resolution_status: ResolutionStatus = ResolutionStatus.PENDING
    resolution_action: Optional[ConflictResolution] = None
    created_at: Optional[dt.datetime] = None
    resolved_at: Optional[dt.datetime] = None
