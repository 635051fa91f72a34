"""Recurring pattern models and projection results."""

import datetime as dt
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field

from availability_engine.schemas.calendar_schema import TimeSlot


class PatternType(str, Enum):
    WEEKLY = "weekly"
    MONTHLY = "monthly"
    CUSTOM = "custom"


class SlotTemplate(BaseModel):
    """Start/end template projected onto every matching date."""

    start: str
    end: str
    notes: Optional[str] = None


class RecurringPattern(BaseModel):
    """A reusable weekly/monthly availability template."""

    id: str
    user_id: str
    name: str
    type: PatternType = PatternType.WEEKLY
    schedule: dict[str, list[SlotTemplate]] = Field(default_factory=dict)
    start_date: dt.date
    end_date: dt.date
    exceptions: set[dt.date] = Field(default_factory=set)
    is_active: bool = True
    created_at: Optional[dt.datetime] = None
    updated_at: Optional[dt.datetime] = None


class PatternDraft(BaseModel):
    """Owner input for creating a pattern."""

    name: str
    type: PatternType = PatternType.WEEKLY
    schedule: dict[str, list[SlotTemplate]]
    start_date: dt.date
    end_date: dt.date
    exceptions: set[dt.date] = Field(default_factory=set)
    is_active: bool = True


class PatternUpdate(BaseModel):
    """Partial update; ``None`` leaves a field unchanged."""

    name: Optional[str] = None
    type: Optional[PatternType] = None
    schedule: Optional[dict[str, list[SlotTemplate]]] = None
    start_date: Optional[dt.date] = None
    end_date: Optional[dt.date] = None
    exceptions: Optional[set[dt.date]] = None
    is_active: Optional[bool] = None


class ProjectedDay(BaseModel):
    """One date produced by projecting a pattern onto a range."""

    date: dt.date
    time_slots: list[TimeSlot]
    conflicts: list[str] = Field(default_factory=list)


class PatternPreview(BaseModel):
    dates: list[dt.date] = Field(default_factory=list)
    total_slots: int = 0
    conflicts: list[str] = Field(default_factory=list)
    preview: list[ProjectedDay] = Field(default_factory=list)


class SkippedDate(BaseModel):
    date: dt.date
    reason: str


class PatternApplyFailure(BaseModel):
    date: dt.date
    error: str


class PatternApplyResult(BaseModel):
    """Per-date outcome of applying a pattern over a range."""

    pattern_id: str
    entries_created: int = 0
    entries_updated: int = 0
    entries_unchanged: int = 0
    slots_created: int = 0
    dates_skipped: list[SkippedDate] = Field(default_factory=list)
    conflicts: list[str] = Field(default_factory=list)
    errors: list[PatternApplyFailure] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.cancelled


class PatternStats(BaseModel):
    total_applications: int = 0
    active_dates: int = 0
    upcoming_dates: int = 0
    last_applied: Optional[dt.datetime] = None


class PatternTemplate(BaseModel):
    name: str
    type: PatternType
    schedule: dict[str, list[SlotTemplate]]
    description: str
