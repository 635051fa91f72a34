"""Availability statistics over a date range."""

from collections import Counter
from typing import Iterable

from pydantic import BaseModel, Field

from availability_engine.schemas.calendar_schema import CalendarEntry, SlotStatus


class WeeklyHours(BaseModel):
    week: str
    available_hours: float


class AvailabilityStats(BaseModel):
    total_available_hours: float = 0.0
    booked_hours: float = 0.0
    utilization_rate: float = 0.0
    average_booking_duration: float = 0.0
    total_bookings: int = 0
    most_booked_time_slot: str = "No bookings"
    weekly_availability_trend: list[WeeklyHours] = Field(default_factory=list)


def compute_availability_stats(entries: Iterable[CalendarEntry]) -> AvailabilityStats:
    """
    Aggregate offered and booked time.

    Offered time is every slot that is not ``blocked``; booked time is every
    slot holding a booking. Utilization is booked over offered, as a
    percentage rounded to one decimal. Weeks are ISO weeks (``YYYY-Www``).
    """
    offered_minutes = 0
    booked_minutes = 0
    booked_labels: Counter = Counter()
    label_starts: dict[str, int] = {}
    weekly: dict[str, int] = {}

    for entry in sorted(entries, key=lambda e: e.date):
        year, week, _ = entry.date.isocalendar()
        week_key = f"{year}-W{week:02d}"
        weekly.setdefault(week_key, 0)
        for slot in entry.time_slots:
            if slot.status != SlotStatus.BLOCKED:
                offered_minutes += slot.duration_minutes
                weekly[week_key] += slot.duration_minutes
            if slot.holds_booking:
                booked_minutes += slot.duration_minutes
                booked_labels[slot.label] += 1
                label_starts[slot.label] = slot.start_minutes

    total_bookings = sum(booked_labels.values())
    if booked_labels:
        most_booked = min(
            booked_labels, key=lambda label: (-booked_labels[label], label_starts[label])
        )
    else:
        most_booked = "No bookings"

    return AvailabilityStats(
        total_available_hours=round(offered_minutes / 60, 2),
        booked_hours=round(booked_minutes / 60, 2),
        utilization_rate=round(booked_minutes / offered_minutes * 100, 1) if offered_minutes else 0.0,
        average_booking_duration=round(booked_minutes / 60 / total_bookings, 2) if total_bookings else 0.0,
        total_bookings=total_bookings,
        most_booked_time_slot=most_booked,
        weekly_availability_trend=[
            WeeklyHours(week=key, available_hours=round(minutes / 60, 2))
            for key, minutes in weekly.items()
        ],
    )
