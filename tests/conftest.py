"""Shared test fixtures and helpers."""

from datetime import date, datetime, timezone
from typing import Optional

import pytest

from availability_engine.realtime.broadcaster import RealtimeChangeBroadcaster
from availability_engine.schemas.booking_schema import ClientInfo
from availability_engine.schemas.calendar_schema import SlotStatus, TimeSlot
from availability_engine.schemas.event_schema import EventType
from availability_engine.schemas.pattern_schema import PatternDraft, PatternType, SlotTemplate
from availability_engine.scheduling.entry_model import CalendarModel
from availability_engine.service import AvailabilityService
from availability_engine.store.memory import InMemoryCalendarStore

OWNER = "owner-1"
VIEWER = "viewer-1"

# 2024-06-01 is a Saturday; 2024-06-10 is a Monday.
FIXED_NOW = datetime(2024, 6, 1, 9, 0, tzinfo=timezone.utc)
MONDAY = date(2024, 6, 10)
TUESDAY = date(2024, 6, 11)


def fixed_clock() -> datetime:
    return FIXED_NOW


@pytest.fixture
def store():
    return InMemoryCalendarStore()


@pytest.fixture
def broadcaster():
    b = RealtimeChangeBroadcaster()
    b.connect()
    yield b
    b.disconnect()


@pytest.fixture
def events(broadcaster):
    """Every event the broadcaster delivers, in order."""
    received = []
    for event_type in EventType:
        broadcaster.subscribe(event_type, received.append)
    return received


@pytest.fixture
def calendar_model(store, broadcaster):
    return CalendarModel(store, broadcaster, clock=fixed_clock)


@pytest.fixture
def service(store, broadcaster):
    svc = AvailabilityService(store, broadcaster, clock=fixed_clock)
    svc.start()
    yield svc
    svc.close()


def make_slot(
    start: str,
    end: str,
    status: SlotStatus = SlotStatus.AVAILABLE,
    slot_id: Optional[str] = None,
    **kwargs,
) -> TimeSlot:
    """Helper to create a TimeSlot; booked slots are flagged is_booked."""
    fields = dict(start=start, end=end, status=status, **kwargs)
    if status == SlotStatus.BOOKED:
        fields.setdefault("is_booked", True)
    if slot_id is not None:
        fields["id"] = slot_id
    return TimeSlot(**fields)


def make_client(client_id: str = "client-1", name: str = "Ana Silva") -> ClientInfo:
    return ClientInfo(client_id=client_id, name=name)


def make_draft(
    name: str = "Weekdays",
    schedule: Optional[dict[str, list[tuple[str, str]]]] = None,
    start_date: date = date(2024, 6, 1),
    end_date: date = date(2024, 6, 30),
    pattern_type: PatternType = PatternType.WEEKLY,
    **kwargs,
) -> PatternDraft:
    """Helper to create a PatternDraft from ``{key: [(start, end), ...]}``."""
    if schedule is None:
        schedule = {"monday": [("09:00", "17:00")], "wednesday": [("09:00", "17:00")]}
    return PatternDraft(
        name=name,
        type=pattern_type,
        schedule={
            key: [SlotTemplate(start=s, end=e) for s, e in pairs]
            for key, pairs in schedule.items()
        },
        start_date=start_date,
        end_date=end_date,
        **kwargs,
    )


def slot_tuples(entry) -> list[tuple[str, str, str]]:
    return [(s.start, s.end, s.status.value) for s in entry.time_slots]
