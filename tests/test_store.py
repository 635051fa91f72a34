"""Tests for the in-memory store."""

import pytest

from availability_engine.errors import VersionConflictError
from availability_engine.schemas.calendar_schema import CalendarEntry, DateRange, entry_id_for
from availability_engine.schemas.pattern_schema import RecurringPattern
from tests.conftest import FIXED_NOW, MONDAY, OWNER, TUESDAY, make_draft, make_slot


def entry(day=MONDAY, **kwargs) -> CalendarEntry:
    return CalendarEntry(
        id=entry_id_for(OWNER, day),
        user_id=OWNER,
        date=day,
        time_slots=[make_slot("09:00", "12:00")],
        **kwargs,
    )


def pattern(pattern_id: str, hour: int) -> RecurringPattern:
    draft = make_draft()
    return RecurringPattern(
        id=pattern_id,
        user_id=OWNER,
        created_at=FIXED_NOW.replace(hour=hour),
        **draft.model_dump(),
    )


class TestEntries:
    def test_versions_increment(self, store):
        assert store.upsert_entry(entry()).version == 1
        assert store.upsert_entry(entry(), expected_version=1).version == 2

    def test_compare_and_set(self, store):
        store.upsert_entry(entry())
        with pytest.raises(VersionConflictError) as exc_info:
            store.upsert_entry(entry(), expected_version=0)
        assert (exc_info.value.expected, exc_info.value.actual) == (0, 1)

    def test_reads_are_copies(self, store):
        store.upsert_entry(entry())
        fetched = store.get_entry(OWNER, MONDAY)
        fetched.time_slots.clear()
        assert len(store.get_entry(OWNER, MONDAY).time_slots) == 1

    def test_range_filters_by_owner(self, store):
        store.upsert_entry(entry())
        store.upsert_entry(entry(TUESDAY))
        store.upsert_entry(
            CalendarEntry(id=entry_id_for("someone-else", MONDAY), user_id="someone-else", date=MONDAY)
        )
        found = store.get_entries(OWNER, DateRange(MONDAY, TUESDAY))
        assert [e.date for e in found] == [MONDAY, TUESDAY]

    def test_entries_for_pattern(self, store):
        store.upsert_entry(entry(recurring_pattern_id="PT-1", is_recurring=True))
        store.upsert_entry(entry(TUESDAY))
        assert [e.date for e in store.entries_for_pattern(OWNER, "PT-1")] == [MONDAY]


class TestPatterns:
    def test_list_newest_first(self, store):
        store.save_pattern(pattern("PT-old", 9))
        store.save_pattern(pattern("PT-new", 11))
        assert [p.id for p in store.list_patterns(OWNER)] == ["PT-new", "PT-old"]

    def test_delete(self, store):
        store.save_pattern(pattern("PT-1", 9))
        assert store.delete_pattern("PT-1")
        assert not store.delete_pattern("PT-1")
        assert store.get_pattern("PT-1") is None


def test_ping(store):
    assert store.ping()


def test_upsert_entries_writes_each(store):
    stored = store.upsert_entries([entry(), entry(TUESDAY)])
    assert [(e.date, e.version) for e in stored] == [(MONDAY, 1), (TUESDAY, 1)]
