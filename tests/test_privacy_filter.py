"""Tests for viewer-specific calendar projections."""

import pytest

from availability_engine.schemas.calendar_schema import AvailabilityStatus, DateRange, SlotStatus
from availability_engine.schemas.privacy_schema import PrivacySettings, VisibilityLevel
from availability_engine.scheduling.privacy_filter import (
    PrivacyFilter,
    can_view,
    compute_visible_view,
)
from tests.conftest import MONDAY, OWNER, TUESDAY, VIEWER, make_slot

WEEK = DateRange(MONDAY, TUESDAY)


@pytest.fixture
def entries(calendar_model, store):
    calendar_model.upsert_entry(
        OWNER,
        MONDAY,
        [
            make_slot("09:00", "10:00", notes="prep"),
            make_slot(
                "10:00", "11:00", SlotStatus.BOOKED,
                booking_id="BK-1", job_title="Portraits", client_name="Ana Silva",
            ),
        ],
    )
    calendar_model.upsert_entry(OWNER, TUESDAY, [make_slot("09:00", "17:00")])
    return store.get_entries(OWNER, WEEK)


def settings(**kwargs) -> PrivacySettings:
    return PrivacySettings(user_id=OWNER, **kwargs)


class TestCanView:
    def test_owner_always(self):
        assert can_view(settings(is_visible=False), OWNER, OWNER)

    def test_public(self):
        assert can_view(settings(), OWNER, VIEWER)
        assert can_view(settings(), OWNER, None)

    def test_hidden_calendar(self):
        assert not can_view(settings(is_visible=False), OWNER, VIEWER)

    def test_private(self):
        assert not can_view(settings(visibility_level=VisibilityLevel.PRIVATE), OWNER, VIEWER)

    def test_contacts_only(self):
        privacy = settings(visibility_level=VisibilityLevel.CONTACTS_ONLY, allowed_users={VIEWER})
        assert can_view(privacy, OWNER, VIEWER)
        assert not can_view(privacy, OWNER, "stranger")
        assert not can_view(privacy, OWNER, None)


class TestVisibleView:
    def test_owner_sees_linkage(self, entries):
        view = compute_visible_view(entries, settings(hidden_dates={MONDAY}), OWNER, OWNER)
        assert [v.date for v in view] == [MONDAY, TUESDAY]
        booked = view[0].time_slots[1]
        assert (booked.booking_id, booked.client_name) == ("BK-1", "Ana Silva")
        assert view[0].time_slots[0].notes == "prep"

    def test_viewer_linkage_stripped(self, entries):
        view = compute_visible_view(entries, settings(), OWNER, VIEWER)
        for entry in view:
            for slot in entry.time_slots:
                assert slot.booking_id is None
                assert slot.client_name is None
                assert slot.job_title is None
                assert slot.notes is None
        assert view[0].time_slots[1].status == SlotStatus.BOOKED

    def test_hidden_dates_omitted(self, entries):
        view = compute_visible_view(entries, settings(hidden_dates={MONDAY}), OWNER, VIEWER)
        assert [v.date for v in view] == [TUESDAY]

    def test_private_calendar_is_empty(self, entries):
        privacy = settings(visibility_level=VisibilityLevel.PRIVATE)
        assert compute_visible_view(entries, privacy, OWNER, VIEWER) == []

    def test_partial_day_degraded(self, entries):
        view = compute_visible_view(entries, settings(show_partial_availability=False), OWNER, VIEWER)
        assert view[0].status == AvailabilityStatus.UNAVAILABLE
        assert view[0].time_slots == []
        assert view[1].status == AvailabilityStatus.AVAILABLE
        assert len(view[1].time_slots) == 1


class TestPrivacyFilter:
    def test_defaults_when_no_settings(self, store, entries):
        view = PrivacyFilter(store).visible_view(OWNER, VIEWER, WEEK)
        assert len(view) == 2

    def test_uses_stored_settings(self, store, entries):
        store.save_privacy_settings(
            settings(visibility_level=VisibilityLevel.CONTACTS_ONLY, allowed_users={VIEWER})
        )
        privacy_filter = PrivacyFilter(store)
        assert len(privacy_filter.visible_view(OWNER, VIEWER, WEEK)) == 2
        assert privacy_filter.visible_view(OWNER, "stranger", WEEK) == []
