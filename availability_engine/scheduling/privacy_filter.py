"""
Viewer-specific projection of a calendar.

The owner sees every slot with its booking linkage. Anyone else sees
nothing when the calendar is hidden, private, or restricted to contacts
they are not part of. Otherwise they see the owner's days minus hidden
dates, with booking linkage and notes stripped. When the owner turns off
partial availability, partially booked days show as unavailable with no
slot detail.
"""

import logging
from typing import Iterable, Optional

from availability_engine.schemas.calendar_schema import AvailabilityStatus, CalendarEntry, DateRange
from availability_engine.schemas.privacy_schema import (
    PrivacySettings,
    VisibilityLevel,
    VisibleEntry,
    VisibleSlot,
)
from availability_engine.store.base import CalendarStore

logger = logging.getLogger(__name__)


def can_view(privacy: PrivacySettings, owner_id: str, viewer_id: Optional[str]) -> bool:
    if viewer_id == owner_id:
        return True
    if not privacy.is_visible or privacy.visibility_level == VisibilityLevel.PRIVATE:
        return False
    if privacy.visibility_level == VisibilityLevel.CONTACTS_ONLY:
        return viewer_id is not None and viewer_id in privacy.allowed_users
    return True


def _owner_view(entry: CalendarEntry) -> VisibleEntry:
    return VisibleEntry(
        date=entry.date,
        status=entry.status,
        time_slots=[
            VisibleSlot(
                start=slot.start,
                end=slot.end,
                status=slot.status,
                booking_id=slot.booking_id,
                job_title=slot.job_title,
                client_name=slot.client_name,
                notes=slot.notes,
            )
            for slot in entry.time_slots
        ],
    )


def _public_view(entry: CalendarEntry, privacy: PrivacySettings) -> VisibleEntry:
    if entry.status == AvailabilityStatus.PARTIAL and not privacy.show_partial_availability:
        return VisibleEntry(date=entry.date, status=AvailabilityStatus.UNAVAILABLE)
    return VisibleEntry(
        date=entry.date,
        status=entry.status,
        time_slots=[
            VisibleSlot(start=slot.start, end=slot.end, status=slot.status)
            for slot in entry.time_slots
        ],
    )


def compute_visible_view(
    entries: Iterable[CalendarEntry],
    privacy: PrivacySettings,
    owner_id: str,
    viewer_id: Optional[str],
) -> list[VisibleEntry]:
    """Pure projection of ``entries`` for ``viewer_id``."""
    if viewer_id == owner_id:
        return [_owner_view(entry) for entry in entries]
    if not can_view(privacy, owner_id, viewer_id):
        return []
    return [
        _public_view(entry, privacy)
        for entry in entries
        if entry.date not in privacy.hidden_dates
    ]


class PrivacyFilter:
    """Loads an owner's entries and settings and projects them for a viewer."""

    def __init__(self, store: CalendarStore) -> None:
        self._store = store

    def settings_for(self, owner_id: str) -> PrivacySettings:
        return self._store.get_privacy_settings(owner_id) or PrivacySettings(user_id=owner_id)

    def visible_view(
        self, owner_id: str, viewer_id: Optional[str], date_range: DateRange
    ) -> list[VisibleEntry]:
        privacy = self.settings_for(owner_id)
        entries = self._store.get_entries(owner_id, date_range)
        view = compute_visible_view(entries, privacy, owner_id, viewer_id)
        logger.debug(
            "%s sees %d of %d entries for %s", viewer_id, len(view), len(entries), owner_id
        )
        return view
