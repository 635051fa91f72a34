"""
Recurring availability patterns.

A pattern maps day-keys to slot templates and projects them onto concrete
dates. Keys depend on the pattern type:

- weekly:  lowercase weekday name (``"monday"``)
- monthly: day of month (``"1"`` .. ``"31"``); on the last day of a short
           month, keys past its end also apply, so ``"31"`` lands on
           30 April and 28/29 February
- custom:  ISO date first, then weekday name, then day of month

Exceptions always win over the schedule. Inactive patterns project nothing.

Preview and apply share ``project_pattern`` so what the owner previews is
exactly what gets written. Each date is written as its own idempotent unit
through ``CalendarModel.upsert_entry`` with deterministic slot ids, so
re-applying the same pattern over the same range changes nothing.
"""

import calendar
import threading
from datetime import date
from typing import Callable, Iterable, Iterator, Optional

from availability_engine.config import settings
from availability_engine.errors import (
    OverlapError,
    PatternApplyError,
    PatternNotFoundError,
    ValidationError,
    VersionConflictError,
)
from availability_engine.logging_context import get_operation_logger, operation_scope
from availability_engine.schemas.booking_schema import BookingCandidate
from availability_engine.schemas.calendar_schema import DateRange, SlotStatus, TimeSlot
from availability_engine.schemas.event_schema import EventType, PatternAppliedPayload
from availability_engine.schemas.pattern_schema import (
    PatternApplyFailure,
    PatternApplyResult,
    PatternDraft,
    PatternPreview,
    PatternStats,
    PatternTemplate,
    PatternType,
    PatternUpdate,
    ProjectedDay,
    RecurringPattern,
    SkippedDate,
    SlotTemplate,
)
from availability_engine.realtime.broadcaster import RealtimeChangeBroadcaster
from availability_engine.scheduling.conflict_detector import detect_in_slots
from availability_engine.scheduling.entry_model import CalendarModel, subtract_interval
from availability_engine.scheduling.slot_validation import (
    SlotValidator,
    ValidationResult,
    default_validator,
)
from availability_engine.store.base import CalendarStore
from availability_engine.utils import WEEKDAY_KEYS, new_id, normalize_time, utc_now, weekday_key

logger = get_operation_logger(__name__)


def _slots(*pairs: tuple[str, str]) -> list[SlotTemplate]:
    return [SlotTemplate(start=start, end=end) for start, end in pairs]


_WEEKDAYS = WEEKDAY_KEYS[:5]

PATTERN_TEMPLATES: tuple[PatternTemplate, ...] = (
    PatternTemplate(
        name="Standard Work Week",
        type=PatternType.WEEKLY,
        schedule={day: _slots(("09:00", "17:00")) for day in _WEEKDAYS},
        description="Monday to Friday, 9 AM to 5 PM",
    ),
    PatternTemplate(
        name="Weekend Photographer",
        type=PatternType.WEEKLY,
        schedule={
            day: _slots(("08:00", "12:00"), ("14:00", "18:00"))
            for day in ("saturday", "sunday")
        },
        description="Weekend availability with lunch break",
    ),
    PatternTemplate(
        name="Evening Sessions",
        type=PatternType.WEEKLY,
        schedule={
            **{day: _slots(("17:00", "21:00")) for day in _WEEKDAYS},
            "saturday": _slots(("16:00", "22:00")),
            "sunday": _slots(("16:00", "22:00")),
        },
        description="Evening and night photography sessions",
    ),
    PatternTemplate(
        name="Flexible Schedule",
        type=PatternType.WEEKLY,
        schedule={
            "monday": _slots(("10:00", "13:00"), ("15:00", "18:00")),
            "wednesday": _slots(("10:00", "13:00"), ("15:00", "18:00")),
            "friday": _slots(("10:00", "13:00"), ("15:00", "18:00")),
            "saturday": _slots(("09:00", "15:00")),
        },
        description="Part-time schedule with flexible hours",
    ),
)


# ---------------------------------------------------------------------------
# Projection
# ---------------------------------------------------------------------------

def _is_day_of_month(key: str) -> bool:
    return key.isdigit() and 1 <= int(key) <= 31


def _is_iso_date(key: str) -> bool:
    try:
        date.fromisoformat(key)
    except ValueError:
        return False
    return True


def _month_day_templates(schedule: dict[str, list[SlotTemplate]], day: date) -> list[SlotTemplate]:
    templates = list(schedule.get(str(day.day), []))
    last_day = calendar.monthrange(day.year, day.month)[1]
    if day.day == last_day:
        for key in sorted((k for k in schedule if _is_day_of_month(k)), key=int):
            if int(key) > last_day:
                templates.extend(schedule[key])
    return templates


def templates_for_day(pattern: RecurringPattern, day: date) -> list[SlotTemplate]:
    """Resolve the day-key for ``day`` and return its slot templates."""
    schedule = pattern.schedule
    if pattern.type == PatternType.WEEKLY:
        templates = list(schedule.get(weekday_key(day), []))
    elif pattern.type == PatternType.MONTHLY:
        templates = _month_day_templates(schedule, day)
    else:
        iso = day.isoformat()
        if iso in schedule:
            templates = list(schedule[iso])
        elif weekday_key(day) in schedule:
            templates = list(schedule[weekday_key(day)])
        else:
            templates = _month_day_templates(schedule, day)

    # Clamped month-end keys can repeat an interval.
    unique: dict[tuple[str, str], SlotTemplate] = {}
    for template in templates:
        unique.setdefault((normalize_time(template.start), normalize_time(template.end)), template)
    return sorted(unique.values(), key=lambda t: normalize_time(t.start))


def materialize_slots(pattern_id: str, day: date, templates: Iterable[SlotTemplate]) -> list[TimeSlot]:
    return [
        TimeSlot(
            id=f"{pattern_id}-{day.isoformat()}-{index}",
            start=normalize_time(template.start),
            end=normalize_time(template.end),
            notes=template.notes,
        )
        for index, template in enumerate(templates)
    ]


def project_pattern(
    pattern: RecurringPattern, date_range: DateRange
) -> Iterator[tuple[date, list[TimeSlot]]]:
    """Yield ``(date, slots)`` for every date the pattern produces within the range."""
    if not pattern.is_active:
        return
    window = date_range.intersect(DateRange(pattern.start_date, pattern.end_date))
    if window is None:
        return
    for day in window.days():
        if day in pattern.exceptions:
            continue
        templates = templates_for_day(pattern, day)
        if templates:
            yield day, materialize_slots(pattern.id, day, templates)


# ---------------------------------------------------------------------------
# Engine
# ---------------------------------------------------------------------------

class RecurringPatternEngine:
    """Pattern CRUD, preview, and idempotent application to a calendar."""

    def __init__(
        self,
        store: CalendarStore,
        calendar_model: CalendarModel,
        broadcaster: Optional[RealtimeChangeBroadcaster] = None,
        validator: Optional[SlotValidator] = None,
        clock: Callable = utc_now,
        max_range_days: int = settings.patterns.max_pattern_range_days,
    ) -> None:
        self._store = store
        self._calendar = calendar_model
        self._broadcaster = broadcaster
        self._validator = validator or default_validator
        self._clock = clock
        self._max_range_days = max_range_days

    # ------------------------------------------------------------------ #
    # Validation
    # ------------------------------------------------------------------ #

    def validate_schedule(
        self, pattern_type: PatternType, schedule: dict[str, list[SlotTemplate]]
    ) -> ValidationResult:
        """Check every day-key fits the pattern type and every template obeys slot rules."""
        result = ValidationResult()
        if not schedule:
            result.errors.append("Pattern schedule must contain at least one day")

        for key, templates in schedule.items():
            if pattern_type == PatternType.WEEKLY:
                key_ok = key in WEEKDAY_KEYS
            elif pattern_type == PatternType.MONTHLY:
                key_ok = _is_day_of_month(key)
            else:
                key_ok = key in WEEKDAY_KEYS or _is_day_of_month(key) or _is_iso_date(key)
            if not key_ok:
                result.errors.append(f"Invalid {pattern_type.value} schedule key {key!r}")
                continue

            key_result = ValidationResult()
            for template in templates:
                key_result.extend(self._validator.validate_times(template.start, template.end))
            result.extend(key_result)
            if key_result.is_valid:
                overlaps = self._validator.find_overlaps(
                    [TimeSlot(start=t.start, end=t.end) for t in templates]
                )
                result.errors.extend(f"{key}: {a} overlaps {b}" for a, b in overlaps)
        return result

    def _validate_validity_range(self, start: date, end: date) -> ValidationResult:
        validity = DateRange(start, end)
        return self._validator.validate_date_range(validity, self._max_range_days)

    # ------------------------------------------------------------------ #
    # CRUD
    # ------------------------------------------------------------------ #

    def create_pattern(self, user_id: str, draft: PatternDraft) -> RecurringPattern:
        result = self._validate_validity_range(draft.start_date, draft.end_date)
        result.extend(self.validate_schedule(draft.type, draft.schedule))
        result.raise_for_errors()

        now = self._clock()
        pattern = RecurringPattern(
            id=new_id("PT"),
            user_id=user_id,
            name=draft.name,
            type=draft.type,
            schedule=draft.schedule,
            start_date=draft.start_date,
            end_date=draft.end_date,
            exceptions=set(draft.exceptions),
            is_active=draft.is_active,
            created_at=now,
            updated_at=now,
        )
        saved = self._store.save_pattern(pattern)
        logger.info("Pattern %s (%s) created for %s", saved.id, saved.name, user_id)
        self._emit(saved.user_id, PatternAppliedPayload(action="created", pattern_id=saved.id, pattern=saved))
        return saved

    def get_pattern(self, pattern_id: str) -> RecurringPattern:
        pattern = self._store.get_pattern(pattern_id)
        if pattern is None:
            raise PatternNotFoundError(f"Pattern {pattern_id!r} not found")
        return pattern

    def list_patterns(self, user_id: str) -> list[RecurringPattern]:
        """Patterns for ``user_id``, newest first."""
        return self._store.list_patterns(user_id)

    def update_pattern(self, pattern_id: str, update: PatternUpdate) -> RecurringPattern:
        pattern = self.get_pattern(pattern_id)
        changes = update.model_dump(exclude_none=True)
        updated = pattern.model_copy(update=changes)
        if update.schedule is not None:
            updated.schedule = update.schedule

        result = self._validate_validity_range(updated.start_date, updated.end_date)
        if update.schedule is not None or update.type is not None:
            result.extend(self.validate_schedule(updated.type, updated.schedule))
        result.raise_for_errors()

        updated.updated_at = self._clock()
        saved = self._store.save_pattern(updated)
        logger.info("Pattern %s updated (%s)", pattern_id, ", ".join(sorted(changes)) or "no fields")
        self._emit(saved.user_id, PatternAppliedPayload(action="updated", pattern_id=saved.id, pattern=saved))
        return saved

    def delete_pattern(self, pattern_id: str) -> int:
        """Delete a pattern and detach its entries. Returns the number of entries detached."""
        pattern = self.get_pattern(pattern_id)
        detached = self._calendar.detach_pattern(pattern.user_id, pattern_id)
        self._store.delete_pattern(pattern_id)
        logger.info("Pattern %s deleted", pattern_id)
        self._emit(pattern.user_id, PatternAppliedPayload(action="deleted", pattern_id=pattern_id))
        return detached

    def add_exceptions(self, pattern_id: str, dates: Iterable[date]) -> RecurringPattern:
        pattern = self.get_pattern(pattern_id)
        pattern.exceptions = pattern.exceptions | set(dates)
        pattern.updated_at = self._clock()
        saved = self._store.save_pattern(pattern)
        self._emit(saved.user_id, PatternAppliedPayload(action="updated", pattern_id=saved.id, pattern=saved))
        return saved

    def remove_exceptions(self, pattern_id: str, dates: Iterable[date]) -> RecurringPattern:
        pattern = self.get_pattern(pattern_id)
        pattern.exceptions = pattern.exceptions - set(dates)
        pattern.updated_at = self._clock()
        saved = self._store.save_pattern(pattern)
        self._emit(saved.user_id, PatternAppliedPayload(action="updated", pattern_id=saved.id, pattern=saved))
        return saved

    def toggle_pattern_status(self, pattern_id: str) -> RecurringPattern:
        pattern = self.get_pattern(pattern_id)
        pattern.is_active = not pattern.is_active
        pattern.updated_at = self._clock()
        saved = self._store.save_pattern(pattern)
        logger.info("Pattern %s is now %s", pattern_id, "active" if saved.is_active else "inactive")
        self._emit(saved.user_id, PatternAppliedPayload(action="toggled", pattern_id=saved.id, pattern=saved))
        return saved

    def get_pattern_stats(self, pattern_id: str) -> PatternStats:
        pattern = self.get_pattern(pattern_id)
        entries = self._store.entries_for_pattern(pattern.user_id, pattern_id)
        today = self._clock().date()
        upcoming = [entry for entry in entries if entry.date >= today]
        active = sum(
            1 for entry in upcoming
            if any(slot.status == SlotStatus.AVAILABLE for slot in entry.time_slots)
        )
        stamps = [entry.created_at for entry in entries if entry.created_at is not None]
        return PatternStats(
            total_applications=len(entries),
            active_dates=active,
            upcoming_dates=len(upcoming),
            last_applied=max(stamps) if stamps else None,
        )

    @staticmethod
    def get_pattern_templates() -> list[PatternTemplate]:
        return [template.model_copy(deep=True) for template in PATTERN_TEMPLATES]

    # ------------------------------------------------------------------ #
    # Projection
    # ------------------------------------------------------------------ #

    def _booking_conflicts(self, day: date, slots: list[TimeSlot], booked: list[TimeSlot]) -> list[str]:
        found: list[str] = []
        for slot in slots:
            candidate = BookingCandidate(date=day, start=slot.start, end=slot.end)
            found.extend(hit.describe() for hit in detect_in_slots(candidate, booked))
        return found

    def preview_pattern(self, pattern: RecurringPattern, date_range: DateRange) -> PatternPreview:
        """Project a (possibly unsaved) pattern over a range without writing anything."""
        existing = {e.date: e for e in self._store.get_entries(pattern.user_id, date_range)}
        preview = PatternPreview()
        for day, slots in project_pattern(pattern, date_range):
            entry = existing.get(day)
            conflicts = self._booking_conflicts(day, slots, entry.booked_slots() if entry else [])
            preview.dates.append(day)
            preview.total_slots += len(slots)
            preview.conflicts.extend(conflicts)
            preview.preview.append(ProjectedDay(date=day, time_slots=slots, conflicts=conflicts))
        return preview

    def apply_pattern(
        self,
        pattern_id: str,
        date_range: DateRange,
        overwrite_existing: bool = False,
        skip_conflicts: bool = False,
        cancel_event: Optional[threading.Event] = None,
    ) -> PatternApplyResult:
        """
        Write a pattern's projection over ``date_range``.

        Each date commits on its own. An existing entry from elsewhere is
        kept unless ``overwrite_existing``; when overwriting, slots holding
        bookings stay and projected time is trimmed around them. With
        ``skip_conflicts``, a date whose projection overlaps a booking is
        skipped instead, whatever ``overwrite_existing`` says.

        Raises:
            PatternNotFoundError: No pattern with that id.
        """
        pattern = self.get_pattern(pattern_id)
        result = PatternApplyResult(pattern_id=pattern_id)

        with operation_scope(prefix=f"apply-{pattern_id}"):
            logger.info(
                "Applying pattern %s over %s..%s (overwrite=%s, skip_conflicts=%s)",
                pattern_id, date_range.start.isoformat(), date_range.end.isoformat(),
                overwrite_existing, skip_conflicts,
            )
            for day in pattern.exceptions:
                if day in date_range and pattern.start_date <= day <= pattern.end_date:
                    result.dates_skipped.append(SkippedDate(date=day, reason="exception date"))

            for day, slots in project_pattern(pattern, date_range):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Pattern application cancelled before %s", day.isoformat())
                    result.cancelled = True
                    break
                try:
                    self._apply_day(pattern, day, slots, overwrite_existing, skip_conflicts, result)
                except (ValidationError, OverlapError, VersionConflictError) as exc:
                    failure = PatternApplyError(day, str(exc))
                    logger.warning("Pattern %s failed for %s", pattern_id, failure)
                    result.errors.append(PatternApplyFailure(date=failure.date, error=failure.reason))

            result.dates_skipped.sort(key=lambda s: s.date)
            logger.info(
                "Pattern %s applied: %d created, %d updated, %d unchanged, %d skipped, %d failed",
                pattern_id, result.entries_created, result.entries_updated,
                result.entries_unchanged, len(result.dates_skipped), len(result.errors),
            )

        self._emit(
            pattern.user_id,
            PatternAppliedPayload(action="applied", pattern_id=pattern_id, result=result),
        )
        return result

    def _apply_day(
        self,
        pattern: RecurringPattern,
        day: date,
        slots: list[TimeSlot],
        overwrite_existing: bool,
        skip_conflicts: bool,
        result: PatternApplyResult,
    ) -> None:
        existing = self._store.get_entry(pattern.user_id, day)
        booked = existing.booked_slots() if existing else []

        conflicts = self._booking_conflicts(day, slots, booked)
        if conflicts and skip_conflicts:
            result.conflicts.extend(conflicts)
            result.dates_skipped.append(SkippedDate(date=day, reason="; ".join(conflicts)))
            return

        owned = existing is not None and existing.recurring_pattern_id == pattern.id
        if existing is not None and not owned and not overwrite_existing:
            result.dates_skipped.append(SkippedDate(date=day, reason="entry already exists"))
            return

        result.conflicts.extend(conflicts)
        for held in booked:
            slots = subtract_interval(
                slots, held.start_minutes, held.end_minutes, self._validator.min_slot_minutes
            )
        stored = self._calendar.upsert_entry(
            pattern.user_id,
            day,
            booked + slots,
            recurring_pattern_id=pattern.id,
            expected_version=existing.version if existing else 0,
        )

        if existing is None:
            result.entries_created += 1
        elif stored.version == existing.version:
            result.entries_unchanged += 1
            return
        else:
            result.entries_updated += 1
        result.slots_created += len(slots)

    def _emit(self, user_id: str, payload: PatternAppliedPayload) -> None:
        if self._broadcaster is not None:
            self._broadcaster.emit(EventType.PATTERN_APPLIED, payload, user_id)
