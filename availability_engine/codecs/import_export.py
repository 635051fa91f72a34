"""
Calendar import and export in ICS, CSV and JSON.

Export writes one record per slot (ICS, CSV) or one record per day (JSON).
Import parses the whole file first; a file that cannot be parsed at all
raises ``ParseError``. Every row then goes through the same slot rules as a
manual edit, bad rows are reported and skipped, and the remaining rows are
grouped by date. Each date is one independent write that replaces the
day's slots, so a partly bad file still imports its good dates.
"""

import csv
import io
import json
import threading
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, Field

from availability_engine.config import settings
from availability_engine.errors import OverlapError, ParseError, ValidationError, VersionConflictError
from availability_engine.logging_context import get_operation_logger, operation_scope
from availability_engine.schemas.calendar_schema import CalendarEntry, DateRange, SlotStatus, TimeSlot
from availability_engine.scheduling.entry_model import CalendarModel
from availability_engine.store.base import CalendarStore
from availability_engine.utils import normalize_time, parse_date

logger = get_operation_logger(__name__)

EXPORT_FORMATS = ("ics", "csv", "json")

CSV_HEADER = ["Date", "Status", "Start Time", "End Time", "Job Title", "Client Name", "Rate"]
_REQUIRED_CSV_COLUMNS = {"Date", "Status", "Start Time", "End Time"}

_BOOKED_STATUSES = (SlotStatus.BOOKED, SlotStatus.TENTATIVE)


class ImportResult(BaseModel):
    """Outcome of ``import_calendar``: good dates are written even when others fail."""

    imported_count: int = 0
    slots_imported: int = 0
    errors: list[str] = Field(default_factory=list)
    cancelled: bool = False

    @property
    def success(self) -> bool:
        return not self.errors and not self.cancelled


@dataclass
class _Row:
    """One parsed record before validation."""
    source: str
    date: str
    start: str = ""
    end: str = ""
    status: str = SlotStatus.AVAILABLE.value
    job_title: Optional[str] = None
    client_name: Optional[str] = None
    rate: Optional[str] = None
    notes: Optional[str] = None


# ---------------------------------------------------------------------------
# ICS text helpers
# ---------------------------------------------------------------------------

def escape_ical_text(value: str) -> str:
    return (
        value.replace("\\", "\\\\")
        .replace(";", "\\;")
        .replace(",", "\\,")
        .replace("\r\n", "\\n")
        .replace("\n", "\\n")
    )


def unescape_ical_text(value: str) -> str:
    out: list[str] = []
    chars = iter(value)
    for char in chars:
        if char != "\\":
            out.append(char)
            continue
        nxt = next(chars, "")
        out.append("\n" if nxt in ("n", "N") else nxt)
    return "".join(out)


def _fold(line: str, limit: int = 75) -> list[str]:
    if len(line) <= limit:
        return [line]
    parts = [line[:limit]]
    rest = line[limit:]
    while rest:
        parts.append(" " + rest[: limit - 1])
        rest = rest[limit - 1:]
    return parts


def _unfold(content: str) -> list[str]:
    lines: list[str] = []
    for raw in content.replace("\r\n", "\n").replace("\r", "\n").split("\n"):
        if raw.startswith((" ", "\t")) and lines:
            lines[-1] += raw[1:]
        elif raw:
            lines.append(raw)
    return lines


def _ics_stamp(day: date, time_of_day: str) -> str:
    return f"{day.strftime('%Y%m%d')}T{time_of_day.replace(':', '')}00"


def _parse_ics_stamp(value: str) -> tuple[str, str]:
    """``YYYYMMDDTHHMMSS[Z]`` -> (``YYYY-MM-DD``, ``HH:MM``)."""
    stamp = datetime.strptime(value.strip().rstrip("Z")[:15], "%Y%m%dT%H%M%S")
    return stamp.date().isoformat(), stamp.strftime("%H:%M")


def _summary(slot: TimeSlot) -> str:
    if slot.status == SlotStatus.AVAILABLE:
        return "Available"
    return slot.job_title or slot.status.value.capitalize()


class ImportExportCodec:
    """Serializes a user's calendar and loads calendars back through ``CalendarModel``."""

    def __init__(
        self, store: CalendarStore, calendar_model: CalendarModel, export_config=settings.export
    ) -> None:
        self._store = store
        self._calendar = calendar_model
        self._prodid = export_config.prodid
        self._uid_domain = export_config.uid_domain

    # ------------------------------------------------------------------ #
    # Export
    # ------------------------------------------------------------------ #

    def export_calendar(self, user_id: str, date_range: DateRange, fmt: str) -> str:
        fmt = fmt.lower()
        if fmt not in EXPORT_FORMATS:
            raise ValidationError([f"Unsupported export format {fmt!r}; use one of {EXPORT_FORMATS}"])
        entries = self._store.get_entries(user_id, date_range)
        logger.info("Exporting %d entries for %s as %s", len(entries), user_id, fmt)
        if fmt == "ics":
            return self.to_ics(entries)
        if fmt == "csv":
            return self.to_csv(entries)
        return self.to_json(entries)

    def to_ics(self, entries: list[CalendarEntry]) -> str:
        lines = ["BEGIN:VCALENDAR", "VERSION:2.0", f"PRODID:{self._prodid}", "CALSCALE:GREGORIAN"]
        for entry in entries:
            for slot in entry.time_slots:
                lines.extend([
                    "BEGIN:VEVENT",
                    f"UID:{entry.date.isoformat()}-{slot.start}-{slot.end}@{self._uid_domain}",
                    f"DTSTART:{_ics_stamp(entry.date, slot.start)}",
                    f"DTEND:{_ics_stamp(entry.date, slot.end)}",
                    f"SUMMARY:{escape_ical_text(_summary(slot))}",
                ])
                if slot.client_name:
                    lines.append(f"DESCRIPTION:{escape_ical_text('Client: ' + slot.client_name)}")
                lines.append(f"X-AVAILABILITY-STATUS:{slot.status.value}")
                lines.append("END:VEVENT")
        lines.append("END:VCALENDAR")
        folded = [part for line in lines for part in _fold(line)]
        return "\r\n".join(folded) + "\r\n"

    @staticmethod
    def to_csv(entries: list[CalendarEntry]) -> str:
        buffer = io.StringIO()
        writer = csv.writer(buffer, lineterminator="\n")
        writer.writerow(CSV_HEADER)
        for entry in entries:
            if not entry.time_slots:
                writer.writerow([entry.date.isoformat(), entry.status.value, "", "", "", "", ""])
                continue
            for slot in entry.time_slots:
                writer.writerow([
                    entry.date.isoformat(),
                    slot.status.value,
                    slot.start,
                    slot.end,
                    slot.job_title or "",
                    slot.client_name or "",
                    "" if slot.rate_per_hour is None else slot.rate_per_hour,
                ])
        return buffer.getvalue()

    @staticmethod
    def to_json(entries: list[CalendarEntry]) -> str:
        records = [
            {
                "date": entry.date.isoformat(),
                "status": entry.status.value,
                "notes": entry.notes,
                "time_slots": [
                    slot.model_dump(
                        mode="json",
                        include={"start", "end", "status", "job_title", "client_name",
                                 "rate_per_hour", "notes"},
                    )
                    for slot in entry.time_slots
                ],
            }
            for entry in entries
        ]
        return json.dumps(records, indent=2)

    # ------------------------------------------------------------------ #
    # Import: parsing
    # ------------------------------------------------------------------ #

    @staticmethod
    def parse_json(content: str) -> tuple[list[_Row], list[str]]:
        try:
            data = json.loads(content)
        except json.JSONDecodeError as exc:
            raise ParseError(f"Failed to parse JSON file: {exc}") from exc
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            raise ParseError("JSON import must be an array of calendar entries")

        rows: list[_Row] = []
        errors: list[str] = []
        for index, record in enumerate(data, start=1):
            source = f"record {index}"
            if not isinstance(record, dict) or "date" not in record:
                errors.append(f"{source}: missing date")
                continue
            slots = record.get("time_slots") or []
            if not isinstance(slots, list):
                errors.append(f"{source}: time_slots must be a list")
                continue
            if not slots:
                rows.append(_Row(source=source, date=str(record["date"])))
            for position, slot in enumerate(slots, start=1):
                if not isinstance(slot, dict):
                    errors.append(f"{source} slot {position}: not an object")
                    continue
                rate = slot.get("rate_per_hour")
                rows.append(_Row(
                    source=f"{source} slot {position}",
                    date=str(record["date"]),
                    start=str(slot.get("start", "")),
                    end=str(slot.get("end", "")),
                    status=str(slot.get("status", SlotStatus.AVAILABLE.value)),
                    job_title=slot.get("job_title"),
                    client_name=slot.get("client_name"),
                    rate=None if rate is None else str(rate),
                    notes=slot.get("notes"),
                ))
        return rows, errors

    @staticmethod
    def parse_csv(content: str) -> tuple[list[_Row], list[str]]:
        reader = csv.DictReader(io.StringIO(content))
        header = set(reader.fieldnames or [])
        missing = _REQUIRED_CSV_COLUMNS - header
        if missing:
            raise ParseError(f"CSV file is missing columns: {', '.join(sorted(missing))}")

        rows: list[_Row] = []
        errors: list[str] = []
        for line_number, record in enumerate(reader, start=2):
            source = f"line {line_number}"
            day = (record.get("Date") or "").strip()
            if not day:
                errors.append(f"{source}: missing date")
                continue
            start = (record.get("Start Time") or "").strip()
            end = (record.get("End Time") or "").strip()
            status = (record.get("Status") or "").strip() or SlotStatus.AVAILABLE.value
            if not start and not end:
                rows.append(_Row(source=source, date=day))
                continue
            rows.append(_Row(
                source=source,
                date=day,
                start=start,
                end=end,
                status=status,
                job_title=(record.get("Job Title") or "").strip() or None,
                client_name=(record.get("Client Name") or "").strip() or None,
                rate=(record.get("Rate") or "").strip() or None,
            ))
        return rows, errors

    @staticmethod
    def parse_ics(content: str) -> tuple[list[_Row], list[str]]:
        lines = _unfold(content)
        if "BEGIN:VCALENDAR" not in (line.strip().upper() for line in lines):
            raise ParseError("ICS file has no BEGIN:VCALENDAR")

        rows: list[_Row] = []
        errors: list[str] = []
        event: Optional[dict[str, str]] = None
        count = 0
        for line in lines:
            upper = line.strip().upper()
            if upper == "BEGIN:VEVENT":
                event = {}
                count += 1
                continue
            if upper == "END:VEVENT" and event is not None:
                source = f"event {count}"
                try:
                    rows.append(ImportExportCodec._ics_row(source, event))
                except (KeyError, ValueError) as exc:
                    errors.append(f"{source}: invalid event ({exc})")
                event = None
                continue
            if event is None or ":" not in line:
                continue
            name, value = line.split(":", 1)
            event[name.split(";", 1)[0].upper()] = value
        return rows, errors

    @staticmethod
    def _ics_row(source: str, event: dict[str, str]) -> _Row:
        start_day, start = _parse_ics_stamp(event["DTSTART"])
        end_day, end = _parse_ics_stamp(event["DTEND"])
        if start_day != end_day:
            raise ValueError("event spans more than one day")

        status = event.get("X-AVAILABILITY-STATUS", "").strip().lower()
        summary = unescape_ical_text(event.get("SUMMARY", "")).strip()
        if not status:
            status = SlotStatus.AVAILABLE.value if summary in ("", "Available") else SlotStatus.BOOKED.value
        job_title = None
        if summary and summary not in ("Available", status.capitalize()):
            job_title = summary

        description = unescape_ical_text(event.get("DESCRIPTION", "")).strip()
        client_name = description[len("Client:"):].strip() if description.startswith("Client:") else None
        return _Row(
            source=source, date=start_day, start=start, end=end, status=status,
            job_title=job_title, client_name=client_name or None,
        )

    # ------------------------------------------------------------------ #
    # Import: validation and writes
    # ------------------------------------------------------------------ #

    def _to_slot(self, row: _Row) -> TimeSlot:
        """Turn a row into a slot or raise ``ValidationError`` with every problem found."""
        errors: list[str] = []
        try:
            status = SlotStatus(row.status.strip().lower())
        except ValueError:
            errors.append(f"unknown status {row.status!r}")
            status = SlotStatus.AVAILABLE
        rate: Optional[float] = None
        if row.rate:
            try:
                rate = float(row.rate)
            except ValueError:
                errors.append(f"invalid rate {row.rate!r}")
        errors.extend(self._calendar.validator.validate_times(row.start, row.end).errors)
        if errors:
            raise ValidationError(errors)
        return TimeSlot(
            start=normalize_time(row.start),
            end=normalize_time(row.end),
            status=status,
            is_booked=status in _BOOKED_STATUSES,
            job_title=row.job_title,
            client_name=row.client_name,
            rate_per_hour=rate,
            notes=row.notes,
        )

    def import_calendar(
        self,
        user_id: str,
        content: str,
        fmt: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> ImportResult:
        """
        Parse ``content`` and write it date by date.

        Raises:
            ParseError: The file cannot be parsed at all.
            ValidationError: Unknown format.
        """
        fmt = fmt.lower()
        parsers = {"ics": self.parse_ics, "csv": self.parse_csv, "json": self.parse_json}
        if fmt not in parsers:
            raise ValidationError([f"Unsupported import format {fmt!r}; use one of {EXPORT_FORMATS}"])

        rows, parse_errors = parsers[fmt](content)
        result = ImportResult(errors=list(parse_errors))

        with operation_scope(prefix=f"import-{fmt}"):
            by_date: dict[date, list[TimeSlot]] = {}
            for row in rows:
                try:
                    day = parse_date(row.date)
                except ValueError:
                    result.errors.append(f"{row.source}: invalid date {row.date!r}")
                    continue
                if not row.start and not row.end:
                    by_date.setdefault(day, [])
                    continue
                try:
                    slot = self._to_slot(row)
                except ValidationError as exc:
                    result.errors.extend(f"{row.source}: {message}" for message in exc.errors)
                    continue
                by_date.setdefault(day, []).append(slot)

            for day in sorted(by_date):
                if cancel_event is not None and cancel_event.is_set():
                    logger.info("Import cancelled before %s", day.isoformat())
                    result.cancelled = True
                    break
                self._import_day(user_id, day, by_date[day], result)

            logger.info(
                "Imported %d dates (%d slots) for %s with %d errors",
                result.imported_count, result.slots_imported, user_id, len(result.errors),
            )
        return result

    def _import_day(self, user_id: str, day: date, slots: list[TimeSlot], result: ImportResult) -> None:
        existing = self._store.get_entry(user_id, day)
        if existing is not None and any(s.booking_id for s in existing.time_slots):
            result.errors.append(f"{day.isoformat()}: existing bookings on this date; not replaced")
            return
        try:
            self._calendar.upsert_entry(
                user_id, day, slots, expected_version=existing.version if existing else 0,
                unlink_pattern=True,
            )
        except (ValidationError, OverlapError, VersionConflictError) as exc:
            result.errors.append(f"{day.isoformat()}: {exc}")
            return
        result.imported_count += 1
        result.slots_imported += len(slots)
