"""
CLI for exploring pattern templates and calendar exports.

Usage:
    python -m availability_engine.cli templates
    python -m availability_engine.cli preview --template "Standard Work Week" --start 2024-06-03 --end 2024-06-09
    python -m availability_engine.cli export --template "Evening Sessions" --start 2024-06-01 \
        --end 2024-06-30 --format ics --output june.ics
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from availability_engine.errors import AvailabilityError
from availability_engine.schemas.calendar_schema import DateRange
from availability_engine.schemas.pattern_schema import PatternDraft, PatternTemplate, RecurringPattern
from availability_engine.scheduling.recurring_patterns import PATTERN_TEMPLATES
from availability_engine.service import AvailabilityService

logger = logging.getLogger(__name__)

CLI_USER = "cli-user"


def _find_template(name: str) -> Optional[PatternTemplate]:
    for template in PATTERN_TEMPLATES:
        if template.name.lower() == name.lower():
            return template
    return None


def _format_templates() -> str:
    lines = []
    for template in PATTERN_TEMPLATES:
        lines.append(f"{template.name} ({template.type.value}): {template.description}")
        for day, slots in template.schedule.items():
            times = ", ".join(f"{s.start}-{s.end}" for s in slots)
            lines.append(f"    {day:<10} {times}")
    return "\n".join(lines)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Preview recurring availability templates and export calendars."
    )
    parser.add_argument("--verbose", action="store_true", help="Enable verbose logging output.")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("templates", help="List the built-in pattern templates.")

    for name, help_text in [
        ("preview", "Show the dates and slots a template produces over a range."),
        ("export", "Apply a template to a scratch calendar and export it."),
    ]:
        sub = commands.add_parser(name, help=help_text)
        sub.add_argument("--template", required=True, help="Template name, e.g. 'Standard Work Week'.")
        sub.add_argument("--start", required=True, help="First date (YYYY-MM-DD).")
        sub.add_argument("--end", required=True, help="Last date (YYYY-MM-DD).")
        if name == "export":
            sub.add_argument("--format", choices=["ics", "csv", "json"], default="ics")
            sub.add_argument(
                "--output", default=None, help="Path to write the export (default: stdout)."
            )
    return parser


def _preview(service: AvailabilityService, template: PatternTemplate, date_range: DateRange) -> str:
    pattern = RecurringPattern(
        id="preview",
        user_id=CLI_USER,
        name=template.name,
        type=template.type,
        schedule=template.schedule,
        start_date=date_range.start,
        end_date=date_range.end,
    )
    preview = service.preview_pattern(pattern, date_range)
    lines = [
        f"{day.date.isoformat()} {day.date.strftime('%a')}: "
        + ", ".join(f"{s.start}-{s.end}" for s in day.time_slots)
        for day in preview.preview
    ]
    lines.append(f"{len(preview.dates)} dates, {preview.total_slots} slots")
    return "\n".join(lines)


def _export(
    service: AvailabilityService, template: PatternTemplate, date_range: DateRange, fmt: str
) -> str:
    pattern = service.create_pattern(
        CLI_USER,
        PatternDraft(
            name=template.name,
            type=template.type,
            schedule=template.schedule,
            start_date=date_range.start,
            end_date=date_range.end,
        ),
    )
    result = service.apply_pattern(pattern.id, date_range)
    logger.info("Applied %s: %d entries created", template.name, result.entries_created)
    return service.export_calendar(CLI_USER, date_range, fmt)


def main(argv: Optional[list[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    if args.command == "templates":
        sys.stdout.write(_format_templates() + "\n")
        return 0

    template = _find_template(args.template)
    if template is None:
        names = [t.name for t in PATTERN_TEMPLATES]
        logger.error("Unknown template %r. Available: %s", args.template, names)
        return 1

    try:
        date_range = DateRange.of(args.start, args.end)
        with AvailabilityService() as service:
            if args.command == "preview":
                output = _preview(service, template, date_range)
            else:
                output = _export(service, template, date_range, args.format)
    except (AvailabilityError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1

    if getattr(args, "output", None):
        path = Path(args.output)
        path.write_text(output, encoding="utf-8")
        logger.info("Export written to %s", path)
    else:
        sys.stdout.write(output if output.endswith("\n") else output + "\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
