"""Tests for the command-line entry point."""

import json

from availability_engine.cli import main


def test_templates(capsys):
    assert main(["templates"]) == 0
    out = capsys.readouterr().out
    assert "Standard Work Week (weekly): Monday to Friday, 9 AM to 5 PM" in out
    assert "Flexible Schedule" in out


def test_preview(capsys):
    code = main([
        "preview", "--template", "standard work week", "--start", "2024-06-08", "--end", "2024-06-11",
    ])
    assert code == 0
    lines = capsys.readouterr().out.splitlines()
    assert lines == [
        "2024-06-10 Mon: 09:00-17:00",
        "2024-06-11 Tue: 09:00-17:00",
        "2 dates, 2 slots",
    ]


def test_export_to_file(tmp_path):
    output = tmp_path / "june.json"
    code = main([
        "export", "--template", "Weekend Photographer", "--start", "2024-06-01", "--end", "2024-06-09",
        "--format", "json", "--output", str(output),
    ])
    assert code == 0
    records = json.loads(output.read_text(encoding="utf-8"))
    assert [r["date"] for r in records] == ["2024-06-01", "2024-06-02", "2024-06-08", "2024-06-09"]
    assert len(records[0]["time_slots"]) == 2


def test_export_ics_to_stdout(capsys):
    code = main([
        "export", "--template", "Evening Sessions", "--start", "2024-06-10", "--end", "2024-06-10",
    ])
    assert code == 0
    out = capsys.readouterr().out
    assert "BEGIN:VCALENDAR" in out
    assert "DTSTART:20240610T170000" in out


def test_unknown_template():
    assert main(["preview", "--template", "Night Owl", "--start", "2024-06-01", "--end", "2024-06-07"]) == 1


def test_range_over_limit():
    code = main(["export", "--template", "Standard Work Week", "--start", "2024-01-01", "--end", "2024-12-31"])
    assert code == 1


def test_bad_date():
    assert main(["preview", "--template", "Standard Work Week", "--start", "June 1", "--end", "2024-06-07"]) == 1
