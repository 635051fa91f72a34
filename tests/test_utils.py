"""Tests for shared utility functions."""

from datetime import date, datetime

import pytest

from availability_engine.utils import (
    intervals_overlap,
    is_time_of_day,
    iter_dates,
    minutes_to_time,
    new_id,
    normalize_time,
    parse_date,
    time_to_minutes,
    weekday_key,
)


class TestTimeOfDay:
    def test_converts_to_minutes(self):
        assert time_to_minutes("09:30") == 570

    def test_accepts_single_digit_hour(self):
        assert time_to_minutes("6:00") == 360

    def test_rejects_out_of_range_hour(self):
        with pytest.raises(ValueError):
            time_to_minutes("24:00")

    def test_rejects_garbage(self):
        assert not is_time_of_day("9am")
        assert not is_time_of_day("09:60")

    def test_minutes_to_time_zero_pads(self):
        assert minutes_to_time(545) == "09:05"

    def test_normalize_pads_hour(self):
        assert normalize_time("9:00") == "09:00"


class TestIntervalsOverlap:
    def test_overlapping(self):
        assert intervals_overlap(600, 660, 630, 690)

    def test_touching_is_not_overlap(self):
        assert not intervals_overlap(600, 660, 660, 720)

    def test_contained(self):
        assert intervals_overlap(540, 1020, 600, 660)

    def test_disjoint(self):
        assert not intervals_overlap(540, 600, 700, 760)


class TestDates:
    def test_iter_dates_inclusive(self):
        days = list(iter_dates(date(2024, 2, 28), date(2024, 3, 1)))
        assert days == [date(2024, 2, 28), date(2024, 2, 29), date(2024, 3, 1)]

    def test_weekday_key(self):
        assert weekday_key(date(2024, 6, 10)) == "monday"
        assert weekday_key(date(2024, 6, 16)) == "sunday"

    def test_parse_date_from_string(self):
        assert parse_date("2024-06-10") == date(2024, 6, 10)

    def test_parse_date_truncates_datetime(self):
        assert parse_date(datetime(2024, 6, 10, 15, 30)) == date(2024, 6, 10)

    def test_parse_date_rejects_garbage(self):
        with pytest.raises(ValueError):
            parse_date("next tuesday")


class TestNewId:
    def test_prefix_and_length(self):
        value = new_id("BK")
        assert value.startswith("BK-")
        assert len(value) == 11

    def test_unique(self):
        assert new_id("BK") != new_id("BK")
