"""
Dose-log aggregation: day status, adherence rate, calendars, taken-today.
"""

from datetime import date, datetime, timezone
from types import SimpleNamespace
from uuid import uuid4
from zoneinfo import ZoneInfo

import pytest

from medcheck.core.adherence import (
    DayStatus,
    adherence_rate,
    day_bounds,
    day_status,
    local_day,
    month_bounds,
    month_calendar,
    taken_today,
)


def log(status, at, medication_id=None):
    return SimpleNamespace(status=status, scheduled_time=at, medication_id=medication_id or uuid4())


class TestDayStatus:

    def test_all_taken(self):
        assert day_status(["taken", "taken"]) == DayStatus.TAKEN

    def test_none_taken(self):
        assert day_status(["missed", "skipped"]) == DayStatus.MISSED

    def test_mixed_is_partial(self):
        assert day_status(["taken", "missed"]) == DayStatus.PARTIAL

    def test_no_logs(self):
        assert day_status([]) is None


class TestAdherenceRate:

    def test_rate_one_decimal(self):
        assert adherence_rate(["taken", "taken", "missed"]) == 66.7

    def test_no_logs_is_none(self):
        assert adherence_rate([]) is None

    def test_unknown_status_raises(self):
        with pytest.raises(ValueError):
            adherence_rate(["forgotten"])


class TestLocalDays:

    def test_local_day_crosses_midnight(self):
        moment = datetime(2025, 3, 1, 23, 30, tzinfo=timezone.utc)
        assert local_day(moment, ZoneInfo("Asia/Tokyo")) == date(2025, 3, 2)

    def test_naive_is_treated_as_utc(self):
        assert local_day(datetime(2025, 3, 1, 23, 30), ZoneInfo("Asia/Tokyo")) == date(2025, 3, 2)

    def test_day_bounds_are_utc(self):
        start, end = day_bounds(date(2025, 3, 2), ZoneInfo("Asia/Tokyo"))
        assert start == datetime(2025, 3, 1, 15, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 3, 2, 15, 0, tzinfo=timezone.utc)

    def test_month_bounds_cover_last_day(self):
        start, end = month_bounds(2024, 2, ZoneInfo("UTC"))
        assert start == datetime(2024, 2, 1, tzinfo=timezone.utc)
        assert end == datetime(2024, 3, 1, tzinfo=timezone.utc)

    def test_december_ends_at_new_year(self):
        start, end = month_bounds(2024, 12, ZoneInfo("America/New_York"))
        assert start == datetime(2024, 12, 1, 5, 0, tzinfo=timezone.utc)
        assert end == datetime(2025, 1, 1, 5, 0, tzinfo=timezone.utc)

    def test_last_representable_month_is_rejected(self):
        with pytest.raises(ValueError, match="last supported month"):
            month_bounds(9999, 12, ZoneInfo("UTC"))

    def test_month_before_the_last_still_works(self):
        _, end = month_bounds(9999, 11, ZoneInfo("UTC"))
        assert end == datetime(9999, 12, 1, tzinfo=timezone.utc)


class TestMonthCalendar:

    def test_groups_by_local_day_and_skips_other_months(self):
        tz = ZoneInfo("UTC")
        logs = [
            log("taken", datetime(2025, 3, 1, 8, tzinfo=timezone.utc)),
            log("missed", datetime(2025, 3, 1, 20, tzinfo=timezone.utc)),
            log("taken", datetime(2025, 3, 2, 8, tzinfo=timezone.utc)),
            log("skipped", datetime(2025, 3, 3, 8, tzinfo=timezone.utc)),
            log("taken", datetime(2025, 4, 1, 8, tzinfo=timezone.utc)),
        ]
        assert month_calendar(logs, 2025, 3, tz) == {
            date(2025, 3, 1): DayStatus.PARTIAL,
            date(2025, 3, 2): DayStatus.TAKEN,
            date(2025, 3, 3): DayStatus.MISSED,
        }


class TestTakenToday:

    def test_distinct_medications_taken_on_day(self):
        tz = ZoneInfo("UTC")
        med_a, med_b = uuid4(), uuid4()
        logs = [
            log("taken", datetime(2025, 3, 1, 8, tzinfo=timezone.utc), med_a),
            log("taken", datetime(2025, 3, 1, 20, tzinfo=timezone.utc), med_a),
            log("skipped", datetime(2025, 3, 1, 8, tzinfo=timezone.utc), med_b),
            log("taken", datetime(2025, 2, 28, 8, tzinfo=timezone.utc), med_b),
        ]
        assert taken_today(logs, date(2025, 3, 1), tz) == {med_a}
