"""
Reminder frequencies, day selection, triggers and upcoming occurrences.
"""

from datetime import date, datetime
from zoneinfo import ZoneInfo

import pytest

from medcheck.core.reminders import (
    ReminderFrequency,
    ReminderSchedule,
    build_triggers,
    describe_days,
    is_scheduled_on,
    normalize_days,
    normalize_times,
    parse_time,
    sunday_based_weekday,
    toggle_day,
    upcoming_occurrences,
)


class TestTimes:

    def test_parse_accepts_single_digit_hour(self):
        assert parse_time("8:05").hour == 8

    @pytest.mark.parametrize("value", ["24:00", "12:60", "noon", "8"])
    def test_parse_rejects_invalid(self, value):
        with pytest.raises(ValueError, match="HH:MM"):
            parse_time(value)

    def test_normalize_sorts_and_deduplicates(self):
        assert normalize_times(["20:00", "8:00", "08:00"]) == ["08:00", "20:00"]


class TestDays:

    def test_daily_drops_days(self):
        assert normalize_days("daily", [1, 2]) == []

    def test_weekly_range(self):
        assert normalize_days("weekly", [5, 1, 1]) == [1, 5]
        with pytest.raises(ValueError, match="outside 0-6"):
            normalize_days("weekly", [7])

    def test_monthly_range(self):
        assert normalize_days("monthly", [31, 1]) == [1, 31]
        with pytest.raises(ValueError, match="outside 1-31"):
            normalize_days("monthly", [0])

    def test_unknown_frequency(self):
        with pytest.raises(ValueError, match="Unknown reminder frequency"):
            normalize_days("hourly", [])

    def test_toggle_adds_then_removes(self):
        days = toggle_day([1, 5], 3, "weekly")
        assert days == [1, 3, 5]
        assert toggle_day(days, 3, "weekly") == [1, 5]

    def test_toggle_on_daily_raises(self):
        with pytest.raises(ValueError, match="Daily reminders"):
            toggle_day([], 1, "daily")

    def test_describe(self):
        assert describe_days("daily", []) == "Every day"
        assert describe_days("weekly", [5, 1]) == "Mon, Fri"
        assert describe_days("monthly", [1, 2, 3, 11, 22]) == "1st, 2nd, 3rd, 11th, 22nd of the month"
        assert describe_days("weekly", []) == "No days selected"


class TestTriggers:

    def test_daily_one_trigger_per_time(self):
        schedule = ReminderSchedule.create("daily", ["20:00", "08:00"])
        triggers = build_triggers(schedule)
        assert [(t.hour, t.minute) for t in triggers] == [(8, 0), (20, 0)]
        assert all(t.weekday is None and t.day is None for t in triggers)

    def test_weekly_weekday_is_device_numbered(self):
        schedule = ReminderSchedule.create("weekly", ["08:00"], [1, 3, 5])
        assert [t.weekday for t in build_triggers(schedule)] == [2, 4, 6]

    def test_monthly_carries_day_of_month(self):
        schedule = ReminderSchedule.create("monthly", ["09:30"], [1, 15])
        triggers = build_triggers(schedule)
        assert [t.day for t in triggers] == [1, 15]
        assert triggers[0].frequency == ReminderFrequency.MONTHLY

    def test_weekly_without_days_has_no_triggers(self):
        assert build_triggers(ReminderSchedule.create("weekly", ["08:00"], [])) == []


class TestScheduling:

    def test_sunday_is_zero(self):
        assert sunday_based_weekday(date(2025, 1, 5)) == 0  # a Sunday
        assert sunday_based_weekday(date(2025, 1, 6)) == 1

    def test_no_times_is_never_scheduled(self):
        assert not is_scheduled_on(ReminderSchedule.create("daily", []), date(2025, 1, 6))

    def test_weekly_schedule(self):
        schedule = ReminderSchedule.create("weekly", ["08:00"], [1])
        assert is_scheduled_on(schedule, date(2025, 1, 6))
        assert not is_scheduled_on(schedule, date(2025, 1, 7))

    def test_upcoming_daily_skips_past_times_today(self):
        tz = ZoneInfo("Europe/Berlin")
        schedule = ReminderSchedule.create("daily", ["08:00", "20:00"])
        after = datetime(2025, 3, 1, 12, 0, tzinfo=tz)
        upcoming = upcoming_occurrences(schedule, after, limit=3)
        assert upcoming == [
            datetime(2025, 3, 1, 20, 0, tzinfo=tz),
            datetime(2025, 3, 2, 8, 0, tzinfo=tz),
            datetime(2025, 3, 2, 20, 0, tzinfo=tz),
        ]

    def test_upcoming_monthly_skips_short_months(self):
        schedule = ReminderSchedule.create("monthly", ["09:00"], [31])
        upcoming = upcoming_occurrences(schedule, datetime(2025, 3, 31, 10, 0), limit=2)
        assert [d.date() for d in upcoming] == [date(2025, 5, 31), date(2025, 7, 31)]

    def test_upcoming_without_times_is_empty(self):
        assert upcoming_occurrences(ReminderSchedule.create("daily", []), datetime(2025, 1, 1)) == []
