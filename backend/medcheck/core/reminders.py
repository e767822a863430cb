"""
MedCheck Backend - Reminder Frequency & Day Selection
=====================================================

What:  The reminder model attached to a medication: how often it repeats,
       at which times of day, and on which days.
Who:   MedicationService (normalising input, toggling days, listing
       upcoming reminders) and TrackingService (which days a dose is due).

Frequencies and day numbering:
    daily    no days; fires every day at each time
    weekly   days 0-6, Sunday = 0
    monthly  days 1-31; a day missing from a month (31 in April) is skipped

Triggers:
    A trigger is the platform-neutral description a device needs to register
    a repeating local notification. Mobile notification APIs number weekdays
    1-7 starting on Sunday, so a weekly trigger carries `day + 1`.

        daily   times=[08:00, 20:00]            → 2 triggers
        weekly  times=[08:00] days=[1, 3, 5]    → 3 triggers (weekday 2, 4, 6)
        monthly times=[09:00] days=[1, 15]      → 2 triggers
"""

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple, Union


class ReminderFrequency(str, Enum):
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


WEEKLY_DAYS = range(0, 7)
MONTHLY_DAYS = range(1, 32)
WEEKDAY_NAMES = ("Sun", "Mon", "Tue", "Wed", "Thu", "Fri", "Sat")

# Look-ahead cap when searching for upcoming reminders; a monthly schedule
# on day 31 fires only seven times a year.
MAX_LOOKAHEAD_DAYS = 366 * 4

_TIME_RE = re.compile(r"^([01]?\d|2[0-3]):([0-5]\d)$")


def _frequency(value: Union[str, ReminderFrequency]) -> ReminderFrequency:
    try:
        return ReminderFrequency(value)
    except ValueError:
        raise ValueError(
            f"Unknown reminder frequency '{value}'. Expected daily, weekly or monthly"
        )


# ── Times ─────────────────────────────────────────────────────────────────

def parse_time(value: str) -> time:
    """Parse a 24-hour "HH:MM" string ("8:05" is accepted)."""
    match = _TIME_RE.match(str(value).strip())
    if not match:
        raise ValueError(f"Invalid reminder time '{value}'. Use 24-hour HH:MM")
    return time(int(match.group(1)), int(match.group(2)))


def format_time(value: time) -> str:
    return value.strftime("%H:%M")


def normalize_times(times: Iterable[str]) -> List[str]:
    """Validated, de-duplicated and sorted "HH:MM" strings."""
    return sorted({format_time(parse_time(t)) for t in times})


# ── Days ──────────────────────────────────────────────────────────────────

def valid_days(frequency: Union[str, ReminderFrequency]) -> range:
    """Allowed day numbers for a frequency; daily has none."""
    freq = _frequency(frequency)
    if freq == ReminderFrequency.WEEKLY:
        return WEEKLY_DAYS
    if freq == ReminderFrequency.MONTHLY:
        return MONTHLY_DAYS
    return range(0)


def _check_day(frequency: ReminderFrequency, day: int) -> None:
    allowed = valid_days(frequency)
    if day not in allowed:
        if not allowed:
            raise ValueError("Daily reminders do not take days")
        raise ValueError(
            f"Day {day} is outside {allowed.start}-{allowed.stop - 1} "
            f"for {frequency.value} reminders"
        )


def normalize_days(
    frequency: Union[str, ReminderFrequency], days: Optional[Iterable[int]]
) -> List[int]:
    """
    Validate, de-duplicate and sort a day selection.

    Daily schedules carry no days, so whatever was sent is dropped.
    """
    freq = _frequency(frequency)
    if freq == ReminderFrequency.DAILY:
        return []
    selected = set(days or ())
    for day in selected:
        _check_day(freq, day)
    return sorted(selected)


def toggle_day(
    days: Iterable[int], day: int, frequency: Union[str, ReminderFrequency]
) -> List[int]:
    """
    Remove `day` from the selection when present, add it otherwise.

    The result is always sorted, so toggling the same day twice gives back
    the original selection.
    """
    freq = _frequency(frequency)
    _check_day(freq, day)
    selected = set(days)
    if day in selected:
        selected.remove(day)
    else:
        selected.add(day)
    return sorted(selected)


def describe_days(frequency: Union[str, ReminderFrequency], days: Sequence[int]) -> str:
    """Short label such as "Mon, Wed, Fri" or "1st, 15th of the month"."""
    freq = _frequency(frequency)
    if freq == ReminderFrequency.DAILY:
        return "Every day"
    if not days:
        return "No days selected"
    if freq == ReminderFrequency.WEEKLY:
        return ", ".join(WEEKDAY_NAMES[d] for d in sorted(days))
    return ", ".join(_ordinal(d) for d in sorted(days)) + " of the month"


def _ordinal(n: int) -> str:
    if 11 <= n % 100 <= 13:
        suffix = "th"
    else:
        suffix = {1: "st", 2: "nd", 3: "rd"}.get(n % 10, "th")
    return f"{n}{suffix}"


# ══════════════════════════════════════════════════════════════════════════
# Schedules & Triggers
# ══════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class ReminderSchedule:
    frequency: ReminderFrequency
    times: Tuple[str, ...]
    days: Tuple[int, ...] = ()

    @classmethod
    def create(
        cls,
        frequency: Union[str, ReminderFrequency],
        times: Iterable[str],
        days: Optional[Iterable[int]] = None,
    ) -> "ReminderSchedule":
        """Build a normalised schedule; raises ValueError on bad input."""
        freq = _frequency(frequency)
        return cls(
            frequency=freq,
            times=tuple(normalize_times(times)),
            days=tuple(normalize_days(freq, days)),
        )

    @property
    def parsed_times(self) -> List[time]:
        return [parse_time(t) for t in self.times]


@dataclass(frozen=True)
class ReminderTrigger:
    """
    One repeating local-notification trigger.

    weekday follows the device convention (1-7, Sunday = 1); day is the day
    of month for monthly triggers.
    """

    frequency: ReminderFrequency
    hour: int
    minute: int
    weekday: Optional[int] = None
    day: Optional[int] = None


def build_triggers(schedule: ReminderSchedule) -> List[ReminderTrigger]:
    """
    Expand a schedule into device triggers.

    Weekly and monthly schedules without days produce nothing.
    """
    triggers: List[ReminderTrigger] = []
    for t in schedule.parsed_times:
        if schedule.frequency == ReminderFrequency.DAILY:
            triggers.append(ReminderTrigger(ReminderFrequency.DAILY, t.hour, t.minute))
        elif schedule.frequency == ReminderFrequency.WEEKLY:
            for day in schedule.days:
                triggers.append(
                    ReminderTrigger(ReminderFrequency.WEEKLY, t.hour, t.minute, weekday=day + 1)
                )
        else:
            for day in schedule.days:
                triggers.append(
                    ReminderTrigger(ReminderFrequency.MONTHLY, t.hour, t.minute, day=day)
                )
    return triggers


def sunday_based_weekday(d: date) -> int:
    """Day of week with Sunday = 0 (Python's weekday() has Monday = 0)."""
    return (d.weekday() + 1) % 7


def is_scheduled_on(schedule: ReminderSchedule, d: date) -> bool:
    """Whether any reminder of the schedule fires on the given date."""
    if not schedule.times:
        return False
    if schedule.frequency == ReminderFrequency.DAILY:
        return True
    if schedule.frequency == ReminderFrequency.WEEKLY:
        return sunday_based_weekday(d) in schedule.days
    return d.day in schedule.days


def upcoming_occurrences(
    schedule: ReminderSchedule, after: datetime, limit: int = 10
) -> List[datetime]:
    """
    The next `limit` reminder datetimes strictly after `after`.

    Times are wall-clock times in `after`'s time zone; a naive `after` gives
    naive results.
    """
    occurrences: List[datetime] = []
    if limit <= 0 or not schedule.times:
        return occurrences

    times = schedule.parsed_times
    start = after.date()
    for offset in range(MAX_LOOKAHEAD_DAYS):
        day = start + timedelta(days=offset)
        if not is_scheduled_on(schedule, day):
            continue
        for t in times:
            moment = datetime.combine(day, t, tzinfo=after.tzinfo)
            if moment > after:
                occurrences.append(moment)
                if len(occurrences) == limit:
                    return occurrences
    return occurrences
