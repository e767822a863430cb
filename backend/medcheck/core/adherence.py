"""
MedCheck Backend - Adherence Aggregation
========================================

What:  Turns dose logs into calendar statuses, adherence rates and the
       "taken today" set.
Who:   TrackingService, after it has loaded the owner's logs.

A log is any object with `medication_id`, `status` and `scheduled_time`
(an aware datetime). Days are local days in the caller's time zone.

Day status:
    all logs taken                  → taken
    no log taken (missed/skipped)   → missed
    mix of both                     → partial
    no logs                         → None (nothing to show)
"""

from datetime import date, datetime, time, timedelta, timezone, tzinfo
from enum import Enum
from typing import Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID


class DoseStatus(str, Enum):
    TAKEN = "taken"
    SKIPPED = "skipped"
    MISSED = "missed"


class DayStatus(str, Enum):
    TAKEN = "taken"
    MISSED = "missed"
    PARTIAL = "partial"


def day_status(statuses: Iterable[str]) -> Optional[DayStatus]:
    seen = [DoseStatus(s) for s in statuses]
    if not seen:
        return None
    taken = sum(1 for s in seen if s == DoseStatus.TAKEN)
    if taken == len(seen):
        return DayStatus.TAKEN
    if taken == 0:
        return DayStatus.MISSED
    return DayStatus.PARTIAL


def adherence_rate(statuses: Iterable[str]) -> Optional[float]:
    """Percentage of logs that were taken, one decimal; None without logs."""
    seen = [DoseStatus(s) for s in statuses]
    if not seen:
        return None
    taken = sum(1 for s in seen if s == DoseStatus.TAKEN)
    return round(taken * 100.0 / len(seen), 1)


# ── Local days ────────────────────────────────────────────────────────────

def local_day(moment: datetime, tz: tzinfo) -> date:
    if moment.tzinfo is None:
        # Naive datetimes come back from SQLite in tests; they are stored as UTC
        moment = moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(tz).date()


def day_bounds(day: date, tz: tzinfo) -> Tuple[datetime, datetime]:
    """[start, end) of a local day as aware UTC datetimes, for range queries."""
    start = datetime.combine(day, time.min, tzinfo=tz)
    end = datetime.combine(day + timedelta(days=1), time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def month_bounds(year: int, month: int, tz: tzinfo) -> Tuple[datetime, datetime]:
    """
    [start, end) of a local month as aware UTC datetimes.

    Raises ValueError for a month whose end lies past `date.max`.
    """
    first = date(year, month, 1)
    if month < 12:
        following = date(year, month + 1, 1)
    elif year < date.max.year:
        following = date(year + 1, 1, 1)
    else:
        raise ValueError(f"{year}-{month:02d} is past the last supported month")
    start = datetime.combine(first, time.min, tzinfo=tz)
    end = datetime.combine(following, time.min, tzinfo=tz)
    return start.astimezone(timezone.utc), end.astimezone(timezone.utc)


def group_by_day(logs: Iterable, tz: tzinfo) -> Dict[date, List]:
    grouped: Dict[date, List] = {}
    for log in logs:
        grouped.setdefault(local_day(log.scheduled_time, tz), []).append(log)
    return grouped


def month_calendar(logs: Iterable, year: int, month: int, tz: tzinfo) -> Dict[date, DayStatus]:
    """Status per local day of the given month; days without logs are absent."""
    result: Dict[date, DayStatus] = {}
    for day, day_logs in group_by_day(logs, tz).items():
        if day.year != year or day.month != month:
            continue
        status = day_status(log.status for log in day_logs)
        if status is not None:
            result[day] = status
    return result


def taken_today(logs: Iterable, today: date, tz: tzinfo) -> Set[UUID]:
    """Distinct medication ids with a taken log on the given local day."""
    return {
        log.medication_id
        for log in logs
        if log.status == DoseStatus.TAKEN.value and local_day(log.scheduled_time, tz) == today
    }
