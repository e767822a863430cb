"""
MedCheck Backend - Local Time Helpers
=====================================

Requests may name their IANA time zone (the phone's zone); otherwise
DEFAULT_TIMEZONE applies. "Today", calendar days and reminder times are all
interpreted in that zone.
"""

from datetime import date, datetime, timezone
from typing import Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from medcheck.config import settings
from medcheck.exceptions import ValidationError


def resolve_timezone(name: Optional[str] = None) -> ZoneInfo:
    try:
        return ZoneInfo(name or settings.default_timezone)
    except (ZoneInfoNotFoundError, ValueError):
        raise ValidationError(message=f"Unknown time zone '{name}'", field="tz")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def local_now(tz: ZoneInfo) -> datetime:
    return utc_now().astimezone(tz)


def local_today(tz: ZoneInfo) -> date:
    return local_now(tz).date()
