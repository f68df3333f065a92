"""
Datetime utility functions.
Provides replacements for deprecated datetime functions.
"""

from datetime import datetime, date
from typing import Optional, Union
import pytz


def utcnow() -> datetime:
    """
    Get current UTC datetime using pytz.UTC.

    Returns:
        Current UTC datetime with pytz timezone information
    """
    return datetime.now(pytz.UTC)


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """
    Return an aware UTC datetime.

    Naive values (as returned by drivers that drop the offset) are taken as UTC.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return pytz.UTC.localize(value)
    return value.astimezone(pytz.UTC)


def parse_datetime(value: Union[str, datetime, date, None]) -> Optional[datetime]:
    """
    Parse an ISO date or datetime string into an aware UTC datetime.

    Examples:
        >>> parse_datetime("2025-03-01")
        datetime.datetime(2025, 3, 1, 0, 0, tzinfo=<UTC>)
        >>> parse_datetime("2025-03-01T18:30:00Z")
        datetime.datetime(2025, 3, 1, 18, 30, tzinfo=<UTC>)
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return ensure_utc(value)
    if isinstance(value, date):
        return pytz.UTC.localize(datetime(value.year, value.month, value.day))
    text = value.strip()
    if text.endswith("Z"):
        text = text[:-1] + "+00:00"
    return ensure_utc(datetime.fromisoformat(text))


def start_of_day(value: datetime) -> datetime:
    """Midnight (UTC) of the given datetime's UTC day."""
    value = ensure_utc(value)
    return value.replace(hour=0, minute=0, second=0, microsecond=0)


def end_of_day(value: datetime) -> datetime:
    """Last microsecond (UTC) of the given datetime's UTC day."""
    value = ensure_utc(value)
    return value.replace(hour=23, minute=59, second=59, microsecond=999999)


def add_months(value: datetime, months: int) -> datetime:
    """
    Add calendar months, clamping the day to the target month's length.

    >>> add_months(datetime(2025, 1, 31), 1)
    datetime.datetime(2025, 2, 28, 0, 0)
    """
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    days_in_month = [31, 29 if _is_leap(year) else 28, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31]
    day = min(value.day, days_in_month[month - 1])
    return value.replace(year=year, month=month, day=day)


def _is_leap(year: int) -> bool:
    return year % 4 == 0 and (year % 100 != 0 or year % 400 == 0)


def isoformat(value: Optional[datetime]) -> Optional[str]:
    """ISO-8601 string for an optional datetime (UTC)."""
    if value is None:
        return None
    return ensure_utc(value).isoformat()
