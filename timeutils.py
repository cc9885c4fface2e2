"""
Time helpers shared by the database layer, the calendar feed and the classifier.

Everything above `database.py` works with timezone-aware UTC datetimes.
MongoDB stores BSON dates as UTC without an offset, so documents are written
as naive UTC and read back through `as_utc`.
"""

import re
from datetime import datetime, time, timezone
from typing import Optional, Tuple

from dateutil import parser as date_parser

from errors import ValidationError

_DATE_ONLY = re.compile(r"^\d{4}-\d{2}-\d{2}$")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as an aware UTC datetime; naive values are taken as UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def to_storage(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as naive UTC for persistence."""
    if value is None:
        return None
    return as_utc(value).replace(tzinfo=None)


def js_iso(value: datetime) -> str:
    """Format like JavaScript's Date.toISOString: 2025-07-26T00:00:00.000Z"""
    value = as_utc(value)
    return value.strftime("%Y-%m-%dT%H:%M:%S.") + f"{value.microsecond // 1000:03d}Z"


def parse_instant(raw: Optional[str], end_of_day: bool = False) -> datetime:
    """
    Parse an ISO-8601 instant or plain date from a query string.

    A plain date resolves to midnight UTC, or to the last microsecond of
    that day when `end_of_day` is set, so `end=2025-07-07` covers the
    whole of July 7th.
    """
    if raw is None or not raw.strip():
        raise ValidationError("Invalid date format")
    raw = raw.strip()
    try:
        parsed = date_parser.isoparse(raw)
    except (ValueError, OverflowError):
        raise ValidationError("Invalid date format")
    if _DATE_ONLY.match(raw):
        day_time = time.max if end_of_day else time.min
        parsed = datetime.combine(parsed.date(), day_time)
    return as_utc(parsed)


def parse_window(start: Optional[str], end: Optional[str]) -> Tuple[datetime, datetime]:
    start_at = parse_instant(start)
    end_at = parse_instant(end, end_of_day=True)
    if start_at > end_at:
        raise ValidationError("Invalid date range: start must not be after end")
    return start_at, end_at


def truncate_seconds(value: datetime) -> datetime:
    """Drop fractional seconds."""
    return value.replace(microsecond=0)
