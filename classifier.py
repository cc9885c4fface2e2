"""
Temporal classifier for task lists.

Splits tasks into mutually exclusive buckets (overdue, due today, due this
week, due later, no due date, completed recently). Status wins over dates:
a Completed task only ever lands in `completed_recently`, or nowhere once it
is older than the cutoff. Day boundaries are taken in the display timezone;
everything else is compared in UTC.
"""

from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, List, Optional

import pytz

import config
from errors import ValidationError
from schemas import COMPLETED, TaskBuckets
from timeutils import as_utc, utcnow

PRIORITY_RANK = {"urgent": 3, "high": 2, "medium": 1, "low": 0}
DEFAULT_RANK = PRIORITY_RANK["medium"]


class SystemClock:
    def now(self) -> datetime:
        return utcnow()


class FixedClock:
    """Clock pinned to one instant."""

    def __init__(self, instant: datetime):
        self.instant = as_utc(instant)

    def now(self) -> datetime:
        return self.instant


def get_display_timezone(name: Optional[str] = None):
    name = name or config.DISPLAY_TIMEZONE
    try:
        return pytz.timezone(name)
    except pytz.UnknownTimeZoneError:
        raise ValidationError(f"Unknown timezone: {name}")


def priority_rank(priority: Optional[str]) -> int:
    return PRIORITY_RANK.get((priority or "").strip().lower(), DEFAULT_RANK)


def bucket_for(task: Dict[str, Any], now: datetime, tz) -> Optional[str]:
    """Bucket name for one task, or None when it is excluded."""
    if task.get("status") == COMPLETED:
        created = as_utc(task.get("created_at"))
        cutoff = now - timedelta(days=config.COMPLETED_RECENT_DAYS)
        if created is not None and created >= cutoff:
            return "completed_recently"
        return None

    due = as_utc(task.get("due_date"))
    if due is None:
        return "no_due_date"

    today = now.astimezone(tz).date()
    due_day = due.astimezone(tz).date()
    if due_day < today:
        return "overdue"
    if due_day == today:
        return "due_today"
    if due_day <= today + timedelta(days=config.DUE_SOON_DAYS):
        return "due_this_week"
    return "due_later"


def classify_tasks(tasks: Iterable[Dict[str, Any]], clock=None, tz=None) -> TaskBuckets:
    clock = clock or SystemClock()
    tz = tz or get_display_timezone()
    now = clock.now()

    buckets: Dict[str, List[Dict[str, Any]]] = {name: [] for name in TaskBuckets.model_fields}
    for task in tasks:
        name = bucket_for(task, now, tz)
        if name is not None:
            buckets[name].append(task)

    for name, items in buckets.items():
        # sort is stable, so equal priorities keep their input order
        items.sort(key=lambda t: priority_rank(t.get("priority")), reverse=True)
    return TaskBuckets(**buckets)
