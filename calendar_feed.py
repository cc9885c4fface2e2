"""
Calendar feed: merges a user's tasks and journal entries into one
time-ordered list of events for a window.

Recurring tasks carry an RRULE anchored at their due date and are expanded
into one event per occurrence inside the window. Events are computed per
request and never stored.
"""

import logging
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timedelta
from typing import Any, Dict, List, Union

from pymongo import ASCENDING
from pymongo.database import Database
from pymongo.errors import PyMongoError

import config
from database import get_documents
from errors import RecurrenceParseError, ServerError
from recurrence import parse_rule
from schemas import COMPLETED, JournalEvent, TaskEvent
from timeutils import as_utc, js_iso, truncate_seconds

logger = logging.getLogger(__name__)

TASK_EVENT_DURATION = timedelta(minutes=config.TASK_EVENT_MINUTES)

Event = Union[TaskEvent, JournalEvent]


def occurrence_id(task_id: str, occurrence: datetime) -> str:
    stamp = js_iso(occurrence).replace(":", "-").replace(".", "-")
    return f"{task_id}-{stamp}"


def expand_occurrences(rule: str, anchor: datetime, start: datetime, end: datetime) -> List[datetime]:
    """
    Occurrence instants of `rule` anchored at `anchor` that fall in
    [start, end], both ends inclusive, in ascending order.

    Raises RecurrenceParseError when the rule cannot be parsed or never
    produces an occurrence.
    """
    dtstart = truncate_seconds(as_utc(anchor))
    recurrence = parse_rule(rule, dtstart)
    try:
        return list(recurrence.between(as_utc(start), as_utc(end), inc=True))
    except (ValueError, TypeError) as e:
        raise RecurrenceParseError(rule, str(e))


def _task_event(task: Dict[str, Any], event_id: str, start: datetime, recurring: bool) -> TaskEvent:
    return TaskEvent(
        id=event_id,
        task_id=task["_id"],
        user_id=task["user_id"],
        title=task["title"],
        start=start,
        end=start + TASK_EVENT_DURATION,
        description=task.get("description"),
        status=task.get("status") or "To Do",
        priority=task.get("priority") or "Medium",
        category=task.get("category"),
        completed=task.get("status") == COMPLETED,
        recurring=recurring,
    )


def task_events(task: Dict[str, Any], start: datetime, end: datetime) -> List[TaskEvent]:
    """Events for one task inside [start, end]; empty when it has none there."""
    due = as_utc(task.get("due_date"))
    if due is None:
        # a rule needs an anchor
        return []

    rule = task.get("recurrence_rule")
    if rule and rule.strip():
        try:
            return [
                _task_event(task, occurrence_id(task["_id"], occurrence), occurrence, recurring=True)
                for occurrence in expand_occurrences(rule, due, start, end)
            ]
        except RecurrenceParseError as e:
            logger.warning(f"Skipping recurrence for task {task['_id']}: {e}")

    if start <= due <= end:
        return [_task_event(task, task["_id"], due, recurring=False)]
    return []


def journal_event(entry: Dict[str, Any]) -> JournalEvent:
    when = as_utc(entry["entry_date"])
    return JournalEvent(
        id=entry["_id"],
        entry_id=entry["_id"],
        user_id=entry["user_id"],
        title=entry.get("title") or "Untitled Entry",
        start=when,
        end=when,
        content=entry.get("content", ""),
        mood=entry.get("mood") or "neutral",
        tags=entry.get("tags") or [],
    )


def _candidate_tasks(db: Database, owner_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    lo, hi = start.replace(tzinfo=None), end.replace(tzinfo=None)
    query = {
        "user_id": owner_id,
        "$or": [
            {"due_date": {"$gte": lo, "$lte": hi}},
            # the upper bound of a recurring series is enforced by expansion
            {"recurrence_rule": {"$nin": [None, ""]}, "due_date": {"$lte": hi}},
        ],
    }
    return get_documents(db, "task", query, sort=[("due_date", ASCENDING), ("_id", ASCENDING)])


def _entries_in_window(db: Database, owner_id: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
    query = {
        "user_id": owner_id,
        "entry_date": {"$gte": start.replace(tzinfo=None), "$lte": end.replace(tzinfo=None)},
    }
    return get_documents(db, "journal", query, sort=[("entry_date", ASCENDING), ("_id", ASCENDING)])


def get_events(db: Database, owner_id: str, start: datetime, end: datetime) -> List[Event]:
    """All of `owner_id`'s calendar events in [start, end], sorted by start."""
    start, end = as_utc(start), as_utc(end)
    try:
        with ThreadPoolExecutor(max_workers=2) as pool:
            tasks_future = pool.submit(_candidate_tasks, db, owner_id, start, end)
            entries_future = pool.submit(_entries_in_window, db, owner_id, start, end)
            tasks, entries = tasks_future.result(), entries_future.result()
    except PyMongoError as e:
        logger.error(f"Calendar query failed for user {owner_id}: {e}")
        raise ServerError("Server error")

    events: List[Event] = []
    for task in tasks:
        events.extend(task_events(task, start, end))
    events.extend(journal_event(entry) for entry in entries)

    # sorted() is stable: tasks keep precedence over entries at equal starts
    return sorted(events, key=lambda event: event.start)
