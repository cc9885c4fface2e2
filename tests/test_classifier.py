from datetime import datetime, timedelta, timezone

import pytest
import pytz

from classifier import FixedClock, bucket_for, classify_tasks, get_display_timezone, priority_rank
from errors import ValidationError

UTC = timezone.utc
NOW = datetime(2025, 7, 25, 12, 0, tzinfo=UTC)
CLOCK = FixedClock(NOW)

BUCKETS = ("overdue", "due_today", "due_this_week", "due_later", "no_due_date", "completed_recently")


def task(title, due=None, status="To Do", priority="Medium", created=None):
    return {
        "_id": title,
        "title": title,
        "due_date": due,
        "status": status,
        "priority": priority,
        "created_at": created or NOW - timedelta(days=1),
    }


def titles(items):
    return [t["title"] for t in items]


def classify(tasks, tz="UTC"):
    return classify_tasks(tasks, clock=CLOCK, tz=pytz.timezone(tz))


def test_date_buckets():
    result = classify([
        task("yesterday", due=NOW - timedelta(days=1)),
        task("today", due=NOW + timedelta(hours=3)),
        task("in three days", due=NOW + timedelta(days=3)),
        task("next month", due=NOW + timedelta(days=30)),
        task("someday"),
    ])
    assert titles(result.overdue) == ["yesterday"]
    assert titles(result.due_today) == ["today"]
    assert titles(result.due_this_week) == ["in three days"]
    assert titles(result.due_later) == ["next month"]
    assert titles(result.no_due_date) == ["someday"]
    assert result.completed_recently == []


def test_midnight_counts_as_today():
    result = classify([task("midnight", due=datetime(2025, 7, 25, 0, 0, tzinfo=UTC))])
    assert titles(result.due_today) == ["midnight"]
    assert result.overdue == []


def test_week_horizon_is_seven_days():
    result = classify([
        task("day seven", due=datetime(2025, 8, 1, 23, 0, tzinfo=UTC)),
        task("day eight", due=datetime(2025, 8, 2, 0, 0, tzinfo=UTC)),
    ])
    assert titles(result.due_this_week) == ["day seven"]
    assert titles(result.due_later) == ["day eight"]


def test_completed_is_never_overdue():
    done = task("done late", due=datetime(2025, 1, 1, tzinfo=UTC), status="Completed")
    result = classify([done])
    assert result.overdue == []
    assert titles(result.completed_recently) == ["done late"]


def test_old_completed_tasks_are_excluded():
    old = task("ancient", due=datetime(2025, 1, 1, tzinfo=UTC), status="Completed",
               created=NOW - timedelta(days=60))
    result = classify([old])
    assert all(getattr(result, name) == [] for name in BUCKETS)
    assert bucket_for(old, NOW, pytz.UTC) is None


def test_every_task_lands_in_at_most_one_bucket():
    tasks = [
        task("a", due=NOW - timedelta(days=9)),
        task("b", due=NOW),
        task("c", due=NOW + timedelta(days=2), status="Completed"),
        task("d", due=NOW + timedelta(days=6), status="In Progress"),
        task("e", due=NOW + timedelta(days=90)),
        task("f"),
        task("g", status="Completed", created=NOW - timedelta(days=31)),
    ]
    result = classify(tasks)
    seen = [title for name in BUCKETS for title in titles(getattr(result, name))]
    assert sorted(seen) == ["a", "b", "c", "d", "e", "f"]


def test_display_timezone_moves_the_day_boundary():
    late_evening = FixedClock(datetime(2025, 7, 25, 23, 30, tzinfo=UTC))
    due = datetime(2025, 7, 26, 1, 0, tzinfo=UTC)

    in_utc = classify_tasks([task("t", due=due)], clock=late_evening, tz=pytz.UTC)
    in_tokyo = classify_tasks([task("t", due=due)], clock=late_evening, tz=pytz.timezone("Asia/Tokyo"))

    assert titles(in_utc.due_this_week) == ["t"]
    assert titles(in_tokyo.due_today) == ["t"]


def test_naive_datetimes_are_read_as_utc():
    result = classify([task("naive", due=datetime(2025, 7, 24, 23, 59))])
    assert titles(result.overdue) == ["naive"]


def test_priority_order_within_bucket():
    due = NOW + timedelta(hours=1)
    result = classify([
        task("low", due=due, priority="low"),
        task("high", due=due, priority="High"),
        task("urgent", due=due, priority="urgent"),
        task("unknown", due=due, priority="whenever"),
        task("medium", due=due, priority="Medium"),
    ])
    assert titles(result.due_today) == ["urgent", "high", "unknown", "medium", "low"]


def test_priority_rank_is_case_insensitive():
    assert priority_rank("HIGH") == priority_rank("high") > priority_rank("Medium")
    assert priority_rank(None) == priority_rank("medium")


def test_unknown_timezone_is_rejected():
    with pytest.raises(ValidationError):
        get_display_timezone("Mars/Olympus_Mons")


def test_fixed_clock_normalises_to_utc():
    clock = FixedClock(datetime(2025, 7, 25, 14, 0, tzinfo=timezone(timedelta(hours=2))))
    assert clock.now() == NOW
