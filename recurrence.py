"""
Parsing and sanity checks for RRULE text.

dateutil accepts rules that can never produce an occurrence (INTERVAL=0,
BYMONTH=13, February 30th). Iterating those either never returns or scans out
to datetime.MAXYEAR, so they are rejected here before any expansion.
"""

import re
from datetime import datetime, timezone
from typing import Dict, List, Tuple

from dateutil.rrule import rrulestr

from errors import RecurrenceParseError

# anchor used when a rule is checked without a task attached
VALIDATION_ANCHOR = datetime(2000, 1, 1, tzinfo=timezone.utc)

# name -> (lowest magnitude, highest magnitude, negatives allowed)
_RANGES = {
    "BYMONTH": (1, 12, False),
    "BYMONTHDAY": (1, 31, True),
    "BYYEARDAY": (1, 366, True),
    "BYWEEKNO": (1, 53, True),
    "BYHOUR": (0, 23, False),
    "BYMINUTE": (0, 59, False),
    "BYSECOND": (0, 59, False),
    "BYSETPOS": (1, 366, True),
}
_DAYS_IN_MONTH = (31, 29, 31, 30, 31, 30, 31, 31, 30, 31, 30, 31)

_UNTIL = re.compile(r"UNTIL=(\d{8})(T\d{6})?Z?(?=;|$)")


def _until_as_utc(match) -> str:
    day, clock = match.group(1), match.group(2)
    # a date-only UNTIL covers the whole of that UTC day
    return f"UNTIL={day}{clock or 'T235959'}Z"


def normalise(rule: str) -> List[str]:
    lines = [line.strip().upper() for line in rule.strip().splitlines() if line.strip()]
    return [_UNTIL.sub(_until_as_utc, line) for line in lines]


def _rule_parts(lines: List[str]) -> List[Tuple[str, str]]:
    parts = []
    for line in lines:
        if line.startswith("RRULE:"):
            line = line[len("RRULE:"):]
        elif ":" in line:
            continue
        for pair in line.split(";"):
            if pair:
                name, _, value = pair.partition("=")
                parts.append((name, value))
    return parts


def _check_parts(parts: List[Tuple[str, str]]):
    values: Dict[str, List[int]] = {}
    for name, value in parts:
        if name in ("INTERVAL", "COUNT"):
            if not value.isdigit() or int(value) < 1:
                raise ValueError(f"{name} must be a positive integer")
        elif name in _RANGES:
            low, high, signed = _RANGES[name]
            numbers = [int(item) for item in value.split(",")]
            for n in numbers:
                if not low <= abs(n) <= high or (n < 0 and not signed):
                    raise ValueError(f"{name} value {n} is out of range")
            values[name] = numbers

    months, monthdays = values.get("BYMONTH"), values.get("BYMONTHDAY")
    if months and monthdays and all(d > 0 for d in monthdays):
        if not any(d <= _DAYS_IN_MONTH[m - 1] for m in months for d in monthdays):
            raise ValueError("BYMONTHDAY never falls inside BYMONTH")


def parse_rule(rule: str, dtstart: datetime):
    """
    Parse `rule` anchored at `dtstart` and return the dateutil recurrence.

    Raises RecurrenceParseError for text that does not parse and for rules
    that have no occurrence at all.
    """
    lines = normalise(rule)
    try:
        _check_parts(_rule_parts(lines))
        recurrence = rrulestr("\n".join(lines), dtstart=dtstart)
        first = recurrence.after(dtstart, inc=True)
    except (ValueError, TypeError) as e:
        raise RecurrenceParseError(rule, str(e))
    if first is None:
        raise RecurrenceParseError(rule, "rule never produces an occurrence")
    return recurrence
