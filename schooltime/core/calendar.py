"""
Week and calendar helpers for timetable scheduling.

Weeks are anchored on Monday. Day indexes follow DayOfWeek (Monday=1 .. Sunday=7).
All functions are pure.
"""

import re
from datetime import date, datetime, timedelta
from typing import List, Union

from schooltime.core.exceptions import InvalidDate

DateInput = Union[date, datetime, str]

# YYYY-MM-DD, optionally followed by a "T" or space separated time part
ISO_DATE_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})(?:[T ]\S+)?$")


def parse_iso_date(value: DateInput, field: str = "date") -> date:
    """Coerce a date, datetime or ISO string (YYYY-MM-DD, optionally with a time part) to a date."""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        match = ISO_DATE_PATTERN.match(value.strip())
        if match:
            try:
                return date.fromisoformat(match.group(1))
            except ValueError:
                pass
    raise InvalidDate(f"{field} must be an ISO date (YYYY-MM-DD), got {value!r}", field=field)


def monday_of(value: DateInput) -> date:
    """Monday on or before the given date. monday_of(monday_of(d)) == monday_of(d)."""
    d = parse_iso_date(value)
    return d - timedelta(days=d.weekday())


def add_days(value: DateInput, days: int) -> date:
    return parse_iso_date(value) + timedelta(days=days)


def day_index(value: DateInput) -> int:
    """Monday=1 .. Sunday=7."""
    return parse_iso_date(value).isoweekday()


def format_with_weekday(value: DateInput) -> str:
    """Display form, e.g. '11-03-2024 (Monday)'. Not for comparisons."""
    return parse_iso_date(value).strftime("%d-%m-%Y (%A)")


def week_dates(week_start: DateInput) -> List[date]:
    """The seven dates of the week starting at monday_of(week_start)."""
    monday = monday_of(week_start)
    return [monday + timedelta(days=i) for i in range(7)]


def date_range(start: DateInput, end: DateInput) -> List[date]:
    """Inclusive list of dates from start to end; empty if end < start."""
    first = parse_iso_date(start)
    last = parse_iso_date(end)
    days = (last - first).days
    return [first + timedelta(days=i) for i in range(days + 1)]
