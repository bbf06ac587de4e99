"""
Holiday overlay for a timetable week.

Blocked days = days covered by a holiday record in the week
             + days outside the school's working days (Saturday/Sunday by default).

Holiday status is advisory: it blocks interactive assignment only. Save and copy do not consult it.
"""

import logging
from datetime import date
from typing import Iterable, Optional, Set, Tuple
from uuid import UUID

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schooltime.core.calendar import add_days, date_range, day_index, monday_of
from schooltime.core.config import settings
from schooltime.core.enums import DayOfWeek
from schooltime.core.models import School

from . import service as holiday_service

logger = logging.getLogger(__name__)

ALL_DAYS = frozenset(int(d) for d in DayOfWeek)


def _normalize_working_days(days: Optional[Iterable[int]]) -> Set[int]:
    if days is None:
        days = settings.default_working_days
    return {int(d) for d in days if int(d) in ALL_DAYS}


def compute_blocked_days(
    holiday_spans: Iterable[Tuple[date, Optional[date]]],
    week_start: date,
    working_days: Optional[Iterable[int]] = None,
) -> Set[int]:
    """Pure part of the overlay: day indexes (1..7) of the week that are holidays or non-working days."""
    monday = monday_of(week_start)
    sunday = add_days(monday, 6)
    blocked: Set[int] = set()
    for start, end in holiday_spans:
        last = end or start
        first = max(start, monday)
        last = min(last, sunday)
        for d in date_range(first, last):
            blocked.add(day_index(d))
    blocked |= ALL_DAYS - _normalize_working_days(working_days)
    return blocked


async def get_working_days(db: AsyncSession, school_id: UUID) -> Set[int]:
    """The school's working days; falls back to the configured default when unset or unreadable."""
    try:
        school = await db.get(School, school_id)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Could not read working days for school %s, using defaults: %s", school_id, e)
        return _normalize_working_days(None)
    if school is None or school.working_days is None:
        return _normalize_working_days(None)
    return _normalize_working_days(school.working_days)


async def blocked_days(db: AsyncSession, school_id: UUID, week_start: date) -> Set[int]:
    """
    Blocked day indexes for the week containing week_start.
    A failed holiday fetch degrades to "no holidays"; non-working days still apply.
    """
    monday = monday_of(week_start)
    working_days = await get_working_days(db, school_id)
    try:
        spans = await holiday_service.holiday_spans_in_range(db, school_id, monday, add_days(monday, 6))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Holiday lookup failed for school %s week %s, assuming none: %s", school_id, monday, e)
        spans = []
    return compute_blocked_days(spans, monday, working_days)
