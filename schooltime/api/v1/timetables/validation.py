"""
Per-slot validation applied before any timetable write.

Rules:
- day_of_week in 1..7 (Monday=1)
- period_no >= 1 and not a break in the period catalog
- start_time / end_time are zero-padded 24-hour HH:MM; missing bounds are taken from the period catalog
- end_time > start_time (string comparison is valid for fixed-width HH:MM)

Natural-key uniqueness is left to the upsert: duplicates within one request collapse to the last one supplied.
Holiday status is not checked here.
"""

from dataclasses import dataclass
from typing import Any, Dict, Iterable, List, Optional, Tuple
from uuid import UUID

from schooltime.core.exceptions import (
    InvalidDayOfWeek,
    InvalidPeriod,
    InvalidTimeFormat,
    InvalidTimeRange,
)
from schooltime.core.periods import TIME_PATTERN, PeriodCatalog


@dataclass(frozen=True)
class SlotValues:
    """A validated slot, ready to be written under a (school, class, section, week) key."""

    day_of_week: int
    period_no: int
    teacher_id: Optional[UUID]
    start_time: str
    end_time: str
    notes: Optional[str] = None

    @property
    def key(self) -> Tuple[int, int]:
        return (self.day_of_week, self.period_no)

    @classmethod
    def from_row(cls, row: Any) -> "SlotValues":
        return cls(
            day_of_week=row.day_of_week,
            period_no=row.period_no,
            teacher_id=row.teacher_id,
            start_time=row.start_time,
            end_time=row.end_time,
            notes=row.notes,
        )


def validate_day_of_week(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or not 1 <= value <= 7:
        raise InvalidDayOfWeek("day_of_week must be between 1 and 7", field="day_of_week")
    return value


def validate_period_no(value: Any) -> int:
    if isinstance(value, bool) or not isinstance(value, int) or value < 1:
        raise InvalidPeriod("period_no must be a positive integer", field="period_no")
    return value


def validate_time(value: Any, field: str) -> str:
    if not isinstance(value, str) or not TIME_PATTERN.match(value):
        raise InvalidTimeFormat(f"Invalid time format for {field}, expected HH:MM", field=field)
    return value


def validate_slot(entry: Any, catalog: Optional[PeriodCatalog] = None) -> SlotValues:
    """Validate one entry (any object with day_of_week, period_no, teacher_id, start_time, end_time, notes)."""
    day = validate_day_of_week(getattr(entry, "day_of_week", None))
    period_no = validate_period_no(getattr(entry, "period_no", None))
    if catalog is not None and catalog.is_break(period_no):
        raise InvalidPeriod(f"period_no {period_no} is a break and cannot be scheduled", field="period_no")

    start_time = getattr(entry, "start_time", None)
    end_time = getattr(entry, "end_time", None)
    if (start_time is None or end_time is None) and catalog is not None:
        period = catalog.get(period_no)
        if period is None:
            raise InvalidPeriod(
                f"period_no {period_no} is not in the period catalog; start_time and end_time are required",
                field="period_no",
            )
        start_time = start_time if start_time is not None else period.start_time
        end_time = end_time if end_time is not None else period.end_time

    start_time = validate_time(start_time, "start_time")
    end_time = validate_time(end_time, "end_time")
    if end_time <= start_time:
        raise InvalidTimeRange("end_time must be greater than start_time", field="end_time")

    return SlotValues(
        day_of_week=day,
        period_no=period_no,
        teacher_id=getattr(entry, "teacher_id", None),
        start_time=start_time,
        end_time=end_time,
        notes=getattr(entry, "notes", None),
    )


def validate_entries(entries: Iterable[Any], catalog: Optional[PeriodCatalog] = None) -> List[SlotValues]:
    """Validate every entry before returning any; duplicates by (day, period) keep the last one."""
    collapsed: Dict[Tuple[int, int], SlotValues] = {}
    for entry in entries:
        slot = validate_slot(entry, catalog)
        collapsed.pop(slot.key, None)
        collapsed[slot.key] = slot
    return list(collapsed.values())
