"""
In-memory timetable grid for one (school, class, section, week).

The grid is 7 days x the catalog's teaching periods. Cells without a persisted slot are
unassigned and carry the catalog's bounds. Break periods never appear. Lifecycle:

    EMPTY --load--> LOADED --assign_teacher--> MODIFIED --mark_saved--> SAVED

Persisting is done by the service; a failed save leaves the grid untouched.
"""

from dataclasses import dataclass
from datetime import date
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional, Set, Tuple
from uuid import UUID

from schooltime.core.calendar import monday_of
from schooltime.core.enums import DayOfWeek
from schooltime.core.exceptions import GridStateError, HolidayConflict, InvalidDayOfWeek, InvalidPeriod
from schooltime.core.periods import PeriodCatalog, get_period_catalog

CellKey = Tuple[int, int]


class GridState(str, Enum):
    EMPTY = "EMPTY"
    LOADED = "LOADED"
    MODIFIED = "MODIFIED"
    SAVED = "SAVED"


@dataclass
class GridCell:
    day_of_week: int
    period_no: int
    start_time: str
    end_time: str
    teacher_id: Optional[UUID] = None
    notes: Optional[str] = None
    persisted: bool = False

    @property
    def key(self) -> CellKey:
        return (self.day_of_week, self.period_no)


class TimetableGrid:
    def __init__(
        self,
        school_id: UUID,
        class_id: UUID,
        section_id: UUID,
        week_start: date,
        catalog: Optional[PeriodCatalog] = None,
        blocked_days: Iterable[int] = (),
    ) -> None:
        self.school_id = school_id
        self.class_id = class_id
        self.section_id = section_id
        self.week_start = monday_of(week_start)
        self.catalog = catalog or get_period_catalog()
        self.blocked_days: Set[int] = set(blocked_days)
        self.state = GridState.EMPTY
        self._cells: Dict[CellKey, GridCell] = {}
        self._dirty: Set[CellKey] = set()

    def load(self, rows: Iterable[Any]) -> "TimetableGrid":
        """Build the full grid and merge persisted rows on top. Replaces any previous contents."""
        cells: Dict[CellKey, GridCell] = {}
        for day in DayOfWeek:
            for period in self.catalog.teaching_periods():
                cells[(int(day), period.period_no)] = GridCell(
                    day_of_week=int(day),
                    period_no=period.period_no,
                    start_time=period.start_time,
                    end_time=period.end_time,
                )
        for row in rows:
            if self.catalog.is_break(row.period_no):
                continue
            # Rows outside the current catalog are kept so save -> load round-trips exactly
            cells[(row.day_of_week, row.period_no)] = GridCell(
                day_of_week=row.day_of_week,
                period_no=row.period_no,
                start_time=row.start_time,
                end_time=row.end_time,
                teacher_id=row.teacher_id,
                notes=row.notes,
                persisted=True,
            )
        self._cells = cells
        self._dirty = set()
        self.state = GridState.LOADED
        return self

    @property
    def cells(self) -> List[GridCell]:
        return [self._cells[k] for k in sorted(self._cells)]

    @property
    def dirty_keys(self) -> Set[CellKey]:
        return set(self._dirty)

    def is_blocked(self, day_of_week: int) -> bool:
        return day_of_week in self.blocked_days

    def cell(self, day_of_week: int, period_no: int) -> GridCell:
        if not 1 <= day_of_week <= 7:
            raise InvalidDayOfWeek("day_of_week must be between 1 and 7", field="day_of_week")
        if self.catalog.is_break(period_no):
            raise InvalidPeriod(f"period_no {period_no} is a break and cannot be scheduled", field="period_no")
        found = self._cells.get((day_of_week, period_no))
        if found is None:
            raise InvalidPeriod(f"period_no {period_no} is not a schedulable period", field="period_no")
        return found

    def assign_teacher(
        self,
        day_of_week: int,
        period_no: int,
        teacher_id: Optional[UUID],
        notes: Optional[str] = None,
        override: bool = False,
    ) -> GridCell:
        """Set (or clear, with teacher_id=None) the teacher of one cell. Blocked days need override=True."""
        if self.state == GridState.EMPTY:
            raise GridStateError("Timetable grid must be loaded before it can be modified")
        target = self.cell(day_of_week, period_no)
        if self.is_blocked(day_of_week) and not override:
            raise HolidayConflict(day_of_week)
        target.teacher_id = teacher_id
        if notes is not None:
            target.notes = notes
        self._dirty.add(target.key)
        self.state = GridState.MODIFIED
        return target

    def pending_cells(self) -> List[GridCell]:
        """Cells a save writes: everything already persisted plus every modified cell."""
        return [c for c in self.cells if c.persisted or c.key in self._dirty]

    def persisted_cells(self) -> List[GridCell]:
        return [c for c in self.cells if c.persisted]

    def mark_saved(self) -> None:
        for key in self._dirty:
            self._cells[key].persisted = True
        self._dirty = set()
        self.state = GridState.SAVED
