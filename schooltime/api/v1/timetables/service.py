"""Weekly timetable operations: load, save (bulk upsert), assign, copy previous week, clear, personal views."""

import logging
import uuid
from datetime import date, datetime
from typing import Iterable, List, Optional, Sequence
from uuid import UUID

from sqlalchemy import delete, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schooltime.api.v1.holidays import overlay
from schooltime.core.calendar import add_days, day_index, format_with_weekday, monday_of, week_dates
from schooltime.core.exceptions import GridStateError, InvalidInput, NotFound, PersistenceFailure
from schooltime.core.models import SchoolClass, Section, Student, Teacher, TimetableSlot
from schooltime.core.models.timetable import NATURAL_KEY
from schooltime.core.periods import PeriodCatalog, get_period_catalog

from .grid import GridState, TimetableGrid
from .schemas import (
    AssignmentIn,
    GridCellResponse,
    GridDayResponse,
    PeriodResponse,
    SlotView,
    TeacherOption,
    TimetableEntryResponse,
    TimetableGridResponse,
    TimetableMetaResponse,
    TimetableWeekResponse,
)
from .validation import SlotValues, validate_entries

logger = logging.getLogger(__name__)


def _week_filter(school_id: UUID, class_id: UUID, section_id: UUID, week_start: date):
    return (
        TimetableSlot.school_id == school_id,
        TimetableSlot.class_id == class_id,
        TimetableSlot.section_id == section_id,
        TimetableSlot.week_start == week_start,
    )


def _to_entry(slot: TimetableSlot) -> TimetableEntryResponse:
    return TimetableEntryResponse(
        day_of_week=slot.day_of_week,
        period_no=slot.period_no,
        teacher_id=slot.teacher_id,
        start_time=slot.start_time,
        end_time=slot.end_time,
        notes=slot.notes,
    )


async def _fetch_week_slots(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
) -> List[TimetableSlot]:
    result = await db.execute(
        select(TimetableSlot)
        .where(*_week_filter(school_id, class_id, section_id, week_start))
        .order_by(TimetableSlot.day_of_week, TimetableSlot.period_no)
        .execution_options(populate_existing=True)
    )
    return list(result.scalars().all())


async def _ensure_teachers_in_school(db: AsyncSession, school_id: UUID, teacher_ids: Iterable[Optional[UUID]]) -> None:
    wanted = {t for t in teacher_ids if t is not None}
    if not wanted:
        return
    result = await db.execute(
        select(Teacher.id).where(Teacher.school_id == school_id, Teacher.id.in_(wanted))
    )
    found = set(result.scalars().all())
    missing = wanted - found
    if missing:
        raise InvalidInput(
            f"Unknown teacher for this school: {', '.join(sorted(str(m) for m in missing))}",
            field="teacher_id",
        )


def _insert_for(db: AsyncSession):
    """Dialect-specific INSERT supporting ON CONFLICT (PostgreSQL in production, SQLite in tests)."""
    if db.get_bind().dialect.name == "sqlite":
        return sqlite_insert
    return pg_insert


async def _upsert_slots(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    slots: Sequence[SlotValues],
    created_by: Optional[UUID],
) -> int:
    """INSERT ... ON CONFLICT (natural key) DO UPDATE for every slot, in one transaction. Last writer wins."""
    if not slots:
        return 0
    now = datetime.utcnow()
    rows = [
        {
            "id": uuid.uuid4(),
            "school_id": school_id,
            "class_id": class_id,
            "section_id": section_id,
            "week_start": week_start,
            "day_of_week": values.day_of_week,
            "period_no": values.period_no,
            "teacher_id": values.teacher_id,
            "start_time": values.start_time,
            "end_time": values.end_time,
            "notes": values.notes,
            "created_by": created_by,
            "created_at": now,
            "updated_at": now,
        }
        for values in slots
    ]
    stmt = _insert_for(db)(TimetableSlot).values(rows)
    stmt = stmt.on_conflict_do_update(
        index_elements=list(NATURAL_KEY),
        set_={
            "teacher_id": stmt.excluded.teacher_id,
            "start_time": stmt.excluded.start_time,
            "end_time": stmt.excluded.end_time,
            "notes": stmt.excluded.notes,
            "updated_at": stmt.excluded.updated_at,
        },
    )
    try:
        await db.execute(stmt)
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error(
            "Timetable upsert failed for class %s section %s week %s: %s", class_id, section_id, week_start, e
        )
        raise PersistenceFailure("Failed to save timetable", e)
    return len(slots)


async def get_week(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
) -> TimetableWeekResponse:
    monday = monday_of(week_start)
    try:
        slots = await _fetch_week_slots(db, school_id, class_id, section_id, monday)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to fetch timetable for class %s section %s week %s: %s", class_id, section_id, monday, e)
        raise PersistenceFailure("Failed to fetch timetable", e)
    return TimetableWeekResponse(week_start=monday, entries=[_to_entry(s) for s in slots])


async def load_grid(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    catalog: Optional[PeriodCatalog] = None,
) -> TimetableGrid:
    """Loaded grid with holiday overlay. A failed fetch yields an empty (all unassigned) grid."""
    monday = monday_of(week_start)
    blocked = await overlay.blocked_days(db, school_id, monday)
    grid = TimetableGrid(school_id, class_id, section_id, monday, catalog or get_period_catalog(), blocked)
    try:
        rows = await _fetch_week_slots(db, school_id, class_id, section_id, monday)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.warning("Timetable load failed for class %s section %s week %s, showing empty grid: %s",
                       class_id, section_id, monday, e)
        rows = []
    return grid.load(rows)


async def save_week(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    entries: Iterable,
    created_by: Optional[UUID] = None,
    catalog: Optional[PeriodCatalog] = None,
) -> int:
    """Validate all entries, then upsert them. Nothing is written if any entry is invalid."""
    monday = monday_of(week_start)
    slots = validate_entries(entries, catalog or get_period_catalog())
    await _ensure_teachers_in_school(db, school_id, (s.teacher_id for s in slots))
    count = await _upsert_slots(db, school_id, class_id, section_id, monday, slots, created_by)
    logger.info("Saved %d timetable slots for class %s section %s week %s", count, class_id, section_id, monday)
    return count


async def save_grid(db: AsyncSession, grid: TimetableGrid, created_by: Optional[UUID] = None) -> int:
    """Persist a loaded grid (persisted + modified cells). On failure the grid keeps its state."""
    if grid.state == GridState.EMPTY:
        raise GridStateError("Timetable grid must be loaded before it can be saved")
    slots = validate_entries(grid.pending_cells(), grid.catalog)
    await _ensure_teachers_in_school(db, grid.school_id, (s.teacher_id for s in slots))
    count = await _upsert_slots(
        db, grid.school_id, grid.class_id, grid.section_id, grid.week_start, slots, created_by
    )
    grid.mark_saved()
    return count


async def assign_and_save(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    assignments: Sequence[AssignmentIn],
    override_holidays: bool = False,
    created_by: Optional[UUID] = None,
) -> TimetableGrid:
    """Interactive assignment: holidays and non-working days are refused unless override_holidays."""
    grid = await load_grid(db, school_id, class_id, section_id, week_start)
    for a in assignments:
        grid.assign_teacher(a.day_of_week, a.period_no, a.teacher_id, notes=a.notes, override=override_holidays)
    await save_grid(db, grid, created_by=created_by)
    return grid


async def _copy_week(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    source_section_id: UUID,
    source_week: date,
    target_section_id: UUID,
    target_week: date,
    created_by: Optional[UUID],
) -> int:
    """Re-key one week's slots onto another (section, week) and upsert them. Zero source slots is a no-op."""
    try:
        rows = await _fetch_week_slots(db, school_id, class_id, source_section_id, source_week)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to fetch week %s for class %s section %s: %s", source_week, class_id, source_section_id, e)
        raise PersistenceFailure("Failed to fetch source week", e)
    if not rows:
        return 0
    return await _upsert_slots(
        db, school_id, class_id, target_section_id, target_week, [SlotValues.from_row(r) for r in rows], created_by
    )


async def copy_previous_week(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    created_by: Optional[UUID] = None,
) -> int:
    """Re-key last week's slots to this week and upsert them. Returns the number copied."""
    monday = monday_of(week_start)
    previous = add_days(monday, -7)
    count = await _copy_week(db, school_id, class_id, section_id, previous, section_id, monday, created_by)
    logger.info(
        "Copied %d slots from week %s to %s for class %s section %s", count, previous, monday, class_id, section_id
    )
    return count


async def duplicate_to_section(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    target_section_id: UUID,
    created_by: Optional[UUID] = None,
) -> int:
    """Copy a week's grid onto another section of the same class, same week."""
    if target_section_id == section_id:
        raise InvalidInput("target_section_id must differ from section_id", field="target_section_id")
    result = await db.execute(
        select(Section.id).where(
            Section.id == target_section_id,
            Section.class_id == class_id,
            Section.school_id == school_id,
        )
    )
    if result.scalar_one_or_none() is None:
        raise NotFound("Target section not found for this class")
    monday = monday_of(week_start)
    count = await _copy_week(db, school_id, class_id, section_id, monday, target_section_id, monday, created_by)
    logger.info("Duplicated %d slots of class %s week %s from section %s to %s",
                count, class_id, monday, section_id, target_section_id)
    return count


async def clear_week(
    db: AsyncSession,
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
) -> int:
    """Delete every slot of the week. Clearing an empty week is a no-op."""
    monday = monday_of(week_start)
    try:
        result = await db.execute(
            delete(TimetableSlot).where(*_week_filter(school_id, class_id, section_id, monday))
        )
        await db.commit()
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to clear week %s for class %s section %s: %s", monday, class_id, section_id, e)
        raise PersistenceFailure("Failed to clear week", e)
    logger.info("Cleared %d slots for class %s section %s week %s", result.rowcount, class_id, section_id, monday)
    return result.rowcount


# ----- Personal views -----
def _slot_view_query():
    return (
        select(
            TimetableSlot,
            SchoolClass.name.label("class_name"),
            Section.name.label("section_name"),
            Teacher.first_name,
            Teacher.last_name,
        )
        .join(SchoolClass, SchoolClass.id == TimetableSlot.class_id, isouter=True)
        .join(Section, Section.id == TimetableSlot.section_id, isouter=True)
        .join(Teacher, Teacher.id == TimetableSlot.teacher_id, isouter=True)
    )


async def _list_views(db: AsyncSession, stmt) -> List[SlotView]:
    stmt = stmt.order_by(
        TimetableSlot.day_of_week, TimetableSlot.period_no, SchoolClass.name, Section.name
    ).execution_options(populate_existing=True)
    try:
        result = await db.execute(stmt)
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to fetch personal timetable: %s", e)
        raise PersistenceFailure("Failed to fetch timetable", e)
    views = []
    for slot, class_name, section_name, first_name, last_name in result.all():
        teacher_name = " ".join(p for p in (first_name, last_name) if p) or None
        views.append(
            SlotView(
                day_of_week=slot.day_of_week,
                period_no=slot.period_no,
                start_time=slot.start_time,
                end_time=slot.end_time,
                notes=slot.notes,
                class_id=slot.class_id,
                class_name=class_name,
                section_id=slot.section_id,
                section_name=section_name,
                teacher_id=slot.teacher_id,
                teacher_name=teacher_name,
            )
        )
    return views


async def list_for_teacher(
    db: AsyncSession,
    teacher_id: UUID,
    week_start: date,
    school_id: Optional[UUID] = None,
) -> List[SlotView]:
    """All of a teacher's slots for the week, across every class and section."""
    stmt = _slot_view_query().where(
        TimetableSlot.teacher_id == teacher_id,
        TimetableSlot.week_start == monday_of(week_start),
    )
    if school_id is not None:
        stmt = stmt.where(TimetableSlot.school_id == school_id)
    return await _list_views(db, stmt)


async def list_for_student(
    db: AsyncSession,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    school_id: Optional[UUID] = None,
) -> List[SlotView]:
    """The week of one class/section, as seen by its students."""
    stmt = _slot_view_query().where(
        TimetableSlot.class_id == class_id,
        TimetableSlot.section_id == section_id,
        TimetableSlot.week_start == monday_of(week_start),
    )
    if school_id is not None:
        stmt = stmt.where(TimetableSlot.school_id == school_id)
    return await _list_views(db, stmt)


async def today_for_teacher(
    db: AsyncSession,
    teacher_id: UUID,
    on_date: date,
    school_id: Optional[UUID] = None,
) -> List[SlotView]:
    """One day of a teacher's week, in period order."""
    stmt = _slot_view_query().where(
        TimetableSlot.teacher_id == teacher_id,
        TimetableSlot.week_start == monday_of(on_date),
        TimetableSlot.day_of_week == day_index(on_date),
    )
    if school_id is not None:
        stmt = stmt.where(TimetableSlot.school_id == school_id)
    return await _list_views(db, stmt)


async def today_for_student(
    db: AsyncSession,
    class_id: UUID,
    section_id: UUID,
    on_date: date,
    school_id: Optional[UUID] = None,
) -> List[SlotView]:
    stmt = _slot_view_query().where(
        TimetableSlot.class_id == class_id,
        TimetableSlot.section_id == section_id,
        TimetableSlot.week_start == monday_of(on_date),
        TimetableSlot.day_of_week == day_index(on_date),
    )
    if school_id is not None:
        stmt = stmt.where(TimetableSlot.school_id == school_id)
    return await _list_views(db, stmt)


async def resolve_teacher_for_user(db: AsyncSession, user_id: UUID) -> Optional[Teacher]:
    result = await db.execute(select(Teacher).where(Teacher.user_id == user_id))
    return result.scalar_one_or_none()


async def resolve_student_for_user(
    db: AsyncSession,
    user_id: UUID,
    school_id: UUID,
    email: Optional[str] = None,
) -> Optional[Student]:
    """Linked student record; falls back to matching the login e-mail within the school."""
    result = await db.execute(select(Student).where(Student.user_id == user_id))
    student = result.scalar_one_or_none()
    if student or not email:
        return student
    result = await db.execute(
        select(Student).where(Student.school_id == school_id, Student.email == email).limit(1)
    )
    return result.scalar_one_or_none()


async def get_teacher(db: AsyncSession, school_id: UUID, teacher_id: UUID) -> Optional[Teacher]:
    result = await db.execute(
        select(Teacher).where(Teacher.id == teacher_id, Teacher.school_id == school_id)
    )
    return result.scalar_one_or_none()


# ----- Meta and grid rendering -----
def _periods(catalog: PeriodCatalog) -> List[PeriodResponse]:
    return [PeriodResponse.model_validate(p.model_dump()) for p in catalog]


async def get_meta(db: AsyncSession, school_id: UUID) -> TimetableMetaResponse:
    try:
        result = await db.execute(
            select(Teacher).where(Teacher.school_id == school_id).order_by(Teacher.first_name, Teacher.last_name)
        )
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to fetch teachers for school %s: %s", school_id, e)
        raise PersistenceFailure("Failed to fetch teachers", e)
    teachers = [TeacherOption.model_validate(t) for t in result.scalars().all()]
    return TimetableMetaResponse(teachers=teachers, periods=_periods(get_period_catalog()))


async def build_grid_response(db: AsyncSession, grid: TimetableGrid) -> TimetableGridResponse:
    working_days = await overlay.get_working_days(db, grid.school_id)
    days = [
        GridDayResponse(
            day_of_week=d.isoweekday(),
            date=d,
            label=format_with_weekday(d),
            is_working_day=d.isoweekday() in working_days,
            is_blocked=grid.is_blocked(d.isoweekday()),
        )
        for d in week_dates(grid.week_start)
    ]
    cells = [
        GridCellResponse(
            day_of_week=c.day_of_week,
            period_no=c.period_no,
            start_time=c.start_time,
            end_time=c.end_time,
            teacher_id=c.teacher_id,
            notes=c.notes,
            persisted=c.persisted,
            blocked=grid.is_blocked(c.day_of_week),
        )
        for c in grid.cells
    ]
    return TimetableGridResponse(
        week_start=grid.week_start,
        state=grid.state.value,
        blocked_days=sorted(grid.blocked_days),
        days=days,
        periods=_periods(grid.catalog),
        cells=cells,
    )
