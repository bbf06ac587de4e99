from datetime import date
from uuid import uuid4

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from schooltime.api.v1.timetables import service
from schooltime.api.v1.timetables.grid import GridState, TimetableGrid
from schooltime.api.v1.timetables.schemas import AssignmentIn, TimetableEntryIn
from schooltime.core.exceptions import (
    GridStateError,
    HolidayConflict,
    InvalidDayOfWeek,
    InvalidInput,
    InvalidPeriod,
    InvalidTimeRange,
    NotFound,
    PersistenceFailure,
)
from schooltime.core.models import Holiday, Section, TimetableSlot
from schooltime.core.periods import DEFAULT_PERIODS, Period, PeriodCatalog

WEEK = date(2024, 3, 11)


def entry(day: int, period: int, teacher=None, start=None, end=None, notes=None) -> TimetableEntryIn:
    return TimetableEntryIn(
        day_of_week=day, period_no=period, teacher_id=teacher, start_time=start, end_time=end, notes=notes
    )


async def save(db: AsyncSession, s, week: date, entries, klass=None, section=None) -> int:
    return await service.save_week(
        db,
        s.school.id,
        (klass or s.class_a).id,
        (section or s.section_a).id,
        week,
        entries,
        created_by=s.admin.id,
    )


async def week_entries(db: AsyncSession, s, week: date, klass=None, section=None):
    result = await service.get_week(db, s.school.id, (klass or s.class_a).id, (section or s.section_a).id, week)
    return result.entries


async def count_slots(db: AsyncSession) -> int:
    return (await db.execute(select(func.count()).select_from(TimetableSlot))).scalar_one()


@pytest.mark.asyncio
async def test_save_then_get_round_trip(db_session: AsyncSession, seeded) -> None:
    saved = await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id, "08:00", "08:45", "Maths")])
    assert saved == 1

    entries = await week_entries(db_session, seeded, WEEK)
    assert len(entries) == 1
    assert entries[0].day_of_week == 1
    assert entries[0].period_no == 1
    assert entries[0].teacher_id == seeded.teacher_1.id
    assert (entries[0].start_time, entries[0].end_time) == ("08:00", "08:45")
    assert entries[0].notes == "Maths"


@pytest.mark.asyncio
async def test_week_start_is_normalized_to_monday(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, date(2024, 3, 14), [entry(2, 3, seeded.teacher_2.id)])

    stored = (await db_session.execute(select(TimetableSlot))).scalars().one()
    assert stored.week_start == WEEK
    # missing bounds come from the period catalog
    assert (stored.start_time, stored.end_time) == ("09:31", "10:15")
    assert len(await week_entries(db_session, seeded, date(2024, 3, 17))) == 1


@pytest.mark.asyncio
async def test_invalid_time_range_persists_nothing(db_session: AsyncSession, seeded) -> None:
    with pytest.raises(InvalidTimeRange):
        await save(
            db_session,
            seeded,
            WEEK,
            [entry(1, 1, None, "08:00", "08:45"), entry(1, 2, None, "09:00", "08:30")],
        )
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_invalid_day_persists_nothing(db_session: AsyncSession, seeded) -> None:
    with pytest.raises(InvalidDayOfWeek):
        await save(db_session, seeded, WEEK, [entry(1, 1), entry(8, 1)])
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_duplicate_keys_keep_last(db_session: AsyncSession, seeded) -> None:
    saved = await save(
        db_session,
        seeded,
        WEEK,
        [entry(1, 1, seeded.teacher_1.id), entry(1, 1, seeded.teacher_2.id, notes="swap")],
    )
    assert saved == 1
    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.teacher_id, e.notes) for e in entries] == [(seeded.teacher_2.id, "swap")]


@pytest.mark.asyncio
async def test_save_overwrites_existing_slot(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id), entry(1, 2, seeded.teacher_1.id)])
    await save(db_session, seeded, WEEK, [entry(1, 1, None, "08:05", "08:50")])

    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.day_of_week, e.period_no) for e in entries] == [(1, 1), (1, 2)]
    assert entries[0].teacher_id is None
    assert entries[0].start_time == "08:05"
    assert entries[1].teacher_id == seeded.teacher_1.id
    assert await count_slots(db_session) == 2


@pytest.mark.asyncio
async def test_unknown_teacher_rejected(db_session: AsyncSession, seeded) -> None:
    with pytest.raises(InvalidInput) as exc_info:
        await save(db_session, seeded, WEEK, [entry(1, 1, uuid4())])
    assert exc_info.value.field == "teacher_id"
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_copy_previous_week_when_empty(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(3, 2, seeded.teacher_1.id)])

    copied = await service.copy_previous_week(
        db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK
    )
    assert copied == 0
    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.day_of_week, e.period_no, e.teacher_id) for e in entries] == [(3, 2, seeded.teacher_1.id)]


@pytest.mark.asyncio
async def test_copy_previous_week_rekeys_slots(db_session: AsyncSession, seeded) -> None:
    previous = date(2024, 3, 4)
    await save(
        db_session,
        seeded,
        previous,
        [entry(1, 1, seeded.teacher_1.id, notes="Maths"), entry(5, 7, seeded.teacher_2.id)],
    )
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_2.id), entry(2, 2, seeded.teacher_2.id)])

    copied = await service.copy_previous_week(
        db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, date(2024, 3, 13)
    )
    assert copied == 2

    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.day_of_week, e.period_no, e.teacher_id) for e in entries] == [
        (1, 1, seeded.teacher_1.id),
        (2, 2, seeded.teacher_2.id),
        (5, 7, seeded.teacher_2.id),
    ]
    assert entries[0].notes == "Maths"
    assert len(await week_entries(db_session, seeded, previous)) == 2


@pytest.mark.asyncio
async def test_clear_week_is_idempotent(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(1, 1), entry(1, 2)])
    await save(db_session, seeded, WEEK, [entry(1, 1)], klass=seeded.class_b, section=seeded.section_b)

    args = (db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    assert await service.clear_week(*args) == 2
    assert await service.clear_week(*args) == 0

    grid = await service.load_grid(*args)
    assert grid.persisted_cells() == []
    # other sections untouched
    assert len(await week_entries(db_session, seeded, WEEK, seeded.class_b, seeded.section_b)) == 1


@pytest.mark.asyncio
async def test_for_teacher_spans_classes_sorted(db_session: AsyncSession, seeded) -> None:
    t1 = seeded.teacher_1.id
    await save(db_session, seeded, WEEK, [entry(1, 2, t1), entry(1, 3, seeded.teacher_2.id)])
    await save(
        db_session,
        seeded,
        WEEK,
        [entry(2, 1, t1), entry(1, 1, t1)],
        klass=seeded.class_b,
        section=seeded.section_b,
    )

    views = await service.list_for_teacher(db_session, t1, date(2024, 3, 15), school_id=seeded.school.id)
    assert [(v.day_of_week, v.period_no, v.class_name, v.section_name) for v in views] == [
        (1, 1, "2nd", "B"),
        (1, 2, "1st", "A"),
        (2, 1, "2nd", "B"),
    ]
    assert {v.teacher_name for v in views} == {"Tom Teacher"}
    assert await service.list_for_teacher(db_session, t1, date(2024, 3, 18)) == []


@pytest.mark.asyncio
async def test_for_student_returns_class_section_week(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(2, 1, seeded.teacher_2.id), entry(1, 1)])
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id)], seeded.class_b, seeded.section_b)

    views = await service.list_for_student(db_session, seeded.class_a.id, seeded.section_a.id, WEEK)
    assert [(v.day_of_week, v.period_no) for v in views] == [(1, 1), (2, 1)]
    assert views[0].teacher_name is None
    assert views[1].teacher_name == "Anna Baker"


@pytest.mark.asyncio
async def test_resolve_student_falls_back_to_email(db_session: AsyncSession, seeded) -> None:
    student = await service.resolve_student_for_user(
        db_session, uuid4(), seeded.school.id, email="sam@example.com"
    )
    assert student is not None and student.id == seeded.student.id
    assert await service.resolve_student_for_user(db_session, uuid4(), seeded.school.id) is None


@pytest.mark.asyncio
async def test_load_grid_after_save(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(4, 7, seeded.teacher_1.id)])

    grid = await service.load_grid(db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    assert grid.state == GridState.LOADED
    assert grid.blocked_days == {6, 7}
    assert [c.key for c in grid.persisted_cells()] == [(4, 7)]
    assert grid.cell(4, 7).teacher_id == seeded.teacher_1.id
    assert len(grid.cells) == 49


@pytest.mark.asyncio
async def test_assign_on_holiday_requires_override(db_session: AsyncSession, seeded) -> None:
    db_session.add(Holiday(school_id=seeded.school.id, title="Founders Day", start_date=date(2024, 3, 13)))
    await db_session.commit()
    key = (db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)

    with pytest.raises(HolidayConflict):
        await service.assign_and_save(*key, [AssignmentIn(day_of_week=3, period_no=1, teacher_id=seeded.teacher_1.id)])
    assert await count_slots(db_session) == 0

    grid = await service.assign_and_save(
        *key,
        [AssignmentIn(day_of_week=3, period_no=1, teacher_id=seeded.teacher_1.id)],
        override_holidays=True,
    )
    assert grid.state == GridState.SAVED
    assert [(e.day_of_week, e.period_no) for e in await week_entries(db_session, seeded, WEEK)] == [(3, 1)]


@pytest.mark.asyncio
async def test_assign_keeps_existing_slots(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id, notes="Maths")])
    await service.assign_and_save(
        db_session,
        seeded.school.id,
        seeded.class_a.id,
        seeded.section_a.id,
        WEEK,
        [AssignmentIn(day_of_week=2, period_no=2, teacher_id=seeded.teacher_2.id)],
    )
    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.day_of_week, e.period_no, e.teacher_id) for e in entries] == [
        (1, 1, seeded.teacher_1.id),
        (2, 2, seeded.teacher_2.id),
    ]
    assert entries[0].notes == "Maths"


@pytest.mark.asyncio
async def test_save_grid_requires_loaded_grid(db_session: AsyncSession, seeded) -> None:
    grid = TimetableGrid(seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    with pytest.raises(GridStateError):
        await service.save_grid(db_session, grid)


@pytest.mark.asyncio
async def test_failed_save_leaves_grid_modified(db_session: AsyncSession, seeded, monkeypatch) -> None:
    grid = await service.load_grid(db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    grid.assign_teacher(1, 1, seeded.teacher_1.id)

    async def broken_commit():
        raise SQLAlchemyError("disk I/O error")

    monkeypatch.setattr(db_session, "commit", broken_commit)
    with pytest.raises(PersistenceFailure) as exc_info:
        await service.save_grid(db_session, grid)
    assert "disk I/O error" in exc_info.value.message
    monkeypatch.undo()

    assert grid.state == GridState.MODIFIED
    assert grid.dirty_keys == {(1, 1)}
    assert not grid.cell(1, 1).persisted
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_load_grid_degrades_to_empty_on_storage_error(
    db_session: AsyncSession, seeded, monkeypatch
) -> None:
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id)])

    async def broken(*args, **kwargs):
        raise SQLAlchemyError("connection refused")

    monkeypatch.setattr(service, "_fetch_week_slots", broken)
    grid = await service.load_grid(db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    assert grid.state == GridState.LOADED
    assert grid.persisted_cells() == []
    assert all(c.teacher_id is None for c in grid.cells)


@pytest.mark.asyncio
async def test_get_meta_lists_teachers_and_periods(db_session: AsyncSession, seeded) -> None:
    meta = await service.get_meta(db_session, seeded.school.id)
    assert [t.first_name for t in meta.teachers] == ["Anna", "Tom"]
    assert len(meta.periods) == 8
    assert [p.period_no for p in meta.periods if p.is_break] == [None]
    assert [p.period_no for p in meta.periods if not p.is_break] == [1, 2, 3, 4, 5, 6, 7]


@pytest.mark.asyncio
async def test_save_rejects_break_period_and_persists_nothing(db_session: AsyncSession, seeded) -> None:
    catalog = PeriodCatalog(
        list(DEFAULT_PERIODS)
        + [Period(period_no=8, label="Assembly", start_time="14:31", end_time="15:00", is_break=True)]
    )
    with pytest.raises(InvalidPeriod):
        await service.save_week(
            db_session,
            seeded.school.id,
            seeded.class_a.id,
            seeded.section_a.id,
            WEEK,
            [entry(1, 1, seeded.teacher_1.id), entry(1, 8, seeded.teacher_1.id)],
            catalog=catalog,
        )
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_save_accepts_afternoon_periods(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(1, 6, seeded.teacher_1.id), entry(1, 7, seeded.teacher_2.id)])
    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.period_no, e.start_time, e.end_time) for e in entries] == [
        (6, "13:01", "13:45"),
        (7, "13:46", "14:30"),
    ]


@pytest.mark.asyncio
async def test_assign_rejects_unknown_period(db_session: AsyncSession, seeded) -> None:
    with pytest.raises(InvalidPeriod):
        await service.assign_and_save(
            db_session,
            seeded.school.id,
            seeded.class_a.id,
            seeded.section_a.id,
            WEEK,
            [AssignmentIn(day_of_week=1, period_no=8, teacher_id=seeded.teacher_1.id)],
        )
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_save_grid_wins_over_row_written_by_another_session(
    db_session: AsyncSession, engine: AsyncEngine, seeded
) -> None:
    school_id, class_id, section_id = seeded.school.id, seeded.class_a.id, seeded.section_a.id
    t1, t2 = seeded.teacher_1.id, seeded.teacher_2.id

    grid = await service.load_grid(db_session, school_id, class_id, section_id, WEEK)
    assert grid.persisted_cells() == []

    # another admin saves the same cell after this grid was loaded
    other_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with other_factory() as other:
        await service.save_week(other, school_id, class_id, section_id, WEEK, [entry(1, 1, t2, notes="theirs")])

    grid.assign_teacher(1, 1, t1, notes="ours")
    assert await service.save_grid(db_session, grid) == 1
    assert grid.state == GridState.SAVED

    entries = await week_entries(db_session, seeded, WEEK)
    assert [(e.day_of_week, e.period_no, e.teacher_id, e.notes) for e in entries] == [(1, 1, t1, "ours")]
    assert await count_slots(db_session) == 1


@pytest.mark.asyncio
async def test_reads_see_rows_updated_by_another_session(
    db_session: AsyncSession, engine: AsyncEngine, seeded
) -> None:
    school_id, class_id, section_id = seeded.school.id, seeded.class_a.id, seeded.section_a.id
    t1, t2 = seeded.teacher_1.id, seeded.teacher_2.id
    await save(db_session, seeded, WEEK, [entry(1, 1, t1)])
    assert (await week_entries(db_session, seeded, WEEK))[0].teacher_id == t1

    other_factory = async_sessionmaker(bind=engine, class_=AsyncSession, expire_on_commit=False)
    async with other_factory() as other:
        await service.save_week(other, school_id, class_id, section_id, WEEK, [entry(1, 1, t2)])

    entries = await week_entries(db_session, seeded, WEEK)
    assert [e.teacher_id for e in entries] == [t2]
    grid = await service.load_grid(db_session, school_id, class_id, section_id, WEEK)
    assert grid.cell(1, 1).teacher_id == t2


@pytest.mark.asyncio
async def test_today_for_teacher_lists_one_day_in_period_order(db_session: AsyncSession, seeded) -> None:
    t1 = seeded.teacher_1.id
    await save(db_session, seeded, WEEK, [entry(2, 5, t1), entry(2, 1, t1), entry(3, 1, t1)])
    await save(db_session, seeded, WEEK, [entry(2, 3, t1)], klass=seeded.class_b, section=seeded.section_b)

    views = await service.today_for_teacher(db_session, t1, date(2024, 3, 12), school_id=seeded.school.id)
    assert [(v.day_of_week, v.period_no, v.class_name) for v in views] == [
        (2, 1, "1st"),
        (2, 3, "2nd"),
        (2, 5, "1st"),
    ]
    # same weekday of another week
    assert await service.today_for_teacher(db_session, t1, date(2024, 3, 19)) == []


@pytest.mark.asyncio
async def test_today_for_student_lists_one_day(db_session: AsyncSession, seeded) -> None:
    await save(db_session, seeded, WEEK, [entry(4, 2, seeded.teacher_2.id), entry(4, 1), entry(5, 1)])

    views = await service.today_for_student(
        db_session, seeded.class_a.id, seeded.section_a.id, date(2024, 3, 14)
    )
    assert [v.period_no for v in views] == [1, 2]
    assert {v.day_of_week for v in views} == {4}
    assert await service.today_for_student(
        db_session, seeded.class_a.id, seeded.section_a.id, date(2024, 3, 16)
    ) == []


async def add_section(db: AsyncSession, s, name: str = "C", klass=None) -> Section:
    section = Section(school_id=s.school.id, class_id=(klass or s.class_a).id, name=name)
    db.add(section)
    await db.commit()
    return section


@pytest.mark.asyncio
async def test_duplicate_to_section_copies_week(db_session: AsyncSession, seeded) -> None:
    target = await add_section(db_session, seeded)
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_1.id, notes="Maths"), entry(2, 6)])
    await save(db_session, seeded, WEEK, [entry(1, 1, seeded.teacher_2.id), entry(3, 3)], section=target)

    copied = await service.duplicate_to_section(
        db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, date(2024, 3, 13), target.id
    )
    assert copied == 2

    entries = await week_entries(db_session, seeded, WEEK, section=target)
    assert [(e.day_of_week, e.period_no, e.teacher_id) for e in entries] == [
        (1, 1, seeded.teacher_1.id),
        (2, 6, None),
        (3, 3, None),
    ]
    assert entries[0].notes == "Maths"
    assert len(await week_entries(db_session, seeded, WEEK)) == 2


@pytest.mark.asyncio
async def test_duplicate_to_section_with_empty_source(db_session: AsyncSession, seeded) -> None:
    target = await add_section(db_session, seeded)
    copied = await service.duplicate_to_section(
        db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK, target.id
    )
    assert copied == 0
    assert await count_slots(db_session) == 0


@pytest.mark.asyncio
async def test_duplicate_to_section_rejects_bad_targets(db_session: AsyncSession, seeded) -> None:
    args = (db_session, seeded.school.id, seeded.class_a.id, seeded.section_a.id, WEEK)
    with pytest.raises(InvalidInput) as exc_info:
        await service.duplicate_to_section(*args, seeded.section_a.id)
    assert exc_info.value.field == "target_section_id"

    # section_b belongs to another class
    with pytest.raises(NotFound):
        await service.duplicate_to_section(*args, seeded.section_b.id)
    with pytest.raises(NotFound):
        await service.duplicate_to_section(*args, uuid4())
