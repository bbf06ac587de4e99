from datetime import date
from typing import Optional, Tuple
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from schooltime.auth.dependencies import get_current_user
from schooltime.auth.rbac import ensure_school_access, is_admin, require_admin
from schooltime.auth.schemas import CurrentUser
from schooltime.core.calendar import day_index, monday_of
from schooltime.core.enums import UserRole
from schooltime.core.exceptions import ServiceError
from schooltime.core.models import Teacher
from schooltime.db.session import get_db

from .schemas import (
    CopyResponse,
    PersonalTimetableResponse,
    SaveResponse,
    SuccessResponse,
    TimetableAssignRequest,
    TimetableDuplicateRequest,
    TimetableGridResponse,
    TimetableMetaResponse,
    TimetableSaveRequest,
    TimetableWeekKey,
    TimetableWeekResponse,
    TodayScheduleResponse,
)
from . import service

router = APIRouter(prefix="/api/v1/timetable", tags=["timetable"])


@router.get("", response_model=TimetableWeekResponse)
async def get_timetable(
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableWeekResponse:
    try:
        ensure_school_access(current_user, school_id)
        return await service.get_week(db, school_id, class_id, section_id, week_start)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/grid", response_model=TimetableGridResponse)
async def get_timetable_grid(
    school_id: UUID,
    class_id: UUID,
    section_id: UUID,
    week_start: date,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableGridResponse:
    """Full 7-day x period grid with holiday / non-working day flags."""
    try:
        ensure_school_access(current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    grid = await service.load_grid(db, school_id, class_id, section_id, week_start)
    return await service.build_grid_response(db, grid)


@router.post("/save", response_model=SaveResponse)
async def save_timetable(
    payload: TimetableSaveRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> SaveResponse:
    try:
        ensure_school_access(current_user, payload.school_id)
        count = await service.save_week(
            db,
            payload.school_id,
            payload.class_id,
            payload.section_id,
            payload.week_start,
            payload.entries,
            created_by=current_user.id,
        )
        return SaveResponse(saved_count=count)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/assign", response_model=TimetableGridResponse)
async def assign_teachers(
    payload: TimetableAssignRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> TimetableGridResponse:
    """Assign teachers cell by cell; refuses holidays unless override_holidays is set."""
    try:
        ensure_school_access(current_user, payload.school_id)
        grid = await service.assign_and_save(
            db,
            payload.school_id,
            payload.class_id,
            payload.section_id,
            payload.week_start,
            payload.assignments,
            override_holidays=payload.override_holidays,
            created_by=current_user.id,
        )
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return await service.build_grid_response(db, grid)


@router.post("/copy-previous", response_model=CopyResponse)
async def copy_previous_week(
    payload: TimetableWeekKey,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> CopyResponse:
    try:
        ensure_school_access(current_user, payload.school_id)
        copied = await service.copy_previous_week(
            db,
            payload.school_id,
            payload.class_id,
            payload.section_id,
            payload.week_start,
            created_by=current_user.id,
        )
        return CopyResponse(copied_count=copied)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/clear-week", response_model=SuccessResponse)
async def clear_week(
    payload: TimetableWeekKey,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> SuccessResponse:
    try:
        ensure_school_access(current_user, payload.school_id)
        await service.clear_week(db, payload.school_id, payload.class_id, payload.section_id, payload.week_start)
        return SuccessResponse()
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post("/duplicate", response_model=CopyResponse)
async def duplicate_to_section(
    payload: TimetableDuplicateRequest,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> CopyResponse:
    """Copy the week's grid onto another section of the same class."""
    try:
        ensure_school_access(current_user, payload.school_id)
        copied = await service.duplicate_to_section(
            db,
            payload.school_id,
            payload.class_id,
            payload.section_id,
            payload.week_start,
            payload.target_section_id,
            created_by=current_user.id,
        )
        return CopyResponse(copied_count=copied)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


async def _teacher_for_caller(
    db: AsyncSession, current_user: CurrentUser, teacher_id: Optional[UUID]
) -> Optional[Teacher]:
    """Teachers always get themselves (None if unlinked); admins must name a teacher of their school."""
    if current_user.role == UserRole.TEACHER.value:
        return await service.resolve_teacher_for_user(db, current_user.id)
    if is_admin(current_user):
        if teacher_id is None:
            raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="teacher_id is required")
        teacher = await service.get_teacher(db, current_user.school_id, teacher_id)
        if not teacher:
            raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Teacher not found")
        return teacher
    raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions")


async def _class_section_for_caller(
    db: AsyncSession,
    current_user: CurrentUser,
    class_id: Optional[UUID],
    section_id: Optional[UUID],
) -> Optional[Tuple[UUID, UUID]]:
    """Students get their own class/section (None if unlinked); staff pass class_id and section_id."""
    if current_user.role == UserRole.STUDENT.value:
        student = await service.resolve_student_for_user(
            db, current_user.id, current_user.school_id, email=current_user.email
        )
        return (student.class_id, student.section_id) if student else None
    if class_id is None or section_id is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="class_id and section_id are required")
    return class_id, section_id


@router.get("/for-teacher", response_model=PersonalTimetableResponse)
async def timetable_for_teacher(
    week_start: date,
    teacher_id: Optional[UUID] = Query(None, description="Admins only; teachers always get their own week"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PersonalTimetableResponse:
    monday = monday_of(week_start)
    teacher = await _teacher_for_caller(db, current_user, teacher_id)
    if not teacher:
        return PersonalTimetableResponse(week_start=monday, entries=[])
    try:
        entries = await service.list_for_teacher(db, teacher.id, monday, school_id=teacher.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return PersonalTimetableResponse(week_start=monday, entries=entries)


@router.get("/for-student", response_model=PersonalTimetableResponse)
async def timetable_for_student(
    week_start: date,
    class_id: Optional[UUID] = Query(None),
    section_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> PersonalTimetableResponse:
    """Students get their own class/section; staff pass class_id and section_id."""
    monday = monday_of(week_start)
    key = await _class_section_for_caller(db, current_user, class_id, section_id)
    if not key:
        return PersonalTimetableResponse(week_start=monday, entries=[])
    try:
        entries = await service.list_for_student(db, key[0], key[1], monday, school_id=current_user.school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    return PersonalTimetableResponse(week_start=monday, entries=entries)


@router.get("/today/teacher", response_model=TodayScheduleResponse)
async def today_for_teacher(
    on: Optional[date] = Query(None, description="Defaults to today"),
    teacher_id: Optional[UUID] = Query(None, description="Admins only"),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TodayScheduleResponse:
    """A teacher's lessons for one day, in period order."""
    day = on or date.today()
    teacher = await _teacher_for_caller(db, current_user, teacher_id)
    schedule = []
    if teacher:
        try:
            schedule = await service.today_for_teacher(db, teacher.id, day, school_id=teacher.school_id)
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
    return TodayScheduleResponse(date=day, day_of_week=day_index(day), classes_count=len(schedule), schedule=schedule)


@router.get("/today/student", response_model=TodayScheduleResponse)
async def today_for_student(
    on: Optional[date] = Query(None, description="Defaults to today"),
    class_id: Optional[UUID] = Query(None),
    section_id: Optional[UUID] = Query(None),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TodayScheduleResponse:
    day = on or date.today()
    key = await _class_section_for_caller(db, current_user, class_id, section_id)
    schedule = []
    if key:
        try:
            schedule = await service.today_for_student(db, key[0], key[1], day, school_id=current_user.school_id)
        except ServiceError as e:
            raise HTTPException(status_code=e.status_code, detail=e.message)
    return TodayScheduleResponse(date=day, day_of_week=day_index(day), classes_count=len(schedule), schedule=schedule)


@router.get("/meta", response_model=TimetableMetaResponse)
async def timetable_meta(
    school_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> TimetableMetaResponse:
    """Teacher picklist and the period catalog."""
    try:
        ensure_school_access(current_user, school_id)
        return await service.get_meta(db, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
