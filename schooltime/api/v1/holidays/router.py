from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from schooltime.auth.dependencies import get_current_user
from schooltime.auth.rbac import ensure_school_access, require_admin
from schooltime.auth.schemas import CurrentUser
from schooltime.core.calendar import monday_of
from schooltime.core.exceptions import ServiceError
from schooltime.db.session import get_db

from .schemas import (
    BlockedDaysResponse,
    HolidayCreate,
    HolidayListResponse,
    HolidayMutationResponse,
    HolidayRangeResponse,
    HolidayUpdate,
)
from . import overlay, service

router = APIRouter(prefix="/api/v1/holidays", tags=["holidays"])


@router.get("", response_model=HolidayListResponse)
async def list_holidays(
    school_id: UUID,
    year: Optional[int] = Query(None),
    month: Optional[int] = Query(None, ge=1, le=12),
    q: Optional[str] = Query(None, description="Case-insensitive title search"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=200),
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> HolidayListResponse:
    try:
        ensure_school_access(current_user, school_id)
        return await service.list_holidays(db, school_id, year=year, month=month, q=q, page=page, limit=limit)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.post(
    "",
    response_model=HolidayMutationResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_holiday(
    payload: HolidayCreate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> HolidayMutationResponse:
    try:
        ensure_school_access(current_user, payload.school_id)
        holiday = await service.create_holiday(db, payload, created_by=current_user.id)
        return HolidayMutationResponse(holiday=holiday)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/range", response_model=HolidayRangeResponse)
async def holidays_in_range(
    school_id: UUID,
    start: date,
    end: date,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> HolidayRangeResponse:
    """Holidays overlapping the inclusive [start, end] window."""
    try:
        ensure_school_access(current_user, school_id)
        return HolidayRangeResponse(holidays=await service.holidays_in_range(db, school_id, start, end))
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.get("/blocked-days", response_model=BlockedDaysResponse)
async def blocked_days(
    school_id: UUID,
    week_start: date,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(get_current_user),
) -> BlockedDaysResponse:
    try:
        ensure_school_access(current_user, school_id)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
    monday = monday_of(week_start)
    days = await overlay.blocked_days(db, school_id, monday)
    return BlockedDaysResponse(week_start=monday, blocked_days=sorted(days))


@router.patch("/{holiday_id}", response_model=HolidayMutationResponse)
async def update_holiday(
    holiday_id: UUID,
    payload: HolidayUpdate,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
) -> HolidayMutationResponse:
    try:
        holiday = await service.update_holiday(db, current_user.school_id, holiday_id, payload)
        return HolidayMutationResponse(holiday=holiday)
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)


@router.delete("/{holiday_id}")
async def delete_holiday(
    holiday_id: UUID,
    db: AsyncSession = Depends(get_db),
    current_user: CurrentUser = Depends(require_admin),
):
    try:
        await service.delete_holiday(db, current_user.school_id, holiday_id)
        return {"success": True}
    except ServiceError as e:
        raise HTTPException(status_code=e.status_code, detail=e.message)
