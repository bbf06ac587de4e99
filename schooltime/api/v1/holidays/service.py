import logging
import math
from datetime import date
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, or_, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from schooltime.core.exceptions import Conflict, InvalidInput, NotFound, PersistenceFailure
from schooltime.core.models import Holiday

from .schemas import (
    HolidayCreate,
    HolidayListResponse,
    HolidayResponse,
    HolidayUpdate,
    Pagination,
)

logger = logging.getLogger(__name__)


def _to_response(h: Holiday) -> HolidayResponse:
    return HolidayResponse(
        id=h.id,
        school_id=h.school_id,
        title=h.title,
        type=h.type,
        is_multi_day=h.is_multi_day,
        start_date=h.start_date,
        end_date=h.end_date,
        description=h.description,
        created_at=h.created_at,
        updated_at=h.updated_at,
    )


def _year_month_bounds(year: int, month: Optional[int] = None) -> Tuple[date, date]:
    """[start, end) covering the whole year, or one month of it."""
    if not month:
        return date(year, 1, 1), date(year + 1, 1, 1)
    if not 1 <= month <= 12:
        raise InvalidInput("month must be between 1 and 12", field="month")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end


def _overlapping(school_id: UUID, start: date, end: date):
    """Holidays whose [start_date, end_date or start_date] intersects [start, end] (inclusive)."""
    return select(Holiday).where(
        Holiday.school_id == school_id,
        Holiday.start_date <= end,
        or_(
            Holiday.end_date >= start,
            (Holiday.end_date.is_(None)) & (Holiday.start_date >= start),
        ),
    )


async def create_holiday(
    db: AsyncSession,
    payload: HolidayCreate,
    created_by: Optional[UUID] = None,
) -> HolidayResponse:
    try:
        obj = Holiday(
            school_id=payload.school_id,
            title=payload.title.strip(),
            type=payload.type.value,
            is_multi_day=payload.is_multi_day,
            start_date=payload.start_date,
            end_date=payload.end_date,
            description=payload.description,
            created_by=created_by,
        )
        db.add(obj)
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise Conflict("Duplicate holiday for that date/title")
    logger.info("Created holiday %s (%s) for school %s", obj.id, obj.start_date, obj.school_id)
    return _to_response(obj)


async def list_holidays(
    db: AsyncSession,
    school_id: UUID,
    year: Optional[int] = None,
    month: Optional[int] = None,
    q: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
) -> HolidayListResponse:
    stmt = select(Holiday).where(Holiday.school_id == school_id)
    if q:
        stmt = stmt.where(Holiday.title.ilike(f"%{q}%"))
    if year:
        start, end = _year_month_bounds(year, month)
        stmt = stmt.where(Holiday.start_date >= start, Holiday.start_date < end)

    total = (await db.execute(select(func.count()).select_from(stmt.subquery()))).scalar_one()
    stmt = stmt.order_by(Holiday.start_date).offset((page - 1) * limit).limit(limit)
    result = await db.execute(stmt)
    return HolidayListResponse(
        holidays=[_to_response(h) for h in result.scalars().all()],
        pagination=Pagination(
            page=page,
            limit=limit,
            total=total,
            total_pages=math.ceil(total / limit) if limit else 0,
        ),
    )


async def get_holiday(db: AsyncSession, school_id: UUID, holiday_id: UUID) -> Optional[Holiday]:
    result = await db.execute(
        select(Holiday).where(Holiday.id == holiday_id, Holiday.school_id == school_id)
    )
    return result.scalar_one_or_none()


async def update_holiday(
    db: AsyncSession,
    school_id: UUID,
    holiday_id: UUID,
    payload: HolidayUpdate,
) -> HolidayResponse:
    obj = await get_holiday(db, school_id, holiday_id)
    if not obj:
        raise NotFound("Holiday not found")

    changes = payload.model_dump(exclude_unset=True)
    next_multi = changes.get("is_multi_day", obj.is_multi_day)
    if next_multi is None:
        next_multi = obj.is_multi_day
    next_start = changes.get("start_date") or obj.start_date
    next_end = changes["end_date"] if "end_date" in changes else obj.end_date

    # Validate the resulting row, not just the patch
    if next_multi:
        if next_end is None:
            raise InvalidInput("end_date is required when is_multi_day is true", field="end_date")
        if next_end < next_start:
            raise InvalidInput("end_date must be on or after start_date", field="end_date")
    else:
        next_end = None

    if payload.title is not None:
        obj.title = payload.title.strip()
    if payload.type is not None:
        obj.type = payload.type.value
    if "description" in changes:
        obj.description = payload.description
    obj.is_multi_day = next_multi
    obj.start_date = next_start
    obj.end_date = next_end
    try:
        await db.commit()
        await db.refresh(obj)
    except IntegrityError:
        await db.rollback()
        raise Conflict("Duplicate holiday for that date/title")
    return _to_response(obj)


async def delete_holiday(db: AsyncSession, school_id: UUID, holiday_id: UUID) -> None:
    obj = await get_holiday(db, school_id, holiday_id)
    if not obj:
        raise NotFound("Holiday not found")
    await db.delete(obj)
    await db.commit()
    logger.info("Deleted holiday %s for school %s", holiday_id, school_id)


async def holidays_in_range(
    db: AsyncSession,
    school_id: UUID,
    start: date,
    end: date,
) -> List[HolidayResponse]:
    if end < start:
        raise InvalidInput("end must be on or after start", field="end")
    try:
        result = await db.execute(_overlapping(school_id, start, end).order_by(Holiday.start_date))
    except SQLAlchemyError as e:
        await db.rollback()
        logger.error("Failed to fetch holidays for school %s: %s", school_id, e)
        raise PersistenceFailure("Failed to fetch holidays", e)
    return [_to_response(h) for h in result.scalars().all()]


async def holiday_spans_in_range(
    db: AsyncSession,
    school_id: UUID,
    start: date,
    end: date,
) -> List[Tuple[date, Optional[date]]]:
    """(start_date, end_date) pairs for the overlay. Storage errors propagate."""
    stmt = _overlapping(school_id, start, end).with_only_columns(Holiday.start_date, Holiday.end_date)
    result = await db.execute(stmt)
    return [(row.start_date, row.end_date) for row in result.all()]
