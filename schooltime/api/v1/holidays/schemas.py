from datetime import date, datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field, model_validator

from schooltime.core.enums import HolidayType


class HolidayCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    school_id: UUID
    title: str = Field(..., min_length=1, max_length=255)
    type: HolidayType = HolidayType.HOLIDAY
    is_multi_day: bool = False
    single_date: Optional[date] = Field(None, alias="date", description="Day of a single-day holiday")
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = None

    @model_validator(mode="after")
    def normalize_dates(self) -> "HolidayCreate":
        if self.is_multi_day:
            if self.start_date is None or self.end_date is None:
                raise ValueError("start_date and end_date are required for multi-day holidays")
            if self.end_date < self.start_date:
                raise ValueError("end_date must be on or after start_date")
        else:
            one_day = self.single_date or self.start_date
            if one_day is None:
                raise ValueError("date is required for single-day holidays")
            self.start_date = one_day
            self.end_date = None
        return self


class HolidayUpdate(BaseModel):
    """Partial update. Sending end_date=null explicitly clears it; omitting it keeps the stored value."""

    title: Optional[str] = Field(None, min_length=1, max_length=255)
    type: Optional[HolidayType] = None
    is_multi_day: Optional[bool] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    description: Optional[str] = None


class HolidayResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    school_id: UUID
    title: str
    type: str
    is_multi_day: bool
    start_date: date
    end_date: Optional[date] = None
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class HolidayListResponse(BaseModel):
    holidays: List[HolidayResponse]
    pagination: Pagination


class HolidayMutationResponse(BaseModel):
    success: bool = True
    holiday: HolidayResponse


class HolidayRangeResponse(BaseModel):
    holidays: List[HolidayResponse]


class BlockedDaysResponse(BaseModel):
    week_start: date
    blocked_days: List[int] = Field(..., description="DayOfWeek values (1=Monday .. 7=Sunday)")
