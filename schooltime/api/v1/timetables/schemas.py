from datetime import date
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

# day_of_week / period_no / times are checked by .validation so that failures carry
# their own error type instead of a generic request-shape error.


class TimetableEntryIn(BaseModel):
    day_of_week: int = Field(..., description="1=Monday .. 7=Sunday")
    period_no: int
    teacher_id: Optional[UUID] = Field(None, description="null = unassigned")
    start_time: Optional[str] = Field(None, description="24-hour HH:MM; defaults to the period catalog")
    end_time: Optional[str] = Field(None, description="24-hour HH:MM; defaults to the period catalog")
    notes: Optional[str] = None


class TimetableWeekKey(BaseModel):
    school_id: UUID
    class_id: UUID
    section_id: UUID
    week_start: date = Field(..., description="Any date in the week; normalized to its Monday")


class TimetableSaveRequest(TimetableWeekKey):
    entries: List[TimetableEntryIn]


class AssignmentIn(BaseModel):
    day_of_week: int
    period_no: int
    teacher_id: Optional[UUID] = None
    notes: Optional[str] = None


class TimetableDuplicateRequest(TimetableWeekKey):
    target_section_id: UUID = Field(..., description="Another section of the same class; receives the same week")


class TimetableAssignRequest(TimetableWeekKey):
    assignments: List[AssignmentIn] = Field(..., min_length=1)
    override_holidays: bool = Field(False, description="Allow assignment on holidays and non-working days")


class TimetableEntryResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    day_of_week: int
    period_no: int
    teacher_id: Optional[UUID] = None
    start_time: str
    end_time: str
    notes: Optional[str] = None


class TimetableWeekResponse(BaseModel):
    week_start: date
    entries: List[TimetableEntryResponse]


class SuccessResponse(BaseModel):
    success: bool = True


class SaveResponse(SuccessResponse):
    saved_count: int


class CopyResponse(SuccessResponse):
    copied_count: int


class SlotView(BaseModel):
    """Read-only projection for a teacher's or student's week."""

    day_of_week: int
    period_no: int
    start_time: str
    end_time: str
    notes: Optional[str] = None
    class_id: UUID
    class_name: Optional[str] = None
    section_id: UUID
    section_name: Optional[str] = None
    teacher_id: Optional[UUID] = None
    teacher_name: Optional[str] = None


class PersonalTimetableResponse(BaseModel):
    week_start: date
    entries: List[SlotView]


class TodayScheduleResponse(BaseModel):
    date: date
    day_of_week: int
    classes_count: int
    schedule: List[SlotView]


class PeriodResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    period_no: Optional[int] = Field(None, description="Null for unnumbered breaks")
    label: str
    start_time: str
    end_time: str
    is_break: bool


class TeacherOption(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: UUID
    first_name: str
    last_name: Optional[str] = None


class TimetableMetaResponse(BaseModel):
    teachers: List[TeacherOption]
    periods: List[PeriodResponse]


class GridDayResponse(BaseModel):
    day_of_week: int
    date: date
    label: str = Field(..., description="DD-MM-YYYY (Weekday)")
    is_working_day: bool
    is_blocked: bool


class GridCellResponse(BaseModel):
    day_of_week: int
    period_no: int
    start_time: str
    end_time: str
    teacher_id: Optional[UUID] = None
    notes: Optional[str] = None
    persisted: bool
    blocked: bool


class TimetableGridResponse(BaseModel):
    week_start: date
    state: str
    blocked_days: List[int]
    days: List[GridDayResponse]
    periods: List[PeriodResponse]
    cells: List[GridCellResponse]
