"""
School-wide period catalog: the fixed daily time slots a week's grid is built from.

Teaching periods carry the period_no persisted on timetable rows (1..7 by default).
Breaks are listed for display but are never schedulable; they usually carry no number.
"""

import json
import re
from functools import lru_cache
from typing import Dict, Iterable, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from schooltime.core.config import settings
from schooltime.core.exceptions import ConfigurationError

TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")


class Period(BaseModel):
    model_config = ConfigDict(frozen=True)

    period_no: Optional[int] = Field(None, ge=1, description="Null for unnumbered breaks")
    label: str
    start_time: str = Field(..., description="24-hour HH:MM")
    end_time: str = Field(..., description="24-hour HH:MM")
    is_break: bool = False

    @field_validator("start_time", "end_time")
    @classmethod
    def check_time_format(cls, v: str) -> str:
        if not TIME_PATTERN.match(v):
            raise ValueError("period times must be HH:MM (24-hour)")
        return v

    @model_validator(mode="after")
    def check_bounds(self) -> "Period":
        if self.end_time <= self.start_time:
            raise ValueError(f"period {self.label!r}: end_time must be after start_time")
        if self.period_no is None and not self.is_break:
            raise ValueError(f"period {self.label!r}: teaching periods need a period_no")
        return self


DEFAULT_PERIODS: List[Period] = [
    Period(period_no=1, label="Period 1", start_time="08:00", end_time="08:45"),
    Period(period_no=2, label="Period 2", start_time="08:46", end_time="09:30"),
    Period(period_no=3, label="Period 3", start_time="09:31", end_time="10:15"),
    Period(period_no=4, label="Period 4", start_time="10:16", end_time="10:45"),
    Period(period_no=5, label="Period 5", start_time="10:46", end_time="11:30"),
    Period(label="Lunch Break", start_time="12:30", end_time="13:00", is_break=True),
    Period(period_no=6, label="Period 6", start_time="13:01", end_time="13:45"),
    Period(period_no=7, label="Period 7", start_time="13:46", end_time="14:30"),
]


class PeriodCatalog:
    """Read-only collection of periods in time order, looked up by period number."""

    def __init__(self, periods: Iterable[Period]) -> None:
        ordered = sorted(periods, key=lambda p: p.start_time)
        by_no: Dict[int, Period] = {}
        for p in ordered:
            if p.period_no is None:
                continue
            if p.period_no in by_no:
                raise ValueError(f"duplicate period_no {p.period_no} in period catalog")
            by_no[p.period_no] = p
        if not any(not p.is_break for p in ordered):
            raise ValueError("period catalog has no teaching periods")
        self._periods = tuple(ordered)
        self._by_no = by_no

    def __iter__(self):
        return iter(self._periods)

    def __len__(self) -> int:
        return len(self._periods)

    @property
    def periods(self) -> List[Period]:
        return list(self._periods)

    def teaching_periods(self) -> List[Period]:
        """Schedulable periods (breaks excluded), by period number."""
        return sorted((p for p in self._periods if not p.is_break), key=lambda p: p.period_no)

    def get(self, period_no: int) -> Optional[Period]:
        return self._by_no.get(period_no)

    def is_teaching(self, period_no: int) -> bool:
        p = self._by_no.get(period_no)
        return p is not None and not p.is_break

    def is_break(self, period_no: int) -> bool:
        p = self._by_no.get(period_no)
        return p is not None and p.is_break


def parse_period_catalog(raw: Optional[str]) -> PeriodCatalog:
    if not raw:
        return PeriodCatalog(DEFAULT_PERIODS)
    try:
        items = json.loads(raw)
        if not isinstance(items, list):
            raise ValueError("expected a JSON list of periods")
        return PeriodCatalog(Period(**item) for item in items)
    except (ValueError, TypeError) as e:
        # json and pydantic validation errors are both ValueErrors
        raise ConfigurationError(f"Invalid PERIOD_CATALOG: {e}") from e


@lru_cache(maxsize=1)
def get_period_catalog() -> PeriodCatalog:
    """Catalog from PERIOD_CATALOG, loaded once per process."""
    return parse_period_catalog(settings.period_catalog)
