from enum import Enum, IntEnum


class DayOfWeek(IntEnum):
    """Canonical day index used by persisted slots: Monday=1 .. Sunday=7."""

    MONDAY = 1
    TUESDAY = 2
    WEDNESDAY = 3
    THURSDAY = 4
    FRIDAY = 5
    SATURDAY = 6
    SUNDAY = 7

    @classmethod
    def from_zero_based(cls, index: int) -> "DayOfWeek":
        """Convert a Monday=0 .. Sunday=6 index (UI convention) to the canonical value."""
        if not 0 <= index <= 6:
            raise ValueError(f"zero-based day index must be between 0 and 6, got {index}")
        return cls(index + 1)

    def to_zero_based(self) -> int:
        return int(self) - 1


class UserRole(str, Enum):
    ADMIN = "ADMIN"
    TEACHER = "TEACHER"
    STUDENT = "STUDENT"


class HolidayType(str, Enum):
    HOLIDAY = "Holiday"
    EVENT = "Event"
    EXAM = "Exam"
    BREAK = "Break"
    OTHER = "Other"
