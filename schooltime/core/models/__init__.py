from schooltime.core.models.school import School
from schooltime.core.models.class_model import SchoolClass
from schooltime.core.models.section_model import Section
from schooltime.core.models.teacher import Teacher
from schooltime.core.models.student import Student
from schooltime.core.models.holiday import Holiday
from schooltime.core.models.timetable import TimetableSlot

__all__ = [
    "Holiday",
    "School",
    "SchoolClass",
    "Section",
    "Student",
    "Teacher",
    "TimetableSlot",
]
