"""Weekly timetable (source of truth). One row per (school, class, section, week_start, day_of_week, period_no)."""

import uuid
from datetime import datetime

from sqlalchemy import Column, Date, DateTime, ForeignKey, Integer, String, Text, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship

from schooltime.db.session import Base

NATURAL_KEY = ("school_id", "class_id", "section_id", "week_start", "day_of_week", "period_no")


class TimetableSlot(Base):
    __tablename__ = "timetable"
    __table_args__ = (UniqueConstraint(*NATURAL_KEY, name="uq_timetable_slot"),)

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    class_id = Column(Uuid, ForeignKey("classes.id", ondelete="CASCADE"), nullable=False)
    section_id = Column(Uuid, ForeignKey("sections.id", ondelete="CASCADE"), nullable=False)
    week_start = Column(Date, nullable=False)  # always a Monday
    day_of_week = Column(Integer, nullable=False)  # 1=Monday .. 7=Sunday
    period_no = Column(Integer, nullable=False)
    teacher_id = Column(Uuid, ForeignKey("teachers.id", ondelete="SET NULL"), nullable=True)  # NULL = unassigned
    start_time = Column(String(5), nullable=False)  # HH:MM
    end_time = Column(String(5), nullable=False)  # HH:MM
    notes = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)

    school_class = relationship("SchoolClass", foreign_keys=[class_id])
    section = relationship("Section", foreign_keys=[section_id])
    teacher = relationship("Teacher", foreign_keys=[teacher_id])
