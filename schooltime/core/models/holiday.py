"""
School holidays, events and exam days.
Single-day rows keep end_date NULL; multi-day rows require end_date >= start_date.
"""
import uuid
from datetime import datetime

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    String,
    Text,
    UniqueConstraint,
    Uuid,
)

from schooltime.db.session import Base


class Holiday(Base):
    __tablename__ = "holidays"
    __table_args__ = (
        UniqueConstraint("school_id", "start_date", "title", name="uq_holiday_school_date_title"),
        CheckConstraint(
            "(is_multi_day AND end_date IS NOT NULL AND end_date >= start_date) "
            "OR (NOT is_multi_day AND end_date IS NULL)",
            name="ck_holiday_date_range",
        ),
    )

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    school_id = Column(Uuid, ForeignKey("schools.id", ondelete="CASCADE"), nullable=False)
    title = Column(String(255), nullable=False)
    type = Column(String(20), nullable=False, default="Holiday")  # Holiday | Event | Exam | Break | Other
    is_multi_day = Column(Boolean, nullable=False, default=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    description = Column(Text, nullable=True)
    created_by = Column(Uuid, ForeignKey("users.id", ondelete="SET NULL"), nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
    updated_at = Column(DateTime(timezone=True), default=datetime.utcnow, onupdate=datetime.utcnow, nullable=False)
