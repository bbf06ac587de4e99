"""School scope and its week structure. working_days lists the DayOfWeek values (Monday=1) lessons run on."""
import uuid
from datetime import datetime

from sqlalchemy import JSON, Column, DateTime, String, Uuid

from schooltime.db.session import Base


class School(Base):
    __tablename__ = "schools"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    name = Column(String(255), nullable=False)
    # Null => settings.default_working_days (Mon-Fri). Days not listed are implicit holidays.
    working_days = Column(JSON, nullable=True)
    created_at = Column(DateTime(timezone=True), default=datetime.utcnow, nullable=False)
