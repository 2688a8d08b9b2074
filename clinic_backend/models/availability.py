"""Availability model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Index, Integer, Time
from clinic_backend.database import Base


class Availability(Base):
    """Represents a recurring weekly window in which a specialist takes bookings."""
    __tablename__ = "availabilities"
    __table_args__ = (
        Index("idx_availabilities_specialist_day", "specialist_id", "day_of_week"),
    )

    id = Column(Integer, primary_key=True)
    specialist_id = Column(Integer, ForeignKey("specialists.id", ondelete="CASCADE"), nullable=False)
    day_of_week = Column(Integer, nullable=False)  # 0 = Sunday
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    is_active = Column(Boolean, nullable=False, default=True)
