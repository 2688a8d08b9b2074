"""Specialty model definitions."""

from sqlalchemy import Boolean, Column, Integer, Numeric, String, Text
from clinic_backend.database import Base


class Specialty(Base):
    """Represents a bookable clinical specialty."""
    __tablename__ = "specialties"

    id = Column(Integer, primary_key=True)
    name = Column(String(100), nullable=False)
    description = Column(Text)
    base_price = Column(Numeric(10, 2), nullable=False, default=0)
    duration = Column(Integer, nullable=False, default=60)  # minutes
    is_active = Column(Boolean, nullable=False, default=True)
