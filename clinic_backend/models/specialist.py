"""Specialist model definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, String
from clinic_backend.database import Base


class Specialist(Base):
    """Represents a practitioner attached to one specialty."""
    __tablename__ = "specialists"

    id = Column(Integer, primary_key=True)
    first_name = Column(String(50), nullable=False)
    last_name = Column(String(50), nullable=False)
    email = Column(String(100), unique=True)
    phone = Column(String(20))
    is_active = Column(Boolean, nullable=False, default=True)
    specialty_id = Column(Integer, ForeignKey("specialties.id", ondelete="CASCADE"), nullable=False)

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}"
