"""Admin model definitions."""

from sqlalchemy import Column, Integer, String
from clinic_backend.database import Base


class Admin(Base):
    """Represents a clinic administrator."""
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    email = Column(String(100), unique=True, index=True, nullable=False)
    name = Column(String(100))
