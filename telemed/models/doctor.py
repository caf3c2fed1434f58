"""Doctor and patient profile definitions."""

from sqlalchemy import Boolean, Column, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from telemed.database import Base
from telemed.models.user import User


class Doctor(Base):
    """A doctor's practice profile."""
    __tablename__ = "doctors"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)
    specialization = Column(String)
    consultation_fee = Column(Numeric(10, 2), default=0)
    is_approved = Column(Boolean, default=False)

    user = relationship(User, lazy="joined")

    @property
    def full_name(self) -> str:
        if self.user is not None and self.user.full_name:
            return self.user.full_name
        return "Unknown"


class Patient(Base):
    """A patient profile."""
    __tablename__ = "patients"

    id = Column(Integer, primary_key=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, unique=True)

    user = relationship(User, lazy="joined")
