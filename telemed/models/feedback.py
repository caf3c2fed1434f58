"""Patient feedback model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from telemed.database import Base
from telemed.models.appointment import Appointment
from telemed.models.doctor import Doctor, Patient


class Feedback(Base):
    """A patient's rating of one finished appointment."""
    __tablename__ = "feedback"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False, index=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False, index=True)
    rating = Column(Integer, nullable=False)
    comment = Column(String(500))
    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime)

    appointment = relationship(Appointment)
    patient = relationship(Patient)
    doctor = relationship(Doctor)
