"""Appointment model definitions."""

from datetime import datetime

from sqlalchemy import Column, DateTime, ForeignKey, Index, Integer, String
from sqlalchemy.orm import relationship
from telemed.database import Base
from telemed.models.doctor import Doctor, Patient
from telemed.models.payment import Payment
from telemed.models.schedule import DoctorSchedule


class Appointment(Base):
    """A booked consultation between one doctor and one patient.

    ``scheduled_at`` is naive UTC. ``slot_key`` holds the civil slot claim and
    is cleared when the appointment releases its slot.
    """
    __tablename__ = "appointments"
    __table_args__ = (
        Index("uq_appointments_doctor_slot_key", "doctor_id", "slot_key", unique=True),
    )

    id = Column(Integer, primary_key=True)
    doctor_id = Column(Integer, ForeignKey("doctors.id"), nullable=False)
    patient_id = Column(Integer, ForeignKey("patients.id"), nullable=False)
    schedule_id = Column(Integer, ForeignKey("doctor_schedules.id"))
    scheduled_at = Column(DateTime, nullable=False)
    slot_key = Column(String(16))
    status = Column(String, nullable=False, default="pending_payment")
    patient_note = Column(String)
    doctor_note = Column(String)
    created_at = Column(DateTime, default=datetime.utcnow)

    doctor = relationship(Doctor)
    patient = relationship(Patient)
    schedule = relationship(DoctorSchedule)
    payment = relationship(Payment, back_populates="appointment", uselist=False)
