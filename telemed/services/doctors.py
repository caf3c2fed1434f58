import logging
from dataclasses import dataclass
from decimal import Decimal

from sqlalchemy.orm import Session

from telemed.models.appointment import Appointment
from telemed.models.doctor import Doctor, Patient
from telemed.models.schedule import DoctorSchedule
from telemed.models.user import User
from telemed.scheduling.errors import ConflictError, NotFoundError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DoctorSummary:
    doctor_id: int
    full_name: str
    consultation_fee: Decimal
    specialization: str | None = None


def summarize(doctor: Doctor) -> DoctorSummary:
    return DoctorSummary(
        doctor_id=doctor.id,
        full_name=doctor.full_name,
        consultation_fee=Decimal(doctor.consultation_fee or 0),
        specialization=doctor.specialization,
    )


def list_bookable_doctors(db: Session) -> list[DoctorSummary]:
    doctors = db.query(Doctor).filter(Doctor.is_approved.is_(True)).order_by(Doctor.id.asc()).all()
    return [summarize(doctor) for doctor in doctors]


def get_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.id == doctor_id).first()
    if doctor is None:
        raise NotFoundError('Doctor not found.')
    return doctor


def doctor_for_user(db: Session, user: User) -> Doctor:
    doctor = db.query(Doctor).filter(Doctor.user_id == user.id).first()
    if doctor is None:
        raise NotFoundError('Doctor profile not found.')
    return doctor


def patient_for_user(db: Session, user: User) -> Patient:
    patient = db.query(Patient).filter(Patient.user_id == user.id).first()
    if patient is None:
        raise NotFoundError('No patient profile found for your account.')
    return patient


def list_pending_doctors(db: Session) -> list[Doctor]:
    return db.query(Doctor).filter(
        Doctor.is_approved.is_not(True),
    ).order_by(Doctor.id.asc()).all()


def approve_doctor(db: Session, doctor_id: int) -> Doctor:
    doctor = get_doctor(db, doctor_id)
    doctor.is_approved = True
    db.commit()
    db.refresh(doctor)
    logger.info('Doctor %s approved.', doctor.id)
    return doctor


def reject_doctor(db: Session, doctor_id: int) -> None:
    """Remove a doctor profile that has not taken any bookings, with its schedules."""
    doctor = get_doctor(db, doctor_id)

    has_appointments = db.query(Appointment.id).filter(Appointment.doctor_id == doctor.id).first() is not None
    if has_appointments:
        raise ConflictError('Cannot reject a doctor who already has appointments.')

    db.query(DoctorSchedule).filter(DoctorSchedule.doctor_id == doctor.id).delete(synchronize_session=False)
    db.delete(doctor)
    db.commit()
    logger.info('Doctor %s rejected and removed.', doctor_id)
