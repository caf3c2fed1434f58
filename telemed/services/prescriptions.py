"""Prescriptions a doctor issues for a confirmed or finished appointment."""

import logging
from datetime import datetime

from sqlalchemy.orm import Session

from telemed.models.appointment import Appointment
from telemed.models.prescription import Prescription
from telemed.models.user import User
from telemed.scheduling.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from telemed.scheduling.lifecycle import AppointmentStatus
from telemed.services.appointments import get_appointment, roles_for
from telemed.services.storage import LocalFileStorage

logger = logging.getLogger(__name__)

PRESCRIBABLE_STATUSES = frozenset({AppointmentStatus.approved.value, AppointmentStatus.completed.value})
PRESCRIPTION_UPLOAD_CLASS = 'prescription'


def _clean(field_name: str, value: str | None, required: bool = True) -> str | None:
    value = (value or '').strip()
    if required and not value:
        raise ValidationError(f'{field_name} is required.')
    return value or None


def get_prescription(db: Session, prescription_id: int) -> Prescription:
    prescription = db.query(Prescription).filter(Prescription.id == prescription_id).first()
    if prescription is None:
        raise NotFoundError('Prescription not found.')
    return prescription


def _get_prescribing_doctor_prescription(db: Session, user: User, prescription_id: int) -> Prescription:
    prescription = get_prescription(db, prescription_id)
    if not roles_for(prescription.appointment, user).is_doctor:
        raise AuthorizationError('Only the assigned doctor can change this prescription.')
    return prescription


def create_prescription(
    db: Session,
    user: User,
    appointment_id: int,
    medicine_name: str,
    dosage: str,
    duration: str,
    notes: str | None = None,
) -> Prescription:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).is_doctor:
        raise AuthorizationError('Only the assigned doctor can prescribe for this appointment.')
    if appointment.status not in PRESCRIBABLE_STATUSES:
        raise ConflictError('Prescriptions can only be issued for approved or completed appointments.')

    prescription = Prescription(
        appointment_id=appointment.id,
        medicine_name=_clean('Medicine name', medicine_name),
        dosage=_clean('Dosage', dosage),
        duration=_clean('Duration', duration),
        notes=_clean('Notes', notes, required=False),
    )
    db.add(prescription)
    db.commit()
    db.refresh(prescription)
    logger.info('Prescription %s issued for appointment %s.', prescription.id, appointment.id)
    return prescription


def update_prescription(
    db: Session,
    user: User,
    prescription_id: int,
    medicine_name: str,
    dosage: str,
    duration: str,
    notes: str | None = None,
) -> Prescription:
    prescription = _get_prescribing_doctor_prescription(db, user, prescription_id)

    prescription.medicine_name = _clean('Medicine name', medicine_name)
    prescription.dosage = _clean('Dosage', dosage)
    prescription.duration = _clean('Duration', duration)
    prescription.notes = _clean('Notes', notes, required=False)
    prescription.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(prescription)
    return prescription


def attach_prescription_file(
    db: Session,
    user: User,
    prescription_id: int,
    content: bytes,
    filename: str,
    storage: LocalFileStorage,
) -> Prescription:
    prescription = _get_prescribing_doctor_prescription(db, user, prescription_id)

    prescription.file_path = storage.save(content, filename, PRESCRIPTION_UPLOAD_CLASS)
    prescription.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(prescription)
    logger.info('File attached to prescription %s.', prescription.id)
    return prescription


def list_appointment_prescriptions(db: Session, user: User, appointment_id: int) -> list[Prescription]:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).any:
        raise AuthorizationError('You are not allowed to view prescriptions for this appointment.')

    return db.query(Prescription).filter(
        Prescription.appointment_id == appointment.id,
    ).order_by(Prescription.created_at.asc(), Prescription.id.asc()).all()


def list_prescriptions_for(db: Session, user: User) -> list[Prescription]:
    query = db.query(Prescription).join(Appointment, Prescription.appointment_id == Appointment.id)

    if user.role == 'admin':
        pass
    elif user.role == 'doctor':
        query = query.filter(Appointment.doctor.has(user_id=user.id))
    elif user.role == 'patient':
        query = query.filter(Appointment.patient.has(user_id=user.id))
    else:
        raise AuthorizationError('You are not allowed to view prescriptions.')

    return query.order_by(Prescription.created_at.desc(), Prescription.id.desc()).all()
