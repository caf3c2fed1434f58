from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, status
from fastapi.responses import RedirectResponse
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import get_current_user, require_role
from telemed.core.config import SchedulingConfig
from telemed.models.appointment import Appointment
from telemed.models.user import User
from telemed.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_scheduling_config,
    to_http_exception,
)
from telemed.scheduling.errors import SchedulingError
from telemed.services import appointments
from telemed.services.doctors import doctor_for_user, list_bookable_doctors, patient_for_user
from telemed.services.ledger import clock_for

router = APIRouter(tags=['appointments'])

MAX_PATIENT_NOTE_LENGTH = 600


class CreateAppointmentRequest(BaseModel):
    doctor_id: int
    scheduled_at: datetime
    patient_note: str | None = None

    @field_validator('patient_note')
    @classmethod
    def validate_patient_note(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if len(normalized) > MAX_PATIENT_NOTE_LENGTH:
            raise ValueError(f'Notes must be {MAX_PATIENT_NOTE_LENGTH} characters or fewer.')

        return normalized


class DoctorSummaryResponse(BaseModel):
    doctor_id: int
    full_name: str
    consultation_fee: Decimal
    specialization: str | None = None

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: int
    doctor_id: int
    patient_id: int
    schedule_id: int | None = None
    scheduled_at_utc: datetime
    scheduled_at_local: datetime
    slot_key: str | None = None
    status: str
    patient_note: str | None = None
    doctor_note: str | None = None
    payment_id: int | None = None
    payment_status: str | None = None
    amount: Decimal | None = None


def serialize_appointment(appointment: Appointment, settings: SchedulingConfig) -> AppointmentResponse:
    payment = appointment.payment
    return AppointmentResponse(
        id=appointment.id,
        doctor_id=appointment.doctor_id,
        patient_id=appointment.patient_id,
        schedule_id=appointment.schedule_id,
        scheduled_at_utc=appointment.scheduled_at,
        scheduled_at_local=clock_for(settings).to_civil(appointment.scheduled_at),
        slot_key=appointment.slot_key,
        status=appointment.status,
        patient_note=appointment.patient_note,
        doctor_note=appointment.doctor_note,
        payment_id=payment.id if payment else None,
        payment_status=payment.status if payment else None,
        amount=payment.amount if payment else None,
    )


@router.get('/doctors', response_model=list[DoctorSummaryResponse])
def list_doctors(db: Session = Depends(get_db)):
    ensure_database_ready()

    try:
        return list_bookable_doctors(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        patient = patient_for_user(db, current_user)
        appointment = appointments.book_appointment(
            db,
            settings,
            patient,
            doctor_id=data.doctor_id,
            requested_civil=data.scheduled_at,
            patient_note=data.patient_note,
        )
        return serialize_appointment(appointment, settings)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[AppointmentResponse])
def list_my_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        patient = patient_for_user(db, current_user)
        return [
            serialize_appointment(appointment, settings)
            for appointment in appointments.list_patient_appointments(db, patient)
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctor', response_model=list[AppointmentResponse])
def list_doctor_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        doctor = doctor_for_user(db, current_user)
        return [
            serialize_appointment(appointment, settings)
            for appointment in appointments.list_doctor_appointments(db, doctor)
        ]
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[AppointmentResponse])
def list_all_appointments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    del current_user
    ensure_database_ready()

    try:
        return [serialize_appointment(appointment, settings) for appointment in appointments.list_all_appointments(db)]
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment_details(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        appointment = appointments.appointment_details(db, settings, current_user, appointment_id)
        return serialize_appointment(appointment, settings)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


def _apply_transition(action, appointment_id: int, db: Session, current_user: User, settings: SchedulingConfig):
    ensure_database_ready()

    try:
        appointment = action(db, settings, current_user, appointment_id)
        return serialize_appointment(appointment, settings)
    except SchedulingError as exc:
        db.rollback()
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{appointment_id}/approve', response_model=AppointmentResponse)
def approve_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    return _apply_transition(appointments.approve_appointment, appointment_id, db, current_user, settings)


@router.post('/{appointment_id}/reject', response_model=AppointmentResponse)
def reject_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    return _apply_transition(appointments.reject_appointment, appointment_id, db, current_user, settings)


@router.post('/{appointment_id}/complete', response_model=AppointmentResponse)
def complete_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    return _apply_transition(appointments.complete_appointment, appointment_id, db, current_user, settings)


@router.post('/{appointment_id}/reschedule', response_model=AppointmentResponse)
def reschedule_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor', 'admin')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    return _apply_transition(appointments.mark_rescheduled, appointment_id, db, current_user, settings)


@router.post('/{appointment_id}/cancel', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    return _apply_transition(appointments.cancel_appointment, appointment_id, db, current_user, settings)


@router.get('/{appointment_id}/join')
def join_video_call(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        link = appointments.resolve_join_link(db, settings, current_user, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    return RedirectResponse(url=link, status_code=status.HTTP_307_TEMPORARY_REDIRECT)
