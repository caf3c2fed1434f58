import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from telemed.core.config import SchedulingConfig
from telemed.models.appointment import Appointment
from telemed.models.doctor import Doctor, Patient
from telemed.models.payment import Payment
from telemed.models.schedule import DoctorSchedule
from telemed.models.user import User
from telemed.scheduling.availability import slot_minutes
from telemed.scheduling.errors import AuthorizationError, NotFoundError, SlotAlreadyBooked
from telemed.scheduling.lifecycle import (
    SLOT_RELEASING_STATUSES,
    AppointmentStatus,
    PaymentStatus,
    join_window,
    stale_pending_cutoff,
)
from telemed.services.doctors import get_doctor
from telemed.services.ledger import SqlBookingLedger, build_allocator, clock_for, policy_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ActorRoles:
    is_patient: bool
    is_doctor: bool
    is_admin: bool

    @property
    def any(self) -> bool:
        return self.is_patient or self.is_doctor or self.is_admin


def get_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
    if appointment is None:
        raise NotFoundError('Appointment not found.')
    return appointment


def roles_for(appointment: Appointment, user: User) -> ActorRoles:
    return ActorRoles(
        is_patient=user.role == 'patient' and appointment.patient is not None and appointment.patient.user_id == user.id,
        is_doctor=user.role == 'doctor' and appointment.doctor is not None and appointment.doctor.user_id == user.id,
        is_admin=user.role == 'admin',
    )


def book_appointment(
    db: Session,
    settings: SchedulingConfig,
    patient: Patient,
    doctor_id: int,
    requested_civil: datetime,
    patient_note: str | None = None,
) -> Appointment:
    """Allocate the slot containing ``requested_civil`` and reserve it.

    The allocator's occupancy check only short-circuits obvious conflicts; the
    unique ``(doctor_id, slot_key)`` index decides races between concurrent
    bookings.
    """
    doctor = get_doctor(db, doctor_id)
    allocated = build_allocator(db, settings).allocate(doctor.id, requested_civil)

    appointment = Appointment(
        doctor_id=doctor.id,
        patient_id=patient.id,
        schedule_id=allocated.window.schedule_id,
        scheduled_at=allocated.utc_start,
        slot_key=allocated.slot_key,
        status=AppointmentStatus.pending_payment.value,
        patient_note=patient_note or '',
        doctor_note='',
    )

    try:
        db.add(appointment)
        db.flush()
        db.add(Payment(
            appointment_id=appointment.id,
            amount=doctor.consultation_fee or 0,
            status=PaymentStatus.pending.value,
            is_invoice_generated=False,
        ))
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        logger.info('Concurrent booking lost the race for slot %s of doctor %s.', allocated.slot_key, doctor.id)
        raise SlotAlreadyBooked() from exc

    db.refresh(appointment)
    logger.info(
        'Appointment %s booked for doctor %s at %s (%s UTC).',
        appointment.id,
        doctor.id,
        allocated.slot_key,
        allocated.utc_start.isoformat(),
    )
    return appointment


def list_patient_appointments(db: Session, patient: Patient) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.patient_id == patient.id,
    ).order_by(Appointment.scheduled_at.desc()).all()


def list_doctor_appointments(db: Session, doctor: Doctor) -> list[Appointment]:
    return db.query(Appointment).filter(
        Appointment.doctor_id == doctor.id,
    ).order_by(Appointment.scheduled_at.asc()).all()


def list_all_appointments(db: Session) -> list[Appointment]:
    return db.query(Appointment).order_by(Appointment.scheduled_at.desc()).all()


def _find_schedule_for(db: Session, settings: SchedulingConfig, appointment: Appointment) -> DoctorSchedule | None:
    if appointment.schedule_id is not None:
        schedule = db.query(DoctorSchedule).filter(DoctorSchedule.id == appointment.schedule_id).first()
        if schedule is not None:
            return schedule

    civil_day = clock_for(settings).to_civil(appointment.scheduled_at).date()
    return SqlBookingLedger(db).find_schedule(appointment.doctor_id, civil_day)


def _backfill_schedule(db: Session, settings: SchedulingConfig, appointment: Appointment) -> DoctorSchedule | None:
    schedule = _find_schedule_for(db, settings, appointment)
    if schedule is not None and appointment.schedule_id is None:
        appointment.schedule_id = schedule.id
    return schedule


def appointment_details(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).any:
        raise AuthorizationError('You are not allowed to view this appointment.')

    if appointment.schedule_id is None and _backfill_schedule(db, settings, appointment) is not None:
        db.commit()
        db.refresh(appointment)

    return appointment


def _get_owned_by_doctor(db: Session, user: User, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).is_doctor:
        raise AuthorizationError('Only the assigned doctor can review this appointment.')
    return appointment


def _move(appointment: Appointment, settings: SchedulingConfig, target: AppointmentStatus) -> None:
    appointment.status = policy_for(settings).transition(appointment.status, target).value
    if target in SLOT_RELEASING_STATUSES:
        appointment.slot_key = None


def approve_appointment(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = _get_owned_by_doctor(db, user, appointment_id)
    _move(appointment, settings, AppointmentStatus.approved)
    _backfill_schedule(db, settings, appointment)

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s approved.', appointment.id)
    return appointment


def reject_appointment(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = _get_owned_by_doctor(db, user, appointment_id)
    _move(appointment, settings, AppointmentStatus.rejected)

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s rejected.', appointment.id)
    return appointment


def complete_appointment(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = _get_owned_by_doctor(db, user, appointment_id)
    _move(appointment, settings, AppointmentStatus.completed)

    db.commit()
    db.refresh(appointment)
    return appointment


def mark_rescheduled(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    roles = roles_for(appointment, user)
    if not (roles.is_doctor or roles.is_admin):
        raise AuthorizationError('Only the assigned doctor or an admin can reschedule this appointment.')

    _move(appointment, settings, AppointmentStatus.rescheduled)

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s marked rescheduled; slot released.', appointment.id)
    return appointment


def cancel_appointment(db: Session, settings: SchedulingConfig, user: User, appointment_id: int) -> Appointment:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).is_patient:
        raise AuthorizationError('Only the patient who booked this appointment can cancel it.')

    _move(appointment, settings, AppointmentStatus.cancelled)

    db.commit()
    db.refresh(appointment)
    logger.info('Appointment %s cancelled by patient.', appointment.id)
    return appointment


def expire_stale_pending(db: Session, settings: SchedulingConfig, now_utc: datetime | None = None) -> int:
    """Cancel unpaid bookings older than the configured TTL, releasing their slots."""
    now_utc = now_utc or clock_for(settings).now_utc()
    cutoff = stale_pending_cutoff(now_utc, settings.pending_payment_ttl_hours)

    stale = db.query(Appointment).filter(
        Appointment.status == AppointmentStatus.pending_payment.value,
        Appointment.created_at < cutoff,
    ).all()

    for appointment in stale:
        _move(appointment, settings, AppointmentStatus.cancelled)

    db.commit()
    if stale:
        logger.info('Expired %s stale pending-payment appointment(s).', len(stale))
    return len(stale)


def resolve_join_link(
    db: Session,
    settings: SchedulingConfig,
    user: User,
    appointment_id: int,
    now_utc: datetime | None = None,
) -> str:
    appointment = get_appointment(db, appointment_id)
    if not roles_for(appointment, user).is_patient:
        raise AuthorizationError('Only the patient who booked this appointment can join it.')

    payment = appointment.payment
    if payment is None or payment.status != PaymentStatus.paid.value:
        raise AuthorizationError('The consultation link is available once payment is complete.')

    schedule = _find_schedule_for(db, settings, appointment)
    if schedule is not None and schedule.max_patients_per_day and schedule.end_time > schedule.start_time:
        minutes = slot_minutes(schedule.to_window())
    else:
        minutes = settings.default_join_slot_minutes

    now_utc = now_utc or clock_for(settings).now_utc()
    window = join_window(appointment.scheduled_at, minutes, settings.join_lead_minutes)
    if not window.contains(now_utc):
        raise AuthorizationError('The consultation link is only available around the appointment time.')

    link = schedule.video_call_link if schedule is not None else None
    if not link or not link.strip():
        raise NotFoundError('No video call link is configured for this appointment.')

    return link
