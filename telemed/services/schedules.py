import logging
from datetime import date, time, timedelta

from sqlalchemy.orm import Session

from telemed.core.config import SchedulingConfig
from telemed.models.appointment import Appointment
from telemed.models.doctor import Doctor
from telemed.models.schedule import DoctorSchedule
from telemed.scheduling.availability import validate_window
from telemed.scheduling.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError

logger = logging.getLogger(__name__)

MAX_SCHEDULE_RANGE_DAYS = 90


def _is_referenced(db: Session, schedule: DoctorSchedule) -> bool:
    return db.query(Appointment.id).filter(Appointment.schedule_id == schedule.id).first() is not None


def _get_schedule(db: Session, schedule_id: int) -> DoctorSchedule:
    schedule = db.query(DoctorSchedule).filter(DoctorSchedule.id == schedule_id).first()
    if schedule is None:
        raise NotFoundError('Schedule not found.')
    return schedule


def _get_owned_schedule(db: Session, doctor: Doctor, schedule_id: int) -> DoctorSchedule:
    schedule = _get_schedule(db, schedule_id)
    if schedule.doctor_id != doctor.id:
        raise AuthorizationError('Only the owning doctor can change this schedule.')
    return schedule


def create_schedules(
    db: Session,
    settings: SchedulingConfig,
    doctor: Doctor,
    start_date: date,
    end_date: date,
    start_time: time,
    end_time: time,
    max_patients_per_day: int,
    video_call_link: str | None = None,
) -> list[DoctorSchedule]:
    """Create one unapproved window per date in the range.

    Dates that already have a window for this doctor are left untouched.
    """
    if end_date < start_date:
        raise ValidationError('End date must not be before start date.')
    if (end_date - start_date).days >= MAX_SCHEDULE_RANGE_DAYS:
        raise ValidationError(f'Schedules can cover at most {MAX_SCHEDULE_RANGE_DAYS} days at once.')

    validate_window(start_time, end_time, max_patients_per_day, settings.min_minutes_per_patient)

    existing_dates = {
        existing_date
        for (existing_date,) in db.query(DoctorSchedule.date).filter(
            DoctorSchedule.doctor_id == doctor.id,
            DoctorSchedule.date >= start_date,
            DoctorSchedule.date <= end_date,
        ).all()
    }

    created: list[DoctorSchedule] = []
    current = start_date
    while current <= end_date:
        if current not in existing_dates:
            schedule = DoctorSchedule(
                doctor_id=doctor.id,
                date=current,
                start_time=start_time,
                end_time=end_time,
                max_patients_per_day=max_patients_per_day,
                video_call_link=video_call_link,
                is_approved=False,
            )
            db.add(schedule)
            created.append(schedule)
        current += timedelta(days=1)

    db.commit()
    for schedule in created:
        db.refresh(schedule)

    logger.info('Doctor %s created %s schedule(s) pending approval.', doctor.id, len(created))
    return created


def edit_schedule(
    db: Session,
    settings: SchedulingConfig,
    doctor: Doctor,
    schedule_id: int,
    start_time: time,
    end_time: time,
    max_patients_per_day: int,
) -> DoctorSchedule:
    schedule = _get_owned_schedule(db, doctor, schedule_id)

    validate_window(start_time, end_time, max_patients_per_day, settings.min_minutes_per_patient)

    if _is_referenced(db, schedule):
        raise ConflictError('Cannot edit a schedule that already has appointments.')

    schedule.start_time = start_time
    schedule.end_time = end_time
    schedule.max_patients_per_day = max_patients_per_day
    schedule.is_approved = False

    db.commit()
    db.refresh(schedule)
    logger.info('Schedule %s edited and sent for re-approval.', schedule.id)
    return schedule


def delete_schedule(db: Session, doctor: Doctor, schedule_id: int) -> None:
    schedule = _get_owned_schedule(db, doctor, schedule_id)

    if _is_referenced(db, schedule):
        raise ConflictError('Cannot delete schedule with existing appointments.')

    db.delete(schedule)
    db.commit()


def list_doctor_schedules(db: Session, doctor: Doctor) -> list[DoctorSchedule]:
    return db.query(DoctorSchedule).filter(
        DoctorSchedule.doctor_id == doctor.id,
    ).order_by(DoctorSchedule.date.desc()).all()


def list_pending_schedules(db: Session) -> list[DoctorSchedule]:
    return db.query(DoctorSchedule).filter(
        DoctorSchedule.is_approved.is_not(True),
    ).order_by(DoctorSchedule.date.asc(), DoctorSchedule.id.asc()).all()


def approve_schedule(db: Session, schedule_id: int) -> DoctorSchedule:
    schedule = _get_schedule(db, schedule_id)
    schedule.is_approved = True
    db.commit()
    db.refresh(schedule)
    logger.info('Schedule %s approved.', schedule.id)
    return schedule


def reject_schedule(db: Session, schedule_id: int) -> None:
    schedule = _get_schedule(db, schedule_id)

    if _is_referenced(db, schedule):
        raise ConflictError('Cannot reject a schedule that already has appointments.')

    db.delete(schedule)
    db.commit()
    logger.info('Schedule %s rejected and removed.', schedule_id)
