from datetime import date, datetime, time

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import get_current_user, require_role
from telemed.core.config import SchedulingConfig
from telemed.models.user import User
from telemed.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_scheduling_config,
    to_http_exception,
)
from telemed.scheduling.availability import slot_minutes
from telemed.scheduling.errors import SchedulingError
from telemed.services import schedules
from telemed.services.doctors import doctor_for_user
from telemed.services.ledger import build_allocator

router = APIRouter(tags=['schedules'])

MAX_VIDEO_LINK_LENGTH = 500


class CreateScheduleRequest(BaseModel):
    start_date: date
    end_date: date
    start_time: time
    end_time: time
    max_patients_per_day: int
    video_call_link: str | None = None

    @field_validator('video_call_link')
    @classmethod
    def validate_video_call_link(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if not normalized:
            return None

        if not normalized.startswith(('http://', 'https://')):
            raise ValueError('Video call link must be an http(s) URL.')

        if len(normalized) > MAX_VIDEO_LINK_LENGTH:
            raise ValueError(f'Video call link must be {MAX_VIDEO_LINK_LENGTH} characters or fewer.')

        return normalized


class EditScheduleRequest(BaseModel):
    start_time: time
    end_time: time
    max_patients_per_day: int


class ScheduleResponse(BaseModel):
    id: int
    doctor_id: int
    date: date
    start_time: time
    end_time: time
    max_patients_per_day: int
    video_call_link: str | None = None
    is_approved: bool

    class Config:
        from_attributes = True


class AvailableSlotsResponse(BaseModel):
    doctor_id: int
    date: date
    slot_minutes: int
    slots: list[datetime]


@router.post('', response_model=list[ScheduleResponse], status_code=status.HTTP_201_CREATED)
def create_schedules(
    data: CreateScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        doctor = doctor_for_user(db, current_user)
        return schedules.create_schedules(
            db,
            settings,
            doctor,
            start_date=data.start_date,
            end_date=data.end_date,
            start_time=data.start_time,
            end_time=data.end_time,
            max_patients_per_day=data.max_patients_per_day,
            video_call_link=data.video_call_link,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[ScheduleResponse])
def list_my_schedules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
):
    ensure_database_ready()

    try:
        doctor = doctor_for_user(db, current_user)
        return schedules.list_doctor_schedules(db, doctor)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.put('/{schedule_id}', response_model=ScheduleResponse)
def edit_schedule(
    schedule_id: int,
    data: EditScheduleRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    ensure_database_ready()

    try:
        doctor = doctor_for_user(db, current_user)
        return schedules.edit_schedule(
            db,
            settings,
            doctor,
            schedule_id,
            start_time=data.start_time,
            end_time=data.end_time,
            max_patients_per_day=data.max_patients_per_day,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{schedule_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
):
    ensure_database_ready()

    try:
        doctor = doctor_for_user(db, current_user)
        schedules.delete_schedule(db, doctor, schedule_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/pending', response_model=list[ScheduleResponse])
def list_pending_schedules(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        return schedules.list_pending_schedules(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{schedule_id}/approve', response_model=ScheduleResponse)
def approve_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        return schedules.approve_schedule(db, schedule_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{schedule_id}/reject', status_code=status.HTTP_204_NO_CONTENT)
def reject_schedule(
    schedule_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        schedules.reject_schedule(db, schedule_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/available-slots', response_model=AvailableSlotsResponse)
def list_available_slots(
    doctor_id: int = Query(...),
    day: date = Query(..., alias='date'),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    settings: SchedulingConfig = Depends(get_scheduling_config),
):
    del current_user
    ensure_database_ready()

    try:
        allocator = build_allocator(db, settings)
        free_slots = allocator.available_slots(doctor_id, day)
        if not free_slots:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail='No available slots for this date.',
            )

        window = allocator.ledger.find_window(doctor_id, day)
        return AvailableSlotsResponse(
            doctor_id=doctor_id,
            date=day,
            slot_minutes=slot_minutes(window),
            slots=free_slots,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
