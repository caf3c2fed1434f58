from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import require_role
from telemed.models.user import User
from telemed.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from telemed.scheduling.errors import SchedulingError
from telemed.services import doctors

router = APIRouter(tags=['doctors'])


class DoctorProfileResponse(BaseModel):
    id: int
    user_id: int
    full_name: str
    specialization: str | None = None
    consultation_fee: Decimal
    is_approved: bool

    class Config:
        from_attributes = True


@router.get('/pending', response_model=list[DoctorProfileResponse])
def list_pending_doctors(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        return doctors.list_pending_doctors(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{doctor_id}/approve', response_model=DoctorProfileResponse)
def approve_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        return doctors.approve_doctor(db, doctor_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{doctor_id}/reject', status_code=status.HTTP_204_NO_CONTENT)
def reject_doctor(
    doctor_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        doctors.reject_doctor(db, doctor_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc
