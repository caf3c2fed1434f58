from datetime import datetime

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, Field
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import require_role
from telemed.models.user import User
from telemed.routes.common import database_unavailable, ensure_database_ready, get_db, to_http_exception
from telemed.scheduling.errors import SchedulingError
from telemed.services import feedback
from telemed.services.doctors import doctor_for_user, patient_for_user

router = APIRouter(tags=['feedback'])


class CreateFeedbackRequest(BaseModel):
    appointment_id: int
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=feedback.MAX_COMMENT_LENGTH)


class EditFeedbackRequest(BaseModel):
    rating: int = Field(ge=1, le=5)
    comment: str | None = Field(default=None, max_length=feedback.MAX_COMMENT_LENGTH)


class FeedbackResponse(BaseModel):
    id: int
    appointment_id: int
    patient_id: int
    doctor_id: int
    rating: int
    comment: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=FeedbackResponse, status_code=status.HTTP_201_CREATED)
def create_feedback(
    data: CreateFeedbackRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
):
    ensure_database_ready()

    try:
        return feedback.create_feedback(db, current_user, data.appointment_id, data.rating, data.comment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{feedback_id}', response_model=FeedbackResponse)
def edit_feedback(
    feedback_id: int,
    data: EditFeedbackRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
):
    ensure_database_ready()

    try:
        return feedback.edit_feedback(db, current_user, feedback_id, data.rating, data.comment)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.delete('/{feedback_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_feedback(
    feedback_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
):
    ensure_database_ready()

    try:
        feedback.delete_feedback(db, current_user, feedback_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('/mine', response_model=list[FeedbackResponse])
def list_my_feedback(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
):
    ensure_database_ready()

    try:
        return feedback.list_patient_feedback(db, patient_for_user(db, current_user))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/doctor', response_model=list[FeedbackResponse])
def list_doctor_feedback(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
):
    ensure_database_ready()

    try:
        return feedback.list_doctor_feedback(db, doctor_for_user(db, current_user))
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('', response_model=list[FeedbackResponse])
def list_all_feedback(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        return feedback.list_all_feedback(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
