import logging
from datetime import datetime

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from telemed.models.doctor import Doctor, Patient
from telemed.models.feedback import Feedback
from telemed.models.user import User
from telemed.scheduling.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from telemed.scheduling.lifecycle import AppointmentStatus
from telemed.services.appointments import get_appointment, roles_for

logger = logging.getLogger(__name__)

MIN_RATING = 1
MAX_RATING = 5
MAX_COMMENT_LENGTH = 500


def _validate(rating: int, comment: str | None) -> str | None:
    if not MIN_RATING <= rating <= MAX_RATING:
        raise ValidationError(f'Please select a rating between {MIN_RATING} and {MAX_RATING}.')

    comment = (comment or '').strip() or None
    if comment is not None and len(comment) > MAX_COMMENT_LENGTH:
        raise ValidationError(f'Comment must be {MAX_COMMENT_LENGTH} characters or fewer.')
    return comment


def _get_owned_feedback(db: Session, user: User, feedback_id: int) -> Feedback:
    feedback = db.query(Feedback).filter(Feedback.id == feedback_id).first()
    if feedback is None:
        raise NotFoundError('Feedback not found.')
    if user.role != 'patient' or feedback.patient is None or feedback.patient.user_id != user.id:
        raise AuthorizationError('Only the patient who wrote this feedback can change it.')
    return feedback


def create_feedback(db: Session, user: User, appointment_id: int, rating: int, comment: str | None = None) -> Feedback:
    comment = _validate(rating, comment)
    appointment = get_appointment(db, appointment_id)

    if not roles_for(appointment, user).is_patient:
        raise AuthorizationError('Only the patient who booked this appointment can leave feedback.')
    if appointment.status != AppointmentStatus.completed.value:
        raise ConflictError('Feedback can only be left for completed appointments.')

    feedback = Feedback(
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        doctor_id=appointment.doctor_id,
        rating=rating,
        comment=comment,
    )
    try:
        db.add(feedback)
        db.commit()
    except IntegrityError as exc:
        db.rollback()
        raise ConflictError('Feedback was already submitted for this appointment.') from exc

    db.refresh(feedback)
    logger.info('Feedback %s recorded for appointment %s.', feedback.id, appointment.id)
    return feedback


def edit_feedback(db: Session, user: User, feedback_id: int, rating: int, comment: str | None = None) -> Feedback:
    comment = _validate(rating, comment)
    feedback = _get_owned_feedback(db, user, feedback_id)

    feedback.rating = rating
    feedback.comment = comment
    feedback.updated_at = datetime.utcnow()
    db.commit()
    db.refresh(feedback)
    return feedback


def delete_feedback(db: Session, user: User, feedback_id: int) -> None:
    feedback = _get_owned_feedback(db, user, feedback_id)
    db.delete(feedback)
    db.commit()
    logger.info('Feedback %s deleted by its author.', feedback_id)


def list_patient_feedback(db: Session, patient: Patient) -> list[Feedback]:
    return db.query(Feedback).filter(
        Feedback.patient_id == patient.id,
    ).order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()


def list_doctor_feedback(db: Session, doctor: Doctor) -> list[Feedback]:
    return db.query(Feedback).filter(
        Feedback.doctor_id == doctor.id,
    ).order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()


def list_all_feedback(db: Session) -> list[Feedback]:
    return db.query(Feedback).order_by(Feedback.created_at.desc(), Feedback.id.desc()).all()
