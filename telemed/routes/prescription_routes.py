from datetime import datetime

from fastapi import APIRouter, Depends, File, UploadFile, status
from pydantic import BaseModel, field_validator
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import get_current_user, require_role
from telemed.models.user import User
from telemed.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_file_storage,
    to_http_exception,
)
from telemed.scheduling.errors import SchedulingError
from telemed.services import prescriptions
from telemed.services.storage import LocalFileStorage

router = APIRouter(tags=['prescriptions'])

MAX_PRESCRIPTION_FIELD_LENGTH = 200
MAX_PRESCRIPTION_NOTES_LENGTH = 2000


class PrescriptionDetails(BaseModel):
    medicine_name: str
    dosage: str
    duration: str
    notes: str | None = None

    @field_validator('medicine_name', 'dosage', 'duration')
    @classmethod
    def validate_required_text(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Field must not be blank.')
        if len(normalized) > MAX_PRESCRIPTION_FIELD_LENGTH:
            raise ValueError(f'Field must be {MAX_PRESCRIPTION_FIELD_LENGTH} characters or fewer.')
        return normalized

    @field_validator('notes')
    @classmethod
    def validate_notes(cls, value: str | None) -> str | None:
        if value is None:
            return None

        normalized = value.strip()
        if len(normalized) > MAX_PRESCRIPTION_NOTES_LENGTH:
            raise ValueError(f'Notes must be {MAX_PRESCRIPTION_NOTES_LENGTH} characters or fewer.')
        return normalized or None


class CreatePrescriptionRequest(PrescriptionDetails):
    appointment_id: int


class PrescriptionResponse(BaseModel):
    id: int
    appointment_id: int
    medicine_name: str
    dosage: str
    duration: str
    notes: str | None = None
    file_path: str | None = None
    created_at: datetime
    updated_at: datetime | None = None

    class Config:
        from_attributes = True


@router.post('', response_model=PrescriptionResponse, status_code=status.HTTP_201_CREATED)
def create_prescription(
    data: CreatePrescriptionRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
):
    ensure_database_ready()

    try:
        return prescriptions.create_prescription(
            db,
            current_user,
            data.appointment_id,
            medicine_name=data.medicine_name,
            dosage=data.dosage,
            duration=data.duration,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.put('/{prescription_id}', response_model=PrescriptionResponse)
def update_prescription(
    prescription_id: int,
    data: PrescriptionDetails,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
):
    ensure_database_ready()

    try:
        return prescriptions.update_prescription(
            db,
            current_user,
            prescription_id,
            medicine_name=data.medicine_name,
            dosage=data.dosage,
            duration=data.duration,
            notes=data.notes,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{prescription_id}/file', response_model=PrescriptionResponse)
async def upload_prescription_file(
    prescription_id: int,
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('doctor')),
    storage: LocalFileStorage = Depends(get_file_storage),
):
    content = await file.read()
    ensure_database_ready()

    try:
        return prescriptions.attach_prescription_file(
            db,
            current_user,
            prescription_id,
            content=content,
            filename=file.filename or '',
            storage=storage,
        )
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.get('', response_model=list[PrescriptionResponse])
def list_prescriptions(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        return prescriptions.list_prescriptions_for(db, current_user)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.get('/appointment/{appointment_id}', response_model=list[PrescriptionResponse])
def list_appointment_prescriptions(
    appointment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        return prescriptions.list_appointment_prescriptions(db, current_user, appointment_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc
