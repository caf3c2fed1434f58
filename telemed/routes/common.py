from functools import lru_cache

from fastapi import HTTPException, status
from sqlalchemy.exc import SQLAlchemyError

from telemed.core import config
from telemed.core.config import SchedulingConfig, build_scheduling_config
from telemed.database import (
    SessionLocal,
    ensure_appointment_schema,
    ensure_payment_schema,
    ensure_schedule_schema,
)
from telemed.scheduling.errors import (
    AuthorizationError,
    ConflictError,
    InvalidWindow,
    NotFoundError,
    SchedulingError,
    ValidationError,
)
from telemed.services.invoices import InvoiceRenderer, TextInvoiceRenderer
from telemed.services.mailer import EmailSender, build_email_sender
from telemed.services.storage import LocalFileStorage

DATABASE_UNAVAILABLE_DETAIL = 'Database unavailable. Verify DATABASE_URL and database credentials.'

_STATUS_BY_ERROR = (
    (NotFoundError, status.HTTP_404_NOT_FOUND),
    (ConflictError, status.HTTP_409_CONFLICT),
    (AuthorizationError, status.HTTP_403_FORBIDDEN),
    (ValidationError, status.HTTP_400_BAD_REQUEST),
)


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_schedule_schema()
        ensure_appointment_schema()
        ensure_payment_schema()
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@lru_cache
def get_scheduling_config() -> SchedulingConfig:
    return build_scheduling_config()


def get_invoice_renderer() -> InvoiceRenderer:
    return TextInvoiceRenderer()


@lru_cache
def get_email_sender() -> EmailSender:
    return build_email_sender()


def get_file_storage() -> LocalFileStorage:
    return LocalFileStorage(config.UPLOAD_DIR)


def database_unavailable() -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail=DATABASE_UNAVAILABLE_DETAIL,
    )


def to_http_exception(exc: SchedulingError) -> HTTPException:
    if isinstance(exc, InvalidWindow) and exc.allowed is not None:
        return HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail={'message': exc.message, 'allowed': exc.allowed},
        )

    for error_type, status_code in _STATUS_BY_ERROR:
        if isinstance(exc, error_type):
            return HTTPException(status_code=status_code, detail=exc.message)

    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=exc.message)
