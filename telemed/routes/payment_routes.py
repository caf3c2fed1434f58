import json
import logging
from datetime import datetime
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import Response
from pydantic import BaseModel
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from telemed.auth.dependencies import get_current_user, require_role
from telemed.core import config
from telemed.core.config import SchedulingConfig
from telemed.models.user import User
from telemed.routes.common import (
    database_unavailable,
    ensure_database_ready,
    get_db,
    get_email_sender,
    get_invoice_renderer,
    get_scheduling_config,
    to_http_exception,
)
from telemed.scheduling.errors import SchedulingError
from telemed.services import payments
from telemed.services.invoices import InvoiceRenderer
from telemed.services.mailer import EmailSender

router = APIRouter(tags=['payments'])

logger = logging.getLogger(__name__)

WEBHOOK_SIGNATURE_HEADER = 'X-Webhook-Signature'


class PaymentResponse(BaseModel):
    id: int
    appointment_id: int
    amount: Decimal
    status: str
    paid_at: datetime | None = None
    payment_intent_id: str | None = None
    invoice_id: int | None = None
    is_invoice_generated: bool = False

    class Config:
        from_attributes = True


class PaymentConfirmationResponse(BaseModel):
    payment: PaymentResponse
    changed: bool
    invoice_number: str | None = None
    warnings: list[str] = []


class AttachIntentRequest(BaseModel):
    payment_intent_id: str


def serialize_outcome(outcome: payments.PaymentOutcome) -> PaymentConfirmationResponse:
    return PaymentConfirmationResponse(
        payment=PaymentResponse.model_validate(outcome.payment),
        changed=outcome.changed,
        invoice_number=outcome.invoice.invoice_number if outcome.invoice else None,
        warnings=outcome.warnings,
    )


@router.get('', response_model=list[PaymentResponse])
def list_payments(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    ensure_database_ready()

    try:
        return payments.list_payments_for(db, current_user)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc


@router.post('/{payment_id}/intent', response_model=PaymentResponse)
def attach_payment_intent(
    payment_id: int,
    data: AttachIntentRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
):
    ensure_database_ready()

    try:
        return payments.attach_payment_intent(db, current_user, payment_id, data.payment_intent_id)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/{payment_id}/confirm', response_model=PaymentConfirmationResponse)
def confirm_payment(
    payment_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('patient')),
    settings: SchedulingConfig = Depends(get_scheduling_config),
    renderer: InvoiceRenderer = Depends(get_invoice_renderer),
    email_sender: EmailSender = Depends(get_email_sender),
):
    ensure_database_ready()

    try:
        outcome = payments.confirm_payment(db, settings, current_user, payment_id, renderer, email_sender)
        return serialize_outcome(outcome)
    except SchedulingError as exc:
        raise to_http_exception(exc) from exc
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc


@router.post('/webhook')
async def payment_webhook(
    request: Request,
    db: Session = Depends(get_db),
    settings: SchedulingConfig = Depends(get_scheduling_config),
    renderer: InvoiceRenderer = Depends(get_invoice_renderer),
    email_sender: EmailSender = Depends(get_email_sender),
):
    payload = await request.body()

    signature = request.headers.get(WEBHOOK_SIGNATURE_HEADER)
    if not payments.verify_webhook_signature(config.PAYMENT_WEBHOOK_SECRET, payload, signature):
        logger.error('Payment webhook signature verification failed.')
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid webhook signature.')

    try:
        event = json.loads(payload or b'{}')
    except json.JSONDecodeError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid webhook payload.') from exc

    if not isinstance(event, dict):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail='Invalid webhook payload.')

    logger.info('Received payment event: %s', event.get('type'))
    ensure_database_ready()

    try:
        outcome = payments.handle_gateway_event(db, settings, event, renderer, email_sender)
    except SQLAlchemyError as exc:
        db.rollback()
        raise database_unavailable() from exc

    return {'received': True, 'processed': bool(outcome and outcome.changed)}


@router.get('/export.csv')
def export_payments(
    db: Session = Depends(get_db),
    current_user: User = Depends(require_role('admin')),
):
    del current_user
    ensure_database_ready()

    try:
        content = payments.export_payments_csv(db)
    except SQLAlchemyError as exc:
        raise database_unavailable() from exc

    filename = f'payments_{datetime.utcnow():%Y%m%d_%H%M}.csv'
    return Response(
        content=content,
        media_type='text/csv',
        headers={'Content-Disposition': f'attachment; filename="{filename}"'},
    )
