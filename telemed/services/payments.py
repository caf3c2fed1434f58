import csv
import hashlib
import hmac
import io
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from html import escape

from sqlalchemy.orm import Session

from telemed.core.config import SchedulingConfig
from telemed.models.appointment import Appointment
from telemed.models.invoice import Invoice, InvoiceLineItem
from telemed.models.payment import Payment
from telemed.models.user import User
from telemed.scheduling.errors import AuthorizationError, NotFoundError, ValidationError
from telemed.scheduling.lifecycle import PaymentStatus
from telemed.services.appointments import roles_for
from telemed.services.invoices import InvoiceRenderer, invoice_number_for
from telemed.services.ledger import clock_for, policy_for
from telemed.services.mailer import EmailAttachment, EmailSender

logger = logging.getLogger(__name__)

PAYMENT_SUCCEEDED_EVENT = 'payment_intent.succeeded'


@dataclass
class PaymentOutcome:
    payment: Payment
    changed: bool
    invoice: Invoice | None = None
    warnings: list[str] = field(default_factory=list)


def get_payment(db: Session, payment_id: int) -> Payment:
    payment = db.query(Payment).filter(Payment.id == payment_id).first()
    if payment is None:
        raise NotFoundError('Payment not found.')
    return payment


def _get_patient_payment(db: Session, user: User, payment_id: int) -> Payment:
    payment = get_payment(db, payment_id)
    if payment.appointment is None or not roles_for(payment.appointment, user).is_patient:
        raise AuthorizationError('Only the patient who booked this appointment can pay for it.')
    return payment


def attach_payment_intent(db: Session, user: User, payment_id: int, payment_intent_id: str) -> Payment:
    payment = _get_patient_payment(db, user, payment_id)
    intent = (payment_intent_id or '').strip()
    if not intent:
        raise ValidationError('Payment intent id is required.')

    payment.payment_intent_id = intent
    db.commit()
    db.refresh(payment)
    return payment


def _build_invoice(appointment: Appointment, payment: Payment, issued_at: datetime) -> Invoice:
    patient_user = appointment.patient.user if appointment.patient else None
    doctor = appointment.doctor
    unit_price = Decimal(doctor.consultation_fee if doctor and doctor.consultation_fee is not None else payment.amount or 0)

    invoice = Invoice(
        appointment_id=appointment.id,
        patient_id=appointment.patient_id,
        patient_name=(patient_user.full_name if patient_user else None) or 'Patient',
        patient_email=(patient_user.email if patient_user else None) or '',
        issued_at=issued_at,
    )
    invoice.line_items.append(InvoiceLineItem(
        description=f'Consultation with Dr. {doctor.full_name if doctor else "Doctor"}',
        quantity=1,
        unit_price=unit_price,
    ))
    invoice.subtotal = sum((item.line_total for item in invoice.line_items), Decimal('0'))
    invoice.tax = Decimal('0')
    invoice.total = invoice.subtotal + invoice.tax
    invoice.invoice_number = invoice_number_for(invoice)
    return invoice


def _invoice_email_html(invoice: Invoice, scheduled_civil: datetime, doctor_name: str) -> str:
    return (
        '<div>'
        f'<p>Dear {escape(invoice.patient_name)},</p>'
        f'<p>Thank you for your payment. Your invoice number is <strong>{escape(invoice.invoice_number)}</strong>.</p>'
        '<p><strong>Consultation details</strong></p>'
        '<ul>'
        f'<li>Doctor: {escape(doctor_name)}</li>'
        f'<li>Date: {scheduled_civil:%A, %b %d, %Y}</li>'
        f'<li>Time: {scheduled_civil:%I:%M %p}</li>'
        f'<li>Appointment ID: {invoice.appointment_id}</li>'
        '</ul>'
        '<p>The invoice is attached to this email.</p>'
        '</div>'
    )


def mark_paid(
    db: Session,
    settings: SchedulingConfig,
    payment: Payment,
    renderer: InvoiceRenderer,
    email_sender: EmailSender,
    now_utc: datetime | None = None,
) -> PaymentOutcome:
    """Record a successful payment exactly once.

    Later calls for the same payment are no-ops. Invoice and email failures are
    logged and returned as warnings; the committed payment stands.
    """
    if payment.status == PaymentStatus.paid.value:
        logger.info('Payment %s already marked paid; ignoring duplicate confirmation.', payment.id)
        return PaymentOutcome(payment=payment, changed=False)

    outcome = PaymentOutcome(payment=payment, changed=True)
    policy = policy_for(settings)
    appointment = payment.appointment

    payment.status = PaymentStatus.paid.value
    payment.paid_at = now_utc or datetime.now(timezone.utc).replace(tzinfo=None)

    if appointment is not None:
        if policy.can_transition(appointment.status, policy.paid_status):
            appointment.status = policy.paid_status.value
        else:
            logger.warning(
                'Payment %s received for appointment %s in status %s; status left unchanged.',
                payment.id,
                appointment.id,
                appointment.status,
            )
            outcome.warnings.append('Payment recorded, but the appointment is no longer awaiting payment.')

    db.commit()
    db.refresh(payment)
    logger.info('Payment %s marked as paid.', payment.id)

    if appointment is None or payment.is_invoice_generated:
        return outcome

    try:
        invoice = _build_invoice(appointment, payment, payment.paid_at)
        db.add(invoice)
        db.flush()

        rendered = renderer.render(invoice)
        invoice.document_path = rendered.path
        payment.invoice_id = invoice.id
        payment.is_invoice_generated = True
        db.commit()
        outcome.invoice = invoice
    except Exception:
        db.rollback()
        logger.exception('Invoice generation failed for payment %s.', payment.id)
        outcome.warnings.append('Payment processed but invoice generation failed.')
        return outcome

    if not invoice.patient_email:
        outcome.warnings.append('Invoice created but patient email is missing; cannot send email.')
        return outcome

    try:
        scheduled_civil = clock_for(settings).to_civil(appointment.scheduled_at)
        doctor_name = appointment.doctor.full_name if appointment.doctor else 'Doctor'
        email_sender.send(
            invoice.patient_email,
            f'Invoice {invoice.invoice_number}',
            _invoice_email_html(invoice, scheduled_civil, doctor_name),
            EmailAttachment(filename=rendered.filename, content=rendered.content, subtype=rendered.subtype),
        )
    except Exception:
        logger.exception('Sending invoice email failed for payment %s.', payment.id)
        outcome.warnings.append('Payment succeeded but sending invoice email failed.')

    return outcome


def confirm_payment(
    db: Session,
    settings: SchedulingConfig,
    user: User,
    payment_id: int,
    renderer: InvoiceRenderer,
    email_sender: EmailSender,
) -> PaymentOutcome:
    payment = _get_patient_payment(db, user, payment_id)
    return mark_paid(db, settings, payment, renderer, email_sender)


def find_payment_for_intent(db: Session, payment_intent_id: str | None, metadata: dict | None) -> Payment | None:
    payment = None
    if isinstance(payment_intent_id, str) and payment_intent_id:
        payment = db.query(Payment).filter(Payment.payment_intent_id == payment_intent_id).first()

    appointment_id = metadata.get('appointment_id') if isinstance(metadata, dict) else None
    if payment is None and appointment_id is not None:
        try:
            appointment_id = int(appointment_id)
        except (TypeError, ValueError):
            logger.warning('Ignoring non-numeric appointment_id in payment metadata: %r', appointment_id)
            return None
        payment = db.query(Payment).filter(Payment.appointment_id == appointment_id).first()

    return payment


def verify_webhook_signature(secret: str, payload: bytes, signature: str | None) -> bool:
    if not secret:
        return True
    if not signature:
        return False
    expected = hmac.new(secret.encode('utf-8'), payload, hashlib.sha256).hexdigest()
    return hmac.compare_digest(expected, signature.strip())


def handle_gateway_event(
    db: Session,
    settings: SchedulingConfig,
    event: dict,
    renderer: InvoiceRenderer,
    email_sender: EmailSender,
) -> PaymentOutcome | None:
    """Apply a gateway notification. Deliveries are at-least-once."""
    event_type = event.get('type')
    if event_type != PAYMENT_SUCCEEDED_EVENT:
        logger.info('Unhandled payment event type %s', event_type)
        return None

    data = event.get('data')
    intent = data.get('object') if isinstance(data, dict) else None
    if not isinstance(intent, dict):
        logger.warning('Ignoring %s event without a payment intent object.', event_type)
        return None

    payment = find_payment_for_intent(db, intent.get('id'), intent.get('metadata'))
    if payment is None:
        logger.warning('Payment record not found for payment intent %s', intent.get('id'))
        return None

    if intent.get('id') and not payment.payment_intent_id:
        payment.payment_intent_id = intent['id']

    return mark_paid(db, settings, payment, renderer, email_sender)


def list_payments_for(db: Session, user: User) -> list[Payment]:
    query = db.query(Payment).join(Appointment, Payment.appointment_id == Appointment.id)

    if user.role == 'admin':
        pass
    elif user.role == 'doctor':
        query = query.filter(Appointment.doctor.has(user_id=user.id))
    elif user.role == 'patient':
        query = query.filter(Appointment.patient.has(user_id=user.id))
    else:
        raise AuthorizationError('You are not allowed to view payments.')

    return query.order_by(Payment.paid_at.desc(), Payment.id.desc()).all()


def export_payments_csv(db: Session) -> str:
    payments = db.query(Payment).order_by(Payment.paid_at.desc(), Payment.id.desc()).all()

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(['PaymentId', 'AppointmentId', 'Doctor', 'Patient', 'Amount', 'Status', 'PaymentDate'])
    for payment in payments:
        appointment = payment.appointment
        doctor_name = appointment.doctor.full_name if appointment and appointment.doctor else ''
        patient_user = appointment.patient.user if appointment and appointment.patient else None
        writer.writerow([
            payment.id,
            payment.appointment_id,
            doctor_name,
            (patient_user.full_name if patient_user else '') or '',
            f'{Decimal(payment.amount or 0):.2f}',
            payment.status,
            payment.paid_at.strftime('%Y-%m-%d %H:%M') if payment.paid_at else '',
        ])

    return buffer.getvalue()
