"""Payment model definitions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Integer, Numeric, String
from sqlalchemy.orm import relationship
from telemed.database import Base
from telemed.models.invoice import Invoice


class Payment(Base):
    """The single payment owed for an appointment."""
    __tablename__ = "payments"

    id = Column(Integer, primary_key=True)
    appointment_id = Column(Integer, ForeignKey("appointments.id"), nullable=False, unique=True)
    amount = Column(Numeric(10, 2), nullable=False, default=0)
    status = Column(String, nullable=False, default="pending")
    paid_at = Column(DateTime)
    payment_intent_id = Column(String, index=True)
    invoice_id = Column(Integer, ForeignKey("invoices.id"))
    is_invoice_generated = Column(Boolean, default=False)

    appointment = relationship("Appointment", back_populates="payment")
    invoice = relationship(Invoice)
