import logging
from dataclasses import dataclass
from decimal import Decimal
from pathlib import Path
from typing import Protocol

from telemed.core import config
from telemed.models.invoice import Invoice

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RenderedInvoice:
    path: str
    content: bytes
    filename: str
    subtype: str = "plain"


class InvoiceRenderer(Protocol):
    def render(self, invoice: Invoice) -> RenderedInvoice:
        ...


def invoice_number_for(invoice: Invoice) -> str:
    return f"INV-{invoice.issued_at:%Y%m%d}-{invoice.appointment_id:06d}"


def _money(value) -> str:
    return f"{Decimal(value or 0):.2f}"


class TextInvoiceRenderer:
    """Writes a plain-text invoice document under ``output_dir``."""

    def __init__(self, output_dir: str | None = None) -> None:
        self.output_dir = Path(output_dir or config.INVOICE_DIR)

    def render_text(self, invoice: Invoice) -> str:
        lines = [
            f"Invoice {invoice.invoice_number}",
            f"Issued: {invoice.issued_at:%Y-%m-%d %H:%M} UTC",
            f"Appointment: {invoice.appointment_id}",
            f"Patient: {invoice.patient_name} <{invoice.patient_email or 'n/a'}>",
            "",
        ]
        for item in invoice.line_items:
            lines.append(f"{item.description}  x{item.quantity}  {_money(item.unit_price)}  = {_money(item.line_total)}")
        lines.extend([
            "",
            f"Subtotal: {_money(invoice.subtotal)}",
            f"Tax: {_money(invoice.tax)}",
            f"Total: {_money(invoice.total)}",
        ])
        return "\n".join(lines) + "\n"

    def render(self, invoice: Invoice) -> RenderedInvoice:
        content = self.render_text(invoice).encode("utf-8")
        filename = f"{invoice.invoice_number}.txt"

        self.output_dir.mkdir(parents=True, exist_ok=True)
        path = self.output_dir / filename
        path.write_bytes(content)

        logger.info("Invoice %s written to %s", invoice.invoice_number, path)
        return RenderedInvoice(path=str(path), content=content, filename=filename)
