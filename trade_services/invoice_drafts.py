"""
InvoiceDraftService -- creation and editing of draft invoices.

A draft has no stock or ledger effect; it only has to be well formed so
that confirm() can price it.  Lines are validated as ``LineInput`` records
before anything is persisted, so a scheme violation or a bad percentage
never reaches the database.

Flush-only.  The caller (or the state machine, for returns) owns the
transaction.
"""

from __future__ import annotations

from datetime import date
from typing import Any, Mapping, Sequence, Union
from uuid import UUID

from trade_engines.line_totals import LineInput
from trade_kernel.db.types import ZERO
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import InvalidLineError, InvoiceLockedError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.invoice import (
    RETURN_TYPES,
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceType,
    PaymentStatus,
)
from trade_kernel.models.party import PartyType
from trade_kernel.repositories.invoice import InvoiceRepository
from trade_kernel.repositories.party import PartyRepository
from trade_kernel.services.base import BaseService

logger = get_logger("services.invoice_drafts")

LineSpec = Union[LineInput, Mapping[str, Any]]

_PARTY_TYPE_FOR_INVOICE = {
    InvoiceType.SALES.value: PartyType.CUSTOMER.value,
    InvoiceType.RETURN_SALES.value: PartyType.CUSTOMER.value,
    InvoiceType.PURCHASE.value: PartyType.SUPPLIER.value,
    InvoiceType.RETURN_PURCHASE.value: PartyType.SUPPLIER.value,
}


def to_line_input(spec: LineSpec) -> LineInput:
    if isinstance(spec, LineInput):
        return spec
    try:
        return LineInput(**dict(spec))
    except TypeError as exc:
        raise InvalidLineError("line", str(exc), spec.get("item_id")) from exc


def line_input_from_row(line: InvoiceLine) -> LineInput:
    """Rebuild the validated record from a stored line."""
    return LineInput(
        item_id=line.item_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        discount1_percent=line.discount1_percent,
        discount2_percent=line.discount2_percent,
        scheme1_quantity=line.scheme1_quantity,
        scheme2_quantity=line.scheme2_quantity,
        gst_rate=line.gst_rate,
        tax_codes=tuple(line.tax_codes or ()),
        warehouse_id=line.warehouse_id,
        batch_number=line.batch_number,
        manufacturing_date=line.manufacturing_date,
        expiry_date=line.expiry_date,
        unit_cost=line.unit_cost,
        original_line_id=line.original_line_id,
    )


def build_line_row(line_no: int, line: LineInput) -> InvoiceLine:
    return InvoiceLine(
        line_no=line_no,
        item_id=line.item_id,
        warehouse_id=line.warehouse_id,
        quantity=line.quantity,
        unit_price=line.unit_price,
        discount1_percent=line.discount1_percent,
        discount2_percent=line.discount2_percent,
        scheme1_quantity=line.scheme1_quantity,
        scheme2_quantity=line.scheme2_quantity,
        gst_rate=line.gst_rate,
        tax_codes=list(line.tax_codes),
        batch_number=line.batch_number,
        manufacturing_date=line.manufacturing_date,
        expiry_date=line.expiry_date,
        unit_cost=line.unit_cost,
        original_line_id=line.original_line_id,
    )


def validate_line_signs(invoice_type: str, lines: Sequence[LineInput]) -> None:
    """Return invoices carry negative quantities, everything else positive."""
    is_return = invoice_type in RETURN_TYPES
    for line in lines:
        if is_return and line.quantity > ZERO:
            raise InvalidLineError("quantity", "return lines must be negative", line.item_id)
        if not is_return and line.quantity < ZERO:
            raise InvalidLineError("quantity", "must be positive", line.item_id)
        if is_return and line.original_line_id is None:
            raise InvalidLineError(
                "original_line_id", "return lines must name the original line", line.item_id
            )


class InvoiceDraftService(BaseService):

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._invoices = InvoiceRepository(session)
        self._parties = PartyRepository(session)

    def create_draft(
        self,
        *,
        invoice_type: InvoiceType | str,
        party_id: UUID,
        warehouse_id: str,
        lines: Sequence[LineSpec],
        actor_id: UUID,
        invoice_date: date | None = None,
        due_date: date | None = None,
        claim_account_id: UUID | None = None,
        original_invoice_id: UUID | None = None,
        price_includes_tax: bool = False,
        notes: str | None = None,
    ) -> Invoice:
        """
        Validate and persist a draft invoice with a freshly allocated number.

        Raises:
            InvalidLineError, SchemeExceedsQuantityError: a line is malformed.
            PartyNotFoundError: party_id does not exist.
        """
        invoice_type = getattr(invoice_type, "value", invoice_type)
        if invoice_type not in _PARTY_TYPE_FOR_INVOICE:
            raise InvalidLineError("invoice_type", f"unknown invoice type '{invoice_type}'")
        if not warehouse_id:
            raise InvalidLineError("warehouse_id", "is required")

        inputs = [to_line_input(spec) for spec in lines]
        if not inputs:
            raise InvalidLineError("lines", "an invoice needs at least one line")
        validate_line_signs(invoice_type, inputs)
        if invoice_type in RETURN_TYPES and original_invoice_id is None:
            raise InvalidLineError("original_invoice_id", "return invoices must name the original")

        party = self._parties.require(party_id)
        expected = _PARTY_TYPE_FOR_INVOICE[invoice_type]
        if getattr(party.party_type, "value", party.party_type) != expected:
            raise InvalidLineError("party_id", f"{invoice_type} invoices need a {expected}")

        invoice_date = invoice_date or self._clock.today()
        invoice = Invoice(
            invoice_number=self._invoices.next_invoice_number(invoice_type, invoice_date),
            invoice_type=invoice_type,
            status=InvoiceStatus.DRAFT.value,
            payment_status=PaymentStatus.PENDING.value,
            party_id=party_id,
            warehouse_id=warehouse_id,
            invoice_date=invoice_date,
            due_date=due_date,
            claim_account_id=claim_account_id,
            original_invoice_id=original_invoice_id,
            price_includes_tax=price_includes_tax,
            notes=notes,
            payment_notes=[],
            created_by_id=actor_id,
        )
        invoice.lines = [build_line_row(n, line) for n, line in enumerate(inputs, start=1)]
        self._invoices.add(invoice)

        logger.info("invoice_draft_created", extra={
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice_type,
            "line_count": len(inputs),
        })
        return invoice

    def replace_lines(self, invoice_id: UUID, lines: Sequence[LineSpec], actor_id: UUID) -> Invoice:
        """
        Swap every line of a draft.

        Raises:
            InvoiceLockedError: the invoice is no longer a draft.
        """
        invoice = self._invoices.require(invoice_id, for_update=True)
        if invoice.status != InvoiceStatus.DRAFT.value:
            raise InvoiceLockedError(str(invoice.id), invoice.status)

        inputs = [to_line_input(spec) for spec in lines]
        if not inputs:
            raise InvalidLineError("lines", "an invoice needs at least one line")
        validate_line_signs(invoice.type_value, inputs)

        invoice.lines.clear()
        self.session.flush()
        invoice.lines.extend(build_line_row(n, line) for n, line in enumerate(inputs, start=1))
        self.session.flush()

        logger.info("invoice_draft_lines_replaced", extra={
            "invoice_id": str(invoice.id),
            "line_count": len(inputs),
            "actor_id": str(actor_id),
        })
        return invoice
