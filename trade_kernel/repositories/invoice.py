"""
Module: trade_kernel.repositories.invoice
Responsibility: Invoice loading (with row lock), return lookups and invoice
    number allocation.
Architecture position: Kernel > Repositories.  Flush-only.

Invariants enforced:
    - Invoice numbers are prefix + year + 6-digit sequence, allocated from a
      locked SequenceCounter row, never from max()+1.
    - Returned quantities count every non-cancelled return (drafts included)
      so two open return drafts cannot over-return the same line.
    - Scheme units are tracked per line alongside the quantity, so free units
      are never taken back twice.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from trade_kernel.db.types import ZERO
from trade_kernel.exceptions import InvoiceNotFoundError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.invoice import (
    INVOICE_NUMBER_PREFIXES,
    Invoice,
    InvoiceStatus,
)
from trade_kernel.models.sequence import SequenceCounter
from trade_kernel.services.base import BaseService

logger = get_logger("repositories.invoice")


@dataclass(frozen=True)
class ReturnedUnits:
    """Billable and scheme units already taken back from one original line."""

    quantity: Decimal = ZERO
    scheme1: Decimal = ZERO
    scheme2: Decimal = ZERO

    def plus(self, quantity: Decimal, scheme1: Decimal, scheme2: Decimal) -> "ReturnedUnits":
        return ReturnedUnits(
            self.quantity + quantity, self.scheme1 + scheme1, self.scheme2 + scheme2
        )


NOTHING_RETURNED = ReturnedUnits()


class InvoiceRepository(BaseService):

    def get(self, invoice_id: UUID, for_update: bool = False) -> Invoice | None:
        stmt = select(Invoice).where(Invoice.id == invoice_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def require(self, invoice_id: UUID, for_update: bool = False) -> Invoice:
        invoice = self.get(invoice_id, for_update=for_update)
        if invoice is None:
            raise InvoiceNotFoundError(str(invoice_id))
        return invoice

    def add(self, invoice: Invoice) -> Invoice:
        self.session.add(invoice)
        self.session.flush()
        return invoice

    def find_returns(self, original_invoice_id: UUID, include_cancelled: bool = False) -> list[Invoice]:
        stmt = select(Invoice).where(Invoice.original_invoice_id == original_invoice_id)
        if not include_cancelled:
            stmt = stmt.where(Invoice.status != InvoiceStatus.CANCELLED.value)
        return list(self.session.execute(stmt.order_by(Invoice.invoice_number)).scalars())

    def returned_quantities(self, original_invoice_id: UUID) -> dict[UUID, ReturnedUnits]:
        """Units already returned per original line, over non-cancelled returns."""
        returned: dict[UUID, ReturnedUnits] = {}
        for ret in self.find_returns(original_invoice_id):
            for line in ret.lines:
                if line.original_line_id is None:
                    continue
                units = returned.get(line.original_line_id, NOTHING_RETURNED)
                returned[line.original_line_id] = units.plus(
                    abs(line.quantity), line.scheme1_quantity, line.scheme2_quantity
                )
        return returned

    def next_invoice_number(self, invoice_type: str, invoice_date: date) -> str:
        """Allocate the next number, e.g. SI2024000001."""
        prefix = INVOICE_NUMBER_PREFIXES[invoice_type]
        value = self._next_sequence_value(f"{prefix}-{invoice_date.year}")
        return f"{prefix}{invoice_date.year}{value:06d}"

    def _next_sequence_value(self, name: str) -> int:
        counter = self.session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # Another transaction may create the same counter; isolate the insert
            savepoint = self.session.begin_nested()
            try:
                counter = SequenceCounter(name=name, current_value=1)
                self.session.add(counter)
                self.session.flush()
                savepoint.commit()
                logger.debug("sequence_allocated", extra={"sequence_name": name, "value": 1})
                return 1
            except IntegrityError:
                savepoint.rollback()
                logger.debug("sequence_counter_race_retry", extra={"sequence_name": name})
                counter = self.session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self.session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": name, "value": counter.current_value},
        )
        return counter.current_value
