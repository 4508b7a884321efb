"""
Module: trade_kernel.repositories.batch
Responsibility: Batch persistence -- FEFO candidate lookup, creation from
    purchase lines, and the only code path that changes remaining_quantity.
Architecture position: Kernel > Repositories.  Flush-only; the caller owns
    the transaction.

Invariants enforced:
    - 0 <= remaining_quantity <= quantity is checked before every write
      (BatchQuantityInvariantError) and again by the CHECK constraint.
    - status is re-derived from (dates, remaining, hold flag, clock date) on
      every write; callers never set it.
    - Candidate rows are selected FOR UPDATE so two confirmations cannot
      deduct the same units.

Failure modes:
    - DuplicateBatchNumberError when the number exists for item + warehouse.
    - BatchQuantityInvariantError on an out-of-range delta.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trade_engines.allocation import BatchSnapshot, derive_batch_status, fefo_sort_key
from trade_kernel.db.types import ZERO
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import BatchQuantityInvariantError, DuplicateBatchNumberError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.batch import Batch
from trade_kernel.services.base import BaseService

logger = get_logger("repositories.batch")


def snapshot(batch: Batch) -> BatchSnapshot:
    return BatchSnapshot(
        batch_id=batch.id,
        batch_number=batch.batch_number,
        manufacturing_date=batch.manufacturing_date,
        expiry_date=batch.expiry_date,
        remaining_quantity=batch.remaining_quantity,
        is_quarantined=batch.is_quarantined,
    )


class BatchRepository(BaseService):
    """Batch reads and quantity writes."""

    def __init__(self, session, clock: Clock | None = None):
        super().__init__(session)
        self._clock = clock or SystemClock()

    def get(self, batch_id: UUID, for_update: bool = False) -> Batch | None:
        stmt = select(Batch).where(Batch.id == batch_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_number(self, item_id: str, warehouse_id: str, batch_number: str) -> Batch | None:
        return self.session.execute(
            select(Batch).where(
                Batch.item_id == item_id,
                Batch.warehouse_id == warehouse_id,
                Batch.batch_number == batch_number,
            )
        ).scalar_one_or_none()

    def find_for_item(self, item_id: str, warehouse_id: str, for_update: bool = False) -> list[Batch]:
        stmt = select(Batch).where(
            Batch.item_id == item_id,
            Batch.warehouse_id == warehouse_id,
        )
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return list(self.session.execute(stmt).scalars())

    def find_active_batches(
        self,
        item_id: str,
        warehouse_id: str,
        as_of: date | None = None,
        for_update: bool = True,
    ) -> list[Batch]:
        """
        Allocatable batches for an item in a warehouse, FEFO-ordered.

        Eligibility is evaluated against `as_of` (default: clock date), not
        the stored status.  Quantities are compared in Python so the filter is
        exact on every backend.
        """
        as_of = as_of or self._clock.today()
        rows = self.find_for_item(item_id, warehouse_id, for_update=for_update)
        eligible = [
            b for b in rows
            if derive_batch_status(
                b.manufacturing_date,
                b.expiry_date,
                b.remaining_quantity,
                b.is_quarantined,
                as_of,
            ) == "active"
        ]
        eligible.sort(key=lambda b: fefo_sort_key(snapshot(b)))
        return eligible

    def create(
        self,
        *,
        batch_number: str,
        item_id: str,
        warehouse_id: str,
        manufacturing_date: date,
        expiry_date: date,
        quantity: Decimal,
        unit_cost: Decimal,
        supplier_id: UUID | None = None,
        source_invoice_id: UUID | None = None,
    ) -> Batch:
        if self.find_by_number(item_id, warehouse_id, batch_number) is not None:
            raise DuplicateBatchNumberError(batch_number, item_id, warehouse_id)
        if quantity <= ZERO:
            raise BatchQuantityInvariantError("new", ZERO, quantity, quantity)

        batch = Batch(
            batch_number=batch_number,
            item_id=item_id,
            warehouse_id=warehouse_id,
            manufacturing_date=manufacturing_date,
            expiry_date=expiry_date,
            quantity=quantity,
            remaining_quantity=quantity,
            unit_cost=unit_cost,
            supplier_id=supplier_id,
            source_invoice_id=source_invoice_id,
            is_quarantined=False,
        )
        batch.status = self._status_for(batch)
        self.session.add(batch)
        self.session.flush()
        logger.info("batch_created", extra={
            "batch_id": str(batch.id),
            "batch_number": batch_number,
            "item_id": item_id,
            "warehouse_id": warehouse_id,
            "quantity": str(quantity),
        })
        return batch

    def deduct(self, batch: Batch, quantity: Decimal) -> Batch:
        """Take `quantity` units out of the batch."""
        return self._apply(batch, -quantity)

    def restore(self, batch: Batch, quantity: Decimal) -> Batch:
        """Put `quantity` units back into the batch."""
        return self._apply(batch, quantity)

    def set_quarantined(self, batch: Batch, held: bool) -> Batch:
        batch.is_quarantined = held
        batch.status = self._status_for(batch)
        self.session.flush()
        return batch

    def refresh_statuses(self, as_of: date | None = None) -> int:
        """Re-derive every stored status for `as_of`.  Returns the number changed."""
        as_of = as_of or self._clock.today()
        changed = 0
        for batch in self.session.execute(select(Batch)).scalars():
            status = self._status_for(batch, as_of)
            if batch.status != status:
                batch.status = status
                changed += 1
        self.session.flush()
        logger.info("batch_statuses_refreshed", extra={
            "as_of": as_of.isoformat(),
            "changed": changed,
        })
        return changed

    def _apply(self, batch: Batch, delta: Decimal) -> Batch:
        new_remaining = batch.remaining_quantity + delta
        if new_remaining < ZERO or new_remaining > batch.quantity:
            logger.error("batch_quantity_invariant_violated", extra={
                "batch_id": str(batch.id),
                "remaining": str(batch.remaining_quantity),
                "delta": str(delta),
                "quantity": str(batch.quantity),
            })
            raise BatchQuantityInvariantError(
                str(batch.id), batch.remaining_quantity, delta, batch.quantity
            )
        batch.remaining_quantity = new_remaining
        batch.status = self._status_for(batch)
        self.session.flush()
        return batch

    def _status_for(self, batch: Batch, as_of: date | None = None) -> str:
        return derive_batch_status(
            batch.manufacturing_date,
            batch.expiry_date,
            batch.remaining_quantity,
            batch.is_quarantined,
            as_of or self._clock.today(),
        )
