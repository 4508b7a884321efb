"""
StockAllocator -- applies an invoice's stock effect to batches.

Responsibility:
    Turns a confirmed invoice into batch changes plus one StockMovement per
    change:

        sales             FEFO deduction from eligible batches
        purchase          one new batch per line
        return_sales      units go back to the batches the original sale took
        return_purchase   units leave the batch the original purchase created

Architecture position:
    Services -- imperative shell over BatchRepository and
    StockMovementRepository.  Planning is delegated to the pure
    trade_engines.allocation module.  Flush-only.

Invariants enforced:
    - Demand is checked per item + warehouse, in aggregate, before any
      deduction: either every line is covered or nothing is touched.
    - Stock quantity is the full line quantity; scheme units leave the
      warehouse like billable ones.
    - Batch rows are locked FOR UPDATE before they are read for planning.

Failure modes:
    - InsufficientStockError{available, required, shortfall}.
    - InvalidLineError when a purchase line lacks batch metadata, or a
      return line has no original stock movement to return against.
    - InvalidBatchDatesError / BatchExpiredError / DuplicateBatchNumberError
      on purchase receipt.
"""

from __future__ import annotations

import time
from collections import defaultdict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trade_engines.allocation import plan_fefo_allocation, validate_inbound_batch
from trade_kernel.db.types import ZERO, round_money
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import InsufficientStockError, InvalidLineError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.invoice import Invoice, InvoiceLine, InvoiceStatus, InvoiceType
from trade_kernel.models.stock_movement import MovementType, StockDirection, StockMovement
from trade_kernel.repositories.batch import BatchRepository, snapshot
from trade_kernel.repositories.stock_movement import StockMovementRepository
from trade_kernel.services.base import BaseService

logger = get_logger("services.stock_allocator")

REFERENCE_TYPE = "invoice"


def line_warehouse(invoice: Invoice, line: InvoiceLine) -> str:
    return line.warehouse_id or invoice.warehouse_id


class StockAllocator(BaseService):

    def __init__(
        self,
        session,
        clock: Clock | None = None,
        batches: BatchRepository | None = None,
        movements: StockMovementRepository | None = None,
        decimal_places: int = 2,
    ):
        super().__init__(session)
        self._clock = clock or SystemClock()
        self._batches = batches or BatchRepository(session, self._clock)
        self._movements = movements or StockMovementRepository(session)
        self._places = decimal_places

    def apply_invoice(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        """Apply the stock effect of a confirming invoice."""
        t0 = time.monotonic()
        invoice_type = invoice.type_value

        if invoice_type == InvoiceType.SALES.value:
            movements = self._allocate_sales(invoice, actor_id)
        elif invoice_type == InvoiceType.PURCHASE.value:
            movements = self._receive_purchase(invoice, actor_id)
        elif invoice_type == InvoiceType.RETURN_SALES.value:
            movements = self._receive_sales_return(invoice, actor_id)
        else:
            movements = self._issue_purchase_return(invoice, actor_id)

        logger.info("stock_applied", extra={
            "invoice_id": str(invoice.id),
            "invoice_type": invoice_type,
            "movement_count": len(movements),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return movements

    # ------------------------------------------------------------------
    # Outbound: sales
    # ------------------------------------------------------------------

    def _allocate_sales(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        as_of = self._clock.today()

        demand: dict[tuple[str, str], Decimal] = defaultdict(lambda: ZERO)
        for line in invoice.lines:
            demand[(line.item_id, line_warehouse(invoice, line))] += abs(line.quantity)

        # Whole-invoice check first; plan_fefo_allocation raises on shortfall
        for (item_id, warehouse_id), required in sorted(demand.items()):
            candidates = self._batches.find_active_batches(item_id, warehouse_id, as_of)
            plan_fefo_allocation(
                item_id, warehouse_id, required, [snapshot(b) for b in candidates], as_of
            )

        movements: list[StockMovement] = []
        for line in invoice.lines:
            item_id = line.item_id
            warehouse_id = line_warehouse(invoice, line)
            candidates = self._batches.find_active_batches(item_id, warehouse_id, as_of)
            by_id = {b.id: b for b in candidates}
            plan = plan_fefo_allocation(
                item_id, warehouse_id, abs(line.quantity),
                [snapshot(b) for b in candidates], as_of,
            )
            for piece in plan.slices:
                self._batches.deduct(by_id[piece.batch_id], piece.quantity)
                movements.append(self._record(
                    invoice, line, piece.batch_id, piece.quantity,
                    StockDirection.OUT, MovementType.SALE, actor_id,
                ))
            logger.info("fefo_allocation_applied", extra={
                "invoice_line_id": str(line.id),
                "item_id": item_id,
                "warehouse_id": warehouse_id,
                "quantity": str(abs(line.quantity)),
                "batches": [s.batch_number for s in plan.slices],
            })
        return movements

    # ------------------------------------------------------------------
    # Inbound: purchase
    # ------------------------------------------------------------------

    def _receive_purchase(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        as_of = self._clock.today()

        for line in invoice.lines:
            if not line.batch_number or line.manufacturing_date is None or line.expiry_date is None:
                raise InvalidLineError(
                    "batch_number",
                    "purchase lines need batch_number, manufacturing_date and expiry_date",
                    line.item_id,
                )
            validate_inbound_batch(
                line.batch_number, line.manufacturing_date, line.expiry_date, as_of
            )

        movements: list[StockMovement] = []
        for line in invoice.lines:
            quantity = abs(line.quantity)
            unit_cost = line.unit_cost
            if unit_cost is None:
                # Free scheme units lower the landed cost
                unit_cost = round_money(abs(line.taxable_amount) / quantity, self._places)
            batch = self._batches.create(
                batch_number=line.batch_number,
                item_id=line.item_id,
                warehouse_id=line_warehouse(invoice, line),
                manufacturing_date=line.manufacturing_date,
                expiry_date=line.expiry_date,
                quantity=quantity,
                unit_cost=unit_cost,
                supplier_id=invoice.party_id,
                source_invoice_id=invoice.id,
            )
            movements.append(self._record(
                invoice, line, batch.id, quantity,
                StockDirection.IN, MovementType.PURCHASE, actor_id,
            ))
        return movements

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def _receive_sales_return(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        movements: list[StockMovement] = []
        for line in invoice.lines:
            original_out = self._original_movements(line, StockDirection.OUT)
            already = self._returned_per_batch(line.original_line_id, exclude_line_id=line.id)
            remaining = abs(line.quantity)

            for out in original_out:
                if remaining <= ZERO:
                    break
                capacity = out.quantity - already.get(out.batch_id, ZERO)
                if capacity <= ZERO:
                    continue
                qty = min(capacity, remaining)
                already[out.batch_id] = already.get(out.batch_id, ZERO) + qty
                batch = self._batches.get(out.batch_id, for_update=True) if out.batch_id else None
                if batch is None:
                    logger.warning("return_batch_missing", extra={
                        "invoice_line_id": str(line.id),
                        "original_movement_id": str(out.id),
                    })
                    batch_id = None
                else:
                    self._batches.restore(batch, qty)
                    batch_id = batch.id
                movements.append(self._record(
                    invoice, line, batch_id, qty,
                    StockDirection.IN, MovementType.SALES_RETURN, actor_id,
                ))
                remaining -= qty

            if remaining > ZERO:
                raise InvalidLineError(
                    "quantity",
                    f"{remaining} units exceed what the original sale took from stock",
                    line.item_id,
                )
        return movements

    def _issue_purchase_return(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        plans: list[tuple[InvoiceLine, list[tuple[StockMovement, Decimal]]]] = []
        taken: dict[UUID, Decimal] = defaultdict(lambda: ZERO)

        # Check every line before touching any batch
        for line in invoice.lines:
            original_in = self._original_movements(line, StockDirection.IN)
            remaining = abs(line.quantity)
            available = ZERO
            pieces: list[tuple[StockMovement, Decimal]] = []
            for inbound in original_in:
                batch = self._batches.get(inbound.batch_id, for_update=True) if inbound.batch_id else None
                if batch is None:
                    continue
                free = batch.remaining_quantity - taken[batch.id]
                available += max(free, ZERO)
                qty = min(max(free, ZERO), remaining)
                if qty > ZERO:
                    pieces.append((inbound, qty))
                    taken[batch.id] += qty
                    remaining -= qty
            if remaining > ZERO:
                raise InsufficientStockError(
                    line.item_id, line_warehouse(invoice, line), available, abs(line.quantity)
                )
            plans.append((line, pieces))

        movements: list[StockMovement] = []
        for line, pieces in plans:
            for inbound, qty in pieces:
                batch = self._batches.get(inbound.batch_id, for_update=True)
                self._batches.deduct(batch, qty)
                movements.append(self._record(
                    invoice, line, batch.id, qty,
                    StockDirection.OUT, MovementType.PURCHASE_RETURN, actor_id,
                ))
        return movements

    def _original_movements(self, line: InvoiceLine, direction: StockDirection) -> list[StockMovement]:
        if line.original_line_id is None:
            raise InvalidLineError("original_line_id", "return lines must name the original line", line.item_id)
        found = [
            m for m in self._movements.for_invoice_line(line.original_line_id)
            if m.direction == direction.value and m.movement_type != MovementType.REVERSAL.value
        ]
        if not found:
            raise InvalidLineError(
                "original_line_id",
                "original line has no stock movement to return against",
                line.item_id,
            )
        return found

    def _returned_per_batch(self, original_line_id: UUID, exclude_line_id: UUID) -> dict[UUID | None, Decimal]:
        """Units already put back per batch by other non-cancelled returns of a line."""
        return_line_ids = [
            row_id
            for row_id, status in self.session.execute(
                select(InvoiceLine.id, Invoice.status)
                .join(Invoice, Invoice.id == InvoiceLine.invoice_id)
                .where(InvoiceLine.original_line_id == original_line_id)
            )
            if status != InvoiceStatus.CANCELLED.value and row_id != exclude_line_id
        ]
        returned: dict[UUID | None, Decimal] = defaultdict(lambda: ZERO)
        for line_id in return_line_ids:
            for m in self._movements.for_invoice_line(line_id):
                if m.movement_type == MovementType.SALES_RETURN.value:
                    returned[m.batch_id] += m.quantity
        return dict(returned)

    def _record(
        self,
        invoice: Invoice,
        line: InvoiceLine,
        batch_id: UUID | None,
        quantity: Decimal,
        direction: StockDirection,
        movement_type: MovementType,
        actor_id: UUID,
    ) -> StockMovement:
        return self._movements.record(StockMovement(
            item_id=line.item_id,
            warehouse_id=line_warehouse(invoice, line),
            batch_id=batch_id,
            quantity=quantity,
            direction=direction.value,
            movement_type=movement_type.value,
            reference_type=REFERENCE_TYPE,
            reference_id=invoice.id,
            invoice_line_id=line.id,
            actor_id=actor_id,
        ))
