"""
ReversalEngine -- exact inverse of a confirmed invoice's side effects.

Responsibility:
    Undoes everything confirmation did, working only from what was
    recorded: every original stock movement gets an equal-and-opposite
    movement, and every original posting (confirmation and scheme claim)
    gets its swapped-role posting.  Nothing is recomputed from prices or
    tax configuration.

Architecture position:
    Services -- consumes BatchRepository, StockMovementRepository,
    LedgerRepository and LedgerPoster.  Flush-only.

Invariants enforced:
    - Each original movement and each original posting is reversed at most
      once; links back through reverses_movement_id / reverses_posting_id.
    - Direction generic: an OUT movement restores its batch, an IN movement
      deducts it.  Cancelling a purchase whose stock was consumed fails with
      InsufficientStockError before any write.
    - A movement whose batch no longer exists is still reversed (movement
      without batch), with a warning.
"""

from __future__ import annotations

import time
from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from trade_kernel.db.types import ZERO
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import InsufficientStockError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.invoice import Invoice
from trade_kernel.models.stock_movement import MovementType, StockDirection, StockMovement
from trade_kernel.repositories.batch import BatchRepository
from trade_kernel.repositories.ledger import LedgerRepository
from trade_kernel.repositories.stock_movement import StockMovementRepository
from trade_kernel.services.base import BaseService
from trade_services.ledger_poster import LedgerPoster, PostingResult

logger = get_logger("services.reversal_engine")


@dataclass(frozen=True)
class ReversalResult:
    invoice_id: UUID
    movements: tuple[StockMovement, ...]
    postings: tuple[PostingResult, ...]


class ReversalEngine(BaseService):

    def __init__(
        self,
        session,
        poster: LedgerPoster,
        clock: Clock | None = None,
        batches: BatchRepository | None = None,
        movements: StockMovementRepository | None = None,
        ledger: LedgerRepository | None = None,
    ):
        super().__init__(session)
        self._poster = poster
        self._clock = clock or SystemClock()
        self._batches = batches or BatchRepository(session, self._clock)
        self._movements = movements or StockMovementRepository(session)
        self._ledger = ledger or LedgerRepository(session)

    def reverse_invoice(self, invoice: Invoice, actor_id: UUID, reason: str | None = None) -> ReversalResult:
        t0 = time.monotonic()
        movements = self._reverse_movements(invoice, actor_id)
        postings = self._reverse_postings(invoice, actor_id, reason)

        logger.info("reversal_completed", extra={
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "movement_count": len(movements),
            "posting_count": len(postings),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return ReversalResult(invoice.id, tuple(movements), tuple(postings))

    def _reverse_movements(self, invoice: Invoice, actor_id: UUID) -> list[StockMovement]:
        done = self._movements.reversed_movement_ids(invoice.id)
        pending = [
            m for m in self._movements.originals_for_reference(invoice.id)
            if m.id not in done
        ]

        # Units an IN reversal must take back out, per batch, checked up front
        outgoing: dict[UUID, Decimal] = defaultdict(lambda: ZERO)
        for m in pending:
            if m.direction == StockDirection.IN.value and m.batch_id is not None:
                outgoing[m.batch_id] += m.quantity
        for batch_id, required in outgoing.items():
            batch = self._batches.get(batch_id, for_update=True)
            if batch is not None and batch.remaining_quantity < required:
                raise InsufficientStockError(
                    batch.item_id, batch.warehouse_id, batch.remaining_quantity, required
                )

        reversed_movements: list[StockMovement] = []
        for original in pending:
            direction = StockDirection(original.direction).opposite()
            batch = (
                self._batches.get(original.batch_id, for_update=True)
                if original.batch_id is not None else None
            )
            if batch is None:
                logger.warning("reversal_batch_missing", extra={
                    "movement_id": str(original.id),
                    "item_id": original.item_id,
                    "quantity": str(original.quantity),
                })
            elif direction == StockDirection.IN:
                self._batches.restore(batch, original.quantity)
            else:
                self._batches.deduct(batch, original.quantity)

            reversed_movements.append(self._movements.record(StockMovement(
                item_id=original.item_id,
                warehouse_id=original.warehouse_id,
                batch_id=batch.id if batch is not None else None,
                quantity=original.quantity,
                direction=direction.value,
                movement_type=MovementType.REVERSAL.value,
                reference_type=original.reference_type,
                reference_id=original.reference_id,
                invoice_line_id=original.invoice_line_id,
                reverses_movement_id=original.id,
                actor_id=actor_id,
            )))
        return reversed_movements

    def _reverse_postings(self, invoice: Invoice, actor_id: UUID, reason: str | None) -> list[PostingResult]:
        done = self._ledger.reversed_posting_ids(invoice.id)
        entry_date = self._clock.today()
        results: list[PostingResult] = []
        for posting_id, entries in self._ledger.postings_for_reference(invoice.id).items():
            if entries[0].reverses_posting_id is not None or posting_id in done:
                continue
            result = self._poster.reverse_posting(posting_id, actor_id, entry_date, reason)
            if result is not None:
                results.append(result)
        return results
