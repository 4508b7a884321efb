"""
Module: trade_kernel.repositories.stock_movement
Responsibility: Append and query stock movements.  There is no update or
    delete method; reversal is a new movement.
Architecture position: Kernel > Repositories.  Flush-only.
"""

from uuid import UUID

from sqlalchemy import select

from trade_kernel.models.stock_movement import MovementType, StockMovement
from trade_kernel.services.base import BaseService


class StockMovementRepository(BaseService):

    def record(self, movement: StockMovement) -> StockMovement:
        self.session.add(movement)
        self.session.flush()
        return movement

    def for_reference(self, reference_id: UUID) -> list[StockMovement]:
        return list(
            self.session.execute(
                select(StockMovement)
                .where(StockMovement.reference_id == reference_id)
                .order_by(StockMovement.created_at, StockMovement.id)
            ).scalars()
        )

    def originals_for_reference(self, reference_id: UUID) -> list[StockMovement]:
        """Non-reversal movements of a reference."""
        return [
            m for m in self.for_reference(reference_id)
            if m.movement_type != MovementType.REVERSAL.value
        ]

    def reversed_movement_ids(self, reference_id: UUID) -> set[UUID]:
        return {
            m.reverses_movement_id
            for m in self.for_reference(reference_id)
            if m.reverses_movement_id is not None
        }

    def for_invoice_line(self, invoice_line_id: UUID) -> list[StockMovement]:
        return list(
            self.session.execute(
                select(StockMovement)
                .where(StockMovement.invoice_line_id == invoice_line_id)
                .order_by(StockMovement.created_at, StockMovement.id)
            ).scalars()
        )
