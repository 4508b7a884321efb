"""
Module: trade_kernel.models.stock_movement
Responsibility: Append-only record of every quantity that entered or left a
    batch, tied back to the invoice line that caused it.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - quantity > 0; direction says which way it moved (CHECK).
    - Append-only: db/immutability.py refuses UPDATE and DELETE.
    - A reversal movement carries reverses_movement_id and the opposite
      direction, so each original movement is reversed at most once.
    - batch_id is nulled by the database if the batch row is removed; the
      movement itself survives.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, DateTime, ForeignKey, Index, String, func
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import Base, UUIDString
from trade_kernel.db.types import Quantity


class StockDirection(str, Enum):
    IN = "in"
    OUT = "out"

    def opposite(self) -> "StockDirection":
        return StockDirection.OUT if self is StockDirection.IN else StockDirection.IN


class MovementType(str, Enum):
    SALE = "sale"
    PURCHASE = "purchase"
    SALES_RETURN = "sales_return"
    PURCHASE_RETURN = "purchase_return"
    REVERSAL = "reversal"


class StockMovement(Base):
    """One quantity change on one batch."""

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("CAST(quantity AS NUMERIC) > 0", name="ck_movement_positive"),
        CheckConstraint("direction IN ('in', 'out')", name="ck_movement_direction"),
        Index("idx_movement_reference", "reference_type", "reference_id"),
        Index("idx_movement_batch", "batch_id"),
        Index("idx_movement_line", "invoice_line_id"),
    )

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)

    batch_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("batches.id", ondelete="SET NULL"), nullable=True
    )

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    direction: Mapped[StockDirection] = mapped_column(String(3), nullable=False)

    movement_type: Mapped[MovementType] = mapped_column(String(20), nullable=False)

    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)

    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    invoice_line_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    reverses_movement_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<StockMovement {self.direction} {self.quantity} item={self.item_id} "
            f"batch={self.batch_id}>"
        )
