"""
Module: trade_kernel.models.batch
Responsibility: ORM persistence for stock batches (lots) -- the unit the
    FEFO allocator consumes and the reversal engine restores.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - 0 <= remaining_quantity <= quantity (CHECK constraint; BatchRepository
      also refuses the write before flush).
    - batch_number is unique per item + warehouse.
    - status is derived (trade_engines.allocation.derive_batch_status) and
      refreshed by the repository on every write; callers never set it.
    - version_id gives optimistic conflict detection on concurrent deduction.

Failure modes:
    - DuplicateBatchNumberError on a second batch with the same number.
    - StaleDataError (translated to OptimisticLockError) when a concurrent
      transaction changed the row first.
"""

from datetime import date
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import TrackedBase, UUIDString
from trade_kernel.db.types import Money, Quantity


class BatchStatus(str, Enum):
    PENDING = "pending"
    ACTIVE = "active"
    EXPIRED = "expired"
    DEPLETED = "depleted"
    QUARANTINED = "quarantined"


class Batch(TrackedBase):
    """A received lot of one item in one warehouse."""

    __tablename__ = "batches"

    __table_args__ = (
        UniqueConstraint(
            "item_id", "warehouse_id", "batch_number", name="uq_batch_item_wh_number"
        ),
        # Amounts may be stored as text (SQLite); compare numerically.
        CheckConstraint(
            "CAST(remaining_quantity AS NUMERIC) >= 0",
            name="ck_batch_remaining_non_negative",
        ),
        CheckConstraint(
            "CAST(remaining_quantity AS NUMERIC) <= CAST(quantity AS NUMERIC)",
            name="ck_batch_remaining_le_quantity",
        ),
        Index("idx_batch_item_wh", "item_id", "warehouse_id"),
        Index("idx_batch_expiry", "expiry_date"),
    )

    batch_number: Mapped[str] = mapped_column(String(100), nullable=False)

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)

    supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=True
    )

    manufacturing_date: Mapped[date] = mapped_column(Date, nullable=False)

    expiry_date: Mapped[date] = mapped_column(Date, nullable=False)

    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    remaining_quantity: Mapped[Quantity] = mapped_column(nullable=False)

    unit_cost: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    # Hold flag (inspection, recall); a held batch is never allocated
    is_quarantined: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    status: Mapped[BatchStatus] = mapped_column(
        String(20), nullable=False, default=BatchStatus.ACTIVE.value
    )

    # Purchase invoice that created the batch
    source_invoice_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    def __repr__(self) -> str:
        return (
            f"<Batch {self.batch_number} item={self.item_id} "
            f"remaining={self.remaining_quantity}/{self.quantity}>"
        )
