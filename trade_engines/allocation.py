"""
Allocation Engine - FEFO batch planning and batch status derivation.

First-Expired-First-Out: outbound quantities are taken from the batch that
expires soonest.  Ties break on manufacturing date, then batch number, so
the plan is deterministic.

Eligibility is judged against an as-of date supplied by the caller (the
engine clock), never against the stored status column:

    eligible = not held
               and manufacturing_date <= as_of
               and expiry_date >= as_of
               and remaining_quantity > 0

Pure functions with no I/O.  The stock allocator service loads the batch
rows, asks for a plan, and applies it.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Iterable, Sequence
from uuid import UUID

from trade_kernel.db.types import ZERO
from trade_kernel.exceptions import (
    BatchExpiredError,
    InsufficientStockError,
    InvalidBatchDatesError,
)
from trade_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")

# Mirrors trade_kernel.models.batch.BatchStatus values
STATUS_PENDING = "pending"
STATUS_ACTIVE = "active"
STATUS_EXPIRED = "expired"
STATUS_DEPLETED = "depleted"
STATUS_QUARANTINED = "quarantined"


@dataclass(frozen=True)
class BatchSnapshot:
    """The parts of a batch row the planner needs."""

    batch_id: UUID
    batch_number: str
    manufacturing_date: date
    expiry_date: date
    remaining_quantity: Decimal
    is_quarantined: bool = False


@dataclass(frozen=True)
class AllocationSlice:
    """Quantity to take from one batch."""

    batch_id: UUID
    batch_number: str
    quantity: Decimal


@dataclass(frozen=True)
class AllocationPlan:
    """Greedy FEFO plan for one item in one warehouse."""

    item_id: str
    warehouse_id: str
    required: Decimal
    available: Decimal
    slices: tuple[AllocationSlice, ...]

    @property
    def allocated(self) -> Decimal:
        return sum((s.quantity for s in self.slices), ZERO)


def derive_batch_status(
    manufacturing_date: date,
    expiry_date: date,
    remaining_quantity: Decimal,
    is_quarantined: bool,
    as_of: date,
) -> str:
    """Status of a batch on a given day.  Precedence: held, expired, depleted, pending."""
    if is_quarantined:
        return STATUS_QUARANTINED
    if expiry_date < as_of:
        return STATUS_EXPIRED
    if remaining_quantity <= ZERO:
        return STATUS_DEPLETED
    if manufacturing_date > as_of:
        return STATUS_PENDING
    return STATUS_ACTIVE


def is_allocatable(batch: BatchSnapshot, as_of: date) -> bool:
    return derive_batch_status(
        batch.manufacturing_date,
        batch.expiry_date,
        batch.remaining_quantity,
        batch.is_quarantined,
        as_of,
    ) == STATUS_ACTIVE


def fefo_sort_key(batch: BatchSnapshot) -> tuple:
    return (batch.expiry_date, batch.manufacturing_date, batch.batch_number)


def validate_inbound_batch(
    batch_number: str,
    manufacturing_date: date,
    expiry_date: date,
    as_of: date,
) -> None:
    """
    Dates of a batch about to be received.

    Raises:
        InvalidBatchDatesError: expiry is not after manufacturing.
        BatchExpiredError: the batch is already past its expiry.
    """
    if expiry_date <= manufacturing_date:
        raise InvalidBatchDatesError(
            batch_number, manufacturing_date.isoformat(), expiry_date.isoformat()
        )
    if expiry_date < as_of:
        raise BatchExpiredError(batch_number, expiry_date.isoformat(), as_of.isoformat())


def plan_fefo_allocation(
    item_id: str,
    warehouse_id: str,
    required: Decimal,
    batches: Iterable[BatchSnapshot],
    as_of: date,
) -> AllocationPlan:
    """
    Plan a greedy FEFO take of `required` units.

    The whole requirement is checked against eligible stock before any slice
    is produced, so a failed plan never describes a partial deduction.

    Raises:
        InsufficientStockError: eligible stock is less than required.
    """
    eligible: Sequence[BatchSnapshot] = sorted(
        (b for b in batches if is_allocatable(b, as_of)),
        key=fefo_sort_key,
    )
    available = sum((b.remaining_quantity for b in eligible), ZERO)

    if available < required:
        logger.warning("fefo_insufficient_stock", extra={
            "item_id": item_id,
            "warehouse_id": warehouse_id,
            "required": str(required),
            "available": str(available),
        })
        raise InsufficientStockError(item_id, warehouse_id, available, required)

    slices: list[AllocationSlice] = []
    remaining = required
    for batch in eligible:
        if remaining <= ZERO:
            break
        take = min(batch.remaining_quantity, remaining)
        slices.append(AllocationSlice(
            batch_id=batch.batch_id,
            batch_number=batch.batch_number,
            quantity=take,
        ))
        remaining -= take

    logger.debug("fefo_allocation_planned", extra={
        "item_id": item_id,
        "warehouse_id": warehouse_id,
        "required": str(required),
        "batch_count": len(slices),
        "batches": [s.batch_number for s in slices],
    })

    return AllocationPlan(
        item_id=item_id,
        warehouse_id=warehouse_id,
        required=required,
        available=available,
        slices=tuple(slices),
    )
