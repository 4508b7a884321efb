"""
Module: trade_kernel.models.ledger_entry
Responsibility: Append-only double-entry ledger lines.  Entries sharing a
    posting_id form one balanced transaction.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - Exactly one of debit / credit is non-zero; both are >= 0 (CHECK).
    - Sum(debit) == Sum(credit) per posting_id (LedgerPoster, before flush).
    - Append-only: db/immutability.py refuses UPDATE and DELETE.
    - A reversal entry carries reverses_posting_id of the posting it undoes.

Audit relevance:
    Account balances are a projection of these rows.  Cancelling an invoice
    never removes an entry; it appends the swapped posting.
"""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import CheckConstraint, Date, DateTime, ForeignKey, Index, Integer, String, func
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import Base, UUIDString
from trade_kernel.db.types import Money


class PostingKind(str, Enum):
    CONFIRMATION = "confirmation"
    SCHEME_CLAIM = "scheme_claim"
    REVERSAL = "reversal"


class LedgerEntry(Base):
    """One debit or credit line of a posting."""

    __tablename__ = "ledger_entries"

    __table_args__ = (
        CheckConstraint(
            "CAST(debit AS NUMERIC) >= 0 AND CAST(credit AS NUMERIC) >= 0",
            name="ck_ledger_non_negative",
        ),
        CheckConstraint(
            "(CAST(debit AS NUMERIC) > 0 AND CAST(credit AS NUMERIC) = 0) "
            "OR (CAST(debit AS NUMERIC) = 0 AND CAST(credit AS NUMERIC) > 0)",
            name="ck_ledger_one_side",
        ),
        Index("idx_ledger_posting", "posting_id"),
        Index("idx_ledger_reference", "reference_type", "reference_id"),
        Index("idx_ledger_account", "account_id"),
    )

    posting_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    line_seq: Mapped[int] = mapped_column(Integer, nullable=False)

    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    debit: Mapped[Money] = mapped_column(nullable=False)

    credit: Mapped[Money] = mapped_column(nullable=False)

    reference_type: Mapped[str] = mapped_column(String(30), nullable=False)

    reference_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    entry_date: Mapped[date] = mapped_column(Date, nullable=False)

    description: Mapped[str] = mapped_column(String(500), nullable=False)

    posting_kind: Mapped[PostingKind] = mapped_column(String(20), nullable=False)

    reverses_posting_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry posting={self.posting_id} account={self.account_id} "
            f"Dr={self.debit} Cr={self.credit}>"
        )
