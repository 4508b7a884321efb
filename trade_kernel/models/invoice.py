"""
Module: trade_kernel.models.invoice
Responsibility: ORM persistence for invoices and their lines, including the
    totals recorded at confirmation and the payment / cancellation audit
    fields.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - invoice_number is unique (SI|PI|SR|PR + year + 6-digit sequence).
    - status moves draft -> confirmed -> paid, or draft|confirmed ->
      cancelled.  Only the InvoiceStateMachine changes it.
    - Lines are editable only while status is draft (InvoiceDraftService).
    - Return invoices carry original_invoice_id and negative line quantities.
    - version_id gives optimistic conflict detection on concurrent transitions.

Failure modes:
    - InvoiceNotFoundError on missing id.
    - InvalidInvoiceStatusError / CannotCancelPaidInvoiceError on illegal
      transitions (raised by the state machine, not the model).

Audit relevance:
    Recorded totals are what the ledger postings were computed from; the
    reversal engine reverses the recorded postings rather than recomputing.
"""

from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from trade_kernel.db.base import Base, TrackedBase, UUIDString
from trade_kernel.db.types import Money, Percent, Quantity

_ZERO = Decimal("0")


class InvoiceType(str, Enum):
    SALES = "sales"
    PURCHASE = "purchase"
    RETURN_SALES = "return_sales"
    RETURN_PURCHASE = "return_purchase"


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    CONFIRMED = "confirmed"
    PAID = "paid"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


INVOICE_NUMBER_PREFIXES: dict[str, str] = {
    InvoiceType.SALES.value: "SI",
    InvoiceType.PURCHASE.value: "PI",
    InvoiceType.RETURN_SALES.value: "SR",
    InvoiceType.RETURN_PURCHASE.value: "PR",
}

OUTBOUND_TYPES = frozenset({InvoiceType.SALES.value, InvoiceType.RETURN_PURCHASE.value})
RETURN_TYPES = frozenset({InvoiceType.RETURN_SALES.value, InvoiceType.RETURN_PURCHASE.value})


class Invoice(TrackedBase):
    """Invoice header with recorded totals."""

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("invoice_number", name="uq_invoice_number"),
        Index("idx_invoice_party", "party_id"),
        Index("idx_invoice_original", "original_invoice_id"),
    )

    invoice_number: Mapped[str] = mapped_column(String(30), nullable=False)

    invoice_type: Mapped[InvoiceType] = mapped_column(String(20), nullable=False)

    status: Mapped[InvoiceStatus] = mapped_column(
        String(20), nullable=False, default=InvoiceStatus.DRAFT.value
    )

    payment_status: Mapped[PaymentStatus] = mapped_column(
        String(20), nullable=False, default=PaymentStatus.PENDING.value
    )

    party_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("parties.id"), nullable=False
    )

    warehouse_id: Mapped[str] = mapped_column(String(100), nullable=False)

    invoice_date: Mapped[date] = mapped_column(Date, nullable=False)

    due_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    claim_account_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=True
    )

    original_invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoices.id"), nullable=True
    )

    price_includes_tax: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    notes: Mapped[str | None] = mapped_column(String(4000), nullable=True)

    # Recorded totals (written at confirmation)
    subtotal: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount1_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount2_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    taxable_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    gst_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    advance_tax_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    non_filer_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    tax_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    grand_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    scheme1_value_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    scheme2_value_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)

    # Payment fields
    amount_paid: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    payment_notes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    scheme_claim_posted: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    # Audit fields
    created_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    confirmed_at: Mapped[datetime | None] = mapped_column(nullable=True)
    confirmed_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(1000), nullable=True)
    paid_at: Mapped[datetime | None] = mapped_column(nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    lines: Mapped[list["InvoiceLine"]] = relationship(
        back_populates="invoice",
        cascade="all, delete-orphan",
        order_by="InvoiceLine.line_no",
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.invoice_number} {self.invoice_type} {self.status}>"

    @property
    def type_value(self) -> str:
        return getattr(self.invoice_type, "value", self.invoice_type)

    @property
    def is_return(self) -> bool:
        return self.type_value in RETURN_TYPES

    @property
    def is_outbound(self) -> bool:
        """Stock leaves the warehouse on confirmation."""
        return self.type_value in OUTBOUND_TYPES


class InvoiceLine(Base):
    """One item line of an invoice, with amounts recorded at confirmation."""

    __tablename__ = "invoice_lines"

    __table_args__ = (
        Index("idx_invoice_line_invoice", "invoice_id"),
        Index("idx_invoice_line_original", "original_line_id"),
    )

    invoice_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("invoices.id", ondelete="CASCADE"), nullable=False
    )

    line_no: Mapped[int] = mapped_column(Integer, nullable=False)

    item_id: Mapped[str] = mapped_column(String(100), nullable=False)

    # Defaults to the invoice header warehouse when None
    warehouse_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Negative on return invoices
    quantity: Mapped[Quantity] = mapped_column(nullable=False)

    unit_price: Mapped[Money] = mapped_column(nullable=False)

    discount1_percent: Mapped[Percent] = mapped_column(nullable=False, default=_ZERO)
    discount2_percent: Mapped[Percent] = mapped_column(nullable=False, default=_ZERO)

    scheme1_quantity: Mapped[Quantity] = mapped_column(nullable=False, default=_ZERO)
    scheme2_quantity: Mapped[Quantity] = mapped_column(nullable=False, default=_ZERO)

    gst_rate: Mapped[Percent] = mapped_column(nullable=False, default=_ZERO)

    tax_codes: Mapped[list] = mapped_column(JSON, nullable=False, default=list)

    # Purchase batch metadata
    batch_number: Mapped[str | None] = mapped_column(String(100), nullable=True)
    manufacturing_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    expiry_date: Mapped[date | None] = mapped_column(Date, nullable=True)
    unit_cost: Mapped[Decimal | None] = mapped_column(nullable=True)

    original_line_id: Mapped[UUID | None] = mapped_column(
        UUIDString(), ForeignKey("invoice_lines.id"), nullable=True
    )

    # Computed at confirmation
    billable_quantity: Mapped[Quantity] = mapped_column(nullable=False, default=_ZERO)
    gross_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount1_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount2_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    discount_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    taxable_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    gst_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    advance_tax_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    non_filer_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    tax_amount: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    line_total: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    scheme1_value: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)
    scheme2_value: Mapped[Money] = mapped_column(nullable=False, default=_ZERO)

    invoice: Mapped["Invoice"] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<InvoiceLine {self.line_no} item={self.item_id} qty={self.quantity}>"
