"""
Module: trade_kernel.models.party
Responsibility: Customers and suppliers as seen by the posting engine: their
    receivable/payable ledger account, credit limit and tax profile.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - credit_limit of zero means "no limit".
    - registration_type drives the advance-tax rate (see trade_config).

Failure modes:
    - PartyNotFoundError when an invoice references a missing party.
"""

from decimal import Decimal
from enum import Enum
from uuid import UUID

from sqlalchemy import Boolean, ForeignKey, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import TrackedBase, UUIDString
from trade_kernel.db.types import Money


class PartyType(str, Enum):
    CUSTOMER = "customer"
    SUPPLIER = "supplier"


class RegistrationType(str, Enum):
    """Sales-tax registration status of a party."""

    REGISTERED = "registered"
    UNREGISTERED = "unregistered"
    EXEMPT = "exempt"


class Party(TrackedBase):
    """Customer or supplier."""

    __tablename__ = "parties"

    __table_args__ = (UniqueConstraint("code", name="uq_party_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    party_type: Mapped[PartyType] = mapped_column(String(20), nullable=False)

    # Receivable (customer) or payable (supplier) ledger account
    account_id: Mapped[UUID] = mapped_column(
        UUIDString(), ForeignKey("accounts.id"), nullable=False
    )

    credit_limit: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    is_non_filer: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    registration_type: Mapped[RegistrationType] = mapped_column(
        String(20), nullable=False, default=RegistrationType.REGISTERED.value
    )

    advance_tax_applicable: Mapped[bool] = mapped_column(
        Boolean, default=False, nullable=False
    )

    def __repr__(self) -> str:
        return f"<Party {self.code}: {self.name}>"
