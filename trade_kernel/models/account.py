"""
Module: trade_kernel.models.account
Responsibility: ORM persistence for the chart of accounts -- the target of
    every ledger entry.  Holds the running balance the LedgerPoster maintains.
Architecture position: Kernel > Models.  May import from db/ only.

Invariants enforced:
    - code is unique.
    - balance is mutated only by the LedgerPoster, on the normal-balance
      side: debit - credit for debit-normal accounts, credit - debit for
      credit-normal ones.

Failure modes:
    - AccountNotFoundError when a posting references a non-existent account.
    - AccountInactiveError when a posting targets an inactive account.
"""

from decimal import Decimal
from enum import Enum

from sqlalchemy import Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import TrackedBase
from trade_kernel.db.types import Money


class AccountType(str, Enum):
    """Types of accounts in the chart of accounts."""

    ASSET = "asset"
    LIABILITY = "liability"
    EQUITY = "equity"
    REVENUE = "revenue"
    EXPENSE = "expense"
    CLAIM = "claim"
    ADJUSTMENT = "adjustment"


class NormalBalance(str, Enum):
    """Normal balance side for an account."""

    DEBIT = "debit"
    CREDIT = "credit"


_DEBIT_NORMAL_TYPES = frozenset({
    AccountType.ASSET.value,
    AccountType.EXPENSE.value,
    AccountType.CLAIM.value,
    AccountType.ADJUSTMENT.value,
})


def default_normal_balance(account_type: AccountType | str) -> NormalBalance:
    """Conventional normal balance for an account type."""
    value = account_type.value if isinstance(account_type, AccountType) else account_type
    if value in _DEBIT_NORMAL_TYPES:
        return NormalBalance.DEBIT
    return NormalBalance.CREDIT


class Account(TrackedBase):
    """
    Chart of accounts entry.

    Guarantees:
        - code is unique and non-null.
        - normal_balance is DEBIT or CREDIT.
    """

    __tablename__ = "accounts"

    __table_args__ = (
        UniqueConstraint("code", name="uq_account_code"),
        Index("idx_account_type", "account_type"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    account_type: Mapped[AccountType] = mapped_column(String(20), nullable=False)

    normal_balance: Mapped[NormalBalance] = mapped_column(String(10), nullable=False)

    balance: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Account {self.code}: {self.name}>"

    @property
    def is_debit_normal(self) -> bool:
        return self.normal_balance == NormalBalance.DEBIT

    def signed_delta(self, debit: Decimal, credit: Decimal) -> Decimal:
        """Balance change for a debit/credit pair on this account's normal side."""
        if self.is_debit_normal:
            return debit - credit
        return credit - debit
