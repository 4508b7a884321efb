"""
Scheme Engine - Promotional quantity splits.

A line may carry two kinds of free units on top of what the customer pays
for:

    scheme1  company-funded bonus units
    scheme2  principal-funded bonus units, claimed back through a claim account

Both are priced at zero for revenue but leave the warehouse like billable
units:

    billable_quantity = quantity - scheme1 - scheme2
    stock_quantity    = quantity

Pure functions with no I/O.  The claim posting itself lives in the ledger
poster.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from trade_kernel.db.types import ZERO, round_money
from trade_kernel.exceptions import (
    ClaimAccountInactiveError,
    ClaimAccountNotFoundError,
    ClaimAccountRequiredError,
    ClaimAccountTypeError,
    SchemeExceedsQuantityError,
)
from trade_kernel.logging_config import get_logger

logger = get_logger("engines.scheme")


class ClaimAccountLike(Protocol):
    id: object
    name: str
    account_type: str
    is_active: bool


@dataclass(frozen=True)
class SchemeSplit:
    """Billable vs promotional split of one line (magnitudes)."""

    quantity: Decimal
    scheme1_quantity: Decimal
    scheme2_quantity: Decimal
    billable_quantity: Decimal
    scheme1_value: Decimal
    scheme2_value: Decimal

    @property
    def stock_quantity(self) -> Decimal:
        """Units leaving (or entering) the warehouse, free units included."""
        return self.quantity


def validate_scheme_quantities(
    item_id: str,
    quantity: Decimal,
    scheme1_quantity: Decimal,
    scheme2_quantity: Decimal,
) -> None:
    """
    Scheme quantities are non-negative and fit inside the line quantity.

    quantity may be negative (return lines); the check is by magnitude.
    """
    magnitude = abs(quantity)
    if (
        scheme1_quantity < ZERO
        or scheme2_quantity < ZERO
        or scheme1_quantity + scheme2_quantity > magnitude
    ):
        raise SchemeExceedsQuantityError(
            item_id, quantity, scheme1_quantity, scheme2_quantity
        )


def split_quantities(
    item_id: str,
    quantity: Decimal,
    scheme1_quantity: Decimal,
    scheme2_quantity: Decimal,
    unit_price: Decimal,
    decimal_places: int = 2,
) -> SchemeSplit:
    """Split a line into billable and promotional units."""
    validate_scheme_quantities(item_id, quantity, scheme1_quantity, scheme2_quantity)
    magnitude = abs(quantity)
    return SchemeSplit(
        quantity=magnitude,
        scheme1_quantity=scheme1_quantity,
        scheme2_quantity=scheme2_quantity,
        billable_quantity=magnitude - scheme1_quantity - scheme2_quantity,
        scheme1_value=round_money(scheme1_quantity * unit_price, decimal_places),
        scheme2_value=round_money(scheme2_quantity * unit_price, decimal_places),
    )


def validate_claim_account(
    account: ClaimAccountLike | None,
    account_id: object,
    allowed_types: tuple[str, ...],
) -> None:
    """
    The account that absorbs scheme2 claims must exist, be active and be of
    a claim-capable type.

    Raises:
        ClaimAccountNotFoundError, ClaimAccountInactiveError, ClaimAccountTypeError
    """
    if account is None:
        raise ClaimAccountNotFoundError(str(account_id))
    if not account.is_active:
        raise ClaimAccountInactiveError(str(account.id), account.name)
    if account.account_type not in allowed_types:
        raise ClaimAccountTypeError(str(account.id), account.account_type, allowed_types)


def require_claim_account_for_scheme2(
    invoice_ref: str,
    scheme2_value_total: Decimal,
    claim_account_id: object | None,
) -> None:
    """Scheme2 units on the invoice need a claim account."""
    if scheme2_value_total != ZERO and claim_account_id is None:
        logger.warning("scheme2_claim_account_missing", extra={
            "invoice_ref": invoice_ref,
            "scheme2_value_total": str(scheme2_value_total),
        })
        raise ClaimAccountRequiredError(
            invoice_ref,
            "scheme2 quantities are present",
            scheme2_value_total,
        )
