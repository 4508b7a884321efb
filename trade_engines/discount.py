"""
Discount Engine - Sequential two-tier trade discounts.

Discount1 applies to the line subtotal, discount2 to what remains after
discount1:

    after_d1 = subtotal x (1 - d1/100)
    after_d2 = after_d1 x (1 - d2/100)

Discount2 is typically funded by a supplier or principal, so an invoice that
carries any discount2 must name a claim account to charge it to.

Pure functions with no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from trade_kernel.db.types import HUNDRED, ZERO, round_money
from trade_kernel.exceptions import ClaimAccountRequiredError, InvalidLineError
from trade_kernel.logging_config import get_logger

logger = get_logger("engines.discount")


def validate_percent(field: str, value: Decimal, item_id: str | None = None) -> Decimal:
    """Percentages must lie in [0, 100]."""
    if value < ZERO or value > HUNDRED:
        raise InvalidLineError(field, f"must be between 0 and 100, got {value}", item_id)
    return value


@dataclass(frozen=True)
class DiscountBreakdown:
    """Result of applying both discount tiers to one subtotal."""

    subtotal: Decimal
    discount1_percent: Decimal
    discount1_amount: Decimal
    after_discount1: Decimal
    discount2_percent: Decimal
    discount2_amount: Decimal
    after_discount2: Decimal

    @property
    def total_discount(self) -> Decimal:
        return self.discount1_amount + self.discount2_amount

    @property
    def effective_percent(self) -> Decimal:
        """Combined discount as a percentage of the subtotal."""
        if self.subtotal == ZERO:
            return ZERO
        return self.total_discount / self.subtotal * HUNDRED


class DiscountCalculator:
    """Apply sequential discounts.  Pure, no I/O."""

    def __init__(self, decimal_places: int = 2):
        self.decimal_places = decimal_places

    def apply(
        self,
        subtotal: Decimal,
        discount1_percent: Decimal = ZERO,
        discount2_percent: Decimal = ZERO,
    ) -> DiscountBreakdown:
        validate_percent("discount1_percent", discount1_percent)
        validate_percent("discount2_percent", discount2_percent)

        places = self.decimal_places
        after_d1 = round_money(subtotal * (1 - discount1_percent / HUNDRED), places)
        after_d2 = round_money(after_d1 * (1 - discount2_percent / HUNDRED), places)

        return DiscountBreakdown(
            subtotal=subtotal,
            discount1_percent=discount1_percent,
            discount1_amount=subtotal - after_d1,
            after_discount1=after_d1,
            discount2_percent=discount2_percent,
            discount2_amount=after_d1 - after_d2,
            after_discount2=after_d2,
        )


def require_claim_account_for_discount2(
    invoice_ref: str,
    discount2_total: Decimal,
    claim_account_id: object | None,
) -> None:
    """
    Non-zero discount2 across the invoice needs a claim account.

    Raises:
        ClaimAccountRequiredError
    """
    if discount2_total != ZERO and claim_account_id is None:
        logger.warning("discount2_claim_account_missing", extra={
            "invoice_ref": invoice_ref,
            "discount2_total": str(discount2_total),
        })
        raise ClaimAccountRequiredError(
            invoice_ref,
            "discount2 is applied",
            discount2_total,
        )
