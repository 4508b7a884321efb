"""
Line Totals Engine - The pure pricing pipeline for invoice lines.

Per line, in this order:

    1. scheme split      billable = quantity - scheme1 - scheme2
    2. gross             billable x unit_price
    3. discounts         discount1 then discount2 on the remainder
    4. tax               exclusive: tax = taxable x rate
                         inclusive: taxable = after_d2 / (1 + rate)
                         compound codes apply to taxable + earlier taxes
    5. surcharges        non-filer and advance tax on the same taxable base
    6. line_total        taxable + every tax and surcharge

Return lines carry negative quantities; they are priced on magnitudes and
every amount takes the sign of the quantity, so a return's totals are the
exact negation of the same units sold.

`calculate_line_totals(lines, tax_config)` is the preview used by the state
machine both for drafts and at confirmation.  Pure functions with no I/O.
"""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from datetime import date
from decimal import Decimal
from typing import Mapping, Sequence
from uuid import UUID

from trade_kernel.db.types import ZERO, round_money, to_decimal
from trade_kernel.exceptions import InvalidLineError
from trade_kernel.logging_config import get_logger

from trade_engines.discount import DiscountCalculator, validate_percent
from trade_engines.scheme import split_quantities, validate_scheme_quantities
from trade_engines.tax import TaxCalculator, TaxRate, implicit_gst_rate

logger = get_logger("engines.line_totals")

_DECIMAL_FIELDS = (
    "quantity",
    "unit_price",
    "discount1_percent",
    "discount2_percent",
    "scheme1_quantity",
    "scheme2_quantity",
    "gst_rate",
)


@dataclass(frozen=True)
class LineInput:
    """
    A validated invoice line, as supplied by the caller.

    Construction fails with InvalidLineError or SchemeExceedsQuantityError,
    so an invalid line never reaches persistence.  Scheme quantities are
    magnitudes even on return lines.
    """

    item_id: str
    quantity: Decimal
    unit_price: Decimal
    discount1_percent: Decimal = ZERO
    discount2_percent: Decimal = ZERO
    scheme1_quantity: Decimal = ZERO
    scheme2_quantity: Decimal = ZERO
    gst_rate: Decimal = ZERO
    tax_codes: tuple[str, ...] = ()
    warehouse_id: str | None = None
    batch_number: str | None = None
    manufacturing_date: date | None = None
    expiry_date: date | None = None
    unit_cost: Decimal | None = None
    original_line_id: UUID | None = None

    def __post_init__(self) -> None:
        if not self.item_id:
            raise InvalidLineError("item_id", "is required")
        for name in _DECIMAL_FIELDS:
            try:
                object.__setattr__(self, name, to_decimal(getattr(self, name)))
            except (TypeError, ArithmeticError) as exc:
                raise InvalidLineError(name, str(exc), self.item_id) from exc
        if self.unit_cost is not None:
            object.__setattr__(self, "unit_cost", to_decimal(self.unit_cost))
        object.__setattr__(self, "tax_codes", tuple(self.tax_codes or ()))

        if self.quantity == ZERO:
            raise InvalidLineError("quantity", "must not be zero", self.item_id)
        if self.unit_price < ZERO:
            raise InvalidLineError("unit_price", "must not be negative", self.item_id)
        if self.gst_rate < ZERO:
            raise InvalidLineError("gst_rate", "must not be negative", self.item_id)
        if self.unit_cost is not None and self.unit_cost < ZERO:
            raise InvalidLineError("unit_cost", "must not be negative", self.item_id)
        validate_percent("discount1_percent", self.discount1_percent, self.item_id)
        validate_percent("discount2_percent", self.discount2_percent, self.item_id)
        validate_scheme_quantities(
            self.item_id, self.quantity, self.scheme1_quantity, self.scheme2_quantity
        )

    @property
    def sign(self) -> int:
        return -1 if self.quantity < ZERO else 1


@dataclass(frozen=True)
class TaxContext:
    """Resolved tax configuration for one invoice."""

    rates: Mapping[str, TaxRate] = field(default_factory=dict)
    price_includes_tax: bool = False
    is_non_filer: bool = False
    non_filer_percent: Decimal = Decimal("0.1")
    advance_tax_percent: Decimal = ZERO
    decimal_places: int = 2


@dataclass(frozen=True)
class LineTotals:
    """Computed amounts for one line (signed like the line quantity)."""

    item_id: str
    quantity: Decimal
    billable_quantity: Decimal
    scheme1_quantity: Decimal
    scheme2_quantity: Decimal
    gross_amount: Decimal
    discount1_amount: Decimal
    discount2_amount: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    gst_amount: Decimal
    other_tax_amount: Decimal
    non_filer_amount: Decimal
    advance_tax_amount: Decimal
    tax_amount: Decimal
    line_total: Decimal
    scheme1_value: Decimal
    scheme2_value: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    """Sum of line totals, as recorded on the invoice at confirmation."""

    lines: tuple[LineTotals, ...]
    subtotal: Decimal
    discount1_total: Decimal
    discount2_total: Decimal
    discount_total: Decimal
    taxable_total: Decimal
    gst_total: Decimal
    advance_tax_total: Decimal
    non_filer_total: Decimal
    tax_total: Decimal
    grand_total: Decimal
    scheme1_value_total: Decimal
    scheme2_value_total: Decimal


def resolve_line_rates(line: LineInput, rates: Mapping[str, TaxRate]) -> tuple[list[str], dict[str, TaxRate]]:
    """Codes and rates to apply to a line; a line without codes uses its gst_rate."""
    if line.tax_codes:
        return list(line.tax_codes), dict(rates)
    if line.gst_rate > ZERO:
        rate = implicit_gst_rate(line.gst_rate)
        return [rate.tax_code], {rate.tax_code: rate}
    return [], {}


def calculate_line(
    line: LineInput,
    tax_config: TaxContext,
    tax_calculator: TaxCalculator | None = None,
    discount_calculator: DiscountCalculator | None = None,
) -> LineTotals:
    """Run the pricing pipeline for one line."""
    places = tax_config.decimal_places
    tax_calculator = tax_calculator or TaxCalculator(places)
    discount_calculator = discount_calculator or DiscountCalculator(places)

    split = split_quantities(
        line.item_id,
        line.quantity,
        line.scheme1_quantity,
        line.scheme2_quantity,
        line.unit_price,
        places,
    )
    gross = round_money(split.billable_quantity * line.unit_price, places)
    discounts = discount_calculator.apply(
        gross, line.discount1_percent, line.discount2_percent
    )

    codes, rates = resolve_line_rates(line, tax_config.rates)
    taxed = tax_calculator.calculate(
        amount=discounts.after_discount2,
        tax_codes=codes,
        rates=rates,
        is_tax_inclusive=tax_config.price_includes_tax,
    )
    taxable = taxed.net_amount
    gst = taxed.tax_by_type("GST")
    other_tax = taxed.tax_total - gst

    surcharges = tax_calculator.calculate_surcharges(
        taxable,
        tax_config.is_non_filer,
        tax_config.non_filer_percent,
        tax_config.advance_tax_percent,
    )
    tax_amount = taxed.tax_total + surcharges.total

    sign = line.sign

    def signed(value: Decimal) -> Decimal:
        return value if sign > 0 else -value

    return LineTotals(
        item_id=line.item_id,
        quantity=line.quantity,
        billable_quantity=signed(split.billable_quantity),
        scheme1_quantity=line.scheme1_quantity,
        scheme2_quantity=line.scheme2_quantity,
        gross_amount=signed(gross),
        discount1_amount=signed(discounts.discount1_amount),
        discount2_amount=signed(discounts.discount2_amount),
        discount_amount=signed(discounts.total_discount),
        taxable_amount=signed(taxable),
        gst_amount=signed(gst),
        other_tax_amount=signed(other_tax),
        non_filer_amount=signed(surcharges.non_filer_amount),
        advance_tax_amount=signed(surcharges.advance_tax_amount),
        tax_amount=signed(tax_amount),
        line_total=signed(taxable + tax_amount),
        scheme1_value=signed(split.scheme1_value),
        scheme2_value=signed(split.scheme2_value),
    )


def calculate_line_totals(
    lines: Sequence[LineInput],
    tax_config: TaxContext,
) -> InvoiceTotals:
    """
    Price every line and sum the invoice totals.

    Raises:
        TaxConfigNotFoundError: a line references a code not in tax_config.rates.
    """
    t0 = time.monotonic()
    tax_calculator = TaxCalculator(tax_config.decimal_places)
    discount_calculator = DiscountCalculator(tax_config.decimal_places)

    computed = tuple(
        calculate_line(line, tax_config, tax_calculator, discount_calculator)
        for line in lines
    )

    def total(attr: str) -> Decimal:
        return sum((getattr(lt, attr) for lt in computed), ZERO)

    result = InvoiceTotals(
        lines=computed,
        subtotal=total("gross_amount"),
        discount1_total=total("discount1_amount"),
        discount2_total=total("discount2_amount"),
        discount_total=total("discount_amount"),
        taxable_total=total("taxable_amount"),
        gst_total=total("gst_amount"),
        advance_tax_total=total("advance_tax_amount"),
        non_filer_total=total("non_filer_amount"),
        tax_total=total("tax_amount"),
        grand_total=total("line_total"),
        scheme1_value_total=total("scheme1_value"),
        scheme2_value_total=total("scheme2_value"),
    )

    logger.debug("line_totals_calculated", extra={
        "line_count": len(computed),
        "taxable_total": str(result.taxable_total),
        "tax_total": str(result.tax_total),
        "grand_total": str(result.grand_total),
        "duration_ms": round((time.monotonic() - t0) * 1000, 2),
    })
    return result
