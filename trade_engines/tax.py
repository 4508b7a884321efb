"""
Tax Engine - Calculate taxes for invoice lines.

Supports GST, sales tax, withholding and compound taxes, plus the flat
non-filer and advance-tax surcharges applied on the same taxable base.
Pure functions with no I/O - tax rates provided as parameters.

Usage:
    from trade_engines.tax import TaxCalculator, TaxRate
    from decimal import Decimal

    rates = {
        "GST18": TaxRate(
            tax_code="GST18",
            tax_name="GST 18%",
            rate=Decimal("0.18"),
            tax_type="GST",
        ),
    }

    calculator = TaxCalculator()
    result = calculator.calculate(
        amount=Decimal("855.00"),
        tax_codes=["GST18"],
        rates=rates,
    )
    print(result.tax_total)     # 153.90
    print(result.gross_amount)  # 1008.90
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import Mapping, Sequence

from trade_kernel.db.types import ZERO, percent_to_rate, round_money
from trade_kernel.exceptions import InvalidTaxRateError, TaxConfigNotFoundError
from trade_kernel.logging_config import get_logger

logger = get_logger("engines.tax")

WITHHOLDING_TAX_TYPE = "WHT"

IMPLICIT_GST_PREFIX = "GST@"

# Advance-tax percentages the tax authority recognises
ALLOWED_ADVANCE_TAX_PERCENTS: frozenset[Decimal] = frozenset(
    {Decimal("0"), Decimal("0.5"), Decimal("2.5")}
)


class TaxCalculationMethod(str, Enum):
    """How to apply tax."""

    EXCLUSIVE = "exclusive"  # Tax added on top of net amount
    INCLUSIVE = "inclusive"  # Tax included in gross amount


@dataclass(frozen=True)
class TaxRate:
    """
    Tax rate definition.

    Immutable value object; rate is a fraction (0.17 for 17%).
    """

    tax_code: str
    tax_name: str
    rate: Decimal
    tax_type: str = "GST"

    # Compound taxes are calculated on the tax-inclusive running total
    is_compound: bool = False

    # Lower priority is applied first
    priority: int = 0

    def __post_init__(self) -> None:
        if self.rate < ZERO:
            raise InvalidTaxRateError(self.rate, "tax rate cannot be negative")

    @classmethod
    def from_percent(
        cls,
        tax_code: str,
        percent: Decimal,
        tax_name: str | None = None,
        tax_type: str = "GST",
        is_compound: bool = False,
        priority: int = 0,
    ) -> TaxRate:
        return cls(
            tax_code=tax_code,
            tax_name=tax_name or tax_code,
            rate=percent_to_rate(percent),
            tax_type=tax_type,
            is_compound=is_compound,
            priority=priority,
        )

    @property
    def rate_percent(self) -> Decimal:
        """Rate as percentage (e.g., 17 for 17%)."""
        return self.rate * Decimal("100")


def implicit_gst_rate(gst_percent: Decimal) -> TaxRate:
    """Exclusive GST rate for a line that names no tax codes."""
    return TaxRate.from_percent(
        tax_code=f"{IMPLICIT_GST_PREFIX}{gst_percent}",
        percent=gst_percent,
        tax_name=f"GST {gst_percent}%",
        tax_type="GST",
    )


@dataclass(frozen=True)
class TaxLine:
    """Calculated tax for a single tax code."""

    tax_code: str
    tax_name: str
    tax_type: str
    base_amount: Decimal  # Amount the tax was calculated on
    tax_amount: Decimal
    rate_applied: Decimal
    is_compound: bool = False
    is_included: bool = False  # True if extracted from a tax-inclusive price


@dataclass(frozen=True)
class TaxCalculationResult:
    """Complete tax calculation result."""

    net_amount: Decimal  # Taxable amount (ex tax)
    tax_lines: tuple[TaxLine, ...]
    gross_amount: Decimal  # Net plus tax

    calculation_method: TaxCalculationMethod = TaxCalculationMethod.EXCLUSIVE

    @property
    def tax_total(self) -> Decimal:
        return sum((line.tax_amount for line in self.tax_lines), ZERO)

    @property
    def effective_tax_rate(self) -> Decimal:
        """Overall effective tax rate (total tax / net)."""
        if self.net_amount == ZERO:
            return ZERO
        return self.tax_total / self.net_amount

    def tax_by_type(self, tax_type: str) -> Decimal:
        """Sum of taxes of a specific type."""
        return sum(
            (line.tax_amount for line in self.tax_lines if line.tax_type == tax_type),
            ZERO,
        )


@dataclass(frozen=True)
class SurchargeResult:
    """Non-filer and advance-tax surcharges on a taxable base."""

    base_amount: Decimal
    non_filer_amount: Decimal
    advance_tax_amount: Decimal

    @property
    def total(self) -> Decimal:
        return self.non_filer_amount + self.advance_tax_amount


def resolve_advance_tax_percent(
    registration_type: str,
    rates_by_registration: Mapping[str, Decimal],
) -> Decimal:
    """
    Advance-tax percentage for a party's registration type.

    Raises:
        InvalidTaxRateError: If the type has no configured rate, or the rate
            is not one of the recognised percentages.
    """
    if registration_type not in rates_by_registration:
        raise InvalidTaxRateError(
            ZERO, f"no advance tax rate configured for '{registration_type}'"
        )
    percent = Decimal(rates_by_registration[registration_type])
    if percent not in ALLOWED_ADVANCE_TAX_PERCENTS:
        raise InvalidTaxRateError(
            percent,
            "advance tax must be one of "
            + ", ".join(str(p) for p in sorted(ALLOWED_ADVANCE_TAX_PERCENTS)),
        )
    return percent


class TaxCalculator:
    """
    Calculate taxes for invoice lines.

    Pure functions - no I/O, no database access.
    Tax rates provided as parameters.

    Handles:
        - Exclusive tax calculation (tax = taxable x rate)
        - Tax-inclusive extraction (taxable = gross / (1 + rate))
        - Compound taxes on taxable plus previously applied taxes
        - Non-filer / advance-tax surcharges
    """

    def __init__(self, decimal_places: int = 2):
        self.decimal_places = decimal_places

    def calculate(
        self,
        amount: Decimal,
        tax_codes: Sequence[str],
        rates: Mapping[str, TaxRate],
        is_tax_inclusive: bool = False,
    ) -> TaxCalculationResult:
        """
        Calculate tax for an amount.

        Args:
            amount: Base amount (net if exclusive, gross if inclusive)
            tax_codes: Tax codes to apply
            rates: Available tax rates (code -> TaxRate)
            is_tax_inclusive: True if amount includes tax

        Raises:
            TaxConfigNotFoundError: If a tax code is not in rates.
        """
        if not tax_codes:
            return TaxCalculationResult(
                net_amount=round_money(amount, self.decimal_places),
                tax_lines=(),
                gross_amount=round_money(amount, self.decimal_places),
            )

        applicable_rates: list[TaxRate] = []
        for code in tax_codes:
            if code not in rates:
                logger.error("tax_code_not_found", extra={
                    "tax_code": code,
                    "available_codes": sorted(rates.keys()),
                })
                raise TaxConfigNotFoundError(code)
            applicable_rates.append(rates[code])

        if is_tax_inclusive:
            result = self._calculate_inclusive(amount, applicable_rates)
        else:
            result = self._calculate_exclusive(amount, applicable_rates)

        logger.debug("tax_calculation_completed", extra={
            "net_amount": str(result.net_amount),
            "tax_total": str(result.tax_total),
            "gross_amount": str(result.gross_amount),
            "tax_line_count": len(result.tax_lines),
            "is_tax_inclusive": is_tax_inclusive,
        })

        return result

    def calculate_surcharges(
        self,
        taxable_amount: Decimal,
        is_non_filer: bool,
        non_filer_percent: Decimal,
        advance_tax_percent: Decimal,
    ) -> SurchargeResult:
        """
        Flat surcharges on the taxable base.

        Non-filer parties pay non_filer_percent (0.1%); advance-tax parties
        pay their registration type's rate.  Both are added to the line tax.
        """
        non_filer = ZERO
        if is_non_filer and non_filer_percent:
            non_filer = round_money(
                taxable_amount * percent_to_rate(non_filer_percent), self.decimal_places
            )
        advance = ZERO
        if advance_tax_percent:
            advance = round_money(
                taxable_amount * percent_to_rate(advance_tax_percent), self.decimal_places
            )
        return SurchargeResult(
            base_amount=taxable_amount,
            non_filer_amount=non_filer,
            advance_tax_amount=advance,
        )

    def calculate_withholding(
        self,
        gross_amount: Decimal,
        withholding_rate: TaxRate,
    ) -> TaxCalculationResult:
        """
        Calculate withholding tax.

        Withholding is subtracted from a gross payment, not added.

        Returns:
            TaxCalculationResult where net_amount = gross - withholding.
        """
        if withholding_rate.tax_type != WITHHOLDING_TAX_TYPE:
            logger.error("withholding_invalid_tax_type", extra={
                "tax_type": withholding_rate.tax_type,
                "tax_code": withholding_rate.tax_code,
            })
            raise InvalidTaxRateError(
                withholding_rate.rate, "rate must be a withholding tax type"
            )

        withholding_amount = round_money(
            gross_amount * withholding_rate.rate, self.decimal_places
        )
        tax_line = TaxLine(
            tax_code=withholding_rate.tax_code,
            tax_name=withholding_rate.tax_name,
            tax_type=WITHHOLDING_TAX_TYPE,
            base_amount=gross_amount,
            tax_amount=withholding_amount,
            rate_applied=withholding_rate.rate,
        )

        logger.info("withholding_calculated", extra={
            "gross_amount": str(gross_amount),
            "withholding_amount": str(withholding_amount),
            "tax_code": withholding_rate.tax_code,
        })

        return TaxCalculationResult(
            net_amount=gross_amount - withholding_amount,
            tax_lines=(tax_line,),
            gross_amount=gross_amount,
        )

    def _calculate_exclusive(
        self,
        net_amount: Decimal,
        rates: list[TaxRate],
    ) -> TaxCalculationResult:
        """Calculate taxes to add on top of net amount."""
        places = self.decimal_places
        net_amount = round_money(net_amount, places)

        sorted_rates = sorted(rates, key=lambda r: r.priority)
        simple_rates = [r for r in sorted_rates if not r.is_compound]
        compound_rates = [r for r in sorted_rates if r.is_compound]

        tax_lines: list[TaxLine] = []
        running_total = net_amount

        for rate in simple_rates:
            tax_amount = round_money(net_amount * rate.rate, places)
            running_total += tax_amount
            tax_lines.append(TaxLine(
                tax_code=rate.tax_code,
                tax_name=rate.tax_name,
                tax_type=rate.tax_type,
                base_amount=net_amount,
                tax_amount=tax_amount,
                rate_applied=rate.rate,
            ))

        # Compound taxes on taxable plus every tax applied before them
        for rate in compound_rates:
            base_amount = running_total
            tax_amount = round_money(base_amount * rate.rate, places)
            running_total += tax_amount
            tax_lines.append(TaxLine(
                tax_code=rate.tax_code,
                tax_name=rate.tax_name,
                tax_type=rate.tax_type,
                base_amount=base_amount,
                tax_amount=tax_amount,
                rate_applied=rate.rate,
                is_compound=True,
            ))

        return TaxCalculationResult(
            net_amount=net_amount,
            tax_lines=tuple(tax_lines),
            gross_amount=running_total,
            calculation_method=TaxCalculationMethod.EXCLUSIVE,
        )

    def _calculate_inclusive(
        self,
        gross_amount: Decimal,
        rates: list[TaxRate],
    ) -> TaxCalculationResult:
        """Extract taxes from a tax-inclusive amount."""
        places = self.decimal_places
        gross_amount = round_money(gross_amount, places)

        sorted_rates = sorted(rates, key=lambda r: r.priority, reverse=True)
        simple_rates = [r for r in sorted_rates if not r.is_compound]
        compound_rates = [r for r in sorted_rates if r.is_compound]

        tax_lines: list[TaxLine] = []
        running_gross = gross_amount

        # Compound taxes were added last, so they come out first
        for rate in compound_rates:
            tax_amount = round_money(running_gross * rate.rate / (1 + rate.rate), places)
            running_gross -= tax_amount
            tax_lines.append(TaxLine(
                tax_code=rate.tax_code,
                tax_name=rate.tax_name,
                tax_type=rate.tax_type,
                base_amount=running_gross,
                tax_amount=tax_amount,
                rate_applied=rate.rate,
                is_compound=True,
                is_included=True,
            ))

        combined_simple_rate = sum((r.rate for r in simple_rates), ZERO)

        if simple_rates and combined_simple_rate > ZERO:
            net_amount = round_money(running_gross / (1 + combined_simple_rate), places)
            total_simple_tax = running_gross - net_amount
            allocated_so_far = ZERO

            for i, rate in enumerate(simple_rates):
                if i == len(simple_rates) - 1:
                    # Last rate gets the rounding remainder
                    tax_amount = total_simple_tax - allocated_so_far
                else:
                    tax_amount = round_money(
                        total_simple_tax * rate.rate / combined_simple_rate, places
                    )
                    allocated_so_far += tax_amount
                tax_lines.append(TaxLine(
                    tax_code=rate.tax_code,
                    tax_name=rate.tax_name,
                    tax_type=rate.tax_type,
                    base_amount=net_amount,
                    tax_amount=tax_amount,
                    rate_applied=rate.rate,
                    is_included=True,
                ))
        else:
            net_amount = running_gross
            for rate in simple_rates:
                tax_lines.append(TaxLine(
                    tax_code=rate.tax_code,
                    tax_name=rate.tax_name,
                    tax_type=rate.tax_type,
                    base_amount=net_amount,
                    tax_amount=ZERO,
                    rate_applied=rate.rate,
                    is_included=True,
                ))

        tax_lines.reverse()

        return TaxCalculationResult(
            net_amount=net_amount,
            tax_lines=tuple(tax_lines),
            gross_amount=gross_amount,
            calculation_method=TaxCalculationMethod.INCLUSIVE,
        )
