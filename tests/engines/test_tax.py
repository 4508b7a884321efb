"""
Tests for Tax Engine.

Covers:
- Simple tax calculation (exclusive)
- Tax-inclusive (reverse) calculation
- Compound taxes
- Non-filer and advance-tax surcharges
- Withholding tax
- Edge cases and error handling
"""

from decimal import Decimal

import pytest

from trade_engines.tax import (
    TaxCalculationMethod,
    TaxCalculator,
    TaxRate,
    implicit_gst_rate,
    resolve_advance_tax_percent,
)
from trade_kernel.exceptions import InvalidTaxRateError, TaxConfigNotFoundError


class TestSimpleTaxCalculation:
    """Tests for simple (exclusive) tax calculation."""

    def setup_method(self):
        self.calculator = TaxCalculator()
        self.rates = {
            "GST18": TaxRate(
                tax_code="GST18",
                tax_name="GST 18%",
                rate=Decimal("0.18"),
                tax_type="GST",
            ),
            "ST6": TaxRate(
                tax_code="ST6",
                tax_name="Provincial Sales Tax",
                rate=Decimal("0.06"),
                tax_type="SALES_TAX",
            ),
            "ST2": TaxRate(
                tax_code="ST2",
                tax_name="Local Sales Tax",
                rate=Decimal("0.02"),
                tax_type="SALES_TAX",
                priority=5,
            ),
        }

    def test_single_tax(self):
        result = self.calculator.calculate(
            amount=Decimal("855.00"),
            tax_codes=["GST18"],
            rates=self.rates,
        )

        assert result.net_amount == Decimal("855.00")
        assert result.tax_total == Decimal("153.90")
        assert result.gross_amount == Decimal("1008.90")
        assert result.calculation_method == TaxCalculationMethod.EXCLUSIVE

    def test_multiple_simple_taxes_are_additive(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["ST6", "ST2"],
            rates=self.rates,
        )

        assert result.tax_total == Decimal("8.00")
        assert result.gross_amount == Decimal("108.00")
        assert all(line.base_amount == Decimal("100.00") for line in result.tax_lines)

    def test_taxes_applied_in_priority_order(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["ST2", "ST6"],
            rates=self.rates,
        )

        assert [line.tax_code for line in result.tax_lines] == ["ST6", "ST2"]

    def test_no_taxes(self):
        result = self.calculator.calculate(
            amount=Decimal("100.004"),
            tax_codes=[],
            rates=self.rates,
        )

        assert result.tax_total == Decimal("0")
        assert result.net_amount == Decimal("100.00")
        assert result.gross_amount == Decimal("100.00")
        assert result.tax_lines == ()

    def test_rounding_half_up(self):
        # 10.05 x 0.18 = 1.809 -> 1.81
        result = self.calculator.calculate(
            amount=Decimal("10.05"),
            tax_codes=["GST18"],
            rates=self.rates,
        )
        assert result.tax_total == Decimal("1.81")

    def test_tax_by_type(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["GST18", "ST6"],
            rates=self.rates,
        )

        assert result.tax_by_type("GST") == Decimal("18.00")
        assert result.tax_by_type("SALES_TAX") == Decimal("6.00")
        assert result.tax_by_type("WHT") == Decimal("0")

    def test_effective_tax_rate(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["GST18"],
            rates=self.rates,
        )
        assert result.effective_tax_rate == Decimal("0.18")

    def test_effective_rate_of_zero_amount(self):
        result = self.calculator.calculate(
            amount=Decimal("0"),
            tax_codes=["GST18"],
            rates=self.rates,
        )
        assert result.effective_tax_rate == Decimal("0")

    def test_unknown_code_raises(self):
        with pytest.raises(TaxConfigNotFoundError) as exc_info:
            self.calculator.calculate(
                amount=Decimal("100.00"),
                tax_codes=["NOPE"],
                rates=self.rates,
            )

        assert exc_info.value.tax_code == "NOPE"
        assert exc_info.value.code == "TAX_CONFIG_NOT_FOUND"

    def test_three_decimal_places(self):
        calculator = TaxCalculator(decimal_places=3)
        result = calculator.calculate(
            amount=Decimal("10.05"),
            tax_codes=["GST18"],
            rates=self.rates,
        )
        assert result.tax_total == Decimal("1.809")


class TestCompoundTax:
    """Compound taxes apply to taxable plus previously applied taxes."""

    def setup_method(self):
        self.calculator = TaxCalculator()
        self.rates = {
            "GST17": TaxRate.from_percent("GST17", Decimal("17")),
            "FED": TaxRate.from_percent(
                "FED", Decimal("2"), tax_type="CUSTOM", is_compound=True, priority=10
            ),
        }

    def test_compound_on_running_total(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["FED", "GST17"],
            rates=self.rates,
        )

        gst, fed = result.tax_lines
        assert gst.tax_amount == Decimal("17.00")
        assert fed.base_amount == Decimal("117.00")
        assert fed.tax_amount == Decimal("2.34")
        assert fed.is_compound is True
        assert result.gross_amount == Decimal("119.34")

    def test_compound_alone_equals_simple(self):
        result = self.calculator.calculate(
            amount=Decimal("100.00"),
            tax_codes=["FED"],
            rates=self.rates,
        )
        assert result.tax_total == Decimal("2.00")


class TestTaxInclusive:
    """Extracting tax from a tax-inclusive price."""

    def setup_method(self):
        self.calculator = TaxCalculator()

    def test_single_rate_extraction(self):
        rates = {"GST18": TaxRate.from_percent("GST18", Decimal("18"))}
        result = self.calculator.calculate(
            amount=Decimal("118.00"),
            tax_codes=["GST18"],
            rates=rates,
            is_tax_inclusive=True,
        )

        assert result.net_amount == Decimal("100.00")
        assert result.tax_total == Decimal("18.00")
        assert result.gross_amount == Decimal("118.00")
        assert result.calculation_method == TaxCalculationMethod.INCLUSIVE
        assert result.tax_lines[0].is_included is True

    def test_multiple_rates_share_extracted_tax(self):
        rates = {
            "ST6": TaxRate.from_percent("ST6", Decimal("6"), tax_type="SALES_TAX"),
            "ST2": TaxRate.from_percent("ST2", Decimal("2"), tax_type="SALES_TAX"),
        }
        result = self.calculator.calculate(
            amount=Decimal("108.00"),
            tax_codes=["ST6", "ST2"],
            rates=rates,
            is_tax_inclusive=True,
        )

        assert result.net_amount == Decimal("100.00")
        assert result.tax_total == Decimal("8.00")
        by_code = {line.tax_code: line.tax_amount for line in result.tax_lines}
        assert by_code == {"ST6": Decimal("6.00"), "ST2": Decimal("2.00")}

    def test_remainder_goes_to_last_rate(self):
        rates = {
            "A": TaxRate.from_percent("A", Decimal("5")),
            "B": TaxRate.from_percent("B", Decimal("5")),
        }
        result = self.calculator.calculate(
            amount=Decimal("100.01"),
            tax_codes=["A", "B"],
            rates=rates,
            is_tax_inclusive=True,
        )

        # Net plus every extracted tax always rebuilds the gross exactly
        assert result.net_amount + result.tax_total == Decimal("100.01")

    def test_compound_extracted_first(self):
        rates = {
            "GST17": TaxRate.from_percent("GST17", Decimal("17")),
            "FED": TaxRate.from_percent("FED", Decimal("2"), tax_type="CUSTOM", is_compound=True),
        }
        result = self.calculator.calculate(
            amount=Decimal("119.34"),
            tax_codes=["GST17", "FED"],
            rates=rates,
            is_tax_inclusive=True,
        )

        assert result.net_amount == Decimal("100.00")
        assert result.tax_by_type("CUSTOM") == Decimal("2.34")
        assert result.tax_by_type("GST") == Decimal("17.00")

    def test_zero_rate_inclusive(self):
        rates = {"ZERO": TaxRate.from_percent("ZERO", Decimal("0"))}
        result = self.calculator.calculate(
            amount=Decimal("50.00"),
            tax_codes=["ZERO"],
            rates=rates,
            is_tax_inclusive=True,
        )
        assert result.net_amount == Decimal("50.00")
        assert result.tax_total == Decimal("0")


class TestSurcharges:

    def setup_method(self):
        self.calculator = TaxCalculator()

    def test_non_filer_surcharge(self):
        result = self.calculator.calculate_surcharges(
            Decimal("1000.00"), True, Decimal("0.1"), Decimal("0")
        )
        assert result.non_filer_amount == Decimal("1.00")
        assert result.advance_tax_amount == Decimal("0")
        assert result.total == Decimal("1.00")

    def test_filer_pays_no_surcharge(self):
        result = self.calculator.calculate_surcharges(
            Decimal("1000.00"), False, Decimal("0.1"), Decimal("0")
        )
        assert result.total == Decimal("0")

    def test_both_surcharges_on_same_base(self):
        result = self.calculator.calculate_surcharges(
            Decimal("855.00"), True, Decimal("0.1"), Decimal("2.5")
        )
        assert result.non_filer_amount == Decimal("0.86")
        assert result.advance_tax_amount == Decimal("21.38")
        assert result.base_amount == Decimal("855.00")


class TestAdvanceTaxResolution:

    RATES = {
        "registered": Decimal("0.5"),
        "unregistered": Decimal("2.5"),
        "exempt": Decimal("0"),
    }

    @pytest.mark.parametrize("reg_type,expected", [
        ("registered", Decimal("0.5")),
        ("unregistered", Decimal("2.5")),
        ("exempt", Decimal("0")),
    ])
    def test_rate_by_registration_type(self, reg_type, expected):
        assert resolve_advance_tax_percent(reg_type, self.RATES) == expected

    def test_unknown_registration_type(self):
        with pytest.raises(InvalidTaxRateError):
            resolve_advance_tax_percent("diplomatic", self.RATES)

    def test_unrecognised_percentage_rejected(self):
        with pytest.raises(InvalidTaxRateError):
            resolve_advance_tax_percent("registered", {"registered": Decimal("1")})


class TestWithholdingTax:

    def setup_method(self):
        self.calculator = TaxCalculator()

    def test_withholding_subtracted_from_gross(self):
        wht = TaxRate.from_percent("WHT45", Decimal("4.5"), tax_type="WHT")
        result = self.calculator.calculate_withholding(Decimal("1000.00"), wht)

        assert result.tax_total == Decimal("45.00")
        assert result.net_amount == Decimal("955.00")
        assert result.gross_amount == Decimal("1000.00")

    def test_non_withholding_rate_rejected(self):
        gst = TaxRate.from_percent("GST18", Decimal("18"))
        with pytest.raises(InvalidTaxRateError):
            self.calculator.calculate_withholding(Decimal("1000.00"), gst)


class TestTaxRate:

    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidTaxRateError):
            TaxRate(tax_code="BAD", tax_name="Bad", rate=Decimal("-0.01"))

    def test_from_percent(self):
        rate = TaxRate.from_percent("GST17", Decimal("17"))
        assert rate.rate == Decimal("0.17")
        assert rate.rate_percent == Decimal("17")
        assert rate.tax_name == "GST17"

    def test_implicit_gst_rate(self):
        rate = implicit_gst_rate(Decimal("18"))
        assert rate.tax_code == "GST@18"
        assert rate.tax_type == "GST"
        assert rate.is_compound is False
