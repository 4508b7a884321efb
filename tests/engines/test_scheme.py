"""
Tests for the scheme (promotional quantity) engine.
"""

from decimal import Decimal
from types import SimpleNamespace
from uuid import uuid4

import pytest

from trade_engines.scheme import (
    require_claim_account_for_scheme2,
    split_quantities,
    validate_claim_account,
    validate_scheme_quantities,
)
from trade_kernel.exceptions import (
    ClaimAccountInactiveError,
    ClaimAccountNotFoundError,
    ClaimAccountRequiredError,
    ClaimAccountTypeError,
    SchemeExceedsQuantityError,
)

CLAIM_TYPES = ("claim", "expense", "adjustment")


def _account(account_type="claim", is_active=True):
    return SimpleNamespace(
        id=uuid4(), name="Principal Claims", account_type=account_type, is_active=is_active
    )


class TestSplitQuantities:

    def test_scheme1_units_are_not_billed(self):
        split = split_quantities("ITEM-A", Decimal("13"), Decimal("1"), Decimal("0"), Decimal("100"))

        assert split.billable_quantity == Decimal("12")
        assert split.stock_quantity == Decimal("13")
        assert split.scheme1_value == Decimal("100.00")
        assert split.scheme2_value == Decimal("0.00")

    def test_both_schemes(self):
        split = split_quantities("ITEM-A", Decimal("15"), Decimal("2"), Decimal("1"), Decimal("99.99"))

        assert split.billable_quantity == Decimal("12")
        assert split.scheme1_value == Decimal("199.98")
        assert split.scheme2_value == Decimal("99.99")

    def test_return_line_split_by_magnitude(self):
        split = split_quantities("ITEM-A", Decimal("-13"), Decimal("1"), Decimal("0"), Decimal("100"))

        assert split.quantity == Decimal("13")
        assert split.billable_quantity == Decimal("12")

    def test_all_units_free(self):
        split = split_quantities("ITEM-A", Decimal("5"), Decimal("3"), Decimal("2"), Decimal("10"))
        assert split.billable_quantity == Decimal("0")


class TestSchemeValidation:

    @pytest.mark.parametrize("qty,s1,s2", [
        (Decimal("10"), Decimal("8"), Decimal("3")),
        (Decimal("10"), Decimal("-1"), Decimal("0")),
        (Decimal("10"), Decimal("0"), Decimal("-1")),
        (Decimal("-4"), Decimal("3"), Decimal("2")),
    ])
    def test_rejected(self, qty, s1, s2):
        with pytest.raises(SchemeExceedsQuantityError) as exc_info:
            validate_scheme_quantities("ITEM-A", qty, s1, s2)

        assert exc_info.value.code == "SCHEME_EXCEEDS_QUANTITY"
        assert exc_info.value.scheme1_quantity == s1

    def test_exact_fit_accepted(self):
        validate_scheme_quantities("ITEM-A", Decimal("10"), Decimal("6"), Decimal("4"))


class TestClaimAccount:

    def test_valid_claim_account(self):
        validate_claim_account(_account(), uuid4(), CLAIM_TYPES)

    def test_missing(self):
        account_id = uuid4()
        with pytest.raises(ClaimAccountNotFoundError) as exc_info:
            validate_claim_account(None, account_id, CLAIM_TYPES)
        assert exc_info.value.account_id == str(account_id)

    def test_inactive(self):
        with pytest.raises(ClaimAccountInactiveError):
            validate_claim_account(_account(is_active=False), uuid4(), CLAIM_TYPES)

    def test_wrong_type(self):
        with pytest.raises(ClaimAccountTypeError) as exc_info:
            validate_claim_account(_account("revenue"), uuid4(), CLAIM_TYPES)
        assert exc_info.value.allowed == CLAIM_TYPES

    def test_scheme2_requires_claim_account(self):
        with pytest.raises(ClaimAccountRequiredError):
            require_claim_account_for_scheme2("SI2024000001", Decimal("100.00"), None)

    def test_scheme2_absent_needs_nothing(self):
        require_claim_account_for_scheme2("SI2024000001", Decimal("0"), None)
