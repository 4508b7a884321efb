"""
Tests for LedgerPoster.

Totals are written onto draft invoices by hand so each posting template
can be checked in isolation from pricing.
"""

from datetime import date
from decimal import Decimal
from uuid import uuid4

import pytest

from trade_config import get_engine_config
from trade_kernel.exceptions import (
    AccountInactiveError,
    AccountNotFoundError,
    UnbalancedPostingError,
)
from trade_kernel.models.account import Account
from trade_kernel.models.ledger_entry import PostingKind
from trade_kernel.repositories.ledger import LedgerRepository
from trade_services.ledger_poster import LedgerPoster, credit_line, debit_line


@pytest.fixture
def poster(session, engine_config):
    return LedgerPoster(session, engine_config)


def _set_totals(invoice, taxable, tax):
    invoice.taxable_total = Decimal(taxable)
    invoice.tax_total = Decimal(tax)
    invoice.grand_total = Decimal(taxable) + Decimal(tax)
    return invoice


def _balance(session, account_id):
    return session.get(Account, account_id).balance


class TestSignedLines:

    def test_positive_debit(self):
        line = debit_line(None, Decimal("10"), "x")
        assert (line.debit, line.credit) == (Decimal("10"), Decimal("0"))

    def test_negative_debit_becomes_credit(self):
        line = debit_line(None, Decimal("-10"), "x")
        assert (line.debit, line.credit) == (Decimal("0"), Decimal("10"))

    def test_negative_credit_becomes_debit(self):
        line = credit_line(None, Decimal("-10"), "x")
        assert (line.debit, line.credit) == (Decimal("10"), Decimal("0"))

    def test_zero(self):
        assert debit_line(None, Decimal("0"), "x").is_zero


class TestPostInvoice:

    def test_sales_template(self, session, poster, make_sales_draft, customer, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_sales_draft(), "855.00", "153.90")

        result = poster.post_invoice(invoice, test_actor_id)

        assert result.posting_kind == PostingKind.CONFIRMATION.value
        assert result.total_debits == result.total_credits == Decimal("1008.90")
        assert [e.line_seq for e in result.entries] == [1, 2, 3]
        assert {e.posting_id for e in result.entries} == {result.posting_id}
        assert all(e.entry_date == invoice.invoice_date for e in result.entries)

        assert _balance(session, customer.account_id) == Decimal("1008.90")
        assert chart_of_accounts["revenue"].balance == Decimal("855.00")
        assert chart_of_accounts["tax_payable"].balance == Decimal("153.90")

    def test_purchase_template(self, session, poster, make_purchase_draft, supplier, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_purchase_draft(), "3000.00", "540.00")

        poster.post_invoice(invoice, test_actor_id)

        assert chart_of_accounts["inventory"].balance == Decimal("3000.00")
        assert chart_of_accounts["tax_input"].balance == Decimal("540.00")
        assert _balance(session, supplier.account_id) == Decimal("3540.00")

    def test_negative_totals_swap_sides(self, session, poster, make_sales_draft, customer, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_sales_draft(), "-855.00", "-153.90")

        result = poster.post_invoice(invoice, test_actor_id)

        party_entry = result.entries[0]
        assert party_entry.debit == Decimal("0")
        assert party_entry.credit == Decimal("1008.90")
        assert _balance(session, customer.account_id) == Decimal("-1008.90")
        assert chart_of_accounts["revenue"].balance == Decimal("-855.00")

    def test_zero_tax_line_dropped(self, poster, make_sales_draft, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_sales_draft(), "500.00", "0")

        result = poster.post_invoice(invoice, test_actor_id)

        assert len(result.entries) == 2

    def test_all_zero_posting_skipped(self, session, poster, make_sales_draft, chart_of_accounts, test_actor_id, captured_logs):
        invoice = make_sales_draft()

        assert poster.post_invoice(invoice, test_actor_id) is None
        assert LedgerRepository(session).entries_for_reference(invoice.id) == []
        assert any(r["message"] == "posting_skipped_zero" for r in captured_logs())

    def test_unbalanced_rejected_before_write(self, session, poster, make_sales_draft, chart_of_accounts, test_actor_id, captured_logs):
        invoice = _set_totals(make_sales_draft(), "855.00", "153.90")
        invoice.grand_total = Decimal("1000.00")

        with pytest.raises(UnbalancedPostingError) as exc_info:
            poster.post_invoice(invoice, test_actor_id)

        assert exc_info.value.debits == Decimal("1000.00")
        assert exc_info.value.credits == Decimal("1008.90")
        assert LedgerRepository(session).entries_for_reference(invoice.id) == []
        assert chart_of_accounts["revenue"].balance == Decimal("0")
        errors = [r for r in captured_logs() if r["message"] == "posting_unbalanced"]
        assert errors[0]["level"] == "ERROR"

    def test_inactive_account(self, session, poster, make_sales_draft, chart_of_accounts, test_actor_id):
        chart_of_accounts["tax_payable"].is_active = False
        session.flush()
        invoice = _set_totals(make_sales_draft(), "855.00", "153.90")

        with pytest.raises(AccountInactiveError) as exc_info:
            poster.post_invoice(invoice, test_actor_id)

        assert exc_info.value.account_code == "2100"
        assert LedgerRepository(session).entries_for_reference(invoice.id) == []

    def test_missing_control_account(self, session, make_sales_draft, chart_of_accounts, test_actor_id):
        config = get_engine_config(overrides={"accounts": {"revenue": "4999"}})
        invoice = _set_totals(make_sales_draft(), "855.00", "153.90")

        with pytest.raises(AccountNotFoundError) as exc_info:
            LedgerPoster(session, config).post_invoice(invoice, test_actor_id)
        assert exc_info.value.account_ref == "4999"


class TestSchemeClaim:

    def test_claim_posting(self, session, poster, make_sales_draft, customer, claim_account, test_actor_id):
        invoice = make_sales_draft()

        result = poster.post_scheme_claim(invoice, claim_account.id, Decimal("200.00"), test_actor_id)

        assert result.posting_kind == PostingKind.SCHEME_CLAIM.value
        assert claim_account.balance == Decimal("200.00")
        assert _balance(session, customer.account_id) == Decimal("-200.00")


class TestReversePosting:

    def test_swapped_roles(self, session, poster, make_sales_draft, customer, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_sales_draft(), "855.00", "153.90")
        original = poster.post_invoice(invoice, test_actor_id)

        reversal = poster.reverse_posting(
            original.posting_id, test_actor_id, date(2024, 6, 15), reason="keyed twice"
        )

        assert reversal.posting_kind == PostingKind.REVERSAL.value
        assert reversal.posting_id != original.posting_id
        for before, after in zip(original.entries, reversal.entries):
            assert after.account_id == before.account_id
            assert after.debit == before.credit
            assert after.credit == before.debit
            assert after.reverses_posting_id == original.posting_id
            assert after.entry_date == date(2024, 6, 15)
            assert after.description.endswith("(keyed twice)")

        assert _balance(session, customer.account_id) == Decimal("0")
        assert chart_of_accounts["revenue"].balance == Decimal("0")
        assert chart_of_accounts["tax_payable"].balance == Decimal("0")

    def test_original_entries_untouched(self, session, poster, make_sales_draft, chart_of_accounts, test_actor_id):
        invoice = _set_totals(make_sales_draft(), "100.00", "18.00")
        original = poster.post_invoice(invoice, test_actor_id)
        poster.reverse_posting(original.posting_id, test_actor_id, date(2024, 6, 1))

        stored = LedgerRepository(session).entries_for_posting(original.posting_id)
        assert [(e.debit, e.credit) for e in stored] == [
            (e.debit, e.credit) for e in original.entries
        ]
        assert all(e.reverses_posting_id is None for e in stored)

    def test_unknown_posting(self, poster, test_actor_id):
        assert poster.reverse_posting(uuid4(), test_actor_id, date(2024, 6, 1)) is None
