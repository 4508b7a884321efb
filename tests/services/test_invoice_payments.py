"""Tests for mark_paid() and mark_partially_paid()."""

from decimal import Decimal

import pytest

from trade_kernel.exceptions import InvalidInvoiceStatusError, InvalidPaymentAmountError
from trade_kernel.models.account import Account
from trade_kernel.models.invoice import Invoice, InvoiceStatus, PaymentStatus
from trade_kernel.repositories.ledger import LedgerRepository


@pytest.fixture
def confirmed_sale(session, state_machine, make_batch, make_sales_draft, test_actor_id):
    make_batch(100)
    draft = make_sales_draft()
    session.commit()
    return state_machine.confirm(draft.id, test_actor_id)


class TestMarkPaid:

    def test_settles_full_amount(self, session, state_machine, confirmed_sale, customer, test_actor_id):
        invoice = state_machine.mark_paid(confirmed_sale.id, test_actor_id, note="cheque 4411")

        assert invoice.status == InvoiceStatus.PAID.value
        assert invoice.payment_status == PaymentStatus.PAID.value
        assert invoice.amount_paid == Decimal("1180.00")
        assert invoice.paid_by_id == test_actor_id
        assert invoice.payment_notes[-1]["note"] == "cheque 4411"
        assert Decimal(invoice.payment_notes[-1]["amount"]) == Decimal("1180.00")

    def test_payment_does_not_touch_ledger(self, session, state_machine, confirmed_sale, customer,
                                           test_actor_id):
        ledger = LedgerRepository(session)
        before = len(ledger.entries_for_reference(confirmed_sale.id))

        state_machine.mark_paid(confirmed_sale.id, test_actor_id)

        assert len(ledger.entries_for_reference(confirmed_sale.id)) == before
        assert session.get(Account, customer.account_id).balance == Decimal("1180.00")

    def test_draft_cannot_be_paid(self, session, state_machine, make_sales_draft, test_actor_id):
        draft = make_sales_draft()
        session.commit()

        with pytest.raises(InvalidInvoiceStatusError) as exc_info:
            state_machine.mark_paid(draft.id, test_actor_id)
        assert exc_info.value.operation == "mark_paid"

    def test_paid_twice(self, state_machine, confirmed_sale, test_actor_id):
        state_machine.mark_paid(confirmed_sale.id, test_actor_id)

        with pytest.raises(InvalidInvoiceStatusError):
            state_machine.mark_paid(confirmed_sale.id, test_actor_id)


class TestPartialPayment:

    def test_running_total(self, state_machine, confirmed_sale, test_actor_id):
        state_machine.mark_partially_paid(confirmed_sale.id, Decimal("500"), test_actor_id)
        invoice = state_machine.mark_partially_paid(confirmed_sale.id, "180.00", test_actor_id)

        assert invoice.status == InvoiceStatus.CONFIRMED.value
        assert invoice.payment_status == PaymentStatus.PARTIAL.value
        assert invoice.amount_paid == Decimal("680.00")
        assert len(invoice.payment_notes) == 2

    def test_settle_remainder(self, state_machine, confirmed_sale, test_actor_id):
        state_machine.mark_partially_paid(confirmed_sale.id, Decimal("500"), test_actor_id)

        invoice = state_machine.mark_paid(confirmed_sale.id, test_actor_id)

        assert invoice.amount_paid == Decimal("1180.00")
        assert Decimal(invoice.payment_notes[-1]["amount"]) == Decimal("680.00")

    @pytest.mark.parametrize("amount", [
        Decimal("0"),
        Decimal("-10"),
        Decimal("1180.00"),
        Decimal("2000"),
        12.5,
        "abc",
    ])
    def test_rejected_amounts(self, session, state_machine, confirmed_sale, test_actor_id, amount):
        with pytest.raises(InvalidPaymentAmountError):
            state_machine.mark_partially_paid(confirmed_sale.id, amount, test_actor_id)

        invoice = session.get(Invoice, confirmed_sale.id)
        assert invoice.amount_paid == Decimal("0")
        assert invoice.payment_status == PaymentStatus.PENDING.value

    def test_cannot_reach_total_in_parts(self, state_machine, confirmed_sale, test_actor_id):
        state_machine.mark_partially_paid(confirmed_sale.id, Decimal("1000"), test_actor_id)

        with pytest.raises(InvalidPaymentAmountError) as exc_info:
            state_machine.mark_partially_paid(confirmed_sale.id, Decimal("180"), test_actor_id)
        assert exc_info.value.grand_total == Decimal("1180.00")
