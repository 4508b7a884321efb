"""Tests for InvoiceDraftService and the pure preview paths of the state machine."""

from decimal import Decimal
from uuid import uuid4

import pytest

from conftest import WAREHOUSE, sales_line
from trade_engines.line_totals import TaxContext
from trade_kernel.exceptions import (
    InvalidLineError,
    InvoiceLockedError,
    PartyNotFoundError,
    SchemeExceedsQuantityError,
)
from trade_kernel.models.invoice import Invoice, InvoiceStatus, PaymentStatus
from trade_services.invoice_state_machine import InvoiceStateMachine


class TestCreateDraft:

    def test_draft_fields(self, make_sales_draft, customer, test_actor_id, clock):
        draft = make_sales_draft(notes="phone order")

        assert draft.status == InvoiceStatus.DRAFT.value
        assert draft.payment_status == PaymentStatus.PENDING.value
        assert draft.invoice_number == "SI2024000001"
        assert draft.invoice_date == clock.today()
        assert draft.party_id == customer.id
        assert draft.created_by_id == test_actor_id
        assert draft.grand_total == Decimal("0")
        assert [line.line_no for line in draft.lines] == [1]

    def test_numbers_are_sequential_per_prefix(self, make_sales_draft, make_purchase_draft):
        first = make_sales_draft()
        purchase = make_purchase_draft()
        second = make_sales_draft()

        assert first.invoice_number == "SI2024000001"
        assert second.invoice_number == "SI2024000002"
        assert purchase.invoice_number == "PI2024000001"

    def test_scheme_violation_never_persisted(self, session, make_sales_draft):
        with pytest.raises(SchemeExceedsQuantityError):
            make_sales_draft([sales_line(quantity=Decimal("5"), scheme1_quantity=Decimal("6"))])

        assert session.query(Invoice).count() == 0

    @pytest.mark.parametrize("line,field", [
        (sales_line(quantity=Decimal("-1")), "quantity"),
        (sales_line(discount1_percent=Decimal("120")), "discount1_percent"),
        (sales_line(unit_price=9.99), "unit_price"),
        (sales_line(colour="red"), "line"),
    ])
    def test_bad_lines(self, make_sales_draft, line, field):
        with pytest.raises(InvalidLineError) as exc_info:
            make_sales_draft([line])
        assert exc_info.value.field == field

    def test_empty_lines(self, make_sales_draft):
        with pytest.raises(InvalidLineError) as exc_info:
            make_sales_draft([])
        assert exc_info.value.field == "lines"

    def test_unknown_party(self, draft_service, chart_of_accounts, test_actor_id):
        with pytest.raises(PartyNotFoundError):
            draft_service.create_draft(
                invoice_type="sales",
                party_id=uuid4(),
                warehouse_id=WAREHOUSE,
                lines=[sales_line()],
                actor_id=test_actor_id,
            )

    def test_unknown_invoice_type(self, draft_service, customer, test_actor_id):
        with pytest.raises(InvalidLineError) as exc_info:
            draft_service.create_draft(
                invoice_type="proforma",
                party_id=customer.id,
                warehouse_id=WAREHOUSE,
                lines=[sales_line()],
                actor_id=test_actor_id,
            )
        assert exc_info.value.field == "invoice_type"

    def test_return_needs_original(self, draft_service, customer, test_actor_id):
        with pytest.raises(InvalidLineError) as exc_info:
            draft_service.create_draft(
                invoice_type="return_sales",
                party_id=customer.id,
                warehouse_id=WAREHOUSE,
                lines=[sales_line(quantity=Decimal("-1"), original_line_id=uuid4())],
                actor_id=test_actor_id,
            )
        assert exc_info.value.field == "original_invoice_id"


class TestReplaceLines:

    def test_replace_on_draft(self, draft_service, make_sales_draft, test_actor_id):
        draft = make_sales_draft()

        updated = draft_service.replace_lines(
            draft.id,
            [sales_line(quantity=Decimal("2")), sales_line(item_id="ITEM-B")],
            test_actor_id,
        )

        assert [(line.line_no, line.item_id) for line in updated.lines] == [(1, "ITEM-A"), (2, "ITEM-B")]
        assert updated.lines[0].quantity == Decimal("2")

    def test_confirmed_invoice_is_locked(self, session, draft_service, state_machine, make_batch,
                                         make_sales_draft, test_actor_id):
        make_batch(100)
        draft = make_sales_draft()
        session.commit()
        state_machine.confirm(draft.id, test_actor_id)

        with pytest.raises(InvoiceLockedError) as exc_info:
            draft_service.replace_lines(draft.id, [sales_line()], test_actor_id)
        assert exc_info.value.status == "confirmed"


class TestPreview:

    def test_pure_line_totals(self):
        totals = InvoiceStateMachine.calculate_line_totals(
            [sales_line(discount1_percent=Decimal("10"), discount2_percent=Decimal("5"))],
            TaxContext(),
        )
        assert totals.grand_total == Decimal("1008.90")

    def test_preview_writes_nothing(self, session, state_machine, make_sales_draft, make_party):
        draft = make_sales_draft(party=make_party(is_non_filer=True))

        totals = state_machine.preview(draft.id)

        assert totals.grand_total == Decimal("1181.00")
        assert session.get(Invoice, draft.id).grand_total == Decimal("0")
