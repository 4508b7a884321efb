"""
InvoiceStateMachine -- the only component that moves an invoice between
statuses, and the owner of the transaction around each move.

Responsibility:
    Runs the confirmation pipeline, payments, cancellation, returns and the
    deferred scheme-claim link as single all-or-nothing units of work.

Architecture position:
    Services -- top of the stack.  Composes TaxConfigCache,
    CreditLimitValidator, StockAllocator, LedgerPoster, ReversalEngine and
    InvoiceDraftService over one Session.  The only class in the package
    that calls commit() or rollback().

Transitions:

    draft      --confirm-->               confirmed
    confirmed  --mark_partially_paid-->   confirmed (payment_status=partial)
    confirmed  --mark_paid-->             paid
    draft      --cancel-->                cancelled   (no side effects)
    confirmed  --cancel-->                cancelled   (ReversalEngine)
    paid       --cancel-->                CannotCancelPaidInvoiceError

Confirmation pipeline (fixed order):

    1. lock invoice row, status guard        InvalidInvoiceStatusError
    2. resolve tax configuration             TaxConfigNotFoundError
    3. price lines (discount, scheme, tax)   SchemeExceedsQuantityError
    4. claim-account rules                   ClaimAccountRequiredError, ...
    5. write recorded totals
    6. credit limit (sales only)             CreditLimitExceededError
    7. stock                                 InsufficientStockError, ...
    8. ledger (+ scheme claim)               UnbalancedPostingError, ...
    9. status = confirmed, commit

Invariants enforced:
    - The status guard runs before any mutation, so a repeated call is
      rejected without side effects.
    - Any exception rolls the whole unit back (or its SAVEPOINT when
      auto_commit is False) and is re-raised unchanged; StaleDataError is
      translated to OptimisticLockError.  Nothing is retried.
"""

from __future__ import annotations

import time
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from typing import Any, Iterator, Mapping, Sequence, Union
from uuid import UUID

from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from trade_config import get_engine_config
from trade_config.schema import EngineConfig
from trade_engines.discount import require_claim_account_for_discount2
from trade_engines.line_totals import (
    InvoiceTotals,
    LineInput,
    TaxContext,
    calculate_line_totals as _calculate_line_totals,
)
from trade_engines.scheme import require_claim_account_for_scheme2, validate_claim_account
from trade_engines.tax import resolve_advance_tax_percent
from trade_kernel.db.types import ZERO, to_decimal
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import (
    CannotCancelPaidInvoiceError,
    InvalidInvoiceStatusError,
    InvalidLineError,
    InvalidPaymentAmountError,
    InvoiceHasActiveReturnsError,
    NoSchemeQuantitiesError,
    OptimisticLockError,
    ReturnQuantityExceededError,
    SchemeClaimAlreadyPostedError,
    SchemeExceedsQuantityError,
)
from trade_kernel.logging_config import LogContext, get_logger
from trade_kernel.models.invoice import (
    Invoice,
    InvoiceLine,
    InvoiceStatus,
    InvoiceType,
    PaymentStatus,
)
from trade_kernel.models.party import Party
from trade_kernel.repositories.account import AccountRepository
from trade_kernel.repositories.batch import BatchRepository
from trade_kernel.repositories.invoice import NOTHING_RETURNED, InvoiceRepository
from trade_kernel.repositories.ledger import LedgerRepository
from trade_kernel.repositories.party import PartyRepository
from trade_kernel.repositories.stock_movement import StockMovementRepository
from trade_kernel.repositories.tax_config import TaxConfigRepository
from trade_services.credit_limit import CreditLimitValidator
from trade_services.invoice_drafts import InvoiceDraftService, LineSpec, line_input_from_row, to_line_input
from trade_services.ledger_poster import LedgerPoster
from trade_services.reversal_engine import ReversalEngine
from trade_services.stock_allocator import StockAllocator
from trade_services.tax_config_cache import TaxConfigCache

logger = get_logger("services.invoice_state_machine")

_RETURN_TYPE_FOR = {
    InvoiceType.SALES.value: InvoiceType.RETURN_SALES.value,
    InvoiceType.PURCHASE.value: InvoiceType.RETURN_PURCHASE.value,
}

_RETURNABLE_STATUSES = frozenset({InvoiceStatus.CONFIRMED.value, InvoiceStatus.PAID.value})


@dataclass(frozen=True)
class ReturnLineRequest:
    """
    One line of a return: which original line, and how many units back.

    quantity and scheme quantities are magnitudes; the return invoice
    stores the quantity negated.  item_id may stand in for original_line_id
    when the item appears once on the original.
    """

    quantity: Decimal
    original_line_id: UUID | None = None
    item_id: str | None = None
    scheme1_quantity: Decimal = ZERO
    scheme2_quantity: Decimal = ZERO


ReturnSpec = Union[ReturnLineRequest, Mapping[str, Any]]


def _stale_entity(exc: StaleDataError) -> str:
    message = str(exc)
    if "'batches'" in message:
        return "Batch"
    return "Invoice"


class InvoiceStateMachine:
    """Status transitions for invoices, each in its own unit of work."""

    def __init__(
        self,
        session: Session,
        config: EngineConfig | None = None,
        clock: Clock | None = None,
        tax_cache: TaxConfigCache | None = None,
        auto_commit: bool = True,
    ):
        self.session = session
        self._config = config or get_engine_config()
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._tax_cache = tax_cache or TaxConfigCache(
            self._config.taxes.cache_ttl_seconds, self._clock
        )

        self._invoices = InvoiceRepository(session)
        self._parties = PartyRepository(session)
        self._accounts = AccountRepository(session)
        self._tax_configs = TaxConfigRepository(session)
        self._batches = BatchRepository(session, self._clock)
        movements = StockMovementRepository(session)
        ledger = LedgerRepository(session)

        self._credit = CreditLimitValidator(self._parties)
        self._stock = StockAllocator(
            session, self._clock, self._batches, movements, self._config.money_decimal_places
        )
        self._poster = LedgerPoster(session, self._config, self._accounts, ledger, self._parties)
        self._reversal = ReversalEngine(
            session, self._poster, self._clock, self._batches, movements, ledger
        )
        self._drafts = InvoiceDraftService(session, self._clock)

    @property
    def tax_cache(self) -> TaxConfigCache:
        return self._tax_cache

    # ------------------------------------------------------------------
    # Transaction boundary
    # ------------------------------------------------------------------

    @contextmanager
    def _transaction(
        self,
        operation: str,
        invoice_id: UUID | None = None,
        actor_id: UUID | None = None,
    ) -> Iterator[None]:
        with LogContext.bind(operation=operation, invoice_id=invoice_id, actor_id=actor_id):
            savepoint = None if self._auto_commit else self.session.begin_nested()
            try:
                yield
                if savepoint is not None:
                    savepoint.commit()
                else:
                    self.session.commit()
            except StaleDataError as exc:
                self._rollback(savepoint, operation)
                raise OptimisticLockError(_stale_entity(exc), str(exc)) from exc
            except Exception:
                self._rollback(savepoint, operation)
                raise

    def _rollback(self, savepoint, operation: str) -> None:
        if savepoint is not None:
            if savepoint.is_active:
                savepoint.rollback()
        else:
            self.session.rollback()
        logger.warning("transition_rolled_back", extra={"operation": operation}, exc_info=True)

    # ------------------------------------------------------------------
    # Confirmation
    # ------------------------------------------------------------------

    def confirm(self, invoice_id: UUID, actor_id: UUID) -> Invoice:
        """
        Confirm a draft: price it, check credit, move stock, post the ledger.

        Raises:
            InvalidInvoiceStatusError: the invoice is not a draft.
            Any error of the pipeline steps; nothing is persisted.
        """
        with self._transaction("confirm", invoice_id, actor_id):
            invoice = self._invoices.require(invoice_id, for_update=True)
            self._confirm_locked(invoice, actor_id)
        return invoice

    def _confirm_locked(self, invoice: Invoice, actor_id: UUID) -> None:
        t0 = time.monotonic()
        self._require_status(invoice, {InvoiceStatus.DRAFT.value}, "confirm")
        if not invoice.lines:
            raise InvalidLineError("lines", "an invoice needs at least one line")

        party = self._parties.require(invoice.party_id)
        inputs = [line_input_from_row(line) for line in invoice.lines]
        totals = _calculate_line_totals(inputs, self._tax_context(invoice, party, inputs))

        schemes = self._config.schemes
        ref = invoice.invoice_number
        require_claim_account_for_discount2(ref, totals.discount2_total, invoice.claim_account_id)
        if schemes.posts_on_confirm:
            require_claim_account_for_scheme2(
                ref, totals.scheme2_value_total, invoice.claim_account_id
            )
        if invoice.claim_account_id is not None:
            validate_claim_account(
                self._accounts.find_by_id(invoice.claim_account_id),
                invoice.claim_account_id,
                schemes.claim_account_types,
            )

        self._write_totals(invoice, totals)

        if invoice.type_value == InvoiceType.SALES.value and self._config.credit.enforce_credit_limit:
            self._credit.check(invoice.party_id, invoice.grand_total)

        self._stock.apply_invoice(invoice, actor_id)
        self._poster.post_invoice(invoice, actor_id)

        claim_account_id = self._claim_account_at_confirm(invoice)
        if claim_account_id is not None and invoice.scheme2_value_total != ZERO:
            self._poster.post_scheme_claim(
                invoice, claim_account_id, invoice.scheme2_value_total, actor_id
            )
            invoice.scheme_claim_posted = True

        invoice.status = InvoiceStatus.CONFIRMED.value
        invoice.confirmed_at = self._clock.now()
        invoice.confirmed_by_id = actor_id
        self.session.flush()

        logger.info("invoice_confirmed", extra={
            "invoice_id": str(invoice.id),
            "invoice_number": invoice.invoice_number,
            "invoice_type": invoice.type_value,
            "grand_total": str(invoice.grand_total),
            "tax_total": str(invoice.tax_total),
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })

    def _claim_account_at_confirm(self, invoice: Invoice) -> UUID | None:
        if invoice.original_invoice_id is not None:
            # a return inverts the claim of its original only once that claim is posted
            original = self._invoices.require(invoice.original_invoice_id, for_update=True)
            return original.claim_account_id if original.scheme_claim_posted else None
        if self._config.schemes.posts_on_confirm:
            return invoice.claim_account_id
        return None

    def _tax_context(self, invoice: Invoice, party: Party, inputs: Sequence[LineInput]) -> TaxContext:
        codes = sorted({code for line in inputs for code in line.tax_codes})
        rates = self._tax_cache.resolve(self._tax_configs, codes) if codes else {}

        advance = ZERO
        if party.advance_tax_applicable:
            advance = resolve_advance_tax_percent(
                getattr(party.registration_type, "value", party.registration_type),
                self._config.taxes.advance_tax_rates,
            )

        return TaxContext(
            rates=rates,
            price_includes_tax=invoice.price_includes_tax,
            is_non_filer=party.is_non_filer,
            non_filer_percent=self._config.taxes.non_filer_surcharge_percent,
            advance_tax_percent=advance,
            decimal_places=self._config.money_decimal_places,
        )

    @staticmethod
    def _write_totals(invoice: Invoice, totals: InvoiceTotals) -> None:
        for row, computed in zip(invoice.lines, totals.lines):
            row.billable_quantity = computed.billable_quantity
            row.gross_amount = computed.gross_amount
            row.discount1_amount = computed.discount1_amount
            row.discount2_amount = computed.discount2_amount
            row.discount_amount = computed.discount_amount
            row.taxable_amount = computed.taxable_amount
            row.gst_amount = computed.gst_amount
            row.advance_tax_amount = computed.advance_tax_amount
            row.non_filer_amount = computed.non_filer_amount
            row.tax_amount = computed.tax_amount
            row.line_total = computed.line_total
            row.scheme1_value = computed.scheme1_value
            row.scheme2_value = computed.scheme2_value

        invoice.subtotal = totals.subtotal
        invoice.discount1_total = totals.discount1_total
        invoice.discount2_total = totals.discount2_total
        invoice.discount_total = totals.discount_total
        invoice.taxable_total = totals.taxable_total
        invoice.gst_total = totals.gst_total
        invoice.advance_tax_total = totals.advance_tax_total
        invoice.non_filer_total = totals.non_filer_total
        invoice.tax_total = totals.tax_total
        invoice.grand_total = totals.grand_total
        invoice.scheme1_value_total = totals.scheme1_value_total
        invoice.scheme2_value_total = totals.scheme2_value_total

    # ------------------------------------------------------------------
    # Payments
    # ------------------------------------------------------------------

    def mark_paid(self, invoice_id: UUID, actor_id: UUID, note: str | None = None) -> Invoice:
        """Settle the remaining balance.  Only payment fields change."""
        with self._transaction("mark_paid", invoice_id, actor_id):
            invoice = self._invoices.require(invoice_id, for_update=True)
            self._require_status(invoice, {InvoiceStatus.CONFIRMED.value}, "mark_paid")

            due = abs(invoice.grand_total)
            self._append_payment_note(invoice, due - invoice.amount_paid, actor_id, note)
            invoice.amount_paid = due
            invoice.payment_status = PaymentStatus.PAID.value
            invoice.status = InvoiceStatus.PAID.value
            invoice.paid_at = self._clock.now()
            invoice.paid_by_id = actor_id
            self.session.flush()

            logger.info("invoice_paid", extra={
                "invoice_id": str(invoice.id),
                "amount_paid": str(invoice.amount_paid),
            })
        return invoice

    def mark_partially_paid(
        self,
        invoice_id: UUID,
        amount: Decimal,
        actor_id: UUID,
        note: str | None = None,
    ) -> Invoice:
        """
        Record a part payment.  The running amount paid must stay strictly
        between zero and the grand total; settle the rest with mark_paid().

        Raises:
            InvalidPaymentAmountError
        """
        with self._transaction("mark_partially_paid", invoice_id, actor_id):
            invoice = self._invoices.require(invoice_id, for_update=True)
            self._require_status(invoice, {InvoiceStatus.CONFIRMED.value}, "mark_partially_paid")

            try:
                amount = to_decimal(amount)
            except (TypeError, ArithmeticError) as exc:
                raise InvalidPaymentAmountError(str(invoice.id), amount, invoice.grand_total) from exc
            due = abs(invoice.grand_total)
            paid = invoice.amount_paid + amount
            if amount <= ZERO or not (ZERO < paid < due):
                raise InvalidPaymentAmountError(str(invoice.id), amount, invoice.grand_total)

            self._append_payment_note(invoice, amount, actor_id, note)
            invoice.amount_paid = paid
            invoice.payment_status = PaymentStatus.PARTIAL.value
            self.session.flush()

            logger.info("invoice_partially_paid", extra={
                "invoice_id": str(invoice.id),
                "amount": str(amount),
                "amount_paid": str(paid),
                "outstanding": str(due - paid),
            })
        return invoice

    def _append_payment_note(self, invoice: Invoice, amount: Decimal, actor_id: UUID, note: str | None) -> None:
        # JSON column: assign a new list so the change is detected
        invoice.payment_notes = [
            *(invoice.payment_notes or []),
            {
                "amount": str(amount),
                "at": self._clock.now().isoformat(),
                "by": str(actor_id),
                "note": note,
            },
        ]

    # ------------------------------------------------------------------
    # Cancellation
    # ------------------------------------------------------------------

    def cancel(self, invoice_id: UUID, reason: str, actor_id: UUID) -> Invoice:
        """
        Cancel a draft (no side effects) or a confirmed invoice (full reversal).

        Raises:
            CannotCancelPaidInvoiceError: any payment was recorded.
            InvoiceHasActiveReturnsError: returns against it are not cancelled.
            InvalidInvoiceStatusError: already cancelled.
        """
        with self._transaction("cancel", invoice_id, actor_id):
            invoice = self._invoices.require(invoice_id, for_update=True)
            if invoice.status == InvoiceStatus.CANCELLED.value:
                raise InvalidInvoiceStatusError(str(invoice.id), invoice.status, "cancel")
            if (
                invoice.status == InvoiceStatus.PAID.value
                or invoice.payment_status != PaymentStatus.PENDING.value
            ):
                raise CannotCancelPaidInvoiceError(str(invoice.id))

            active_returns = self._invoices.find_returns(invoice.id)
            if active_returns:
                raise InvoiceHasActiveReturnsError(
                    str(invoice.id), [str(r.id) for r in active_returns]
                )

            was_confirmed = invoice.status == InvoiceStatus.CONFIRMED.value
            if was_confirmed:
                self._reversal.reverse_invoice(invoice, actor_id, reason)

            invoice.status = InvoiceStatus.CANCELLED.value
            invoice.cancelled_at = self._clock.now()
            invoice.cancelled_by_id = actor_id
            invoice.cancellation_reason = reason
            self.session.flush()

            logger.info("invoice_cancelled", extra={
                "invoice_id": str(invoice.id),
                "invoice_number": invoice.invoice_number,
                "reversed": was_confirmed,
                "reason": reason,
            })
        return invoice

    # ------------------------------------------------------------------
    # Returns
    # ------------------------------------------------------------------

    def create_return(
        self,
        original_invoice_id: UUID,
        lines: Sequence[ReturnSpec],
        actor_id: UUID,
        reason: str | None = None,
        confirm: bool = True,
    ) -> Invoice:
        """
        Create a return against a confirmed or paid invoice.

        Prices, discounts, tax codes, party, warehouse and claim account are
        inherited from the original.  With ``confirm`` the return goes
        through the confirmation pipeline in the same unit of work.

        Raises:
            InvalidInvoiceStatusError: original is not confirmed or paid.
            ReturnQuantityExceededError: more units than remain returnable.
        """
        with self._transaction("create_return", original_invoice_id, actor_id):
            original = self._invoices.require(original_invoice_id, for_update=True)
            if original.type_value not in _RETURN_TYPE_FOR:
                raise InvalidLineError(
                    "original_invoice_id", "only sales and purchase invoices can be returned"
                )
            self._require_status(original, _RETURNABLE_STATUSES, "create_return")

            requests = [self._to_request(spec) for spec in lines]
            if not requests:
                raise InvalidLineError("lines", "a return needs at least one line")

            returned = self._invoices.returned_quantities(original.id)
            return_lines: list[LineInput] = []
            for request in requests:
                source = self._find_original_line(original, request)
                quantity = abs(to_decimal(request.quantity))
                if quantity == ZERO:
                    raise InvalidLineError("quantity", "must not be zero", source.item_id)

                already = returned.get(source.id, NOTHING_RETURNED)
                original_quantity = abs(source.quantity)
                if already.quantity + quantity > original_quantity:
                    raise ReturnQuantityExceededError(
                        str(source.id), quantity, original_quantity, already.quantity
                    )

                scheme1 = to_decimal(request.scheme1_quantity)
                scheme2 = to_decimal(request.scheme2_quantity)
                if (
                    already.scheme1 + scheme1 > source.scheme1_quantity
                    or already.scheme2 + scheme2 > source.scheme2_quantity
                ):
                    raise SchemeExceedsQuantityError(source.item_id, -quantity, scheme1, scheme2)
                returned[source.id] = already.plus(quantity, scheme1, scheme2)

                return_lines.append(LineInput(
                    item_id=source.item_id,
                    quantity=-quantity,
                    unit_price=source.unit_price,
                    discount1_percent=source.discount1_percent,
                    discount2_percent=source.discount2_percent,
                    scheme1_quantity=scheme1,
                    scheme2_quantity=scheme2,
                    gst_rate=source.gst_rate,
                    tax_codes=tuple(source.tax_codes or ()),
                    warehouse_id=source.warehouse_id,
                    original_line_id=source.id,
                ))

            draft = self._drafts.create_draft(
                invoice_type=_RETURN_TYPE_FOR[original.type_value],
                party_id=original.party_id,
                warehouse_id=original.warehouse_id,
                lines=return_lines,
                actor_id=actor_id,
                invoice_date=self._clock.today(),
                claim_account_id=original.claim_account_id,
                original_invoice_id=original.id,
                price_includes_tax=original.price_includes_tax,
                notes=reason,
            )
            logger.info("return_created", extra={
                "invoice_id": str(draft.id),
                "original_invoice_id": str(original.id),
                "line_count": len(return_lines),
            })
            if confirm:
                self._confirm_locked(draft, actor_id)
        return draft

    @staticmethod
    def _to_request(spec: ReturnSpec) -> ReturnLineRequest:
        if isinstance(spec, ReturnLineRequest):
            return spec
        try:
            return ReturnLineRequest(**dict(spec))
        except TypeError as exc:
            raise InvalidLineError("line", str(exc), spec.get("item_id")) from exc

    @staticmethod
    def _find_original_line(original: Invoice, request: ReturnLineRequest) -> InvoiceLine:
        if request.original_line_id is not None:
            for line in original.lines:
                if line.id == request.original_line_id:
                    return line
            raise InvalidLineError(
                "original_line_id",
                f"{request.original_line_id} is not a line of {original.invoice_number}",
                request.item_id,
            )
        matches = [line for line in original.lines if line.item_id == request.item_id]
        if len(matches) != 1:
            raise InvalidLineError(
                "item_id",
                f"item must appear exactly once on {original.invoice_number}; "
                "name the original line instead",
                request.item_id,
            )
        return matches[0]

    # ------------------------------------------------------------------
    # Deferred scheme claim
    # ------------------------------------------------------------------

    def link_scheme_claim(self, invoice_id: UUID, claim_account_id: UUID, actor_id: UUID) -> Invoice:
        """
        Post the scheme2 claim of a confirmed invoice against a claim account.

        Returns confirmed before the link get their inverse claim posted in the
        same unit of work, so the account carries only the units still sold.
        Returns confirmed later invert their share on confirmation.

        Raises:
            SchemeClaimAlreadyPostedError: the claim was posted before.
            NoSchemeQuantitiesError: the invoice carries no scheme2 units
                that have not been returned.
            ClaimAccountNotFoundError / ClaimAccountInactiveError /
            ClaimAccountTypeError: the account cannot absorb claims.
        """
        with self._transaction("link_scheme_claim", invoice_id, actor_id):
            invoice = self._invoices.require(invoice_id, for_update=True)
            self._require_status(invoice, _RETURNABLE_STATUSES, "link_scheme_claim")
            if invoice.original_invoice_id is not None:
                raise InvalidLineError(
                    "invoice_id", "a return follows the scheme claim of its original invoice"
                )
            if invoice.scheme_claim_posted:
                raise SchemeClaimAlreadyPostedError(str(invoice.id))

            returns = [
                ret for ret in self._invoices.find_returns(invoice.id)
                if ret.status in _RETURNABLE_STATUSES and ret.scheme2_value_total != ZERO
            ]
            net_amount = invoice.scheme2_value_total + sum(
                (ret.scheme2_value_total for ret in returns), ZERO
            )
            if net_amount == ZERO:
                raise NoSchemeQuantitiesError(str(invoice.id))

            validate_claim_account(
                self._accounts.find_by_id(claim_account_id),
                claim_account_id,
                self._config.schemes.claim_account_types,
            )
            self._poster.post_scheme_claim(
                invoice, claim_account_id, invoice.scheme2_value_total, actor_id
            )
            invoice.claim_account_id = claim_account_id
            invoice.scheme_claim_posted = True

            for ret in returns:
                locked = self._invoices.require(ret.id, for_update=True)
                self._poster.post_scheme_claim(
                    locked, claim_account_id, locked.scheme2_value_total, actor_id
                )
                locked.claim_account_id = claim_account_id
                locked.scheme_claim_posted = True
            self.session.flush()

            logger.info("scheme_claim_linked", extra={
                "invoice_id": str(invoice.id),
                "claim_account_id": str(claim_account_id),
                "amount": str(net_amount),
                "returns_inverted": len(returns),
            })
        return invoice

    # ------------------------------------------------------------------
    # Previews and housekeeping
    # ------------------------------------------------------------------

    def preview(self, invoice_id: UUID) -> InvoiceTotals:
        """Price a stored invoice with the current configuration.  Writes nothing."""
        with LogContext.bind(operation="preview", invoice_id=invoice_id):
            invoice = self._invoices.require(invoice_id)
            party = self._parties.require(invoice.party_id)
            inputs = [line_input_from_row(line) for line in invoice.lines]
            return _calculate_line_totals(inputs, self._tax_context(invoice, party, inputs))

    @staticmethod
    def calculate_line_totals(lines: Sequence[LineSpec], tax_config: TaxContext) -> InvoiceTotals:
        """Pure preview of caller-supplied lines."""
        return _calculate_line_totals([to_line_input(spec) for spec in lines], tax_config)

    def refresh_batch_statuses(self, as_of: date | None = None) -> int:
        with self._transaction("refresh_batch_statuses"):
            changed = self._batches.refresh_statuses(as_of)
        return changed

    @staticmethod
    def _require_status(invoice: Invoice, allowed: set[str] | frozenset[str], operation: str) -> None:
        status = getattr(invoice.status, "value", invoice.status)
        if status not in allowed:
            logger.info("invalid_transition_rejected", extra={
                "invoice_id": str(invoice.id),
                "status": status,
                "operation": operation,
            })
            raise InvalidInvoiceStatusError(str(invoice.id), status, operation)
