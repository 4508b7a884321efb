"""
LedgerPoster -- balanced double-entry postings for invoices.

Responsibility:
    Builds the posting for a confirming invoice from its recorded totals,
    the scheme2 claim posting, and the swapped-role reversal of any earlier
    posting.  Every posting is validated as a whole before a single entry
    is added, and account balances move in the same flush.

Architecture position:
    Services -- imperative shell over AccountRepository, LedgerRepository
    and PartyRepository.  Flush-only; the state machine owns the
    transaction.

Posting templates (amounts are signed; a negative amount changes side):

    sales / return_sales
        Dr  party account      grand_total
        Cr  revenue            taxable_total
        Cr  tax payable        tax_total

    purchase / return_purchase
        Dr  inventory          taxable_total
        Dr  tax input          tax_total
        Cr  party account      grand_total

    scheme claim
        Dr  claim account      scheme2 value
        Cr  party account      scheme2 value

Invariants enforced:
    - Sum(debit) == Sum(credit) per posting_id, checked before flush.
    - Zero-amount lines are dropped; a posting with no lines is not written.
    - Every entry of a posting shares posting_id, reference and entry date.

Failure modes:
    - UnbalancedPostingError (logged at ERROR).
    - AccountNotFoundError / AccountInactiveError for any target account.
"""

from __future__ import annotations

import time
from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID, uuid4

from trade_config.schema import EngineConfig
from trade_kernel.db.types import ZERO
from trade_kernel.exceptions import AccountInactiveError, UnbalancedPostingError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.invoice import Invoice, InvoiceType
from trade_kernel.models.ledger_entry import LedgerEntry, PostingKind
from trade_kernel.repositories.account import AccountRepository
from trade_kernel.repositories.ledger import LedgerRepository
from trade_kernel.repositories.party import PartyRepository
from trade_kernel.services.base import BaseService

logger = get_logger("services.ledger_poster")

REFERENCE_TYPE = "invoice"

_SALES_SIDE = frozenset({InvoiceType.SALES.value, InvoiceType.RETURN_SALES.value})


@dataclass(frozen=True)
class PostingLine:
    """One debit or credit before it becomes a LedgerEntry."""

    account_id: UUID
    debit: Decimal
    credit: Decimal
    description: str

    @property
    def is_zero(self) -> bool:
        return self.debit == ZERO and self.credit == ZERO


def debit_line(account_id: UUID, amount: Decimal, description: str) -> PostingLine:
    """Debit a signed amount; a negative amount is posted as a credit."""
    if amount < ZERO:
        return PostingLine(account_id, ZERO, -amount, description)
    return PostingLine(account_id, amount, ZERO, description)


def credit_line(account_id: UUID, amount: Decimal, description: str) -> PostingLine:
    """Credit a signed amount; a negative amount is posted as a debit."""
    if amount < ZERO:
        return PostingLine(account_id, -amount, ZERO, description)
    return PostingLine(account_id, ZERO, amount, description)


@dataclass(frozen=True)
class PostingResult:
    posting_id: UUID
    posting_kind: str
    reference_id: UUID
    entries: tuple[LedgerEntry, ...]

    @property
    def total_debits(self) -> Decimal:
        return sum((e.debit for e in self.entries), ZERO)

    @property
    def total_credits(self) -> Decimal:
        return sum((e.credit for e in self.entries), ZERO)


class LedgerPoster(BaseService):

    def __init__(
        self,
        session,
        config: EngineConfig,
        accounts: AccountRepository | None = None,
        ledger: LedgerRepository | None = None,
        parties: PartyRepository | None = None,
    ):
        super().__init__(session)
        self._config = config
        self._accounts = accounts or AccountRepository(session)
        self._ledger = ledger or LedgerRepository(session)
        self._parties = parties or PartyRepository(session)

    # ------------------------------------------------------------------
    # Postings
    # ------------------------------------------------------------------

    def post_invoice(self, invoice: Invoice, actor_id: UUID) -> PostingResult | None:
        """Post the confirmation entries for an invoice from its recorded totals."""
        party_account_id = self._parties.require(invoice.party_id).account_id
        codes = self._config.accounts
        number = invoice.invoice_number

        if invoice.type_value in _SALES_SIDE:
            revenue = self._accounts.require_by_code(codes.revenue)
            tax_payable = self._accounts.require_by_code(codes.tax_payable)
            lines = [
                debit_line(party_account_id, invoice.grand_total, f"{number} receivable"),
                credit_line(revenue.id, invoice.taxable_total, f"{number} revenue"),
                credit_line(tax_payable.id, invoice.tax_total, f"{number} tax payable"),
            ]
        else:
            inventory = self._accounts.require_by_code(codes.inventory)
            tax_input = self._accounts.require_by_code(codes.tax_input)
            lines = [
                debit_line(inventory.id, invoice.taxable_total, f"{number} inventory"),
                debit_line(tax_input.id, invoice.tax_total, f"{number} input tax"),
                credit_line(party_account_id, invoice.grand_total, f"{number} payable"),
            ]

        return self._write(
            lines,
            reference_id=invoice.id,
            posting_kind=PostingKind.CONFIRMATION,
            entry_date=invoice.invoice_date,
            actor_id=actor_id,
        )

    def post_scheme_claim(
        self,
        invoice: Invoice,
        claim_account_id: UUID,
        amount: Decimal,
        actor_id: UUID,
    ) -> PostingResult | None:
        """Charge scheme2 units to the claim account against the party account."""
        party_account_id = self._parties.require(invoice.party_id).account_id
        description = f"{invoice.invoice_number} scheme claim"
        return self._write(
            [
                debit_line(claim_account_id, amount, description),
                credit_line(party_account_id, amount, description),
            ],
            reference_id=invoice.id,
            posting_kind=PostingKind.SCHEME_CLAIM,
            entry_date=invoice.invoice_date,
            actor_id=actor_id,
        )

    def reverse_posting(
        self,
        posting_id: UUID,
        actor_id: UUID,
        entry_date: date,
        reason: str | None = None,
    ) -> PostingResult | None:
        """
        Write the swapped-role posting of an earlier one.

        Amounts are copied from the recorded entries, never recomputed.
        """
        original = self._ledger.entries_for_posting(posting_id)
        if not original:
            return None
        suffix = f" ({reason})" if reason else ""
        lines = [
            PostingLine(
                account_id=e.account_id,
                debit=e.credit,
                credit=e.debit,
                description=f"Reversal: {e.description}{suffix}"[:500],
            )
            for e in original
        ]
        return self._write(
            lines,
            reference_id=original[0].reference_id,
            posting_kind=PostingKind.REVERSAL,
            entry_date=entry_date,
            actor_id=actor_id,
            reverses_posting_id=posting_id,
            reference_type=original[0].reference_type,
        )

    # ------------------------------------------------------------------
    # Internal
    # ------------------------------------------------------------------

    def _write(
        self,
        lines: list[PostingLine],
        *,
        reference_id: UUID,
        posting_kind: PostingKind,
        entry_date: date,
        actor_id: UUID,
        reverses_posting_id: UUID | None = None,
        reference_type: str = REFERENCE_TYPE,
    ) -> PostingResult | None:
        t0 = time.monotonic()
        lines = [line for line in lines if not line.is_zero]
        if not lines:
            logger.info("posting_skipped_zero", extra={
                "reference_id": str(reference_id),
                "posting_kind": posting_kind.value,
            })
            return None

        debits = sum((line.debit for line in lines), ZERO)
        credits = sum((line.credit for line in lines), ZERO)
        if debits != credits:
            logger.error("posting_unbalanced", extra={
                "reference_id": str(reference_id),
                "posting_kind": posting_kind.value,
                "debits": str(debits),
                "credits": str(credits),
            })
            raise UnbalancedPostingError(str(reference_id), debits, credits)

        # Validate every account before writing anything
        accounts = {}
        for line in lines:
            if line.account_id in accounts:
                continue
            account = self._accounts.require_by_id(line.account_id, for_update=True)
            if not account.is_active:
                raise AccountInactiveError(str(account.id), account.code)
            accounts[line.account_id] = account

        posting_id = uuid4()
        entries = [
            LedgerEntry(
                posting_id=posting_id,
                line_seq=seq,
                account_id=line.account_id,
                debit=line.debit,
                credit=line.credit,
                reference_type=reference_type,
                reference_id=reference_id,
                entry_date=entry_date,
                description=line.description,
                posting_kind=posting_kind.value,
                reverses_posting_id=reverses_posting_id,
                actor_id=actor_id,
            )
            for seq, line in enumerate(lines, start=1)
        ]
        self._ledger.add_entries(entries)

        for line in lines:
            self._accounts.update_balance(accounts[line.account_id], line.debit, line.credit)

        logger.info("posting_written", extra={
            "posting_id": str(posting_id),
            "posting_kind": posting_kind.value,
            "reference_id": str(reference_id),
            "entry_count": len(entries),
            "total": str(debits),
            "reverses_posting_id": str(reverses_posting_id) if reverses_posting_id else None,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return PostingResult(
            posting_id=posting_id,
            posting_kind=posting_kind.value,
            reference_id=reference_id,
            entries=tuple(entries),
        )
