"""
Module: trade_kernel.repositories.ledger
Responsibility: Append and query ledger entries.  There is no update or
    delete method; reversal is a new posting.
Architecture position: Kernel > Repositories.  Flush-only.
"""

from collections import OrderedDict
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trade_kernel.db.types import ZERO
from trade_kernel.models.ledger_entry import LedgerEntry, PostingKind
from trade_kernel.services.base import BaseService


class LedgerRepository(BaseService):

    def add_entries(self, entries: list[LedgerEntry]) -> list[LedgerEntry]:
        self.session.add_all(entries)
        self.session.flush()
        return entries

    def entries_for_posting(self, posting_id: UUID) -> list[LedgerEntry]:
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.posting_id == posting_id)
                .order_by(LedgerEntry.line_seq)
            ).scalars()
        )

    def entries_for_reference(self, reference_id: UUID) -> list[LedgerEntry]:
        return list(
            self.session.execute(
                select(LedgerEntry)
                .where(LedgerEntry.reference_id == reference_id)
                .order_by(LedgerEntry.created_at, LedgerEntry.posting_id, LedgerEntry.line_seq)
            ).scalars()
        )

    def postings_for_reference(self, reference_id: UUID) -> "OrderedDict[UUID, list[LedgerEntry]]":
        """Entries of a reference grouped by posting_id, in write order."""
        grouped: OrderedDict[UUID, list[LedgerEntry]] = OrderedDict()
        for entry in self.entries_for_reference(reference_id):
            grouped.setdefault(entry.posting_id, []).append(entry)
        return grouped

    def reversed_posting_ids(self, reference_id: UUID) -> set[UUID]:
        return {
            entry.reverses_posting_id
            for entry in self.entries_for_reference(reference_id)
            if entry.posting_kind == PostingKind.REVERSAL.value
            and entry.reverses_posting_id is not None
        }

    def account_activity(self, account_id: UUID) -> tuple[Decimal, Decimal]:
        """(total debits, total credits) ever posted to an account."""
        debits = ZERO
        credits = ZERO
        for entry in self.session.execute(
            select(LedgerEntry).where(LedgerEntry.account_id == account_id)
        ).scalars():
            debits += entry.debit
            credits += entry.credit
        return debits, credits
