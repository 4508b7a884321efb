"""
CreditLimitValidator -- leaf check run before any stock or ledger effect.

A customer's outstanding balance plus the invoice being confirmed must not
exceed the customer's credit limit.  A limit of zero means "no limit".
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal
from uuid import UUID

from trade_kernel.db.types import ZERO
from trade_kernel.exceptions import CreditLimitExceededError
from trade_kernel.logging_config import get_logger
from trade_kernel.repositories.party import PartyRepository

logger = get_logger("services.credit_limit")


@dataclass(frozen=True)
class CreditCheckResult:
    party_id: UUID
    credit_limit: Decimal
    outstanding: Decimal
    invoice_total: Decimal

    @property
    def unlimited(self) -> bool:
        return self.credit_limit == ZERO

    @property
    def headroom(self) -> Decimal | None:
        if self.unlimited:
            return None
        return self.credit_limit - self.outstanding - self.invoice_total


class CreditLimitValidator:

    def __init__(self, parties: PartyRepository):
        self._parties = parties

    def check(self, party_id: UUID, invoice_total: Decimal) -> CreditCheckResult:
        """
        Raises:
            CreditLimitExceededError: outstanding + invoice_total > credit_limit > 0.
        """
        credit_limit = self._parties.get_credit_limit(party_id)
        outstanding = self._parties.get_outstanding_balance(party_id)
        result = CreditCheckResult(
            party_id=party_id,
            credit_limit=credit_limit,
            outstanding=outstanding,
            invoice_total=invoice_total,
        )

        if not result.unlimited and outstanding + invoice_total > credit_limit:
            logger.warning("credit_limit_exceeded", extra={
                "party_id": str(party_id),
                "credit_limit": str(credit_limit),
                "outstanding": str(outstanding),
                "invoice_total": str(invoice_total),
            })
            raise CreditLimitExceededError(
                str(party_id), credit_limit, outstanding, invoice_total
            )

        logger.debug("credit_limit_passed", extra={
            "party_id": str(party_id),
            "headroom": str(result.headroom) if result.headroom is not None else None,
        })
        return result
