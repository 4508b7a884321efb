"""
Module: trade_kernel.repositories.party
Responsibility: Customer/supplier lookup, credit limit and outstanding
    balance for the credit check.
Architecture position: Kernel > Repositories.  Read-only.

The outstanding balance is the balance of the party's own ledger account, so
it always reflects every confirmed, paid-through-ledger, cancelled and
returned invoice without a separate projection.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trade_kernel.exceptions import PartyNotFoundError
from trade_kernel.models.account import Account
from trade_kernel.models.party import Party
from trade_kernel.services.base import BaseService


class PartyRepository(BaseService):

    def find_by_id(self, party_id: UUID) -> Party | None:
        return self.session.get(Party, party_id)

    def require(self, party_id: UUID) -> Party:
        party = self.find_by_id(party_id)
        if party is None:
            raise PartyNotFoundError(str(party_id))
        return party

    def get_credit_limit(self, party_id: UUID) -> Decimal:
        return self.require(party_id).credit_limit

    def get_outstanding_balance(self, party_id: UUID) -> Decimal:
        party = self.require(party_id)
        account = self.session.execute(
            select(Account).where(Account.id == party.account_id)
        ).scalar_one()
        return account.balance
