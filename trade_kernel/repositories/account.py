"""
Module: trade_kernel.repositories.account
Responsibility: Account lookup and the single balance-mutation path used by
    the ledger poster.
Architecture position: Kernel > Repositories.  Flush-only.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from trade_kernel.exceptions import AccountNotFoundError
from trade_kernel.models.account import Account
from trade_kernel.services.base import BaseService


class AccountRepository(BaseService):

    def find_by_id(self, account_id: UUID, for_update: bool = False) -> Account | None:
        stmt = select(Account).where(Account.id == account_id)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def find_by_code(self, code: str, for_update: bool = False) -> Account | None:
        stmt = select(Account).where(Account.code == code)
        if for_update:
            stmt = stmt.with_for_update().execution_options(populate_existing=True)
        return self.session.execute(stmt).scalar_one_or_none()

    def require_by_id(self, account_id: UUID, for_update: bool = False) -> Account:
        account = self.find_by_id(account_id, for_update=for_update)
        if account is None:
            raise AccountNotFoundError(str(account_id))
        return account

    def require_by_code(self, code: str, for_update: bool = False) -> Account:
        account = self.find_by_code(code, for_update=for_update)
        if account is None:
            raise AccountNotFoundError(code)
        return account

    def is_active(self, account_id: UUID) -> bool:
        account = self.find_by_id(account_id)
        return account is not None and account.is_active

    def update_balance(self, account: Account, debit: Decimal, credit: Decimal) -> Decimal:
        """Apply a debit/credit pair on the account's normal side.  Returns the new balance."""
        account.balance = account.balance + account.signed_delta(debit, credit)
        self.session.flush()
        return account.balance
