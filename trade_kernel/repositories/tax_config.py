"""
Module: trade_kernel.repositories.tax_config
Responsibility: Tax code lookup.  Callers go through TaxConfigCache rather
    than hitting this on every line.
Architecture position: Kernel > Repositories.  Read-only.
"""

from typing import Iterable

from sqlalchemy import select

from trade_kernel.models.tax_config import TaxConfig
from trade_kernel.services.base import BaseService


class TaxConfigRepository(BaseService):

    def find_by_code(self, code: str) -> TaxConfig | None:
        return self.session.execute(
            select(TaxConfig).where(TaxConfig.code == code)
        ).scalar_one_or_none()

    def find_by_codes(self, codes: Iterable[str]) -> dict[str, TaxConfig]:
        codes = list(codes)
        if not codes:
            return {}
        rows = self.session.execute(
            select(TaxConfig).where(TaxConfig.code.in_(codes))
        ).scalars()
        return {row.code: row for row in rows}

    def list_active(self) -> list[TaxConfig]:
        return list(
            self.session.execute(
                select(TaxConfig)
                .where(TaxConfig.is_active.is_(True))
                .order_by(TaxConfig.priority, TaxConfig.code)
            ).scalars()
        )
