"""
Module: trade_kernel.models.tax_config
Responsibility: Tax codes referenced by invoice lines (GST, withholding,
    sales tax, custom).  Rates are stored as percentages.
Architecture position: Kernel > Models.  May import from db/ only.

Failure modes:
    - TaxConfigNotFoundError when a line references a missing or inactive code.
"""

from enum import Enum

from sqlalchemy import Boolean, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from trade_kernel.db.base import TrackedBase
from trade_kernel.db.types import Percent


class TaxType(str, Enum):
    GST = "GST"
    WHT = "WHT"
    SALES_TAX = "SALES_TAX"
    CUSTOM = "CUSTOM"


class TaxConfig(TrackedBase):
    """A configured tax code."""

    __tablename__ = "tax_configs"

    __table_args__ = (UniqueConstraint("code", name="uq_tax_config_code"),)

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    # Percent, e.g. 17 for 17%
    rate: Mapped[Percent] = mapped_column(nullable=False)

    tax_type: Mapped[TaxType] = mapped_column(String(20), nullable=False)

    compound_tax: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    priority: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    def __repr__(self) -> str:
        return f"<TaxConfig {self.code} {self.rate}%>"
