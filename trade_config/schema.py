"""
EngineConfig schema.

Typed, frozen view of the posting engine configuration.  YAML is parsed
into these types by the loader; services receive an ``EngineConfig`` and
never read YAML themselves.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

CLAIM_POSTING_ON_CONFIRM = "on_confirm"
CLAIM_POSTING_DEFERRED = "deferred"
CLAIM_POSTING_MODES = (CLAIM_POSTING_ON_CONFIRM, CLAIM_POSTING_DEFERRED)


@dataclass(frozen=True)
class AccountCodes:
    """Control accounts the ledger poster posts to (party accounts come from the party)."""

    revenue: str
    tax_payable: str
    inventory: str
    tax_input: str


@dataclass(frozen=True)
class TaxSettings:
    non_filer_surcharge_percent: Decimal
    advance_tax_rates: dict[str, Decimal] = field(default_factory=dict)
    cache_ttl_seconds: int = 300


@dataclass(frozen=True)
class SchemeSettings:
    claim_posting: str = CLAIM_POSTING_ON_CONFIRM
    claim_account_types: tuple[str, ...] = ("claim", "expense", "adjustment")

    @property
    def posts_on_confirm(self) -> bool:
        return self.claim_posting == CLAIM_POSTING_ON_CONFIRM


@dataclass(frozen=True)
class CreditSettings:
    enforce_credit_limit: bool = True


@dataclass(frozen=True)
class EngineConfig:
    """The complete, validated engine configuration."""

    currency: str
    money_decimal_places: int
    accounts: AccountCodes
    taxes: TaxSettings
    schemes: SchemeSettings
    credit: CreditSettings
    checksum: str = ""
