"""
TaxConfigCache -- explicit, injectable TTL cache of resolved tax rates.

Responsibility:
    Resolves tax codes referenced by invoice lines into engine ``TaxRate``
    values, reading the tax_configs table at most once per code per TTL.
    The cache is an object the state machine receives, never a module
    global, so tests and processes control its lifetime.

Invariants enforced:
    - Only active codes are cached; a missing or inactive code is looked up
      again on the next request and fails with TaxConfigNotFoundError.
    - Expiry is measured on the injected Clock.

Failure modes:
    - TaxConfigNotFoundError(reason="missing" | "inactive").
"""

from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Iterable

from trade_engines.tax import TaxRate
from trade_kernel.domain.clock import Clock, SystemClock
from trade_kernel.exceptions import TaxConfigNotFoundError
from trade_kernel.logging_config import get_logger
from trade_kernel.models.tax_config import TaxConfig
from trade_kernel.repositories.tax_config import TaxConfigRepository

logger = get_logger("services.tax_config_cache")


@dataclass(frozen=True)
class _CacheEntry:
    rate: TaxRate
    expires_at: datetime


def to_tax_rate(config: TaxConfig) -> TaxRate:
    tax_type = config.tax_type
    if isinstance(tax_type, Enum):
        tax_type = tax_type.value
    return TaxRate.from_percent(
        tax_code=config.code,
        percent=config.rate,
        tax_name=config.name,
        tax_type=tax_type,
        is_compound=config.compound_tax,
        priority=config.priority,
    )


class TaxConfigCache:
    """TTL cache of tax code -> TaxRate."""

    def __init__(self, ttl_seconds: int = 300, clock: Clock | None = None):
        self._ttl = timedelta(seconds=ttl_seconds)
        self._clock = clock or SystemClock()
        self._entries: dict[str, _CacheEntry] = {}
        self._lock = threading.Lock()
        self.hits = 0
        self.misses = 0

    def get(self, repository: TaxConfigRepository, code: str) -> TaxRate:
        return self.resolve(repository, [code])[code]

    def resolve(self, repository: TaxConfigRepository, codes: Iterable[str]) -> dict[str, TaxRate]:
        """
        Resolve every code, loading the uncached ones in a single query.

        Raises:
            TaxConfigNotFoundError: a code is missing or inactive.
        """
        wanted = list(dict.fromkeys(codes))
        now = self._clock.now()
        resolved: dict[str, TaxRate] = {}
        missing: list[str] = []

        with self._lock:
            for code in wanted:
                entry = self._entries.get(code)
                if entry is not None and entry.expires_at > now:
                    resolved[code] = entry.rate
                    self.hits += 1
                else:
                    missing.append(code)
                    self.misses += 1

        if not missing:
            return resolved

        rows = repository.find_by_codes(missing)
        loaded: dict[str, _CacheEntry] = {}
        for code in missing:
            row = rows.get(code)
            if row is None:
                logger.warning("tax_config_missing", extra={"tax_code": code})
                raise TaxConfigNotFoundError(code, "missing")
            if not row.is_active:
                logger.warning("tax_config_inactive", extra={"tax_code": code})
                raise TaxConfigNotFoundError(code, "inactive")
            loaded[code] = _CacheEntry(rate=to_tax_rate(row), expires_at=now + self._ttl)

        with self._lock:
            self._entries.update(loaded)

        resolved.update({code: entry.rate for code, entry in loaded.items()})
        logger.debug("tax_configs_loaded", extra={"tax_codes": sorted(loaded)})
        return resolved

    def invalidate(self, code: str | None = None) -> None:
        """Drop one code, or everything when code is None."""
        with self._lock:
            if code is None:
                self._entries.clear()
            else:
                self._entries.pop(code, None)
        logger.info("tax_config_cache_invalidated", extra={"tax_code": code or "*"})

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
