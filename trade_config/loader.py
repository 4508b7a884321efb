"""
Configuration Loader (``trade_config.loader``).

Responsibility
--------------
Loads the YAML configuration and parses it into the frozen
``trade_config.schema`` dataclasses.  The single public entry point for
runtime config is ``trade_config.get_engine_config()``.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Rates and amounts are parsed as ``Decimal`` from their string form; a YAML
  float is rejected so no binary rounding leaks into tax rates.
* Advance-tax rates are restricted to the recognised percentages.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Missing or invalid values  -> ``ConfigurationError``.
"""

from __future__ import annotations

import copy
import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml

from trade_config.schema import (
    CLAIM_POSTING_MODES,
    AccountCodes,
    CreditSettings,
    EngineConfig,
    SchemeSettings,
    TaxSettings,
)
from trade_engines.tax import ALLOWED_ADVANCE_TAX_PERCENTS

KNOWN_ACCOUNT_TYPES = frozenset(
    {"asset", "liability", "equity", "revenue", "expense", "claim", "adjustment"}
)


class ConfigurationError(ValueError):
    """Configuration is missing a value or holds an invalid one."""

    def __init__(self, path: str, reason: str):
        self.path = path
        self.reason = reason
        super().__init__(f"Invalid configuration at '{path}': {reason}")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def deep_merge(base: dict[str, Any], overrides: dict[str, Any]) -> dict[str, Any]:
    """Recursively merge overrides into a copy of base."""
    merged = copy.deepcopy(base)
    for key, value in overrides.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def compute_checksum(data: dict[str, Any]) -> str:
    """Deterministic SHA-256 of the merged configuration."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()


def _require(data: dict[str, Any], key: str, path: str) -> Any:
    if key not in data or data[key] is None:
        raise ConfigurationError(f"{path}.{key}" if path else key, "is required")
    return data[key]


def parse_decimal(value: Any, path: str) -> Decimal:
    if isinstance(value, float):
        raise ConfigurationError(path, f"quote decimal values as strings, got float {value!r}")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as exc:
        raise ConfigurationError(path, f"not a decimal: {value!r}") from exc


def parse_accounts(data: dict[str, Any]) -> AccountCodes:
    return AccountCodes(
        revenue=str(_require(data, "revenue", "accounts")),
        tax_payable=str(_require(data, "tax_payable", "accounts")),
        inventory=str(_require(data, "inventory", "accounts")),
        tax_input=str(_require(data, "tax_input", "accounts")),
    )


def parse_taxes(data: dict[str, Any]) -> TaxSettings:
    surcharge = parse_decimal(
        _require(data, "non_filer_surcharge_percent", "taxes"),
        "taxes.non_filer_surcharge_percent",
    )
    if surcharge < 0:
        raise ConfigurationError("taxes.non_filer_surcharge_percent", "must not be negative")

    rates: dict[str, Decimal] = {}
    for reg_type, raw in (_require(data, "advance_tax_rates", "taxes") or {}).items():
        path = f"taxes.advance_tax_rates.{reg_type}"
        rate = parse_decimal(raw, path)
        if rate not in ALLOWED_ADVANCE_TAX_PERCENTS:
            raise ConfigurationError(
                path,
                "advance tax must be one of "
                + ", ".join(str(p) for p in sorted(ALLOWED_ADVANCE_TAX_PERCENTS)),
            )
        rates[str(reg_type)] = rate

    ttl = int(data.get("cache_ttl_seconds", 300))
    if ttl < 0:
        raise ConfigurationError("taxes.cache_ttl_seconds", "must not be negative")

    return TaxSettings(
        non_filer_surcharge_percent=surcharge,
        advance_tax_rates=rates,
        cache_ttl_seconds=ttl,
    )


def parse_schemes(data: dict[str, Any]) -> SchemeSettings:
    mode = str(data.get("claim_posting", "on_confirm"))
    if mode not in CLAIM_POSTING_MODES:
        raise ConfigurationError(
            "schemes.claim_posting", f"must be one of {', '.join(CLAIM_POSTING_MODES)}"
        )
    types = tuple(str(t) for t in data.get("claim_account_types", ()))
    if not types:
        raise ConfigurationError("schemes.claim_account_types", "must not be empty")
    unknown = [t for t in types if t not in KNOWN_ACCOUNT_TYPES]
    if unknown:
        raise ConfigurationError(
            "schemes.claim_account_types", f"unknown account types: {', '.join(unknown)}"
        )
    return SchemeSettings(claim_posting=mode, claim_account_types=types)


def parse_engine_config(data: dict[str, Any]) -> EngineConfig:
    """Parse a merged configuration dict into an EngineConfig."""
    places = int(_require(data, "money_decimal_places", ""))
    if not 0 <= places <= 9:
        raise ConfigurationError("money_decimal_places", "must be between 0 and 9")

    return EngineConfig(
        currency=str(_require(data, "currency", "")),
        money_decimal_places=places,
        accounts=parse_accounts(_require(data, "accounts", "")),
        taxes=parse_taxes(_require(data, "taxes", "")),
        schemes=parse_schemes(data.get("schemes") or {}),
        credit=CreditSettings(
            enforce_credit_limit=bool(
                (data.get("credit") or {}).get("enforce_credit_limit", True)
            ),
        ),
        checksum=compute_checksum(data),
    )
