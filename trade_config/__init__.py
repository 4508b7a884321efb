"""
trade_config -- single public entrypoint for engine configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_engine_config()``.  No other component reads configuration files
    directly.  Returns a frozen ``EngineConfig``.

Architecture position:
    Configuration.  Sits above ``trade_kernel`` and beside
    ``trade_engines``; ``trade_services`` consume it.  The kernel MUST NEVER
    import from ``trade_config``.

Failure modes:
    - ``FileNotFoundError`` -- config_path does not exist.
    - ``ConfigurationError`` (a ``ValueError``) -- missing or invalid values.

Audit relevance:
    Every successful call logs ``engine_config_loaded`` with the checksum of
    the merged configuration, tying postings to the configuration in force.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any

from trade_config.loader import (
    ConfigurationError,
    deep_merge,
    load_yaml_file,
    parse_engine_config,
)
from trade_config.schema import (
    CLAIM_POSTING_DEFERRED,
    CLAIM_POSTING_ON_CONFIRM,
    AccountCodes,
    CreditSettings,
    EngineConfig,
    SchemeSettings,
    TaxSettings,
)

_logger = logging.getLogger("trade_kernel.config")

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"


def get_engine_config(
    config_path: Path | str | None = None,
    overrides: dict[str, Any] | None = None,
) -> EngineConfig:
    """The ONLY public configuration entrypoint.

    The bundled defaults are always loaded first; ``config_path`` (a YAML
    file) and then ``overrides`` are merged on top of them.

    Args:
        config_path: Optional YAML file with site-specific values.
        overrides: Optional nested dict merged last (tests, CLI flags).

    Returns:
        EngineConfig -- frozen and validated.

    Raises:
        FileNotFoundError: If config_path does not exist.
        ConfigurationError: If validation fails.
    """
    data = load_yaml_file(DEFAULTS_PATH)
    if config_path is not None:
        data = deep_merge(data, load_yaml_file(Path(config_path)))
    if overrides:
        data = deep_merge(data, overrides)

    config = parse_engine_config(data)

    _logger.info(
        "engine_config_loaded",
        extra={
            "config_path": str(config_path) if config_path else None,
            "checksum": config.checksum,
            "claim_posting": config.schemes.claim_posting,
            "currency": config.currency,
        },
    )
    return config


__all__ = [
    "get_engine_config",
    "ConfigurationError",
    "EngineConfig",
    "AccountCodes",
    "TaxSettings",
    "SchemeSettings",
    "CreditSettings",
    "CLAIM_POSTING_ON_CONFIRM",
    "CLAIM_POSTING_DEFERRED",
]
