"""
Module: trade_kernel.db.types
Responsibility: Annotated type aliases and rounding helpers for money and
    quantity columns.  Centralizes precision so every model, engine and
    service uses identical definitions.
Architecture position: Kernel > DB.  May be imported by models/, engines,
    and services.  MUST NOT import from any of those layers.

Invariants enforced:
    - round_money() is the ONLY sanctioned rounding function for financial
      values (ROUND_HALF_UP).
    - No floats anywhere: to_decimal() refuses float input.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Annotated

from sqlalchemy import String

from trade_kernel.db.base import PortableDecimal

# Monetary amount, exact on every backend
Money = Annotated[Decimal, PortableDecimal()]

# Stock quantity (fractional units allowed, e.g. kg)
Quantity = Annotated[Decimal, PortableDecimal()]

# Percentage stored as given (e.g. Decimal("17") for 17%)
Percent = Annotated[Decimal, PortableDecimal()]

ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(4000)]


MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value) -> Decimal:
    """
    Coerce int/str/Decimal to Decimal.

    Raises:
        TypeError: If value is a float (binary floats are never accepted).
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError(f"float not accepted for financial value: {value!r}")
    return Decimal(str(value))


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to specified decimal places.

    This is the ONLY sanctioned rounding function for financial values.
    All other code MUST delegate rounding here.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places > 0 else "1"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def percent_to_rate(percent: Decimal) -> Decimal:
    """Convert a percentage (17) into a rate (0.17)."""
    return percent / HUNDRED
