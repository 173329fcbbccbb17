"""
Module: shipment_kernel.db.types
Responsibility: Annotated column types and the sanctioned rounding helpers.
    Centralizes precision so that every model, domain function and service
    quantizes money and rates identically.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - Money is two decimal places, rounded half-up.
    - Exchange rates are four decimal places, rounded half-up.
    - Unit prices keep four decimal places (piece prices below one RMB are
      common), line totals derived from them are rounded to money.
    - No floats: to_decimal() refuses float input.

Failure modes:
    - ValueError on a value that cannot be read as a Decimal.
    - TypeError on float input.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Annotated

from sqlalchemy import Numeric, String

# Monetary amount, 14 digits total, 2 decimal places
Money = Annotated[Decimal, Numeric(14, 2)]

# Exchange rate, 4 decimal places
Rate = Annotated[Decimal, Numeric(12, 4)]

# Per-piece price, 4 decimal places
UnitPrice = Annotated[Decimal, Numeric(14, 4)]

# Currency code (RMB, EGP, USD)
CurrencyCode = Annotated[str, String(3)]

MONEY_DECIMAL_PLACES = 2
RATE_DECIMAL_PLACES = 4
UNIT_COST_DECIMAL_PLACES = 4
DEFAULT_ROUNDING = ROUND_HALF_UP

ZERO = Decimal("0.00")


def _quantizer(decimal_places: int) -> Decimal:
    return Decimal(1).scaleb(-decimal_places)


def round_money(value: Decimal, decimal_places: int = MONEY_DECIMAL_PLACES) -> Decimal:
    """
    Round a monetary value half-up.

    This is the ONLY rounding function for money in the kernel; every
    derived amount (line totals, components, EGP equivalents) goes through it.
    """
    return value.quantize(_quantizer(decimal_places), rounding=DEFAULT_ROUNDING)


def round_rate(value: Decimal) -> Decimal:
    """Round an exchange rate to its stored precision (4dp, half-up)."""
    return value.quantize(_quantizer(RATE_DECIMAL_PLACES), rounding=DEFAULT_ROUNDING)


def to_decimal(value, field: str = "value") -> Decimal:
    """
    Read a user-supplied number as Decimal.

    Accepts Decimal, int and numeric strings.  Floats are refused: a float
    has already lost the exact amount the user typed.

    Raises:
        TypeError: value is a float.
        ValueError: value is not numeric or not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"{field} must be numeric, got {value!r}")
    if isinstance(value, float):
        raise TypeError(f"{field} must not be a float, got {value!r}")
    if isinstance(value, Decimal):
        result = value
    else:
        try:
            result = Decimal(str(value).strip())
        except InvalidOperation:
            raise ValueError(f"{field} must be numeric, got {value!r}") from None
    if not result.is_finite():
        raise ValueError(f"{field} must be finite, got {value!r}")
    return result
