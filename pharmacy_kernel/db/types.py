"""
Module: pharmacy_kernel.db.types
Responsibility: Money coercion and rounding helpers shared by domain code
    and services.
Architecture position: Kernel > DB.  MUST NOT import from models/, domain/,
    services/ or selectors/.

Invariants enforced:
    - No floats for money.  All monetary amounts are Decimal.
    - round_money() is the only sanctioned rounding function; every line
      total and order total passes through it at the currency's minor-unit
      precision, so sums never drift.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any


DEFAULT_MINOR_UNITS = 2
DEFAULT_ROUNDING = ROUND_HALF_UP


def to_decimal(value: Any) -> Decimal:
    """
    Coerce an incoming amount to Decimal without passing through float.

    Raises:
        ValueError: if value is a float or is not numeric.
    """
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise ValueError(f"Monetary amounts must not be floats: {value!r}")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise ValueError(f"Not a numeric amount: {value!r}") from exc


def round_money(
    value: Decimal,
    decimal_places: int = DEFAULT_MINOR_UNITS,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the currency's minor units.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places (2 for USD, 0 for JPY ...).
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantum = Decimal(1).scaleb(-decimal_places)
    return value.quantize(quantum, rounding=rounding)
