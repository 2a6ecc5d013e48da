from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

TWO_PLACES = Decimal("0.01")
ZERO = Decimal("0.00")

# Maximum amount: 9,999,999,999.99 (Numeric(12, 2))
MAX_AMOUNT = Decimal("9999999999.99")


def to_decimal(value: Any) -> Decimal:
    """Convert an int/str/Decimal amount to Decimal. Floats go through str()."""
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        raise InvalidOperation(f"not an amount: {value!r}")
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def quantize(value: Any) -> Decimal:
    return to_decimal(value).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def money_str(value: Any) -> str | None:
    if value is None:
        return None
    return str(quantize(value))
