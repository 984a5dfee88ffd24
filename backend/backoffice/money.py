"""
Fixed-point helpers for money, quantities and rates.

All monetary values are Decimal; floats are converted through str() so that
0.1 stays 0.1 and never 0.1000000000000000055.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from .errors import ValidationError

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def to_decimal(value: Any, field: str = "value") -> Decimal:
    """Coerce int/str/float/Decimal/None to Decimal (None -> 0)."""
    if value is None or value == "":
        return ZERO
    if isinstance(value, bool):
        raise ValidationError(f"{field} must be a number", details={"field": field})
    if isinstance(value, float):
        value = str(value)
    try:
        result = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(f"{field} must be a number", details={"field": field, "value": str(value)})
    # NaN and Infinity would fail later on comparison with InvalidOperation
    if not result.is_finite():
        raise ValidationError(f"{field} must be a finite number", details={"field": field, "value": str(value)})
    return result


def to_int(value: Any, field: str = "value") -> int:
    """Whole number from int/str/Decimal; 2.7 or "two" are refused, not truncated."""
    if isinstance(value, bool) or value is None or value == "":
        raise ValidationError(f"{field} must be a whole number", details={"field": field})
    if isinstance(value, int):
        return value
    number = to_decimal(value, field)
    if number != number.to_integral_value():
        raise ValidationError(f"{field} must be a whole number", details={"field": field, "value": str(value)})
    return int(number)


def quantize_money(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def percent_of(base: Decimal, pct: Decimal) -> Decimal:
    return base * pct / HUNDRED


def as_str(value: Optional[Decimal]) -> Optional[str]:
    """JSON-safe representation (strings keep every decimal place)."""
    if value is None:
        return None
    return str(value)
