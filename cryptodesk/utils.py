"""
Common utility functions shared across modules.
"""

from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal, InvalidOperation
from typing import Optional

from cryptodesk.errors import ValidationError

# Every money column is NUMERIC(20, 8)
MONEY_DIGITS = 20
MONEY_PLACES = 8
MONEY_QUANTUM = Decimal(1).scaleb(-MONEY_PLACES)


def to_decimal(value, field: str = "amount") -> Decimal:
    """Convert int/float/str/Decimal to a finite Decimal or raise ValidationError."""
    if isinstance(value, bool) or value is None:
        raise ValidationError(f"{field} must be a number")
    try:
        result = value if isinstance(value, Decimal) else Decimal(str(value))
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number, got {value!r}")
    if not result.is_finite():
        raise ValidationError(f"{field} must be finite, got {value!r}")
    return result


def quantize_money(value: Decimal, rounding: str = ROUND_HALF_EVEN) -> Decimal:
    return Decimal(value).quantize(MONEY_QUANTUM, rounding=rounding)


def to_money(value, field: str = "amount", rounding: Optional[str] = None) -> Decimal:
    """
    Like to_decimal, but the value must also fit a money column: at most 12
    integer digits and 8 decimal places. Extra places are an error unless a
    `rounding` mode is given.
    """
    result = to_decimal(value, field)
    try:
        exact = quantize_money(result, rounding or ROUND_HALF_EVEN)
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range, got {value!r}")
    if rounding is None and exact != result:
        raise ValidationError(f"{field} has more than {MONEY_PLACES} decimal places, got {value!r}")
    if len(exact.as_tuple().digits) > MONEY_DIGITS:
        raise ValidationError(f"{field} is out of range, got {value!r}")
    return exact


def timestamp() -> datetime:
    return datetime.utcnow()
