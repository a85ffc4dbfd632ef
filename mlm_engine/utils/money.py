# mlm_engine/utils/money.py
"""
Decimal helpers for money amounts. Binary floats never reach the ledger.
"""
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Any, Optional

CENT = Decimal("0.01")
ZERO = Decimal("0")


def toDecimal(value: Any) -> Optional[Decimal]:
    """Convert user or database input to Decimal, None if not a number."""
    if value is None:
        return None
    if isinstance(value, Decimal):
        return value
    if isinstance(value, bool):
        return None
    try:
        result = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return None
    if not result.is_finite():
        return None
    return result


def toCents(amount: Decimal) -> Decimal:
    """Round to cents, half up."""
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)


def percentOf(base: Decimal, percentage: Decimal) -> Decimal:
    """base * percentage / 100, rounded to cents."""
    return toCents(base * percentage / Decimal("100"))
