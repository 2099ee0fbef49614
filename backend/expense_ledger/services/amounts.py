"""Normalisation of monetary values of unknown shape to plain floats.

Amounts reach the ledger as ``Decimal`` (from ``Numeric`` columns), as
numbers, as numeric strings (from JSON payloads) or as ``None``.
``to_number`` is the single conversion point used by every service.
"""
from __future__ import annotations

import decimal
import math
from typing import Any

# Amounts closer than this are treated as equal when matching records
AMOUNT_TOLERANCE = 0.01


def to_number(value: Any, fallback: float = 0.0) -> float:
    """Return *value* as a float, or *fallback* when it has no numeric reading.

    Never raises.
    """
    if value is None:
        return fallback
    try:
        if isinstance(value, str):
            value = value.strip()
            if not value:
                return fallback
        number = float(value)
    except (TypeError, ValueError, OverflowError, decimal.InvalidOperation):
        return fallback
    if not math.isfinite(number):
        return fallback
    return number


def to_decimal(value: Any, fallback: float = 0.0) -> decimal.Decimal:
    """Return *value* as a two-place ``Decimal`` suitable for ``Numeric`` columns."""
    return decimal.Decimal(str(to_number(value, fallback))).quantize(decimal.Decimal("0.01"))


def amounts_match(a: Any, b: Any) -> bool:
    return abs(to_number(a) - to_number(b)) < AMOUNT_TOLERANCE
