# Overview: Decimal helpers for money amounts and exchange rates.

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

CENT = Decimal("0.01")
RATE_PLACES = Decimal("0.0001")


def to_money(value) -> Decimal:
    """Quantize to cents, half-up (matches Numeric(14, 2) columns)."""
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def to_rate(value) -> Decimal:
    if not isinstance(value, Decimal):
        value = Decimal(str(value))
    return value.quantize(RATE_PLACES, rounding=ROUND_HALF_UP)


def money_str(value) -> Optional[str]:
    """Serialize a money column for JSON; None stays None."""
    if value is None:
        return None
    return str(to_money(value))


def rate_str(value) -> Optional[str]:
    if value is None:
        return None
    return str(to_rate(value))
