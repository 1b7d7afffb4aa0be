"""
Money helpers for the Autoparts Commerce Platform.

All amounts are integer cents in the store's base currency. Decimal is used
only at the edges (display, percentage math) and is always quantized back
to whole cents with ROUND_HALF_UP.
"""

from __future__ import annotations

from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal

from apps.common.constants import CENTS_PER_UNIT, PERCENT_BASE
from apps.common.types import Cents

_ONE = Decimal("1")


def to_cents(amount: Decimal | int | str) -> Cents:
    """Convert a currency amount (e.g. Decimal("19.99")) to integer cents"""
    return int((Decimal(str(amount)) * CENTS_PER_UNIT).quantize(_ONE, rounding=ROUND_HALF_UP))


def from_cents(cents: Cents) -> Decimal:
    """Convert integer cents to a two-place Decimal amount"""
    return (Decimal(cents) / CENTS_PER_UNIT).quantize(Decimal("0.01"))


def percent_of(cents: Cents, percent: Decimal | int | str) -> Cents:
    """Return `percent` % of `cents`, rounded half-up to a whole cent"""
    raw = Decimal(cents) * Decimal(str(percent)) / PERCENT_BASE
    return int(raw.quantize(_ONE, rounding=ROUND_HALF_UP))


def floor_units(cents: Cents, factor: Decimal) -> int:
    """Whole currency units of `cents` scaled by `factor`, rounded down"""
    raw = Decimal(cents) / CENTS_PER_UNIT * factor
    return int(raw.to_integral_value(rounding=ROUND_FLOOR))


def clamp(value: Cents, low: Cents, high: Cents) -> Cents:
    return max(low, min(value, high))
