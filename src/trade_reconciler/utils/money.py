"""Money helpers for deterministic rounding."""

from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


CENT = Decimal("0.01")
QUANTITY_STEP = Decimal("0.00000001")
QUANTITY_EPSILON = 1e-9


def to_decimal(value: float | int | str | Decimal | None) -> Decimal:
    if value is None:
        return Decimal("0")
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def round_money(value: float | int | str | Decimal | None) -> float:
    return float(to_decimal(value).quantize(CENT, rounding=ROUND_HALF_UP))


def round_quantity(value: float | int | str | Decimal | None) -> float:
    """Trim float dust from share/contract counts (fractional shares keep 8 places)."""
    return float(to_decimal(value).quantize(QUANTITY_STEP, rounding=ROUND_HALF_UP))
