"""Points and euro conversion constants."""

from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal

GOLD_STAR_POINTS = 11
GOLD_STAR_VALUE_EURO = Decimal("200")
POINT_TO_EURO_RATE = GOLD_STAR_VALUE_EURO / GOLD_STAR_POINTS


def round_half_up(value: Decimal | float | int) -> int:
    """Round to the nearest integer, halves towards +infinity (-0.5 -> 0, 0.5 -> 1)."""
    return int((Decimal(str(value)) + Decimal("0.5")).to_integral_value(rounding=ROUND_FLOOR))


def euros_to_points(amount_euro: Decimal) -> int:
    """Signed conversion used by game rewards. A -10 EUR penalty costs points too."""
    return round_half_up(Decimal(amount_euro) / POINT_TO_EURO_RATE)
