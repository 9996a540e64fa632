from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal

_CENT = Decimal("0.01")


def round_half_up(value: float | Decimal, places: Decimal = _CENT) -> float:
    return float(Decimal(str(value)).quantize(places, rounding=ROUND_HALF_UP))


def percent(part: float | Decimal, whole: float | Decimal) -> float:
    if not whole or whole <= 0:
        return 0.0
    return round_half_up(Decimal(str(part)) * 100 / Decimal(str(whole)))


def safe_ratio(numerator: float | Decimal, denominator: float | Decimal) -> float:
    if not denominator:
        return 0.0
    return round_half_up(Decimal(str(numerator)) / Decimal(str(denominator)))


def cents_to_dollars(cents: int | None) -> Decimal:
    return (Decimal(cents or 0) / 100).quantize(_CENT)


def round_whole(value: float | Decimal) -> int:
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
