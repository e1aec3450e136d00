from __future__ import annotations

from decimal import Decimal, ROUND_HALF_UP


def _clamp_minor(value: int | float | Decimal | None) -> int:
    try:
        parsed = int(value or 0)
    except Exception:
        parsed = 0
    return parsed if parsed > 0 else 0


def money_major_to_minor(amount: float | Decimal | int | None) -> int:
    try:
        parsed = Decimal(str(amount or 0))
    except Exception:
        parsed = Decimal("0")
    minor = (parsed * Decimal("100")).quantize(Decimal("1"), rounding=ROUND_HALF_UP)
    return _clamp_minor(int(minor))


def money_minor_to_major(minor: int | float | Decimal | None) -> float:
    try:
        parsed = Decimal(int(minor or 0))
    except Exception:
        parsed = Decimal("0")
    return float((parsed / Decimal("100")).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))


def percent_of_minor(amount_minor: int, percent: float | Decimal | int) -> int:
    """Half-up share of ``amount_minor`` for a percentage such as 20 or 2.5."""
    amt = Decimal(_clamp_minor(amount_minor))
    try:
        rate = Decimal(str(percent or 0))
    except Exception:
        rate = Decimal("0")
    if rate <= 0:
        return 0
    raw = (amt * rate) / Decimal("100")
    return _clamp_minor(int(raw.quantize(Decimal("1"), rounding=ROUND_HALF_UP)))


def round_money(amount: float | Decimal | int | None) -> float:
    return money_minor_to_major(money_major_to_minor(amount))
