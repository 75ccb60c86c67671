from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Any

BASE_DAY_HOURS = 8
TENTH = Decimal("0.1")
OVERRUN_TOLERANCE = 1e-9


def round1(value: float) -> float:
    """Round to one decimal place, halves going up."""
    return float(Decimal(repr(float(value))).quantize(TENTH, rounding=ROUND_HALF_UP))


def _pct(member: Any, field: str) -> float:
    if isinstance(member, dict):
        value = member.get(field, 0)
    else:
        value = getattr(member, field, 0)
    return float(value or 0) / 100.0


def daily_capacity(member: Any) -> float:
    """Hours per day a member can be assigned to project work.

    ``maintenance`` is informational and is not subtracted here.
    """
    hours = BASE_DAY_HOURS * _pct(member, "availability") * _pct(member, "effectiveness")
    return round1(hours)


def exceeds(total: float, limit: float) -> bool:
    """True when ``total`` is over ``limit`` by more than float noise."""
    return float(total) - float(limit) > OVERRUN_TOLERANCE
