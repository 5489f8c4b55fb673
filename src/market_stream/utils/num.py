from __future__ import annotations

import math
from typing import Any


def is_finite_number(x: Any) -> bool:
    if isinstance(x, bool) or not isinstance(x, (int, float)):
        return False
    return math.isfinite(float(x))


def safe_pct(change: float, base: float, *, zero_base: float = 0.0) -> float:
    """Percent change of `change` relative to `base`; a zero base yields `zero_base`."""
    if base == 0:
        return zero_base
    return change / base * 100.0


def round_to(x: float, digits: int | None) -> float:
    if digits is None:
        return float(x)
    return round(float(x), digits)
