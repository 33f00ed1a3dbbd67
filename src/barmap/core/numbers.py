"""
Rounding helpers shared by the geo and rating math.

Python's built-in `round()` uses banker's rounding (round-half-to-even), which would
turn an average of 3.25 into 3.2. Displayed ratings and distances round half away
from zero instead.
"""

from __future__ import annotations

import math


def round_half_away(x: float, ndigits: int = 0) -> float:
    """Round `x` to `ndigits` decimals, with ties going away from zero."""
    factor = 10**ndigits
    scaled = math.floor(abs(float(x)) * factor + 0.5) / factor
    return math.copysign(scaled, x) if scaled else 0.0


def round1(x: float) -> float:
    """Round to one decimal place (the precision of displayed ratings)."""
    return round_half_away(x, 1)
