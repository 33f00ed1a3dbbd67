"""
Rating rollup math.

Stateless functions over plain rating data, shared by the aggregator (persisted
`average_rating`/`total_ratings`) and the on-demand statistics queries. Every mean
is rounded with `round1` (half away from zero) so stored and displayed values agree.
"""

from __future__ import annotations

from datetime import datetime, timedelta
from typing import Iterable, Sequence

from barmap.core.numbers import round1
from barmap.core.time import ensure_utc
from barmap.domain.models import CRITERIA_NAMES, CriteriaMeans, Rating


def average_value(values: Sequence[int]) -> float:
    """Rounded mean of rating values; 0 for an empty set."""
    if not values:
        return 0.0
    return round1(sum(values) / len(values))


def distribution(values: Iterable[int]) -> dict[int, int]:
    """Count ratings per star value. All five buckets are always present."""
    out = {star: 0 for star in range(5, 0, -1)}
    for v in values:
        if v in out:
            out[v] += 1
    return out


def criteria_means(ratings: Sequence[Rating]) -> CriteriaMeans:
    """Independently rounded mean of each criterion; all zeros for an empty set."""
    if not ratings:
        return CriteriaMeans()
    n = len(ratings)
    return CriteriaMeans(
        **{name: round1(sum(getattr(r.criteria, name) for r in ratings) / n) for name in CRITERIA_NAMES}
    )


def count_recent(ratings: Iterable[Rating], *, now: datetime, window_days: int) -> int:
    """Number of ratings last modified strictly inside the trailing window."""
    cutoff = ensure_utc(now) - timedelta(days=window_days)
    return sum(1 for r in ratings if ensure_utc(r.date) > cutoff)
