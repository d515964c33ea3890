"""
Shared statistics for scoring, integrity checks and insights.

Money is summed as Decimal; ratios and dispersion are computed in
float with numpy once the exact totals are known.
"""

import math
from collections import defaultdict
from datetime import date, tzinfo
from decimal import Decimal
from typing import Iterable, Optional, Sequence

import numpy as np

from expense_os.engine.bucketing import day_of
from expense_os.models.ledger import ZERO, MoneyRecord


def round_half_up(value: float) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(math.copysign(math.floor(abs(value) + 0.5), value))


def clamp_score(value: int) -> int:
    return max(0, min(100, value))


def total(records: Iterable[MoneyRecord]) -> Decimal:
    return sum((r.amount for r in records), ZERO)


def daily_totals(
    records: Iterable[MoneyRecord],
    tz: Optional[tzinfo] = None,
) -> dict[date, Decimal]:
    """Sum of amounts per calendar day of `occurred_at`, days read in `tz`."""
    totals: dict[date, Decimal] = defaultdict(lambda: ZERO)
    for record in records:
        totals[day_of(record.occurred_at, tz)] += record.amount
    return dict(totals)


def coefficient_of_variation(values: Sequence[Decimal]) -> Optional[float]:
    """
    Population stddev / mean.

    Returns None when it is undefined (no values or a non-positive mean).
    """
    if not values:
        return None
    arr = np.array([float(v) for v in values], dtype=float)
    mean = float(np.mean(arr))
    if mean <= 0:
        return None
    return float(np.std(arr, ddof=0)) / mean


def daily_cv(
    records: Iterable[MoneyRecord],
    min_days: int = 2,
    tz: Optional[tzinfo] = None,
) -> Optional[float]:
    """Coefficient of variation of daily totals, None below `min_days` days."""
    totals = list(daily_totals(records, tz).values())
    if len(totals) < min_days:
        return None
    return coefficient_of_variation(totals)


def percentile(sorted_values: Sequence[float], p: float) -> float:
    """Linear-interpolation percentile, `p` in [0, 1]."""
    if not sorted_values:
        return 0.0
    clamped = max(0.0, min(1.0, p))
    return float(np.percentile(np.asarray(sorted_values, dtype=float), clamped * 100))
