"""
Descriptive statistics for spending amounts.

Quartiles are positional: they index into the sorted list instead of
interpolating, so every figure is an amount that actually occurred.
"""

from typing import Sequence

import numpy as np


def quartiles(sorted_amounts: Sequence[float]) -> tuple[float, float, float]:
    """
    Return (Q1, median, Q3) of an ascending list.

    Q1 = a[floor(n * 0.25)], median = a[floor(n / 2)], Q3 = a[floor(n * 0.75)].
    An empty list gives zeros.
    """
    n = len(sorted_amounts)
    if n == 0:
        return 0.0, 0.0, 0.0
    return (
        float(sorted_amounts[int(n * 0.25)]),
        float(sorted_amounts[n // 2]),
        float(sorted_amounts[int(n * 0.75)]),
    )


def population_std(amounts: Sequence[float]) -> float:
    if len(amounts) == 0:
        return 0.0
    return float(np.std(np.asarray(amounts, dtype=float)))


def relative_trend(chronological_amounts: Sequence[float]) -> float:
    """
    OLS slope of amount against sequence index, as a fraction of the mean.

    Returns 0.0 for fewer than three points or a non-positive mean.
    """
    values = np.asarray(chronological_amounts, dtype=float)
    if values.size < 3:
        return 0.0
    mean = values.mean()
    if mean <= 0:
        return 0.0
    slope, _ = np.polyfit(np.arange(values.size), values, 1)
    return float(slope / mean)


def top_buckets(totals: Sequence[float], count: int) -> list[int]:
    """Indices of the `count` largest non-zero buckets, largest first."""
    ranked = sorted(
        (i for i, total in enumerate(totals) if total > 0),
        key=lambda i: totals[i],
        reverse=True,
    )
    return ranked[:count]
