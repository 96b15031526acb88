"""
Market Statistics - Pure Functions for Testing

Percentile, median, standard deviation and IQR outlier removal over noisy
competitor price observations. No I/O, no database access.

Every published market price (overview, snapshot, AI context) runs through
remove_outliers() first, so a single erroneous listing cannot skew it.

Usage:
    from services.market_stats import percentile, remove_outliers, summarize_prices

    result = remove_outliers([100, 102, 98, 101, 99, 500])
    result.cleaned           # [98, 99, 100, 101, 102]
    result.outliers_removed  # 1
"""

import math
from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

from constants import IQR_MULTIPLIER, OUTLIER_MIN_SAMPLE


@dataclass(frozen=True)
class OutlierResult:
    """Outcome of IQR filtering. bounds is None when detection did not run."""
    cleaned: List[float]
    outliers_removed: int
    bounds: Optional[Tuple[float, float]] = None


# =============================================================================
# DESCRIPTIVE STATISTICS
# =============================================================================

def percentile(sorted_values: Sequence[float], p: float) -> float:
    """
    Linear-interpolated percentile of an ascending sequence.

    Rank is p/100 * (n-1); values at the two bracketing ranks are blended.
    An empty sequence returns 0 (treat as "no data", not an error).

    Example:
        >>> percentile([1, 2, 3, 4], 50)
        2.5
    """
    n = len(sorted_values)
    if n == 0:
        return 0
    idx = (p / 100.0) * (n - 1)
    lower = math.floor(idx)
    upper = math.ceil(idx)
    if lower == upper:
        return sorted_values[lower]
    return sorted_values[lower] + (sorted_values[upper] - sorted_values[lower]) * (idx - lower)


def median(sorted_values: Sequence[float]) -> float:
    return percentile(sorted_values, 50)


def mean(values: Sequence[float]) -> float:
    if not values:
        return 0
    return sum(values) / len(values)


def std_dev(values: Sequence[float], avg: Optional[float] = None) -> float:
    """Population standard deviation; fewer than two values returns 0."""
    if len(values) < 2:
        return 0
    if avg is None:
        avg = mean(values)
    return math.sqrt(sum((v - avg) ** 2 for v in values) / len(values))


# =============================================================================
# OUTLIER REMOVAL
# =============================================================================

def iqr_bounds(sorted_values: Sequence[float]) -> Tuple[float, float]:
    """Tukey fences [Q1 - k*IQR, Q3 + k*IQR] for an ascending sequence."""
    q1 = percentile(sorted_values, 25)
    q3 = percentile(sorted_values, 75)
    iqr = q3 - q1
    return q1 - IQR_MULTIPLIER * iqr, q3 + IQR_MULTIPLIER * iqr


def remove_outliers(values: Sequence[float]) -> OutlierResult:
    """
    IQR-based outlier removal.

    Below OUTLIER_MIN_SAMPLE observations the input is returned unchanged
    with zero removed. Otherwise values inside the closed fences are kept,
    returned ascending.
    """
    if len(values) < OUTLIER_MIN_SAMPLE:
        return OutlierResult(cleaned=list(values), outliers_removed=0)

    ordered = sorted(values)
    lower, upper = iqr_bounds(ordered)
    cleaned = [v for v in ordered if lower <= v <= upper]
    return OutlierResult(
        cleaned=cleaned,
        outliers_removed=len(values) - len(cleaned),
        bounds=(lower, upper),
    )


# =============================================================================
# SUMMARIES
# =============================================================================

def positive_values(values) -> List[float]:
    """Drop missing and non-positive observations."""
    return [v for v in values if v is not None and v > 0]


def summarize_prices(values: Sequence[float]) -> dict:
    """
    Price distribution over the outlier-cleaned series.

    Returns min/max/avg/median/p25/p75/stdDev (rounded to whole currency
    units) and outliersRemoved. Empty input yields zeros.
    """
    result = remove_outliers(positive_values(values))
    ordered = sorted(result.cleaned)
    avg = round(mean(ordered)) if ordered else 0

    return {
        'min': ordered[0] if ordered else 0,
        'max': ordered[-1] if ordered else 0,
        'avg': avg,
        'median': round(median(ordered)),
        'p25': round(percentile(ordered, 25)),
        'p75': round(percentile(ordered, 75)),
        'stdDev': round(std_dev(ordered, mean(ordered))) if ordered else 0,
        'outliersRemoved': result.outliers_removed,
    }


def summarize_range(values: Sequence[float]) -> dict:
    """min/max/avg of positive values, no outlier filtering."""
    ordered = sorted(positive_values(values))
    return {
        'min': ordered[0] if ordered else 0,
        'max': ordered[-1] if ordered else 0,
        'avg': round(mean(ordered)) if ordered else 0,
    }


def percentage(part: float, whole: float) -> int:
    """Whole-number share; 0 when the denominator is 0."""
    if not whole:
        return 0
    return round(part / whole * 100)


def percent_change(current: float, previous: float) -> float:
    """Change relative to previous, in percent to 2 dp; 0 when previous is 0."""
    if not previous:
        return 0
    return round((current - previous) / previous * 100, 2)
