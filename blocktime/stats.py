"""
Robust descriptive statistics over block time deltas.

Outliers are removed either with a modified z-score test on the median
absolute deviation (MAD) or with Tukey fences on the interquartile range.
Nothing in here raises: empty and degenerate inputs fall through to a
zero-valued summary or to the IQR branch.
"""

import math

import numpy as np
from scipy.stats import median_abs_deviation

from blocktime.types import CalculatorConfig, StatisticalSummary

MODIFIED_Z_SCALE = 0.6745
MODIFIED_Z_THRESHOLD = 3.5
MIN_VALUES_FOR_OUTLIERS = 4
MIN_VALUES_FOR_TRIM = 11


def percentile(sorted_values, p: float) -> float:
    """
    Percentile of an ascending sequence by linear interpolation between
    order statistics at rank ``p * (n - 1)``.

    Args:
        sorted_values: Values in ascending order.
        p: Fraction in [0, 1]; values outside are clamped to min/max.

    Returns:
        float: The interpolated value, or 0.0 for an empty sequence.
    """
    n = len(sorted_values)
    if n == 0:
        return 0.0
    if p <= 0:
        return float(sorted_values[0])
    if p >= 1:
        return float(sorted_values[-1])

    index = p * (n - 1)
    lower = math.floor(index)
    upper = math.ceil(index)
    if lower == upper:
        return float(sorted_values[lower])

    weight = index - lower
    return float(sorted_values[lower]) * (1 - weight) + float(sorted_values[upper]) * weight


def remove_outliers_iqr(sorted_values: list[float], threshold: float) -> tuple[list[float], int]:
    """Keep values inside [Q1 - t*IQR, Q3 + t*IQR]. Input must be sorted."""
    q1 = percentile(sorted_values, 0.25)
    q3 = percentile(sorted_values, 0.75)
    iqr = q3 - q1

    lower_bound = q1 - threshold * iqr
    upper_bound = q3 + threshold * iqr

    cleaned = [v for v in sorted_values if lower_bound <= v <= upper_bound]
    return cleaned, len(sorted_values) - len(cleaned)


def trim(values: list[float], trim_percent: float) -> tuple[list[float], int]:
    """Drop floor(n * trim_percent) values from each end of the sorted set."""
    trim_count = int(len(values) * trim_percent)
    if trim_count <= 0:
        return values, 0
    ordered = sorted(values)
    return ordered[trim_count:len(ordered) - trim_count], trim_count * 2


def clean(deltas, config: CalculatorConfig) -> tuple[list[float], int]:
    """
    Remove outliers from a delta series.

    The returned count is additive: values removed by the z-score test and
    values removed by the trimming pass are both counted.

    Args:
        deltas: Block times in seconds, in chain order.
        config: Calculator settings (strategy, IQR threshold, trim percent).

    Returns:
        tuple: (cleaned values, outlier count)
    """
    values = [float(v) for v in deltas]
    if len(values) < MIN_VALUES_FOR_OUTLIERS:
        return values, 0

    ordered = sorted(values)
    if not config.use_median_absolute:
        return remove_outliers_iqr(ordered, config.outlier_threshold)

    median = percentile(ordered, 0.5)
    mad = float(median_abs_deviation(ordered, scale=1.0))
    if mad == 0:
        # constant core, the z-score is undefined
        return remove_outliers_iqr(ordered, config.outlier_threshold)

    cleaned = []
    outlier_count = 0
    for v in values:
        modified_z = MODIFIED_Z_SCALE * (v - median) / mad
        if abs(modified_z) <= MODIFIED_Z_THRESHOLD:
            cleaned.append(v)
        else:
            outlier_count += 1

    if config.trim_percent > 0 and len(cleaned) >= MIN_VALUES_FOR_TRIM:
        cleaned, trimmed = trim(cleaned, config.trim_percent)
        outlier_count += trimmed

    return cleaned, outlier_count


def summarize(values) -> StatisticalSummary:
    """Descriptive statistics of an already cleaned series."""
    if len(values) == 0:
        return StatisticalSummary()

    ordered = sorted(float(v) for v in values)
    data = np.asarray(ordered, dtype=float)

    return StatisticalSummary(
        mean=float(np.mean(data)),
        median=percentile(ordered, 0.5),
        std_dev=float(np.std(data)),
        min=ordered[0],
        max=ordered[-1],
        p25=percentile(ordered, 0.25),
        p75=percentile(ordered, 0.75),
        p95=percentile(ordered, 0.95),
        p99=percentile(ordered, 0.99),
    )
