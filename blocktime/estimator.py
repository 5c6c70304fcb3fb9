from blocktime.types import EstimatedRange, StatisticalSummary

FULL_CONFIDENCE = 0.95


def estimate(cleaned, summary: StatisticalSummary, confidence_level: float) -> EstimatedRange:
    """
    Block time range from robust statistics of the cleaned series.

    lower = max(P25 - IQR/2, min), upper = min(P75 + IQR/2, P95) and
    typical = median. Below 95% confidence both bounds move toward each
    other proportionally. Only ``lower >= 0`` is enforced; after narrowing,
    typical may fall outside [lower, upper] on skewed data.
    """
    if len(cleaned) == 0:
        return EstimatedRange()

    iqr = summary.p75 - summary.p25
    lower = max(summary.p25 - 0.5 * iqr, summary.min)
    upper = min(summary.p75 + 0.5 * iqr, summary.p95)

    if confidence_level < FULL_CONFIDENCE:
        factor = confidence_level / FULL_CONFIDENCE
        adjustment = (upper - lower) * (1 - factor) / 2
        lower += adjustment
        upper -= adjustment

    return EstimatedRange(
        lower=max(lower, 0.0),
        upper=upper,
        typical=summary.median,
    )
