"""
Robust statistics for consensus pricing.

Outliers are detected with the median absolute deviation (MAD), which
tolerates up to half of the sample being bad quotes.
"""
from typing import NamedTuple, Sequence

import numpy as np

from ev_bets.config.constants import MAD_SCALE_FACTOR, OUTLIER_MAD_THRESHOLD


class OutlierResult(NamedTuple):
    """Indices and per-value flags of detected outliers."""

    indices: list[int]
    is_outlier: list[bool]


def median(values: Sequence[float]) -> float:
    """Median of a non-empty sequence."""
    if len(values) == 0:
        raise ValueError("Cannot calculate median of empty array")
    return float(np.median(np.asarray(values, dtype=float)))


def mean(values: Sequence[float]) -> float:
    """Arithmetic mean of a non-empty sequence."""
    if len(values) == 0:
        raise ValueError("Cannot calculate mean of empty array")
    return float(np.mean(np.asarray(values, dtype=float)))


def mad(values: Sequence[float]) -> float:
    """Median absolute deviation from the median."""
    arr = np.asarray(values, dtype=float)
    med = median(arr)
    return float(np.median(np.abs(arr - med)))


def detect_outliers_mad(
    values: Sequence[float],
    threshold: float = OUTLIER_MAD_THRESHOLD,
) -> OutlierResult:
    """
    Flag values whose modified z-score exceeds the threshold.

    The MAD is scaled by 1.4826 so it estimates the standard deviation
    of normally distributed data. With fewer than three values, or when
    the MAD is zero (most quotes identical), nothing is flagged.

    Args:
        values: Sample to check (e.g., implied probabilities)
        threshold: Modified z-score cutoff

    Returns:
        OutlierResult with outlier indices and a boolean mask

    Examples:
        >>> detect_outliers_mad([0.50, 0.51, 0.49, 0.50, 0.90]).indices
        [4]
    """
    n = len(values)
    if n < 3:
        return OutlierResult([], [False] * n)

    arr = np.asarray(values, dtype=float)
    med = float(np.median(arr))
    deviation = float(np.median(np.abs(arr - med)))

    if deviation == 0:
        return OutlierResult([], [False] * n)

    scaled = deviation * MAD_SCALE_FACTOR
    mask = (np.abs(arr - med) / scaled) > threshold
    flags = [bool(flag) for flag in mask]
    indices = [i for i, flag in enumerate(flags) if flag]
    return OutlierResult(indices, flags)


def trimmed_mean(
    values: Sequence[float],
    threshold: float = OUTLIER_MAD_THRESHOLD,
) -> float:
    """
    Mean of the values left after MAD outlier removal.

    Falls back to the median if every value is flagged.
    """
    result = detect_outliers_mad(values, threshold)
    kept = [v for v, flagged in zip(values, result.is_outlier) if not flagged]
    if not kept:
        return median(values)
    return mean(kept)
