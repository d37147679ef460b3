"""
Robust statistics for calibration post-processing.

Median/MAD based estimators stay meaningful with up to ~50% contamination,
so a handful of tiles with failed detections or a stuck actuator cannot
skew the grid footprint.

- MAD: median(|v - median|)
- Normalized MAD: MAD * 1.4826, comparable to a standard deviation
- Outlier: a value more than `mad_threshold` normalized MADs from the median
"""
from dataclasses import dataclass, field
from typing import Callable, Generic, List, Sequence, Tuple, TypeVar
import logging

import numpy as np

logger = logging.getLogger(__name__)

T = TypeVar("T")

NORMALIZED_MAD_FACTOR = 1.4826
DEFAULT_OUTLIER_MAD_THRESHOLD = 3.0

DIRECTIONS = ("both", "high", "low")


@dataclass
class OutlierDetectionResult(Generic[T]):
    """Outcome of MAD-based outlier detection."""
    inliers: List[T] = field(default_factory=list)
    outliers: List[T] = field(default_factory=list)
    outlier_indices: List[int] = field(default_factory=list)  # Positions in the input
    median: float = 0.0
    mad: float = 0.0
    n_mad: float = 0.0
    upper_threshold: float = float("inf")
    lower_threshold: float = float("-inf")


def compute_median(values: Sequence[float]) -> float:
    """
    Median of values, 0.0 for empty input. Input is not modified.
    """
    if len(values) == 0:
        return 0.0
    return float(np.median(np.asarray(values, dtype=float)))


def compute_mad(values: Sequence[float], median: float) -> float:
    """
    Median absolute deviation from `median`, 0.0 for fewer than 2 values.
    """
    if len(values) < 2:
        return 0.0
    deviations = np.abs(np.asarray(values, dtype=float) - median)
    return float(np.median(deviations))


def compute_normalized_mad(values: Sequence[float], median: float) -> float:
    return compute_mad(values, median) * NORMALIZED_MAD_FACTOR


def _outlier_mask(
        values: Sequence[float],
        mad_threshold: float,
        direction: str
) -> Tuple[np.ndarray, OutlierDetectionResult]:
    if direction not in DIRECTIONS:
        raise ValueError(f"direction must be one of {DIRECTIONS}, got {direction!r}")

    stats: OutlierDetectionResult = OutlierDetectionResult()
    arr = np.asarray(values, dtype=float)
    mask = np.zeros(len(arr), dtype=bool)

    if len(arr) == 0:
        return mask, stats
    if len(arr) == 1:
        stats.median = float(arr[0])
        return mask, stats

    median = compute_median(arr)
    mad = compute_mad(arr, median)
    stats.median = median
    stats.mad = mad
    stats.n_mad = mad * NORMALIZED_MAD_FACTOR

    # All values identical (or majority identical): nothing to reject
    if mad == 0:
        return mask, stats

    deviation = mad_threshold * stats.n_mad
    stats.upper_threshold = median + deviation
    stats.lower_threshold = median - deviation

    if direction in ("both", "high"):
        mask |= arr > stats.upper_threshold
    if direction in ("both", "low"):
        mask |= arr < stats.lower_threshold
    return mask, stats


def detect_outliers(
        values: Sequence[float],
        mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD,
        direction: str = "both"
) -> OutlierDetectionResult[float]:
    """
    Split values into inliers and outliers using median/MAD.

    Args:
        values: Numbers to classify
        mad_threshold: Normalized MADs from the median beyond which a value is an outlier
        direction: 'both', 'high' or 'low'

    Returns:
        OutlierDetectionResult; buckets keep the input order

    Example:
        >>> detect_outliers([1, 2, 3, 4, 100]).outliers
        [100]
    """
    mask, result = _outlier_mask(values, mad_threshold, direction)
    for index, value in enumerate(values):
        if mask[index]:
            result.outliers.append(value)
            result.outlier_indices.append(index)
        else:
            result.inliers.append(value)
    return result


def detect_outliers_with_keys(
        entries: Sequence[T],
        extractor: Callable[[T], float],
        mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD,
        direction: str = "both"
) -> OutlierDetectionResult[T]:
    """
    Outlier detection over arbitrary records.

    Args:
        entries: Records to classify (e.g. tiles with their blob size)
        extractor: Returns the numeric value of a record
        mad_threshold: See detect_outliers
        direction: See detect_outliers

    Returns:
        OutlierDetectionResult whose buckets hold the full records
    """
    values = [float(extractor(entry)) for entry in entries]
    mask, result = _outlier_mask(values, mad_threshold, direction)
    for index, entry in enumerate(entries):
        if mask[index]:
            result.outliers.append(entry)
            result.outlier_indices.append(index)
        else:
            result.inliers.append(entry)
    return result


def robust_max(
        values: Sequence[float],
        mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD
) -> float:
    """
    Maximum of the inliers (high-side outliers excluded).

    Falls back to the plain maximum for fewer than 2 values or when every
    value is rejected; 0.0 for empty input.
    """
    if len(values) == 0:
        return 0.0
    if len(values) < 2:
        return float(max(values))

    result = detect_outliers(values, mad_threshold=mad_threshold, direction="high")
    if not result.inliers:
        return float(max(values))
    return float(max(result.inliers))


def robust_min(
        values: Sequence[float],
        mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD
) -> float:
    """Minimum of the inliers; same fallbacks as robust_max."""
    if len(values) == 0:
        return 0.0
    if len(values) < 2:
        return float(min(values))

    result = detect_outliers(values, mad_threshold=mad_threshold, direction="low")
    if not result.inliers:
        return float(min(values))
    return float(min(result.inliers))


def robust_median(
        values: Sequence[float],
        mad_threshold: float = DEFAULT_OUTLIER_MAD_THRESHOLD
) -> float:
    """Median of the inliers (outliers on both sides excluded)."""
    if len(values) < 2:
        return compute_median(values)

    result = detect_outliers(values, mad_threshold=mad_threshold, direction="both")
    if not result.inliers:
        return compute_median(values)
    return compute_median(result.inliers)
