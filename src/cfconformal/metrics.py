"""Coverage and width diagnostics for prediction intervals."""

from __future__ import annotations

import numpy as np
import pandas as pd
from scipy import stats

from ._typing import ArrayLike
from .weights import effective_sample_size

__all__ = ["covered", "evaluate_coverage", "interval_width", "effective_sample_size"]


def _bounds(intervals) -> tuple[np.ndarray, np.ndarray]:
    if isinstance(intervals, pd.DataFrame):
        return (
            intervals["lower"].to_numpy(dtype=np.float64),
            intervals["upper"].to_numpy(dtype=np.float64),
        )
    intervals = np.asarray(intervals, dtype=np.float64)
    return intervals[:, 0], intervals[:, 1]


def covered(intervals, y: ArrayLike) -> np.ndarray:
    """Boolean mask: ``lower <= y <= upper``."""
    lower, upper = _bounds(intervals)
    y = np.asarray(y, dtype=np.float64).ravel()
    return (y >= lower) & (y <= upper)


def interval_width(intervals) -> np.ndarray:
    lower, upper = _bounds(intervals)
    return upper - lower


def clopper_pearson(k: int, n: int, confidence: float = 0.95) -> tuple[float, float]:
    """Exact binomial confidence interval for ``k`` successes in ``n``."""
    a = 1 - confidence
    lo = stats.beta.ppf(a / 2, k, n - k + 1) if k > 0 else 0.0
    hi = stats.beta.ppf(1 - a / 2, k + 1, n - k) if k < n else 1.0
    return float(lo), float(hi)


def evaluate_coverage(intervals, y: ArrayLike, confidence: float = 0.95) -> dict:
    """Empirical coverage with a Clopper-Pearson interval and width summaries.

    Parameters
    ----------
    intervals : pd.DataFrame or array
        ``lower`` / ``upper`` columns, or an ``(m, 2)`` array.
    y : array-like
        True values.
    confidence : float
        Level of the binomial interval on coverage.

    Returns
    -------
    dict
        coverage, coverage_ci, mean_width, median_width (finite intervals
        only), n_unbounded and n.
    """
    hits = covered(intervals, y)
    widths = interval_width(intervals)
    finite = np.isfinite(widths)
    n = hits.shape[0]
    k = int(hits.sum())

    return {
        "coverage": k / n if n else np.nan,
        "coverage_ci": clopper_pearson(k, n, confidence) if n else (np.nan, np.nan),
        "mean_width": float(widths[finite].mean()) if finite.any() else np.inf,
        "median_width": float(np.median(widths[finite])) if finite.any() else np.inf,
        "n_unbounded": int((~finite).sum()),
        "n": n,
    }
