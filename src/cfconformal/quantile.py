"""Weighted conformal quantiles.

The calibration distribution is the weighted empirical distribution of
the scores plus a point mass at +inf carrying the test unit's weight::

    Q = inf { s : sum_i p_i 1{S_i <= s} + p_test 1{s = inf} >= 1 - alpha }

with ``p_i = w_i / (sum_j w_j + w_test)``. With uniform weights this is
the ceil((1 - alpha)(n + 1))-th smallest score, or +inf when that rank
exceeds n.
"""

from __future__ import annotations

import numpy as np

from ._typing import Float64Array
from .config import validate_alpha

# Relative slack on the (1 - alpha) mass threshold
_REL_TOL = 1e-10
# Max cells per block in the row-wise variant
_BLOCK_CELLS = 2_000_000


def _check_weights(weights, n: int) -> Float64Array:
    if weights is None:
        return np.ones(n)
    weights = np.asarray(weights, dtype=np.float64).ravel()
    if weights.shape[0] != n:
        raise ValueError(
            f"scores and weights have inconsistent lengths: {n} vs {weights.shape[0]}"
        )
    if np.any(~np.isfinite(weights)) or np.any(weights < 0):
        raise ValueError("weights must be finite and non-negative")
    return weights


def _check_test_weights(test_weight) -> Float64Array:
    test_weight = np.atleast_1d(np.asarray(test_weight, dtype=np.float64)).ravel()
    if np.any(~np.isfinite(test_weight)) or np.any(test_weight < 0):
        raise ValueError("test weights must be finite and non-negative")
    return test_weight


def weighted_conformal_quantile(
    scores: Float64Array,
    weights: Float64Array | None = None,
    test_weight: float | Float64Array = 1.0,
    alpha: float = 0.1,
) -> float | Float64Array:
    """Level ``1 - alpha`` quantile of the +inf-augmented weighted scores.

    Parameters
    ----------
    scores : Float64Array
        Calibration scores ``(n,)``. May contain +inf.
    weights : Float64Array, optional
        Non-negative calibration weights ``(n,)``. Uniform if omitted.
    test_weight : float or Float64Array
        Weight of the test unit. An array gives one quantile per entry.
    alpha : float
        Miscoverage level in (0, 1).

    Returns
    -------
    float or Float64Array
        Matches the shape of ``test_weight``. +inf when the calibration
        sample is empty, its total weight is zero, or the finite scores
        cannot reach mass ``1 - alpha``.
    """
    alpha = validate_alpha(alpha)
    scalar = np.ndim(test_weight) == 0
    scores = np.asarray(scores, dtype=np.float64).ravel()
    if np.isnan(scores).any():
        raise ValueError("scores contain NaN")
    n = scores.shape[0]
    weights = _check_weights(weights, n)
    test_weight = _check_test_weights(test_weight)

    if n == 0:
        q = np.full(test_weight.shape, np.inf)
        return float(q[0]) if scalar else q

    order = np.argsort(scores, kind="mergesort")
    sorted_scores = scores[order]
    cum_weights = np.cumsum(weights[order])

    total = cum_weights[-1] + test_weight
    threshold = (1.0 - alpha) * total * (1.0 - _REL_TOL)
    idx = np.searchsorted(cum_weights, threshold, side="left")

    q = np.where(idx < n, sorted_scores[np.minimum(idx, n - 1)], np.inf)
    q[(total <= 0) | (cum_weights[-1] <= 0)] = np.inf

    return float(q[0]) if scalar else q


def weighted_conformal_quantile_rows(
    values: Float64Array,
    weights: Float64Array | None,
    test_weights: Float64Array,
    alpha: float,
) -> Float64Array:
    """Row-wise weighted conformal quantile.

    ``values[j, i]`` is the candidate value of calibration unit ``i`` for
    test row ``j``; CV+ needs this because every test row shifts the
    scores by its own fold predictions.

    Parameters
    ----------
    values : Float64Array
        ``(m, n)`` candidate values.
    weights : Float64Array, optional
        ``(n,)`` calibration weights shared by all rows.
    test_weights : Float64Array
        ``(m,)`` test weights.
    alpha : float
        Miscoverage level.

    Returns
    -------
    Float64Array
        ``(m,)`` quantiles.
    """
    alpha = validate_alpha(alpha)
    values = np.asarray(values, dtype=np.float64)
    if values.ndim != 2:
        raise ValueError(f"values must be 2-dimensional, got shape {values.shape}")
    m, n = values.shape
    weights = _check_weights(weights, n)
    test_weights = _check_test_weights(test_weights)
    if test_weights.shape[0] == 1 and m != 1:
        test_weights = np.full(m, test_weights[0])
    if test_weights.shape[0] != m:
        raise ValueError(
            f"values has {m} rows but test_weights has {test_weights.shape[0]}"
        )

    out = np.full(m, np.inf)
    if n == 0 or weights.sum() <= 0:
        return out

    total = weights.sum() + test_weights
    thresholds = (1.0 - alpha) * total * (1.0 - _REL_TOL)
    block = max(1, _BLOCK_CELLS // n)

    for start in range(0, m, block):
        stop = min(start + block, m)
        chunk = values[start:stop]
        order = np.argsort(chunk, axis=1, kind="mergesort")
        sorted_chunk = np.take_along_axis(chunk, order, axis=1)
        cum_weights = np.cumsum(weights[order], axis=1)
        idx = (cum_weights < thresholds[start:stop, None]).sum(axis=1)
        picked = sorted_chunk[np.arange(stop - start), np.minimum(idx, n - 1)]
        out[start:stop] = np.where(idx < n, picked, np.inf)

    return out
