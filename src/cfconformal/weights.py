"""Likelihood-ratio weights from propensity scores.

With ``e(x) = P(observed | x)`` the density ratio between the target
population and the observed units is, up to a constant:

    unconditional  1 / e(x)
    missing        (1 - e(x)) / e(x)
    nonmissing     1

Weights are clipped to ``bounds`` to keep extreme propensities from
dominating the calibration distribution.
"""

from __future__ import annotations

import numpy as np

from ._typing import Float64Array
from .config import DEFAULT_WEIGHT_BOUNDS, ESTIMANDS
from .exceptions import AdapterContractError, ConfigurationError


def propensity_to_weights(
    propensity: Float64Array,
    estimand: str = "unconditional",
    bounds: tuple[float, float] = DEFAULT_WEIGHT_BOUNDS,
) -> Float64Array:
    """Map propensity scores to clipped likelihood-ratio weights."""
    if estimand not in ESTIMANDS:
        raise ConfigurationError(
            f"estimand must be one of {ESTIMANDS}, got {estimand!r}"
        )
    e = np.asarray(propensity, dtype=np.float64)
    if np.any(~np.isfinite(e)) or np.any((e <= 0) | (e >= 1)):
        raise AdapterContractError(
            f"propensity scores must lie in (0, 1) (shape {e.shape})"
        )

    if estimand == "unconditional":
        weights = 1.0 / e
    elif estimand == "missing":
        weights = (1.0 - e) / e
    else:
        weights = np.ones_like(e)

    low, high = bounds
    return np.clip(weights, low, high)


def effective_sample_size(weights: Float64Array) -> float:
    """Kish effective sample size ``(sum w)^2 / sum w^2``."""
    weights = np.asarray(weights, dtype=np.float64)
    denom = np.sum(weights**2)
    if denom <= 0:
        return 0.0
    return float(np.sum(weights) ** 2 / denom)
