"""Nonconformity scores.

Every score is defined through two anchors, the model-side lower and
upper endpoints ``a_lo(x)`` and ``a_hi(x)``:

    two-sided   S = max(a_lo(x) - Y, Y - a_hi(x)),  interval [a_lo - q, a_hi + q]
    above       S = a_lo(x) - Y,                   interval [a_lo - q, +inf)
    below       S = Y - a_hi(x),                   interval (-inf, a_hi + q]

Mean-residual scores use ``mu(x)`` for both anchors (so the two-sided
score is ``|Y - mu(x)|``), CQR uses the fitted quantiles, and the
interval score uses separate mean models for the two endpoints of an
interval-valued target.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any

import numpy as np

from ._typing import Float64Array, QuantileLevels
from .config import SCORE_TYPES, SIDES, resolve_quantile_levels
from .exceptions import ConfigurationError
from .learners.base import fit_checked


class NonconformityScore(ABC):
    """Base class for nonconformity scores.

    Parameters
    ----------
    side : {"two", "above", "below"}
        Which endpoints are bounded.
    """

    name = "base"

    def __init__(self, side: str = "two") -> None:
        if side not in SIDES:
            raise ConfigurationError(f"side must be one of {SIDES}, got {side!r}")
        self.side = side

    @property
    def bounded_below(self) -> bool:
        return self.side in ("two", "above")

    @property
    def bounded_above(self) -> bool:
        return self.side in ("two", "below")

    @abstractmethod
    def fit(self, learner: Any, Y: Float64Array, X: Float64Array):
        """Train the model(s) behind the score and return a predictor."""

    @abstractmethod
    def _anchors(self, prediction: Float64Array) -> tuple[Float64Array, Float64Array]:
        """Model-side (lower, upper) endpoints for each row."""

    def _targets(self, Y: Float64Array) -> tuple[Float64Array, Float64Array]:
        return Y, Y

    def lower_anchor(self, prediction: Float64Array) -> Float64Array | None:
        return self._anchors(prediction)[0] if self.bounded_below else None

    def upper_anchor(self, prediction: Float64Array) -> Float64Array | None:
        return self._anchors(prediction)[1] if self.bounded_above else None

    def score(self, prediction: Float64Array, Y: Float64Array) -> Float64Array:
        """Nonconformity scores of outcomes ``Y`` under ``prediction``."""
        lo, hi = self._anchors(prediction)
        Y_lo, Y_hi = self._targets(np.asarray(Y, dtype=np.float64))
        with np.errstate(invalid="ignore"):
            if self.side == "two":
                return np.maximum(lo - Y_lo, Y_hi - hi)
            if self.side == "above":
                return lo - Y_lo
            return Y_hi - hi

    def interval(
        self, prediction: Float64Array, q: float | Float64Array
    ) -> tuple[Float64Array, Float64Array]:
        """Invert the score at threshold ``q`` (scalar or per row)."""
        lo, hi = self._anchors(prediction)
        q = np.broadcast_to(np.asarray(q, dtype=np.float64), lo.shape)
        lower = lo - q if self.bounded_below else np.full(lo.shape, -np.inf)
        upper = hi + q if self.bounded_above else np.full(hi.shape, np.inf)
        return lower, upper

    def __repr__(self) -> str:
        return f"{type(self).__name__}(side={self.side!r})"


class MeanResidualScore(NonconformityScore):
    """Residual of a conditional-mean model."""

    name = "mean"

    def fit(self, learner, Y, X):
        return fit_checked(learner, "mean", Y, X)

    def _anchors(self, prediction):
        return prediction, prediction


class CQRScore(NonconformityScore):
    """Conformalized quantile regression score.

    Parameters
    ----------
    side : {"two", "above", "below"}
    quantile_levels : float or pair of floats, optional
        Two levels for two-sided, one otherwise. Defaults depend on side.
    """

    name = "cqr"

    def __init__(
        self, side: str = "two", quantile_levels: QuantileLevels | None = None
    ) -> None:
        super().__init__(side)
        self.quantile_levels = resolve_quantile_levels(side, quantile_levels)

    def fit(self, learner, Y, X):
        return fit_checked(learner, "quantile", Y, X, self.quantile_levels)

    def _anchors(self, prediction):
        if prediction.ndim == 2:
            return prediction[:, 0], prediction[:, 1]
        return prediction, prediction

    def __repr__(self) -> str:
        return f"CQRScore(side={self.side!r}, quantile_levels={self.quantile_levels!r})"


class _ConstantPredictor:
    def __init__(self, value: float) -> None:
        self.value = value

    def __call__(self, X: Float64Array) -> Float64Array:
        return np.full(X.shape[0], self.value)


class _EndpointPredictor:
    def __init__(self, lower, upper) -> None:
        self.lower = lower
        self.upper = upper

    def __call__(self, X: Float64Array) -> Float64Array:
        return np.column_stack([self.lower(X), self.upper(X)])


class IntervalScore(NonconformityScore):
    """Score for interval-valued targets ``[Y_L, Y_R]``.

    One mean model per endpoint, each fit on the rows where that
    endpoint is finite. The score is ``max(m_L(x) - Y_L, Y_R - m_R(x))``.
    An endpoint that is never finite gets a constant model, so every
    score is +inf and the intervals are unbounded.
    """

    name = "interval"

    def fit(self, learner, Y, X):
        Y = np.asarray(Y, dtype=np.float64)
        if Y.ndim != 2 or Y.shape[1] != 2:
            raise ValueError(f"Interval targets must have shape (n, 2), got {Y.shape}")

        endpoints = []
        for col in (0, 1):
            finite = np.isfinite(Y[:, col])
            if not finite.any():
                endpoints.append(_ConstantPredictor(0.0))
                continue
            endpoints.append(fit_checked(learner, "mean", Y[finite, col], X[finite]))
        return _EndpointPredictor(*endpoints)

    def _anchors(self, prediction):
        return prediction[:, 0], prediction[:, 1]

    def _targets(self, Y):
        return Y[:, 0], Y[:, 1]


def make_score(
    score_type: str,
    side: str = "two",
    quantile_levels: QuantileLevels | None = None,
) -> NonconformityScore:
    """Build a score by name."""
    if score_type == "mean":
        return MeanResidualScore(side)
    if score_type == "cqr":
        return CQRScore(side, quantile_levels)
    if score_type == "interval":
        return IntervalScore(side)
    raise ConfigurationError(
        f"score_type must be one of {SCORE_TYPES}, got {score_type!r}"
    )
