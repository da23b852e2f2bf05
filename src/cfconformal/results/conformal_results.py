"""Fitted calibrators.

``fit`` returns one of these frozen containers. Each holds the trained
predictors and a read-only calibration sample, and answers any number
of ``predict(X, alpha)`` queries without retraining.
"""

from __future__ import annotations

import warnings
from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from tabulate import tabulate

from .._typing import DataFrameOrArray, Float64Array, Int64Array
from .._validation import as_covariates
from ..quantile import (
    _BLOCK_CELLS,
    weighted_conformal_quantile,
    weighted_conformal_quantile_rows,
)
from ..scores import NonconformityScore
from ..exceptions import UnboundedIntervalWarning
from ..weights import effective_sample_size, propensity_to_weights


def _test_weights(propensity_model, X: Float64Array, estimand, bounds) -> Float64Array:
    if propensity_model is None:
        return np.ones(X.shape[0])
    return propensity_to_weights(propensity_model(X), estimand, bounds)


def _warn_unbounded(lower, upper, score, alpha) -> None:
    n_inf = 0
    if score.bounded_below:
        n_inf = max(n_inf, int(np.isinf(lower).sum()))
    if score.bounded_above:
        n_inf = max(n_inf, int(np.isinf(upper).sum()))
    if n_inf:
        warnings.warn(
            f"{n_inf} of {len(lower)} intervals have an infinite endpoint at "
            f"alpha={alpha}: the calibration sample is too small or too "
            "unevenly weighted for this level",
            UnboundedIntervalWarning,
            stacklevel=3,
        )


def _interval_frame(lower, upper, index) -> pd.DataFrame:
    return pd.DataFrame({"lower": lower, "upper": upper}, index=index)


def _score_label(score: NonconformityScore) -> str:
    levels = getattr(score, "quantile_levels", None)
    return score.name if levels is None else f"{score.name} {levels}"


@dataclass(frozen=True)
class SplitConformalResult:
    """Split-conformal calibrator after ``fit``.

    Attributes
    ----------
    score : NonconformityScore
        Score used for calibration.
    outcome_model : callable
        Fitted outcome predictor (trained on the training fold).
    propensity_model : callable or None
        Fitted propensity predictor; None means uniform weights.
    scores : Float64Array
        Read-only calibration scores.
    weights : Float64Array
        Read-only calibration weights.
    estimand : str
        Target population.
    weight_bounds : tuple of float
        Clipping range applied to test weights.
    n_train : int
        Observed units used to train the outcome model.
    n_calib : int
        Observed calibration units.
    """

    score: NonconformityScore
    outcome_model: Any
    propensity_model: Any
    scores: Float64Array
    weights: Float64Array
    estimand: str
    weight_bounds: tuple[float, float]
    n_train: int
    n_calib: int

    @property
    def effective_sample_size(self) -> float:
        return effective_sample_size(self.weights)

    def test_weights(self, X: DataFrameOrArray) -> Float64Array:
        X_array, _ = as_covariates(X)
        return _test_weights(self.propensity_model, X_array, self.estimand, self.weight_bounds)

    def conformal_quantile(self, X: DataFrameOrArray, alpha: float = 0.1) -> Float64Array:
        """Calibrated score threshold for each row of ``X``."""
        return weighted_conformal_quantile(
            self.scores, self.weights, self.test_weights(X), alpha
        )

    def predict(self, X: DataFrameOrArray, alpha: float = 0.1) -> pd.DataFrame:
        """Prediction intervals with marginal coverage ``1 - alpha``.

        Parameters
        ----------
        X : DataFrameOrArray
            Test covariates ``(m, d)``.
        alpha : float, default=0.1
            Miscoverage level.

        Returns
        -------
        pd.DataFrame
            Columns ``lower`` and ``upper``; unbounded endpoints are
            ``-inf`` / ``+inf``.
        """
        X_array, index = as_covariates(X)
        prediction = self.outcome_model(X_array)
        weights = _test_weights(
            self.propensity_model, X_array, self.estimand, self.weight_bounds
        )
        q = weighted_conformal_quantile(self.scores, self.weights, weights, alpha)
        lower, upper = self.score.interval(prediction, q)
        _warn_unbounded(lower, upper, self.score, alpha)
        return _interval_frame(lower, upper, index)

    def summary(self) -> str:
        """Generate summary table."""
        rows = [
            ["Score", _score_label(self.score)],
            ["Side", self.score.side],
            ["Estimand", self.estimand],
            ["Weighted", "no" if self.propensity_model is None else "yes"],
            ["Training units", self.n_train],
            ["Calibration units", self.n_calib],
            ["Effective calib. size", f"{self.effective_sample_size:.1f}"],
        ]
        if self.n_calib:
            rows.append(["Median score", f"{np.median(self.scores):.4f}"])
        lines = [
            "=" * 60,
            "            Split Conformal Calibration",
            "=" * 60,
            tabulate(rows, tablefmt="simple"),
            "=" * 60,
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"SplitConformalResult(score={self.score.name!r}, side={self.score.side!r}, "
            f"n_calib={self.n_calib})"
        )


@dataclass(frozen=True)
class FoldFit:
    """Models trained on the complement of one CV+ fold."""

    outcome_model: Any
    propensity_model: Any
    calib_index: Int64Array
    scores: Float64Array
    weights: Float64Array
    n_train: int


@dataclass(frozen=True)
class CVPlusConformalResult:
    """CV+ calibrator after ``fit``.

    Attributes
    ----------
    score : NonconformityScore
        Score used for calibration.
    folds : tuple of FoldFit
        Per-fold predictors and out-of-fold calibration data.
    scores : Float64Array
        Read-only out-of-fold scores of all observed units.
    weights : Float64Array
        Read-only out-of-fold weights.
    fold_ids : Int64Array
        Fold of each calibration unit.
    estimand : str
    weight_bounds : tuple of float
    """

    score: NonconformityScore
    folds: tuple
    scores: Float64Array
    weights: Float64Array
    fold_ids: Int64Array
    estimand: str
    weight_bounds: tuple[float, float]

    @property
    def n_folds(self) -> int:
        return len(self.folds)

    @property
    def n_calib(self) -> int:
        return int(self.scores.shape[0])

    @property
    def effective_sample_size(self) -> float:
        return effective_sample_size(self.weights)

    def test_weights(self, X: DataFrameOrArray) -> Float64Array:
        """Test weight averaged over the fold propensity models."""
        X_array, _ = as_covariates(X)
        return self._test_weights(X_array)

    def _test_weights(self, X_array: Float64Array) -> Float64Array:
        return np.mean(
            [
                _test_weights(fold.propensity_model, X_array, self.estimand, self.weight_bounds)
                for fold in self.folds
            ],
            axis=0,
        )

    def predict(self, X: DataFrameOrArray, alpha: float = 0.1) -> pd.DataFrame:
        """CV+ prediction intervals.

        For calibration unit ``i`` in fold ``k(i)``, the upper bound is the
        weighted ``1 - alpha`` quantile of ``a_hi_k(i)(x) + R_i`` and the
        lower bound the negated quantile of ``R_i - a_lo_k(i)(x)``, both
        with a +inf atom carrying the test weight.
        """
        X_array, index = as_covariates(X)
        m = X_array.shape[0]
        test_weights = self._test_weights(X_array)
        predictions = [fold.outcome_model(X_array) for fold in self.folds]

        lower = np.full(m, -np.inf)
        upper = np.full(m, np.inf)
        if self.score.bounded_above:
            anchors = np.stack([self.score.upper_anchor(p) for p in predictions])
            upper = self._row_quantiles(anchors, 1.0, test_weights, alpha)
        if self.score.bounded_below:
            anchors = np.stack([self.score.lower_anchor(p) for p in predictions])
            lower = -self._row_quantiles(anchors, -1.0, test_weights, alpha)

        _warn_unbounded(lower, upper, self.score, alpha)
        return _interval_frame(lower, upper, index)

    def _row_quantiles(self, anchors, sign, test_weights, alpha) -> Float64Array:
        # anchors: (n_folds, m); values[j, i] = sign * anchor_k(i)(x_j) + R_i
        m = anchors.shape[1]
        n = self.n_calib
        out = np.empty(m)
        block = max(1, _BLOCK_CELLS // max(n, 1))
        for start in range(0, m, block):
            stop = min(start + block, m)
            values = sign * anchors[self.fold_ids, start:stop].T + self.scores[None, :]
            out[start:stop] = weighted_conformal_quantile_rows(
                values, self.weights, test_weights[start:stop], alpha
            )
        return out

    def summary(self) -> str:
        """Generate summary table."""
        rows = [
            ["Score", _score_label(self.score)],
            ["Side", self.score.side],
            ["Estimand", self.estimand],
            ["Weighted", "no" if self.folds[0].propensity_model is None else "yes"],
            ["Folds", self.n_folds],
            ["Calibration units", self.n_calib],
            ["Effective calib. size", f"{self.effective_sample_size:.1f}"],
        ]
        if self.n_calib:
            rows.append(["Median score", f"{np.median(self.scores):.4f}"])
        lines = [
            "=" * 60,
            "              CV+ Conformal Calibration",
            "=" * 60,
            tabulate(rows, tablefmt="simple"),
            "=" * 60,
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return (
            f"CVPlusConformalResult(score={self.score.name!r}, side={self.score.side!r}, "
            f"n_folds={self.n_folds}, n_calib={self.n_calib})"
        )
