"""Base class for weighted conformal calibrators.

Calibrators follow the scikit-learn estimator conventions: parameters
are stored untouched in ``__init__``, ``fit`` validates them and returns
a frozen results object (also kept in ``results_``), and ``predict``
delegates to that object.
"""

from __future__ import annotations

import warnings
from abc import ABC, abstractmethod

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator
from sklearn.utils.validation import check_is_fitted

from .._typing import (
    ArrayLike,
    BoolArray,
    DataFrameOrArray,
    Float64Array,
    MeanLearner,
    PropensityLearner,
    QuantileLearner,
    QuantileLevels,
)
from .._validation import as_covariates, as_outcome, check_lengths, observed_mask
from ..config import DEFAULT_WEIGHT_BOUNDS, ConformalConfig
from ..learners.base import fit_checked
from ..scores import NonconformityScore
from ..weights import propensity_to_weights


class ConformalEstimatorBase(BaseEstimator, ABC):
    """Shared machinery of the Split and CV+ calibrators.

    Parameters
    ----------
    score_type : {"mean", "cqr", "interval"}, default="cqr"
        Nonconformity score.
    side : {"two", "above", "below"}, default="two"
        Which interval endpoints are bounded.
    quantile_levels : float or pair of floats, optional
        Levels for the CQR quantile learner.
    outcome_learner : object, optional
        Mean or quantile learner (adapter, scikit-learn estimator,
        ``fit_predict`` object or callable). Defaults to a random forest
        for mean scores and quantile gradient boosting for CQR.
    propensity_learner : object, optional
        Model for P(observed | X). Default is logistic regression.
    estimand : {"unconditional", "nonmissing", "missing"}
        Population the intervals should cover.
    weight_bounds : tuple of float, default=(0.05, 20)
        Clipping range of the likelihood-ratio weights.
    random_state : int, optional
        Seed for the data split / fold assignment.
    verbose : int, default=0
        Verbosity level.
    """

    def __init__(
        self,
        score_type: str = "cqr",
        side: str = "two",
        quantile_levels: QuantileLevels | None = None,
        outcome_learner: MeanLearner | QuantileLearner | None = None,
        propensity_learner: PropensityLearner | None = None,
        estimand: str = "unconditional",
        weight_bounds: tuple[float, float] = DEFAULT_WEIGHT_BOUNDS,
        random_state: int | None = None,
        verbose: int = 0,
    ) -> None:
        self.score_type = score_type
        self.side = side
        self.quantile_levels = quantile_levels
        self.outcome_learner = outcome_learner
        self.propensity_learner = propensity_learner
        self.estimand = estimand
        self.weight_bounds = weight_bounds
        self.random_state = random_state
        self.verbose = verbose

    def _make_config(self, **kwargs) -> ConformalConfig:
        return ConformalConfig(
            score_type=self.score_type,
            side=self.side,
            quantile_levels=self.quantile_levels,
            estimand=self.estimand,
            weight_bounds=tuple(self.weight_bounds),
            **kwargs,
        )

    @abstractmethod
    def _fit_impl(
        self,
        config: ConformalConfig,
        X: Float64Array,
        Y: Float64Array,
        observed: BoolArray,
    ):
        """Fit implementation; returns a results object."""

    def fit(
        self,
        X: DataFrameOrArray,
        Y: ArrayLike,
        observed: ArrayLike | None = None,
    ):
        """Train the models and calibrate.

        Parameters
        ----------
        X : DataFrameOrArray
            Covariates ``(n, d)``.
        Y : array-like
            Outcomes ``(n,)`` with NaN for missing values, or ``(n, 2)``
            interval targets when ``score_type="interval"``.
        observed : array-like of bool, optional
            Explicit mask of observed outcomes. Defaults to non-NaN rows.

        Returns
        -------
        results
            Frozen fitted calibrator, also stored as ``results_``.
        """
        config = self._config()
        X_array, Y_array, mask = self._validate_data(X, Y, observed)
        self.results_ = self._fit_impl(config, X_array, Y_array, mask)
        return self.results_

    @abstractmethod
    def _config(self) -> ConformalConfig:
        """Validated configuration for this calibrator."""

    def _validate_data(
        self,
        X: DataFrameOrArray,
        Y: ArrayLike,
        observed: ArrayLike | None,
    ) -> tuple[Float64Array, Float64Array, BoolArray]:
        X_array, _ = as_covariates(X)
        Y_array = as_outcome(Y, allow_interval=self.score_type == "interval")
        check_lengths(X_array, Y_array)
        mask = observed_mask(Y_array, observed)
        return X_array, Y_array, mask

    def _fit_outcome(self, score: NonconformityScore, Y, X):
        if Y.shape[0] == 0:
            raise ValueError("No observed outcomes in the training data")
        return score.fit(self.outcome_learner, Y, X)

    def _fit_propensity(self, X: Float64Array, observed: BoolArray):
        """Fit P(observed | X), or return None when weights are uniform."""
        if self.estimand == "nonmissing":
            return None
        if observed.all() or not observed.any():
            if self.estimand == "missing":
                warnings.warn(
                    "All training outcomes share the same missingness status; "
                    "falling back to uniform weights",
                    UserWarning,
                    stacklevel=4,
                )
            return None
        return fit_checked(
            self.propensity_learner, "propensity", observed.astype(np.float64), X
        )

    def _calibration_weights(self, propensity_model, X: Float64Array) -> Float64Array:
        if propensity_model is None or X.shape[0] == 0:
            return np.ones(X.shape[0])
        return propensity_to_weights(
            propensity_model(X), self.estimand, tuple(self.weight_bounds)
        )

    def predict(self, X: DataFrameOrArray, alpha: float = 0.1) -> pd.DataFrame:
        """Prediction intervals from the last fit.

        Raises
        ------
        NotFittedError
            If ``fit`` has not been called.
        """
        check_is_fitted(self, "results_")
        return self.results_.predict(X, alpha)
