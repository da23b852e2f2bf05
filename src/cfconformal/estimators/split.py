"""Weighted split conformal calibration.

The data are split once: the outcome and propensity models are trained
on one part, and the nonconformity scores of the observed units in the
other part form the calibration sample.

References
----------
- Lei and Candès (2021). "Conformal Inference of Counterfactuals and
  Individual Treatment Effects"
- Tibshirani et al. (2019). "Conformal Prediction Under Covariate Shift"
"""

from __future__ import annotations

import numpy as np
from sklearn.model_selection import train_test_split

from .._typing import (
    ArrayLike,
    BoolArray,
    DataFrameOrArray,
    Float64Array,
    Int64Array,
    MeanLearner,
    PropensityLearner,
    QuantileLearner,
)
from .._validation import readonly
from ..config import DEFAULT_WEIGHT_BOUNDS, ConformalConfig
from ..results.conformal_results import SplitConformalResult
from .base import ConformalEstimatorBase


class SplitConformal(ConformalEstimatorBase):
    """Split conformal intervals under covariate shift.

    Parameters
    ----------
    train_prop : float, default=0.5
        Share of units used to train the models.
    **kwargs
        See ``ConformalEstimatorBase``.

    Attributes
    ----------
    results_ : SplitConformalResult
        Calibrator from the last ``fit``.

    Examples
    --------
    >>> from cfconformal import SplitConformal
    >>> cal = SplitConformal(score_type="cqr", random_state=0)
    >>> result = cal.fit(X, Y)          # Y has NaN where missing
    >>> result.predict(X_test, alpha=0.1).head()
    """

    def __init__(
        self,
        score_type: str = "cqr",
        side: str = "two",
        quantile_levels=None,
        outcome_learner: MeanLearner | QuantileLearner | None = None,
        propensity_learner: PropensityLearner | None = None,
        estimand: str = "unconditional",
        weight_bounds: tuple[float, float] = DEFAULT_WEIGHT_BOUNDS,
        train_prop: float = 0.5,
        random_state: int | None = None,
        verbose: int = 0,
    ) -> None:
        super().__init__(
            score_type=score_type,
            side=side,
            quantile_levels=quantile_levels,
            outcome_learner=outcome_learner,
            propensity_learner=propensity_learner,
            estimand=estimand,
            weight_bounds=weight_bounds,
            random_state=random_state,
            verbose=verbose,
        )
        self.train_prop = train_prop

    def _config(self) -> ConformalConfig:
        return self._make_config(train_prop=self.train_prop)

    def _fit_impl(self, config, X, Y, observed):
        train_index, calib_index = train_test_split(
            np.arange(X.shape[0]),
            train_size=config.train_prop,
            random_state=self.random_state,
        )
        return self._calibrate(config, X, Y, observed, train_index, calib_index)

    def fit_partition(
        self,
        X: DataFrameOrArray,
        Y: ArrayLike,
        train_index: ArrayLike,
        calib_index: ArrayLike,
        observed: ArrayLike | None = None,
    ) -> SplitConformalResult:
        """Fit on caller-chosen training and calibration rows.

        The two index sets may overlap; passing the same rows for both
        calibrates in-sample.
        """
        config = self._config()
        X_array, Y_array, mask = self._validate_data(X, Y, observed)
        self.results_ = self._calibrate(
            config,
            X_array,
            Y_array,
            mask,
            np.asarray(train_index, dtype=np.int64),
            np.asarray(calib_index, dtype=np.int64),
        )
        return self.results_

    def _calibrate(
        self,
        config: ConformalConfig,
        X: Float64Array,
        Y: Float64Array,
        observed: BoolArray,
        train_index: Int64Array,
        calib_index: Int64Array,
    ) -> SplitConformalResult:
        score = config.make_score()
        fit_index = train_index[observed[train_index]]
        if self.verbose >= 1:
            print(f"  Training on {len(fit_index)} observed of {len(train_index)} units")

        outcome_model = self._fit_outcome(score, Y[fit_index], X[fit_index])
        propensity_model = self._fit_propensity(X[train_index], observed[train_index])

        cal = calib_index[observed[calib_index]]
        scores = score.score(outcome_model(X[cal]), Y[cal]) if len(cal) else np.empty(0)
        weights = self._calibration_weights(propensity_model, X[cal])
        if self.verbose >= 1:
            print(f"  Calibrating on {len(cal)} observed units")

        return SplitConformalResult(
            score=score,
            outcome_model=outcome_model,
            propensity_model=propensity_model,
            scores=readonly(scores),
            weights=readonly(weights),
            estimand=config.estimand,
            weight_bounds=config.weight_bounds,
            n_train=int(len(fit_index)),
            n_calib=int(len(cal)),
        )
