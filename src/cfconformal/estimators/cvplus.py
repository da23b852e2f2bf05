"""Weighted CV+ conformal calibration.

Every unit is scored out of fold, so all observed units contribute to
the calibration sample while the models of each fold never see their
own calibration units.

References
----------
- Barber et al. (2021). "Predictive Inference with the Jackknife+"
- Lei and Candès (2021). "Conformal Inference of Counterfactuals and
  Individual Treatment Effects"
"""

from __future__ import annotations

import warnings
from dataclasses import replace

import numpy as np
from joblib import Parallel, delayed
from sklearn.model_selection import KFold
from tqdm import tqdm

from .._typing import MeanLearner, PropensityLearner, QuantileLearner
from .._validation import readonly
from ..config import DEFAULT_WEIGHT_BOUNDS, ConformalConfig
from ..exceptions import ConfigurationError
from ..results.conformal_results import CVPlusConformalResult, FoldFit
from .base import ConformalEstimatorBase


class CVPlusConformal(ConformalEstimatorBase):
    """CV+ intervals under covariate shift.

    Parameters
    ----------
    n_folds : int, default=10
        Number of folds, between 2 and the number of units
        (``n_folds = n`` is the weighted jackknife+).
    n_jobs : int, default=1
        Parallel jobs for fold fitting (joblib semantics).
    **kwargs
        See ``ConformalEstimatorBase``.

    Attributes
    ----------
    results_ : CVPlusConformalResult
        Calibrator from the last ``fit``.
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
        n_folds: int = 10,
        n_jobs: int = 1,
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
        self.n_folds = n_folds
        self.n_jobs = n_jobs

    def _config(self) -> ConformalConfig:
        return self._make_config(use_cv=True, n_folds=self.n_folds)

    def _fit_impl(self, config, X, Y, observed):
        n = X.shape[0]
        if config.n_folds > n:
            raise ConfigurationError(
                f"n_folds={config.n_folds} exceeds the number of units ({n})"
            )
        score = config.make_score()
        kf = KFold(n_splits=config.n_folds, shuffle=True, random_state=self.random_state)
        splits = list(kf.split(X))

        if self.n_jobs == 1:
            folds = []
            iterator = tqdm(
                splits,
                desc="CV+ folds",
                disable=self.verbose < 1,
            )
            for train_idx, test_idx in iterator:
                folds.append(self._fit_fold(score, X, Y, observed, train_idx, test_idx))
        else:
            if self.verbose >= 1:
                print(f"  Fitting {len(splits)} folds with n_jobs={self.n_jobs}")
            folds = Parallel(n_jobs=self.n_jobs)(
                delayed(self._fit_fold)(score, X, Y, observed, train_idx, test_idx)
                for train_idx, test_idx in splits
            )

        folds = self._uniform_if_degenerate(folds, config.estimand)

        scores = np.concatenate([fold.scores for fold in folds])
        weights = np.concatenate([fold.weights for fold in folds])
        fold_ids = np.concatenate(
            [np.full(len(fold.scores), k, dtype=np.int64) for k, fold in enumerate(folds)]
        )

        return CVPlusConformalResult(
            score=score,
            folds=tuple(folds),
            scores=readonly(scores),
            weights=readonly(weights),
            fold_ids=readonly(fold_ids),
            estimand=config.estimand,
            weight_bounds=config.weight_bounds,
        )

    def _uniform_if_degenerate(self, folds, estimand):
        """Use uniform weights in every fold if any fold has none.

        A fold whose training units all share one missingness status has
        no propensity model. All folds must share one weight scale.
        """
        if estimand == "nonmissing" or all(f.propensity_model is not None for f in folds):
            return folds
        if any(f.propensity_model is not None for f in folds):
            warnings.warn(
                "Propensity model could not be fit in every fold; "
                "using uniform weights in all folds",
                UserWarning,
                stacklevel=4,
            )
        return [
            replace(f, propensity_model=None, weights=readonly(np.ones(len(f.weights))))
            for f in folds
        ]

    def _fit_fold(self, score, X, Y, observed, train_idx, test_idx) -> FoldFit:
        fit_index = train_idx[observed[train_idx]]
        outcome_model = self._fit_outcome(score, Y[fit_index], X[fit_index])
        propensity_model = self._fit_propensity(X[train_idx], observed[train_idx])

        cal = test_idx[observed[test_idx]]
        scores = score.score(outcome_model(X[cal]), Y[cal]) if len(cal) else np.empty(0)
        weights = self._calibration_weights(propensity_model, X[cal])

        return FoldFit(
            outcome_model=outcome_model,
            propensity_model=propensity_model,
            calib_index=readonly(cal),
            scores=readonly(scores),
            weights=readonly(weights),
            n_train=int(len(fit_index)),
        )
