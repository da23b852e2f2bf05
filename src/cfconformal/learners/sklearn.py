"""Adapters around scikit-learn estimators.

Each adapter clones its template estimator on every ``fit`` so the same
adapter can be shared across folds and arms.
"""

from __future__ import annotations

from typing import Any

import numpy as np
from sklearn.base import BaseEstimator, clone
from sklearn.ensemble import GradientBoostingRegressor, RandomForestRegressor
from sklearn.linear_model import LogisticRegression

from .._typing import Float64Array, Predictor, QuantileLevels
from .base import LearnerAdapter


class SklearnRegressor(LearnerAdapter):
    """Conditional-mean adapter.

    Parameters
    ----------
    estimator : sklearn regressor, optional
        Template estimator. Default is a random forest.
    random_state : int, optional
        Seed for the default estimator.
    """

    def __init__(
        self,
        estimator: BaseEstimator | None = None,
        random_state: int | None = None,
    ) -> None:
        self.estimator = estimator
        self.random_state = random_state

    def _template(self) -> BaseEstimator:
        if self.estimator is not None:
            return self.estimator
        return RandomForestRegressor(
            n_estimators=200, min_samples_leaf=5, random_state=self.random_state
        )

    def fit(self, Y, X, quantile_levels=None) -> Predictor:
        model = clone(self._template())
        model.fit(X, np.asarray(Y, dtype=np.float64))
        return model.predict

    def __repr__(self) -> str:
        return f"SklearnRegressor({self._template()!r})"


class _StackedQuantiles:
    def __init__(self, models: list[Any], scalar: bool) -> None:
        self.models = models
        self.scalar = scalar

    def __call__(self, X: Float64Array) -> Float64Array:
        preds = np.column_stack([model.predict(X) for model in self.models])
        return preds[:, 0] if self.scalar else preds


class SklearnQuantileRegressor(LearnerAdapter):
    """Conditional-quantile adapter, one clone per level.

    Parameters
    ----------
    estimator : sklearn regressor, optional
        Template supporting a quantile loss. Default is
        ``GradientBoostingRegressor(loss="quantile")``.
    level_param : str, default="alpha"
        Name of the estimator parameter holding the quantile level
        ("alpha" for gradient boosting, "quantile" for
        ``QuantileRegressor`` and ``HistGradientBoostingRegressor``).
    random_state : int, optional
        Seed for the default estimator.
    """

    def __init__(
        self,
        estimator: BaseEstimator | None = None,
        level_param: str = "alpha",
        random_state: int | None = None,
    ) -> None:
        self.estimator = estimator
        self.level_param = level_param
        self.random_state = random_state

    def _template(self) -> BaseEstimator:
        if self.estimator is not None:
            return self.estimator
        return GradientBoostingRegressor(
            loss="quantile",
            n_estimators=100,
            max_depth=3,
            learning_rate=0.1,
            random_state=self.random_state,
        )

    def fit(self, Y, X, quantile_levels: QuantileLevels | None = None) -> Predictor:
        if quantile_levels is None:
            raise ValueError("SklearnQuantileRegressor needs quantile_levels")
        scalar = np.ndim(quantile_levels) == 0
        Y = np.asarray(Y, dtype=np.float64)

        models = []
        for level in np.atleast_1d(quantile_levels):
            model = clone(self._template())
            model.set_params(**{self.level_param: float(level)})
            model.fit(X, Y)
            models.append(model)
        return _StackedQuantiles(models, scalar)

    def __repr__(self) -> str:
        return f"SklearnQuantileRegressor({self._template()!r})"


class _ClippedProba:
    def __init__(self, model: Any, clip: float) -> None:
        self.model = model
        self.clip = clip
        self.positive = int(np.flatnonzero(model.classes_ == 1)[0])

    def __call__(self, X: Float64Array) -> Float64Array:
        proba = self.model.predict_proba(X)[:, self.positive]
        return np.clip(proba, self.clip, 1 - self.clip)


class SklearnClassifier(LearnerAdapter):
    """Propensity adapter returning P(T = 1 | X).

    Parameters
    ----------
    estimator : sklearn classifier, optional
        Template with ``predict_proba``. Default is logistic regression.
    clip : float, default=1e-3
        Probabilities are clipped to ``[clip, 1 - clip]``.
    """

    def __init__(
        self,
        estimator: BaseEstimator | None = None,
        clip: float = 1e-3,
    ) -> None:
        self.estimator = estimator
        self.clip = clip

    def _template(self) -> BaseEstimator:
        if self.estimator is not None:
            return self.estimator
        return LogisticRegression(max_iter=1000)

    def fit(self, Y, X, quantile_levels=None) -> Predictor:
        labels = np.asarray(Y).astype(int)
        if np.unique(labels).shape[0] < 2:
            raise ValueError("Propensity model needs both classes in the training data")
        model = clone(self._template())
        model.fit(X, labels)
        return _ClippedProba(model, self.clip)

    def __repr__(self) -> str:
        return f"SklearnClassifier({self._template()!r})"
