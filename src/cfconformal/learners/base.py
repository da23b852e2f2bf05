"""Learner adapter interface.

Calibrators train models once in ``fit`` and keep the fitted predictors
for every later ``predict`` call. ``LearnerAdapter`` subclasses expose
that directly through ``fit``; anything else that only offers the
``fit_predict`` contract (or is a plain callable) is wrapped in
``RefitAdapter``, which stores its training slice and refits on demand.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Callable

import numpy as np
from sklearn.base import BaseEstimator

from .._typing import Float64Array, Predictor, QuantileLevels
from ..exceptions import AdapterContractError

KINDS = ("mean", "quantile", "propensity")


class LearnerAdapter(ABC):
    """Base class for adapters that keep their fitted model.

    Subclasses implement ``fit`` and return a predictor, i.e. a callable
    mapping covariates ``(m, d)`` to predictions.
    """

    @abstractmethod
    def fit(
        self,
        Y: Float64Array,
        X: Float64Array,
        quantile_levels: QuantileLevels | None = None,
    ) -> Predictor:
        """Train on ``(Y, X)`` and return a predictor."""

    def fit_predict(
        self,
        Y_train: Float64Array,
        X_train: Float64Array,
        X_test: Float64Array,
        quantile_levels: QuantileLevels | None = None,
    ) -> Float64Array:
        return self.fit(Y_train, X_train, quantile_levels)(X_test)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"


class _Refit:
    """Predictor that reruns ``fit_predict`` on the stored training slice."""

    def __init__(self, func, Y, X, quantile_levels):
        self.func = func
        self.Y = np.array(Y, copy=True)
        self.X = np.array(X, copy=True)
        self.quantile_levels = quantile_levels

    def __call__(self, X_test: Float64Array) -> Float64Array:
        if self.quantile_levels is None:
            return self.func(self.Y, self.X, X_test)
        return self.func(self.Y, self.X, X_test, self.quantile_levels)


class RefitAdapter(LearnerAdapter):
    """Wrap a ``fit_predict`` object or callable.

    Parameters
    ----------
    func : callable
        ``func(Y_train, X_train, X_test[, quantile_levels])``.
    """

    def __init__(self, func: Callable[..., Float64Array]) -> None:
        self.func = func

    def fit(self, Y, X, quantile_levels=None) -> Predictor:
        return _Refit(self.func, Y, X, quantile_levels)

    def __repr__(self) -> str:
        return f"RefitAdapter({self.func!r})"


class CheckedPredictor:
    """Validate adapter output on every call.

    Mean and one-level quantile predictions must be ``(m,)``; two-level
    quantile predictions ``(m, 2)``; propensities ``(m,)`` strictly
    inside (0, 1). All values must be finite.
    """

    def __init__(self, predictor: Predictor, kind: str, n_outputs: int = 1) -> None:
        self.predictor = predictor
        self.kind = kind
        self.n_outputs = n_outputs

    def __call__(self, X: Float64Array) -> Float64Array:
        m = X.shape[0]
        raw = self.predictor(X)
        pred = np.asarray(raw, dtype=np.float64)

        if self.n_outputs == 1 and pred.ndim == 2 and pred.shape[1] == 1:
            pred = pred.ravel()
        expected = (m,) if self.n_outputs == 1 else (m, self.n_outputs)
        if pred.shape != expected:
            raise AdapterContractError(
                f"{self.kind} learner returned shape {pred.shape}, expected {expected}"
            )
        if not np.all(np.isfinite(pred)):
            raise AdapterContractError(
                f"{self.kind} learner returned non-finite values "
                f"(output shape {pred.shape})"
            )
        if self.kind == "propensity" and np.any((pred <= 0) | (pred >= 1)):
            raise AdapterContractError(
                "propensity learner returned values outside (0, 1): "
                f"min={pred.min():.4g}, max={pred.max():.4g}"
            )
        return pred


def as_adapter(learner: Any, kind: str) -> LearnerAdapter:
    """Coerce ``learner`` into a ``LearnerAdapter`` of the given kind.

    ``None`` selects the default scikit-learn adapter; raw scikit-learn
    estimators are wrapped; ``fit_predict`` objects and callables are
    wrapped in ``RefitAdapter``.
    """
    if kind not in KINDS:
        raise ValueError(f"kind must be one of {KINDS}, got {kind!r}")
    from .sklearn import SklearnClassifier, SklearnQuantileRegressor, SklearnRegressor

    wrappers = {
        "mean": SklearnRegressor,
        "quantile": SklearnQuantileRegressor,
        "propensity": SklearnClassifier,
    }
    if learner is None:
        return wrappers[kind]()
    if isinstance(learner, LearnerAdapter):
        return learner
    if isinstance(learner, BaseEstimator):
        return wrappers[kind](learner)
    if hasattr(learner, "fit_predict"):
        return RefitAdapter(learner.fit_predict)
    if callable(learner):
        return RefitAdapter(learner)
    raise TypeError(
        f"Cannot use {type(learner).__name__} as a {kind} learner: expected a "
        "LearnerAdapter, a scikit-learn estimator, an object with fit_predict, "
        "or a callable"
    )


def fit_checked(
    learner: Any,
    kind: str,
    Y: Float64Array,
    X: Float64Array,
    quantile_levels: QuantileLevels | None = None,
) -> CheckedPredictor:
    """Fit ``learner`` and return a contract-checking predictor."""
    adapter = as_adapter(learner, kind)
    n_outputs = 1
    if quantile_levels is not None:
        n_outputs = np.atleast_1d(quantile_levels).shape[0]
    predictor = adapter.fit(Y, X, quantile_levels)
    return CheckedPredictor(predictor, kind, n_outputs)
