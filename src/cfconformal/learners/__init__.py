"""Learner adapters for outcome, quantile and propensity models."""

from .base import CheckedPredictor, LearnerAdapter, RefitAdapter, as_adapter, fit_checked
from .neural import MLP, MLPClassifier, MLPQuantileRegressor, MLPRegressor
from .sklearn import SklearnClassifier, SklearnQuantileRegressor, SklearnRegressor

__all__ = [
    "LearnerAdapter",
    "RefitAdapter",
    "CheckedPredictor",
    "as_adapter",
    "fit_checked",
    "SklearnRegressor",
    "SklearnQuantileRegressor",
    "SklearnClassifier",
    "MLP",
    "MLPRegressor",
    "MLPQuantileRegressor",
    "MLPClassifier",
]
