"""
cfconformal: Conformal inference of counterfactuals and individual treatment effects.

Distribution-free prediction intervals for outcomes that are missing
for part of the sample, with likelihood-ratio weights from a propensity
model correcting the covariate shift between observed and target units.

Key Features
------------
- sklearn-compatible calibrators (fit/predict interface)
- Weighted split conformal and CV+ (jackknife+ when n_folds = n)
- Mean-residual, CQR and interval-target nonconformity scores
- ITE intervals: counterfactual, naive and nested (exact / inexact)
- Learner adapters for scikit-learn estimators and torch MLPs

Basic Usage
-----------
>>> from cfconformal import SplitConformal, ConformalITE
>>>
>>> # Intervals for Y(1) on all units (Y1 is NaN for controls)
>>> cal = SplitConformal(score_type="cqr", random_state=0)
>>> result = cal.fit(X, Y1)
>>> result.predict(X_test, alpha=0.1)
>>>
>>> # ITE intervals
>>> ite = ConformalITE(alpha=0.1, algo="nest", exact=True)
>>> print(ite.fit(X, Y, T).predict(X_test))

References
----------
- Lei and Candès (2021). "Conformal Inference of Counterfactuals and
  Individual Treatment Effects"
- Tibshirani et al. (2019). "Conformal Prediction Under Covariate Shift"
"""

__version__ = "0.1.0"

# Calibrators
from .estimators.split import SplitConformal
from .estimators.cvplus import CVPlusConformal
from .estimators.ite import ConformalITE

# Configuration
from .config import ConformalConfig, ITEAlgorithm, make_calibrator, validate_alpha

# Results
from .results import CVPlusConformalResult, ITEResult, SplitConformalResult

# Scores and quantiles
from .scores import CQRScore, IntervalScore, MeanResidualScore, NonconformityScore, make_score
from .quantile import weighted_conformal_quantile, weighted_conformal_quantile_rows
from .weights import propensity_to_weights

# Diagnostics
from .metrics import effective_sample_size, evaluate_coverage

from .exceptions import (
    AdapterContractError,
    ConfigurationError,
    NotFittedError,
    UnboundedIntervalWarning,
)

__all__ = [
    # Version
    "__version__",
    # Calibrators
    "SplitConformal",
    "CVPlusConformal",
    "ConformalITE",
    # Configuration
    "ConformalConfig",
    "ITEAlgorithm",
    "make_calibrator",
    "validate_alpha",
    # Results
    "SplitConformalResult",
    "CVPlusConformalResult",
    "ITEResult",
    # Scores and quantiles
    "NonconformityScore",
    "MeanResidualScore",
    "CQRScore",
    "IntervalScore",
    "make_score",
    "weighted_conformal_quantile",
    "weighted_conformal_quantile_rows",
    "propensity_to_weights",
    # Diagnostics
    "evaluate_coverage",
    "effective_sample_size",
    # Errors
    "ConfigurationError",
    "AdapterContractError",
    "NotFittedError",
    "UnboundedIntervalWarning",
]
