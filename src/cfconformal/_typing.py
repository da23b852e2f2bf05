"""Type definitions for cfconformal.

Array aliases plus the three learner protocols the calibrators accept.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Callable, Protocol, Sequence, Union

import numpy as np
from numpy.typing import NDArray

if TYPE_CHECKING:
    import pandas as pd

# Core numeric types
Float64Array = NDArray[np.float64]
Int64Array = NDArray[np.int64]
BoolArray = NDArray[np.bool_]

# Flexible input types (accept both numpy and pandas)
ArrayLike = Union[Float64Array, "pd.Series", "pd.DataFrame", list]
DataFrameOrArray = Union["pd.DataFrame", Float64Array]

QuantileLevels = Union[float, Sequence[float]]

# A fitted model: covariates in, predictions out
Predictor = Callable[[Float64Array], Float64Array]


class MeanLearner(Protocol):
    """Protocol for conditional-mean learners.

    Trains on ``(Y_train, X_train)`` and returns one prediction per row
    of ``X_test``.
    """

    def fit_predict(
        self,
        Y_train: Float64Array,
        X_train: Float64Array,
        X_test: Float64Array,
    ) -> Float64Array:
        """Fit on the training slice and predict ``(m,)`` values."""
        ...


class QuantileLearner(Protocol):
    """Protocol for conditional-quantile learners.

    Returns an ``(m, 2)`` array for two levels and ``(m,)`` for one.
    """

    def fit_predict(
        self,
        Y_train: Float64Array,
        X_train: Float64Array,
        X_test: Float64Array,
        quantile_levels: QuantileLevels,
    ) -> Float64Array:
        ...


class PropensityLearner(Protocol):
    """Protocol for P(T = 1 | X) learners; outputs lie in (0, 1)."""

    def fit_predict(
        self,
        T_train: Float64Array,
        X_train: Float64Array,
        X_test: Float64Array,
    ) -> Float64Array:
        ...
