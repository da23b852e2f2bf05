"""Input conversion shared by the calibrators and the ITE composer."""

from __future__ import annotations

import numpy as np
import pandas as pd

from ._typing import ArrayLike, BoolArray, DataFrameOrArray, Float64Array


def as_covariates(X: DataFrameOrArray) -> tuple[Float64Array, pd.Index]:
    """Convert covariates to a 2-D float array, keeping the row index.

    A DataFrame keeps its index so interval tables line up with the
    caller's rows; arrays get a default RangeIndex.
    """
    if isinstance(X, pd.DataFrame):
        index = X.index
        X_array = X.to_numpy(dtype=np.float64)
    else:
        X_array = np.asarray(X, dtype=np.float64)
        if X_array.ndim == 1:
            X_array = X_array.reshape(-1, 1)
        index = pd.RangeIndex(X_array.shape[0])

    if X_array.ndim != 2:
        raise ValueError(f"X must be 2-dimensional, got shape {X_array.shape}")
    if not np.all(np.isfinite(X_array)):
        raise ValueError("X contains missing or non-finite values")
    return X_array, index


def as_outcome(Y: ArrayLike, allow_interval: bool = False) -> Float64Array:
    """Convert outcomes to floats; ``(n, 2)`` is allowed for interval targets."""
    if isinstance(Y, (pd.Series, pd.DataFrame)):
        Y_array = Y.to_numpy(dtype=np.float64)
    else:
        Y_array = np.asarray(Y, dtype=np.float64)

    if Y_array.ndim == 2 and Y_array.shape[1] == 1:
        Y_array = Y_array.ravel()
    if Y_array.ndim == 2 and allow_interval and Y_array.shape[1] == 2:
        return Y_array
    if Y_array.ndim != 1:
        expected = "(n,) or (n, 2)" if allow_interval else "(n,)"
        raise ValueError(f"Y must have shape {expected}, got {Y_array.shape}")
    return Y_array


def observed_mask(
    Y: Float64Array,
    observed: ArrayLike | None = None,
) -> BoolArray:
    """Boolean mask of units whose outcome is observed.

    Without an explicit mask, NaN marks a missing outcome. Observed 1-D
    outcomes must be finite; interval targets may have infinite endpoints.
    """
    n = Y.shape[0]
    if observed is None:
        nan_rows = np.isnan(Y) if Y.ndim == 1 else np.isnan(Y).any(axis=1)
        mask = ~nan_rows
    else:
        mask = np.asarray(observed).astype(bool).ravel()
        if mask.shape[0] != n:
            raise ValueError(
                f"observed has {mask.shape[0]} entries but Y has {n}"
            )

    Y_obs = Y[mask]
    if Y.ndim == 1:
        if not np.all(np.isfinite(Y_obs)):
            raise ValueError("Observed outcomes must be finite")
    elif np.isnan(Y_obs).any():
        raise ValueError("Observed interval targets contain NaN endpoints")
    return mask


def as_treatment(T: ArrayLike, n: int) -> Float64Array:
    """Validate a binary 0/1 treatment vector of length ``n``."""
    T_array = np.asarray(T, dtype=np.float64).ravel()
    if T_array.shape[0] != n:
        raise ValueError(
            f"X and T have inconsistent samples: {n} vs {T_array.shape[0]}"
        )
    if not np.all(np.isin(T_array, (0.0, 1.0))):
        raise ValueError("T must be binary with values in {0, 1}")
    return T_array


def check_lengths(X: Float64Array, Y: Float64Array) -> None:
    if X.shape[0] != Y.shape[0]:
        raise ValueError(
            f"X and Y have inconsistent samples: {X.shape[0]} vs {Y.shape[0]}"
        )


def readonly(array: np.ndarray) -> np.ndarray:
    """Return a read-only copy of ``array``."""
    out = np.array(array, copy=True)
    out.setflags(write=False)
    return out
