"""Results container for conformal ITE intervals."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np
import pandas as pd
from tabulate import tabulate

from .._typing import ArrayLike, DataFrameOrArray
from .._validation import as_covariates, as_treatment
from ..config import ITEAlgorithm


@dataclass(frozen=True)
class ITEResult:
    """Fitted ITE composer.

    Attributes
    ----------
    algorithm : ITEAlgorithm
        Composition used.
    alpha : float
        Miscoverage level fixed at construction.
    side : str
        "two", "above" or "below".
    arm1, arm0 : result or None
        Per-arm calibrators for Y(1) and Y(0). For nested algorithms these
        are the first-stage calibrators.
    stage2 : result or None
        Second-stage interval-target calibrator (nested only).
    n_obs : int
        Units used in ``fit``.
    """

    algorithm: ITEAlgorithm
    alpha: float
    side: str
    arm1: Any
    arm0: Any
    stage2: Any
    n_obs: int

    def predict(
        self,
        X: DataFrameOrArray,
        Y: ArrayLike | None = None,
        T: ArrayLike | None = None,
    ) -> pd.DataFrame:
        """ITE intervals for the rows of ``X``.

        Parameters
        ----------
        X : DataFrameOrArray
            Test covariates.
        Y, T : array-like, optional
            Observed outcome and treatment of the test units. Required by
            the counterfactual algorithm, ignored otherwise.

        Returns
        -------
        pd.DataFrame
            Columns ``lower`` and ``upper``.
        """
        X_array, index = as_covariates(X)
        per_arm = self.alpha / 2

        if self.algorithm.nested:
            out = self.stage2.predict(X_array, per_arm)
            out.index = index
            return out

        ci1 = self.arm1.predict(X_array, per_arm)
        ci0 = self.arm0.predict(X_array, per_arm)
        L1, U1 = ci1["lower"].to_numpy(), ci1["upper"].to_numpy()
        L0, U0 = ci0["lower"].to_numpy(), ci0["upper"].to_numpy()

        if self.algorithm is ITEAlgorithm.NAIVE:
            lower, upper = L1 - U0, U1 - L0
        else:
            if Y is None or T is None:
                raise ValueError(
                    "The counterfactual algorithm needs the observed Y and T "
                    "of the test units"
                )
            Y_array = np.asarray(Y, dtype=np.float64).ravel()
            T_array = as_treatment(T, X_array.shape[0])
            if Y_array.shape[0] != X_array.shape[0]:
                raise ValueError(
                    f"X and Y have inconsistent samples: {X_array.shape[0]} vs {Y_array.shape[0]}"
                )
            if not np.all(np.isfinite(Y_array)):
                raise ValueError("Test outcomes must be observed (finite)")
            treated = T_array == 1
            lower = np.where(treated, Y_array - U0, L1 - Y_array)
            upper = np.where(treated, Y_array - L0, U1 - Y_array)

        return pd.DataFrame({"lower": lower, "upper": upper}, index=index)

    def summary(self) -> str:
        """Generate summary table."""
        rows = [
            ["Algorithm", self.algorithm.value],
            ["Alpha", self.alpha],
            ["Side", self.side],
            ["Units", self.n_obs],
        ]
        for label, result in (("Y(1) stage", self.arm1), ("Y(0) stage", self.arm0),
                              ("Interval stage", self.stage2)):
            if result is not None:
                rows.append([label, repr(result)])
        lines = [
            "=" * 78,
            "                    Conformal ITE Intervals",
            "=" * 78,
            tabulate(rows, tablefmt="simple"),
            "=" * 78,
        ]
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ITEResult(algorithm={self.algorithm.value!r}, alpha={self.alpha})"
