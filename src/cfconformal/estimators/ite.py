"""Conformal intervals for individual treatment effects.

The ITE ``Y(1) - Y(0)`` is never observed, so its intervals are built
from per-arm calibrators of the potential outcomes. Treated units have
Y(0) missing and controls have Y(1) missing, which turns each arm into
a missing-outcome problem with covariate shift.

References
----------
- Lei and Candès (2021). "Conformal Inference of Counterfactuals and
  Individual Treatment Effects"
"""

from __future__ import annotations


import numpy as np
from sklearn.base import BaseEstimator
from sklearn.model_selection import train_test_split
from sklearn.utils.validation import check_is_fitted

from .._typing import (
    ArrayLike,
    DataFrameOrArray,
    Float64Array,
    MeanLearner,
    PropensityLearner,
    QuantileLearner,
    QuantileLevels,
)
from .._validation import as_covariates, as_outcome, as_treatment, check_lengths
from ..config import (
    DEFAULT_WEIGHT_BOUNDS,
    ConformalConfig,
    ITEAlgorithm,
    make_calibrator,
    mirror_quantile_levels,
    opposite_side,
    validate_alpha,
)
from ..exceptions import ConfigurationError
from ..results.ite_results import ITEResult
from .split import SplitConformal


class ConformalITE(BaseEstimator):
    """Prediction intervals for individual treatment effects.

    Parameters
    ----------
    alpha : float, default=0.1
        Target miscoverage of the ITE intervals. Split as ``alpha / 2``
        across the two arms (or the two nested stages).
    algo : {"nest", "counterfactual", "naive", "nest-exact", "nest-inexact"}
        Composition algorithm; "nest" uses ``exact`` to choose.
    exact : bool, default=False
        For ``algo="nest"``: calibrate the second stage on units disjoint
        from its model fitting.
    score_type : {"mean", "cqr"}, default="cqr"
        Score of the per-arm calibrators.
    side : {"two", "above", "below"}, default="two"
        One-sided ITE intervals are available for the counterfactual and
        naive algorithms.
    quantile_levels : float or pair of floats, optional
        CQR levels of the Y(1) calibrator; mirrored for Y(0) when
        one-sided.
    outcome_learner : object, optional
        Learner for the potential outcomes.
    propensity_learner : object, optional
        Learner for P(T = 1 | X).
    interval_learner : object, optional
        Mean learner for the endpoints of the nested second stage.
    use_cv : bool, default=False
        Use CV+ instead of split conformal.
    n_folds : int, default=10
        Folds for CV+.
    train_prop : float, default=0.5
        Training share inside each split calibrator.
    cf_prop : float, default=0.5
        Share of units in the first nested stage.
    weight_bounds : tuple of float, default=(0.05, 20)
        Clipping range of the likelihood-ratio weights.
    random_state : int, optional
        Seed for all splits.
    verbose : int, default=0
        Verbosity level.
    n_jobs : int, default=1
        Parallel jobs for CV+ folds.

    Attributes
    ----------
    results_ : ITEResult
        Composer from the last ``fit``.

    Examples
    --------
    >>> from cfconformal import ConformalITE
    >>> ite = ConformalITE(alpha=0.1, algo="nest", exact=True, random_state=0)
    >>> result = ite.fit(X, Y, T)
    >>> result.predict(X_test).head()
    """

    def __init__(
        self,
        alpha: float = 0.1,
        algo: str = "nest",
        exact: bool = False,
        score_type: str = "cqr",
        side: str = "two",
        quantile_levels: QuantileLevels | None = None,
        outcome_learner: MeanLearner | QuantileLearner | None = None,
        propensity_learner: PropensityLearner | None = None,
        interval_learner: MeanLearner | None = None,
        use_cv: bool = False,
        n_folds: int = 10,
        train_prop: float = 0.5,
        cf_prop: float = 0.5,
        weight_bounds: tuple[float, float] = DEFAULT_WEIGHT_BOUNDS,
        random_state: int | None = None,
        verbose: int = 0,
        n_jobs: int = 1,
    ) -> None:
        self.alpha = alpha
        self.algo = algo
        self.exact = exact
        self.score_type = score_type
        self.side = side
        self.quantile_levels = quantile_levels
        self.outcome_learner = outcome_learner
        self.propensity_learner = propensity_learner
        self.interval_learner = interval_learner
        self.use_cv = use_cv
        self.n_folds = n_folds
        self.train_prop = train_prop
        self.cf_prop = cf_prop
        self.weight_bounds = weight_bounds
        self.random_state = random_state
        self.verbose = verbose
        self.n_jobs = n_jobs

    def _resolve(self) -> tuple[ITEAlgorithm, float, ConformalConfig, ConformalConfig]:
        """Validate parameters; return the algorithm, alpha and per-arm configs."""
        algorithm = ITEAlgorithm.parse(self.algo, self.exact)
        alpha = validate_alpha(self.alpha)
        if self.score_type not in ("mean", "cqr"):
            raise ConfigurationError(
                f"score_type must be 'mean' or 'cqr', got {self.score_type!r}"
            )
        if algorithm.nested and self.side != "two":
            raise ConfigurationError(
                f"Nested algorithms produce two-sided intervals only, got side={self.side!r}"
            )
        if not 0.0 < self.cf_prop < 1.0:
            raise ConfigurationError(f"cf_prop must lie in (0, 1), got {self.cf_prop}")

        estimand = "nonmissing" if algorithm is ITEAlgorithm.NAIVE else "missing"
        common = dict(
            score_type=self.score_type,
            estimand=estimand,
            use_cv=self.use_cv,
            n_folds=self.n_folds,
            train_prop=self.train_prop,
            weight_bounds=tuple(self.weight_bounds),
        )
        config1 = ConformalConfig(side=self.side, quantile_levels=self.quantile_levels, **common)
        levels0 = self.quantile_levels
        if self.side != "two":
            levels0 = mirror_quantile_levels(self.quantile_levels)
        config0 = ConformalConfig(side=opposite_side(self.side), quantile_levels=levels0, **common)
        return algorithm, alpha, config1, config0

    def fit(self, X: DataFrameOrArray, Y: ArrayLike, T: ArrayLike) -> ITEResult:
        """Fit the ITE composer.

        Parameters
        ----------
        X : DataFrameOrArray
            Covariates ``(n, d)``.
        Y : array-like
            Observed outcomes ``(n,)``.
        T : array-like
            Binary treatment indicator ``(n,)``.

        Returns
        -------
        ITEResult
            Fitted composer, also stored as ``results_``.
        """
        algorithm, alpha, config1, config0 = self._resolve()

        X_array, _ = as_covariates(X)
        Y_array = as_outcome(Y)
        check_lengths(X_array, Y_array)
        T_array = as_treatment(T, X_array.shape[0])
        if not np.all(np.isfinite(Y_array)):
            raise ValueError("Y must be observed (finite) for every unit")
        if T_array.min() == T_array.max():
            raise ValueError("Both treated and control units are required")

        if self.verbose >= 1:
            print(f"Fitting ITE intervals ({algorithm.value}, alpha={alpha})")

        self.results_ = compose_ite(
            self, algorithm, alpha, config1, config0, X_array, Y_array, T_array
        )
        return self.results_

    def predict(
        self,
        X: DataFrameOrArray,
        Y: ArrayLike | None = None,
        T: ArrayLike | None = None,
    ):
        """ITE intervals from the last fit."""
        check_is_fitted(self, "results_")
        return self.results_.predict(X, Y, T)

    def _arm_calibrator(self, config: ConformalConfig, random_state=None):
        return make_calibrator(
            config,
            outcome_learner=self.outcome_learner,
            propensity_learner=self.propensity_learner,
            random_state=self.random_state if random_state is None else random_state,
            verbose=self.verbose,
            n_jobs=self.n_jobs,
        )


def potential_outcomes(Y: Float64Array, T: Float64Array) -> tuple[Float64Array, Float64Array]:
    """Split observed outcomes into Y(1), Y(0) with NaN where unobserved."""
    Y1 = np.where(T == 1, Y, np.nan)
    Y0 = np.where(T == 0, Y, np.nan)
    return Y1, Y0


def compose_ite(
    composer: ConformalITE,
    algorithm: ITEAlgorithm,
    alpha: float,
    config1: ConformalConfig,
    config0: ConformalConfig,
    X: Float64Array,
    Y: Float64Array,
    T: Float64Array,
) -> ITEResult:
    """Fit the calibrators that ``algorithm`` composes."""
    if not algorithm.nested:
        Y1, Y0 = potential_outcomes(Y, T)
        arm1 = composer._arm_calibrator(config1).fit(X, Y1)
        arm0 = composer._arm_calibrator(config0).fit(X, Y0)
        return ITEResult(
            algorithm=algorithm,
            alpha=alpha,
            side=config1.side,
            arm1=arm1,
            arm0=arm0,
            stage2=None,
            n_obs=X.shape[0],
        )

    fold_a, fold_b = train_test_split(
        np.arange(X.shape[0]),
        train_size=composer.cf_prop,
        random_state=composer.random_state,
    )
    for name, fold in (("first", fold_a), ("second", fold_b)):
        if np.unique(T[fold]).shape[0] < 2:
            raise ValueError(f"The {name} nested fold has units from one arm only")

    # Stage 1: per-arm counterfactual calibrators on fold A
    Y1, Y0 = potential_outcomes(Y[fold_a], T[fold_a])
    arm1 = composer._arm_calibrator(config1).fit(X[fold_a], Y1)
    arm0 = composer._arm_calibrator(config0).fit(X[fold_a], Y0)

    targets = surrogate_intervals(arm1, arm0, X[fold_b], Y[fold_b], T[fold_b], alpha / 2)
    if composer.verbose >= 1:
        print(f"  Stage 1 done; calibrating {len(fold_b)} interval targets")

    # Stage 2: interval-valued targets on fold B, unweighted
    stage2_config = ConformalConfig(
        score_type="interval",
        side="two",
        estimand="nonmissing",
        use_cv=config1.use_cv,
        n_folds=config1.n_folds,
        train_prop=config1.train_prop,
        weight_bounds=config1.weight_bounds,
    )
    if algorithm is ITEAlgorithm.NEST_EXACT:
        stage2 = make_calibrator(
            stage2_config,
            outcome_learner=composer.interval_learner,
            random_state=composer.random_state,
            verbose=composer.verbose,
            n_jobs=composer.n_jobs,
        ).fit(X[fold_b], targets)
    else:
        everyone = np.arange(len(fold_b))
        stage2 = SplitConformal(
            score_type="interval",
            estimand="nonmissing",
            outcome_learner=composer.interval_learner,
            verbose=composer.verbose,
        ).fit_partition(X[fold_b], targets, everyone, everyone)

    return ITEResult(
        algorithm=algorithm,
        alpha=alpha,
        side="two",
        arm1=arm1,
        arm0=arm0,
        stage2=stage2,
        n_obs=X.shape[0],
    )


def surrogate_intervals(arm1, arm0, X, Y, T, alpha) -> Float64Array:
    """Counterfactual ITE intervals ``(n, 2)`` for units with observed Y, T.

    Treated units get ``[Y - U0(x), Y - L0(x)]``, controls
    ``[L1(x) - Y, U1(x) - Y]``.
    """
    treated = T == 1
    bounds = np.empty((X.shape[0], 2))
    if treated.any():
        ci0 = arm0.predict(X[treated], alpha)
        bounds[treated, 0] = Y[treated] - ci0["upper"].to_numpy()
        bounds[treated, 1] = Y[treated] - ci0["lower"].to_numpy()
    if (~treated).any():
        ci1 = arm1.predict(X[~treated], alpha)
        bounds[~treated, 0] = ci1["lower"].to_numpy() - Y[~treated]
        bounds[~treated, 1] = ci1["upper"].to_numpy() - Y[~treated]
    return bounds
