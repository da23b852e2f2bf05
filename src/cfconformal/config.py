"""Calibration run configuration.

``ConformalConfig`` gathers the knobs shared by the Split and CV+
calibrators and validates them once, before any learner is trained.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np

from ._typing import MeanLearner, PropensityLearner, QuantileLearner, QuantileLevels
from .exceptions import ConfigurationError

if TYPE_CHECKING:
    from .scores import NonconformityScore

SCORE_TYPES = ("mean", "cqr", "interval")
SIDES = ("two", "above", "below")
ESTIMANDS = ("unconditional", "nonmissing", "missing")

DEFAULT_WEIGHT_BOUNDS = (0.05, 20.0)


def validate_alpha(alpha: float) -> float:
    """Check that ``alpha`` is a miscoverage level in (0, 1)."""
    try:
        alpha = float(alpha)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"alpha must be a number, got {alpha!r}") from e
    if not 0.0 < alpha < 1.0:
        raise ConfigurationError(f"alpha must lie in (0, 1), got {alpha}")
    return alpha


def opposite_side(side: str) -> str:
    return {"two": "two", "above": "below", "below": "above"}[side]


@dataclass(frozen=True)
class ConformalConfig:
    """Configuration of one conformal calibration run.

    Parameters
    ----------
    score_type : {"mean", "cqr", "interval"}
        Nonconformity score family.
    side : {"two", "above", "below"}
        "above" gives intervals ``[l(x), +inf)``, "below" gives
        ``(-inf, u(x)]``.
    quantile_levels : float or pair of floats, optional
        Levels fed to the quantile learner for CQR. Defaults to
        (0.05, 0.95) for two-sided and 0.05 / 0.95 for above / below.
    estimand : {"unconditional", "nonmissing", "missing"}
        Target population. Determines the likelihood-ratio weights.
    use_cv : bool
        Use CV+ instead of a single split.
    n_folds : int
        Number of CV+ folds.
    train_prop : float
        Share of units used for training in split conformal.
    weight_bounds : tuple of float
        Weights are clipped to this range.
    """

    score_type: str = "cqr"
    side: str = "two"
    quantile_levels: QuantileLevels | None = None
    estimand: str = "unconditional"
    use_cv: bool = False
    n_folds: int = 10
    train_prop: float = 0.5
    weight_bounds: tuple[float, float] = DEFAULT_WEIGHT_BOUNDS

    def __post_init__(self) -> None:
        if self.score_type not in SCORE_TYPES:
            raise ConfigurationError(
                f"score_type must be one of {SCORE_TYPES}, got {self.score_type!r}"
            )
        if self.side not in SIDES:
            raise ConfigurationError(
                f"side must be one of {SIDES}, got {self.side!r}"
            )
        if self.estimand not in ESTIMANDS:
            raise ConfigurationError(
                f"estimand must be one of {ESTIMANDS}, got {self.estimand!r}"
            )
        if int(self.n_folds) != self.n_folds or self.n_folds < 2:
            raise ConfigurationError(
                f"n_folds must be an integer >= 2, got {self.n_folds}"
            )
        if not 0.0 < self.train_prop < 1.0:
            raise ConfigurationError(
                f"train_prop must lie in (0, 1), got {self.train_prop}"
            )
        low, high = self.weight_bounds
        if not 0.0 <= low <= high:
            raise ConfigurationError(
                f"weight_bounds must satisfy 0 <= low <= high, got {self.weight_bounds}"
            )
        if self.score_type == "cqr":
            # normalises and checks the level shape against the side
            object.__setattr__(self, "quantile_levels", self.resolved_quantile_levels())

    def resolved_quantile_levels(self) -> QuantileLevels:
        """Quantile levels with side-dependent defaults filled in."""
        return resolve_quantile_levels(self.side, self.quantile_levels)

    def make_score(self) -> "NonconformityScore":
        """Build the score function this configuration describes."""
        from .scores import make_score

        return make_score(self.score_type, self.side, self.quantile_levels)


def resolve_quantile_levels(
    side: str,
    quantile_levels: QuantileLevels | None,
) -> QuantileLevels:
    """Fill in defaults and validate the level shape for ``side``."""
    if quantile_levels is None:
        return {"two": (0.05, 0.95), "above": 0.05, "below": 0.95}[side]

    levels = np.atleast_1d(np.asarray(quantile_levels, dtype=np.float64))
    if levels.ndim != 1 or np.any((levels <= 0) | (levels >= 1)):
        raise ConfigurationError(
            f"quantile_levels must lie in (0, 1), got {quantile_levels!r}"
        )
    if side == "two":
        if levels.shape[0] != 2:
            raise ConfigurationError(
                "Two-sided CQR needs two quantile levels, "
                f"got {levels.shape[0]}"
            )
        if levels[0] >= levels[1]:
            raise ConfigurationError(
                f"quantile_levels must be increasing, got {tuple(levels)}"
            )
        return (float(levels[0]), float(levels[1]))

    if levels.shape[0] != 1:
        raise ConfigurationError(
            f"One-sided CQR needs a single quantile level, got {levels.shape[0]}"
        )
    return float(levels[0])


def mirror_quantile_levels(quantile_levels: QuantileLevels | None) -> QuantileLevels | None:
    """Map level ``q`` to ``1 - q`` (pairs are mirrored and reordered)."""
    if quantile_levels is None:
        return None
    levels = np.atleast_1d(np.asarray(quantile_levels, dtype=np.float64))
    mirrored = np.sort(1.0 - levels)
    if mirrored.shape[0] == 1:
        return float(mirrored[0])
    return tuple(float(q) for q in mirrored)


class ITEAlgorithm(Enum):
    """How the per-arm calibrators are combined into ITE intervals.

    COUNTERFACTUAL: the observed arm collapses to the observed outcome,
        so ``Y`` and ``T`` are needed at prediction time.
    NAIVE: per-arm intervals without covariate-shift weighting,
        combined by interval subtraction.
    NEST_EXACT: counterfactual intervals on a held-out fold become
        interval targets, calibrated again on disjoint units.
    NEST_INEXACT: as NEST_EXACT but the second stage calibrates
        in-sample, trading the guarantee for narrower intervals.
    """

    COUNTERFACTUAL = "counterfactual"
    NAIVE = "naive"
    NEST_EXACT = "nest-exact"
    NEST_INEXACT = "nest-inexact"

    @property
    def nested(self) -> bool:
        return self in (ITEAlgorithm.NEST_EXACT, ITEAlgorithm.NEST_INEXACT)

    @classmethod
    def parse(cls, algo: "str | ITEAlgorithm", exact: bool = False) -> "ITEAlgorithm":
        """Resolve ``algo`` ("nest" picks exact or inexact from ``exact``)."""
        if isinstance(algo, cls):
            return algo
        key = str(algo).lower().replace("_", "-")
        if key == "nest":
            return cls.NEST_EXACT if exact else cls.NEST_INEXACT
        for member in cls:
            if member.value == key:
                return member
        options = ["nest"] + [member.value for member in cls]
        raise ConfigurationError(f"algo must be one of {options}, got {algo!r}")


def make_calibrator(
    config: ConformalConfig,
    outcome_learner: MeanLearner | QuantileLearner | None = None,
    propensity_learner: PropensityLearner | None = None,
    random_state: int | None = None,
    verbose: int = 0,
    n_jobs: int = 1,
):
    """Return an unfitted Split or CV+ calibrator for ``config``."""
    common = dict(
        score_type=config.score_type,
        side=config.side,
        quantile_levels=config.quantile_levels,
        outcome_learner=outcome_learner,
        propensity_learner=propensity_learner,
        estimand=config.estimand,
        weight_bounds=config.weight_bounds,
        random_state=random_state,
        verbose=verbose,
    )
    if config.use_cv:
        from .estimators.cvplus import CVPlusConformal

        return CVPlusConformal(n_folds=config.n_folds, n_jobs=n_jobs, **common)

    from .estimators.split import SplitConformal

    return SplitConformal(train_prop=config.train_prop, **common)
