"""Conformal calibrators and the ITE composer."""

from .base import ConformalEstimatorBase
from .cvplus import CVPlusConformal
from .ite import ConformalITE, compose_ite, potential_outcomes, surrogate_intervals
from .split import SplitConformal

__all__ = [
    "ConformalEstimatorBase",
    "SplitConformal",
    "CVPlusConformal",
    "ConformalITE",
    "compose_ite",
    "potential_outcomes",
    "surrogate_intervals",
]
