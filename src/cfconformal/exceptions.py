"""Exceptions and warnings raised by cfconformal."""

from sklearn.exceptions import NotFittedError

__all__ = [
    "AdapterContractError",
    "ConfigurationError",
    "NotFittedError",
    "UnboundedIntervalWarning",
]


class ConfigurationError(ValueError):
    """Invalid calibrator or composer configuration.

    Raised before any learner is trained.
    """


class AdapterContractError(ValueError):
    """A learner adapter returned output of the wrong shape or range."""


class UnboundedIntervalWarning(UserWarning):
    """A calibrated quantile is +inf, so some interval endpoints are infinite.

    This happens when the calibration sample is too small (or too
    unevenly weighted) for the requested level.
    """
