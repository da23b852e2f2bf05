"""Fitted calibrator and composer results."""

from .conformal_results import CVPlusConformalResult, FoldFit, SplitConformalResult
from .ite_results import ITEResult

__all__ = ["SplitConformalResult", "CVPlusConformalResult", "FoldFit", "ITEResult"]
