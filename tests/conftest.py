"""Pytest configuration and fixtures for cfconformal tests."""

import numpy as np
import pytest
from scipy import stats


def logistic_signal(x):
    return 2 / (1 + np.exp(-12 * (x - 0.5)))


def generate_cf_data(n, d=10, seed=0):
    """Counterfactual DGP with heterogeneous treatment effects.

    X ~ U[0, 1]^d
    Y(1) = f(X1) f(X2) + N(0, 1),  f(x) = 2 / (1 + exp(-12 (x - 0.5)))
    Y(0) = 0
    e(x) = (1 + Beta(2, 4).cdf(x1)) / 4
    """
    rng = np.random.default_rng(seed)
    X = rng.uniform(size=(n, d))
    Y1 = logistic_signal(X[:, 0]) * logistic_signal(X[:, 1]) + rng.standard_normal(n)
    Y0 = np.zeros(n)
    ps = (1 + stats.beta.cdf(X[:, 0], 2, 4)) / 4
    T = (rng.uniform(size=n) < ps).astype(float)
    Y = np.where(T == 1, Y1, Y0)
    return {
        "X": X,
        "Y": Y,
        "T": T,
        "Y1": Y1,
        "Y0": Y0,
        "ps": ps,
        "n": n,
        "d": d,
    }


def generate_shifted_ite_data(n, d=4, seed=0):
    """Small ITE DGP with noise in both arms and a confounded propensity."""
    rng = np.random.default_rng(seed)
    X = rng.uniform(size=(n, d))
    Y0 = X[:, 1] + 0.5 * rng.standard_normal(n)
    Y1 = X[:, 1] + 2 * X[:, 0] + 0.5 * rng.standard_normal(n)
    ps = 0.25 + 0.5 * X[:, 0]
    T = (rng.uniform(size=n) < ps).astype(float)
    Y = np.where(T == 1, Y1, Y0)
    return {"X": X, "Y": Y, "T": T, "Y1": Y1, "Y0": Y0, "ps": ps, "n": n, "d": d}


@pytest.fixture
def seed():
    """Random seed for reproducibility."""
    return 42


@pytest.fixture
def cf_data(seed):
    """Counterfactual DGP, n=1000, with Y(1) missing for controls."""
    return generate_cf_data(1000, seed=seed)


@pytest.fixture
def cf_test(seed):
    """Fresh test draw from the counterfactual DGP."""
    return generate_cf_data(10000, seed=seed + 1)


@pytest.fixture
def ite_data(seed):
    return generate_shifted_ite_data(600, seed=seed)


@pytest.fixture
def linear_learner():
    """Fast mean adapter."""
    from sklearn.linear_model import LinearRegression

    from cfconformal.learners import SklearnRegressor

    return SklearnRegressor(LinearRegression())


@pytest.fixture
def quantile_learner():
    """Small gradient-boosting quantile adapter."""
    from sklearn.ensemble import GradientBoostingRegressor

    from cfconformal.learners import SklearnQuantileRegressor

    return SklearnQuantileRegressor(
        GradientBoostingRegressor(loss="quantile", n_estimators=50, max_depth=2, random_state=0)
    )


@pytest.fixture
def make_cf_data():
    """Factory for counterfactual DGP draws: make_cf_data(n, d=10, seed=0)."""
    return generate_cf_data
