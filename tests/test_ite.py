"""Tests for the conformal ITE composer."""

import numpy as np
import pandas as pd
import pytest


class SpyPropensity:
    def __init__(self):
        self.calls = 0

    def fit_predict(self, T, X, X_test):
        self.calls += 1
        return np.full(len(X_test), 0.5)


class TestConformalITE:
    """Test suite for ConformalITE."""

    def test_not_fitted(self):
        from cfconformal import ConformalITE
        from cfconformal.exceptions import NotFittedError

        with pytest.raises(NotFittedError):
            ConformalITE().predict(np.zeros((2, 3)))

    def test_counterfactual_uses_observed_outcome(self, ite_data, linear_learner):
        from cfconformal import ConformalITE, ITEAlgorithm

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        result = ConformalITE(
            alpha=0.1,
            algo="counterfactual",
            score_type="mean",
            outcome_learner=linear_learner,
            random_state=0,
        ).fit(X, Y, T)
        assert result.algorithm is ITEAlgorithm.COUNTERFACTUAL

        ci = result.predict(X[:40], Y[:40], T[:40])
        ci1 = result.arm1.predict(X[:40], 0.05)
        ci0 = result.arm0.predict(X[:40], 0.05)
        treated = T[:40] == 1

        np.testing.assert_allclose(ci["lower"][treated], Y[:40][treated] - ci0["upper"][treated])
        np.testing.assert_allclose(ci["upper"][treated], Y[:40][treated] - ci0["lower"][treated])
        np.testing.assert_allclose(ci["lower"][~treated], ci1["lower"][~treated] - Y[:40][~treated])
        np.testing.assert_allclose(ci["upper"][~treated], ci1["upper"][~treated] - Y[:40][~treated])

    def test_counterfactual_needs_y_and_t(self, ite_data, linear_learner):
        from cfconformal import ConformalITE

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        result = ConformalITE(
            algo="counterfactual", score_type="mean", outcome_learner=linear_learner
        ).fit(X, Y, T)

        with pytest.raises(ValueError, match="observed Y and T"):
            result.predict(X[:5])
        with pytest.raises(ValueError):
            result.predict(X[:5], np.full(5, np.nan), T[:5])

    def test_counterfactual_arms_use_missing_estimand(self, ite_data, linear_learner):
        from cfconformal import ConformalITE

        result = ConformalITE(
            algo="counterfactual", score_type="mean", outcome_learner=linear_learner
        ).fit(ite_data["X"], ite_data["Y"], ite_data["T"])

        assert result.arm1.estimand == "missing"
        assert result.arm0.estimand == "missing"
        assert result.arm1.propensity_model is not None

    def test_naive_never_fits_propensity(self, ite_data, linear_learner):
        from cfconformal import ConformalITE

        spy = SpyPropensity()
        X = ite_data["X"]
        result = ConformalITE(
            algo="naive",
            score_type="mean",
            outcome_learner=linear_learner,
            propensity_learner=spy,
            random_state=0,
        ).fit(X, ite_data["Y"], ite_data["T"])

        ci = result.predict(X[:30])
        ci1 = result.arm1.predict(X[:30], 0.05)
        ci0 = result.arm0.predict(X[:30], 0.05)

        assert spy.calls == 0
        np.testing.assert_allclose(ci["lower"], ci1["lower"] - ci0["upper"])
        np.testing.assert_allclose(ci["upper"], ci1["upper"] - ci0["lower"])

    def test_one_sided_counterfactual(self, ite_data, quantile_learner):
        from cfconformal import ConformalITE

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        result = ConformalITE(
            algo="counterfactual",
            side="above",
            quantile_levels=0.1,
            outcome_learner=quantile_learner,
            random_state=0,
        ).fit(X, Y, T)

        assert result.arm1.score.side == "above"
        assert result.arm0.score.side == "below"
        assert result.arm0.score.quantile_levels == pytest.approx(0.9)

        ci = result.predict(X[:20], Y[:20], T[:20])
        assert np.all(np.isfinite(ci["lower"]))
        assert np.all(ci["upper"] == np.inf)

    @pytest.mark.parametrize("exact", [True, False])
    def test_nested(self, ite_data, quantile_learner, exact):
        from cfconformal import ConformalITE

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        ite = ConformalITE(
            alpha=0.2,
            algo="nest",
            exact=exact,
            outcome_learner=quantile_learner,
            random_state=0,
        )
        result = ite.fit(X, Y, T)
        assert result.stage2 is not None
        assert result.stage2.score.name == "interval"

        X_test = pd.DataFrame(X[:15], index=range(100, 115))
        ci = ite.predict(X_test)
        assert list(ci.index) == list(range(100, 115))
        assert np.all(ci["lower"] <= ci["upper"])

    def test_inexact_is_narrower_than_exact(self, ite_data, quantile_learner):
        """In-sample second-stage calibration shrinks the intervals."""
        from cfconformal import ConformalITE

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        widths = {}
        for algo in ("nest-exact", "nest-inexact"):
            ci = ConformalITE(
                alpha=0.2, algo=algo, outcome_learner=quantile_learner, random_state=0
            ).fit(X, Y, T).predict(X)
            widths[algo] = np.mean(ci["upper"] - ci["lower"])

        assert widths["nest-inexact"] < widths["nest-exact"]

    def test_nested_exact_with_cv(self, ite_data, linear_learner):
        from cfconformal import ConformalITE, CVPlusConformalResult

        X, Y, T = ite_data["X"], ite_data["Y"], ite_data["T"]
        result = ConformalITE(
            alpha=0.2,
            algo="nest-exact",
            score_type="mean",
            outcome_learner=linear_learner,
            interval_learner=linear_learner,
            use_cv=True,
            n_folds=3,
            random_state=0,
        ).fit(X, Y, T)

        assert isinstance(result.stage2, CVPlusConformalResult)
        assert isinstance(result.arm1, CVPlusConformalResult)
        assert result.predict(X[:10]).shape == (10, 2)

    @pytest.mark.parametrize("algo", ["nest-exact", "nest-inexact"])
    def test_nested_small_sample_is_unbounded(self, linear_learner, algo):
        """Too few stage-1 calibration units give infinite ITE intervals."""
        from cfconformal import ConformalITE
        from cfconformal.exceptions import UnboundedIntervalWarning

        rng = np.random.default_rng(3)
        X = rng.normal(size=(40, 3))
        T = np.tile([1.0, 0.0], 20)
        Y = X[:, 0] + T + rng.normal(size=40)

        ite = ConformalITE(
            alpha=0.1,
            algo=algo,
            score_type="mean",
            outcome_learner=linear_learner,
            propensity_learner=SpyPropensity(),
            interval_learner=linear_learner,
            random_state=0,
        )
        with pytest.warns(UnboundedIntervalWarning):
            ci = ite.fit(X, Y, T).predict(X[:5])

        assert np.all(ci["lower"] == -np.inf)
        assert np.all(ci["upper"] == np.inf)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"algo": "nest", "side": "above"},
            {"alpha": 1.2},
            {"algo": "bart"},
            {"cf_prop": 0.0},
            {"score_type": "interval"},
        ],
    )
    def test_invalid_configuration(self, ite_data, kwargs):
        from cfconformal import ConformalITE
        from cfconformal.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            ConformalITE(**kwargs).fit(ite_data["X"], ite_data["Y"], ite_data["T"])

    def test_invalid_treatment(self, ite_data):
        from cfconformal import ConformalITE

        X, Y = ite_data["X"], ite_data["Y"]
        with pytest.raises(ValueError, match="binary"):
            ConformalITE(algo="naive").fit(X, Y, np.full(len(Y), 2.0))
        with pytest.raises(ValueError, match="treated and control"):
            ConformalITE(algo="naive").fit(X, Y, np.ones(len(Y)))

    def test_summary(self, ite_data, linear_learner):
        from cfconformal import ConformalITE

        result = ConformalITE(
            algo="naive", score_type="mean", outcome_learner=linear_learner
        ).fit(ite_data["X"], ite_data["Y"], ite_data["T"])

        assert "naive" in result.summary()
        assert repr(result) == "ITEResult(algorithm='naive', alpha=0.1)"


class TestCompositionHelpers:
    """Test suite for potential_outcomes / surrogate_intervals."""

    def test_potential_outcomes(self):
        from cfconformal.estimators.ite import potential_outcomes

        Y1, Y0 = potential_outcomes(np.array([1.0, 2.0, 3.0]), np.array([1.0, 0.0, 1.0]))
        np.testing.assert_array_equal(np.isnan(Y1), [False, True, False])
        np.testing.assert_array_equal(np.isnan(Y0), [True, False, True])

    def test_surrogate_intervals(self):
        from cfconformal.estimators.ite import surrogate_intervals

        class FixedArm:
            def __init__(self, lower, upper):
                self.lower, self.upper = lower, upper

            def predict(self, X, alpha):
                n = len(X)
                return pd.DataFrame({"lower": np.full(n, self.lower), "upper": np.full(n, self.upper)})

        X = np.zeros((2, 1))
        bounds = surrogate_intervals(
            FixedArm(2.0, 4.0), FixedArm(-1.0, 1.0), X, np.array([3.0, 0.5]),
            np.array([1.0, 0.0]), 0.05,
        )
        np.testing.assert_allclose(bounds, [[2.0, 4.0], [1.5, 3.5]])
