"""Tests for nonconformity scores and configuration."""

import numpy as np
import pytest


class TestScores:
    """Test suite for score/interval inversion."""

    def test_mean_two_sided(self):
        from cfconformal.scores import MeanResidualScore

        score = MeanResidualScore("two")
        pred = np.array([0.0, 1.0, 2.0])
        y = np.array([0.5, -1.0, 2.0])

        np.testing.assert_allclose(score.score(pred, y), [0.5, 2.0, 0.0])
        lower, upper = score.interval(pred, 0.3)
        np.testing.assert_allclose(lower, pred - 0.3)
        np.testing.assert_allclose(upper, pred + 0.3)

    def test_mean_one_sided(self):
        from cfconformal.scores import MeanResidualScore

        pred = np.array([0.0, 1.0])
        y = np.array([0.5, 0.0])

        above = MeanResidualScore("above")
        np.testing.assert_allclose(above.score(pred, y), [-0.5, 1.0])
        lower, upper = above.interval(pred, np.array([1.0, 2.0]))
        np.testing.assert_allclose(lower, [-1.0, -1.0])
        assert np.all(upper == np.inf)
        assert above.upper_anchor(pred) is None

        below = MeanResidualScore("below")
        np.testing.assert_allclose(below.score(pred, y), [0.5, -1.0])
        lower, upper = below.interval(pred, 1.0)
        assert np.all(lower == -np.inf)
        np.testing.assert_allclose(upper, [1.0, 2.0])

    def test_cqr_two_sided(self):
        from cfconformal.scores import CQRScore

        score = CQRScore("two")
        pred = np.array([[0.0, 1.0], [0.0, 1.0], [0.0, 1.0]])
        y = np.array([0.5, -0.2, 1.5])

        np.testing.assert_allclose(score.score(pred, y), [-0.5, 0.2, 0.5])
        lower, upper = score.interval(pred, 0.1)
        np.testing.assert_allclose(lower, [-0.1] * 3)
        np.testing.assert_allclose(upper, [1.1] * 3)

    def test_score_inverts_interval(self):
        """y lies in the interval at threshold q iff its score is <= q."""
        from cfconformal.scores import CQRScore

        rng = np.random.default_rng(0)
        lo = rng.normal(size=200)
        pred = np.column_stack([lo, lo + rng.uniform(0, 2, size=200)])
        y = rng.normal(size=200)
        score = CQRScore("two")

        s = score.score(pred, y)
        lower, upper = score.interval(pred, 0.4)
        np.testing.assert_array_equal(s <= 0.4, (y >= lower) & (y <= upper))

    def test_interval_score(self):
        from cfconformal.scores import IntervalScore

        score = IntervalScore("two")
        pred = np.array([[0.0, 1.0], [0.0, 1.0]])
        targets = np.array([[0.2, 0.8], [-1.0, 1.5]])

        np.testing.assert_allclose(score.score(pred, targets), [-0.2, 1.0])

    def test_infinite_interval_target_gives_infinite_score(self):
        from cfconformal.scores import IntervalScore

        score = IntervalScore("two")
        pred = np.array([[0.0, 1.0]])
        assert score.score(pred, np.array([[-np.inf, 0.5]]))[0] == np.inf

    def test_interval_fit_without_finite_endpoints(self, linear_learner):
        """An endpoint that is never finite still yields a predictor."""
        from cfconformal.scores import IntervalScore

        rng = np.random.default_rng(0)
        X = rng.normal(size=(12, 2))
        targets = np.column_stack([np.full(12, -np.inf), X[:, 0] + 1.0])

        score = IntervalScore("two")
        model = score.fit(linear_learner, targets, X)
        pred = model(X)

        assert pred.shape == (12, 2)
        np.testing.assert_array_equal(pred[:, 0], 0.0)
        np.testing.assert_allclose(pred[:, 1], X[:, 0] + 1.0)
        assert np.all(score.score(pred, targets) == np.inf)
        lower, upper = score.interval(pred, np.inf)
        assert np.all(lower == -np.inf) and np.all(upper == np.inf)

    def test_default_levels(self):
        from cfconformal.scores import CQRScore

        assert CQRScore("two").quantile_levels == (0.05, 0.95)
        assert CQRScore("above").quantile_levels == 0.05
        assert CQRScore("below").quantile_levels == 0.95

    def test_level_shape_rejected(self):
        """Two-sided needs two levels; one-sided needs one."""
        from cfconformal.exceptions import ConfigurationError
        from cfconformal.scores import CQRScore

        with pytest.raises(ConfigurationError):
            CQRScore("two", 0.9)
        with pytest.raises(ConfigurationError):
            CQRScore("above", (0.05, 0.95))
        with pytest.raises(ConfigurationError):
            CQRScore("two", (0.95, 0.05))
        with pytest.raises(ConfigurationError):
            CQRScore("two", (0.0, 0.95))

    def test_unknown_side(self):
        from cfconformal.exceptions import ConfigurationError
        from cfconformal.scores import MeanResidualScore

        with pytest.raises(ConfigurationError):
            MeanResidualScore("left")


class TestConfig:
    """Test suite for ConformalConfig and helpers."""

    def test_defaults(self):
        from cfconformal.config import ConformalConfig

        config = ConformalConfig()
        assert config.quantile_levels == (0.05, 0.95)
        assert config.weight_bounds == (0.05, 20.0)

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"n_folds": 1},
            {"train_prop": 1.0},
            {"estimand": "treated"},
            {"score_type": "quantile"},
            {"side": "both"},
            {"weight_bounds": (2.0, 1.0)},
            {"side": "above", "quantile_levels": (0.1, 0.9)},
        ],
    )
    def test_invalid(self, kwargs):
        from cfconformal.config import ConformalConfig
        from cfconformal.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            ConformalConfig(**kwargs)

    @pytest.mark.parametrize("alpha", [0.0, 1.0, -0.1, "x"])
    def test_validate_alpha(self, alpha):
        from cfconformal.config import validate_alpha
        from cfconformal.exceptions import ConfigurationError

        with pytest.raises(ConfigurationError):
            validate_alpha(alpha)

    def test_make_calibrator(self):
        from cfconformal import CVPlusConformal, SplitConformal
        from cfconformal.config import ConformalConfig, make_calibrator

        split = make_calibrator(ConformalConfig(score_type="mean", train_prop=0.3))
        assert isinstance(split, SplitConformal)
        assert split.train_prop == 0.3

        cv = make_calibrator(ConformalConfig(use_cv=True, n_folds=4), n_jobs=2)
        assert isinstance(cv, CVPlusConformal)
        assert cv.n_folds == 4 and cv.n_jobs == 2

    def test_mirror_levels(self):
        from cfconformal.config import mirror_quantile_levels

        assert mirror_quantile_levels(None) is None
        assert mirror_quantile_levels(0.1) == pytest.approx(0.9)
        assert mirror_quantile_levels((0.1, 0.8)) == pytest.approx((0.2, 0.9))

    def test_parse_algorithm(self):
        from cfconformal.config import ITEAlgorithm
        from cfconformal.exceptions import ConfigurationError

        assert ITEAlgorithm.parse("nest", exact=True) is ITEAlgorithm.NEST_EXACT
        assert ITEAlgorithm.parse("nest") is ITEAlgorithm.NEST_INEXACT
        assert ITEAlgorithm.parse("nest_inexact") is ITEAlgorithm.NEST_INEXACT
        assert ITEAlgorithm.parse("Naive") is ITEAlgorithm.NAIVE
        with pytest.raises(ConfigurationError):
            ITEAlgorithm.parse("bart")


class TestWeights:
    """Test suite for propensity-to-weight mapping."""

    def test_estimands(self):
        from cfconformal.weights import propensity_to_weights

        e = np.array([0.25, 0.5, 0.8])
        np.testing.assert_allclose(propensity_to_weights(e, "unconditional"), [4.0, 2.0, 1.25])
        np.testing.assert_allclose(propensity_to_weights(e, "missing"), [3.0, 1.0, 0.25])
        np.testing.assert_allclose(propensity_to_weights(e, "nonmissing"), [1.0, 1.0, 1.0])

    def test_clipping(self):
        from cfconformal.weights import propensity_to_weights

        e = np.array([0.01, 0.99])
        np.testing.assert_allclose(propensity_to_weights(e, "missing"), [20.0, 0.05])
        np.testing.assert_allclose(
            propensity_to_weights(e, "missing", bounds=(0.5, 2.0)), [2.0, 0.5]
        )

    def test_rejects_invalid_propensity(self):
        from cfconformal.exceptions import AdapterContractError
        from cfconformal.weights import propensity_to_weights

        with pytest.raises(AdapterContractError):
            propensity_to_weights(np.array([0.5, 1.0]))

    def test_effective_sample_size(self):
        from cfconformal.weights import effective_sample_size

        assert effective_sample_size(np.ones(10)) == pytest.approx(10.0)
        assert effective_sample_size(np.array([1.0, 0.0, 0.0])) == pytest.approx(1.0)
