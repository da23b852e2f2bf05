"""Tests for the weighted conformal quantile."""

import numpy as np
import pytest


class TestWeightedConformalQuantile:
    """Test suite for weighted_conformal_quantile."""

    @pytest.mark.parametrize("n,alpha", [(19, 0.1), (50, 0.1), (100, 0.05), (37, 0.2)])
    def test_uniform_weights_reduce_to_order_statistic(self, n, alpha):
        """Uniform weights give the ceil((1-alpha)(n+1))-th smallest score."""
        from cfconformal.quantile import weighted_conformal_quantile

        rng = np.random.default_rng(0)
        scores = rng.normal(size=n)
        k = int(np.ceil((1 - alpha) * (n + 1)))

        q = weighted_conformal_quantile(scores, None, 1.0, alpha)

        assert q == np.sort(scores)[k - 1]

    def test_rank_beyond_sample_is_infinite(self):
        """With n=5 and alpha=0.1 the required rank is 6 > n."""
        from cfconformal.quantile import weighted_conformal_quantile

        q = weighted_conformal_quantile(np.arange(5.0), np.ones(5), 1.0, 0.1)
        assert q == np.inf

    def test_empty_sample_is_infinite(self):
        from cfconformal.quantile import weighted_conformal_quantile

        assert weighted_conformal_quantile(np.array([]), None, 1.0, 0.1) == np.inf

    def test_zero_total_weight_is_infinite(self):
        from cfconformal.quantile import weighted_conformal_quantile

        q = weighted_conformal_quantile(np.arange(10.0), np.zeros(10), 0.0, 0.1)
        assert q == np.inf

    def test_monotone_in_alpha(self):
        """Smaller alpha never gives a smaller quantile."""
        from cfconformal.quantile import weighted_conformal_quantile

        rng = np.random.default_rng(1)
        scores = rng.exponential(size=200)
        weights = rng.uniform(0.1, 3.0, size=200)

        qs = [weighted_conformal_quantile(scores, weights, 1.0, a) for a in (0.3, 0.2, 0.1, 0.05)]
        assert all(a <= b for a, b in zip(qs, qs[1:]))

    def test_monotone_in_test_weight(self):
        """Heavier test weight pushes mass to +inf, raising the quantile."""
        from cfconformal.quantile import weighted_conformal_quantile

        rng = np.random.default_rng(2)
        scores = rng.normal(size=100)
        test_weights = np.array([0.0, 0.5, 1.0, 5.0, 20.0, 100.0])

        qs = weighted_conformal_quantile(scores, None, test_weights, 0.1)
        assert qs.shape == test_weights.shape
        assert np.all(np.diff(qs) >= 0)
        assert qs[-1] == np.inf

    def test_scale_invariance(self):
        """Weights only matter up to a common positive factor."""
        from cfconformal.quantile import weighted_conformal_quantile

        rng = np.random.default_rng(3)
        scores = rng.normal(size=80)
        weights = rng.uniform(0.5, 2.0, size=80)

        q1 = weighted_conformal_quantile(scores, weights, 1.3, 0.1)
        q2 = weighted_conformal_quantile(scores, 7 * weights, 7 * 1.3, 0.1)
        assert q1 == q2

    def test_ties_share_mass(self):
        from cfconformal.quantile import weighted_conformal_quantile

        scores = np.array([1.0, 1.0, 1.0, 2.0])
        assert weighted_conformal_quantile(scores, None, 1.0, 0.5) == 1.0
        # mass 0.8 reached only at score 2
        assert weighted_conformal_quantile(scores, None, 1.0, 0.2) == 2.0

    def test_infinite_scores_allowed(self):
        from cfconformal.quantile import weighted_conformal_quantile

        scores = np.array([0.5, np.inf, 1.0, 2.0] * 10)
        q = weighted_conformal_quantile(scores, None, 1.0, 0.6)
        assert q == 1.0

    def test_rejects_bad_input(self):
        from cfconformal.exceptions import ConfigurationError
        from cfconformal.quantile import weighted_conformal_quantile

        with pytest.raises(ValueError):
            weighted_conformal_quantile(np.ones(3), np.array([1.0, -1.0, 1.0]))
        with pytest.raises(ValueError):
            weighted_conformal_quantile(np.ones(3), np.ones(4))
        with pytest.raises(ValueError):
            weighted_conformal_quantile(np.array([1.0, np.nan]))
        with pytest.raises(ConfigurationError):
            weighted_conformal_quantile(np.ones(3), alpha=1.5)


class TestRowQuantiles:
    """Test suite for the row-wise variant used by CV+."""

    def test_matches_scalar_engine(self):
        from cfconformal.quantile import (
            weighted_conformal_quantile,
            weighted_conformal_quantile_rows,
        )

        rng = np.random.default_rng(4)
        values = rng.normal(size=(25, 60))
        weights = rng.uniform(0.2, 4.0, size=60)
        test_weights = rng.uniform(0.2, 4.0, size=25)

        rows = weighted_conformal_quantile_rows(values, weights, test_weights, 0.1)
        expected = [
            weighted_conformal_quantile(values[j], weights, test_weights[j], 0.1)
            for j in range(25)
        ]
        np.testing.assert_array_equal(rows, expected)

    def test_empty_calibration(self):
        from cfconformal.quantile import weighted_conformal_quantile_rows

        out = weighted_conformal_quantile_rows(np.empty((3, 0)), None, np.ones(3), 0.1)
        assert np.all(np.isinf(out))

    def test_shape_mismatch(self):
        from cfconformal.quantile import weighted_conformal_quantile_rows

        with pytest.raises(ValueError):
            weighted_conformal_quantile_rows(np.ones((3, 4)), None, np.ones(2), 0.1)
