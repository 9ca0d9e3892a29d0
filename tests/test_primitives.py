"""Tests for the impulse and logistic dropout evaluation kernels."""

import numpy as np
import pytest
from scipy.special import expit

import lineagepy as lp


class TestImpulseModel:
    """eval_impulse_model."""

    def test_flat_curve(self):
        # h0 == h1 == h2 gives a constant curve at that level
        p = np.array([2.0, 1.0, np.log(3.0), np.log(3.0), np.log(3.0), 2.0, 8.0])
        t = np.linspace(0, 10, 25)
        assert np.allclose(lp.eval_impulse_model(p, t), 3.0)

    def test_reference_formula(self):
        p = np.array([1.0, 2.0, np.log(1.0), np.log(5.0), np.log(2.0), 3.0, 6.0])
        t = np.array([0.0, 3.0, 4.5, 6.0, 12.0])
        h0, h1, h2 = 1.0, 5.0, 2.0
        s1 = expit(1.0 * (t - 3.0))
        s2 = expit(-2.0 * (t - 6.0))
        expected = (h0 + (h1 - h0) * s1) * (h2 + (h1 - h2) * s2) / h1
        assert np.allclose(lp.eval_impulse_model(p, t), expected)

    def test_limits(self):
        p = np.array([5.0, 5.0, np.log(1.0), np.log(10.0), np.log(2.0), 3.0, 7.0])
        out = lp.eval_impulse_model(p, [-100.0, 5.0, 100.0])
        # Starts at h0, peaks near h1, ends at h2
        assert out[0] == pytest.approx(1.0)
        assert out[1] == pytest.approx(10.0, rel=1e-3)
        assert out[2] == pytest.approx(2.0)

    def test_floor(self):
        p = np.array([1.0, 1.0, -50.0, -50.0, -50.0, 0.0, 1.0])
        out = lp.eval_impulse_model(p, [0.0, 0.5, 1.0])
        assert np.all(out == 1e-10)

    def test_extreme_slopes_are_finite(self):
        p = np.array([1e4, -1e4, 0.0, 1.0, 0.5, 0.0, 0.0])
        out = lp.eval_impulse_model(p, np.linspace(-5, 5, 11))
        assert np.all(np.isfinite(out))
        assert np.all(out > 0)

    def test_overflow_is_inf_not_floor(self):
        # Peak far above the float64 range
        p = np.array([1.0, 1.0, 0.0, 800.0, 0.0, 0.0, 10.0])
        out = lp.eval_impulse_model(p, [5.0])
        assert np.isinf(out[0]) and out[0] > 0

    def test_large_but_representable_peak(self):
        p = np.array([1.0, 1.0, 700.0, 700.0, 700.0, 0.0, 10.0])
        out = lp.eval_impulse_model(p, [-3.0, 5.0, 20.0])
        assert np.all(np.isfinite(out))
        assert np.allclose(out, np.exp(700.0))

    def test_non_finite_parameters(self):
        with pytest.raises(ValueError, match="finite"):
            lp.eval_impulse_model([1.0, 1.0, 0.0, np.inf, 0.0, 0.0, 1.0], [0.0])
        with pytest.raises(ValueError, match="finite"):
            lp.eval_impulse_model([np.nan, 1.0, 0.0, 0.0, 0.0, 0.0, 1.0], [0.0])

    def test_parameter_count(self):
        with pytest.raises(ValueError, match="7 entries"):
            lp.eval_impulse_model(np.zeros(6), [0.0])

    def test_empty_timepoints(self):
        out = lp.eval_impulse_model(np.zeros(7), [])
        assert out.shape == (0,)


class TestDropoutModel:
    """eval_dropout_model."""

    def test_scalar(self):
        pi = lp.eval_dropout_model([0.5, -1.0], [1.0, 2.0])
        assert isinstance(pi, float)
        assert pi == pytest.approx(expit(-1.5))

    def test_rows(self):
        coef = np.array([[0.0, 1.0], [1.0, 1.0]])
        pred = np.array([[1.0, 2.0], [1.0, -1.0]])
        assert np.allclose(lp.eval_dropout_model(coef, pred), expit([2.0, 0.0]))

    def test_shared_coefficients(self):
        pred = np.array([[1.0, 0.0], [1.0, 1.0], [1.0, 2.0]])
        assert np.allclose(lp.eval_dropout_model([0.0, 1.0], pred),
                           expit([0.0, 1.0, 2.0]))

    def test_clipped(self):
        pi = lp.eval_dropout_model([1e6, 0.0], np.array([[1.0, 0.0], [-1.0, 0.0]]))
        assert 0 < pi[1] < pi[0] < 1

    def test_mismatch(self):
        with pytest.raises(ValueError, match="predictors"):
            lp.eval_dropout_model([1.0, 2.0, 3.0], [1.0, 2.0])
