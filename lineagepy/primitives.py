"""Evaluation kernels of the impulse curve and the logistic dropout link.

The impulse model is the double-sigmoid curve of ImpulseDE2:

    f(t) = 1/h1 * (h0 + (h1 - h0) * s1(t)) * (h2 + (h1 - h2) * s2(t))

with ``s1(t) = 1 / (1 + exp(-beta1 * (t - t1)))`` and
``s2(t) = 1 / (1 + exp(beta2 * (t - t2)))``. Amplitudes are stored on the
log scale, so the parameter vector is
``(beta1, beta2, log h0, log h1, log h2, t1, t2)``.
"""

import math

import numpy as np
from numba import njit
from scipy.special import expit

IMPULSE_FLOOR = 1e-10
DROPOUT_EPS = 1e-10
LOG_FLOAT_MAX = math.log(np.finfo(np.float64).max)


@njit(cache=True)
def _log_sigmoid_nb(x):
    """log(1 / (1 + exp(-x))) without overflow or underflow to -inf."""
    if x >= 0.0:
        return -math.log1p(math.exp(-x))
    return x - math.log1p(math.exp(x))


@njit(cache=True)
def _logaddexp_nb(a, b):
    m = max(a, b)
    return m + math.log1p(math.exp(-abs(a - b)))


@njit(cache=True)
def _impulse_kernel(beta1, beta2, log_h0, log_h1, log_h2, t1, t2, timepoints, out):
    """Numba kernel: impulse curve at each timepoint, evaluated on the log scale.

    Each sigmoid factor is a convex combination of two amplitudes, so its log
    is a logaddexp of log amplitudes and log weights. Results above the
    float64 range are inf; finite results are floored at IMPULSE_FLOOR.
    """
    for i in range(timepoints.shape[0]):
        t = timepoints[i]
        x1 = beta1 * (t - t1)
        x2 = -beta2 * (t - t2)
        log_a = _logaddexp_nb(log_h0 + _log_sigmoid_nb(-x1),
                              log_h1 + _log_sigmoid_nb(x1))
        log_b = _logaddexp_nb(log_h2 + _log_sigmoid_nb(-x2),
                              log_h1 + _log_sigmoid_nb(x2))
        log_v = log_a + log_b - log_h1
        if log_v > LOG_FLOAT_MAX:
            v = math.inf
        else:
            v = math.exp(log_v)
            if v < IMPULSE_FLOOR:
                v = IMPULSE_FLOOR
        out[i] = v


def eval_impulse_model(impulse_param, timepoints):
    """Evaluate the impulse model at the given timepoints.

    Parameters
    ----------
    impulse_param : array-like of length 7
        (beta1, beta2, log h0, log h1, log h2, t1, t2).
    timepoints : array-like
        Timepoints (pseudotime) at which to evaluate the curve.

    Returns
    -------
    ndarray, same length as ``timepoints``; every entry is at least 1e-10,
    and inf where the curve exceeds the float64 range.
    """
    p = np.asarray(impulse_param, dtype=np.float64).ravel()
    if p.size != 7:
        raise ValueError(f"impulse_param must have 7 entries, got {p.size}")
    if not np.all(np.isfinite(p)):
        raise ValueError("impulse_param must contain finite values")
    t = np.ascontiguousarray(np.asarray(timepoints, dtype=np.float64).ravel())
    out = np.empty(t.shape[0], dtype=np.float64)
    _impulse_kernel(p[0], p[1], p[2], p[3], p[4], p[5], p[6], t, out)
    return out


def eval_dropout_model(pi_model, pi_predictors):
    """Evaluate the logistic dropout model.

    Computes ``expit(pi_predictors . pi_model)`` over the last axis, so a
    single predictor vector gives a scalar and a (n x k) block of predictor
    rows (with matching coefficient rows, or one shared coefficient vector)
    gives n probabilities. Results are clipped into [1e-10, 1 - 1e-10].

    Parameters
    ----------
    pi_model : array-like (k,) or (n x k)
        Dropout model coefficients.
    pi_predictors : array-like (k,) or (n x k)
        Predictors; the first column is the offset (1).

    Returns
    -------
    float or ndarray
    """
    pi_model = np.asarray(pi_model, dtype=np.float64)
    pi_predictors = np.asarray(pi_predictors, dtype=np.float64)
    if pi_model.shape[-1] != pi_predictors.shape[-1]:
        raise ValueError(
            f"dropout model has {pi_model.shape[-1]} coefficients but "
            f"{pi_predictors.shape[-1]} predictors were supplied")
    linear = np.sum(pi_model * pi_predictors, axis=-1)
    pi = np.clip(expit(linear), DROPOUT_EPS, 1.0 - DROPOUT_EPS)
    if np.ndim(pi) == 0:
        return float(pi)
    return pi
