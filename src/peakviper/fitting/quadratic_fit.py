# file: src/peakviper/fitting/quadratic_fit.py
"""
Local model fits used for sub-pixel extremum localization.

All fits work on 3-sample lines or on the full 3x3 / 3x3x3 stencil around a
candidate pixel and always look for a *maximum*; minima are handled by the
caller by negating the samples.

Joint quadratic fit
-------------------
2D model:  f = a0 + a1*x + a2*y + a3*x*x + a4*y*y + a5*x*y
3D model:  f = a0 + a1*x + a2*y + a3*z + a4*x*x + a5*y*y + a6*z*z + a7*y*z + a8*z*x + a9*x*y

The least-squares coefficients are a = inv(G'G) G' t for the design matrix G
of the stencil, which is a constant. The projection matrices below were
obtained once with

    x, y = np.meshgrid([-1, 0, 1], [-1, 0, 1], indexing="xy")
    x, y = x.ravel(), y.ravel()
    G = np.stack([np.ones(9), x, y, x * x, y * y, x * y], axis=1)
    np.linalg.inv(G.T @ G) @ G.T * 6

(and the 3D equivalent scaled by 18). Stencil samples are ordered with
x (array axis 0) varying fastest, then y (axis 1), then z (axis 2).

Setting the gradient to zero gives

    | 2*a3   a5 |   | x |   | -a1 |
    |   a5 2*a4 | * | y | = | -a2 |

in 2D, and the symmetric 3x3 system built from a4..a9 in 3D.
"""

from __future__ import annotations

import math
from typing import Optional, Tuple

import numpy as np
from numba import jit

# Offsets should be within +/-0.5; a true extremum close to 0.5 can come out
# slightly larger due to rounding, so fits are only rejected beyond 0.75.
MAX_OFFSET = 0.75

# fmt: off
_QUADRATIC_FIT_2D = np.array([
    [-2/3,  4/3, -2/3,  4/3, 10/3,  4/3, -2/3,  4/3, -2/3],
    [-1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0],
    [-1.0, -1.0, -1.0,  0.0,  0.0,  0.0,  1.0,  1.0,  1.0],
    [ 1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0],
    [ 1.0,  1.0,  1.0, -2.0, -2.0, -2.0,  1.0,  1.0,  1.0],
    [ 3/2,  0.0, -3/2,  0.0,  0.0,  0.0, -3/2,  0.0,  3/2],
]) / 6.0

_QUADRATIC_FIT_3D = np.array([
    [-4/3,  2/3, -4/3,  2/3,  8/3,  2/3, -4/3,  2/3, -4/3,  2/3,  8/3,  2/3,  8/3, 14/3,  8/3,  2/3,  8/3,  2/3, -4/3,  2/3, -4/3,  2/3,  8/3,  2/3, -4/3,  2/3, -4/3],
    [-1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0, -1.0,  0.0,  1.0],
    [-1.0, -1.0, -1.0,  0.0,  0.0,  0.0,  1.0,  1.0,  1.0, -1.0, -1.0, -1.0,  0.0,  0.0,  0.0,  1.0,  1.0,  1.0, -1.0, -1.0, -1.0,  0.0,  0.0,  0.0,  1.0,  1.0,  1.0],
    [-1.0, -1.0, -1.0, -1.0, -1.0, -1.0, -1.0, -1.0, -1.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0],
    [ 1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0,  1.0, -2.0,  1.0],
    [ 1.0,  1.0,  1.0, -2.0, -2.0, -2.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0, -2.0, -2.0, -2.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0, -2.0, -2.0, -2.0,  1.0,  1.0,  1.0],
    [ 1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0, -2.0, -2.0, -2.0, -2.0, -2.0, -2.0, -2.0, -2.0, -2.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0,  1.0],
    [ 3/2,  3/2,  3/2,  0.0,  0.0,  0.0, -3/2, -3/2, -3/2,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0, -3/2, -3/2, -3/2,  0.0,  0.0,  0.0,  3/2,  3/2,  3/2],
    [ 3/2,  0.0, -3/2,  3/2,  0.0, -3/2,  3/2,  0.0, -3/2,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0,  0.0, -3/2,  0.0,  3/2, -3/2,  0.0,  3/2, -3/2,  0.0,  3/2],
    [ 3/2,  0.0, -3/2,  0.0,  0.0,  0.0, -3/2,  0.0,  3/2,  3/2,  0.0, -3/2,  0.0,  0.0,  0.0, -3/2,  0.0,  3/2,  3/2,  0.0, -3/2,  0.0,  0.0,  0.0, -3/2,  0.0,  3/2],
]) / 18.0
# fmt: on


# ---------- numba kernels ----------


@jit(nopython=True, cache=True, nogil=True)
def quadratic_fit_3x3(t):
    """
    Sub-pixel offset of the maximum of a 3x3 patch by 2D quadratic fit.

    Parameters
    ----------
    t : np.ndarray
        9 samples, axis 0 varying fastest.

    Returns
    -------
    (ok, x, y, value)
        ok is False if the system is singular or the offset is out of range.
    """
    a = _QUADRATIC_FIT_2D @ t
    denom = a[5] * a[5] - 4.0 * a[3] * a[4]
    if denom == 0.0:
        return False, 0.0, 0.0, 0.0
    x = (2.0 * a[4] * a[1] - a[5] * a[2]) / denom
    y = (2.0 * a[3] * a[2] - a[5] * a[1]) / denom
    # NaN offsets fail these comparisons as well
    if not (abs(x) <= MAX_OFFSET and abs(y) <= MAX_OFFSET):
        return False, 0.0, 0.0, 0.0
    val = a[0] + a[1] * x + a[2] * y + a[3] * x * x + a[4] * y * y + a[5] * x * y
    return True, x, y, val


@jit(nopython=True, cache=True, nogil=True)
def quadratic_fit_3x3x3(t):
    """
    Sub-pixel offset of the maximum of a 3x3x3 patch by 3D quadratic fit.

    Returns (ok, x, y, z, value), see ``quadratic_fit_3x3``.
    """
    a = _QUADRATIC_FIT_3D @ t
    b = np.empty((3, 3))
    b[0, 0] = 2.0 * a[4]
    b[0, 1] = a[9]
    b[0, 2] = a[8]
    b[1, 0] = a[9]
    b[1, 1] = 2.0 * a[5]
    b[1, 2] = a[7]
    b[2, 0] = a[8]
    b[2, 1] = a[7]
    b[2, 2] = 2.0 * a[6]
    c = np.empty(3)
    c[0] = -a[1]
    c[1] = -a[2]
    c[2] = -a[3]
    # LAPACK refuses non-finite input, which a failed log transform produces
    if not (np.all(np.isfinite(b)) and np.all(np.isfinite(c))):
        return False, 0.0, 0.0, 0.0, 0.0
    if np.linalg.det(b) == 0.0:
        return False, 0.0, 0.0, 0.0, 0.0
    s = np.linalg.solve(b, c)
    x = s[0]
    y = s[1]
    z = s[2]
    if not (abs(x) <= MAX_OFFSET and abs(y) <= MAX_OFFSET and abs(z) <= MAX_OFFSET):
        return False, 0.0, 0.0, 0.0, 0.0
    val = (
        a[0] + a[1] * x + a[2] * y + a[3] * z
        + a[4] * x * x + a[5] * y * y + a[6] * z * z
        + a[7] * y * z + a[8] * z * x + a[9] * x * y
    )
    return True, x, y, z, val


@jit(nopython=True, cache=True, nogil=True)
def parabolic_fit_1d(t0, t1, t2):
    """Parabola through three equidistant samples: (ok, offset, value)."""
    m = t0 - 2.0 * t1 + t2
    if m == 0.0 or not math.isfinite(m):
        return False, 0.0, 0.0
    d = t0 - t2
    offset = d / (2.0 * m)
    value = t1 - d * d / (8.0 * m)
    if not (math.isfinite(offset) and math.isfinite(value)):
        return False, 0.0, 0.0
    return True, offset, value


@jit(nopython=True, cache=True, nogil=True)
def log_transform(t):
    """
    Natural log of the samples. If the center sample is negative the log of
    the negated samples is taken and ``inverted`` is True. Samples that
    cannot be log-transformed become NaN.
    """
    inverted = t[t.shape[0] // 2] < 0.0
    out = np.empty(t.shape[0])
    for ii in range(t.shape[0]):
        v = -t[ii] if inverted else t[ii]
        if v > 0.0:
            out[ii] = np.log(v)
        else:
            out[ii] = np.nan
    return out, inverted


# ---------- solvers on sampled data ----------


def _undo_log(value: float, inverted: bool) -> float:
    value = float(np.exp(value))
    return -value if inverted else value


def fit_linear(lines: np.ndarray) -> np.ndarray:
    """
    Center-of-gravity offsets, one per axis.

    ``lines`` has shape (ndim, 3). The minimum of each line is subtracted so
    that all weights are non-negative.
    """
    shifted = lines - lines.min(axis=1, keepdims=True)
    m = shifted.sum(axis=1)
    return np.divide(
        shifted[:, 2] - shifted[:, 0], m, out=np.zeros_like(m), where=m != 0
    )


def fit_separable(lines: np.ndarray, gaussian: bool = False) -> Tuple[np.ndarray, float]:
    """
    Independent 1D parabolic (or Gaussian) fits along each axis.

    Returns the per-axis offsets and the largest of the center sample and
    every axis's interpolated maximum. The value is not resampled at the
    combined location.
    """
    value = float(lines[0, 1])
    offsets = np.zeros(lines.shape[0])
    for ii in range(lines.shape[0]):
        t = lines[ii]
        inverted = False
        if gaussian:
            t, inverted = log_transform(np.ascontiguousarray(t, dtype=np.float64))
        ok, offset, val = parabolic_fit_1d(float(t[0]), float(t[1]), float(t[2]))
        if not ok:
            continue
        if gaussian:
            val = _undo_log(val, inverted)
        offsets[ii] = offset
        value = max(value, float(val))
    return offsets, value


def fit_joint(stencil: np.ndarray, gaussian: bool = False) -> Tuple[Optional[np.ndarray], Optional[float]]:
    """
    Joint quadratic (or Gaussian) fit over a 9- or 27-sample stencil.

    Returns (offsets, value), or (None, None) when the fit is rejected.
    """
    t = np.ascontiguousarray(stencil, dtype=np.float64)
    inverted = False
    if gaussian:
        t, inverted = log_transform(t)
    if t.size == 9:
        ok, x, y, val = quadratic_fit_3x3(t)
        offsets = np.array([x, y])
    elif t.size == 27:
        ok, x, y, z, val = quadratic_fit_3x3x3(t)
        offsets = np.array([x, y, z])
    else:
        raise ValueError(f"Joint fits need a 9 or 27 sample stencil, got {t.size}.")
    if not ok:
        return None, None
    if gaussian:
        val = _undo_log(val, inverted)
    if not np.isfinite(val):
        return None, None
    return offsets, float(val)
