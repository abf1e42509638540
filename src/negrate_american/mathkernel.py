"""Transcendental math kernel.

Scalar and array versions of erf, the standard normal CDF/PDF, exp and
log. Both versions call the same ``scipy.special`` / NumPy ufuncs, so a
scalar evaluation and the corresponding array lane agree bit for bit.
Accuracy is that of the underlying Cephes routines, which is well within
1.5e-7 absolute for erf and a few ULP for the normal CDF.
"""

import math
from typing import Optional

import numpy as np
from scipy import special

INV_SQRT_2PI = 1.0 / math.sqrt(2.0 * math.pi)


def erf(x: float) -> float:
    return float(special.erf(x))


def norm_cdf(x: float) -> float:
    """Standard normal cumulative distribution function."""
    return float(special.ndtr(x))


def norm_pdf(x: float) -> float:
    """Standard normal probability density function."""
    return float(np.exp(-0.5 * (x * x)) * INV_SQRT_2PI)


def exp(x: float) -> float:
    return float(np.exp(x))


def log(x: float) -> float:
    return float(np.log(x))


def erf_batch(x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    return special.erf(x, out=out)


def norm_cdf_batch(x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Vectorized normal CDF, writing into ``out`` when given."""
    return special.ndtr(x, out=out)


def norm_pdf_batch(x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Vectorized normal PDF, writing into ``out`` when given."""
    x = np.asarray(x, dtype=float)
    if out is None:
        return np.exp(-0.5 * (x * x)) * INV_SQRT_2PI
    result = np.multiply(-0.5, x * x, out=out)
    np.exp(result, out=result)
    result *= INV_SQRT_2PI
    return result


def exp_batch(x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    return np.exp(x, out=out)


def log_batch(x: np.ndarray, out: Optional[np.ndarray] = None) -> np.ndarray:
    return np.log(x, out=out)
