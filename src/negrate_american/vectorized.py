"""Batched Black-Scholes prices and Greeks.

Contracts share r, q and the option right; spots, strikes, maturities
and volatilities are parallel arrays. The largest multiple of the lane
width is evaluated in one NumPy pass with the same expressions as the
scalar formulas in :mod:`negrate_american.bs_closed_form`; the remainder,
degenerate lanes (tau <= 0 or sigma <= 0) and ``vectorized=False`` calls
go through the scalar formulas. Results are written into caller-provided
output arrays.
"""

from typing import Callable, Dict

import numpy as np

from negrate_american.bs_closed_form import bs_delta, bs_gamma, bs_price, bs_vega
from negrate_american.exceptions import ValidationError
from negrate_american.mathkernel import norm_cdf_batch, norm_pdf_batch

DEFAULT_LANE_WIDTH = 8


def _check_inputs(spots, strikes, taus, sigmas, out):
    arrays = [np.asarray(a, dtype=float) for a in (spots, strikes, taus, sigmas)]
    count = len(arrays[0])
    if any(a.ndim != 1 or len(a) != count for a in arrays):
        raise ValidationError("spots, strikes, taus and sigmas must be 1-D arrays of equal length")
    if not isinstance(out, np.ndarray) or out.shape != (count,):
        raise ValidationError(f"out must be a numpy array of shape ({count},)")
    if out.dtype.kind != "f":
        raise ValidationError(f"out must have a floating dtype, got {out.dtype}")
    if np.any(arrays[0] <= 0) or np.any(arrays[1] <= 0):
        raise ValidationError("spots and strikes must be positive")
    if np.any(~(arrays[2] >= 0)) or np.any(~(arrays[3] >= 0)):
        raise ValidationError("taus and sigmas must be non-negative")
    return arrays


def _d1_d2(spots, strikes, taus, sigmas, r, q):
    vol_sqrt_t = sigmas * np.sqrt(taus)
    d1 = (np.log(spots / strikes) + (r - q + 0.5 * (sigmas * sigmas)) * taus) / vol_sqrt_t
    return d1, d1 - vol_sqrt_t


def _price_lanes(spots, strikes, taus, sigmas, r, q, call):
    d1, d2 = _d1_d2(spots, strikes, taus, sigmas, r, q)
    if call:
        return spots * np.exp(-q * taus) * norm_cdf_batch(d1) - strikes * np.exp(-r * taus) * norm_cdf_batch(d2)
    return strikes * np.exp(-r * taus) * norm_cdf_batch(-d2) - spots * np.exp(-q * taus) * norm_cdf_batch(-d1)


def _delta_lanes(spots, strikes, taus, sigmas, r, q, call):
    d1, _ = _d1_d2(spots, strikes, taus, sigmas, r, q)
    if call:
        return np.exp(-q * taus) * norm_cdf_batch(d1)
    return -np.exp(-q * taus) * norm_cdf_batch(-d1)


def _gamma_lanes(spots, strikes, taus, sigmas, r, q, call):
    d1, _ = _d1_d2(spots, strikes, taus, sigmas, r, q)
    return np.exp(-q * taus) * norm_pdf_batch(d1) / (spots * (sigmas * np.sqrt(taus)))


def _vega_lanes(spots, strikes, taus, sigmas, r, q, call):
    d1, _ = _d1_d2(spots, strikes, taus, sigmas, r, q)
    return spots * np.exp(-q * taus) * norm_pdf_batch(d1) * np.sqrt(taus) / 100


_SCALAR: Dict[str, Callable] = {
    "price": lambda s, k, t, v, r, q, call: bs_price(s, k, r, q, v, t, call),
    "delta": lambda s, k, t, v, r, q, call: bs_delta(s, k, r, q, v, t, call),
    "gamma": lambda s, k, t, v, r, q, call: bs_gamma(s, k, r, q, v, t),
    "vega": lambda s, k, t, v, r, q, call: bs_vega(s, k, r, q, v, t),
}

_LANES: Dict[str, Callable] = {
    "price": _price_lanes,
    "delta": _delta_lanes,
    "gamma": _gamma_lanes,
    "vega": _vega_lanes,
}


def _compute(kind, spots, strikes, taus, sigmas, r, q, call, out, lane_width, vectorized):
    spots, strikes, taus, sigmas = _check_inputs(spots, strikes, taus, sigmas, out)
    if lane_width < 1:
        raise ValidationError(f"lane_width must be at least 1, got {lane_width}")
    count = len(spots)
    vector_end = count - count % lane_width if vectorized else 0

    if vector_end:
        lanes = slice(0, vector_end)
        regular = (taus[lanes] > 0) & (sigmas[lanes] > 0)
        # Degenerate lanes get harmless inputs here and are overwritten below
        safe_taus = np.where(regular, taus[lanes], 1.0)
        safe_sigmas = np.where(regular, sigmas[lanes], 1.0)
        with np.errstate(invalid="ignore", divide="ignore"):
            out[lanes] = _LANES[kind](spots[lanes], strikes[lanes], safe_taus, safe_sigmas, r, q, call)
        scalar_indices = list(np.flatnonzero(~regular)) + list(range(vector_end, count))
    else:
        scalar_indices = range(count)

    scalar = _SCALAR[kind]
    for i in scalar_indices:
        out[i] = scalar(spots[i], strikes[i], taus[i], sigmas[i], r, q, call)
    return out


def compute_prices_batch(spots, strikes, taus, sigmas, r: float, q: float, call: bool,
                         out: np.ndarray, lane_width: int = DEFAULT_LANE_WIDTH,
                         vectorized: bool = True) -> np.ndarray:
    """European Black-Scholes prices for a batch of contracts.

    Args:
        spots: Spot prices.
        strikes: Strike prices.
        taus: Times to maturity in years.
        sigmas: Volatilities.
        r: Risk-free rate shared by the batch.
        q: Dividend yield shared by the batch.
        call: True for calls, False for puts.
        out: Output array, written in place.
        lane_width: Number of contracts per vector batch.
        vectorized: Use the scalar path for every contract when False.

    Returns:
        ``out``.
    """
    return _compute("price", spots, strikes, taus, sigmas, r, q, call, out, lane_width, vectorized)


def compute_deltas_batch(spots, strikes, taus, sigmas, r: float, q: float, call: bool,
                         out: np.ndarray, lane_width: int = DEFAULT_LANE_WIDTH,
                         vectorized: bool = True) -> np.ndarray:
    """Black-Scholes deltas; see :func:`compute_prices_batch`."""
    return _compute("delta", spots, strikes, taus, sigmas, r, q, call, out, lane_width, vectorized)


def compute_gammas_batch(spots, strikes, taus, sigmas, r: float, q: float,
                         out: np.ndarray, lane_width: int = DEFAULT_LANE_WIDTH,
                         vectorized: bool = True) -> np.ndarray:
    """Black-Scholes gammas (independent of the option right)."""
    return _compute("gamma", spots, strikes, taus, sigmas, r, q, False, out, lane_width, vectorized)


def compute_vegas_batch(spots, strikes, taus, sigmas, r: float, q: float,
                        out: np.ndarray, lane_width: int = DEFAULT_LANE_WIDTH,
                        vectorized: bool = True) -> np.ndarray:
    """Black-Scholes vegas per 1% volatility move."""
    return _compute("vega", spots, strikes, taus, sigmas, r, q, False, out, lane_width, vectorized)


def compute_greeks_batch(spots, strikes, taus, sigmas, r: float, q: float, call: bool,
                         price_out: np.ndarray, delta_out: np.ndarray, gamma_out: np.ndarray,
                         vega_out: np.ndarray, lane_width: int = DEFAULT_LANE_WIDTH,
                         vectorized: bool = True) -> None:
    """Fill price, delta, gamma and vega output arrays in one call."""
    compute_prices_batch(spots, strikes, taus, sigmas, r, q, call, price_out, lane_width, vectorized)
    compute_deltas_batch(spots, strikes, taus, sigmas, r, q, call, delta_out, lane_width, vectorized)
    compute_gammas_batch(spots, strikes, taus, sigmas, r, q, gamma_out, lane_width, vectorized)
    compute_vegas_batch(spots, strikes, taus, sigmas, r, q, vega_out, lane_width, vectorized)
