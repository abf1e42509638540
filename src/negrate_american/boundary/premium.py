"""American value from a solved boundary pair.

The American price is the European Black-Scholes price plus the
early-exercise premium

    eta * int_0^{u*} [ r K e^{-r s} dN2(u) - q S e^{-q s} dN1(u) ] du,

with s = tau - u, eta = +1 for puts and -1 for calls, u* the time up to
which an exercise region exists and

    dNk(u) = N(-dk(S / upper(u), s)) - N(-dk(S / lower(u), s)).

The substitution z = sqrt(s) removes the 1/sqrt(s) behaviour of the
integrand at s -> 0 before Gauss-Legendre quadrature is applied.
"""

from typing import Tuple

import numpy as np
from scipy import special

from negrate_american.boundary.spectral import map_to_interval
from negrate_american.bs_closed_form import bs_delta, bs_gamma, bs_price
from negrate_american.datatypes import DoubleBoundaryResult, MarketParameters
from negrate_american.mathkernel import norm_pdf_batch
from negrate_american.regime import PutProblem


def interpolate_boundary(times: np.ndarray, values: np.ndarray, at: np.ndarray) -> np.ndarray:
    """Interpolate a boundary linearly in sqrt(time to maturity)."""
    if len(times) == 1:
        return np.full(np.shape(at), values[0], dtype=float)
    return np.interp(np.sqrt(at), np.sqrt(times), values)


def d_terms(ratio: np.ndarray, s: np.ndarray, rate: float, dividend_yield: float,
            sigma: float) -> Tuple[np.ndarray, np.ndarray]:
    """Black-Scholes d1, d2 for moneyness ``ratio`` over time ``s``.

    A ratio of 0 or inf yields -inf or +inf, so that N(-d) takes its
    limiting value for an absent boundary.
    """
    vol = sigma * np.sqrt(s)
    with np.errstate(divide="ignore"):
        log_ratio = np.log(ratio)
    d1 = (log_ratio + (rate - dividend_yield + 0.5 * sigma * sigma) * s) / vol
    return d1, d1 - vol


def _region_at(params: MarketParameters, boundaries: DoubleBoundaryResult,
               u: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
    # Interpolate in put space where every boundary is finite
    problem = PutProblem.from_params(params)
    put_upper, put_lower = problem.to_put_space(boundaries.upper, boundaries.lower)
    up = interpolate_boundary(boundaries.times, put_upper, u)
    lo = interpolate_boundary(boundaries.times, put_lower, u)
    up = np.maximum(up, lo)
    return problem.from_put_space(up, lo)


def _quadrature(params: MarketParameters, boundaries: DoubleBoundaryResult, order: int):
    tau = params.maturity
    u_max = min(boundaries.exercise_horizon, tau)
    z, w = map_to_interval(np.array([np.sqrt(tau - u_max)]), np.array([np.sqrt(tau)]), order)
    z, w = z[0], w[0]
    s = z * z
    upper, lower = _region_at(params, boundaries, tau - s)
    # du = 2 z dz
    return z, s, 2.0 * z * w, upper, lower


def spot_in_exercise_region(spot: float, boundaries: DoubleBoundaryResult) -> bool:
    """Whether immediate exercise is optimal at the grid maturity."""
    if boundaries.has_crossing:
        return False
    upper, lower = boundaries.upper[-1], boundaries.lower[-1]
    return bool(upper > lower and lower <= spot <= upper)


def early_exercise_premium(spot: float, params: MarketParameters,
                           boundaries: DoubleBoundaryResult, order: int) -> float:
    """Early-exercise premium at ``spot`` for fixed boundaries."""
    if params.maturity <= 0 or params.volatility <= 0:
        return 0.0
    r, q, sigma, K = params.rate, params.dividend_yield, params.volatility, params.strike
    z, s, weights, upper, lower = _quadrature(params, boundaries, order)
    with np.errstate(divide="ignore"):
        d1_u, d2_u = d_terms(spot / upper, s, r, q, sigma)
        d1_l, d2_l = d_terms(spot / lower, s, r, q, sigma)
    dn1 = special.ndtr(-d1_u) - special.ndtr(-d1_l)
    dn2 = special.ndtr(-d2_u) - special.ndtr(-d2_l)
    integrand = r * K * np.exp(-r * s) * dn2 - q * spot * np.exp(-q * s) * dn1
    eta = -1.0 if params.is_call else 1.0
    return float(eta * np.sum(integrand * weights))


def early_exercise_premium_delta(spot: float, params: MarketParameters,
                                 boundaries: DoubleBoundaryResult, order: int) -> float:
    """Spot derivative of :func:`early_exercise_premium`."""
    if params.maturity <= 0 or params.volatility <= 0:
        return 0.0
    r, q, sigma, K = params.rate, params.dividend_yield, params.volatility, params.strike
    z, s, weights, upper, lower = _quadrature(params, boundaries, order)
    with np.errstate(divide="ignore"):
        d1_u, d2_u = d_terms(spot / upper, s, r, q, sigma)
        d1_l, d2_l = d_terms(spot / lower, s, r, q, sigma)
    dn1 = special.ndtr(-d1_u) - special.ndtr(-d1_l)
    dpdf1 = norm_pdf_batch(d1_u) - norm_pdf_batch(d1_l)
    dpdf2 = norm_pdf_batch(d2_u) - norm_pdf_batch(d2_l)
    vol = sigma * z
    integrand = (
        -r * K * np.exp(-r * s) * dpdf2 / (spot * vol)
        - q * np.exp(-q * s) * (dn1 - dpdf1 / vol)
    )
    eta = -1.0 if params.is_call else 1.0
    return float(eta * np.sum(integrand * weights))


def american_price_from_boundaries(params: MarketParameters, boundaries: DoubleBoundaryResult,
                                   order: int) -> float:
    """European price plus early-exercise premium, floored at intrinsic."""
    if spot_in_exercise_region(params.spot, boundaries):
        return params.intrinsic_value
    european = bs_price(params.spot, params.strike, params.rate, params.dividend_yield,
                        params.volatility, params.maturity, params.is_call)
    premium = early_exercise_premium(params.spot, params, boundaries, order)
    return max(european + premium, params.intrinsic_value)


def american_delta_from_boundaries(params: MarketParameters, boundaries: DoubleBoundaryResult,
                                   order: int, spot: float = None) -> float:
    spot = params.spot if spot is None else spot
    if spot_in_exercise_region(spot, boundaries):
        return 1.0 if params.is_call else -1.0
    european = bs_delta(spot, params.strike, params.rate, params.dividend_yield,
                        params.volatility, params.maturity, params.is_call)
    return european + early_exercise_premium_delta(spot, params, boundaries, order)


def american_gamma_from_boundaries(params: MarketParameters, boundaries: DoubleBoundaryResult,
                                   order: int, rel_bump: float = 1e-3) -> float:
    """Gamma from a central difference of the analytic delta."""
    spot = params.spot
    if spot_in_exercise_region(spot, boundaries):
        return 0.0
    h = rel_bump * spot
    premium_gamma = (
        early_exercise_premium_delta(spot + h, params, boundaries, order)
        - early_exercise_premium_delta(spot - h, params, boundaries, order)
    ) / (2 * h)
    european = bs_gamma(spot, params.strike, params.rate, params.dividend_yield,
                        params.volatility, params.maturity)
    return european + premium_gamma
