"""Black-Scholes closed-form option pricing formulas.

This module implements the analytical Black-Scholes formulas for
European option pricing and first and second order sensitivities. Rates and dividend
yields may be negative. The batch versions in
:mod:`negrate_american.vectorized` evaluate the same expressions.
"""

from typing import Tuple

import numpy as np

from negrate_american.mathkernel import norm_cdf, norm_pdf


def bs_d1_d2(
    s0: float,
    K: float,
    r: float,
    q: float,
    sigma: float,
    T: float
) -> Tuple[float, float]:
    """Compute the Black-Scholes d1 and d2 terms (requires sigma, T > 0)."""
    vol_sqrt_t = sigma * np.sqrt(T)
    d1 = (np.log(s0 / K) + (r - q + 0.5 * (sigma * sigma)) * T) / vol_sqrt_t
    d2 = d1 - vol_sqrt_t
    return float(d1), float(d2)


def _forward_intrinsic(s0, K, r, q, T, call):
    # Zero volatility: the discounted forward payoff
    forward_value = s0 * np.exp(-q * T) - K * np.exp(-r * T)
    if call:
        return max(float(forward_value), 0.0)
    return max(float(-forward_value), 0.0)


def bs_price(
    s0: float,
    K: float,
    r: float,
    q: float,
    sigma: float,
    T: float,
    call: bool
) -> float:
    """Compute European option price using Black-Scholes formula.

    Args:
        s0: Current stock price.
        K: Strike price.
        r: Risk-free rate.
        q: Dividend yield.
        sigma: Volatility.
        T: Time to maturity.
        call: True for call, False for put.

    Returns:
        Option price.
    """
    if T <= 0:
        # At expiration
        if call:
            return max(s0 - K, 0.0)
        else:
            return max(K - s0, 0.0)
    if sigma <= 0:
        return _forward_intrinsic(s0, K, r, q, T, call)

    d1, d2 = bs_d1_d2(s0, K, r, q, sigma, T)

    if call:
        price = s0 * np.exp(-q * T) * norm_cdf(d1) - K * np.exp(-r * T) * norm_cdf(d2)
    else:
        price = K * np.exp(-r * T) * norm_cdf(-d2) - s0 * np.exp(-q * T) * norm_cdf(-d1)

    return float(price)


def bs_delta(s0: float, K: float, r: float, q: float, sigma: float, T: float, call: bool) -> float:
    """Black-Scholes delta."""
    if T <= 0 or sigma <= 0:
        forward = s0 * np.exp(-q * T) - K * np.exp(-r * T)
        if call:
            return float(np.exp(-q * T)) if forward > 0 else 0.0
        return -float(np.exp(-q * T)) if forward < 0 else 0.0
    d1, _ = bs_d1_d2(s0, K, r, q, sigma, T)
    if call:
        return float(np.exp(-q * T) * norm_cdf(d1))
    return float(-np.exp(-q * T) * norm_cdf(-d1))


def bs_gamma(s0: float, K: float, r: float, q: float, sigma: float, T: float) -> float:
    """Black-Scholes gamma (identical for calls and puts)."""
    if T <= 0 or sigma <= 0:
        return 0.0
    d1, _ = bs_d1_d2(s0, K, r, q, sigma, T)
    return float(np.exp(-q * T) * norm_pdf(d1) / (s0 * (sigma * np.sqrt(T))))


def bs_vega(s0: float, K: float, r: float, q: float, sigma: float, T: float) -> float:
    """Black-Scholes vega per 1% volatility move."""
    if T <= 0 or sigma <= 0:
        return 0.0
    d1, _ = bs_d1_d2(s0, K, r, q, sigma, T)
    return float(s0 * np.exp(-q * T) * norm_pdf(d1) * np.sqrt(T) / 100)
