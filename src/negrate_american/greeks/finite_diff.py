"""Finite difference methods for computing Greeks.

Bump-and-reprice sensitivities for the Greeks that need a fresh
boundary or grid solve: vega and theta. Spot sensitivities are taken
from the solved boundary or grid directly.
"""

from dataclasses import replace
from typing import Callable

from negrate_american.datatypes import MarketParameters

PriceFunction = Callable[[MarketParameters], float]


def vega_fd(price_func: PriceFunction, params: MarketParameters, dsigma: float = 1e-3) -> float:
    """Vega per 1% volatility move.

    Central difference, or forward difference when the volatility is
    smaller than the bump.

    Args:
        price_func: Function returning the option price for parameters.
        params: Base parameters.
        dsigma: Absolute volatility bump.

    Returns:
        Vega (per 1% volatility move).
    """
    price_up = price_func(replace(params, volatility=params.volatility + dsigma))
    if params.volatility > dsigma:
        price_down = price_func(replace(params, volatility=params.volatility - dsigma))
        return float((price_up - price_down) / (2 * dsigma) / 100)
    price_base = price_func(params)
    return float((price_up - price_base) / dsigma / 100)


def theta_fd(price_func: PriceFunction, params: MarketParameters, dt: float = 1.0 / 365.0,
             price_base: float = None) -> float:
    """Theta per calendar day from a backward maturity bump.

    Args:
        price_func: Function returning the option price for parameters.
        params: Base parameters.
        dt: Maturity bump in years.
        price_base: Price at ``params`` when already known.

    Returns:
        Theta (per day); 0.0 when the maturity is shorter than the bump.
    """
    if params.maturity <= dt:
        return 0.0
    if price_base is None:
        price_base = price_func(params)
    price_t_minus = price_func(replace(params, maturity=params.maturity - dt))
    return float(-(price_base - price_t_minus) / dt / 365)
