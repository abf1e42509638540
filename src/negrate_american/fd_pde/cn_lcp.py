"""Crank-Nicolson finite-difference pricer for American options.

The American constraint V >= payoff is enforced by projecting the
solution onto the payoff after every time step. The first steps are
replaced by fully implicit half steps (Rannacher start-up) to damp the
oscillations Crank-Nicolson produces from the non-smooth payoff. The
pricer makes no use of exercise boundaries, so it is valid in every
rate regime, including the double-boundary one.
"""

import logging
import warnings
from dataclasses import dataclass

import numpy as np
import pandas as pd
from scipy.sparse import diags
from scipy.sparse.linalg import factorized

from negrate_american.datatypes import MarketParameters
from negrate_american.exceptions import ValidationError
from negrate_american.fd_pde.grid import choose_s_max, interpolate_from_grid, make_grids

logger = logging.getLogger(__name__)

# Warn when fewer grid cells than this fit below the spot
MIN_CELLS_BELOW_SPOT = 20


@dataclass(frozen=True, eq=False)
class FDSolution:
    """Finite-difference solution at the valuation time.

    Attributes:
        s_grid: Spatial grid.
        values: Option values at the full maturity.
        previous: Option values one time step closer to expiry.
        last_step: Size of the final time step in years.
    """
    s_grid: pd.Index
    values: np.ndarray
    previous: np.ndarray
    last_step: float

    def price(self, spot: float) -> float:
        return interpolate_from_grid(self.s_grid, self.values, spot)

    def delta(self, spot: float) -> float:
        ds = self.s_grid[1] - self.s_grid[0]
        return interpolate_from_grid(self.s_grid, np.gradient(self.values, ds), spot)

    def gamma(self, spot: float) -> float:
        ds = self.s_grid[1] - self.s_grid[0]
        second = np.zeros_like(self.values)
        second[1:-1] = (self.values[2:] - 2.0 * self.values[1:-1] + self.values[:-2]) / ds ** 2
        return interpolate_from_grid(self.s_grid, second, spot)

    def theta(self, spot: float) -> float:
        """Price change per calendar day."""
        change = self.price(spot) - interpolate_from_grid(self.s_grid, self.previous, spot)
        return float(-change / self.last_step / 365)


def _payoff(s_grid: np.ndarray, K: float, call: bool) -> np.ndarray:
    if call:
        return np.maximum(s_grid - K, 0.0)
    return np.maximum(K - s_grid, 0.0)


def _edge_values(params: MarketParameters, s_max: float, tau: float):
    K, r, q = params.strike, params.rate, params.dividend_yield
    if params.is_call:
        return 0.0, max(s_max - K, s_max * np.exp(-q * tau) - K * np.exp(-r * tau))
    # S = 0 is absorbing: hold for K e^{-r tau} or exercise for K
    return max(K, K * np.exp(-r * tau)), 0.0


def _operator(params: MarketParameters, ns: int, dt: float, theta: float):
    """Factorized left operator and explicit right operator of a theta step."""
    sigma, r, q = params.volatility, params.rate, params.dividend_yield
    i = np.arange(ns, dtype=float)
    alpha = 0.5 * dt * (sigma ** 2 * i ** 2 - (r - q) * i)
    beta = -dt * (sigma ** 2 * i ** 2 + r)
    gamma = 0.5 * dt * (sigma ** 2 * i ** 2 + (r - q) * i)

    lhs = diags([-theta * alpha[2:-1], 1 - theta * beta[1:-1], -theta * gamma[1:-2]],
                [-1, 0, 1], shape=(ns - 2, ns - 2), format='csc')
    rhs = diags([(1 - theta) * alpha[2:-1], 1 + (1 - theta) * beta[1:-1], (1 - theta) * gamma[1:-2]],
                [-1, 0, 1], shape=(ns - 2, ns - 2), format='csc')
    return factorized(lhs), rhs, alpha[1], gamma[-2]


def price_american_fd(
    params: MarketParameters,
    ns: int = 801,
    nt: int = 1000,
    std_devs: float = 5.0,
    rannacher_steps: int = 2,
) -> FDSolution:
    """Solve the American option LCP on a uniform (S, tau) grid.

    Args:
        params: Contract and market inputs (maturity and volatility > 0).
        ns: Number of spatial grid points.
        nt: Number of time steps.
        std_devs: Grid half-width in log-standard deviations.
        rannacher_steps: Leading steps replaced by two implicit half steps.

    Returns:
        FDSolution at the full maturity.

    Raises:
        ValidationError: If the grid has fewer than 3 space points or
            no time step.
    """
    if ns < 3 or nt < 1 or rannacher_steps < 0:
        raise ValidationError(
            f"Finite-difference grid needs ns >= 3, nt >= 1 and rannacher_steps >= 0; "
            f"got ns={ns}, nt={nt}, rannacher_steps={rannacher_steps}"
        )
    K, T = params.strike, params.maturity
    s_max = choose_s_max(params.spot, K, params.volatility, T, std_devs)
    s_grid, _ = make_grids(s_max, ns, T, nt + 1)
    ds = s_grid[1] - s_grid[0]
    if params.spot / ds < MIN_CELLS_BELOW_SPOT:
        warnings.warn(
            f"Finite-difference grid is coarse around spot: ds={ds:.4g} for spot={params.spot:.4g}",
            RuntimeWarning,
        )

    dt = T / nt
    payoff = _payoff(np.asarray(s_grid), K, params.is_call)
    values = payoff.copy()
    previous = values
    rannacher_steps = min(rannacher_steps, nt)
    schedule = [(0.5 * dt, 1.0)] * (2 * rannacher_steps) + [(dt, 0.5)] * (nt - rannacher_steps)
    operators = {}
    tau = 0.0
    logger.debug("FD grid: ns=%d, nt=%d, s_max=%.4g, %d implicit half steps",
                 ns, nt, s_max, 2 * rannacher_steps)

    for step, theta in schedule:
        if (step, theta) not in operators:
            operators[(step, theta)] = _operator(params, ns, step, theta)
        solve, explicit, alpha_1, gamma_last = operators[(step, theta)]
        low_old, high_old = _edge_values(params, s_max, tau)
        tau += step
        low_new, high_new = _edge_values(params, s_max, tau)

        rhs = explicit @ values[1:-1]
        rhs[0] += alpha_1 * (theta * low_new + (1 - theta) * low_old)
        rhs[-1] += gamma_last * (theta * high_new + (1 - theta) * high_old)

        new_values = np.empty_like(values)
        new_values[0], new_values[-1] = low_new, high_new
        new_values[1:-1] = solve(rhs)
        np.maximum(new_values, payoff, out=new_values)
        previous, values = values, new_values
        last_step = step

    return FDSolution(s_grid=s_grid, values=values, previous=previous, last_step=last_step)
