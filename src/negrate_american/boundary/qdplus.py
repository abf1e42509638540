"""QD+ approximation of the exercise boundaries.

At every node of the time grid the boundary of the put-equivalent
problem solves the QD+ equation

    (1 - e^{-q t} N(-d1(B))) B + (lambda + c0(B)) (K - B - p(B)) = 0,

where p is the European put, lambda a root of
lambda^2 + (omega - 1) lambda - alpha / h = 0 with omega = 2(r - q)/sigma^2,
alpha = 2r/sigma^2, h = 1 - e^{-r t}, and c0 the QD+ correction. The
upper boundary uses the negative root; in the double-boundary regime the
lower boundary uses the positive root. The output is only a starting
point for :mod:`negrate_american.boundary.fixed_point`.
"""

import logging
from typing import Optional, Tuple

import numpy as np
from scipy import optimize, special

from negrate_american.boundary.crossing import crossing_time_at, first_crossing_index, merge_after
from negrate_american.boundary.premium import d_terms
from negrate_american.boundary.spectral import time_grid
from negrate_american.datatypes import DoubleBoundaryResult, MarketParameters
from negrate_american.exceptions import ValidationError
from negrate_american.mathkernel import norm_pdf_batch
from negrate_american.regime import PutProblem

logger = logging.getLogger(__name__)

SCAN_POINTS = 128


class QdPlusEquation:
    """QD+ boundary equation of a put at one time to maturity."""

    def __init__(self, problem: PutProblem, tau: float, negative_root: bool = True):
        self.problem = problem
        self.tau = tau
        K, r, q, sigma = problem.strike, problem.rate, problem.dividend_yield, problem.volatility
        sigma2 = sigma * sigma
        self.dr = np.exp(-r * tau)
        self.dq = np.exp(-q * tau)
        h = -np.expm1(-r * tau)
        omega = 2.0 * (r - q) / sigma2
        alpha = 2.0 * r / sigma2
        root = np.sqrt((omega - 1.0) ** 2 + 4.0 * alpha / h)
        self.lam = 0.5 * (-(omega - 1.0) - root) if negative_root else 0.5 * (-(omega - 1.0) + root)
        denom = 2.0 * self.lam + omega - 1.0
        lam_prime = -alpha / (h * h * denom)
        self.scale = 2.0 * self.dr / (sigma2 * denom)
        self.slope = self.lam - self.scale * (r / h + r * lam_prime / denom)

    def __call__(self, B):
        K, r, q, sigma = (self.problem.strike, self.problem.rate,
                          self.problem.dividend_yield, self.problem.volatility)
        tau = self.tau
        d1, d2 = d_terms(np.asarray(B, dtype=float) / K, tau, r, q, sigma)
        n_d1 = special.ndtr(-d1)
        n_d2 = special.ndtr(-d2)
        european = K * self.dr * n_d2 - B * self.dq * n_d1
        gap = K - B - european
        theta = (r * K * self.dr * n_d2 - q * B * self.dq * n_d1
                 - sigma * B * self.dq * norm_pdf_batch(d1) / (2.0 * np.sqrt(tau)))
        # (lambda + c0) * gap, with the 1/gap term of c0 cancelled analytically
        return (1.0 - self.dq * n_d1) * B + self.slope * gap + self.scale * theta / self.dr


def _roots(equation: QdPlusEquation, lo: float, hi: float, geometric: bool) -> list:
    grid = np.geomspace(lo, hi, SCAN_POINTS) if geometric else np.linspace(lo, hi, SCAN_POINTS)
    values = equation(grid)
    roots = []
    for i in range(len(grid) - 1):
        f_a, f_b = values[i], values[i + 1]
        if not (np.isfinite(f_a) and np.isfinite(f_b)):
            continue
        if f_a == 0.0:
            roots.append(float(grid[i]))
        elif f_a * f_b < 0.0:
            roots.append(optimize.brentq(lambda x: float(equation(x)), grid[i], grid[i + 1],
                                         xtol=1e-12 * equation.problem.strike))
    return roots


def _perpetual_put_boundary(problem: PutProblem) -> float:
    sigma2 = problem.volatility ** 2
    omega = 2.0 * (problem.rate - problem.dividend_yield) / sigma2
    alpha = 2.0 * problem.rate / sigma2
    lam = 0.5 * (-(omega - 1.0) - np.sqrt((omega - 1.0) ** 2 + 4.0 * alpha))
    return problem.strike * lam / (lam - 1.0)


def qdplus_node(problem: PutProblem, tau: float) -> Tuple[Optional[float], Optional[float]]:
    """Put-equivalent (upper, lower) boundary at time to maturity ``tau``.

    A missing double-boundary root is returned as None and means the
    boundaries have crossed at this node.
    """
    range_lo, range_hi = problem.admissible_range()
    if problem.double_boundary:
        upper_roots = _roots(QdPlusEquation(problem, tau, negative_root=True), range_lo, range_hi, False)
        lower_roots = _roots(QdPlusEquation(problem, tau, negative_root=False), range_lo, range_hi, False)
        upper = max(upper_roots) if upper_roots else None
        lower = min(lower_roots) if lower_roots else None
        return upper, lower

    roots = _roots(QdPlusEquation(problem, tau), 1e-3 * range_hi, range_hi, True)
    if roots:
        return max(roots), 0.0
    # No sign change: blend the perpetual and expiry boundaries
    perpetual = _perpetual_put_boundary(problem)
    weight = np.exp(-2.0 * problem.volatility * np.sqrt(tau))
    logger.debug("QD+ found no root at tau=%.6g, using fallback estimate", tau)
    return float(perpetual + (range_hi - perpetual) * weight), 0.0


def compute_initial_boundaries(
    params: MarketParameters,
    node_count: int,
    sqrt_spacing: bool = False,
) -> DoubleBoundaryResult:
    """QD+ estimate of both exercise boundaries on an N-point time grid.

    Args:
        params: Contract and market inputs.
        node_count: Number of grid nodes N (>= 1).
        sqrt_spacing: Space the grid uniformly in sqrt(t).

    Returns:
        DoubleBoundaryResult in the contract's own price space. Expired
        contracts give a single node at the spot; zero volatility and
        contracts without early exercise give a pair collapsed onto the
        strike with crossing time equal to the maturity.
    """
    if node_count < 1:
        raise ValidationError(f"node_count must be at least 1, got {node_count}")
    if params.maturity <= 0:
        return DoubleBoundaryResult(np.zeros(1), np.full(1, params.spot),
                                    np.full(1, params.spot), 0.0)

    times = time_grid(params.maturity, node_count, sqrt_spacing)
    problem = PutProblem.from_params(params)
    if params.volatility <= 0 or not problem.exercisable:
        level = np.full(len(times), params.strike)
        return DoubleBoundaryResult(times, level, level, float(params.maturity))

    upper = np.empty(len(times))
    lower = np.empty(len(times))
    crossed_at = None
    for i, tau in enumerate(times):
        if tau <= 0.0:
            upper[i], lower[i] = problem.expiry_limits()
            continue
        up, lo = qdplus_node(problem, float(tau))
        if up is None or lo is None:
            upper[i], lower[i] = (upper[i - 1], lower[i - 1]) if i > 0 else problem.expiry_limits()
            crossed_at = i
            break
        upper[i], lower[i] = up, lo
    if crossed_at is not None:
        upper[crossed_at:] = upper[crossed_at]
        lower[crossed_at:] = lower[crossed_at]

    index = first_crossing_index(upper, lower)
    if crossed_at is not None and (index is None or crossed_at < index):
        index = crossed_at
    upper, lower = merge_after(upper, lower, index)
    logger.debug("QD+ boundaries on %d nodes, crossing index %s", len(times), index)

    upper, lower = problem.from_put_space(upper, lower)
    return DoubleBoundaryResult(times, upper, lower, crossing_time_at(times, index))
