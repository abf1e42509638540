"""Fixed-point refinement of the exercise boundaries.

Both boundaries of the put-equivalent problem satisfy B = K N(B) / D(B),
the smooth-pasting condition written over the current boundary pair::

    N = e^{-r t} n(d2(B/K, t)) / (sigma sqrt t)
        + r int e^{-r s} (n(d2(B/upper)) - n(d2(B/lower))) / (sigma sqrt s) du
    D = 1 - e^{-q t} N(-d1(B/K, t)) + e^{-q t} n(d1(B/K, t)) / (sigma sqrt t)
        - q int e^{-q s} [dN1 - (n(d1(B/upper)) - n(d1(B/lower))) / (sigma sqrt s)] du

with dN1 = N(-d1(B/upper(u), s)) - N(-d1(B/lower(u), s)) and s = t - u.
Integrals stop at the current crossing time.

Value matching alone fixes the boundary only tangentially (its residual
and slope both vanish at the root), so it cannot drive a tolerance-based
iteration. The two forms differ in how the update is swept:

* FP_A (standard): one Jacobi sweep, every node from the previous iterate.
* FP_B (stabilized): an ordered Gauss-Seidel sweep from expiry outwards;
  each node sees the freshly updated nodes before it and the lower
  boundary is updated against the just-computed upper boundary.
"""

import logging
from abc import ABC, abstractmethod
from typing import List, Optional, Tuple, Type

import numpy as np
from scipy import special

from negrate_american.boundary.crossing import (
    crossing_time_at,
    detect_crossing,
    first_crossing_index,
    merge_after,
)
from negrate_american.boundary.premium import d_terms, interpolate_boundary
from negrate_american.boundary.spectral import map_to_interval, select_scheme
from negrate_american.datatypes import (
    DoubleBoundaryResult,
    FixedPointEquation,
    MarketParameters,
    RefinementResult,
    SchemeSettings,
    SpectralScheme,
)
from negrate_american.mathkernel import norm_pdf_batch
from negrate_american.regime import PutProblem

logger = logging.getLogger(__name__)

# AUTO picks FP_A for near-the-money, short-dated contracts
AUTO_LOG_MONEYNESS = 0.10
AUTO_MAX_TENOR = 1.0
MIN_RELAXATION = 0.125
# Sweeps over which the crossing node may wander by at most one node
CROSSING_WINDOW = 3


def resolve_equation(equation: FixedPointEquation, params: MarketParameters) -> FixedPointEquation:
    """Resolve AUTO to a concrete equation form.

    Args:
        equation: Requested form.
        params: Contract inputs.

    Returns:
        FP_A or FP_B.
    """
    equation = FixedPointEquation(equation)
    if equation is not FixedPointEquation.AUTO:
        return equation
    moneyness = abs(np.log(params.spot / params.strike))
    if moneyness <= AUTO_LOG_MONEYNESS and params.maturity <= AUTO_MAX_TENOR:
        return FixedPointEquation.FP_A
    return FixedPointEquation.FP_B


class _Quadrature:
    __slots__ = ("tau", "z", "s", "weights", "upper", "lower")

    def __init__(self, tau, z, s, weights, upper, lower):
        self.tau = tau
        self.z = z
        self.s = s
        self.weights = weights
        self.upper = upper
        self.lower = lower


class BoundarySolver(ABC):
    """One sweep of the boundary fixed-point equation.

    Works on put-equivalent boundaries; node 0 (expiry) is never updated.
    """

    equation: FixedPointEquation

    def __init__(self, problem: PutProblem, times: np.ndarray, quadrature_order: int):
        self.problem = problem
        self.times = np.asarray(times, dtype=float)
        self.order = quadrature_order

    @abstractmethod
    def update(self, upper: np.ndarray, lower: np.ndarray,
               horizon: float) -> Tuple[np.ndarray, np.ndarray]:
        """Apply B <- K N(B) / D(B) to every node after expiry.

        Args:
            upper: Current upper boundary.
            lower: Current lower boundary.
            horizon: Time to maturity up to which the region exists.

        Returns:
            Updated (upper, lower); unusable values keep the old iterate.
        """

    def quadrature(self, nodes: np.ndarray, upper: np.ndarray, lower: np.ndarray,
                   horizon: float) -> _Quadrature:
        """Gauss-Legendre nodes in z = sqrt(t - u) for the given boundary nodes."""
        taus = self.times[nodes]
        u_max = np.minimum(taus, horizon)
        z, w = map_to_interval(np.sqrt(taus - u_max), np.sqrt(taus), self.order)
        s = z * z
        u = taus[:, None] - s
        up_u = interpolate_boundary(self.times, upper, u)
        lo_u = interpolate_boundary(self.times, lower, u)
        up_u = np.maximum(up_u, lo_u)
        return _Quadrature(taus[:, None], z, s, 2.0 * z * w, up_u, lo_u)

    def apply(self, current: np.ndarray, quad: _Quadrature) -> np.ndarray:
        B = current[:, None]
        with np.errstate(divide="ignore", invalid="ignore", over="ignore"):
            numerator, denominator = self.terms(B, quad)
            candidate = self.problem.strike * numerator / denominator
        candidate = candidate[:, 0]
        usable = np.isfinite(candidate) & (candidate > 0.0)
        return np.where(usable, candidate, current)

    def terms(self, B: np.ndarray, quad: _Quadrature) -> Tuple[np.ndarray, np.ndarray]:
        """Return N(B) and D(B), each of shape (nodes, 1)."""
        K, r, q, sigma = (self.problem.strike, self.problem.rate,
                          self.problem.dividend_yield, self.problem.volatility)
        vol_tau = sigma * np.sqrt(quad.tau)
        vol_s = sigma * quad.z
        d1_k, d2_k = d_terms(B / K, quad.tau, r, q, sigma)
        d1_u, d2_u = d_terms(B / quad.upper, quad.s, r, q, sigma)
        d1_l, d2_l = d_terms(B / quad.lower, quad.s, r, q, sigma)
        dn1 = special.ndtr(-d1_u) - special.ndtr(-d1_l)
        dpdf1 = norm_pdf_batch(d1_u) - norm_pdf_batch(d1_l)
        dpdf2 = norm_pdf_batch(d2_u) - norm_pdf_batch(d2_l)
        int_n = r * np.sum(np.exp(-r * quad.s) * dpdf2 / vol_s * quad.weights,
                           axis=1, keepdims=True)
        int_d = q * np.sum(np.exp(-q * quad.s) * (dn1 - dpdf1 / vol_s) * quad.weights,
                           axis=1, keepdims=True)
        discount_q = np.exp(-q * quad.tau)
        numerator = np.exp(-r * quad.tau) * norm_pdf_batch(d2_k) / vol_tau + int_n
        denominator = (1.0 - discount_q * special.ndtr(-d1_k)
                       + discount_q * norm_pdf_batch(d1_k) / vol_tau - int_d)
        return numerator, denominator


class StandardSolver(BoundarySolver):
    """FP_A: Jacobi sweep over all nodes at once."""

    equation = FixedPointEquation.FP_A

    def update(self, upper, lower, horizon):
        quad = self.quadrature(np.arange(1, len(self.times)), upper, lower, horizon)
        new_upper = np.array(upper, dtype=float)
        new_lower = np.array(lower, dtype=float)
        new_upper[1:] = self.apply(upper[1:], quad)
        if self.problem.double_boundary:
            new_lower[1:] = self.apply(lower[1:], quad)
        return new_upper, new_lower


class StabilizedSolver(BoundarySolver):
    """FP_B: ordered sweep reusing values updated earlier in the same pass."""

    equation = FixedPointEquation.FP_B

    def update(self, upper, lower, horizon):
        range_lo, range_hi = self.problem.admissible_range()
        new_upper = np.array(upper, dtype=float)
        new_lower = np.array(lower, dtype=float)
        for i in range(1, len(self.times)):
            node = np.array([i])
            quad = self.quadrature(node, new_upper, new_lower, horizon)
            new_upper[i] = np.clip(self.apply(new_upper[node], quad)[0], range_lo, range_hi)
            if self.problem.double_boundary:
                quad = self.quadrature(node, new_upper, new_lower, horizon)
                new_lower[i] = np.clip(self.apply(new_lower[node], quad)[0], range_lo, range_hi)
        return new_upper, new_lower


_SOLVERS = {
    FixedPointEquation.FP_A: StandardSolver,
    FixedPointEquation.FP_B: StabilizedSolver,
}


def solver_for(equation: FixedPointEquation) -> Type[BoundarySolver]:
    """Solver class implementing a resolved equation form."""
    return _SOLVERS[FixedPointEquation(equation)]


def _crossing_settled(positions: List[int]) -> bool:
    recent = positions[-CROSSING_WINDOW:]
    return max(recent) - min(recent) <= 1


def refine_boundaries(
    initial: DoubleBoundaryResult,
    params: MarketParameters,
    equation: FixedPointEquation = FixedPointEquation.AUTO,
    scheme: SpectralScheme = SpectralScheme.ACCURATE,
    settings: Optional[SchemeSettings] = None,
    tolerance: Optional[float] = None,
) -> RefinementResult:
    """Refine an initial boundary estimate by fixed-point iteration.

    Iterates until the largest change of either boundary over the nodes
    strictly before the crossing falls below the tolerance while the
    crossing node stays within one node over the last sweeps, or until
    the iteration cap. Hitting the cap is
    reported through ``converged=False``; it is not an error.

    Args:
        initial: Starting boundaries, usually from QD+.
        params: Contract inputs the boundaries belong to.
        equation: FP_A, FP_B or AUTO (resolved once, before iterating).
        scheme: Named resolution used when ``settings`` is not given.
        settings: Explicit numerical settings.
        tolerance: Optional override of the convergence tolerance.

    Returns:
        RefinementResult with the refined boundaries and diagnostics.
    """
    resolved = resolve_equation(equation, params)
    settings = select_scheme(scheme, tolerance, settings)
    problem = PutProblem.from_params(params)

    upper, lower = problem.to_put_space(initial.upper, initial.lower)
    index = first_crossing_index(upper, lower)
    if (len(initial) < 2 or params.maturity <= 0 or params.volatility <= 0
            or not problem.exercisable or index == 0):
        return RefinementResult(detect_crossing(initial), True, 0, 0.0, resolved)
    if index is not None:
        # Restart crossed nodes from the last ordered pair so refinement can move the crossing
        upper[index:] = upper[index - 1]
        lower[index:] = lower[index - 1]
        index = None

    times = initial.times
    solver = solver_for(resolved)(problem, times, settings.quadrature_order)
    range_lo, range_hi = problem.admissible_range()
    logger.debug("Refining %d nodes with %s, tolerance %.3g, cap %d",
                 len(times), resolved.value, settings.tolerance, settings.max_iterations)

    positions = [len(times) if index is None else index]
    relaxation = 1.0
    previous_change = np.inf
    change = np.inf
    converged = False
    iteration = 0
    for iteration in range(1, settings.max_iterations + 1):
        horizon = times[-1] if index is None else crossing_time_at(times, index)
        target_upper, target_lower = solver.update(upper, lower, horizon)
        new_upper = np.clip(upper + relaxation * (target_upper - upper), range_lo, range_hi)
        new_lower = lower
        if problem.double_boundary:
            new_lower = np.clip(lower + relaxation * (target_lower - lower), range_lo, range_hi)

        new_index = first_crossing_index(new_upper, new_lower)
        stop = min(i for i in (index, new_index, len(times)) if i is not None)
        change = float(max(np.max(np.abs(new_upper[:stop] - upper[:stop])),
                           np.max(np.abs(new_lower[:stop] - lower[:stop]))))
        positions.append(len(times) if new_index is None else new_index)
        upper, lower, index = new_upper, new_lower, new_index
        logger.debug("Iteration %d: max change %.3e, crossing index %s, relaxation %.3f",
                     iteration, change, index, relaxation)

        if change < settings.tolerance and _crossing_settled(positions):
            converged = True
            break
        if change > previous_change:
            relaxation = max(0.5 * relaxation, MIN_RELAXATION)
        previous_change = change

    if not converged:
        logger.warning("Boundary refinement did not converge after %d iterations (max change %.3e)",
                       iteration, change)

    upper, lower = merge_after(upper, lower, index)
    upper, lower = problem.from_put_space(upper, lower)
    refined = detect_crossing(DoubleBoundaryResult(times, upper, lower, crossing_time_at(times, index)))
    return RefinementResult(refined, converged, iteration, change, resolved)
