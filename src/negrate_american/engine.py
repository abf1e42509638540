"""Unified pricing engine.

Runs one of three methods behind a single call:

* ``FINITE_DIFFERENCE`` solves the LCP on an (S, tau) grid.
* ``QDPLUS`` runs QD+ approximation, fixed-point refinement and crossing
  detection, then prices from the boundaries.
* ``HYBRID`` runs QD+ first and returns the finite-difference price when
  the refinement did not converge or the contract is near expiry.

Every call is a pure function of its inputs and the engine configuration.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, replace
from typing import Optional

import numpy as np

from negrate_american.boundary.crossing import detect_crossing
from negrate_american.boundary.fixed_point import refine_boundaries, resolve_equation
from negrate_american.boundary.premium import (
    american_delta_from_boundaries,
    american_gamma_from_boundaries,
    american_price_from_boundaries,
)
from negrate_american.boundary.qdplus import compute_initial_boundaries
from negrate_american.boundary.spectral import select_scheme
from negrate_american.config import default_config
from negrate_american.datatypes import (
    DoubleBoundaryResult,
    EngineConfig,
    FallbackReason,
    FixedPointEquation,
    MarketParameters,
    NearExpiryRecommendation,
    PricingMethod,
    RefinementResult,
    SchemeSettings,
    SpectralScheme,
    UnifiedPricingResult,
)
from negrate_american.fd_pde.cn_lcp import price_american_fd
from negrate_american.greeks.finite_diff import theta_fd, vega_fd
from negrate_american.near_expiry import NearExpiryPolicy, intrinsic_delta
from negrate_american.regime import regime_of

logger = logging.getLogger(__name__)


def deterministic_value(params: MarketParameters) -> float:
    """American value with zero volatility.

    The spot drifts deterministically, so the value is the best discounted
    payoff over exercise times t in [0, tau]: max of
    eta (K e^{-r t} - S e^{-q t}) at t = 0, t = tau and the stationary
    point of that expression.
    """
    S, K, r, q, T = params.spot, params.strike, params.rate, params.dividend_yield, params.maturity
    eta = -1.0 if params.is_call else 1.0
    candidates = [0.0, T]
    if r != q and q * S * r * K > 0:
        t_star = np.log(q * S / (r * K)) / (r - q)
        if 0.0 < t_star < T:
            candidates.append(float(t_star))
    values = [eta * (K * np.exp(-r * t) - S * np.exp(-q * t)) for t in candidates]
    return float(max(max(values), 0.0))


@dataclass(frozen=True)
class _Quote:
    price: float
    delta: float
    gamma: float
    vega: float
    theta: Optional[float]
    crossing_time: Optional[float] = None
    equation: Optional[FixedPointEquation] = None
    converged: Optional[bool] = None
    iterations: Optional[int] = None


class PricingBackend(ABC):
    """A pricing method the unified engine can dispatch to."""

    method: PricingMethod

    def __init__(self, config: EngineConfig):
        self.config = config

    @abstractmethod
    def price(self, params: MarketParameters) -> float:
        """Price only, used for bump-and-reprice Greeks."""

    @abstractmethod
    def quote(self, params: MarketParameters) -> _Quote:
        """Price and Greeks."""

    def _reprice(self, params: MarketParameters) -> float:
        if params.maturity <= 0:
            return params.intrinsic_value
        if params.volatility <= 0:
            return deterministic_value(params)
        return self.price(params)


class FiniteDifferenceBackend(PricingBackend):

    method = PricingMethod.FINITE_DIFFERENCE

    def _solve(self, params: MarketParameters):
        cfg = self.config
        return price_american_fd(params, cfg.fd_space_steps, cfg.fd_time_steps,
                                 cfg.fd_std_devs, cfg.fd_rannacher_steps)

    def price(self, params: MarketParameters) -> float:
        return self._solve(params).price(params.spot)

    def quote(self, params: MarketParameters) -> _Quote:
        solution = self._solve(params)
        return _Quote(
            price=max(solution.price(params.spot), params.intrinsic_value),
            delta=solution.delta(params.spot),
            gamma=solution.gamma(params.spot),
            vega=vega_fd(self._reprice, params, self.config.vol_bump),
            theta=solution.theta(params.spot) if self.config.compute_theta else None,
        )


class QdPlusBackend(PricingBackend):

    method = PricingMethod.QDPLUS

    def __init__(self, config: EngineConfig, settings: SchemeSettings, equation: FixedPointEquation):
        super().__init__(config)
        self.settings = settings
        self.equation = equation

    def solve(self, params: MarketParameters) -> RefinementResult:
        """Approximate, refine, then detect the crossing, in that order."""
        initial = compute_initial_boundaries(params, self.settings.node_count,
                                             self.settings.sqrt_spacing)
        refinement = refine_boundaries(initial, params, self.equation, settings=self.settings)
        return replace(refinement, boundaries=detect_crossing(refinement.boundaries))

    def price(self, params: MarketParameters) -> float:
        boundaries = self.solve(params).boundaries
        return american_price_from_boundaries(params, boundaries, self.settings.quadrature_order)

    def quote(self, params: MarketParameters, solution: Optional[RefinementResult] = None) -> _Quote:
        if solution is None:
            solution = self.solve(params)
        boundaries = solution.boundaries
        order = self.settings.quadrature_order
        price = american_price_from_boundaries(params, boundaries, order)
        # Bumped solves keep the equation resolved for the base contract
        bumped = QdPlusBackend(self.config, self.settings, solution.equation)
        theta = None
        if self.config.compute_theta:
            theta = theta_fd(bumped._reprice, params, self.config.time_bump, price_base=price)
        return _Quote(
            price=price,
            delta=american_delta_from_boundaries(params, boundaries, order),
            gamma=american_gamma_from_boundaries(params, boundaries, order),
            vega=vega_fd(bumped._reprice, params, self.config.vol_bump),
            theta=theta,
            crossing_time=boundaries.crossing_time,
            equation=solution.equation,
            converged=solution.converged,
            iterations=solution.iterations,
        )


class UnifiedPricingEngine:
    """Single entry point for American option prices under any rate regime.

    Args:
        config: Immutable configuration bound to this engine.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        self.config = config if config is not None else default_config()
        self.policy = NearExpiryPolicy(self.config.near_expiry_threshold, self.config.expiry_epsilon)

    def _settings(self, scheme: Optional[SpectralScheme], tolerance: Optional[float]) -> SchemeSettings:
        if tolerance is None:
            tolerance = self.config.tolerance
        if scheme is not None:
            return select_scheme(scheme, tolerance)
        return select_scheme(self.config.scheme, tolerance, self.config.scheme_settings)

    def _qdplus(self, scheme, equation, tolerance) -> QdPlusBackend:
        equation = self.config.equation if equation is None else FixedPointEquation(equation)
        return QdPlusBackend(self.config, self._settings(scheme, tolerance), equation)

    def compute_initial_boundaries(
        self,
        params: MarketParameters,
        scheme: Optional[SpectralScheme] = None,
    ) -> DoubleBoundaryResult:
        """QD+ boundaries before refinement, for diagnostics."""
        settings = self._settings(scheme, None)
        return compute_initial_boundaries(params, settings.node_count, settings.sqrt_spacing)

    def compute_boundaries(
        self,
        params: MarketParameters,
        scheme: Optional[SpectralScheme] = None,
        equation: Optional[FixedPointEquation] = None,
        tolerance: Optional[float] = None,
    ) -> RefinementResult:
        """Refined boundaries with convergence diagnostics."""
        return self._qdplus(scheme, equation, tolerance).solve(params)

    def price(
        self,
        params: MarketParameters,
        method: PricingMethod = PricingMethod.HYBRID,
        scheme: Optional[SpectralScheme] = None,
        equation: Optional[FixedPointEquation] = None,
        tolerance: Optional[float] = None,
    ) -> UnifiedPricingResult:
        """Price an American option.

        Args:
            params: Contract and market inputs.
            method: Pricing method.
            scheme: Spectral scheme overriding the configured one.
            equation: Fixed-point equation overriding the configured one.
            tolerance: Refinement tolerance overriding the scheme's.

        Returns:
            UnifiedPricingResult with price, Greeks and diagnostics.
        """
        method = PricingMethod(method)
        regime = regime_of(params)
        recommendation = self.policy.recommend(params.maturity)
        hybrid = method is PricingMethod.HYBRID
        logger.debug("Pricing %s with %s, regime %s, near expiry %s",
                     params, method.value, regime.value, recommendation.value)

        if recommendation is NearExpiryRecommendation.USE_INTRINSIC:
            result = UnifiedPricingResult(
                price=params.intrinsic_value,
                delta=intrinsic_delta(params),
                gamma=0.0,
                vega=0.0,
                theta=0.0 if self.config.compute_theta else None,
                method_used=PricingMethod.FINITE_DIFFERENCE if hybrid else method,
                requested_method=method,
                rate_regime=regime,
                fallback_reason=FallbackReason.NEAR_EXPIRY if hybrid else None,
            )
            return self.policy.apply(result, params)

        qdplus = self._qdplus(scheme, equation, tolerance)
        finite_difference = FiniteDifferenceBackend(self.config)
        fallback = None

        if params.volatility <= 0:
            quote = self._deterministic_quote(params, finite_difference if method is
                                              PricingMethod.FINITE_DIFFERENCE else qdplus)
            method_used = PricingMethod.QDPLUS if hybrid else method
        elif method is PricingMethod.FINITE_DIFFERENCE:
            quote = finite_difference.quote(params)
            method_used = method
        elif method is PricingMethod.QDPLUS:
            quote = qdplus.quote(params)
            method_used = method
        else:
            solution = qdplus.solve(params)
            if not solution.converged:
                fallback = FallbackReason.NON_CONVERGENCE
            elif recommendation is not NearExpiryRecommendation.USE_MODEL:
                fallback = FallbackReason.NEAR_EXPIRY
            if fallback is None:
                quote = qdplus.quote(params, solution)
                method_used = PricingMethod.QDPLUS
            else:
                logger.info("Hybrid falling back to finite difference: %s", fallback.value)
                quote = replace(
                    finite_difference.quote(params),
                    crossing_time=solution.boundaries.crossing_time,
                    equation=solution.equation,
                    converged=solution.converged,
                    iterations=solution.iterations,
                )
                method_used = PricingMethod.FINITE_DIFFERENCE

        result = UnifiedPricingResult(
            price=quote.price,
            delta=quote.delta,
            gamma=quote.gamma,
            vega=quote.vega,
            theta=quote.theta,
            method_used=method_used,
            requested_method=method,
            rate_regime=regime,
            crossing_time=quote.crossing_time,
            equation=quote.equation,
            converged=quote.converged,
            iterations=quote.iterations,
            fallback_reason=fallback,
        )
        return self.policy.apply(result, params)

    def _deterministic_quote(self, params: MarketParameters, backend: PricingBackend) -> _Quote:
        h = 1e-4 * params.spot
        up = deterministic_value(replace(params, spot=params.spot + h))
        down = deterministic_value(replace(params, spot=params.spot - h))
        price = deterministic_value(params)
        theta = None
        if self.config.compute_theta:
            theta = theta_fd(deterministic_value, params, self.config.time_bump, price_base=price)
        crossing_time = None
        equation = None
        if isinstance(backend, QdPlusBackend):
            crossing_time = float(params.maturity)
            equation = resolve_equation(backend.equation, params)
        return _Quote(
            price=price,
            delta=(up - down) / (2 * h),
            gamma=(up - 2 * price + down) / (h * h),
            vega=vega_fd(backend._reprice, params, self.config.vol_bump),
            theta=theta,
            crossing_time=crossing_time,
            equation=equation,
            converged=True if crossing_time is not None else None,
            iterations=0 if crossing_time is not None else None,
        )
