"""Core data types for the negative-rate American option engine.

This module defines the enumerations and immutable value types shared by
the boundary solvers, the finite-difference pricer and the unified engine.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import numpy as np

from negrate_american.exceptions import ValidationError


class OptionRight(str, Enum):
    CALL = "call"
    PUT = "put"


class RateRegime(str, Enum):
    """Exercise-boundary topology implied by (r, q, right)."""
    STANDARD = "standard"
    DOUBLE_BOUNDARY = "double_boundary"


class FixedPointEquation(str, Enum):
    """Integral-equation form used by the fixed-point refinement.

    FP_A is the standard fixed point, FP_B the stabilized ordered sweep of
    the same smooth-pasting equation. AUTO is resolved once per call from
    moneyness and tenor.
    """
    FP_A = "fp_a"
    FP_B = "fp_b"
    AUTO = "auto"


class SpectralScheme(str, Enum):
    FAST = "fast"
    ACCURATE = "accurate"
    HIGH_PRECISION = "high_precision"


class PricingMethod(str, Enum):
    FINITE_DIFFERENCE = "finite_difference"
    QDPLUS = "qdplus"
    HYBRID = "hybrid"


class NearExpiryRecommendation(str, Enum):
    USE_MODEL = "use_model"
    USE_BLENDED = "use_blended"
    USE_INTRINSIC = "use_intrinsic"


class FallbackReason(str, Enum):
    """Why a Hybrid request returned the finite-difference price."""
    NON_CONVERGENCE = "non_convergence"
    NEAR_EXPIRY = "near_expiry"


def _require_finite(name: str, value: float) -> None:
    if not math.isfinite(value):
        raise ValidationError(f"{name} must be finite, got {value!r}")


@dataclass(frozen=True)
class MarketParameters:
    """Inputs of a single American option pricing request.

    Attributes:
        spot: Current underlying price (> 0).
        strike: Strike price (> 0).
        maturity: Time to maturity in years (>= 0, 0 prices at intrinsic).
        rate: Continuously compounded risk-free rate, may be negative.
        dividend_yield: Continuous dividend yield, may be negative.
        volatility: Black-Scholes volatility (>= 0).
        right: Call or put.
    """
    spot: float
    strike: float
    maturity: float
    rate: float
    dividend_yield: float
    volatility: float
    right: OptionRight = OptionRight.PUT

    def __post_init__(self):
        for name in ("spot", "strike", "maturity", "rate", "dividend_yield", "volatility"):
            _require_finite(name, getattr(self, name))
        if self.spot <= 0:
            raise ValidationError(f"spot must be positive, got {self.spot}")
        if self.strike <= 0:
            raise ValidationError(f"strike must be positive, got {self.strike}")
        if self.maturity < 0:
            raise ValidationError(f"maturity must be non-negative, got {self.maturity}")
        if self.volatility < 0:
            raise ValidationError(f"volatility must be non-negative, got {self.volatility}")
        if not isinstance(self.right, OptionRight):
            try:
                object.__setattr__(self, "right", OptionRight(self.right))
            except ValueError as exc:
                raise ValidationError(f"right must be 'call' or 'put', got {self.right!r}") from exc

    @property
    def is_call(self) -> bool:
        return self.right is OptionRight.CALL

    @property
    def intrinsic_value(self) -> float:
        if self.is_call:
            return max(self.spot - self.strike, 0.0)
        return max(self.strike - self.spot, 0.0)


@dataclass(frozen=True, eq=False)
class DoubleBoundaryResult:
    """Upper and lower exercise boundaries on a time-to-maturity grid.

    ``times`` runs from 0 (expiry) to the option maturity. The exercise
    region at time-to-maturity t is the interval [lower[i], upper[i]];
    a standard put has ``lower == 0`` and a standard call ``upper == inf``.

    Attributes:
        times: Time-to-maturity grid, ascending.
        upper: Upper boundary level at each grid time.
        lower: Lower boundary level at each grid time.
        crossing_time: First grid time at which upper <= lower, 0 if none.
    """
    times: np.ndarray
    upper: np.ndarray
    lower: np.ndarray
    crossing_time: float = 0.0

    def __post_init__(self):
        for name in ("times", "upper", "lower"):
            values = np.array(getattr(self, name), dtype=float)
            values.setflags(write=False)
            object.__setattr__(self, name, values)
        if not (self.times.shape == self.upper.shape == self.lower.shape) or self.times.ndim != 1:
            raise ValidationError("boundary arrays must be one-dimensional with equal length")
        if self.crossing_time < 0:
            raise ValidationError(f"crossing_time must be non-negative, got {self.crossing_time}")

    def __len__(self) -> int:
        return len(self.times)

    @property
    def maturity(self) -> float:
        return float(self.times[-1])

    @property
    def has_crossing(self) -> bool:
        return self.crossing_time > 0.0

    @property
    def exercise_horizon(self) -> float:
        """Time-to-maturity up to which an exercise region exists."""
        if self.has_crossing:
            return min(self.crossing_time, self.maturity)
        return self.maturity


@dataclass(frozen=True, eq=False)
class RefinementResult:
    """Outcome of the fixed-point boundary refinement.

    Attributes:
        boundaries: Refined boundary pair.
        converged: Whether the tolerance was met before the iteration cap.
        iterations: Number of fixed-point sweeps performed.
        max_change: Largest boundary change in the final sweep.
        equation: The resolved equation form (never AUTO).
    """
    boundaries: DoubleBoundaryResult
    converged: bool
    iterations: int
    max_change: float
    equation: FixedPointEquation


@dataclass(frozen=True)
class SchemeSettings:
    """Numerical resolution of the boundary solver.

    Attributes:
        node_count: Number of time-grid nodes.
        max_iterations: Fixed-point iteration cap.
        tolerance: Absolute boundary change that counts as converged.
        quadrature_order: Gauss-Legendre points per integral.
        sqrt_spacing: Space the grid uniformly in sqrt(t) instead of t.
    """
    node_count: int
    max_iterations: int
    tolerance: float
    quadrature_order: int
    sqrt_spacing: bool = False

    def __post_init__(self):
        if self.node_count < 1:
            raise ValidationError(f"node_count must be at least 1, got {self.node_count}")
        if self.max_iterations < 1:
            raise ValidationError(f"max_iterations must be at least 1, got {self.max_iterations}")
        if not self.tolerance > 0:
            raise ValidationError(f"tolerance must be positive, got {self.tolerance}")
        if self.quadrature_order < 2:
            raise ValidationError(f"quadrature_order must be at least 2, got {self.quadrature_order}")


@dataclass(frozen=True)
class EngineConfig:
    """Configuration bound to a UnifiedPricingEngine at construction.

    Attributes:
        scheme: Named spectral scheme for the boundary solver.
        equation: Fixed-point equation form (AUTO resolves per call).
        tolerance: Optional override of the scheme tolerance.
        scheme_settings: Optional explicit settings replacing the scheme.
        fd_space_steps: Spatial nodes of the finite-difference grid.
        fd_time_steps: Time steps of the finite-difference grid.
        fd_std_devs: Grid half-width in standard deviations (log space).
        fd_rannacher_steps: Leading steps replaced by implicit half steps.
        near_expiry_threshold: Maturity below which results are blended.
        expiry_epsilon: Maturity treated as expired.
        vol_bump: Absolute volatility bump for vega.
        time_bump: Maturity bump in years for theta.
        compute_theta: Whether theta is computed.
    """
    scheme: SpectralScheme = SpectralScheme.ACCURATE
    equation: FixedPointEquation = FixedPointEquation.AUTO
    tolerance: Optional[float] = None
    scheme_settings: Optional[SchemeSettings] = None
    fd_space_steps: int = 801
    fd_time_steps: int = 1000
    fd_std_devs: float = 5.0
    fd_rannacher_steps: int = 2
    near_expiry_threshold: float = 1.0 / 252.0
    expiry_epsilon: float = 1e-10
    vol_bump: float = 1e-3
    time_bump: float = 1.0 / 365.0
    compute_theta: bool = True


@dataclass(frozen=True)
class UnifiedPricingResult:
    """Result of a UnifiedPricingEngine.price call.

    Attributes:
        price: Option value.
        delta: dV/dS.
        gamma: d2V/dS2.
        vega: Price change per 1% volatility move.
        theta: Price change per calendar day, None when disabled.
        method_used: Method whose price is reported.
        requested_method: Method the caller asked for.
        rate_regime: Advisory regime classification of (r, q, right).
        crossing_time: Boundary crossing time when a boundary was solved.
        near_expiry: Near-expiry policy applied to the result.
        equation: Resolved fixed-point equation when QD+ ran.
        converged: QD+ refinement convergence flag when QD+ ran.
        iterations: QD+ refinement sweeps when QD+ ran.
        fallback_reason: Why Hybrid returned the finite-difference price.
    """
    price: float
    delta: float
    gamma: float
    vega: float
    theta: Optional[float]
    method_used: PricingMethod
    requested_method: PricingMethod
    rate_regime: RateRegime
    crossing_time: Optional[float] = None
    near_expiry: Optional[NearExpiryRecommendation] = None
    equation: Optional[FixedPointEquation] = None
    converged: Optional[bool] = None
    iterations: Optional[int] = None
    fallback_reason: Optional[FallbackReason] = None
