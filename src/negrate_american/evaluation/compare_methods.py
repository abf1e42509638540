"""Method comparison and reference validation utilities.

This module provides functions for comparing the pricing methods of the
unified engine, checking solved boundaries against the physical
constraints of the double-boundary put, and validating prices against
published reference values.
"""

import time
from typing import Iterable, Optional

import numpy as np
import pandas as pd

from negrate_american.boundary.crossing import split_at_crossing
from negrate_american.datatypes import (
    DoubleBoundaryResult,
    MarketParameters,
    OptionRight,
    PricingMethod,
    SpectralScheme,
)
from negrate_american.engine import UnifiedPricingEngine
from negrate_american.regime import PutProblem

# Healy (2021) double-boundary put: K=100, tau=10, sigma=0.08, r=-0.5%, q=-1%
REFERENCE_CASES = pd.DataFrame(
    {
        'spot': [100.0, 120.0],
        'reference': [8.598, 2.952],
        'tolerance': [0.02, 0.01],
    }
)
REFERENCE_MARKET = dict(strike=100.0, maturity=10.0, rate=-0.005, dividend_yield=-0.01,
                        volatility=0.08, right=OptionRight.PUT)


def boundary_frame(result: DoubleBoundaryResult) -> pd.DataFrame:
    """Boundary pair as a DataFrame indexed by time to maturity."""
    frame = pd.DataFrame(
        {'upper': result.upper, 'lower': result.lower},
        index=pd.Index(result.times, name='tau'),
    )
    frame['crossed'] = result.has_crossing & (frame.index >= result.crossing_time)
    return frame


def compare_methods(
    params: MarketParameters,
    engine: Optional[UnifiedPricingEngine] = None,
    methods: Iterable[PricingMethod] = tuple(PricingMethod),
    scheme: Optional[SpectralScheme] = None,
) -> pd.DataFrame:
    """Price one contract with several methods.

    Args:
        params: Contract to price.
        engine: Engine to use (default configuration when None).
        methods: Methods to compare.
        scheme: Spectral scheme override.

    Returns:
        DataFrame with one row per method, including the difference to
        the finite-difference price when it is among the methods.
    """
    engine = engine if engine is not None else UnifiedPricingEngine()
    rows = []
    for method in methods:
        start_time = time.perf_counter()
        result = engine.price(params, method, scheme=scheme)
        elapsed = time.perf_counter() - start_time
        rows.append({
            'method': PricingMethod(method).value,
            'method_used': result.method_used.value,
            'price': result.price,
            'delta': result.delta,
            'gamma': result.gamma,
            'vega': result.vega,
            'theta': result.theta,
            'converged': result.converged,
            'crossing_time': result.crossing_time,
            'time_seconds': elapsed,
        })

    df = pd.DataFrame(rows)
    baseline = df.loc[df['method'] == PricingMethod.FINITE_DIFFERENCE.value, 'price']
    if not baseline.empty:
        df['diff_from_fd'] = df['price'] - baseline.iloc[0]
    return df


def validate_reference_cases(
    engine: Optional[UnifiedPricingEngine] = None,
    method: PricingMethod = PricingMethod.HYBRID,
    scheme: SpectralScheme = SpectralScheme.HIGH_PRECISION,
) -> pd.DataFrame:
    """Price the published reference cases and compare.

    Returns:
        REFERENCE_CASES with price, method_used, converged, abs_error and
        passed columns added.
    """
    engine = engine if engine is not None else UnifiedPricingEngine()
    results = []
    for spot in REFERENCE_CASES['spot']:
        params = MarketParameters(spot=float(spot), **REFERENCE_MARKET)
        results.append(engine.price(params, method, scheme=scheme))

    df = REFERENCE_CASES.copy()
    df['price'] = [result.price for result in results]
    df['method_used'] = [result.method_used.value for result in results]
    df['converged'] = [result.converged for result in results]
    df['abs_error'] = (df['price'] - df['reference']).abs()
    df['passed'] = df['abs_error'] <= df['tolerance']
    return df


def check_boundary_constraints(
    params: MarketParameters,
    boundaries: DoubleBoundaryResult,
    price: Optional[float] = None,
) -> pd.Series:
    """Physical constraints of a double-boundary put.

    Checked over the nodes before the crossing (excluding expiry, where
    the boundaries sit on their limits): both boundaries positive, upper
    above lower, both at or below the strike, and the price (when given)
    not below intrinsic value. Calls are checked on the put-equivalent
    boundaries.

    Returns:
        Boolean Series indexed by constraint name plus ``all``.
    """
    pre, _ = split_at_crossing(boundaries)
    problem = PutProblem.from_params(params)
    upper, lower = problem.to_put_space(pre.upper, pre.lower)
    if boundaries.has_crossing:
        upper, lower = upper[:-1], lower[:-1]
    upper, lower = upper[1:], lower[1:]

    checks = {
        'positive': bool(np.all(upper > 0) and np.all(lower >= 0)),
        'ordered': bool(np.all(upper > lower)),
        'below_strike': bool(np.all(upper <= params.strike) and np.all(lower <= params.strike)),
        'price_floor': True if price is None else bool(price >= params.intrinsic_value),
    }
    checks['all'] = all(checks.values())
    return pd.Series(checks)
