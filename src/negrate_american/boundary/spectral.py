"""Spectral scheme settings, time grids and quadrature rules."""

import logging
from functools import lru_cache
from typing import Optional, Tuple

import numpy as np
from numpy.polynomial.legendre import leggauss

from negrate_american.datatypes import SchemeSettings, SpectralScheme

logger = logging.getLogger(__name__)

# Cost and accuracy increase monotonically from FAST to HIGH_PRECISION.
SCHEME_SETTINGS = {
    SpectralScheme.FAST: SchemeSettings(
        node_count=16, max_iterations=30, tolerance=1e-5, quadrature_order=16
    ),
    SpectralScheme.ACCURATE: SchemeSettings(
        node_count=32, max_iterations=60, tolerance=1e-7, quadrature_order=32
    ),
    SpectralScheme.HIGH_PRECISION: SchemeSettings(
        node_count=64, max_iterations=120, tolerance=1e-8, quadrature_order=64, sqrt_spacing=True
    ),
}


def select_scheme(
    scheme: SpectralScheme = SpectralScheme.ACCURATE,
    tolerance: Optional[float] = None,
    settings: Optional[SchemeSettings] = None,
) -> SchemeSettings:
    """Resolve the numerical settings for a boundary solve.

    Args:
        scheme: Named scheme.
        tolerance: Optional override of the convergence tolerance.
        settings: Explicit settings that replace the named scheme.

    Returns:
        SchemeSettings to solve with.
    """
    resolved = settings if settings is not None else SCHEME_SETTINGS[SpectralScheme(scheme)]
    if tolerance is not None:
        resolved = SchemeSettings(
            node_count=resolved.node_count,
            max_iterations=resolved.max_iterations,
            tolerance=tolerance,
            quadrature_order=resolved.quadrature_order,
            sqrt_spacing=resolved.sqrt_spacing,
        )
    logger.debug("Scheme %s resolved to %s", scheme, resolved)
    return resolved


def time_grid(maturity: float, node_count: int, sqrt_spacing: bool = False) -> np.ndarray:
    """Time-to-maturity nodes from 0 to maturity inclusive.

    A single node is the point [maturity].
    """
    if node_count == 1:
        return np.array([maturity], dtype=float)
    fractions = np.linspace(0.0, 1.0, node_count)
    if sqrt_spacing:
        fractions = fractions * fractions
    times = maturity * fractions
    times[-1] = maturity
    return times


@lru_cache(maxsize=32)
def gauss_legendre(order: int) -> Tuple[np.ndarray, np.ndarray]:
    """Gauss-Legendre nodes and weights on [-1, 1]."""
    nodes, weights = leggauss(order)
    nodes.setflags(write=False)
    weights.setflags(write=False)
    return nodes, weights


def map_to_interval(
    lower: np.ndarray,
    upper: np.ndarray,
    order: int,
) -> Tuple[np.ndarray, np.ndarray]:
    """Map the Gauss-Legendre rule onto [lower, upper] row by row.

    Args:
        lower: Lower integration limits, shape (n,).
        upper: Upper integration limits, shape (n,).
        order: Number of quadrature points.

    Returns:
        (points, weights), each of shape (n, order).
    """
    nodes, weights = gauss_legendre(order)
    lower = np.asarray(lower, dtype=float)[:, None]
    upper = np.asarray(upper, dtype=float)[:, None]
    half = 0.5 * (upper - lower)
    points = lower + half * (nodes[None, :] + 1.0)
    return points, half * weights[None, :]
