"""Grid generation for the finite-difference pricer.

This module provides utilities for creating spatial and temporal grids
for finite-difference option pricing.
"""

from typing import Tuple

import numpy as np
import pandas as pd


def make_grids(
    s_max: float,
    ns: int,
    T: float,
    nt: int
) -> Tuple[pd.Index, pd.Index]:
    """Create spatial and time-to-maturity grids.

    Args:
        s_max: Maximum stock price.
        ns: Number of spatial grid points.
        T: Time to maturity.
        nt: Number of time grid points.

    Returns:
        Tuple of (spatial_grid, time_grid) as pandas Index objects.
    """
    s_grid = pd.Index(np.linspace(0, s_max, ns), name="S")
    t_grid = pd.Index(np.linspace(0, T, nt), name="tau")
    return s_grid, t_grid


def choose_s_max(spot: float, strike: float, sigma: float, T: float, std_devs: float) -> float:
    """Upper edge of the spatial grid.

    ``std_devs`` log-standard deviations above the larger of spot and
    strike, and never below twice that level.
    """
    anchor = max(spot, strike)
    return float(max(2.0 * anchor, anchor * np.exp(std_devs * sigma * np.sqrt(T))))


def interpolate_from_grid(
    grid: pd.Index,
    values: np.ndarray,
    target: float
) -> float:
    """Linear interpolation from grid values.

    Args:
        grid: The grid points.
        values: Values at grid points.
        target: Target point for interpolation.

    Returns:
        Interpolated value.
    """
    if target <= grid[0]:
        return float(values[0])
    if target >= grid[-1]:
        return float(values[-1])

    idx = int(np.searchsorted(grid, target))
    x0, x1 = grid[idx - 1], grid[idx]
    y0, y1 = values[idx - 1], values[idx]
    if x1 == x0:
        return float(y0)

    alpha = (target - x0) / (x1 - x0)
    return float(y0 + alpha * (y1 - y0))
