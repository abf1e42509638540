"""Exercise-boundary approximation, refinement and crossing detection."""

from negrate_american.boundary.spectral import SCHEME_SETTINGS, select_scheme, time_grid
from negrate_american.boundary.crossing import detect_crossing, split_at_crossing
from negrate_american.boundary.premium import american_price_from_boundaries
from negrate_american.boundary.qdplus import compute_initial_boundaries
from negrate_american.boundary.fixed_point import (
    BoundarySolver,
    StabilizedSolver,
    StandardSolver,
    refine_boundaries,
    resolve_equation,
    solver_for,
)

__all__ = [
    "SCHEME_SETTINGS",
    "BoundarySolver",
    "StabilizedSolver",
    "StandardSolver",
    "american_price_from_boundaries",
    "compute_initial_boundaries",
    "detect_crossing",
    "refine_boundaries",
    "resolve_equation",
    "select_scheme",
    "solver_for",
    "split_at_crossing",
    "time_grid",
]
