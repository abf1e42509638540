"""Exception types raised by the pricing engine.

Only invalid inputs are raised. Non-convergence and near-expiry
conditions are reported as fields on the pricing results.
"""


class PricingError(Exception):
    """Base class for all pricing engine errors."""


class ValidationError(PricingError, ValueError):
    """Raised when market parameters or configuration are invalid."""
