"""Negative-rate American option pricing engine.

Prices American options when rates or dividend yields are negative and
the exercise region is bounded by two boundaries that may cross.
"""

__version__ = "0.1.0"

from negrate_american.datatypes import (
    DoubleBoundaryResult,
    EngineConfig,
    FallbackReason,
    FixedPointEquation,
    MarketParameters,
    NearExpiryRecommendation,
    OptionRight,
    PricingMethod,
    RateRegime,
    RefinementResult,
    SchemeSettings,
    SpectralScheme,
    UnifiedPricingResult,
)
from negrate_american.engine import UnifiedPricingEngine
from negrate_american.exceptions import PricingError, ValidationError

__all__ = [
    "DoubleBoundaryResult",
    "EngineConfig",
    "FallbackReason",
    "FixedPointEquation",
    "MarketParameters",
    "NearExpiryRecommendation",
    "OptionRight",
    "PricingError",
    "PricingMethod",
    "RateRegime",
    "RefinementResult",
    "SchemeSettings",
    "SpectralScheme",
    "UnifiedPricingEngine",
    "UnifiedPricingResult",
    "ValidationError",
]
