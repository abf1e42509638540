"""Near-expiry policy.

The boundary integral equations become singular as the time to maturity
goes to zero. Below a threshold the engine either blends the model price
with intrinsic value or returns intrinsic value outright.
"""

from dataclasses import dataclass, replace

from negrate_american.datatypes import (
    MarketParameters,
    NearExpiryRecommendation,
    UnifiedPricingResult,
)


@dataclass(frozen=True)
class NearExpiryPolicy:
    """Thresholds of the near-expiry policy.

    Attributes:
        threshold: Maturity (years) below which the model is not used alone.
        epsilon: Maturity treated as already expired.
    """
    threshold: float = 1.0 / 252.0
    epsilon: float = 1e-10

    def recommend(self, maturity: float) -> NearExpiryRecommendation:
        if maturity <= self.epsilon:
            return NearExpiryRecommendation.USE_INTRINSIC
        if maturity < self.threshold:
            return NearExpiryRecommendation.USE_BLENDED
        return NearExpiryRecommendation.USE_MODEL

    def blend_weight(self, maturity: float) -> float:
        """Weight of the model price, tau / threshold capped at 1."""
        return min(max(maturity / self.threshold, 0.0), 1.0)

    def apply(self, result: UnifiedPricingResult, params: MarketParameters) -> UnifiedPricingResult:
        """Attach the recommendation and blend the result when required."""
        recommendation = self.recommend(params.maturity)
        if recommendation is NearExpiryRecommendation.USE_MODEL:
            return replace(result, near_expiry=recommendation)
        if recommendation is NearExpiryRecommendation.USE_INTRINSIC:
            return replace(intrinsic_result(result, params), near_expiry=recommendation)

        w = self.blend_weight(params.maturity)
        intrinsic = params.intrinsic_value
        theta = None if result.theta is None else w * result.theta
        return replace(
            result,
            price=max(w * result.price + (1.0 - w) * intrinsic, intrinsic),
            delta=w * result.delta + (1.0 - w) * intrinsic_delta(params),
            gamma=w * result.gamma,
            vega=w * result.vega,
            theta=theta,
            near_expiry=recommendation,
        )


def intrinsic_delta(params: MarketParameters) -> float:
    if params.is_call:
        return 1.0 if params.spot > params.strike else 0.0
    return -1.0 if params.spot < params.strike else 0.0


def intrinsic_result(result: UnifiedPricingResult, params: MarketParameters) -> UnifiedPricingResult:
    """Replace price and Greeks of ``result`` with those of immediate exercise."""
    return replace(
        result,
        price=params.intrinsic_value,
        delta=intrinsic_delta(params),
        gamma=0.0,
        vega=0.0,
        theta=None if result.theta is None else 0.0,
    )
