"""Tests for the unified pricing engine."""

import logging

import pytest

from negrate_american import UnifiedPricingEngine, ValidationError
from negrate_american.bs_closed_form import bs_price
from negrate_american.datatypes import (
    EngineConfig,
    FallbackReason,
    FixedPointEquation,
    MarketParameters,
    NearExpiryRecommendation,
    OptionRight,
    PricingMethod,
    RateRegime,
    SchemeSettings,
    SpectralScheme,
)
from negrate_american.engine import deterministic_value

HEALY = dict(strike=100.0, maturity=10.0, rate=-0.005, dividend_yield=-0.01, volatility=0.08)
HEALY_PUT = MarketParameters(spot=100.0, **HEALY)
ONE_SWEEP = EngineConfig(scheme_settings=SchemeSettings(8, 1, 1e-14, 8), compute_theta=False)


@pytest.fixture(scope="module")
def engine():
    return UnifiedPricingEngine()


class TestReferenceValues:
    """Published double-boundary put values."""

    @pytest.mark.parametrize("spot, reference, tolerance", [(100.0, 8.598, 0.02), (120.0, 2.952, 0.01)])
    def test_hybrid_high_precision(self, engine, spot, reference, tolerance):
        params = MarketParameters(spot=spot, **HEALY)
        result = engine.price(params, PricingMethod.HYBRID, SpectralScheme.HIGH_PRECISION)
        assert result.price == pytest.approx(reference, abs=tolerance)
        assert result.method_used is PricingMethod.QDPLUS
        assert result.converged is True
        assert result.rate_regime is RateRegime.DOUBLE_BOUNDARY
        assert result.crossing_time is not None

    @pytest.mark.parametrize("spot, reference, tolerance", [(100.0, 8.598, 0.02), (120.0, 2.952, 0.01)])
    def test_qdplus_high_precision(self, engine, spot, reference, tolerance):
        params = MarketParameters(spot=spot, **HEALY)
        result = engine.price(params, PricingMethod.QDPLUS, SpectralScheme.HIGH_PRECISION)
        assert result.method_used is PricingMethod.QDPLUS
        assert result.converged is True
        assert result.price == pytest.approx(reference, abs=tolerance)

    def test_finite_difference(self, engine):
        result = engine.price(HEALY_PUT, PricingMethod.FINITE_DIFFERENCE)
        assert result.price == pytest.approx(8.598, abs=0.02)
        assert result.method_used is PricingMethod.FINITE_DIFFERENCE
        assert result.crossing_time is None


class TestDegenerateInputs:
    """Expired, zero-volatility and no-exercise contracts."""

    @pytest.mark.parametrize("method", list(PricingMethod))
    def test_expired_is_intrinsic(self, engine, method):
        params = MarketParameters(92.0, 100.0, 0.0, -0.005, -0.01, 0.08)
        result = engine.price(params, method)
        assert result.price == 8.0
        assert result.near_expiry is NearExpiryRecommendation.USE_INTRINSIC

    def test_expired_hybrid_tagged_as_finite_difference(self, engine):
        params = MarketParameters(92.0, 100.0, 0.0, -0.005, -0.01, 0.08)
        result = engine.price(params, PricingMethod.HYBRID)
        assert result.method_used is PricingMethod.FINITE_DIFFERENCE
        assert result.fallback_reason is FallbackReason.NEAR_EXPIRY

    def test_zero_volatility_crossing_is_maturity(self, engine):
        params = MarketParameters(100.0, 100.0, 3.0, -0.005, -0.01, 0.0)
        result = engine.price(params, PricingMethod.QDPLUS)
        assert result.crossing_time == 3.0
        assert result.price == pytest.approx(deterministic_value(params))
        assert result.converged is True

    def test_deterministic_value(self):
        """Zero-volatility put with q < r < 0: best discounted payoff over time."""
        params = MarketParameters(100.0, 100.0, 3.0, -0.005, -0.01, 0.0)
        # K e^{-r t} - S e^{-q t} decreases in t here, so exercising now is best
        assert deterministic_value(params) == pytest.approx(0.0, abs=1e-12)
        in_money = MarketParameters(90.0, 100.0, 3.0, -0.005, -0.01, 0.0)
        assert deterministic_value(in_money) >= 10.0

    @pytest.mark.parametrize("method", [PricingMethod.QDPLUS, PricingMethod.HYBRID])
    def test_no_early_exercise_matches_european(self, engine, method):
        """r = q = 0: the American put is the European put."""
        params = MarketParameters(95.0, 100.0, 1.0, 0.0, 0.0, 0.25)
        result = engine.price(params, method)
        expected = bs_price(95.0, 100.0, 0.0, 0.0, 0.25, 1.0, call=False)
        assert result.price == pytest.approx(expected, rel=1e-10)
        assert result.method_used is PricingMethod.QDPLUS


class TestHybridFallback:
    """Hybrid returns the finite-difference price when QD+ cannot be trusted."""

    def test_non_convergence(self, caplog):
        engine = UnifiedPricingEngine(ONE_SWEEP)
        with caplog.at_level(logging.INFO, logger="negrate_american"):
            result = engine.price(HEALY_PUT, PricingMethod.HYBRID)
        assert result.method_used is PricingMethod.FINITE_DIFFERENCE
        assert result.requested_method is PricingMethod.HYBRID
        assert result.fallback_reason is FallbackReason.NON_CONVERGENCE
        assert result.converged is False
        assert result.price == pytest.approx(8.598, abs=0.02)
        assert "falling back" in caplog.text

    def test_qdplus_reports_non_convergence(self):
        engine = UnifiedPricingEngine(ONE_SWEEP)
        result = engine.price(HEALY_PUT, PricingMethod.QDPLUS)
        assert result.method_used is PricingMethod.QDPLUS
        assert result.converged is False
        assert result.iterations == 1
        assert result.fallback_reason is None

    def test_near_money_short_dated_stays_on_qdplus(self, engine):
        params = MarketParameters(100.0, 100.0, 0.5, -0.005, -0.01, 0.08)
        result = engine.price(params, PricingMethod.HYBRID)
        assert result.equation is FixedPointEquation.FP_A
        assert result.converged is True
        assert result.method_used is PricingMethod.QDPLUS
        assert result.fallback_reason is None
        reference = engine.price(params, PricingMethod.FINITE_DIFFERENCE).price
        assert result.price == pytest.approx(reference, abs=0.01)

    def test_interior_crossing_stays_on_qdplus(self, engine):
        """Boundaries that cross before maturity still converge."""
        params = MarketParameters(90.0, 100.0, 5.0, -0.01, -0.03, 0.25)
        result = engine.price(params, PricingMethod.HYBRID)
        assert result.converged is True
        assert result.method_used is PricingMethod.QDPLUS
        assert 0.0 < result.crossing_time < 5.0
        reference = engine.price(params, PricingMethod.FINITE_DIFFERENCE).price
        assert result.price == pytest.approx(reference, abs=0.1)

    def test_near_expiry_blends(self, engine):
        params = MarketParameters(98.0, 100.0, 0.5 / 252, -0.005, -0.01, 0.08)
        result = engine.price(params, PricingMethod.HYBRID)
        assert result.method_used is PricingMethod.FINITE_DIFFERENCE
        assert result.fallback_reason is FallbackReason.NEAR_EXPIRY
        assert result.near_expiry is NearExpiryRecommendation.USE_BLENDED
        assert result.price >= params.intrinsic_value


class TestEngineBehaviour:
    """Determinism, validation and diagnostics."""

    def test_deterministic(self, engine):
        first = engine.price(HEALY_PUT, PricingMethod.QDPLUS, SpectralScheme.FAST)
        second = engine.price(HEALY_PUT, PricingMethod.QDPLUS, SpectralScheme.FAST)
        assert first == second

    def test_greeks_are_reported(self, engine):
        result = engine.price(HEALY_PUT, PricingMethod.QDPLUS, SpectralScheme.FAST)
        assert -1.0 <= result.delta <= 0.0
        assert result.gamma >= 0.0
        assert result.vega > 0.0
        assert result.theta is not None
        assert result.equation is FixedPointEquation.FP_B

    def test_theta_can_be_disabled(self):
        engine = UnifiedPricingEngine(EngineConfig(compute_theta=False))
        result = engine.price(HEALY_PUT, PricingMethod.QDPLUS, SpectralScheme.FAST)
        assert result.theta is None

    def test_call_put_symmetry(self, engine):
        """An at-the-money call equals the put with rates swapped."""
        call = MarketParameters(100.0, 100.0, 2.0, -0.01, -0.005, 0.08, OptionRight.CALL)
        put = MarketParameters(100.0, 100.0, 2.0, -0.005, -0.01, 0.08, OptionRight.PUT)
        call_price = engine.price(call, PricingMethod.QDPLUS, SpectralScheme.FAST).price
        put_price = engine.price(put, PricingMethod.QDPLUS, SpectralScheme.FAST).price
        assert call_price == pytest.approx(put_price, abs=1e-4)

    def test_regime_is_advisory(self, engine):
        params = MarketParameters(100.0, 100.0, 1.0, 0.05, 0.0, 0.2)
        result = engine.price(params, PricingMethod.QDPLUS, SpectralScheme.FAST)
        assert result.rate_regime is RateRegime.STANDARD
        assert result.price == pytest.approx(6.090, abs=0.05)

    def test_invalid_parameters(self):
        with pytest.raises(ValidationError):
            MarketParameters(-1.0, 100.0, 1.0, 0.0, 0.0, 0.2)
        with pytest.raises(ValidationError):
            MarketParameters(100.0, 100.0, float("nan"), 0.0, 0.0, 0.2)

    def test_unknown_method(self, engine):
        with pytest.raises(ValueError):
            engine.price(HEALY_PUT, "monte_carlo")

    def test_compute_boundaries(self, engine):
        refinement = engine.compute_boundaries(HEALY_PUT, SpectralScheme.FAST)
        assert len(refinement.boundaries) == 16
        initial = engine.compute_initial_boundaries(HEALY_PUT, SpectralScheme.FAST)
        assert len(initial) == 16
