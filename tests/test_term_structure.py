"""Tests for yield curves and volatility surfaces."""

import math

import pytest

from negrate_american.datatypes import OptionRight
from negrate_american.exceptions import ValidationError
from negrate_american.term_structure import (
    FlatForward,
    FlatVol,
    YieldTermStructure,
    market_parameters_from_curves,
)


class TestFlatForward:
    """Flat continuously compounded curve."""

    def test_negative_rate_discount_factor_above_one(self):
        """A negative rate gives discount factors above one."""
        curve = FlatForward(-0.005)
        assert curve.discount_factor(10.0) == pytest.approx(math.exp(0.05))
        assert curve.discount_factor(10.0) > 1.0

    def test_zero_and_forward_rates_are_flat(self):
        """Zero and forward rates equal the flat rate at every tenor."""
        curve = FlatForward(0.03)
        for t in [0.0, 0.5, 5.0]:
            assert curve.zero_rate(t) == 0.03
            assert curve.forward_rate(t) == 0.03
        assert curve.discount_factor(0.0) == 1.0

    def test_rejects_non_finite_rate(self):
        """Non-finite rates are invalid."""
        with pytest.raises(ValidationError):
            FlatForward(float("nan"))


class _ExponentialCurve(YieldTermStructure):
    """Curve with linearly increasing forward rate r(t) = a + b t."""

    def __init__(self, a, b):
        self.a, self.b = a, b

    def discount_factor(self, t):
        return math.exp(-(self.a * t + 0.5 * self.b * t * t))


class TestCurveContract:
    """Default implementations derived from discount factors."""

    def test_zero_rate_from_discount_factor(self):
        """Zero rate is the average forward rate."""
        curve = _ExponentialCurve(-0.01, 0.002)
        assert curve.zero_rate(4.0) == pytest.approx(-0.01 + 0.5 * 0.002 * 4.0)

    def test_forward_rate_from_discount_factor(self):
        """Forward rate recovers r(t)."""
        curve = _ExponentialCurve(-0.01, 0.002)
        assert curve.forward_rate(3.0) == pytest.approx(-0.01 + 0.002 * 3.0, abs=1e-8)
        assert curve.zero_rate(0.0) == pytest.approx(-0.01, abs=1e-6)


class TestFlatVol:
    """Flat Black volatility."""

    def test_variance_scales_with_time(self):
        """Total variance is sigma^2 t."""
        surface = FlatVol(0.08)
        assert surface.black_vol(2.0, 100.0) == 0.08
        assert surface.black_variance(10.0, 100.0) == pytest.approx(0.064)

    def test_rejects_negative_vol(self):
        """Negative volatility is invalid."""
        with pytest.raises(ValidationError):
            FlatVol(-0.1)


class TestMarketParametersFromCurves:
    """Collapse curves to flat engine inputs."""

    def test_flat_inputs(self):
        """Flat curves map to their rates and volatility."""
        params = market_parameters_from_curves(
            100.0, 100.0, 10.0, FlatForward(-0.005), FlatForward(-0.01), FlatVol(0.08),
            OptionRight.PUT,
        )
        assert params.rate == -0.005
        assert params.dividend_yield == -0.01
        assert params.volatility == 0.08
        assert params.right is OptionRight.PUT

    def test_non_flat_curve_uses_zero_rate_to_maturity(self):
        """A curved term structure contributes its zero rate to maturity."""
        params = market_parameters_from_curves(
            100.0, 90.0, 4.0, _ExponentialCurve(-0.01, 0.002), FlatForward(0.0), FlatVol(0.2),
        )
        assert params.rate == pytest.approx(-0.006)
