"""Term-structure primitives.

Yield curves and volatility surfaces are expressed in year fractions
measured from the valuation date. The engine only needs flat curves, but
any subclass honouring the abstract contracts can be passed to
:func:`market_parameters_from_curves`.
"""

import math
from abc import ABC, abstractmethod
from typing import Optional

from negrate_american.datatypes import MarketParameters, OptionRight
from negrate_american.exceptions import ValidationError


class YieldTermStructure(ABC):
    """Continuously compounded discount curve."""

    @abstractmethod
    def discount_factor(self, t: float) -> float:
        """Return the discount factor from 0 to t (years)."""

    def zero_rate(self, t: float) -> float:
        """Implied continuously-compounded zero rate from DF(t).

        At t <= 0 the instantaneous forward rate at 0 is returned.
        """
        if t <= 0.0:
            return self.forward_rate(0.0)
        df = self.discount_factor(t)
        if df <= 0.0:
            raise ValidationError("Discount factor must be positive")
        return -math.log(df) / t

    def forward_rate(self, t: float, dt: float = 1e-4) -> float:
        """Instantaneous forward rate at t from a central log-DF difference."""
        t_lo = max(t - dt, 0.0)
        t_hi = t + dt
        return -(math.log(self.discount_factor(t_hi)) - math.log(self.discount_factor(t_lo))) / (t_hi - t_lo)

    def __repr__(self):
        return f"{self.__class__.__name__}()"


class FlatForward(YieldTermStructure):
    """Flat continuously compounded curve; the rate may be negative."""

    def __init__(self, rate: float):
        if not math.isfinite(rate):
            raise ValidationError(f"Rate must be finite. Got: {rate}")
        self._rate = float(rate)

    @property
    def rate(self) -> float:
        return self._rate

    def discount_factor(self, t: float) -> float:
        return math.exp(-self._rate * max(t, 0.0))

    def zero_rate(self, t: float) -> float:
        return self._rate

    def forward_rate(self, t: float, dt: float = 1e-4) -> float:
        return self._rate

    def __repr__(self):
        return f"FlatForward(rate={self._rate:.6f})"


class BlackVolTermStructure(ABC):
    """Black volatility surface in (time, strike)."""

    @abstractmethod
    def black_vol(self, t: float, strike: Optional[float] = None) -> float:
        """Return the Black volatility for maturity t and strike."""

    def black_variance(self, t: float, strike: Optional[float] = None) -> float:
        """Total variance sigma^2 * t."""
        vol = self.black_vol(t, strike)
        return vol * vol * max(t, 0.0)


class FlatVol(BlackVolTermStructure):
    """Constant volatility for all maturities and strikes."""

    def __init__(self, vol: float):
        if not math.isfinite(vol) or vol < 0.0:
            raise ValidationError(f"Volatility must be non-negative. Got: {vol}")
        self._vol = float(vol)

    def black_vol(self, t: float, strike: Optional[float] = None) -> float:
        return self._vol

    def __repr__(self):
        return f"FlatVol(vol={self._vol:.4f})"


def market_parameters_from_curves(
    spot: float,
    strike: float,
    maturity: float,
    risk_free: YieldTermStructure,
    dividend: YieldTermStructure,
    volatility: BlackVolTermStructure,
    right: OptionRight = OptionRight.PUT,
) -> MarketParameters:
    """Collapse curves to the flat inputs the engine prices with.

    The rate and yield are the zero rates to maturity and the volatility
    is the Black volatility at (maturity, strike), which reproduces the
    curves' discount factors and total variance at maturity exactly.

    Args:
        spot: Current underlying price.
        strike: Strike price.
        maturity: Time to maturity in years.
        risk_free: Risk-free discount curve.
        dividend: Dividend-yield curve.
        volatility: Black volatility surface.
        right: Call or put.

    Returns:
        MarketParameters with flat r, q and sigma.
    """
    return MarketParameters(
        spot=spot,
        strike=strike,
        maturity=maturity,
        rate=risk_free.zero_rate(maturity),
        dividend_yield=dividend.zero_rate(maturity),
        volatility=volatility.black_vol(maturity, strike),
        right=right,
    )
