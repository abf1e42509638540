"""Rate-regime classification and exercise-boundary limits.

A put has a bounded exercise region [lower, upper] with two finite
boundaries when q < r < 0. By put-call symmetry a call with (r, q) is a
put with (q, r) on inverted moneyness, so a call is double-boundary when
r < q < 0. All boundary solvers work on the put-equivalent problem and
map call boundaries through K^2 / B.
"""

from dataclasses import dataclass
from typing import Tuple

import numpy as np

from negrate_american.datatypes import MarketParameters, OptionRight, RateRegime


def classify_regime(rate: float, dividend_yield: float, right: OptionRight) -> RateRegime:
    """Classify (r, q, right) into the standard or double-boundary regime."""
    if right is OptionRight.CALL:
        rate, dividend_yield = dividend_yield, rate
    if dividend_yield < rate < 0.0:
        return RateRegime.DOUBLE_BOUNDARY
    return RateRegime.STANDARD


def regime_of(params: MarketParameters) -> RateRegime:
    return classify_regime(params.rate, params.dividend_yield, params.right)


def early_exercise_possible(rate: float, dividend_yield: float, right: OptionRight) -> bool:
    """Whether an exercise region exists at all.

    A put is never exercised early when r <= 0 unless the double-boundary
    condition holds; symmetrically for a call with q <= 0.
    """
    if classify_regime(rate, dividend_yield, right) is RateRegime.DOUBLE_BOUNDARY:
        return True
    if right is OptionRight.CALL:
        return dividend_yield > 0.0
    return rate > 0.0


@dataclass(frozen=True)
class PutProblem:
    """Put-equivalent boundary problem.

    For a put this is the contract itself; for a call the rate and the
    dividend yield are swapped. Boundaries of the put-equivalent problem
    are finite and lie in ``(0, strike]``.

    Attributes:
        strike: Strike price.
        rate: Risk-free rate of the put-equivalent problem.
        dividend_yield: Dividend yield of the put-equivalent problem.
        volatility: Volatility.
        call: Whether the original contract is a call.
    """
    strike: float
    rate: float
    dividend_yield: float
    volatility: float
    call: bool

    @classmethod
    def from_params(cls, params: MarketParameters) -> "PutProblem":
        if params.is_call:
            return cls(params.strike, params.dividend_yield, params.rate, params.volatility, True)
        return cls(params.strike, params.rate, params.dividend_yield, params.volatility, False)

    @property
    def regime(self) -> RateRegime:
        return classify_regime(self.rate, self.dividend_yield, OptionRight.PUT)

    @property
    def double_boundary(self) -> bool:
        return self.regime is RateRegime.DOUBLE_BOUNDARY

    @property
    def exercisable(self) -> bool:
        return early_exercise_possible(self.rate, self.dividend_yield, OptionRight.PUT)

    def expiry_limits(self) -> Tuple[float, float]:
        """Limits of (upper, lower) as time to maturity goes to 0."""
        K, r, q = self.strike, self.rate, self.dividend_yield
        if self.double_boundary:
            return K, K * r / q
        if q > 0.0:
            return K * min(1.0, r / q), 0.0
        return K, 0.0

    def admissible_range(self) -> Tuple[float, float]:
        """Interval every put-equivalent boundary value must lie in."""
        upper0, lower0 = self.expiry_limits()
        if self.double_boundary:
            return lower0, upper0
        return 1e-8 * self.strike, upper0

    def to_put_space(self, upper: np.ndarray, lower: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map option-space boundaries to the put-equivalent problem."""
        if not self.call:
            return np.array(upper, dtype=float), np.array(lower, dtype=float)
        return self._invert(lower), self._invert(upper)

    def from_put_space(self, upper: np.ndarray, lower: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Map put-equivalent boundaries back to the original contract."""
        return self.to_put_space(upper, lower)

    def _invert(self, values: np.ndarray) -> np.ndarray:
        values = np.asarray(values, dtype=float)
        with np.errstate(divide="ignore"):
            return self.strike * self.strike / values
