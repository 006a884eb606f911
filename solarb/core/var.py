from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Mapping

from solarb.core.volatility import VolatilityTracker


DEFAULT_VOLATILITY = Decimal("0.01")


def z_score_for(confidence_level: float) -> Decimal:
    if confidence_level >= 0.99:
        return Decimal("2.326")
    if confidence_level >= 0.95:
        return Decimal("1.645")
    return Decimal("1.282")


@dataclass
class VarCalculator:
    """Parametric Value-at-Risk.

    Portfolio VaR is the plain sum of per-position VaR, i.e. perfect
    correlation. That is a worst-case approximation that holds for a basket
    of SOL-ecosystem tokens moving together, not a covariance model.
    """

    confidence_level: float = 0.95

    z_score: Decimal = field(init=False)

    def __post_init__(self) -> None:
        if not (0 < self.confidence_level < 1):
            raise ValueError("confidence_level must be in (0, 1)")
        self.z_score = z_score_for(self.confidence_level)

    def calculate_var(self, position_value: Decimal, volatility: Decimal) -> Decimal:
        return Decimal(position_value) * Decimal(volatility) * self.z_score

    def calculate_portfolio_var(
        self,
        positions: Mapping[str, Decimal],
        vol_tracker: VolatilityTracker,
    ) -> Decimal:
        total = Decimal(0)
        for pair, size in positions.items():
            vol = vol_tracker.get_volatility(pair)
            # Unknown pairs fall back to 1% volatility.
            total += self.calculate_var(size, vol if vol is not None else DEFAULT_VOLATILITY)
        return total
