from __future__ import annotations

from collections import deque
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Deque, Dict, Iterable, Optional

from solarb.models.market import PriceQuote


@dataclass
class VolatilityTracker:
    """Rolling per-pair volatility from recent mid prices.

    Volatility is the population standard deviation of simple returns over
    the window, as a fraction (0.01 == 1%). At least three prices are needed.
    """

    window_size: int = 20

    _prices: Dict[str, Deque[Decimal]] = field(default_factory=dict, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.window_size < 3:
            raise ValueError("window_size must be >= 3")

    def update_price(self, pair: str, mid_price: Decimal) -> None:
        if mid_price <= 0:
            return
        window = self._prices.get(pair)
        if window is None:
            window = deque(maxlen=self.window_size)
            self._prices[pair] = window
        window.append(Decimal(mid_price))

    def update_quotes(self, quotes: Iterable[PriceQuote]) -> None:
        # One sample per pair per batch, averaged across venues, so cross-venue
        # spread does not show up as volatility.
        grouped: Dict[str, list] = {}
        for q in quotes:
            grouped.setdefault(q.pair.symbol(), []).append(q.mid_price)
        for pair, mids in grouped.items():
            self.update_price(pair, sum(mids, Decimal(0)) / len(mids))

    def get_volatility(self, pair: str) -> Optional[Decimal]:
        window = self._prices.get(pair)
        if window is None or len(window) < 3:
            return None

        prices = list(window)
        returns = [(cur - prev) / prev for prev, cur in zip(prices, prices[1:])]
        mean = sum(returns, Decimal(0)) / len(returns)
        variance = sum(((r - mean) ** 2 for r in returns), Decimal(0)) / len(returns)
        return variance.sqrt()

    def sample_count(self, pair: str) -> int:
        window = self._prices.get(pair)
        return len(window) if window else 0

    def pairs(self) -> list[str]:
        return list(self._prices)
