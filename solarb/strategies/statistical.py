from __future__ import annotations

import uuid
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Deque, Dict, List, Optional, Sequence

from solarb.models.market import PriceQuote, Venue
from solarb.models.trade import ArbitrageOpportunity


@dataclass
class StatisticalArbitrage:
    """Mean reversion on per-pair mid prices.

    When the latest mid sits more than ``z_threshold`` standard deviations
    away from the rolling mean, trade toward the mean against a reference
    venue.
    """

    window_size: int = 20
    z_threshold: Decimal = Decimal("2.0")
    reference_venue: Venue = Venue.JUPITER
    base_size: Decimal = Decimal("100")
    opportunity_ttl_seconds: float = 5.0

    name: str = field(default="statistical", init=False)
    _history: Dict[str, Deque[Decimal]] = field(default_factory=dict, init=False, repr=False)

    async def update_state(self, quote: PriceQuote) -> None:
        window = self._history.get(quote.pair.symbol())
        if window is None:
            window = deque(maxlen=self.window_size)
            self._history[quote.pair.symbol()] = window
        window.append(quote.mid_price)

    def z_score(self, pair: str, value: Decimal) -> Optional[Decimal]:
        window = self._history.get(pair)
        if window is None or len(window) < self.window_size:
            return None

        n = Decimal(len(window))
        mean = sum(window, Decimal(0)) / n
        variance = sum(((v - mean) ** 2 for v in window), Decimal(0)) / n
        if variance == 0:
            return Decimal(0)
        return (value - mean) / variance.sqrt()

    def mean(self, pair: str) -> Optional[Decimal]:
        window = self._history.get(pair)
        if not window:
            return None
        return sum(window, Decimal(0)) / len(window)

    async def analyze(self, quotes: Sequence[PriceQuote]) -> List[ArbitrageOpportunity]:
        out: List[ArbitrageOpportunity] = []

        for quote in quotes:
            symbol = quote.pair.symbol()
            z = self.z_score(symbol, quote.mid_price)
            if z is None or abs(z) <= self.z_threshold:
                continue

            mean = self.mean(symbol)
            if mean is None or mean <= 0:
                continue

            if z > 0:
                # Rich here: buy back at the mean elsewhere, sell here at the bid.
                buy_venue, sell_venue = self.reference_venue, quote.venue
                buy_price, sell_price = mean, quote.bid
            else:
                buy_venue, sell_venue = quote.venue, self.reference_venue
                buy_price, sell_price = quote.ask, mean

            if buy_venue is sell_venue or buy_price <= 0:
                continue

            gross_pct = (sell_price - buy_price) / buy_price * 100
            net_pct = gross_pct - buy_venue.fee_percentage - sell_venue.fee_percentage
            if net_pct <= 0:
                continue

            confidence = min(abs(z), Decimal(5))
            size = self.base_size * confidence
            now = datetime.now(timezone.utc)
            out.append(
                ArbitrageOpportunity(
                    id=str(uuid.uuid4()),
                    pair=quote.pair,
                    buy_venue=buy_venue,
                    buy_price=buy_price,
                    sell_venue=sell_venue,
                    sell_price=sell_price,
                    gross_profit_pct=gross_pct,
                    net_profit_pct=net_pct,
                    detected_at=now,
                    estimated_profit_usd=size * net_pct / 100,
                    recommended_size=size,
                    expires_at=now + timedelta(seconds=self.opportunity_ttl_seconds),
                    strategy=self.name,
                )
            )

        return out
