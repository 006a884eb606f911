from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Tuple

from solarb.models.market import PriceQuote, Venue
from solarb.models.trade import ArbitrageOpportunity


_OPPORTUNITY_NAMESPACE = uuid.UUID("6f1c2a4e-3b7d-4e0a-9c55-2d8f1e6a9b10")


class LoggerProtocol:
    def log_debug(self, message: str) -> None: ...
    def log_info(self, message: str) -> None: ...
    def log_error(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...


@dataclass
class OpportunityDetector:
    """Cross-venue spread detection over the latest quote per (pair, venue)."""

    min_profit_pct: Decimal = Decimal(0)
    opportunity_ttl_seconds: float = 5.0

    logger: Optional[LoggerProtocol] = None

    _quotes: Dict[Tuple[str, Venue], PriceQuote] = field(default_factory=dict, init=False, repr=False)

    def update_prices(self, quotes: Iterable[PriceQuote]) -> None:
        for q in quotes:
            self._quotes[(q.pair.symbol(), q.venue)] = q

    def clear_stale(self, max_age_seconds: float, now: Optional[datetime] = None) -> int:
        now = now or datetime.now(timezone.utc)
        stale = [key for key, q in self._quotes.items() if q.is_stale(max_age_seconds, now)]
        for key in stale:
            del self._quotes[key]

        if stale and self.logger:
            self.logger.log_debug(f"Dropped {len(stale)} stale quotes (max age {max_age_seconds}s)")
        return len(stale)

    def quote_count(self) -> int:
        return len(self._quotes)

    def snapshot(self) -> List[PriceQuote]:
        return list(self._quotes.values())

    def find_all_opportunities(self) -> List[ArbitrageOpportunity]:
        by_pair: Dict[str, List[PriceQuote]] = {}
        for (symbol, _venue), q in self._quotes.items():
            by_pair.setdefault(symbol, []).append(q)

        opportunities: List[ArbitrageOpportunity] = []
        for quotes in by_pair.values():
            for buy in quotes:
                for sell in quotes:
                    if buy.venue is sell.venue:
                        continue
                    opp = self.evaluate(buy, sell)
                    if opp is not None:
                        opportunities.append(opp)

        opportunities.sort(
            key=lambda o: (-o.net_profit_pct, o.pair.symbol(), o.buy_venue.value, o.sell_venue.value)
        )
        return opportunities

    def evaluate(self, buy: PriceQuote, sell: PriceQuote) -> Optional[ArbitrageOpportunity]:
        """Buy at ``buy``'s ask, sell at ``sell``'s bid."""

        if buy.ask <= 0 or sell.bid <= 0:
            return None

        gross_pct = (sell.bid - buy.ask) / buy.ask * 100
        net_pct = gross_pct - buy.venue.fee_percentage - sell.venue.fee_percentage
        if net_pct <= 0 or net_pct < self.min_profit_pct:
            return None

        recommended: Optional[Decimal] = None
        if buy.liquidity is not None and sell.liquidity is not None:
            recommended = min(buy.liquidity, sell.liquidity)
        elif buy.liquidity is not None or sell.liquidity is not None:
            recommended = buy.liquidity if buy.liquidity is not None else sell.liquidity

        estimated = recommended * net_pct / 100 if recommended is not None else None

        detected_at = max(buy.timestamp, sell.timestamp)
        return ArbitrageOpportunity(
            id=self._opportunity_id(buy, sell),
            pair=buy.pair,
            buy_venue=buy.venue,
            buy_price=buy.ask,
            sell_venue=sell.venue,
            sell_price=sell.bid,
            gross_profit_pct=gross_pct,
            net_profit_pct=net_pct,
            detected_at=detected_at,
            estimated_profit_usd=estimated,
            recommended_size=recommended,
            expires_at=detected_at + timedelta(seconds=self.opportunity_ttl_seconds),
        )

    @staticmethod
    def _opportunity_id(buy: PriceQuote, sell: PriceQuote) -> str:
        # Same snapshot -> same id, so repeated scans compare equal.
        key = "|".join(
            (
                buy.pair.symbol(),
                buy.venue.value,
                sell.venue.value,
                buy.timestamp.isoformat(),
                sell.timestamp.isoformat(),
            )
        )
        return str(uuid.uuid5(_OPPORTUNITY_NAMESPACE, key))
