from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional

from solarb.models.market import TokenPair, Venue


@dataclass(frozen=True)
class ArbitrageOpportunity:
    id: str
    pair: TokenPair
    buy_venue: Venue
    buy_price: Decimal
    sell_venue: Venue
    sell_price: Decimal
    gross_profit_pct: Decimal
    net_profit_pct: Decimal
    detected_at: datetime
    estimated_profit_usd: Optional[Decimal] = None
    recommended_size: Optional[Decimal] = None
    expires_at: Optional[datetime] = None
    strategy: str = "cross_venue"

    @property
    def net_profit_bps(self) -> Decimal:
        return self.net_profit_pct * 100

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return (now or datetime.now(timezone.utc)) >= self.expires_at


@dataclass(frozen=True)
class TradeResult:
    opportunity_id: str
    success: bool
    actual_profit: Decimal
    signature: Optional[str] = None
    error: Optional[str] = None
    executed_at: Optional[datetime] = None


@dataclass(frozen=True)
class TradeOutcome:
    timestamp: datetime
    pair: str
    profit_loss: Decimal  # positive = profit, negative = loss
    was_successful: bool
