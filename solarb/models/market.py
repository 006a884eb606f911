from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional


class Venue(Enum):
    RAYDIUM = "raydium"
    ORCA = "orca"
    JUPITER = "jupiter"
    LIFINITY = "lifinity"
    METEORA = "meteora"
    PHOENIX = "phoenix"

    @property
    def fee_percentage(self) -> Decimal:
        return _VENUE_FEES[self]

    @property
    def display_name(self) -> str:
        return self.value.capitalize()

    @classmethod
    def all(cls) -> tuple["Venue", ...]:
        return tuple(cls)


_VENUE_FEES = {
    Venue.RAYDIUM: Decimal("0.25"),
    Venue.ORCA: Decimal("0.30"),
    Venue.JUPITER: Decimal("0.20"),
    Venue.LIFINITY: Decimal("0.20"),
    Venue.METEORA: Decimal("0.25"),
    Venue.PHOENIX: Decimal("0.10"),
}


@dataclass(frozen=True)
class TokenPair:
    base: str
    quote: str

    @classmethod
    def parse(cls, symbol: str) -> "TokenPair":
        base, sep, quote = symbol.strip().partition("/")
        if not sep or not base or not quote:
            raise ValueError(f"invalid pair symbol: {symbol!r}")
        return cls(base=base.strip().upper(), quote=quote.strip().upper())

    def symbol(self) -> str:
        return f"{self.base}/{self.quote}"

    def __str__(self) -> str:
        return self.symbol()


@dataclass(frozen=True)
class PriceQuote:
    """Top-of-book snapshot for one pair on one venue."""

    venue: Venue
    pair: TokenPair
    bid: Decimal
    ask: Decimal
    mid_price: Decimal
    volume_24h: Optional[Decimal] = None
    liquidity: Optional[Decimal] = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @classmethod
    def from_bid_ask(
        cls,
        venue: Venue,
        pair: TokenPair,
        bid: Decimal,
        ask: Decimal,
        *,
        liquidity: Optional[Decimal] = None,
        volume_24h: Optional[Decimal] = None,
        timestamp: Optional[datetime] = None,
    ) -> "PriceQuote":
        bid = Decimal(bid)
        ask = Decimal(ask)
        return cls(
            venue=venue,
            pair=pair,
            bid=bid,
            ask=ask,
            mid_price=(bid + ask) / 2,
            volume_24h=volume_24h,
            liquidity=liquidity,
            timestamp=timestamp or datetime.now(timezone.utc),
        )

    def age_seconds(self, now: Optional[datetime] = None) -> float:
        now = now or datetime.now(timezone.utc)
        return (now - self.timestamp).total_seconds()

    def is_stale(self, max_age_seconds: float, now: Optional[datetime] = None) -> bool:
        return self.age_seconds(now) > max_age_seconds
