from __future__ import annotations

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import Dict, List, Optional, Sequence

from solarb.core.errors import ExecutionError, InvalidOpportunityError, PriceFetchError
from solarb.core.rate_limiter import RateLimiter
from solarb.models.market import PriceQuote, TokenPair, Venue
from solarb.models.trade import ArbitrageOpportunity, TradeResult


# Rough reference mids used by mock mode.
REFERENCE_PRICES: Dict[str, float] = {
    "SOL/USDC": 150.0,
    "RAY/USDC": 2.0,
    "ORCA/USDC": 3.5,
    "JUP/USDC": 0.9,
    "BONK/USDC": 0.00002,
    "RAY/SOL": 2.0 / 150.0,
    "ORCA/SOL": 3.5 / 150.0,
    "JUP/SOL": 0.9 / 150.0,
}


@dataclass
class SimulatedVenue:
    """Mock price source producing jittered quotes for one venue.

    Each venue carries a fixed skew around the reference price plus per-call
    noise, so cross-venue spreads occasionally exceed fees.
    """

    venue: Venue
    seed: int = 1337
    max_skew: float = 0.004
    max_noise: float = 0.006
    failure_rate: float = 0.0

    name: str = field(init=False)
    _rng: random.Random = field(init=False, repr=False)
    _skew: float = field(init=False)

    def __post_init__(self) -> None:
        self.name = self.venue.value
        self._rng = random.Random(self.seed)
        self._skew = self._rng.uniform(-self.max_skew, self.max_skew)

    async def get_prices(self, pairs: Sequence[TokenPair]) -> List[PriceQuote]:
        if self.failure_rate > 0 and self._rng.random() < self.failure_rate:
            raise PriceFetchError(f"{self.venue.display_name} price endpoint unavailable (simulated)")

        now = datetime.now(timezone.utc)
        quotes: List[PriceQuote] = []
        for pair in pairs:
            ref = REFERENCE_PRICES.get(pair.symbol())
            if ref is None:
                continue
            quotes.append(self._quote(pair, ref, now))
        return quotes

    def _quote(self, pair: TokenPair, ref: float, now: datetime) -> PriceQuote:
        mid = ref * (1.0 + self._skew + self._rng.uniform(-self.max_noise, self.max_noise))
        half_spread = mid * self._rng.uniform(0.0002, 0.001)

        return PriceQuote.from_bid_ask(
            self.venue,
            pair,
            Decimal(str(round(mid - half_spread, 10))),
            Decimal(str(round(mid + half_spread, 10))),
            liquidity=Decimal(self._rng.randint(5_000, 50_000)),
            volume_24h=Decimal(self._rng.randint(100_000, 5_000_000)),
            timestamp=now,
        )


@dataclass
class PaperExecutor:
    """Execution collaborator for dry-run and paper trading.

    Dry-run (submit=False) and paper submissions return the same TradeResult
    shape. Realized profit is the opportunity's net profit minus a random
    slippage draw bounded by half of ``max_slippage_pct``.
    """

    quote_limiter: Optional[RateLimiter] = None
    paper: bool = True
    max_slippage_pct: Decimal = Decimal("1.0")
    seed: int = 1337

    _rng: random.Random = field(init=False, repr=False)

    def __post_init__(self) -> None:
        self._rng = random.Random(self.seed)

    async def execute(
        self,
        wallet: str,
        opportunity: ArbitrageOpportunity,
        size: Decimal,
        *,
        submit: bool,
        venue_hints: Sequence[Venue] = (),
    ) -> TradeResult:
        if size <= 0:
            raise InvalidOpportunityError(f"trade size must be > 0, got {size}")

        if self.quote_limiter is not None:
            await self.quote_limiter.acquire()

        if submit and not self.paper:
            raise ExecutionError("on-chain submission is not available; run with MOCK_MODE=true or DRY_RUN=true")

        slippage = Decimal(str(round(self._rng.uniform(0.0, float(self.max_slippage_pct) / 2), 6)))
        realized_pct = opportunity.net_profit_pct - slippage
        profit = (Decimal(size) * realized_pct / 100).quantize(Decimal("0.000001"))

        prefix = "paper" if submit else "dry-run"
        return TradeResult(
            opportunity_id=opportunity.id,
            success=True,
            actual_profit=profit,
            signature=f"{prefix}-{uuid.uuid4().hex}",
            executed_at=datetime.now(timezone.utc),
        )
