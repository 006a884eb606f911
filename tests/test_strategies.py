import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import pytest

from solarb.core.errors import StrategyError
from solarb.models.market import PriceQuote, TokenPair, Venue
from solarb.models.trade import ArbitrageOpportunity
from solarb.strategies.base import Strategy, StrategyRegistry
from solarb.strategies.statistical import StatisticalArbitrage


SOL_USDC = TokenPair("SOL", "USDC")


class StubLogger:
    def __init__(self) -> None:
        self.infos: List[str] = []
        self.warnings: List[str] = []

    def log_info(self, message: str) -> None:
        self.infos.append(message)

    def log_warning(self, message: str) -> None:
        self.warnings.append(message)


class BrokenStrategy:
    name = "broken"

    async def analyze(self, quotes):
        raise RuntimeError("model diverged")

    async def update_state(self, quote) -> None:
        raise RuntimeError("state corrupted")


class FixedStrategy:
    def __init__(self, name: str, found: List[ArbitrageOpportunity]) -> None:
        self.name = name
        self.found = found
        self.seen: List[PriceQuote] = []

    async def analyze(self, quotes):
        return list(self.found)

    async def update_state(self, quote) -> None:
        self.seen.append(quote)


def _mid(venue: Venue, mid: str) -> PriceQuote:
    m = Decimal(mid)
    return PriceQuote.from_bid_ask(
        venue, SOL_USDC, m - Decimal("0.1"), m + Decimal("0.1"), timestamp=datetime.now(timezone.utc)
    )


def _warm(strategy: StatisticalArbitrage, mids) -> None:
    async def run() -> None:
        for mid in mids:
            await strategy.update_state(_mid(Venue.RAYDIUM, mid))

    asyncio.run(run())


def test_statistical_flags_rich_price() -> None:
    strat = StatisticalArbitrage(window_size=5)
    _warm(strat, ["99", "101", "99", "101", "100"])

    opps = asyncio.run(strat.analyze([_mid(Venue.RAYDIUM, "110")]))
    assert len(opps) == 1

    opp = opps[0]
    assert opp.strategy == "statistical"
    assert opp.buy_venue is Venue.JUPITER
    assert opp.sell_venue is Venue.RAYDIUM
    assert opp.buy_price == Decimal("100")
    assert opp.sell_price == Decimal("109.9")
    assert opp.net_profit_pct > 0
    assert opp.recommended_size == Decimal("500")


def test_statistical_flags_cheap_price() -> None:
    strat = StatisticalArbitrage(window_size=5)
    _warm(strat, ["99", "101", "99", "101", "100"])

    opps = asyncio.run(strat.analyze([_mid(Venue.ORCA, "90")]))
    assert len(opps) == 1
    assert opps[0].buy_venue is Venue.ORCA
    assert opps[0].sell_venue is Venue.JUPITER


def test_statistical_stays_quiet_inside_threshold() -> None:
    strat = StatisticalArbitrage(window_size=5)
    _warm(strat, ["99", "101", "99", "101", "100"])
    assert asyncio.run(strat.analyze([_mid(Venue.RAYDIUM, "101")])) == []


def test_statistical_waits_for_full_window() -> None:
    strat = StatisticalArbitrage(window_size=5)
    _warm(strat, ["99", "101"])
    assert strat.z_score("SOL/USDC", Decimal("150")) is None
    assert asyncio.run(strat.analyze([_mid(Venue.RAYDIUM, "150")])) == []


def test_registry_isolates_failing_strategy() -> None:
    logger = StubLogger()
    reg = StrategyRegistry(logger=logger)
    good = FixedStrategy("fixed", [])
    reg.register(BrokenStrategy())
    reg.register(good)
    assert reg.count() == 2
    assert reg.names() == ["broken", "fixed"]

    quotes = [_mid(Venue.RAYDIUM, "100"), _mid(Venue.ORCA, "100")]
    assert asyncio.run(reg.analyze_all(quotes)) == []
    asyncio.run(reg.update_all(quotes))

    assert len(good.seen) == 2
    assert any("broken" in w and "analysis" in w for w in logger.warnings)
    assert any("broken" in w and "state update" in w for w in logger.warnings)

    assert len(reg.last_errors) == 1
    err = reg.last_errors[0]
    assert isinstance(err, StrategyError)
    assert err.strategy == "broken"
    assert "model diverged" in err.reason
    assert not err.is_critical()


def test_registry_collects_results_and_honours_disable() -> None:
    strat = StatisticalArbitrage(window_size=5)
    _warm(strat, ["99", "101", "99", "101", "100"])

    reg = StrategyRegistry()
    reg.register(strat)
    assert isinstance(strat, Strategy)

    quotes = [_mid(Venue.RAYDIUM, "110")]
    assert len(asyncio.run(reg.analyze_all(quotes))) == 1

    reg.set_enabled("statistical", False)
    assert asyncio.run(reg.analyze_all(quotes)) == []

    with pytest.raises(ValueError):
        reg.register(StatisticalArbitrage())
