import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

import pytest
import requests

from solarb.connectors import jupiter
from solarb.connectors.jupiter import DEFAULT_MINTS, JupiterPriceSource
from solarb.connectors.simulated_venue import PaperExecutor, SimulatedVenue
from solarb.core.errors import (
    ExecutionError,
    InvalidOpportunityError,
    PriceFetchError,
    RateLimitedError,
    RpcTimeoutError,
    UnknownTokenError,
)
from solarb.core.rate_limiter import RateLimiter
from solarb.models.market import TokenPair, Venue
from solarb.models.trade import ArbitrageOpportunity


SOL_USDC = TokenPair("SOL", "USDC")


class StubLogger:
    def __init__(self) -> None:
        self.warnings: List[str] = []

    def log_warning(self, message: str) -> None:
        self.warnings.append(message)


class FakeResponse:
    def __init__(self, payload, status: int = 200) -> None:
        self.payload = payload
        self.status_code = status

    def raise_for_status(self) -> None:
        if self.status_code >= 400:
            raise requests.HTTPError(f"{self.status_code} error")

    def json(self):
        return self.payload


def _opportunity(net: str = "1.0") -> ArbitrageOpportunity:
    return ArbitrageOpportunity(
        id="opp-1",
        pair=SOL_USDC,
        buy_venue=Venue.RAYDIUM,
        buy_price=Decimal("100"),
        sell_venue=Venue.ORCA,
        sell_price=Decimal("101.6"),
        gross_profit_pct=Decimal(net) + Decimal("0.55"),
        net_profit_pct=Decimal(net),
        detected_at=datetime.now(timezone.utc),
    )


def test_simulated_venue_quotes_known_pairs() -> None:
    venue = SimulatedVenue(venue=Venue.ORCA, seed=7)
    quotes = asyncio.run(venue.get_prices([SOL_USDC, TokenPair("ABC", "USDC")]))

    assert len(quotes) == 1
    q = quotes[0]
    assert q.venue is Venue.ORCA
    assert Decimal(0) < q.bid < q.ask
    assert q.mid_price == (q.bid + q.ask) / 2
    assert abs(q.mid_price - Decimal("150")) < Decimal("2")
    assert q.liquidity is not None


def test_simulated_venue_is_seeded() -> None:
    a = asyncio.run(SimulatedVenue(venue=Venue.RAYDIUM, seed=42).get_prices([SOL_USDC]))
    b = asyncio.run(SimulatedVenue(venue=Venue.RAYDIUM, seed=42).get_prices([SOL_USDC]))
    assert (a[0].bid, a[0].ask) == (b[0].bid, b[0].ask)


def test_simulated_venue_failure() -> None:
    venue = SimulatedVenue(venue=Venue.PHOENIX, failure_rate=1.0)
    with pytest.raises(PriceFetchError):
        asyncio.run(venue.get_prices([SOL_USDC]))


def test_paper_executor_dry_run_and_paper_share_result_shape() -> None:
    limiter = RateLimiter(max_requests=10, window_seconds=60)
    executor = PaperExecutor(quote_limiter=limiter, max_slippage_pct=Decimal("0"))
    opp = _opportunity("1.0")

    dry = asyncio.run(executor.execute("wallet", opp, Decimal("500"), submit=False))
    paper = asyncio.run(executor.execute("wallet", opp, Decimal("500"), submit=True))

    assert dry.signature.startswith("dry-run-")
    assert paper.signature.startswith("paper-")
    for result in (dry, paper):
        assert result.success
        assert result.opportunity_id == "opp-1"
        assert result.actual_profit == Decimal("5.000000")
        assert result.executed_at is not None
    assert asyncio.run(limiter.current_count()) == 2


def test_paper_executor_refuses_live_submission() -> None:
    executor = PaperExecutor(paper=False)
    with pytest.raises(ExecutionError):
        asyncio.run(executor.execute("wallet", _opportunity(), Decimal("100"), submit=True))

    # Dry-run is still allowed.
    result = asyncio.run(executor.execute("wallet", _opportunity(), Decimal("100"), submit=False))
    assert result.success


def test_paper_executor_rejects_empty_size() -> None:
    with pytest.raises(InvalidOpportunityError):
        asyncio.run(PaperExecutor().execute("wallet", _opportunity(), Decimal("0"), submit=False))


def test_jupiter_quote_from_price_api(monkeypatch) -> None:
    seen = {}

    def fake_get(url, params=None, timeout=None):
        seen["url"] = url
        seen["params"] = params
        mint = params["ids"]
        return FakeResponse({"data": {mint: {"id": mint, "mintSymbol": "SOL", "price": 150.5}}})

    monkeypatch.setattr(jupiter.requests, "get", fake_get)

    source = JupiterPriceSource(rate_limiter=RateLimiter(max_requests=100, window_seconds=1))
    quote = asyncio.run(source.get_price(SOL_USDC))

    assert seen["url"] == jupiter.JUPITER_PRICE_API
    assert seen["params"] == {"ids": DEFAULT_MINTS["SOL"], "vsToken": DEFAULT_MINTS["USDC"]}
    assert quote.venue is Venue.JUPITER
    assert quote.mid_price == Decimal("150.5")
    assert quote.bid == Decimal("150.48495")
    assert quote.ask == Decimal("150.51505")


def test_jupiter_skips_unknown_tokens(monkeypatch) -> None:
    def fake_get(url, params=None, timeout=None):
        mint = params["ids"]
        return FakeResponse({"data": {mint: {"price": "2.5"}}})

    monkeypatch.setattr(jupiter.requests, "get", fake_get)

    logger = StubLogger()
    source = JupiterPriceSource(logger=logger)
    with pytest.raises(UnknownTokenError):
        asyncio.run(source.get_price(TokenPair("WIF", "USDC")))

    quotes = asyncio.run(source.get_prices([TokenPair("RAY", "USDC"), TokenPair("WIF", "USDC")]))
    assert [q.pair.symbol() for q in quotes] == ["RAY/USDC"]
    assert any("WIF/USDC" in w for w in logger.warnings)


def test_jupiter_missing_price_is_skipped(monkeypatch) -> None:
    monkeypatch.setattr(jupiter.requests, "get", lambda url, params=None, timeout=None: FakeResponse({"data": {}}))

    logger = StubLogger()
    source = JupiterPriceSource(logger=logger)
    assert asyncio.run(source.get_prices([SOL_USDC])) == []
    assert len(logger.warnings) == 1


def test_jupiter_http_errors_become_fetch_errors(monkeypatch) -> None:
    def down(url, params=None, timeout=None):
        raise requests.ConnectionError("connection refused")

    monkeypatch.setattr(jupiter.requests, "get", down)
    source = JupiterPriceSource()
    with pytest.raises(PriceFetchError):
        asyncio.run(source.get_prices([SOL_USDC]))
    assert asyncio.run(source.health_check()) is False

    monkeypatch.setattr(jupiter.requests, "get", lambda url, params=None, timeout=None: FakeResponse({}, status=503))
    with pytest.raises(PriceFetchError):
        asyncio.run(source.get_price(SOL_USDC))


def test_jupiter_throttling_and_timeouts_are_transient(monkeypatch) -> None:
    monkeypatch.setattr(jupiter.requests, "get", lambda url, params=None, timeout=None: FakeResponse({}, status=429))
    source = JupiterPriceSource(timeout_seconds=2.5)
    with pytest.raises(RateLimitedError) as excinfo:
        asyncio.run(source.get_price(SOL_USDC))
    assert excinfo.value.is_retryable()
    assert asyncio.run(source.health_check()) is False

    def slow(url, params=None, timeout=None):
        raise requests.Timeout("read timed out")

    monkeypatch.setattr(jupiter.requests, "get", slow)
    with pytest.raises(RpcTimeoutError) as excinfo:
        asyncio.run(source.get_price(SOL_USDC))
    assert excinfo.value.timeout_ms == 2500
    assert asyncio.run(source.health_check()) is False
