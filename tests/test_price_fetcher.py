import asyncio
from datetime import datetime, timezone
from decimal import Decimal
from typing import List

from solarb.core.errors import PriceFetchError
from solarb.core.rate_limiter import RateLimiter
from solarb.models.market import PriceQuote, TokenPair, Venue
from solarb.services.price_fetcher import ParallelPriceFetcher


PAIRS = [TokenPair("SOL", "USDC"), TokenPair("RAY", "USDC")]


class StubLogger:
    def __init__(self) -> None:
        self.debugs: List[str] = []
        self.warnings: List[str] = []

    def log_debug(self, message: str) -> None:
        self.debugs.append(message)

    def log_warning(self, message: str) -> None:
        self.warnings.append(message)


class StubSource:
    def __init__(self, venue: Venue, *, fail_times: int = 0, error: Exception = None, delay: float = 0.0, pairs=None):
        self.name = venue.value
        self.venue = venue
        self.fail_times = fail_times
        self.error = error or PriceFetchError("temporarily unavailable")
        self.delay = delay
        self.only = pairs
        self.calls = 0

    async def get_prices(self, pairs):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.calls <= self.fail_times:
            raise self.error
        now = datetime.now(timezone.utc)
        return [
            PriceQuote.from_bid_ask(self.venue, p, Decimal("1"), Decimal("1.01"), timestamp=now)
            for p in pairs
            if self.only is None or p.symbol() in self.only
        ]


def test_joins_quotes_from_all_sources() -> None:
    limiter = RateLimiter(max_requests=100, window_seconds=60)
    fetcher = ParallelPriceFetcher(
        sources=[StubSource(Venue.RAYDIUM), StubSource(Venue.ORCA)],
        rate_limiter=limiter,
    )

    quotes = asyncio.run(fetcher.fetch_all(PAIRS))
    assert len(quotes) == 4
    assert {q.venue for q in quotes} == {Venue.RAYDIUM, Venue.ORCA}
    assert fetcher.last_missing == {}
    assert asyncio.run(limiter.current_count()) == 2


def test_failed_source_is_skipped_and_coverage_logged() -> None:
    logger = StubLogger()
    broken = StubSource(Venue.ORCA, fail_times=99, error=RuntimeError("bad gateway"))
    fetcher = ParallelPriceFetcher(sources=[StubSource(Venue.RAYDIUM), broken], logger=logger, base_delay=0)

    quotes = asyncio.run(fetcher.fetch_all(PAIRS))
    assert len(quotes) == 2
    # Non-transient errors are not retried.
    assert broken.calls == 1
    assert any("orca failed" in w for w in logger.warnings)
    assert fetcher.last_missing == {"SOL/USDC": {"orca"}, "RAY/USDC": {"orca"}}


def test_transient_failure_is_retried() -> None:
    logger = StubLogger()
    flaky = StubSource(Venue.PHOENIX, fail_times=1)
    fetcher = ParallelPriceFetcher(sources=[flaky], logger=logger, base_delay=0)

    quotes = asyncio.run(fetcher.fetch_all(PAIRS))
    assert len(quotes) == 2
    assert flaky.calls == 2
    assert len(logger.debugs) == 1


def test_slow_source_times_out() -> None:
    logger = StubLogger()
    slow = StubSource(Venue.METEORA, delay=1.0)
    fetcher = ParallelPriceFetcher(
        sources=[slow, StubSource(Venue.RAYDIUM)],
        logger=logger,
        timeout_seconds=0.05,
        max_attempts=1,
    )

    quotes = asyncio.run(fetcher.fetch_all(PAIRS))
    assert {q.venue for q in quotes} == {Venue.RAYDIUM}
    assert any("meteora failed" in w for w in logger.warnings)


def test_partial_pair_coverage() -> None:
    fetcher = ParallelPriceFetcher(
        sources=[StubSource(Venue.RAYDIUM), StubSource(Venue.LIFINITY, pairs={"SOL/USDC"})],
    )
    asyncio.run(fetcher.fetch_all(PAIRS))
    assert fetcher.last_missing == {"RAY/USDC": {"lifinity"}}


def test_no_sources_returns_nothing() -> None:
    assert asyncio.run(ParallelPriceFetcher(sources=[]).fetch_all(PAIRS)) == []
