from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Protocol, Sequence, Set

from solarb.core.errors import retry_with_backoff
from solarb.core.rate_limiter import RateLimiter
from solarb.models.market import PriceQuote, TokenPair


class PriceSource(Protocol):
    name: str

    async def get_prices(self, pairs: Sequence[TokenPair]) -> List[PriceQuote]: ...


class LoggerProtocol(Protocol):
    def log_debug(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...


@dataclass
class ParallelPriceFetcher:
    """Fans out one fetch task per source and joins all results.

    A failing source is logged and left out of the batch; the cycle goes on
    with whatever the other sources returned.
    """

    sources: List[PriceSource]
    rate_limiter: Optional[RateLimiter] = None
    logger: Optional[LoggerProtocol] = None
    timeout_seconds: float = 5.0
    max_attempts: int = 3
    base_delay: float = 0.2

    last_missing: Dict[str, Set[str]] = field(default_factory=dict, init=False)

    async def fetch_all(self, pairs: Sequence[TokenPair]) -> List[PriceQuote]:
        if not self.sources:
            return []

        results = await asyncio.gather(
            *(self._fetch_source(src, pairs) for src in self.sources),
            return_exceptions=True,
        )

        quotes: List[PriceQuote] = []
        covered: Dict[str, Set[str]] = {}
        for src, res in zip(self.sources, results):
            if isinstance(res, asyncio.CancelledError):
                raise res
            if isinstance(res, BaseException):
                if self.logger:
                    self.logger.log_warning(f"Price source {src.name} failed: {res}")
                continue
            for q in res:
                covered.setdefault(q.pair.symbol(), set()).add(src.name)
            quotes.extend(res)

        self._check_coverage(pairs, covered)
        return quotes

    async def _fetch_source(self, source: PriceSource, pairs: Sequence[TokenPair]) -> List[PriceQuote]:
        async def _call() -> List[PriceQuote]:
            if self.rate_limiter is not None:
                await self.rate_limiter.acquire()
            return await asyncio.wait_for(source.get_prices(pairs), timeout=self.timeout_seconds)

        def _on_retry(exc: BaseException, attempt: int, delay: float) -> None:
            if self.logger:
                self.logger.log_debug(f"Retrying {source.name} in {delay:.2f}s (attempt {attempt}): {exc}")

        return await retry_with_backoff(
            _call,
            max_attempts=self.max_attempts,
            base_delay=self.base_delay,
            on_retry=_on_retry,
        )

    def _check_coverage(self, pairs: Sequence[TokenPair], covered: Dict[str, Set[str]]) -> None:
        all_sources = {s.name for s in self.sources}
        self.last_missing = {}

        for pair in pairs:
            symbol = pair.symbol()
            missing = all_sources - covered.get(symbol, set())
            if not missing:
                continue
            self.last_missing[symbol] = missing
            if self.logger:
                self.logger.log_warning(
                    f"Missing price coverage for {symbol}: {', '.join(sorted(missing))}"
                )
