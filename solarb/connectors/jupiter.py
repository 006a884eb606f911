from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional, Protocol, Sequence

import requests

from solarb.core.errors import (
    PriceFetchError,
    PriceNotAvailableError,
    RateLimitedError,
    RpcTimeoutError,
    TransientError,
    UnknownTokenError,
)
from solarb.core.rate_limiter import RateLimiter
from solarb.models.market import PriceQuote, TokenPair, Venue


JUPITER_PRICE_API = "https://price.jup.ag/v6/price"

# Jupiter returns a single price; bid/ask are estimated around it.
SYNTHETIC_SPREAD = Decimal("0.0001")

DEFAULT_MINTS: Dict[str, str] = {
    "SOL": "So11111111111111111111111111111111111111112",
    "USDC": "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",
    "USDT": "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",
    "RAY": "4k3Dyjzvzp8eMZWUXbBCjEvwSkkk59S5iCNLY3QrkX6R",
    "SRM": "SRMuApVNdxXokk5GT7XD5cUUgXMBCoAz2LHeuAoKWRt",
    "BONK": "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263",
    "JUP": "JUPyiwrYJFskUPiHa7hkeR8VUtAe6poCFFRLnWo6h7rL",
    "ORCA": "orcaEKTdK7LKz57vaAYr9QeNsVEPfiu6QeMU1kektZE",
}


class LoggerProtocol(Protocol):
    def log_warning(self, message: str) -> None: ...


@dataclass
class JupiterPriceSource:
    host: str = JUPITER_PRICE_API
    timeout_seconds: float = 10.0
    rate_limiter: RateLimiter = field(default_factory=lambda: RateLimiter.per_second(10))
    logger: Optional[LoggerProtocol] = None

    name: str = field(default=Venue.JUPITER.value, init=False)
    token_mints: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_MINTS), init=False)

    def mint_for(self, symbol: str) -> str:
        mint = self.token_mints.get(symbol.upper())
        if mint is None:
            raise UnknownTokenError(symbol)
        return mint

    async def get_price(self, pair: TokenPair) -> PriceQuote:
        base_mint = self.mint_for(pair.base)
        quote_mint = self.mint_for(pair.quote)

        payload = await self._get_json({"ids": base_mint, "vsToken": quote_mint})
        price = _extract_price(payload, base_mint)
        if price is None or price <= 0:
            raise PriceNotAvailableError(f"Jupiter returned no price for {pair.symbol()}")

        spread = price * SYNTHETIC_SPREAD
        return PriceQuote.from_bid_ask(
            Venue.JUPITER,
            pair,
            price - spread,
            price + spread,
            timestamp=datetime.now(timezone.utc),
        )

    async def get_prices(self, pairs: Sequence[TokenPair]) -> List[PriceQuote]:
        quotes: List[PriceQuote] = []
        for pair in pairs:
            try:
                quotes.append(await self.get_price(pair))
            except (UnknownTokenError, PriceNotAvailableError) as e:
                if self.logger:
                    self.logger.log_warning(f"Jupiter: skipping {pair.symbol()}: {e}")
        return quotes

    async def health_check(self) -> bool:
        try:
            await self._get_json({"ids": DEFAULT_MINTS["SOL"]})
        except TransientError:
            return False
        return True

    async def _get_json(self, params: Dict[str, Any]) -> Any:
        await self.rate_limiter.acquire()

        def _do() -> Any:
            resp = requests.get(self.host, params=params, timeout=self.timeout_seconds)
            if resp.status_code == 429:
                raise RateLimitedError(self.host)
            resp.raise_for_status()
            return resp.json()

        try:
            return await asyncio.to_thread(_do)
        except requests.Timeout as e:
            raise RpcTimeoutError(int(self.timeout_seconds * 1000)) from e
        except (requests.RequestException, ValueError) as e:
            raise PriceFetchError(f"Jupiter request failed: {e}") from e


def _extract_price(payload: Any, mint: str) -> Optional[Decimal]:
    if not isinstance(payload, dict):
        return None
    data = payload.get("data")
    if not isinstance(data, dict):
        return None
    entry = data.get(mint)
    if not isinstance(entry, dict) or entry.get("price") is None:
        return None
    try:
        return Decimal(str(entry["price"]))
    except InvalidOperation:
        return None
