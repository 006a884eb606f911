"""Multi-hop (triangular) cycle search over a graph of exchange rates.

Each quote contributes two directed edges: base->quote at the bid (selling
base) and quote->base at 1/ask (buying base). The graph is rebuilt from fresh
quotes every cycle instead of being patched in place.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple

from solarb.models.market import PriceQuote, Venue


DEFAULT_LIQUIDITY = Decimal("100000")

EdgeKey = Tuple[str, str, str]


class LoggerProtocol:
    def log_debug(self, message: str) -> None: ...
    def log_info(self, message: str) -> None: ...


@dataclass(frozen=True)
class TradingEdge:
    from_token: str
    to_token: str
    venue: Venue
    rate: Decimal  # units of to_token per from_token
    liquidity: Decimal
    fee: Decimal  # percent

    def effective_rate(self) -> Decimal:
        return self.rate * (1 - self.fee / 100)

    def key(self) -> EdgeKey:
        return (self.from_token, self.to_token, self.venue.value)


@dataclass(frozen=True)
class TradingPath:
    edges: Tuple[TradingEdge, ...]
    profit_ratio: Decimal
    min_liquidity: Decimal

    def calculate_profit_ratio(self) -> Decimal:
        ratio = Decimal(1)
        for edge in self.edges:
            ratio *= edge.effective_rate()
        return ratio

    def is_profitable(self) -> bool:
        return self.profit_ratio > 1

    def profit_percentage(self) -> Decimal:
        return (self.profit_ratio - 1) * 100

    def optimal_size(self, max_position: Decimal) -> Decimal:
        return min(max_position, self.min_liquidity)

    def tokens(self) -> List[str]:
        if not self.edges:
            return []
        return [self.edges[0].from_token] + [e.to_token for e in self.edges]

    def cycle_key(self) -> Tuple[EdgeKey, ...]:
        """Edge sequence rotated to a canonical start, equal for every rotation of one cycle."""
        keys = [e.key() for e in self.edges]
        pivot = min(range(len(keys)), key=lambda i: keys[i])
        return tuple(keys[pivot:] + keys[:pivot])

    def describe(self) -> str:
        hops = " -> ".join(self.tokens())
        return f"{hops} ({len(self.edges)} hops, {self.profit_percentage():.4f}%)"


@dataclass
class PathFinder:
    max_hops: int = 4
    logger: Optional[LoggerProtocol] = None

    _edges: Dict[str, List[TradingEdge]] = field(default_factory=dict, init=False, repr=False)
    _tokens: Set[str] = field(default_factory=set, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.max_hops < 2:
            raise ValueError("max_hops must be >= 2")

    def clear(self) -> None:
        self._edges.clear()
        self._tokens.clear()

    def add_price(self, quote: PriceQuote) -> None:
        if quote.bid <= 0 or quote.ask <= 0:
            return

        base = quote.pair.base
        counter = quote.pair.quote
        fee = quote.venue.fee_percentage
        liquidity = quote.liquidity if quote.liquidity is not None else DEFAULT_LIQUIDITY

        self._tokens.add(base)
        self._tokens.add(counter)

        forward = TradingEdge(base, counter, quote.venue, quote.bid, liquidity, fee)
        reverse = TradingEdge(counter, base, quote.venue, 1 / quote.ask, liquidity, fee)

        self._edges.setdefault(base, []).append(forward)
        self._edges.setdefault(counter, []).append(reverse)

    def rebuild(self, quotes: List[PriceQuote]) -> None:
        self.clear()
        for q in quotes:
            self.add_price(q)

    def tokens(self) -> Set[str]:
        return set(self._tokens)

    def edge_count(self) -> int:
        return sum(len(v) for v in self._edges.values())

    def find_triangular_paths(self, start: str) -> List[TradingPath]:
        if start not in self._tokens:
            return []

        results: List[TradingPath] = []
        # Explicit stack instead of recursion; depth is bounded by max_hops anyway.
        stack: List[Tuple[str, Tuple[TradingEdge, ...], Decimal, Optional[Decimal]]] = [
            (start, (), Decimal(1), None)
        ]

        while stack:
            current, path, ratio, min_liq = stack.pop()

            if len(path) >= 2 and current == start:
                if ratio > 1:
                    results.append(
                        TradingPath(edges=path, profit_ratio=ratio, min_liquidity=min_liq or Decimal(0))
                    )
                continue

            if len(path) >= self.max_hops:
                continue

            visited = {e.to_token for e in path}
            for edge in self._edges.get(current, ()):
                if edge.to_token in visited and edge.to_token != start:
                    continue
                if edge.to_token == start and len(path) + 1 < 2:
                    continue

                stack.append(
                    (
                        edge.to_token,
                        path + (edge,),
                        ratio * edge.effective_rate(),
                        edge.liquidity if min_liq is None else min(min_liq, edge.liquidity),
                    )
                )

        results.sort(key=lambda p: (-p.profit_ratio, p.cycle_key()))
        return results

    def find_best_path(self, start: str) -> Optional[TradingPath]:
        paths = self.find_triangular_paths(start)
        return paths[0] if paths else None

    def find_all_profitable_paths(self) -> List[TradingPath]:
        seen: Set[Tuple[EdgeKey, ...]] = set()
        unique: List[TradingPath] = []

        for token in sorted(self._tokens):
            for path in self.find_triangular_paths(token):
                key = path.cycle_key()
                if key in seen:
                    continue
                seen.add(key)
                unique.append(path)

        unique.sort(key=lambda p: (-p.profit_ratio, p.cycle_key()))

        if unique and self.logger:
            self.logger.log_debug(f"Path search found {len(unique)} profitable cycles, best {unique[0].describe()}")
        return unique
