from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Protocol, Sequence, runtime_checkable

from solarb.core.errors import StrategyError
from solarb.models.market import PriceQuote
from solarb.models.trade import ArbitrageOpportunity


class LoggerProtocol(Protocol):
    def log_info(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...


@runtime_checkable
class Strategy(Protocol):
    name: str

    async def analyze(self, quotes: Sequence[PriceQuote]) -> List[ArbitrageOpportunity]: ...

    async def update_state(self, quote: PriceQuote) -> None: ...


@dataclass
class StrategyRegistry:
    """Runs pluggable analyzers; one failing strategy never blocks the rest."""

    logger: Optional[LoggerProtocol] = None

    last_errors: List[StrategyError] = field(default_factory=list, init=False)
    _strategies: List[Strategy] = field(default_factory=list, init=False, repr=False)
    _disabled: set = field(default_factory=set, init=False, repr=False)

    def register(self, strategy: Strategy, *, enabled: bool = True) -> None:
        if any(s.name == strategy.name for s in self._strategies):
            raise ValueError(f"strategy already registered: {strategy.name}")
        self._strategies.append(strategy)
        if not enabled:
            self._disabled.add(strategy.name)
        if self.logger:
            self.logger.log_info(f"Strategy registered: {strategy.name} (enabled={enabled})")

    def set_enabled(self, name: str, enabled: bool) -> None:
        if enabled:
            self._disabled.discard(name)
        else:
            self._disabled.add(name)

    def count(self) -> int:
        return len(self._strategies)

    def names(self) -> List[str]:
        return [s.name for s in self._strategies]

    def _active(self) -> List[Strategy]:
        return [s for s in self._strategies if s.name not in self._disabled]

    async def analyze_all(self, quotes: Sequence[PriceQuote]) -> List[ArbitrageOpportunity]:
        found: List[ArbitrageOpportunity] = []
        self.last_errors = []
        for strategy in self._active():
            try:
                found.extend(await strategy.analyze(quotes))
            except Exception as e:
                err = StrategyError(strategy.name, f"analysis raised {e}")
                self.last_errors.append(err)
                if self.logger:
                    self.logger.log_warning(str(err))
        return found

    async def update_all(self, quotes: Sequence[PriceQuote]) -> None:
        for strategy in self._active():
            for quote in quotes:
                try:
                    await strategy.update_state(quote)
                except Exception as e:
                    if self.logger:
                        self.logger.log_warning(f"Strategy {strategy.name} state update failed: {e}")
                    break
