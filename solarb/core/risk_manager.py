from __future__ import annotations

import asyncio
from collections import deque
from dataclasses import dataclass, field
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Callable, Deque, Dict, Iterable, Optional, Protocol, Union

from solarb.core.circuit_breaker import CircuitBreaker, CircuitState
from solarb.core.events import EventBus, RiskLimitBreached
from solarb.core.var import VarCalculator
from solarb.core.volatility import VolatilityTracker
from solarb.models.market import PriceQuote
from solarb.models.trade import TradeOutcome


class LoggerProtocol(Protocol):
    def log_debug(self, message: str) -> None: ...
    def log_info(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...
    def log_error(self, message: str) -> None: ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class RiskConfig:
    max_position_size: Decimal = Decimal("1000")
    max_total_exposure: Decimal = Decimal("5000")
    max_daily_loss: Decimal = Decimal("100")
    min_profit_threshold: Decimal = Decimal("0.5")  # percent
    max_slippage: Decimal = Decimal("1.0")  # percent
    loss_cooldown_seconds: int = 300

    def validate(self) -> None:
        if self.max_position_size <= 0:
            raise ValueError("max_position_size must be > 0")
        if self.max_total_exposure < self.max_position_size:
            raise ValueError("max_total_exposure must be >= max_position_size")
        if self.max_daily_loss <= 0:
            raise ValueError("max_daily_loss must be > 0")
        if self.min_profit_threshold < 0:
            raise ValueError("min_profit_threshold must be >= 0")
        if self.max_slippage <= 0:
            raise ValueError("max_slippage must be > 0")
        if self.loss_cooldown_seconds < 0:
            raise ValueError("loss_cooldown_seconds must be >= 0")


@dataclass(frozen=True)
class Approved:
    size: Decimal


@dataclass(frozen=True)
class Reduced:
    new_size: Decimal
    reason: str


@dataclass(frozen=True)
class Rejected:
    reason: str


TradeDecision = Union[Approved, Reduced, Rejected]


@dataclass(frozen=True)
class RiskStatus:
    total_exposure: Decimal
    daily_pnl: Decimal
    portfolio_var: Decimal
    trades_today: int
    is_paused: bool
    breaker_state: str
    positions: Dict[str, Decimal]


@dataclass
class RiskManager:
    """Approves, shrinks or rejects trade sizes and tracks exposure and P&L."""

    config: RiskConfig = field(default_factory=RiskConfig)
    circuit_breaker: CircuitBreaker = field(default_factory=CircuitBreaker)
    volatility_tracker: VolatilityTracker = field(default_factory=lambda: VolatilityTracker(window_size=20))
    var_calculator: VarCalculator = field(default_factory=lambda: VarCalculator(confidence_level=0.95))
    event_bus: Optional[EventBus] = None
    logger: Optional[LoggerProtocol] = None
    ledger_capacity: int = 10_000
    now: Callable[[], datetime] = field(default=_utcnow, repr=False)

    _positions: Dict[str, Decimal] = field(default_factory=dict, init=False, repr=False)
    _daily_trades: Deque[TradeOutcome] = field(init=False, repr=False)
    _daily_trade_count: int = field(default=0, init=False)
    _daily_pnl: Decimal = field(default=Decimal(0), init=False)
    _last_loss_time: Optional[datetime] = field(default=None, init=False)
    _trading_day: date = field(init=False)
    _lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)

    def __post_init__(self) -> None:
        self._daily_trades = deque(maxlen=self.ledger_capacity)
        self._trading_day = self.now().date()
        if self.event_bus is not None and self.circuit_breaker.event_bus is None:
            self.circuit_breaker.event_bus = self.event_bus

    async def can_trade(self, pair: str, proposed_size: Decimal) -> TradeDecision:
        async with self._lock:
            if not self.circuit_breaker.can_execute():
                return Rejected(reason="Circuit breaker OPEN - trading halted")

            if self._last_loss_time is not None:
                cooldown = timedelta(seconds=self.config.loss_cooldown_seconds)
                now = self.now()
                if now - self._last_loss_time < cooldown:
                    remaining = int((self._last_loss_time + cooldown - now).total_seconds())
                    return Rejected(reason=f"Cooldown active - {remaining} seconds remaining")

            if proposed_size > self.config.max_position_size:
                return Reduced(
                    new_size=self.config.max_position_size,
                    reason="Size reduced to max position limit",
                )

            exposure = self.total_exposure()
            if exposure + proposed_size > self.config.max_total_exposure:
                available = self.config.max_total_exposure - exposure
                if available <= 0:
                    self._publish_breach("total_exposure", exposure, self.config.max_total_exposure)
                    return Rejected(reason="Maximum exposure limit reached")
                return Reduced(new_size=available, reason="Size reduced due to exposure limit")

            return Approved(size=proposed_size)

    def calculate_position_size(
        self,
        pair: str,
        expected_profit_pct: Decimal,
        available_liquidity: Decimal,
    ) -> Decimal:
        base_size = self.config.max_position_size

        # Full size above 2% expected profit, linear below.
        if expected_profit_pct > 2:
            factor = Decimal(1)
        else:
            factor = max(Decimal(expected_profit_pct), Decimal(0)) / 2

        vol = self.volatility_tracker.get_volatility(pair)
        if vol is not None:
            vol_pct = vol * 100
            if vol_pct > 1:
                factor *= 1 / vol_pct

        size = base_size * factor
        return max(Decimal(0), min(size, Decimal(available_liquidity), self.config.max_position_size))

    async def record_trade(self, outcome: TradeOutcome) -> None:
        async with self._lock:
            self._maybe_rollover_locked(outcome.timestamp)

            if outcome.profit_loss < 0:
                self._last_loss_time = outcome.timestamp
                self.circuit_breaker.record_failure()
            else:
                self.circuit_breaker.record_success()

            self._daily_trades.append(outcome)
            self._daily_trade_count += 1
            self._daily_pnl += outcome.profit_loss

            if self._daily_pnl < -self.config.max_daily_loss:
                if self.logger:
                    self.logger.log_error(
                        f"Daily loss limit breached: P&L ${self._daily_pnl:.2f} < -${self.config.max_daily_loss:.2f}"
                    )
                self._publish_breach("daily_loss", -self._daily_pnl, self.config.max_daily_loss)
                self.circuit_breaker.force_open("daily loss limit breached")

    def update_position(self, pair: str, size: Decimal) -> None:
        if size == 0:
            self._positions.pop(pair, None)
        else:
            self._positions[pair] = Decimal(size)

    def position(self, pair: str) -> Decimal:
        return self._positions.get(pair, Decimal(0))

    def total_exposure(self) -> Decimal:
        return sum(self._positions.values(), Decimal(0))

    def daily_pnl(self) -> Decimal:
        return self._daily_pnl

    def daily_loss_breached(self) -> bool:
        return self._daily_pnl < -self.config.max_daily_loss

    def daily_trades(self) -> list[TradeOutcome]:
        return list(self._daily_trades)

    def update_prices(self, quotes: Iterable[PriceQuote]) -> None:
        self.volatility_tracker.update_quotes(quotes)

    def maybe_rollover(self, now: Optional[datetime] = None) -> bool:
        return self._maybe_rollover_locked(now or self.now())

    def reset_daily(self) -> None:
        # Breaker state survives the reset on purpose; only the ledger clears.
        self._daily_trades.clear()
        self._daily_trade_count = 0
        self._daily_pnl = Decimal(0)

    def is_paused(self) -> bool:
        return not self.circuit_breaker.can_execute()

    async def status(self) -> RiskStatus:
        async with self._lock:
            return RiskStatus(
                total_exposure=self.total_exposure(),
                daily_pnl=self._daily_pnl,
                portfolio_var=self.var_calculator.calculate_portfolio_var(self._positions, self.volatility_tracker),
                trades_today=self._daily_trade_count,
                is_paused=self.is_paused(),
                breaker_state=self.circuit_breaker.state.value,
                positions=dict(self._positions),
            )

    @property
    def breaker_state(self) -> CircuitState:
        return self.circuit_breaker.state

    def _maybe_rollover_locked(self, now: datetime) -> bool:
        today = now.astimezone(timezone.utc).date()
        if today <= self._trading_day:
            return False
        self._trading_day = today
        self.reset_daily()
        if self.logger:
            self.logger.log_info(f"New trading day {today.isoformat()} - daily ledger cleared")
        return True

    def _publish_breach(self, limit_type: str, current: Decimal, maximum: Decimal) -> None:
        if self.event_bus is not None:
            self.event_bus.publish(RiskLimitBreached(limit_type=limit_type, current=current, max=maximum))
