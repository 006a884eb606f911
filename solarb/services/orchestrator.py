from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Protocol, Sequence

from solarb.core.bot_config import BotConfig
from solarb.core.circuit_breaker import CircuitState
from solarb.core.dynamic_config import DynamicConfig, DynamicConfigProvider
from solarb.core.errors import (
    CircuitBreakerOpenError,
    DailyLossLimitError,
    ErrorSeverity,
    PriceNotAvailableError,
    VarExceededError,
    backoff_seconds,
    classify_error,
)
from solarb.core.events import (
    EmergencyStop,
    EventBus,
    HealthCheck,
    OpportunityDetected,
    OpportunityExpired,
    PriceUpdate,
    RiskLimitBreached,
    SystemStarted,
    SystemStopping,
    TradeExecuted,
    TradeRejected,
)
from solarb.core.risk_manager import Reduced, Rejected, RiskManager, RiskStatus
from solarb.models.market import PriceQuote, TokenPair, Venue
from solarb.models.trade import ArbitrageOpportunity, TradeOutcome, TradeResult
from solarb.services.alerts import AlertSink, KillSwitch
from solarb.strategies.base import StrategyRegistry
from solarb.strategies.detector import OpportunityDetector
from solarb.strategies.pathfinder import PathFinder, TradingPath


# Used for sizing when an opportunity carries no liquidity hint.
DEFAULT_AVAILABLE_LIQUIDITY = Decimal("10000")

_PATH_NAMESPACE = uuid.UUID("0b9d5f3c-8a61-4c1e-b7a2-5e4f9d0c3a71")


class Logger(Protocol):
    def log_debug(self, message: str) -> None: ...
    def log_info(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...
    def log_error(self, message: str) -> None: ...
    def log_critical(self, message: str) -> None: ...
    def log_opportunity(self, opp: ArbitrageOpportunity, size: Decimal) -> None: ...
    def log_trade_result(self, opp: ArbitrageOpportunity, result: TradeResult, elapsed_ms: int) -> None: ...
    def log_risk_status(self, status: RiskStatus) -> None: ...
    def log_backoff(self, consecutive_errors: int, delay_seconds: float) -> None: ...


class PriceFetcher(Protocol):
    async def fetch_all(self, pairs: Sequence[TokenPair]) -> List[PriceQuote]: ...


class Executor(Protocol):
    async def execute(
        self,
        wallet: str,
        opportunity: ArbitrageOpportunity,
        size: Decimal,
        *,
        submit: bool,
        venue_hints: Sequence[Venue] = (),
    ) -> TradeResult: ...


@dataclass
class TradingOrchestrator:
    """Main loop: prices -> detection -> risk check -> execution -> recording.

    One cycle handles at most one opportunity. Errors are classified; critical
    ones raise an alert, the rest back off exponentially on a consecutive-error
    counter that resets after the next clean cycle.
    """

    config: BotConfig
    price_fetcher: PriceFetcher
    executor: Executor
    risk_manager: RiskManager
    event_bus: EventBus
    logger: Logger
    dynamic_config: DynamicConfigProvider

    strategies: StrategyRegistry = field(default_factory=StrategyRegistry)
    alerts: Optional[AlertSink] = None
    kill_switch: Optional[KillSwitch] = None
    alert_timeout_seconds: float = 2.0
    health_every_cycles: int = 10

    detector: OpportunityDetector = field(init=False)
    path_finder: PathFinder = field(init=False)

    _running: bool = field(default=False, init=False)
    _stopped: bool = field(default=False, init=False)
    _stop_event: asyncio.Event | None = field(default=None, init=False, repr=False)
    _market_lock: asyncio.Lock = field(default_factory=asyncio.Lock, init=False, repr=False)
    _cycle: int = field(default=0, init=False)
    _consecutive_errors: int = field(default=0, init=False)
    _total_trades: int = field(default=0, init=False)
    _successful_trades: int = field(default=0, init=False)
    _started_at: float = field(default_factory=time.monotonic, init=False)

    def __post_init__(self) -> None:
        self.detector = OpportunityDetector(logger=self.logger)
        self.path_finder = PathFinder(max_hops=self.config.max_hops, logger=self.logger)

    async def start(self) -> None:
        self._running = True
        self._stopped = False
        self._stop_event = asyncio.Event()
        self._started_at = time.monotonic()

        self.event_bus.publish(SystemStarted(mode=self.config.mode))
        pairs = ", ".join(p.symbol() for p in self.config.trading_pairs)
        self.logger.log_info(
            f"Starting arbitrage engine | mode={self.config.mode} mock={self.config.mock_mode} "
            f"pairs=[{pairs}] strategies={self.strategies.count()}"
        )

        while self._running:
            sleep_for = await self.run_cycle()
            if not self._running:
                break

            # Allow stop() to interrupt the sleep.
            try:
                if self._stop_event is not None:
                    await asyncio.wait_for(self._stop_event.wait(), timeout=sleep_for)
                else:
                    await asyncio.sleep(sleep_for)
            except asyncio.TimeoutError:
                pass

    def stop(self, reason: str = "shutdown requested") -> None:
        self._running = False
        if self._stop_event is not None:
            self._stop_event.set()
        if not self._stopped:
            self._stopped = True
            self.event_bus.publish(SystemStopping(reason=reason))
            self.logger.log_info(f"Stopping engine: {reason}")

    async def run_cycle(self) -> float:
        """Run one cycle and return how long to sleep before the next."""

        self._cycle += 1
        settings = self.dynamic_config.get()
        poll_seconds = settings.performance.poll_interval_ms / 1000.0

        if self.kill_switch is not None and self.kill_switch.is_triggered():
            await self._handle_kill_switch()
            return 0.0

        if not settings.trading.enabled:
            self.logger.log_debug("Trading disabled by dynamic config, skipping cycle")
            return poll_seconds

        started = time.monotonic()
        try:
            await self.scan_once(settings)
            if self._cycle % self.health_every_cycles == 0:
                await self.report_health(settings)
        except Exception as e:
            return await self._handle_error(e, poll_seconds)

        self._consecutive_errors = 0
        return max(0.0, poll_seconds - (time.monotonic() - started))

    async def scan_once(self, settings: DynamicConfig) -> None:
        self.risk_manager.maybe_rollover()

        snapshot = await self._collect_prices()
        opportunities = await self._detect(snapshot)

        best = self._select(opportunities, settings)
        if best is None:
            return

        await self._evaluate_and_execute(best, settings)

    async def report_health(self, settings: DynamicConfig) -> None:
        status = await self.risk_manager.status()
        self.logger.log_risk_status(status)

        uptime = int(time.monotonic() - self._started_at)
        self.event_bus.publish(
            HealthCheck(uptime_secs=uptime, total_trades=self._total_trades, success_rate=self.success_rate)
        )

        max_exposure = self.risk_manager.config.max_total_exposure
        limit = max_exposure * Decimal(str(settings.risk.var_limit_percent)) / 100
        if status.portfolio_var > limit:
            self.event_bus.publish(RiskLimitBreached(limit_type="var", current=status.portfolio_var, max=limit))
            var_pct = (status.portfolio_var / max_exposure * 100).quantize(Decimal("0.01"))
            raise VarExceededError(current=var_pct, limit=settings.risk.var_limit_percent)

    @property
    def cycle_count(self) -> int:
        return self._cycle

    @property
    def consecutive_errors(self) -> int:
        return self._consecutive_errors

    @property
    def total_trades(self) -> int:
        return self._total_trades

    @property
    def success_rate(self) -> float:
        if self._total_trades == 0:
            return 0.0
        return self._successful_trades / self._total_trades

    @property
    def is_running(self) -> bool:
        return self._running

    async def _collect_prices(self) -> List[PriceQuote]:
        # Network fetch happens before any lock is taken.
        quotes = await self.price_fetcher.fetch_all(list(self.config.trading_pairs))
        if not quotes:
            raise PriceNotAvailableError("no quotes returned by any price source")

        async with self._market_lock:
            self.detector.update_prices(quotes)
            self.detector.clear_stale(self.config.max_price_age_seconds)
            snapshot = self.detector.snapshot()
            self.path_finder.rebuild(snapshot)

        if not snapshot:
            raise PriceNotAvailableError("all quotes are stale")

        self.risk_manager.update_prices(snapshot)
        await self.strategies.update_all(snapshot)

        for q in quotes:
            self.event_bus.publish(
                PriceUpdate(
                    pair=q.pair.symbol(),
                    price=q.mid_price,
                    source=q.venue.value,
                    timestamp=q.timestamp.timestamp(),
                )
            )
        return snapshot

    async def _detect(self, snapshot: List[PriceQuote]) -> List[ArbitrageOpportunity]:
        async with self._market_lock:
            direct = self.detector.find_all_opportunities()
            paths = self.path_finder.find_all_profitable_paths()

        for path in paths:
            self._report_path(path)
        if paths:
            self.logger.log_info(f"🔺 {len(paths)} profitable cycles, best {paths[0].describe()}")

        opportunities = direct + await self.strategies.analyze_all(snapshot)
        for opp in opportunities:
            self.event_bus.publish(
                OpportunityDetected(id=opp.id, strategy=opp.strategy, expected_profit_bps=opp.net_profit_bps)
            )

        opportunities.sort(key=lambda o: o.net_profit_pct, reverse=True)
        if opportunities:
            self.logger.log_debug(f"Found {len(opportunities)} opportunities, {len(paths)} profitable cycles")
        return opportunities

    def _report_path(self, path: TradingPath) -> None:
        # Multi-hop execution is not wired up; cycles are reported only.
        path_id = str(uuid.uuid5(_PATH_NAMESPACE, "|".join("/".join(k) for k in path.cycle_key())))
        self.logger.log_debug(f"Triangular cycle: {path.describe()}")
        self.event_bus.publish(
            OpportunityDetected(id=path_id, strategy="triangular", expected_profit_bps=path.profit_percentage() * 100)
        )

    def _select(
        self, opportunities: List[ArbitrageOpportunity], settings: DynamicConfig
    ) -> Optional[ArbitrageOpportunity]:
        floor_pct = Decimal(str(settings.trading.min_profit_bps)) / 100
        for opp in opportunities:
            if opp.net_profit_pct >= floor_pct:
                return opp
        return None

    async def _evaluate_and_execute(self, opp: ArbitrageOpportunity, settings: DynamicConfig) -> None:
        if opp.is_expired():
            self.event_bus.publish(OpportunityExpired(id=opp.id, reason="expired before risk check"))
            self.logger.log_debug(f"Opportunity {opp.id} expired before risk check")
            return

        pair = opp.pair.symbol()
        liquidity = opp.recommended_size if opp.recommended_size is not None else DEFAULT_AVAILABLE_LIQUIDITY
        size = self.risk_manager.calculate_position_size(pair, opp.net_profit_pct, liquidity)
        size = min(size, Decimal(settings.trading.max_position_size))
        if size <= 0:
            self.event_bus.publish(TradeRejected(id=opp.id, reason="Position size computed as zero"))
            return

        decision = await self.risk_manager.can_trade(pair, size)
        if isinstance(decision, Rejected):
            self.logger.log_info(f"Trade rejected for {pair}: {decision.reason}")
            self.event_bus.publish(TradeRejected(id=opp.id, reason=decision.reason))
            return
        if isinstance(decision, Reduced):
            self.logger.log_info(f"Trade size for {pair} reduced to {decision.new_size:.2f}: {decision.reason}")
            size = decision.new_size
        else:
            size = decision.size

        self.logger.log_opportunity(opp, size)

        started = time.monotonic()
        result = await self._dispatch(opp, size)
        elapsed_ms = int((time.monotonic() - started) * 1000)

        await self._record(opp, result, elapsed_ms, settings)

    async def _dispatch(self, opp: ArbitrageOpportunity, size: Decimal) -> TradeResult:
        pair = opp.pair.symbol()

        # In-flight size counts toward exposure until the trade is recorded.
        held = self.risk_manager.position(pair)
        self.risk_manager.update_position(pair, held + size)
        try:
            return await self.executor.execute(
                self.config.wallet,
                opp,
                size,
                submit=not self.config.dry_run,
                venue_hints=(opp.buy_venue, opp.sell_venue),
            )
        except Exception as e:
            self.logger.log_error(f"Execution failed for {pair}: {e}")
            return TradeResult(
                opportunity_id=opp.id,
                success=False,
                actual_profit=Decimal(0),
                error=str(e),
                executed_at=datetime.now(timezone.utc),
            )
        finally:
            self.risk_manager.update_position(pair, held)

    async def _record(
        self, opp: ArbitrageOpportunity, result: TradeResult, elapsed_ms: int, settings: DynamicConfig
    ) -> None:
        pair = opp.pair.symbol()
        was_open = self.risk_manager.breaker_state is CircuitState.OPEN

        await self.risk_manager.record_trade(
            TradeOutcome(
                timestamp=result.executed_at or datetime.now(timezone.utc),
                pair=pair,
                profit_loss=result.actual_profit,
                was_successful=result.success,
            )
        )

        self._total_trades += 1
        if result.success:
            self._successful_trades += 1

        self.event_bus.publish(
            TradeExecuted(
                id=opp.id,
                pair=pair,
                success=result.success,
                profit=result.actual_profit,
                execution_time_ms=elapsed_ms,
            )
        )
        self.logger.log_trade_result(opp, result, elapsed_ms)

        profit = result.actual_profit
        if profit >= Decimal(str(settings.alerts.alert_on_profit)):
            await self._send_alert(f"Profit ${profit:.2f} on {pair} ({opp.buy_venue.display_name} -> {opp.sell_venue.display_name})")
        elif profit < 0 and -profit >= Decimal(str(settings.alerts.alert_on_loss)):
            await self._send_alert(f"Loss ${-profit:.2f} on {pair}", critical=True)

        if self.risk_manager.daily_loss_breached():
            raise DailyLossLimitError(
                current=-self.risk_manager.daily_pnl(), limit=self.risk_manager.config.max_daily_loss
            )
        if not was_open and self.risk_manager.breaker_state is CircuitState.OPEN:
            raise CircuitBreakerOpenError(
                f"{self.risk_manager.circuit_breaker.consecutive_failures} consecutive losing trades"
            )

    async def _handle_error(self, exc: Exception, poll_seconds: float) -> float:
        self._consecutive_errors += 1
        severity = classify_error(exc)

        if severity is ErrorSeverity.CRITICAL:
            # The breaker enforces the halt; no retry and no backoff here.
            self.logger.log_critical(f"Critical error: {exc}")
            await self._send_alert(f"CRITICAL: {exc}", critical=True)
            return poll_seconds

        if severity is ErrorSeverity.WARNING:
            self.logger.log_warning(f"Transient error: {exc}")
        else:
            self.logger.log_error(f"Cycle error: {exc}")

        delay = float(backoff_seconds(self._consecutive_errors))
        self.logger.log_backoff(self._consecutive_errors, delay)
        return delay

    async def _handle_kill_switch(self) -> None:
        reason = "kill switch triggered"
        self.logger.log_critical("Kill switch detected, stopping trading")
        self.event_bus.publish(EmergencyStop(reason=reason))
        await self._send_alert("Kill switch triggered, trading stopped", critical=True)
        self.stop(reason=reason)

    async def _send_alert(self, message: str, *, critical: bool = False) -> None:
        if self.alerts is None:
            return

        send = self.alerts.send_critical if critical else self.alerts.send_info
        try:
            await asyncio.wait_for(send(message), timeout=self.alert_timeout_seconds)
        except asyncio.TimeoutError:
            self.logger.log_warning(f"Alert dispatch timed out after {self.alert_timeout_seconds}s")
        except Exception as e:
            self.logger.log_warning(f"Alert dispatch failed: {e}")
