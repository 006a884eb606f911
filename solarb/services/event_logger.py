from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from typing import Optional, Protocol

from solarb.core.events import (
    CircuitBreakerStateChanged,
    EmergencyStop,
    EventBus,
    HealthCheck,
    RiskLimitBreached,
    Subscription,
    SystemStarted,
    SystemStopping,
    TradeExecuted,
    TradeRejected,
    TradingEvent,
)


class LoggerProtocol(Protocol):
    def log_debug(self, message: str) -> None: ...
    def log_info(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...
    def log_error(self, message: str) -> None: ...
    def log_breaker_change(self, old_state: str, new_state: str) -> None: ...


@dataclass
class EventLogger:
    """EventBus consumer that writes every event to the log.

    Delivery is lossy, so a lag counter is reported instead of assuming
    every event arrives.
    """

    event_bus: EventBus
    logger: LoggerProtocol

    handled: int = field(default=0, init=False)
    _sub: Optional[Subscription] = field(default=None, init=False, repr=False)
    _task: Optional[asyncio.Task] = field(default=None, init=False, repr=False)
    _reported_lag: int = field(default=0, init=False)

    def start(self) -> None:
        if self._sub is None:
            self._sub = self.event_bus.subscribe()
        if self._task is None:
            self._task = asyncio.create_task(self.run())

    async def run(self) -> None:
        if self._sub is None:
            self._sub = self.event_bus.subscribe()
        async for event in self._sub:
            self.handle(event)
            self._report_lag()

    async def stop(self) -> None:
        if self._sub is not None:
            self._sub.close()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

    def handle(self, event: TradingEvent) -> None:
        self.handled += 1

        if isinstance(event, TradeExecuted):
            if event.success:
                self.logger.log_debug(
                    f"event: trade {event.id} {event.pair} profit={event.profit} ({event.execution_time_ms}ms)"
                )
            else:
                self.logger.log_warning(f"event: trade {event.id} {event.pair} failed")
        elif isinstance(event, CircuitBreakerStateChanged):
            self.logger.log_breaker_change(event.old_state, event.new_state)
        elif isinstance(event, EmergencyStop):
            self.logger.log_error(f"event: EMERGENCY STOP: {event.reason}")
        elif isinstance(event, RiskLimitBreached):
            self.logger.log_warning(f"event: risk limit {event.limit_type} breached: {event.current} > {event.max}")
        elif isinstance(event, (SystemStarted, SystemStopping, HealthCheck, TradeRejected)):
            self.logger.log_debug(f"event: {event}")
        else:
            self.logger.log_debug(f"event: {type(event).__name__}")

    def _report_lag(self) -> None:
        if self._sub is None or self._sub.lagged == self._reported_lag:
            return
        missed = self._sub.lagged - self._reported_lag
        self._reported_lag = self._sub.lagged
        self.logger.log_warning(f"Event logger lagging: {missed} events dropped")
