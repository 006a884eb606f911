"""Publish/subscribe event bus decoupling the trading components.

Delivery is best-effort: every subscriber owns a bounded queue and a
subscriber that falls more than ``capacity`` events behind loses the oldest
ones. Consumers (audit, alerting) must tolerate gaps; anything needing
at-least-once delivery has to put a durable queue on its own side.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Union


@dataclass(frozen=True)
class SystemStarted:
    mode: str


@dataclass(frozen=True)
class SystemStopping:
    reason: str


@dataclass(frozen=True)
class EmergencyStop:
    reason: str


@dataclass(frozen=True)
class PriceUpdate:
    pair: str
    price: Decimal
    source: str
    timestamp: float


@dataclass(frozen=True)
class OpportunityDetected:
    id: str
    strategy: str
    expected_profit_bps: Decimal


@dataclass(frozen=True)
class OpportunityExpired:
    id: str
    reason: str


@dataclass(frozen=True)
class TradeExecuted:
    id: str
    pair: str
    success: bool
    profit: Decimal
    execution_time_ms: int


@dataclass(frozen=True)
class TradeRejected:
    id: str
    reason: str


@dataclass(frozen=True)
class CircuitBreakerStateChanged:
    old_state: str
    new_state: str


@dataclass(frozen=True)
class RiskLimitBreached:
    limit_type: str
    current: Decimal
    max: Decimal


@dataclass(frozen=True)
class HealthCheck:
    uptime_secs: int
    total_trades: int
    success_rate: float


TradingEvent = Union[
    SystemStarted,
    SystemStopping,
    EmergencyStop,
    PriceUpdate,
    OpportunityDetected,
    OpportunityExpired,
    TradeExecuted,
    TradeRejected,
    CircuitBreakerStateChanged,
    RiskLimitBreached,
    HealthCheck,
]


@dataclass(eq=False)
class Subscription:
    """Independent receive handle returned by EventBus.subscribe()."""

    bus: "EventBus"
    capacity: int

    lagged: int = field(default=0, init=False)
    _queue: "asyncio.Queue[TradingEvent]" = field(init=False, repr=False)
    _closed: bool = field(default=False, init=False)

    def __post_init__(self) -> None:
        self._queue = asyncio.Queue(maxsize=self.capacity)

    def _deliver(self, event: TradingEvent) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.lagged += 1
        self._queue.put_nowait(event)

    async def recv(self) -> TradingEvent:
        return await self._queue.get()

    def try_recv(self) -> Optional[TradingEvent]:
        try:
            return self._queue.get_nowait()
        except asyncio.QueueEmpty:
            return None

    def pending(self) -> int:
        return self._queue.qsize()

    def close(self) -> None:
        if not self._closed:
            self._closed = True
            self.bus._unsubscribe(self)

    @property
    def closed(self) -> bool:
        return self._closed

    def __aiter__(self) -> "Subscription":
        return self

    async def __anext__(self) -> TradingEvent:
        if self._closed and self._queue.empty():
            raise StopAsyncIteration
        return await self.recv()


@dataclass
class EventBus:
    capacity: int = 1024

    _subscribers: List[Subscription] = field(default_factory=list, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.capacity <= 0:
            raise ValueError("capacity must be > 0")

    def publish(self, event: TradingEvent) -> int:
        """Send ``event`` to every live subscriber and return how many got it.

        Publishing with nobody listening is a silent no-op returning 0.
        """

        subscribers = list(self._subscribers)
        for sub in subscribers:
            sub._deliver(event)
        return len(subscribers)

    def subscribe(self) -> Subscription:
        sub = Subscription(bus=self, capacity=self.capacity)
        self._subscribers.append(sub)
        return sub

    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def _unsubscribe(self, sub: Subscription) -> None:
        try:
            self._subscribers.remove(sub)
        except ValueError:
            pass
