from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Optional, Protocol

from solarb.core.events import CircuitBreakerStateChanged, EventBus


class CircuitState(Enum):
    CLOSED = "Closed"  # trading allowed
    HALF_OPEN = "HalfOpen"  # probation, trading allowed
    OPEN = "Open"  # trading blocked


class LoggerProtocol(Protocol):
    def log_info(self, message: str) -> None: ...
    def log_warning(self, message: str) -> None: ...
    def log_error(self, message: str) -> None: ...


@dataclass
class CircuitBreaker:
    """Three-state failure gate.

    Closed -> Open after ``failure_threshold`` consecutive failures.
    Open -> HalfOpen lazily, on the first ``can_execute()`` poll after
    ``timeout_seconds`` since the last failure.
    HalfOpen -> Closed after ``success_threshold`` consecutive successes;
    failures in HalfOpen reopen only once the failure threshold is reached again.
    """

    failure_threshold: int = 3
    success_threshold: int = 5
    timeout_seconds: float = 300.0
    event_bus: Optional[EventBus] = None
    logger: Optional[LoggerProtocol] = None
    clock: Callable[[], float] = field(default=time.monotonic, repr=False)

    state: CircuitState = field(default=CircuitState.CLOSED, init=False)
    consecutive_failures: int = field(default=0, init=False)
    consecutive_successes: int = field(default=0, init=False)
    last_failure_time: Optional[float] = field(default=None, init=False)

    def can_execute(self) -> bool:
        if self.state is CircuitState.OPEN:
            if self.last_failure_time is None:
                return False
            if self.clock() - self.last_failure_time < self.timeout_seconds:
                return False
            self.consecutive_failures = 0
            self.consecutive_successes = 0
            self._transition(CircuitState.HALF_OPEN)
            if self.logger:
                self.logger.log_warning("Circuit breaker HALF-OPEN - testing recovery")
        return True

    def record_success(self) -> None:
        self.consecutive_successes += 1
        self.consecutive_failures = 0

        if self.state is CircuitState.HALF_OPEN and self.consecutive_successes >= self.success_threshold:
            self._transition(CircuitState.CLOSED)
            if self.logger:
                self.logger.log_info("Circuit breaker CLOSED - system recovered")

    def record_failure(self) -> None:
        self.consecutive_failures += 1
        self.consecutive_successes = 0
        self.last_failure_time = self.clock()

        if self.state is not CircuitState.OPEN and self.consecutive_failures >= self.failure_threshold:
            self._transition(CircuitState.OPEN)
            if self.logger:
                self.logger.log_error(
                    f"Circuit breaker OPEN - trading halted after {self.consecutive_failures} consecutive failures"
                )

    def force_open(self, reason: str) -> None:
        self.last_failure_time = self.clock()
        self.consecutive_successes = 0
        if self.state is CircuitState.OPEN:
            return
        self._transition(CircuitState.OPEN)
        if self.logger:
            self.logger.log_error(f"Circuit breaker FORCED OPEN - {reason}")

    def reset(self) -> None:
        self.consecutive_failures = 0
        self.consecutive_successes = 0
        self.last_failure_time = None
        if self.state is not CircuitState.CLOSED:
            self._transition(CircuitState.CLOSED)

    def _transition(self, new_state: CircuitState) -> None:
        old_state = self.state
        self.state = new_state
        if self.event_bus is not None:
            self.event_bus.publish(
                CircuitBreakerStateChanged(old_state=old_state.value, new_state=new_state.value)
            )
