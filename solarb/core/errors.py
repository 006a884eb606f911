from __future__ import annotations

import asyncio
from enum import Enum
from typing import Awaitable, Callable, Optional, TypeVar


T = TypeVar("T")


class ErrorSeverity(Enum):
    WARNING = "warning"  # transient, retried with backoff
    ERROR = "error"  # operational, logged and skipped
    CRITICAL = "critical"  # alerts, never silently retried


class ArbitrageError(Exception):
    severity: ErrorSeverity = ErrorSeverity.ERROR

    def is_retryable(self) -> bool:
        return self.severity is ErrorSeverity.WARNING

    def is_critical(self) -> bool:
        return self.severity is ErrorSeverity.CRITICAL


class TransientError(ArbitrageError):
    severity = ErrorSeverity.WARNING


class PriceFetchError(TransientError):
    pass


class RpcTimeoutError(TransientError):
    def __init__(self, timeout_ms: int) -> None:
        super().__init__(f"RPC connection timeout after {timeout_ms}ms")
        self.timeout_ms = timeout_ms


class RateLimitedError(TransientError):
    def __init__(self, endpoint: str) -> None:
        super().__init__(f"Rate limited by {endpoint}")
        self.endpoint = endpoint


class StalePriceError(TransientError):
    def __init__(self, pair: str, age_seconds: float, max_age: float) -> None:
        super().__init__(f"Stale price data: {pair} is {age_seconds:.0f}s old (max {max_age:.0f}s)")
        self.pair = pair
        self.age_seconds = age_seconds
        self.max_age = max_age


class PriceNotAvailableError(TransientError):
    pass


class InvalidOpportunityError(ArbitrageError):
    pass


class UnknownTokenError(ArbitrageError):
    def __init__(self, symbol: str) -> None:
        super().__init__(f"Unknown token: {symbol}")
        self.symbol = symbol


class StrategyError(ArbitrageError):
    def __init__(self, strategy: str, reason: str) -> None:
        super().__init__(f"Strategy '{strategy}' failed: {reason}")
        self.strategy = strategy
        self.reason = reason


class ExecutionError(ArbitrageError):
    pass


class ConfigError(ArbitrageError, ValueError):
    pass


class CriticalError(ArbitrageError):
    severity = ErrorSeverity.CRITICAL


class CircuitBreakerOpenError(CriticalError):
    def __init__(self, reason: str) -> None:
        super().__init__(f"Circuit breaker is open: {reason}")
        self.reason = reason


class DailyLossLimitError(CriticalError):
    def __init__(self, current: object, limit: object) -> None:
        super().__init__(f"Daily loss limit reached: ${current} / ${limit}")
        self.current = current
        self.limit = limit


class VarExceededError(CriticalError):
    def __init__(self, current: object, limit: object) -> None:
        super().__init__(f"VaR exceeded: {current}% > {limit}%")
        self.current = current
        self.limit = limit


def classify_error(exc: BaseException) -> ErrorSeverity:
    if isinstance(exc, ArbitrageError):
        return exc.severity
    if isinstance(exc, (asyncio.TimeoutError, TimeoutError, ConnectionError)):
        return ErrorSeverity.WARNING

    text = str(exc).lower()
    if "timeout" in text or "rate limit" in text:
        return ErrorSeverity.WARNING
    return ErrorSeverity.ERROR


def backoff_seconds(consecutive_errors: int, cap_exponent: int = 5) -> int:
    return 2 ** min(max(consecutive_errors, 0), cap_exponent)


async def retry_with_backoff(
    fn: Callable[[], Awaitable[T]],
    max_attempts: int = 3,
    base_delay: float = 0.5,
    *,
    on_retry: Optional[Callable[[BaseException, int, float], None]] = None,
) -> T:
    """Run ``fn`` until it succeeds, retrying only transient failures.

    Non-retryable errors propagate immediately. When attempts are exhausted
    the last error is raised.
    """

    attempt = 0
    while True:
        try:
            return await fn()
        except Exception as e:
            attempt += 1
            if classify_error(e) is not ErrorSeverity.WARNING or attempt >= max_attempts:
                raise
            delay = base_delay * (2 ** (attempt - 1))
            if on_retry is not None:
                on_retry(e, attempt, delay)
            await asyncio.sleep(delay)
