from __future__ import annotations

import os
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Optional, Tuple

from dotenv import load_dotenv

from solarb.core.errors import ConfigError
from solarb.core.risk_manager import RiskConfig
from solarb.models.market import TokenPair


DEFAULT_PAIRS = "SOL/USDC,RAY/USDC,ORCA/USDC,JUP/USDC,RAY/SOL"


def _getenv_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "y", "on"}


def _getenv_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return float(raw)


def _getenv_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    return int(raw)


def _getenv_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name)
    if raw is None or raw == "":
        raw = default
    try:
        return Decimal(raw.strip())
    except InvalidOperation as e:
        raise ConfigError(f"{name} must be a decimal number, got {raw!r}") from e


@dataclass(frozen=True)
class BotConfig:
    """Static startup config for the arbitrage engine."""

    dry_run: bool
    mock_mode: bool
    log_level: str
    wallet: str

    trading_pairs: Tuple[TokenPair, ...]

    max_position_size: Decimal
    max_total_exposure: Decimal
    max_daily_loss: Decimal
    min_profit_threshold: Decimal
    max_slippage: Decimal
    loss_cooldown_seconds: int

    circuit_breaker_failures: int
    circuit_breaker_successes: int
    circuit_breaker_timeout_seconds: float

    volatility_window: int
    var_confidence: float
    var_limit_percent: float

    max_price_age_seconds: float
    max_hops: int
    poll_interval_ms: int

    event_bus_capacity: int
    price_rps: int
    quote_rps: int

    kill_switch_path: str
    alert_on_profit: float
    alert_on_loss: float

    @classmethod
    def load(cls, dotenv_path: Optional[str] = None) -> "BotConfig":
        load_dotenv(dotenv_path=dotenv_path)

        pairs_raw = os.getenv("TRADING_PAIRS", DEFAULT_PAIRS)
        pairs = tuple(TokenPair.parse(p) for p in pairs_raw.split(",") if p.strip())

        return cls(
            dry_run=_getenv_bool("DRY_RUN", True),
            mock_mode=_getenv_bool("MOCK_MODE", True),
            log_level=os.getenv("LOG_LEVEL", "info"),
            wallet=os.getenv("WALLET", "paper-wallet"),
            trading_pairs=pairs,
            max_position_size=_getenv_decimal("MAX_POSITION_SIZE", "1000"),
            max_total_exposure=_getenv_decimal("MAX_TOTAL_EXPOSURE", "5000"),
            max_daily_loss=_getenv_decimal("MAX_DAILY_LOSS", "100"),
            min_profit_threshold=_getenv_decimal("MIN_PROFIT_THRESHOLD", "0.5"),
            max_slippage=_getenv_decimal("MAX_SLIPPAGE", "1.0"),
            loss_cooldown_seconds=_getenv_int("LOSS_COOLDOWN_SECONDS", 300),
            circuit_breaker_failures=_getenv_int("CIRCUIT_BREAKER_FAILURES", 3),
            circuit_breaker_successes=_getenv_int("CIRCUIT_BREAKER_SUCCESSES", 5),
            circuit_breaker_timeout_seconds=_getenv_float("CIRCUIT_BREAKER_TIMEOUT_SECONDS", 300.0),
            volatility_window=_getenv_int("VOLATILITY_WINDOW", 20),
            var_confidence=_getenv_float("VAR_CONFIDENCE", 0.95),
            var_limit_percent=_getenv_float("VAR_LIMIT_PERCENT", 2.0),
            max_price_age_seconds=_getenv_float("MAX_PRICE_AGE_SECONDS", 5.0),
            max_hops=_getenv_int("MAX_HOPS", 4),
            poll_interval_ms=_getenv_int("POLL_INTERVAL_MS", 500),
            event_bus_capacity=_getenv_int("EVENT_BUS_CAPACITY", 1024),
            price_rps=_getenv_int("PRICE_RPS", 10),
            quote_rps=_getenv_int("QUOTE_RPS", 5),
            kill_switch_path=os.getenv("KILL_SWITCH_PATH", ".kill"),
            alert_on_profit=_getenv_float("ALERT_ON_PROFIT", 50.0),
            alert_on_loss=_getenv_float("ALERT_ON_LOSS", 10.0),
        )

    def validate(self) -> None:
        if not self.trading_pairs:
            raise ConfigError("TRADING_PAIRS must list at least one pair")
        if self.max_position_size <= 0:
            raise ConfigError("MAX_POSITION_SIZE must be > 0")
        if self.max_total_exposure < self.max_position_size:
            raise ConfigError("MAX_TOTAL_EXPOSURE must be >= MAX_POSITION_SIZE")
        if self.max_daily_loss <= 0:
            raise ConfigError("MAX_DAILY_LOSS must be > 0")
        if self.min_profit_threshold < 0:
            raise ConfigError("MIN_PROFIT_THRESHOLD must be >= 0")
        if self.max_slippage <= 0:
            raise ConfigError("MAX_SLIPPAGE must be > 0")
        if self.loss_cooldown_seconds < 0:
            raise ConfigError("LOSS_COOLDOWN_SECONDS must be >= 0")
        if self.circuit_breaker_failures <= 0 or self.circuit_breaker_successes <= 0:
            raise ConfigError("CIRCUIT_BREAKER_FAILURES and CIRCUIT_BREAKER_SUCCESSES must be > 0")
        if self.circuit_breaker_timeout_seconds < 0:
            raise ConfigError("CIRCUIT_BREAKER_TIMEOUT_SECONDS must be >= 0")
        if self.volatility_window < 3:
            raise ConfigError("VOLATILITY_WINDOW must be >= 3")
        if not (0 < self.var_confidence < 1):
            raise ConfigError("VAR_CONFIDENCE must be in (0, 1)")
        if not (0 < self.var_limit_percent <= 100):
            raise ConfigError("VAR_LIMIT_PERCENT must be in (0, 100]")
        if self.max_price_age_seconds <= 0:
            raise ConfigError("MAX_PRICE_AGE_SECONDS must be > 0")
        if self.max_hops < 2:
            raise ConfigError("MAX_HOPS must be >= 2")
        if self.poll_interval_ms < 50:
            raise ConfigError("POLL_INTERVAL_MS must be >= 50")
        if self.event_bus_capacity <= 0:
            raise ConfigError("EVENT_BUS_CAPACITY must be > 0")
        if self.price_rps <= 0 or self.quote_rps <= 0:
            raise ConfigError("PRICE_RPS and QUOTE_RPS must be > 0")
        if not self.dry_run and not self.mock_mode:
            # Only the paper executor exists; live submission would fail every trade.
            raise ConfigError("DRY_RUN=false requires MOCK_MODE=true (no on-chain executor is configured)")

    def risk_config(self) -> RiskConfig:
        return RiskConfig(
            max_position_size=self.max_position_size,
            max_total_exposure=self.max_total_exposure,
            max_daily_loss=self.max_daily_loss,
            min_profit_threshold=self.min_profit_threshold,
            max_slippage=self.max_slippage,
            loss_cooldown_seconds=self.loss_cooldown_seconds,
        )

    @property
    def mode(self) -> str:
        return "dry-run" if self.dry_run else "live"
