from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Protocol

from solarb.core.bot_config import BotConfig


@dataclass(frozen=True)
class TradingSettings:
    enabled: bool = True
    max_position_size: int = 1000
    min_profit_bps: float = 50.0
    max_slippage_bps: int = 100


@dataclass(frozen=True)
class RiskSettings:
    circuit_breaker_enabled: bool = True
    max_consecutive_losses: int = 3
    max_daily_loss: float = 100.0
    var_limit_percent: float = 2.0


@dataclass(frozen=True)
class PerformanceSettings:
    poll_interval_ms: int = 500
    enable_parallel_fetching: bool = True


@dataclass(frozen=True)
class AlertSettings:
    alert_on_profit: float = 50.0
    alert_on_loss: float = 10.0


@dataclass(frozen=True)
class DynamicConfig:
    """Read-only snapshot of the hot-reloadable settings."""

    version: str = "1"
    trading: TradingSettings = field(default_factory=TradingSettings)
    risk: RiskSettings = field(default_factory=RiskSettings)
    performance: PerformanceSettings = field(default_factory=PerformanceSettings)
    alerts: AlertSettings = field(default_factory=AlertSettings)

    @classmethod
    def from_bot_config(cls, cfg: BotConfig) -> "DynamicConfig":
        return cls(
            version="env",
            trading=TradingSettings(
                enabled=True,
                max_position_size=int(cfg.max_position_size),
                min_profit_bps=float(cfg.min_profit_threshold * 100),
                max_slippage_bps=int(cfg.max_slippage * 100),
            ),
            risk=RiskSettings(
                circuit_breaker_enabled=True,
                max_consecutive_losses=cfg.circuit_breaker_failures,
                max_daily_loss=float(cfg.max_daily_loss),
                var_limit_percent=cfg.var_limit_percent,
            ),
            performance=PerformanceSettings(poll_interval_ms=cfg.poll_interval_ms),
            alerts=AlertSettings(alert_on_profit=cfg.alert_on_profit, alert_on_loss=cfg.alert_on_loss),
        )

    def validate(self) -> None:
        if self.trading.max_position_size <= 0:
            raise ValueError("trading.max_position_size must be > 0")
        if self.trading.min_profit_bps < 0:
            raise ValueError("trading.min_profit_bps must be >= 0")
        if self.trading.max_slippage_bps <= 0:
            raise ValueError("trading.max_slippage_bps must be > 0")
        if self.risk.max_daily_loss <= 0:
            raise ValueError("risk.max_daily_loss must be > 0")
        if not (0 < self.risk.var_limit_percent <= 100):
            raise ValueError("risk.var_limit_percent must be between 0 and 100")
        if self.performance.poll_interval_ms < 50:
            raise ValueError("performance.poll_interval_ms must be >= 50ms")
        if self.alerts.alert_on_loss < 0:
            raise ValueError("alerts.alert_on_loss must be >= 0")

    def with_trading_enabled(self, enabled: bool) -> "DynamicConfig":
        return replace(self, trading=replace(self.trading, enabled=enabled))


class DynamicConfigProvider(Protocol):
    def get(self) -> DynamicConfig: ...


@dataclass
class DynamicConfigStore:
    """Holds the latest validated snapshot.

    The engine only calls get(); an external reloader calls replace().
    """

    current: DynamicConfig = field(default_factory=DynamicConfig)

    def __post_init__(self) -> None:
        self.current.validate()

    def get(self) -> DynamicConfig:
        return self.current

    def replace(self, new_config: DynamicConfig) -> str:
        new_config.validate()
        old_version = self.current.version
        self.current = new_config
        return old_version
