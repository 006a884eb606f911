from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Optional, Union

from rich.console import Console
from rich.panel import Panel
from rich.text import Text

if TYPE_CHECKING:
    from solarb.core.risk_manager import RiskStatus
    from solarb.models.trade import ArbitrageOpportunity, TradeResult


_LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "critical": logging.CRITICAL,
}


def _ts() -> str:
    return datetime.now().strftime("%H:%M:%S")


def _usd(x: Union[Decimal, float]) -> str:
    return f"${x:,.2f}"


@dataclass
class ConsoleLogger:
    log_dir: str = "logs"
    log_file: str = "bot.log"
    log_level: str = "info"
    title: str = "SOLANA ARBITRAGE ENGINE"
    show_header: bool = True

    console: Console = field(default_factory=Console, init=False)
    file_logger: logging.Logger = field(default_factory=lambda: logging.getLogger("solarb"), init=False)
    level: int = field(default=logging.INFO, init=False)

    def __post_init__(self) -> None:
        self.level = _LEVELS.get(self.log_level.strip().lower(), logging.INFO)

        os.makedirs(self.log_dir, exist_ok=True)

        self.file_logger.setLevel(self.level)
        self.file_logger.propagate = False
        self.file_logger.handlers.clear()

        fh = logging.FileHandler(os.path.join(self.log_dir, self.log_file), encoding="utf-8")
        fh.setLevel(self.level)
        fh.setFormatter(logging.Formatter("%(asctime)s | %(levelname)s | %(message)s"))
        self.file_logger.addHandler(fh)

        if self.show_header:
            self._print_header()

    def _print_header(self) -> None:
        title = Text(self.title, style="bold cyan")
        self.console.print(Panel(title, expand=False, border_style="cyan"))

    def _log(self, message: str, *, level: int = logging.INFO, style: Optional[str] = None) -> None:
        if level < self.level:
            return
        prefix = f"[{_ts()}] "
        if style:
            self.console.print(prefix + message, style=style)
        else:
            self.console.print(prefix + message)
        self.file_logger.log(level, message)

    def log_debug(self, message: str) -> None:
        self._log(message, level=logging.DEBUG, style="dim")

    def log_info(self, message: str) -> None:
        self._log(message)

    def log_warning(self, message: str) -> None:
        self._log(f"⚠️  {message}", level=logging.WARNING, style="yellow")

    def log_error(self, message: str) -> None:
        self._log(f"❌ {message}", level=logging.ERROR, style="bold red")

    def log_critical(self, message: str) -> None:
        self._log(f"🛑 {message}", level=logging.CRITICAL, style="bold white on red")

    def log_opportunity(self, opp: "ArbitrageOpportunity", size: Decimal) -> None:
        self._log(
            f"🎯 {opp.strategy} {opp.pair} | buy {opp.buy_venue.display_name} @ {opp.buy_price:.6f} "
            f"-> sell {opp.sell_venue.display_name} @ {opp.sell_price:.6f} | "
            f"net={opp.net_profit_pct:.3f}% size={_usd(size)}",
            style="yellow",
        )

    def log_trade_result(self, opp: "ArbitrageOpportunity", result: "TradeResult", elapsed_ms: int) -> None:
        if not result.success:
            self._log(f"❌ FAILED {opp.pair}: {result.error}", level=logging.WARNING, style="bold red")
            return
        style = "bold green" if result.actual_profit >= 0 else "bold red"
        self._log(
            f"✅ EXECUTED {opp.pair} | pnl={_usd(result.actual_profit)} | {elapsed_ms}ms | sig={result.signature}",
            style=style,
        )

    def log_risk_status(self, status: "RiskStatus") -> None:
        self._log(
            f"📌 RISK | exposure={_usd(status.total_exposure)} daily_pnl={_usd(status.daily_pnl)} "
            f"var={_usd(status.portfolio_var)} trades={status.trades_today} "
            f"breaker={status.breaker_state} paused={status.is_paused}",
            style="bold cyan",
        )

    def log_breaker_change(self, old_state: str, new_state: str) -> None:
        style = "bold red" if new_state == "Open" else "yellow"
        self._log(f"🔌 Circuit breaker {old_state} -> {new_state}", level=logging.WARNING, style=style)

    def log_backoff(self, consecutive_errors: int, delay_seconds: float) -> None:
        # Severity climbs with the error streak.
        level = logging.WARNING if consecutive_errors < 3 else logging.ERROR
        self._log(
            f"⏳ Backing off {delay_seconds:.0f}s after {consecutive_errors} consecutive errors",
            level=level,
            style="yellow" if level == logging.WARNING else "bold red",
        )
