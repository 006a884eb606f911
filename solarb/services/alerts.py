from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import List, Protocol, Tuple


class AlertSink(Protocol):
    async def send_critical(self, message: str) -> None: ...

    async def send_info(self, message: str) -> None: ...


class KillSwitch(Protocol):
    def is_triggered(self) -> bool: ...


class LoggerProtocol(Protocol):
    def log_info(self, message: str) -> None: ...
    def log_critical(self, message: str) -> None: ...


@dataclass
class LoggingAlertSink:
    """Default alert sink: routes alerts to the logger and keeps a short history."""

    logger: LoggerProtocol
    history_size: int = 100

    history: List[Tuple[str, str]] = field(default_factory=list, init=False)

    async def send_critical(self, message: str) -> None:
        self._remember("critical", message)
        self.logger.log_critical(f"🚨 ALERT: {message}")

    async def send_info(self, message: str) -> None:
        self._remember("info", message)
        self.logger.log_info(f"🔔 {message}")

    def _remember(self, level: str, message: str) -> None:
        self.history.append((level, message))
        if len(self.history) > self.history_size:
            del self.history[0]


@dataclass(frozen=True)
class FileKillSwitch:
    """Trading stops as soon as a file exists at ``path``."""

    path: str = ".kill"

    def is_triggered(self) -> bool:
        return os.path.exists(self.path)
