from __future__ import annotations

import asyncio
import os
import signal
import sys
from typing import List


if __package__ is None or __package__ == "":
    # Allow running via: python solarb/main.py
    sys.path.insert(0, os.path.dirname(os.path.dirname(__file__)))

from solarb.connectors.jupiter import JupiterPriceSource
from solarb.connectors.simulated_venue import PaperExecutor, SimulatedVenue
from solarb.core.bot_config import BotConfig
from solarb.core.circuit_breaker import CircuitBreaker
from solarb.core.dynamic_config import DynamicConfig, DynamicConfigStore
from solarb.core.events import EventBus
from solarb.core.rate_limiter import RateLimiter
from solarb.core.risk_manager import RiskManager
from solarb.core.var import VarCalculator
from solarb.core.volatility import VolatilityTracker
from solarb.logger.console_logger import ConsoleLogger
from solarb.models.market import Venue
from solarb.services.alerts import FileKillSwitch, LoggingAlertSink
from solarb.services.event_logger import EventLogger
from solarb.services.orchestrator import TradingOrchestrator
from solarb.services.price_fetcher import ParallelPriceFetcher, PriceSource
from solarb.strategies.base import StrategyRegistry
from solarb.strategies.statistical import StatisticalArbitrage


def build_price_sources(cfg: BotConfig, logger: ConsoleLogger) -> List[PriceSource]:
    if cfg.mock_mode:
        return [SimulatedVenue(venue=v, seed=1337 + i) for i, v in enumerate(Venue.all())]
    # Only the aggregator has a live adapter; per-DEX adapters plug in here.
    return [JupiterPriceSource(rate_limiter=RateLimiter.per_second(cfg.price_rps), logger=logger)]


def build_orchestrator(cfg: BotConfig, logger: ConsoleLogger, bus: EventBus) -> TradingOrchestrator:
    breaker = CircuitBreaker(
        failure_threshold=cfg.circuit_breaker_failures,
        success_threshold=cfg.circuit_breaker_successes,
        timeout_seconds=cfg.circuit_breaker_timeout_seconds,
        event_bus=bus,
        logger=logger,
    )
    risk = RiskManager(
        config=cfg.risk_config(),
        circuit_breaker=breaker,
        volatility_tracker=VolatilityTracker(window_size=cfg.volatility_window),
        var_calculator=VarCalculator(confidence_level=cfg.var_confidence),
        event_bus=bus,
        logger=logger,
    )

    fetcher = ParallelPriceFetcher(
        sources=build_price_sources(cfg, logger),
        rate_limiter=RateLimiter.per_second(cfg.price_rps),
        logger=logger,
    )
    executor = PaperExecutor(
        quote_limiter=RateLimiter.per_second(cfg.quote_rps),
        paper=cfg.mock_mode,
        max_slippage_pct=cfg.max_slippage,
    )

    strategies = StrategyRegistry(logger=logger)
    strategies.register(StatisticalArbitrage(window_size=cfg.volatility_window))

    return TradingOrchestrator(
        config=cfg,
        price_fetcher=fetcher,
        executor=executor,
        risk_manager=risk,
        event_bus=bus,
        logger=logger,
        dynamic_config=DynamicConfigStore(DynamicConfig.from_bot_config(cfg)),
        strategies=strategies,
        alerts=LoggingAlertSink(logger),
        kill_switch=FileKillSwitch(cfg.kill_switch_path),
    )


async def arbitrage_main() -> None:
    cfg = BotConfig.load()
    cfg.validate()

    logger = ConsoleLogger(log_level=cfg.log_level, title=f"SOLANA ARBITRAGE ENGINE - {cfg.mode.upper()}")

    kill_switch = FileKillSwitch(cfg.kill_switch_path)
    if kill_switch.is_triggered():
        logger.log_error(f"Kill switch file ({cfg.kill_switch_path}) detected - aborting startup")
        return

    bus = EventBus(capacity=cfg.event_bus_capacity)
    event_logger = EventLogger(bus, logger)
    event_logger.start()

    engine = build_orchestrator(cfg, logger, bus)

    stop_event = asyncio.Event()

    def _request_stop() -> None:
        engine.stop("signal received")
        stop_event.set()

    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            loop.add_signal_handler(sig, _request_stop)
        except NotImplementedError:
            # add_signal_handler is not available on some platforms.
            pass

    task = asyncio.create_task(engine.start())
    waiter = asyncio.create_task(stop_event.wait())

    # The engine also stops on its own when the kill switch trips.
    await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)

    waiter.cancel()
    try:
        # stop() already interrupted the sleep; let the in-flight cycle finish.
        await asyncio.wait_for(task, timeout=10)
    except asyncio.TimeoutError:
        logger.log_warning("Engine did not stop within 10s, cancelled")

    status = await engine.risk_manager.status()
    logger.log_risk_status(status)
    logger.log_info(
        f"📌 SUMMARY | cycles={engine.cycle_count} trades={engine.total_trades} "
        f"success_rate={engine.success_rate * 100:.1f}%"
    )

    await event_logger.stop()


def main() -> None:
    asyncio.run(arbitrage_main())


if __name__ == "__main__":
    main()
