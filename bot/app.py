from __future__ import annotations

import asyncio
import sys
from typing import Any

from loguru import logger

from services.config_service import BotSettings
from services.notifier import Notifier
from services.orchestrator import EngineOrchestrator


async def log_event(name: str, payload: dict[str, Any]) -> None:
    if name == "network_status":
        if payload.get("status") != "normal":
            logger.warning("Network status: {}", payload.get("message"))
        return
    engine = payload.get("engine") or {}
    signal = payload.get("current_signal") or {}
    logger.info(
        "price={} signal={} confidence={} trades={}",
        payload.get("price"),
        signal.get("signal", "-"),
        round(signal.get("confidence", 0.0), 1),
        engine.get("trades_count", 0),
    )


async def main() -> None:
    settings = BotSettings()
    logger.remove()
    logger.add(sys.stderr, level=settings.LOG_LEVEL)

    notifier = Notifier()
    notifier.subscribe(log_event)
    await notifier.start()

    orchestrator = EngineOrchestrator(settings, notifier)
    logger.info(
        "Trading bot starting: {} {} ({})",
        settings.SYMBOL,
        settings.STRATEGY,
        "simulated" if settings.IS_SIMULATED else "live",
    )
    if not await orchestrator.start():
        logger.error("Engine did not start, streaming market data only")
    try:
        await asyncio.Event().wait()
    finally:
        await orchestrator.shutdown()
        await notifier.stop()
        logger.info("Bot shutdown")


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
