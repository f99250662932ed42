from __future__ import annotations

import asyncio
import time
from typing import Any

from loguru import logger

from adapters.base import ExchangeGateway, ExecutionGateway, MarketDataSource
from adapters.binance_spot import BinanceSpotGateway
from adapters.live import LiveExecution
from adapters.paper import SimulatedExecution
from data.seed import SyntheticFeed
from engine.core import TradingEngine
from engine.errors import ApiError, TradingError
from engine.models import Ticker
from services.config_service import BotSettings, ConfigService, EngineConfig
from services.notifier import Notifier
from services.scheduler import TickScheduler


class EngineOrchestrator:
    def __init__(
        self,
        settings: BotSettings,
        notifier: Notifier,
        market: MarketDataSource | None = None,
        config_service: ConfigService | None = None,
    ) -> None:
        self.settings = settings
        self.notifier = notifier
        self.config_service = config_service or ConfigService(settings)
        self._market = market
        self._lock = asyncio.Lock()
        self.engine: TradingEngine | None = None
        self.scheduler: TickScheduler | None = None
        self.last_ticker: Ticker | None = None
        self.last_update: float | None = None
        self.requests_count = 0
        self.errors_count = 0

    @property
    def market(self) -> MarketDataSource:
        if self._market is None:
            self._market = self._build_market()
        return self._market

    def _build_market(self) -> MarketDataSource:
        feed = self.settings.FEED.lower()
        if feed == "synthetic":
            return SyntheticFeed()
        if feed == "binance":
            return BinanceSpotGateway(self.settings.BINANCE_API_KEY, self.settings.BINANCE_API_SECRET)
        raise ValueError(f"Unknown feed: {self.settings.FEED}")

    def _build_execution(self, config: EngineConfig) -> ExecutionGateway:
        if config.is_simulated:
            return SimulatedExecution(config.symbol, config.simulated_balance, config.quote_currency)
        if not isinstance(self.market, ExchangeGateway):
            raise ValueError("Live trading requires an exchange gateway feed")
        return LiveExecution(self.market, config.symbol)

    def build_engine(self) -> TradingEngine:
        config = self.config_service.load()
        return TradingEngine(config, self._build_execution(config), self.market)

    async def start(self) -> bool:
        if self.engine is None:
            self.engine = self.build_engine()
        async with self._lock:
            ok = await self.engine.start()
        if not ok:
            logger.error("Engine failed to start")
        self.start_feed()
        return ok

    async def stop(self) -> None:
        if self.engine is None:
            return
        async with self._lock:
            self.engine.stop()

    def start_feed(self) -> None:
        if self.scheduler is None:
            self.scheduler = TickScheduler(
                self.tick,
                interval=self.settings.POLL_INTERVAL,
                min_interval=self.settings.MIN_POLL_INTERVAL,
                max_interval=self.settings.MAX_POLL_INTERVAL,
                on_error=self.on_tick_error,
            )
        self.scheduler.start()

    async def shutdown(self) -> None:
        await self.stop()
        if self.scheduler:
            await self.scheduler.stop()

    async def tick(self) -> None:
        symbol = self.engine.config.symbol if self.engine else self.config_service.load().symbol
        ticker = await self.market.fetch_ticker(symbol)
        self.last_ticker = ticker
        self.last_update = time.time()
        self.requests_count += 1
        logger.debug("Price update: {} (interval {}s)", ticker.last, self.scheduler.interval if self.scheduler else None)
        await self.notifier.publish("network_status", {"status": "normal", "message": "Connected"})

        if self.engine is not None:
            async with self._lock:
                if self.engine.is_running:
                    exit_ = await self.engine.update_price_data(ticker)
                    if exit_ is None:
                        signal = self.engine.calculate_signal()
                        if signal.actionable and signal.confidence > self.settings.MIN_CONFIDENCE:
                            await self.engine.execute_trade(signal)
        await self.notifier.publish("price_update", self.snapshot())

    async def on_tick_error(self, exc: Exception) -> None:
        self.errors_count += 1
        status = "error"
        if isinstance(exc, TradingError) and exc.kind in ("API_ERROR", "TIMEOUT"):
            status = "warning"
        message = f"Market data fetch failed: {exc}"
        if isinstance(exc, ApiError) and exc.is_rate_limit:
            message = "Too many requests, lowering frequency"
        await self.notifier.publish("network_status", {"status": status, "message": message})
        if self.last_ticker:
            await self.notifier.publish("price_update", self.snapshot())

    def is_stale(self, now: float | None = None) -> bool:
        if self.last_update is None:
            return True
        return (now if now is not None else time.time()) - self.last_update > self.settings.STALE_AFTER

    def snapshot(self) -> dict[str, Any]:
        ticker = self.last_ticker
        engine = self.engine
        data: dict[str, Any] = {
            "price": ticker.last if ticker else None,
            "bid_price": ticker.bid if ticker else None,
            "ask_price": ticker.ask if ticker else None,
            "change_24h": round(ticker.change_percent, 2) if ticker else None,
            "volume_24h": ticker.volume if ticker else None,
            "timestamp": ticker.timestamp if ticker else None,
            "requests": self.requests_count,
            "errors": self.errors_count,
            "stale": self.is_stale(),
            "request_interval": self.scheduler.interval if self.scheduler else None,
            "engine": engine.get_status() if engine else None,
            "current_signal": None,
        }
        if engine is None:
            return data
        if engine.is_running:
            data["current_signal"] = engine.calculate_signal().to_dict()
        account = engine.account
        quote = engine.config.quote_currency
        if account is not None:
            data["equity"] = account.total(quote)
            data["available_margin"] = account.free(quote)
        if engine.position is not None and ticker:
            data["position_value"] = engine.position.size * ticker.last
        return data

    def health(self) -> dict[str, Any]:
        last_error = self.scheduler.last_error if self.scheduler else None
        return {
            "status": "healthy" if self.last_ticker else "unhealthy",
            "requests": self.requests_count,
            "errors": self.errors_count,
            "last_update": self.last_update,
            "authenticated": bool(self.settings.BINANCE_API_KEY),
            "current_interval": self.scheduler.interval if self.scheduler else None,
            "last_error": getattr(last_error, "kind", type(last_error).__name__) if last_error else None,
            "last_price": self.last_ticker.last if self.last_ticker else None,
            "engine": self.engine.get_status() if self.engine else None,
        }
