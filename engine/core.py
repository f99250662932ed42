from __future__ import annotations

from loguru import logger

from adapters.base import ExecutionGateway, MarketDataSource
from data.seed import synthetic_candles
from engine.errors import ApiError, TradingError
from engine.history import PriceHistory
from engine.indicators import IndicatorEngine, IndicatorSet
from engine.models import Account, Candle, Fill, Position, Signal, SignalKind, Ticker, Trade
from engine.state import EngineState, EngineStats
from risk.manager import RiskExit, RiskManager, realized_pnl
from services.config_service import EngineConfig
from strategies import registry


class TradingEngine:
    """Single-symbol decision and execution loop.

    Not internally synchronized: the host must serialize every mutating call
    (``start``, ``update_price_data``, ``execute_trade``).
    """

    def __init__(
        self,
        config: EngineConfig,
        execution: ExecutionGateway,
        market: MarketDataSource | None = None,
    ) -> None:
        self.config = config
        self.execution = execution
        self.market = market
        self.history = PriceHistory()
        self.indicator_engine = IndicatorEngine(config.params)
        self.indicators = IndicatorSet()
        self.risk = RiskManager(config)
        self.stats = EngineStats()
        self.state = EngineState.STOPPED
        self.position: Position | None = None
        self.account: Account | None = None
        self.trades: list[Trade] = []

    @property
    def is_running(self) -> bool:
        return self.state is EngineState.RUNNING

    async def start(self) -> bool:
        if self.state is not EngineState.STOPPED:
            return self.is_running
        logger.info("Starting engine for {} ({})", self.config.symbol, self.config.strategy)
        self.state = EngineState.INITIALIZING
        try:
            ok = await self.initialize()
        except Exception as exc:
            logger.exception("Engine initialization crashed: {}", exc)
            ok = False
        if self.state is not EngineState.INITIALIZING:
            logger.warning("Engine stopped during initialization")
            return False
        self.state = EngineState.RUNNING if ok else EngineState.STOPPED
        if ok:
            logger.info("Engine running with {} candles", len(self.history))
        return ok

    def stop(self) -> None:
        if self.state is EngineState.STOPPED:
            return
        self.state = EngineState.STOPPED
        logger.info("Engine stopped")

    async def initialize(self) -> bool:
        try:
            candles = await self._load_history()
            self.history.bulk_load(candles)
        except TradingError as exc:
            logger.error("Failed to load price history: {}", exc)
            return False
        if self.history.last_price is not None:
            self.execution.mark_price(self.history.last_price)
        self.calculate_indicators()
        await self.refresh_account()
        await self._sync_position()
        return True

    async def _load_history(self) -> list[Candle]:
        limit = self.config.history_limit
        if self.config.is_simulated or self.market is None:
            return synthetic_candles(limit, await self._seed_price(), self.config.interval)
        try:
            return await self.market.fetch_candles(self.config.symbol, self.config.interval, limit)
        except ApiError as exc:
            if not exc.is_rate_limit:
                raise
            logger.warning("Rate limited while loading history, using synthetic seed data: {}", exc)
            return synthetic_candles(limit, await self._seed_price(), self.config.interval)

    async def _seed_price(self) -> float:
        if self.market is None:
            return 50000.0
        try:
            ticker = await self.market.fetch_ticker(self.config.symbol)
            return ticker.last
        except TradingError as exc:
            logger.warning("No ticker for seed price, using default: {}", exc)
            return 50000.0

    def calculate_indicators(self) -> IndicatorSet:
        self.indicators = self.indicator_engine.compute(self.history.snapshot())
        return self.indicators

    async def update_price_data(self, ticker: Ticker) -> RiskExit | None:
        if not self.is_running:
            logger.debug("Ignoring tick while {}", self.state.value)
            return None
        try:
            self.history.append_ticker(ticker)
        except TradingError as exc:
            logger.warning("Rejected tick: {}", exc)
            return None
        self.execution.mark_price(ticker.last)
        self.calculate_indicators()

        exit_ = self.risk.monitor(self.position, ticker.last)
        if exit_:
            logger.warning("{} triggered at {} ({:.2f}%)", exit_.reason, ticker.last, exit_.unrealized_percent)
            await self.execute_trade(exit_.signal)
        return exit_

    def calculate_signal(self) -> Signal:
        if self.indicators.is_empty():
            return Signal.hold("Insufficient indicator data")
        try:
            return registry.evaluate(self.config.strategy, self.indicators, self.config.params)
        except Exception as exc:
            logger.exception("Signal evaluation failed: {}", exc)
            return Signal.hold(f"Signal evaluation error: {exc!r}")

    async def execute_trade(self, signal: Signal) -> bool:
        if not self.is_running:
            logger.warning("Engine not running, ignoring {} signal", signal.kind.value)
            return False
        price = self.history.last_price
        if price is None:
            return False
        try:
            position = await self._sync_position()
            logger.info(
                "Evaluating {} - {} (confidence {:.1f}%) at {}",
                signal.kind.value,
                signal.reason,
                signal.confidence,
                price,
            )
            if signal.kind is SignalKind.BUY and (position is None or position.size == 0):
                ok = await self._open(signal, price)
            elif signal.kind is SignalKind.SELL and position is not None and position.size > 0:
                ok = await self._close(signal, position)
            else:
                return False
        except TradingError as exc:
            logger.error("Trade execution failed: {}", exc)
            return False
        except Exception as exc:
            logger.exception("Trade execution crashed: {}", exc)
            return False
        if ok:
            await self.refresh_account()
        return ok

    async def _open(self, signal: Signal, price: float) -> bool:
        account = await self._account_for_sizing()
        quantity = self.risk.compute_order_size(price, self.config.risk_amount, account)
        if quantity <= 0:
            logger.info("Order size is zero, skipping BUY")
            return False
        preview = self.risk.on_open(Position(self.config.symbol, quantity, price))
        fill = await self.execution.place_order(
            "BUY", quantity, "market", preview.stop_loss_price, preview.take_profit_price
        )
        self._warn_if_late(fill)
        position = await self._sync_position()
        if position is None:
            position = Position(self.config.symbol, fill.size, fill.fill_price, opened_at=fill.filled_at)
        self.position = self.risk.on_open(position)
        self.stats.record_open()
        self._record(fill, signal, self.position.stop_loss_price, self.position.take_profit_price)
        logger.info("BUY executed: {} {} @ {}", fill.size, self.config.symbol, fill.fill_price)
        return True

    async def _close(self, signal: Signal, position: Position) -> bool:
        fill = await self.execution.place_order("SELL", position.size, "market")
        self._warn_if_late(fill)
        pnl = fill.pnl if fill.pnl is not None else realized_pnl(position.avg_price, fill.fill_price, fill.size)
        self.stats.record_close(pnl)
        self.position = None
        await self._sync_position()
        self._record(fill, signal, position.stop_loss_price, position.take_profit_price, pnl)
        logger.info("SELL executed: {} {} @ {} (pnl {:.4f})", fill.size, self.config.symbol, fill.fill_price, pnl)
        return True

    def _warn_if_late(self, fill: Fill) -> None:
        if not self.is_running:
            logger.warning("Fill {} landed after stop, recording only", fill.order_id)

    def _record(
        self,
        fill: Fill,
        signal: Signal,
        stop_loss: float | None,
        take_profit: float | None,
        pnl: float | None = None,
    ) -> None:
        self.trades.append(
            Trade(
                id=fill.order_id,
                type=fill.side,
                price=fill.fill_price,
                quantity=fill.size,
                timestamp=fill.filled_at,
                reason=signal.reason,
                confidence=signal.confidence,
                stop_loss=stop_loss,
                take_profit=take_profit,
                pnl=pnl,
            )
        )

    async def refresh_account(self) -> Account | None:
        try:
            self.account = await self.execution.get_account()
        except TradingError as exc:
            logger.error("Failed to fetch account info: {}", exc)
            return None
        except Exception as exc:
            logger.exception("Account fetch crashed: {}", exc)
            return None
        return self.account

    async def _account_for_sizing(self) -> Account | None:
        if self.account is not None and self.account.is_fresh(self.config.account_max_age):
            return self.account
        return await self.refresh_account()

    async def get_positions(self) -> Position | None:
        try:
            return await self.execution.get_position()
        except TradingError as exc:
            logger.error("Failed to fetch positions: {}", exc)
            return None
        except Exception as exc:
            logger.exception("Position fetch crashed: {}", exc)
            return None

    async def _sync_position(self) -> Position | None:
        try:
            remote = await self.execution.get_position()
        except Exception as exc:
            logger.warning("Position refresh failed, keeping cached position: {}", exc)
            return self.position
        if remote is None or remote.size <= 0:
            self.position = None
        elif remote is not self.position:
            if self.position is not None and remote.stop_loss_price is None:
                remote.stop_loss_price = self.position.stop_loss_price
                remote.take_profit_price = self.position.take_profit_price
            self.position = remote
        return self.position

    def get_status(self) -> dict:
        return {
            "is_running": self.is_running,
            "state": self.state.value,
            "symbol": self.config.symbol,
            "strategy": self.config.strategy,
            "simulated": self.execution.is_simulated,
            "trades_count": len(self.trades),
            "price_history_length": len(self.history),
            "indicator_names": self.indicators.names(),
            "last_price": self.history.last_price,
            "position": _position_dict(self.position),
            "account_fetched_at": self.account.fetched_at if self.account else None,
            "stats": self.stats.to_dict(),
        }

    def get_indicators(self) -> dict:
        return self.indicators.to_dict()

    def get_trade_history(self) -> list[Trade]:
        return list(self.trades)

    def get_price_history(self) -> tuple[Candle, ...]:
        return self.history.snapshot()


def _position_dict(position: Position | None) -> dict | None:
    if position is None:
        return None
    return {
        "symbol": position.symbol,
        "size": position.size,
        "avg_price": position.avg_price,
        "stop_loss_price": position.stop_loss_price,
        "take_profit_price": position.take_profit_price,
        "opened_at": position.opened_at,
    }
