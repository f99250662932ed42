import asyncio

import pytest

from adapters.base import ExchangeGateway
from adapters.live import LiveExecution
from adapters.paper import SimulatedExecution
from data.seed import synthetic_candles
from engine.core import TradingEngine
from engine.errors import ApiError, TransportError
from engine.models import Account, Balance, Fill, Signal, SignalKind, Ticker
from engine.state import EngineState
from services.config_service import EngineConfig


def _ticker(price: float, ts: int = 0) -> Ticker:
    return Ticker(last=price, bid=price, ask=price, high=price, low=price, volume=1.0, open24h=price, timestamp=ts)


def _buy() -> Signal:
    return Signal(SignalKind.BUY, "test buy", 80.0)


def _sell() -> Signal:
    return Signal(SignalKind.SELL, "test sell", 80.0)


def _simulated_engine(**kwargs) -> TradingEngine:
    config = EngineConfig(is_simulated=True, **kwargs)
    return TradingEngine(config, SimulatedExecution(config.symbol, config.simulated_balance))


class FakeGateway(ExchangeGateway):
    def __init__(self, candles_error: Exception | None = None, order_error: Exception | None = None) -> None:
        self.candles_error = candles_error
        self.order_error = order_error
        self.orders: list[tuple] = []

    async def fetch_ticker(self, symbol: str) -> Ticker:
        return _ticker(100.0)

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 500):
        if self.candles_error:
            raise self.candles_error
        return synthetic_candles(limit, 100.0, interval, seed=7)

    async def get_account_balance(self) -> Account:
        return Account(balances={"USDT": Balance(total=1000.0, free=1000.0, used=0.0)})

    async def get_positions(self, symbol: str):
        return None

    async def place_order(self, symbol, side, size, order_type="market", stop_loss_price=None, take_profit_price=None):
        if self.order_error:
            raise self.order_error
        self.orders.append((symbol, side, size, stop_loss_price, take_profit_price))
        return Fill(order_id=f"ex-{len(self.orders)}", side=side, size=size, fill_price=100.0, filled_at=1)


def _live_engine(gateway: FakeGateway) -> TradingEngine:
    config = EngineConfig(is_simulated=False)
    return TradingEngine(config, LiveExecution(gateway, config.symbol), gateway)


def test_start_loads_seed_history_and_runs():
    engine = _simulated_engine()
    assert engine.state is EngineState.STOPPED
    assert asyncio.run(engine.start())
    assert engine.state is EngineState.RUNNING
    assert len(engine.history) == 500
    assert "sma20" in engine.get_status()["indicator_names"]
    assert engine.account is not None


def test_stop_is_idempotent_and_blocks_trading():
    engine = _simulated_engine()
    asyncio.run(engine.start())
    engine.stop()
    engine.stop()
    assert engine.state is EngineState.STOPPED
    assert not asyncio.run(engine.execute_trade(_buy()))
    assert asyncio.run(engine.update_price_data(_ticker(1.0))) is None
    assert len(engine.history) == 500


def test_simulated_round_trip_updates_stats_and_ledger():
    async def run():
        engine = _simulated_engine()
        await engine.start()
        p1 = engine.history.last_price
        await engine.update_price_data(_ticker(p1))
        assert await engine.execute_trade(_buy())
        assert not await engine.execute_trade(_buy())
        qty = engine.position.size
        p2 = p1 * 1.01
        assert await engine.update_price_data(_ticker(p2)) is None
        assert await engine.execute_trade(_sell())
        return engine, qty, p1, p2

    engine, qty, p1, p2 = asyncio.run(run())
    assert engine.position is None
    assert engine.execution.balance == pytest.approx(10000.0 + qty * (p2 - p1))
    assert engine.stats.total_profit == pytest.approx(qty * (p2 - p1))
    assert engine.stats.winning_trades == 1
    assert engine.stats.losing_trades == 0
    assert engine.stats.total_trades == 2
    trades = engine.get_trade_history()
    assert [t.type for t in trades] == ["BUY", "SELL"]
    assert trades[0].stop_loss < trades[0].price < trades[0].take_profit


def test_sell_without_position_is_noop():
    engine = _simulated_engine()
    asyncio.run(engine.start())
    assert not asyncio.run(engine.execute_trade(_sell()))
    assert not asyncio.run(engine.execute_trade(Signal.hold("nothing")))
    assert engine.get_trade_history() == []


def test_stop_loss_exit_runs_inside_price_update():
    async def run():
        engine = _simulated_engine()
        await engine.start()
        p1 = engine.history.last_price
        await engine.execute_trade(_buy())
        exit_ = await engine.update_price_data(_ticker(p1 * 0.975))
        return engine, exit_

    engine, exit_ = asyncio.run(run())
    assert exit_ is not None and exit_.reason == "STOP_LOSS"
    assert engine.position is None
    assert engine.stats.losing_trades == 1
    assert engine.get_trade_history()[-1].confidence == 100


def test_one_position_per_symbol():
    async def run():
        engine = _simulated_engine()
        await engine.start()
        results = [await engine.execute_trade(_buy()) for _ in range(3)]
        return engine, results

    engine, results = asyncio.run(run())
    assert results == [True, False, False]
    assert len(engine.get_trade_history()) == 1


def test_calculate_signal_holds_without_indicators():
    engine = _simulated_engine()
    signal = engine.calculate_signal()
    assert signal.kind is SignalKind.HOLD
    assert signal.confidence == 0


def test_unknown_strategy_yields_config_error_hold():
    engine = _simulated_engine(strategy="martingale")
    asyncio.run(engine.start())
    signal = engine.calculate_signal()
    assert signal.kind is SignalKind.HOLD
    assert "ConfigError" in signal.reason


def test_live_start_fails_on_api_error():
    engine = _live_engine(FakeGateway(candles_error=ApiError("bad symbol", code=-1121)))
    assert not asyncio.run(engine.start())
    assert engine.state is EngineState.STOPPED


def test_live_start_falls_back_to_seed_on_rate_limit():
    engine = _live_engine(FakeGateway(candles_error=ApiError("too many requests", code=-1003)))
    assert asyncio.run(engine.start())
    assert len(engine.history) == 500


def test_live_buy_delegates_to_gateway_with_guards():
    gateway = FakeGateway()
    engine = _live_engine(gateway)

    async def run():
        await engine.start()
        await engine.update_price_data(_ticker(100.0))
        return await engine.execute_trade(_buy())

    assert asyncio.run(run())
    symbol, side, size, sl, tp = gateway.orders[0]
    assert (symbol, side) == ("BTCUSDT", "BUY")
    assert size == pytest.approx(0.2)
    assert sl == pytest.approx(98.0) and tp == pytest.approx(105.0)
    assert engine.position is not None and engine.position.size == pytest.approx(0.2)


def test_failed_order_leaves_state_unchanged():
    gateway = FakeGateway(order_error=TransportError("down", kind="NETWORK_ERROR"))
    engine = _live_engine(gateway)
    asyncio.run(engine.start())
    assert not asyncio.run(engine.execute_trade(_buy()))
    assert engine.position is None
    assert engine.stats.total_trades == 0
    assert engine.is_running


def test_status_exposes_dashboard_fields():
    engine = _simulated_engine()
    asyncio.run(engine.start())
    status = engine.get_status()
    for key in ("is_running", "symbol", "strategy", "trades_count", "price_history_length", "indicator_names", "stats"):
        assert key in status
    assert status["price_history_length"] == 500
    assert set(engine.get_indicators()) == set(status["indicator_names"])


class StoppingExecution(SimulatedExecution):
    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.engine: TradingEngine | None = None

    async def place_order(self, side, size, order_type="market", stop_loss_price=None, take_profit_price=None):
        fill = await super().place_order(side, size, order_type, stop_loss_price, take_profit_price)
        self.engine.stop()
        return fill


def test_fill_landing_after_stop_is_recorded_without_follow_up():
    config = EngineConfig(is_simulated=True)
    execution = StoppingExecution(config.symbol, config.simulated_balance)
    engine = TradingEngine(config, execution)
    execution.engine = engine
    asyncio.run(engine.start())

    assert asyncio.run(engine.execute_trade(_buy()))
    assert engine.state is EngineState.STOPPED
    assert [t.type for t in engine.get_trade_history()] == ["BUY"]
    assert engine.position is not None

    assert not asyncio.run(engine.execute_trade(_sell()))
    exit_ = asyncio.run(engine.update_price_data(_ticker(engine.position.avg_price * 0.5)))
    assert exit_ is None
    assert len(engine.get_trade_history()) == 1
