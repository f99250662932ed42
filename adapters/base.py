from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Literal

from engine.models import Account, Candle, Fill, Position, Ticker

Side = Literal["BUY", "SELL"]


class MarketDataSource(ABC):
    @abstractmethod
    async def fetch_ticker(self, symbol: str) -> Ticker:
        raise NotImplementedError

    @abstractmethod
    async def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        raise NotImplementedError


class ExchangeGateway(MarketDataSource):
    @abstractmethod
    async def get_account_balance(self) -> Account:
        raise NotImplementedError

    @abstractmethod
    async def get_positions(self, symbol: str) -> Position | None:
        raise NotImplementedError

    @abstractmethod
    async def place_order(
        self,
        symbol: str,
        side: Side,
        size: float,
        order_type: str = "market",
        stop_loss_price: float | None = None,
        take_profit_price: float | None = None,
    ) -> Fill:
        raise NotImplementedError


class ExecutionGateway(ABC):
    is_simulated: bool = False

    def mark_price(self, price: float) -> None:
        pass

    @abstractmethod
    async def place_order(
        self,
        side: Side,
        size: float,
        order_type: str = "market",
        stop_loss_price: float | None = None,
        take_profit_price: float | None = None,
    ) -> Fill:
        raise NotImplementedError

    @abstractmethod
    async def get_account(self) -> Account:
        raise NotImplementedError

    @abstractmethod
    async def get_position(self) -> Position | None:
        raise NotImplementedError
