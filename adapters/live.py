from __future__ import annotations

from dataclasses import replace

from loguru import logger

from adapters.base import ExchangeGateway, ExecutionGateway, Side
from engine.models import Account, Fill, Position
from risk.manager import realized_pnl


class LiveExecution(ExecutionGateway):
    is_simulated = False

    def __init__(self, gateway: ExchangeGateway, symbol: str) -> None:
        self.gateway = gateway
        self.symbol = symbol
        self._position: Position | None = None

    async def get_account(self) -> Account:
        return await self.gateway.get_account_balance()

    async def get_position(self) -> Position | None:
        remote = await self.gateway.get_positions(self.symbol)
        if remote is not None:
            if self._position is not None and remote.stop_loss_price is None:
                remote.stop_loss_price = self._position.stop_loss_price
                remote.take_profit_price = self._position.take_profit_price
                remote.peak_price = max(remote.peak_price, self._position.peak_price)
            self._position = remote if remote.size > 0 else None
        return self._position

    async def place_order(
        self,
        side: Side,
        size: float,
        order_type: str = "market",
        stop_loss_price: float | None = None,
        take_profit_price: float | None = None,
    ) -> Fill:
        fill = await self.gateway.place_order(
            self.symbol, side, size, order_type, stop_loss_price, take_profit_price
        )
        logger.info("Live fill: {}", fill)
        if side == "BUY":
            self._position = Position(
                self.symbol,
                fill.size,
                fill.fill_price,
                stop_loss_price,
                take_profit_price,
                fill.filled_at,
            )
            return fill
        pos = self._position
        if pos is None:
            return fill
        remaining = pos.size - fill.size
        self._position = replace(pos, size=remaining) if remaining > 1e-12 else None
        if fill.pnl is None:
            fill = replace(fill, pnl=realized_pnl(pos.avg_price, fill.fill_price, fill.size))
        return fill
