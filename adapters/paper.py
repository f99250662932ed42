from __future__ import annotations

import itertools
import time

from loguru import logger

from adapters.base import ExecutionGateway, Side
from engine.errors import ApiError, DataError
from engine.models import Account, Balance, Fill, Position
from risk.manager import realized_pnl


class SimulatedExecution(ExecutionGateway):
    is_simulated = True

    def __init__(
        self,
        symbol: str,
        balance: float,
        quote_currency: str = "USDT",
        slippage_bps: float = 0.0,
        fee_bps: float = 0.0,
    ) -> None:
        self.symbol = symbol
        self.balance = float(balance)
        self.quote_currency = quote_currency
        self.slippage_bps = slippage_bps
        self.fee_bps = fee_bps
        self._position: Position | None = None
        self._last_price: float | None = None
        self._order_ids = itertools.count(1)

    def mark_price(self, price: float) -> None:
        self._last_price = price

    async def get_account(self) -> Account:
        used = self._position.size * self._position.avg_price if self._position else 0.0
        return Account(
            balances={self.quote_currency: Balance(total=self.balance + used, free=self.balance, used=used)}
        )

    async def get_position(self) -> Position | None:
        return self._position

    async def place_order(
        self,
        side: Side,
        size: float,
        order_type: str = "market",
        stop_loss_price: float | None = None,
        take_profit_price: float | None = None,
    ) -> Fill:
        if self._last_price is None or self._last_price <= 0:
            raise DataError("No price available for simulated fill", kind="INVALID_DATA")
        if size <= 0:
            raise ApiError(f"Invalid order size: {size}")
        price = self._fill_price(side, self._last_price)
        now = int(time.time() * 1000)
        pnl = None

        if side == "BUY":
            cost = size * price
            if cost > self.balance:
                raise ApiError(f"Insufficient simulated balance: need {cost:.2f}, have {self.balance:.2f}")
            self.balance -= cost
            self._apply_buy(size, price, now, stop_loss_price, take_profit_price)
        else:
            pos = self._position
            if pos is None or pos.size <= 0:
                raise ApiError("No open position to sell")
            if size > pos.size:
                raise ApiError(f"Sell size {size} exceeds position {pos.size}")
            self.balance += size * price
            pnl = realized_pnl(pos.avg_price, price, size)
            remaining = pos.size - size
            self._position = None if remaining <= 1e-12 else Position(
                self.symbol, remaining, pos.avg_price, pos.stop_loss_price, pos.take_profit_price, pos.opened_at
            )

        fill = Fill(
            order_id=f"sim-{next(self._order_ids)}",
            side=side,
            size=size,
            fill_price=price,
            filled_at=now,
            pnl=pnl,
        )
        logger.info("Simulated fill: {}", fill)
        return fill

    def _fill_price(self, side: Side, price: float) -> float:
        slip = price * (self.slippage_bps / 10000.0)
        fill_price = price + slip if side == "BUY" else price - slip
        fee = fill_price * (self.fee_bps / 10000.0)
        return fill_price + fee if side == "BUY" else fill_price - fee

    def _apply_buy(
        self,
        size: float,
        price: float,
        now: int,
        stop_loss_price: float | None,
        take_profit_price: float | None,
    ) -> None:
        pos = self._position
        if not pos:
            self._position = Position(self.symbol, size, price, stop_loss_price, take_profit_price, now)
            return
        new_size = pos.size + size
        avg_price = ((pos.avg_price * pos.size) + (price * size)) / new_size
        self._position = Position(self.symbol, new_size, avg_price, stop_loss_price, take_profit_price, pos.opened_at)
