from __future__ import annotations

from dataclasses import dataclass
from typing import Literal

from loguru import logger

from engine.models import Account, Position, Signal, SignalKind
from services.config_service import EngineConfig

MIN_LOT = 0.001


@dataclass(frozen=True)
class RiskExit:
    reason: Literal["STOP_LOSS", "TAKE_PROFIT"]
    unrealized_percent: float
    trigger_price: float

    @property
    def signal(self) -> Signal:
        label = "Stop loss" if self.reason == "STOP_LOSS" else "Take profit"
        return Signal(SignalKind.SELL, f"{self.reason}: {label} at {self.unrealized_percent:.2f}%", 100.0)


def unrealized_percent(entry_price: float, current_price: float) -> float:
    return (current_price - entry_price) / entry_price * 100


def realized_pnl(entry_price: float, exit_price: float, quantity: float) -> float:
    return (exit_price - entry_price) * quantity


class RiskManager:
    def __init__(self, config: EngineConfig) -> None:
        self.config = config

    def compute_order_size(self, price: float, risk_amount: float, account: Account | None) -> float:
        if account is None or price <= 0:
            return 0.0
        if not account.is_fresh(self.config.account_max_age):
            logger.warning("Account snapshot is stale ({:.0f}s old), not sizing", account.age())
            return 0.0
        free = account.free(self.config.quote_currency)
        if free <= 0:
            return 0.0
        max_qty = free / price
        if max_qty < MIN_LOT:
            return 0.0
        budget = min(risk_amount, free * (self.config.risk_percent / 100.0))
        return max(MIN_LOT, min(budget / price, max_qty))

    def on_open(self, position: Position) -> Position:
        entry = position.avg_price
        sl, tp = self.config.stop_loss, self.config.take_profit
        position.stop_loss_price = entry * (1 - sl.percent / 100.0) if sl.enabled else None
        position.take_profit_price = entry * (1 + tp.percent / 100.0) if tp.enabled else None
        position.peak_price = max(position.peak_price, entry)
        return position

    def monitor(self, position: Position | None, current_price: float) -> RiskExit | None:
        if position is None or not position.is_open or position.avg_price <= 0:
            return None
        sl, tp = self.config.stop_loss, self.config.take_profit
        entry = position.avg_price
        position.peak_price = max(position.peak_price, current_price)
        pct = unrealized_percent(entry, current_price)

        if sl.enabled:
            if sl.trailing:
                trail = position.peak_price * (1 - sl.percent / 100.0)
                if position.stop_loss_price is None or trail > position.stop_loss_price:
                    position.stop_loss_price = trail
                if current_price <= position.stop_loss_price:
                    return RiskExit("STOP_LOSS", pct, current_price)
            elif pct <= -sl.percent:
                return RiskExit("STOP_LOSS", pct, current_price)

        if tp.enabled:
            if tp.trailing:
                # armed once the peak reached the target; fires on the pullback
                if unrealized_percent(entry, position.peak_price) >= tp.percent:
                    floor = entry * (1 + tp.percent / 100.0)
                    if sl.enabled:
                        floor = max(floor, position.peak_price * (1 - sl.percent / 100.0))
                    if current_price <= floor:
                        return RiskExit("TAKE_PROFIT", pct, current_price)
            elif pct >= tp.percent:
                return RiskExit("TAKE_PROFIT", pct, current_price)
        return None
