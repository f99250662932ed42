from __future__ import annotations

import math
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Literal


class SignalKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    HOLD = "HOLD"


@dataclass(frozen=True)
class Candle:
    ts: int
    open: float
    high: float
    low: float
    close: float
    volume: float


@dataclass(frozen=True)
class Ticker:
    last: float
    bid: float
    ask: float
    high: float
    low: float
    volume: float
    open24h: float
    timestamp: int

    @property
    def change(self) -> float:
        return self.last - self.open24h

    @property
    def change_percent(self) -> float:
        if not self.open24h:
            return 0.0
        return self.change / self.open24h * 100


@dataclass(frozen=True)
class Signal:
    kind: SignalKind
    reason: str
    confidence: float = 0.0

    def __post_init__(self) -> None:
        confidence = float(self.confidence)
        if math.isnan(confidence):
            confidence = 0.0
        object.__setattr__(self, "confidence", min(max(confidence, 0.0), 100.0))

    @classmethod
    def hold(cls, reason: str) -> Signal:
        return cls(SignalKind.HOLD, reason, 0.0)

    @property
    def actionable(self) -> bool:
        return self.kind is not SignalKind.HOLD

    def to_dict(self) -> dict:
        return {"signal": self.kind.value, "reason": self.reason, "confidence": self.confidence}


@dataclass
class Position:
    symbol: str
    size: float
    avg_price: float
    stop_loss_price: float | None = None
    take_profit_price: float | None = None
    opened_at: int = field(default_factory=lambda: int(time.time() * 1000))
    peak_price: float = 0.0

    def __post_init__(self) -> None:
        if not self.peak_price:
            self.peak_price = self.avg_price

    @property
    def is_open(self) -> bool:
        return self.size > 0


@dataclass(frozen=True)
class Fill:
    order_id: str
    side: Literal["BUY", "SELL"]
    size: float
    fill_price: float
    filled_at: int
    pnl: float | None = None


@dataclass(frozen=True)
class Trade:
    id: str
    type: Literal["BUY", "SELL"]
    price: float
    quantity: float
    timestamp: int
    reason: str
    confidence: float
    stop_loss: float | None = None
    take_profit: float | None = None
    pnl: float | None = None


@dataclass(frozen=True)
class Balance:
    total: float
    free: float
    used: float


@dataclass(frozen=True)
class Account:
    balances: dict[str, Balance]
    fetched_at: float = field(default_factory=time.time)

    def free(self, currency: str) -> float:
        balance = self.balances.get(currency)
        return balance.free if balance else 0.0

    def total(self, currency: str) -> float:
        balance = self.balances.get(currency)
        return balance.total if balance else 0.0

    def age(self, now: float | None = None) -> float:
        return (now if now is not None else time.time()) - self.fetched_at

    def is_fresh(self, max_age: float, now: float | None = None) -> bool:
        return self.age(now) <= max_age
