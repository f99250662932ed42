from __future__ import annotations

import random
import time

from adapters.base import MarketDataSource
from engine.models import Candle, Ticker

_INTERVAL_MS = {
    "1m": 60_000,
    "5m": 300_000,
    "15m": 900_000,
    "1h": 3_600_000,
}


def interval_ms(interval: str) -> int:
    if interval not in _INTERVAL_MS:
        raise ValueError(f"Unsupported timeframe: {interval}")
    return _INTERVAL_MS[interval]


def synthetic_candles(
    count: int,
    start_price: float = 50000.0,
    interval: str = "1m",
    volatility: float = 0.002,
    seed: int | None = None,
    end_ts: int | None = None,
) -> list[Candle]:
    """Random-walk OHLCV candles ending at ``end_ts`` (default: now)."""
    rng = random.Random(seed)
    step = interval_ms(interval)
    end = end_ts if end_ts is not None else int(time.time() * 1000)
    first = end - (count - 1) * step
    candles = []
    price = start_price
    for i in range(count):
        open_ = price
        close = max(open_ * (1 + rng.gauss(0, volatility)), 0.01)
        wick = abs(rng.gauss(0, volatility / 2))
        candles.append(
            Candle(
                ts=first + i * step,
                open=open_,
                high=max(open_, close) * (1 + wick),
                low=min(open_, close) * (1 - wick),
                close=close,
                volume=round(rng.uniform(1, 100), 4),
            )
        )
        price = close
    return candles


class SyntheticFeed(MarketDataSource):
    def __init__(self, start_price: float = 50000.0, volatility: float = 0.002, seed: int | None = None) -> None:
        self.price = start_price
        self.volatility = volatility
        self._rng = random.Random(seed)
        self._open24h = start_price

    async def fetch_ticker(self, symbol: str) -> Ticker:
        self.price = max(self.price * (1 + self._rng.gauss(0, self.volatility)), 0.01)
        spread = self.price * 0.0001
        return Ticker(
            last=self.price,
            bid=self.price - spread,
            ask=self.price + spread,
            high=max(self.price, self._open24h),
            low=min(self.price, self._open24h),
            volume=round(self._rng.uniform(100, 1000), 4),
            open24h=self._open24h,
            timestamp=int(time.time() * 1000),
        )

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        candles = synthetic_candles(limit, self.price, interval, self.volatility, seed=self._rng.randrange(2**32))
        self.price = candles[-1].close
        return candles
