from __future__ import annotations

import math
from collections import deque
from typing import Iterable

from engine.errors import DataError
from engine.models import Candle, Ticker

MAX_HISTORY = 1000
MIN_SAMPLES = 50


class PriceHistory:
    def __init__(self, capacity: int = MAX_HISTORY, min_samples: int = MIN_SAMPLES) -> None:
        if capacity <= 0:
            raise ValueError("capacity must be positive")
        self.capacity = capacity
        self.min_samples = min_samples
        self._candles: deque[Candle] = deque(maxlen=capacity)

    def __len__(self) -> int:
        return len(self._candles)

    @property
    def is_sufficient(self) -> bool:
        return len(self._candles) >= self.min_samples

    @property
    def last_price(self) -> float | None:
        if not self._candles:
            return None
        return self._candles[-1].close

    def bulk_load(self, candles: Iterable[Candle]) -> None:
        loaded = list(candles)
        prev_ts = None
        for candle in loaded:
            _validate(candle)
            if prev_ts is not None and candle.ts <= prev_ts:
                raise DataError(f"Candles out of order at ts={candle.ts}", kind="INVALID_DATA")
            prev_ts = candle.ts
        self._candles = deque(loaded[-self.capacity :], maxlen=self.capacity)

    def append(self, candle: Candle) -> None:
        _validate(candle)
        self._candles.append(candle)

    def append_ticker(self, ticker: Ticker) -> Candle:
        price = float(ticker.last)
        candle = Candle(
            ts=int(ticker.timestamp),
            open=price,
            high=price,
            low=price,
            close=price,
            volume=float(ticker.volume or 0.0),
        )
        self.append(candle)
        return candle

    def snapshot(self) -> tuple[Candle, ...]:
        return tuple(self._candles)

    def closes(self) -> list[float]:
        return [c.close for c in self._candles]


def _validate(candle: Candle) -> None:
    for name in ("open", "high", "low", "close", "volume"):
        value = getattr(candle, name)
        if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
            raise DataError(f"Candle field {name} is not numeric: {value!r}", kind="INVALID_DATA")
    if not isinstance(candle.ts, int):
        raise DataError(f"Candle timestamp is not an integer: {candle.ts!r}", kind="INVALID_DATA")
