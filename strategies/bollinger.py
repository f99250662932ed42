from __future__ import annotations

from engine.indicators import IndicatorSet
from engine.models import Signal, SignalKind
from strategies.base import Strategy

LOWER_TOUCH = 1.01
UPPER_TOUCH = 0.99


class BollingerStrategy(Strategy):
    name = "bollinger_strategy"

    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        bands = indicators.get("bollinger")
        if not bands:
            return Signal.hold("Insufficient Bollinger data")

        current = bands[-1]
        position = (current.close - current.lower) / (current.upper - current.lower)
        confidence = min(abs(position - 0.5) * 200, 100)

        if current.close <= current.lower * LOWER_TOUCH:
            return Signal(SignalKind.BUY, "Price touched lower Bollinger band", confidence)
        if current.close >= current.upper * UPPER_TOUCH:
            return Signal(SignalKind.SELL, "Price touched upper Bollinger band", confidence)
        return Signal.hold("Price inside Bollinger bands")
