from __future__ import annotations

from engine.indicators import IndicatorSet
from engine.models import Signal, SignalKind
from strategies.base import Strategy


class MacdStrategy(Strategy):
    name = "macd_strategy"

    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        points = indicators.get("macd")
        if len(points) < 2:
            return Signal.hold("Insufficient MACD data")

        current, prev = points[-1], points[-2]
        confidence = min(abs(current.histogram - prev.histogram) * 10, 100)

        if current.macd > current.signal and prev.macd <= prev.signal and current.histogram > 0:
            return Signal(SignalKind.BUY, "MACD golden cross", confidence)
        if current.macd < current.signal and prev.macd >= prev.signal and current.histogram < 0:
            return Signal(SignalKind.SELL, "MACD death cross", confidence)
        return Signal.hold("No MACD cross")
