from __future__ import annotations

from engine.indicators import IndicatorSet
from engine.models import Signal, SignalKind
from services.config_service import RsiParams
from strategies.base import Strategy


class RsiStrategy(Strategy):
    name = "rsi_strategy"

    def __init__(self, params: RsiParams | None = None) -> None:
        self.params = params or RsiParams()

    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        if self.params.oversold >= self.params.overbought:
            return Signal.hold("ConfigError: RSI oversold must be below overbought")
        values = indicators.get("rsi")
        if len(values) < 2:
            return Signal.hold("Insufficient RSI data")

        current, prev = values[-1], values[-2]
        change = current - prev
        confidence = min(abs(change) * 2, 100)

        if current < self.params.oversold and change > 0:
            return Signal(SignalKind.BUY, f"RSI oversold rebound ({current:.1f})", confidence)
        if current > self.params.overbought and change < 0:
            return Signal(SignalKind.SELL, f"RSI overbought pullback ({current:.1f})", confidence)
        return Signal.hold("RSI within normal range")
