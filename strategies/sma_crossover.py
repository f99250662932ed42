from __future__ import annotations

from engine.indicators import IndicatorSet
from engine.models import Signal, SignalKind
from services.config_service import SmaCrossoverParams
from strategies.base import Strategy


class SmaCrossoverStrategy(Strategy):
    name = "sma_crossover"

    def __init__(self, params: SmaCrossoverParams | None = None) -> None:
        self.params = params or SmaCrossoverParams()

    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        short_p, long_p = self.params.short_period, self.params.long_period
        if short_p <= 0 or long_p <= 0:
            return Signal.hold(f"ConfigError: invalid SMA periods {short_p}/{long_p}")
        short = indicators.get(f"sma{short_p}")
        long = indicators.get(f"sma{long_p}")
        if len(short) < 2 or len(long) < 2:
            return Signal.hold("Insufficient SMA data")

        current_short, prev_short = short[-1], short[-2]
        current_long, prev_long = long[-1], long[-2]
        confidence = min(abs(current_short - current_long) / current_long * 100 * 2, 100)

        if current_short > current_long and prev_short <= prev_long:
            return Signal(SignalKind.BUY, f"SMA{short_p} crossed above SMA{long_p}", confidence)
        if current_short < current_long and prev_short >= prev_long:
            return Signal(SignalKind.SELL, f"SMA{short_p} crossed below SMA{long_p}", confidence)
        return Signal.hold("No SMA crossover")
