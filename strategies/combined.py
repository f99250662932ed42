from __future__ import annotations

from typing import Sequence

from engine.indicators import IndicatorSet
from engine.models import Signal, SignalKind
from services.config_service import StrategyParams
from strategies.base import Strategy
from strategies.bollinger import BollingerStrategy
from strategies.macd import MacdStrategy
from strategies.rsi import RsiStrategy
from strategies.sma_crossover import SmaCrossoverStrategy

MIN_VOTES = 2


class CombinedStrategy(Strategy):
    """Majority vote of the four single-indicator rules.

    Confidence is the mean over every non-HOLD vote, including votes for the
    losing side.
    """

    name = "combined_strategy"

    def __init__(self, params: StrategyParams | None = None, members: Sequence[Strategy] | None = None) -> None:
        params = params or StrategyParams()
        self.members = list(members) if members is not None else [
            SmaCrossoverStrategy(params.sma),
            RsiStrategy(params.rsi),
            MacdStrategy(),
            BollingerStrategy(),
        ]

    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        votes = [member.evaluate(indicators) for member in self.members]
        buys = [v for v in votes if v.kind is SignalKind.BUY]
        sells = [v for v in votes if v.kind is SignalKind.SELL]
        active = [v.confidence for v in votes if v.actionable]
        confidence = sum(active) / len(active) if active else 0.0

        if len(buys) >= MIN_VOTES:
            return Signal(SignalKind.BUY, f"Buy confirmed by {len(buys)} indicators", confidence)
        if len(sells) >= MIN_VOTES:
            return Signal(SignalKind.SELL, f"Sell confirmed by {len(sells)} indicators", confidence)
        return Signal.hold("Indicators disagree")
