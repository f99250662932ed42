from __future__ import annotations

from abc import ABC, abstractmethod

from loguru import logger

from engine.indicators import IndicatorSet
from engine.models import Signal


class Strategy(ABC):
    name: str = "strategy"

    def evaluate(self, indicators: IndicatorSet) -> Signal:
        try:
            return self._evaluate(indicators)
        except Exception as exc:
            logger.debug("{} evaluation failed: {!r}", self.name, exc)
            return Signal.hold(f"{self.name} evaluation error: {exc!r}")

    @abstractmethod
    def _evaluate(self, indicators: IndicatorSet) -> Signal:
        raise NotImplementedError
