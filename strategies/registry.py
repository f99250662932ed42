from __future__ import annotations

from enum import Enum
from typing import Callable

from engine.errors import ConfigError
from engine.indicators import IndicatorSet
from engine.models import Signal
from services.config_service import StrategyParams
from strategies.base import Strategy
from strategies.bollinger import BollingerStrategy
from strategies.combined import CombinedStrategy
from strategies.macd import MacdStrategy
from strategies.rsi import RsiStrategy
from strategies.sma_crossover import SmaCrossoverStrategy


class StrategyName(str, Enum):
    SMA_CROSSOVER = "sma_crossover"
    RSI = "rsi_strategy"
    MACD = "macd_strategy"
    BOLLINGER = "bollinger_strategy"
    COMBINED = "combined_strategy"


_ALIASES = {
    "sma": StrategyName.SMA_CROSSOVER,
    "rsi": StrategyName.RSI,
    "macd": StrategyName.MACD,
    "bollinger": StrategyName.BOLLINGER,
    "combined": StrategyName.COMBINED,
}

_FACTORIES: dict[StrategyName, Callable[[StrategyParams], Strategy]] = {
    StrategyName.SMA_CROSSOVER: lambda p: SmaCrossoverStrategy(p.sma),
    StrategyName.RSI: lambda p: RsiStrategy(p.rsi),
    StrategyName.MACD: lambda p: MacdStrategy(),
    StrategyName.BOLLINGER: lambda p: BollingerStrategy(),
    StrategyName.COMBINED: lambda p: CombinedStrategy(p),
}


def resolve(name: str) -> StrategyName:
    key = (name or "").strip().lower()
    if key in _ALIASES:
        return _ALIASES[key]
    try:
        return StrategyName(key)
    except ValueError:
        raise ConfigError(f"Unknown strategy: {name}") from None


def build_strategy(name: str, params: StrategyParams | None = None) -> Strategy:
    return _FACTORIES[resolve(name)](params or StrategyParams())


def evaluate(name: str, indicators: IndicatorSet, params: StrategyParams | None = None) -> Signal:
    try:
        strategy = build_strategy(name, params)
    except ConfigError as exc:
        return Signal.hold(f"ConfigError: {exc}")
    return strategy.evaluate(indicators)


def available_strategies() -> list[str]:
    return [s.value for s in StrategyName]


def default_params(name: str) -> dict:
    try:
        strategy = resolve(name)
    except ConfigError:
        return {}
    params = StrategyParams()
    if strategy is StrategyName.SMA_CROSSOVER:
        return params.sma.model_dump()
    if strategy is StrategyName.RSI:
        return params.rsi.model_dump()
    if strategy is StrategyName.MACD:
        return params.macd.model_dump()
    if strategy is StrategyName.BOLLINGER:
        return params.bollinger.model_dump()
    return params.model_dump()
