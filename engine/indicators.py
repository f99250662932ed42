from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Any, Sequence

import pandas as pd
from loguru import logger

from engine.history import MIN_SAMPLES
from engine.models import Candle
from services.config_service import StrategyParams


@dataclass(frozen=True)
class MacdPoint:
    macd: float
    signal: float
    histogram: float


@dataclass(frozen=True)
class BandPoint:
    middle: float
    upper: float
    lower: float
    close: float


@dataclass(frozen=True)
class IndicatorSet:
    series: dict[str, list[Any]] = field(default_factory=dict)

    def get(self, name: str) -> list[Any]:
        return self.series.get(name, [])

    def names(self) -> list[str]:
        return list(self.series.keys())

    def is_empty(self) -> bool:
        return not any(self.series.values())

    def to_dict(self) -> dict[str, list[Any]]:
        return {
            name: [asdict(v) if isinstance(v, (MacdPoint, BandPoint)) else v for v in values]
            for name, values in self.series.items()
        }


def sma(closes: pd.Series, period: int) -> pd.Series:
    if period <= 0 or len(closes) < period:
        return pd.Series(dtype=float)
    return closes.rolling(period).mean().iloc[period - 1 :].reset_index(drop=True)


def ema(values: pd.Series, period: int) -> pd.Series:
    """EMA seeded with the simple mean of the first ``period`` values."""
    if period <= 0 or len(values) < period:
        return pd.Series(dtype=float)
    seed = pd.Series([values.iloc[:period].mean()])
    rest = values.iloc[period:]
    seeded = pd.concat([seed, rest], ignore_index=True)
    return seeded.ewm(span=period, adjust=False).mean()


def rsi(closes: pd.Series, period: int = 14) -> pd.Series:
    """Wilder RSI; the first averages are plain means of the first ``period`` moves."""
    if period <= 0 or len(closes) <= period:
        return pd.Series(dtype=float)
    delta = closes.diff().iloc[1:].reset_index(drop=True)
    gains = delta.clip(lower=0.0)
    losses = (-delta).clip(lower=0.0)
    alpha = 1.0 / period
    avg_gain = pd.concat([pd.Series([gains.iloc[:period].mean()]), gains.iloc[period:]], ignore_index=True)
    avg_loss = pd.concat([pd.Series([losses.iloc[:period].mean()]), losses.iloc[period:]], ignore_index=True)
    avg_gain = avg_gain.ewm(alpha=alpha, adjust=False).mean()
    avg_loss = avg_loss.ewm(alpha=alpha, adjust=False).mean()
    out = 100.0 - 100.0 / (1.0 + avg_gain / avg_loss)
    out = out.where(avg_loss != 0, 100.0)
    return out.where((avg_gain != 0) | (avg_loss != 0), 50.0)


def macd(closes: pd.Series, fast: int = 12, slow: int = 26, signal: int = 9) -> list[MacdPoint]:
    fast_ema = ema(closes, fast)
    slow_ema = ema(closes, slow)
    if slow_ema.empty or fast_ema.empty:
        return []
    aligned_fast = fast_ema.iloc[len(fast_ema) - len(slow_ema) :].reset_index(drop=True)
    line = aligned_fast - slow_ema
    signal_line = ema(line, signal)
    if signal_line.empty:
        return []
    line = line.iloc[len(line) - len(signal_line) :].reset_index(drop=True)
    histogram = line - signal_line
    return [
        MacdPoint(macd=float(m), signal=float(s), histogram=float(h))
        for m, s, h in zip(line, signal_line, histogram)
    ]


def bollinger(closes: pd.Series, period: int = 20, std_dev: float = 2.0) -> list[BandPoint]:
    if period <= 0 or len(closes) < period:
        return []
    middle = closes.rolling(period).mean()
    spread = closes.rolling(period).std(ddof=0) * std_dev
    frame = pd.DataFrame(
        {"middle": middle, "upper": middle + spread, "lower": middle - spread, "close": closes}
    ).iloc[period - 1 :]
    return [
        BandPoint(middle=float(r.middle), upper=float(r.upper), lower=float(r.lower), close=float(r.close))
        for r in frame.itertuples(index=False)
    ]


class IndicatorEngine:
    def __init__(self, params: StrategyParams | None = None, min_samples: int = MIN_SAMPLES) -> None:
        self.params = params or StrategyParams()
        self.min_samples = min_samples

    def sma_periods(self) -> list[int]:
        periods = {20, 50, self.params.sma.short_period, self.params.sma.long_period}
        return sorted(p for p in periods if p > 0)

    def compute(self, candles: Sequence[Candle]) -> IndicatorSet:
        if len(candles) < self.min_samples:
            logger.debug("Insufficient price data for indicators: {} samples", len(candles))
            return IndicatorSet()
        try:
            closes = pd.Series([c.close for c in candles], dtype=float)
            series: dict[str, list[Any]] = {}
            for period in self.sma_periods():
                series[f"sma{period}"] = sma(closes, period).tolist()
            series["rsi"] = rsi(closes, self.params.rsi.period).tolist()
            p = self.params.macd
            series["macd"] = macd(closes, p.fast_period, p.slow_period, p.signal_period)
            b = self.params.bollinger
            series["bollinger"] = bollinger(closes, b.period, b.std_dev)
            return IndicatorSet(series)
        except Exception as exc:
            logger.exception("Indicator computation failed: {}", exc)
            return IndicatorSet()
