from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BotSettings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    SYMBOL: str = "BTCUSDT"
    STRATEGY: str = "sma_crossover"
    INTERVAL: str = "1m"
    HISTORY_LIMIT: int = 500
    RISK_PERCENT: float = 2.0
    RISK_AMOUNT: float = 100.0
    IS_SIMULATED: bool = True
    SIMULATED_BALANCE: float = 10000.0
    QUOTE_CURRENCY: str = "USDT"
    STOP_LOSS_ENABLED: bool = True
    STOP_LOSS_PERCENT: float = 2.0
    STOP_LOSS_TRAILING: bool = False
    TAKE_PROFIT_ENABLED: bool = True
    TAKE_PROFIT_PERCENT: float = 5.0
    TAKE_PROFIT_TRAILING: bool = False
    MIN_CONFIDENCE: float = 70.0
    ACCOUNT_MAX_AGE: float = 300.0
    FEED: str = "binance"
    POLL_INTERVAL: float = 10.0
    MIN_POLL_INTERVAL: float = 5.0
    MAX_POLL_INTERVAL: float = 60.0
    STALE_AFTER: float = 15.0
    BINANCE_API_KEY: str = ""
    BINANCE_API_SECRET: str = ""
    LOG_LEVEL: str = "INFO"


class GuardConfig(BaseModel):
    enabled: bool = True
    percent: float = Field(default=2.0, gt=0)
    trailing: bool = False


class SmaCrossoverParams(BaseModel):
    short_period: int = 20
    long_period: int = 50


class RsiParams(BaseModel):
    period: int = 14
    oversold: float = 30.0
    overbought: float = 70.0


class MacdParams(BaseModel):
    fast_period: int = 12
    slow_period: int = 26
    signal_period: int = 9


class BollingerParams(BaseModel):
    period: int = 20
    std_dev: float = 2.0


class StrategyParams(BaseModel):
    sma: SmaCrossoverParams = Field(default_factory=SmaCrossoverParams)
    rsi: RsiParams = Field(default_factory=RsiParams)
    macd: MacdParams = Field(default_factory=MacdParams)
    bollinger: BollingerParams = Field(default_factory=BollingerParams)


class EngineConfig(BaseModel):
    symbol: str = "BTCUSDT"
    strategy: str = "sma_crossover"
    interval: str = "1m"
    history_limit: int = 500
    risk_percent: float = 2.0
    risk_amount: float = 100.0
    max_positions: int = Field(default=1, ge=1, le=1)
    is_simulated: bool = True
    simulated_balance: float = 10000.0
    quote_currency: str = "USDT"
    account_max_age: float = 300.0
    stop_loss: GuardConfig = Field(default_factory=lambda: GuardConfig(percent=2.0))
    take_profit: GuardConfig = Field(default_factory=lambda: GuardConfig(percent=5.0))
    params: StrategyParams = Field(default_factory=StrategyParams)

    @classmethod
    def from_settings(cls, settings: BotSettings) -> EngineConfig:
        return cls(
            symbol=settings.SYMBOL,
            strategy=settings.STRATEGY,
            interval=settings.INTERVAL,
            history_limit=settings.HISTORY_LIMIT,
            risk_percent=settings.RISK_PERCENT,
            risk_amount=settings.RISK_AMOUNT,
            is_simulated=settings.IS_SIMULATED,
            simulated_balance=settings.SIMULATED_BALANCE,
            quote_currency=settings.QUOTE_CURRENCY,
            account_max_age=settings.ACCOUNT_MAX_AGE,
            stop_loss=GuardConfig(
                enabled=settings.STOP_LOSS_ENABLED,
                percent=settings.STOP_LOSS_PERCENT,
                trailing=settings.STOP_LOSS_TRAILING,
            ),
            take_profit=GuardConfig(
                enabled=settings.TAKE_PROFIT_ENABLED,
                percent=settings.TAKE_PROFIT_PERCENT,
                trailing=settings.TAKE_PROFIT_TRAILING,
            ),
        )


class ConfigService:
    def __init__(self, base: BotSettings) -> None:
        self.base = base
        self._overrides: dict[str, Any] = {}

    def load(self) -> EngineConfig:
        config = EngineConfig.from_settings(self.base)
        if not self._overrides:
            return config
        return EngineConfig.model_validate({**config.model_dump(), **self._overrides})

    def update(self, key: str, value: Any) -> None:
        if key not in EngineConfig.model_fields:
            raise ValueError(f"Unknown config key: {key}")
        self._overrides[key] = value
