from __future__ import annotations

from dataclasses import asdict, dataclass
from enum import Enum


class EngineState(str, Enum):
    STOPPED = "STOPPED"
    INITIALIZING = "INITIALIZING"
    RUNNING = "RUNNING"


@dataclass
class EngineStats:
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    total_profit: float = 0.0
    max_drawdown: float = 0.0
    peak_profit: float = 0.0

    def record_open(self) -> None:
        self.total_trades += 1

    def record_close(self, pnl: float) -> None:
        self.total_trades += 1
        self.total_profit += pnl
        if pnl > 0:
            self.winning_trades += 1
        else:
            self.losing_trades += 1
        self.peak_profit = max(self.peak_profit, self.total_profit)
        self.max_drawdown = max(self.max_drawdown, self.peak_profit - self.total_profit)

    @property
    def win_rate(self) -> float:
        closed = self.winning_trades + self.losing_trades
        return self.winning_trades / closed * 100 if closed else 0.0

    def to_dict(self) -> dict:
        data = asdict(self)
        data["win_rate"] = self.win_rate
        return data
