from __future__ import annotations


RATE_LIMIT_CODES = frozenset({-1003, 418, 429, 1016})


class TradingError(Exception):
    kind = "ERROR"

    def __init__(self, message: str, kind: str | None = None) -> None:
        super().__init__(message)
        self.message = message
        if kind:
            self.kind = kind


class TransportError(TradingError):
    """Network failure or timeout; retried by the driver, never by the engine."""

    kind = "NETWORK_ERROR"


class ApiError(TradingError):
    kind = "API_ERROR"

    def __init__(self, message: str, code: int | None = None) -> None:
        super().__init__(message)
        self.code = code

    @property
    def is_rate_limit(self) -> bool:
        return self.code in RATE_LIMIT_CODES

    def __str__(self) -> str:
        return f"{self.message} ({self.code})" if self.code is not None else self.message


class DataError(TradingError):
    """Malformed payload: INVALID_RESPONSE, INVALID_DATA or PARSE_ERROR."""

    kind = "INVALID_DATA"


class ConfigError(TradingError):
    kind = "CONFIG_ERROR"
