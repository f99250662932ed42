from __future__ import annotations

import asyncio
import time
from decimal import Decimal
from typing import Any, Callable

import requests
from binance.client import Client
from binance.exceptions import BinanceAPIException, BinanceRequestException
from loguru import logger

from adapters.base import ExchangeGateway, Side
from engine.errors import ApiError, ConfigError, DataError, TransportError
from engine.models import Account, Balance, Candle, Fill, Position, Ticker


_TIMEFRAME_MAP = {
    "1m": Client.KLINE_INTERVAL_1MINUTE,
    "5m": Client.KLINE_INTERVAL_5MINUTE,
    "15m": Client.KLINE_INTERVAL_15MINUTE,
    "1h": Client.KLINE_INTERVAL_1HOUR,
}


class BinanceSpotGateway(ExchangeGateway):
    def __init__(self, api_key: str = "", api_secret: str = "", client: Client | None = None) -> None:
        self.client = client or Client(api_key, api_secret)
        self._precision_cache: dict[str, dict[str, Decimal]] = {}
        self._base_assets: dict[str, str] = {}
        self._has_keys = bool(api_key and api_secret) or client is not None

    async def _call(self, fn: Callable[..., Any], **kwargs: Any) -> Any:
        try:
            return await asyncio.to_thread(fn, **kwargs)
        except BinanceAPIException as exc:
            code = exc.status_code if exc.status_code in (418, 429) else exc.code
            raise ApiError(f"Binance API error: {exc.message}", code=code) from exc
        except BinanceRequestException as exc:
            raise DataError(f"Invalid response: {exc.message}", kind="INVALID_RESPONSE") from exc
        except requests.Timeout as exc:
            raise TransportError("Request timed out", kind="TIMEOUT") from exc
        except requests.RequestException as exc:
            raise TransportError(f"Network error: {exc}", kind="NETWORK_ERROR") from exc

    async def fetch_ticker(self, symbol: str) -> Ticker:
        raw = await self._call(self.client.get_ticker, symbol=symbol)
        try:
            return Ticker(
                last=float(raw["lastPrice"]),
                bid=float(raw["bidPrice"]),
                ask=float(raw["askPrice"]),
                high=float(raw["highPrice"]),
                low=float(raw["lowPrice"]),
                volume=float(raw["volume"]),
                open24h=float(raw["openPrice"]),
                timestamp=int(raw.get("closeTime") or time.time() * 1000),
            )
        except (KeyError, TypeError, ValueError) as exc:
            raise DataError(f"Malformed ticker payload: {exc}", kind="PARSE_ERROR") from exc

    async def fetch_candles(self, symbol: str, interval: str, limit: int = 500) -> list[Candle]:
        tf = _TIMEFRAME_MAP.get(interval)
        if not tf:
            raise ConfigError(f"Unsupported timeframe: {interval}")
        klines = await self._call(self.client.get_klines, symbol=symbol, interval=tf, limit=limit)
        if not isinstance(klines, list):
            raise DataError("Kline payload is not a list", kind="INVALID_DATA")
        candles = []
        try:
            for k in klines:
                candles.append(
                    Candle(
                        ts=int(k[0]),
                        open=float(k[1]),
                        high=float(k[2]),
                        low=float(k[3]),
                        close=float(k[4]),
                        volume=float(k[5]),
                    )
                )
        except (IndexError, TypeError, ValueError) as exc:
            raise DataError(f"Malformed kline payload: {exc}", kind="PARSE_ERROR") from exc
        return candles

    async def get_account_balance(self) -> Account:
        if not self._has_keys:
            raise ConfigError("Binance API keys missing for account access")
        raw = await self._call(self.client.get_account)
        balances: dict[str, Balance] = {}
        try:
            for item in raw["balances"]:
                free = float(item["free"])
                locked = float(item["locked"])
                if free or locked:
                    balances[item["asset"]] = Balance(total=free + locked, free=free, used=locked)
        except (KeyError, TypeError, ValueError) as exc:
            raise DataError(f"Malformed account payload: {exc}", kind="PARSE_ERROR") from exc
        return Account(balances=balances)

    async def get_positions(self, symbol: str) -> Position | None:
        # spot accounts have no position endpoint; LiveExecution tracks fills
        return None

    async def place_order(
        self,
        symbol: str,
        side: Side,
        size: float,
        order_type: str = "market",
        stop_loss_price: float | None = None,
        take_profit_price: float | None = None,
    ) -> Fill:
        if not self._has_keys:
            raise ConfigError("Binance API keys missing for live order")
        if order_type.lower() != "market":
            raise ConfigError(f"Unsupported order type: {order_type}")
        qty = await self._round_qty(symbol, size)
        if qty <= 0:
            raise ApiError(f"Order size {size} below lot step for {symbol}")
        if stop_loss_price or take_profit_price:
            logger.debug("Guards for {} are enforced by the engine, not the exchange", symbol)
        resp = await self._call(
            self.client.create_order,
            symbol=symbol,
            side=Client.SIDE_BUY if side == "BUY" else Client.SIDE_SELL,
            type=Client.ORDER_TYPE_MARKET,
            quantity=str(qty),
        )
        try:
            fills = resp.get("fills", [])
            gross = sum(float(f["qty"]) for f in fills) or float(resp.get("executedQty", qty))
            if fills:
                price = sum(float(f["price"]) * float(f["qty"]) for f in fills) / gross
            else:
                price = float(resp.get("price", 0.0))
            filled = gross
            if side == "BUY":
                filled = await self._net_of_base_fee(symbol, gross, fills)
            return Fill(
                order_id=str(resp["orderId"]),
                side=side,
                size=filled,
                fill_price=price,
                filled_at=int(resp.get("transactTime") or time.time() * 1000),
            )
        except (KeyError, TypeError, ValueError, ZeroDivisionError) as exc:
            raise DataError(f"Malformed order response: {exc}", kind="PARSE_ERROR") from exc

    async def _net_of_base_fee(self, symbol: str, gross: float, fills: list[dict]) -> float:
        # BUY fees charged in the base asset shrink what a later SELL can send
        base = self._base_assets.get(symbol)
        fee = sum(float(f.get("commission", 0.0)) for f in fills if base and f.get("commissionAsset") == base)
        if not fee:
            return gross
        net = await self._round_qty(symbol, gross - fee)
        logger.debug("Net BUY size {} after {} {} fee", net, fee, base)
        return net

    async def _round_qty(self, symbol: str, qty: float) -> float:
        info = self._precision_cache.get(symbol)
        if not info:
            info = await self._load_precision(symbol)
            self._precision_cache[symbol] = info
        step = info["step"]
        rounded = (Decimal(str(qty)) // step) * step
        return float(rounded)

    async def _load_precision(self, symbol: str) -> dict[str, Decimal]:
        info = await self._call(self.client.get_symbol_info, symbol=symbol)
        if not info:
            raise ConfigError(f"Symbol not found: {symbol}")
        lot_filter = next(f for f in info["filters"] if f["filterType"] == "LOT_SIZE")
        step = Decimal(lot_filter["stepSize"])
        if info.get("baseAsset"):
            self._base_assets[symbol] = info["baseAsset"]
        return {"step": step}
