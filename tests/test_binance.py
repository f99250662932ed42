import asyncio
from types import SimpleNamespace

import pytest
import requests
from binance.exceptions import BinanceAPIException

from adapters.binance_spot import BinanceSpotGateway
from engine.errors import ApiError, DataError, TransportError


def _api_error(status: int, code: int) -> BinanceAPIException:
    return BinanceAPIException(SimpleNamespace(request=None), status, f'{{"code": {code}, "msg": "rejected"}}')


class FakeClient:
    def __init__(self, ticker=None, klines=None, error: Exception | None = None, order=None) -> None:
        self.ticker = ticker
        self.klines = klines
        self.error = error
        self.order = order
        self.orders: list[dict] = []

    def get_ticker(self, symbol):
        if self.error:
            raise self.error
        return self.ticker

    def get_klines(self, symbol, interval, limit):
        if self.error:
            raise self.error
        return self.klines

    def get_symbol_info(self, symbol):
        return {
            "symbol": symbol,
            "baseAsset": "BTC",
            "quoteAsset": "USDT",
            "filters": [{"filterType": "LOT_SIZE", "stepSize": "0.00100000"}],
        }

    def create_order(self, **kwargs):
        self.orders.append(kwargs)
        return self.order


def test_api_exception_maps_to_api_error_code():
    gateway = BinanceSpotGateway(client=FakeClient(error=_api_error(400, -1003)))
    with pytest.raises(ApiError) as info:
        asyncio.run(gateway.fetch_ticker("BTCUSDT"))
    assert info.value.code == -1003
    assert info.value.is_rate_limit


def test_http_status_429_wins_over_body_code():
    gateway = BinanceSpotGateway(client=FakeClient(error=_api_error(429, -1015)))
    with pytest.raises(ApiError) as info:
        asyncio.run(gateway.fetch_candles("BTCUSDT", "1m", 10))
    assert info.value.code == 429
    assert info.value.is_rate_limit


def test_plain_api_error_is_not_rate_limit():
    gateway = BinanceSpotGateway(client=FakeClient(error=_api_error(400, -1121)))
    with pytest.raises(ApiError) as info:
        asyncio.run(gateway.fetch_ticker("BTCUSDT"))
    assert info.value.code == -1121
    assert not info.value.is_rate_limit


def test_timeout_maps_to_transport_error():
    gateway = BinanceSpotGateway(client=FakeClient(error=requests.Timeout("slow")))
    with pytest.raises(TransportError) as info:
        asyncio.run(gateway.fetch_ticker("BTCUSDT"))
    assert info.value.kind == "TIMEOUT"


def test_connection_failure_maps_to_network_error():
    gateway = BinanceSpotGateway(client=FakeClient(error=requests.ConnectionError("refused")))
    with pytest.raises(TransportError) as info:
        asyncio.run(gateway.fetch_ticker("BTCUSDT"))
    assert info.value.kind == "NETWORK_ERROR"


def test_ticker_missing_fields_is_parse_error():
    gateway = BinanceSpotGateway(client=FakeClient(ticker={"lastPrice": "100.0"}))
    with pytest.raises(DataError) as info:
        asyncio.run(gateway.fetch_ticker("BTCUSDT"))
    assert info.value.kind == "PARSE_ERROR"


def test_short_kline_rows_are_parse_error():
    gateway = BinanceSpotGateway(client=FakeClient(klines=[[1, "1", "2", "0.5"]]))
    with pytest.raises(DataError) as info:
        asyncio.run(gateway.fetch_candles("BTCUSDT", "1m", 10))
    assert info.value.kind == "PARSE_ERROR"


def test_ticker_parses_rest_payload():
    raw = {
        "lastPrice": "101.5",
        "bidPrice": "101.4",
        "askPrice": "101.6",
        "highPrice": "105",
        "lowPrice": "99",
        "volume": "12.5",
        "openPrice": "100",
        "closeTime": 1700000000000,
    }
    ticker = asyncio.run(BinanceSpotGateway(client=FakeClient(ticker=raw)).fetch_ticker("BTCUSDT"))
    assert ticker.last == 101.5
    assert ticker.open24h == 100.0
    assert ticker.timestamp == 1700000000000


def test_buy_fill_is_net_of_base_asset_commission():
    order = {
        "orderId": 42,
        "transactTime": 1700000000000,
        "executedQty": "0.100",
        "fills": [
            {"price": "100", "qty": "0.060", "commission": "0.00006", "commissionAsset": "BTC"},
            {"price": "110", "qty": "0.040", "commission": "0.00004", "commissionAsset": "BTC"},
        ],
    }
    client = FakeClient(order=order)
    fill = asyncio.run(BinanceSpotGateway(client=client).place_order("BTCUSDT", "BUY", 0.1))
    assert client.orders[0]["quantity"] == "0.1"
    assert fill.size == pytest.approx(0.099)
    assert fill.fill_price == pytest.approx(104.0)
    assert fill.order_id == "42"


def test_quote_asset_commission_leaves_size_untouched():
    order = {
        "orderId": 7,
        "executedQty": "0.100",
        "fills": [{"price": "100", "qty": "0.100", "commission": "0.01", "commissionAsset": "USDT"}],
    }
    fill = asyncio.run(BinanceSpotGateway(client=FakeClient(order=order)).place_order("BTCUSDT", "BUY", 0.1))
    assert fill.size == pytest.approx(0.1)
