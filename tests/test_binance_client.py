import json
from unittest.mock import MagicMock
from urllib.parse import parse_qs, urlsplit

import pytest
import requests

from common.errors import AppError, RelayActivationError
from execution.binance_client import BinanceRestClient
from execution.credentials import ApiCredentials
from execution.signing import create_signature
from observability import Metrics

KEY = "k" * 16
SECRET = "s" * 16

EXCHANGE_INFO = {
    "symbols": [
        {
            "symbol": "BTCUSDT", "status": "TRADING", "quoteAsset": "USDT", "isSpotTradingAllowed": True,
            "filters": [{"filterType": "LOT_SIZE", "minQty": "0.00001000", "stepSize": "0.00001000"}],
        },
        {"symbol": "ETHBTC", "status": "TRADING", "quoteAsset": "BTC", "isSpotTradingAllowed": True, "filters": []},
        {"symbol": "LUNAUSDT", "status": "BREAK", "quoteAsset": "USDT", "isSpotTradingAllowed": True, "filters": []},
        {"symbol": "XYZUSDT", "status": "TRADING", "quoteAsset": "USDT", "isSpotTradingAllowed": False, "filters": []},
    ]
}


def _resp(status=200, payload=None, text=None):
    r = MagicMock()
    r.status_code = status
    r.ok = 200 <= status < 300
    r.text = text if text is not None else json.dumps(payload)
    r.json.return_value = payload
    return r


def _client(session, **kw):
    return BinanceRestClient(
        ApiCredentials("binance", KEY, SECRET),
        session=session,
        clock_ms=lambda: 1700000000000,
        **kw,
    )


def _query(call):
    method, url = call.args[0], call.args[1]
    return method, urlsplit(url)


def test_signed_request_sends_key_timestamp_and_signature():
    session = MagicMock()
    session.request.return_value = _resp(payload={"balances": [{"asset": "USDT", "free": "12.5", "locked": "0"}]})
    client = _client(session)

    assert client.get_free_balance("USDT") == 12.5

    call = session.request.call_args
    method, url = _query(call)
    assert method == "GET"
    assert url.path == "/api/v3/account"
    assert call.kwargs["headers"] == {"X-MBX-APIKEY": KEY}
    unsigned, signature = url.query.rsplit("&signature=", 1)
    assert unsigned == "timestamp=1700000000000"
    assert signature == create_signature(unsigned, SECRET)


def test_market_and_limit_order_queries():
    session = MagicMock()
    session.request.return_value = _resp(payload={"orderId": 1, "symbol": "BTCUSDT", "status": "FILLED"})
    client = _client(session)

    client.execute_order("BTCUSDT", "buy", 0.00004)
    _, url = _query(session.request.call_args)
    assert url.query.startswith("symbol=BTCUSDT&side=BUY&type=MARKET&quantity=0.00004&timestamp=1700000000000&signature=")

    client.execute_order("BTCUSDT", "SELL", 0.5, price=65000.5)
    method, url = _query(session.request.call_args)
    assert method == "POST"
    assert url.path == "/api/v3/order"
    assert url.query.startswith(
        "symbol=BTCUSDT&side=SELL&type=LIMIT&timeInForce=GTC&quantity=0.5&price=65000.5&timestamp=1700000000000"
    )


def test_execute_order_validates_inputs():
    client = _client(MagicMock())
    with pytest.raises(ValueError):
        client.execute_order("BTCUSDT", "HOLD", 1.0)
    with pytest.raises(ValueError):
        client.execute_order("BTCUSDT", "BUY", 0)


def test_relay_prefix_and_activation_error_is_not_retried():
    session = MagicMock()
    session.request.return_value = _resp(403, text="See /corsdemo for more info")
    client = _client(session, relay_url="https://relay.example/")

    with pytest.raises(RelayActivationError):
        client.get_current_price("BTCUSDT")
    assert session.request.call_count == 1
    assert session.request.call_args.args[1] == "https://relay.example/https://api.binance.com/api/v3/ticker/price?symbol=BTCUSDT"


def test_server_errors_are_retried_then_raised(monkeypatch):
    monkeypatch.setenv("EXCHANGE_MAX_RETRIES", "3")
    session = MagicMock()
    session.request.return_value = _resp(500, text="boom")
    metrics = Metrics()
    client = _client(session, metrics=metrics)

    with pytest.raises(AppError) as e:
        client.get_order_book("BTCUSDT")
    assert session.request.call_count == 4
    assert e.value.data["status"] == 500
    assert metrics.snapshot()["counters"]["exchange_request_errors_total"] == 4


def test_connectivity_never_raises():
    session = MagicMock()
    session.request.side_effect = requests.ConnectionError("offline")
    assert _client(session).test_connectivity() is False

    session.request.side_effect = None
    session.request.return_value = _resp(payload={})
    assert _client(session).test_connectivity() is True


def test_needs_relay_activation():
    session = MagicMock()
    assert _client(session).needs_relay_activation() is False

    session.get.return_value = _resp(403, text="/corsdemo")
    assert _client(session, relay_url="https://relay.example/").needs_relay_activation() is True

    session.get.return_value = _resp(200, payload={})
    assert _client(session, relay_url="https://relay.example/").needs_relay_activation() is False

    session.get.side_effect = requests.ConnectionError("refused")
    assert _client(session, relay_url="https://relay.example/").needs_relay_activation() is True


def test_validate_api_keys():
    session = MagicMock()
    client = _client(session)
    assert client.validate_api_keys("short", SECRET) is False
    assert client.validate_api_keys(KEY, "") is False
    session.request.assert_not_called()

    session.request.return_value = _resp(payload={"balances": []})
    assert client.validate_api_keys(KEY, SECRET) is True

    session.request.side_effect = [_resp(payload={}), _resp(401, text='{"msg":"Invalid API-key"}')]
    assert client.validate_api_keys(KEY, SECRET) is False


def test_exchange_info_is_cached_and_pairs_filtered():
    session = MagicMock()
    session.request.return_value = _resp(payload=EXCHANGE_INFO)
    client = _client(session)

    assert client.get_tradable_usdt_pairs() == ["BTCUSDT"]
    assert client.get_tradable_usdt_pairs() == ["BTCUSDT"]
    assert session.request.call_count == 1


def test_tradable_pairs_empty_on_failure():
    session = MagicMock()
    session.request.return_value = _resp(400, text="bad")
    assert _client(session).get_tradable_usdt_pairs() == []


def test_optimal_quantity_uses_lot_size_and_falls_back():
    session = MagicMock()

    def route(method, url, **kw):
        if "/ticker/price" in url:
            return _resp(payload={"symbol": "BTCUSDT", "price": "65000.00"})
        return _resp(payload=EXCHANGE_INFO)

    session.request.side_effect = route
    client = _client(session)
    # 25% of 10 USDT at 65000 = 0.0000384 -> floored to 0.00003
    assert client.calculate_optimal_quantity("BTCUSDT", 10.0, 25.0) == 0.00003
    assert client.calculate_optimal_quantity("NOPEUSDT", 10.0, 25.0) == 0.001


def test_volatility_zero_on_failure():
    session = MagicMock()
    session.request.return_value = _resp(payload={"bids": [], "asks": []})
    assert _client(session).calculate_volatility("BTCUSDT") == 0.0

    session.request.return_value = _resp(payload={"bids": [["100", "5"]], "asks": [["101", "5"]]})
    assert _client(session).calculate_volatility("BTCUSDT") == pytest.approx(1.0)


def test_transfer_profit_only_logs():
    session = MagicMock()
    assert _client(session).transfer_profit(300.0) is True
    session.request.assert_not_called()


def test_invalid_symbol_maps_to_bad_symbol():
    session = MagicMock()
    session.request.return_value = _resp(400, payload={"code": -1121, "msg": "Invalid symbol."})
    with pytest.raises(AppError) as e:
        _client(session).get_order_book("NOPEUSDT")
    assert e.value.code == "bad_symbol"
    assert e.value.data["status"] == 400
    # deterministic rejection, no second attempt
    assert session.request.call_count == 1


def test_other_client_errors_are_rejections():
    session = MagicMock()
    session.request.return_value = _resp(400, payload={"code": -1013, "msg": "Filter failure: LOT_SIZE"})
    with pytest.raises(AppError) as e:
        _client(session).execute_order("BTCUSDT", "BUY", 0.001)
    assert e.value.code == "rejected"
