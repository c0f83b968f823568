from __future__ import annotations

import time
from typing import Any, Callable, Dict, List, Optional

import requests

from common.cache import TTLCache
from common.errors import ExchangeHTTPError, RelayActivationError
from observability import Metrics, build_log_context, log_event

from .base import IExchange
from .credentials import ApiCredentials
from .models import normalize_order, normalize_side
from .retry import with_retry
from .signing import build_query, sign_query

DEFAULT_BASE_URL = "https://api.binance.com"

PING = "/api/v3/ping"
ACCOUNT_INFO = "/api/v3/account"
NEW_ORDER = "/api/v3/order"
EXCHANGE_INFO = "/api/v3/exchangeInfo"
ORDER_BOOK = "/api/v3/depth"
TICKER_PRICE = "/api/v3/ticker/price"

RELAY_LOCK_MARKER = "/corsdemo"


def _now_ms() -> int:
    return int(time.time() * 1000)


class BinanceRestClient(IExchange):
    """
    Thin REST client for the spot exchange.

    Every call goes through `_fetch`, which adds the API key header, turns
    relay lock pages and HTTP failures into typed errors, and retries with a
    fixed budget. An optional relay URL is prefixed to the base URL for
    deployments that can only reach the exchange through one.
    """

    name = "binance"

    def __init__(
        self,
        credentials: Optional[ApiCredentials] = None,
        *,
        base_url: str = DEFAULT_BASE_URL,
        relay_url: str = "",
        timeout: float = 10.0,
        exchange_info_ttl: float = 300.0,
        quote_asset: str = "USDT",
        session: Optional[requests.Session] = None,
        metrics: Optional[Metrics] = None,
        clock_ms: Callable[[], int] = _now_ms,
    ) -> None:
        self.credentials = credentials
        self.exchange_url = base_url.rstrip("/")
        self.relay_url = relay_url.strip()
        self.base_url = f"{self.relay_url}{self.exchange_url}"
        self.timeout = float(timeout)
        self.quote_asset = quote_asset.upper()
        self._session = session or requests.Session()
        self._metrics = metrics
        self._clock_ms = clock_ms
        self._info_cache: TTLCache[str, Dict[str, Any]] = TTLCache(max_items=4)
        self._info_ttl = float(exchange_info_ttl)
        self._ctx = build_log_context(tool="binance_client")

    # -- transport ---------------------------------------------------------

    def _headers(self, api_key: Optional[str] = None) -> Dict[str, str]:
        key = api_key or (self.credentials.api_key if self.credentials else None)
        return {"X-MBX-APIKEY": key} if key else {}

    def _request_once(self, method: str, path: str, query: str, headers: Dict[str, str]) -> Any:
        url = f"{self.base_url}{path}" + (f"?{query}" if query else "")
        started = time.perf_counter()
        ok = False
        try:
            response = self._session.request(method, url, headers=headers, timeout=self.timeout)
            if response.status_code == 403 and RELAY_LOCK_MARKER in (response.text or ""):
                raise RelayActivationError(data={"relay_url": self.relay_url})
            if not response.ok:
                raise ExchangeHTTPError(response.status_code, response.text, {"path": path})
            ok = True
            return response.json()
        finally:
            if self._metrics is not None:
                self._metrics.record_request(path, (time.perf_counter() - started) * 1000.0, ok=ok)

    def _fetch(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        *,
        signed: bool = False,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
    ) -> Any:
        params = dict(params or {})

        def attempt() -> Any:
            if signed:
                secret = api_secret or (self.credentials.api_secret if self.credentials else None)
                if not secret:
                    raise ValueError(f"{path} requires API credentials")
                # Fresh timestamp per attempt so retries are not rejected as stale.
                query = sign_query({**params, "timestamp": self._clock_ms()}, secret)
            else:
                query = build_query(params)
            return self._request_once(method, path, query, self._headers(api_key))

        return with_retry(f"{self.name}.{method.lower()} {path}", attempt)

    # -- connectivity ------------------------------------------------------

    def test_connectivity(self) -> bool:
        try:
            self._fetch("GET", PING)
            return True
        except Exception as e:
            log_event("connectivity_failed", ctx=self._ctx, data={"error": str(e)}, level="error")
            return False

    def needs_relay_activation(self) -> bool:
        """
        Probe the relay once. An unreachable relay counts as locked.
        """
        if not self.relay_url:
            return False
        try:
            response = self._session.get(f"{self.base_url}{PING}", timeout=self.timeout)
            return response.status_code == 403 and RELAY_LOCK_MARKER in (response.text or "")
        except requests.RequestException as e:
            log_event("relay_probe_failed", ctx=self._ctx, data={"error": str(e)}, level="error")
            return True

    def validate_api_keys(self, api_key: str, api_secret: str) -> bool:
        if not ApiCredentials(self.name, api_key or "", api_secret or "").looks_valid():
            log_event("api_keys_rejected", ctx=self._ctx, data={"reason": "missing_or_too_short"}, level="error")
            return False
        if self.needs_relay_activation():
            log_event("api_keys_unchecked", ctx=self._ctx, data={"reason": "relay_needs_activation"}, level="error")
            return False
        if not self.test_connectivity():
            return False
        try:
            self._fetch("GET", ACCOUNT_INFO, signed=True, api_key=api_key, api_secret=api_secret)
        except RelayActivationError:
            raise
        except Exception as e:
            log_event("api_keys_invalid", ctx=self._ctx, data={"error": str(e)}, level="error")
            return False
        log_event("api_keys_valid", ctx=self._ctx)
        return True

    # -- account -----------------------------------------------------------

    def get_account_balance(self) -> List[Dict[str, Any]]:
        data = self._fetch("GET", ACCOUNT_INFO, signed=True)
        return list(data.get("balances") or [])

    # -- market data -------------------------------------------------------

    def get_exchange_info(self) -> Dict[str, Any]:
        return self._info_cache.get_or_load("exchange_info", lambda: self._fetch("GET", EXCHANGE_INFO), self._info_ttl)

    def get_current_price(self, symbol: str) -> float:
        data = self._fetch("GET", TICKER_PRICE, {"symbol": symbol})
        return float(data["price"])

    def get_order_book(self, symbol: str, limit: int = 20) -> Dict[str, Any]:
        return self._fetch("GET", ORDER_BOOK, {"symbol": symbol, "limit": int(limit)})

    # -- trading -----------------------------------------------------------

    def execute_order(self, symbol: str, side: str, quantity: float, price: Optional[float] = None) -> Dict[str, Any]:
        sd = normalize_side(side)
        if quantity <= 0:
            raise ValueError("quantity must be > 0")
        params: Dict[str, Any] = {"symbol": symbol, "side": sd}
        if price:
            params.update({"type": "LIMIT", "timeInForce": "GTC", "quantity": quantity, "price": price})
        else:
            params.update({"type": "MARKET", "quantity": quantity})

        log_event("order_submit", ctx=self._ctx, data={"symbol": symbol, "side": sd, "quantity": quantity, "price": price})
        try:
            order = self._fetch("POST", NEW_ORDER, params, signed=True)
        except Exception as e:
            log_event("order_failed", ctx=self._ctx, data={"symbol": symbol, "side": sd, "error": str(e)}, level="error")
            raise
        log_event("order_executed", ctx=self._ctx, data=normalize_order(order).to_dict())
        return order

    def transfer_profit(self, amount: float, currency: str = "USDT") -> bool:
        # The funds already live on the exchange account; marking them realized is bookkeeping only.
        log_event("profit_realized", ctx=self._ctx, data={"amount": round(float(amount), 2), "currency": currency})
        return True
