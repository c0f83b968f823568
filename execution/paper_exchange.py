from __future__ import annotations

import itertools
import random
import threading
import time
import uuid
from typing import Any, Dict, List, Optional, Tuple

from common.errors import AppError, InsufficientFundsError
from observability import build_log_context, log_event

from .base import IExchange
from .credentials import ApiCredentials
from .models import normalize_side
from .sizing import step_decimals

# symbol -> (base, quote, start price, min qty, step size, status)
PAPER_SYMBOLS: Dict[str, Tuple[str, str, float, float, float, str]] = {
    "BTCUSDT": ("BTC", "USDT", 65000.0, 0.00001, 0.00001, "TRADING"),
    "ETHUSDT": ("ETH", "USDT", 3200.0, 0.0001, 0.0001, "TRADING"),
    "SOLUSDT": ("SOL", "USDT", 150.0, 0.001, 0.001, "TRADING"),
    "BNBUSDT": ("BNB", "USDT", 580.0, 0.001, 0.001, "TRADING"),
    "DOGEUSDT": ("DOGE", "USDT", 0.15, 1.0, 1.0, "TRADING"),
    "XRPUSDT": ("XRP", "USDT", 0.55, 0.1, 0.1, "TRADING"),
    "ADAUSDT": ("ADA", "USDT", 0.45, 0.1, 0.1, "TRADING"),
    "AVAXUSDT": ("AVAX", "USDT", 28.0, 0.01, 0.01, "TRADING"),
    "LINKUSDT": ("LINK", "USDT", 14.0, 0.01, 0.01, "TRADING"),
    "PEPEUSDT": ("PEPE", "USDT", 0.00001, 1.0, 1.0, "TRADING"),
    "LUNAUSDT": ("LUNA", "USDT", 0.4, 0.01, 0.01, "BREAK"),
    "ETHBTC": ("ETH", "BTC", 0.049, 0.0001, 0.0001, "TRADING"),
}


class PaperExchange(IExchange):
    """
    In-memory exchange used when no live trading should happen.

    - prices follow a seeded random walk, advanced on every price read
    - the order book is synthesized around the current price
    - market and limit orders fill immediately against free balances

    Nothing is persisted; a new instance starts from `start_balance` quote.
    """

    name = "paper"

    def __init__(
        self,
        *,
        start_balance: float = 10.0,
        quote_asset: str = "USDT",
        seed: Optional[int] = None,
        step_vol: float = 0.004,
    ) -> None:
        self.quote_asset = quote_asset.upper()
        # Simulation RNG, not cryptographic.
        self._rng = random.Random(seed)  # nosec B311
        self._lock = threading.Lock()
        self._step_vol = float(step_vol)
        self._prices: Dict[str, float] = {sym: row[2] for sym, row in PAPER_SYMBOLS.items()}
        self._balances: Dict[str, float] = {self.quote_asset: float(start_balance)}
        self._order_ids = itertools.count(1)
        self._ctx = build_log_context(tool="paper_exchange")

    # -- helpers -----------------------------------------------------------

    def _listing(self, symbol: str) -> Tuple[str, str, float, float, float, str]:
        listing = PAPER_SYMBOLS.get(symbol.strip().upper())
        if listing is None:
            raise AppError("bad_symbol", f"Invalid symbol: {symbol}", {"symbol": symbol})
        return listing

    def _tick(self, symbol: str) -> float:
        px = self._prices[symbol]
        px *= 1.0 + self._rng.gauss(0.0, self._step_vol)
        self._prices[symbol] = max(px, 1e-12)
        return self._prices[symbol]

    def deposit(self, asset: str, amount: float) -> float:
        a = asset.strip().upper()
        with self._lock:
            self._balances[a] = self._balances.get(a, 0.0) + float(amount)
            return self._balances[a]

    # -- IExchange ---------------------------------------------------------

    def test_connectivity(self) -> bool:
        return True

    def validate_api_keys(self, api_key: str, api_secret: str) -> bool:
        return ApiCredentials(self.name, api_key or "", api_secret or "").looks_valid()

    def get_account_balance(self) -> List[Dict[str, Any]]:
        with self._lock:
            return [
                {"asset": asset, "free": f"{amount:.8f}", "locked": "0.00000000"}
                for asset, amount in sorted(self._balances.items())
            ]

    def get_exchange_info(self) -> Dict[str, Any]:
        symbols = []
        for sym, (base, quote, _, min_qty, step, status) in PAPER_SYMBOLS.items():
            symbols.append(
                {
                    "symbol": sym,
                    "status": status,
                    "baseAsset": base,
                    "quoteAsset": quote,
                    "isSpotTradingAllowed": True,
                    "filters": [
                        {"filterType": "LOT_SIZE", "minQty": f"{min_qty:.8f}", "maxQty": "9000000.00000000", "stepSize": f"{step:.8f}"},
                    ],
                }
            )
        return {"timezone": "UTC", "serverTime": int(time.time() * 1000), "symbols": symbols}

    def get_current_price(self, symbol: str) -> float:
        self._listing(symbol)
        with self._lock:
            return self._tick(symbol.strip().upper())

    def get_order_book(self, symbol: str, limit: int = 20) -> Dict[str, Any]:
        self._listing(symbol)
        sym = symbol.strip().upper()
        with self._lock:
            mid = self._prices[sym]
            half_spread = mid * self._rng.uniform(0.0001, 0.002)
            bids, asks = [], []
            for i in range(max(1, int(limit))):
                gap = half_spread * (1 + i * 0.5)
                bids.append([f"{mid - gap:.8f}", f"{self._rng.uniform(0.5, 50.0):.4f}"])
                asks.append([f"{mid + gap:.8f}", f"{self._rng.uniform(0.5, 50.0):.4f}"])
        return {"lastUpdateId": int(time.time() * 1000), "bids": bids, "asks": asks}

    def execute_order(self, symbol: str, side: str, quantity: float, price: Optional[float] = None) -> Dict[str, Any]:
        sd = normalize_side(side)
        if quantity <= 0:
            raise ValueError("quantity must be > 0")
        base, quote, _, _, step, status = self._listing(symbol)
        sym = symbol.strip().upper()
        if status != "TRADING":
            raise AppError("bad_symbol", f"Symbol {sym} is not trading", {"symbol": sym, "status": status})

        qty = round(float(quantity), step_decimals(step))
        with self._lock:
            fill_px = float(price) if price else self._tick(sym)
            cost = qty * fill_px
            if sd == "BUY":
                have = self._balances.get(quote, 0.0)
                if have < cost:
                    raise InsufficientFundsError(
                        f"Account has insufficient balance for requested action. Have {have:.8f} {quote}, need {cost:.8f}",
                        {"asset": quote, "have": have, "need": cost},
                    )
                self._balances[quote] = have - cost
                self._balances[base] = self._balances.get(base, 0.0) + qty
            else:
                have = self._balances.get(base, 0.0)
                if have < qty:
                    raise InsufficientFundsError(
                        f"Account has insufficient balance for requested action. Have {have:.8f} {base}, need {qty:.8f}",
                        {"asset": base, "have": have, "need": qty},
                    )
                self._balances[base] = have - qty
                self._balances[quote] = self._balances.get(quote, 0.0) + cost
            order_id = next(self._order_ids)

        order = {
            "symbol": sym,
            "orderId": order_id,
            "clientOrderId": uuid.uuid4().hex[:22],
            "transactTime": int(time.time() * 1000),
            "price": f"{fill_px:.8f}" if price else "0.00000000",
            "origQty": f"{qty:.8f}",
            "executedQty": f"{qty:.8f}",
            "cummulativeQuoteQty": f"{cost:.8f}",
            "status": "FILLED",
            "timeInForce": "GTC" if price else "IOC",
            "type": "LIMIT" if price else "MARKET",
            "side": sd,
            "fills": [{"price": f"{fill_px:.8f}", "qty": f"{qty:.8f}", "commission": "0", "commissionAsset": quote}],
        }
        log_event("paper_order_filled", ctx=self._ctx, data={"symbol": sym, "side": sd, "qty": qty, "price": fill_px})
        return order

    def transfer_profit(self, amount: float, currency: str = "USDT") -> bool:
        log_event("profit_realized", ctx=self._ctx, data={"amount": round(float(amount), 2), "currency": currency})
        return True
