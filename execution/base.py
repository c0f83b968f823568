from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from observability import build_log_context, log_event

from .sizing import FALLBACK_QUANTITY, find_symbol_info, lot_size_filter, optimal_quantity

_CTX = build_log_context(tool="exchange")


class IExchange(ABC):
    """
    What the trading session needs from an exchange, live or paper.

    Subclasses provide the raw calls; the market helpers below are built on
    top of them and never raise.
    """

    name: str = "exchange"
    quote_asset: str = "USDT"

    @abstractmethod
    def test_connectivity(self) -> bool:
        """Ping the exchange; never raises."""

    @abstractmethod
    def validate_api_keys(self, api_key: str, api_secret: str) -> bool:
        """Check that the keys can read the account."""

    @abstractmethod
    def get_account_balance(self) -> List[Dict[str, Any]]:
        """List of `{asset, free, locked}` entries."""

    @abstractmethod
    def get_exchange_info(self) -> Dict[str, Any]:
        """Exchange metadata including `symbols` and their filters."""

    @abstractmethod
    def get_current_price(self, symbol: str) -> float:
        pass

    @abstractmethod
    def get_order_book(self, symbol: str, limit: int = 20) -> Dict[str, Any]:
        pass

    @abstractmethod
    def execute_order(self, symbol: str, side: str, quantity: float, price: Optional[float] = None) -> Dict[str, Any]:
        pass

    @abstractmethod
    def transfer_profit(self, amount: float, currency: str = "USDT") -> bool:
        pass

    def get_free_balance(self, asset: str = "USDT") -> float:
        a = asset.strip().upper()
        for b in self.get_account_balance():
            if str(b.get("asset", "")).upper() == a:
                return float(b.get("free") or 0.0)
        return 0.0

    def get_tradable_usdt_pairs(self) -> List[str]:
        try:
            info = self.get_exchange_info()
        except Exception as e:
            log_event("tradable_pairs_failed", ctx=_CTX, data={"exchange": self.name, "error": str(e)}, level="error")
            return []
        return [
            s["symbol"]
            for s in info.get("symbols") or []
            if s.get("status") == "TRADING" and s.get("quoteAsset") == self.quote_asset and s.get("isSpotTradingAllowed")
        ]

    def calculate_volatility(self, symbol: str) -> float:
        from marketdata.depth import spread_volatility

        try:
            return spread_volatility(self.get_order_book(symbol, 20))
        except Exception as e:
            log_event("volatility_failed", ctx=_CTX, data={"symbol": symbol, "error": str(e)}, level="debug")
            return 0.0

    def calculate_optimal_quantity(self, symbol: str, available_balance: float, percent_of_balance: float) -> float:
        """
        Quantity worth `percent_of_balance` % of the balance at the current price,
        snapped to the symbol's lot size. Falls back to a small fixed quantity.
        """
        try:
            price = self.get_current_price(symbol)
            min_qty, step_size = lot_size_filter(find_symbol_info(self.get_exchange_info(), symbol))
            return optimal_quantity(price, available_balance, percent_of_balance, min_qty, step_size)
        except Exception as e:
            log_event("quantity_fallback", ctx=_CTX, data={"symbol": symbol, "error": str(e)}, level="error")
            return FALLBACK_QUANTITY
