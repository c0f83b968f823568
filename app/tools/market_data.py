import json
from typing import Any, Dict

from fastmcp import FastMCP

from app.core.container import global_container
from common.errors import AppError, classify_exception
from marketdata.depth import TOP_MARKETS, analyze_market_depth, rank_volatile_markets, spread_volatility


def _json_ok(data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": True, "data": data or {}}
    return json.dumps(payload, indent=2, sort_keys=True)

def _json_err(code: str, message: str, data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": False, "error": {"code": code, "message": message, "data": data or {}}}
    return json.dumps(payload, indent=2, sort_keys=True)

def _exchange():
    exchange = global_container.exchange
    if exchange is None:
        raise AppError("not_configured", "API configuration missing. Please configure your API keys first.", {})
    return exchange

# Module-level functions for testing

def get_price(symbol: str) -> str:
    """Get the last traded price of a spot market (e.g. BTCUSDT)."""
    try:
        sym = symbol.strip().upper()
        return _json_ok({"symbol": sym, "price": _exchange().get_current_price(sym)})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message, {"symbol": symbol})

def analyze_depth(symbol: str, side: str = "BUY") -> str:
    """
    Check whether the top of the order book leans toward a BUY or SELL and
    report the spread-based volatility score.
    """
    try:
        sym = symbol.strip().upper()
        book = _exchange().get_order_book(sym, 20)
        return _json_ok({
            "symbol": sym,
            "side": side.upper(),
            "favorable": analyze_market_depth(book, side),
            "volatility": spread_volatility(book),
        })
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message, {"symbol": symbol, "side": side})

def find_volatile_markets(limit: int = TOP_MARKETS) -> str:
    """Rank tradable quote-asset markets by spread volatility (scans the first 50)."""
    try:
        exchange = _exchange()
        markets = exchange.get_tradable_usdt_pairs()
        ranked = rank_volatile_markets(markets, exchange.calculate_volatility, top=max(1, int(limit)))
        return _json_ok({"markets": ranked, "scanned": min(len(markets), 50)})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def list_tradable_pairs() -> str:
    """List spot markets currently trading against the quote asset."""
    try:
        pairs = _exchange().get_tradable_usdt_pairs()
        return _json_ok({"count": len(pairs), "pairs": pairs})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def register_market_tools(mcp: FastMCP):
    mcp.tool()(get_price)
    mcp.tool()(analyze_depth)
    mcp.tool()(find_volatile_markets)
    mcp.tool()(list_tradable_pairs)
