"""
Order-book arithmetic used to pick markets and sanity-check a side.

All inputs are raw depth payloads: `{"bids": [[price, qty], ...], "asks": [...]}`
with prices and quantities as strings or numbers.
"""

from __future__ import annotations

import math
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, List, Sequence, Tuple

from execution.models import normalize_side, parse_levels
from observability import build_log_context, log_event

DEPTH_LEVELS = 10
DEPTH_RATIO = 0.8
SCAN_LIMIT = 50
TOP_MARKETS = 15
DEFAULT_VOLATILE_MARKETS = ["BTCUSDT", "ETHUSDT", "SOLUSDT", "DOGEUSDT", "BNBUSDT"]

_CTX = build_log_context(tool="market_depth")


def _volume(levels: List[Any]) -> float:
    return sum(qty for _, qty in parse_levels(levels))


def analyze_market_depth(order_book: Dict[str, Any], side: str) -> bool:
    """
    True when the top of the book leans the way of the trade.

    BUY wants bid volume above 80% of ask volume (buying pressure); SELL wants the mirror.
    """
    sd = normalize_side(side)
    bid_volume = _volume((order_book.get("bids") or [])[:DEPTH_LEVELS])
    ask_volume = _volume((order_book.get("asks") or [])[:DEPTH_LEVELS])
    if sd == "BUY":
        return bid_volume > ask_volume * DEPTH_RATIO
    return ask_volume > bid_volume * DEPTH_RATIO


def spread_volatility(order_book: Dict[str, Any]) -> float:
    """
    Spread in percent weighted by log10 of the total book volume.
    A wide spread on a busy book scores high.
    """
    bids = parse_levels(order_book.get("bids") or [])
    asks = parse_levels(order_book.get("asks") or [])
    if not bids or not asks:
        raise ValueError("order book needs at least one bid and one ask")
    best_bid = bids[0][0]
    best_ask = asks[0][0]
    if best_bid <= 0:
        raise ValueError("best bid must be > 0")
    spread = (best_ask - best_bid) / best_bid * 100
    total_volume = sum(q for _, q in bids) + sum(q for _, q in asks)
    if total_volume <= 0:
        # nothing resting on the book
        return 0.0
    return spread * math.log10(total_volume)


def rank_volatile_markets(
    markets: Sequence[str],
    volatility_fn: Callable[[str], float],
    *,
    scan_limit: int = SCAN_LIMIT,
    top: int = TOP_MARKETS,
    workers: int = 8,
) -> List[str]:
    """
    Score the first `scan_limit` markets and return the `top` most volatile.

    A market whose score cannot be computed counts as 0. If the scan itself
    blows up, fall back to a fixed list of liquid majors.
    """
    def score(market: str) -> Tuple[str, float]:
        try:
            return market, float(volatility_fn(market))
        except Exception as e:
            log_event("volatility_failed", ctx=_CTX, data={"market": market, "error": str(e)}, level="debug")
            return market, 0.0

    try:
        batch = list(markets)[:scan_limit]
        with ThreadPoolExecutor(max_workers=max(1, min(workers, len(batch)))) as pool:
            scored = list(pool.map(score, batch))
        scored.sort(key=lambda ms: ms[1], reverse=True)
        ranked = [m for m, _ in scored[:top]]
    except Exception as e:
        log_event("volatility_scan_failed", ctx=_CTX, data={"error": str(e)}, level="error")
        return list(DEFAULT_VOLATILE_MARKETS)

    log_event("volatile_markets_ranked", ctx=_CTX, data={"scanned": min(len(markets), scan_limit), "top": ranked})
    return ranked
