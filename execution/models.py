from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

SIDES = ("BUY", "SELL")


def normalize_side(side: str) -> str:
    """
    Accept `buy`/`sell` in any case and return the exchange spelling.
    """
    s = str(side or "").strip().upper()
    if s not in SIDES:
        raise ValueError("side must be 'BUY' or 'SELL'")
    return s


def normalize_order_status(raw_status: Any) -> str:
    """
    Collapse exchange order statuses into a small stable set.

    Returns one of: open, filled, canceled, rejected, unknown
    """
    s = str(raw_status or "").strip().lower()
    if s in {"new", "partially_filled", "pending_new", "open"}:
        return "open"
    if s in {"filled", "closed"}:
        return "filled"
    if s in {"canceled", "cancelled", "expired", "expired_in_match", "pending_cancel"}:
        return "canceled"
    if s == "rejected":
        return "rejected"
    return "unknown"


def _float_or_none(v: Any) -> Optional[float]:
    if v is None or v == "":
        return None
    try:
        return float(v)
    except (TypeError, ValueError):
        return None


@dataclass(frozen=True)
class NormalizedOrder:
    """
    Order acknowledgement in a shape the dashboard can render.
    The raw exchange payload is kept for debugging.
    """

    id: Optional[str]
    client_order_id: Optional[str]
    symbol: str
    side: str
    order_type: str
    status: str
    quantity: Optional[float]
    filled: Optional[float]
    price: Optional[float]
    quote_filled: Optional[float]
    timestamp: Optional[int]
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "client_order_id": self.client_order_id,
            "symbol": self.symbol,
            "side": self.side,
            "order_type": self.order_type,
            "status": self.status,
            "quantity": self.quantity,
            "filled": self.filled,
            "price": self.price,
            "quote_filled": self.quote_filled,
            "timestamp": self.timestamp,
            "raw": self.raw,
        }


def normalize_order(order: Dict[str, Any]) -> NormalizedOrder:
    """
    Convert an order-endpoint response into `NormalizedOrder`.
    """
    order_id = order.get("orderId")
    ts = order.get("transactTime")
    return NormalizedOrder(
        id=str(order_id) if order_id is not None else None,
        client_order_id=str(order["clientOrderId"]) if order.get("clientOrderId") is not None else None,
        symbol=str(order.get("symbol") or ""),
        side=str(order.get("side") or "").lower(),
        order_type=str(order.get("type") or "").lower(),
        status=normalize_order_status(order.get("status")),
        quantity=_float_or_none(order.get("origQty")),
        filled=_float_or_none(order.get("executedQty")),
        price=_float_or_none(order.get("price")),
        quote_filled=_float_or_none(order.get("cummulativeQuoteQty")),
        timestamp=int(ts) if ts is not None else None,
        raw=order,
    )


def parse_levels(levels: List[Any]) -> List[Tuple[float, float]]:
    """`[["price", "qty"], ...]` -> `[(price, qty), ...]`"""
    return [(float(lvl[0]), float(lvl[1])) for lvl in levels or []]
