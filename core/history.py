from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

import pandas as pd

from .session import Trade

TX_TYPES = ("buy", "sell")
TX_STATUSES = ("completed", "pending", "failed")
COLUMNS = ["id", "type", "amount", "currency", "price", "timestamp", "status"]


@dataclass(frozen=True)
class Transaction:
    id: str
    type: str
    amount: float
    currency: str
    price: float
    timestamp: datetime
    status: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "amount": self.amount,
            "currency": self.currency,
            "price": self.price,
            "timestamp": self.timestamp.isoformat(),
            "status": self.status,
        }


def base_currency(market: str, quote_asset: str = "USDT") -> str:
    m = market.strip().upper()
    q = quote_asset.strip().upper()
    return m[: -len(q)] if q and m.endswith(q) and len(m) > len(q) else m


def trade_to_transaction(trade: Trade, *, price: float = 0.0, quote_asset: str = "USDT") -> Transaction:
    """
    Session trades become history rows. Any trade that did not go through
    cleanly is reported as failed.
    """
    return Transaction(
        id=f"trade-{trade.id}",
        type=trade.operation,
        amount=trade.amount,
        currency=base_currency(trade.market, quote_asset),
        price=float(price),
        timestamp=trade.timestamp,
        status="completed" if trade.success else "failed",
    )


def filter_transactions(
    txs: Iterable[Transaction],
    *,
    search: str = "",
    type: str = "all",
    status: str = "all",
) -> List[Transaction]:
    """
    Case-insensitive currency substring search plus exact type/status filters.
    `all` disables a filter.
    """
    if type != "all" and type not in TX_TYPES:
        raise ValueError(f"type must be 'all' or one of {TX_TYPES}")
    if status != "all" and status not in TX_STATUSES:
        raise ValueError(f"status must be 'all' or one of {TX_STATUSES}")
    needle = (search or "").strip().lower()
    out = []
    for tx in txs:
        if needle and needle not in tx.currency.lower():
            continue
        if type != "all" and tx.type != type:
            continue
        if status != "all" and tx.status != status:
            continue
        out.append(tx)
    return out


def dashboard_stats(balance: float, initial_amount: float) -> Dict[str, float]:
    profit = balance - initial_amount
    pct = (profit / initial_amount * 100) if initial_amount else 0.0
    return {"balance": balance, "profit": profit, "profit_percentage": pct}


def goal_progress(balance: float, target_amount: float) -> float:
    """Fraction of the goal reached (1.0 == goal met; can exceed 1)."""
    if target_amount <= 0:
        raise ValueError("target_amount must be > 0")
    return balance / target_amount


def transactions_frame(txs: Iterable[Transaction], *, columns: Optional[List[str]] = None) -> pd.DataFrame:
    rows = [tx.to_dict() for tx in txs]
    df = pd.DataFrame(rows, columns=columns or COLUMNS)
    if not df.empty:
        df["timestamp"] = pd.to_datetime(df["timestamp"])
    return df
