from __future__ import annotations

from decimal import ROUND_FLOOR, Decimal
from typing import Any, Dict, Tuple

FALLBACK_QUANTITY = 0.001


def _dec(value: Any) -> Decimal:
    return Decimal(str(value))


def step_decimals(step_size: float) -> int:
    """Number of decimals in the step size: 0.001 -> 3, 1.0 -> 0."""
    exponent = _dec(step_size).normalize().as_tuple().exponent
    return -exponent if exponent < 0 else 0


def lot_size_filter(symbol_info: Dict[str, Any]) -> Tuple[float, float]:
    """
    Extract `(min_qty, step_size)` from a symbol's LOT_SIZE filter.
    """
    for f in symbol_info.get("filters") or []:
        if f.get("filterType") == "LOT_SIZE":
            return float(f["minQty"]), float(f["stepSize"])
    raise ValueError(f"Symbol {symbol_info.get('symbol')} has no LOT_SIZE filter")


def find_symbol_info(exchange_info: Dict[str, Any], symbol: str) -> Dict[str, Any]:
    for s in exchange_info.get("symbols") or []:
        if s.get("symbol") == symbol:
            return s
    raise ValueError(f"Symbol {symbol} information not found")


def optimal_quantity(
    price: float,
    available_balance: float,
    percent_of_balance: float,
    min_qty: float,
    step_size: float,
) -> float:
    """
    Size an order as a share of the available balance.

    The quantity is floored to the lot step, lifted to the minimum lot when it
    falls below it, and rounded to the step's decimals.
    """
    if price <= 0:
        raise ValueError("price must be > 0")
    if step_size <= 0:
        raise ValueError("step_size must be > 0")

    amount_to_trade = _dec(available_balance) * _dec(percent_of_balance) / Decimal(100)
    quantity = amount_to_trade / _dec(price)

    step = _dec(step_size)
    quantity = (quantity / step).to_integral_value(rounding=ROUND_FLOOR) * step

    if quantity < _dec(min_qty):
        quantity = _dec(min_qty)

    return round(float(quantity), step_decimals(step_size))
