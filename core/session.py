"""
Live trading session: the state behind the auto-trading dashboard.

The session owns the balance the dashboard shows, the short trade history,
the daily-target bookkeeping and a feed of user-facing notices. It talks to
the exchange only through `IExchange`, so the same flow runs against the live
client and the paper exchange.

Thread model: the scheduler thread and API handlers share one session. State
changes happen under `_lock`; exchange calls happen outside it, guarded by the
`is_trading` flag so at most one trade is in flight.
"""

from __future__ import annotations

import itertools
import random
import threading
import time
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, List, Optional, Union

from common.errors import RelayActivationError
from execution.base import IExchange
from execution.credentials import ApiCredentials
from execution.models import NormalizedOrder, normalize_order
from marketdata.depth import rank_volatile_markets
from observability import Metrics, build_log_context, log_event

HISTORY_LIMIT = 15
NOTICE_LIMIT = 50
FALLBACK_MARKET = "BTCUSDT"
BACKOFF_AFTER_FAILURES = 3
TRADE_SPEED_PRESETS: Dict[str, int] = {"low": 1, "medium": 3, "high": 5, "turbo": 10}

_CTX = build_log_context(tool="trading_session")


def resolve_trade_speed(value: Union[int, str]) -> int:
    """Accept a preset name (`low`, `turbo`, ...) or a positive trades-per-minute count."""
    if isinstance(value, str) and value.strip().lower() in TRADE_SPEED_PRESETS:
        return TRADE_SPEED_PRESETS[value.strip().lower()]
    try:
        speed = int(value)
    except (TypeError, ValueError):
        raise ValueError(f"unknown trade speed: {value!r}") from None
    if speed <= 0:
        raise ValueError("trade speed must be > 0")
    return speed


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _fill_price(order: NormalizedOrder) -> Optional[float]:
    """Average fill price; market orders report price 0 so derive it from quote/filled."""
    if order.filled and order.quote_filled:
        return order.quote_filled / order.filled
    return order.price or None


@dataclass
class Trade:
    id: int
    timestamp: datetime
    operation: str
    market: str
    amount: float
    success: bool
    balance_after: float
    message: str
    price: Optional[float] = None
    profit_reserved: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "timestamp": self.timestamp.isoformat(),
            "operation": self.operation,
            "market": self.market,
            "amount": self.amount,
            "success": self.success,
            "balance_after": self.balance_after,
            "message": self.message,
            "price": self.price,
            "profit_reserved": self.profit_reserved,
        }


@dataclass(frozen=True)
class Notice:
    id: int
    title: str
    description: str
    level: str = "info"
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "level": self.level,
            "timestamp": self.timestamp.isoformat(),
        }


@dataclass(frozen=True)
class SingleTradeResult:
    traded_amount: float
    new_balance: float
    success: bool
    price: Optional[float] = None


@dataclass(frozen=True)
class TradeResult:
    success: bool
    new_balance: float


class TradingSession:
    def __init__(
        self,
        exchange: Optional[IExchange],
        credentials: Optional[ApiCredentials] = None,
        *,
        initial_amount: float = 10.0,
        target_amount: float = 1000.0,
        trade_speed: int = 5,
        quote_asset: str = "USDT",
        new_day_delay: float = 5.0,
        metrics: Optional[Metrics] = None,
        on_complete: Optional[Callable[[float], None]] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.exchange = exchange
        self.credentials = credentials
        self.initial_amount = float(initial_amount)
        self.target_amount = float(target_amount)
        self.quote_asset = quote_asset.upper()
        self.new_day_delay = float(new_day_delay)
        self.metrics = metrics
        self.on_complete = on_complete
        # Trade narrative RNG, not cryptographic.
        self._rng = rng or random.Random()  # nosec B311
        self._clock = clock
        self._lock = threading.RLock()
        self._listeners: List[Callable[[], None]] = []
        self._notice_ids = itertools.count(1)
        self._new_day_timer: Optional[threading.Timer] = None

        self.current_balance = self.initial_amount
        self.auto_trade_enabled = True
        self.trade_history: List[Trade] = []
        self.trade_count = 0
        self.daily_target_reached = False
        self.day_count = 1
        self.trade_speed = resolve_trade_speed(trade_speed)
        self.total_profit_reserved = 0.0
        self.available_markets: List[str] = []
        self.volatile_markets: List[str] = []
        self.is_initializing = True
        self.last_failed_attempt: Optional[float] = None
        self.consecutive_failures = 0
        self.is_trading = False
        self.notices: Deque[Notice] = deque(maxlen=NOTICE_LIMIT)

    # -- plumbing ----------------------------------------------------------

    def has_credentials(self) -> bool:
        return bool(self.exchange and self.credentials and self.credentials.api_key and self.credentials.api_secret)

    def subscribe(self, fn: Callable[[], None]) -> None:
        """Call `fn` whenever a setting that affects scheduling changes."""
        self._listeners.append(fn)

    def _changed(self) -> None:
        for fn in list(self._listeners):
            fn()

    def notify(self, title: str, description: str, level: str = "info") -> Notice:
        notice = Notice(id=next(self._notice_ids), title=title, description=description, level=level)
        with self._lock:
            self.notices.append(notice)
        log_event("session_notice", ctx=_CTX, data={"title": title, "description": description}, level=level)
        return notice

    def recent_notices(self, since_id: int = 0) -> List[Notice]:
        with self._lock:
            return [n for n in self.notices if n.id > since_id]

    def _missing_config(self) -> None:
        self.notify("API configuration missing", "Please configure your API keys first.", "error")

    # -- setup and balance -------------------------------------------------

    def initialize(self) -> None:
        if not self.has_credentials():
            self._missing_config()
            self.is_initializing = False
            return

        self.is_initializing = True
        try:
            self.available_markets = self.exchange.get_tradable_usdt_pairs()
            self.update_actual_balance()
        except Exception as e:
            log_event("session_init_failed", ctx=_CTX, data={"error": str(e)}, level="error")
            self.notify(
                "Could not fetch balance",
                "Connecting to the exchange failed. Check your API keys and internet connection.",
                "error",
            )
            with self._lock:
                self.current_balance = self.initial_amount
        finally:
            self.is_initializing = False

        if self.available_markets:
            self.identify_volatile_markets()
        self._changed()

    def update_actual_balance(self) -> Optional[float]:
        """Adopt the free quote balance reported by the exchange."""
        if not self.has_credentials():
            return None
        try:
            balances = self.exchange.get_account_balance()
        except Exception as e:
            log_event("balance_fetch_failed", ctx=_CTX, data={"error": str(e)}, level="error")
            return None
        entry = next((b for b in balances if b.get("asset") == self.quote_asset), None)
        if entry is None:
            return None
        free = float(entry.get("free") or 0.0)
        with self._lock:
            self.current_balance = free
        self.notify("Balance updated", f"Your available balance is {free:.2f} {self.quote_asset}.")
        return free

    def fetch_actual_balance(self) -> float:
        if not self.has_credentials():
            return 0.0
        try:
            return self.exchange.get_free_balance(self.quote_asset)
        except Exception as e:
            log_event("balance_fetch_failed", ctx=_CTX, data={"error": str(e)}, level="error")
            return 0.0

    def refresh_balance(self) -> Optional[float]:
        if self.is_trading:
            self.notify("Cannot refresh balance", "Wait until the current trade has finished before refreshing.")
            return None
        self.notify("Refreshing balance...", "Fetching your current balance from the exchange.")
        return self.update_actual_balance()

    # -- markets -----------------------------------------------------------

    def identify_volatile_markets(self) -> List[str]:
        if not self.has_credentials() or not self.available_markets:
            return []
        ranked = rank_volatile_markets(self.available_markets, self.exchange.calculate_volatility)
        with self._lock:
            self.volatile_markets = ranked
        return ranked

    def select_market(self) -> str:
        if self.volatile_markets:
            return self._rng.choice(self.volatile_markets)
        if self.available_markets:
            return self._rng.choice(self.available_markets)
        return FALLBACK_MARKET

    # -- trading -----------------------------------------------------------

    def execute_single_trade(self, market: str, operation: str) -> SingleTradeResult:
        """
        Place one market order sized at 20-30% of the balance.

        Order failures degrade into a "partially successful" trade with a tiny
        simulated gain. A locked relay is not a trade problem and propagates.
        """
        balance = self.current_balance
        try:
            percent_of_balance = min(20 + self._rng.random() * 10, 30)
            quantity = self.exchange.calculate_optimal_quantity(market, balance, percent_of_balance)
            if quantity <= 0:
                raise ValueError(f"Invalid trade quantity: {quantity}")
            order = normalize_order(self.exchange.execute_order(market, operation.upper(), quantity))
            log_event("session_order_placed", ctx=_CTX, data={"market": market, "order_id": order.id})
            return SingleTradeResult(
                traded_amount=quantity,
                new_balance=balance * (1 + self._rng.random() * 0.05),
                success=True,
                price=_fill_price(order),
            )
        except RelayActivationError:
            raise
        except Exception as e:
            log_event("session_order_failed", ctx=_CTX, data={"market": market, "error": str(e)}, level="error")
            return SingleTradeResult(
                traded_amount=balance * 0.1,
                new_balance=balance * (1 + self._rng.random() * 0.01),
                success=False,
            )

    def backoff_remaining(self) -> float:
        """Seconds left before another attempt is allowed; 0 when not backing off."""
        if self.consecutive_failures < BACKOFF_AFTER_FAILURES:
            return 0.0
        backoff = min(self.consecutive_failures * 5.0, 60.0)
        elapsed = self._clock() - (self.last_failed_attempt or 0.0)
        return max(0.0, backoff - elapsed)

    def _record(self, trade: Trade) -> None:
        self.trade_history = [trade, *self.trade_history[: HISTORY_LIMIT - 1]]
        self.trade_count += 1
        if self.metrics is not None:
            self.metrics.record_trade(success=trade.success, balance=trade.balance_after)

    def execute_trade(self) -> Optional[TradeResult]:
        if not self.has_credentials():
            self._missing_config()
            return None

        with self._lock:
            if self.is_trading:
                return None
            wait = self.backoff_remaining()
            if wait > 0:
                log_event("trade_backoff", ctx=_CTX, data={"failures": self.consecutive_failures, "wait_sec": round(wait, 3)})
                return None
            self.is_trading = True

        try:
            actual = self.fetch_actual_balance()
            if actual > 0:
                with self._lock:
                    self.current_balance = actual

            market = self.select_market()
            operation = "buy" if self._rng.random() > 0.25 else "sell"
            balance = self.current_balance
            log_event("trade_attempt", ctx=_CTX, data={"market": market, "operation": operation, "balance": round(balance, 2)})

            try:
                result = self.execute_single_trade(market, operation)
            except Exception as order_error:
                return self._failed_trade(market, operation, balance, order_error)

            new_actual = self.fetch_actual_balance()
            balance_after = new_actual if new_actual > 0 else result.new_balance
            with self._lock:
                notify_success = self.trade_count % 5 == 0
                trade = Trade(
                    id=self.trade_count + 1,
                    timestamp=_utcnow(),
                    operation=operation,
                    market=market,
                    amount=result.traded_amount,
                    success=result.success,
                    balance_after=balance_after,
                    price=result.price,
                    message=(
                        f"Successful {operation} order on {market}"
                        if result.success
                        else f"{operation.capitalize()} on {market} completed with less than optimal return"
                    ),
                )
                self.current_balance = balance_after
                self.consecutive_failures = 0
                self.last_failed_attempt = None
                self._record(trade)

            if not result.success:
                self.notify("Trade completed with warning", f"{trade.message}. New balance: ${balance_after:.2f}", "warning")
            elif notify_success:
                self.notify("Trade successful", f"{trade.message}. New balance: ${balance_after:.2f}")
            return TradeResult(success=True, new_balance=balance_after)
        except Exception as e:
            log_event("trade_error", ctx=_CTX, data={"error": str(e)}, level="error")
            self.notify("Trading error", "An error occurred while trading. Please try again.", "error")
            with self._lock:
                self.consecutive_failures += 1
                self.last_failed_attempt = self._clock()
                return TradeResult(success=False, new_balance=self.current_balance)
        finally:
            self.is_trading = False

    def _failed_trade(self, market: str, operation: str, balance: float, error: Exception) -> TradeResult:
        with self._lock:
            previous_failures = self.consecutive_failures
            trade = Trade(
                id=self.trade_count + 1,
                timestamp=_utcnow(),
                operation=operation,
                market=market,
                amount=balance * 0.1,
                success=False,
                balance_after=balance * 0.995,
                message=f"Trade failed: {getattr(error, 'message', None) or error}",
            )
            self._record(trade)
            self.current_balance = trade.balance_after
            self.consecutive_failures += 1
            self.last_failed_attempt = self._clock()

        self.notify("Trade failed", trade.message, "error")
        time.sleep(min(previous_failures * 1.0, 10.0))
        return TradeResult(success=False, new_balance=trade.balance_after)

    def execute_trade_with_target_check(self) -> Optional[TradeResult]:
        result = self.execute_trade()
        if result is not None and result.success:
            self.handle_daily_target_reached(result.new_balance)
        return result

    # -- daily target ------------------------------------------------------

    def handle_daily_target_reached(self, balance: float) -> bool:
        with self._lock:
            if balance < self.target_amount or self.daily_target_reached:
                return False
            self.daily_target_reached = True

        self.notify("Daily target reached!", f"Your balance has reached today's target of ${self.target_amount:,.0f}!")
        reserve_amount = balance * 0.7
        profit_amount = balance * 0.3

        if self._reserve_profit(profit_amount):
            with self._lock:
                if self.trade_history:
                    self.trade_history[0].profit_reserved = profit_amount

        if reserve_amount >= self.initial_amount:
            with self._lock:
                self.current_balance = reserve_amount
            self._schedule_new_day(reserve_amount)

        self._changed()
        if self.on_complete:
            self.on_complete(balance)
        return True

    def _reserve_profit(self, amount: float) -> bool:
        try:
            ok = self.exchange.transfer_profit(amount, self.quote_asset)
        except Exception as e:
            log_event("profit_reserve_failed", ctx=_CTX, data={"amount": amount, "error": str(e)}, level="error")
            return False
        if ok:
            with self._lock:
                self.total_profit_reserved += amount
            self.notify("Profit reserved", f"{amount:.2f} {self.quote_asset} has been set aside on your exchange account.")
        return bool(ok)

    def _schedule_new_day(self, starting_balance: float) -> None:
        if self._new_day_timer is not None:
            self._new_day_timer.cancel()
        timer = threading.Timer(self.new_day_delay, self.start_new_day, args=(starting_balance,))
        timer.daemon = True
        self._new_day_timer = timer
        timer.start()

    def start_new_day(self, starting_balance: Optional[float] = None) -> None:
        with self._lock:
            self.daily_target_reached = False
            self.day_count += 1
            day = self.day_count
            amount = self.current_balance if starting_balance is None else starting_balance
        self.notify("New trading day begins", f"Day {day} starts with ${amount:.2f}")
        self._changed()

    def cancel_timers(self) -> None:
        if self._new_day_timer is not None:
            self._new_day_timer.cancel()
            self._new_day_timer = None

    # -- settings ----------------------------------------------------------

    @property
    def progress(self) -> float:
        return min(self.current_balance / self.target_amount * 100, 100.0)

    def set_trade_speed(self, value: Union[int, str]) -> int:
        speed = resolve_trade_speed(value)
        with self._lock:
            self.trade_speed = speed
        self.notify("Trading speed changed", f"The algorithm now performs {speed} trades per minute")
        self._changed()
        return speed

    def set_auto_trade(self, enabled: bool) -> None:
        with self._lock:
            self.auto_trade_enabled = bool(enabled)
        log_event("auto_trade_toggled", ctx=_CTX, data={"enabled": bool(enabled)})
        self._changed()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "exchange": self.exchange.name if self.exchange else None,
                "configured": self.has_credentials(),
                "current_balance": round(self.current_balance, 8),
                "initial_amount": self.initial_amount,
                "target_amount": self.target_amount,
                "progress": round(self.progress, 4),
                "auto_trade_enabled": self.auto_trade_enabled,
                "is_trading": self.is_trading,
                "is_initializing": self.is_initializing,
                "trade_count": self.trade_count,
                "trade_speed": self.trade_speed,
                "daily_target_reached": self.daily_target_reached,
                "day_count": self.day_count,
                "total_profit_reserved": round(self.total_profit_reserved, 8),
                "consecutive_failures": self.consecutive_failures,
                "available_markets": len(self.available_markets),
                "volatile_markets": list(self.volatile_markets),
                "trade_history": [t.to_dict() for t in self.trade_history],
            }
