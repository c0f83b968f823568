from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, Optional

from observability import build_log_context, log_event

from .session import TradingSession

MAX_INTERVAL_SEC = 60.0

_CTX = build_log_context(tool="auto_trader")


def trade_interval(trade_speed: int, consecutive_failures: int = 0) -> float:
    """
    Seconds between auto trades: 60 / speed, stretched by 50% per consecutive
    failure and capped at one minute.
    """
    interval = 60.0 / max(1, int(trade_speed))
    if consecutive_failures > 0:
        interval = min(interval * (1 + consecutive_failures * 0.5), MAX_INTERVAL_SEC)
    return interval


class AutoTrader:
    """
    Background loop driving a `TradingSession`.

    - trades every `trade_interval(...)` seconds while auto-trade is on, the
      daily target is open and the session is not initializing
    - refreshes the real balance every `balance_refresh_sec` when idle
    - `wake()` restarts the trade countdown after a settings change
    """

    def __init__(
        self,
        session: TradingSession,
        *,
        balance_refresh_sec: float = 30.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.balance_refresh_sec = float(balance_refresh_sec)
        self._clock = clock
        self._stop = threading.Event()
        self._wake = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._next_trade: Optional[float] = None
        self._next_refresh: Optional[float] = None
        self.trades_started = 0
        session.subscribe(self.wake)

    def should_trade(self) -> bool:
        s = self.session
        return s.auto_trade_enabled and not s.daily_target_reached and not s.is_initializing

    def current_interval(self) -> float:
        return trade_interval(self.session.trade_speed, self.session.consecutive_failures)

    def run_pending(self, now: Optional[float] = None) -> float:
        """
        Run whatever is due at `now` and return the seconds until the next deadline.
        """
        now = self._clock() if now is None else now
        if self._next_refresh is None:
            self._next_refresh = now + self.balance_refresh_sec
        if self._next_trade is None:
            self._next_trade = now + self.current_interval()

        if now >= self._next_refresh:
            if not self.session.is_trading and self.session.has_credentials():
                self.session.update_actual_balance()
            self._next_refresh = now + self.balance_refresh_sec

        if not self.should_trade():
            self._next_trade = now + self.current_interval()
        elif now >= self._next_trade:
            self.trades_started += 1
            self.session.execute_trade_with_target_check()
            self._next_trade = self._clock() + self.current_interval()

        return max(0.0, min(self._next_trade, self._next_refresh) - self._clock())

    def wake(self) -> None:
        self._next_trade = None
        self._wake.set()

    def start(self) -> None:
        if self._thread and self._thread.is_alive():
            return
        self._stop.clear()
        self._next_trade = None
        self._next_refresh = None
        self._thread = threading.Thread(target=self._run, name="auto-trader", daemon=True)
        self._thread.start()
        log_event("auto_trader_started", ctx=_CTX, data={"trade_speed": self.session.trade_speed})

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()
        if self._thread:
            self._thread.join(timeout=3)
        self.session.cancel_timers()
        log_event("auto_trader_stopped", ctx=_CTX)

    def status(self) -> Dict[str, Any]:
        return {
            "running": bool(self._thread and self._thread.is_alive()),
            "interval_sec": round(self.current_interval(), 3),
            "trades_started": self.trades_started,
        }

    def _run(self) -> None:
        if self.session.is_initializing:
            self.session.initialize()
        while not self._stop.is_set():
            try:
                wait = self.run_pending()
            except Exception as e:
                log_event("auto_trader_error", ctx=_CTX, data={"error": str(e)}, level="error")
                wait = 1.0
            if self._wake.wait(timeout=max(0.05, wait)):
                self._wake.clear()
