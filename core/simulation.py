from __future__ import annotations

import random
import threading
from dataclasses import asdict, dataclass
from typing import Any, Callable, Dict, List, Optional

from observability import build_log_context, log_event

MODELS = ("coinflip", "mock_exchange")
HISTORY_LIMIT = 10

_CTX = build_log_context(tool="simulation")


@dataclass(frozen=True)
class SimulatedTrade:
    success: bool
    new_amount: float
    growth_factor: float
    message: str = ""


def simulate_trade(amount: float, rng: random.Random) -> SimulatedTrade:
    """60/40 coin flip: x1.5 on a win, x0.7 on a loss."""
    success = rng.random() < 0.6
    factor = 1.5 if success else 0.7
    return SimulatedTrade(success=success, new_amount=amount * factor, growth_factor=factor)


def simulate_exchange_trade(operation: str, amount: float, market: str, rng: random.Random) -> SimulatedTrade:
    """
    Stand-in for a round trip to the exchange.

    70% of trades grow the amount by 1.2x-1.8x; the rest fill at a worse price
    and keep 0.7x-0.9x of it.
    """
    op = operation.strip().lower()
    if rng.random() < 0.7:
        factor = 1.2 + rng.random() * 0.6
        return SimulatedTrade(True, amount * factor, factor, f"Successful {op} order on {market}")
    factor = 0.7 + rng.random() * 0.2
    return SimulatedTrade(False, amount * factor, factor, f"{op.capitalize()} on {market} filled at a worse price than expected")


@dataclass
class SimulationStep:
    id: int
    amount: float
    success: bool
    growth_factor: float
    message: str = ""


class TradingSimulation:
    """
    Offline "turn X into Y" run with no exchange involved.

    `start()` arms a fresh run, each `run_trade()` advances it by one trade, and
    the run completes (and stops) once the amount reaches the target.
    """

    def __init__(
        self,
        initial_amount: float = 10.0,
        target_amount: float = 1000.0,
        *,
        on_complete: Optional[Callable[[float], None]] = None,
        model: str = "coinflip",
        seed: Optional[int] = None,
        markets: Optional[List[str]] = None,
    ) -> None:
        if model not in MODELS:
            raise ValueError(f"model must be one of {MODELS}")
        if initial_amount <= 0 or target_amount <= 0:
            raise ValueError("amounts must be > 0")
        self.initial_amount = float(initial_amount)
        self.target_amount = float(target_amount)
        self.on_complete = on_complete
        self.model = model
        self.markets = list(markets or ["BTCUSDT", "ETHUSDT", "SOLUSDT"])
        # Simulation RNG, not cryptographic.
        self._rng = random.Random(seed)  # nosec B311
        self._lock = threading.Lock()

        self.current_amount = self.initial_amount
        self.is_running = False
        self.is_complete = False
        self.trade_count = 0
        self.history: List[SimulationStep] = []

    def configure(self, *, model: Optional[str] = None, seed: Optional[int] = None) -> None:
        if model is not None:
            if model not in MODELS:
                raise ValueError(f"model must be one of {MODELS}")
            self.model = model
        if seed is not None:
            self._rng.seed(seed)

    def _reset_state(self) -> None:
        self.history = []
        self.trade_count = 0
        self.current_amount = self.initial_amount
        self.is_complete = False

    def start(self) -> bool:
        with self._lock:
            if self.is_running:
                return False
            self._reset_state()
            self.is_running = True
        log_event("simulation_started", ctx=_CTX, data={"model": self.model, "initial": self.initial_amount})
        return True

    def _next(self) -> SimulatedTrade:
        if self.model == "mock_exchange":
            operation = "buy" if self._rng.random() < 0.5 else "sell"
            market = self._rng.choice(self.markets)
            return simulate_exchange_trade(operation, self.current_amount, market, self._rng)
        return simulate_trade(self.current_amount, self._rng)

    def run_trade(self) -> Optional[SimulationStep]:
        completed_at: Optional[float] = None
        with self._lock:
            if not self.is_running or self.is_complete:
                return None
            result = self._next()
            self.current_amount = result.new_amount
            self.trade_count += 1
            step = SimulationStep(
                id=self.trade_count,
                amount=result.new_amount,
                success=result.success,
                growth_factor=result.growth_factor,
                message=result.message,
            )
            self.history = [step, *self.history[: HISTORY_LIMIT - 1]]
            if result.new_amount >= self.target_amount:
                self.is_complete = True
                self.is_running = False
                completed_at = result.new_amount

        if completed_at is not None:
            log_event("simulation_complete", ctx=_CTX, data={"trades": self.trade_count, "amount": completed_at})
            if self.on_complete:
                self.on_complete(completed_at)
        return step

    def reset(self) -> None:
        with self._lock:
            self.is_running = False
            self._reset_state()

    @property
    def progress(self) -> float:
        return min(self.current_amount / self.target_amount * 100, 100.0)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "model": self.model,
                "initial_amount": self.initial_amount,
                "target_amount": self.target_amount,
                "current_amount": round(self.current_amount, 8),
                "is_running": self.is_running,
                "is_complete": self.is_complete,
                "trade_count": self.trade_count,
                "progress": round(self.progress, 4),
                "history": [asdict(s) for s in self.history],
            }
