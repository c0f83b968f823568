from __future__ import annotations

import threading
import time
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class _Latency:
    count: int = 0
    total_ms: float = 0.0
    max_ms: float = 0.0

    def add(self, ms: float) -> None:
        self.count += 1
        self.total_ms += ms
        if ms > self.max_ms:
            self.max_ms = ms

    def as_dict(self) -> Dict[str, float]:
        avg = self.total_ms / self.count if self.count else 0.0
        return {
            "count": self.count,
            "total_ms": round(self.total_ms, 3),
            "avg_ms": round(avg, 3),
            "max_ms": round(self.max_ms, 3),
        }


class Metrics:
    """
    Process-local counters, gauges and latency aggregates for the exchange
    client and the trading session. Scraped as text through `render_prometheus`.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._counters: Dict[str, int] = defaultdict(int)
        self._gauges: Dict[str, float] = {}
        self._latency: Dict[str, _Latency] = defaultdict(_Latency)
        self._started_at = time.time()

    def inc(self, name: str, value: int = 1) -> None:
        with self._lock:
            self._counters[name] += int(value)

    def observe_ms(self, name: str, ms: float) -> None:
        with self._lock:
            self._latency[name].add(float(ms))

    def set_gauge(self, name: str, value: float) -> None:
        with self._lock:
            self._gauges[name] = float(value)

    def record_request(self, endpoint: str, ms: float, *, ok: bool) -> None:
        """One exchange REST call: `/api/v3/depth` lands in `exchange_api_v3_depth_latency_ms`."""
        name = endpoint.strip("/").replace("/", "_") or "root"
        self.inc("exchange_requests_total")
        self.observe_ms(f"exchange_{name}_latency_ms", ms)
        if not ok:
            self.inc("exchange_request_errors_total")

    def record_trade(self, *, success: bool, balance: float) -> None:
        self.inc("trades_total")
        if not success:
            self.inc("trades_degraded_total")
        self.set_gauge("balance_quote", balance)

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            counters = dict(self._counters)
            gauges = {k: round(v, 6) for k, v in self._gauges.items()}
            timers = {k: agg.as_dict() for k, agg in self._latency.items()}
        return {
            "uptime_sec": int(time.time() - self._started_at),
            "counters": counters,
            "timers": timers,
            "gauges": gauges,
        }
