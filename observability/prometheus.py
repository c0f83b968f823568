"""
Prometheus text-format rendering of `Metrics.snapshot()`.

The dashboard API serves this text at `/metrics`; nothing here opens a port.
"""

from __future__ import annotations

import re
from typing import Any, Dict, List, Optional

_re_non_ident = re.compile(r"[^a-zA-Z0-9_]+")

_TIMER_FIELDS = (("count", "count"), ("total_ms", "sum_ms"), ("max_ms", "max_ms"), ("avg_ms", "avg_ms"))


def _num(v: Any) -> Optional[float]:
    if isinstance(v, bool):
        return None
    if isinstance(v, (int, float)):
        return float(v)
    if isinstance(v, str) and v.strip():
        try:
            return float(v)
        except ValueError:
            return None
    return None


def _fmt(v: float) -> str:
    return str(int(v)) if float(v).is_integer() else repr(float(v))


def _name(s: str) -> str:
    return _re_non_ident.sub("_", (s or "").strip()).strip("_").lower() or "unnamed"


def _section(lines: List[str], metric_type: str, prefix: str, values: Dict[str, Any]) -> None:
    for key in sorted(values, key=str):
        v = _num(values[key])
        if v is None:
            continue
        metric = f"{prefix}_{_name(str(key))}"
        lines.append(f"# TYPE {metric} {metric_type}")
        lines.append(f"{metric} {_fmt(v)}")


def render_prometheus(snapshot: Dict[str, Any], *, namespace: str = "sprinttrader") -> str:
    """
    Render Metrics.snapshot() into Prometheus exposition format.
    """
    ns = _name(namespace)
    lines: List[str] = []

    uptime = _num(snapshot.get("uptime_sec"))
    if uptime is not None:
        lines.append(f"# TYPE {ns}_uptime_sec gauge")
        lines.append(f"{ns}_uptime_sec {int(uptime)}")

    counters = snapshot.get("counters")
    if isinstance(counters, dict):
        _section(lines, "counter", f"{ns}_counter", counters)

    gauges = snapshot.get("gauges")
    if isinstance(gauges, dict):
        _section(lines, "gauge", f"{ns}_gauge", gauges)

    timers = snapshot.get("timers")
    if isinstance(timers, dict):
        for key in sorted(timers, key=str):
            agg = timers[key]
            if not isinstance(agg, dict):
                continue
            flat = {suffix: agg[field] for field, suffix in _TIMER_FIELDS if field in agg}
            _section(lines, "gauge", f"{ns}_timer_{_name(str(key))}", flat)

    return "\n".join(lines) + "\n"
