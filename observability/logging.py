from __future__ import annotations

import json
import os
import time
import uuid
from typing import Any, Dict, Optional

_LEVELS = {"debug": 10, "info": 20, "warn": 30, "warning": 30, "error": 40}

# Binance signs with `signature` and authenticates with the X-MBX-APIKEY header.
_SENSITIVE_KEYWORDS = ("secret", "password", "token", "private", "signature", "api_key", "apikey", "x-mbx")
_REDACTED = "***REDACTED***"


def _level_value(level: str) -> int:
    return _LEVELS.get(str(level or "").strip().lower(), 20)


def _threshold() -> int:
    raw = os.getenv("SPRINTTRADER_LOG_LEVEL") or os.getenv("LOG_LEVEL") or "info"
    return _level_value(raw)


def _is_sensitive(key: Any) -> bool:
    k = str(key).lower()
    return any(word in k for word in _SENSITIVE_KEYWORDS)


def redact(value: Any) -> Any:
    """
    Replace values stored under secret-looking keys, recursively.
    """
    if isinstance(value, dict):
        return {k: (_REDACTED if _is_sensitive(k) else redact(v)) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [redact(x) for x in value]
    return value


def build_log_context(*, tool: str, request_id: str | None = None) -> Dict[str, Any]:
    """
    Fields stamped on every event a component emits.
    """
    return {
        "tool": tool,
        "request_id": str(request_id or uuid.uuid4()),
        "ts_ms": int(time.time() * 1000),
        "service": os.getenv("SPRINTTRADER_SERVICE_NAME", "sprinttrader"),
    }


def log_event(event: str, *, ctx: Dict[str, Any], data: Optional[Dict[str, Any]] = None, level: str = "info") -> None:
    """
    Emit a single-line JSON log event to stdout.
    """
    if _level_value(level) < _threshold():
        return
    payload = {**ctx, "level": str(level).upper(), "event": event}
    if data:
        payload["data"] = redact(data)
    print(json.dumps(payload, sort_keys=True, default=str))
