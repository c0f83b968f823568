"""
Fixed-count retry for exchange calls.

Every exchange request is retried a fixed number of times with a fixed pause:
- relay activation problems are never retried (an operator has to act)
- 4xx rejections other than 429 are deterministic and fail immediately
"""

from __future__ import annotations

import os
import time
from typing import Callable, TypeVar

from common.errors import AppError, ExchangeHTTPError, RelayActivationError, classify_exception
from observability import build_log_context, log_event

T = TypeVar("T")

_CTX = build_log_context(tool="exchange_retry")


def _env_int(name: str, default: int) -> int:
    try:
        return int((os.getenv(name) or "").strip() or default)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float((os.getenv(name) or "").strip() or default)
    except ValueError:
        return default


def should_retry(e: Exception) -> bool:
    if isinstance(e, RelayActivationError):
        return False
    if isinstance(e, ExchangeHTTPError):
        return e.status == 429 or e.status >= 500
    if isinstance(e, ValueError):
        return False
    return True


def with_retry(op: str, fn: Callable[[], T]) -> T:
    """
    Run `fn`, retrying failures with a fixed delay.

    Env tuning:
    - EXCHANGE_MAX_RETRIES (default 3, i.e. up to 4 attempts)
    - EXCHANGE_RETRY_DELAY_SEC (default 1.0)
    """
    max_retries = max(0, _env_int("EXCHANGE_MAX_RETRIES", 3))
    delay = max(0.0, _env_float("EXCHANGE_RETRY_DELAY_SEC", 1.0))

    attempt = 0
    while True:
        attempt += 1
        try:
            return fn()
        except RelayActivationError:
            raise
        except Exception as e:
            remaining = max_retries - (attempt - 1)
            if not should_retry(e) or remaining <= 0:
                ae = classify_exception(e)
                raise AppError(
                    ae.code,
                    f"{op} failed after {attempt} attempt(s): {ae.message}",
                    {"attempts": attempt, "op": op, **ae.data},
                ) from e
            log_event(
                "exchange_retry",
                ctx=_CTX,
                data={"op": op, "retries_remaining": remaining, "delay_sec": delay, "error": str(e)},
                level="warning",
            )
            time.sleep(delay)
