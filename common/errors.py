from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict


@dataclass
class AppError(Exception):
    code: str
    message: str
    data: Dict[str, Any]

    def __str__(self) -> str:
        return f"[{self.code}] {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        return {"code": self.code, "message": self.message, "data": self.data}


class ExchangeHTTPError(AppError):
    def __init__(self, status: int, body: str, data: Dict[str, Any] = None):
        payload = {"status": int(status), "body": body}
        payload.update(data or {})
        super().__init__("http_error", f"HTTP error! status: {status}, message: {body}", payload)

    @property
    def status(self) -> int:
        return int(self.data.get("status", 0))


class RelayActivationError(AppError):
    """
    The relay in front of the exchange refuses to forward requests until an operator
    unlocks it (cors-anywhere style `/corsdemo` page).
    """

    def __init__(self, message: str = "Relay needs activation before exchange calls can pass", data: Dict[str, Any] = None):
        super().__init__("relay_needs_activation", message, data or {})


class InsufficientFundsError(AppError):
    def __init__(self, message: str = "Insufficient funds", data: Dict[str, Any] = None):
        super().__init__("insufficient_funds", message, data or {})


def classify_exception(e: Exception) -> AppError:
    """
    Map exchange / network issues into stable error codes.
    """
    if isinstance(e, AppError):
        if isinstance(e, ExchangeHTTPError):
            status = e.status
            if status == 429 or status == 418:
                return AppError("rate_limited", e.message, e.data)
            if status in (401, 403):
                return AppError("auth_error", e.message, e.data)
            body = str(e.data.get("body") or "").lower()
            if "-1121" in body or "invalid symbol" in body:
                return AppError("bad_symbol", e.message, e.data)
            if 400 <= status < 500:
                return AppError("rejected", e.message, e.data)
        return e

    err_str = str(e).lower()

    if "rate limit" in err_str or "429" in err_str:
        return AppError("rate_limited", str(e), {})
    if "timeout" in err_str or "timed out" in err_str:
        return AppError("timeout", str(e), {})
    if "api key" in err_str or "api-key" in err_str or "unauthorized" in err_str or "forbidden" in err_str:
        return AppError("auth_error", str(e), {})
    if "not found" in err_str or "invalid symbol" in err_str:
        return AppError("bad_symbol", str(e), {})
    if "network" in err_str or "connection" in err_str:
        return AppError("network_error", str(e), {})

    return AppError("unknown_error", str(e), {})
