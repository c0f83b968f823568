from __future__ import annotations

import os
import threading
from dataclasses import dataclass
from typing import Any, Dict, Optional

LIVE_EXCHANGES = ("binance",)
MIN_KEY_LENGTH = 10


@dataclass(frozen=True)
class ApiCredentials:
    exchange: str
    api_key: str
    api_secret: str

    def looks_valid(self) -> bool:
        """Shape check only; the exchange has the final word."""
        return bool(
            self.api_key
            and self.api_secret
            and len(self.api_key) >= MIN_KEY_LENGTH
            and len(self.api_secret) >= MIN_KEY_LENGTH
        )

    def public_view(self) -> Dict[str, Any]:
        masked = f"{self.api_key[:4]}…{self.api_key[-4:]}" if len(self.api_key) > 8 else "****"
        return {"exchange": self.exchange, "api_key_hint": masked}

    def __repr__(self) -> str:
        return f"ApiCredentials(exchange={self.exchange!r}, api_key=***, api_secret=***)"


def _env(name: str) -> Optional[str]:
    v = os.getenv(name)
    if v is None:
        return None
    v = v.strip()
    return v or None


def load_credentials(exchange: str = "binance") -> Optional[ApiCredentials]:
    """
    Load credentials from env vars.

    Priority:
    1) <EXCHANGE>_API_KEY / <EXCHANGE>_API_SECRET (e.g. BINANCE_API_KEY)
    2) EXCHANGE_API_KEY / EXCHANGE_API_SECRET (generic)
    """
    ex = exchange.strip().lower()
    prefix = f"{ex.upper()}_"
    api_key = _env(prefix + "API_KEY") or _env("EXCHANGE_API_KEY")
    api_secret = _env(prefix + "API_SECRET") or _env("EXCHANGE_API_SECRET")
    if not api_key or not api_secret:
        return None
    return ApiCredentials(exchange=ex, api_key=api_key, api_secret=api_secret)


class CredentialStore:
    """
    Holds the active API credentials for this process.

    Memory only: keys are gone after a restart and must be entered again
    (or provided through the environment).
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._active: Optional[ApiCredentials] = None

    def save(self, creds: ApiCredentials) -> None:
        if not creds.api_key or not creds.api_secret:
            raise ValueError("Both API key and API secret must be provided.")
        with self._lock:
            self._active = creds

    def get(self) -> Optional[ApiCredentials]:
        with self._lock:
            return self._active

    def clear(self) -> None:
        with self._lock:
            self._active = None

    def is_configured(self) -> bool:
        return self.get() is not None
