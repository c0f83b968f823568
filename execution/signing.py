"""
HMAC-SHA256 request signing for the exchange's SIGNED endpoints.

The signature covers the query string exactly as it is sent, so parameters are
rendered once here and the same string goes on the wire.
"""

from __future__ import annotations

import hashlib
import hmac
from decimal import Decimal
from typing import Any, Mapping


def format_param(value: Any) -> str:
    """
    Render a query parameter value.

    Floats are written in plain decimal notation (0.00001, never 1e-05) so the
    exchange parses the same number that was signed.
    """
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        text = format(Decimal(repr(value)), "f")
        if "." in text:
            text = text.rstrip("0").rstrip(".")
        return text or "0"
    return str(value)


def build_query(params: Mapping[str, Any]) -> str:
    """`key=value` pairs in insertion order, `None` values skipped."""
    return "&".join(f"{k}={format_param(v)}" for k, v in params.items() if v is not None)


def create_signature(query_string: str, api_secret: str) -> str:
    return hmac.new(api_secret.encode("utf-8"), query_string.encode("utf-8"), hashlib.sha256).hexdigest()


def sign_query(params: Mapping[str, Any], api_secret: str) -> str:
    query = build_query(params)
    return f"{query}&signature={create_signature(query, api_secret)}"
