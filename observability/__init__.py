from .logging import build_log_context, log_event
from .metrics import Metrics
from .prometheus import render_prometheus

__all__ = ["Metrics", "build_log_context", "log_event", "render_prometheus"]
