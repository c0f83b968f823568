import json
from typing import Any, Dict, Optional

from fastmcp import FastMCP

from app.core.config import settings
from app.core.container import global_container
from common.errors import classify_exception


def _json_ok(data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": True, "data": data or {}}
    return json.dumps(payload, indent=2, sort_keys=True)

def _json_err(code: str, message: str, data: Dict[str, Any] | None = None) -> str:
    payload = {"ok": False, "error": {"code": code, "message": message, "data": data or {}}}
    return json.dumps(payload, indent=2, sort_keys=True)

# Module-level functions for testing

def get_session_status() -> str:
    """Balance, goal progress, trade history and settings of the auto-trading session."""
    try:
        session = global_container.require_session()
        return _json_ok({"mode": "paper" if settings.PAPER_MODE else "live", "session": session.snapshot()})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def execute_trade_now() -> str:
    """Run one auto-trade cycle immediately (skipped while another trade runs or during backoff)."""
    try:
        session = global_container.require_session()
        result = session.execute_trade_with_target_check()
        if result is None:
            return _json_ok({"executed": False, "current_balance": session.current_balance})
        return _json_ok({"executed": True, "success": result.success, "new_balance": result.new_balance})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def set_auto_trading(enabled: bool) -> str:
    """Turn the background auto-trade loop on or off."""
    try:
        session = global_container.require_session()
        session.set_auto_trade(enabled)
        return _json_ok({"auto_trade_enabled": session.auto_trade_enabled})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def set_trading_speed(speed: str) -> str:
    """Set trades per minute: a number or one of low (1), medium (3), high (5), turbo (10)."""
    try:
        value = global_container.require_session().set_trade_speed(speed)
        return _json_ok({"trade_speed": value})
    except ValueError as e:
        return _json_err("invalid_speed", str(e), {"speed": speed})
    except Exception as e:
        ae = classify_exception(e)
        return _json_err(ae.code, ae.message)

def run_simulation(model: str = "coinflip", seed: Optional[int] = None, max_trades: int = 200) -> str:
    """
    Run the offline simulation until it reaches the target or `max_trades` trades.
    Models: coinflip (60% x1.5 / x0.7) or mock_exchange (70% x1.2-1.8 / x0.7-0.9).
    """
    sim = global_container.simulation
    try:
        sim.reset()
        sim.configure(model=model, seed=seed)
        sim.start()
        for _ in range(max(1, int(max_trades))):
            if sim.run_trade() is None or sim.is_complete:
                break
        return _json_ok({"simulation": sim.snapshot()})
    except ValueError as e:
        return _json_err("invalid_simulation", str(e), {"model": model})

def reset_simulation() -> str:
    """Stop and clear the offline simulation."""
    global_container.simulation.reset()
    return _json_ok({"simulation": global_container.simulation.snapshot()})

def register_trading_tools(mcp: FastMCP):
    mcp.tool()(get_session_status)
    mcp.tool()(execute_trade_now)
    mcp.tool()(set_auto_trading)
    mcp.tool()(set_trading_speed)
    mcp.tool()(run_simulation)
    mcp.tool()(reset_simulation)
