import os
from typing import Literal, Optional, Union

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, PlainTextResponse, Response
from pydantic import BaseModel, Field

from app.core.config import settings
from app.core.container import global_container
from common.errors import AppError
from core.history import dashboard_stats, filter_transactions, goal_progress, trade_to_transaction, transactions_frame
from execution.credentials import ApiCredentials
from execution.models import normalize_side
from marketdata.depth import analyze_market_depth, spread_volatility
from observability import build_log_context, log_event, render_prometheus

API_CTX = build_log_context(tool="api_server")

_STATUS_BY_CODE = {
    "rate_limited": 429,
    "not_configured": 409,
    "invalid_api_keys": 400,
    "unsupported_exchange": 400,
    "insufficient_funds": 400,
    "bad_symbol": 404,
    "rejected": 400,
    "auth_error": 401,
    "relay_needs_activation": 503,
    "timeout": 504,
    "network_error": 502,
    "http_error": 502,
}


def rate_limit(request: Request) -> None:
    client = request.client.host if request.client else "unknown"
    global_container.rate_limiter.check(key=f"api:{client}", limit=settings.RATE_LIMIT_DEFAULT_PER_MIN)


app = FastAPI(title=f"{settings.PROJECT_NAME} Dashboard API", version=settings.VERSION, dependencies=[Depends(rate_limit)])

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    status = _STATUS_BY_CODE.get(exc.code, 400)
    log_event("api_error", ctx=API_CTX, data={"path": request.url.path, **exc.to_dict()}, level="warning")
    return JSONResponse(status_code=status, content={"ok": False, "error": exc.to_dict()})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    return JSONResponse(status_code=400, content={"ok": False, "error": {"code": "invalid_request", "message": str(exc), "data": {}}})


def _session():
    return global_container.require_session()


# -- health & credentials ---------------------------------------------------

@app.get("/api/health")
async def health_check():
    session = global_container.session
    return {
        "status": "ok",
        "mode": "paper" if settings.PAPER_MODE else "live",
        "configured": bool(session and session.has_credentials()),
    }


class CredentialsRequest(BaseModel):
    exchange: str = "binance"
    api_key: str
    api_secret: str


@app.get("/api/credentials")
async def get_credentials():
    creds = global_container.credential_store.get()
    return {"configured": creds is not None, "credentials": creds.public_view() if creds else None}


@app.post("/api/credentials")
def save_credentials(req: CredentialsRequest):
    """
    Validate and activate API keys. Live keys are checked against the exchange
    before anything is replaced.
    """
    creds = ApiCredentials(req.exchange.strip().lower(), req.api_key.strip(), req.api_secret.strip())
    if not creds.api_key or not creds.api_secret:
        raise AppError("invalid_api_keys", "Both API key and API secret must be provided.", {})
    exchange = global_container.build_exchange(creds)
    if not exchange.validate_api_keys(creds.api_key, creds.api_secret):
        raise AppError("invalid_api_keys", "The API keys could not be validated.", {"exchange": creds.exchange})

    global_container.credential_store.save(creds)
    session = global_container.configure_session(creds)
    log_event("api_keys_saved", ctx=API_CTX, data=creds.public_view())
    return {"ok": True, "credentials": creds.public_view(), "session": session.snapshot()}


@app.delete("/api/credentials")
def delete_credentials():
    global_container.clear_session()
    return {"ok": True}


# -- live session ------------------------------------------------------------

@app.get("/api/session")
async def get_session():
    session = _session()
    scheduler = global_container.scheduler
    return {**session.snapshot(), "scheduler": scheduler.status() if scheduler else None}


@app.post("/api/session/trade")
def trade_now():
    result = _session().execute_trade_with_target_check()
    if result is None:
        return {"ok": True, "executed": False}
    return {"ok": True, "executed": True, "success": result.success, "new_balance": result.new_balance}


class AutoTradeRequest(BaseModel):
    enabled: bool


@app.post("/api/session/auto")
async def set_auto_trade(req: AutoTradeRequest):
    session = _session()
    session.set_auto_trade(req.enabled)
    return {"ok": True, "auto_trade_enabled": session.auto_trade_enabled}


class SpeedRequest(BaseModel):
    speed: Union[int, str] = Field(..., description="Trades per minute or a preset: low, medium, high, turbo")


@app.post("/api/session/speed")
async def set_trade_speed(req: SpeedRequest):
    return {"ok": True, "trade_speed": _session().set_trade_speed(req.speed)}


@app.post("/api/session/refresh")
def refresh_balance():
    session = _session()
    balance = session.refresh_balance()
    return {"ok": True, "refreshed": balance is not None, "current_balance": session.current_balance}


@app.get("/api/session/notices")
async def get_notices(since: int = Query(0, ge=0)):
    return {"notices": [n.to_dict() for n in _session().recent_notices(since)]}


# -- offline simulation ------------------------------------------------------

class SimulationStartRequest(BaseModel):
    model: Optional[Literal["coinflip", "mock_exchange"]] = None
    seed: Optional[int] = None


@app.get("/api/simulation")
async def get_simulation():
    return global_container.simulation.snapshot()


@app.post("/api/simulation/start")
async def start_simulation(req: Optional[SimulationStartRequest] = None):
    sim = global_container.simulation
    if req is not None and not sim.is_running:
        sim.configure(model=req.model, seed=req.seed)
    started = sim.start()
    return {"ok": True, "started": started, "simulation": sim.snapshot()}


@app.post("/api/simulation/trade")
async def simulation_trade():
    step = global_container.simulation.run_trade()
    return {"ok": True, "executed": step is not None, "simulation": global_container.simulation.snapshot()}


@app.post("/api/simulation/reset")
async def reset_simulation():
    global_container.simulation.reset()
    return {"ok": True, "simulation": global_container.simulation.snapshot()}


# -- history & dashboard -----------------------------------------------------

def _transactions():
    session = global_container.session
    if session is None:
        return []
    return [trade_to_transaction(t, price=t.price or 0.0, quote_asset=session.quote_asset) for t in session.trade_history]


@app.get("/api/history")
async def get_history(
    search: str = "",
    type: Literal["all", "buy", "sell"] = "all",
    status: Literal["all", "completed", "pending", "failed"] = "all",
    format: Literal["json", "csv"] = "json",
):
    txs = filter_transactions(_transactions(), search=search, type=type, status=status)
    if format == "csv":
        csv_text = transactions_frame(txs).to_csv(index=False)
        return Response(
            content=csv_text,
            media_type="text/csv",
            headers={"Content-Disposition": "attachment; filename=transactions.csv"},
        )
    return {"transactions": [tx.to_dict() for tx in txs]}


@app.get("/api/dashboard")
async def get_dashboard():
    session = global_container.session
    balance = session.current_balance if session else settings.INITIAL_AMOUNT
    return {
        "stats": dashboard_stats(balance, settings.INITIAL_AMOUNT),
        "goal": {"target_amount": settings.TARGET_AMOUNT, "progress": goal_progress(balance, settings.TARGET_AMOUNT)},
        "recent_transactions": [tx.to_dict() for tx in _transactions()[:3]],
    }


@app.get("/api/markets/{symbol}/depth")
def get_depth_analysis(symbol: str, side: str = "BUY", limit: int = Query(20, ge=5, le=100)):
    sd = normalize_side(side)
    exchange = global_container.exchange
    if exchange is None:
        raise HTTPException(status_code=409, detail="API configuration missing")
    book = exchange.get_order_book(symbol.upper(), limit)
    try:
        volatility = spread_volatility(book)
    except ValueError:
        volatility = 0.0
    return {
        "symbol": symbol.upper(),
        "side": sd,
        "favorable": analyze_market_depth(book, sd),
        "volatility": volatility,
    }


# -- ops -----------------------------------------------------------------------

@app.get("/metrics", response_class=PlainTextResponse)
async def metrics():
    return render_prometheus(global_container.metrics.snapshot())


if __name__ == "__main__":
    import uvicorn

    port = int(os.getenv("API_PORT", 8000))
    host = os.getenv("API_HOST", "127.0.0.1")
    log_event("api_server_started", ctx=API_CTX, data={"port": port, "host": host})
    uvicorn.run(app, host=host, port=port)
