import threading
from typing import Optional

from app.core.config import settings
from common.errors import AppError
from common.rate_limiter import FixedWindowRateLimiter
from core.scheduler import AutoTrader
from core.session import TradingSession
from core.simulation import TradingSimulation
from execution.base import IExchange
from execution.binance_client import BinanceRestClient
from execution.credentials import LIVE_EXCHANGES, ApiCredentials, CredentialStore, load_credentials
from execution.paper_exchange import PaperExchange
from observability import Metrics, build_log_context, log_event

PAPER_DEMO_CREDENTIALS = ApiCredentials("paper", "paper-demo-key", "paper-demo-secret")

_CTX = build_log_context(tool="container")


class Container:
    def __init__(self):
        # Observability
        self.metrics = Metrics()

        # API guards
        self.rate_limiter = FixedWindowRateLimiter()

        # Credentials (memory only)
        self.credential_store = CredentialStore()

        # Offline narrative, available without any exchange
        self.simulation = TradingSimulation(settings.INITIAL_AMOUNT, settings.TARGET_AMOUNT)

        # Live session (built once credentials exist)
        self.exchange: Optional[IExchange] = None
        self.session: Optional[TradingSession] = None
        self.scheduler: Optional[AutoTrader] = None
        self._lock = threading.Lock()

        creds = load_credentials("binance")
        if creds is None and settings.PAPER_MODE:
            creds = PAPER_DEMO_CREDENTIALS
        if creds is not None:
            self.credential_store.save(creds)
            self.configure_session(creds)

    def build_exchange(self, creds: ApiCredentials) -> IExchange:
        if settings.PAPER_MODE:
            return PaperExchange(
                start_balance=settings.PAPER_START_BALANCE,
                quote_asset=settings.QUOTE_ASSET,
                seed=settings.PAPER_SEED,
            )
        if creds.exchange not in LIVE_EXCHANGES:
            raise AppError(
                "unsupported_exchange",
                f"Exchange {creds.exchange} is not supported for live trading.",
                {"exchange": creds.exchange, "supported": list(LIVE_EXCHANGES)},
            )
        return BinanceRestClient(
            creds,
            base_url=settings.EXCHANGE_BASE_URL,
            relay_url=settings.EXCHANGE_RELAY_URL,
            timeout=settings.EXCHANGE_TIMEOUT_SEC,
            exchange_info_ttl=settings.EXCHANGE_INFO_TTL_SEC,
            quote_asset=settings.QUOTE_ASSET,
            metrics=self.metrics,
        )

    def configure_session(self, creds: ApiCredentials) -> TradingSession:
        """
        (Re)build the exchange, session and auto-trader for `creds`.

        With the scheduler enabled, initialization runs on the auto-trader thread;
        otherwise it runs inline before returning.
        """
        exchange = self.build_exchange(creds)
        session = TradingSession(
            exchange,
            creds,
            initial_amount=settings.INITIAL_AMOUNT,
            target_amount=settings.TARGET_AMOUNT,
            trade_speed=settings.DEFAULT_TRADE_SPEED,
            quote_asset=settings.QUOTE_ASSET,
            new_day_delay=settings.NEW_DAY_DELAY_SEC,
            metrics=self.metrics,
        )
        scheduler = AutoTrader(session, balance_refresh_sec=settings.BALANCE_REFRESH_SEC)

        with self._lock:
            previous = self.scheduler
            self.exchange, self.session, self.scheduler = exchange, session, scheduler
        if previous is not None:
            previous.stop()

        log_event("session_configured", ctx=_CTX, data={"exchange": exchange.name, "paper": settings.PAPER_MODE})
        if settings.SCHEDULER_ENABLED:
            scheduler.start()
        else:
            session.initialize()
        return session

    def clear_session(self) -> None:
        with self._lock:
            previous = self.scheduler
            self.exchange = self.session = self.scheduler = None
        if previous is not None:
            previous.stop()
        self.credential_store.clear()

    def require_session(self) -> TradingSession:
        session = self.session
        if session is None:
            raise AppError("not_configured", "API configuration missing. Please configure your API keys first.", {})
        return session


global_container = Container()
