import os
import random
import sys

import pytest

# Add root directory to sys.path to allow imports from top-level modules
sys.path.append(os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

# Set environment variables BEFORE modules are imported
os.environ["PAPER_MODE"] = "true"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["EXCHANGE_RETRY_DELAY_SEC"] = "0"
os.environ["PAPER_SEED"] = "42"
os.environ["RATE_LIMIT_DEFAULT_PER_MIN"] = "10000"
os.environ.pop("BINANCE_API_KEY", None)
os.environ.pop("EXCHANGE_API_KEY", None)


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    # Failed-trade pauses and retry delays never block a test
    monkeypatch.setattr("core.session.time.sleep", lambda _: None)
    monkeypatch.setattr("execution.retry.time.sleep", lambda _: None)


@pytest.fixture
def container():
    from app.core.container import global_container
    return global_container


@pytest.fixture
def paper_exchange():
    from execution.paper_exchange import PaperExchange
    return PaperExchange(start_balance=100.0, seed=7)


@pytest.fixture
def creds():
    from execution.credentials import ApiCredentials
    return ApiCredentials("paper", "paper-demo-key", "paper-demo-secret")


@pytest.fixture
def session(paper_exchange, creds):
    from core.session import TradingSession
    return TradingSession(paper_exchange, creds, initial_amount=10.0, target_amount=1000.0, rng=random.Random(3))


@pytest.fixture
def paper_container():
    """Global container with a fresh paper session; restored after the test."""
    from app.core.container import PAPER_DEMO_CREDENTIALS, global_container

    def _reset():
        global_container.credential_store.save(PAPER_DEMO_CREDENTIALS)
        global_container.configure_session(PAPER_DEMO_CREDENTIALS)
        global_container.simulation.reset()

    _reset()
    yield global_container
    _reset()
