import os

from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings:
    PROJECT_NAME: str = "SprintTrader"
    VERSION: str = "0.1.0"

    # Paper mode swaps the live exchange for the in-memory one
    PAPER_MODE: bool = _flag("PAPER_MODE", "true")
    PAPER_START_BALANCE: float = float(os.getenv("PAPER_START_BALANCE", "10"))
    PAPER_SEED: int = int(os.getenv("PAPER_SEED", "42"))

    # Exchange connectivity
    EXCHANGE_BASE_URL: str = os.getenv("EXCHANGE_BASE_URL", "https://api.binance.com").strip().rstrip("/")
    EXCHANGE_RELAY_URL: str = os.getenv("EXCHANGE_RELAY_URL", "").strip()
    EXCHANGE_TIMEOUT_SEC: float = float(os.getenv("EXCHANGE_TIMEOUT_SEC", "10"))
    EXCHANGE_INFO_TTL_SEC: float = float(os.getenv("EXCHANGE_INFO_TTL_SEC", "300"))
    QUOTE_ASSET: str = os.getenv("QUOTE_ASSET", "USDT").strip().upper()

    # Goal narrative
    INITIAL_AMOUNT: float = float(os.getenv("INITIAL_AMOUNT", "10"))
    TARGET_AMOUNT: float = float(os.getenv("TARGET_AMOUNT", "1000"))

    # Auto-trade loop
    DEFAULT_TRADE_SPEED: int = int(os.getenv("DEFAULT_TRADE_SPEED", "5"))
    BALANCE_REFRESH_SEC: float = float(os.getenv("BALANCE_REFRESH_SEC", "30"))
    NEW_DAY_DELAY_SEC: float = float(os.getenv("NEW_DAY_DELAY_SEC", "5"))
    SCHEDULER_ENABLED: bool = _flag("SCHEDULER_ENABLED", "true")

    # API
    RATE_LIMIT_DEFAULT_PER_MIN: int = int(os.getenv("RATE_LIMIT_DEFAULT_PER_MIN", "120"))


settings = Settings()
