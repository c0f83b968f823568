"""
SprintTrader paper-mode quick demo (offline).

Gives a new user a 1-command way to see the auto-trade session work end to end:
- initialization (tradable pairs, balance, volatile markets)
- a handful of trades against the in-memory paper exchange
- the resulting history as a transactions CSV

This script does NOT start the API server or the background loop; it drives the
session directly so it works without any configuration.
"""

import random
from pathlib import Path


def main() -> int:
    # Allow running from repo root without installing as a package.
    import sys

    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

    from core.history import trade_to_transaction, transactions_frame
    from core.session import TradingSession
    from execution.credentials import ApiCredentials
    from execution.paper_exchange import PaperExchange

    exchange = PaperExchange(start_balance=100.0, seed=7)
    creds = ApiCredentials("paper", "paper-demo-key", "paper-demo-secret")
    session = TradingSession(exchange, creds, initial_amount=100.0, target_amount=1000.0, rng=random.Random(7))

    print("\n=== SprintTrader paper-mode quick demo ===")

    print("\n1) Initialize session")
    session.initialize()
    print(f"   markets: {len(session.available_markets)}, volatile: {session.volatile_markets[:5]}")
    print(f"   balance: {session.current_balance:.2f} USDT")

    print("\n2) Run 8 trades")
    for _ in range(8):
        result = session.execute_trade_with_target_check()
        trade = session.trade_history[0]
        print(f"   #{trade.id} {trade.operation:<4} {trade.market:<9} -> {result.new_balance:.2f} ({trade.message})")

    print("\n3) Transactions")
    frame = transactions_frame(trade_to_transaction(t, price=t.price or 0.0) for t in session.trade_history)
    print(frame.to_string(index=False))

    print("\nDone. Next: run `uvicorn app.api_server:app` and open /docs.")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
