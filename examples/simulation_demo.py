"""
SprintTrader: "$10 to $1000" simulation demo (offline, deterministic).

Runs both simulation models with a fixed seed and writes:
- JSON summary per model
- CSV of the last trades per model

Artifacts are written under ./artifacts/demo_simulation/ (gitignored).
"""

import json
from pathlib import Path


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")


def main() -> int:
    # Allow running from repo root without installing as a package.
    import sys

    root = Path(__file__).resolve().parents[1]
    if str(root) not in sys.path:
        sys.path.insert(0, str(root))

    import pandas as pd

    from core.simulation import MODELS, TradingSimulation

    out_dir = Path("artifacts") / "demo_simulation"
    out_dir.mkdir(parents=True, exist_ok=True)

    print("\n=== SprintTrader simulation demo ===")
    for model in MODELS:
        finished = []
        sim = TradingSimulation(10.0, 1000.0, model=model, seed=1337, on_complete=finished.append)
        sim.start()
        for _ in range(500):
            if sim.run_trade() is None:
                break

        snap = sim.snapshot()
        status = f"reached ${finished[0]:,.2f}" if finished else f"stopped at ${snap['current_amount']:,.2f}"
        print(f"- {model}: {status} after {snap['trade_count']} trades")

        _write_text(out_dir / f"{model}_summary.json", json.dumps({k: v for k, v in snap.items() if k != "history"}, indent=2))
        _write_text(out_dir / f"{model}_last_trades.csv", pd.DataFrame(snap["history"]).to_csv(index=False))

    print("\nWrote artifacts:")
    for p in sorted(out_dir.glob("*")):
        print(f"- {p}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
