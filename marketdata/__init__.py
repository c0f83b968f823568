from .depth import (
    DEFAULT_VOLATILE_MARKETS,
    analyze_market_depth,
    rank_volatile_markets,
    spread_volatility,
)

__all__ = [
    "DEFAULT_VOLATILE_MARKETS",
    "analyze_market_depth",
    "rank_volatile_markets",
    "spread_volatility",
]
