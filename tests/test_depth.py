import math

import pytest

from marketdata.depth import (
    DEFAULT_VOLATILE_MARKETS,
    analyze_market_depth,
    rank_volatile_markets,
    spread_volatility,
)


def _book(bid_qty, ask_qty, levels=12):
    return {
        "bids": [[str(100 - i), str(bid_qty)] for i in range(levels)],
        "asks": [[str(101 + i), str(ask_qty)] for i in range(levels)],
    }


def test_depth_buy_and_sell_pressure():
    # 10 levels * 9 vs 10 levels * 10: 90 > 100 * 0.8
    book = _book(9, 10)
    assert analyze_market_depth(book, "BUY") is True
    assert analyze_market_depth(book, "SELL") is True

    lopsided = _book(1, 10)
    assert analyze_market_depth(lopsided, "buy") is False
    assert analyze_market_depth(lopsided, "sell") is True


def test_depth_only_counts_top_ten_levels():
    book = _book(1, 1)
    # Huge bid far down the book is ignored
    book["bids"].append(["50", "1000000"])
    assert analyze_market_depth(book, "SELL") is True
    assert analyze_market_depth(book, "BUY") is True


def test_depth_rejects_unknown_side():
    with pytest.raises(ValueError):
        analyze_market_depth(_book(1, 1), "HOLD")


def test_spread_volatility():
    book = {"bids": [["200", "30"], ["199", "20"]], "asks": [["202", "50"]]}
    assert spread_volatility(book) == pytest.approx(1.0 * math.log10(100))


def test_spread_volatility_needs_both_sides():
    with pytest.raises(ValueError):
        spread_volatility({"bids": [], "asks": [["1", "1"]]})


def test_spread_volatility_of_an_empty_book_is_zero():
    assert spread_volatility({"bids": [["100", "0"]], "asks": [["101", "0"]]}) == 0.0


def test_rank_volatile_markets_sorts_and_scores_failures_as_zero():
    scores = {"AUSDT": 1.0, "BUSDT": 3.0, "CUSDT": 2.0}

    def vol(m):
        if m == "DUSDT":
            raise RuntimeError("no book")
        return scores[m]

    assert rank_volatile_markets(["AUSDT", "BUSDT", "CUSDT", "DUSDT"], vol) == ["BUSDT", "CUSDT", "AUSDT", "DUSDT"]


def test_rank_volatile_markets_limits():
    markets = [f"M{i}USDT" for i in range(80)]
    seen = []

    def vol(m):
        seen.append(m)
        return float(markets.index(m))

    ranked = rank_volatile_markets(markets, vol)
    assert len(seen) == 50
    assert len(ranked) == 15
    assert ranked[0] == "M49USDT"


def test_rank_volatile_markets_falls_back_when_scan_fails():
    assert rank_volatile_markets(None, lambda m: 1.0) == DEFAULT_VOLATILE_MARKETS
