import pytest

from execution.sizing import find_symbol_info, lot_size_filter, optimal_quantity, step_decimals


def test_step_decimals():
    assert step_decimals(0.001) == 3
    assert step_decimals(0.00001) == 5
    assert step_decimals(1.0) == 0
    assert step_decimals(0.1) == 1


def test_optimal_quantity_floors_to_step():
    # 25% of 100 = 25 USDT at 3.3 -> 7.5757... -> 7.57
    assert optimal_quantity(3.3, 100.0, 25.0, 0.01, 0.01) == 7.57


def test_optimal_quantity_lifts_to_min_qty():
    assert optimal_quantity(65000.0, 1.0, 20.0, 0.0001, 0.0001) == 0.0001


def test_optimal_quantity_integer_steps():
    assert optimal_quantity(0.15, 10.0, 30.0, 1.0, 1.0) == 20.0


def test_optimal_quantity_rejects_bad_inputs():
    with pytest.raises(ValueError):
        optimal_quantity(0, 10.0, 20.0, 0.001, 0.001)
    with pytest.raises(ValueError):
        optimal_quantity(10.0, 10.0, 20.0, 0.001, 0)


def test_lot_size_filter_and_lookup():
    info = {"symbols": [{"symbol": "SOLUSDT", "filters": [
        {"filterType": "PRICE_FILTER", "tickSize": "0.01"},
        {"filterType": "LOT_SIZE", "minQty": "0.001", "stepSize": "0.001"},
    ]}]}
    sym = find_symbol_info(info, "SOLUSDT")
    assert lot_size_filter(sym) == (0.001, 0.001)

    with pytest.raises(ValueError, match="Symbol DOGEUSDT information not found"):
        find_symbol_info(info, "DOGEUSDT")
    with pytest.raises(ValueError):
        lot_size_filter({"symbol": "X", "filters": []})
