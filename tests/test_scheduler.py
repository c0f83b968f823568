from unittest.mock import MagicMock

import pytest

from core.scheduler import AutoTrader, trade_interval


class Clock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


def make_session(**overrides):
    session = MagicMock()
    session.trade_speed = 5
    session.consecutive_failures = 0
    session.auto_trade_enabled = True
    session.daily_target_reached = False
    session.is_initializing = False
    session.is_trading = False
    session.has_credentials.return_value = True
    for k, v in overrides.items():
        setattr(session, k, v)
    return session


@pytest.mark.parametrize(
    "speed,failures,expected",
    [
        (1, 0, 60.0),
        (5, 0, 12.0),
        (10, 0, 6.0),
        (10, 2, 12.0),
        (1, 3, 60.0),
        (0, 0, 60.0),
    ],
)
def test_trade_interval(speed, failures, expected):
    assert trade_interval(speed, failures) == pytest.approx(expected)


def test_run_pending_trades_and_refreshes_on_schedule():
    session = make_session()
    clock = Clock()
    trader = AutoTrader(session, balance_refresh_sec=30, clock=clock)
    session.subscribe.assert_called_once_with(trader.wake)

    assert trader.run_pending() == pytest.approx(12.0)
    session.execute_trade_with_target_check.assert_not_called()

    clock.now = 12.0
    assert trader.run_pending() == pytest.approx(12.0)
    assert session.execute_trade_with_target_check.call_count == 1
    session.update_actual_balance.assert_not_called()

    clock.now = 30.0
    trader.run_pending()
    assert session.execute_trade_with_target_check.call_count == 2
    session.update_actual_balance.assert_called_once()
    assert trader.status()["trades_started"] == 2


def test_no_trades_while_paused_or_target_reached():
    session = make_session(auto_trade_enabled=False)
    clock = Clock()
    trader = AutoTrader(session, balance_refresh_sec=30, clock=clock)
    for t in (0.0, 20.0, 40.0):
        clock.now = t
        trader.run_pending()
    session.execute_trade_with_target_check.assert_not_called()

    session.auto_trade_enabled = True
    session.daily_target_reached = True
    clock.now = 80.0
    trader.run_pending()
    session.execute_trade_with_target_check.assert_not_called()


def test_refresh_skipped_while_trading():
    session = make_session(is_trading=True, auto_trade_enabled=False)
    clock = Clock()
    trader = AutoTrader(session, balance_refresh_sec=30, clock=clock)
    trader.run_pending()
    clock.now = 31.0
    trader.run_pending()
    session.update_actual_balance.assert_not_called()


def test_failures_stretch_the_interval():
    session = make_session(consecutive_failures=2)
    trader = AutoTrader(session, clock=Clock())
    assert trader.current_interval() == pytest.approx(24.0)


def test_wake_restarts_trade_countdown():
    session = make_session()
    clock = Clock()
    trader = AutoTrader(session, balance_refresh_sec=300, clock=clock)
    trader.run_pending()

    clock.now = 10.0
    session.trade_speed = 60
    trader.wake()
    # new deadline is measured from the wake-up, at the new speed
    assert trader.run_pending() == pytest.approx(1.0)
    clock.now = 11.0
    trader.run_pending()
    session.execute_trade_with_target_check.assert_called_once()


def test_start_and_stop_thread():
    session = make_session(auto_trade_enabled=False)
    trader = AutoTrader(session)
    trader.start()
    assert trader.status()["running"] is True
    trader.stop()
    assert trader.status()["running"] is False
    session.cancel_timers.assert_called_once()
