from observability.metrics import Metrics
from observability.prometheus import render_prometheus


def test_render_prometheus_contains_expected_lines():
    m = Metrics()
    m.inc("a_total", 2)
    m.set_gauge("balance_quote", 1.25)
    m.observe_ms("tool_x_latency_ms", 10.0)
    out = render_prometheus(m.snapshot(), namespace="sprinttrader")
    assert "sprinttrader_uptime_sec" in out
    assert "sprinttrader_counter_a_total 2" in out
    assert "sprinttrader_gauge_balance_quote 1.25" in out
    assert "sprinttrader_timer_tool_x_latency_ms_count 1" in out
    assert "# TYPE sprinttrader_counter_a_total counter" in out


def test_request_and_trade_helpers():
    m = Metrics()
    m.record_request("/api/v3/depth", 12.0, ok=True)
    m.record_request("/api/v3/depth", 30.0, ok=False)
    m.record_trade(success=False, balance=9.95)
    snap = m.snapshot()
    assert snap["counters"]["exchange_requests_total"] == 2
    assert snap["counters"]["exchange_request_errors_total"] == 1
    assert snap["timers"]["exchange_api_v3_depth_latency_ms"]["max_ms"] == 30.0
    assert snap["counters"]["trades_degraded_total"] == 1
    assert snap["gauges"]["balance_quote"] == 9.95
