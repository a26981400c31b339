"""
Tests for per-period performance snapshots.
"""

from datetime import datetime, timedelta, timezone

from conftest import T0, trend_params
from ta_bt.config import ExecutorConfig
from ta_bt.data_provider import InMemoryBarSource
from ta_bt.jobs import BacktestJobService
from ta_bt.performance import PerformancePeriod, compute_performance
from ta_bt.types import Direction


def test_period_starts() -> None:
    now = datetime(2025, 6, 1, tzinfo=timezone.utc)
    assert PerformancePeriod.SINCE_2021.start_for(now) == datetime(2021, 1, 1, tzinfo=timezone.utc)
    assert PerformancePeriod.RECENT_1Y.start_for(now) == now - timedelta(days=365)
    assert PerformancePeriod.RECENT_1M.start_for(now) == now - timedelta(days=30)
    assert [p.days for p in PerformancePeriod] == [None, 1825, 1095, 365, 180, 90, 30]


def test_compute_performance_skips_failing_periods(rising_bars) -> None:
    source = InMemoryBarSource({("UP", "1d"): rising_bars})
    # the 1M window holds 30 bars, one short of the minimum
    now = T0 + timedelta(days=99, hours=12)
    rows = compute_performance(source, "UP", "1d", trend_params(), now=now)

    keys = [r.period_key for r in rows]
    assert "RECENT_1M" not in keys
    assert keys[:4] == ["SINCE_2021", "RECENT_5Y", "RECENT_3Y", "RECENT_1Y"]
    assert len(rows) == 6

    since = rows[0]
    assert since.total_trades == 0
    assert since.unrealized_direction is Direction.LONG
    assert since.unrealized_pnl_pct > 0
    assert since.end == now
    assert since.period_label == "Since 2021"


def test_all_periods_fail_quietly() -> None:
    rows = compute_performance(InMemoryBarSource(), "NONE", "1d", now=T0)
    assert rows == []


def test_submit_performance_runs_on_batch_pool(rising_bars) -> None:
    source = InMemoryBarSource({("UP", "1d"): rising_bars})
    now = T0 + timedelta(days=99, hours=12)
    with BacktestJobService(source, batch=ExecutorConfig(max_workers=1, queue_capacity=1)) as service:
        rows = service.submit_performance("UP", "1d", trend_params(), now=now).result(timeout=60)
    assert {r.period_key for r in rows} >= {"SINCE_2021", "RECENT_3M"}
