"""
Unit tests for ta_bt.metrics and the report builder.
"""

from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0
from ta_bt import metrics
from ta_bt.config import INTERVALS, AcceptancePolicy
from ta_bt.report import build_report, is_passed
from ta_bt.types import ClosedTrade, Direction, EquityCurvePoint, ExitReason


def build_trade(n: int, pnl: str, ret: str) -> ClosedTrade:
    return ClosedTrade(
        trade_number=n,
        direction=Direction.LONG,
        entry_time=T0 + timedelta(days=n),
        exit_time=T0 + timedelta(days=n, hours=12),
        entry_price=Decimal("100"),
        exit_price=Decimal("100"),
        pnl=Decimal(pnl),
        return_pct=Decimal(ret),
        exit_reason=ExitReason.RSI_EXTREME,
        holding_bars=1,
    )


def curve(*values) -> list[EquityCurvePoint]:
    return [EquityCurvePoint(T0 + timedelta(days=i), Decimal(str(v))) for i, v in enumerate(values)]


def test_annualized_return_one_year() -> None:
    out = metrics.annualized_return(Decimal("1000"), Decimal("1500"), T0, T0 + timedelta(days=365))
    assert out == Decimal("0.5000")


def test_annualized_return_degenerate_spans() -> None:
    assert metrics.annualized_return(Decimal("1000"), Decimal("1500"), T0, T0) == 0
    # partial days are truncated
    assert metrics.annualized_return(Decimal("1000"), Decimal("1500"), T0, T0 + timedelta(hours=23)) == 0
    assert metrics.annualized_return(Decimal("1000"), Decimal("0"), T0, T0 + timedelta(days=10)) == 0


def test_total_return_scale() -> None:
    assert metrics.total_return(Decimal("10000.00"), Decimal("9800.00")) == Decimal("-0.020000")


def test_win_rate_and_counts() -> None:
    trades = [build_trade(1, "10.00", "0.01"), build_trade(2, "-5.00", "-0.005"), build_trade(3, "0.00", "0")]
    assert metrics.win_rate(trades) == Decimal("0.3333")
    assert metrics.win_rate([]) == 0


def test_profit_factor_and_averages() -> None:
    trades = [
        build_trade(1, "30.00", "0.03"),
        build_trade(2, "-10.00", "-0.01"),
        build_trade(3, "10.00", "0.01"),
        build_trade(4, "-10.00", "-0.01"),
    ]
    assert metrics.profit_factor(trades) == Decimal("2.0000")
    assert metrics.average_win(trades) == Decimal("20.00")
    assert metrics.average_loss(trades) == Decimal("10.00")
    assert metrics.max_single_loss_pct(trades) == Decimal("-0.01")


def test_profit_factor_sentinel_without_losses() -> None:
    assert metrics.profit_factor([build_trade(1, "5.00", "0.005")]) == Decimal(999)
    assert metrics.profit_factor([]) == Decimal(999)


def test_max_consecutive_losses() -> None:
    pnls = ["-1", "-1", "2", "-1", "-1", "-1", "0", "-1"]
    trades = [build_trade(i, p, "0") for i, p in enumerate(pnls, start=1)]
    assert metrics.max_consecutive_losses(trades) == 3


def test_max_drawdown_is_negative_fraction() -> None:
    assert metrics.max_drawdown(curve(100, 120, 90, 130, 117)) == Decimal("-0.2500")
    assert metrics.max_drawdown(curve(100, 110, 120)) == 0
    assert metrics.max_drawdown([]) == 0


def test_sharpe_degenerate_cases() -> None:
    iv = INTERVALS["1d"]
    assert metrics.sharpe_ratio(curve(100), iv) == 0
    assert metrics.sharpe_ratio(curve(100, 100, 100), iv) == 0


def test_sharpe_sign_and_scale() -> None:
    iv = INTERVALS["1d"]
    up = metrics.sharpe_ratio(curve(100, 101, 103, 104, 106), iv)
    down = metrics.sharpe_ratio(curve(100, 99, 97, 96, 94), iv)
    assert up > 0 > down
    assert up.as_tuple().exponent == -4


def test_passed_thresholds() -> None:
    policy = AcceptancePolicy()
    assert is_passed(Decimal("0.30"), Decimal("-0.10"), Decimal("-0.30"), policy)
    assert not is_passed(Decimal("0.2999"), Decimal("-0.05"), Decimal("-0.10"), policy)
    assert not is_passed(Decimal("0.50"), Decimal("-0.1001"), Decimal("-0.10"), policy)
    assert not is_passed(Decimal("0.50"), Decimal("-0.05"), Decimal("-0.3001"), policy)


def test_build_report_consistency(caplog) -> None:
    trades = [build_trade(1, "30.00", "0.003"), build_trade(2, "-10.00", "-0.001"), build_trade(3, "0.00", "0")]
    eq = curve(10000, 10030, 10020, 10020)
    with caplog.at_level("INFO", logger="ta_bt.report"):
        report = build_report(
            symbol="BTCUSDT",
            interval=INTERVALS["1d"],
            start=T0,
            end=T0 + timedelta(days=3),
            total_bars=40,
            trades=trades,
            equity_curve=eq,
            initial_capital=Decimal("10000.00"),
            final_capital=Decimal("10020"),
        )
    assert report.total_trades == 3
    assert report.winning_trades + report.losing_trades + report.break_even_trades == report.total_trades
    assert report.break_even_trades == 1
    assert Decimal(0) <= report.win_rate <= Decimal(1)
    assert report.max_drawdown <= 0
    assert report.final_capital == Decimal("10020.00")
    assert report.total_return == Decimal("0.002000")
    assert report.max_consecutive_losses == 1
    assert report.unrealized_direction is None
    assert not report.passed or report.annualized_return >= Decimal("0.30")
    assert "PASSED" in caplog.text


def test_empty_report_sentinels() -> None:
    report = build_report(
        symbol="X",
        interval=INTERVALS["4h"],
        start=T0,
        end=T0 + timedelta(days=30),
        total_bars=50,
        trades=[],
        equity_curve=[],
        initial_capital=Decimal("10000.00"),
        final_capital=Decimal("10000.00"),
    )
    assert report.win_rate == 0
    assert report.profit_factor == Decimal(999)
    assert report.sharpe_ratio == 0
    assert report.max_drawdown == 0
    assert report.average_win == report.average_loss == 0
    assert report.annualized_return == 0
    assert not report.passed


def test_zero_trade_run_can_pass() -> None:
    # zero-trade runs are valid and pass only on the return threshold
    policy = AcceptancePolicy(min_annualized_return=0.0)
    report = build_report(
        symbol="X",
        interval=INTERVALS["1h"],
        start=T0,
        end=T0 + timedelta(days=30),
        total_bars=50,
        trades=[],
        equity_curve=curve(10000, 10000),
        initial_capital=Decimal("10000.00"),
        final_capital=Decimal("10000.00"),
        policy=policy,
    )
    assert report.passed
    assert report.interval == "1h"


@pytest.mark.parametrize("risk_free", [0.0, 0.04])
def test_sharpe_uses_risk_free_rate(risk_free) -> None:
    iv = INTERVALS["1d"]
    base = metrics.sharpe_ratio(curve(100, 101, 100.5, 102), iv, risk_free_rate=0.0)
    out = metrics.sharpe_ratio(curve(100, 101, 100.5, 102), iv, risk_free_rate=risk_free)
    assert out <= base
