"""Backtest report assembly."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Optional, Sequence

from . import metrics
from .config import AcceptancePolicy, IntervalParams
from .fixed_point import CASH_SCALE, ZERO, pct, quantize
from .types import ClosedTrade, Direction, EquityCurvePoint

logger = logging.getLogger(__name__)

_HUNDRED = Decimal(100)


@dataclass(frozen=True)
class BacktestReport:
    symbol: str
    interval: str
    start: datetime
    end: datetime
    total_bars: int

    total_trades: int
    winning_trades: int
    losing_trades: int
    break_even_trades: int
    win_rate: Decimal

    total_return: Decimal
    annualized_return: Decimal
    max_drawdown: Decimal
    sharpe_ratio: Decimal
    profit_factor: Decimal
    average_win: Decimal
    average_loss: Decimal
    max_single_loss_pct: Decimal
    max_consecutive_losses: int

    initial_capital: Decimal
    final_capital: Decimal

    trades: tuple[ClosedTrade, ...]
    equity_curve: tuple[EquityCurvePoint, ...]
    passed: bool

    # set only for unrealized-mode runs with a position still open
    unrealized_pnl_pct: Optional[Decimal] = None
    unrealized_direction: Optional[Direction] = None


def is_passed(
    annualized_return: Decimal,
    max_single_loss_pct: Decimal,
    max_drawdown: Decimal,
    policy: AcceptancePolicy,
) -> bool:
    return (
        annualized_return >= pct(policy.min_annualized_return)
        and max_single_loss_pct >= pct(policy.max_single_loss)
        and abs(max_drawdown) <= pct(policy.max_drawdown)
    )


def build_report(
    symbol: str,
    interval: IntervalParams,
    start: datetime,
    end: datetime,
    total_bars: int,
    trades: Sequence[ClosedTrade],
    equity_curve: Sequence[EquityCurvePoint],
    initial_capital: Decimal,
    final_capital: Decimal,
    policy: AcceptancePolicy = AcceptancePolicy(),
    unrealized_pnl_pct: Optional[Decimal] = None,
    unrealized_direction: Optional[Direction] = None,
) -> BacktestReport:
    """Compute all metrics and log a summary block."""
    trades = tuple(trades)
    equity_curve = tuple(equity_curve)
    final_capital = quantize(final_capital, CASH_SCALE)

    total = len(trades)
    wins = sum(1 for t in trades if t.pnl > ZERO)
    losses = sum(1 for t in trades if t.pnl < ZERO)

    win_rate = metrics.win_rate(trades)
    total_return = metrics.total_return(initial_capital, final_capital)
    annualized = metrics.annualized_return(initial_capital, final_capital, start, end)
    max_dd = metrics.max_drawdown(equity_curve)
    sharpe = metrics.sharpe_ratio(equity_curve, interval, policy.risk_free_rate)
    pf = metrics.profit_factor(trades)
    avg_win = metrics.average_win(trades)
    avg_loss = metrics.average_loss(trades)
    worst = metrics.max_single_loss_pct(trades)
    consec = metrics.max_consecutive_losses(trades)
    passed = is_passed(annualized, worst, max_dd, policy)

    logger.info("============== Backtest Report ==============")
    logger.info(f"Period:       {start.isoformat()} -> {end.isoformat()}")
    logger.info(f"Symbol:       {symbol} ({interval.interval})")
    logger.info(f"Trades:       {total} (W:{wins} L:{losses}), WinRate: {win_rate * _HUNDRED}%")
    logger.info(f"Return:       Total {total_return * _HUNDRED}%, Annualized {annualized * _HUNDRED}%")
    logger.info(f"Risk:         MaxDD {max_dd * _HUNDRED}%, MaxSingleLoss {worst * _HUNDRED}%, Sharpe {sharpe}")
    logger.info(f"Capital:      {initial_capital} -> {final_capital}")
    logger.info(f"ProfitFactor: {pf}, AvgWin: {avg_win}, AvgLoss: {avg_loss}")
    if unrealized_direction is not None:
        logger.info(f"Open:         {unrealized_direction.value} {unrealized_pnl_pct * _HUNDRED}%")
    logger.info(f"PASSED:       {passed}")
    logger.info("=============================================")

    return BacktestReport(
        symbol=symbol,
        interval=interval.interval,
        start=start,
        end=end,
        total_bars=total_bars,
        total_trades=total,
        winning_trades=wins,
        losing_trades=losses,
        break_even_trades=total - wins - losses,
        win_rate=win_rate,
        total_return=total_return,
        annualized_return=annualized,
        max_drawdown=max_dd,
        sharpe_ratio=sharpe,
        profit_factor=pf,
        average_win=avg_win,
        average_loss=avg_loss,
        max_single_loss_pct=worst,
        max_consecutive_losses=consec,
        initial_capital=initial_capital,
        final_capital=final_capital,
        trades=trades,
        equity_curve=equity_curve,
        passed=passed,
        unrealized_pnl_pct=unrealized_pnl_pct,
        unrealized_direction=unrealized_direction,
    )
