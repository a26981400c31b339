"""Performance metrics.

Inputs are Decimal values from the simulator; outputs are Decimals at a
fixed scale. Degenerate inputs (no trades, flat curve, zero span) return a
documented sentinel instead of raising.
"""

from __future__ import annotations

import math
from datetime import datetime
from decimal import Decimal
from typing import Sequence

import numpy as np

from .config import IntervalParams
from .fixed_point import CASH_SCALE, METRIC_SCALE, RATIO_SCALE, ZERO, div, quantize, to_decimal
from .types import ClosedTrade, EquityCurvePoint

# profit factor when there are no losing trades
PROFIT_FACTOR_NO_LOSSES = Decimal(999)


def win_rate(trades: Sequence[ClosedTrade]) -> Decimal:
    if not trades:
        return quantize(ZERO, METRIC_SCALE)
    wins = sum(1 for t in trades if t.pnl > ZERO)
    return div(Decimal(wins), Decimal(len(trades)), METRIC_SCALE)


def total_return(initial: Decimal, final: Decimal) -> Decimal:
    return div(final - initial, initial, RATIO_SCALE)


def annualized_return(initial: Decimal, final: Decimal, start: datetime, end: datetime) -> Decimal:
    """Compound annual return over calendar days (whole days, truncated)."""
    days = (end - start).days
    if days <= 0 or final <= ZERO or initial <= ZERO:
        return quantize(ZERO, METRIC_SCALE)
    ratio = float(final) / float(initial)
    return to_decimal(ratio ** (365.0 / days) - 1.0, METRIC_SCALE)


def max_drawdown(curve: Sequence[EquityCurvePoint]) -> Decimal:
    """Largest peak-to-trough decline as a negative fraction (0 when none)."""
    if not curve:
        return quantize(ZERO, METRIC_SCALE)
    peak = curve[0].equity
    worst = ZERO
    for p in curve:
        if p.equity > peak:
            peak = p.equity
        if peak <= ZERO:
            continue
        dd = div(p.equity - peak, peak, RATIO_SCALE)
        if dd < worst:
            worst = dd
    return quantize(worst, METRIC_SCALE)


def sharpe_ratio(curve: Sequence[EquityCurvePoint], interval: IntervalParams, risk_free_rate: float = 0.04) -> Decimal:
    """Annualized Sharpe over per-sample returns of the equity curve.

    Uses the population standard deviation; 0 for fewer than two points or
    zero variance.
    """
    if len(curve) < 2:
        return quantize(ZERO, METRIC_SCALE)
    x = np.array([float(p.equity) for p in curve], dtype=float)
    prev = x[:-1]
    curr = x[1:]
    mask = prev > 0
    if not mask.any():
        return quantize(ZERO, METRIC_SCALE)
    rets = (curr[mask] - prev[mask]) / prev[mask]

    avg = float(np.mean(rets))
    std = float(np.sqrt(np.mean((rets - avg) ** 2)))
    if std == 0.0 or not math.isfinite(std):
        return quantize(ZERO, METRIC_SCALE)

    rf_per_bar = risk_free_rate / interval.bars_per_year
    return to_decimal((avg - rf_per_bar) / std * interval.sharpe_annualizer, METRIC_SCALE)


def gross_profit(trades: Sequence[ClosedTrade]) -> Decimal:
    return sum((t.pnl for t in trades if t.pnl > ZERO), ZERO)


def gross_loss(trades: Sequence[ClosedTrade]) -> Decimal:
    """Sum of losing P&L as a positive amount."""
    return sum((-t.pnl for t in trades if t.pnl < ZERO), ZERO)


def profit_factor(trades: Sequence[ClosedTrade]) -> Decimal:
    losses = gross_loss(trades)
    if losses <= ZERO:
        return PROFIT_FACTOR_NO_LOSSES
    return div(gross_profit(trades), losses, METRIC_SCALE)


def average_win(trades: Sequence[ClosedTrade]) -> Decimal:
    wins = [t for t in trades if t.pnl > ZERO]
    if not wins:
        return quantize(ZERO, CASH_SCALE)
    return div(gross_profit(wins), Decimal(len(wins)), CASH_SCALE)


def average_loss(trades: Sequence[ClosedTrade]) -> Decimal:
    """Mean losing P&L as a positive amount."""
    losses = [t for t in trades if t.pnl < ZERO]
    if not losses:
        return quantize(ZERO, CASH_SCALE)
    return div(gross_loss(losses), Decimal(len(losses)), CASH_SCALE)


def max_single_loss_pct(trades: Sequence[ClosedTrade]) -> Decimal:
    """Worst per-trade return (0 without trades)."""
    if not trades:
        return quantize(ZERO, RATIO_SCALE)
    return min(t.return_pct for t in trades)


def max_consecutive_losses(trades: Sequence[ClosedTrade]) -> int:
    best = cur = 0
    for t in trades:
        if t.pnl < ZERO:
            cur += 1
            best = max(best, cur)
        else:
            cur = 0
    return best
