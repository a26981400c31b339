"""Per-period performance snapshots for a strategy parameter set.

Each period is an UNREALIZED-mode backtest ending at ``now``: a position
still open at the end is reported as floating P&L instead of being closed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

from .backtest import run_from_source
from .config import RunMode, StrategyParameters
from .data_provider import BarSource
from .types import Direction

logger = logging.getLogger(__name__)

SINCE_2021_START = datetime(2021, 1, 1, tzinfo=timezone.utc)


class PerformancePeriod(Enum):
    # (label, lookback days; None = fixed start)
    SINCE_2021 = ("Since 2021", None)
    RECENT_5Y = ("Last 5 years", 1825)
    RECENT_3Y = ("Last 3 years", 1095)
    RECENT_1Y = ("Last year", 365)
    RECENT_6M = ("Last 6 months", 180)
    RECENT_3M = ("Last 3 months", 90)
    RECENT_1M = ("Last month", 30)

    def __init__(self, label: str, days: Optional[int]):
        self.label = label
        self.days = days

    def start_for(self, now: datetime) -> datetime:
        if self.days is None:
            return SINCE_2021_START
        return now - timedelta(days=self.days)


@dataclass(frozen=True)
class PeriodMetric:
    period_key: str
    period_label: str
    start: datetime
    end: datetime
    win_rate: Decimal
    total_return: Decimal
    annualized_return: Decimal
    max_drawdown: Decimal
    sharpe_ratio: Decimal
    total_trades: int
    unrealized_pnl_pct: Optional[Decimal] = None
    unrealized_direction: Optional[Direction] = None


def compute_performance(
    source: BarSource,
    symbol: str,
    interval: str,
    params: StrategyParameters = StrategyParameters(),
    now: Optional[datetime] = None,
) -> list[PeriodMetric]:
    """Run every period; a failing period is logged and skipped."""
    now = now if now is not None else datetime.now(timezone.utc)
    out: list[PeriodMetric] = []

    for period in PerformancePeriod:
        start = period.start_for(now)
        try:
            report = run_from_source(source, symbol, interval, start, now, params=params, mode=RunMode.UNREALIZED)
        except Exception as e:
            logger.warning(f"[perf] {symbol} {interval} period {period.name} failed: {e}")
            continue

        out.append(
            PeriodMetric(
                period_key=period.name,
                period_label=period.label,
                start=start,
                end=now,
                win_rate=report.win_rate,
                total_return=report.total_return,
                annualized_return=report.annualized_return,
                max_drawdown=report.max_drawdown,
                sharpe_ratio=report.sharpe_ratio,
                total_trades=report.total_trades,
                unrealized_pnl_pct=report.unrealized_pnl_pct,
                unrealized_direction=report.unrealized_direction,
            )
        )

    logger.info(f"[perf] {symbol} {interval}: {len(out)}/{len(PerformancePeriod)} periods computed")
    return out
