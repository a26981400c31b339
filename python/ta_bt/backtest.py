"""Backtest runner utilities."""

from __future__ import annotations

import json
import logging
from dataclasses import asdict
from datetime import datetime
from decimal import Decimal
from enum import Enum
from pathlib import Path
from typing import Any, Optional, Sequence

import pandas as pd

from .config import AcceptancePolicy, IntervalParams, RunMode, StrategyParameters
from .data_manager import IndicatorEngine
from .data_provider import BarSource, validate_bars
from .report import BacktestReport, build_report
from .strategy import StrategyEngine
from .trader import PositionSimulator
from .types import Bar

logger = logging.getLogger(__name__)


def run_backtest(
    bars: Sequence[Bar],
    params: StrategyParameters,
    symbol: str,
    interval: str,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    mode: RunMode = RunMode.STANDARD,
    policy: AcceptancePolicy = AcceptancePolicy(),
) -> BacktestReport:
    """Run one backtest over an already loaded bar series.

    ``start`` / ``end`` only label the report and drive the annualized
    return; they default to the first / last bar open time. Raises a
    ``BacktestError`` subclass on invalid input, never returns a partial
    report.
    """
    interval_params = IntervalParams.from_string(interval)
    params.validate()

    bars = tuple(bars)
    validate_bars(bars, params.indicators.min_bars)

    start = start if start is not None else bars[0].open_time
    end = end if end is not None else bars[-1].open_time
    logger.info(f"[backtest] {symbol} {interval}: {len(bars)} bars ({start.isoformat()} -> {end.isoformat()})")

    # fresh engine/strategy per run; nothing is shared between runs
    engine = IndicatorEngine(bars, params.indicators)
    strategy = StrategyEngine(params, interval_params)
    sim = PositionSimulator(engine, strategy, params, interval_params, mode=mode)
    result = sim.run()

    return build_report(
        symbol=symbol,
        interval=interval_params,
        start=start,
        end=end,
        total_bars=len(bars),
        trades=result.trades,
        equity_curve=result.equity_curve,
        initial_capital=result.initial_capital,
        final_capital=result.final_capital,
        policy=policy,
        unrealized_pnl_pct=result.unrealized_pnl_pct,
        unrealized_direction=result.unrealized_direction,
    )


def run_from_source(
    source: BarSource,
    symbol: str,
    interval: str,
    start: datetime,
    end: datetime,
    params: StrategyParameters = StrategyParameters(),
    mode: RunMode = RunMode.STANDARD,
    policy: AcceptancePolicy = AcceptancePolicy(),
) -> BacktestReport:
    """Load bars from ``source`` then run."""
    IntervalParams.from_string(interval)
    bars = source.load(symbol, interval, start, end)
    return run_backtest(bars, params, symbol, interval, start=start, end=end, mode=mode, policy=policy)


def _json_safe(value: Any) -> Any:
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, dict):
        return {k: _json_safe(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_json_safe(v) for v in value]
    return value


def report_to_dict(report: BacktestReport, include_series: bool = True) -> dict[str, Any]:
    """JSON-safe dict: Decimals as strings, datetimes as ISO-8601."""
    d = asdict(report)
    if not include_series:
        d.pop("trades")
        d.pop("equity_curve")
    return _json_safe(d)


def export_report(report: BacktestReport, output_dir: str | Path = "outputs") -> dict[str, Path]:
    """Write equity / trades CSVs and the report JSON."""
    out_dir = Path(output_dir)
    out_dir.mkdir(parents=True, exist_ok=True)
    tag = report.symbol.replace(".", "_").replace("/", "_")

    eq = pd.DataFrame(
        [(p.timestamp, float(p.equity)) for p in report.equity_curve],
        columns=["Date", "Equity"],
    ).set_index("Date")
    trades = pd.DataFrame(
        [_json_safe(asdict(t)) for t in report.trades],
        columns=[
            "trade_number", "direction", "entry_time", "exit_time", "entry_price",
            "exit_price", "pnl", "return_pct", "exit_reason", "holding_bars",
        ],
    )

    eq_path = out_dir / f"equity_{tag}.csv"
    tr_path = out_dir / f"trades_{tag}.csv"
    rp_path = out_dir / f"report_{tag}.json"
    eq.to_csv(eq_path, encoding="utf-8")
    trades.to_csv(tr_path, index=False, encoding="utf-8")
    with open(rp_path, "w", encoding="utf-8") as f:
        json.dump(report_to_dict(report, include_series=False), f, indent=2)

    return {"equity": eq_path, "trades": tr_path, "report": rp_path}
