from __future__ import annotations

import argparse
import logging

import pandas as pd

from ta_bt.data_provider import CsvBarSource
from ta_bt.performance import compute_performance
from run_backtest import load_params


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--csv", type=str, required=True, help="OHLCV CSV file, or a directory of <SYMBOL>_<interval>.csv files.")
    p.add_argument("--symbol", type=str, default="BTCUSDT")
    p.add_argument("--interval", type=str, default="1h")
    p.add_argument("--now", type=str, default=None, help="End of every period (default: current UTC time).")
    p.add_argument("--params", type=str, default=None, help="Strategy template JSON.")
    p.add_argument("--log_level", type=str, default="WARNING")
    args = p.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    now = pd.Timestamp(args.now, tz="UTC").to_pydatetime() if args.now else None
    rows = compute_performance(
        CsvBarSource(args.csv),
        symbol=args.symbol,
        interval=args.interval,
        params=load_params(args.params),
        now=now,
    )

    df = pd.DataFrame(
        [
            {
                "Period": m.period_key,
                "Trades": m.total_trades,
                "WinRate": float(m.win_rate),
                "TotalReturn": float(m.total_return),
                "Annualized": float(m.annualized_return),
                "MaxDD": float(m.max_drawdown),
                "Sharpe": float(m.sharpe_ratio),
                "Open": m.unrealized_direction.value if m.unrealized_direction else "",
                "OpenPnlPct": float(m.unrealized_pnl_pct) if m.unrealized_pnl_pct is not None else None,
            }
            for m in rows
        ]
    )
    print(df.to_string(index=False))


if __name__ == "__main__":
    main()
