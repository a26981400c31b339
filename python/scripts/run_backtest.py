from __future__ import annotations

import argparse
import json
import logging

import pandas as pd

from ta_bt.backtest import export_report, run_from_source
from ta_bt.config import RunMode, StrategyParameters
from ta_bt.data_provider import CsvBarSource


def load_params(path: str | None) -> StrategyParameters:
    """Strategy-template JSON (flat camelCase keys) -> StrategyParameters."""
    if not path:
        return StrategyParameters()
    with open(path, "r", encoding="utf-8") as f:
        return StrategyParameters.from_params_dict(json.load(f))


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--csv", type=str, required=True, help="OHLCV CSV file, or a directory of <SYMBOL>_<interval>.csv files.")
    p.add_argument("--symbol", type=str, default="BTCUSDT")
    p.add_argument("--interval", type=str, default="1h", help="5m, 15m, 1h, 4h or 1d")
    p.add_argument("--start", type=str, default="2021-01-01")
    p.add_argument("--end", type=str, default="2024-12-31")
    p.add_argument("--params", type=str, default=None, help="Strategy template JSON (emaShort, stopLossPct, ...).")
    p.add_argument("--mode", type=str, default="STANDARD", help='"STANDARD" or "UNREALIZED"')
    p.add_argument("--output_dir", type=str, default="outputs")
    p.add_argument("--log_level", type=str, default="INFO")
    args = p.parse_args()

    logging.basicConfig(level=args.log_level.upper(), format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    report = run_from_source(
        CsvBarSource(args.csv),
        symbol=args.symbol,
        interval=args.interval,
        start=pd.Timestamp(args.start, tz="UTC").to_pydatetime(),
        end=pd.Timestamp(args.end, tz="UTC").to_pydatetime(),
        params=load_params(args.params),
        mode=RunMode(args.mode.upper()),
    )

    paths = export_report(report, args.output_dir)
    print(paths["equity"])
    print(paths["trades"])
    print(paths["report"])


if __name__ == "__main__":
    main()
