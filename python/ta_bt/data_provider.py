"""Bar sources (CSV / in-memory) and the standardized OHLCV schema.

The core never fetches data itself: a run receives a fully loaded bar list.
A source only has to honour ``load(symbol, interval, start, end)`` and return
bars in strictly increasing open-time order.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Iterable, Optional, Protocol, Sequence

import pandas as pd

from .config import IntervalParams
from .errors import BarDataNotFoundError, InsufficientDataError, InvalidBarDataError
from .fixed_point import PRICE_SCALE, ZERO, to_decimal
from .types import Bar

OHLCV_COLUMNS = ["Open", "High", "Low", "Close", "Volume"]


class BarSource(Protocol):
    def load(self, symbol: str, interval: str, start: datetime, end: datetime) -> list[Bar]:
        ...


def _standardize_ohlcv_columns(df: pd.DataFrame) -> pd.DataFrame:
    rename_map = {}
    for col in df.columns:
        c = str(col).strip().lower()
        if c in {"open", "open_price", "openprice"}:
            rename_map[col] = "Open"
        elif c in {"high", "high_price", "highprice"}:
            rename_map[col] = "High"
        elif c in {"low", "low_price", "lowprice"}:
            rename_map[col] = "Low"
        elif c in {"close", "close_price", "closeprice"}:
            rename_map[col] = "Close"
        elif c in {"volume", "vol"}:
            rename_map[col] = "Volume"
        elif c in {"close_time", "closetime"}:
            rename_map[col] = "CloseTime"
    df = df.rename(columns=rename_map).copy()

    missing = [c for c in OHLCV_COLUMNS[:4] if c not in df.columns]
    if missing:
        raise InvalidBarDataError(f"Missing required OHLCV columns: {missing}")
    if "Volume" not in df.columns:
        df["Volume"] = 0.0
    return df


def _as_utc(ts: pd.Timestamp | datetime) -> datetime:
    ts = pd.Timestamp(ts)
    if ts.tzinfo is None:
        ts = ts.tz_localize("UTC")
    return ts.tz_convert("UTC").to_pydatetime()


def frame_to_bars(df: pd.DataFrame, interval: str) -> list[Bar]:
    """Convert an OHLCV frame (datetime index = open time) to Bars.

    ``close_time`` is taken from a CloseTime column when present, otherwise
    derived as open time + bar duration - 1ms.
    """
    params = IntervalParams.from_string(interval)
    duration = timedelta(minutes=params.bar_duration_minutes) - timedelta(milliseconds=1)
    df = _standardize_ohlcv_columns(df)

    bars: list[Bar] = []
    for ts, row in df.iterrows():
        open_time = _as_utc(ts)
        if "CloseTime" in df.columns and pd.notna(row["CloseTime"]):
            close_time = _as_utc(pd.to_datetime(row["CloseTime"]))
        else:
            close_time = open_time + duration
        bars.append(
            Bar(
                open_time=open_time,
                close_time=close_time,
                open=to_decimal(float(row["Open"]), PRICE_SCALE),
                high=to_decimal(float(row["High"]), PRICE_SCALE),
                low=to_decimal(float(row["Low"]), PRICE_SCALE),
                close=to_decimal(float(row["Close"]), PRICE_SCALE),
                volume=to_decimal(float(row["Volume"]), PRICE_SCALE),
            )
        )
    return bars


def bars_to_frame(bars: Sequence[Bar]) -> pd.DataFrame:
    """Float OHLCV frame indexed by open time, for indicator math."""
    return pd.DataFrame(
        {
            "Open": [float(b.open) for b in bars],
            "High": [float(b.high) for b in bars],
            "Low": [float(b.low) for b in bars],
            "Close": [float(b.close) for b in bars],
            "Volume": [float(b.volume) for b in bars],
        },
        index=pd.DatetimeIndex([b.open_time for b in bars], name="Date"),
    )


def validate_bars(bars: Sequence[Bar], min_bars: int = 0) -> None:
    """Check the series invariants a run relies on.

    - at least ``min_bars`` bars
    - strictly increasing open time (no duplicates)
    - all prices positive, low <= high
    """
    if len(bars) < min_bars:
        raise InsufficientDataError(f"Need at least {min_bars} bars, got {len(bars)}")

    prev: Optional[Bar] = None
    for i, bar in enumerate(bars):
        for name in ("open", "high", "low", "close"):
            if getattr(bar, name) <= ZERO:
                raise InvalidBarDataError(f"Bar {i} ({bar.open_time.isoformat()}) has non-positive {name} price")
        if bar.low > bar.high:
            raise InvalidBarDataError(f"Bar {i} ({bar.open_time.isoformat()}) has low above high")
        if prev is not None and bar.open_time <= prev.open_time:
            raise InvalidBarDataError(
                f"Bar open times must be strictly increasing: bar {i} "
                f"({bar.open_time.isoformat()}) follows {prev.open_time.isoformat()}"
            )
        prev = bar


def _in_window(bars: Iterable[Bar], start: Optional[datetime], end: Optional[datetime]) -> list[Bar]:
    out = []
    for b in bars:
        if start is not None and b.open_time < start:
            continue
        if end is not None and b.open_time > end:
            continue
        out.append(b)
    return out


class CsvBarSource:
    """Load bars from CSV files.

    ``root`` is either a single CSV file, or a directory holding one file per
    series named ``<SYMBOL>_<interval>.csv``.
    """

    def __init__(self, root: str | Path, datetime_col: str = "Date"):
        self.root = Path(root)
        self.datetime_col = datetime_col

    def path_for(self, symbol: str, interval: str) -> Path:
        if self.root.is_file():
            return self.root
        return self.root / f"{symbol.upper()}_{interval}.csv"

    def load(
        self,
        symbol: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Bar]:
        path = self.path_for(symbol, interval)
        if not path.exists():
            raise BarDataNotFoundError(f"No bar data for {symbol} {interval}: {path} does not exist")

        df = pd.read_csv(path)
        datetime_col = self.datetime_col
        if datetime_col not in df.columns:
            # try common alternatives
            for cand in ["open_time", "OpenTime", "Datetime", "datetime", "timestamp", "Time", "time"]:
                if cand in df.columns:
                    datetime_col = cand
                    break

        if datetime_col not in df.columns:
            raise InvalidBarDataError(
                f"CSV must contain a datetime column. Tried '{self.datetime_col}' and common aliases."
            )

        col = df[datetime_col]
        if pd.api.types.is_numeric_dtype(col):
            # exchange exports use epoch milliseconds
            df[datetime_col] = pd.to_datetime(col, unit="ms", utc=True)
        else:
            df[datetime_col] = pd.to_datetime(col, utc=True)
        df = df.set_index(datetime_col).sort_index()

        bars = frame_to_bars(df, interval)
        return _in_window(bars, _utc_or_none(start), _utc_or_none(end))


class InMemoryBarSource:
    """Bars held in memory, keyed by (symbol, interval)."""

    def __init__(self, series: Optional[dict[tuple[str, str], Sequence[Bar]]] = None):
        self._series: dict[tuple[str, str], tuple[Bar, ...]] = {}
        for key, bars in (series or {}).items():
            self.put(key[0], key[1], bars)

    def put(self, symbol: str, interval: str, bars: Sequence[Bar]) -> None:
        self._series[(symbol.upper(), interval)] = tuple(bars)

    def load(
        self,
        symbol: str,
        interval: str,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> list[Bar]:
        bars = self._series.get((symbol.upper(), interval), ())
        return _in_window(bars, _utc_or_none(start), _utc_or_none(end))


def _utc_or_none(ts: Optional[datetime]) -> Optional[datetime]:
    if ts is None:
        return None
    if ts.tzinfo is None:
        return ts.replace(tzinfo=timezone.utc)
    return ts.astimezone(timezone.utc)
