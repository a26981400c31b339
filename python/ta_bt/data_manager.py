"""Data manager: computes indicators once and serves per-bar snapshots.

All indicator columns are derived in ``_compute_indicators`` when the engine
is built; ``snapshot(i)`` is then an O(1) row lookup plus rounding. Donchian
levels are read at row i-1 and cross flags compare rows i-1 and i, so the
snapshot for bar i only uses bars <= i.
"""

from __future__ import annotations

from datetime import datetime
from typing import Sequence

import numpy as np

from .config import IndicatorConfig
from .data_provider import bars_to_frame
from .errors import InsufficientDataError
from .fixed_point import PRICE_SCALE, RATIO_SCALE, to_decimal
from .indicators import adx as adx_func
from .indicators import donchian as donchian_func
from .indicators import ema as ema_func
from .indicators import macd as macd_func
from .indicators import rsi as rsi_func
from .types import Bar, IndicatorSnapshot

_PRICE_COLUMNS = (
    "emaShort", "emaLong", "macdLine", "macdSignal", "macdHist",
    "donchianHigh", "donchianLow", "donchianExitHigh", "donchianExitLow",
)
_RATIO_COLUMNS = ("rsi", "adx")


class IndicatorEngine:
    """Holds a bar series and its indicator columns for a single run."""

    def __init__(self, bars: Sequence[Bar], ind_cfg: IndicatorConfig):
        self.bars = tuple(bars)
        self.ind_cfg = ind_cfg
        self.df = bars_to_frame(self.bars)

        self._compute_indicators()

    @property
    def warmup(self) -> int:
        return self.ind_cfg.warmup_bars

    def _compute_indicators(self) -> None:
        df = self.df
        cfg = self.ind_cfg
        close = df["Close"]

        df["emaShort"] = ema_func(close, cfg.ema_short)
        df["emaLong"] = ema_func(close, cfg.ema_long)
        df["rsi"] = rsi_func(close, cfg.rsi_period)

        macd_line, macd_sig, macd_hist = macd_func(close, cfg.macd_fast, cfg.macd_slow, cfg.macd_signal)
        df["macdLine"] = macd_line
        df["macdSignal"] = macd_sig
        df["macdHist"] = macd_hist

        df["adx"] = adx_func(df, cfg.rsi_period)

        # Donchian channels lagged one bar: row i holds the channel of rows
        # [i - window, i - 1]. Row 0 falls back to its own range.
        entry_hi, entry_lo = donchian_func(df, cfg.donchian_entry)
        exit_hi, exit_lo = donchian_func(df, cfg.donchian_exit)
        df["donchianHigh"] = entry_hi.shift(1).fillna(entry_hi)
        df["donchianLow"] = entry_lo.shift(1).fillna(entry_lo)
        df["donchianExitHigh"] = exit_hi.shift(1).fillna(exit_hi)
        df["donchianExitLow"] = exit_lo.shift(1).fillna(exit_lo)

        # cross flags: previous bar vs this bar; row 0 never crosses
        ema_s = df["emaShort"].to_numpy()
        ema_l = df["emaLong"].to_numpy()
        hist = df["macdHist"].to_numpy()
        prev_s = np.concatenate(([np.nan], ema_s[:-1]))
        prev_l = np.concatenate(([np.nan], ema_l[:-1]))
        prev_h = np.concatenate(([hist[0]], hist[:-1])) if len(hist) else hist

        df["goldenCross"] = (prev_s < prev_l) & (ema_s >= ema_l)
        df["deathCross"] = (prev_s > prev_l) & (ema_s <= ema_l)
        df["trendBullish"] = ema_s >= ema_l
        df["macdBullCross"] = (prev_h <= 0.0) & (hist > 0.0)
        df["macdBearCross"] = (prev_h >= 0.0) & (hist < 0.0)

        self._columns = {name: df[name].to_numpy() for name in df.columns}

    def __len__(self) -> int:
        return len(self.bars)

    def get_bar(self, i: int) -> Bar:
        return self.bars[i]

    def get_bar_timestamp(self, i: int) -> datetime:
        return self.bars[i].open_time

    def snapshot(self, i: int) -> IndicatorSnapshot:
        """Indicator snapshot for bar ``i`` (requires i >= warm-up)."""
        if i < self.warmup:
            raise InsufficientDataError(
                f"Indicators need {self.warmup} warm-up bars; index {i} is inside the warm-up window"
            )
        if i >= len(self.bars):
            raise IndexError(f"bar index {i} out of range for {len(self.bars)} bars")

        col = self._columns
        price = {name: to_decimal(float(col[name][i]), PRICE_SCALE) for name in _PRICE_COLUMNS}
        ratio = {name: to_decimal(float(col[name][i]), RATIO_SCALE) for name in _RATIO_COLUMNS}
        bar = self.bars[i]

        return IndicatorSnapshot(
            index=i,
            timestamp=bar.open_time,
            close_price=bar.close,
            ema_short=price["emaShort"],
            ema_long=price["emaLong"],
            rsi=ratio["rsi"],
            macd_line=price["macdLine"],
            macd_signal=price["macdSignal"],
            macd_histogram=price["macdHist"],
            adx=ratio["adx"],
            donchian_high=price["donchianHigh"],
            donchian_low=price["donchianLow"],
            donchian_exit_high=price["donchianExitHigh"],
            donchian_exit_low=price["donchianExitLow"],
            ema_golden_cross=bool(col["goldenCross"][i]),
            ema_death_cross=bool(col["deathCross"][i]),
            ema_trend_bullish=bool(col["trendBullish"][i]),
            macd_bullish_cross=bool(col["macdBullCross"][i]),
            macd_bearish_cross=bool(col["macdBearCross"][i]),
        )


def compute_snapshot(bars: Sequence[Bar], ind_cfg: IndicatorConfig, index: int) -> IndicatorSnapshot:
    """One-off snapshot (builds the full indicator set; not for loops)."""
    return IndicatorEngine(bars, ind_cfg).snapshot(index)
