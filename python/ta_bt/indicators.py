"""Indicator computation utilities.

All indicators are computed once over the whole CLOSE/HIGH/LOW series with
recursive (causal) definitions, so the value at row i depends only on rows
<= i. Callers that need a one-bar lag (Donchian) read row i-1 themselves.
"""

from __future__ import annotations

import numpy as np
import pandas as pd


def ema(series: pd.Series, span: int) -> pd.Series:
    """Exponential moving average with a stable definition.

    Uses pandas ewm with adjust=False (recursive form), seeded at the first
    sample, so there is no NaN warm-up segment.
    """
    if span <= 0:
        raise ValueError("span must be positive")
    return series.ewm(span=span, adjust=False, min_periods=1).mean()


def wilder(series: pd.Series, period: int) -> pd.Series:
    """Wilder's smoothing (alpha = 1/period), seeded at the first sample."""
    if period <= 0:
        raise ValueError("period must be positive")
    return series.ewm(alpha=1.0 / period, adjust=False, min_periods=1).mean()


def true_range(df: pd.DataFrame) -> pd.Series:
    high = df["High"].astype(float)
    low = df["Low"].astype(float)
    prev_close = df["Close"].astype(float).shift(1)
    tr = pd.concat(
        [
            (high - low).abs(),
            (high - prev_close).abs(),
            (low - prev_close).abs(),
        ],
        axis=1,
    ).max(axis=1)
    # first bar has no previous close: plain high-low range
    return tr.fillna(high - low)


def rsi(close: pd.Series, period: int) -> pd.Series:
    """Wilder RSI.

    When the average loss is zero the RSI is 100 if there were gains and 0 if
    the series has not moved at all.
    """
    delta = close.astype(float).diff().fillna(0.0)
    avg_gain = wilder(delta.clip(lower=0.0), period)
    avg_loss = wilder((-delta).clip(lower=0.0), period)

    gain = avg_gain.to_numpy()
    loss = avg_loss.to_numpy()
    with np.errstate(divide="ignore", invalid="ignore"):
        rs = gain / loss
        out = 100.0 - 100.0 / (1.0 + rs)
    out = np.where(loss == 0.0, np.where(gain > 0.0, 100.0, 0.0), out)
    return pd.Series(out, index=close.index)


def macd(close: pd.Series, fast: int, slow: int, signal: int) -> tuple[pd.Series, pd.Series, pd.Series]:
    """MACD line, signal line, and histogram."""
    close = close.astype(float)
    macd_line = ema(close, fast) - ema(close, slow)
    signal_line = ema(macd_line, signal)
    hist = macd_line - signal_line
    return macd_line, signal_line, hist


def adx(df: pd.DataFrame, period: int) -> pd.Series:
    """Average Directional Index (Wilder).

    Directional indicators are 0 where the smoothed true range is 0, and DX
    is 0 where both indicators are 0, so a flat series yields ADX = 0.
    """
    high = df["High"].astype(float)
    low = df["Low"].astype(float)

    up_move = (high - high.shift(1)).fillna(0.0)
    down_move = (low.shift(1) - low).fillna(0.0)
    plus_dm = pd.Series(np.where((up_move > down_move) & (up_move > 0), up_move, 0.0), index=df.index)
    minus_dm = pd.Series(np.where((down_move > up_move) & (down_move > 0), down_move, 0.0), index=df.index)

    atr_s = wilder(true_range(df), period).to_numpy()
    plus_s = wilder(plus_dm, period).to_numpy()
    minus_s = wilder(minus_dm, period).to_numpy()

    with np.errstate(divide="ignore", invalid="ignore"):
        plus_di = np.where(atr_s > 0, 100.0 * plus_s / atr_s, 0.0)
        minus_di = np.where(atr_s > 0, 100.0 * minus_s / atr_s, 0.0)
        di_sum = plus_di + minus_di
        dx = np.where(di_sum > 0, 100.0 * np.abs(plus_di - minus_di) / di_sum, 0.0)

    return wilder(pd.Series(dx, index=df.index), period)


def donchian(df: pd.DataFrame, window: int) -> tuple[pd.Series, pd.Series]:
    """Rolling highest-high / lowest-low over ``window`` bars ending at each row.

    Partial windows are used at the start of the series.
    """
    if window <= 0:
        raise ValueError("window must be positive")
    high = df["High"].astype(float).rolling(window=window, min_periods=1).max()
    low = df["Low"].astype(float).rolling(window=window, min_periods=1).min()
    return high, low
