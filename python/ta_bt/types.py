"""Shared types for the backtester.

The guiding principle is to keep the runtime objects small and explicit.
Everything here is immutable except ``OpenPosition``, which only the
simulator mutates and only while the trade is open.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Optional

from .fixed_point import ZERO


class Direction(str, Enum):
    LONG = "LONG"
    SHORT = "SHORT"


class Action(str, Enum):
    HOLD = "HOLD"
    LONG_ENTRY = "LONG_ENTRY"
    SHORT_ENTRY = "SHORT_ENTRY"
    LONG_EXIT = "LONG_EXIT"
    SHORT_EXIT = "SHORT_EXIT"


class ExitReason(str, Enum):
    STOP_LOSS = "STOP_LOSS"
    TRAILING_STOP = "TRAILING_STOP"
    MAX_HOLDING = "MAX_HOLDING"
    RSI_EXTREME = "RSI_EXTREME"
    TIME_STOP = "TIME_STOP"
    SIGNAL_REVERSAL = "SIGNAL_REVERSAL"
    END_OF_RUN = "END_OF_RUN"


@dataclass(frozen=True)
class Bar:
    """OHLCV bar.

    Prices are Decimals at 8 fractional digits; ``open_time`` is strictly
    increasing along a series.
    """

    open_time: datetime
    close_time: datetime
    open: Decimal
    high: Decimal
    low: Decimal
    close: Decimal
    volume: Decimal


@dataclass(frozen=True)
class IndicatorSnapshot:
    """Indicator values at one bar index.

    Donchian levels come from the previous bar; cross flags compare the
    previous bar with this one.
    """

    index: int
    timestamp: datetime
    close_price: Decimal

    ema_short: Decimal
    ema_long: Decimal
    rsi: Decimal
    macd_line: Decimal
    macd_signal: Decimal
    macd_histogram: Decimal
    adx: Decimal

    donchian_high: Decimal
    donchian_low: Decimal
    donchian_exit_high: Decimal
    donchian_exit_low: Decimal

    ema_golden_cross: bool
    ema_death_cross: bool
    ema_trend_bullish: bool
    macd_bullish_cross: bool
    macd_bearish_cross: bool


@dataclass(frozen=True)
class Decision:
    """Output of the decision engine.

    ``reason`` is set only for the exit actions.
    """

    action: Action
    reason: Optional[ExitReason] = None

    @property
    def is_entry(self) -> bool:
        return self.action in (Action.LONG_ENTRY, Action.SHORT_ENTRY)

    @property
    def is_exit(self) -> bool:
        return self.action in (Action.LONG_EXIT, Action.SHORT_EXIT)

    @property
    def direction(self) -> Optional[Direction]:
        if self.action in (Action.LONG_ENTRY, Action.LONG_EXIT):
            return Direction.LONG
        if self.action in (Action.SHORT_ENTRY, Action.SHORT_EXIT):
            return Direction.SHORT
        return None

    @classmethod
    def hold(cls) -> "Decision":
        return cls(Action.HOLD)

    @classmethod
    def enter(cls, direction: Direction) -> "Decision":
        return cls(Action.LONG_ENTRY if direction is Direction.LONG else Action.SHORT_ENTRY)

    @classmethod
    def exit(cls, direction: Direction, reason: ExitReason) -> "Decision":
        action = Action.LONG_EXIT if direction is Direction.LONG else Action.SHORT_EXIT
        return cls(action, reason)


@dataclass
class OpenPosition:
    """The single open position of a run (simulator-owned)."""

    direction: Direction
    entry_price: Decimal
    entry_time: datetime
    entry_index: int
    quantity: Decimal
    capital_committed: Decimal
    stop_loss_price: Decimal
    peak_move_pct: Decimal = ZERO

    @property
    def is_long(self) -> bool:
        return self.direction is Direction.LONG


@dataclass(frozen=True)
class ClosedTrade:
    """A completed round trip."""

    trade_number: int
    direction: Direction
    entry_time: datetime
    exit_time: datetime
    entry_price: Decimal
    exit_price: Decimal
    pnl: Decimal  # 2 digits
    return_pct: Decimal  # pnl / committed capital, 6 digits
    exit_reason: ExitReason
    holding_bars: int


@dataclass(frozen=True)
class EquityCurvePoint:
    timestamp: datetime
    equity: Decimal
