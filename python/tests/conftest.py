"""Shared bar factories for the backtester tests."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

import numpy as np
import pytest

from ta_bt.config import RiskConfig, RsiConfig, StrategyParameters
from ta_bt.fixed_point import PRICE_SCALE, to_decimal
from ta_bt.types import Bar, Decision, Direction

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)
DAY = timedelta(days=1)


def make_bar(
    t: datetime,
    close: float,
    high: Optional[float] = None,
    low: Optional[float] = None,
    open_: Optional[float] = None,
    step: timedelta = DAY,
) -> Bar:
    return Bar(
        open_time=t,
        close_time=t + step - timedelta(milliseconds=1),
        open=to_decimal(close if open_ is None else open_, PRICE_SCALE),
        high=to_decimal(close if high is None else high, PRICE_SCALE),
        low=to_decimal(close if low is None else low, PRICE_SCALE),
        close=to_decimal(close, PRICE_SCALE),
        volume=to_decimal(1.0, PRICE_SCALE),
    )


def make_bars(closes: Sequence[float], spread: float = 0.0, start: datetime = T0, step: timedelta = DAY) -> list[Bar]:
    """Bars with open == close and high/low at close +/- spread."""
    return [
        make_bar(start + i * step, c, high=c + spread, low=c - spread, step=step)
        for i, c in enumerate(closes)
    ]


def flat_bars(n: int, price: float = 100.0) -> list[Bar]:
    return make_bars([price] * n)


def decline_then_rise_closes() -> list[float]:
    """60 bars falling 0.5/bar from 100, then 40 bars rising 1/bar."""
    down = [100.0 - 0.5 * t for t in range(60)]
    up = [down[-1] + k for k in range(1, 41)]
    return down + up


def random_walk_bars(n: int = 400, seed: int = 7) -> list[Bar]:
    rng = np.random.RandomState(seed)
    closes = 100.0 * np.exp(np.cumsum(rng.normal(0.0, 0.02, size=n)))
    wick = np.abs(rng.normal(0.0, 0.01, size=n))
    bars = []
    for i, c in enumerate(closes):
        c = round(float(c), 4)
        bars.append(
            make_bar(
                T0 + i * DAY,
                c,
                high=round(c * (1.0 + float(wick[i])), 4),
                low=round(c * (1.0 - float(wick[i])), 4),
            )
        )
    return bars


def trend_params(**risk_overrides) -> StrategyParameters:
    """Parameters that let a trend trade run: wide RSI bands, no RSI exit."""
    risk = dict(max_holding_days=365)
    risk.update(risk_overrides)
    return StrategyParameters(
        risk=RiskConfig(**risk),
        rsi=RsiConfig(long_entry_min=0.0, long_entry_max=100.0, long_exit_extreme=100.0),
    )


class EnterAt:
    """Decision engine stub: enters once at a fixed bar index."""

    def __init__(self, index: int, direction: Direction = Direction.LONG):
        self.index = index
        self.direction = direction

    def evaluate(self, snapshot, position, now) -> Decision:
        if position is None and snapshot.index == self.index:
            return Decision.enter(self.direction)
        return Decision.hold()


@pytest.fixture
def rising_bars() -> list[Bar]:
    return make_bars(decline_then_rise_closes(), spread=0.1)


@pytest.fixture
def walk_bars() -> list[Bar]:
    return random_walk_bars()
