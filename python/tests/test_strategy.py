"""
Unit tests for the strategy decision engine.
"""

from dataclasses import replace
from datetime import timedelta
from decimal import Decimal

import pytest

from conftest import T0
from ta_bt.config import INTERVALS, RiskConfig, StrategyParameters
from ta_bt.strategy import StrategyEngine
from ta_bt.types import Action, Direction, ExitReason, IndicatorSnapshot, OpenPosition


def build_snapshot(**overrides) -> IndicatorSnapshot:
    base = dict(
        index=40,
        timestamp=T0,
        close_price=Decimal("100"),
        ema_short=Decimal("101"),
        ema_long=Decimal("100"),
        rsi=Decimal("55"),
        macd_line=Decimal("0.5"),
        macd_signal=Decimal("0.4"),
        macd_histogram=Decimal("0.1"),
        adx=Decimal("30"),
        donchian_high=Decimal("102"),
        donchian_low=Decimal("95"),
        donchian_exit_high=Decimal("101"),
        donchian_exit_low=Decimal("97"),
        ema_golden_cross=False,
        ema_death_cross=False,
        ema_trend_bullish=True,
        macd_bullish_cross=True,
        macd_bearish_cross=False,
    )
    base.update(overrides)
    return IndicatorSnapshot(**base)


def build_position(direction=Direction.LONG, entry_price="100") -> OpenPosition:
    return OpenPosition(
        direction=direction,
        entry_price=Decimal(entry_price),
        entry_time=T0,
        entry_index=40,
        quantity=Decimal("100"),
        capital_committed=Decimal("10000.00"),
        stop_loss_price=Decimal("98"),
    )


@pytest.fixture
def engine() -> StrategyEngine:
    return StrategyEngine(StrategyParameters(), INTERVALS["1h"])


def test_long_entry_on_macd_cross(engine) -> None:
    decision = engine.evaluate(build_snapshot(), None, T0)
    assert decision.action is Action.LONG_ENTRY
    assert decision.direction is Direction.LONG
    assert decision.reason is None


def test_long_entry_on_golden_cross(engine) -> None:
    snap = build_snapshot(macd_bullish_cross=False, ema_golden_cross=True)
    assert engine.evaluate(snap, None, T0).action is Action.LONG_ENTRY


def test_weak_trend_holds(engine) -> None:
    snap = build_snapshot(adx=Decimal("19.999999"))
    assert engine.evaluate(snap, None, T0).action is Action.HOLD


def test_long_needs_bullish_trend_and_rsi_band(engine) -> None:
    assert engine.evaluate(build_snapshot(ema_trend_bullish=False), None, T0).action is Action.HOLD
    assert engine.evaluate(build_snapshot(rsi=Decimal("70.5")), None, T0).action is Action.HOLD
    assert engine.evaluate(build_snapshot(rsi=Decimal("39.9")), None, T0).action is Action.HOLD
    # band edges are inclusive
    assert engine.evaluate(build_snapshot(rsi=Decimal("70")), None, T0).action is Action.LONG_ENTRY


def test_short_entry_mirror(engine) -> None:
    snap = build_snapshot(
        ema_trend_bullish=False,
        macd_bullish_cross=False,
        macd_bearish_cross=True,
        rsi=Decimal("45"),
    )
    decision = engine.evaluate(snap, None, T0)
    assert decision.action is Action.SHORT_ENTRY
    assert engine.evaluate(replace(snap, rsi=Decimal("61")), None, T0).action is Action.HOLD
    # death cross alone is a trigger too
    death = replace(snap, macd_bearish_cross=False, ema_death_cross=True)
    assert engine.evaluate(death, None, T0).action is Action.SHORT_ENTRY


def test_no_trigger_holds(engine) -> None:
    assert engine.evaluate(build_snapshot(macd_bullish_cross=False), None, T0).action is Action.HOLD


def test_stop_loss_exit_on_close(engine) -> None:
    pos = build_position()
    snap = build_snapshot(close_price=Decimal("98"), rsi=Decimal("50"))
    decision = engine.evaluate(snap, pos, T0 + timedelta(hours=1))
    assert decision.action is Action.LONG_EXIT
    assert decision.reason is ExitReason.STOP_LOSS

    short = build_position(Direction.SHORT)
    decision = engine.evaluate(build_snapshot(close_price=Decimal("102.5")), short, T0 + timedelta(hours=1))
    assert decision.action is Action.SHORT_EXIT
    assert decision.reason is ExitReason.STOP_LOSS


def test_stop_loss_boundary_is_exact(engine) -> None:
    later = T0 + timedelta(hours=1)
    long_pos = build_position()
    # 1.99996% adverse: inside the 2% stop
    inside = build_snapshot(close_price=Decimal("98.00004"), rsi=Decimal("50"))
    assert engine.evaluate(inside, long_pos, later).action is Action.HOLD
    at_stop = build_snapshot(close_price=Decimal("98.00000"), rsi=Decimal("50"))
    assert engine.evaluate(at_stop, long_pos, later).reason is ExitReason.STOP_LOSS

    short_pos = build_position(Direction.SHORT)
    inside = build_snapshot(close_price=Decimal("101.99996"), rsi=Decimal("50"))
    assert engine.evaluate(inside, short_pos, later).action is Action.HOLD
    at_stop = build_snapshot(close_price=Decimal("102"), rsi=Decimal("50"))
    assert engine.evaluate(at_stop, short_pos, later).reason is ExitReason.STOP_LOSS


def test_max_holding_uses_wall_clock(engine) -> None:
    pos = build_position()
    snap = build_snapshot(close_price=Decimal("101"), rsi=Decimal("50"))
    # default 30 days on 1h bars = 720 bars
    assert engine.evaluate(snap, pos, T0 + timedelta(hours=719)).action is Action.HOLD
    decision = engine.evaluate(snap, pos, T0 + timedelta(hours=720))
    assert decision.reason is ExitReason.MAX_HOLDING
    assert engine.bars_held(T0, T0 + timedelta(minutes=119)) == 1


def test_rsi_extreme_exit(engine) -> None:
    pos = build_position()
    snap = build_snapshot(close_price=Decimal("105"), rsi=Decimal("80.5"))
    assert engine.evaluate(snap, pos, T0).reason is ExitReason.RSI_EXTREME
    assert engine.evaluate(replace(snap, rsi=Decimal("80")), pos, T0).action is Action.HOLD

    short = build_position(Direction.SHORT)
    snap = build_snapshot(close_price=Decimal("95"), rsi=Decimal("19"))
    assert engine.evaluate(snap, short, T0).action is Action.SHORT_EXIT


def test_exit_order_stop_loss_first() -> None:
    params = StrategyParameters(risk=RiskConfig(max_holding_days=1))
    engine = StrategyEngine(params, INTERVALS["1d"])
    snap = build_snapshot(close_price=Decimal("90"), rsi=Decimal("85"))
    decision = engine.evaluate(snap, build_position(), T0 + timedelta(days=5))
    assert decision.reason is ExitReason.STOP_LOSS


def test_open_position_never_gets_entry(engine) -> None:
    snap = build_snapshot(close_price=Decimal("101"))
    assert engine.evaluate(snap, build_position(), T0).action is Action.HOLD
