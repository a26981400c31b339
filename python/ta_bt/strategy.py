"""Strategy decision engine: trend following with momentum confirmation.

Entry trigger: MACD histogram zero-line cross or EMA cross.
Trend confirmation: EMA short vs EMA long.
Filters: ADX >= 20 (trend strength) and RSI entry bands (no chasing).

``evaluate`` is the live-signal path: stop-loss, max holding and RSI
extreme exits on the bar close. Trailing and time stops need intrabar
high/low and are handled by the simulator.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Optional

from .config import IntervalParams, StrategyParameters
from .fixed_point import ONE, pct
from .types import Decision, Direction, ExitReason, IndicatorSnapshot, OpenPosition

logger = logging.getLogger(__name__)

ADX_MIN = Decimal(20)


class StrategyEngine:
    """Stateless rule engine; safe to share between threads."""

    def __init__(self, params: StrategyParameters, interval: IntervalParams):
        self.params = params
        self.interval = interval

    def evaluate(
        self,
        snapshot: IndicatorSnapshot,
        position: Optional[OpenPosition],
        now: datetime,
    ) -> Decision:
        if position is not None:
            return self._evaluate_exit(snapshot, position, now)
        return self._evaluate_entry(snapshot)

    def _evaluate_entry(self, snap: IndicatorSnapshot) -> Decision:
        rsi_cfg = self.params.rsi
        rsi = snap.rsi

        if snap.adx < ADX_MIN:
            return Decision.hold()

        long_trigger = snap.macd_bullish_cross or snap.ema_golden_cross
        long_rsi = pct(rsi_cfg.long_entry_min) <= rsi <= pct(rsi_cfg.long_entry_max)
        if long_trigger and snap.ema_trend_bullish and long_rsi:
            logger.debug(f"LONG_ENTRY at {snap.timestamp}: RSI={rsi}, ADX={snap.adx}, MACD_HIST={snap.macd_histogram}")
            return Decision.enter(Direction.LONG)

        short_trigger = snap.macd_bearish_cross or snap.ema_death_cross
        short_rsi = pct(rsi_cfg.short_entry_min) <= rsi <= pct(rsi_cfg.short_entry_max)
        if short_trigger and not snap.ema_trend_bullish and short_rsi:
            logger.debug(f"SHORT_ENTRY at {snap.timestamp}: RSI={rsi}, ADX={snap.adx}, MACD_HIST={snap.macd_histogram}")
            return Decision.enter(Direction.SHORT)

        return Decision.hold()

    def _evaluate_exit(self, snap: IndicatorSnapshot, pos: OpenPosition, now: datetime) -> Decision:
        risk = self.params.risk
        rsi_cfg = self.params.rsi

        # 1. stop-loss on the close, compared unrounded
        stop_loss = pct(risk.stop_loss_pct)
        if pos.is_long:
            stopped = snap.close_price <= pos.entry_price * (ONE - stop_loss)
        else:
            stopped = snap.close_price >= pos.entry_price * (ONE + stop_loss)
        if stopped:
            return Decision.exit(pos.direction, ExitReason.STOP_LOSS)

        # 2. max holding, from wall-clock time
        if self.bars_held(pos.entry_time, now) >= risk.max_holding_days * self.interval.bars_per_day:
            return Decision.exit(pos.direction, ExitReason.MAX_HOLDING)

        # 3. RSI extreme
        if pos.is_long and snap.rsi > pct(rsi_cfg.long_exit_extreme):
            return Decision.exit(pos.direction, ExitReason.RSI_EXTREME)
        if not pos.is_long and snap.rsi < pct(rsi_cfg.short_exit_extreme):
            return Decision.exit(pos.direction, ExitReason.RSI_EXTREME)

        return Decision.hold()

    def bars_held(self, entry_time: datetime, now: datetime) -> int:
        minutes = int((now - entry_time).total_seconds() // 60)
        return minutes // self.interval.bar_duration_minutes
