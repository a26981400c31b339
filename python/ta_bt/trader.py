"""Single-symbol position simulator.

Bar-replay loop over an ``IndicatorEngine``:
- replays bars from the warm-up index to the last bar
- updates the trailing stop from the bar's favourable extreme (H for long, L for short)
- checks the stop intrabar using (H, L) and exits at the stop price
- evaluates remaining exits and new entries on the bar close
- marks-to-market on the close and samples the equity curve (always keeping
  trade bars and the bar after an exit)

At most one position is open at any time. Capital accounting:
idle capital + committed capital + unrealized P&L == equity.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional, Protocol

from .config import IntervalParams, RunMode, StrategyParameters
from .data_manager import IndicatorEngine
from .fixed_point import (
    CASH_SCALE,
    ONE,
    PRICE_SCALE,
    QTY_SCALE,
    RATIO_SCALE,
    ZERO,
    div,
    mul,
    pct,
    quantize,
    to_decimal,
)
from .types import (
    ClosedTrade,
    Decision,
    Direction,
    EquityCurvePoint,
    ExitReason,
    IndicatorSnapshot,
    OpenPosition,
)

logger = logging.getLogger(__name__)

# equity curve is down-sampled to roughly this many points
EQUITY_CURVE_POINTS = 2000

MIN_POSITION_SIZE = Decimal("0.01")


class DecisionEngine(Protocol):
    def evaluate(
        self,
        snapshot: IndicatorSnapshot,
        position: Optional[OpenPosition],
        now: datetime,
    ) -> Decision:
        ...


@dataclass(frozen=True)
class SimulationResult:
    trades: tuple[ClosedTrade, ...]
    equity_curve: tuple[EquityCurvePoint, ...]
    initial_capital: Decimal
    final_capital: Decimal
    bars_processed: int
    unrealized_pnl_pct: Optional[Decimal] = None
    unrealized_direction: Optional[Direction] = None


class PositionSimulator:
    """Replays one bar series under one parameter set.

    Construct a fresh simulator per run; ``run()`` drives the whole series,
    ``step(i)`` processes a single bar so callers can inspect
    ``position`` / ``capital`` / ``equity_curve`` between bars.
    """

    def __init__(
        self,
        engine: IndicatorEngine,
        strategy: DecisionEngine,
        params: StrategyParameters,
        interval: IntervalParams,
        mode: RunMode = RunMode.STANDARD,
    ):
        self.engine = engine
        self.strategy = strategy
        self.params = params
        self.interval = interval
        self.mode = mode

        self.initial_capital = to_decimal(params.risk.initial_capital, CASH_SCALE)
        # idle capital: everything not committed to the open position
        self.capital = self.initial_capital
        self.position: Optional[OpenPosition] = None

        self.trades: List[ClosedTrade] = []
        self.equity_curve: List[EquityCurvePoint] = []

        self.unrealized_pnl_pct: Optional[Decimal] = None
        self.unrealized_direction: Optional[Direction] = None

        self._warmup = engine.warmup
        self._n = len(engine)
        self._sample_step = max(1, (self._n - self._warmup) // EQUITY_CURVE_POINTS)
        self._last_index = -1
        self._last_exit_index: Optional[int] = None
        self._finished = False

        size = pct(params.risk.position_size_pct)
        self._position_size = min(ONE, max(MIN_POSITION_SIZE, size))
        self._stop_loss = pct(params.risk.stop_loss_pct)
        self._trail_activate = pct(params.risk.trailing_activate_pct)
        self._trail_offset = pct(params.risk.trailing_offset_pct)

    # ---------- public API ----------

    def run(self) -> SimulationResult:
        """Run the full series and close out the run."""
        for i in range(self._warmup, self._n):
            self.step(i)
        self._finish()
        return self.result()

    def step(self, i: int) -> None:
        """Process bar index i (bars must be stepped in increasing order)."""
        if i < self._warmup or i > self._n - 1:
            return
        if self._finished:
            raise RuntimeError("simulation already finished")
        if i <= self._last_index:
            raise ValueError(f"bar {i} already processed (last was {self._last_index})")
        self._last_index = i

        bar = self.engine.get_bar(i)
        ts = bar.open_time
        traded = False

        # 1) Trailing stop update + intrabar stop check
        if self.position is not None:
            self._update_trailing_stop(bar.high, bar.low)
            if self._check_stop_intrabar(bar.high, bar.low):
                stop_px = self.position.stop_loss_price
                pnl = self._pnl(self.position, stop_px)
                reason = ExitReason.TRAILING_STOP if pnl >= ZERO else ExitReason.STOP_LOSS
                self._exit(i, ts, stop_px, reason)
                traded = True

        # 2) Indicator snapshot for this bar
        snap = self.engine.snapshot(i)

        # 3) Remaining exits on the close
        if self.position is not None:
            reason = self._check_exit_conditions(snap, i)
            if reason is not None:
                self._exit(i, ts, snap.close_price, reason)
                traded = True

        # 4) Entries on the close
        if self.position is None and self.capital > ZERO:
            decision = self.strategy.evaluate(snap, None, ts)
            if decision.is_entry:
                self._enter_new(i, ts, snap.close_price, decision.direction)
                traded = True

        # 5) Mark-to-market on the close
        self._append_equity(i, ts, bar.close, traded)

    def equity_value(self, price: Decimal) -> Decimal:
        """Idle capital + committed capital + unrealized P&L at ``price``."""
        equity = self.capital
        if self.position is not None:
            equity = equity + self.position.capital_committed + self._pnl(self.position, price)
        return quantize(equity, PRICE_SCALE)

    def result(self) -> SimulationResult:
        return SimulationResult(
            trades=tuple(self.trades),
            equity_curve=tuple(self.equity_curve),
            initial_capital=self.initial_capital,
            final_capital=quantize(self.capital, CASH_SCALE),
            bars_processed=max(0, self._last_index - self._warmup + 1),
            unrealized_pnl_pct=self.unrealized_pnl_pct,
            unrealized_direction=self.unrealized_direction,
        )

    # ---------- internal helpers ----------

    def _pnl(self, pos: OpenPosition, price: Decimal) -> Decimal:
        if pos.is_long:
            return mul(price - pos.entry_price, pos.quantity, PRICE_SCALE)
        return mul(pos.entry_price - price, pos.quantity, PRICE_SCALE)

    def _update_trailing_stop(self, high: Decimal, low: Decimal) -> None:
        pos = self.position
        if pos.is_long:
            move = div(high - pos.entry_price, pos.entry_price, PRICE_SCALE)
        else:
            move = div(pos.entry_price - low, pos.entry_price, PRICE_SCALE)

        if move > pos.peak_move_pct:
            pos.peak_move_pct = move

        if pos.peak_move_pct < self._trail_activate:
            return

        # stop trails `offset` behind the peak move, never below break-even
        trail = max(ZERO, pos.peak_move_pct - self._trail_offset)
        if pos.is_long:
            new_stop = mul(pos.entry_price, ONE + trail, PRICE_SCALE)
            if new_stop > pos.stop_loss_price:
                pos.stop_loss_price = new_stop
        else:
            new_stop = mul(pos.entry_price, ONE - trail, PRICE_SCALE)
            if new_stop < pos.stop_loss_price:
                pos.stop_loss_price = new_stop

    def _check_stop_intrabar(self, high: Decimal, low: Decimal) -> bool:
        pos = self.position
        if pos.is_long:
            return low <= pos.stop_loss_price
        return high >= pos.stop_loss_price

    def _check_exit_conditions(self, snap: IndicatorSnapshot, i: int) -> Optional[ExitReason]:
        pos = self.position
        risk = self.params.risk
        rsi_cfg = self.params.rsi
        bars_per_day = self.interval.bars_per_day

        bars_held = i - pos.entry_index

        if bars_held >= risk.max_holding_days * bars_per_day:
            return ExitReason.MAX_HOLDING

        if pos.is_long and snap.rsi > pct(rsi_cfg.long_exit_extreme):
            return ExitReason.RSI_EXTREME
        if not pos.is_long and snap.rsi < pct(rsi_cfg.short_exit_extreme):
            return ExitReason.RSI_EXTREME

        # time stop: still losing after N days
        time_stop_bars = risk.time_stop_days * bars_per_day
        if time_stop_bars > 0 and bars_held >= time_stop_bars:
            if self._pnl(pos, snap.close_price) < ZERO:
                return ExitReason.TIME_STOP

        return None

    def _enter_new(self, i: int, ts: datetime, price: Decimal, direction: Direction) -> None:
        committed = mul(self.capital, self._position_size, CASH_SCALE)
        if committed <= ZERO:
            return
        quantity = div(committed, price, QTY_SCALE)

        if direction is Direction.LONG:
            stop = mul(price, ONE - self._stop_loss, PRICE_SCALE)
        else:
            stop = mul(price, ONE + self._stop_loss, PRICE_SCALE)

        self.position = OpenPosition(
            direction=direction,
            entry_price=price,
            entry_time=ts,
            entry_index=i,
            quantity=quantity,
            capital_committed=committed,
            stop_loss_price=stop,
        )
        self.capital = self.capital - committed

    def _exit(self, i: int, ts: datetime, price: Decimal, reason: ExitReason) -> None:
        pos = self.position
        pnl = self._pnl(pos, price)
        self.capital = self.capital + pos.capital_committed + pnl

        trade = ClosedTrade(
            trade_number=len(self.trades) + 1,
            direction=pos.direction,
            entry_time=pos.entry_time,
            exit_time=ts,
            entry_price=pos.entry_price,
            exit_price=price,
            pnl=quantize(pnl, CASH_SCALE),
            return_pct=div(pnl, pos.capital_committed, RATIO_SCALE),
            exit_reason=reason,
            holding_bars=i - pos.entry_index,
        )
        self.trades.append(trade)
        self.position = None
        self._last_exit_index = i

        logger.debug(
            f"#{trade.trade_number} {trade.direction.value} {trade.entry_time} -> {trade.exit_time} "
            f"{trade.entry_price} -> {trade.exit_price} pnl={trade.pnl} ({trade.exit_reason.value})"
        )

    def _append_equity(self, i: int, ts: datetime, close: Decimal, traded: bool) -> None:
        offset = i - self._warmup
        after_exit = self._last_exit_index == i - 1
        keep = offset == 0 or traded or after_exit or i == self._n - 1 or offset % self._sample_step == 0
        if keep:
            self.equity_curve.append(EquityCurvePoint(timestamp=ts, equity=self.equity_value(close)))

    def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        if self.position is None or self._n == 0:
            return

        last = self.engine.get_bar(self._n - 1)
        if self.mode is RunMode.STANDARD:
            self._exit(self._n - 1, last.open_time, last.close, ExitReason.END_OF_RUN)
            return

        # unrealized: keep the trade out of the ledger, return its capital
        pos = self.position
        pnl = self._pnl(pos, last.close)
        self.unrealized_pnl_pct = div(pnl, pos.capital_committed, RATIO_SCALE)
        self.unrealized_direction = pos.direction
        self.capital = self.capital + pos.capital_committed
        self.position = None
