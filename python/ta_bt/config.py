"""Configuration objects.

Style rules:
- keep signatures stable (no alias chaos)
- prefer explicit field names
- every object here is immutable and built per run; nothing is shared
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum

from .errors import InvalidParametersError


@dataclass(frozen=True)
class IndicatorConfig:
    """Indicator window configuration."""

    ema_short: int = 9
    ema_long: int = 21
    # Also used as the ADX smoothing period.
    rsi_period: int = 14

    macd_fast: int = 12
    macd_slow: int = 26
    macd_signal: int = 9

    donchian_entry: int = 20
    donchian_exit: int = 10

    @property
    def warmup_bars(self) -> int:
        """First bar index at which a snapshot may be taken."""
        return max(int(self.ema_long), 35)

    @property
    def min_bars(self) -> int:
        """Smallest series a run accepts.

        ema_long + 10, and never fewer than warm-up + 1 bars.
        """
        return max(int(self.ema_long) + 10, self.warmup_bars + 1)


@dataclass(frozen=True)
class RiskConfig:
    """Stops, holding limits and sizing."""

    stop_loss_pct: float = 0.02
    max_holding_days: int = 30
    initial_capital: float = 10_000.0
    # fraction of idle capital committed per entry, clamped to [0.01, 1.0]
    position_size_pct: float = 1.0

    # trailing stop: activates once the peak favourable move reaches
    # `trailing_activate_pct`, then trails `trailing_offset_pct` behind it
    trailing_activate_pct: float = 0.05
    trailing_offset_pct: float = 0.02

    # exit a losing trade after this many days (0 disables)
    time_stop_days: int = 7


@dataclass(frozen=True)
class RsiConfig:
    """RSI entry bands and exit extremes."""

    long_entry_min: float = 40.0
    long_entry_max: float = 70.0
    short_entry_min: float = 30.0
    short_entry_max: float = 60.0
    long_exit_extreme: float = 80.0
    short_exit_extreme: float = 20.0


@dataclass(frozen=True)
class StrategyParameters:
    """Full parameter set for one run."""

    indicators: IndicatorConfig = field(default_factory=IndicatorConfig)
    risk: RiskConfig = field(default_factory=RiskConfig)
    rsi: RsiConfig = field(default_factory=RsiConfig)

    def validate(self) -> "StrategyParameters":
        """Raise InvalidParametersError on the first out-of-range field."""
        ind, risk, rsi = self.indicators, self.risk, self.rsi

        periods = {
            "ema_short": ind.ema_short,
            "ema_long": ind.ema_long,
            "rsi_period": ind.rsi_period,
            "macd_fast": ind.macd_fast,
            "macd_slow": ind.macd_slow,
            "macd_signal": ind.macd_signal,
            "donchian_entry": ind.donchian_entry,
            "donchian_exit": ind.donchian_exit,
        }
        for name, value in periods.items():
            if int(value) != value or value <= 0:
                raise InvalidParametersError(f"{name} must be a positive integer, got {value!r}")
        if ind.ema_short >= ind.ema_long:
            raise InvalidParametersError(
                f"ema_short ({ind.ema_short}) must be smaller than ema_long ({ind.ema_long})"
            )
        if ind.macd_fast >= ind.macd_slow:
            raise InvalidParametersError(
                f"macd_fast ({ind.macd_fast}) must be smaller than macd_slow ({ind.macd_slow})"
            )

        _check_range("stop_loss_pct", risk.stop_loss_pct, 0.0, 1.0, low_inclusive=False, high_inclusive=False)
        _check_range("position_size_pct", risk.position_size_pct, 0.0, 1.0)
        _check_range("trailing_activate_pct", risk.trailing_activate_pct, 0.0, math.inf)
        _check_range("trailing_offset_pct", risk.trailing_offset_pct, 0.0, math.inf)
        if not (math.isfinite(risk.initial_capital) and risk.initial_capital > 0):
            raise InvalidParametersError(f"initial_capital must be positive, got {risk.initial_capital!r}")
        if int(risk.max_holding_days) != risk.max_holding_days or risk.max_holding_days <= 0:
            raise InvalidParametersError(f"max_holding_days must be a positive integer, got {risk.max_holding_days!r}")
        if int(risk.time_stop_days) != risk.time_stop_days or risk.time_stop_days < 0:
            raise InvalidParametersError(f"time_stop_days must be a non-negative integer, got {risk.time_stop_days!r}")

        for name in ("long_entry_min", "long_entry_max", "short_entry_min", "short_entry_max",
                     "long_exit_extreme", "short_exit_extreme"):
            _check_range(name, getattr(rsi, name), 0.0, 100.0)
        if rsi.long_entry_min > rsi.long_entry_max:
            raise InvalidParametersError("long_entry_min must not exceed long_entry_max")
        if rsi.short_entry_min > rsi.short_entry_max:
            raise InvalidParametersError("short_entry_min must not exceed short_entry_max")
        return self

    @classmethod
    def from_params_dict(cls, d: dict) -> "StrategyParameters":
        """Create StrategyParameters from a flat strategy-template dict.

        Keys are camelCase (e.g., emaShort, stopLossPct, rsiLongEntryMin).
        Unknown keys are ignored; missing keys keep their defaults.
        """
        indicator_keys = {
            "emaShort": "ema_short",
            "emaLong": "ema_long",
            "rsiPeriod": "rsi_period",
            "macdShort": "macd_fast",
            "macdLong": "macd_slow",
            "macdSignal": "macd_signal",
            "donchianEntry": "donchian_entry",
            "donchianExit": "donchian_exit",
        }
        risk_keys = {
            "stopLossPct": "stop_loss_pct",
            "maxHoldingDays": "max_holding_days",
            "initialCapital": "initial_capital",
            "positionSizePct": "position_size_pct",
            "trailingActivatePct": "trailing_activate_pct",
            "trailingOffsetPct": "trailing_offset_pct",
            "timeStopDays": "time_stop_days",
        }
        rsi_keys = {
            "rsiLongEntryMin": "long_entry_min",
            "rsiLongEntryMax": "long_entry_max",
            "rsiShortEntryMin": "short_entry_min",
            "rsiShortEntryMax": "short_entry_max",
            "rsiLongExitExtreme": "long_exit_extreme",
            "rsiShortExitExtreme": "short_exit_extreme",
        }

        int_fields = ("max_holding_days", "time_stop_days")

        def pick(mapping: dict, cast) -> dict:
            out = {}
            for k, v in (d or {}).items():
                if k in mapping and v is not None:
                    name = mapping[k]
                    try:
                        out[name] = int(float(v)) if name in int_fields else cast(v)
                    except (TypeError, ValueError, OverflowError) as e:
                        raise InvalidParametersError(f"{k} must be a number, got {v!r}") from e
            return out

        return cls(
            indicators=IndicatorConfig(**pick(indicator_keys, int)),
            risk=RiskConfig(**pick(risk_keys, float)),
            rsi=RsiConfig(**pick(rsi_keys, float)),
        )


def _check_range(
    name: str,
    value: float,
    low: float,
    high: float,
    low_inclusive: bool = True,
    high_inclusive: bool = True,
) -> None:
    ok_low = value >= low if low_inclusive else value > low
    ok_high = value <= high if high_inclusive else value < high
    if not (ok_low and ok_high and not math.isnan(value)):
        lo = "[" if low_inclusive else "("
        hi = "]" if high_inclusive else ")"
        raise InvalidParametersError(f"{name} must be in {lo}{low}, {high}{hi}, got {value!r}")


@dataclass(frozen=True)
class IntervalParams:
    """Per-interval constants, precomputed once."""

    interval: str
    bars_per_day: int
    bars_per_year: int
    sharpe_annualizer: float
    bar_duration_minutes: int

    @classmethod
    def of(cls, interval: str, bar_duration_minutes: int) -> "IntervalParams":
        bars_per_day = (24 * 60) // bar_duration_minutes
        bars_per_year = bars_per_day * 365
        return cls(interval, bars_per_day, bars_per_year, math.sqrt(bars_per_year), bar_duration_minutes)

    @classmethod
    def from_string(cls, interval: str) -> "IntervalParams":
        try:
            return INTERVALS[interval]
        except KeyError:
            raise InvalidParametersError(
                f"Unsupported interval: {interval!r} (expected one of {', '.join(INTERVALS)})"
            ) from None


INTERVALS: dict[str, IntervalParams] = {
    "5m": IntervalParams.of("5m", 5),
    "15m": IntervalParams.of("15m", 15),
    "1h": IntervalParams.of("1h", 60),
    "4h": IntervalParams.of("4h", 240),
    "1d": IntervalParams.of("1d", 1440),
}


@dataclass(frozen=True)
class AcceptancePolicy:
    """Pass/fail thresholds for a report (policy input, not derived)."""

    min_annualized_return: float = 0.30
    # worst single-trade return must be at or above this
    max_single_loss: float = -0.10
    # absolute max drawdown must be at or below this
    max_drawdown: float = 0.30
    # annual rate, spread evenly over bars for the Sharpe ratio
    risk_free_rate: float = 0.04


class RunMode(str, Enum):
    """End-of-run handling.

    STANDARD closes any open position at the last close; UNREALIZED leaves
    it open and reports its floating P&L instead (performance snapshots).
    """

    STANDARD = "STANDARD"
    UNREALIZED = "UNREALIZED"


class OverflowPolicy(str, Enum):
    CALLER_RUNS = "CALLER_RUNS"
    BLOCK = "BLOCK"


@dataclass(frozen=True)
class ExecutorConfig:
    """Bounded worker pool sizing."""

    max_workers: int = 2
    queue_capacity: int = 10
    thread_name_prefix: str = "backtest-"
    overflow: OverflowPolicy = OverflowPolicy.CALLER_RUNS


# Ad-hoc user backtests: a couple of concurrent runs, short queue.
INTERACTIVE_EXECUTOR = ExecutorConfig(max_workers=2, queue_capacity=10, thread_name_prefix="backtest-")
# Periodic performance recomputation: one run at a time so large series
# never pile up in memory.
BATCH_EXECUTOR = ExecutorConfig(max_workers=1, queue_capacity=4, thread_name_prefix="perf-")
