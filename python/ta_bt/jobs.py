"""Background backtest jobs.

Runs are CPU-bound and self-contained, so the application layer owns two
explicit bounded pools: an interactive pool for ad-hoc backtests and a
batch pool for periodic performance recomputation. Each run gets its own
engine/strategy/simulator; the only shared state is the run registry here.
"""

from __future__ import annotations

import logging
import threading
import uuid
from collections import deque
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Optional

from .backtest import run_from_source
from .config import (
    BATCH_EXECUTOR,
    INTERACTIVE_EXECUTOR,
    AcceptancePolicy,
    ExecutorConfig,
    OverflowPolicy,
    RunMode,
    StrategyParameters,
)
from .data_provider import BarSource
from .errors import BacktestError
from .performance import PeriodMetric, compute_performance
from .report import BacktestReport

logger = logging.getLogger(__name__)

INTERNAL_ERROR_MESSAGE = "Backtest failed due to an internal error"

# finished runs (with their reports) kept for polling
MAX_FINISHED_RUNS = 256


class BoundedExecutor:
    """ThreadPoolExecutor with a bounded number of in-flight tasks.

    At most ``max_workers + queue_capacity`` tasks are running or queued.
    Beyond that, CALLER_RUNS executes the task on the submitting thread and
    BLOCK waits for a free slot.
    """

    def __init__(self, cfg: ExecutorConfig):
        if cfg.max_workers <= 0 or cfg.queue_capacity < 0:
            raise ValueError(f"invalid executor sizing: {cfg}")
        self.cfg = cfg
        self._pool = ThreadPoolExecutor(max_workers=cfg.max_workers, thread_name_prefix=cfg.thread_name_prefix)
        self._slots = threading.BoundedSemaphore(cfg.max_workers + cfg.queue_capacity)

    def submit(self, fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
        if self.cfg.overflow is OverflowPolicy.BLOCK:
            self._slots.acquire()
        elif not self._slots.acquire(blocking=False):
            logger.warning(f"[{self.cfg.thread_name_prefix}pool] saturated; running task in caller thread")
            return _run_in_caller(fn, *args, **kwargs)

        def task():
            # free the slot before the future resolves
            try:
                return fn(*args, **kwargs)
            finally:
                self._slots.release()

        try:
            return self._pool.submit(task)
        except BaseException:
            self._slots.release()
            raise

    def shutdown(self, wait: bool = True) -> None:
        self._pool.shutdown(wait=wait)


def _run_in_caller(fn: Callable[..., Any], *args: Any, **kwargs: Any) -> Future:
    future: Future = Future()
    future.set_running_or_notify_cancel()
    try:
        result = fn(*args, **kwargs)
    except Exception as e:
        future.set_exception(e)
    else:
        future.set_result(result)
    return future


class RunStatus(str, Enum):
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


@dataclass(frozen=True)
class BacktestRun:
    run_id: str
    symbol: str
    interval: str
    start: datetime
    end: datetime
    mode: RunMode
    submitted_at: datetime
    status: RunStatus = RunStatus.PENDING
    report: Optional[BacktestReport] = None
    error: Optional[str] = None
    finished_at: Optional[datetime] = None


def sanitize_error(exc: BaseException) -> str:
    """Message safe to hand back to the submitter."""
    if isinstance(exc, BacktestError):
        return str(exc)
    return INTERNAL_ERROR_MESSAGE


class BacktestJobService:
    """Submits backtests to bounded pools and tracks their status.

    Finished runs stay queryable until ``forget`` is called or until more
    than ``max_finished_runs`` newer runs have finished, whichever is first.
    """

    def __init__(
        self,
        source: BarSource,
        interactive: ExecutorConfig = INTERACTIVE_EXECUTOR,
        batch: ExecutorConfig = BATCH_EXECUTOR,
        max_finished_runs: int = MAX_FINISHED_RUNS,
    ):
        if max_finished_runs <= 0:
            raise ValueError(f"max_finished_runs must be positive, got {max_finished_runs}")
        self.source = source
        self.max_finished_runs = max_finished_runs
        self._interactive = BoundedExecutor(interactive)
        self._batch = BoundedExecutor(batch)
        self._runs: dict[str, BacktestRun] = {}
        # completion events for runs still PENDING/RUNNING
        self._done: dict[str, threading.Event] = {}
        self._finished: deque[str] = deque()
        self._lock = threading.Lock()

    def __enter__(self) -> "BacktestJobService":
        return self

    def __exit__(self, *exc: Any) -> None:
        self.shutdown()

    def submit(
        self,
        symbol: str,
        interval: str,
        start: datetime,
        end: datetime,
        params: StrategyParameters = StrategyParameters(),
        mode: RunMode = RunMode.STANDARD,
        policy: AcceptancePolicy = AcceptancePolicy(),
    ) -> str:
        """Queue a backtest and return its run id (status PENDING)."""
        run_id = uuid.uuid4().hex
        run = BacktestRun(
            run_id=run_id,
            symbol=symbol,
            interval=interval,
            start=start,
            end=end,
            mode=mode,
            submitted_at=datetime.now(timezone.utc),
        )
        with self._lock:
            self._runs[run_id] = run
            self._done[run_id] = threading.Event()
        logger.info(f"[job {run_id}] submitted {symbol} {interval} {start.isoformat()} -> {end.isoformat()}")

        try:
            self._interactive.submit(self._execute, run_id, params, policy)
        except BaseException:
            with self._lock:
                del self._runs[run_id]
                del self._done[run_id]
            raise
        return run_id

    def get(self, run_id: str) -> Optional[BacktestRun]:
        with self._lock:
            return self._runs.get(run_id)

    def wait(self, run_id: str, timeout: Optional[float] = None) -> BacktestRun:
        """Block until the run leaves PENDING/RUNNING and return it.

        Raises ``KeyError`` for an unknown (or forgotten) run and
        ``TimeoutError`` if the run is still active after ``timeout``.
        """
        with self._lock:
            if run_id not in self._runs:
                raise KeyError(run_id)
            done = self._done.get(run_id)
        if done is not None and not done.wait(timeout):
            raise TimeoutError(f"run {run_id} still active after {timeout}s")
        run = self.get(run_id)
        if run is None:
            raise KeyError(run_id)
        return run

    def forget(self, run_id: str) -> Optional[BacktestRun]:
        """Drop a finished run and its report; returns it, or None if unknown."""
        with self._lock:
            if run_id in self._done:
                raise ValueError(f"run {run_id} is still active")
            run = self._runs.pop(run_id, None)
            if run is not None:
                self._finished.remove(run_id)
            return run

    def submit_performance(
        self,
        symbol: str,
        interval: str,
        params: StrategyParameters = StrategyParameters(),
        now: Optional[datetime] = None,
    ) -> "Future[list[PeriodMetric]]":
        """Recompute per-period performance on the batch pool."""
        logger.info(f"[perf] submitted {symbol} {interval}")
        return self._batch.submit(compute_performance, self.source, symbol, interval, params, now)

    def shutdown(self, wait: bool = True) -> None:
        self._interactive.shutdown(wait=wait)
        self._batch.shutdown(wait=wait)

    # ---------- internal ----------

    def _update(self, run_id: str, **changes: Any) -> BacktestRun:
        with self._lock:
            run = replace(self._runs[run_id], **changes)
            self._runs[run_id] = run
            return run

    def _finish(self, run_id: str, **changes: Any) -> None:
        with self._lock:
            self._runs[run_id] = replace(self._runs[run_id], finished_at=datetime.now(timezone.utc), **changes)
            self._finished.append(run_id)
            while len(self._finished) > self.max_finished_runs:
                evicted = self._finished.popleft()
                del self._runs[evicted]
                logger.debug(f"[job {evicted}] evicted from the run registry")
            done = self._done.pop(run_id)
        done.set()

    def _execute(self, run_id: str, params: StrategyParameters, policy: AcceptancePolicy) -> None:
        run = self._update(run_id, status=RunStatus.RUNNING)
        logger.info(f"[job {run_id}] running")
        try:
            report = run_from_source(
                self.source,
                run.symbol,
                run.interval,
                run.start,
                run.end,
                params=params,
                mode=run.mode,
                policy=policy,
            )
        except BacktestError as e:
            logger.warning(f"[job {run_id}] failed: {e}")
            self._finish(run_id, status=RunStatus.FAILED, error=sanitize_error(e))
            return
        except Exception as e:
            logger.exception(f"[job {run_id}] failed with an unexpected error")
            self._finish(run_id, status=RunStatus.FAILED, error=sanitize_error(e))
            return

        self._finish(run_id, status=RunStatus.COMPLETED, report=report)
        logger.info(f"[job {run_id}] completed: {report.total_trades} trades, total return {report.total_return}")
