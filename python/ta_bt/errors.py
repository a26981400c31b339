"""Error taxonomy for a backtest run.

All errors are raised before the replay loop starts; a run either returns a
fully populated report or raises one of these.
"""


class BacktestError(RuntimeError):
    """Base class for input failures of a run.

    The message is meant for the caller and is safe to show to a user.
    """


class InsufficientDataError(BacktestError):
    """Fewer bars than the warm-up / minimum-bar requirement."""


class InvalidParametersError(BacktestError):
    """Out-of-range strategy or run configuration."""


class InvalidBarDataError(BacktestError):
    """Bar series violates ordering or price invariants."""


class BarDataNotFoundError(BacktestError):
    """The bar source has no series for the requested symbol/interval."""
