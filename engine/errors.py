"""Exception taxonomy for the backtesting core.

- ConfigError: invalid configuration or strategy parameters, raised at construction
- DataError: empty or too-short candle input for the required warm-up
- ComputationError: indicator misalignment or non-finite values at an index

Public entry points (BacktestEngine.run, GeneticOptimizer.optimize,
MonteCarloEngine.run) catch these and report them in their result objects.
"""


class BacktestError(Exception):
    """Base class for backtesting core errors."""


class ConfigError(BacktestError, ValueError):
    """Invalid configuration or strategy parameters."""


class DataError(BacktestError):
    """Candle data is empty or too short for the requested computation."""


class ComputationError(BacktestError):
    """Indicator arrays are misaligned or produced unusable values."""
