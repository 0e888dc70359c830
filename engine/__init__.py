"""Core backtesting engine module.

Heavier components are imported from their modules directly, e.g.
``from engine.backtest_engine import BacktestEngine``.
"""

from engine.errors import BacktestError, ConfigError, DataError, ComputationError
from engine.models import (
    Candle,
    Signal,
    SignalType,
    Trade,
    ExitReason,
    EquityPoint,
    BacktestSummary,
    candles_from_frame,
    candles_to_frame,
)

__all__ = [
    'BacktestError',
    'ConfigError',
    'DataError',
    'ComputationError',
    'Candle',
    'Signal',
    'SignalType',
    'Trade',
    'ExitReason',
    'EquityPoint',
    'BacktestSummary',
    'candles_from_frame',
    'candles_to_frame',
]
