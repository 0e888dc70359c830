"""Base classes for filter system."""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional
import math

import numpy as np
import pandas as pd

from engine.errors import ComputationError
from engine.models import SignalType


@dataclass
class FilterContext:
    """Context passed to filters for decision making.

    Filters read the candle and indicator values at `index` through `value()`,
    which raises ComputationError for missing, misaligned or non-finite data.

    Attributes:
        index: Candle index being evaluated
        timestamp: Candle time
        signal_direction: SignalType.BUY or SignalType.SELL
        series: Column name -> array aligned to the candle sequence
    """
    index: int
    timestamp: pd.Timestamp
    signal_direction: SignalType
    series: Mapping[str, np.ndarray] = field(default_factory=dict)

    def value(self, name: str, offset: int = 0) -> float:
        """Value of `name` at index + offset."""
        if name not in self.series:
            raise ComputationError(f"Series '{name}' not available")
        values = self.series[name]
        position = self.index + offset
        if position < 0 or position >= len(values):
            raise ComputationError(
                f"Series '{name}' misaligned: index {position} outside length {len(values)}"
            )
        result = float(values[position])
        if not math.isfinite(result):
            raise ComputationError(f"Series '{name}' is not defined at index {position}")
        return result

    @property
    def is_buy(self) -> bool:
        return self.signal_direction is SignalType.BUY


@dataclass
class FilterResult:
    """Result from filter check.

    Attributes:
        passed: Whether the filter passed (True) or failed (False)
        reason: Optional reason for failure (human-readable)
        metadata: Optional dictionary with additional information
    """
    passed: bool
    reason: Optional[str] = None
    metadata: Dict = field(default_factory=dict)

    def __post_init__(self):
        """Ensure metadata is always a dict."""
        if self.metadata is None:
            self.metadata = {}


class FilterBase(ABC):
    """Base class for all signal filters.

    A filter computes the indicator series it needs once per candle sequence
    (`prepare`) and then votes on individual crossover signals (`check`).

    Example:
        class MyFilter(FilterBase):
            def prepare(self, df):
                return {'my_series': df['close'].rolling(5).mean()}

            def check(self, context: FilterContext) -> FilterResult:
                if context.value('close') > context.value('my_series'):
                    return self._create_pass_result()
                return self._create_fail_result("Close below average")
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None):
        """
        Initialize filter with configuration.

        Args:
            config: Filter configuration dict
        """
        self.config = dict(config or {})
        self.enabled = bool(self.config.get('enabled', True))
        self.name = self.__class__.__name__

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        """
        Compute indicator series required by this filter.

        Args:
            df: OHLCV DataFrame

        Returns:
            Mapping of unique series name -> Series aligned to df
        """
        return {}

    @abstractmethod
    def check(self, context: FilterContext) -> FilterResult:
        """
        Check if filter passes for the signal in `context`.

        Args:
            context: FilterContext with signal direction and aligned series

        Returns:
            FilterResult indicating pass/fail and reason
        """

    def is_enabled(self) -> bool:
        return self.enabled

    def _create_pass_result(self, metadata: Optional[Dict] = None) -> FilterResult:
        return FilterResult(passed=True, metadata=metadata or {})

    def _create_fail_result(self, reason: str, metadata: Optional[Dict] = None) -> FilterResult:
        return FilterResult(
            passed=False,
            reason=reason,
            metadata=metadata or {}
        )
