"""Filter manager applying a weighted vote over enabled filters."""

import logging
import math
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd

from config.schema import MovingAverageCrossoverConfig
from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.filters.momentum import MACDFilter, RSIFilter
from strategies.filters.price_action import CandleBodyFilter
from strategies.filters.regime import TrendFilter
from strategies.filters.volatility import BollingerBandFilter
from strategies.filters.volume import VolumeFilter

logger = logging.getLogger(__name__)

FILTER_STRENGTHS = ("weak", "medium", "strong")


def required_votes(strength: str, total: int) -> int:
    """Votes a signal needs: weak -> 1, medium -> ceil(total / 2), strong -> total."""
    if total <= 0:
        return 0
    if strength == "weak":
        return 1
    if strength == "medium":
        return int(math.ceil(total / 2))
    if strength == "strong":
        return total
    raise ValueError(f"Unknown filter strength: {strength}")


@dataclass
class VoteResult:
    """Outcome of a filter vote.

    Attributes:
        passed: Whether enough filters voted for the signal
        votes_passed: Number of filters that passed
        required: Votes required by the filter strength
        total: Number of enabled filters
        results: Filter name -> individual FilterResult
    """
    passed: bool
    votes_passed: int
    required: int
    total: int
    results: Dict[str, FilterResult] = field(default_factory=dict)

    @property
    def summary(self) -> str:
        return f"{self.votes_passed}/{self.total} filters passed (required {self.required})"


class FilterManager:
    """Manages enabled filters and applies a weighted vote to signals.

    Unlike a short-circuiting chain, every enabled filter is evaluated and the
    signal passes when `votes_passed >= required_votes(strength, total)`.

    Example:
        manager = FilterManager([RSIFilter({'period': 14})], strength='medium')
        series = manager.prepare(df)
        result = manager.apply_filters(context)
    """

    def __init__(self, filters: Optional[List[FilterBase]] = None, strength: str = "medium"):
        """
        Initialize filter manager.

        Args:
            filters: Filter instances (disabled ones are ignored)
            strength: 'weak', 'medium' or 'strong'
        """
        if strength not in FILTER_STRENGTHS:
            raise ValueError(f"Unknown filter strength: {strength}")
        self.filters = [f for f in (filters or []) if f.is_enabled()]
        self.strength = strength

    @classmethod
    def from_strategy_config(cls, config: MovingAverageCrossoverConfig) -> "FilterManager":
        """Build the filter set enabled in a crossover strategy config."""
        filters: List[FilterBase] = []
        if config.use_rsi_filter:
            filters.append(RSIFilter({
                'period': config.rsi_period,
                'overbought': config.rsi_overbought,
                'oversold': config.rsi_oversold,
            }))
        if config.use_volume_filter:
            filters.append(VolumeFilter({'period': config.volume_period, 'threshold': config.volume_threshold}))
        if config.use_trend_filter:
            filters.append(TrendFilter({'period': config.trend_period, 'ma_type': config.ma_type}))
        if config.use_macd_filter:
            filters.append(MACDFilter({
                'fast': config.macd_fast,
                'slow': config.macd_slow,
                'signal': config.macd_signal,
            }))
        if config.use_bollinger_filter:
            filters.append(BollingerBandFilter({
                'period': config.bollinger_period,
                'num_std': config.bollinger_std,
            }))
        if config.use_candle_filter:
            filters.append(CandleBodyFilter({'min_body_ratio': config.min_body_ratio}))
        return cls(filters, strength=config.filter_strength)

    @property
    def total(self) -> int:
        return len(self.filters)

    @property
    def required(self) -> int:
        return required_votes(self.strength, self.total)

    def prepare(self, df: pd.DataFrame) -> Dict[str, pd.Series]:
        """Compute every series the enabled filters need."""
        series: Dict[str, pd.Series] = {}
        for filter_obj in self.filters:
            series.update(filter_obj.prepare(df))
        return series

    def apply_filters(self, context: FilterContext) -> VoteResult:
        """
        Evaluate all enabled filters and tally the vote.

        Args:
            context: FilterContext for the candidate signal

        Returns:
            VoteResult (always passes when no filter is enabled)

        Raises:
            ComputationError: If a filter's data is unavailable at this index
        """
        if not self.filters:
            return VoteResult(passed=True, votes_passed=0, required=0, total=0)

        results = {f.name: f.check(context) for f in self.filters}
        votes = sum(1 for r in results.values() if r.passed)
        passed = votes >= self.required

        if not passed:
            failed = ", ".join(f"{name}: {r.reason}" for name, r in results.items() if not r.passed)
            logger.debug(f"Signal at index {context.index} rejected ({votes}/{self.total}): {failed}")

        return VoteResult(
            passed=passed,
            votes_passed=votes,
            required=self.required,
            total=self.total,
            results=results,
        )
