"""Filter system for trading strategies.

Each filter votes on a crossover signal; the FilterManager tallies the votes
against the configured filter strength.
"""

from strategies.filters.base import FilterBase, FilterContext, FilterResult
from strategies.filters.manager import FilterManager, VoteResult, required_votes
from strategies.filters.momentum import MACDFilter, RSIFilter
from strategies.filters.price_action import CandleBodyFilter
from strategies.filters.regime import TrendFilter
from strategies.filters.volatility import BollingerBandFilter
from strategies.filters.volume import VolumeFilter

__all__ = [
    'FilterBase',
    'FilterContext',
    'FilterResult',
    'FilterManager',
    'VoteResult',
    'required_votes',
    'RSIFilter',
    'MACDFilter',
    'VolumeFilter',
    'TrendFilter',
    'BollingerBandFilter',
    'CandleBodyFilter',
]
