"""Momentum filters."""

from strategies.filters.momentum.rsi_filter import RSIFilter
from strategies.filters.momentum.macd_filter import MACDFilter

__all__ = ['RSIFilter', 'MACDFilter']
